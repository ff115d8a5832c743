CLASSIFY_PROMPT = (
    "Analyze the provided image. "
    "If it contains food, return a brief recipe description. "
    "If not, respond with 'NO' followed by a 5-word description of the image content."
)

RECIPE_PROMPT = """
I need a recipe for the food item in this image.
Please return a single, clean JSON object with the following keys and data types:
'title' (string), 'cuisine' (string), 'dietary_preference' (string),
'cooking_time' (string), 'servings' (string),
'ingredients' (map of ingredient names to quantities),
'instructions' (array of strings),
and 'shopping_cart' (map of ingredient names to quantities).
The JSON response should be clean and not contain any markdown formatting (e.g., ```json).
""".strip()


def build_preferences(dietary_preference: str, cuisine: str) -> str:
    s = ""
    if dietary_preference:
        s += f" The recipe should be {dietary_preference}."
    if cuisine:
        s += f" The recipe should be {cuisine} cuisine."
    return s


class RecipePrompt:
    def __init__(
        self,
        dietary_preference: str = "",
        cuisine: str = "",
        content: str | None = None,
    ) -> None:
        self.content = RECIPE_PROMPT if content is None else content
        self.dietary_preference = dietary_preference.strip()
        self.cuisine = cuisine.strip()

    def __str__(self) -> str:
        return self.content + build_preferences(self.dietary_preference, self.cuisine)
