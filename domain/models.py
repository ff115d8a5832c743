import hashlib
from typing import Any


def fingerprint(image_bytes: bytes) -> str:
    """SHA-256 of the raw image bytes, hex encoded. The sole cache key."""
    return hashlib.sha256(image_bytes).hexdigest()


def is_food(description: str) -> bool:
    """Whether a classification description means "food".

    The only place the rule lives. Both the cached and the live classification
    paths go through here.
    """
    return not description.strip().lower().startswith("no")


class Classification:
    def __init__(self, *, fingerprint: str, description: str) -> None:
        self.fingerprint = fingerprint
        self.description = description

    @property
    def is_food(self) -> bool:
        return is_food(self.description)

    def __repr__(self) -> str:
        return f"<Classification(fingerprint={self.fingerprint}, is_food={self.is_food})>"


class Recipe:
    def __init__(
        self,
        *,
        title: str,
        ingredients: dict[str, str] | None = None,
        instructions: list[str] | None = None,
        shopping_cart: dict[str, str] | None = None,
        cuisine: str = "",
        dietary_preference: str = "",
        cooking_time: str = "",
        servings: str = "",
        image_path: str = "",
        fingerprint: str = "",
    ) -> None:
        self.fingerprint = fingerprint
        self.title = title
        self.ingredients = {} if ingredients is None else ingredients
        self.instructions = [] if instructions is None else instructions
        self.shopping_cart = {} if shopping_cart is None else shopping_cart
        self.cuisine = cuisine.lower()
        self.dietary_preference = dietary_preference.lower()
        self.cooking_time = cooking_time
        self.servings = servings
        self.image_path = image_path

    def __repr__(self) -> str:
        return f"<Recipe(fingerprint={self.fingerprint}, title={self.title})>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Recipe):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_hash": self.fingerprint,
            "title": self.title,
            "ingredients": self.ingredients,
            "instructions": self.instructions,
            "shopping_cart": self.shopping_cart,
            "cuisine": self.cuisine,
            "dietary_preference": self.dietary_preference,
            "cooking_time": self.cooking_time,
            "servings": self.servings,
            "image_path": self.image_path,
        }


class GenerationRequest:
    def __init__(
        self,
        image_bytes: bytes,
        *,
        dietary_preference: str = "",
        cuisine: str = "",
        extension: str = "",
    ) -> None:
        self.image_bytes = image_bytes
        self.dietary_preference = dietary_preference
        self.cuisine = cuisine
        self.extension = extension
