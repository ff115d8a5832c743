import json
from typing import Any, Mapping, Protocol

from databases import Database

from domain.errors import PersistenceError
from domain.models import Classification, Recipe


class PersistenceGateway(Protocol):
    async def get_classification(self, fingerprint: str) -> Classification | None:
        ...

    async def save_classification(self, fingerprint: str, description: str) -> None:
        ...

    async def get_recipe(self, fingerprint: str) -> Recipe | None:
        ...

    async def save_recipe(self, recipe: Recipe) -> None:
        ...

    async def list_recipes(
        self, cuisine: str = "", dietary_preference: str = ""
    ) -> list[Recipe]:
        ...

    async def save_image_data(self, fingerprint: str, encoded: str) -> None:
        ...

    async def get_image_data(self, fingerprint: str) -> str | None:
        ...


RECIPE_COLUMNS = (
    "image_hash, title, ingredients, instructions, shopping_cart, cuisine, "
    "dietary_preference, cooking_time, servings, image_path"
)


GET_RECIPE = f"SELECT {RECIPE_COLUMNS} FROM recipes WHERE image_hash = :image_hash"


LIST_RECIPES = f"SELECT {RECIPE_COLUMNS} FROM recipes WHERE 1=1"


UPSERT_RECIPE = f"""
INSERT INTO recipes ({RECIPE_COLUMNS})
VALUES (:image_hash, :title, :ingredients, :instructions, :shopping_cart, :cuisine,
        :dietary_preference, :cooking_time, :servings, :image_path)
ON CONFLICT (image_hash) DO UPDATE SET
    title = excluded.title,
    ingredients = excluded.ingredients,
    instructions = excluded.instructions,
    shopping_cart = excluded.shopping_cart,
    cuisine = excluded.cuisine,
    dietary_preference = excluded.dietary_preference,
    cooking_time = excluded.cooking_time,
    servings = excluded.servings,
    image_path = excluded.image_path
"""


GET_METADATA = "SELECT description FROM image_metadata WHERE image_hash = :image_hash"


UPSERT_METADATA = """
INSERT INTO image_metadata (image_hash, description) VALUES (:image_hash, :description)
ON CONFLICT (image_hash) DO UPDATE SET description = excluded.description
"""


GET_IMAGE_DATA = "SELECT image_data FROM image_data WHERE image_hash = :image_hash"


UPSERT_IMAGE_DATA = """
INSERT INTO image_data (image_hash, image_data) VALUES (:image_hash, :image_data)
ON CONFLICT (image_hash) DO UPDATE SET image_data = excluded.image_data
"""


def recipe_from_record(record: Mapping[str, Any]) -> Recipe:
    try:
        return Recipe(
            fingerprint=record["image_hash"],
            title=record["title"] or "",
            ingredients=json.loads(record["ingredients"] or "{}"),
            instructions=json.loads(record["instructions"] or "[]"),
            shopping_cart=json.loads(record["shopping_cart"] or "{}"),
            cuisine=record["cuisine"] or "",
            dietary_preference=record["dietary_preference"] or "",
            cooking_time=record["cooking_time"] or "",
            servings=record["servings"] or "",
            image_path=record["image_path"] or "",
        )
    except json.JSONDecodeError as e:
        raise PersistenceError(f"Corrupt recipe row {record['image_hash']}. {e}") from e


def recipe_values(recipe: Recipe) -> dict[str, str]:
    return {
        "image_hash": recipe.fingerprint,
        "title": recipe.title,
        "ingredients": json.dumps(recipe.ingredients),
        "instructions": json.dumps(recipe.instructions),
        "shopping_cart": json.dumps(recipe.shopping_cart),
        "cuisine": recipe.cuisine,
        "dietary_preference": recipe.dietary_preference,
        "cooking_time": recipe.cooking_time,
        "servings": recipe.servings,
        "image_path": recipe.image_path,
    }


class RecipeRepository:
    """Classifications, recipes and raw images keyed by image fingerprint.

    Every write is a single upsert; the last writer for a fingerprint wins.
    Database errors are re-raised as `PersistenceError`.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def _fetch_one(self, query: str, values: dict[str, Any]) -> Any:
        try:
            return await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
                query, values=values
            )
        except Exception as e:
            raise PersistenceError(f"Failed to query database. {e!r}") from e

    async def _execute(self, query: str, values: dict[str, Any]) -> None:
        try:
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                query, values=values
            )
        except Exception as e:
            raise PersistenceError(f"Failed to write to database. {e!r}") from e

    async def get_classification(self, fingerprint: str) -> Classification | None:
        result = await self._fetch_one(GET_METADATA, {"image_hash": fingerprint})
        if result is None or not result["description"]:
            return None
        return Classification(fingerprint=fingerprint, description=result["description"])

    async def save_classification(self, fingerprint: str, description: str) -> None:
        await self._execute(
            UPSERT_METADATA, {"image_hash": fingerprint, "description": description}
        )

    async def get_recipe(self, fingerprint: str) -> Recipe | None:
        result = await self._fetch_one(GET_RECIPE, {"image_hash": fingerprint})
        if result is None:
            return None
        return recipe_from_record(result)

    async def save_recipe(self, recipe: Recipe) -> None:
        await self._execute(UPSERT_RECIPE, recipe_values(recipe))

    async def list_recipes(
        self, cuisine: str = "", dietary_preference: str = ""
    ) -> list[Recipe]:
        query = LIST_RECIPES
        values: dict[str, str] = {}
        if cuisine:
            query += " AND cuisine = :cuisine"
            values["cuisine"] = cuisine
        if dietary_preference:
            query += " AND dietary_preference = :dietary_preference"
            values["dietary_preference"] = dietary_preference

        try:
            result = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
                query, values=values
            )
        except Exception as e:
            raise PersistenceError(f"Failed to get recipes. {e!r}") from e
        return [recipe_from_record(r) for r in result]

    async def save_image_data(self, fingerprint: str, encoded: str) -> None:
        await self._execute(
            UPSERT_IMAGE_DATA, {"image_hash": fingerprint, "image_data": encoded}
        )

    async def get_image_data(self, fingerprint: str) -> str | None:
        result = await self._fetch_one(GET_IMAGE_DATA, {"image_hash": fingerprint})
        if result is None or not result["image_data"]:
            return None
        return result["image_data"]
