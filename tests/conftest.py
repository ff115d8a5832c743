import asyncio
import io
from typing import Any

from PIL import Image
import pytest

from domain.errors import ImageArchiveError, PersistenceError
from domain.models import Classification, Recipe, is_food
from domain.parsing import outermost_object, recipe_from_dict


RECIPE_DATA: dict[str, Any] = {
    "title": "X",
    "cuisine": "Italian",
    "dietary_preference": "Vegetarian",
    "cooking_time": "10 minutes",
    "servings": "2",
    "ingredients": {"Egg": "2"},
    "instructions": ["Boil"],
    "shopping_cart": {"Egg": "2"},
}


class FakeGateway:
    def __init__(self) -> None:
        self.classifications: dict[str, str] = {}
        self.recipes: dict[str, Recipe] = {}
        self.images: dict[str, str] = {}
        self.saved_recipes: list[Recipe] = []
        self.fail_classification_save = False
        self.classification_save_delay: float = 0
        self.fail_recipe_save = False

    async def get_classification(self, fingerprint: str) -> Classification | None:
        description = self.classifications.get(fingerprint)
        if description is None:
            return None
        return Classification(fingerprint=fingerprint, description=description)

    async def save_classification(self, fingerprint: str, description: str) -> None:
        if self.classification_save_delay:
            await asyncio.sleep(self.classification_save_delay)
        if self.fail_classification_save:
            raise PersistenceError("image_metadata is read only")
        self.classifications[fingerprint] = description

    async def get_recipe(self, fingerprint: str) -> Recipe | None:
        return self.recipes.get(fingerprint)

    async def save_recipe(self, recipe: Recipe) -> None:
        if self.fail_recipe_save:
            raise PersistenceError("recipes is read only")
        self.recipes[recipe.fingerprint] = recipe
        self.saved_recipes.append(recipe)

    async def list_recipes(
        self, cuisine: str = "", dietary_preference: str = ""
    ) -> list[Recipe]:
        return [
            r
            for r in self.recipes.values()
            if (not cuisine or r.cuisine == cuisine)
            and (not dietary_preference or r.dietary_preference == dietary_preference)
        ]

    async def save_image_data(self, fingerprint: str, encoded: str) -> None:
        self.images[fingerprint] = encoded

    async def get_image_data(self, fingerprint: str) -> str | None:
        return self.images.get(fingerprint)


class FakeProvider:
    """Answers like a vision model would, optionally slowly or not at all."""

    def __init__(
        self,
        *,
        description: str = "A delicious pasta dish",
        recipe: dict[str, Any] | None = None,
        raw: str | None = None,
        delay: float = 0,
        error: Exception | None = None,
    ) -> None:
        self.description = description
        self.recipe = RECIPE_DATA if recipe is None else recipe
        self.raw = raw
        self.delay = delay
        self.error = error
        self.classify_calls = 0
        self.generate_calls: list[tuple[str, str]] = []

    async def classify(self, image_bytes: bytes) -> tuple[bool, str]:
        self.classify_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return is_food(self.description), self.description

    async def generate_recipe(
        self, image_bytes: bytes, dietary_preference: str, cuisine: str
    ) -> Recipe:
        self.generate_calls.append((dietary_preference, cuisine))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.raw is not None:
            return recipe_from_dict(outermost_object(self.raw))
        return recipe_from_dict(self.recipe)


class FakeArchive:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.saved: list[str] = []
        self.rejected: list[str] = []

    async def save(self, image_bytes: bytes, fingerprint: str, extension: str = "") -> str:
        if self.fail:
            raise ImageArchiveError("disk full")
        self.saved.append(fingerprint)
        return f"images/{fingerprint}{extension}"

    async def save_rejected(
        self, image_bytes: bytes, fingerprint: str, extension: str = ""
    ) -> str:
        if self.fail:
            raise ImageArchiveError("disk full")
        self.rejected.append(fingerprint)
        return f"images/NoneFoodImages/{fingerprint}{extension}"


def make_png(color: str = "red", size: tuple[int, int] = (40, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_provider() -> type[FakeProvider]:
    return FakeProvider


@pytest.fixture
def fake_archive() -> type[FakeArchive]:
    return FakeArchive


@pytest.fixture
def png() -> bytes:
    return make_png()


@pytest.fixture
def other_png() -> bytes:
    return make_png(color="blue")
