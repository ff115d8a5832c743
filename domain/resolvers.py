"""Cache-then-model resolution for the two things we know about an image.

Both resolvers look up the fingerprint first and only call the vision model on
a miss, writing the result through to the store before returning it.
"""

import logging
from typing import Protocol

from domain.deadline import Deadline
from domain.errors import DeadlineExceeded, PersistenceError
from domain.llm_service import VisionModelProvider
from domain.models import Recipe, is_food
from domain.repository import PersistenceGateway


logger = logging.getLogger(__name__)


class ImageArchive(Protocol):
    async def save(self, image_bytes: bytes, fingerprint: str, extension: str = "") -> str:
        ...

    async def save_rejected(
        self, image_bytes: bytes, fingerprint: str, extension: str = ""
    ) -> str:
        ...


class ClassificationResolver:
    def __init__(
        self,
        *,
        gateway: PersistenceGateway,
        provider: VisionModelProvider,
        logger: logging.Logger = logger,
    ) -> None:
        self.gateway = gateway
        self.provider = provider
        self.logger = logger

    async def resolve(
        self, fingerprint: str, image_bytes: bytes, deadline: Deadline
    ) -> tuple[bool, str]:
        cached = await deadline.run(
            self.gateway.get_classification(fingerprint), stage="classification lookup"
        )
        if cached is not None:
            self.logger.info("Image metadata found for image hash: %s", fingerprint)
            return is_food(cached.description), cached.description

        self.logger.info("Image metadata not found, classifying image hash: %s", fingerprint)
        food, description = await deadline.run(
            self.provider.classify(image_bytes), stage="classification"
        )

        try:
            await deadline.run(
                self.gateway.save_classification(fingerprint, description),
                stage="classification save",
            )
        except (PersistenceError, DeadlineExceeded) as e:
            self.logger.warning("Failed to save image metadata for %s: %s", fingerprint, e)

        return food, description


class RecipeResolver:
    def __init__(
        self,
        *,
        gateway: PersistenceGateway,
        provider: VisionModelProvider,
        archive: ImageArchive | None = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.gateway = gateway
        self.provider = provider
        self.archive = archive
        self.logger = logger

    async def resolve(
        self,
        fingerprint: str,
        image_bytes: bytes,
        dietary_preference: str,
        cuisine: str,
        deadline: Deadline,
        *,
        extension: str = "",
    ) -> tuple[Recipe, bool]:
        """The recipe for this image, and whether it came from the store.

        A stored recipe is returned as is: the cache key is the fingerprint
        alone, so `dietary_preference` and `cuisine` only shape new recipes.
        """
        cached = await deadline.run(
            self.gateway.get_recipe(fingerprint), stage="recipe lookup"
        )
        if cached is not None:
            self.logger.info("Recipe found for image hash: %s", fingerprint)
            return cached, True

        self.logger.info(
            "Recipe not found, generating for image hash: %s, "
            "dietary_preference: %s, cuisine: %s",
            fingerprint,
            dietary_preference,
            cuisine,
        )
        recipe = await deadline.run(
            self.provider.generate_recipe(image_bytes, dietary_preference, cuisine),
            stage="recipe generation",
        )

        if self.archive is not None:
            recipe.image_path = await deadline.run(
                self.archive.save(image_bytes, fingerprint, extension),
                stage="image archive",
            )

        recipe.fingerprint = fingerprint
        await deadline.run(self.gateway.save_recipe(recipe), stage="recipe save")
        return recipe, False
