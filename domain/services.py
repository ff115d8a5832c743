import base64
from enum import Enum
import logging
from typing import Callable

from domain.deadline import Deadline
from domain.errors import SnapChefError
from domain.llm_service import VisionModelProvider
from domain.models import GenerationRequest, Recipe, fingerprint
from domain.repository import PersistenceGateway
from domain.resolvers import ClassificationResolver, ImageArchive, RecipeResolver


logger = logging.getLogger(__name__)


RESOLVE_TIMEOUT = 45
LOOKUP_TIMEOUT = 5


class Stage(Enum):
    start = "start"
    classifying = "classifying"
    rejected = "rejected"
    classified = "classified"
    resolving = "resolving"
    recipe_ready = "recipe_ready"
    failed = "failed"


StageObserver = Callable[[Stage, str], None]


class Resolution:
    def __init__(
        self,
        *,
        fingerprint: str,
        status: Stage,
        description: str,
        recipe: Recipe | None = None,
        cached: bool = False,
    ) -> None:
        self.fingerprint = fingerprint
        self.status = status
        self.description = description
        self.recipe = recipe
        self.cached = cached

    @property
    def rejected(self) -> bool:
        return self.status is Stage.rejected

    def __repr__(self) -> str:
        return f"<Resolution(fingerprint={self.fingerprint}, status={self.status.value})>"


class ResolutionPipeline:
    """Image bytes in, recipe (or a rejection) out.

    Classification and recipe resolution run one after the other under a single
    deadline. Failures are raised as the typed errors of `domain.errors` and
    never retried here.
    """

    def __init__(
        self,
        *,
        gateway: PersistenceGateway,
        provider: VisionModelProvider,
        archive: ImageArchive | None = None,
        timeout: float = RESOLVE_TIMEOUT,
        on_stage: StageObserver | None = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.classifier = ClassificationResolver(
            gateway=gateway, provider=provider, logger=logger
        )
        self.recipes = RecipeResolver(
            gateway=gateway, provider=provider, archive=archive, logger=logger
        )
        self.archive = archive
        self.timeout = timeout
        self.on_stage = on_stage
        self.logger = logger

    def _enter(self, stage: Stage, image_hash: str) -> None:
        self.logger.debug("Pipeline %s -> %s", image_hash, stage.value)
        if self.on_stage is not None:
            self.on_stage(stage, image_hash)

    async def run(self, request: GenerationRequest) -> Resolution:
        image_hash = fingerprint(request.image_bytes)
        self._enter(Stage.start, image_hash)
        deadline = Deadline(self.timeout)

        try:
            self._enter(Stage.classifying, image_hash)
            food, description = await self.classifier.resolve(
                image_hash, request.image_bytes, deadline
            )

            if not food:
                self._enter(Stage.rejected, image_hash)
                await self._archive_rejected(request, image_hash)
                return Resolution(
                    fingerprint=image_hash,
                    status=Stage.rejected,
                    description=description,
                )

            self.logger.debug(
                "Classified %s with %.1fs left", image_hash, deadline.remaining()
            )
            self._enter(Stage.classified, image_hash)
            self._enter(Stage.resolving, image_hash)
            recipe, cached = await self.recipes.resolve(
                image_hash,
                request.image_bytes,
                request.dietary_preference,
                request.cuisine,
                deadline,
                extension=request.extension,
            )
        except SnapChefError as e:
            self.logger.error("Resolution failed for %s (%s): %s", image_hash, e.kind, e)
            self._enter(Stage.failed, image_hash)
            raise

        self._enter(Stage.recipe_ready, image_hash)
        return Resolution(
            fingerprint=image_hash,
            status=Stage.recipe_ready,
            description=description,
            recipe=recipe,
            cached=cached,
        )

    async def _archive_rejected(self, request: GenerationRequest, image_hash: str) -> None:
        if self.archive is None:
            return
        self.logger.info("Image is not food, archiving: %s", image_hash)
        try:
            await self.archive.save_rejected(
                request.image_bytes, image_hash, request.extension
            )
        except SnapChefError as e:
            self.logger.warning("Failed to archive non-food image %s: %s", image_hash, e)


class RecipeQueries:
    """Plain reads against the store, each with its own short deadline."""

    def __init__(
        self,
        *,
        gateway: PersistenceGateway,
        timeout: float = LOOKUP_TIMEOUT,
    ) -> None:
        self.gateway = gateway
        self.timeout = timeout

    async def get_recipe(self, image_hash: str) -> Recipe | None:
        return await Deadline(self.timeout).run(
            self.gateway.get_recipe(image_hash), stage="recipe lookup"
        )

    async def list_recipes(
        self, cuisine: str = "", dietary_preference: str = ""
    ) -> list[Recipe]:
        return await Deadline(self.timeout).run(
            self.gateway.list_recipes(
                cuisine=cuisine.strip().lower(),
                dietary_preference=dietary_preference.strip().lower(),
            ),
            stage="recipe listing",
        )

    async def get_description(self, image_hash: str) -> str | None:
        classification = await Deadline(self.timeout).run(
            self.gateway.get_classification(image_hash), stage="metadata lookup"
        )
        return None if classification is None else classification.description

    async def save_image_data(self, image_bytes: bytes) -> str:
        image_hash = fingerprint(image_bytes)
        encoded = base64.b64encode(image_bytes).decode("utf-8")
        await Deadline(self.timeout).run(
            self.gateway.save_image_data(image_hash, encoded), stage="image save"
        )
        return image_hash

    async def get_image_data(self, image_hash: str) -> str | None:
        return await Deadline(self.timeout).run(
            self.gateway.get_image_data(image_hash), stage="image lookup"
        )
