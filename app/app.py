import contextlib
import functools
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from starlette.applications import Starlette
from starlette.datastructures import UploadFile
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

from app.images import ImageArchive
import config
import db
from domain.aopenai import local_client_factory
from domain.deadline import Deadline
from domain.errors import (
    DeadlineExceeded,
    InvalidImage,
    MalformedModelOutput,
    ModelError,
    PersistenceError,
    RecipeNotFound,
    SnapChefError,
)
from domain.llm_service import (
    GeminiVisionService,
    LocalVisionService,
    VisionModelProvider,
    gemini_client_factory,
)
from domain.models import GenerationRequest
from domain.repository import PersistenceGateway, RecipeRepository
from domain.services import RecipeQueries, ResolutionPipeline, Stage


logger = logging.getLogger(__name__)


CONFIG = config.Config()


ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png"}


NOT_FOOD_MESSAGE = (
    "Pixel Chef says: It doesn't look like food. "
    "We're here to help you whip up amazing dishes from your ingredients. "
    "Just snap a pic of your culinary creations (or ingredients!) and let's get cooking!"
)


# Most specific first.
STATUS_CODES: list[tuple[type[SnapChefError], int]] = [
    (InvalidImage, 400),
    (RecipeNotFound, 404),
    (DeadlineExceeded, 408),
    (MalformedModelOutput, 502),
    (ModelError, 502),
    (PersistenceError, 500),
]


def status_code_for(e: SnapChefError) -> int:
    for cls, code in STATUS_CODES:
        if isinstance(e, cls):
            return code
    return 500


def aJSONResponse(route: Callable[[Request], Awaitable[Any]]):
    @functools.wraps(route)
    async def wrapper(request: Request) -> JSONResponse:
        try:
            content = await route(request)
        except SnapChefError as e:
            code = status_code_for(e)
            if code >= 500:
                logger.error("%s %s failed: %r", request.method, request.url.path, e)
            return JSONResponse({"error": str(e), "kind": e.kind}, status_code=code)
        return JSONResponse(content)

    return wrapper


def log_stage(stage: Stage, image_hash: str) -> None:
    match stage:
        case Stage.classified:
            logger.info("Classification produced for %s: food", image_hash)
        case Stage.rejected:
            logger.info("Classification produced for %s: not food", image_hash)
        case Stage.recipe_ready:
            logger.info("Recipe produced for %s", image_hash)
        case _:
            pass


async def read_upload(
    request: Request, *, check_extension: bool = True
) -> tuple[bytes, str]:
    async with request.form() as form:
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise InvalidImage("Missing form file 'file'.")
        extension = Path(upload.filename or "").suffix.lower()
        if check_extension and extension not in ALLOWED_EXTENSIONS:
            raise InvalidImage(
                "Invalid file type. Only JPEG, JPG, and PNG images are allowed."
            )
        return await upload.read(), extension


async def resolve(request: Request, pipeline: ResolutionPipeline) -> dict[str, Any]:
    image_bytes, extension = await read_upload(request)
    resolution = await pipeline.run(
        GenerationRequest(
            image_bytes,
            dietary_preference=request.query_params.get("dietary_preference", ""),
            cuisine=request.query_params.get("cuisine", ""),
            extension=extension,
        )
    )
    if resolution.rejected or resolution.recipe is None:
        return {"message": NOT_FOOD_MESSAGE}
    return resolution.recipe.to_dict()


@aJSONResponse
async def recipe_finder(request: Request) -> dict[str, Any]:
    return await resolve(request, request.app.state.cloud_pipeline)


@aJSONResponse
async def recipe_finder_v2(request: Request) -> dict[str, Any]:
    return await resolve(request, request.app.state.local_pipeline)


@aJSONResponse
async def recipes(request: Request) -> list[dict[str, Any]]:
    queries: RecipeQueries = request.app.state.queries
    found = await queries.list_recipes(
        cuisine=request.query_params.get("cuisine", ""),
        dietary_preference=request.query_params.get("dietary_preference", ""),
    )
    return [r.to_dict() for r in found]


@aJSONResponse
async def recipe_detail(request: Request) -> dict[str, Any]:
    image_hash = request.path_params["image_hash"]
    queries: RecipeQueries = request.app.state.queries
    recipe = await queries.get_recipe(image_hash)
    if recipe is None:
        raise RecipeNotFound("Recipe not found")
    return recipe.to_dict()


@aJSONResponse
async def image_metadata(request: Request) -> dict[str, Any]:
    image_hash = request.path_params["image_hash"]
    queries: RecipeQueries = request.app.state.queries
    description = await queries.get_description(image_hash)
    if description is None:
        raise RecipeNotFound("Description not found for this image hash")
    return {"description": description}


@aJSONResponse
async def image_encoder(request: Request) -> dict[str, Any]:
    image_bytes, _ = await read_upload(request)
    queries: RecipeQueries = request.app.state.queries
    return {"image_hash": await queries.save_image_data(image_bytes)}


@aJSONResponse
async def is_food(request: Request) -> dict[str, Any]:
    """Uncached classification with the local model."""
    image_bytes, _ = await read_upload(request, check_extension=False)
    local: VisionModelProvider = request.app.state.local
    deadline = Deadline(request.app.state.resolve_timeout)
    food, description = await deadline.run(local.classify(image_bytes), stage="classification")
    return {"is_food": food, "description": description}


@aJSONResponse
async def recipe_finder_local(request: Request) -> dict[str, Any]:
    """Uncached recipe generation with the local model."""
    image_bytes, _ = await read_upload(request, check_extension=False)
    local: VisionModelProvider = request.app.state.local
    deadline = Deadline(request.app.state.resolve_timeout)
    recipe = await deadline.run(
        local.generate_recipe(
            image_bytes,
            request.query_params.get("dietary_preference", ""),
            request.query_params.get("cuisine", ""),
        ),
        stage="recipe generation",
    )
    return recipe.to_dict()


def build_app(
    *,
    settings: config.Config = CONFIG,
    gateway: PersistenceGateway | None = None,
    cloud: VisionModelProvider | None = None,
    local: VisionModelProvider | None = None,
    archive: ImageArchive | None = None,
) -> Starlette:
    """Wire the HTTP layer. Anything not passed in is built from `settings`."""
    archive = ImageArchive(settings.images_dir) if archive is None else archive

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with contextlib.AsyncExitStack() as stack:
            repo = gateway
            if repo is None:
                database = db.database(settings.db_url)
                await database.connect()
                stack.push_async_callback(database.disconnect)
                await db.create_db(database)
                repo = RecipeRepository(database)

            cloud_provider = cloud
            if cloud_provider is None:
                client = gemini_client_factory(settings.gemini_api_key, settings.cloud_base_url)
                stack.push_async_callback(client.close)
                cloud_provider = GeminiVisionService(client, model=settings.cloud_model)

            local_provider = local
            if local_provider is None:
                http_client = local_client_factory(settings.local_base_url)
                stack.push_async_callback(http_client.aclose)
                local_provider = LocalVisionService(http_client, model=settings.local_model)

            app.state.cloud_pipeline = ResolutionPipeline(
                gateway=repo,
                provider=cloud_provider,
                archive=archive,
                timeout=settings.resolve_timeout,
                on_stage=log_stage,
            )
            app.state.local_pipeline = ResolutionPipeline(
                gateway=repo,
                provider=local_provider,
                archive=archive,
                timeout=settings.resolve_timeout,
                on_stage=log_stage,
            )
            app.state.queries = RecipeQueries(gateway=repo, timeout=settings.lookup_timeout)
            app.state.local = local_provider
            app.state.resolve_timeout = settings.resolve_timeout
            logger.info("SnapChef started (env=%s).", settings.env.value)
            yield

    return Starlette(
        debug=True if settings.env == config.Env.local else False,
        routes=[
            Route("/recipefinder", recipe_finder, methods=["POST"]),
            Route("/v2/recipefinder", recipe_finder_v2, methods=["POST"]),
            Route("/recipes", recipes, methods=["GET"]),
            Route("/recipes/{image_hash:str}", recipe_detail, methods=["GET"]),
            Route("/image-metadata/{image_hash:str}", image_metadata, methods=["GET"]),
            Route("/imageencoder", image_encoder, methods=["POST"]),
            Route("/is-food", is_food, methods=["POST"]),
            Route("/recipe-finder-local", recipe_finder_local, methods=["POST"]),
            Mount(
                "/images",
                app=StaticFiles(directory=settings.images_dir, check_dir=False),
                name="images",
            ),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=settings.cors_origins,
                allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
                allow_headers=["Origin", "Content-Type", "Accept"],
                expose_headers=["Content-Length"],
                allow_credentials=True,
                max_age=12 * 60 * 60,
            )
        ],
        lifespan=lifespan,
    )


app = build_app()
