"""Resolve a recipe for a local image file, outside the web app.

    python main.py path/to/dish.jpg [--local] [--dietary vegan] [--cuisine thai]
"""

import argparse
import asyncio
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from app.images import ImageArchive
import config
import db
from domain.errors import SnapChefError
from domain.llm_service import (
    GeminiVisionService,
    LocalVisionService,
    VisionModelProvider,
    gemini_client_factory,
)
from domain.models import GenerationRequest, Recipe
from domain.repository import RecipeRepository
from domain.services import Resolution, ResolutionPipeline, Stage


CONFIG = config.Config()


console = Console()


def recipe_table(recipe: Recipe) -> Table:
    table = Table(title=recipe.title, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Cuisine", recipe.cuisine)
    table.add_row("Dietary preference", recipe.dietary_preference)
    table.add_row("Cooking time", recipe.cooking_time)
    table.add_row("Servings", recipe.servings)
    table.add_row(
        "Ingredients", "\n".join(f"{k}: {v}" for k, v in recipe.ingredients.items())
    )
    table.add_row(
        "Instructions", "\n".join(f"{i}. {s}" for i, s in enumerate(recipe.instructions, 1))
    )
    table.add_row("Image", recipe.image_path)
    return table


def show_stage(stage: Stage, image_hash: str) -> None:
    console.print(f"[dim]{image_hash[:12]}[/dim] {stage.value}")


async def run(
    path: Path, *, local: bool, dietary_preference: str, cuisine: str
) -> Resolution:
    database = db.database(CONFIG.db_url)
    await database.connect()
    try:
        await db.create_db(database)
        provider: VisionModelProvider = (
            LocalVisionService(model=CONFIG.local_model)
            if local
            else GeminiVisionService(
                gemini_client_factory(CONFIG.gemini_api_key, CONFIG.cloud_base_url),
                model=CONFIG.cloud_model,
            )
        )
        pipeline = ResolutionPipeline(
            gateway=RecipeRepository(database),
            provider=provider,
            archive=ImageArchive(CONFIG.images_dir),
            timeout=CONFIG.resolve_timeout,
            on_stage=show_stage,
        )
        request = GenerationRequest(
            path.read_bytes(),
            dietary_preference=dietary_preference,
            cuisine=cuisine,
            extension=path.suffix.lower(),
        )
        return await pipeline.run(request)
    finally:
        await database.disconnect()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("image", type=Path)
    parser.add_argument("--local", action="store_true", help="use the local model")
    parser.add_argument("--dietary", default="", help="dietary preference")
    parser.add_argument("--cuisine", default="")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, handlers=[RichHandler(console=console)])

    try:
        resolution = asyncio.run(
            run(
                args.image,
                local=args.local,
                dietary_preference=args.dietary,
                cuisine=args.cuisine,
            )
        )
    except SnapChefError as e:
        console.print(f"[red]{e.kind}[/red]: {e}")
        return 1

    if resolution.recipe is None:
        console.print(f"[yellow]Not food:[/yellow] {resolution.description}")
        return 0

    source = "cache" if resolution.cached else "model"
    console.print(recipe_table(resolution.recipe))
    console.print(f"[dim]from {source}, image hash {resolution.fingerprint}[/dim]")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
