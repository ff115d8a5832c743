import logging

from databases import Database

import config


logger = logging.getLogger(__name__)


CONFIG = config.Config()


CREATE_RECIPES_TABLE = """
CREATE TABLE IF NOT EXISTS recipes (
    image_hash VARCHAR(64) PRIMARY KEY,
    title TEXT,
    ingredients TEXT,
    instructions TEXT,
    shopping_cart TEXT,
    cuisine TEXT,
    dietary_preference TEXT,
    cooking_time TEXT,
    servings TEXT,
    image_path TEXT
)
"""


CREATE_IMAGE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS image_metadata (
    image_hash VARCHAR(64) PRIMARY KEY,
    description TEXT
)
"""


CREATE_IMAGE_DATA_TABLE = """
CREATE TABLE IF NOT EXISTS image_data (
    image_hash VARCHAR(64) PRIMARY KEY,
    image_data TEXT
)
"""


def database(url: str | None = None) -> Database:
    return Database(CONFIG.db_url if url is None else url)


async def create_db(db: Database) -> None:
    for query in (
        CREATE_RECIPES_TABLE,
        CREATE_IMAGE_METADATA_TABLE,
        CREATE_IMAGE_DATA_TABLE,
    ):
        await db.execute(query=query)  # pyright: ignore[reportUnknownMemberType]
    logger.info("Database schema ready.")
