from enum import Enum
from pathlib import Path

from pydantic_settings import BaseSettings


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class Config(BaseSettings):
    env: Env = Env.local
    images_dir: Path = Path("images")
    db_url: str = "sqlite+aiosqlite:///snapchef.db"
    gemini_api_key: str | None = None
    cloud_model: str = "gemini-1.5-flash"
    cloud_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    local_base_url: str = "http://localhost:1234/v1/"
    local_model: str = "gemma-3-12b-it:2"
    resolve_timeout: float = 45
    lookup_timeout: float = 5
    cors_origins: list[str] = ["http://localhost:8081"]
