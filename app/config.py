from enum import Enum
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: Env = Env.local
    html_dir: Path = Path(__file__).parent / "templates"
    # SQLite only. Membership conflicts are read off sqlite3 errors.
    db_url: str = "sqlite+aiosqlite:///codinner.db"
    google_places_api_key: str | None = None
    # Where everyone is starting from.
    origin_lat: float = 40.7596
    origin_lng: float = -111.8867
    default_radius: int = 1600
    cache_ttl: int = 60 * 60 * 24
    cache_max_size: int = 100
    log_level: str = "INFO"

    @field_validator("db_url")
    @classmethod
    def sqlite_only(cls, v: str) -> str:
        if not v.startswith("sqlite"):
            raise ValueError("only sqlite database URLs are supported")
        return v
