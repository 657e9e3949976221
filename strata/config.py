"""
Strata - Configuration

Settings come from STRATA_* environment variables (or a .env file).
"""
import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STRATA_", env_file=".env", extra="ignore")

    app_name: str = "Strata World API"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    world_id: str = "default"
    world_seed: int = 1337
    chunk_size: int = Field(16, ge=1)
    cell_size: int = Field(32, ge=1)

    cache_ttl_seconds: int = Field(3600, ge=1)
    redis_url: Optional[str] = None
    database_path: str = "strata.db"

    max_concurrent_generations: int = Field(5, ge=1)
    persist_batch_size: int = Field(3, ge=1)

    @property
    def chunk_world_size(self) -> int:
        return self.chunk_size * self.cell_size


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


settings = Settings()
