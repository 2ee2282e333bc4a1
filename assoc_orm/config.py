"""Runtime settings loaded from environment variables and an optional `.env`."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Connection and logging configuration for `OrmContext`."""

    model_config = SettingsConfigDict(
        env_prefix="ASSOC_ORM_",
        env_file=".env",
        extra="ignore",
    )

    database_path: Path = Field(
        default=Path("storage/storage.db"),
        description="SQLite database file, or ':memory:'",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    log_sql: bool = Field(default=False, description="Log every statement at DEBUG")
    foreign_keys: bool = Field(
        default=True, description="Enable SQLite foreign key enforcement"
    )
    slow_query_threshold_ms: int = Field(default=1000, ge=0)

    @property
    def in_memory(self) -> bool:
        return str(self.database_path) == ":memory:"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process settings instance."""

    return Settings()
