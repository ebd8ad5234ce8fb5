"""Service configuration loaded from the environment or a ``.env`` file."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings.

    Every field can be overridden with a ``COMMGRAPH_``-prefixed environment
    variable, e.g. ``COMMGRAPH_DATABASE_PATH=/data/graph.db``.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMMGRAPH_",
        env_file=".env",
        extra="ignore",
    )

    database_path: Path = Field(
        default=Path("graph.db"),
        description="Path to the SQLite file holding the communication graph",
    )
    max_pool_size: int = Field(default=10, ge=1)
    acquisition_timeout_seconds: float = Field(default=30.0, gt=0)
    analytics_timeout_seconds: float | None = Field(
        default=None,
        description="Cancel outstanding analytics sub-queries after this many seconds",
    )

    log_level: str = "INFO"
    log_json: bool = False


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
