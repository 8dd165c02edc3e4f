"""
Application settings.

Values come from environment variables (upper-case field names) and an
optional ``.env`` file in the working directory::

    DATA_DIR=/srv/bee-atlas/data
    DATABASE_URL=sqlite:////srv/bee-atlas/data/bee_atlas.db
    SERVICEBUS_CONNECTION_STRING=Endpoint=sb://...
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide configuration for the worker and CLI."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "bee-atlas"
    app_env: str = "development"
    debug: bool = False

    # Storage
    data_dir: Path = Path("data")
    database_url: str = "sqlite:///data/bee_atlas.db"
    elevation_dir: Path = Path("data/elevation")

    # Message broker
    servicebus_connection_string: str = ""
    queue_name: str = "tasks"
    receive_wait_seconds: int = 30

    # Batching
    chunk_size: int = Field(default=5000, gt=0)
    page_size: int = Field(default=1000, gt=0)

    # Output retention: default cap plus per-type overrides
    file_limit: int = Field(default=25, gt=0)
    file_limits: dict[str, int] = Field(default_factory=dict)

    # iNaturalist
    inat_api_base: str = "https://api.inaturalist.org/v1"
    inat_retries: int = Field(default=4, ge=0)
    inat_backoff_factor: float = Field(default=1.0, ge=0)
    inat_backoff_limit: float = Field(default=8.0, ge=0)

    field_number_url_prefix: str = "https://osac.oregonstate.edu/OBS/OBA_"

    def limit_for(self, output_type: str) -> int:
        """Retention cap for an output directory."""
        return self.file_limits.get(output_type, self.file_limit)


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
