"""
Importer configuration using pydantic-settings.

============================================================================
DATA SOURCE
============================================================================
The importer reads four JSON files from ``data_dir``:
- extensions.json             (master extension list, small)
- extensions_by_platform.json (per-platform coverage, small)
- summary.json                (scrape metadata, tiny)
- device_reports.json         (one huge array of device reports, streamed)

The database URL is the only required setting. Everything else has a
default that matches the sizes the import was tuned with and can be
overridden via environment variables or command-line flags.
============================================================================
"""

from functools import lru_cache
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Importer settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database - no default, a missing URL is a fatal startup error
    database_url: str = Field(
        validation_alias=AliasChoices("database_url", "vite_database_url"),
    )
    database_pool_size: int = 5
    database_max_overflow: int = 5

    # Input files
    data_dir: str = "public/data"

    # Batching
    device_batch_size: int = 100  # Devices per streamed batch
    insert_batch_size: int = 100  # Rows per INSERT statement (keeps statements under parameter limits)
    import_concurrency: int = 3  # Batches in flight at once

    # Logging
    log_dir: str = "logs"

    @field_validator("database_url")
    @classmethod
    def use_async_driver(cls, value: str) -> str:
        """Point plain PostgreSQL URLs at asyncpg.

        Hosted providers hand out ``postgres://`` or ``postgresql://`` URLs
        with ``sslmode=require``; asyncpg wants ``ssl=require`` instead.
        """
        parts = urlsplit(value)
        if parts.scheme not in ("postgres", "postgresql"):
            return value

        query = [
            ("ssl" if key == "sslmode" else key, val)
            for key, val in parse_qsl(parts.query, keep_blank_values=True)
            if key != "channel_binding"  # not understood by asyncpg
        ]
        return urlunsplit(
            ("postgresql+asyncpg", parts.netloc, parts.path, urlencode(query), parts.fragment)
        )

    @field_validator("device_batch_size", "insert_batch_size", "import_concurrency")
    @classmethod
    def must_be_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
