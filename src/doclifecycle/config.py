"""Application settings loaded from the environment."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the lifecycle store and its search index.

    Every field can be overridden with a ``DOCLIFECYCLE_`` prefixed
    environment variable or a ``.env`` file in the working directory.
    """

    # Relational store
    database_url: str = "sqlite+aiosqlite:///./doclifecycle.db"

    # Search index
    search_enabled: bool = True
    chroma_path: str = "./.doclifecycle/semantic"
    collection_name: str = "documents"
    max_section_chars: int = Field(default=1500, gt=0)

    # Logging
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    model_config = SettingsConfigDict(
        env_prefix="DOCLIFECYCLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def get_settings() -> Settings:
    return Settings()
