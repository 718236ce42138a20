from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/chatstats.db",
        description="Database connection URL",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    quote_chance: float = Field(
        default=0.015,
        ge=0.0,
        le=1.0,
        description="Chance that an eligible line is snagged as a quote",
    )

    quote_silent_chance: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Chance that a snagged line is archived without an acknowledgement",
    )

    quote_min_delay_hours: float = Field(
        default=6.0,
        ge=0.0,
        le=24.0 * 365,
        description="Minimum hours between two random quotes of the same user",
    )

    allow_quote_notifications: bool = Field(
        default=True,
        description="Reply in the channel when a line is snagged",
    )

    command_prefix: str = Field(
        default="-",
        min_length=1,
        description="Prefix marking bot commands, excluded from topic scoring",
    )

    ignore_common_words: bool = Field(
        default=False,
        description="Skip conjunctions, articles and short words when counting global words",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if v.startswith("sqlite"):
            db_path = v.split("///")[-1]
            if db_path == "":
                raise ValueError("SQLite database path cannot be empty")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_database_directory(database_url: str) -> Path | None:
    """Extract the parent directory path from a SQLite database URL.

    Returns None for non-SQLite databases or :memory: databases.
    """
    if not database_url.startswith("sqlite"):
        return None

    db_path = database_url.split("///")[-1]
    if db_path == ":memory:" or not db_path:
        return None

    return Path(db_path).parent
