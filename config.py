"""
Configuration settings for the timestables drill.

Uses Pydantic Settings for environment variable management with .env file support.
User-adjustable preferences (time limit, selected tables) are persisted in the
drill store; the values here are only their defaults and bounds.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TIMESTABLES_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".timestables",
        description="Directory holding the drill store",
    )
    store_backend: Literal["json", "sqlite", "memory"] = Field(
        default="json",
        description="Durable key-value backend for sessions, rounds and history",
    )
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL for the sqlite backend (defaults to <data_dir>/drill.db)",
    )

    # ========================================
    # Drill Defaults
    # ========================================
    default_time_limit_seconds: int = Field(
        default=10,
        description="Seconds allowed per exercise before it counts as a timeout",
    )
    min_time_limit_seconds: int = Field(
        default=3,
        description="Lowest time limit a user may choose",
    )
    max_time_limit_seconds: int = Field(
        default=60,
        description="Highest time limit a user may choose",
    )
    default_tables: str = Field(
        default="3,4,5,6,7,8,9",
        description="Comma-separated multiplication tables used when none are selected",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @field_validator("default_tables")
    @classmethod
    def _validate_tables(cls, value: str) -> str:
        tables = [t.strip() for t in value.split(",") if t.strip()]
        if not tables or not all(t.isdigit() and 1 <= int(t) <= 10 for t in tables):
            raise ValueError("default_tables must list integers between 1 and 10")
        return value

    def get_default_tables(self) -> list[int]:
        """Parse the default table selection."""
        return sorted({int(t) for t in self.default_tables.split(",") if t.strip()})

    def get_database_url(self) -> str:
        """SQLAlchemy URL for the sqlite backend."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'drill.db'}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
