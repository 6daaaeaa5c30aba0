"""Application configuration using Pydantic Settings.

This module centralizes runtime configuration for the library system. Values
can be provided via environment variables (preferred) or fall back to the
defaults below. A ``Settings`` instance is intended to be retrieved via
``get_settings`` which caches the object for reuse across the process.

Environment variable prefix: ``LIBRARY_`` (e.g. ``LIBRARY_STORAGE_DIR``).
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from library_system.constants import (
    DEFAULT_CONNECTION_STRING,
    DEFAULT_LIBRARY_NAME,
    DEFAULT_MAX_LISTENERS,
    FINE_PER_DAY,
)


class Settings(BaseSettings):
    """Runtime application settings.

    Attributes map directly to environment variables using the ``LIBRARY_``
    prefix (case-insensitive). For example, ``storage_dir`` <- ``LIBRARY_STORAGE_DIR``.
    """

    library_name: str = Field(
        default=DEFAULT_LIBRARY_NAME,
        description="Display name of the library facade",
    )  # fmt: skip
    connection_string: str = Field(
        default=DEFAULT_CONNECTION_STRING,
        description="Key under which the database snapshot is stored",
    )  # fmt: skip
    storage_dir: Path | None = Field(
        default=None,
        description="Directory for JSON snapshot files. None keeps data in memory only.",
    )  # fmt: skip
    latency_scale: float = Field(
        default=1.0,
        ge=0.0,
        description="Multiplier for the simulated database latency, 0 disables it",
    )  # fmt: skip
    max_listeners: int = Field(
        default=DEFAULT_MAX_LISTENERS,
        ge=0,
        description="Maximum durable listeners per event",
    )  # fmt: skip
    fine_per_day: float = Field(
        default=FINE_PER_DAY,
        ge=0.0,
        description="Late fee charged per started day past the due date",
    )  # fmt: skip
    serialize_mutations: bool = Field(
        default=True,
        description="Serialize borrow/return calls per user and per book to close the check-then-act race",
    )  # fmt: skip
    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Application log level",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str:
        """Normalize and validate log level."""
        if v is None:
            return "INFO"

        v_upper = str(v).upper()

        allowed = {"TRACE", "DEBUG", "INFO", "WARNING", "ERROR"}
        if v_upper not in allowed:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {', '.join(sorted(allowed))}")

        return v_upper

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_",
        case_sensitive=False,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached ``Settings`` instance.

    The first invocation reads environment variables / .env file; subsequent
    calls reuse the same object to ensure consistent config.
    """

    return Settings()


__all__ = ["Settings", "get_settings"]
