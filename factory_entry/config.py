"""Application configuration objects."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """Pydantic settings used to configure the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(
        default="Factory Entry System",
        description="Human friendly name shown in page titles.",
    )
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment flag, enables debug mode in development.",
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the settings, product and inventory JSON files.",
    )
    secret_key: str = Field(
        default="factory-entry-secret-key",
        description="Key used to sign the session cookie carrying flash messages.",
    )
    default_timezone: str = Field(
        default="Asia/Karachi",
        description="Timezone used when stamping inventory snapshots.",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Upper bound for request bodies (spreadsheets, inventory pushes).",
    )
    users: List[str] = Field(
        default_factory=list,
        description="Names offered in the entry form user dropdown.",
    )
    log_level: str = Field(
        default="INFO",
        description="Level applied to the application logger.",
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of :class:`Settings`."""

    return Settings()


__all__ = ["Settings", "get_settings"]
