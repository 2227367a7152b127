"""
OnChange Configuration Module.

Centralizes default settings using Pydantic Settings.
Requires Python 3.11+.
"""

import logging
from functools import lru_cache
from typing import Annotated

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Load .env from the current working directory into os.environ so the
# nested BaseSettings classes can read the values
load_dotenv()


class WatchSettings(BaseSettings):
    """Watch session defaults. Command-line flags take precedence."""

    model_config = SettingsConfigDict(env_prefix="ONCHANGE_")

    debounce_ms: int = Field(default=400, ge=0, description="Debounce window")
    throttle_ms: int = Field(default=0, ge=0, description="Throttle window")
    poll_interval_ms: int = Field(default=100, ge=1, description="Polling interval")
    grace_period: float = Field(
        default=5.0,
        ge=0.0,
        description="Seconds to wait for a running command on shutdown",
    )

    ignore_patterns: Annotated[list[str], NoDecode] = Field(
        default=[],
        description="Glob patterns never reported as changes",
    )

    @field_validator("ignore_patterns", mode="before")
    @classmethod
    def parse_ignore_patterns(cls, v: str | list[str]) -> list[str]:
        """Parse ignore patterns from comma-separated string or list."""
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="console")  # "json" or "console"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Accept standard level names in any case."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="onchange")

    watch: WatchSettings = Field(default_factory=WatchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance of Settings.
    """
    return Settings()
