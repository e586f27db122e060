"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

The counter store endpoint and token are required. A missing value fails
settings construction at import time, so the process never starts without a
reachable store configured.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from admission.utils.durations import parse_duration


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


FailureMode = Literal["raise", "open", "closed"]


def _build_store_settings() -> "StoreSettings":
    """Build store settings from environment.

    Pydantic Settings (v2) populates required fields from environment
    variables, but static type checkers treat them as required constructor
    arguments, which is not how BaseSettings is intended to be used.
    """

    return StoreSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


class StoreSettings(BaseSettings):
    """Remote counter store (Redis) connection settings."""

    url: str = Field(
        ...,
        min_length=1,
        description="Redis endpoint URL (redis:// or rediss://)",
    )
    token: str = Field(
        ...,
        min_length=1,
        description="Access token sent as the Redis AUTH password",
    )
    timeout_seconds: float = Field(
        5.0,
        description="Socket and connect timeout for store round-trips",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """General-tier quota and store failure policy."""

    requests: int = Field(
        100,
        description="Maximum requests per window for the general tier",
        ge=1,
    )
    window: str = Field(
        "1 h",
        description="General-tier window, e.g. '1 h', '15 m', '500 ms'",
    )
    failure_mode: FailureMode = Field(
        "raise",
        description=(
            "What to do when the store errors: 'raise' propagates the error, "
            "'open' admits the request, 'closed' rejects it"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @field_validator("window")
    @classmethod
    def _validate_window(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def window_ms(self) -> int:
        return parse_duration(self.window)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("info", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    transaction_id_header: str = Field(
        "X-Transaction-ID",
        description="Inbound correlation header reused as the transaction id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing.
    """

    app_env: str = APP_ENV
    store: StoreSettings = Field(default_factory=_build_store_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
