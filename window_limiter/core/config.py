"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


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
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment."""

    return RateLimitSettings()


def _build_store_settings() -> "StoreSettings":
    return StoreSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


class RateLimitSettings(BaseSettings):
    """Sliding-window limiter configuration.

    ``max_requests`` and ``window_seconds`` are fixed for the lifetime of a
    limiter instance; changing them rebuilds the process-wide limiter.
    """

    enabled: bool = Field(
        True,
        description="Enable rate limiting on routes using enforce_rate_limit",
    )
    max_requests: int = Field(
        5,
        description="Maximum interpolated request rate allowed per window",
        ge=1,
    )
    window_seconds: int = Field(
        10,
        description="Window size in seconds",
        ge=1,
    )
    weighting: Literal["standard", "literal"] = Field(
        "standard",
        description=(
            "Interpolation formula: 'standard' decays the previous window "
            "linearly, 'literal' uses (window_start - now) / window as the "
            "previous-window weight"
        ),
    )
    carry_forward_idle: bool = Field(
        False,
        description=(
            "Create an empty previous-window slot holding the current count "
            "instead of 0, so an idle identity is judged on recent traffic"
        ),
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    fail_open: bool = Field(
        False,
        description="Admit requests when the counter store is unreachable",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Shared counter store connection settings."""

    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Counter store backend ('memory' is per-process only)",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Per-call deadline applied to store round-trips",
        gt=0,
    )
    key_prefix: str | None = Field(
        "ratelimit",
        description="Namespace prepended to every counter key",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
