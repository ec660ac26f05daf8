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


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return RateLimitSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    See _build_rate_limit_settings() for rationale about the type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


class RateLimitSettings(BaseSettings):
    """Admission-control policy configuration.

    Only the fields of the selected algorithm are used. Positivity is
    enforced again when the policy objects are built, so a bad value fails
    at startup either way.
    """

    enabled: bool = Field(
        True,
        description="Enable per-client rate limiting middleware",
    )
    algorithm: Literal["fixed_window", "token_bucket"] = Field(
        "fixed_window",
        description="Admission algorithm: fixed_window or token_bucket",
    )
    max_requests: int = Field(
        3,
        description="Fixed window: maximum requests per window (per client)",
    )
    window_size_ms: int = Field(
        1000,
        description="Fixed window: window size in milliseconds",
    )
    capacity: float = Field(
        3.0,
        description="Token bucket: maximum tokens a bucket can hold",
    )
    refill_rate_per_second: float = Field(
        3.0,
        description="Token bucket: tokens added per second",
    )
    cost_per_request: float = Field(
        1.0,
        description="Token bucket: tokens consumed by one request",
    )
    idle_eviction_ms: int = Field(
        60_000,
        description="Token bucket: idle time after which a bucket is evicted",
    )
    cleanup_interval_seconds: float = Field(
        10.0,
        description="Interval of the background cleanup task (0 disables it)",
        ge=0,
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as the client key",
    )
    exempt_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths that bypass rate limiting",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log format: json (machine-friendly) or plain",
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    title: str = Field(
        "Rate Limiter API",
        description="Title reported in the OpenAPI schema",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
