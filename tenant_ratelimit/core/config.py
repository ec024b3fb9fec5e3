"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Per-scope rate limits follow the ``<SCOPE>_RATE_LIMIT_WINDOW_MS`` /
``<SCOPE>_RATE_LIMIT_MAX_REQUESTS`` naming convention and fall back to the
documented defaults when absent.
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


# Nested BaseSettings don't inherit env_file, so populate os.environ first.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    rate_limit_enabled: bool = Field(
        True,
        description="Enforce rate limits on guarded operations",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on guarded responses",
    )
    rate_limit_limit_header_source: Literal["total_hits", "max_requests"] = Field(
        "total_hits",
        description=(
            "Value reported in X-RateLimit-Limit: the live hit counter "
            "(historical behaviour) or the configured ceiling"
        ),
    )
    rate_limit_store: Literal["redis", "memory"] = Field(
        "redis",
        description="Counter store backend shared by all processes",
    )
    api_key_required: bool = Field(
        True,
        description="Whether rate limit administration endpoints require an API key",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for administration",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection settings for the shared counter store."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Per-command socket timeout; timeouts fail open",
        gt=0,
    )
    socket_connect_timeout_seconds: float = Field(
        2.0,
        description="Connection establishment timeout",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate log file after this size (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-scope sliding window limits.

    Field names map directly to environment variables, e.g.
    ``INVITATION_EMAIL_RATE_LIMIT_MAX_REQUESTS``.
    """

    tenant_creation_rate_limit_window_ms: int = Field(HOUR_MS, gt=0)
    tenant_creation_rate_limit_max_requests: int = Field(3, ge=1)

    tenant_joining_rate_limit_window_ms: int = Field(HOUR_MS, gt=0)
    tenant_joining_rate_limit_max_requests: int = Field(10, ge=1)

    invitation_acceptance_rate_limit_window_ms: int = Field(HOUR_MS, gt=0)
    invitation_acceptance_rate_limit_max_requests: int = Field(10, ge=1)

    invitation_tenant_rate_limit_window_ms: int = Field(DAY_MS, gt=0)
    invitation_tenant_rate_limit_max_requests: int = Field(100, ge=1)

    invitation_admin_rate_limit_window_ms: int = Field(HOUR_MS, gt=0)
    invitation_admin_rate_limit_max_requests: int = Field(20, ge=1)

    invitation_ip_rate_limit_window_ms: int = Field(HOUR_MS, gt=0)
    invitation_ip_rate_limit_max_requests: int = Field(10, ge=1)

    invitation_email_rate_limit_window_ms: int = Field(DAY_MS, gt=0)
    invitation_email_rate_limit_max_requests: int = Field(3, ge=1)

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    def limits_for(self, scope_name: str) -> tuple[int, int] | None:
        """Return ``(window_ms, max_requests)`` for a scope, if configured."""

        window = getattr(self, f"{scope_name}_rate_limit_window_ms", None)
        max_requests = getattr(self, f"{scope_name}_rate_limit_max_requests", None)
        if window is None or max_requests is None:
            return None
        return window, max_requests


class Settings(BaseSettings):
    """Main application settings container.

    Nested settings are created via default_factory so env loading works
    for each domain-specific group.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
