"""Factory pattern for creating rate limit store instances."""

from __future__ import annotations

import logging

from redis.asyncio import Redis

from tenant_ratelimit.adapters.rate_limit.base import AbstractRateLimitStore
from tenant_ratelimit.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from tenant_ratelimit.adapters.rate_limit.redis_store import RedisRateLimitStore
from tenant_ratelimit.core.config import Settings, settings as default_settings
from tenant_ratelimit.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def build_redis_client(url: str, *, socket_timeout: float, connect_timeout: float) -> Redis:
    """Create a lazily-connecting asyncio Redis client."""
    return Redis.from_url(
        url,
        socket_timeout=socket_timeout,
        socket_connect_timeout=connect_timeout,
        decode_responses=True,
    )


def create_rate_limit_store(settings: Settings | None = None) -> AbstractRateLimitStore:
    """Instantiate the counter store selected by ``APP_RATE_LIMIT_STORE``.

    Args:
        settings: Settings container; defaults to the global settings.

    Returns:
        AbstractRateLimitStore: Configured store instance.

    Raises:
        ValidationAppError: If the configured backend is unknown.
    """
    cfg = settings or default_settings
    backend = cfg.app.rate_limit_store.lower()

    if backend == "redis":
        client = build_redis_client(
            cfg.redis.url,
            socket_timeout=cfg.redis.socket_timeout_seconds,
            connect_timeout=cfg.redis.socket_connect_timeout_seconds,
        )
        logger.info("rate_limit_store.created", extra={"backend": "redis"})
        return RedisRateLimitStore(client)

    if backend == "memory":
        logger.warning(
            "rate_limit_store.created",
            extra={"backend": "memory", "note": "per-process counters"},
        )
        return InMemoryRateLimitStore()

    raise ValidationAppError(
        code="rate_limit_unknown_store",
        message=f"Unknown rate limit store: '{backend}'. Supported stores: redis, memory",
    )
