"""Rate limit store adapters.

This package hides the shared counter store behind a small abstraction so the
limiter can run against Redis in production and an in-memory store locally.
"""

from tenant_ratelimit.adapters.rate_limit.base import AbstractRateLimitStore
from tenant_ratelimit.adapters.rate_limit.factory import create_rate_limit_store
from tenant_ratelimit.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from tenant_ratelimit.adapters.rate_limit.redis_store import RedisRateLimitStore

__all__ = [
    "AbstractRateLimitStore",
    "InMemoryRateLimitStore",
    "RedisRateLimitStore",
    "create_rate_limit_store",
]
