"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before anything imports the settings module.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("APP_RATE_LIMIT_STORE", "memory")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fakeredis import aioredis  # noqa: E402

from tenant_ratelimit.adapters.rate_limit import (  # noqa: E402
    InMemoryRateLimitStore,
    RedisRateLimitStore,
)


def make_fake_redis() -> aioredis.FakeRedis:
    """Isolated fake Redis; each call gets its own server."""
    return aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def memory_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def fake_redis() -> aioredis.FakeRedis:
    return make_fake_redis()


@pytest.fixture(params=["memory", "redis"])
def store(request):
    """Run store-agnostic tests against both backends."""
    if request.param == "memory":
        return InMemoryRateLimitStore()
    return RedisRateLimitStore(make_fake_redis())
