"""Redis-backed sorted-set store shared by every application process.

Each rate limit key is a Redis sorted set whose members are entry ids and
whose scores are insertion timestamps (epoch ms). Batched operations go out
through a non-transactional pipeline: one round trip, no MULTI/EXEC, so
concurrent checks on the same key may interleave.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError

from tenant_ratelimit.adapters.rate_limit.base import AbstractRateLimitStore
from tenant_ratelimit.core.errors import StoreUnavailableError
from tenant_ratelimit.core.logging import hash_identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisRateLimitStore(AbstractRateLimitStore):
    """Rate limit store over ``redis.asyncio``.

    Args:
        client: Connected ``redis.asyncio.Redis`` (or compatible) client. The
            store does not own connection settings; timeouts come from the
            client configuration.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def _call(self, operation: str, key: str, func: Callable[[], Awaitable[T]]) -> T:
        try:
            return await func()
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(
                code="rate_limit_store_unavailable",
                message=f"Rate limit store failed during {operation}",
                details={
                    "backend": "redis",
                    "context": {
                        "operation": operation,
                        "key_hash": hash_identifier(key),
                        "error_type": type(exc).__name__,
                    },
                },
            ) from exc

    async def purge_expired(self, key: str, older_than: int) -> int:
        return int(
            await self._call(
                "purge_expired",
                key,
                lambda: self._client.zremrangebyscore(key, "-inf", older_than),
            )
        )

    async def count(self, key: str) -> int:
        return int(await self._call("count", key, lambda: self._client.zcard(key)))

    async def add(self, key: str, entry_id: str, timestamp: int) -> None:
        await self._call("add", key, lambda: self._client.zadd(key, {entry_id: timestamp}))

    async def remove(self, key: str, entry_id: str) -> None:
        await self._call("remove", key, lambda: self._client.zrem(key, entry_id))

    async def expire(self, key: str, ttl_seconds: int) -> None:
        await self._call("expire", key, lambda: self._client.expire(key, ttl_seconds))

    async def delete(self, key: str) -> None:
        await self._call("delete", key, lambda: self._client.delete(key))

    async def record_attempt(
        self,
        key: str,
        *,
        older_than: int,
        entry_id: str,
        timestamp: int,
        ttl_seconds: int,
    ) -> int:
        async def _execute() -> list[Any]:
            async with self._client.pipeline(transaction=False) as pipe:
                pipe.zremrangebyscore(key, "-inf", older_than)
                pipe.zcard(key)
                pipe.zadd(key, {entry_id: timestamp})
                pipe.expire(key, ttl_seconds)
                return await pipe.execute()

        results = await self._call("record_attempt", key, _execute)
        return int(results[1])

    async def purge_and_count(self, key: str, older_than: int) -> int:
        async def _execute() -> list[Any]:
            async with self._client.pipeline(transaction=False) as pipe:
                pipe.zremrangebyscore(key, "-inf", older_than)
                pipe.zcard(key)
                return await pipe.execute()

        results = await self._call("purge_and_count", key, _execute)
        return int(results[1])

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except _STORE_ERRORS as exc:
            logger.warning(
                "rate_limit_store.ping_failed",
                extra={"backend": "redis", "error_type": type(exc).__name__},
            )
            return False

    async def close(self) -> None:
        await self._client.aclose()
