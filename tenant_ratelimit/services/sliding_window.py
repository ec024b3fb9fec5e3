"""Sliding window log rate limiter over a shared sorted-set store.

Every attempt records one timestamped entry under the scope key. Admission is
decided by counting the entries left in the trailing window *before* the
attempt's own entry is inserted:

1. purge entries scored at or before ``now - window_ms``
2. count what remains
3. speculatively insert the attempt and refresh the key TTL
4. if the count was already at the limit, remove the attempt again

Steps 1-3 travel as one non-transactional batch. Concurrent processes racing
on the same key can read the same count and all be admitted, so bursts may
overshoot the limit by the number of in-flight checks. Strict admission
would need a server-side script; this limiter keeps the cheaper batch.

The limiter fails open: if the store errors or times out, the request is
allowed and the failure is logged.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from tenant_ratelimit.adapters.rate_limit.base import AbstractRateLimitStore
from tenant_ratelimit.core.logging import hash_identifier
from tenant_ratelimit.services.policy import RateLimitConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the attempt is admitted.
        remaining: Attempts left in the current window (never negative).
        reset_time: Epoch milliseconds at which the window ends for this attempt.
        total_hits: Entries counted in the window, including this attempt when admitted.
    """

    allowed: bool
    remaining: int
    reset_time: int
    total_hits: int


def epoch_ms() -> int:
    return int(time.time() * 1000)


def new_entry_id(now: int) -> str:
    """Return a member id unique across processes hitting the same key."""
    return f"{now}-{uuid.uuid4().hex[:12]}"


class SlidingWindowLimiter:
    """Decide admission for scope keys using a sliding window log.

    The limiter itself is stateless; a single instance can be shared by all
    requests in a process, and any number of processes can share the store.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore,
        *,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared sorted-set store holding the entries.
            clock: Time source returning epoch milliseconds.
        """
        self._store = store
        self._clock = clock

    @property
    def store(self) -> AbstractRateLimitStore:
        return self._store

    async def check_and_consume(
        self,
        identifier: str,
        config: RateLimitConfig,
        now: int | None = None,
    ) -> RateLimitResult:
        """Record an attempt for ``identifier`` and decide whether it is allowed.

        Denied attempts are rolled back so a client's own retries never keep
        its window full.

        Args:
            identifier: Scope identifier (tenant id, user id, IP, email).
            config: Window parameters of the scope.
            now: Epoch milliseconds of the attempt; defaults to the clock.

        Returns:
            RateLimitResult for this attempt. Never raises for store failures.
        """
        now = self._clock() if now is None else now
        key = config.key_for(identifier)
        entry_id = new_entry_id(now)

        try:
            current = await self._store.record_attempt(
                key,
                older_than=now - config.window_ms,
                entry_id=entry_id,
                timestamp=now,
                ttl_seconds=config.ttl_seconds,
            )
            allowed = current < config.max_requests
            if not allowed:
                await self._store.remove(key, entry_id)
        except Exception as exc:
            logger.error(
                "rate_limit.store_error",
                extra={
                    "operation": "check_and_consume",
                    "key_hash": hash_identifier(key),
                    "key_prefix": config.key_prefix,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests - 1,
                reset_time=now + config.window_ms,
                total_hits=1,
            )

        consumed = 1 if allowed else 0
        result = RateLimitResult(
            allowed=allowed,
            remaining=max(0, config.max_requests - current - consumed),
            reset_time=now + config.window_ms,
            total_hits=current + consumed,
        )

        logger.debug(
            "rate_limit.checked",
            extra={
                "key_hash": hash_identifier(key),
                "key_prefix": config.key_prefix,
                "count": current,
                "limit": config.max_requests,
                "allowed": allowed,
            },
        )
        return result

    async def status(
        self,
        identifier: str,
        config: RateLimitConfig,
        now: int | None = None,
    ) -> RateLimitResult:
        """Report the current window usage without recording an attempt.

        On store failure the fallback reports ``total_hits=0``: unlike
        ``check_and_consume`` nothing was recorded, so no hit is invented.
        """
        now = self._clock() if now is None else now
        key = config.key_for(identifier)

        try:
            current = await self._store.purge_and_count(key, now - config.window_ms)
        except Exception as exc:
            logger.error(
                "rate_limit.store_error",
                extra={
                    "operation": "status",
                    "key_hash": hash_identifier(key),
                    "key_prefix": config.key_prefix,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return RateLimitResult(
                allowed=True,
                remaining=config.max_requests - 1,
                reset_time=now + config.window_ms,
                total_hits=0,
            )

        return RateLimitResult(
            allowed=current < config.max_requests,
            remaining=max(0, config.max_requests - current),
            reset_time=now + config.window_ms,
            total_hits=current,
        )

    async def reset(self, identifier: str, config: RateLimitConfig) -> None:
        """Forget every entry for ``identifier``. Best effort; never raises."""
        key = config.key_for(identifier)
        try:
            await self._store.delete(key)
        except Exception as exc:
            logger.error(
                "rate_limit.store_error",
                extra={
                    "operation": "reset",
                    "key_hash": hash_identifier(key),
                    "key_prefix": config.key_prefix,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return

        logger.info(
            "rate_limit.reset",
            extra={"key_hash": hash_identifier(key), "key_prefix": config.key_prefix},
        )
