"""In-memory sorted-set store (development and tests).

Notes:
- Per-process only: running multiple workers gives each worker its own
  counters, so limits are multiplied by the worker count.
- Thread-safe: uses a lock around shared state.
- Key TTLs are honoured lazily on access, mirroring Redis expiry semantics.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from tenant_ratelimit.adapters.rate_limit.base import AbstractRateLimitStore


@dataclass
class _SortedEntries:
    scores: dict[str, int] = field(default_factory=dict)
    expires_at: float | None = None


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Store keeping scored entries per key in process memory.

    Important:
        This store is per-process only. Use the Redis backend whenever the
        service runs with more than one worker.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source in seconds used for key TTL bookkeeping only.
                Entry scores are supplied by the caller.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries_by_key: dict[str, _SortedEntries] = {}

    def _live_entries(self, key: str) -> _SortedEntries | None:
        """Return the entries for key, dropping them if the key TTL elapsed."""
        entries = self._entries_by_key.get(key)
        if entries is None:
            return None
        if entries.expires_at is not None and self._clock() >= entries.expires_at:
            del self._entries_by_key[key]
            return None
        return entries

    def _purge_locked(self, key: str, older_than: int) -> int:
        entries = self._live_entries(key)
        if entries is None:
            return 0
        expired = [member for member, score in entries.scores.items() if score <= older_than]
        for member in expired:
            del entries.scores[member]
        if not entries.scores:
            del self._entries_by_key[key]
        return len(expired)

    def _count_locked(self, key: str) -> int:
        entries = self._live_entries(key)
        return len(entries.scores) if entries else 0

    def _add_locked(self, key: str, entry_id: str, timestamp: int) -> None:
        entries = self._live_entries(key)
        if entries is None:
            entries = _SortedEntries()
            self._entries_by_key[key] = entries
        entries.scores[entry_id] = timestamp

    def _expire_locked(self, key: str, ttl_seconds: int) -> None:
        entries = self._live_entries(key)
        if entries is not None:
            entries.expires_at = self._clock() + ttl_seconds

    async def purge_expired(self, key: str, older_than: int) -> int:
        with self._lock:
            return self._purge_locked(key, older_than)

    async def count(self, key: str) -> int:
        with self._lock:
            return self._count_locked(key)

    async def add(self, key: str, entry_id: str, timestamp: int) -> None:
        with self._lock:
            self._add_locked(key, entry_id, timestamp)

    async def remove(self, key: str, entry_id: str) -> None:
        with self._lock:
            entries = self._live_entries(key)
            if entries is None:
                return
            entries.scores.pop(entry_id, None)
            if not entries.scores:
                del self._entries_by_key[key]

    async def expire(self, key: str, ttl_seconds: int) -> None:
        with self._lock:
            self._expire_locked(key, ttl_seconds)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries_by_key.pop(key, None)

    async def record_attempt(
        self,
        key: str,
        *,
        older_than: int,
        entry_id: str,
        timestamp: int,
        ttl_seconds: int,
    ) -> int:
        # One lock acquisition plays the role of the Redis pipeline round trip.
        with self._lock:
            self._purge_locked(key, older_than)
            current = self._count_locked(key)
            self._add_locked(key, entry_id, timestamp)
            self._expire_locked(key, ttl_seconds)
            return current

    def ttl(self, key: str) -> float | None:
        """Seconds until key expiry, or None when the key is absent or persistent."""
        with self._lock:
            entries = self._live_entries(key)
            if entries is None or entries.expires_at is None:
                return None
            return entries.expires_at - self._clock()
