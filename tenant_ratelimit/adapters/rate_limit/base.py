"""Rate limit store interface.

The limiter depends on this abstraction, not on a concrete client, so the
shared store (Redis in production) can be swapped for the in-memory backend
in development and tests.

A store holds one time-sorted set per key. Every member is an opaque entry id
scored by its insertion timestamp in epoch milliseconds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractRateLimitStore(ABC):
    """Interface over a key-addressed sorted structure with network semantics.

    Every method may raise ``StoreUnavailableError`` when the backing store
    cannot be reached or times out.
    """

    @abstractmethod
    async def purge_expired(self, key: str, older_than: int) -> int:
        """Remove entries scored at or before ``older_than``.

        Returns:
            Number of entries removed.
        """
        raise NotImplementedError

    @abstractmethod
    async def count(self, key: str) -> int:
        """Return the number of entries held under ``key``."""
        raise NotImplementedError

    @abstractmethod
    async def add(self, key: str, entry_id: str, timestamp: int) -> None:
        """Insert ``entry_id`` scored by ``timestamp``."""
        raise NotImplementedError

    @abstractmethod
    async def remove(self, key: str, entry_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> None:
        """Set the time-to-live of the whole key."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def record_attempt(
        self,
        key: str,
        *,
        older_than: int,
        entry_id: str,
        timestamp: int,
        ttl_seconds: int,
    ) -> int:
        """Purge, count, insert and refresh the TTL for one attempt.

        Backends should send the four commands as a single round trip. The
        batch is not a transaction: concurrent callers on the same key can
        observe the same count and both insert.

        Returns:
            The entry count after purging and before inserting ``entry_id``.
        """

        await self.purge_expired(key, older_than)
        current = await self.count(key)
        await self.add(key, entry_id, timestamp)
        await self.expire(key, ttl_seconds)
        return current

    async def purge_and_count(self, key: str, older_than: int) -> int:
        """Purge expired entries and return how many remain, without inserting."""

        await self.purge_expired(key, older_than)
        return await self.count(key)

    async def ping(self) -> bool:
        """Return True when the store answers."""
        return True

    async def close(self) -> None:
        """Release any connections held by the store."""
        return None
