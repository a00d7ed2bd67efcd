"""
Content-addressed TTL cache for provider responses.

Two tiers:
- an in-process memory tier, checked first, bounded by max_entries
- an optional durable tier (CacheBackend), read on a memory miss and
  promoted into memory on hit

Durable-tier failures never fail the caller: a read failure is a miss and a
write failure is logged. Keys come from make_cache_key(provider, query), so
equivalent queries (case, whitespace, dict ordering) share one entry.
"""

import asyncio
import hashlib
import json
import re
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Protocol

from .config import config
from .logging import get_logger
from .models.cache import CacheEntry
from .utils import Clock, utc_now

logger = get_logger(__name__)

_WHITESPACE = re.compile(r'\s+')


def _normalise(value: Any) -> Any:
    if isinstance(value, str):
        return _WHITESPACE.sub(' ', value.strip().lower())
    if isinstance(value, dict):
        return {str(k): _normalise(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise(v) for v in value]
    return value


def make_cache_key(provider: str, query: Any) -> str:
    """
    Deterministic idempotency key for an outbound call.

    Strings are stripped, lowercased and whitespace-collapsed; dict keys are
    sorted by the canonical JSON encoding.
    """
    canonical = json.dumps(
        {'provider': _normalise(provider), 'query': _normalise(query)},
        sort_keys=True,
        separators=(',', ':'),
        default=str,
    )
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


class CacheBackend(Protocol):
    """Durable cache tier."""

    async def get(self, key: str) -> CacheEntry | None: ...

    async def set(self, entry: CacheEntry) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def purge_older_than(self, cutoff: datetime) -> int: ...


class PostgresCacheBackend:
    """CacheBackend over the result_cache table."""

    def __init__(self, postgres: Any):
        self.postgres = postgres

    async def get(self, key: str) -> CacheEntry | None:
        return await self.postgres.cache_get(key)

    async def set(self, entry: CacheEntry) -> None:
        await self.postgres.cache_set(entry)

    async def delete(self, key: str) -> None:
        await self.postgres.cache_delete(key)

    async def purge_older_than(self, cutoff: datetime) -> int:
        return await self.postgres.cache_purge(cutoff)


class ResultCache:
    """
    Two-tier TTL cache.

    Args:
        backend: Durable tier, or None for memory only
        ttl_seconds: Default entry lifetime
        max_entries: Memory tier bound; the entry expiring soonest is evicted
        retention_seconds: Durable entries older than this are purged
        purge_interval_seconds: Minimum spacing between durable purges
        clock: Returns the current time; injectable for tests
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        ttl_seconds: int | None = None,
        max_entries: int | None = None,
        retention_seconds: int | None = None,
        purge_interval_seconds: int | None = None,
        clock: Clock = utc_now,
    ):
        self.backend = backend
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.CACHE_TTL_SECONDS
        self.max_entries = max_entries if max_entries is not None else config.CACHE_MAX_ENTRIES
        self.retention_seconds = (
            retention_seconds if retention_seconds is not None else config.CACHE_RETENTION_SECONDS
        )
        self.purge_interval_seconds = (
            purge_interval_seconds
            if purge_interval_seconds is not None
            else config.CACHE_PURGE_INTERVAL_SECONDS
        )
        self.clock = clock

        self._memory: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self._last_purge_at: datetime | None = None

    def __len__(self) -> int:
        return len(self._memory)

    async def get(self, key: str) -> Any | None:
        """Return the cached payload, or None on miss or expiry."""
        now = self.clock()

        entry = self._memory.get(key)
        if entry is not None:
            if not entry.is_expired(now):
                return entry.payload
            del self._memory[key]

        if self.backend is None:
            return None

        try:
            entry = await self.backend.get(key)
        except Exception as e:
            logger.warning('cache.durable_read_failed', key=key[:12], error=str(e))
            return None

        if entry is None or entry.payload is None or entry.is_expired(now):
            return None

        self._store_memory(entry)
        return entry.payload

    async def set(self, key: str, payload: Any, ttl_seconds: int | None = None) -> None:
        """Write to both tiers. None payloads are never stored."""
        if payload is None:
            return

        now = self.clock()
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        entry = CacheEntry(key=key, payload=payload, ttl_at=now + timedelta(seconds=ttl), created_at=now)
        self._store_memory(entry)

        if self.backend is None:
            return

        await self._maybe_purge(now)
        try:
            await self.backend.set(entry)
        except Exception as e:
            logger.warning('cache.durable_write_failed', key=key[:12], error=str(e))

    async def remember(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl_seconds: int | None = None,
    ) -> Any:
        """
        Return the cached payload for key, computing it with producer on miss.

        Concurrent callers for the same key share one producer call. Producer
        errors propagate and nothing is cached.
        """
        cached = await self.get(key)
        if cached is not None:
            logger.debug('cache.hit', key=key[:12])
            return cached

        inflight = self._inflight.get(key)
        if inflight is not None:
            return await asyncio.shield(inflight)

        logger.debug('cache.miss', key=key[:12])
        future = asyncio.ensure_future(producer())
        self._inflight[key] = future
        try:
            payload = await future
        finally:
            self._inflight.pop(key, None)

        await self.set(key, payload, ttl_seconds)
        return payload

    async def invalidate(self, key: str) -> None:
        self._memory.pop(key, None)
        if self.backend is None:
            return
        try:
            await self.backend.delete(key)
        except Exception as e:
            logger.warning('cache.durable_delete_failed', key=key[:12], error=str(e))

    async def purge_expired(self) -> int:
        """
        Drop expired memory entries and durable entries past retention.

        Returns:
            Number of entries removed across both tiers
        """
        now = self.clock()
        expired = [k for k, entry in self._memory.items() if entry.is_expired(now)]
        for key in expired:
            del self._memory[key]

        removed = len(expired)
        self._last_purge_at = now
        if self.backend is not None:
            cutoff = now - timedelta(seconds=self.retention_seconds)
            try:
                removed += await self.backend.purge_older_than(cutoff)
            except Exception as e:
                logger.warning('cache.purge_failed', error=str(e))
        if removed:
            logger.info('cache.purged', removed=removed)
        return removed

    async def _maybe_purge(self, now: datetime) -> None:
        if (
            self._last_purge_at is not None
            and (now - self._last_purge_at).total_seconds() < self.purge_interval_seconds
        ):
            return
        await self.purge_expired()

    def _store_memory(self, entry: CacheEntry) -> None:
        self._memory[entry.key] = entry
        while len(self._memory) > self.max_entries:
            victim = min(self._memory.values(), key=lambda e: e.ttl_at)
            del self._memory[victim.key]
