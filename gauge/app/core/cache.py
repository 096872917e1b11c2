"""
Cache gateway — TTL-qualified snapshots of expensive aggregates.

Provides:
    • ``CacheGateway``: ``get(max_age_ms)`` / ``set(data)`` over one key
    • In-process memory backend (default)
    • Async Redis backend with JSON serialisation
    • Backend failures degrade to a cache miss, never an exception

The cache is an optimisation only. Callers must compute the aggregate
themselves on a miss.

Usage:
    from gauge.app.core.cache import CacheGateway, build_cache_backend

    backend = build_cache_backend(settings)
    gateway = CacheGateway("statewide_rainfall", backend)

    await gateway.set(summary.to_dict())
    entry = await gateway.get(max_age_ms=600_000)
    if entry is not None:
        return entry.data
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from gauge.app.core.clock import Clock, to_epoch_ms, utc_now
from gauge.app.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload and the epoch-millisecond instant it was written."""
    data: Any
    timestamp: int

    def age_ms(self, now: datetime) -> int:
        return to_epoch_ms(now) - self.timestamp

    @property
    def written_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# Backends
# ═══════════════════════════════════════════════════════════════════════════

class CacheBackend:
    """Opaque key → (data, timestamp) store."""

    name = "abstract"

    async def load(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    async def store(self, key: str, entry: CacheEntry) -> bool:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryCacheBackend(CacheBackend):
    """Process-local store. Entries are replaced whole under a lock."""

    name = "memory"

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    async def load(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    async def store(self, key: str, entry: CacheEntry) -> bool:
        with self._lock:
            self._entries[key] = entry
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisCacheBackend(CacheBackend):
    """
    Async Redis store. Each key holds ``{"data": ..., "timestamp": ...}`` as JSON.

    The client is created lazily on first use; a connection problem logs a
    warning and behaves like a miss.
    """

    name = "redis"

    def __init__(self, url: str, prefix: str = "gauge", client: Any = None):
        self.url = url
        self.prefix = prefix
        self._client = client

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def _get_redis(self):
        if self._client is None:
            import redis.asyncio as aioredis
            self._client = aioredis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis cache configured: %s", self.url.split("@")[-1])
        return self._client

    async def load(self, key: str) -> Optional[CacheEntry]:
        try:
            client = await self._get_redis()
            raw = await client.get(self._key(key))
        except Exception as e:
            logger.warning("Cache GET error for %s: %s", key, e, extra={"cache_key": key})
            return None
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            return CacheEntry(data=payload["data"], timestamp=int(payload["timestamp"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding corrupt cache entry %s: %s", key, e, extra={"cache_key": key})
            return None

    async def store(self, key: str, entry: CacheEntry) -> bool:
        try:
            client = await self._get_redis()
            serialised = json.dumps({"data": entry.data, "timestamp": entry.timestamp}, default=str)
            await client.set(self._key(key), serialised)
            return True
        except Exception as e:
            logger.warning("Cache SET error for %s: %s", key, e, extra={"cache_key": key})
            return False

    async def ping(self) -> bool:
        try:
            client = await self._get_redis()
            return bool(await client.ping())
        except Exception as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")


def build_cache_backend(config: Settings) -> CacheBackend:
    """Pick the backend named by ``CACHE_BACKEND``; memory when Redis is not configured."""
    if config.CACHE_BACKEND == "redis":
        if config.REDIS_URL:
            return RedisCacheBackend(config.REDIS_URL, prefix=config.CACHE_KEY_PREFIX)
        logger.warning("CACHE_BACKEND=redis but REDIS_URL is unset, using memory cache")
    return MemoryCacheBackend()


# ═══════════════════════════════════════════════════════════════════════════
# Gateway
# ═══════════════════════════════════════════════════════════════════════════

class CacheGateway:
    """Read/write one aggregate snapshot with caller-supplied freshness."""

    def __init__(self, key: str, backend: CacheBackend, clock: Clock = utc_now):
        self.key = key
        self.backend = backend
        self._clock = clock

    async def get(self, max_age_ms: int) -> Optional[CacheEntry]:
        """Return the entry if it is at most ``max_age_ms`` old, else None."""
        entry = await self.backend.load(self.key)
        if entry is None:
            logger.debug("Cache MISS: %s", self.key, extra={"cache_key": self.key})
            return None
        if entry.age_ms(self._clock()) > max_age_ms:
            logger.debug("Cache EXPIRED: %s", self.key, extra={"cache_key": self.key})
            return None
        logger.debug("Cache HIT: %s", self.key, extra={"cache_key": self.key})
        return entry

    async def set(self, data: Any) -> CacheEntry:
        entry = CacheEntry(data=data, timestamp=to_epoch_ms(self._clock()))
        await self.backend.store(self.key, entry)
        return entry
