"""
Caching for external vocabulary lookups.

Two tiers: a bounded, time-expiring in-process ``TTLCache`` that every
resolver/engine instance receives by injection, and an optional Redis
``CacheService`` shared between worker processes.
"""

import hashlib
import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from oncosafe.config import get_settings
from oncosafe.core.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


class TTLCache:
    """
    Bounded in-memory cache with per-entry expiry and LRU eviction.

    All mutations happen under a lock, so one instance can be shared by
    concurrent requests and worker threads.
    """

    def __init__(
        self,
        max_entries: int = 5000,
        ttl: float = 3600,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return a live entry or ``default``; expired entries are dropped."""
        with self._lock:
            entry = self._entries.get(key, _MISSING)
            if entry is _MISSING:
                self.misses += 1
                return default

            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                self.misses += 1
                return default

            self._entries.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value, evicting the least recently used entries when full."""
        expires_at = self._clock() + (ttl if ttl is not None else self.ttl)
        with self._lock:
            self._entries[key] = (expires_at, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Lookup cache evicted: {evicted}")

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl,
                "hits": self.hits,
                "misses": self.misses,
            }


class CacheService:
    """Redis-based shared cache with connection pooling."""

    def __init__(self) -> None:
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        settings = get_settings()
        if not settings.REDIS_ENABLED:
            logger.info("Redis disabled by configuration")
            return
        try:
            self._pool = ConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=50,
                decode_responses=True
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            logger.info("Connected to Redis", extra={"url": settings.REDIS_URL})
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}. Shared caching disabled.")
            self._client = None

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None
        logger.info("Disconnected from Redis")

    @property
    def is_connected(self) -> bool:
        """Check if Redis is connected."""
        return self._client is not None

    @staticmethod
    def _generate_key(prefix: str, *args: Any) -> str:
        """Generate a cache key from prefix and arguments."""
        key_data = json.dumps(args, sort_keys=True, default=str)
        hash_val = hashlib.md5(key_data.encode()).hexdigest()[:12]
        return f"oncosafe:{prefix}:{hash_val}"

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a value from cache.

        Args:
            key: Cache key.

        Returns:
            Cached value or None if not found.
        """
        if not self._client:
            return None

        try:
            value = await self._client.get(key)
            if value:
                logger.debug(f"Cache hit: {key}")
                return json.loads(value)
            logger.debug(f"Cache miss: {key}")
            return None
        except Exception as e:
            logger.error(f"Cache get error: {e}", extra={"key": key})
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None
    ) -> bool:
        """
        Set a value in cache.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl: Time to live in seconds.

        Returns:
            True if successful, False otherwise.
        """
        if not self._client:
            return False

        try:
            settings = get_settings()
            ttl = ttl or settings.LOOKUP_CACHE_TTL
            serialized = json.dumps(value, default=str)
            await self._client.setex(key, ttl, serialized)
            logger.debug(f"Cache set: {key}", extra={"ttl": ttl})
            return True
        except Exception as e:
            logger.error(f"Cache set error: {e}", extra={"key": key})
            return False

    # Convenience methods for vocabulary lookups
    async def get_identity(self, identifier: str) -> Optional[str]:
        """Get a cached canonical identifier."""
        return await self.get(self._generate_key("identity", identifier))

    async def set_identity(self, identifier: str, canonical_id: str) -> bool:
        """Cache a canonical identifier."""
        key = self._generate_key("identity", identifier)
        return await self.set(key, canonical_id)

    async def get_interactions(self, rxcui: str) -> Optional[list]:
        """Get cached external interaction findings for one drug."""
        return await self.get(self._generate_key("interactions", rxcui))

    async def set_interactions(self, rxcui: str, findings: list) -> bool:
        """Cache external interaction findings for one drug."""
        key = self._generate_key("interactions", rxcui)
        return await self.set(key, findings)


# Singleton instances
_cache_service: Optional[CacheService] = None
_lookup_cache: Optional[TTLCache] = None


async def get_cache_service() -> CacheService:
    """Get the global Redis cache service instance."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
        await _cache_service.connect()
    return _cache_service


async def close_cache_service() -> None:
    """Close the global cache service."""
    global _cache_service
    if _cache_service is not None:
        await _cache_service.disconnect()
        _cache_service = None


def get_lookup_cache() -> TTLCache:
    """Get the process-wide in-memory lookup cache."""
    global _lookup_cache
    if _lookup_cache is None:
        settings = get_settings()
        _lookup_cache = TTLCache(
            max_entries=settings.LOOKUP_CACHE_MAX_ENTRIES,
            ttl=settings.LOOKUP_CACHE_TTL
        )
    return _lookup_cache
