"""Cache backend implementations.

Defines the CacheBackend ABC and three concrete implementations:
- RedisCacheBackend: Production backend using Redis SETEX/GET
- InMemoryCacheBackend: Dict-based backend with TTL, for testing/dev
- NullCacheBackend: Stores nothing, used when no store is configured

Backends store opaque string payloads; envelope encoding belongs to the
CacheService. Redis failures are raised as StoreUnavailableError so the
service can log the degradation and fall back to "always miss".

The factory function get_cache_backend() selects the backend from settings
at construction time.
"""

from __future__ import annotations

import asyncio
import fnmatch
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog

from ai_governance.config import Settings, StoreBackend
from ai_governance.errors import CacheSerializationError, StoreUnavailableError
from ai_governance.infra.redis_client import REDIS_FAILURES, create_redis_client

log = structlog.get_logger(__name__)


class CacheBackend(ABC):
    """Abstract interface all cache backends must implement."""

    #: True for backends that never hold data (no store configured)
    is_null: bool = False

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored payload for key, or None if not found / expired."""

    @abstractmethod
    async def set(self, key: str, payload: str, ttl: int) -> None:
        """Store payload under key with TTL in seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key from cache (no-op if key does not exist)."""

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern. Returns deleted count."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreUnavailableError if the store cannot be reached."""

    @abstractmethod
    async def info(self) -> dict[str, Any]:
        """Return backend-specific info/stats dict."""

    async def close(self) -> None:
        """Release connections held by the backend."""


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisCacheBackend(CacheBackend):
    """Production cache backend backed by Redis.

    The client is created lazily on first use so import and construction
    never block. A pre-built client (shared with the counter store) may be
    injected instead.
    """

    def __init__(
        self,
        redis_url: str,
        *,
        token: str | None = None,
        client: Any = None,
    ) -> None:
        self._redis_url = redis_url
        self._token = token
        self._client: Any = client  # redis.asyncio.Redis

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = create_redis_client(self._redis_url, self._token)
        return self._client

    async def get(self, key: str) -> str | None:
        try:
            return await self._get_client().get(key)
        except UnicodeDecodeError as exc:
            raise CacheSerializationError(f"cache payload for {key} is not valid UTF-8: {exc}") from exc
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"cache get failed for {key}: {exc}") from exc

    async def set(self, key: str, payload: str, ttl: int) -> None:
        try:
            await self._get_client().setex(key, ttl, payload)
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"cache set failed for {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(key)
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"cache delete failed for {key}: {exc}") from exc

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern using SCAN + DEL."""
        try:
            client = self._get_client()
            deleted = 0
            async for key in client.scan_iter(match=pattern, count=100):
                await client.delete(key)
                deleted += 1
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"cache pattern delete failed for {pattern}: {exc}") from exc
        log.debug("cache.redis.pattern_deleted", pattern=pattern, deleted=deleted)
        return deleted

    async def ping(self) -> None:
        try:
            await self._get_client().ping()
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"cache ping failed: {exc}") from exc

    async def info(self) -> dict[str, Any]:
        try:
            client = self._get_client()
            redis_info = await client.info()
            dbsize = await client.dbsize()
        except REDIS_FAILURES as exc:
            return {
                "backend": "redis",
                "connected": False,
                "error": str(exc),
            }
        return {
            "backend": "redis",
            "connected": True,
            "used_memory_human": redis_info.get("used_memory_human", "unknown"),
            "keyspace_hits": redis_info.get("keyspace_hits", 0),
            "keyspace_misses": redis_info.get("keyspace_misses", 0),
            "db_size": dbsize,
        }

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except REDIS_FAILURES as exc:
                log.debug("cache.redis.close_failed", error=str(exc))
            self._client = None


# ---------------------------------------------------------------------------
# In-memory backend (testing / dev)
# ---------------------------------------------------------------------------


class _CacheEntry:
    """Single entry stored by InMemoryCacheBackend."""

    __slots__ = ("payload", "expires_at")

    def __init__(self, payload: str, expires_at: float) -> None:
        self.payload = payload
        self.expires_at = expires_at


class InMemoryCacheBackend(CacheBackend):
    """Dict-backed cache with TTL support.

    Safe for concurrent coroutines via asyncio.Lock. Suitable for testing
    and single-process dev environments. Does NOT persist across restarts.
    The clock is injectable so tests can advance time instead of sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()

    def _is_expired(self, entry: _CacheEntry) -> bool:
        return self._clock() >= entry.expires_at

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if self._is_expired(entry):
                del self._store[key]
                return None
            return entry.payload

    async def set(self, key: str, payload: str, ttl: int) -> None:
        async with self._lock:
            self._store[key] = _CacheEntry(payload, self._clock() + ttl)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern (fnmatch semantics)."""
        async with self._lock:
            to_delete = [k for k in self._store if fnmatch.fnmatch(k, pattern)]
            for k in to_delete:
                del self._store[k]
            return len(to_delete)

    async def ping(self) -> None:
        return None

    async def info(self) -> dict[str, Any]:
        async with self._lock:
            expired = [k for k, v in self._store.items() if self._is_expired(v)]
            for k in expired:
                del self._store[k]
            return {
                "backend": "memory",
                "connected": True,
                "total_keys": len(self._store),
            }


# ---------------------------------------------------------------------------
# Null backend (no store configured)
# ---------------------------------------------------------------------------


class NullCacheBackend(CacheBackend):
    """Backend that never stores anything: every read is a miss."""

    is_null = True

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, payload: str, ttl: int) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    async def delete_pattern(self, pattern: str) -> int:
        return 0

    async def ping(self) -> None:
        return None

    async def info(self) -> dict[str, Any]:
        return {"backend": "null", "connected": False}


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_cache_backend(settings: Settings, *, client: Any = None) -> CacheBackend:
    """Return the CacheBackend selected by settings.

    Missing Redis credentials degrade to NullCacheBackend with a warning
    rather than failing: caching is an optimisation, never a dependency.

    Args:
        settings: Governance settings
        client: Optional shared redis.asyncio client

    Returns:
        A CacheBackend implementation ready for use.
    """
    backend = settings.resolved_store_backend

    if backend == StoreBackend.REDIS:
        if settings.redis_url:
            log.info("cache.backend_selected", backend="redis")
            token = settings.redis_token.get_secret_value() if settings.redis_token else None
            return RedisCacheBackend(settings.redis_url, token=token, client=client)
        log.warning("cache.redis_unconfigured", reason="REDIS_URL not set - caching disabled")
        return NullCacheBackend()

    if backend == StoreBackend.MEMORY:
        log.info("cache.backend_selected", backend="memory")
        return InMemoryCacheBackend()

    log.warning("cache.backend_selected", backend="null", reason="no cache store configured")
    return NullCacheBackend()
