"""Shared counter store for daily spend tracking.

The cost guard keeps its DailySpendCounters in a key-value store with an
atomic increment-by-float. Every mutation is a single INCRBYFLOAT (plus an
EXPIRE refresh in the same pipeline), so concurrent writers never corrupt a
counter even without higher-level locking.

Implementations:
- RedisCounterStore: production, shared across processes
- InMemoryCounterStore: single process, for tests and local dev
- NullCounterStore: selected when no store is configured; reads as zero,
  writes are dropped
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog

from ai_governance.config import Settings, StoreBackend
from ai_governance.errors import StoreUnavailableError
from ai_governance.infra.redis_client import REDIS_FAILURES, create_redis_client

log = structlog.get_logger(__name__)


class CounterStore(ABC):
    """Atomic float counters with expiry."""

    #: True for stores that never hold data (no store configured)
    is_null: bool = False

    @abstractmethod
    async def get_float(self, key: str) -> float | None:
        """Return the counter value, or None if the key does not exist."""

    @abstractmethod
    async def incr_by_float(self, key: str, amount: float, ttl: int) -> float:
        """Atomically add amount to key, refresh its expiry, return the new value."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns how many existed."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreUnavailableError if the store cannot be reached."""

    async def close(self) -> None:
        """Release connections held by the store."""


# ---------------------------------------------------------------------------
# Redis store
# ---------------------------------------------------------------------------


class RedisCounterStore(CounterStore):
    """Counters kept in Redis via pipelined INCRBYFLOAT + EXPIRE."""

    def __init__(
        self,
        redis_url: str,
        *,
        token: str | None = None,
        client: Any = None,
    ) -> None:
        self._redis_url = redis_url
        self._token = token
        self._client: Any = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = create_redis_client(self._redis_url, self._token)
        return self._client

    async def get_float(self, key: str) -> float | None:
        try:
            raw = await self._get_client().get(key)
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"counter read failed for {key}: {exc}") from exc
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError) as exc:
            raise StoreUnavailableError(f"counter {key} holds non-numeric value {raw!r}") from exc

    async def incr_by_float(self, key: str, amount: float, ttl: int) -> float:
        try:
            pipe = self._get_client().pipeline(transaction=True)
            pipe.incrbyfloat(key, amount)
            pipe.expire(key, ttl)
            new_value, _ = await pipe.execute()
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"counter increment failed for {key}: {exc}") from exc
        return float(new_value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._get_client().delete(*keys))
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"counter delete failed: {exc}") from exc

    async def ping(self) -> None:
        try:
            await self._get_client().ping()
        except REDIS_FAILURES as exc:
            raise StoreUnavailableError(f"counter store ping failed: {exc}") from exc

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except REDIS_FAILURES as exc:
                log.debug("counter_store.close_failed", error=str(exc))
            self._client = None


# ---------------------------------------------------------------------------
# In-memory store (testing / dev)
# ---------------------------------------------------------------------------


class InMemoryCounterStore(CounterStore):
    """Dict-backed counters with expiry, guarded by an asyncio.Lock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: dict[str, tuple[float, float]] = {}  # key -> (value, expires_at)
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> float | None:
        item = self._values.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._values[key]
            return None
        return value

    async def get_float(self, key: str) -> float | None:
        async with self._lock:
            return self._live(key)

    async def incr_by_float(self, key: str, amount: float, ttl: int) -> float:
        async with self._lock:
            new_value = (self._live(key) or 0.0) + amount
            self._values[key] = (new_value, self._clock() + ttl)
            return new_value

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            deleted = 0
            for key in keys:
                if self._live(key) is not None:
                    deleted += 1
                self._values.pop(key, None)
            return deleted

    async def ping(self) -> None:
        return None

    def keys(self) -> list[str]:
        """Live keys, for inspection in tests."""
        return [k for k in list(self._values) if self._live(k) is not None]


# ---------------------------------------------------------------------------
# Null store (no store configured)
# ---------------------------------------------------------------------------


class NullCounterStore(CounterStore):
    """Store that reads as zero and drops writes."""

    is_null = True

    async def get_float(self, key: str) -> float | None:
        return None

    async def incr_by_float(self, key: str, amount: float, ttl: int) -> float:
        return 0.0

    async def delete(self, *keys: str) -> int:
        return 0

    async def ping(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_counter_store(settings: Settings, *, client: Any = None) -> CounterStore:
    """Return the CounterStore selected by settings.

    Missing Redis credentials degrade to NullCounterStore with a warning:
    cost tracking is then disabled and the cost guard admits every call.
    """
    backend = settings.resolved_store_backend

    if backend == StoreBackend.REDIS:
        if settings.redis_url:
            log.info("counter_store.selected", backend="redis")
            token = settings.redis_token.get_secret_value() if settings.redis_token else None
            return RedisCounterStore(settings.redis_url, token=token, client=client)
        log.warning(
            "counter_store.redis_unconfigured",
            reason="REDIS_URL not set - cost tracking disabled",
        )
        return NullCounterStore()

    if backend == StoreBackend.MEMORY:
        log.info("counter_store.selected", backend="memory")
        return InMemoryCounterStore()

    log.warning(
        "counter_store.selected",
        backend="null",
        reason="no counter store configured - cost tracking disabled",
    )
    return NullCounterStore()
