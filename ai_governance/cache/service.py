"""Generate-or-fetch cache for expensive AI outputs.

Wraps "compute an expensive value" operations in a get-or-generate pattern.
Cache keys are derived from a caller-supplied content key: SHA-256 of the
content, truncated to 16 hex characters, under a namespace prefix
("ai_classification:3f2a9c0d1e4b5a67"). Stored payloads are JSON envelopes
{"data": ..., "timestamp": <epoch ms>, "version": "1.0"} so a hit can report
how old the value is.

The cache is a pure optimisation. Store failures and corrupted payloads are
logged and treated as misses; only the generator's own exceptions reach
the caller. There is no single-flight de-duplication: concurrent misses on
the same key each run the generator and the last write wins.
"""

from __future__ import annotations

import hashlib
import inspect
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from ai_governance.cache.backend import CacheBackend
from ai_governance.errors import CacheSerializationError, StoreUnavailableError

log = structlog.get_logger(__name__)

T = TypeVar("T")

ENVELOPE_VERSION = "1.0"
DEFAULT_NAMESPACE = "ai_cache"
_DIGEST_LENGTH = 16
# Emit a metrics debug line every N requests per namespace
_METRICS_LOG_INTERVAL = 10


class CacheTTL:
    """Default TTLs (seconds) per kind of generated content."""

    RESEARCH_QUERY = 3600  # research content changes slowly
    EMAIL_TEMPLATE = 86400
    CLASSIFICATION = 604800  # classifications rarely change
    PROJECT_IDEAS = 7200
    ANALYSIS = 1800
    SYNTHESIS = 3600


@dataclass
class CacheMetrics:
    """In-process hit/miss counters for one namespace."""

    hits: int = 0
    misses: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        total = self.total_requests
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "total_requests": self.total_requests,
            "hit_rate": round(self.hit_rate, 4),
        }


@dataclass
class CachedResult(Generic[T]):
    """Value returned by the cache service plus its provenance."""

    value: T
    was_cached: bool
    age_seconds: int = 0
    cache_key: str | None = None


def build_cache_key(content_key: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Return "<namespace>:<16-hex-char sha256 digest of content_key>"."""
    digest = hashlib.sha256(content_key.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    return f"{namespace}:{digest}"


class CacheService:
    """Namespace-scoped get-or-generate cache over a CacheBackend.

    All public methods are async. Mutable state is limited to the
    in-process metrics counters, which are never persisted.
    """

    def __init__(
        self,
        backend: CacheBackend,
        *,
        default_ttl: int = CacheTTL.ANALYSIS,
        default_namespace: str = DEFAULT_NAMESPACE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._default_ttl = default_ttl
        self._default_namespace = default_namespace
        self._clock = clock
        self._metrics: dict[str, CacheMetrics] = {}

    # ------------------------------------------------------------------
    # Envelope encoding
    # ------------------------------------------------------------------

    def _resolve_ttl(self, ttl_seconds: int | None) -> int:
        if ttl_seconds is None:
            return self._default_ttl
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        return ttl_seconds

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _serialize(self, value: Any) -> str:
        try:
            return json.dumps(
                {"data": value, "timestamp": self._now_ms(), "version": ENVELOPE_VERSION}
            )
        except (TypeError, ValueError) as exc:
            raise CacheSerializationError(f"value is not serialisable: {exc}") from exc

    def _deserialize(self, payload: str) -> tuple[Any, int]:
        """Return (data, write timestamp in epoch ms)."""
        try:
            envelope = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise CacheSerializationError(f"payload is not valid JSON: {exc}") from exc
        if not isinstance(envelope, dict) or "data" not in envelope:
            raise CacheSerializationError("payload is not a cache envelope")
        timestamp = envelope.get("timestamp")
        if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
            timestamp = self._now_ms()
        return envelope["data"], int(timestamp)

    def _age_seconds(self, timestamp_ms: int) -> int:
        return max(0, (self._now_ms() - timestamp_ms) // 1000)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _record(self, namespace: str, hit: bool) -> None:
        metrics = self._metrics.setdefault(namespace, CacheMetrics())
        if hit:
            metrics.hits += 1
        else:
            metrics.misses += 1
        if metrics.total_requests % _METRICS_LOG_INTERVAL == 0:
            log.debug("cache.metrics", namespace=namespace, **metrics.to_dict())

    def metrics(self, namespace: str | None = None) -> CacheMetrics:
        """Return a snapshot of the counters for a namespace."""
        current = self._metrics.get(namespace or self._default_namespace, CacheMetrics())
        return CacheMetrics(hits=current.hits, misses=current.misses)

    def all_metrics(self) -> dict[str, CacheMetrics]:
        return {ns: CacheMetrics(m.hits, m.misses) for ns, m in self._metrics.items()}

    def clear_metrics(self) -> None:
        self._metrics.clear()
        log.debug("cache.metrics_cleared")

    # ------------------------------------------------------------------
    # Store access (degrades to miss / no-op)
    # ------------------------------------------------------------------

    async def _read(self, cache_key: str) -> tuple[Any, int] | None:
        try:
            payload = await self._backend.get(cache_key)
        except StoreUnavailableError as exc:
            log.warning("cache.read_failed", cache_key=cache_key, error=str(exc))
            return None
        except CacheSerializationError as exc:
            log.warning("cache.payload_corrupted", cache_key=cache_key, error=str(exc))
            return None
        if payload is None:
            return None
        try:
            return self._deserialize(payload)
        except CacheSerializationError as exc:
            log.warning("cache.payload_corrupted", cache_key=cache_key, error=str(exc))
            return None

    async def _write(self, cache_key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            payload = self._serialize(value)
            await self._backend.set(cache_key, payload, ttl_seconds)
        except CacheSerializationError as exc:
            log.warning("cache.serialize_failed", cache_key=cache_key, error=str(exc))
            return False
        except StoreUnavailableError as exc:
            log.warning("cache.write_failed", cache_key=cache_key, error=str(exc))
            return False
        log.debug("cache.stored", cache_key=cache_key, ttl=ttl_seconds, size=len(payload))
        return True

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def get_or_generate(
        self,
        key: str,
        ttl_seconds: int | None,
        generator: Callable[[], T | Awaitable[T]],
        *,
        namespace: str | None = None,
    ) -> CachedResult[T]:
        """Return the cached value for key, generating and storing it on a miss.

        The generator runs at most once per call and may be sync or async.
        Its exceptions propagate unchanged; nothing is cached in that case.

        Args:
            key: Content key summarising every input that affects the value
            ttl_seconds: Lifetime of a freshly generated value (None = default)
            generator: Produces the value on a miss (JSON-serialisable result)
            namespace: Key prefix, also the metrics bucket

        Returns:
            CachedResult with was_cached/age_seconds provenance

        Raises:
            ValueError: ttl_seconds is zero or negative
        """
        ns = namespace or self._default_namespace
        ttl = self._resolve_ttl(ttl_seconds)
        cache_key = build_cache_key(key, ns)

        cached = await self._read(cache_key)
        if cached is not None:
            data, timestamp = cached
            age = self._age_seconds(timestamp)
            self._record(ns, hit=True)
            log.debug("cache.hit", cache_key=cache_key, age=age, ttl=ttl)
            return CachedResult(value=data, was_cached=True, age_seconds=age, cache_key=cache_key)

        self._record(ns, hit=False)
        log.debug("cache.miss", cache_key=cache_key, ttl=ttl)

        value = generator()
        if inspect.isawaitable(value):
            value = await value

        await self._write(cache_key, value, ttl)
        return CachedResult(value=value, was_cached=False, age_seconds=0, cache_key=cache_key)

    async def get(self, key: str, *, namespace: str | None = None) -> CachedResult[Any] | None:
        """Read without generating. None on miss, corruption or store failure."""
        cache_key = build_cache_key(key, namespace or self._default_namespace)
        cached = await self._read(cache_key)
        if cached is None:
            return None
        data, timestamp = cached
        return CachedResult(
            value=data,
            was_cached=True,
            age_seconds=self._age_seconds(timestamp),
            cache_key=cache_key,
        )

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
        *,
        namespace: str | None = None,
    ) -> bool:
        """Write without a generator. Returns False if nothing was stored."""
        if self._backend.is_null:
            log.debug("cache.set_skipped", reason="no cache store configured")
            return False
        ttl = self._resolve_ttl(ttl_seconds)
        cache_key = build_cache_key(key, namespace or self._default_namespace)
        return await self._write(cache_key, value, ttl)

    async def invalidate(self, key: str, *, namespace: str | None = None) -> bool:
        """Delete the entry for key. Returns False if the store is unavailable."""
        if self._backend.is_null:
            return False
        cache_key = build_cache_key(key, namespace or self._default_namespace)
        try:
            await self._backend.delete(cache_key)
        except StoreUnavailableError as exc:
            log.warning("cache.invalidate_failed", cache_key=cache_key, error=str(exc))
            return False
        log.debug("cache.invalidated", cache_key=cache_key)
        return True

    async def invalidate_namespace(self, namespace: str) -> int:
        """Delete every entry under a namespace. Returns the deleted count."""
        try:
            deleted = await self._backend.delete_pattern(f"{namespace}:*")
        except StoreUnavailableError as exc:
            log.warning("cache.invalidate_namespace_failed", namespace=namespace, error=str(exc))
            return 0
        log.info("cache.namespace_invalidated", namespace=namespace, deleted=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Ping the store and report status plus aggregate metrics."""
        totals = CacheMetrics()
        for m in self._metrics.values():
            totals.hits += m.hits
            totals.misses += m.misses

        if self._backend.is_null:
            return {
                "status": "degraded",
                "message": "No cache store configured - caching disabled",
                "metrics": totals.to_dict(),
            }

        started = time.perf_counter()
        try:
            await self._backend.ping()
        except StoreUnavailableError as exc:
            return {
                "status": "unhealthy",
                "message": f"Cache health check failed: {exc}",
                "metrics": totals.to_dict(),
            }
        latency_ms = round((time.perf_counter() - started) * 1000, 2)

        return {
            "status": "healthy" if latency_ms < 100 else "degraded",
            "message": f"Cache store responsive in {latency_ms}ms",
            "latency_ms": latency_ms,
            "metrics": totals.to_dict(),
        }
