"""Generate-or-fetch caching for AI outputs.

Public API:
    CacheBackend          - Abstract base for all backends
    RedisCacheBackend     - Redis-backed production cache
    InMemoryCacheBackend  - Dict-backed cache for dev/testing
    NullCacheBackend      - No-op backend when no store is configured
    get_cache_backend     - Factory: selects backend from settings

    CacheService          - get_or_generate / get / set / invalidate / metrics
    CachedResult          - Value plus was_cached / age_seconds provenance
    CacheMetrics          - Per-namespace hit/miss counters
    CacheTTL              - Default TTLs per content type
    build_cache_key       - "<namespace>:<16-hex digest>" key derivation
"""

from __future__ import annotations

from ai_governance.cache.backend import (
    CacheBackend,
    InMemoryCacheBackend,
    NullCacheBackend,
    RedisCacheBackend,
    get_cache_backend,
)
from ai_governance.cache.service import (
    CachedResult,
    CacheMetrics,
    CacheService,
    CacheTTL,
    build_cache_key,
)

__all__ = [
    "CacheBackend",
    "RedisCacheBackend",
    "InMemoryCacheBackend",
    "NullCacheBackend",
    "get_cache_backend",
    "CacheService",
    "CachedResult",
    "CacheMetrics",
    "CacheTTL",
    "build_cache_key",
]
