"""Tests for cache backends and the backend factory.

Covers:
- InMemoryCacheBackend: get/set/TTL/delete/pattern delete/info
- RedisCacheBackend: delegation to a mocked redis client, failure wrapping
- NullCacheBackend: never stores anything
- get_cache_backend factory: selects backend from settings
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ai_governance.cache.backend import (
    InMemoryCacheBackend,
    NullCacheBackend,
    RedisCacheBackend,
    get_cache_backend,
)
from ai_governance.config import Settings, StoreBackend
from ai_governance.errors import CacheSerializationError, StoreUnavailableError
from tests.conftest import FakeClock


# ---------------------------------------------------------------------------
# InMemoryCacheBackend tests
# ---------------------------------------------------------------------------


class TestInMemoryCacheBackend:
    """Unit tests for InMemoryCacheBackend."""

    @pytest.fixture
    def backend(self, clock: FakeClock) -> InMemoryCacheBackend:
        return InMemoryCacheBackend(clock=clock)

    @pytest.mark.asyncio
    async def test_set_and_get_returns_payload(self, backend):
        """set() followed by get() returns the stored payload."""
        await backend.set("key1", '{"foo": "bar"}', ttl=60)
        assert await backend.get("key1") == '{"foo": "bar"}'

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, backend):
        assert await backend.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_expired_entry_not_returned(self, backend, clock):
        """Entries past their TTL return None and are pruned from the store."""
        await backend.set("stale", "old", ttl=10)
        clock.advance(10)
        assert await backend.get("stale") is None
        assert "stale" not in backend._store

    @pytest.mark.asyncio
    async def test_entry_alive_before_ttl(self, backend, clock):
        await backend.set("fresh", "value", ttl=10)
        clock.advance(9.9)
        assert await backend.get("fresh") == "value"

    @pytest.mark.asyncio
    async def test_set_overwrites_wholesale(self, backend):
        await backend.set("k", "first", ttl=60)
        await backend.set("k", "second", ttl=60)
        assert await backend.get("k") == "second"

    @pytest.mark.asyncio
    async def test_delete_removes_key(self, backend):
        await backend.set("to_delete", "x", ttl=60)
        await backend.delete("to_delete")
        assert await backend.get("to_delete") is None

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_noop(self, backend):
        await backend.delete("never_set")

    @pytest.mark.asyncio
    async def test_delete_pattern_matches_namespace(self, backend):
        """delete_pattern() removes only keys matching the glob."""
        await backend.set("ai_classification:aaa", "1", ttl=60)
        await backend.set("ai_classification:bbb", "2", ttl=60)
        await backend.set("ai_research:ccc", "3", ttl=60)

        deleted = await backend.delete_pattern("ai_classification:*")

        assert deleted == 2
        assert await backend.get("ai_research:ccc") == "3"

    @pytest.mark.asyncio
    async def test_info_counts_live_keys(self, backend, clock):
        await backend.set("a", "1", ttl=5)
        await backend.set("b", "2", ttl=100)
        clock.advance(6)

        info = await backend.info()

        assert info["backend"] == "memory"
        assert info["total_keys"] == 1

    @pytest.mark.asyncio
    async def test_ping_succeeds(self, backend):
        await backend.ping()


# ---------------------------------------------------------------------------
# RedisCacheBackend tests (mocked client)
# ---------------------------------------------------------------------------


class TestRedisCacheBackendMocked:
    """Tests for RedisCacheBackend delegating to a mocked redis client."""

    @pytest.fixture
    def mock_redis(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock()
        client.delete = AsyncMock()
        client.ping = AsyncMock(return_value=True)
        client.scan_iter = MagicMock(return_value=self._async_gen([]))
        client.info = AsyncMock(return_value={
            "used_memory_human": "1.5M",
            "keyspace_hits": 50,
            "keyspace_misses": 10,
        })
        client.dbsize = AsyncMock(return_value=5)
        client.aclose = AsyncMock()
        return client

    @staticmethod
    async def _async_gen(items):
        for item in items:
            yield item

    @pytest.fixture
    def backend(self, mock_redis):
        b = RedisCacheBackend("redis://localhost:6379/0")
        b._client = mock_redis
        return b

    @pytest.mark.asyncio
    async def test_set_calls_setex(self, backend, mock_redis):
        """set() calls redis setex with key, ttl and payload."""
        await backend.set("mykey", '{"data": 1}', ttl=120)
        mock_redis.setex.assert_awaited_once_with("mykey", 120, '{"data": 1}')

    @pytest.mark.asyncio
    async def test_get_returns_payload(self, backend, mock_redis):
        mock_redis.get.return_value = '{"data": 1}'
        assert await backend.get("testkey") == '{"data": 1}'
        mock_redis.get.assert_awaited_once_with("testkey")

    @pytest.mark.asyncio
    async def test_get_returns_none_on_miss(self, backend, mock_redis):
        mock_redis.get.return_value = None
        assert await backend.get("missing") is None

    @pytest.mark.asyncio
    async def test_connection_error_raises_store_unavailable(self, backend, mock_redis):
        """Redis failures surface as StoreUnavailableError, not redis exceptions."""
        mock_redis.get.side_effect = RedisConnectionError("connection refused")
        with pytest.raises(StoreUnavailableError):
            await backend.get("key")

    @pytest.mark.asyncio
    async def test_undecodable_payload_raises_serialization_error(self, backend, mock_redis):
        mock_redis.get.side_effect = UnicodeDecodeError("utf-8", b"\xff\xfe", 0, 1, "invalid start byte")
        with pytest.raises(CacheSerializationError):
            await backend.get("key")

    @pytest.mark.asyncio
    async def test_set_failure_raises_store_unavailable(self, backend, mock_redis):
        mock_redis.setex.side_effect = OSError("network unreachable")
        with pytest.raises(StoreUnavailableError):
            await backend.set("key", "payload", ttl=60)

    @pytest.mark.asyncio
    async def test_delete_calls_redis_delete(self, backend, mock_redis):
        await backend.delete("delkey")
        mock_redis.delete.assert_awaited_once_with("delkey")

    @pytest.mark.asyncio
    async def test_delete_pattern_scans_and_deletes(self, backend, mock_redis):
        mock_redis.scan_iter = MagicMock(return_value=self._async_gen(["ns:a", "ns:b"]))
        deleted = await backend.delete_pattern("ns:*")
        assert deleted == 2
        mock_redis.scan_iter.assert_called_once_with(match="ns:*", count=100)
        assert mock_redis.delete.await_count == 2

    @pytest.mark.asyncio
    async def test_ping_failure_raises_store_unavailable(self, backend, mock_redis):
        mock_redis.ping.side_effect = RedisConnectionError("down")
        with pytest.raises(StoreUnavailableError):
            await backend.ping()

    @pytest.mark.asyncio
    async def test_info_reports_stats(self, backend):
        info = await backend.info()
        assert info["backend"] == "redis"
        assert info["connected"] is True
        assert info["db_size"] == 5

    @pytest.mark.asyncio
    async def test_info_reports_disconnected_on_failure(self, backend, mock_redis):
        mock_redis.info.side_effect = RedisConnectionError("down")
        info = await backend.info()
        assert info["connected"] is False
        assert "down" in info["error"]

    @pytest.mark.asyncio
    async def test_close_releases_client(self, backend, mock_redis):
        await backend.close()
        mock_redis.aclose.assert_awaited_once()
        assert backend._client is None


# ---------------------------------------------------------------------------
# NullCacheBackend tests
# ---------------------------------------------------------------------------


class TestNullCacheBackend:
    @pytest.mark.asyncio
    async def test_never_returns_stored_value(self):
        backend = NullCacheBackend()
        await backend.set("k", "v", ttl=60)
        assert await backend.get("k") is None
        assert backend.is_null is True

    @pytest.mark.asyncio
    async def test_pattern_delete_reports_zero(self):
        assert await NullCacheBackend().delete_pattern("*") == 0


# ---------------------------------------------------------------------------
# Factory tests
# ---------------------------------------------------------------------------


class TestGetCacheBackend:
    def test_memory_backend_selected(self, fake_settings):
        assert isinstance(get_cache_backend(fake_settings), InMemoryCacheBackend)

    def test_redis_backend_selected_when_url_configured(self):
        settings = Settings(store_backend=StoreBackend.AUTO, redis_url="redis://localhost:6379/0")
        assert isinstance(get_cache_backend(settings), RedisCacheBackend)

    def test_auto_without_url_degrades_to_null(self):
        settings = Settings(store_backend=StoreBackend.AUTO, redis_url=None)
        assert isinstance(get_cache_backend(settings), NullCacheBackend)

    def test_explicit_redis_without_url_degrades_to_null(self):
        settings = Settings(store_backend=StoreBackend.REDIS, redis_url=None)
        assert isinstance(get_cache_backend(settings), NullCacheBackend)

    def test_shared_client_is_injected(self):
        settings = Settings(store_backend=StoreBackend.REDIS, redis_url="redis://localhost:6379/0")
        client = MagicMock()
        backend = get_cache_backend(settings, client=client)
        assert backend._client is client
