"""Tests for service construction and lifecycle."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from ai_governance.cache.backend import InMemoryCacheBackend, NullCacheBackend, RedisCacheBackend
from ai_governance.config import Settings, StoreBackend
from ai_governance.container import build_services, governance_services
from ai_governance.cost.store import InMemoryCounterStore, NullCounterStore, RedisCounterStore
from ai_governance.errors import PricingTableError


class TestBuildServices:
    def test_memory_wiring(self, fake_settings):
        services = build_services(fake_settings)

        assert isinstance(services.counter_store, InMemoryCounterStore)
        assert isinstance(services.cache_backend, InMemoryCacheBackend)
        assert services.cost_guard.max_daily_cost == 100.0
        assert services.cost_guard.max_user_daily_cost == 10.0

    def test_null_wiring_without_store(self):
        services = build_services(Settings(store_backend=StoreBackend.AUTO, redis_url=None))
        assert isinstance(services.counter_store, NullCounterStore)
        assert isinstance(services.cache_backend, NullCacheBackend)

    def test_redis_client_shared(self):
        client = MagicMock()
        settings = Settings(store_backend=StoreBackend.REDIS, redis_url="redis://localhost:6379/0")

        services = build_services(settings, redis_client=client)

        assert isinstance(services.counter_store, RedisCounterStore)
        assert isinstance(services.cache_backend, RedisCacheBackend)
        assert services.counter_store._client is client
        assert services.cache_backend._client is client

    def test_external_pricing_table(self, fake_settings, tmp_path):
        path = tmp_path / "pricing.json"
        path.write_text(json.dumps({
            "version": "2026-06",
            "models": {"gpt-4o-mini": {"provider": "openai", "input_per_1k": 1.0, "output_per_1k": 1.0}},
        }))
        settings = fake_settings.model_copy(update={"pricing_table_path": str(path)})

        services = build_services(settings)

        assert services.cost_guard.pricing.version == "2026-06"
        assert services.cost_guard.estimate_cost("gpt-4o-mini", 1000, 0).estimated_cost_usd == 1.0

    def test_invalid_pricing_table_fails_fast(self, fake_settings, tmp_path):
        settings = fake_settings.model_copy(update={"pricing_table_path": str(tmp_path / "missing.json")})
        with pytest.raises(PricingTableError):
            build_services(settings)


class TestGovernanceServicesContext:
    @pytest.mark.asyncio
    async def test_closes_resources_on_exit(self, fake_settings):
        async with governance_services(fake_settings) as services:
            services.provider_client.aclose = AsyncMock()
            services.counter_store.close = AsyncMock()
            services.cache_backend.close = AsyncMock()
            assert services.governor is not None

        services.provider_client.aclose.assert_awaited_once()
        services.counter_store.close.assert_awaited_once()
        services.cache_backend.close.assert_awaited_once()

    def teardown_method(self):
        structlog.reset_defaults()
