"""Explicit construction and lifecycle of the governance services.

Entry points build one GovernanceServices from Settings and pass its
members to whatever needs them; there are no module-level singletons.
When Redis is configured, the cache backend and counter store share one
client (one connection pool).

Usage:
    async with governance_services() as services:
        result = await services.governor.complete(request)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from ai_governance.cache.backend import CacheBackend, get_cache_backend
from ai_governance.cache.service import CacheService
from ai_governance.config import Settings, StoreBackend, get_settings
from ai_governance.cost.guard import CostGuard
from ai_governance.cost.pricing import load_pricing_table
from ai_governance.cost.store import CounterStore, get_counter_store
from ai_governance.governor import AIGovernor
from ai_governance.infra.redis_client import create_redis_client
from ai_governance.providers.client import ProviderClient
from ai_governance.providers.rate_limiter import RateLimiterRegistry
from ai_governance.routing.selector import ModelSelector
from ai_governance.telemetry.logging import configure_logging

log = structlog.get_logger(__name__)


@dataclass
class GovernanceServices:
    settings: Settings
    counter_store: CounterStore
    cache_backend: CacheBackend
    cache: CacheService
    cost_guard: CostGuard
    selector: ModelSelector
    limiters: RateLimiterRegistry
    provider_client: ProviderClient
    governor: AIGovernor

    async def aclose(self) -> None:
        """Close store connections and the HTTP client."""
        await self.provider_client.aclose()
        await self.counter_store.close()
        await self.cache_backend.close()
        log.info("governance.services_closed")


def build_services(
    settings: Settings,
    *,
    redis_client: Any = None,
    http_client: httpx.AsyncClient | None = None,
) -> GovernanceServices:
    """Construct every governance service from settings.

    Args:
        settings: Governance settings
        redis_client: Pre-built redis.asyncio client (tests, shared pools)
        http_client: Pre-built httpx client for provider calls

    Raises:
        PricingTableError: PRICING_TABLE_PATH points at an invalid table
    """
    if (
        redis_client is None
        and settings.resolved_store_backend == StoreBackend.REDIS
        and settings.redis_url
    ):
        token = settings.redis_token.get_secret_value() if settings.redis_token else None
        redis_client = create_redis_client(settings.redis_url, token)

    pricing = load_pricing_table(settings.pricing_table_path)
    counter_store = get_counter_store(settings, client=redis_client)
    cache_backend = get_cache_backend(settings, client=redis_client)

    cache = CacheService(
        cache_backend,
        default_ttl=settings.cache_default_ttl_seconds,
        default_namespace=settings.cache_default_namespace,
    )
    cost_guard = CostGuard(
        counter_store,
        max_daily_cost=settings.max_daily_api_cost_usd,
        max_user_daily_cost=settings.max_user_daily_cost_usd,
        pricing=pricing,
        retention_seconds=settings.cost_retention_seconds,
    )
    selector = ModelSelector(pricing=pricing)
    limiters = RateLimiterRegistry.from_settings(settings)
    provider_client = ProviderClient.from_settings(settings, limiters=limiters, http_client=http_client)
    governor = AIGovernor(
        cache=cache,
        cost_guard=cost_guard,
        selector=selector,
        client=provider_client,
        strict_budget=settings.strict_budget_enforcement,
    )

    log.info(
        "governance.services_built",
        store_backend=settings.resolved_store_backend.value,
        pricing_version=pricing.version,
        strict_budget=settings.strict_budget_enforcement,
    )
    return GovernanceServices(
        settings=settings,
        counter_store=counter_store,
        cache_backend=cache_backend,
        cache=cache,
        cost_guard=cost_guard,
        selector=selector,
        limiters=limiters,
        provider_client=provider_client,
        governor=governor,
    )


@asynccontextmanager
async def governance_services(settings: Settings | None = None) -> AsyncIterator[GovernanceServices]:
    """Configure logging, build the services and close them on exit."""
    settings = settings or get_settings()
    configure_logging(json_logs=settings.json_logs, log_level=settings.log_level)
    services = build_services(settings)
    try:
        yield services
    finally:
        await services.aclose()
