"""Daily spend tracking and admission control.

Public API:
    CostGuard            - estimate / check / record / reserve / summary / status
    CostEstimate         - Projected cost of one call
    CostCheckResult      - Structured admission decision
    DailyCostSummary     - Today's spend for a scope with provider breakdown
    CostGuardStatus      - healthy / degraded / critical

    CounterStore         - Abstract atomic float counter store
    RedisCounterStore    - Redis-backed counters (INCRBYFLOAT + EXPIRE)
    InMemoryCounterStore - Single-process counters for dev/testing
    NullCounterStore     - Reads as zero, drops writes
    get_counter_store    - Factory: selects store from settings

    PricingTable         - Versioned, JSON-loadable model pricing
    estimate_tokens      - ~4 characters per token heuristic
"""

from __future__ import annotations

from ai_governance.cost.guard import (
    GLOBAL_SCOPE,
    CostCheckResult,
    CostEstimate,
    CostGuard,
    CostGuardStatus,
    DailyCostSummary,
    ProviderUsage,
)
from ai_governance.cost.pricing import (
    DEFAULT_PRICING_TABLE,
    ModelPricing,
    PricingTable,
    estimate_tokens,
    load_pricing_table,
)
from ai_governance.cost.store import (
    CounterStore,
    InMemoryCounterStore,
    NullCounterStore,
    RedisCounterStore,
    get_counter_store,
)

__all__ = [
    "GLOBAL_SCOPE",
    "CostGuard",
    "CostEstimate",
    "CostCheckResult",
    "DailyCostSummary",
    "ProviderUsage",
    "CostGuardStatus",
    "CounterStore",
    "RedisCounterStore",
    "InMemoryCounterStore",
    "NullCounterStore",
    "get_counter_store",
    "ModelPricing",
    "PricingTable",
    "DEFAULT_PRICING_TABLE",
    "load_pricing_table",
    "estimate_tokens",
]
