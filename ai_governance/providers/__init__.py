"""Outbound provider calls: pacing, retry and the HTTP client.

Public API:
    ProviderClient            - Rate-limited, retried chat completions
    ProviderResponse          - Parsed completion with token usage
    SlidingWindowRateLimiter  - Per-provider minute/hour pacing
    RateLimiterRegistry       - One limiter per provider
    RateLimitPolicy           - Ceilings for one provider
    RetryPolicy               - Attempts and backoff
    call_with_retry           - tenacity-backed retry of transient failures
    classify_response         - HTTP status -> provider error taxonomy
"""

from __future__ import annotations

from ai_governance.providers.client import ProviderClient, ProviderEndpoint, ProviderResponse
from ai_governance.providers.rate_limiter import (
    RateLimiterRegistry,
    RateLimitPolicy,
    SlidingWindowRateLimiter,
)
from ai_governance.providers.retry import (
    RetryPolicy,
    call_with_retry,
    classify_response,
    parse_retry_after,
)

__all__ = [
    "ProviderClient",
    "ProviderEndpoint",
    "ProviderResponse",
    "SlidingWindowRateLimiter",
    "RateLimiterRegistry",
    "RateLimitPolicy",
    "RetryPolicy",
    "call_with_retry",
    "classify_response",
    "parse_retry_after",
]
