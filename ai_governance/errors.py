"""Exception hierarchy for the governance layer.

Store and serialization errors are degradation signals: the cache service
and cost guard catch them and carry on. Provider errors are split into
transient (retried) and permanent (surfaced immediately) failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ai_governance.cost.guard import CostCheckResult


class GovernanceError(Exception):
    """Base exception for all governance layer failures."""


class StoreUnavailableError(GovernanceError):
    """Counter or cache store is unreachable or returned a protocol error."""


class CacheSerializationError(GovernanceError):
    """A cached payload could not be encoded or decoded."""


class PricingTableError(GovernanceError):
    """An externally supplied pricing table is missing or invalid."""


class BudgetExceededError(GovernanceError):
    """A governed call was denied by the cost guard and had no fallback."""

    def __init__(self, check: CostCheckResult) -> None:
        super().__init__(check.reason or "Daily cost limit exceeded")
        self.check = check

    @property
    def limit_type(self) -> str | None:
        return self.check.limit_type


class ProviderError(GovernanceError):
    """Base class for failed calls to an AI provider."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderTransientError(ProviderError):
    """5xx, timeout or network failure. Worth retrying."""


class ProviderRateLimitError(ProviderTransientError):
    """HTTP 429 from the provider."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(provider, message, status_code=status_code)
        self.retry_after = retry_after


class ProviderPermanentError(ProviderError):
    """4xx other than 429. Retrying cannot succeed."""


class ProviderAuthenticationError(ProviderPermanentError):
    """HTTP 401: missing, invalid or expired API key."""
