"""Daily spend tracking and admission control for metered AI calls.

The CostGuard keeps per-day spend counters in a shared CounterStore, for the
global scope and for each user:

    cost:<scope>:<YYYY-MM-DD>              total USD
    count:<scope>:<YYYY-MM-DD>             request count
    cost:<provider>:<scope>:<YYYY-MM-DD>   per-provider USD
    count:<provider>:<scope>:<YYYY-MM-DD>  per-provider request count

Every key expires after the retention window (7 days by default), counted
from its last write.

Default admission is check-then-record: check_cost_limit() reads the
counters, the caller performs the paid call, then record_cost() increments
them. The two steps are not transactional, so concurrent callers can jointly
overshoot a ceiling. Budgets are soft guidance against runaway spend, not a
billing ledger. Callers that need a hard ceiling use reserve_cost(), which
increments first and compensates when the post-increment value is over the
limit.

When the store is unreachable the guard fails open: requests are admitted
and the degradation is logged.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from ai_governance.cost.pricing import DEFAULT_PRICING_TABLE, PricingTable
from ai_governance.cost.store import CounterStore
from ai_governance.errors import StoreUnavailableError
from ai_governance.telemetry.logging import mask_user_id

log = structlog.get_logger(__name__)

GLOBAL_SCOPE = "global"
DEFAULT_RETENTION_SECONDS = 7 * 86400

FAIL_OPEN_REASON = "Cost check failed - allowing request"


@dataclass
class CostEstimate:
    """Projected cost of one call. Never persisted."""

    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    approximate: bool = False  # model missing from the pricing table
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class CostCheckResult:
    """Structured admission decision.

    A denial is a normal return value (allowed=False with reason and
    limit_type), never an exception.
    """

    allowed: bool
    current_daily_cost: float
    remaining_budget: float
    estimated_cost: float
    reason: str | None = None
    limit_type: str | None = None  # "user" | "global"
    reserved: bool = False  # estimate already added to the counters


@dataclass
class ProviderUsage:
    cost: float = 0.0
    requests: int = 0


@dataclass
class DailyCostSummary:
    user_id: str | None
    date: str
    total_cost_usd: float
    request_count: int
    provider_breakdown: dict[str, ProviderUsage] = field(default_factory=dict)


@dataclass
class CostGuardStatus:
    status: str  # healthy | degraded | critical
    message: str
    global_daily_cost: float
    global_limit: float
    utilization: float
    store_connected: bool


class CostGuard:
    """Per-scope daily budget enforcement over a CounterStore."""

    # Utilisation of the global limit that flips get_status()
    DEGRADED_THRESHOLD = 0.70
    CRITICAL_THRESHOLD = 0.90

    def __init__(
        self,
        store: CounterStore,
        *,
        max_daily_cost: float = 100.0,
        max_user_daily_cost: float = 10.0,
        pricing: PricingTable = DEFAULT_PRICING_TABLE,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        """Initialize the guard.

        Args:
            store: Shared counter store (Null store disables tracking)
            max_daily_cost: Global daily ceiling in USD
            max_user_daily_cost: Per-user daily ceiling in USD
            pricing: Pricing table used by estimate_cost()
            retention_seconds: Expiry refreshed on every counter write
            clock: Returns the current time; the UTC date selects the counters
        """
        self._store = store
        self._max_daily = max_daily_cost
        self._max_user_daily = max_user_daily_cost
        self._pricing = pricing
        self._retention = retention_seconds
        self._clock = clock
        # Providers whose per-provider counters this guard reports and resets
        self._providers: set[str] = set(pricing.providers())

        if store.is_null:
            log.warning(
                "cost_guard.tracking_disabled",
                reason="no counter store configured - every request will be allowed",
            )

    @property
    def pricing(self) -> PricingTable:
        return self._pricing

    @property
    def max_daily_cost(self) -> float:
        return self._max_daily

    @property
    def max_user_daily_cost(self) -> float:
        return self._max_user_daily

    def providers(self) -> list[str]:
        """Providers covered by summaries and resets.

        The pricing table's providers plus any provider this guard has
        recorded spend for. Counters written by another process under a
        provider missing from this table are not listed.
        """
        return sorted(self._providers)

    # ------------------------------------------------------------------ #
    # Keys
    # ------------------------------------------------------------------ #

    def _today(self) -> str:
        return self._clock().astimezone(UTC).strftime("%Y-%m-%d")

    @staticmethod
    def _scope(user_id: str | None) -> str:
        return user_id or GLOBAL_SCOPE

    @staticmethod
    def _cost_key(scope: str, date: str, provider: str | None = None) -> str:
        if provider:
            return f"cost:{provider}:{scope}:{date}"
        return f"cost:{scope}:{date}"

    @staticmethod
    def _count_key(scope: str, date: str, provider: str | None = None) -> str:
        if provider:
            return f"count:{provider}:{scope}:{date}"
        return f"count:{scope}:{date}"

    async def _read(self, key: str) -> float:
        return await self._store.get_float(key) or 0.0

    # ------------------------------------------------------------------ #
    # Estimation
    # ------------------------------------------------------------------ #

    def estimate_cost(
        self,
        model: str,
        input_tokens: int,
        output_tokens: int = 0,
        provider: str | None = None,
    ) -> CostEstimate:
        """Estimate the USD cost of a call from token counts.

        Unknown models are priced at the most expensive known model and the
        estimate is flagged approximate.

        Raises:
            ValueError: If a token count is negative
        """
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError(
                f"token counts must be non-negative (input={input_tokens}, output={output_tokens})"
            )

        pricing = self._pricing.get(model)
        approximate = False
        pricing_model = model.lower()
        if pricing is None:
            pricing_model, pricing = self._pricing.most_expensive()
            approximate = True
            log.warning(
                "cost_guard.unknown_model",
                model=model,
                priced_as=pricing_model,
            )

        input_cost = input_tokens * pricing.input_per_1k / 1000
        output_cost = output_tokens * pricing.output_per_1k / 1000

        return CostEstimate(
            provider=provider or pricing.provider,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=input_cost + output_cost,
            approximate=approximate,
            details={
                "input_cost": input_cost,
                "output_cost": output_cost,
                "pricing_model": pricing_model,
                "pricing_version": self._pricing.version,
            },
        )

    # ------------------------------------------------------------------ #
    # Admission
    # ------------------------------------------------------------------ #

    def _deny(
        self,
        *,
        limit_type: str,
        current: float,
        limit: float,
        estimated_cost: float,
        user_id: str | None,
    ) -> CostCheckResult:
        prefix = "Daily" if limit_type == "user" else "Global daily"
        log.warning(
            "cost_guard.limit_exceeded",
            limit_type=limit_type,
            user_id=mask_user_id(user_id),
            current_cost=round(current, 4),
            estimated_cost=round(estimated_cost, 4),
            limit=limit,
        )
        return CostCheckResult(
            allowed=False,
            current_daily_cost=current,
            remaining_budget=max(0.0, limit - current),
            estimated_cost=estimated_cost,
            reason=f"{prefix} limit exceeded: ${current:.2f} of ${limit:g} used",
            limit_type=limit_type,
        )

    def _fail_open(self, estimated_cost: float, exc: Exception, user_id: str | None) -> CostCheckResult:
        log.error(
            "cost_guard.check_failed",
            user_id=mask_user_id(user_id),
            error=str(exc),
            decision="allow",
        )
        return CostCheckResult(
            allowed=True,
            current_daily_cost=0.0,
            remaining_budget=self._max_user_daily if user_id else self._max_daily,
            estimated_cost=estimated_cost,
            reason=FAIL_OPEN_REASON,
        )

    def _tighter(self, global_cost: float, user_cost: float | None) -> tuple[float, float]:
        """(current cost, remaining) for the scope with less headroom."""
        global_remaining = max(0.0, self._max_daily - global_cost)
        if user_cost is None:
            return global_cost, global_remaining
        user_remaining = max(0.0, self._max_user_daily - user_cost)
        if user_remaining < global_remaining:
            return user_cost, user_remaining
        return global_cost, global_remaining

    async def check_cost_limit(
        self,
        estimated_cost: float,
        user_id: str | None = None,
    ) -> CostCheckResult:
        """Decide whether a call of estimated_cost fits today's budgets.

        The user limit is checked before the global one so a single caller
        gets an actionable, caller-specific denial. Store failures fail open.
        """
        date = self._today()
        try:
            global_cost = await self._read(self._cost_key(GLOBAL_SCOPE, date))
            user_cost = await self._read(self._cost_key(user_id, date)) if user_id else None
        except StoreUnavailableError as exc:
            return self._fail_open(estimated_cost, exc, user_id)

        if user_cost is not None and user_cost + estimated_cost > self._max_user_daily:
            return self._deny(
                limit_type="user",
                current=user_cost,
                limit=self._max_user_daily,
                estimated_cost=estimated_cost,
                user_id=user_id,
            )

        if global_cost + estimated_cost > self._max_daily:
            return self._deny(
                limit_type="global",
                current=global_cost,
                limit=self._max_daily,
                estimated_cost=estimated_cost,
                user_id=user_id,
            )

        current, remaining = self._tighter(global_cost, user_cost)
        log.debug(
            "cost_guard.check_passed",
            user_id=mask_user_id(user_id),
            estimated_cost=round(estimated_cost, 6),
            remaining_budget=round(remaining, 4),
        )
        return CostCheckResult(
            allowed=True,
            current_daily_cost=current,
            remaining_budget=remaining,
            estimated_cost=estimated_cost,
        )

    async def reserve_cost(
        self,
        estimated_cost: float,
        provider: str,
        model: str,
        user_id: str | None = None,
    ) -> CostCheckResult:
        """Strict admission: add the estimate to the counters before the call.

        The atomic increment is the admission primitive. When the
        post-increment value of a scope exceeds its limit, the increment is
        compensated with a negative one and the call is denied. An admitted
        reservation must be settled with settle_reservation() once the call
        finishes, or returned with release_reservation() if it fails.
        """
        if estimated_cost < 0:
            raise ValueError("estimated_cost must be non-negative")

        date = self._today()
        global_key = self._cost_key(GLOBAL_SCOPE, date)
        user_key = self._cost_key(user_id, date) if user_id else None
        applied: list[str] = []

        try:
            if user_key:
                user_total = await self._store.incr_by_float(user_key, estimated_cost, self._retention)
                applied.append(user_key)
                if user_total > self._max_user_daily:
                    await self._compensate(applied, estimated_cost)
                    return self._deny(
                        limit_type="user",
                        current=user_total - estimated_cost,
                        limit=self._max_user_daily,
                        estimated_cost=estimated_cost,
                        user_id=user_id,
                    )

            global_total = await self._store.incr_by_float(global_key, estimated_cost, self._retention)
            applied.append(global_key)
            if global_total > self._max_daily:
                await self._compensate(applied, estimated_cost)
                return self._deny(
                    limit_type="global",
                    current=global_total - estimated_cost,
                    limit=self._max_daily,
                    estimated_cost=estimated_cost,
                    user_id=user_id,
                )
        except StoreUnavailableError as exc:
            await self._compensate_quietly(applied, estimated_cost)
            return self._fail_open(estimated_cost, exc, user_id)

        user_before = None if user_key is None else user_total - estimated_cost
        current, remaining = self._tighter(global_total - estimated_cost, user_before)
        log.debug(
            "cost_guard.reserved",
            user_id=mask_user_id(user_id),
            provider=provider,
            model=model,
            estimated_cost=round(estimated_cost, 6),
        )
        return CostCheckResult(
            allowed=True,
            current_daily_cost=current,
            remaining_budget=max(0.0, remaining - estimated_cost),
            estimated_cost=estimated_cost,
            reserved=not self._store.is_null,
        )

    async def _compensate(self, keys: list[str], amount: float) -> None:
        for key in keys:
            await self._store.incr_by_float(key, -amount, self._retention)

    async def _compensate_quietly(self, keys: list[str], amount: float) -> None:
        try:
            await self._compensate(keys, amount)
        except StoreUnavailableError as exc:
            log.error("cost_guard.compensation_failed", keys=keys, amount=amount, error=str(exc))

    async def settle_reservation(
        self,
        check: CostCheckResult,
        actual_cost: float,
        provider: str,
        model: str,
        user_id: str | None = None,
    ) -> None:
        """Replace a reserved estimate with the actual cost of the call.

        For a check that did not reserve (check-then-record or fail-open),
        this is plain record_cost().
        """
        if not check.reserved:
            await self.record_cost(actual_cost, provider, model, user_id)
            return

        if actual_cost < 0:
            raise ValueError("actual_cost must be non-negative")

        delta = actual_cost - check.estimated_cost
        date = self._today()
        try:
            for scope in self._scopes(user_id):
                if delta:
                    await self._store.incr_by_float(self._cost_key(scope, date), delta, self._retention)
                await self._record_counts(scope, date, actual_cost, provider)
        except StoreUnavailableError as exc:
            log.error(
                "cost_guard.record_failed",
                user_id=mask_user_id(user_id),
                provider=provider,
                model=model,
                cost=actual_cost,
                error=str(exc),
            )
            return
        log.info(
            "cost_guard.cost_recorded",
            user_id=mask_user_id(user_id),
            provider=provider,
            model=model,
            cost=round(actual_cost, 6),
            reserved=round(check.estimated_cost, 6),
        )

    async def release_reservation(self, check: CostCheckResult, user_id: str | None = None) -> None:
        """Return a reserved estimate when the paid call never happened."""
        if not check.reserved:
            return
        date = self._today()
        keys = [self._cost_key(scope, date) for scope in self._scopes(user_id)]
        await self._compensate_quietly(keys, check.estimated_cost)
        log.debug("cost_guard.reservation_released", user_id=mask_user_id(user_id))

    # ------------------------------------------------------------------ #
    # Recording
    # ------------------------------------------------------------------ #

    @staticmethod
    def _scopes(user_id: str | None) -> list[str]:
        return [GLOBAL_SCOPE, user_id] if user_id else [GLOBAL_SCOPE]

    async def _record_counts(self, scope: str, date: str, cost: float, provider: str) -> None:
        if provider not in self._providers:
            log.warning("cost_guard.unpriced_provider", provider=provider)
            self._providers.add(provider)
        await self._store.incr_by_float(self._count_key(scope, date), 1, self._retention)
        await self._store.incr_by_float(self._cost_key(scope, date, provider), cost, self._retention)
        await self._store.incr_by_float(self._count_key(scope, date, provider), 1, self._retention)

    async def record_cost(
        self,
        actual_cost: float,
        provider: str,
        model: str,
        user_id: str | None = None,
    ) -> None:
        """Add a completed call's cost to the global and user counters.

        Store failures are logged and dropped: the spend goes untracked
        rather than failing a call that has already been paid for.

        Raises:
            ValueError: If actual_cost is negative
        """
        if actual_cost < 0:
            raise ValueError("actual_cost must be non-negative")

        date = self._today()
        try:
            for scope in self._scopes(user_id):
                await self._store.incr_by_float(self._cost_key(scope, date), actual_cost, self._retention)
                await self._record_counts(scope, date, actual_cost, provider)
        except StoreUnavailableError as exc:
            log.error(
                "cost_guard.record_failed",
                user_id=mask_user_id(user_id),
                provider=provider,
                model=model,
                cost=actual_cost,
                error=str(exc),
            )
            return

        log.info(
            "cost_guard.cost_recorded",
            user_id=mask_user_id(user_id),
            provider=provider,
            model=model,
            cost=round(actual_cost, 6),
        )

    # ------------------------------------------------------------------ #
    # Observability
    # ------------------------------------------------------------------ #

    async def get_daily_cost(self, user_id: str | None = None) -> float:
        """Today's spend for a scope. 0.0 when the store is unavailable."""
        try:
            return await self._read(self._cost_key(self._scope(user_id), self._today()))
        except StoreUnavailableError as exc:
            log.error("cost_guard.read_failed", user_id=mask_user_id(user_id), error=str(exc))
            return 0.0

    async def get_daily_cost_summary(self, user_id: str | None = None) -> DailyCostSummary:
        """Today's total, request count and per-provider breakdown for a scope."""
        scope = self._scope(user_id)
        date = self._today()
        summary = DailyCostSummary(user_id=user_id, date=date, total_cost_usd=0.0, request_count=0)
        try:
            summary.total_cost_usd = await self._read(self._cost_key(scope, date))
            summary.request_count = int(await self._read(self._count_key(scope, date)))
            for provider in self.providers():
                summary.provider_breakdown[provider] = ProviderUsage(
                    cost=await self._read(self._cost_key(scope, date, provider)),
                    requests=int(await self._read(self._count_key(scope, date, provider))),
                )
        except StoreUnavailableError as exc:
            log.error("cost_guard.summary_failed", user_id=mask_user_id(user_id), error=str(exc))
            return DailyCostSummary(user_id=user_id, date=date, total_cost_usd=0.0, request_count=0)
        return summary

    async def reset_daily_costs(self, user_id: str | None = None) -> bool:
        """Delete today's counters for a scope. False if nothing could be reset."""
        if self._store.is_null:
            log.warning("cost_guard.reset_skipped", reason="no counter store configured")
            return False

        scope = self._scope(user_id)
        date = self._today()
        keys = [self._cost_key(scope, date), self._count_key(scope, date)]
        for provider in self.providers():
            keys.append(self._cost_key(scope, date, provider))
            keys.append(self._count_key(scope, date, provider))

        try:
            deleted = await self._store.delete(*keys)
        except StoreUnavailableError as exc:
            log.error("cost_guard.reset_failed", user_id=mask_user_id(user_id), error=str(exc))
            return False

        log.info("cost_guard.costs_reset", user_id=mask_user_id(user_id), date=date, deleted=deleted)
        return True

    async def get_status(self) -> CostGuardStatus:
        """Health of the guard based on global utilisation and store reachability."""
        if self._store.is_null:
            return CostGuardStatus(
                status="degraded",
                message="No counter store configured - cost tracking disabled",
                global_daily_cost=0.0,
                global_limit=self._max_daily,
                utilization=0.0,
                store_connected=False,
            )

        try:
            await self._store.ping()
            global_cost = await self._read(self._cost_key(GLOBAL_SCOPE, self._today()))
        except StoreUnavailableError as exc:
            log.warning("cost_guard.status_store_unavailable", error=str(exc))
            return CostGuardStatus(
                status="degraded",
                message=f"Counter store unavailable: {exc}",
                global_daily_cost=0.0,
                global_limit=self._max_daily,
                utilization=0.0,
                store_connected=False,
            )

        utilization = global_cost / self._max_daily
        if utilization >= self.CRITICAL_THRESHOLD:
            status = "critical"
            message = f"Critical: {utilization:.0%} of daily budget used"
        elif utilization >= self.DEGRADED_THRESHOLD:
            status = "degraded"
            message = f"Warning: {utilization:.0%} of daily budget used"
        else:
            status = "healthy"
            message = f"{utilization:.0%} of daily budget used"

        return CostGuardStatus(
            status=status,
            message=message,
            global_daily_cost=global_cost,
            global_limit=self._max_daily,
            utilization=utilization,
            store_connected=True,
        )
