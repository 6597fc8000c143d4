"""Orchestration of one governed AI call.

Control flow for AIGovernor.run():

    select model -> cache.get_or_generate(key, ttl, generator)
        generator (cache miss only):
            estimate cost -> admission check (or reservation in strict mode)
            denied  -> BudgetExceededError (nothing cached)
            allowed -> call provider -> record actual cost -> cacheable dict

A denied call falls back to the caller-supplied fallback when one is given;
fallback values are returned with used_fallback=True and never cached.
Provider errors propagate unchanged.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from ai_governance.cache.service import CacheService
from ai_governance.cost.guard import CostCheckResult, CostEstimate, CostGuard
from ai_governance.cost.pricing import estimate_tokens
from ai_governance.errors import BudgetExceededError
from ai_governance.inputs import RecordInput
from ai_governance.providers.client import ProviderClient, ProviderResponse
from ai_governance.routing.capabilities import QualityLevel, TaskType
from ai_governance.routing.selector import ModelSelection, ModelSelector
from ai_governance.telemetry.logging import bind_request_context, bind_user_context, mask_user_id

log = structlog.get_logger(__name__)

DEFAULT_EXPECTED_OUTPUT_TOKENS = 500

# Keys of the dict a governed call caches
RESULT_KEYS = frozenset({"value", "model", "provider", "cost_usd", "cost_is_estimate"})

ProviderCall = Callable[[ModelSelection], Awaitable[Any]]
Fallback = Callable[[], Any]


@dataclass
class GovernedRequest:
    """Everything the governance layer needs to know about one call.

    Attributes:
        task_type: Category used for model selection
        prompt: Text sent to the provider (drives the cost estimate)
        cache_key: Content key summarising every input that affects the result
        quality_level: Minimum quality tier for model selection
        user_id: Identity for per-user budgets (None = global only)
        namespace: Cache namespace (None = service default)
        ttl_seconds: Cache TTL (None = service default)
        expected_output_tokens: Output tokens assumed by the cost estimate
    """

    task_type: TaskType
    prompt: str
    cache_key: str
    quality_level: QualityLevel = QualityLevel.STANDARD
    prioritize_cost: bool = False
    prioritize_quality: bool = False
    prioritize_speed: bool = False
    user_id: str | None = None
    namespace: str | None = None
    ttl_seconds: int | None = None
    expected_output_tokens: int = DEFAULT_EXPECTED_OUTPUT_TOKENS

    @classmethod
    def for_record(
        cls,
        record: RecordInput,
        *,
        task_type: TaskType,
        prompt: str,
        options: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> GovernedRequest:
        """Build a request whose cache key is derived from an input record."""
        return cls(task_type=task_type, prompt=prompt, cache_key=record.content_key(options), **kwargs)


@dataclass
class GovernedResult:
    value: Any
    was_cached: bool
    age_seconds: int = 0
    model: str | None = None
    provider: str | None = None
    cost_usd: float = 0.0  # spend incurred by this call (0 on cache hit)
    cost_is_estimate: bool = False
    used_fallback: bool = False
    denial: CostCheckResult | None = None


class AIGovernor:
    """Chains model selection, caching, cost admission and the provider call."""

    def __init__(
        self,
        *,
        cache: CacheService,
        cost_guard: CostGuard,
        selector: ModelSelector,
        client: ProviderClient | None = None,
        strict_budget: bool = False,
    ) -> None:
        self._cache = cache
        self._cost_guard = cost_guard
        self._selector = selector
        self._client = client
        self._strict = strict_budget

    def _actual_cost(self, outcome: Any, estimate: CostEstimate) -> tuple[Any, float, bool]:
        """(value, cost, is_estimate) for a provider call outcome."""
        if isinstance(outcome, ProviderResponse):
            if outcome.input_tokens is not None and outcome.output_tokens is not None:
                actual = self._cost_guard.estimate_cost(
                    estimate.model,
                    outcome.input_tokens,
                    outcome.output_tokens,
                    estimate.provider,
                )
                return outcome.content, actual.estimated_cost_usd, False
            return outcome.content, estimate.estimated_cost_usd, True
        return outcome, estimate.estimated_cost_usd, True

    async def _admit(self, request: GovernedRequest, estimate: CostEstimate) -> CostCheckResult:
        if self._strict:
            return await self._cost_guard.reserve_cost(
                estimate.estimated_cost_usd,
                estimate.provider,
                estimate.model,
                request.user_id,
            )
        return await self._cost_guard.check_cost_limit(estimate.estimated_cost_usd, request.user_id)

    async def run(
        self,
        request: GovernedRequest,
        call: ProviderCall,
        *,
        fallback: Fallback | None = None,
    ) -> GovernedResult:
        """Execute one governed call.

        Args:
            request: What to compute and under which budget scope
            call: Performs the paid call for the selected model. Returning a
                ProviderResponse lets the actual cost come from reported usage.
            fallback: Free substitute (sync or async) used when the budget denies

        Raises:
            BudgetExceededError: Denied and no fallback was supplied
            ProviderError: The provider call failed after retries
        """
        bind_user_context(request.user_id)
        bind_request_context(
            task_type=TaskType(request.task_type).value,
            namespace=request.namespace or "default",
        )
        try:
            return await self._run(request, call, fallback)
        finally:
            structlog.contextvars.unbind_contextvars("user_id", "task_type", "namespace")

    async def _run(
        self,
        request: GovernedRequest,
        call: ProviderCall,
        fallback: Fallback | None,
    ) -> GovernedResult:
        selection = self._selector.select_model(
            request.task_type,
            request.quality_level,
            prioritize_cost=request.prioritize_cost,
            prioritize_quality=request.prioritize_quality,
            prioritize_speed=request.prioritize_speed,
        )

        async def generate() -> dict[str, Any]:
            estimate = self._cost_guard.estimate_cost(
                selection.model,
                estimate_tokens(request.prompt),
                request.expected_output_tokens,
                selection.provider,
            )
            check = await self._admit(request, estimate)
            if not check.allowed:
                raise BudgetExceededError(check)

            try:
                outcome = await call(selection)
            except BaseException:
                await self._cost_guard.release_reservation(check, request.user_id)
                raise

            value, cost, is_estimate = self._actual_cost(outcome, estimate)
            await self._cost_guard.settle_reservation(
                check,
                cost,
                selection.provider,
                selection.model,
                request.user_id,
            )
            return {
                "value": value,
                "model": selection.model,
                "provider": selection.provider,
                "cost_usd": cost,
                "cost_is_estimate": is_estimate,
            }

        try:
            cached = await self._cache.get_or_generate(
                request.cache_key,
                request.ttl_seconds,
                generate,
                namespace=request.namespace,
            )
        except BudgetExceededError as exc:
            if fallback is None:
                raise
            log.info(
                "governor.fallback_used",
                user_id=mask_user_id(request.user_id),
                limit_type=exc.limit_type,
                reason=exc.check.reason,
            )
            value = fallback()
            if inspect.isawaitable(value):
                value = await value
            return GovernedResult(value=value, was_cached=False, used_fallback=True, denial=exc.check)

        payload = cached.value
        if not isinstance(payload, dict) or not RESULT_KEYS.issubset(payload):
            # Entry written directly through CacheService.set()
            return GovernedResult(value=payload, was_cached=cached.was_cached, age_seconds=cached.age_seconds)
        return GovernedResult(
            value=payload.get("value"),
            was_cached=cached.was_cached,
            age_seconds=cached.age_seconds,
            model=payload.get("model"),
            provider=payload.get("provider"),
            cost_usd=0.0 if cached.was_cached else payload.get("cost_usd", 0.0),
            cost_is_estimate=bool(payload.get("cost_is_estimate", False)),
        )

    async def complete(
        self,
        request: GovernedRequest,
        *,
        system_prompt: str | None = None,
        temperature: float | None = None,
        fallback: Fallback | None = None,
    ) -> GovernedResult:
        """run() with a chat completion of request.prompt as the paid call."""
        if self._client is None:
            raise RuntimeError("AIGovernor.complete() requires a ProviderClient")
        client = self._client

        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        async def call(selection: ModelSelection) -> ProviderResponse:
            return await client.chat_completion(
                selection.provider,
                selection.model,
                messages,
                temperature=temperature,
                max_tokens=request.expected_output_tokens,
            )

        return await self.run(request, call, fallback=fallback)
