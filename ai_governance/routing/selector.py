"""Model selection: cheapest model that meets a task's quality bar.

Selection algorithm:
1. Map the quality level to a minimum quality_score floor
2. Map the task type to the complexity tier it requires
3. Keep models suited to the task, at or above the floor, able to handle
   the tier
4. No candidates: fall back to the highest-quality known model
5. Score candidates on cost, quality and speed (1-10 each) and average them,
   weighting an axis 3x when its prioritize flag is set
6. Return the best composite score, with the runner-ups as alternatives

The selector is a pure function of its static tables and the request: no
I/O and no shared mutable state.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from ai_governance.cost.pricing import DEFAULT_PRICING_TABLE, ModelPricing, PricingTable
from ai_governance.routing.capabilities import (
    DEFAULT_CAPABILITIES,
    QUALITY_FLOORS,
    TASK_COMPLEXITY,
    Complexity,
    ModelCapability,
    QualityLevel,
    TaskType,
)

log = structlog.get_logger(__name__)

PRIORITY_WEIGHT = 3.0
BASE_WEIGHT = 1.0
_MAX_ALTERNATIVES = 2


@dataclass
class ModelSelection:
    """Chosen model with the scores that decided it."""

    provider: str
    model: str
    reasoning: str
    input_price_per_1k: float
    output_price_per_1k: float
    quality_score: int
    speed_score: int
    cost_score: float
    composite_score: float
    alternatives: list[str] = field(default_factory=list)

    @property
    def average_price_per_1k(self) -> float:
        return (self.input_price_per_1k + self.output_price_per_1k) / 2


@dataclass
class TaskRecommendations:
    recommended: ModelSelection
    cost_optimized: ModelSelection
    quality_optimized: ModelSelection
    potential_savings_percent: float  # quality-optimised -> cost-optimised


@dataclass
class ModelUsage:
    """Observed usage of one model for one task type."""

    task_type: TaskType
    model: str
    frequency: int
    avg_cost: float


@dataclass
class UsageRecommendation:
    task_type: TaskType
    current_model: str
    recommended_model: str
    potential_savings_percent: float
    quality_impact: str  # none | minimal | moderate | significant
    priority: str  # low | medium | high


class ModelSelector:
    """Multi-objective model selection over a capability table."""

    def __init__(
        self,
        capabilities: Iterable[ModelCapability] = DEFAULT_CAPABILITIES,
        pricing: PricingTable = DEFAULT_PRICING_TABLE,
    ) -> None:
        self._capabilities = {cap.model: cap for cap in capabilities}
        if not self._capabilities:
            raise ValueError("capability table must not be empty")
        self._pricing = pricing

    def capability(self, model: str) -> ModelCapability | None:
        return self._capabilities.get(model)

    def _price(self, model: str) -> ModelPricing:
        # Models missing from the pricing table are scored as the most expensive
        return self._pricing.get(model) or self._pricing.most_expensive()[1]

    def _avg_price(self, model: str) -> float:
        pricing = self._price(model)
        return (pricing.input_per_1k + pricing.output_per_1k) / 2

    def _suitable(self, task_type: TaskType) -> list[ModelCapability]:
        return [cap for cap in self._capabilities.values() if task_type in cap.suitable_tasks]

    def _build(
        self,
        cap: ModelCapability,
        *,
        cost_score: float,
        composite: float,
        reasoning: str,
        alternatives: list[str] | None = None,
    ) -> ModelSelection:
        pricing = self._price(cap.model)
        return ModelSelection(
            provider=cap.provider.value,
            model=cap.model,
            reasoning=reasoning,
            input_price_per_1k=pricing.input_per_1k,
            output_price_per_1k=pricing.output_per_1k,
            quality_score=cap.quality_score,
            speed_score=cap.speed_score,
            cost_score=round(cost_score, 2),
            composite_score=round(composite, 2),
            alternatives=alternatives or [],
        )

    # ------------------------------------------------------------------ #
    # Selection
    # ------------------------------------------------------------------ #

    def select_model(
        self,
        task_type: TaskType | str,
        quality_level: QualityLevel | str = QualityLevel.STANDARD,
        *,
        prioritize_cost: bool = False,
        prioritize_quality: bool = False,
        prioritize_speed: bool = False,
    ) -> ModelSelection:
        """Select the best model for a task. Always returns a selection.

        Args:
            task_type: Category of work to be done
            quality_level: basic / standard / premium floor
            prioritize_cost: Weight the cost axis 3x
            prioritize_quality: Weight the quality axis 3x
            prioritize_speed: Weight the speed axis 3x

        Returns:
            ModelSelection with scores, reasoning and runner-up alternatives
        """
        task_type = TaskType(task_type)
        quality_level = QualityLevel(quality_level)
        floor = QUALITY_FLOORS[quality_level]
        required = TASK_COMPLEXITY.get(task_type, Complexity.MEDIUM)

        candidates = [
            cap
            for cap in self._suitable(task_type)
            if cap.quality_score >= floor and cap.handles(required)
        ]

        if not candidates:
            best = max(
                self._capabilities.values(),
                key=lambda cap: (cap.quality_score, -self._avg_price(cap.model)),
            )
            log.warning(
                "model_selector.no_candidates",
                task_type=task_type.value,
                quality_level=quality_level.value,
                fallback=best.model,
            )
            return self._build(
                best,
                cost_score=1.0,
                composite=float(best.quality_score),
                reasoning=(
                    f"No model suited to {task_type.value} meets quality >= {floor} "
                    f"and complexity {required.value}; falling back to highest-quality "
                    f"model {best.model}"
                ),
            )

        weights = {
            "cost": PRIORITY_WEIGHT if prioritize_cost else BASE_WEIGHT,
            "quality": PRIORITY_WEIGHT if prioritize_quality else BASE_WEIGHT,
            "speed": PRIORITY_WEIGHT if prioritize_speed else BASE_WEIGHT,
        }
        total_weight = sum(weights.values())
        max_price = max(self._avg_price(cap.model) for cap in candidates)

        scored: list[tuple[float, float, ModelCapability]] = []
        for cap in candidates:
            avg_price = self._avg_price(cap.model)
            # 10 for a free model, 1 for the most expensive candidate
            cost_score = 10 - (avg_price / max_price) * 9 if max_price > 0 else 10.0
            composite = (
                cost_score * weights["cost"]
                + cap.quality_score * weights["quality"]
                + cap.speed_score * weights["speed"]
            ) / total_weight
            scored.append((composite, cost_score, cap))

        scored.sort(key=lambda item: (-item[0], self._avg_price(item[2].model), item[2].model))
        composite, cost_score, chosen = scored[0]
        runners_up = scored[1 : 1 + _MAX_ALTERNATIVES]
        alternatives = [cap.model for _, _, cap in runners_up]

        weight_text = ", ".join(f"{axis}x{weight:g}" for axis, weight in weights.items())
        reasoning = (
            f"Selected {chosen.model} for {task_type.value} ({quality_level.value}): "
            f"composite {composite:.2f} [cost {cost_score:.1f}, quality {chosen.quality_score}, "
            f"speed {chosen.speed_score}; weights {weight_text}]"
        )
        if runners_up:
            reasoning += "; alternatives: " + ", ".join(
                f"{cap.model} ({score:.2f})" for score, _, cap in runners_up
            )

        log.debug(
            "model_selector.selected",
            task_type=task_type.value,
            quality_level=quality_level.value,
            model=chosen.model,
            composite=round(composite, 2),
            candidates=len(candidates),
        )
        return self._build(
            chosen,
            cost_score=cost_score,
            composite=composite,
            reasoning=reasoning,
            alternatives=alternatives,
        )

    def get_cheapest_model(self, task_type: TaskType | str) -> ModelSelection:
        """Cheapest model suited to the task, ignoring the quality floor."""
        task_type = TaskType(task_type)
        pool = self._suitable(task_type) or list(self._capabilities.values())
        cheapest = min(pool, key=lambda cap: (self._avg_price(cap.model), -cap.quality_score))
        return self._build(
            cheapest,
            cost_score=10.0,
            composite=10.0,
            reasoning=f"Cheapest model for {task_type.value}: {cheapest.model}",
        )

    def get_best_quality_model(self, task_type: TaskType | str) -> ModelSelection:
        """Highest-quality model suited to the task, regardless of price."""
        task_type = TaskType(task_type)
        pool = self._suitable(task_type) or list(self._capabilities.values())
        best = max(pool, key=lambda cap: (cap.quality_score, -self._avg_price(cap.model)))
        return self._build(
            best,
            cost_score=1.0,
            composite=float(best.quality_score),
            reasoning=f"Highest quality model for {task_type.value}: {best.model}",
        )

    # ------------------------------------------------------------------ #
    # Cost optimisation reports
    # ------------------------------------------------------------------ #

    def get_task_optimization_recommendations(self, task_type: TaskType | str) -> TaskRecommendations:
        """Recommended, cheapest and best-quality choices plus their price gap."""
        recommended = self.select_model(task_type, QualityLevel.STANDARD)
        cost_optimized = self.get_cheapest_model(task_type)
        quality_optimized = self.get_best_quality_model(task_type)

        quality_price = quality_optimized.average_price_per_1k
        cheap_price = cost_optimized.average_price_per_1k
        savings = (quality_price - cheap_price) / quality_price * 100 if quality_price > 0 else 0.0

        return TaskRecommendations(
            recommended=recommended,
            cost_optimized=cost_optimized,
            quality_optimized=quality_optimized,
            potential_savings_percent=savings,
        )

    @staticmethod
    def _quality_impact(current: ModelCapability | None, recommended: ModelCapability | None) -> str:
        if current is None or recommended is None:
            return "none"
        diff = current.quality_score - recommended.quality_score
        if diff <= 0:
            return "none"
        if diff <= 1:
            return "minimal"
        if diff <= 2:
            return "moderate"
        return "significant"

    def analyze_model_usage(self, usage: Iterable[ModelUsage]) -> list[UsageRecommendation]:
        """Suggest cheaper models for observed usage, ranked by priority."""
        results: list[UsageRecommendation] = []
        for item in usage:
            recommended = self.select_model(item.task_type, prioritize_cost=True)
            current_price = self._avg_price(item.model)
            savings = (
                (current_price - recommended.average_price_per_1k) / current_price * 100
                if current_price > 0
                else 0.0
            )
            impact = self._quality_impact(
                self._capabilities.get(item.model),
                self._capabilities.get(recommended.model),
            )

            total_savings = savings * item.frequency * item.avg_cost
            if total_savings > 10 and impact != "significant":
                priority = "high"
            elif total_savings > 5 and impact == "none":
                priority = "medium"
            else:
                priority = "low"

            results.append(
                UsageRecommendation(
                    task_type=TaskType(item.task_type),
                    current_model=item.model,
                    recommended_model=recommended.model,
                    potential_savings_percent=savings,
                    quality_impact=impact,
                    priority=priority,
                )
            )
        return results
