"""Tests for ModelSelector."""

from __future__ import annotations

from dataclasses import replace

import pytest

from ai_governance.routing.capabilities import (
    DEFAULT_CAPABILITIES,
    QUALITY_FLOORS,
    Complexity,
    ModelCapability,
    Provider,
    QualityLevel,
    TaskType,
)
from ai_governance.routing.selector import ModelSelector, ModelUsage


@pytest.fixture
def selector() -> ModelSelector:
    return ModelSelector()


class TestCapabilities:
    def test_quality_floors(self):
        assert QUALITY_FLOORS == {
            QualityLevel.BASIC: 5,
            QualityLevel.STANDARD: 7,
            QualityLevel.PREMIUM: 8,
        }

    def test_complexity_ordering(self):
        assert Complexity.LOW.rank < Complexity.MEDIUM.rank < Complexity.HIGH.rank

    def test_scores_validated(self):
        with pytest.raises(ValueError):
            ModelCapability(
                model="bad",
                provider=Provider.OPENAI,
                suitable_tasks=frozenset({TaskType.CLASSIFICATION}),
                quality_score=11,
                speed_score=5,
                max_complexity=Complexity.LOW,
            )


class TestSelectModel:
    @pytest.mark.parametrize("level", list(QualityLevel))
    @pytest.mark.parametrize("prioritize_cost", [False, True])
    def test_never_below_quality_floor(self, selector, level, prioritize_cost):
        for task in TaskType:
            selection = selector.select_model(task, level, prioritize_cost=prioritize_cost)
            candidates_exist = any(
                task in cap.suitable_tasks and cap.quality_score >= QUALITY_FLOORS[level]
                for cap in DEFAULT_CAPABILITIES
            )
            if candidates_exist:
                assert selection.quality_score >= QUALITY_FLOORS[level]

    def test_basic_classification_with_cost_priority(self, selector):
        selection = selector.select_model(
            TaskType.CLASSIFICATION, QualityLevel.BASIC, prioritize_cost=True
        )
        assert selection.model == "gpt-4o-mini"
        assert selection.quality_score >= 5
        assert selection.provider == "openai"

    def test_accepts_plain_strings(self, selector):
        selection = selector.select_model("classification", "basic")
        assert selection.model in {"gpt-4o-mini", "gpt-3.5-turbo", "sonar"}

    def test_complexity_ceiling_respected(self, selector):
        """research_deep needs a high-complexity model."""
        selection = selector.select_model(TaskType.RESEARCH_DEEP, QualityLevel.BASIC, prioritize_cost=True)
        assert selection.model in {"gpt-4o", "sonar-deep-research"}

    def test_most_expensive_candidate_scores_lowest_cost(self, selector):
        selection = selector.select_model(TaskType.SYNTHESIS, QualityLevel.PREMIUM, prioritize_quality=True)
        # Candidates are gpt-4o and sonar-deep-research; gpt-4o is the price ceiling
        assert selection.model == "sonar-deep-research"
        assert selection.alternatives == ["gpt-4o"]

    def test_cost_priority_prefers_cheaper_research_model(self, selector):
        selection = selector.select_model(
            TaskType.RESEARCH_DEEP, QualityLevel.PREMIUM, prioritize_cost=True
        )
        assert selection.model == "sonar-deep-research"

    def test_scores_in_range(self, selector):
        selection = selector.select_model(TaskType.ANALYSIS)
        assert 1 <= selection.cost_score <= 10
        assert 1 <= selection.composite_score <= 10

    def test_reasoning_lists_weights_and_alternatives(self, selector):
        selection = selector.select_model(TaskType.ANALYSIS, prioritize_speed=True)
        assert "speedx3" in selection.reasoning
        assert selection.alternatives
        for alternative in selection.alternatives:
            assert alternative in selection.reasoning
        assert selection.model not in selection.alternatives

    def test_falls_back_to_highest_quality_when_no_candidates(self):
        only_low = ModelCapability(
            model="gpt-3.5-turbo",
            provider=Provider.OPENAI,
            suitable_tasks=frozenset({TaskType.CLASSIFICATION}),
            quality_score=6,
            speed_score=10,
            max_complexity=Complexity.LOW,
        )
        strong = ModelCapability(
            model="gpt-4o",
            provider=Provider.OPENAI,
            suitable_tasks=frozenset({TaskType.SYNTHESIS}),
            quality_score=10,
            speed_score=6,
            max_complexity=Complexity.HIGH,
        )
        selector = ModelSelector([only_low, strong])

        selection = selector.select_model(TaskType.CLASSIFICATION, QualityLevel.PREMIUM)

        assert selection.model == "gpt-4o"
        assert "falling back" in selection.reasoning

    def test_selection_carries_prices(self, selector):
        selection = selector.select_model(TaskType.CLASSIFICATION, QualityLevel.BASIC, prioritize_cost=True)
        assert selection.input_price_per_1k == 0.00015
        assert selection.output_price_per_1k == 0.0006

    def test_empty_table_rejected(self):
        with pytest.raises(ValueError):
            ModelSelector([])


class TestHelperPolicies:
    def test_cheapest_ignores_quality(self, selector):
        assert selector.get_cheapest_model(TaskType.CLASSIFICATION).model == "gpt-4o-mini"

    def test_cheapest_without_suitable_model_uses_whole_table(self):
        classification_only = [
            replace(cap, suitable_tasks=frozenset({TaskType.CLASSIFICATION})) for cap in DEFAULT_CAPABILITIES
        ]
        selector = ModelSelector(classification_only)

        assert selector.get_cheapest_model(TaskType.SYNTHESIS).model == "gpt-4o-mini"
        assert selector.get_best_quality_model(TaskType.SYNTHESIS).model == "gpt-4o"

    def test_cheapest_research(self, selector):
        assert selector.get_cheapest_model(TaskType.RESEARCH_QUICK).model == "gpt-4o-mini"

    def test_best_quality(self, selector):
        assert selector.get_best_quality_model(TaskType.RESEARCH_DEEP).model == "gpt-4o"
        assert selector.get_best_quality_model(TaskType.CLASSIFICATION).model == "gpt-4o-mini"

    def test_optimization_recommendations(self, selector):
        report = selector.get_task_optimization_recommendations(TaskType.SYNTHESIS)

        assert report.quality_optimized.model == "gpt-4o"
        assert report.cost_optimized.model == "gpt-4o-mini"
        # gpt-4o averages $0.00625/1K, gpt-4o-mini $0.000375/1K
        assert report.potential_savings_percent == pytest.approx(94.0)


class TestAnalyzeModelUsage:
    def test_recommends_cheaper_model(self, selector):
        [rec] = selector.analyze_model_usage(
            [ModelUsage(TaskType.CLASSIFICATION, "gpt-4o", frequency=1000, avg_cost=0.01)]
        )
        assert rec.recommended_model == "gpt-4o-mini"
        assert rec.potential_savings_percent == pytest.approx(94.0)
        assert rec.quality_impact == "moderate"
        assert rec.priority == "high"

    def test_same_model_has_no_savings(self, selector):
        [rec] = selector.analyze_model_usage(
            [ModelUsage(TaskType.CLASSIFICATION, "gpt-4o-mini", frequency=10, avg_cost=0.001)]
        )
        assert rec.potential_savings_percent == pytest.approx(0.0)
        assert rec.quality_impact == "none"
        assert rec.priority == "low"

    def test_significant_quality_drop_is_not_high_priority(self):
        strong = ModelCapability(
            model="gpt-4o",
            provider=Provider.OPENAI,
            suitable_tasks=frozenset({TaskType.CLASSIFICATION}),
            quality_score=10,
            speed_score=6,
            max_complexity=Complexity.HIGH,
        )
        weak = ModelCapability(
            model="sonar",
            provider=Provider.PERPLEXITY,
            suitable_tasks=frozenset({TaskType.CLASSIFICATION}),
            quality_score=7,
            speed_score=8,
            max_complexity=Complexity.LOW,
        )
        selector = ModelSelector([strong, weak])

        [rec] = selector.analyze_model_usage(
            [ModelUsage(TaskType.CLASSIFICATION, "gpt-4o", frequency=1000, avg_cost=1.0)]
        )

        assert rec.recommended_model == "sonar"
        assert rec.quality_impact == "significant"
        assert rec.priority == "low"
