"""Model selection for governed AI calls.

Public API:
    ModelSelector       - select_model / cheapest / best quality / usage analysis
    ModelSelection      - Chosen model, prices, scores and reasoning
    ModelCapability     - Static capability row
    TaskType, QualityLevel, Complexity, Provider
"""

from __future__ import annotations

from ai_governance.routing.capabilities import (
    DEFAULT_CAPABILITIES,
    QUALITY_FLOORS,
    TASK_COMPLEXITY,
    Complexity,
    ModelCapability,
    Provider,
    QualityLevel,
    TaskType,
)
from ai_governance.routing.selector import (
    ModelSelection,
    ModelSelector,
    ModelUsage,
    TaskRecommendations,
    UsageRecommendation,
)

__all__ = [
    "ModelSelector",
    "ModelSelection",
    "TaskRecommendations",
    "ModelUsage",
    "UsageRecommendation",
    "ModelCapability",
    "DEFAULT_CAPABILITIES",
    "QUALITY_FLOORS",
    "TASK_COMPLEXITY",
    "TaskType",
    "QualityLevel",
    "Complexity",
    "Provider",
]
