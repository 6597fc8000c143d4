"""Static model capability matrix used by the ModelSelector.

Each model declares the task categories it is suited for, a 1-10 quality
and speed score, and the highest task complexity it can handle. The table
is read-only configuration; prices live in the pricing table.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class TaskType(StrEnum):
    """Categories of governed AI work."""

    RESEARCH_DEEP = "research_deep"
    RESEARCH_QUICK = "research_quick"
    EMAIL_GENERATION = "email_generation"
    EMAIL_VARIANTS = "email_variants"
    CLASSIFICATION = "classification"
    EXTRACTION = "extraction"
    PROJECT_GENERATION = "project_generation"
    PROJECT_VALIDATION = "project_validation"
    SYNTHESIS = "synthesis"
    ANALYSIS = "analysis"
    OPTIMIZATION = "optimization"
    VALIDATION = "validation"
    TRANSFORMATION = "transformation"


class QualityLevel(StrEnum):
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


class Complexity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _COMPLEXITY_RANK[self]


_COMPLEXITY_RANK = {Complexity.LOW: 0, Complexity.MEDIUM: 1, Complexity.HIGH: 2}


class Provider(StrEnum):
    OPENAI = "openai"
    PERPLEXITY = "perplexity"


# Minimum quality_score a model needs for each requested quality level
QUALITY_FLOORS: dict[QualityLevel, int] = {
    QualityLevel.BASIC: 5,
    QualityLevel.STANDARD: 7,
    QualityLevel.PREMIUM: 8,
}

# Complexity tier each task type demands of a model
TASK_COMPLEXITY: dict[TaskType, Complexity] = {
    TaskType.RESEARCH_DEEP: Complexity.HIGH,
    TaskType.RESEARCH_QUICK: Complexity.MEDIUM,
    TaskType.EMAIL_GENERATION: Complexity.HIGH,
    TaskType.EMAIL_VARIANTS: Complexity.MEDIUM,
    TaskType.CLASSIFICATION: Complexity.LOW,
    TaskType.EXTRACTION: Complexity.LOW,
    TaskType.PROJECT_GENERATION: Complexity.HIGH,
    TaskType.PROJECT_VALIDATION: Complexity.MEDIUM,
    TaskType.SYNTHESIS: Complexity.HIGH,
    TaskType.ANALYSIS: Complexity.MEDIUM,
    TaskType.OPTIMIZATION: Complexity.MEDIUM,
    TaskType.VALIDATION: Complexity.LOW,
    TaskType.TRANSFORMATION: Complexity.LOW,
}


@dataclass(frozen=True)
class ModelCapability:
    """What one model is good for.

    Attributes:
        model: Model identifier as sent to the provider
        provider: Provider serving the model
        suitable_tasks: Task types the model may be selected for
        quality_score: Output quality, 1 (poor) to 10 (best)
        speed_score: Latency, 1 (slow) to 10 (fastest)
        max_complexity: Highest task complexity the model handles well
    """

    model: str
    provider: Provider
    suitable_tasks: frozenset[TaskType]
    quality_score: int
    speed_score: int
    max_complexity: Complexity

    def __post_init__(self) -> None:
        if not 1 <= self.quality_score <= 10:
            raise ValueError("quality_score must be between 1 and 10")
        if not 1 <= self.speed_score <= 10:
            raise ValueError("speed_score must be between 1 and 10")

    def handles(self, complexity: Complexity) -> bool:
        return self.max_complexity.rank >= complexity.rank


DEFAULT_CAPABILITIES: tuple[ModelCapability, ...] = (
    ModelCapability(
        model="gpt-4o",
        provider=Provider.OPENAI,
        suitable_tasks=frozenset(
            {
                TaskType.RESEARCH_DEEP,
                TaskType.EMAIL_GENERATION,
                TaskType.PROJECT_GENERATION,
                TaskType.SYNTHESIS,
                TaskType.ANALYSIS,
            }
        ),
        quality_score=10,
        speed_score=6,
        max_complexity=Complexity.HIGH,
    ),
    ModelCapability(
        model="gpt-4o-mini",
        provider=Provider.OPENAI,
        suitable_tasks=frozenset(
            {
                TaskType.RESEARCH_QUICK,
                TaskType.EMAIL_GENERATION,
                TaskType.EMAIL_VARIANTS,
                TaskType.CLASSIFICATION,
                TaskType.EXTRACTION,
                TaskType.PROJECT_VALIDATION,
                TaskType.ANALYSIS,
                TaskType.OPTIMIZATION,
                TaskType.VALIDATION,
                TaskType.TRANSFORMATION,
                TaskType.SYNTHESIS,
            }
        ),
        quality_score=8,
        speed_score=9,
        max_complexity=Complexity.MEDIUM,
    ),
    ModelCapability(
        model="gpt-3.5-turbo",
        provider=Provider.OPENAI,
        suitable_tasks=frozenset(
            {
                TaskType.CLASSIFICATION,
                TaskType.EXTRACTION,
                TaskType.VALIDATION,
                TaskType.TRANSFORMATION,
                TaskType.RESEARCH_QUICK,
                TaskType.EMAIL_VARIANTS,
                TaskType.PROJECT_VALIDATION,
            }
        ),
        quality_score=6,
        speed_score=10,
        max_complexity=Complexity.LOW,
    ),
    ModelCapability(
        model="sonar-deep-research",
        provider=Provider.PERPLEXITY,
        suitable_tasks=frozenset(
            {
                TaskType.RESEARCH_DEEP,
                TaskType.RESEARCH_QUICK,
                TaskType.ANALYSIS,
                TaskType.SYNTHESIS,
            }
        ),
        quality_score=9,
        speed_score=5,
        max_complexity=Complexity.HIGH,
    ),
    ModelCapability(
        model="sonar-pro",
        provider=Provider.PERPLEXITY,
        suitable_tasks=frozenset(
            {TaskType.RESEARCH_QUICK, TaskType.ANALYSIS, TaskType.EXTRACTION}
        ),
        quality_score=7,
        speed_score=7,
        max_complexity=Complexity.MEDIUM,
    ),
    ModelCapability(
        model="sonar",
        provider=Provider.PERPLEXITY,
        suitable_tasks=frozenset(
            {TaskType.RESEARCH_QUICK, TaskType.CLASSIFICATION, TaskType.EXTRACTION}
        ),
        quality_score=6,
        speed_score=8,
        max_complexity=Complexity.LOW,
    ),
)
