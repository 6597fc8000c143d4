"""Pricing table for metered AI models.

Prices are USD per 1K tokens, split into input and output rates. The
built-in table is versioned and can be replaced at startup by a JSON file
(PRICING_TABLE_PATH) so price changes do not need a release:

    {
        "version": "2026-01",
        "models": {
            "gpt-4o": {"provider": "openai", "input_per_1k": 0.0025, "output_per_1k": 0.01}
        }
    }

Model lookup is case-insensitive.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from ai_governance.errors import PricingTableError

log = structlog.get_logger(__name__)

# Rough characters-per-token ratio for English text
CHARS_PER_TOKEN = 4
# Tokens added for system prompt and message framing
DEFAULT_TOKEN_OVERHEAD = 100


class ModelPricing(BaseModel):
    """Per-1K-token prices for one model."""

    provider: str
    input_per_1k: float = Field(ge=0)
    output_per_1k: float = Field(ge=0)

    @property
    def combined_per_1k(self) -> float:
        return self.input_per_1k + self.output_per_1k


class PricingTable(BaseModel):
    """Versioned mapping of model name to pricing."""

    version: str
    models: dict[str, ModelPricing] = Field(min_length=1)

    @field_validator("models")
    @classmethod
    def _lowercase_names(cls, models: dict[str, ModelPricing]) -> dict[str, ModelPricing]:
        return {name.lower(): pricing for name, pricing in models.items()}

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PricingTable:
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise PricingTableError(f"invalid pricing table: {exc}") from exc

    @classmethod
    def from_file(cls, path: str | Path) -> PricingTable:
        """Load a pricing table from a JSON file.

        Raises:
            PricingTableError: If the file is missing, unreadable or invalid
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise PricingTableError(f"cannot read pricing table {path}: {exc}") from exc
        except ValueError as exc:
            raise PricingTableError(f"pricing table {path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise PricingTableError(f"pricing table {path} must be a JSON object")
        table = cls.from_dict(data)
        log.info(
            "pricing.table_loaded",
            path=str(path),
            version=table.version,
            models=len(table.models),
        )
        return table

    # ------------------------------------------------------------------ #
    # Lookup
    # ------------------------------------------------------------------ #

    def get(self, model: str) -> ModelPricing | None:
        return self.models.get(model.lower())

    def most_expensive(self) -> tuple[str, ModelPricing]:
        """The model with the highest combined input+output rate."""
        return max(self.models.items(), key=lambda item: item[1].combined_per_1k)

    def providers(self) -> list[str]:
        return sorted({pricing.provider for pricing in self.models.values()})


DEFAULT_PRICING_TABLE = PricingTable(
    version="2025-01",
    models={
        # OpenAI
        "gpt-4o": ModelPricing(provider="openai", input_per_1k=0.0025, output_per_1k=0.01),
        "gpt-4o-mini": ModelPricing(provider="openai", input_per_1k=0.00015, output_per_1k=0.0006),
        "gpt-3.5-turbo": ModelPricing(provider="openai", input_per_1k=0.0005, output_per_1k=0.0015),
        # Perplexity
        "sonar-pro": ModelPricing(provider="perplexity", input_per_1k=0.001, output_per_1k=0.001),
        "sonar": ModelPricing(provider="perplexity", input_per_1k=0.0005, output_per_1k=0.0005),
        "sonar-medium": ModelPricing(provider="perplexity", input_per_1k=0.0015, output_per_1k=0.0015),
        "sonar-deep-research": ModelPricing(
            provider="perplexity", input_per_1k=0.001, output_per_1k=0.001
        ),
    },
)


def load_pricing_table(path: str | None) -> PricingTable:
    """Return the table at path, or the built-in table when path is unset."""
    if not path:
        return DEFAULT_PRICING_TABLE
    return PricingTable.from_file(path)


def estimate_tokens(text: str, overhead: int = DEFAULT_TOKEN_OVERHEAD) -> int:
    """Approximate token count of text (~4 characters per token) plus overhead."""
    return math.ceil(len(text) / CHARS_PER_TOKEN) + overhead
