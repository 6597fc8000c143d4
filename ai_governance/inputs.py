"""Explicit input record for governed classification and analysis calls.

Business objects (companies, projects) are reduced to this record before
they reach the governance layer. The layer only ever derives two things
from it: a cache content key and a token estimate.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ai_governance.cost.pricing import DEFAULT_TOKEN_OVERHEAD, estimate_tokens


@dataclass(frozen=True)
class RecordInput:
    name: str | None = None
    one_liner: str | None = None
    description: str | None = None
    long_description: str | None = None
    tags: tuple[str, ...] = ()

    def text(self) -> str:
        """All populated fields as prompt text, one per line."""
        parts = [
            value
            for value in (self.name, self.one_liner, self.description, self.long_description)
            if value
        ]
        if self.tags:
            parts.append("Tags: " + ", ".join(self.tags))
        return "\n".join(parts)

    def content_key(self, options: Mapping[str, Any] | None = None) -> str:
        """Cache content key covering every field plus the call options."""
        return "|".join(
            [
                self.name or "",
                self.one_liner or "",
                self.description or "",
                self.long_description or "",
                ",".join(sorted(self.tags)),
                json.dumps(dict(options or {}), sort_keys=True, default=str),
            ]
        )

    def estimate_tokens(self, overhead: int = DEFAULT_TOKEN_OVERHEAD) -> int:
        return estimate_tokens(self.text(), overhead)
