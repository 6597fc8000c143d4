"""Governance layer for paid, rate-limited AI provider calls.

Caching, daily cost budgets, model selection, and paced, retried provider
calls, wired together by AIGovernor.
"""

from __future__ import annotations

from ai_governance.container import GovernanceServices, build_services, governance_services
from ai_governance.governor import AIGovernor, GovernedRequest, GovernedResult
from ai_governance.inputs import RecordInput

__version__ = "0.1.0"

__all__ = [
    "AIGovernor",
    "GovernedRequest",
    "GovernedResult",
    "GovernanceServices",
    "RecordInput",
    "build_services",
    "governance_services",
]
