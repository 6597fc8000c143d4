"""Telemetry package: structured logging and log context helpers."""

from __future__ import annotations

from ai_governance.telemetry.logging import (
    bind_request_context,
    bind_user_context,
    clear_context,
    configure_logging,
    mask_user_id,
)

__all__ = [
    "bind_request_context",
    "bind_user_context",
    "clear_context",
    "configure_logging",
    "mask_user_id",
]
