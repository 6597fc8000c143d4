"""Structured logging configuration for the governance layer.

Configures structlog with JSON output in production and a console renderer
in development. Governed calls bind their user and task context through
contextvars so every log line emitted while serving the call carries it.

Log format (production):
    {
        "timestamp": "2026-02-17T10:30:45.123456Z",
        "level": "warning",
        "logger": "ai_governance.cost.guard",
        "event": "cost_guard.limit_exceeded",
        "user_id": "user_123...",
        "task_type": "classification",
        "limit_type": "user"
    }
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import Processor


def configure_logging(
    *,
    json_logs: bool = False,
    log_level: str = "INFO",
) -> None:
    """Configure structured logging for the process.

    Args:
        json_logs: Use JSON format (True for production, False for dev)
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ------------------------------------------------------------------ #
# Context Binding Helpers
# ------------------------------------------------------------------ #


def mask_user_id(user_id: str | None) -> str:
    """Shorten a user id for log output ("global" when absent)."""
    if not user_id:
        return "global"
    return f"{user_id[:8]}..." if len(user_id) > 8 else user_id


def bind_user_context(user_id: str | None) -> None:
    """Bind the (masked) user id of the current governed call."""
    structlog.contextvars.bind_contextvars(user_id=mask_user_id(user_id))


def bind_request_context(*, task_type: str, namespace: str) -> None:
    """Bind task and cache namespace of the current governed call."""
    structlog.contextvars.bind_contextvars(task_type=task_type, namespace=namespace)


def clear_context() -> None:
    """Clear all context variables (useful for testing)."""
    structlog.contextvars.clear_contextvars()
