"""Infrastructure helpers shared by the store backends."""

from __future__ import annotations

from ai_governance.infra.redis_client import REDIS_FAILURES, create_redis_client

__all__ = ["REDIS_FAILURES", "create_redis_client"]
