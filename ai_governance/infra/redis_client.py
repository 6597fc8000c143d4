"""Shared async Redis client construction.

The counter store and the cache backend talk to the same Redis deployment;
build_services() creates one client and hands it to both so they share a
connection pool. Connections are opened lazily on the first command, so
constructing a client never blocks or fails on an unreachable server.
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

# Errors that mean "store unreachable or misbehaving" rather than a bug
REDIS_FAILURES: tuple[type[BaseException], ...] = (RedisError, OSError, TimeoutError)


def create_redis_client(redis_url: str, token: str | None = None) -> Any:
    """Return a redis.asyncio client with string responses.

    Args:
        redis_url: redis:// or rediss:// URL
        token: Optional password / access token (URL credentials win)
    """
    kwargs: dict[str, Any] = {
        "encoding": "utf-8",
        "decode_responses": True,
        "socket_connect_timeout": 5,
        "socket_timeout": 5,
    }
    if token:
        kwargs["password"] = token
    return aioredis.from_url(redis_url, **kwargs)
