"""Retry wrapper and error classification for provider HTTP calls.

Classification:
- 2xx: success
- 401: ProviderAuthenticationError, never retried
- 429: ProviderRateLimitError, retried after Retry-After (seconds or
  HTTP-date) or exponential backoff when the header is absent
- other 4xx: ProviderPermanentError, never retried
- 5xx: ProviderTransientError, retried with exponential backoff

Backoff starts at base_delay and doubles per attempt, capped at max_delay
(which also caps Retry-After). After max_attempts the last error
propagates unchanged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from ai_governance.errors import (
    ProviderAuthenticationError,
    ProviderPermanentError,
    ProviderRateLimitError,
    ProviderTransientError,
)

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """How transient provider failures are retried."""

    max_attempts: int = 4  # 1 call + 3 retries
    base_delay: float = 1.0
    max_delay: float = 60.0
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff(self, attempt_number: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.base_delay * 2 ** (attempt_number - 1), self.max_delay)


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP-date)."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - (now or datetime.now(UTC))).total_seconds())


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.reason_phrase or f"HTTP {response.status_code}"


def classify_response(provider: str, response: httpx.Response) -> None:
    """Raise the matching provider error for a non-2xx response."""
    status = response.status_code
    if 200 <= status < 300:
        return

    message = _error_message(response)
    if status == 401:
        raise ProviderAuthenticationError(provider, message, status_code=status)
    if status == 429:
        raise ProviderRateLimitError(
            provider,
            message,
            status_code=status,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )
    if status >= 500:
        raise ProviderTransientError(provider, message, status_code=status)
    raise ProviderPermanentError(provider, message, status_code=status)


def _wait_for(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, ProviderRateLimitError) and exc.retry_after is not None:
            return min(exc.retry_after, policy.max_delay)
        return policy.backoff(retry_state.attempt_number)

    return wait


def _log_retry(provider: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "provider.retry_scheduled",
            provider=provider,
            attempt=retry_state.attempt_number,
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            status_code=getattr(exc, "status_code", None),
            error=str(exc),
        )

    return before_sleep


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    provider: str,
) -> T:
    """Run fn, retrying ProviderTransientError per policy.

    Permanent errors propagate on the first attempt. After the last
    attempt the final transient error propagates unchanged.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=_wait_for(policy),
        retry=retry_if_exception_type(ProviderTransientError),
        before_sleep=_log_retry(provider),
        sleep=policy.sleep,
        reraise=True,
    )
    try:
        return await retrying(fn)
    except ProviderTransientError as exc:
        log.error(
            "provider.retries_exhausted",
            provider=provider,
            attempts=policy.max_attempts,
            status_code=exc.status_code,
            error=str(exc),
        )
        raise
