"""Per-provider sliding window rate limiting for outbound calls.

Each provider gets an in-process ordered list of recent call timestamps.
Before a call, entries older than the longest window (one hour) are pruned;
if the per-minute or per-hour ceiling would be exceeded, the caller sleeps
until the oldest counted call leaves the window.

State is per process. Several workers each pace themselves independently,
so the effective ceiling across a deployment is workers x limit.

Thread safety: one asyncio.Lock per limiter serialises pacing, so waiting
callers are released one at a time in arrival order.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from ai_governance.config import Settings

log = structlog.get_logger(__name__)

MINUTE = 60.0
HOUR = 3600.0


@dataclass(frozen=True)
class RateLimitPolicy:
    """Call ceilings for one provider. 0 means unlimited."""

    per_minute: int = 0
    per_hour: int = 0

    def __post_init__(self) -> None:
        if self.per_minute < 0 or self.per_hour < 0:
            raise ValueError("rate limits cannot be negative")


class SlidingWindowRateLimiter:
    """Sliding window limiter for one provider."""

    def __init__(
        self,
        provider: str,
        policy: RateLimitPolicy,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.policy = policy
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._timestamps and self._timestamps[0] <= now - HOUR:
            self._timestamps.popleft()

    def _wait_needed(self, now: float) -> float:
        waits = [0.0]
        for limit, window in ((self.policy.per_minute, MINUTE), (self.policy.per_hour, HOUR)):
            if limit <= 0:
                continue
            in_window = [ts for ts in self._timestamps if ts > now - window]
            if len(in_window) >= limit:
                # The call that must age out before one more fits
                oldest_counted = in_window[-limit]
                waits.append(oldest_counted + window - now)
        return max(waits)

    async def acquire(self) -> float:
        """Wait until a call fits within every window, then count it.

        Returns:
            Seconds spent waiting (0.0 when no pacing was needed)
        """
        async with self._lock:
            now = self._clock()
            self._prune(now)
            wait = self._wait_needed(now)
            if wait > 0:
                log.info(
                    "rate_limiter.pacing",
                    provider=self.provider,
                    wait_seconds=round(wait, 3),
                    recent_calls=len(self._timestamps),
                )
                await self._sleep(wait)
                now = self._clock()
                self._prune(now)
            self._timestamps.append(now)
            return wait

    def usage(self) -> dict[str, int]:
        """Calls counted in the current minute and hour windows."""
        now = self._clock()
        self._prune(now)
        return {
            "last_minute": sum(1 for ts in self._timestamps if ts > now - MINUTE),
            "last_hour": len(self._timestamps),
        }


class RateLimiterRegistry:
    """One SlidingWindowRateLimiter per provider, created on first use."""

    def __init__(
        self,
        policies: dict[str, RateLimitPolicy] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._policies = dict(policies or {})
        self._clock = clock
        self._sleep = sleep
        self._limiters: dict[str, SlidingWindowRateLimiter] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> RateLimiterRegistry:
        return cls(
            {
                "openai": RateLimitPolicy(
                    per_minute=settings.openai_requests_per_minute,
                    per_hour=settings.openai_requests_per_hour,
                ),
                "perplexity": RateLimitPolicy(
                    per_minute=settings.perplexity_requests_per_minute,
                    per_hour=settings.perplexity_requests_per_hour,
                ),
            }
        )

    def get(self, provider: str) -> SlidingWindowRateLimiter:
        limiter = self._limiters.get(provider)
        if limiter is None:
            limiter = SlidingWindowRateLimiter(
                provider,
                self._policies.get(provider, RateLimitPolicy()),
                clock=self._clock,
                sleep=self._sleep,
            )
            self._limiters[provider] = limiter
        return limiter

    async def acquire(self, provider: str) -> float:
        return await self.get(provider).acquire()
