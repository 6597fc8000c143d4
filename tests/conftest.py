"""
Shared test fixtures for pytest.

Provides common fakes for all test modules:
- fake_settings: Test environment configuration (in-memory store)
- clock: Controllable monotonic/epoch clock (FakeClock)
- fake_sleep: Records requested sleeps and advances the clock instead of waiting
- date_clock: Controllable UTC datetime clock for the cost guard
- counter_store: Fresh InMemoryCounterStore bound to the fake clock
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from ai_governance.config import Environment, Settings, StoreBackend, get_settings
from ai_governance.cost.store import InMemoryCounterStore


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #

@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ------------------------------------------------------------------ #
# Time fakes
# ------------------------------------------------------------------ #

class FakeClock:
    """Callable clock returning a float that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Async sleep replacement that records delays and advances a FakeClock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FakeDateClock:
    """Callable returning a timezone-aware datetime for day-bucketed counters."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 14, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    @property
    def today(self) -> str:
        return self.now.strftime("%Y-%m-%d")


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #

@pytest.fixture
def fake_settings() -> Settings:
    """Test environment settings with an in-process store and no real keys."""
    return Settings(
        environment=Environment.TEST,
        store_backend=StoreBackend.MEMORY,
        redis_url=None,
        openai_api_key="sk-test-openai",
        perplexity_api_key="pplx-test",
        max_daily_api_cost_usd=100.0,
        max_user_daily_cost_usd=10.0,
        pricing_table_path=None,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def date_clock() -> FakeDateClock:
    return FakeDateClock()


@pytest.fixture
def counter_store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)
