"""
Governance layer configuration via pydantic-settings.

All settings are loaded from environment variables (or a .env file in dev).
Services never read the environment themselves; they receive a Settings
instance from the process entry point (see ai_governance.container).
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class StoreBackend(StrEnum):
    """Strategy for the shared counter / cache store."""

    AUTO = "auto"  # redis when REDIS_URL is set, otherwise null
    REDIS = "redis"
    MEMORY = "memory"  # single process only, dev and tests
    NULL = "null"  # no-op store, caching and cost tracking disabled


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Application
    # ------------------------------------------------------------------ #
    environment: Environment = Environment.DEV
    log_level: str = Field(default="INFO", description="Minimum log level")
    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON (production) instead of console output",
    )

    # ------------------------------------------------------------------ #
    # Cost guard
    # ------------------------------------------------------------------ #
    max_daily_api_cost_usd: float = Field(
        default=100.0,
        gt=0,
        description="Global daily ceiling on metered AI spend (USD)",
    )
    max_user_daily_cost_usd: float = Field(
        default=10.0,
        gt=0,
        description="Per-user daily ceiling on metered AI spend (USD)",
    )
    cost_retention_days: int = Field(
        default=7,
        ge=1,
        description="Days a daily spend counter is kept after its last write",
    )
    strict_budget_enforcement: bool = Field(
        default=False,
        description=(
            "Admit calls by reserving their estimated cost up front and rolling "
            "back on overshoot, instead of check-then-record."
        ),
    )
    pricing_table_path: str | None = Field(
        default=None,
        description="JSON pricing table that replaces the built-in one",
    )

    # ------------------------------------------------------------------ #
    # Shared store (Redis)
    # ------------------------------------------------------------------ #
    store_backend: StoreBackend = StoreBackend.AUTO
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL for spend counters and cached responses",
    )
    redis_token: SecretStr | None = Field(
        default=None,
        description="Redis password / access token",
    )

    # ------------------------------------------------------------------ #
    # Cache
    # ------------------------------------------------------------------ #
    cache_default_ttl_seconds: int = Field(default=1800, ge=1)
    cache_default_namespace: str = Field(default="ai_cache", min_length=1)

    # ------------------------------------------------------------------ #
    # Providers
    # ------------------------------------------------------------------ #
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    perplexity_api_key: SecretStr = Field(default=SecretStr(""))
    perplexity_base_url: str = Field(default="https://api.perplexity.ai")
    provider_timeout_seconds: float = Field(default=60.0, gt=0)

    openai_requests_per_minute: int = Field(default=60, ge=0)
    openai_requests_per_hour: int = Field(default=3000, ge=0)
    perplexity_requests_per_minute: int = Field(default=20, ge=0)
    perplexity_requests_per_hour: int = Field(default=200, ge=0)

    retry_max_attempts: int = Field(default=4, ge=1, le=10)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=60.0, gt=0)

    # ------------------------------------------------------------------ #
    # Derived / Computed
    # ------------------------------------------------------------------ #
    @model_validator(mode="after")
    def _validate_production_store(self) -> Settings:
        """An in-process store cannot share a budget between workers."""
        if self.environment == Environment.PROD and self.store_backend == StoreBackend.MEMORY:
            raise ValueError(
                "STORE_BACKEND=memory is not allowed in production; "
                "use redis (or null to disable tracking explicitly)"
            )
        return self

    @property
    def resolved_store_backend(self) -> StoreBackend:
        """Concrete backend after resolving AUTO against the configured URL."""
        if self.store_backend != StoreBackend.AUTO:
            return self.store_backend
        return StoreBackend.REDIS if self.redis_url else StoreBackend.NULL

    @property
    def cost_retention_seconds(self) -> int:
        return self.cost_retention_days * 86400

    @property
    def is_dev(self) -> bool:
        return self.environment in (Environment.DEV, Environment.TEST)

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PROD


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings for process entry points.

    Library code takes Settings as a constructor argument instead of
    calling this.
    """
    return Settings()
