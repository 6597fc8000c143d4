"""Tests for governance configuration."""

import pytest
from pydantic import ValidationError

from ai_governance.config import Environment, Settings, StoreBackend, get_settings


class TestSettings:
    """Test Settings model and validation."""

    def test_default_limits(self, monkeypatch):
        monkeypatch.delenv("MAX_DAILY_API_COST_USD", raising=False)
        monkeypatch.delenv("MAX_USER_DAILY_COST_USD", raising=False)
        settings = Settings(_env_file=None)

        assert settings.max_daily_api_cost_usd == 100.0
        assert settings.max_user_daily_cost_usd == 10.0
        assert settings.cost_retention_days == 7
        assert settings.strict_budget_enforcement is False

    def test_limits_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("MAX_DAILY_API_COST_USD", "25.5")
        monkeypatch.setenv("MAX_USER_DAILY_COST_USD", "2")
        settings = Settings(_env_file=None)

        assert settings.max_daily_api_cost_usd == 25.5
        assert settings.max_user_daily_cost_usd == 2.0

    def test_non_positive_limit_rejected(self):
        with pytest.raises(ValidationError):
            Settings(max_daily_api_cost_usd=0)

    def test_production_rejects_memory_store(self):
        """An in-process store cannot share a budget between production workers."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(environment=Environment.PROD, store_backend=StoreBackend.MEMORY)
        assert "not allowed in production" in str(exc_info.value)

    def test_production_accepts_redis(self):
        settings = Settings(
            environment=Environment.PROD,
            store_backend=StoreBackend.REDIS,
            redis_url="redis://cache:6379/0",
        )
        assert settings.is_prod is True
        assert settings.is_dev is False

    def test_auto_backend_resolves_to_redis_with_url(self):
        settings = Settings(store_backend=StoreBackend.AUTO, redis_url="redis://localhost:6379/0")
        assert settings.resolved_store_backend == StoreBackend.REDIS

    def test_auto_backend_resolves_to_null_without_url(self):
        settings = Settings(store_backend=StoreBackend.AUTO, redis_url=None)
        assert settings.resolved_store_backend == StoreBackend.NULL

    def test_explicit_backend_wins(self):
        settings = Settings(store_backend=StoreBackend.MEMORY, redis_url="redis://localhost:6379/0")
        assert settings.resolved_store_backend == StoreBackend.MEMORY

    def test_retention_seconds(self):
        assert Settings(cost_retention_days=2).cost_retention_seconds == 172800

    def test_secrets_are_masked(self):
        settings = Settings(openai_api_key="sk-secret", redis_token="hunter2")
        assert "sk-secret" not in repr(settings)
        assert settings.redis_token.get_secret_value() == "hunter2"

    def test_is_dev_for_test_environment(self):
        settings = Settings(environment=Environment.TEST)
        assert settings.is_dev is True

    def test_environment_enum_values(self):
        assert Environment.DEV == "dev"
        assert Environment.PROD == "prod"
        assert Environment.TEST == "test"


class TestGetSettings:
    def test_cached_instance(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
