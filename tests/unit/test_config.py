"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from storefront.core.config import Settings, get_settings


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            "APP_NAME": "test-app",
            "APP_ENV": "testing",
            "DEBUG": "true",
            "PORT": "9000",
            "PAYMENT_PROVIDER": "square",
            "SQUARE_LOCATION_ID": "LOC123",
            "CHECKOUT_RATE_LIMIT_REQUESTS": "3",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.debug is True
            assert settings.port == 9000
            assert settings.payment_provider == "square"
            assert settings.square_location_id == "LOC123"
            assert settings.checkout_rate_limit_requests == 3

    def test_settings_cors_origins_list(self) -> None:
        with patch.dict(os.environ, {"CORS_ORIGINS": "http://localhost:3000, http://example.com ,"}, clear=False):
            settings = Settings()

            assert settings.cors_origins_list == ["http://localhost:3000", "http://example.com"]

    def test_admin_roles_list(self) -> None:
        with patch.dict(os.environ, {"ADMIN_ROLES": "admin, subadmin, ops"}, clear=False):
            assert Settings().admin_roles_list == ["admin", "subadmin", "ops"]

    def test_exchange_rates(self) -> None:
        with patch.dict(os.environ, {"EXCHANGE_RATE_CAD": "1.40"}, clear=False):
            rates = Settings().exchange_rates

            assert rates["USD"] == 1.0
            assert rates["CAD"] == 1.40
            assert rates["MXN"] == 17.50

    def test_unknown_payment_provider_is_rejected(self) -> None:
        with patch.dict(os.environ, {"PAYMENT_PROVIDER": "paypal"}, clear=False):
            with pytest.raises(ValidationError):
                Settings()

    def test_production_requires_supabase_credentials(self) -> None:
        env_vars = {
            "APP_ENV": "production",
            "STORAGE_BACKEND": "supabase",
            "SUPABASE_URL": "",
            "SUPABASE_SECRET_KEY": "",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            with pytest.raises(ValidationError):
                Settings()

    def test_production_with_memory_backend_boots(self) -> None:
        with patch.dict(os.environ, {"APP_ENV": "production", "STORAGE_BACKEND": "memory"}, clear=False):
            settings = Settings()

            assert settings.is_production is True

    def test_stripe_test_mode(self) -> None:
        with patch.dict(os.environ, {"STRIPE_SECRET_KEY": "sk_live_abc"}, clear=False):
            assert Settings().is_stripe_test_mode is False


class TestGetSettings:
    """Tests for the cached settings accessor."""

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()

    def test_cache_clear_reloads(self) -> None:
        first = get_settings()
        get_settings.cache_clear()
        try:
            assert get_settings() is not first
        finally:
            get_settings.cache_clear()
