"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and default values.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from nanochat.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Test Settings defaults and nested views."""

    def test_gateway_defaults(self):
        settings = Settings()

        assert settings.gateway.NANOGPT_BASE_URL == "https://nano-gpt.com"
        assert settings.gateway.completions_base_url == "https://nano-gpt.com/api/v1"
        assert settings.gateway.GATEWAY_TIMEOUT > 0

    def test_media_polling_defaults(self):
        """Default polling budget is 5s x 120 attempts."""
        settings = Settings()

        assert settings.generation.MEDIA_POLL_INTERVAL_SECONDS == 5.0
        assert settings.generation.MEDIA_POLL_MAX_ATTEMPTS == 120

    def test_reconciliation_is_opt_in(self):
        settings = Settings()

        assert settings.generation.RECONCILE_ORPHANED_GENERATIONS is False

    def test_app_settings_have_valid_defaults(self):
        settings = Settings()

        assert len(settings.app.APP_NAME) > 0
        assert settings.app.API_BASE_PATH == "/api"
        assert settings.app.ENVIRONMENT in ["development", "staging", "production", "test"]

    def test_completions_url_joins_without_double_slash(self):
        settings = Settings(NANOGPT_BASE_URL="https://gateway.example.com/")

        assert settings.gateway.completions_base_url == "https://gateway.example.com/api/v1"


@pytest.mark.unit
class TestSettingsLoading:
    """Test settings loading from environment variables."""

    def test_settings_load_from_env_vars(self):
        env_vars = {
            "NANOGPT_API_KEY": "sk-from-env",
            "ENVIRONMENT": "staging",
            "MEDIA_POLL_MAX_ATTEMPTS": "3",
            "USE_FAKE_LLM": "true",
        }

        with patch.dict(os.environ, env_vars):
            settings = Settings()

            assert settings.gateway.NANOGPT_API_KEY == "sk-from-env"
            assert settings.app.ENVIRONMENT == "staging"
            assert settings.generation.MEDIA_POLL_MAX_ATTEMPTS == 3
            assert settings.generation.USE_FAKE_LLM is True

    def test_invalid_values_are_rejected(self):
        with patch.dict(os.environ, {"MEDIA_POLL_MAX_ATTEMPTS": "many"}):
            with pytest.raises(ValidationError):
                Settings()

    def test_log_level_is_normalized(self):
        assert Settings(LOG_LEVEL="debug").logging.LOG_LEVEL == "DEBUG"

    def test_unknown_log_level_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="verbose")

    def test_unknown_environment_is_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ENVIRONMENT="qa")


@pytest.mark.unit
class TestGetSettingsFunction:
    def test_get_settings_is_singleton(self):
        assert get_settings() is get_settings()

    def test_reload_settings_replaces_singleton(self):
        original = get_settings()

        with patch.dict(os.environ, {"APP_NAME": "Reloaded"}):
            reloaded = reload_settings()

        try:
            assert reloaded is not original
            assert reloaded.app.APP_NAME == "Reloaded"
            assert get_settings() is reloaded
        finally:
            reload_settings()
