"""Tests for idmatch.clients.settings module."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from idmatch.clients.settings import Settings
from idmatch.core.errors import ConfigurationError


class TestSettings:
    """Tests for Settings class."""

    def test_settings_default_values(self):
        """Test Settings default values for every field."""
        # Patch both os.environ AND the .env file to prevent leakage
        with (
            patch.dict(os.environ, {}, clear=True),
            patch("pydantic_settings.sources.DotEnvSettingsSource.__call__", return_value={}),
        ):
            settings = Settings()
            assert settings.idmatch_match_threshold == 0.7
            assert settings.idmatch_non_match_threshold == 0.3
            assert settings.idmatch_integration_mode == "hybrid"
            assert settings.idmatch_ml_weight == 0.5
            assert settings.idmatch_timeout_ms == 5000.0
            assert settings.idmatch_fallback_on_error is True
            assert settings.idmatch_weights_path is None
            assert settings.wandb_api_key is None
            assert settings.wandb_project == "idmatch"
            assert settings.wandb_entity is None

    def test_settings_from_environment(self):
        """Test Settings reads environment variables case-insensitively."""
        with (
            patch.dict(
                os.environ,
                {
                    "IDMATCH_MATCH_THRESHOLD": "0.8",
                    "IDMATCH_INTEGRATION_MODE": "fallback",
                    "IDMATCH_TIMEOUT_MS": "250",
                    "IDMATCH_FALLBACK_ON_ERROR": "false",
                    "IDMATCH_WEIGHTS_PATH": "models/customer.json",
                    "WANDB_API_KEY": "wandb-test123",
                    "WANDB_PROJECT": "custom-project",
                    "WANDB_ENTITY": "my-team",
                },
                clear=True,
            ),
            patch("pydantic_settings.sources.DotEnvSettingsSource.__call__", return_value={}),
        ):
            settings = Settings()
            assert settings.idmatch_match_threshold == 0.8
            assert settings.idmatch_integration_mode == "fallback"
            assert settings.idmatch_timeout_ms == 250.0
            assert settings.idmatch_fallback_on_error is False
            assert settings.idmatch_weights_path == Path("models/customer.json")
            assert settings.wandb_api_key == "wandb-test123"
            assert settings.wandb_project == "custom-project"
            assert settings.wandb_entity == "my-team"

    def test_settings_invalid_mode(self):
        """Test an unknown integration mode is rejected."""
        with pytest.raises(ValidationError):
            Settings(idmatch_integration_mode="ml_first")

    def test_settings_ignore_unknown_env(self):
        """Test unrelated environment variables are ignored."""
        with (
            patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}, clear=True),
            patch("pydantic_settings.sources.DotEnvSettingsSource.__call__", return_value={}),
        ):
            settings = Settings()
            assert not hasattr(settings, "openai_api_key")


class TestDerivedConfigs:
    """Tests for building config models from Settings."""

    def test_classifier_config(self):
        """Test thresholds flow into ClassifierConfig."""
        settings = Settings(idmatch_match_threshold=0.9, idmatch_non_match_threshold=0.2)
        config = settings.classifier_config()
        assert config.match_threshold == 0.9
        assert config.non_match_threshold == 0.2

    def test_classifier_config_invalid_order(self):
        """Test inverted thresholds fail when the config is built."""
        settings = Settings(idmatch_match_threshold=0.2, idmatch_non_match_threshold=0.5)
        with pytest.raises(ConfigurationError):
            settings.classifier_config()

    def test_integration_config(self):
        """Test integration settings flow into IntegrationConfig."""
        settings = Settings(
            idmatch_integration_mode="ml_only",
            idmatch_ml_weight=0.3,
            idmatch_timeout_ms=100,
            idmatch_fallback_on_error=False,
        )
        config = settings.integration_config()
        assert config.mode == "ml_only"
        assert config.ml_weight == 0.3
        assert config.timeout_ms == 100.0
        assert config.fallback_on_error is False
        assert config.apply_to == "all"
