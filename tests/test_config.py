"""Tests for configuration settings."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from jenkins_insights.config import Settings, get_settings


class TestSettings:
    """Tests for the Settings class."""

    def test_settings_loads_from_env_vars(self, mock_env_vars: dict[str, str]) -> None:
        """Test that Settings loads the bootstrap connection from the environment."""
        settings = Settings()
        assert settings.jenkins_url == mock_env_vars["JENKINS_URL"]
        assert settings.jenkins_user == mock_env_vars["JENKINS_USER"]
        assert settings.jenkins_token.get_secret_value() == mock_env_vars["JENKINS_TOKEN"]
        assert settings.bootstrap_enabled is True

    def test_settings_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
            assert settings.jenkins_url is None
            assert settings.jenkins_name == "Default Jenkins"
            assert settings.jenkins_ssl_verify is True
            assert settings.request_timeout == 30.0
            assert settings.bootstrap_enabled is False

    def test_token_is_not_exposed_in_repr(self, mock_env_vars: dict[str, str]) -> None:
        settings = Settings()
        assert mock_env_vars["JENKINS_TOKEN"] not in repr(settings)

    def test_bootstrap_requires_token(self) -> None:
        """Test that a URL without a token does not enable bootstrapping."""
        env = {"JENKINS_URL": "https://jenkins.example.com", "JENKINS_USER": "u"}
        with patch.dict(os.environ, env, clear=True):
            assert Settings(_env_file=None).bootstrap_enabled is False

    def test_ssl_verify_from_env(self) -> None:
        with patch.dict(os.environ, {"JENKINS_SSL_VERIFY": "false"}, clear=True):
            assert Settings(_env_file=None).jenkins_ssl_verify is False

    def test_request_timeout_must_be_positive(self) -> None:
        with patch.dict(os.environ, {"REQUEST_TIMEOUT": "0"}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestGetSettings:
    """Tests for the get_settings function."""

    def test_get_settings_is_cached(self, mock_env_vars: dict[str, str]) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
