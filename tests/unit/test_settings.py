"""Unit tests for configuration (config/settings.py, config/logging_config.py)."""

import logging
import os
from pathlib import Path

import pytest
import structlog
from pydantic import ValidationError

from authcycle.auth.credentials import ProviderId
from authcycle.config import configure_logging, get_settings
from authcycle.config.settings import AuthcycleSettings


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run with no AUTHCYCLE_ variables and no .env file in reach."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("AUTHCYCLE_"):
            monkeypatch.delenv(name)
    return tmp_path


class TestDefaults:
    """Test default settings."""

    def test_defaults(self, clean_env):
        settings = AuthcycleSettings()

        assert settings.auth_type is ProviderId.GOOGLE
        assert settings.cache.enabled
        assert settings.cache.directory == clean_env / "Cache"
        assert settings.refresh.max_attempts == 5
        assert settings.refresh.backoff_step_seconds == 5
        assert settings.refresh.backoff_cap_seconds == 60
        assert settings.refresh.ticket_skew_minutes == 10
        assert settings.log_level == "INFO"

    def test_relative_cache_directory_is_resolved(self, clean_env):
        settings = AuthcycleSettings(cache={"directory": "tokens"})
        assert settings.cache.directory == clean_env / "tokens"


class TestEnvironment:
    """Test loading from environment variables."""

    def test_env_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("AUTHCYCLE_AUTH_TYPE", "ptc")
        monkeypatch.setenv("AUTHCYCLE_PTC_USERNAME", "ash")
        monkeypatch.setenv("AUTHCYCLE_PTC_PASSWORD", "pikachu")
        monkeypatch.setenv("AUTHCYCLE_REFRESH__MAX_ATTEMPTS", "3")
        monkeypatch.setenv("AUTHCYCLE_CACHE__ENABLED", "false")

        settings = AuthcycleSettings()

        assert settings.auth_type is ProviderId.PTC
        assert settings.ptc_username == "ash"
        assert settings.ptc_password.get_secret_value() == "pikachu"
        assert settings.refresh.max_attempts == 3
        assert not settings.cache.enabled

    def test_password_is_not_shown(self, clean_env, monkeypatch):
        monkeypatch.setenv("AUTHCYCLE_GOOGLE_PASSWORD", "hunter2")
        assert "hunter2" not in repr(AuthcycleSettings())

    def test_dotenv_file(self, clean_env):
        Path(".env").write_text("AUTHCYCLE_AUTH_TYPE=ptc\nAUTHCYCLE_LOG_LEVEL=DEBUG\n")

        settings = AuthcycleSettings()

        assert settings.auth_type is ProviderId.PTC
        assert settings.log_level == "DEBUG"

    def test_get_settings_is_cached(self, clean_env):
        assert get_settings() is get_settings()


class TestValidation:
    """Test rejected values."""

    def test_unknown_auth_type(self, clean_env):
        with pytest.raises(ValidationError):
            AuthcycleSettings(auth_type="facebook")

    def test_attempts_must_be_positive(self, clean_env):
        with pytest.raises(ValidationError):
            AuthcycleSettings(refresh={"max_attempts": 0})


class TestLogging:
    """Test structlog configuration."""

    def test_configure_logging_levels(self):
        configure_logging("DEBUG")

        assert logging.getLogger("authcycle").level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_json_logs(self, capsys):
        configure_logging("INFO", json_logs=True)

        structlog.get_logger("authcycle.test").info("credential_refreshed", provider="ptc:ash")

        err = capsys.readouterr().err
        assert '"event": "credential_refreshed"' in err
        assert '"provider": "ptc:ash"' in err

    def test_level_filtering(self, capsys):
        configure_logging("WARNING", json_logs=True)

        structlog.get_logger("authcycle.test").info("hidden_event")

        assert "hidden_event" not in capsys.readouterr().err

    def teardown_method(self):
        structlog.reset_defaults()
