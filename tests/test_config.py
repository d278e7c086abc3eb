"""Tests for stayconnected.config — settings loading and validation."""

import pydantic
import pytest

from stayconnected.config import Settings, _load_settings


class TestLoadSettings:
    def test_missing_database_path_exits(self, monkeypatch, capsys):
        monkeypatch.setenv("DATABASE_PATH", "")
        with pytest.raises(SystemExit) as exc:
            _load_settings()
        assert exc.value.code == 1
        assert "DATABASE_PATH" in capsys.readouterr().err

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("DATABASE_PATH", "/tmp/sc.db")
        for key in ("EMAIL_TIMEOUT_SECONDS", "SMS_MAX_RETRIES", "FROM_EMAIL", "LOG_LEVEL"):
            monkeypatch.delenv(key, raising=False)
        settings = _load_settings()
        assert settings.DATABASE_PATH == "/tmp/sc.db"
        assert settings.FROM_EMAIL == "notifications@stayconnected.app"
        assert settings.channel_timeout("email") == 10.0
        assert settings.channel_retries("sms") == 2
        assert settings.LOG_LEVEL == "INFO"

    def test_env_values_parsed(self, monkeypatch):
        monkeypatch.setenv("DATABASE_PATH", "/tmp/sc.db")
        monkeypatch.setenv("PUSH_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = _load_settings()
        assert settings.channel_timeout("push") == 2.5
        assert settings.PORT == 9000
        assert settings.LOG_LEVEL == "DEBUG"


class TestSettingsValidation:
    def test_non_positive_timeout_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(DATABASE_PATH="x", SMS_TIMEOUT_SECONDS=0)

    def test_threshold_floor_is_one(self):
        assert Settings(DATABASE_PATH="x", DEFAULT_MISSED_CHECKIN_THRESHOLD=0).DEFAULT_MISSED_CHECKIN_THRESHOLD == 1

    def test_negative_retries_treated_as_zero(self):
        assert Settings(DATABASE_PATH="x", EMAIL_MAX_RETRIES=-1).channel_retries("email") == 0
