"""Tests for application and domain settings."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from src.alerts.config import AlertConfig
from src.alerts.dispatcher import NotificationConfig
from src.config.settings import Settings


class TestSettings:
    def test_api_key_list(self):
        assert Settings(api_keys=" a , b,, ").api_key_list == ["a", "b"]
        assert Settings(api_keys=None).api_key_list == []

    def test_cors_origin_list(self):
        settings = Settings(cors_origins="https://app.example.com, http://localhost:3000")
        assert settings.cors_origin_list == ["https://app.example.com", "http://localhost:3000"]

    def test_smtp_configured(self):
        assert not Settings(smtp_host=None).smtp_configured
        assert Settings(smtp_host="smtp.example.com").smtp_configured

    def test_is_production(self):
        assert Settings(environment="production").is_production
        assert not Settings(environment="staging").is_production


class TestAlertConfig:
    def test_default_cooldown_is_seven_days(self):
        assert AlertConfig().cooldown == timedelta(days=7)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ALERTS_COOLDOWN_DAYS", "3")
        monkeypatch.setenv("ALERTS_CHECK_CONCURRENCY", "8")

        config = AlertConfig()

        assert config.cooldown == timedelta(days=3)
        assert config.check_concurrency == 8

    def test_bounds(self):
        with pytest.raises(ValidationError):
            AlertConfig(cooldown_days=0)


class TestNotificationConfig:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_QUEUE_TTL_HOURS", "12")
        assert NotificationConfig().queue_ttl_hours == 12
