"""Tests for application and alert engine settings."""

import pytest
from pydantic import ValidationError

from visit_alerts.alerts.config import AlertConfig
from visit_alerts.config.settings import Settings


class TestSettings:
    def test_defaults(self, test_settings):
        assert test_settings.is_production is False
        assert test_settings.email_configured is False
        assert test_settings.app_base_url == "https://app.example.com"

    def test_alerts_sender_falls_back(self, test_settings):
        assert test_settings.alerts_sender == "onboarding@resend.dev"

    def test_alerts_sender_override(self):
        settings = Settings(resend_from_alerts="alerts@acme.io", resend_api_key="re_x")
        assert settings.alerts_sender == "alerts@acme.io"
        assert settings.email_configured is True

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        assert Settings().is_production is True


class TestAlertConfig:
    def test_defaults(self):
        config = AlertConfig()
        assert config.dedup_window_minutes == 60
        assert config.dedup_window_seconds == 3600
        assert config.digest_lookback_hours == 24
        assert config.channel_timeout_seconds == 10.0
        assert "cto" in config.executive_terms

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ALERTS_DEDUP_WINDOW_MINUTES", "15")
        monkeypatch.setenv("ALERTS_CHANNEL_TIMEOUT_SECONDS", "2.5")
        config = AlertConfig()
        assert config.dedup_window_seconds == 900
        assert config.channel_timeout_seconds == 2.5

    def test_rejects_zero_window(self):
        with pytest.raises(ValidationError):
            AlertConfig(dedup_window_minutes=0)
