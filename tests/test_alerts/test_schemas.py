"""Tests for alert schemas and settings parsing."""

from datetime import datetime, timezone

import pytest

from visit_alerts.alerts.schemas import (
    Alert,
    AlertCandidate,
    AlertKind,
    Recipient,
    RecipientAlertSettings,
)
from tests.test_alerts.conftest import _make_alert


class TestRecipientAlertSettings:
    def test_defaults_when_missing(self):
        s = RecipientAlertSettings.from_json(None)
        assert s.enabled is True
        assert s.email is True
        assert s.slack is True
        assert s.email_digest == "instant"
        assert s.webhook_url is None

    def test_only_explicit_false_disables(self):
        s = RecipientAlertSettings.from_json({"email": False, "slack": None, "enabled": 0})
        assert s.email is False
        assert s.slack is True
        assert s.enabled is True

    def test_camel_case_keys(self):
        s = RecipientAlertSettings.from_json({
            "emailDigest": "daily",
            "webhookUrl": "https://hooks.example.com/a",
            "slackWebhookUrl": "https://hooks.slack.com/x",
            "executiveVisit": False,
        })
        assert s.uses_daily_digest is True
        assert s.webhook_url == "https://hooks.example.com/a"
        assert s.slack_webhook_url == "https://hooks.slack.com/x"
        assert s.executive_visit is False

    def test_unknown_digest_mode_is_instant(self):
        assert RecipientAlertSettings.from_json({"emailDigest": "weekly"}).email_digest == "instant"

    def test_json_string(self):
        s = RecipientAlertSettings.from_json('{"enabled": false}')
        assert s.enabled is False

    def test_empty_webhook_url_is_none(self):
        assert RecipientAlertSettings.from_json({"webhookUrl": ""}).webhook_url is None


class TestRecipient:
    def test_settings_blob_slack_url_is_only_parsed(self):
        r = Recipient(
            user_id="u1",
            email=None,
            settings=RecipientAlertSettings(slack_webhook_url="https://from-settings"),
        )
        assert r.slack_webhook_url is None
        assert r.settings.slack_webhook_url == "https://from-settings"


class TestAlert:
    def test_defaults(self):
        alert = _make_alert()
        assert alert.sent_via_email is False
        assert alert.sent_via_slack is False
        assert alert.sent_via_webhook is False
        assert alert.is_read is False
        assert len(alert.alert_id) == 36

    def test_kind_string_is_coerced(self):
        alert = _make_alert(kind="FORM_SUBMISSION")
        assert alert.kind is AlertKind.FORM_SUBMISSION

    def test_invalid_kind(self):
        with pytest.raises(ValueError, match="Invalid kind"):
            _make_alert(kind="PAGE_VIEW")

    def test_from_candidate_copies_payload(self):
        candidate = AlertCandidate(
            kind=AlertKind.CTA_CLICKED, title="t", message="m", data={"a": 1},
        )
        alert = Alert.from_candidate(
            candidate, user_id="u1", campaign_id="c1", visit_id="v1",
        )
        candidate.data["a"] = 2
        assert alert.data == {"a": 1}
        assert alert.visit_id == "v1"

    def test_dict_conversion(self):
        alert = _make_alert(sent_via_slack=True)
        d = alert.to_dict()
        assert d["kind"] == "CTA_CLICKED"
        assert d["created_at"] == "2026-02-07T12:00:00+00:00"

        restored = Alert.from_dict(d)
        assert restored.kind is AlertKind.CTA_CLICKED
        assert restored.sent_via_slack is True
        assert restored.created_at == datetime(2026, 2, 7, 12, tzinfo=timezone.utc)

    def test_from_dict_parses_json_payload(self):
        alert = Alert.from_dict({
            "user_id": "u1",
            "campaign_id": "c1",
            "visit_id": "v1",
            "kind": "RETURNING_VISITOR",
            "title": "t",
            "message": "m",
            "data": '{"totalVisits": 3}',
        })
        assert alert.data == {"totalVisits": 3}
