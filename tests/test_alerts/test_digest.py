"""Tests for the daily digest job."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from visit_alerts.alerts.config import AlertConfig
from visit_alerts.alerts.digest import DigestService, wants_digest
from visit_alerts.alerts.mailer import SendResult
from visit_alerts.alerts.schemas import AlertKind
from tests.test_alerts.conftest import _make_alert, _make_recipient

NOW = datetime(2026, 2, 8, 8, 0, tzinfo=timezone.utc)
BASE_URL = "https://app.example.com"


def _recipients(*recipients):
    source = AsyncMock()
    source.list_digest_recipients.return_value = list(recipients)
    return source


def _daily(**kwargs):
    return _make_recipient({"emailDigest": "daily"}, **kwargs)


def _seed(store, user_id="user_1", hours_ago=2, **overrides):
    return store.add(_make_alert(
        user_id=user_id, created_at=NOW - timedelta(hours=hours_ago), **overrides,
    ))


class TestWantsDigest:
    def test_daily_recipient(self):
        assert wants_digest(_daily()) is True

    @pytest.mark.parametrize("settings", [
        {"emailDigest": "instant"},
        {"emailDigest": "daily", "enabled": False},
        {"emailDigest": "daily", "email": False},
    ])
    def test_ineligible_settings(self, settings):
        assert wants_digest(_make_recipient(settings)) is False

    def test_missing_email(self):
        assert wants_digest(_daily(email=None)) is False


class TestRunDailyDigests:
    @pytest.mark.asyncio
    async def test_one_email_marks_window_alerts_only(self, config, store, mailer):
        recent = [
            _seed(store, hours_ago=2, kind=AlertKind.CTA_CLICKED),
            _seed(store, hours_ago=3, kind=AlertKind.FORM_SUBMISSION),
            _seed(store, hours_ago=5, kind=AlertKind.MULTIPLE_CHAT_MESSAGES),
        ]
        stale = _seed(store, hours_ago=30)
        service = DigestService(config, store, _recipients(_daily()), mailer, BASE_URL)

        result = await service.run_daily_digests(now=NOW)

        assert mailer.send.await_count == 1
        to, subject, html = mailer.send.call_args[0]
        assert to == "owner@acme.io"
        assert subject == "Your alert digest: 3 alerts"
        assert "3 alerts from the last 24 hours." in html
        assert result.recipients_processed == 1
        assert result.emails_sent == 1
        assert result.alerts_marked == 3
        assert result.errors == []
        assert all(store.alerts[a.alert_id].sent_via_email for a in recent)
        assert store.alerts[stale.alert_id].sent_via_email is False

    @pytest.mark.asyncio
    async def test_already_emailed_alerts_are_excluded(self, config, store, mailer):
        _seed(store, sent_via_email=True)
        service = DigestService(config, store, _recipients(_daily()), mailer, BASE_URL)

        result = await service.run_daily_digests(now=NOW)

        mailer.send.assert_not_called()
        assert result.recipients_processed == 0

    @pytest.mark.asyncio
    async def test_send_failure_leaves_flags_unset(self, config, store, mailer):
        mailer.send.return_value = SendResult(ok=False, error="rate limited")
        alerts = [_seed(store), _seed(store, hours_ago=4)]
        service = DigestService(config, store, _recipients(_daily()), mailer, BASE_URL)

        result = await service.run_daily_digests(now=NOW)

        assert result.recipients_processed == 1
        assert result.emails_sent == 0
        assert result.alerts_marked == 0
        assert not any(store.alerts[a.alert_id].sent_via_email for a in alerts)

    @pytest.mark.asyncio
    async def test_skips_ineligible_recipients(self, config, store, mailer):
        recipients = [
            _make_recipient({"emailDigest": "daily", "enabled": False}, user_id="u_disabled"),
            _make_recipient({"emailDigest": "daily", "email": False}, user_id="u_email_off"),
            _make_recipient({"emailDigest": "instant"}, user_id="u_instant"),
            _daily(email=None, user_id="u_no_email"),
        ]
        for r in recipients:
            _seed(store, user_id=r.user_id)
        service = DigestService(config, store, _recipients(*recipients), mailer, BASE_URL)

        result = await service.run_daily_digests(now=NOW)

        mailer.send.assert_not_called()
        assert result.recipients_processed == 0
        assert not any(a.sent_via_email for a in store.alerts.values())

    @pytest.mark.asyncio
    async def test_one_recipient_failure_does_not_stop_others(self, config, store, mailer):
        _seed(store, user_id="u_broken")
        healthy = _seed(store, user_id="u_ok")
        original = store.get_pending_email

        async def get_pending_email(user_id, since):
            if user_id == "u_broken":
                raise ConnectionError("db timeout")
            return await original(user_id, since)

        store.get_pending_email = get_pending_email
        recipients = _recipients(_daily(user_id="u_broken"), _daily(user_id="u_ok"))
        service = DigestService(config, store, recipients, mailer, BASE_URL)

        result = await service.run_daily_digests(now=NOW)

        assert result.emails_sent == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("u_broken")
        assert store.alerts[healthy.alert_id].sent_via_email is True

    @pytest.mark.asyncio
    async def test_lookback_is_configurable(self, store, mailer):
        _seed(store, hours_ago=30)
        config = AlertConfig(digest_lookback_hours=48)
        service = DigestService(config, store, _recipients(_daily()), mailer, BASE_URL)

        result = await service.run_daily_digests(now=NOW)

        assert result.alerts_marked == 1
        assert "1 alert from the last 48 hours." in mailer.send.call_args[0][2]

    @pytest.mark.asyncio
    async def test_no_recipients(self, config, store, mailer):
        service = DigestService(config, store, _recipients(), mailer, BASE_URL)
        result = await service.run_daily_digests(now=NOW)
        assert result.recipients_processed == 0
        assert result.elapsed_seconds >= 0
