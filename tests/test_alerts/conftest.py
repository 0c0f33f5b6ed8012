"""Shared fixtures for alert engine tests."""

from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest

from visit_alerts.alerts.config import AlertConfig
from visit_alerts.alerts.mailer import SendResult
from visit_alerts.alerts.repository import dedup_bucket
from visit_alerts.alerts.schemas import (
    Alert,
    AlertKind,
    CampaignContext,
    Recipient,
    RecipientAlertSettings,
    VisitEvent,
)


class InMemoryAlertStore:
    """Dict-backed stand-in for AlertRepository with the same dedup-bucket rule."""

    def __init__(self) -> None:
        self.alerts: dict[str, Alert] = {}

    def add(self, alert: Alert) -> Alert:
        self.alerts[alert.alert_id] = alert
        return alert

    def _same_key(self, a: Alert, user_id, campaign_id, visit_id, kind) -> bool:
        return (
            a.user_id == user_id
            and a.campaign_id == campaign_id
            and a.visit_id == visit_id
            and a.kind == kind
        )

    async def create(self, alert: Alert, dedup_window_seconds: int) -> Alert | None:
        bucket = dedup_bucket(alert.created_at, dedup_window_seconds)
        for existing in self.alerts.values():
            if (
                self._same_key(existing, alert.user_id, alert.campaign_id, alert.visit_id, alert.kind)
                and dedup_bucket(existing.created_at, dedup_window_seconds) == bucket
            ):
                return None
        self.alerts[alert.alert_id] = replace(alert, data=dict(alert.data))
        return replace(alert)

    async def find_recent(self, user_id, campaign_id, visit_id, kind, since):
        matches = [
            a for a in self.alerts.values()
            if self._same_key(a, user_id, campaign_id, visit_id, kind)
            and a.created_at >= since
        ]
        return max(matches, key=lambda a: a.created_at) if matches else None

    async def mark_sent(self, alert_id: str, channel: str) -> bool:
        alert = self.alerts.get(alert_id)
        attr = f"sent_via_{channel}"
        if alert is None or getattr(alert, attr):
            return False
        setattr(alert, attr, True)
        return True

    async def get_pending_email(self, user_id: str, since: datetime) -> list[Alert]:
        pending = [
            replace(a) for a in self.alerts.values()
            if a.user_id == user_id and not a.sent_via_email and a.created_at >= since
        ]
        return sorted(pending, key=lambda a: a.created_at, reverse=True)

    async def mark_emailed(self, alert_ids) -> int:
        count = 0
        for alert_id in alert_ids:
            alert = self.alerts.get(alert_id)
            if alert is not None:
                alert.sent_via_email = True
                count += 1
        return count

    def by_kind(self) -> dict[AlertKind, list[Alert]]:
        out: dict[AlertKind, list[Alert]] = {}
        for a in self.alerts.values():
            out.setdefault(a.kind, []).append(a)
        return out


def _mock_response(status_code: int = 200, **kwargs) -> httpx.Response:
    """Create an httpx.Response bound to a dummy request."""
    return httpx.Response(
        status_code=status_code,
        request=httpx.Request("POST", "http://test"),
        **kwargs,
    )


@pytest.fixture
def config():
    return AlertConfig()


@pytest.fixture
def store():
    return InMemoryAlertStore()


@pytest.fixture
def mailer():
    m = AsyncMock()
    m.send.return_value = SendResult(ok=True, id="em_123")
    return m


def _make_recipient(
    settings: dict | None = None,
    email: str | None = "owner@acme.io",
    slack_webhook_url: str | None = None,
    user_id: str = "user_1",
) -> Recipient:
    return Recipient(
        user_id=user_id,
        email=email,
        settings=RecipientAlertSettings.from_json(settings or {}),
        slack_webhook_url=slack_webhook_url,
    )


def _make_context(recipient: Recipient, company_name: str = "Acme Corp") -> CampaignContext:
    return CampaignContext(
        campaign_id="camp_1",
        campaign_name="Q3 Platform Launch",
        company_name=company_name,
        recipient=recipient,
    )


def _make_event(**overrides) -> VisitEvent:
    fields = {
        "visit_id": "visit_1",
        "campaign_id": "camp_1",
        "visitor_email": "jane@acme.io",
        "visitor_name": "Jane Doe",
        "visitor_company": "Globex",
        "visitor_job_title": None,
        "chat_messages": 0,
        "time_on_page": 30,
        "cta_clicked": False,
        "form_submitted": False,
        "session_id": "sess_1",
    }
    fields.update(overrides)
    return VisitEvent(**fields)


def _make_alert(**overrides) -> Alert:
    fields = {
        "user_id": "user_1",
        "campaign_id": "camp_1",
        "visit_id": "visit_1",
        "kind": AlertKind.CTA_CLICKED,
        "title": "\U0001f3af Jane Doe clicked your CTA",
        "message": 'Jane Doe from Globex clicked the main CTA on "Q3 Platform Launch".',
        "data": {
            "visitorName": "Jane Doe",
            "visitorEmail": "jane@acme.io",
            "visitorCompany": "Globex",
            "campaignName": "Q3 Platform Launch",
        },
        "created_at": datetime(2026, 2, 7, 12, 0, 0, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Alert(**fields)
