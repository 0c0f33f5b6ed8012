"""Notification channel implementations for alert delivery.

Instant email, Slack incoming webhooks and generic HTTP webhooks behind
one NotificationChannel interface.
Each ``send`` performs exactly one outbound call, never retries, and
reports failure by returning False rather than raising.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Protocol

import httpx

from visit_alerts.alerts.mailer import SendResult
from visit_alerts.alerts.rendering import dashboard_url, render_alert_email
from visit_alerts.alerts.schemas import Alert

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    """Email-sending collaborator."""

    async def send(self, to: str, subject: str, html: str) -> SendResult: ...


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel identifier, matching the alert's sent flag ('email', 'slack', 'webhook')."""

    @abstractmethod
    async def send(self, alert: Alert) -> bool:
        """Deliver an alert through this channel.

        Args:
            alert: Alert to deliver.

        Returns:
            True if delivery succeeded, False otherwise.
        """


class EmailChannel(NotificationChannel):
    """Sends one HTML email per alert to the recipient."""

    def __init__(self, mailer: Mailer, to: str, base_url: str) -> None:
        self._mailer = mailer
        self._to = to
        self._base_url = base_url

    @property
    def name(self) -> str:
        return "email"

    async def send(self, alert: Alert) -> bool:
        html = render_alert_email(alert.title, alert.message, alert.data, self._base_url)
        try:
            result = await self._mailer.send(self._to, alert.title, html)
        except Exception as e:
            logger.warning(
                "Email to %s failed for alert %s: %s", self._to, alert.alert_id, e,
            )
            return False
        if result.ok:
            logger.info("Email sent to %s: %s", self._to, alert.title)
            return True
        logger.warning(
            "Email to %s rejected for alert %s: %s",
            self._to, alert.alert_id, result.error,
        )
        return False


class _JsonPostChannel(NotificationChannel):
    """One JSON POST per alert; any 2xx response counts as delivered.

    A fresh ``httpx.AsyncClient`` is opened per send.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._headers = headers or {}

    @abstractmethod
    def _payload(self, alert: Alert) -> dict[str, Any]:
        """JSON body for an alert."""

    def _target(self) -> str:
        """How the destination appears in logs."""
        return self.name

    async def send(self, alert: Alert) -> bool:
        body = self._payload(alert)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=body, headers=self._headers)
        except httpx.TimeoutException:
            logger.warning("%s timed out for alert %s", self._target(), alert.alert_id)
            return False
        except Exception as e:
            logger.warning("%s failed for alert %s: %s", self._target(), alert.alert_id, e)
            return False

        if not resp.is_success:
            logger.warning(
                "%s returned %d for alert %s",
                self._target(), resp.status_code, alert.alert_id,
            )
            return False
        logger.info("%s delivered alert %s", self._target(), alert.alert_id)
        return True


_SLACK_FIELDS = (
    ("visitorName", "Name"),
    ("visitorEmail", "Email"),
    ("visitorCompany", "Company"),
    ("visitorTitle", "Title"),
)


class SlackChannel(_JsonPostChannel):
    """Slack incoming webhook using Block Kit.

    Layout: header, message, visitor fields when any are present, and a
    dashboard button.
    """

    def __init__(self, webhook_url: str, base_url: str, timeout: float = 10.0) -> None:
        super().__init__(webhook_url, timeout=timeout)
        self._base_url = base_url

    @property
    def name(self) -> str:
        return "slack"

    def _payload(self, alert: Alert) -> dict[str, Any]:
        blocks: list[dict[str, Any]] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": alert.title, "emoji": True},
            },
            {"type": "section", "text": {"type": "mrkdwn", "text": alert.message}},
        ]

        fields = [
            {"type": "mrkdwn", "text": f"*{label}:*\n{alert.data[key]}"}
            for key, label in _SLACK_FIELDS
            if alert.data.get(key)
        ]
        if fields:
            blocks.append({"type": "section", "fields": fields})

        button = {
            "type": "button",
            "text": {"type": "plain_text", "text": "View in Dashboard", "emoji": True},
            "url": dashboard_url(self._base_url),
            "style": "primary",
        }
        blocks.append({"type": "actions", "elements": [button]})

        # "text" is the notification fallback for clients that skip blocks
        return {"text": alert.title, "blocks": blocks}


class WebhookChannel(_JsonPostChannel):
    """Generic webhook: a fixed ``visitor_alert`` envelope POSTed to a user URL."""

    @property
    def name(self) -> str:
        return "webhook"

    def _target(self) -> str:
        return f"webhook {self._url}"

    def _payload(self, alert: Alert) -> dict[str, Any]:
        return {
            "event": "visitor_alert",
            "timestamp": alert.created_at.isoformat(),
            "type": alert.kind.value,
            "title": alert.title,
            "message": alert.message,
            "data": alert.data,
        }
