"""Daily digest job for recipients who chose ``emailDigest = daily``.

Runs as an offline batch, recipient by recipient:
1. Skips recipients with alerts disabled, email off, or instant mode
2. Collects alerts from the lookback window not yet sent via email
3. Sends one combined email per recipient
4. On success, marks every included alert sent via email in one update

A failed send leaves the flags untouched, so the alerts are picked up
again on the next run while they are still inside the lookback window.

Designed for external cron scheduling: ``0 8 * * * visit-alerts digest``
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Protocol

from visit_alerts.alerts.channels import Mailer
from visit_alerts.alerts.config import AlertConfig
from visit_alerts.alerts.rendering import digest_subject, render_digest_email
from visit_alerts.alerts.repository import AlertRepository
from visit_alerts.alerts.schemas import Recipient
from visit_alerts.config.settings import get_settings
from visit_alerts.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class RecipientSource(Protocol):
    async def list_digest_recipients(self) -> list[Recipient]: ...


@dataclass
class DigestResult:
    """Summary of a daily digest run."""

    recipients_processed: int = 0
    emails_sent: int = 0
    alerts_marked: int = 0
    errors: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0


def wants_digest(recipient: Recipient) -> bool:
    """Whether a recipient is eligible for the daily digest email."""
    settings = recipient.settings
    return (
        bool(recipient.email)
        and settings.enabled
        and settings.email
        and settings.uses_daily_digest
    )


class DigestService:
    """Aggregates un-emailed alerts into one email per digest-mode recipient."""

    def __init__(
        self,
        config: AlertConfig,
        alert_repo: AlertRepository,
        recipients: RecipientSource,
        mailer: Mailer,
        base_url: str | None = None,
    ) -> None:
        self._config = config
        self._alert_repo = alert_repo
        self._recipients = recipients
        self._mailer = mailer
        self._base_url = base_url or get_settings().app_base_url

    async def run_daily_digests(self, now: datetime | None = None) -> DigestResult:
        """Send digests to every eligible recipient with pending alerts.

        Args:
            now: Reference time for the lookback window (default: now UTC).

        Returns:
            DigestResult with counts and per-recipient errors.
        """
        result = DigestResult()
        start_time = time.monotonic()
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=self._config.digest_lookback_hours)

        recipients = await self._recipients.list_digest_recipients()
        for recipient in recipients:
            if not wants_digest(recipient):
                continue
            try:
                await self._digest_for(recipient, since, result)
            except Exception as e:
                logger.error("Digest failed for user %s: %s", recipient.user_id, e)
                result.errors.append(f"{recipient.user_id}: {e}")

        result.elapsed_seconds = time.monotonic() - start_time
        logger.info(
            "Daily digests: %d recipients processed, %d emails sent, %d alerts marked",
            result.recipients_processed, result.emails_sent, result.alerts_marked,
        )
        return result

    async def _digest_for(
        self,
        recipient: Recipient,
        since: datetime,
        result: DigestResult,
    ) -> None:
        pending = await self._alert_repo.get_pending_email(recipient.user_id, since)
        if not pending:
            return

        result.recipients_processed += 1
        html = render_digest_email(
            pending, self._base_url, self._config.digest_lookback_hours,
        )
        sent = await self._mailer.send(recipient.email, digest_subject(len(pending)), html)
        get_metrics().record_digest(sent.ok)

        if not sent.ok:
            logger.warning(
                "Digest email to %s failed (%d alerts left pending): %s",
                recipient.email, len(pending), sent.error,
            )
            return

        result.emails_sent += 1
        logger.info("Digest sent to %s: %d alerts", recipient.email, len(pending))
        result.alerts_marked += await self._alert_repo.mark_emailed(
            [a.alert_id for a in pending]
        )
