"""Alert service orchestrating detection, dedup, persistence and fan-out.

The dispatch coordinator for visit events: resolves the campaign owner,
runs the stateless trigger functions, suppresses repeats inside the dedup
window, persists one Alert per surviving condition and hands each alert to
the NotificationDispatcher with the channels the recipient's settings allow.

Candidates are processed concurrently and independently; a fault while
handling one never affects another.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from visit_alerts.alerts.channels import (
    EmailChannel,
    Mailer,
    NotificationChannel,
    SlackChannel,
    WebhookChannel,
)
from visit_alerts.alerts.config import AlertConfig
from visit_alerts.alerts.dispatcher import ChannelResult, NotificationDispatcher
from visit_alerts.alerts.repository import AlertRepository
from visit_alerts.alerts.schemas import (
    Alert,
    AlertCandidate,
    CampaignContext,
    Recipient,
    VisitEvent,
)
from visit_alerts.alerts.triggers import PriorSessionSource, detect_conditions
from visit_alerts.config.settings import get_settings
from visit_alerts.observability.logging import log_context
from visit_alerts.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class CampaignResolver(Protocol):
    async def resolve(self, campaign_id: str) -> CampaignContext | None: ...


@dataclass
class AlertDelivery:
    """A persisted alert and the outcome of each channel attempt."""

    alert: Alert
    results: list[ChannelResult] = field(default_factory=list)


class AlertService:
    """Orchestrator for visit-driven alert generation and delivery.

    Dedup is layered: an optional Redis ``SET NX`` claim per
    (user, campaign, visit, kind) with the window as TTL, a store lookup
    of the most recent matching alert, and finally the unique dedup-bucket
    index that turns a racing insert into a no-op.
    """

    def __init__(
        self,
        config: AlertConfig,
        alert_repo: AlertRepository,
        campaigns: CampaignResolver,
        visits: PriorSessionSource,
        mailer: Mailer | None = None,
        dispatcher: NotificationDispatcher | None = None,
        redis_client: Any | None = None,
        base_url: str | None = None,
    ) -> None:
        self._config = config
        self._alert_repo = alert_repo
        self._campaigns = campaigns
        self._visits = visits
        self._mailer = mailer
        self._dispatcher = dispatcher or NotificationDispatcher(
            alert_repo, channel_timeout=config.channel_timeout_seconds,
        )
        self._redis = redis_client
        self._base_url = base_url or get_settings().app_base_url

    async def handle_visit_event(self, event: VisitEvent) -> list[AlertDelivery]:
        """Main entry point: evaluate one visit and deliver resulting alerts.

        Args:
            event: Visit snapshot from the tracking subsystem.

        Returns:
            Deliveries for alerts created by this call; empty when there is
            no recipient, alerts are disabled, or nothing fired.
        """
        with log_context(visit_id=event.visit_id, campaign_id=event.campaign_id):
            context = await self._campaigns.resolve(event.campaign_id)
            if context is None:
                logger.debug("No recipient for campaign %s", event.campaign_id)
                get_metrics().record_visit("no_recipient")
                return []

            recipient = context.recipient
            if not recipient.settings.enabled:
                logger.debug("Alerts disabled for user %s", recipient.user_id)
                get_metrics().record_visit("disabled")
                return []

            get_metrics().record_visit("evaluated")
            candidates = await detect_conditions(
                event, context, self._visits, self._config,
            )
            if not candidates:
                return []

            outcomes = await asyncio.gather(
                *(self._process_candidate(event, recipient, c) for c in candidates),
                return_exceptions=True,
            )

        deliveries: list[AlertDelivery] = []
        for candidate, outcome in zip(candidates, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Failed to process %s for visit %s: %s",
                    candidate.kind.value, event.visit_id, outcome,
                )
            elif outcome is not None:
                deliveries.append(outcome)

        logger.info(
            "Visit %s: %d candidates, %d alerts created",
            event.visit_id, len(candidates), len(deliveries),
        )
        return deliveries

    async def _process_candidate(
        self,
        event: VisitEvent,
        recipient: Recipient,
        candidate: AlertCandidate,
    ) -> AlertDelivery | None:
        alert = Alert.from_candidate(
            candidate,
            user_id=recipient.user_id,
            campaign_id=event.campaign_id,
            visit_id=event.visit_id,
        )

        if await self._is_duplicate(alert):
            logger.debug(
                "Skipping duplicate: %s visit %s", alert.kind.value, alert.visit_id,
            )
            get_metrics().record_alert_deduplicated(alert.kind.value)
            return None

        try:
            created = await self._alert_repo.create(
                alert, self._config.dedup_window_seconds,
            )
        except Exception:
            await self._release_claim(alert)
            raise

        if created is None:
            logger.debug(
                "Concurrent insert won dedup bucket: %s visit %s",
                alert.kind.value, alert.visit_id,
            )
            get_metrics().record_alert_deduplicated(alert.kind.value)
            return None

        get_metrics().record_alert_created(created.kind.value)
        channels = self.build_channels(recipient)
        results = await self._dispatcher.dispatch(created, channels)
        return AlertDelivery(alert=created, results=results)

    def build_channels(self, recipient: Recipient) -> list[NotificationChannel]:
        """Channels a recipient's settings allow for an instant alert.

        Email is skipped for digest-mode recipients; the daily digest is the
        sole email sender for them. The generic webhook has no toggle of its
        own and is used whenever a URL is configured.

        Args:
            recipient: Alert recipient with settings.

        Returns:
            Channels in email, slack, webhook order.
        """
        settings = recipient.settings
        timeout = self._config.channel_timeout_seconds
        channels: list[NotificationChannel] = []

        if settings.email and recipient.email and not settings.uses_daily_digest:
            if self._mailer is not None:
                channels.append(
                    EmailChannel(self._mailer, recipient.email, self._base_url)
                )
            else:
                logger.debug(
                    "Email skipped for user %s: no mailer configured",
                    recipient.user_id,
                )

        slack_url = recipient.slack_webhook_url
        if settings.slack and slack_url:
            channels.append(SlackChannel(slack_url, self._base_url, timeout=timeout))

        if settings.webhook_url:
            channels.append(WebhookChannel(settings.webhook_url, timeout=timeout))

        return channels

    def _dedup_key(self, alert: Alert) -> str:
        return (
            f"alert:dedup:{alert.user_id}:{alert.campaign_id}:"
            f"{alert.visit_id}:{alert.kind.value}"
        )

    async def _claim(self, alert: Alert) -> bool:
        """Claim the dedup key in Redis with SET NX.

        Returns True (claimed) if Redis is unavailable; the store check and
        unique index still apply.
        """
        if self._redis is None:
            return True
        try:
            was_set = await self._redis.set(
                self._dedup_key(alert), alert.alert_id,
                nx=True, ex=self._config.dedup_window_seconds,
            )
            return bool(was_set)
        except Exception as e:
            logger.warning("Redis dedup claim failed, falling back to store: %s", e)
            return True

    async def _release_claim(self, alert: Alert) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.delete(self._dedup_key(alert))
        except Exception as e:
            logger.warning("Failed to release dedup claim for %s: %s", alert.alert_id, e)

    async def _is_duplicate(self, alert: Alert) -> bool:
        """Check whether this (user, campaign, visit, kind) fired inside the window.

        Args:
            alert: Candidate alert, not yet persisted.

        Returns:
            True if the candidate must be skipped.
        """
        if not await self._claim(alert):
            return True

        now = datetime.now(timezone.utc)
        since = now - timedelta(minutes=self._config.dedup_window_minutes)
        try:
            recent = await self._alert_repo.find_recent(
                alert.user_id, alert.campaign_id, alert.visit_id, alert.kind, since,
            )
        except Exception:
            await self._release_claim(alert)
            raise
        if recent is None:
            return False
        await self._trim_claim(alert, recent, now)
        return True

    async def _trim_claim(self, alert: Alert, recent: Alert, now: datetime) -> None:
        """Cut a fresh claim's TTL to the stored alert's remaining window.

        A claim must not outlive the window of the alert it shadows, e.g. one
        created while Redis was down or whose key was evicted.
        """
        if self._redis is None:
            return
        age = int((now - recent.created_at).total_seconds())
        remaining = max(1, self._config.dedup_window_seconds - age)
        try:
            await self._redis.expire(self._dedup_key(alert), remaining)
        except Exception as e:
            logger.warning("Failed to shorten dedup claim for %s: %s", alert.alert_id, e)
