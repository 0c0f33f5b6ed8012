"""Notification dispatcher running independent channel sends for one alert.

Each channel attempt is its own task bounded by a timeout. A slow,
failing or raising channel never blocks, cancels or rolls back a sibling
or the persisted alert. Successful attempts flip their own sent flag on
the alert. There are no retries; for email, the daily digest is the only
second chance and only for digest-mode recipients.

Pattern: Orchestrator (like AlertService), delegates to stateless channels.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from visit_alerts.alerts.channels import NotificationChannel
from visit_alerts.alerts.schemas import Alert
from visit_alerts.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class SentFlagStore(Protocol):
    async def mark_sent(self, alert_id: str, channel: str) -> bool: ...


@dataclass(frozen=True)
class Delivered:
    channel: str


@dataclass(frozen=True)
class Failed:
    channel: str
    reason: str = "rejected"


@dataclass(frozen=True)
class TimedOut:
    channel: str
    timeout: float


ChannelResult = Delivered | Failed | TimedOut


class NotificationDispatcher:
    """Fans one alert out to its channels concurrently.

    Args:
        alert_repo: Store used to flip per-channel sent flags.
        channel_timeout: Seconds allowed for each channel send.
    """

    def __init__(self, alert_repo: SentFlagStore, channel_timeout: float = 10.0) -> None:
        self._alert_repo = alert_repo
        self._channel_timeout = channel_timeout

    async def dispatch(
        self,
        alert: Alert,
        channels: Sequence[NotificationChannel],
    ) -> list[ChannelResult]:
        """Send an alert to every given channel and wait for all to settle.

        Args:
            alert: Persisted alert to deliver.
            channels: Channels already filtered by the recipient's settings.

        Returns:
            One ChannelResult per channel, in input order.
        """
        if not channels:
            return []

        results = await asyncio.gather(
            *(self._attempt(channel, alert) for channel in channels)
        )
        self._record_delivery(alert, results)
        return list(results)

    async def _attempt(
        self,
        channel: NotificationChannel,
        alert: Alert,
    ) -> ChannelResult:
        start = time.monotonic()
        try:
            ok = await asyncio.wait_for(channel.send(alert), self._channel_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Channel %s timed out after %.1fs for alert %s",
                channel.name, self._channel_timeout, alert.alert_id,
            )
            get_metrics().record_delivery(channel.name, "timed_out")
            return TimedOut(channel.name, self._channel_timeout)
        except Exception as e:
            logger.warning(
                "Channel %s raised for alert %s: %s",
                channel.name, alert.alert_id, e,
            )
            get_metrics().record_delivery(channel.name, "failed")
            return Failed(channel.name, reason=str(e) or type(e).__name__)

        latency = time.monotonic() - start
        if not ok:
            get_metrics().record_delivery(channel.name, "failed", latency)
            return Failed(channel.name)

        get_metrics().record_delivery(channel.name, "delivered", latency)
        await self._mark_sent(alert, channel.name)
        return Delivered(channel.name)

    async def _mark_sent(self, alert: Alert, channel_name: str) -> None:
        """Flip the channel's sent flag. A lost update only risks a later resend."""
        try:
            await self._alert_repo.mark_sent(alert.alert_id, channel_name)
        except Exception as e:
            logger.warning(
                "Failed to mark alert %s sent via %s: %s",
                alert.alert_id, channel_name, e,
            )

    def _record_delivery(
        self,
        alert: Alert,
        results: Sequence[ChannelResult],
    ) -> None:
        successes = [r.channel for r in results if isinstance(r, Delivered)]
        failures = [r.channel for r in results if not isinstance(r, Delivered)]

        if failures and not successes:
            logger.error(
                "Alert %s (%s) failed ALL channels: %s",
                alert.alert_id, alert.kind.value, failures,
            )
        elif failures:
            logger.warning(
                "Alert %s partial delivery: ok=%s failed=%s",
                alert.alert_id, successes, failures,
            )
        else:
            logger.debug(
                "Alert %s delivered to all channels: %s",
                alert.alert_id, successes,
            )
