"""
Prometheus metrics for the alert engine.

Defines and exposes metrics for:
- Alerts created and suppressed by kind
- Per-channel delivery outcomes and latency
- Digest runs and emails

Metrics register on the default prometheus_client registry; the host
process that embeds the engine exposes it.
"""

import logging

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# Buckets for channel latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for alert detection and delivery.

    Usage:
        metrics = get_metrics()
        metrics.record_alert_created("CTA_CLICKED")
        metrics.record_delivery("slack", "delivered", latency=0.2)
    """

    def __init__(self):
        self.visits_evaluated = Counter(
            "visit_alerts_visits_evaluated_total",
            "Visit events evaluated for alert conditions",
            ["outcome"],  # outcome: evaluated, no_recipient, disabled
        )

        self.alerts_created = Counter(
            "visit_alerts_alerts_created_total",
            "Alerts persisted",
            ["kind"],
        )

        self.alerts_deduplicated = Counter(
            "visit_alerts_alerts_deduplicated_total",
            "Alert candidates suppressed by the dedup window",
            ["kind"],
        )

        self.channel_deliveries = Counter(
            "visit_alerts_channel_deliveries_total",
            "Channel send attempts by outcome",
            ["channel", "outcome"],  # outcome: delivered, failed, timed_out
        )

        self.channel_latency = Histogram(
            "visit_alerts_channel_latency_seconds",
            "Channel send latency",
            ["channel"],
            buckets=LATENCY_BUCKETS,
        )

        self.digest_emails = Counter(
            "visit_alerts_digest_emails_total",
            "Digest emails attempted by outcome",
            ["outcome"],  # outcome: sent, failed
        )

        logger.info("Prometheus metrics initialized")

    # Convenience methods

    def record_visit(self, outcome: str) -> None:
        self.visits_evaluated.labels(outcome=outcome).inc()

    def record_alert_created(self, kind: str) -> None:
        self.alerts_created.labels(kind=kind).inc()

    def record_alert_deduplicated(self, kind: str) -> None:
        self.alerts_deduplicated.labels(kind=kind).inc()

    def record_delivery(
        self,
        channel: str,
        outcome: str,
        latency: float | None = None,
    ) -> None:
        """
        Record one channel send attempt.

        Args:
            channel: Channel name (email, slack, webhook)
            outcome: delivered, failed or timed_out
            latency: Optional send latency in seconds
        """
        self.channel_deliveries.labels(channel=channel, outcome=outcome).inc()
        if latency is not None:
            self.channel_latency.labels(channel=channel).observe(latency)

    def record_digest(self, sent: bool) -> None:
        self.digest_emails.labels(outcome="sent" if sent else "failed").inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
