"""Tests for metrics recording and logging setup."""

import logging

import pytest
import structlog
from prometheus_client import REGISTRY

from visit_alerts.observability.logging import log_context, setup_logging
from visit_alerts.observability.metrics import get_metrics


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetrics:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_delivery(self):
        metrics = get_metrics()
        before = _sample(
            "visit_alerts_channel_deliveries_total", channel="slack", outcome="failed",
        )

        metrics.record_delivery("slack", "failed", latency=0.3)

        after = _sample(
            "visit_alerts_channel_deliveries_total", channel="slack", outcome="failed",
        )
        assert after == before + 1
        assert _sample("visit_alerts_channel_latency_seconds_count", channel="slack") >= 1

    def test_record_digest_outcome(self):
        before = _sample("visit_alerts_digest_emails_total", outcome="sent")
        get_metrics().record_digest(True)
        assert _sample("visit_alerts_digest_emails_total", outcome="sent") == before + 1

    def test_record_alert_created(self):
        before = _sample("visit_alerts_alerts_created_total", kind="CTA_CLICKED")
        get_metrics().record_alert_created("CTA_CLICKED")
        assert _sample("visit_alerts_alerts_created_total", kind="CTA_CLICKED") == before + 1


class TestLogging:
    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_level_override(self):
        setup_logging("DEBUG")
        assert logging.getLogger().level == logging.DEBUG

    def test_noisy_loggers_quieted(self):
        setup_logging()
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_stdlib_records_go_through_processor_formatter(self):
        setup_logging()
        (handler,) = logging.getLogger().handlers
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)

    def test_log_context_binds_and_clears(self):
        with log_context(visit_id="visit_1"):
            assert structlog.contextvars.get_contextvars()["visit_id"] == "visit_1"
        assert "visit_id" not in structlog.contextvars.get_contextvars()
