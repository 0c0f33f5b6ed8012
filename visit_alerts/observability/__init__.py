"""Observability layer - logging and metrics."""

from visit_alerts.observability.logging import setup_logging
from visit_alerts.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
