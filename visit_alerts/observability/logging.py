"""
Structured logging configuration using structlog.

Modules log through the standard library (``logging.getLogger(__name__)``);
this module routes those records through structlog's ProcessorFormatter
so they come out as JSON in production and as coloured console lines in
development, with any bound context (visit_id, campaign_id) attached.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import Processor

from visit_alerts.config.settings import get_settings

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "asyncpg", "redis")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Overrides ``Settings.log_level`` when given.

    Usage:
        setup_logging()
        logger = structlog.get_logger()
        logger.info("Alert created", alert_id="123", kind="CTA_CLICKED")
    """
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        renderer: Processor = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Stdlib records get the same processors as native structlog calls
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind context variables for the duration of a block.

    Usage:
        with log_context(visit_id=event.visit_id):
            await service.handle_visit_event(event)
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
