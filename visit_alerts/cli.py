"""
Command-line interface for visit-alerts.

Usage:
    visit-alerts init-db              # Create the alerts table
    visit-alerts check-visit VISIT_ID # Evaluate one visit and deliver alerts
    visit-alerts digest               # Send daily digest emails
    visit-alerts health               # Check service health
"""

import asyncio
import logging
import sys
from typing import Any

import click

from visit_alerts.config.settings import get_settings
from visit_alerts.observability.logging import setup_logging

logger = logging.getLogger(__name__)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Visit Alerts - engagement alert detection and delivery."""
    setup_logging("DEBUG" if debug else None)


def _connect_redis() -> Any | None:
    """Redis client for dedup claims, or None when not configured."""
    settings = get_settings()
    if settings.redis_url is None:
        return None
    try:
        import redis.asyncio as redis_lib

        return redis_lib.from_url(
            str(settings.redis_url), encoding="utf-8", decode_responses=True,
        )
    except Exception as e:
        logger.warning("Redis unavailable for alert dedup: %s", e)
        return None


@main.command("init-db")
def init_db() -> None:
    """Initialize the alerts table and indexes."""
    from visit_alerts.alerts.repository import AlertRepository
    from visit_alerts.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            await AlertRepository(db).create_tables()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command("check-visit")
@click.argument("visit_id")
def check_visit(visit_id: str) -> None:
    """Evaluate one visit for alert conditions and deliver any alerts.

    Example:
        visit-alerts check-visit visit_123
    """
    from visit_alerts.alerts.config import AlertConfig
    from visit_alerts.alerts.lookups import CampaignLookup, VisitLookup
    from visit_alerts.alerts.mailer import ResendMailer
    from visit_alerts.alerts.repository import AlertRepository
    from visit_alerts.alerts.service import AlertService
    from visit_alerts.storage.database import Database

    async def run() -> int:
        db = Database()
        await db.connect()
        redis_client = _connect_redis()
        try:
            visits = VisitLookup(db)
            event = await visits.get(visit_id)
            if event is None:
                click.echo(f"Visit {visit_id} not found", err=True)
                return 1

            service = AlertService(
                config=AlertConfig(),
                alert_repo=AlertRepository(db),
                campaigns=CampaignLookup(db),
                visits=visits,
                mailer=ResendMailer(),
                redis_client=redis_client,
            )
            deliveries = await service.handle_visit_event(event)

            click.echo(f"\nVisit {visit_id}: {len(deliveries)} alert(s) created")
            for delivery in deliveries:
                channels = ", ".join(
                    f"{r.channel}={type(r).__name__.lower()}" for r in delivery.results
                ) or "no channels"
                click.echo(f"  {delivery.alert.kind.value:<24} {channels}")
            return 0
        finally:
            if redis_client is not None:
                await redis_client.aclose()
            await db.close()

    sys.exit(asyncio.run(run()))


@main.command()
def digest() -> None:
    """Send the daily alert digest to recipients in daily mode.

    Designed for cron scheduling: 0 8 * * * visit-alerts digest
    """
    from visit_alerts.alerts.config import AlertConfig
    from visit_alerts.alerts.digest import DigestService
    from visit_alerts.alerts.lookups import CampaignLookup
    from visit_alerts.alerts.mailer import ResendMailer
    from visit_alerts.alerts.repository import AlertRepository
    from visit_alerts.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            service = DigestService(
                config=AlertConfig(),
                alert_repo=AlertRepository(db),
                recipients=CampaignLookup(db),
                mailer=ResendMailer(),
            )
            return await service.run_daily_digests()
        finally:
            await db.close()

    result = asyncio.run(run())

    click.echo("\nDaily Digest Results:")
    click.echo(f"  Recipients processed: {result.recipients_processed}")
    click.echo(f"  Emails sent:          {result.emails_sent}")
    click.echo(f"  Alerts marked:        {result.alerts_marked}")
    click.echo(f"  Elapsed:              {result.elapsed_seconds:.2f}s")
    if result.errors:
        click.echo(f"  Errors ({len(result.errors)}):")
        for err in result.errors:
            click.echo(f"    - {err}")
        sys.exit(1)


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    from visit_alerts.storage.database import Database

    async def check() -> dict[str, bool]:
        results: dict[str, bool] = {}

        try:
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("PostgreSQL health check failed: %s", e)

        redis_client = _connect_redis()
        if redis_client is not None:
            try:
                results["redis"] = bool(await redis_client.ping())
            except Exception as e:
                results["redis"] = False
                logger.error("Redis health check failed: %s", e)
            finally:
                await redis_client.aclose()

        return results

    results = asyncio.run(check())
    results["email"] = get_settings().email_configured

    all_healthy = all(results.values())
    for name, healthy in results.items():
        status = "OK" if healthy else "FAIL"
        click.echo(f"  {name:<10} {status}")

    sys.exit(0 if all_healthy else 1)


if __name__ == "__main__":
    main()
