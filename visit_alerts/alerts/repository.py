"""Alert repository for persistence, dedup lookups and delivery flags.

Uses asyncpg through the shared Database wrapper. The unique index on
``(user_id, campaign_id, visit_id, kind, dedup_bucket)`` makes a racing
second insert for the same dedup window a no-op instead of a duplicate row.
"""

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from visit_alerts.alerts.schemas import VALID_CHANNELS, Alert, AlertKind
from visit_alerts.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS alerts (
    alert_id         TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    campaign_id      TEXT NOT NULL,
    visit_id         TEXT NOT NULL,
    kind             TEXT NOT NULL,
    title            TEXT NOT NULL,
    message          TEXT NOT NULL,
    data             JSONB NOT NULL DEFAULT '{}',
    sent_via_email   BOOLEAN NOT NULL DEFAULT FALSE,
    sent_via_slack   BOOLEAN NOT NULL DEFAULT FALSE,
    sent_via_webhook BOOLEAN NOT NULL DEFAULT FALSE,
    is_read          BOOLEAN NOT NULL DEFAULT FALSE,
    dedup_bucket     BIGINT NOT NULL,
    created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_alerts_dedup
    ON alerts(user_id, campaign_id, visit_id, kind, dedup_bucket);
CREATE INDEX IF NOT EXISTS idx_alerts_dedup_recent
    ON alerts(user_id, campaign_id, visit_id, kind, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_alerts_email_pending
    ON alerts(user_id, created_at DESC) WHERE sent_via_email = FALSE;
CREATE INDEX IF NOT EXISTS idx_alerts_user_unread
    ON alerts(user_id, created_at DESC) WHERE is_read = FALSE;
"""

_INSERT_SQL = """
INSERT INTO alerts (
    alert_id, user_id, campaign_id, visit_id, kind, title, message, data,
    sent_via_email, sent_via_slack, sent_via_webhook, is_read,
    dedup_bucket, created_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
ON CONFLICT (user_id, campaign_id, visit_id, kind, dedup_bucket) DO NOTHING
RETURNING *
"""

# Column flipped by each delivery channel
_SENT_COLUMNS: dict[str, str] = {
    "email": "sent_via_email",
    "slack": "sent_via_slack",
    "webhook": "sent_via_webhook",
}


def dedup_bucket(created_at: datetime, window_seconds: int) -> int:
    """Index of the fixed-size window a timestamp falls into."""
    return int(created_at.timestamp()) // window_seconds


class AlertRepository:
    """Repository for alert persistence and querying.

    Provides create, dedup lookup, per-channel sent flags, digest queries
    and the in-app read state for Alert records in the ``alerts`` table.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_tables(self) -> None:
        """Create the alerts table and its indexes if missing."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Alerts table ready")

    async def create(self, alert: Alert, dedup_window_seconds: int) -> Alert | None:
        """Insert a new alert unless its dedup bucket is already taken.

        Args:
            alert: Alert to persist (sent flags are normally all False).
            dedup_window_seconds: Width of the uniqueness bucket.

        Returns:
            The created Alert, or None if a concurrent insert won the bucket.
        """
        row = await self._db.fetchrow(
            _INSERT_SQL,
            alert.alert_id,
            alert.user_id,
            alert.campaign_id,
            alert.visit_id,
            alert.kind.value,
            alert.title,
            alert.message,
            json.dumps(alert.data),
            alert.sent_via_email,
            alert.sent_via_slack,
            alert.sent_via_webhook,
            alert.is_read,
            dedup_bucket(alert.created_at, dedup_window_seconds),
            alert.created_at,
        )
        if row is None:
            return None
        return _row_to_alert(row)

    async def find_recent(
        self,
        user_id: str,
        campaign_id: str,
        visit_id: str,
        kind: AlertKind,
        since: datetime,
    ) -> Alert | None:
        """Most recent alert for a (user, campaign, visit, kind) since a cutoff.

        Args:
            user_id: Recipient.
            campaign_id: Campaign.
            visit_id: Visit.
            kind: Alert kind.
            since: Only alerts created at or after this instant count.

        Returns:
            Alert or None.
        """
        sql = """
            SELECT * FROM alerts
            WHERE user_id = $1 AND campaign_id = $2 AND visit_id = $3
              AND kind = $4 AND created_at >= $5
            ORDER BY created_at DESC
            LIMIT 1
        """
        row = await self._db.fetchrow(
            sql, user_id, campaign_id, visit_id, kind.value, since,
        )
        if row is None:
            return None
        return _row_to_alert(row)

    async def mark_sent(self, alert_id: str, channel: str) -> bool:
        """Set one channel's sent flag on an alert.

        Args:
            alert_id: Alert that was delivered.
            channel: ``email``, ``slack`` or ``webhook``.

        Returns:
            True if the flag changed, False if already set or alert missing.
        """
        if channel not in VALID_CHANNELS:
            raise ValueError(
                f"Invalid channel {channel!r}. Must be one of: {sorted(VALID_CHANNELS)}"
            )
        column = _SENT_COLUMNS[channel]
        sql = f"""
            UPDATE alerts SET {column} = TRUE
            WHERE alert_id = $1 AND {column} = FALSE
            RETURNING alert_id
        """
        result = await self._db.fetchval(sql, alert_id)
        return result is not None

    async def get_pending_email(self, user_id: str, since: datetime) -> list[Alert]:
        """Alerts for a user created since a cutoff and not yet emailed.

        Args:
            user_id: Recipient.
            since: Lower bound on created_at.

        Returns:
            Alerts ordered newest first.
        """
        sql = """
            SELECT * FROM alerts
            WHERE user_id = $1 AND sent_via_email = FALSE AND created_at >= $2
            ORDER BY created_at DESC
        """
        rows = await self._db.fetch(sql, user_id, since)
        return [_row_to_alert(row) for row in rows]

    async def mark_emailed(self, alert_ids: Sequence[str]) -> int:
        """Bulk-set sent_via_email for a set of alerts in one statement.

        Returns:
            Number of rows updated.
        """
        if not alert_ids:
            return 0
        sql = """
            UPDATE alerts SET sent_via_email = TRUE
            WHERE alert_id = ANY($1::text[])
        """
        status = await self._db.execute(sql, list(alert_ids))
        return _affected_rows(status)

    async def get_recent(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Alert]:
        """Get a user's recent alerts for the in-app list.

        Args:
            user_id: Recipient.
            unread_only: Only return alerts not yet read.
            limit: Maximum alerts to return.
            offset: Offset for pagination.

        Returns:
            List of alerts ordered by created_at descending.
        """
        conditions = ["user_id = $1"]
        params: list[Any] = [user_id]
        param_idx = 2

        if unread_only:
            conditions.append("is_read = FALSE")

        sql = f"""
            SELECT * FROM alerts
            WHERE {" AND ".join(conditions)}
            ORDER BY created_at DESC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
        """
        params.extend([limit, offset])

        rows = await self._db.fetch(sql, *params)
        return [_row_to_alert(row) for row in rows]

    async def count_unread(self, user_id: str) -> int:
        sql = "SELECT COUNT(*) FROM alerts WHERE user_id = $1 AND is_read = FALSE"
        count = await self._db.fetchval(sql, user_id)
        return count or 0

    async def mark_read(self, alert_id: str) -> bool:
        """Mark an alert as read.

        Returns:
            True if updated, False if already read or not found.
        """
        sql = """
            UPDATE alerts SET is_read = TRUE
            WHERE alert_id = $1 AND is_read = FALSE
            RETURNING alert_id
        """
        result = await self._db.fetchval(sql, alert_id)
        return result is not None


def _affected_rows(status: str) -> int:
    """Parse the row count out of an asyncpg status string like ``UPDATE 3``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


def _row_to_alert(row: Any) -> Alert:
    """Convert an asyncpg Record to an Alert."""
    data = row.get("data", {})
    if isinstance(data, str):
        data = json.loads(data)

    return Alert(
        alert_id=row["alert_id"],
        user_id=row["user_id"],
        campaign_id=row["campaign_id"],
        visit_id=row["visit_id"],
        kind=row["kind"],
        title=row["title"],
        message=row["message"],
        data=data or {},
        sent_via_email=row.get("sent_via_email", False),
        sent_via_slack=row.get("sent_via_slack", False),
        sent_via_webhook=row.get("sent_via_webhook", False),
        is_read=row.get("is_read", False),
        created_at=row["created_at"],
    )
