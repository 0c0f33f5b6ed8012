"""Read-only lookups against the campaign, company, user and visit tables.

These tables are owned by the tracking and account subsystems; this module
never writes to them.
"""

import logging
from typing import Any

from visit_alerts.alerts.schemas import (
    CampaignContext,
    PriorSession,
    Recipient,
    RecipientAlertSettings,
    VisitEvent,
)
from visit_alerts.storage.database import Database

logger = logging.getLogger(__name__)

_RESOLVE_CAMPAIGN_SQL = """
SELECT c.id AS campaign_id,
       c.title AS campaign_title,
       co.name AS company_name,
       u.id AS user_id,
       u.email AS user_email,
       u.alert_settings AS alert_settings,
       u.slack_webhook_url AS slack_webhook_url
FROM segment_campaigns c
JOIN companies co ON co.id = c.company_id
JOIN users u ON u.id = co.user_id
WHERE c.id = $1
"""

_PRIOR_SESSIONS_SQL = """
SELECT chat_messages, time_on_page
FROM campaign_visits
WHERE campaign_id = $1
  AND visitor_email = $2
  AND ($3::text IS NULL OR session_id IS DISTINCT FROM $3::text)
  AND ($4::text IS NULL OR id <> $4::text)
"""


def _record_to_recipient(record: Any) -> Recipient:
    return Recipient(
        user_id=record["user_id"],
        email=record["user_email"],
        settings=RecipientAlertSettings.from_json(record["alert_settings"]),
        slack_webhook_url=record["slack_webhook_url"],
    )


class CampaignLookup:
    """Resolves campaign → company → owning user, and lists digest recipients."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def resolve(self, campaign_id: str) -> CampaignContext | None:
        """Resolve the recipient and display names for a campaign.

        Args:
            campaign_id: Campaign identifier.

        Returns:
            CampaignContext, or None if the campaign, company or user is missing.
        """
        row = await self._db.fetchrow(_RESOLVE_CAMPAIGN_SQL, campaign_id)
        if row is None:
            return None
        return CampaignContext(
            campaign_id=row["campaign_id"],
            campaign_name=row["campaign_title"] or "",
            company_name=row["company_name"],
            recipient=_record_to_recipient(row),
        )

    async def list_digest_recipients(self) -> list[Recipient]:
        """All users with an email address, in id order."""
        sql = """
            SELECT id AS user_id, email AS user_email,
                   alert_settings, slack_webhook_url
            FROM users
            WHERE email IS NOT NULL
            ORDER BY id
        """
        rows = await self._db.fetch(sql)
        return [_record_to_recipient(row) for row in rows]


class VisitLookup:
    """Reads visit snapshots and a visitor's earlier sessions."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get(self, visit_id: str) -> VisitEvent | None:
        sql = """
            SELECT id, campaign_id, visitor_email, visitor_name,
                   visitor_company, visitor_job_title, chat_messages,
                   time_on_page, cta_clicked, form_submitted, session_id
            FROM campaign_visits
            WHERE id = $1
        """
        row = await self._db.fetchrow(sql, visit_id)
        if row is None:
            return None
        return VisitEvent(
            visit_id=row["id"],
            campaign_id=row["campaign_id"],
            visitor_email=row["visitor_email"],
            visitor_name=row["visitor_name"],
            visitor_company=row["visitor_company"],
            visitor_job_title=row["visitor_job_title"],
            chat_messages=row["chat_messages"] or 0,
            time_on_page=row["time_on_page"] or 0,
            cta_clicked=bool(row["cta_clicked"]),
            form_submitted=bool(row["form_submitted"]),
            session_id=row["session_id"],
        )

    async def get_prior_sessions(
        self,
        campaign_id: str,
        visitor_email: str,
        exclude_session_id: str | None,
        exclude_visit_id: str | None = None,
    ) -> list[PriorSession]:
        """Other sessions by the same visitor email on a campaign.

        Args:
            campaign_id: Campaign to search.
            visitor_email: Visitor identity.
            exclude_session_id: Current session; rows with this id are skipped.
            exclude_visit_id: Current visit row, always skipped when given.

        Returns:
            Engagement counters of the matching sessions.
        """
        rows = await self._db.fetch(
            _PRIOR_SESSIONS_SQL,
            campaign_id,
            visitor_email,
            exclude_session_id,
            exclude_visit_id,
        )
        return [
            PriorSession(
                chat_messages=row["chat_messages"] or 0,
                time_on_page=row["time_on_page"] or 0,
            )
            for row in rows
        ]
