"""Trigger functions for alert condition detection.

Each ``check_*`` function evaluates a single condition against a visit
snapshot and returns an AlertCandidate if the condition is met, or None
otherwise. They perform no I/O. ``detect_conditions`` is the only async
entry point: it loads the visitor's prior sessions once for the
returning-visitor check, then runs every rule independently.

Dedup, persistence and delivery live in AlertService.
"""

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from visit_alerts.alerts.config import AlertConfig
from visit_alerts.alerts.schemas import (
    AlertCandidate,
    AlertKind,
    CampaignContext,
    PriorSession,
    VisitEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_CAMPAIGN_NAME = "Landing page"


class PriorSessionSource(Protocol):
    """Lookup for earlier sessions by the same visitor on a campaign."""

    async def get_prior_sessions(
        self,
        campaign_id: str,
        visitor_email: str,
        exclude_session_id: str | None,
        exclude_visit_id: str | None = None,
    ) -> list[PriorSession]: ...


class _Display:
    """Visitor fields with the fallbacks used in rendered text."""

    def __init__(self, event: VisitEvent, campaign_name: str) -> None:
        self.name = event.visitor_name or "A visitor"
        self.email = event.visitor_email or "Unknown"
        self.company = event.visitor_company or "Unknown company"
        self.title = event.visitor_job_title or ""
        self.campaign = campaign_name

    def data(self, *, with_title: bool = False, **extra: Any) -> dict[str, Any]:
        out: dict[str, Any] = {
            "visitorName": self.name,
            "visitorEmail": self.email,
            "visitorCompany": self.company,
        }
        if with_title:
            out["visitorTitle"] = self.title
        out.update(extra)
        out["campaignName"] = self.campaign
        return out


def is_executive_title(title: str, terms: Sequence[str]) -> bool:
    """Case-insensitive substring match of a job title against executive terms."""
    lower = title.lower()
    return any(term in lower for term in terms)


def check_high_value_visitor(
    event: VisitEvent,
    company_name: str,
    campaign_name: str,
) -> AlertCandidate | None:
    """Identified visitor whose company is exactly the campaign's target account.

    The company comparison is literal and case-sensitive.
    """
    if not event.visitor_email or event.visitor_company != company_name:
        return None

    d = _Display(event, campaign_name)
    return AlertCandidate(
        kind=AlertKind.HIGH_VALUE_VISITOR,
        title=f"\U0001f3af {d.name} from {company_name} visited your page",
        message=(
            f"{d.name} ({d.email}) from your target account {company_name} "
            f'just visited "{campaign_name}".'
        ),
        data=d.data(with_title=True),
    )


def check_executive_visit(
    event: VisitEvent,
    campaign_name: str,
    config: AlertConfig,
) -> AlertCandidate | None:
    """Visitor whose job title contains a C-level, VP, director or head-of term."""
    if not event.visitor_job_title:
        return None
    if not is_executive_title(event.visitor_job_title, config.executive_terms):
        return None

    d = _Display(event, campaign_name)
    return AlertCandidate(
        kind=AlertKind.EXECUTIVE_VISIT,
        title=f"\U0001f454 Executive from {d.company} visited",
        message=f'{d.name}, {d.title} at {d.company}, visited "{campaign_name}".',
        data=d.data(with_title=True),
    )


def check_multiple_chat_messages(
    event: VisitEvent,
    campaign_name: str,
    config: AlertConfig,
) -> AlertCandidate | None:
    if event.chat_messages < config.multiple_chat_threshold:
        return None

    d = _Display(event, campaign_name)
    return AlertCandidate(
        kind=AlertKind.MULTIPLE_CHAT_MESSAGES,
        title=f"\U0001f4ac {d.name} is highly engaged",
        message=(
            f"{d.name} from {d.company} sent {event.chat_messages} chat messages "
            f"on \"{campaign_name}\". They're very interested!"
        ),
        data=d.data(chatMessages=event.chat_messages),
    )


def check_form_submission(
    event: VisitEvent,
    campaign_name: str,
) -> AlertCandidate | None:
    if not event.form_submitted:
        return None

    d = _Display(event, campaign_name)
    return AlertCandidate(
        kind=AlertKind.FORM_SUBMISSION,
        title=f"\U0001f4dd {d.name} submitted the form",
        message=(
            f"{d.name} ({d.email}) from {d.company} submitted the contact form "
            f'on "{campaign_name}".'
        ),
        data=d.data(with_title=True),
    )


def check_cta_clicked(
    event: VisitEvent,
    campaign_name: str,
) -> AlertCandidate | None:
    if not event.cta_clicked:
        return None

    d = _Display(event, campaign_name)
    return AlertCandidate(
        kind=AlertKind.CTA_CLICKED,
        title=f"\U0001f3af {d.name} clicked your CTA",
        message=f'{d.name} from {d.company} clicked the main CTA on "{campaign_name}".',
        data=d.data(),
    )


def check_returning_visitor(
    event: VisitEvent,
    prior_sessions: Sequence[PriorSession],
    campaign_name: str,
    config: AlertConfig,
) -> AlertCandidate | None:
    """Identified visitor back for another session after real engagement.

    Fires when at least one prior session exists and either the summed
    prior chat messages exceed ``returning_chat_threshold`` or the mean
    prior time-on-page exceeds ``returning_avg_time_threshold``.

    Args:
        event: Current visit.
        prior_sessions: Other sessions by the same email on the campaign.
        campaign_name: Campaign display name.
        config: Alert configuration with thresholds.

    Returns:
        AlertCandidate or None.
    """
    if not event.visitor_email or not prior_sessions:
        return None

    total_chat = sum(s.chat_messages for s in prior_sessions)
    avg_time = sum(s.time_on_page for s in prior_sessions) / len(prior_sessions)

    if not (
        total_chat > config.returning_chat_threshold
        or avg_time > config.returning_avg_time_threshold
    ):
        return None

    total_visits = len(prior_sessions) + 1
    d = _Display(event, campaign_name)
    return AlertCandidate(
        kind=AlertKind.RETURNING_VISITOR,
        title=f"\U0001f504 {d.name} returned to your page",
        message=(
            f'{d.name} from {d.company} visited "{campaign_name}" again. '
            f"They've visited {total_visits} times total."
        ),
        data=d.data(totalVisits=total_visits),
    )


def check_all_triggers(
    event: VisitEvent,
    context: CampaignContext,
    prior_sessions: Sequence[PriorSession],
    config: AlertConfig,
) -> list[AlertCandidate]:
    """Run every rule against a visit.

    Args:
        event: Visit snapshot.
        context: Resolved campaign/company names.
        prior_sessions: Earlier sessions for the returning-visitor rule.
        config: Alert configuration.

    Returns:
        Candidates in a fixed kind order (possibly empty).
    """
    campaign_name = context.campaign_name or DEFAULT_CAMPAIGN_NAME
    results = [
        check_high_value_visitor(event, context.company_name, campaign_name),
        check_executive_visit(event, campaign_name, config),
        check_multiple_chat_messages(event, campaign_name, config),
        check_form_submission(event, campaign_name),
        check_cta_clicked(event, campaign_name),
        check_returning_visitor(event, prior_sessions, campaign_name, config),
    ]
    return [c for c in results if c is not None]


async def detect_conditions(
    event: VisitEvent,
    context: CampaignContext,
    visits: PriorSessionSource,
    config: AlertConfig,
) -> list[AlertCandidate]:
    """Load prior sessions for identified visitors, then evaluate all rules.

    A failed prior-session lookup only disables the returning-visitor rule.
    """
    prior: list[PriorSession] = []
    if event.visitor_email:
        try:
            prior = await visits.get_prior_sessions(
                event.campaign_id,
                event.visitor_email,
                event.session_id,
                event.visit_id,
            )
        except Exception as e:
            logger.warning(
                "Prior-session lookup failed for visit %s, skipping returning-visitor check: %s",
                event.visit_id, e,
            )
    return check_all_triggers(event, context, prior, config)
