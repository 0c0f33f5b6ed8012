"""Schema definitions for visit events, recipient settings and alert records.

``Alert`` maps 1:1 to the ``alerts`` database table. Each alert represents
one notification decision about a visitor engagement snapshot: a target
account visit, an executive visit, heavy chat usage, a form submission,
a CTA click, or an engaged returning visitor.
"""

import enum
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal


class AlertKind(str, enum.Enum):
    """Closed set of conditions the detector can report."""

    HIGH_VALUE_VISITOR = "HIGH_VALUE_VISITOR"
    EXECUTIVE_VISIT = "EXECUTIVE_VISIT"
    MULTIPLE_CHAT_MESSAGES = "MULTIPLE_CHAT_MESSAGES"
    FORM_SUBMISSION = "FORM_SUBMISSION"
    CTA_CLICKED = "CTA_CLICKED"
    RETURNING_VISITOR = "RETURNING_VISITOR"


VALID_ALERT_KINDS: frozenset[str] = frozenset(k.value for k in AlertKind)

ChannelName = Literal["email", "slack", "webhook"]

VALID_CHANNELS: frozenset[str] = frozenset({"email", "slack", "webhook"})

EmailDigestMode = Literal["instant", "daily"]


@dataclass
class VisitEvent:
    """Read-only snapshot of one visitor engagement session.

    Attributes:
        visit_id: Visit row identifier.
        campaign_id: Campaign the landing page belongs to.
        visitor_email: Identified visitor email, if any.
        visitor_name: Visitor display name, if any.
        visitor_company: Self-reported company, if any.
        visitor_job_title: Self-reported job title, if any.
        chat_messages: Chat messages sent during the session.
        time_on_page: Seconds spent on the page.
        cta_clicked: Whether the main CTA was clicked.
        form_submitted: Whether the contact form was submitted.
        session_id: Opaque id distinguishing repeat visits by one visitor.
    """

    visit_id: str
    campaign_id: str
    visitor_email: str | None = None
    visitor_name: str | None = None
    visitor_company: str | None = None
    visitor_job_title: str | None = None
    chat_messages: int = 0
    time_on_page: int = 0
    cta_clicked: bool = False
    form_submitted: bool = False
    session_id: str | None = None


@dataclass(frozen=True)
class PriorSession:
    """Engagement counters of an earlier session by the same visitor."""

    chat_messages: int = 0
    time_on_page: int = 0


@dataclass
class RecipientAlertSettings:
    """Per-recipient alert preferences, parsed from the stored JSON blob.

    Channel toggles default to enabled when absent. The per-kind toggles are
    carried for the settings page but are not consulted during detection;
    neither is ``slack_webhook_url``, which delivery takes from the user row.
    """

    enabled: bool = True
    email: bool = True
    slack: bool = True
    in_app: bool = True
    email_digest: EmailDigestMode = "instant"
    webhook_url: str | None = None
    slack_webhook_url: str | None = None
    high_value_visitor: bool = True
    executive_visit: bool = True
    multiple_chat_messages: bool = True
    form_submission: bool = True
    cta_clicked: bool = True
    returning_visitor: bool = True

    @property
    def uses_daily_digest(self) -> bool:
        return self.email_digest == "daily"

    @classmethod
    def from_json(cls, raw: Any) -> "RecipientAlertSettings":
        """Build settings from the camelCase JSON stored on the user row.

        Args:
            raw: Dict, JSON string, or None.

        Returns:
            RecipientAlertSettings with defaults for missing keys.
        """
        if raw is None:
            return cls()
        if isinstance(raw, str):
            raw = json.loads(raw) if raw.strip() else {}
        if not isinstance(raw, dict):
            return cls()

        def toggle(key: str) -> bool:
            # Only an explicit false disables a toggle
            return raw.get(key) is not False

        digest = raw.get("emailDigest")
        return cls(
            enabled=toggle("enabled"),
            email=toggle("email"),
            slack=toggle("slack"),
            in_app=toggle("inApp"),
            email_digest="daily" if digest == "daily" else "instant",
            webhook_url=raw.get("webhookUrl") or None,
            slack_webhook_url=raw.get("slackWebhookUrl") or None,
            high_value_visitor=toggle("highValueVisitor"),
            executive_visit=toggle("executiveVisit"),
            multiple_chat_messages=toggle("multipleChatMessages"),
            form_submission=toggle("formSubmission"),
            cta_clicked=toggle("ctaClicked"),
            returning_visitor=toggle("returningVisitor"),
        )


@dataclass
class Recipient:
    """The user who owns a campaign and receives its alerts."""

    user_id: str
    email: str | None
    settings: RecipientAlertSettings = field(default_factory=RecipientAlertSettings)
    # Slack delivery reads only this column, never settings.slack_webhook_url
    slack_webhook_url: str | None = None


@dataclass
class CampaignContext:
    """Campaign, company and recipient resolved for one visit."""

    campaign_id: str
    campaign_name: str
    company_name: str
    recipient: Recipient


@dataclass
class AlertCandidate:
    """A condition detected for a visit, before dedup and persistence."""

    kind: AlertKind
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Alert:
    """A persisted alert record from the alerts table.

    Attributes:
        alert_id: UUID4 identifier.
        user_id: Recipient who owns the alert.
        campaign_id: Campaign the visit belongs to.
        visit_id: Visit that triggered the alert.
        kind: Which condition was detected.
        title: Short rendered summary.
        message: Rendered description of the condition.
        data: JSONB payload with the visitor/campaign snapshot.
        sent_via_email: Email delivery succeeded (instant or digest).
        sent_via_slack: Slack webhook delivery succeeded.
        sent_via_webhook: Generic webhook delivery succeeded.
        is_read: Whether the recipient opened it in the dashboard.
        created_at: When the alert was recorded.
    """

    user_id: str
    campaign_id: str
    visit_id: str
    kind: AlertKind
    title: str
    message: str
    alert_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    data: dict[str, Any] = field(default_factory=dict)
    sent_via_email: bool = False
    sent_via_slack: bool = False
    sent_via_webhook: bool = False
    is_read: bool = False
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if isinstance(self.kind, str) and not isinstance(self.kind, AlertKind):
            if self.kind not in VALID_ALERT_KINDS:
                raise ValueError(
                    f"Invalid kind {self.kind!r}. "
                    f"Must be one of: {sorted(VALID_ALERT_KINDS)}"
                )
            self.kind = AlertKind(self.kind)

    @classmethod
    def from_candidate(
        cls,
        candidate: AlertCandidate,
        *,
        user_id: str,
        campaign_id: str,
        visit_id: str,
    ) -> "Alert":
        return cls(
            user_id=user_id,
            campaign_id=campaign_id,
            visit_id=visit_id,
            kind=candidate.kind,
            title=candidate.title,
            message=candidate.message,
            data=dict(candidate.data),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "campaign_id": self.campaign_id,
            "visit_id": self.visit_id,
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "sent_via_email": self.sent_via_email,
            "sent_via_slack": self.sent_via_slack,
            "sent_via_webhook": self.sent_via_webhook,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Alert":
        """Create an Alert from a dictionary.

        Args:
            data: Dictionary with alert fields.

        Returns:
            Alert instance.
        """
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        elif created_at is None:
            created_at = datetime.now(timezone.utc)

        payload = data.get("data", {})
        if isinstance(payload, str):
            payload = json.loads(payload)

        return cls(
            alert_id=data.get("alert_id", str(uuid.uuid4())),
            user_id=data["user_id"],
            campaign_id=data["campaign_id"],
            visit_id=data["visit_id"],
            kind=data["kind"],
            title=data["title"],
            message=data["message"],
            data=payload or {},
            sent_via_email=data.get("sent_via_email", False),
            sent_via_slack=data.get("sent_via_slack", False),
            sent_via_webhook=data.get("sent_via_webhook", False),
            is_read=data.get("is_read", False),
            created_at=created_at,
        )
