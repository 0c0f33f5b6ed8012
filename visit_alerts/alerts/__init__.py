"""Alert engine for visitor engagement events.

Components:
- VisitEvent / AlertKind / Alert / RecipientAlertSettings: Schemas
- AlertConfig: Pydantic settings for the dedup window, thresholds and timeouts
- detect_conditions / check_*: Condition detection, one rule per AlertKind
- AlertRepository: Alert persistence, dedup lookups and sent flags
- CampaignLookup / VisitLookup: Read-only campaign, user and visit queries
- AlertService: Dispatch coordinator (resolve, detect, dedup, persist, fan out)
- NotificationChannel / EmailChannel / SlackChannel / WebhookChannel: Delivery
- NotificationDispatcher / ChannelResult: Concurrent per-channel sends
- ResendMailer: Transactional email collaborator
- DigestService / DigestResult: Daily digest batch job
"""

from visit_alerts.alerts.channels import (
    EmailChannel,
    NotificationChannel,
    SlackChannel,
    WebhookChannel,
)
from visit_alerts.alerts.config import AlertConfig
from visit_alerts.alerts.digest import DigestResult, DigestService
from visit_alerts.alerts.dispatcher import (
    ChannelResult,
    Delivered,
    Failed,
    NotificationDispatcher,
    TimedOut,
)
from visit_alerts.alerts.lookups import CampaignLookup, VisitLookup
from visit_alerts.alerts.mailer import ResendMailer, SendResult
from visit_alerts.alerts.repository import AlertRepository
from visit_alerts.alerts.schemas import (
    VALID_ALERT_KINDS,
    Alert,
    AlertCandidate,
    AlertKind,
    CampaignContext,
    PriorSession,
    Recipient,
    RecipientAlertSettings,
    VisitEvent,
)
from visit_alerts.alerts.service import AlertDelivery, AlertService
from visit_alerts.alerts.triggers import detect_conditions

__all__ = [
    "Alert",
    "AlertCandidate",
    "AlertConfig",
    "AlertDelivery",
    "AlertKind",
    "AlertRepository",
    "AlertService",
    "CampaignContext",
    "CampaignLookup",
    "ChannelResult",
    "Delivered",
    "DigestResult",
    "DigestService",
    "EmailChannel",
    "Failed",
    "NotificationChannel",
    "NotificationDispatcher",
    "PriorSession",
    "Recipient",
    "RecipientAlertSettings",
    "ResendMailer",
    "SendResult",
    "SlackChannel",
    "TimedOut",
    "VALID_ALERT_KINDS",
    "VisitEvent",
    "VisitLookup",
    "WebhookChannel",
    "detect_conditions",
]
