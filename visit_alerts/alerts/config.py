"""Alert engine configuration.

Controls the deduplication window, the digest lookback, detection
thresholds and the per-channel send timeout. All settings can be
overridden via ``ALERTS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EXECUTIVE_TERMS: tuple[str, ...] = (
    "ceo",
    "cto",
    "cfo",
    "coo",
    "cmo",
    "cio",
    "chief",
    "president",
    "vp",
    "vice president",
    "director",
    "head of",
    "svp",
    "evp",
)


class AlertConfig(BaseSettings):
    """Configuration for alert detection and delivery."""

    model_config = SettingsConfigDict(
        env_prefix="ALERTS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Deduplication: suppress repeat (user, campaign, visit, kind) tuples
    dedup_window_minutes: int = Field(
        default=60,
        ge=1,
        le=24 * 60,
        description="Minutes during which a repeat alert for the same visit + kind is suppressed",
    )

    # Digest
    digest_lookback_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="Hours of un-emailed alerts collected into one digest",
    )

    # Detection thresholds
    multiple_chat_threshold: int = Field(
        default=5,
        ge=1,
        description="Chat messages in one session that fire multiple_chat_messages",
    )
    returning_chat_threshold: int = Field(
        default=3,
        ge=0,
        description="Prior-session chat total that must be exceeded for returning_visitor",
    )
    returning_avg_time_threshold: float = Field(
        default=60.0,
        ge=0.0,
        description="Mean prior time-on-page (seconds) that must be exceeded for returning_visitor",
    )
    executive_terms: list[str] = Field(
        default=list(DEFAULT_EXECUTIVE_TERMS),
        description="Lower-case substrings that mark a job title as executive",
    )

    # Delivery
    channel_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Upper bound on a single channel send",
    )

    @property
    def dedup_window_seconds(self) -> int:
        return self.dedup_window_minutes * 60
