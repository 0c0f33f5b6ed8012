"""Transactional email client backed by the Resend HTTP API.

One call per message, no retries. ``send`` never raises: transport errors
and non-2xx responses come back as ``SendResult(ok=False, error=...)``.
"""

import logging
from dataclasses import dataclass

import httpx

from visit_alerts.config.settings import get_settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class SendResult:
    """Outcome of one email send."""

    ok: bool
    id: str | None = None
    error: str | None = None


class ResendMailer:
    """Sends HTML email through Resend.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling).
    """

    def __init__(
        self,
        api_key: str | None = None,
        sender: str | None = None,
        api_url: str = RESEND_API_URL,
        timeout: float = 10.0,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.resend_api_key
        self._sender = sender or settings.alerts_sender
        self._api_url = api_url
        self._timeout = timeout

    async def send(self, to: str, subject: str, html: str) -> SendResult:
        """Send one email.

        Args:
            to: Recipient address.
            subject: Subject line.
            html: Rendered HTML body.

        Returns:
            SendResult with the provider message id on success.
        """
        if not self._api_key:
            return SendResult(ok=False, error="RESEND_API_KEY not configured")

        payload = {
            "from": self._sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._api_url, json=payload, headers=headers)
        except httpx.TimeoutException:
            return SendResult(ok=False, error="timed out")
        except httpx.HTTPError as e:
            return SendResult(ok=False, error=str(e) or type(e).__name__)

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not resp.is_success:
            return SendResult(
                ok=False,
                error=body.get("message") or resp.reason_phrase or str(resp.status_code),
            )
        return SendResult(ok=True, id=body.get("id") or "unknown")
