"""HTML bodies for single-alert emails and the daily digest."""

from collections.abc import Sequence
from html import escape
from typing import Any

from visit_alerts.alerts.schemas import Alert

_BODY_STYLE = (
    "background:#f6f9fc;font-family:-apple-system,BlinkMacSystemFont,"
    "'Segoe UI',Roboto,sans-serif;margin:0;padding:0"
)
_BUTTON_STYLE = (
    "display:inline-block;background:#3B82F6;color:#fff;font-size:16px;"
    "font-weight:bold;padding:12px 20px;border-radius:8px;text-decoration:none"
)

# Payload key -> label, in display order
_ALERT_DETAIL_FIELDS = (
    ("visitorName", "Name"),
    ("visitorEmail", "Email"),
    ("visitorCompany", "Company"),
    ("visitorTitle", "Title"),
)
_DIGEST_DETAIL_FIELDS = (
    ("visitorName", "Name"),
    ("visitorEmail", "Email"),
    ("visitorCompany", "Company"),
    ("campaignName", "Campaign"),
)


def dashboard_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/dashboard/alerts"


def settings_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/dashboard/settings/alerts"


def _details(data: dict[str, Any], fields: Sequence[tuple[str, str]]) -> list[str]:
    return [
        f"<strong>{label}:</strong> {escape(str(data[key]))}"
        for key, label in fields
        if data.get(key)
    ]


def _document(inner: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        '<html>\n<head><meta charset="utf-8"></head>\n'
        f'<body style="{_BODY_STYLE}">\n'
        '  <div style="background:#fff;margin:0 auto;padding:20px 0 48px;max-width:600px">\n'
        f"{inner}"
        "  </div>\n</body>\n</html>"
    )


def render_alert_email(
    title: str,
    message: str,
    data: dict[str, Any],
    base_url: str,
) -> str:
    """Render the instant email for one alert.

    Args:
        title: Alert title (also the subject line).
        message: Alert message.
        data: Alert payload; visitor fields and campaign name are shown when present.
        base_url: Application origin for dashboard and settings links.

    Returns:
        Complete HTML document.
    """
    details = _details(data, _ALERT_DETAIL_FIELDS)
    details_block = ""
    if details:
        rows = "".join(
            f'<p style="font-size:14px;margin:8px 0;color:#525252">{d}</p>'
            for d in details
        )
        details_block = (
            '    <div style="background:#f6f9fc;border-radius:8px;margin:20px 40px;padding:20px;">'
            '<p style="font-size:14px;font-weight:bold;margin-bottom:12px;">Visitor Details</p>'
            f"{rows}</div>\n"
        )

    campaign_line = ""
    if data.get("campaignName"):
        campaign_line = (
            '    <p style="font-size:14px;margin:8px 0;padding:0 40px">'
            f"<strong>Campaign:</strong> {escape(str(data['campaignName']))}</p>\n"
        )

    inner = (
        '    <h1 style="font-size:24px;font-weight:bold;margin:40px 0 20px;padding:0 40px">'
        f"{escape(title)}</h1>\n"
        '    <p style="font-size:16px;line-height:24px;margin:0 0 20px;padding:0 40px;color:#525252">'
        f"{escape(message)}</p>\n"
        f"{details_block}"
        f"{campaign_line}"
        '    <p style="padding:0 40px;margin:20px 0">'
        f'<a href="{escape(dashboard_url(base_url))}" style="{_BUTTON_STYLE}">View in Dashboard</a></p>\n'
        '    <p style="color:#8898aa;font-size:12px;padding:0 40px;margin-top:32px">'
        "You're receiving this because you enabled alerts. "
        f'<a href="{escape(settings_url(base_url))}" style="color:#3B82F6">Manage alert settings</a></p>\n'
    )
    return _document(inner)


def digest_subject(count: int) -> str:
    return f"Your alert digest: {count} alert{'' if count == 1 else 's'}"


def render_digest_email(
    alerts: Sequence[Alert],
    base_url: str,
    lookback_hours: int = 24,
) -> str:
    """Render one combined email listing every pending alert.

    Args:
        alerts: Alerts to include, in display order.
        base_url: Application origin for dashboard and settings links.
        lookback_hours: Window named in the summary line.

    Returns:
        Complete HTML document.
    """
    items = []
    for alert in alerts:
        details = _details(alert.data, _DIGEST_DETAIL_FIELDS)
        details_html = ""
        if details:
            details_html = (
                '<p style="font-size:13px;margin:4px 0;color:#525252">'
                f"{' &middot; '.join(details)}</p>"
            )
        items.append(
            '      <div style="border-bottom:1px solid #e5e7eb;padding:16px 0">'
            f'<h2 style="font-size:16px;font-weight:600;margin:0 0 8px">{escape(alert.title)}</h2>'
            f'<p style="font-size:14px;line-height:20px;margin:0;color:#525252">{escape(alert.message)}</p>'
            f"{details_html}</div>\n"
        )

    count = len(alerts)
    inner = (
        '    <h1 style="font-size:22px;font-weight:bold;margin:40px 40px 16px;padding:0">'
        "Your daily alert digest</h1>\n"
        '    <p style="font-size:14px;color:#6b7280;margin:0 40px 24px;padding:0">'
        f"{count} alert{'' if count == 1 else 's'} from the last {lookback_hours} hours.</p>\n"
        '    <div style="padding:0 40px 24px">\n'
        f"{''.join(items)}"
        "    </div>\n"
        '    <p style="padding:0 40px;margin:24px 0">'
        f'<a href="{escape(dashboard_url(base_url))}" style="{_BUTTON_STYLE}">View all alerts</a></p>\n'
        '    <p style="color:#8898aa;font-size:12px;padding:0 40px;margin-top:32px">'
        "You're receiving this because you chose the daily digest. "
        f'<a href="{escape(settings_url(base_url))}" style="color:#3B82F6">Change alert settings</a></p>\n'
    )
    return _document(inner)
