"""Email notifications to users, sent through Resend."""

import logging
from typing import Optional

import resend

from ghostmydata.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend
resend.api_key = settings.resend_api_key

BUTTON_STYLE = (
    "display: inline-block; background-color: #10b981; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 8px; margin: 16px 0;"
)
MUTED_STYLE = "color: #64748b; font-size: 14px;"


def _sender() -> str:
    return f"{settings.app_name} <{settings.from_email}>"


async def send_email(to: str, subject: str, html: str, reply_to: Optional[str] = None) -> bool:
    """Send an email using Resend."""
    if not settings.resend_api_key:
        logger.info("Email not configured, would send to %s: %s", to, subject)
        return True

    params = {
        "from": _sender(),
        "to": [to],
        "subject": subject,
        "html": html,
    }
    if reply_to:
        params["reply_to"] = reply_to

    try:
        resend.Emails.send(params)
        return True
    except Exception as e:
        logger.error("Email send to %s failed: %s", to, e)
        return False


def _wrap(content: str) -> str:
    dashboard_url = f"{settings.frontend_url}/dashboard"
    return f"""
    <div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">
        {content}
        <a href="{dashboard_url}" style="{BUTTON_STYLE}">View Dashboard</a>
    </div>
    """


def _source_list(items: list[dict]) -> str:
    return "".join(f"<li>{item['source_name']}</li>" for item in items)


async def send_removal_status_digest(email: str, name: str, updates: dict) -> bool:
    """
    One email summarising removal progress for a user.

    Args:
        updates: {"completed": [...], "submitted": [...], "in_progress": [...], "failed": [...]},
            each item a dict with source_name, source and data_type
    """
    sections = [
        ("completed", "Removed", "#10b981"),
        ("submitted", "Removal requests sent", "#6366f1"),
        ("in_progress", "In progress", "#f59e0b"),
        ("failed", "Needs attention", "#ef4444"),
    ]

    body = ""
    total = 0
    for key, heading, color in sections:
        items = updates.get(key) or []
        if not items:
            continue
        total += len(items)
        body += f"""
        <h2 style="color: {color}; font-size: 18px;">{heading} ({len(items)})</h2>
        <ul>{_source_list(items)}</ul>
        """

    if total == 0:
        return False

    html = _wrap(f"""
        <h1 style="color: #0f172a;">Your removal update</h1>
        <p>Hi {name or 'there'}, here's what changed with your data removal requests.</p>
        {body}
    """)
    return await send_email(email, f"Removal Update: {total} change{'s' if total != 1 else ''} - {settings.app_name}", html)


async def send_bulk_removal_summary(email: str, name: str, summary: dict) -> bool:
    """Summary sent once at the end of a bulk removal run."""
    sources = summary.get("sources") or []
    shown = "".join(f"<li>{source}</li>" for source in sources[:20])
    more = f"<p style=\"{MUTED_STYLE}\">...and {len(sources) - 20} more</p>" if len(sources) > 20 else ""

    html = _wrap(f"""
        <h1 style="color: #0f172a;">Bulk removal submitted</h1>
        <p>Hi {name or 'there'}, we sent {summary.get('success_count', 0)} removal requests on your behalf.</p>
        <p>These also cover <strong>{summary.get('consolidated_count', 0)}</strong> related sites
           owned by the same companies.</p>
        <ul>{shown}</ul>
        {more}
        <p style="{MUTED_STYLE}">{summary.get('fail_count', 0)} requests need manual follow-up.</p>
    """)
    return await send_email(email, f"Bulk Removal Submitted - {settings.app_name}", html)


async def send_removal_complete_email(email: str, broker_name: str, consolidated_count: int = 0) -> bool:
    """Send notification when removal is complete."""
    related = f" and {consolidated_count} related sites" if consolidated_count else ""

    html = _wrap(f"""
        <h1 style="color: #0f172a;">Removal Complete!</h1>
        <p>Great news! Your personal information has been removed from <strong>{broker_name}</strong>{related}.</p>
        <p style="{MUTED_STYLE}">
            We'll continue monitoring this site to make sure your data doesn't reappear.
        </p>
    """)
    return await send_email(email, f"Removal Complete: {broker_name} - {settings.app_name}", html)


async def send_removal_failure_alert(email: str, name: str, source_name: str, attempts: int, last_error: Optional[str]) -> bool:
    """Sent when a removal has exhausted its automatic attempts."""
    html = _wrap(f"""
        <h1 style="color: #ef4444;">Removal needs your help</h1>
        <p>Hi {name or 'there'}, we tried {attempts} times to remove your data from
           <strong>{source_name}</strong> without success.</p>
        <p style="background-color: #fef2f2; padding: 12px; border-radius: 8px; color: #991b1b;">
            {last_error or 'The broker did not accept the request.'}
        </p>
        <p style="{MUTED_STYLE}">Open the dashboard for manual opt-out instructions.</p>
    """)
    return await send_email(email, f"Action Needed: {source_name} - {settings.app_name}", html)


async def send_new_exposure_alert(email: str, new_count: int, source_names: list[str]) -> bool:
    """Send alert when a scan finds new exposures."""
    html = _wrap(f"""
        <h1 style="color: #ef4444;">New Exposures Found</h1>
        <p>We found your personal information on <strong>{new_count}</strong> new site{'s' if new_count != 1 else ''}.</p>
        <ul>{''.join(f'<li>{name}</li>' for name in source_names[:10])}</ul>
        <p style="{MUTED_STYLE}">
            Start a removal request from the dashboard to protect your privacy.
        </p>
    """)
    return await send_email(email, f"New Exposures Found - {settings.app_name}", html)
