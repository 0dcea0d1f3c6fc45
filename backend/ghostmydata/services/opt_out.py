"""Automated opt-out - CCPA/GDPR deletion emails and form automation."""

import logging
import zlib
from typing import Optional

import resend

from brokers import get_scanner
from ghostmydata.config import settings

logger = logging.getLogger(__name__)


def generate_opt_out_email(
    broker_name: str,
    full_name: str,
    user_email: str,
    data_types: Optional[list[str]] = None,
    profile_url: Optional[str] = None,
    date_of_birth: Optional[str] = None,
    phone_numbers: Optional[list[str]] = None,
    addresses: Optional[list[dict]] = None,
) -> str:
    """Generate a deletion request email with full identifying info."""

    dob_text = ""
    if date_of_birth:
        dob_text = f"\n- Date of Birth: {date_of_birth}"

    phone_text = ""
    if phone_numbers:
        phone_text = "\n- Phone Number(s): " + ", ".join(phone_numbers[:3])

    address_text = ""
    if addresses:
        address_text = "\n\nAddresses associated with my records:"
        for addr in addresses[:3]:
            parts = [
                addr.get("street"),
                addr.get("city"),
                " ".join(p for p in [addr.get("state"), addr.get("zip_code") or addr.get("zip")] if p),
            ]
            line = ", ".join(p for p in parts if p)
            if line:
                address_text += f"\n- {line}"

    types_text = ""
    if data_types:
        types_text = "\n- Data Types to Remove: " + ", ".join(data_types)

    profile_text = ""
    if profile_url:
        profile_text = f"\n\nProfile URL found on your site: {profile_url}"

    # Stable across processes, unlike hash()
    reference = zlib.crc32(user_email.lower().encode()) % 100000

    return f"""To Whom It May Concern,

I am writing to exercise my rights under the California Consumer Privacy Act (CCPA) and/or the General Data Protection Regulation (GDPR) to request the deletion of my personal information from your systems.

PERSONAL INFORMATION TO REMOVE:

- Full Name: {full_name}
- Email: {user_email}{types_text}{dob_text}{phone_text}{address_text}{profile_text}

Please search for and remove ALL records matching any combination of the above information.

I REQUEST THAT YOU:
1. Delete all personal information you have collected about me
2. Remove any public-facing profile or listing containing my information
3. Refrain from selling or sharing my personal information with third parties
4. Confirm completion of this request via email

This request is made pursuant to:
- California Consumer Privacy Act (CCPA) - Cal. Civ. Code § 1798.105
- GDPR Article 17 - Right to Erasure (if applicable)

You must respond to this request within 45 days (CCPA) or 30 days (GDPR). If you require any additional information to verify my identity, please contact me at {user_email}.

Thank you for your prompt attention to this matter.

Sincerely,
{full_name}
{user_email}

---
This request was sent via {settings.app_name} on behalf of {full_name}.
Reference ID: {broker_name.upper().replace(' ', '_')}-{reference:05d}
"""


async def send_ccpa_removal_request(
    to_email: str,
    from_name: str,
    from_email: str,
    data_types: list[str],
    source_url: Optional[str] = None,
    broker_name: str = "",
) -> dict:
    """Send a deletion request to a broker's privacy contact; replies go to the user."""
    if not settings.resend_api_key:
        return {
            "success": False,
            "message": "Email service not configured. Manual removal required.",
            "error": "RESEND_API_KEY missing",
        }

    resend.api_key = settings.resend_api_key

    body = generate_opt_out_email(
        broker_name=broker_name or to_email.split("@")[-1],
        full_name=from_name,
        user_email=from_email,
        data_types=data_types,
        profile_url=source_url if source_url and not source_url.startswith("mailto:") else None,
    )

    try:
        result = resend.Emails.send({
            "from": f"{settings.app_name} <{settings.from_email}>",
            "to": [to_email],
            "reply_to": from_email,
            "subject": f"Data Deletion Request - CCPA/GDPR - {from_name}",
            "text": body,
        })
    except Exception as e:
        logger.warning("CCPA request to %s failed: %s", to_email, e)
        return {
            "success": False,
            "message": f"Failed to send opt-out email: {str(e)[:100]}",
            "error": str(e),
        }

    logger.info("CCPA request sent to %s", to_email)
    return {
        "success": True,
        "message": f"Opt-out email sent to {to_email}",
        "email_id": result.get("id") if isinstance(result, dict) else None,
        "sent_to": to_email,
    }


async def attempt_automated_opt_out(source: str, user_data: dict) -> dict:
    """
    Submit a broker's opt-out form through its scanner's browser automation.

    Args:
        source: Directory key of the broker
        user_data: full_name, email and profile_url of the user
    """
    if not settings.form_automation_enabled:
        return {"success": False, "message": "Form automation is disabled"}

    scanner = get_scanner(source)
    submit = getattr(scanner, "submit_opt_out", None)
    if submit is None:
        return {"success": False, "message": f"No form automation available for {source}"}

    result = await submit(user_data.get("profile_url") or "", user_data)
    if result.get("success"):
        return {
            "success": True,
            "message": f"Opt-out form submitted to {scanner.name}",
            "confirmation": result.get("confirmation"),
        }

    return {
        "success": False,
        "message": result.get("error") or "Form submission failed",
        "instructions": result.get("instructions"),
    }
