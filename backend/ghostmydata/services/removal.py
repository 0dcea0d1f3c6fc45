"""Removal service - executes opt-out requests and drives their status."""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from brokers.directory import (
    BOTH,
    EMAIL,
    NOT_REMOVABLE,
    DataBrokerInfo,
    get_data_broker_info,
    get_opt_out_instructions,
    get_subsidiaries,
)
from ghostmydata.config import settings
from ghostmydata.models.alert import Alert
from ghostmydata.models.enums import (
    REMOVAL_TO_EXPOSURE_STATUS,
    ExposureStatus,
    RemovalMethod,
    RemovalStatus,
)
from ghostmydata.models.exposure import Exposure
from ghostmydata.models.request import RemovalRequest
from ghostmydata.models.user import PersonalProfile, User
from ghostmydata.services.email import send_removal_failure_alert, send_removal_status_digest
from ghostmydata.services.opt_out import attempt_automated_opt_out, send_ccpa_removal_request
from ghostmydata.services.verification import calculate_verify_after_date

logger = logging.getLogger(__name__)

MAX_REMOVAL_ATTEMPTS = 5
# Keeps any single broker from flagging us as spam
MAX_REQUESTS_PER_BROKER_PER_DAY = 25
MIN_MINUTES_BETWEEN_SAME_BROKER = 15
# Pending requests past this many attempts are left to the retry batch
MAX_PENDING_ATTEMPTS = 3

PENDING_BATCH_DELAY = 2.0
RETRY_BATCH_DELAY = 3.0

# Lower is picked first within a broker's queue
SEVERITY_PRIORITY = {
    "CRITICAL": 0,
    "HIGH": 1,
    "MEDIUM": 2,
    "LOW": 3,
}

NON_REMOVABLE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"breach",
        r"leak",
        r"dark_?web",
        r"paste_?site",
        r"stealer",
        r"ransomware",
        r"underground",
        r"carding",
        r"forum_?monitor",
        r"market_?monitor",
    )
]

DATA_TYPE_LABELS = {
    "EMAIL": "Email Address",
    "PHONE": "Phone Number",
    "NAME": "Full Name",
    "ADDRESS": "Physical Address",
    "DOB": "Date of Birth",
    "SSN": "Social Security Number",
    "PHOTO": "Photo/Image",
    "USERNAME": "Username",
    "FINANCIAL": "Financial Information",
    "COMBINED_PROFILE": "Combined Personal Profile",
}

# Companies that only process data for their clients. A deletion request
# belongs with the client (the controller), never with these.
DATA_PROCESSOR_BLOCKLIST = {
    "syndigo.com": {"name": "Syndigo", "reason": "Product content processor acting for retail brands"},
    "powerreviews.com": {"name": "PowerReviews", "reason": "Review platform processing data for retailers"},
    "bazaarvoice.com": {"name": "Bazaarvoice", "reason": "Review syndication processor for brands"},
    "salesforce.com": {"name": "Salesforce", "reason": "CRM processor acting for its customers"},
    "segment.com": {"name": "Segment", "reason": "Customer data pipeline operated for its clients"},
    "mailchimp.com": {"name": "Mailchimp", "reason": "Email service provider processing subscriber lists"},
    "sendgrid.net": {"name": "SendGrid", "reason": "Email delivery processor"},
    "twilio.com": {"name": "Twilio", "reason": "Communications processor acting for its customers"},
    "zendesk.com": {"name": "Zendesk", "reason": "Support platform processing data for its customers"},
    "hubspot.com": {"name": "HubSpot", "reason": "Marketing CRM processor acting for its customers"},
    "amazonaws.com": {"name": "Amazon Web Services", "reason": "Cloud infrastructure provider"},
    "cloudflare.com": {"name": "Cloudflare", "reason": "Network infrastructure provider"},
    "stripe.com": {"name": "Stripe", "reason": "Payment processor acting for merchants"},
}

TRIED_EMAILS_PATTERN = re.compile(r"tried: ([\w@.,\s]+)", re.IGNORECASE)

# Sources the automation stats break out separately
TRACKED_AUTOMATION_SOURCES = [
    "SPOKEO", "WHITEPAGES", "BEENVERIFIED", "TRUEPEOPLESEARCH",
    "RADARIS", "INTELIUS", "FASTPEOPLESEARCH", "PEOPLEFINDER",
]


@dataclass
class RemovalExecutionResult:
    success: bool
    method: str
    message: str
    instructions: Optional[str] = None
    # Breach databases and dark web sources
    is_non_removable: bool = False


@dataclass
class EntityValidationResult:
    should_proceed: bool
    classification: str  # DATA_BROKER, DATA_PROCESSOR, UNKNOWN
    confidence: float
    reason: str
    blocked_by_blocklist: bool = False


def format_data_type(data_type: str) -> str:
    return DATA_TYPE_LABELS.get(data_type, data_type)


def is_non_removable_source(source: str, broker_info: Optional[DataBrokerInfo] = None) -> bool:
    if broker_info and (not broker_info.is_removable or broker_info.removal_method == NOT_REMOVABLE):
        return True
    return any(pattern.search(source) for pattern in NON_REMOVABLE_PATTERNS)


def get_non_removable_instructions(source: str, broker_info: Optional[DataBrokerInfo] = None) -> str:
    """What the user should do instead, for data that can't be taken down."""
    if broker_info and broker_info.notes:
        return broker_info.notes

    source_upper = source.upper()

    if "BREACH" in source_upper or "PWNED" in source_upper:
        return (
            "This data was exposed in a historical data breach. The breach has already occurred "
            "and the leaked data cannot be \"removed\" from existence.\n\n"
            "What you SHOULD do:\n"
            "1. Change any passwords that may have been exposed\n"
            "2. Enable two-factor authentication (2FA) on all accounts\n"
            "3. Monitor your accounts for suspicious activity\n"
            "4. Consider placing a credit freeze if sensitive data was exposed\n"
            "5. Be alert for phishing attempts using your leaked information"
        )

    if "DARK" in source_upper or "FORUM" in source_upper or "MARKET" in source_upper:
        return (
            "This data was found on the dark web. Data on underground forums and marketplaces "
            "cannot be removed through normal channels.\n\n"
            "What you SHOULD do:\n"
            "1. Immediately change all compromised credentials\n"
            "2. Enable two-factor authentication everywhere\n"
            "3. Place credit freezes with Equifax, Experian, and TransUnion\n"
            "4. Monitor your bank and credit accounts closely\n"
            "5. Consider identity theft protection services\n"
            "6. Report to identitytheft.gov if identity fraud occurs"
        )

    if "PASTE" in source_upper:
        return (
            "This data was found on a paste site. While the specific paste may be removed, "
            "copies likely exist elsewhere.\n\n"
            "What you SHOULD do:\n"
            "1. Change any exposed credentials immediately\n"
            "2. Enable two-factor authentication\n"
            "3. Monitor for unauthorized account access"
        )

    return (
        "This source type is classified as monitoring-only. The data cannot be directly removed "
        "through standard opt-out procedures. Focus on securing your accounts and monitoring for misuse."
    )


def _domain_of(url: str) -> str:
    hostname = urlparse(url).hostname or ""
    return hostname.removeprefix("www.")


def validate_entity_before_removal(domain: str, source: Optional[str] = None) -> EntityValidationResult:
    """
    Decide whether a domain should receive a deletion request at all.

    Fails open: an unknown entity, or an error while checking, proceeds.
    """
    normalized = domain.lower().strip()

    try:
        entry = DATA_PROCESSOR_BLOCKLIST.get(normalized)
        if entry:
            return EntityValidationResult(
                should_proceed=False,
                classification="DATA_PROCESSOR",
                confidence=1.0,
                reason=f"{entry['name']} is a Data Processor: {entry['reason']}",
                blocked_by_blocklist=True,
            )

        # api.powerreviews.com matches powerreviews.com
        parts = normalized.split(".")
        for i in range(1, len(parts) - 1):
            parent_domain = ".".join(parts[i:])
            parent_entry = DATA_PROCESSOR_BLOCKLIST.get(parent_domain)
            if parent_entry:
                return EntityValidationResult(
                    should_proceed=False,
                    classification="DATA_PROCESSOR",
                    confidence=0.95,
                    reason=f"Parent domain {parent_domain} ({parent_entry['name']}) is a Data Processor",
                    blocked_by_blocklist=True,
                )

        broker_key = re.sub(r"[.\-]", "_", (source or normalized).upper())
        broker_info = get_data_broker_info(broker_key)
        if broker_info:
            return EntityValidationResult(
                should_proceed=True,
                classification="DATA_BROKER",
                confidence=0.95,
                reason=f"{broker_info.name} is a known data broker in our directory",
            )

        return EntityValidationResult(
            should_proceed=True,
            classification="UNKNOWN",
            confidence=0.5,
            reason="Entity not in blocklist or broker directory - proceeding with removal",
        )
    except Exception as e:
        logger.warning("Entity validation for %s failed: %s", domain, e)
        return EntityValidationResult(
            should_proceed=True,
            classification="UNKNOWN",
            confidence=0.0,
            reason="Validation error - proceeding with removal (fail open)",
        )


async def _get_profile(db: AsyncSession, user_id: uuid.UUID) -> Optional[PersonalProfile]:
    result = await db.execute(select(PersonalProfile).where(PersonalProfile.user_id == user_id))
    return result.scalar_one_or_none()


def _form_user_data(profile: Optional[PersonalProfile], user_name: str, user_email: str, profile_url: Optional[str]) -> dict:
    phones = (profile.phones if profile else None) or []
    addresses = (profile.addresses if profile else None) or []
    address = addresses[0] if addresses else {}
    return {
        "full_name": user_name,
        "email": user_email,
        "phone": phones[0] if phones else None,
        "address": address.get("street"),
        "city": address.get("city"),
        "state": address.get("state"),
        "zip_code": address.get("zip_code") or address.get("zip"),
        "profile_url": profile_url,
    }


async def _notify_submitted(user: User, broker_info: DataBrokerInfo, source: str, data_type: str):
    await send_removal_status_digest(user.email, user.name or "", {
        "submitted": [{
            "source_name": broker_info.name,
            "source": source,
            "data_type": format_data_type(data_type),
        }],
    })


async def execute_removal(
    db: AsyncSession,
    request_id: uuid.UUID,
    user_id: uuid.UUID,
    skip_user_notification: bool = False,
    skip_entity_validation: bool = False,
) -> RemovalExecutionResult:
    """
    Carry out one removal request according to its method.

    Args:
        skip_user_notification: Leave the user email to the caller, for batches
        skip_entity_validation: For retries that were already validated
    """
    request = await db.get(RemovalRequest, request_id)
    if not request:
        return RemovalExecutionResult(False, RemovalMethod.MANUAL_GUIDE, "Removal request not found")

    exposure = await db.get(Exposure, request.exposure_id)
    user = await db.get(User, request.user_id)
    profile = await _get_profile(db, user_id)

    user_name = (profile.full_name if profile else None) or user.name or "User"
    user_email = user.email
    source = exposure.source
    data_type = exposure.data_type
    source_url = exposure.source_url

    broker_info = get_data_broker_info(source)

    if not skip_entity_validation and source_url:
        domain = _domain_of(source_url)
        validation = validate_entity_before_removal(domain, source=source)
        if not validation.should_proceed:
            logger.warning("Removal %s blocked: %s", request_id, validation.reason)
            request.status = RemovalStatus.BLOCKED
            request.notes = (
                f"Removal blocked: {validation.reason}. "
                "This entity is classified as a Data Processor (not a Data Broker). "
                "Per GDPR Articles 28/29, deletion requests should be sent to the Data Controller, not the Processor."
            )
            exposure.status = ExposureStatus.MONITORING
            exposure.requires_manual_action = True
            await db.commit()
            return RemovalExecutionResult(
                success=False,
                method=RemovalMethod.MANUAL_GUIDE,
                message=f"Removal blocked: {validation.reason}",
                instructions=(
                    f"This entity ({domain}) is classified as a Data Processor, not a Data Broker. "
                    "Data Processors only process data on behalf of their clients (Data Controllers). "
                    "Sending deletion requests to Data Processors can:\n"
                    "1. Not be actioned (they need Controller authorization)\n"
                    "2. Actually increase data exposure (adding data to systems where it didn't exist)\n"
                    "3. Bypass the proper legal channel (the Data Controller)\n\n"
                    "If you believe this classification is incorrect, please contact support."
                ),
                is_non_removable=True,
            )

    if is_non_removable_source(source, broker_info):
        instructions = get_non_removable_instructions(source, broker_info)
        await update_removal_status(db, request_id, RemovalStatus.ACKNOWLEDGED)
        request.notes = instructions
        await db.commit()
        return RemovalExecutionResult(
            success=True,
            method=RemovalMethod.MANUAL_GUIDE,
            message=(
                f"{broker_info.name}: Data cannot be removed from historical breaches or dark web sources."
                if broker_info
                else "This data cannot be removed - it originates from a breach or dark web source."
            ),
            instructions=instructions,
            is_non_removable=True,
        )

    if not broker_info:
        # Guessed privacy addresses mostly bounce, so don't send any
        await update_removal_status(db, request_id, RemovalStatus.REQUIRES_MANUAL)
        return RemovalExecutionResult(
            success=True,
            method=RemovalMethod.MANUAL_GUIDE,
            message="Unknown source - please contact them directly to request data removal.",
            instructions=get_opt_out_instructions(source),
        )

    method = request.method

    try:
        if method in (RemovalMethod.AUTO_EMAIL, "EMAIL"):
            supports_email = broker_info.removal_method in (EMAIL, BOTH)
            if supports_email and broker_info.privacy_email:
                result = await send_ccpa_removal_request(
                    to_email=broker_info.privacy_email,
                    from_name=user_name,
                    from_email=user_email,
                    data_types=[format_data_type(data_type)],
                    source_url=source_url,
                    broker_name=broker_info.name,
                )
                if result["success"]:
                    await update_removal_status(db, request_id, RemovalStatus.SUBMITTED)
                    if not skip_user_notification:
                        await _notify_submitted(user, broker_info, source, data_type)
                    return RemovalExecutionResult(
                        True, RemovalMethod.AUTO_EMAIL,
                        f"CCPA/GDPR removal request sent to {broker_info.name}",
                    )

            await update_removal_status(db, request_id, RemovalStatus.REQUIRES_MANUAL)
            return RemovalExecutionResult(
                True, RemovalMethod.MANUAL_GUIDE,
                "Could not send automated email. Please use the manual opt-out process.",
                instructions=get_opt_out_instructions(source),
            )

        if method in (RemovalMethod.AUTO_FORM, "FORM"):
            if settings.form_automation_enabled:
                automation = await attempt_automated_opt_out(
                    source, _form_user_data(profile, user_name, user_email, source_url),
                )
                if automation.get("success"):
                    await update_removal_status(db, request_id, RemovalStatus.SUBMITTED)
                    if not skip_user_notification:
                        await _notify_submitted(user, broker_info, source, data_type)
                    return RemovalExecutionResult(
                        True, RemovalMethod.AUTO_FORM,
                        f"Form submitted automatically for {broker_info.name}",
                    )

            await update_removal_status(db, request_id, RemovalStatus.REQUIRES_MANUAL)
            return RemovalExecutionResult(
                True, RemovalMethod.MANUAL_GUIDE,
                f"Please complete the opt-out form for {broker_info.name}",
                instructions=get_opt_out_instructions(source),
            )

        if method == RemovalMethod.MANUAL_GUIDE:
            await update_removal_status(db, request_id, RemovalStatus.REQUIRES_MANUAL)
            request.notes = get_opt_out_instructions(source)
            await db.commit()
            return RemovalExecutionResult(
                True, RemovalMethod.MANUAL_GUIDE,
                f"Manual removal required for {broker_info.name}",
                instructions=get_opt_out_instructions(source),
            )

        await update_removal_status(db, request_id, RemovalStatus.REQUIRES_MANUAL)
        return RemovalExecutionResult(False, RemovalMethod.MANUAL_GUIDE, f"Unknown removal method: {method}")

    except Exception as e:
        logger.exception("Removal %s failed", request_id)
        await update_removal_status(db, request_id, RemovalStatus.FAILED, str(e))
        return RemovalExecutionResult(False, method, "Failed to execute removal request")


async def update_removal_status(
    db: AsyncSession,
    request_id: uuid.UUID,
    status: str,
    error: Optional[str] = None,
):
    """Move a request to a new status and keep its exposure in step."""
    request = await db.get(RemovalRequest, request_id)
    if not request:
        return

    exposure = await db.get(Exposure, request.exposure_id)
    now = datetime.utcnow()

    request.status = status
    request.attempts = (request.attempts or 0) + 1

    if status == RemovalStatus.SUBMITTED:
        request.submitted_at = now
        request.verify_after = calculate_verify_after_date(exposure.source, now)
    elif status == RemovalStatus.COMPLETED:
        request.completed_at = now

    if error:
        request.last_error = error

    exposure_status = REMOVAL_TO_EXPOSURE_STATUS.get(status)
    if exposure_status:
        exposure.status = exposure_status

    exhausted = status == RemovalStatus.FAILED and request.attempts >= MAX_REMOVAL_ATTEMPTS
    if exhausted:
        db.add(Alert(
            user_id=request.user_id,
            alert_type="REMOVAL_FAILED",
            title="Removal Needs Attention",
            message=f"We couldn't remove your data from {exposure.source_name} after {request.attempts} attempts.",
            details={"removal_request_id": str(request.id), "error": error or "Max retry attempts exceeded"},
        ))

    await db.commit()

    if exhausted:
        user = await db.get(User, request.user_id)
        await send_removal_failure_alert(
            user.email, user.name or "", exposure.source_name, request.attempts, request.last_error,
        )


async def mark_removal_completed(
    db: AsyncSession,
    request_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
) -> dict:
    """
    Confirm a removal by hand.

    Completing a parent broker also removes the user's exposures on its
    subsidiaries and closes their open requests.
    """
    request = await db.get(RemovalRequest, request_id)
    if not request or (user_id and request.user_id != user_id):
        return {"success": False}

    user_id = request.user_id
    exposure = await db.get(Exposure, request.exposure_id)
    source = exposure.source
    subsidiaries = get_subsidiaries(source)
    now = datetime.utcnow()

    related = (await db.execute(
        select(Exposure).where(
            Exposure.user_id == user_id,
            Exposure.source.in_([source, *subsidiaries]),
            Exposure.status != ExposureStatus.REMOVED,
        )
    )).scalars().all()
    consolidated = [e for e in related if e.id != exposure.id]

    if subsidiaries:
        message = f"Your data has been removed from {exposure.source_name} and {len(consolidated)} related sites."
    else:
        message = f"Your data has been removed from {exposure.source_name}."

    try:
        request.status = RemovalStatus.COMPLETED
        request.completed_at = now
        if subsidiaries:
            request.notes = f"Consolidated removal - also removed from: {', '.join(subsidiaries)}"
        exposure.status = ExposureStatus.REMOVED

        for related_exposure in consolidated:
            related_exposure.status = ExposureStatus.REMOVED

        if consolidated:
            open_requests = (await db.execute(
                select(RemovalRequest).where(
                    RemovalRequest.exposure_id.in_([e.id for e in consolidated]),
                    RemovalRequest.status.in_([
                        RemovalStatus.PENDING,
                        RemovalStatus.SUBMITTED,
                        RemovalStatus.IN_PROGRESS,
                        RemovalStatus.REQUIRES_MANUAL,
                    ]),
                )
            )).scalars().all()
            for open_request in open_requests:
                open_request.status = RemovalStatus.COMPLETED
                open_request.completed_at = now
                open_request.notes = f"Auto-completed via consolidated removal from {exposure.source_name}"

        db.add(Alert(
            user_id=user_id,
            alert_type="REMOVAL_COMPLETED",
            title="Data Removed Successfully",
            message=message,
        ))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    user = await db.get(User, user_id)
    source_name = (
        f"{exposure.source_name} (plus {len(consolidated)} related sites)" if subsidiaries else exposure.source_name
    )
    await send_removal_status_digest(user.email, user.name or "", {
        "completed": [{
            "source_name": source_name,
            "source": source,
            "data_type": format_data_type(exposure.data_type),
        }],
    })

    return {"success": True, "consolidated_count": len(consolidated)}


def _start_of_today() -> datetime:
    return datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)


async def get_todays_broker_submission_counts(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(
        select(Exposure.source, func.count(RemovalRequest.id))
        .join(Exposure, RemovalRequest.exposure_id == Exposure.id)
        .where(
            RemovalRequest.status == RemovalStatus.SUBMITTED,
            RemovalRequest.submitted_at >= _start_of_today(),
        )
        .group_by(Exposure.source)
    )
    return {source: count for source, count in result.all()}


async def get_last_submission_time_by_broker(db: AsyncSession) -> dict[str, datetime]:
    since = datetime.utcnow() - timedelta(minutes=MIN_MINUTES_BETWEEN_SAME_BROKER)
    result = await db.execute(
        select(Exposure.source, func.max(RemovalRequest.submitted_at))
        .join(Exposure, RemovalRequest.exposure_id == Exposure.id)
        .where(
            RemovalRequest.status == RemovalStatus.SUBMITTED,
            RemovalRequest.submitted_at >= since,
        )
        .group_by(Exposure.source)
    )
    return {source: submitted_at for source, submitted_at in result.all()}


async def get_pending_removals_for_automation(db: AsyncSession, limit: int = 50) -> list[uuid.UUID]:
    """
    Pick pending requests for the next automation run.

    Brokers take turns (round-robin) so no single site gets a burst, and
    within a broker the most severe exposure goes first. Brokers at their
    daily cap, or contacted in the last few minutes, sit this run out.
    """
    broker_counts = await get_todays_broker_submission_counts(db)
    last_submission = await get_last_submission_time_by_broker(db)
    now = datetime.utcnow()

    pending = (await db.execute(
        select(RemovalRequest.id, Exposure.source, Exposure.severity)
        .join(Exposure, RemovalRequest.exposure_id == Exposure.id)
        .where(
            RemovalRequest.status == RemovalStatus.PENDING,
            RemovalRequest.attempts < MAX_PENDING_ATTEMPTS,
        )
        .order_by(RemovalRequest.created_at)
    )).all()

    queues: dict[str, list[tuple[uuid.UUID, str]]] = {}
    skipped_brokers: set[str] = set()

    for request_id, source, severity in pending:
        if source in skipped_brokers:
            continue
        if broker_counts.get(source, 0) >= MAX_REQUESTS_PER_BROKER_PER_DAY:
            skipped_brokers.add(source)
            continue
        if source not in queues:
            last = last_submission.get(source)
            if last and (now - last) < timedelta(minutes=MIN_MINUTES_BETWEEN_SAME_BROKER):
                skipped_brokers.add(source)
                continue
            queues[source] = []
        queues[source].append((request_id, severity))

    for queue in queues.values():
        # Stable sort keeps oldest-first within a severity
        queue.sort(key=lambda item: SEVERITY_PRIORITY.get(item[1], 4))

    if skipped_brokers:
        logger.info("Brokers at limit or cooling down: %s", ", ".join(sorted(skipped_brokers)))

    selected: list[uuid.UUID] = []
    batch_counts: dict[str, int] = {}
    brokers = list(queues.keys())
    index = 0
    empty_rounds = 0

    while len(selected) < limit and empty_rounds < len(brokers):
        source = brokers[index]
        queue = queues[source]
        taken = batch_counts.get(source, 0)

        if queue and taken + broker_counts.get(source, 0) < MAX_REQUESTS_PER_BROKER_PER_DAY:
            request_id, _ = queue.pop(0)
            selected.append(request_id)
            batch_counts[source] = taken + 1
            empty_rounds = 0
        else:
            empty_rounds += 1

        index = (index + 1) % len(brokers)

    if batch_counts:
        logger.info(
            "Selected %d removals: %s",
            len(selected),
            ", ".join(f"{s}:{c}" for s, c in sorted(batch_counts.items(), key=lambda kv: -kv[1])),
        )
    return selected


def _tried_emails(last_error: Optional[str]) -> list[str]:
    match = TRIED_EMAILS_PATTERN.search(last_error or "")
    if not match:
        return []
    return [email.strip() for email in match.group(1).split(",") if email.strip()]


async def retry_failed_removal(
    db: AsyncSession,
    request_id: uuid.UUID,
    skip_user_notification: bool = False,
) -> dict:
    """
    Resend a failed removal to the broker's privacy contact.

    Only the directory's privacy email is used; addresses already listed
    as tried in last_error are skipped.
    """
    request = await db.get(RemovalRequest, request_id)
    if not request:
        return {"success": False, "message": "Removal request not found"}

    if request.status not in (RemovalStatus.FAILED, RemovalStatus.REQUIRES_MANUAL):
        return {"success": False, "message": f"Cannot retry - status is {request.status}"}

    exposure = await db.get(Exposure, request.exposure_id)
    user = await db.get(User, request.user_id)
    profile = await _get_profile(db, request.user_id)

    user_name = (profile.full_name if profile else None) or user.name or "User"
    broker_info = get_data_broker_info(exposure.source)

    supports_email = broker_info is None or broker_info.removal_method in (EMAIL, BOTH)
    if not supports_email:
        return {
            "success": False,
            "message": f"{broker_info.name} only supports form-based removal, not email.",
        }

    candidates = [broker_info.privacy_email] if broker_info and broker_info.privacy_email else []
    if not candidates:
        return {
            "success": False,
            "message": f"No valid privacy email for {exposure.source} - requires manual removal.",
        }

    tried = _tried_emails(request.last_error)

    for candidate in candidates:
        if candidate in tried:
            continue

        try:
            result = await send_ccpa_removal_request(
                to_email=candidate,
                from_name=user_name,
                from_email=user.email,
                data_types=[format_data_type(exposure.data_type)],
                source_url=exposure.source_url,
                broker_name=broker_info.name,
            )
        except Exception as e:
            logger.warning("Retry of %s via %s failed: %s", request_id, candidate, e)
            tried.append(candidate)
            continue

        if not result["success"]:
            tried.append(candidate)
            continue

        now = datetime.utcnow()
        request.status = RemovalStatus.SUBMITTED
        request.submitted_at = now
        request.last_error = None
        request.notes = f"Automated retry successful - sent to {candidate}"
        request.verify_after = calculate_verify_after_date(exposure.source, now)
        exposure.status = ExposureStatus.REMOVAL_IN_PROGRESS
        await db.commit()

        update_info = {
            "user_id": str(user.id),
            "user_email": user.email,
            "user_name": user_name,
            "source_name": exposure.source_name,
            "source": exposure.source,
            "data_type": exposure.data_type,
        }
        if not skip_user_notification:
            await send_removal_status_digest(user.email, user_name, {"submitted": [update_info]})

        return {
            "success": True,
            "message": f"Retry successful - CCPA request sent to {candidate}",
            "update_info": update_info,
        }

    request.last_error = f"All email attempts failed. Tried: {', '.join(tried)}"
    request.attempts = (request.attempts or 0) + 1
    await db.commit()

    return {"success": False, "message": f"All email patterns exhausted for {exposure.source}"}


async def _send_submitted_digests(user_updates: dict[str, dict]) -> int:
    sent = 0
    for entry in user_updates.values():
        if not entry["submitted"]:
            continue
        try:
            if await send_removal_status_digest(entry["email"], entry["name"], {"submitted": entry["submitted"]}):
                sent += 1
        except Exception as e:
            logger.error("Digest to %s failed: %s", entry["email"], e)
    return sent


async def process_pending_removals_batch(
    db: AsyncSession,
    limit: int = 20,
    delay: float = PENDING_BATCH_DELAY,
) -> dict:
    """Execute the next round-robin selection of pending removals."""
    stats = {
        "processed": 0,
        "successful": 0,
        "failed": 0,
        "skipped": 0,
        "emails_sent": 0,
        "broker_distribution": {},
    }
    user_updates: dict[str, dict] = {}

    for request_id in await get_pending_removals_for_automation(db, limit):
        request = await db.get(RemovalRequest, request_id)
        if not request:
            stats["skipped"] += 1
            continue

        exposure = await db.get(Exposure, request.exposure_id)
        user = await db.get(User, request.user_id)
        source = exposure.source

        if is_non_removable_source(source, get_data_broker_info(source)):
            request.status = RemovalStatus.ACKNOWLEDGED
            exposure.status = ExposureStatus.MONITORING
            await db.commit()
            stats["skipped"] += 1
            continue

        try:
            result = await execute_removal(db, request_id, request.user_id, skip_user_notification=True)
        except Exception as e:
            logger.error("Pending removal %s failed: %s", request_id, e)
            stats["failed"] += 1
        else:
            stats["processed"] += 1
            if result.success and result.method in (RemovalMethod.AUTO_EMAIL, RemovalMethod.AUTO_FORM):
                stats["successful"] += 1
                stats["broker_distribution"][source] = stats["broker_distribution"].get(source, 0) + 1
                if user.email:
                    entry = user_updates.setdefault(str(user.id), {
                        "email": user.email,
                        "name": user.name or "",
                        "submitted": [],
                    })
                    entry["submitted"].append({
                        "source_name": exposure.source_name,
                        "source": source,
                        "data_type": exposure.data_type,
                    })
            elif result.method == RemovalMethod.MANUAL_GUIDE:
                stats["skipped"] += 1
            else:
                stats["failed"] += 1

        await asyncio.sleep(delay)

    stats["emails_sent"] = await _send_submitted_digests(user_updates)
    logger.info("Pending removals batch: %s", stats)
    return stats


async def retry_failed_removals_batch(
    db: AsyncSession,
    limit: int = 20,
    delay: float = RETRY_BATCH_DELAY,
) -> dict:
    """Retry failed removals that still have attempts left, within the daily broker cap."""
    stats = {"processed": 0, "retried": 0, "still_failed": 0, "emails_sent": 0, "skipped_due_to_limit": 0}
    user_updates: dict[str, dict] = {}

    broker_counts = await get_todays_broker_submission_counts(db)
    batch_counts: dict[str, int] = {}

    # Fetch extra since some get skipped
    failed = (await db.execute(
        select(RemovalRequest.id, Exposure.source, Exposure.source_url)
        .join(Exposure, RemovalRequest.exposure_id == Exposure.id)
        .where(
            RemovalRequest.status.in_([RemovalStatus.FAILED, RemovalStatus.REQUIRES_MANUAL]),
            RemovalRequest.attempts < MAX_REMOVAL_ATTEMPTS,
        )
        .order_by(RemovalRequest.created_at)
        .limit(limit * 2)
    )).all()

    for request_id, source, source_url in failed:
        if stats["processed"] >= limit:
            break

        broker_info = get_data_broker_info(source)
        if is_non_removable_source(source, broker_info):
            continue
        if not source_url and not (broker_info and broker_info.privacy_email):
            continue

        if broker_counts.get(source, 0) + batch_counts.get(source, 0) >= MAX_REQUESTS_PER_BROKER_PER_DAY:
            stats["skipped_due_to_limit"] += 1
            continue

        stats["processed"] += 1
        result = await retry_failed_removal(db, request_id, skip_user_notification=True)

        if result["success"]:
            stats["retried"] += 1
            batch_counts[source] = batch_counts.get(source, 0) + 1
            info = result.get("update_info")
            if info and info["user_email"]:
                entry = user_updates.setdefault(info["user_id"], {
                    "email": info["user_email"],
                    "name": info["user_name"],
                    "submitted": [],
                })
                entry["submitted"].append(info)
        else:
            stats["still_failed"] += 1

        await asyncio.sleep(delay)

    stats["emails_sent"] = await _send_submitted_digests(user_updates)
    logger.info("Retry batch: %s", stats)
    return stats


async def get_automation_stats(db: AsyncSession, user_id: Optional[uuid.UUID] = None) -> dict:
    """Automation effectiveness, for one user or (``user_id=None``) the whole service."""
    status_query = select(RemovalRequest.status, func.count(RemovalRequest.id)).group_by(RemovalRequest.status)
    source_query = (
        select(Exposure.source, RemovalRequest.status, func.count(RemovalRequest.id))
        .join(Exposure, RemovalRequest.exposure_id == Exposure.id)
        .where(Exposure.source.in_(TRACKED_AUTOMATION_SOURCES))
        .group_by(Exposure.source, RemovalRequest.status)
    )
    if user_id is not None:
        status_query = status_query.where(RemovalRequest.user_id == user_id)
        source_query = source_query.where(RemovalRequest.user_id == user_id)

    by_status = {status: count for status, count in (await db.execute(status_query)).all()}
    source_rows = (await db.execute(source_query)).all()

    by_source: dict[str, dict] = {}
    for source, status, count in source_rows:
        entry = by_source.setdefault(source, {"source": source, "count": 0, "automated": 0})
        entry["count"] += count
        if status in (RemovalStatus.SUBMITTED, RemovalStatus.COMPLETED):
            entry["automated"] += count

    total = sum(by_status.values())
    automated = by_status.get(RemovalStatus.SUBMITTED, 0) + by_status.get(RemovalStatus.COMPLETED, 0)

    return {
        "total_removals": total,
        "automated": automated,
        "manual": by_status.get(RemovalStatus.REQUIRES_MANUAL, 0),
        "pending": by_status.get(RemovalStatus.PENDING, 0),
        "automation_rate": round(automated / total * 100) if total else 0,
        "by_status": by_status,
        "by_source": sorted(by_source.values(), key=lambda e: -e["count"]),
    }


async def mark_non_automatable_as_manual(db: AsyncSession) -> int:
    """Pending requests with no email and no opt-out page can only be done by hand."""
    rows = (await db.execute(
        select(RemovalRequest, Exposure.source)
        .join(Exposure, RemovalRequest.exposure_id == Exposure.id)
        .where(RemovalRequest.status == RemovalStatus.PENDING)
    )).all()

    marked = 0
    for request, source in rows:
        info = get_data_broker_info(source)
        if info and (info.privacy_email or info.opt_out_url):
            continue
        request.status = RemovalStatus.REQUIRES_MANUAL
        request.method = RemovalMethod.MANUAL_GUIDE
        request.notes = get_opt_out_instructions(source)
        marked += 1

    if marked:
        await db.commit()
        logger.info("Marked %d pending removals as manual", marked)
    return marked


async def get_email_quota_status(db: AsyncSession) -> dict:
    """How many automated removal emails are left for today."""
    sent = (await db.execute(
        select(func.count(RemovalRequest.id)).where(
            RemovalRequest.method == RemovalMethod.AUTO_EMAIL,
            RemovalRequest.submitted_at >= _start_of_today(),
        )
    )).scalar_one()

    limit = settings.daily_email_limit
    return {"limit": limit, "sent": sent, "remaining": max(limit - sent, 0)}
