"""Removal verification - re-scan a broker after its processing window."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokers import get_scanner
from brokers.base import BaseScanner, ScanResult
from ghostmydata.models.alert import Alert
from ghostmydata.models.enums import REMOVAL_TO_EXPOSURE_STATUS, ExposureStatus, RemovalStatus
from ghostmydata.models.exposure import Exposure
from ghostmydata.models.request import RemovalRequest
from ghostmydata.models.user import PersonalProfile, User
from ghostmydata.services.email import send_removal_status_digest

logger = logging.getLogger(__name__)

ScannerFactory = Callable[[str], Optional[BaseScanner]]

# Days to wait before verifying: broker processing time plus a buffer
VERIFICATION_DELAYS = {
    # Automated removals, 1-3 days
    "TRUEPEOPLESEARCH": 3,
    "FASTPEOPLESEARCH": 3,
    "SPOKEO": 7,
    "PEOPLEFINDER": 10,
    "WHITEPAGES": 10,
    "BEENVERIFIED": 14,
    "INTELIUS": 14,
    "USSEARCH": 14,
    "RADARIS": 21,
    "PIPL": 45,
    # Breach databases are monitoring-only
    "BREACH_DB": 45,
    "HAVEIBEENPWNED": 45,
    "DEHASHED": 30,
    # Account deletion
    "LINKEDIN": 35,
    "FACEBOOK": 35,
    "TWITTER": 35,
    "INSTAGRAM": 35,
}
DEFAULT_VERIFICATION_DELAY = 30

MAX_VERIFICATION_ATTEMPTS = 3

# Days before attempt 1, 2, 3
RETRY_DELAYS = [7, 14, 21]

# Between verifications, for the scraping rate limit
VERIFICATION_DELAY_SECONDS = 15


@dataclass
class VerificationResult:
    success: bool
    status: str  # COMPLETED, FAILED, PENDING
    message: str
    update_info: Optional[dict] = None


def get_verification_delay(source: str) -> int:
    return VERIFICATION_DELAYS.get(source, DEFAULT_VERIFICATION_DELAY)


def get_retry_delay(source: str, attempt_number: int) -> int:
    """Back off per attempt, but never re-check faster than the broker processes."""
    base_delay = RETRY_DELAYS[min(attempt_number, len(RETRY_DELAYS) - 1)]
    return max(base_delay, min(get_verification_delay(source), 21))


def calculate_verify_after_date(source: str, submitted_at: Optional[datetime] = None) -> datetime:
    return (submitted_at or datetime.utcnow()) + timedelta(days=get_verification_delay(source))


def exposure_still_exists(exposure: Exposure, results: list[ScanResult]) -> bool:
    return any(
        r.source == exposure.source and str(r.data_type) == exposure.data_type
        for r in results
    )


def _update_info(user: User, exposure: Exposure) -> dict:
    return {
        "user_id": str(user.id),
        "user_email": user.email,
        "user_name": user.name or "",
        "source_name": exposure.source_name,
        "source": exposure.source,
        "data_type": exposure.data_type,
    }


def _reschedule(request: RemovalRequest, days: int, now: datetime):
    request.verify_after = now + timedelta(days=days)
    request.last_verified_at = now


async def verify_removal_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    scanner_factory: ScannerFactory = get_scanner,
) -> VerificationResult:
    """
    Re-scan the exposure behind a submitted removal request.

    Gone from the rescan means COMPLETED. Still present after the last
    attempt means FAILED, and a scan that keeps erroring ends in
    REQUIRES_MANUAL. Otherwise the request is rescheduled.
    """
    request = await db.get(RemovalRequest, request_id)
    if not request:
        return VerificationResult(False, "FAILED", "Removal request not found")

    exposure = await db.get(Exposure, request.exposure_id)
    user = await db.get(User, request.user_id)
    now = datetime.utcnow()

    scanner = scanner_factory(exposure.source)

    if scanner is None:
        attempt = request.verification_count + 1
        # Optimistic: after the full verification window, assume the broker complied
        if attempt >= MAX_VERIFICATION_ATTEMPTS:
            request.status = RemovalStatus.COMPLETED
            request.completed_at = now
            request.last_verified_at = now
            request.verification_count = attempt
            request.notes = "Auto-completed after verification period (source cannot be automatically verified)"
            exposure.status = ExposureStatus.REMOVED
            await db.commit()
            return VerificationResult(
                True, "COMPLETED", "Marked as completed (verification not available for this source)",
                _update_info(user, exposure),
            )

        retry_delay = get_retry_delay(exposure.source, request.verification_count)
        _reschedule(request, retry_delay, now)
        request.verification_count = attempt
        request.notes = (
            f"No scanner available for {exposure.source}. "
            f"Will auto-complete after {MAX_VERIFICATION_ATTEMPTS} attempts."
        )
        await db.commit()
        return VerificationResult(
            True, "PENDING",
            f"Cannot verify automatically ({exposure.source}), scheduled retry in {retry_delay} days",
        )

    if not await scanner.is_available():
        return VerificationResult(False, "PENDING", "Scanner not available")

    profile = (await db.execute(
        select(PersonalProfile).where(PersonalProfile.user_id == request.user_id)
    )).scalar_one_or_none()
    if not profile:
        return VerificationResult(False, "PENDING", "User profile not found")

    scan_input = profile.to_scan_input()
    if not (scan_input.full_name or scan_input.emails or scan_input.phones):
        _reschedule(request, 7, now)
        request.notes = "Verification skipped - profile has no name, email or phone"
        await db.commit()
        return VerificationResult(False, "PENDING", "Profile data unavailable for verification")

    try:
        results = await scanner.scan(scan_input)
        # A failed fetch also yields no results; that says nothing about removal
        last_error = getattr(scanner, "last_error", None)
        if not results and last_error:
            raise RuntimeError(f"{last_error.type}: {last_error.message}")
    except Exception as e:
        logger.warning("Verification of %s failed: %s", request_id, e)
        request.verification_count += 1
        request.last_error = str(e)
        if request.verification_count >= MAX_VERIFICATION_ATTEMPTS:
            # Never got a clean rescan; a person has to check the broker
            request.status = RemovalStatus.REQUIRES_MANUAL
            request.last_verified_at = now
            request.notes = f"Automatic verification failed {request.verification_count} times - check manually"
            exposure.status = REMOVAL_TO_EXPOSURE_STATUS[RemovalStatus.REQUIRES_MANUAL]
            await db.commit()
            return VerificationResult(False, "FAILED", f"Verification error: {e}", _update_info(user, exposure))

        _reschedule(request, 7, now)
        await db.commit()
        return VerificationResult(False, "PENDING", f"Verification error: {e}")

    if not exposure_still_exists(exposure, results):
        request.status = RemovalStatus.COMPLETED
        request.completed_at = now
        request.last_verified_at = now
        request.verification_count += 1
        request.notes = "Verified removed - data no longer found in scan"
        exposure.status = ExposureStatus.REMOVED
        db.add(Alert(
            user_id=request.user_id,
            alert_type="REMOVAL_COMPLETED",
            title="Data Removal Verified",
            message=f"Your data has been verified as removed from {exposure.source_name}.",
        ))
        await db.commit()
        return VerificationResult(True, "COMPLETED", "Exposure verified as removed", _update_info(user, exposure))

    if request.verification_count >= MAX_VERIFICATION_ATTEMPTS - 1:
        request.status = RemovalStatus.FAILED
        request.last_verified_at = now
        request.verification_count += 1
        request.last_error = "Data still found after multiple verification attempts"
        exposure.status = ExposureStatus.ACTIVE
        await db.commit()
        return VerificationResult(
            False, "FAILED", "Data still found after maximum verification attempts", _update_info(user, exposure),
        )

    attempt = request.verification_count + 1
    retry_delay = get_retry_delay(exposure.source, attempt)
    _reschedule(request, retry_delay, now)
    request.verification_count = attempt
    request.notes = f"Data still present. Attempt {attempt}/{MAX_VERIFICATION_ATTEMPTS}. Next check in {retry_delay} days."
    await db.commit()
    return VerificationResult(
        True, "PENDING",
        f"Data still found, retry scheduled in {retry_delay} days (attempt {attempt}/{MAX_VERIFICATION_ATTEMPTS})",
    )


async def get_removals_due_for_verification(db: AsyncSession, limit: int = 50) -> list[uuid.UUID]:
    result = await db.execute(
        select(RemovalRequest.id)
        .where(
            RemovalRequest.status.in_([RemovalStatus.SUBMITTED, RemovalStatus.IN_PROGRESS]),
            RemovalRequest.verify_after <= datetime.utcnow(),
            RemovalRequest.verification_count < MAX_VERIFICATION_ATTEMPTS,
        )
        .order_by(RemovalRequest.verify_after)
        .limit(limit)
    )
    return list(result.scalars().all())


async def run_verification_batch(
    db: AsyncSession,
    deadline: Optional[float] = None,
    scanner_factory: ScannerFactory = get_scanner,
    delay: float = VERIFICATION_DELAY_SECONDS,
) -> dict:
    """Verify every due request, then send one digest per affected user."""
    stats = {"processed": 0, "completed": 0, "failed": 0, "pending": 0, "emails_sent": 0, "time_boxed": False}
    user_updates: dict[str, dict] = {}

    for request_id in await get_removals_due_for_verification(db):
        if deadline and time.monotonic() >= deadline:
            stats["time_boxed"] = True
            break

        result = await verify_removal_request(db, request_id, scanner_factory)
        stats["processed"] += 1
        stats[result.status.lower()] += 1

        info = result.update_info
        if info and info["user_email"] and result.status in ("COMPLETED", "FAILED"):
            entry = user_updates.setdefault(info["user_id"], {
                "email": info["user_email"],
                "name": info["user_name"],
                "completed": [],
                "failed": [],
            })
            entry["completed" if result.status == "COMPLETED" else "failed"].append(info)

        await asyncio.sleep(delay)

    for entry in user_updates.values():
        sent = await send_removal_status_digest(entry["email"], entry["name"], {
            "completed": entry["completed"],
            "failed": entry["failed"],
        })
        if sent:
            stats["emails_sent"] += 1

    logger.info("Verification batch: %s", stats)
    return stats
