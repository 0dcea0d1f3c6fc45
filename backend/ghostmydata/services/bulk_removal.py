"""Bulk removal - one action per parent company or privacy contact."""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokers.base import SEVERITY_ORDER
from brokers.directory import BOTH, EMAIL, FORM, get_data_broker_info, get_subsidiaries, is_parent_broker
from ghostmydata.models.enums import ExposureStatus, RemovalMethod, RemovalStatus
from ghostmydata.models.exposure import Exposure
from ghostmydata.models.request import RemovalRequest
from ghostmydata.models.user import User
from ghostmydata.services.email import send_bulk_removal_summary
from ghostmydata.services.removal import execute_removal, get_email_quota_status
from ghostmydata.services.verification import calculate_verify_after_date

logger = logging.getLogger(__name__)

# Leaves headroom in the daily quota for other system email
MAX_BULK_EMAILS = 80
MIN_QUOTA_FOR_BULK = 5
BULK_DELAY = 0.5

BULK_MODES = ("all_parents", "selected", "all_pending")

# Exposures already on their way out
IN_FLIGHT_STATUSES = [
    ExposureStatus.REMOVED,
    ExposureStatus.REMOVAL_PENDING,
    ExposureStatus.REMOVAL_IN_PROGRESS,
]


class QuotaExhaustedError(Exception):
    """Raised when too little of today's email quota is left for a bulk run."""

    def __init__(self, quota_status: dict):
        super().__init__("Daily email quota nearly exhausted. Try again tomorrow.")
        self.quota_status = quota_status


def get_removal_method(source: str) -> str:
    broker = get_data_broker_info(source)
    if broker:
        if broker.removal_method in (EMAIL, BOTH):
            return RemovalMethod.AUTO_EMAIL
        if broker.removal_method == FORM:
            return RemovalMethod.AUTO_FORM
    return RemovalMethod.AUTO_EMAIL


def _eligible_query(user_id: uuid.UUID):
    return select(Exposure).where(
        Exposure.user_id == user_id,
        Exposure.is_whitelisted.is_(False),
        Exposure.status.not_in(IN_FLIGHT_STATUSES),
    ).order_by(Exposure.created_at)


async def get_eligible_exposures(
    db: AsyncSession,
    user_id: uuid.UUID,
    exposure_ids: Optional[list[uuid.UUID]] = None,
) -> list[Exposure]:
    query = _eligible_query(user_id)
    if exposure_ids is not None:
        query = query.where(Exposure.id.in_(exposure_ids))
    return list((await db.execute(query)).scalars().all())


def is_standalone(source: str) -> bool:
    info = get_data_broker_info(source)
    return not get_subsidiaries(source) and not (info and info.consolidates_to)


def dedupe_by_source(exposures: list[Exposure]) -> list[Exposure]:
    """One exposure per source, keeping the most severe. Order of first sighting is kept."""
    best: dict[str, Exposure] = {}
    for exposure in exposures:
        current = best.get(exposure.source)
        if current is None or SEVERITY_ORDER.get(exposure.severity, 4) < SEVERITY_ORDER.get(current.severity, 4):
            best[exposure.source] = exposure
    return list(best.values())


def fold_subsidiaries(exposures: list[Exposure]) -> list[Exposure]:
    """Drop subsidiaries whose parent is also selected; the parent's removal covers them."""
    sources = {e.source for e in exposures}
    folded = []
    for exposure in exposures:
        info = get_data_broker_info(exposure.source)
        if info and info.consolidates_to and info.consolidates_to in sources:
            continue
        folded.append(exposure)
    return folded


def group_by_privacy_contact(exposures: list[Exposure]) -> list[list[Exposure]]:
    """
    Group exposures whose brokers share a privacy email.

    One request to the shared address covers every site in the group. The
    first exposure of each group is its primary. Exposures with no known
    privacy email are groups of one.
    """
    groups: dict[str, list[Exposure]] = {}
    for exposure in exposures:
        info = get_data_broker_info(exposure.source)
        email = info.privacy_email.lower() if info and info.privacy_email else None
        key = f"email:{email}" if email else f"exposure:{exposure.id}"
        groups.setdefault(key, []).append(exposure)
    return list(groups.values())


async def select_bulk_exposures(
    db: AsyncSession,
    user_id: uuid.UUID,
    mode: str,
    exposure_ids: Optional[list[uuid.UUID]] = None,
) -> list[Exposure]:
    if mode not in BULK_MODES:
        raise ValueError(f"Unknown bulk removal mode: {mode}")

    if mode == "selected":
        if not exposure_ids:
            return []
        exposures = await get_eligible_exposures(db, user_id, exposure_ids)
    else:
        exposures = await get_eligible_exposures(db, user_id)
        if mode == "all_parents":
            exposures = [e for e in exposures if is_parent_broker(e.source) or is_standalone(e.source)]

    return fold_subsidiaries(dedupe_by_source(exposures))


async def _existing_request(db: AsyncSession, exposure_id: uuid.UUID) -> Optional[RemovalRequest]:
    result = await db.execute(select(RemovalRequest).where(RemovalRequest.exposure_id == exposure_id))
    return result.scalar_one_or_none()


async def _create_request(
    db: AsyncSession,
    user_id: uuid.UUID,
    exposure: Exposure,
    method: str,
    notes: str,
) -> RemovalRequest:
    request = RemovalRequest(
        user_id=user_id,
        exposure_id=exposure.id,
        method=method,
        status=RemovalStatus.PENDING,
        notes=notes,
    )
    db.add(request)
    exposure.status = ExposureStatus.REMOVAL_PENDING
    await db.flush()
    return request


def _result(exposure: Exposure, success: bool, message: str, consolidated_count: int = 0) -> dict:
    return {
        "exposure_id": str(exposure.id),
        "source": exposure.source,
        "source_name": exposure.source_name,
        "success": success,
        "message": message,
        "consolidated_count": consolidated_count,
    }


async def _cover_with_primary(
    db: AsyncSession,
    user_id: uuid.UUID,
    covered: list[Exposure],
    primary: Exposure,
    primary_submitted: bool,
) -> int:
    """Record requests for exposures that share the primary's privacy contact."""
    info = get_data_broker_info(primary.source)
    email = info.privacy_email if info else None
    now = datetime.utcnow()
    count = 0

    for exposure in covered:
        if await _existing_request(db, exposure.id):
            continue

        request = await _create_request(
            db, user_id, exposure, get_removal_method(exposure.source), "Bulk removal request",
        )
        if primary_submitted:
            request.status = RemovalStatus.SUBMITTED
            request.submitted_at = now
            request.verify_after = calculate_verify_after_date(exposure.source, now)
            request.notes = f"Covered by removal request sent to {email} via {primary.source_name}"
            exposure.status = ExposureStatus.REMOVAL_IN_PROGRESS
            count += 1

    await db.commit()
    return count


async def run_bulk_removal(
    db: AsyncSession,
    user_id: uuid.UUID,
    mode: str = "all_parents",
    exposure_ids: Optional[list[uuid.UUID]] = None,
    delay: float = BULK_DELAY,
) -> dict:
    """
    Submit removals for many exposures with as few requests as possible.

    Subsidiaries ride along with their parent's request, and brokers that
    share a privacy email get a single email between them. The user gets
    one summary email at the end instead of one per removal.

    Raises:
        QuotaExhaustedError: fewer than MIN_QUOTA_FOR_BULK emails left today
    """
    quota = await get_email_quota_status(db)
    if quota["remaining"] < MIN_QUOTA_FOR_BULK:
        raise QuotaExhaustedError(quota)

    user = await db.get(User, user_id)
    exposures = await select_bulk_exposures(db, user_id, mode, exposure_ids)

    if not exposures:
        return {
            "success": True,
            "message": "No pending exposures to process",
            "processed": 0,
            "results": [],
        }

    groups = group_by_privacy_contact(exposures)
    max_to_process = min(len(groups), MAX_BULK_EMAILS, quota["remaining"])
    to_process = groups[:max_to_process]

    results = []
    total_processed = 0
    total_consolidated = 0
    success_count = 0
    fail_count = 0
    emails_sent = 0
    processed_sources = []

    for group in to_process:
        primary, covered = group[0], group[1:]

        if await _existing_request(db, primary.id):
            results.append(_result(primary, True, "Already submitted"))
            continue

        try:
            subsidiary_keys = get_subsidiaries(primary.source)
            subsidiaries = []
            if subsidiary_keys:
                subsidiaries = list((await db.execute(
                    _eligible_query(user_id).where(Exposure.source.in_(subsidiary_keys))
                )).scalars().all())

            request = await _create_request(
                db, user_id, primary, get_removal_method(primary.source),
                f"Bulk removal - covers {len(subsidiaries)} subsidiary exposures"
                if subsidiaries else "Bulk removal request",
            )

            for sub in subsidiaries:
                if not await _existing_request(db, sub.id):
                    await _create_request(
                        db, user_id, sub, RemovalMethod.AUTO_EMAIL,
                        f"Auto-created via bulk removal from {primary.source_name}",
                    )
            await db.commit()

            execution = await execute_removal(db, request.id, user_id, skip_user_notification=True)

            await db.refresh(request)
            covered_count = await _cover_with_primary(
                db, user_id, covered, primary, request.status == RemovalStatus.SUBMITTED,
            )
            consolidated = len(subsidiaries) + covered_count

            results.append(_result(primary, execution.success, execution.message, consolidated))
            total_processed += 1
            total_consolidated += consolidated
            if execution.success:
                success_count += 1
                emails_sent += 1
                processed_sources.append(primary.source_name)
            else:
                fail_count += 1

            await asyncio.sleep(delay)

        except Exception as e:
            logger.exception("Bulk removal of %s failed", primary.source)
            await db.rollback()
            results.append(_result(primary, False, str(e) or "Unknown error"))
            fail_count += 1

    if success_count and user and user.email:
        try:
            await send_bulk_removal_summary(user.email, user.name or user.email.split("@")[0], {
                "sources": processed_sources,
                "success_count": success_count,
                "consolidated_count": total_consolidated,
                "fail_count": fail_count,
            })
        except Exception as e:
            logger.error("Bulk summary email to %s failed: %s", user.email, e)

    skipped_due_to_quota = sum(len(group) for group in groups[max_to_process:])

    logger.info(
        "Bulk removal for %s: %d processed, %d consolidated, %d skipped for quota",
        user_id, total_processed, total_consolidated, skipped_due_to_quota,
    )

    return {
        "success": True,
        "message": f"Processed {total_processed} parent brokers, consolidated {total_consolidated} subsidiaries",
        "summary": {
            "total_processed": total_processed,
            "total_consolidated": total_consolidated,
            "total_exposures_covered": total_processed + total_consolidated,
            "success_count": success_count,
            "fail_count": fail_count,
            "emails_sent": emails_sent,
            "skipped_due_to_quota": skipped_due_to_quota,
        },
        "email_quota": await get_email_quota_status(db),
        "results": results,
    }


async def preview_bulk_removal(db: AsyncSession, user_id: uuid.UUID) -> dict:
    """What a bulk run would do, without doing it."""
    exposures = await get_eligible_exposures(db, user_id)

    parents, standalone, subsidiaries = [], [], []
    for exposure in exposures:
        info = get_data_broker_info(exposure.source)
        if get_subsidiaries(exposure.source):
            parents.append(exposure)
        elif info and info.consolidates_to:
            subsidiaries.append(exposure)
        else:
            standalone.append(exposure)

    actions_needed = len(parents) + len(standalone)
    total = len(exposures)
    actions_saved = total - actions_needed
    quota = await get_email_quota_status(db)

    return {
        "total_pending_exposures": total,
        "parent_brokers": len(parents),
        "standalone_brokers": len(standalone),
        "subsidiary_brokers": len(subsidiaries),
        "actions_needed": actions_needed,
        "actions_saved": actions_saved,
        "savings_percent": round(actions_saved / total * 100) if total else 0,
        "email_quota": quota,
        "can_process_today": min(actions_needed, quota["remaining"], MAX_BULK_EMAILS),
        "preview": {
            "parents": [
                {"source": e.source, "name": e.source_name, "subsidiary_count": len(get_subsidiaries(e.source))}
                for e in parents
            ],
            "standalone": [{"source": e.source, "name": e.source_name} for e in standalone[:10]],
        },
    }
