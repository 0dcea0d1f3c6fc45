"""Broker scanning tasks."""

import asyncio
import logging
from uuid import UUID

from celery import shared_task
from sqlalchemy import select

from ghostmydata.models.exposure import Exposure
from ghostmydata.models.user import PersonalProfile, User
from ghostmydata.services.email import send_new_exposure_alert
from ghostmydata.services.scan_orchestrator import run_scan
from ghostmydata.workers.celery_app import get_async_session

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def scan_user_brokers(self, user_id: str):
    """Scan all brokers for a specific user."""
    return asyncio.run(_scan_user_brokers_async(user_id))


async def _scan_user(db, user: User) -> dict:
    profile = (await db.execute(
        select(PersonalProfile).where(PersonalProfile.user_id == user.id)
    )).scalar_one_or_none()

    if not profile or not profile.full_name:
        return {"error": "User profile not found", "scanned": 0, "found": 0}

    scan = await run_scan(db, user.id, profile.to_scan_input())

    new_exposures = (await db.execute(
        select(Exposure).where(
            Exposure.scan_id == scan.id,
            Exposure.first_found_at >= scan.started_at,
        )
    )).scalars().all()

    if new_exposures:
        await send_new_exposure_alert(
            user.email,
            len(new_exposures),
            sorted({e.source_name for e in new_exposures}),
        )

    return {
        "scan_id": str(scan.id),
        "scanned": scan.sources_checked,
        "found": scan.exposures_found,
        "new": len(new_exposures),
    }


async def _scan_user_brokers_async(user_id: str):
    """Async implementation of broker scanning."""
    engine, async_session = get_async_session()

    try:
        async with async_session() as db:
            user = await db.get(User, UUID(user_id))
            if not user:
                return {"error": "User not found", "scanned": 0, "found": 0}
            return await _scan_user(db, user)
    finally:
        await engine.dispose()


@shared_task(bind=True)
def scan_all_users(self):
    """Daily re-scan of every active user for new exposures."""
    return asyncio.run(_scan_all_users_async())


async def _scan_all_users_async():
    engine, async_session = get_async_session()
    total_scanned = 0
    total_new = 0

    try:
        async with async_session() as db:
            users = (await db.execute(select(User).where(User.is_active.is_(True)))).scalars().all()

            for user in users:
                try:
                    result = await _scan_user(db, user)
                except Exception as e:
                    logger.error("Scan for user %s failed: %s", user.id, e)
                    continue
                if "scan_id" in result:
                    total_scanned += 1
                    total_new += result["new"]
    finally:
        await engine.dispose()

    logger.info("Daily scan: %d users, %d new exposures", total_scanned, total_new)
    return {"users_scanned": total_scanned, "new_exposures": total_new}
