"""Scan routes."""

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel
from sqlalchemy import select

from ghostmydata.api.deps import CurrentUser, DbSession
from ghostmydata.models.enums import ScanStatus
from ghostmydata.models.scan import Scan
from ghostmydata.models.user import PersonalProfile

logger = logging.getLogger(__name__)

router = APIRouter()


# Schemas
class ScanResponse(BaseModel):
    id: str
    status: str
    sources_checked: int
    exposures_found: int
    projected_count: int
    outcomes: list[dict] | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime


def _scan_response(scan: Scan) -> ScanResponse:
    return ScanResponse(
        id=str(scan.id),
        status=scan.status,
        sources_checked=scan.sources_checked or 0,
        exposures_found=scan.exposures_found or 0,
        projected_count=scan.projected_count or 0,
        outcomes=scan.outcomes,
        started_at=scan.started_at,
        completed_at=scan.completed_at,
        created_at=scan.created_at,
    )


@router.get("/", response_model=list[ScanResponse])
async def list_scans(current_user: CurrentUser, db: DbSession):
    """List the user's scans, newest first."""
    result = await db.execute(
        select(Scan)
        .where(Scan.user_id == current_user.id)
        .order_by(Scan.created_at.desc())
    )
    return [_scan_response(scan) for scan in result.scalars().all()]


@router.get("/{scan_id}", response_model=ScanResponse)
async def get_scan(scan_id: uuid.UUID, current_user: CurrentUser, db: DbSession):
    scan = await db.get(Scan, scan_id)
    if not scan or scan.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Scan not found")
    return _scan_response(scan)


@router.post("/", response_model=ScanResponse, status_code=202)
async def start_scan(current_user: CurrentUser, db: DbSession, background_tasks: BackgroundTasks):
    """Start scanning every broker for the user's information."""
    profile = (await db.execute(
        select(PersonalProfile).where(PersonalProfile.user_id == current_user.id)
    )).scalar_one_or_none()

    if not profile or not profile.full_name:
        raise HTTPException(
            status_code=400,
            detail="Please complete your profile with at least your name before scanning",
        )

    in_progress = (await db.execute(
        select(Scan).where(Scan.user_id == current_user.id, Scan.status == ScanStatus.IN_PROGRESS)
    )).scalars().first()
    if in_progress:
        raise HTTPException(status_code=400, detail="A scan is already in progress")

    scan = Scan(user_id=current_user.id, status=ScanStatus.PENDING)
    db.add(scan)
    await db.commit()

    background_tasks.add_task(run_background_scan, scan.id, current_user.id)
    return _scan_response(scan)


async def run_background_scan(scan_id: uuid.UUID, user_id: uuid.UUID):
    """Background task: run the scan in its own session."""
    from ghostmydata.db.database import async_session
    from ghostmydata.services.scan_orchestrator import run_scan

    async with async_session() as db:
        scan = await db.get(Scan, scan_id)
        profile = (await db.execute(
            select(PersonalProfile).where(PersonalProfile.user_id == user_id)
        )).scalar_one()
        try:
            await run_scan(db, user_id, profile.to_scan_input(), scan=scan)
        except Exception as e:
            logger.error("Background scan %s failed: %s", scan_id, e)
