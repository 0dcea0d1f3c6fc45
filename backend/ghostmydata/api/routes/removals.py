"""Removal request routes."""

import uuid
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sqlalchemy import select

from brokers.directory import get_data_broker_info
from ghostmydata.api.deps import CurrentUser, DbSession
from ghostmydata.models.enums import ExposureStatus, RemovalStatus
from ghostmydata.models.exposure import Exposure
from ghostmydata.models.request import RemovalRequest
from ghostmydata.services.bulk_removal import (
    QuotaExhaustedError,
    get_removal_method,
    preview_bulk_removal,
    run_bulk_removal,
)
from ghostmydata.services.removal import (
    execute_removal,
    get_automation_stats,
    mark_removal_completed,
    retry_failed_removal,
)

router = APIRouter()


# Schemas
class RemovalCreate(BaseModel):
    exposure_id: uuid.UUID


class BulkRemovalRequest(BaseModel):
    mode: Literal["all_parents", "selected", "all_pending"] = "all_parents"
    exposure_ids: list[uuid.UUID] | None = None


class RemovalResponse(BaseModel):
    id: str
    exposure_id: str
    source: str
    source_name: str
    status: str
    method: str
    attempts: int
    submitted_at: datetime | None
    completed_at: datetime | None
    verify_after: datetime | None
    verification_count: int
    last_error: str | None
    notes: str | None
    opt_out_url: str | None
    created_at: datetime


class ExecutionResponse(BaseModel):
    success: bool
    method: str
    message: str
    instructions: str | None = None
    is_non_removable: bool = False


class RemovalStats(BaseModel):
    total: int
    pending: int
    submitted: int
    in_progress: int
    completed: int
    failed: int
    requires_manual: int


def _removal_response(request: RemovalRequest, exposure: Exposure) -> RemovalResponse:
    broker = get_data_broker_info(exposure.source)
    return RemovalResponse(
        id=str(request.id),
        exposure_id=str(exposure.id),
        source=exposure.source,
        source_name=exposure.source_name,
        status=request.status,
        method=request.method,
        attempts=request.attempts or 0,
        submitted_at=request.submitted_at,
        completed_at=request.completed_at,
        verify_after=request.verify_after,
        verification_count=request.verification_count or 0,
        last_error=request.last_error,
        notes=request.notes,
        opt_out_url=broker.opt_out_url if broker else exposure.source_url,
        created_at=request.created_at,
    )


async def _get_own_request(db, request_id: uuid.UUID, user_id: uuid.UUID) -> RemovalRequest:
    request = await db.get(RemovalRequest, request_id)
    if not request or request.user_id != user_id:
        raise HTTPException(status_code=404, detail="Removal request not found")
    return request


@router.get("/", response_model=list[RemovalResponse])
async def list_removals(current_user: CurrentUser, db: DbSession):
    """List all removal requests for current user."""
    result = await db.execute(
        select(RemovalRequest, Exposure)
        .join(Exposure, RemovalRequest.exposure_id == Exposure.id)
        .where(RemovalRequest.user_id == current_user.id)
        .order_by(RemovalRequest.created_at.desc())
    )
    return [_removal_response(request, exposure) for request, exposure in result.all()]


@router.get("/stats", response_model=RemovalStats)
async def get_removal_stats(current_user: CurrentUser, db: DbSession):
    result = await db.execute(
        select(RemovalRequest.status).where(RemovalRequest.user_id == current_user.id)
    )
    statuses = list(result.scalars().all())

    return RemovalStats(
        total=len(statuses),
        pending=statuses.count(RemovalStatus.PENDING),
        submitted=statuses.count(RemovalStatus.SUBMITTED),
        in_progress=statuses.count(RemovalStatus.IN_PROGRESS),
        completed=statuses.count(RemovalStatus.COMPLETED),
        failed=statuses.count(RemovalStatus.FAILED),
        requires_manual=statuses.count(RemovalStatus.REQUIRES_MANUAL),
    )


@router.get("/automation")
async def automation_stats(current_user: CurrentUser, db: DbSession):
    """Automation effectiveness for the caller's own requests."""
    return await get_automation_stats(db, current_user.id)


@router.post("/", response_model=ExecutionResponse)
async def create_removal(data: RemovalCreate, current_user: CurrentUser, db: DbSession):
    """Create a removal request for one exposure and execute it right away."""
    exposure = await db.get(Exposure, data.exposure_id)
    if not exposure or exposure.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Exposure not found")

    existing = (await db.execute(
        select(RemovalRequest).where(RemovalRequest.exposure_id == exposure.id)
    )).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Removal already requested for this exposure")

    request = RemovalRequest(
        user_id=current_user.id,
        exposure_id=exposure.id,
        method=get_removal_method(exposure.source),
        status=RemovalStatus.PENDING,
    )
    db.add(request)
    exposure.status = ExposureStatus.REMOVAL_PENDING
    await db.commit()

    result = await execute_removal(db, request.id, current_user.id)
    return ExecutionResponse(**result.__dict__)


@router.get("/bulk")
async def bulk_preview(current_user: CurrentUser, db: DbSession):
    """How many actions a bulk removal would take, and how many it saves."""
    return await preview_bulk_removal(db, current_user.id)


@router.post("/bulk")
async def bulk_submit(data: BulkRemovalRequest, current_user: CurrentUser, db: DbSession):
    try:
        return await run_bulk_removal(db, current_user.id, data.mode, data.exposure_ids)
    except QuotaExhaustedError as e:
        raise HTTPException(status_code=429, detail={"error": str(e), "quota_status": e.quota_status})


@router.get("/{request_id}", response_model=RemovalResponse)
async def get_removal(request_id: uuid.UUID, current_user: CurrentUser, db: DbSession):
    request = await _get_own_request(db, request_id, current_user.id)
    exposure = await db.get(Exposure, request.exposure_id)
    return _removal_response(request, exposure)


@router.post("/{request_id}/execute", response_model=ExecutionResponse)
async def execute(request_id: uuid.UUID, current_user: CurrentUser, db: DbSession):
    request = await _get_own_request(db, request_id, current_user.id)
    if request.status not in (RemovalStatus.PENDING, RemovalStatus.REQUIRES_MANUAL):
        raise HTTPException(status_code=400, detail=f"Cannot execute - status is {request.status}")

    result = await execute_removal(db, request.id, current_user.id)
    return ExecutionResponse(**result.__dict__)


@router.post("/{request_id}/retry")
async def retry(request_id: uuid.UUID, current_user: CurrentUser, db: DbSession):
    await _get_own_request(db, request_id, current_user.id)
    result = await retry_failed_removal(db, request_id)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["message"])
    return {"success": True, "message": result["message"]}


@router.post("/{request_id}/complete")
async def complete(request_id: uuid.UUID, current_user: CurrentUser, db: DbSession):
    """User confirms the broker removed their data."""
    await _get_own_request(db, request_id, current_user.id)
    return await mark_removal_completed(db, request_id, current_user.id)
