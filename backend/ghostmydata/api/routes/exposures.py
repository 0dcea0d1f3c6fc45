"""Exposure routes."""

import uuid
from datetime import datetime

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sqlalchemy import select

from ghostmydata.api.deps import CurrentUser, DbSession
from ghostmydata.models.enums import ExposureStatus
from ghostmydata.models.exposure import Exposure

router = APIRouter()


# Schemas
class ExposureResponse(BaseModel):
    id: str
    source: str
    source_name: str
    source_url: str | None
    data_type: str
    data_preview: str | None
    severity: str
    status: str
    is_whitelisted: bool
    requires_manual_action: bool
    confidence_score: int | None
    confidence_classification: str | None
    first_found_at: datetime
    last_seen_at: datetime

    class Config:
        from_attributes = True


class WhitelistUpdate(BaseModel):
    is_whitelisted: bool


def _exposure_response(exposure: Exposure) -> ExposureResponse:
    return ExposureResponse(
        id=str(exposure.id),
        source=exposure.source,
        source_name=exposure.source_name,
        source_url=exposure.source_url,
        data_type=exposure.data_type,
        data_preview=exposure.data_preview,
        severity=exposure.severity,
        status=exposure.status,
        is_whitelisted=exposure.is_whitelisted,
        requires_manual_action=exposure.requires_manual_action,
        confidence_score=exposure.confidence_score,
        confidence_classification=exposure.confidence_classification,
        first_found_at=exposure.first_found_at,
        last_seen_at=exposure.last_seen_at,
    )


@router.get("/", response_model=list[ExposureResponse])
async def list_exposures(current_user: CurrentUser, db: DbSession, status: str | None = None):
    """List all exposures for current user, optionally filtered by status."""
    query = select(Exposure).where(Exposure.user_id == current_user.id)
    if status:
        query = query.where(Exposure.status == status)
    result = await db.execute(query.order_by(Exposure.first_found_at.desc()))
    return [_exposure_response(e) for e in result.scalars().all()]


@router.patch("/{exposure_id}/whitelist", response_model=ExposureResponse)
async def set_whitelist(
    exposure_id: uuid.UUID,
    update: WhitelistUpdate,
    current_user: CurrentUser,
    db: DbSession,
):
    """Whitelisted exposures are kept out of bulk removal."""
    exposure = await db.get(Exposure, exposure_id)
    if not exposure or exposure.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Exposure not found")

    exposure.is_whitelisted = update.is_whitelisted
    if update.is_whitelisted:
        exposure.status = ExposureStatus.WHITELISTED
    elif exposure.status == ExposureStatus.WHITELISTED:
        exposure.status = ExposureStatus.ACTIVE
    await db.commit()
    return _exposure_response(exposure)
