"""In-app alerts raised by verification, consolidation and scans."""

import uuid
from datetime import datetime

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sqlalchemy import func, select, update

from ghostmydata.api.deps import CurrentUser, DbSession
from ghostmydata.models.alert import Alert

router = APIRouter()


class AlertResponse(BaseModel):
    id: uuid.UUID
    alert_type: str
    title: str
    message: str | None
    details: dict | None
    is_read: bool
    created_at: datetime
    read_at: datetime | None = None

    class Config:
        from_attributes = True


class AlertStats(BaseModel):
    total: int
    unread: int
    # unread alerts only
    by_type: dict[str, int]


@router.get("/", response_model=list[AlertResponse])
async def list_alerts(
    current_user: CurrentUser,
    db: DbSession,
    unread_only: bool = False,
    limit: int = 50,
):
    """Newest first."""
    query = select(Alert).where(Alert.user_id == current_user.id)
    if unread_only:
        query = query.where(Alert.is_read.is_(False))

    rows = await db.scalars(query.order_by(Alert.created_at.desc()).limit(limit))
    return [AlertResponse.model_validate(alert) for alert in rows]


@router.get("/stats", response_model=AlertStats)
async def get_alert_stats(current_user: CurrentUser, db: DbSession):
    counts = (await db.execute(
        select(Alert.alert_type, Alert.is_read, func.count())
        .where(Alert.user_id == current_user.id)
        .group_by(Alert.alert_type, Alert.is_read)
    )).all()

    unread_by_type = {alert_type: n for alert_type, is_read, n in counts if not is_read}
    return AlertStats(
        total=sum(n for _, _, n in counts),
        unread=sum(unread_by_type.values()),
        by_type=unread_by_type,
    )


@router.post("/{alert_id}/read")
async def mark_alert_read(alert_id: uuid.UUID, current_user: CurrentUser, db: DbSession):
    alert = await db.get(Alert, alert_id)
    if alert is None or alert.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Alert not found")

    if not alert.is_read:
        alert.is_read = True
        alert.read_at = datetime.utcnow()
        await db.commit()
    return {"status": "read"}


@router.post("/read-all")
async def mark_all_alerts_read(current_user: CurrentUser, db: DbSession):
    result = await db.execute(
        update(Alert)
        .where(Alert.user_id == current_user.id, Alert.is_read.is_(False))
        .values(is_read=True, read_at=datetime.utcnow())
    )
    await db.commit()
    return {"status": "all_read", "count": result.rowcount}
