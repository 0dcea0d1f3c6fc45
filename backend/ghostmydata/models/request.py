"""Removal request model - tracks opt-out requests."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ghostmydata.db.database import Base
from ghostmydata.models.enums import RemovalMethod, RemovalStatus


class RemovalRequest(Base):
    """Removal/opt-out request for a single exposure."""

    __tablename__ = "removal_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    # One request per exposure
    exposure_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("exposures.id"), unique=True)

    status: Mapped[str] = mapped_column(String(30), default=RemovalStatus.PENDING, index=True)
    method: Mapped[str] = mapped_column(String(30), default=RemovalMethod.AUTO_EMAIL)
    attempts: Mapped[int] = mapped_column(Integer, default=0)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Verification scheduling
    verify_after: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    verification_count: Mapped[int] = mapped_column(Integer, default=0)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="removal_requests")
    exposure: Mapped["Exposure"] = relationship(back_populates="removal_request")


from ghostmydata.models.user import User
from ghostmydata.models.exposure import Exposure
