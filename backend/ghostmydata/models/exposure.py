"""Exposure model - tracks where user's data was found."""

import uuid
from datetime import datetime
from sqlalchemy import String, Boolean, Integer, DateTime, ForeignKey, JSON, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ghostmydata.db.database import Base
from ghostmydata.models.enums import ExposureStatus


class Exposure(Base):
    """Record of user's data found on a broker, breach source or social site."""

    __tablename__ = "exposures"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)
    scan_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("scans.id"), nullable=True)

    # Directory key, e.g. "SPOKEO", "RECORDSFINDER"
    source: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    source_name: Mapped[str] = mapped_column(String(200), nullable=False)
    source_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    data_type: Mapped[str] = mapped_column(String(50), nullable=False)
    data_preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    severity: Mapped[str] = mapped_column(String(20), default="MEDIUM")
    status: Mapped[str] = mapped_column(String(30), default=ExposureStatus.ACTIVE, index=True)

    is_whitelisted: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_manual_action: Mapped[bool] = mapped_column(Boolean, default=False)

    confidence_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    confidence_classification: Mapped[str | None] = mapped_column(String(20), nullable=True)
    raw_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Timestamps
    first_found_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="exposures")
    scan: Mapped["Scan"] = relationship(back_populates="exposures")
    removal_request: Mapped["RemovalRequest"] = relationship(back_populates="exposure", uselist=False)


from ghostmydata.models.user import User
from ghostmydata.models.scan import Scan
from ghostmydata.models.request import RemovalRequest
