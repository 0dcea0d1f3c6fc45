"""Scan model - one run of the scanner fleet for a user."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ghostmydata.db.database import Base
from ghostmydata.models.enums import ScanStatus


class Scan(Base):
    """Record of a scan run and its per-scanner outcomes."""

    __tablename__ = "scans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), index=True)

    status: Mapped[str] = mapped_column(String(20), default=ScanStatus.PENDING)

    sources_checked: Mapped[int] = mapped_column(Integer, default=0)
    exposures_found: Mapped[int] = mapped_column(Integer, default=0)
    projected_count: Mapped[int] = mapped_column(Integer, default=0)

    # [ScannerOutcome as dict]
    outcomes: Mapped[list | None] = mapped_column(JSON, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="scans")
    exposures: Mapped[list["Exposure"]] = relationship(back_populates="scan")


from ghostmydata.models.user import User
from ghostmydata.models.exposure import Exposure
