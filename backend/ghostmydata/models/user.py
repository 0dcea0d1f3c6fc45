"""User models."""

import uuid
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, ForeignKey, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ghostmydata.db.database import Base
from brokers.base import Address, ScanInput


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    profile: Mapped["PersonalProfile"] = relationship(back_populates="user", uselist=False)
    scans: Mapped[list["Scan"]] = relationship(back_populates="user")
    exposures: Mapped[list["Exposure"]] = relationship(back_populates="user")
    removal_requests: Mapped[list["RemovalRequest"]] = relationship(back_populates="user")
    alerts: Mapped[list["Alert"]] = relationship(back_populates="user")


class PersonalProfile(Base):
    """Personal information the user wants found and removed."""

    __tablename__ = "personal_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), unique=True)

    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    aliases: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Contact
    emails: Mapped[list | None] = mapped_column(JSON, nullable=True)
    phones: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # [{street, city, state, zip_code, country}]
    addresses: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # ISO date string, e.g. "1985-03-14"
    date_of_birth: Mapped[str | None] = mapped_column(String(10), nullable=True)
    usernames: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="profile")

    def to_scan_input(self) -> ScanInput:
        """Build the scanner input from the stored profile."""
        return ScanInput(
            full_name=self.full_name,
            aliases=list(self.aliases or []),
            emails=list(self.emails or []),
            phones=list(self.phones or []),
            addresses=[
                Address(
                    street=addr.get("street"),
                    city=addr.get("city"),
                    state=addr.get("state"),
                    zip_code=addr.get("zip_code") or addr.get("zip"),
                    country=addr.get("country", "US"),
                )
                for addr in (self.addresses or [])
            ],
            date_of_birth=self.date_of_birth,
            usernames=list(self.usernames or []),
        )


# Import for type hints
from ghostmydata.models.scan import Scan
from ghostmydata.models.exposure import Exposure
from ghostmydata.models.request import RemovalRequest
from ghostmydata.models.alert import Alert
