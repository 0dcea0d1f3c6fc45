"""Shared fixtures: an in-memory database and a seeded user."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("SCRAPINGBEE_API_KEY", "")

import uuid
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ghostmydata.db.database import Base
from ghostmydata.models import Exposure, PersonalProfile, RemovalRequest, User
from ghostmydata.models.enums import ExposureStatus, RemovalMethod, RemovalStatus


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def user(db):
    user = User(email="jane@example.com", name="Jane Doe")
    db.add(user)
    await db.flush()
    db.add(PersonalProfile(
        user_id=user.id,
        full_name="Jane Doe",
        emails=["jane@example.com"],
        phones=["(312) 555-0142"],
        addresses=[{"street": "12 Oak Street", "city": "Chicago", "state": "IL", "zip_code": "60601"}],
        date_of_birth="1985-03-14",
    ))
    await db.commit()
    return user


@pytest.fixture
def make_exposure(db):
    async def _make(user, source, source_name=None, severity="MEDIUM", status=ExposureStatus.ACTIVE, **kwargs):
        exposure = Exposure(
            user_id=user.id,
            source=source,
            source_name=source_name or source.title(),
            source_url=kwargs.pop("source_url", f"https://{source.lower()}.com/profile/jane-doe"),
            data_type=kwargs.pop("data_type", "COMBINED_PROFILE"),
            severity=severity,
            status=status,
            **kwargs,
        )
        db.add(exposure)
        await db.commit()
        return exposure
    return _make


@pytest.fixture
def make_request(db):
    async def _make(user, exposure, status=RemovalStatus.PENDING, method=RemovalMethod.AUTO_EMAIL, **kwargs):
        request = RemovalRequest(
            id=kwargs.pop("id", uuid.uuid4()),
            user_id=user.id,
            exposure_id=exposure.id,
            status=status,
            method=method,
            created_at=kwargs.pop("created_at", datetime.utcnow()),
            **kwargs,
        )
        db.add(request)
        await db.commit()
        return request
    return _make
