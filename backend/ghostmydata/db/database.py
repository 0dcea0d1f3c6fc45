"""Async engine, session factory and declarative base."""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ghostmydata.config import settings


class Base(DeclarativeBase):
    pass


def build_engine(url: str | None = None) -> AsyncEngine:
    """Engine for ``url`` (defaults to the configured database).

    SQLite is used for local runs and tests and takes no pool sizing.
    """
    url = make_url(url or settings.database_url)
    options = {"echo": settings.debug, "pool_pre_ping": True}
    if url.get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    return create_async_engine(url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()
async_session = build_session_factory(engine)


async def get_db():
    """FastAPI dependency yielding one session per request."""
    async with async_session() as session:
        yield session


async def init_db():
    """Create any missing tables."""
    from ghostmydata import models  # noqa: F401  registers every table on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
