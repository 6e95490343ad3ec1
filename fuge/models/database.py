"""
Async database setup for Fuge.

Builds the async engine and session factory the SqlAlchemyHabitStore runs
on, from ``FUGE_DATABASE_URL``. The URL must name an async driver
(``sqlite+aiosqlite://``, ``postgresql+asyncpg://``...), so database I/O
never blocks the event loop.

Usage:
    from fuge.models.database import create_engine_from_settings, init_db, make_session_factory

    engine = create_engine_from_settings()
    await init_db(engine)
    store = SqlAlchemyHabitStore(make_session_factory(engine))
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from fuge.config.settings import Settings, get_settings
from fuge.models.base import Base


def create_engine_from_settings(settings: Settings | None = None) -> AsyncEngine:
    settings = settings or get_settings()
    return create_async_engine(settings.database_url, pool_pre_ping=True)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for the habit store; objects stay readable after commit."""
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def session_factory_from_settings(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(create_engine_from_settings(settings))


async def init_db(engine: AsyncEngine) -> None:
    """Create missing tables."""
    # Register every record class on Base.metadata before create_all.
    from fuge.models import aspiration_record, habit_record  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "create_engine_from_settings",
    "init_db",
    "make_session_factory",
    "session_factory_from_settings",
]
