"""
Shared test fixtures for Fuge.

This module provides common fixtures used across all test modules:
- Environment setup (dev mode) and a fresh settings cache per test
- Async database session and session factory (in-memory SQLite via aiosqlite)
- A fixed clock and a habit factory
- In-memory and controllable habit stores, and a HabitService over them

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import asyncio
import dataclasses
import os
from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# ---------------------------------------------------------------------------
# 1. Environment setup -- before application imports read settings
# ---------------------------------------------------------------------------

os.environ.setdefault("FUGE_DEV_MODE", "1")

from fuge.config.settings import reset_settings  # noqa: E402
from fuge.core import lifecycle  # noqa: E402
from fuge.models.database import init_db, make_session_factory  # noqa: E402
from fuge.models.habit import Habit  # noqa: E402
from fuge.services.habit_service import HabitService  # noqa: E402
from fuge.services.store import InMemoryHabitStore  # noqa: E402

FIXED_NOW = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Every test starts and ends with an empty settings cache."""
    reset_settings()
    yield
    reset_settings()


# ---------------------------------------------------------------------------
# 2. db_session / session_factory -- in-memory SQLite (aiosqlite)
# ---------------------------------------------------------------------------

@pytest.fixture()
async def db_engine():
    """
    Async in-memory SQLite engine with all tables created.

    StaticPool keeps a single connection so every session sees the same
    database.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def bare_engine():
    """Async in-memory SQLite engine without any tables."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture()
async def db_session(session_factory):
    """An AsyncSession closed after the test."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# 3. Clock and habit factory
# ---------------------------------------------------------------------------

@pytest.fixture()
def now():
    return FIXED_NOW


@pytest.fixture()
def make_habit(now):
    """
    Build habits through ``lifecycle.create_habit``.

    Extra keyword arguments that are not creation options (counters,
    next_habit_id, paused, ...) are applied afterwards with
    ``dataclasses.replace``.

    Example::

        def test_chain(make_habit):
            a = make_habit("After coffee", "Stretch", next_habit_id="b")
    """
    create_options = {
        "original_behavior",
        "motivation",
        "ability",
        "environment_setup",
        "aspiration",
        "celebration_method",
        "backup_time",
        "habit_type",
        "scaled_versions",
        "ai_suggestion",
    }

    def _make(anchor: str = "After I brush my teeth", behavior: str = "Floss one tooth", **fields) -> Habit:
        options = {k: v for k, v in fields.items() if k in create_options}
        overrides = {k: v for k, v in fields.items() if k not in create_options}
        habit = lifecycle.create_habit(anchor, behavior, now=now, **options)
        return dataclasses.replace(habit, **overrides) if overrides else habit

    return _make


# ---------------------------------------------------------------------------
# 4. Stores and service
# ---------------------------------------------------------------------------

class ControlledStore(InMemoryHabitStore):
    """
    In-memory store whose writes can be made to fail, raise, or stall.

    Attributes:
        fail_ids: Habit ids whose writes return False
        fail_all: Every write returns False
        raise_error: Every write raises RuntimeError
        delay: Seconds each write sleeps before answering
        writes: Log of ("upsert" | "delete", habit_id)
    """

    def __init__(self, habits=None):
        super().__init__(habits)
        self.fail_ids: set[str] = set()
        self.fail_all = False
        self.raise_error = False
        self.delay = 0.0
        self.writes: list[tuple[str, str]] = []

    async def _gate(self, habit_id: str) -> bool:
        # Decide before sleeping so a test may change the flags mid-write.
        explode = self.raise_error
        ok = not (self.fail_all or habit_id in self.fail_ids)
        if self.delay:
            await asyncio.sleep(self.delay)
        if explode:
            raise RuntimeError("store exploded")
        return ok

    async def upsert(self, habit):
        self.writes.append(("upsert", habit.id))
        if not await self._gate(habit.id):
            return False
        return await super().upsert(habit)

    async def delete(self, habit_id):
        self.writes.append(("delete", habit_id))
        if not await self._gate(habit_id):
            return False
        return await super().delete(habit_id)


@pytest.fixture()
def store():
    return ControlledStore()


@pytest.fixture()
def service(store, now):
    """HabitService over a ControlledStore with a fixed clock."""
    return HabitService(store, sync_timeout=1.0, now=lambda: now)
