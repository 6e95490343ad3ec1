"""
Habit stores for Fuge.

The store is the durable source of truth across restarts. The state holder
only needs a handful of async operations, described by the HabitStore
protocol:

- fetch_all() -> list[Habit]
- upsert(habit) -> bool
- delete(habit_id) -> bool
- fetch_aspirations() -> list[str]
- add_aspiration(name) -> bool

Write failures are reported as ``False`` (and logged) rather than raised,
so the caller can decide between rolling back and keeping the optimistic
state.
"""

from __future__ import annotations

import copy
import logging
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fuge.models.aspiration_record import AspirationRecord
from fuge.models.habit import Habit
from fuge.models.habit_record import HabitRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class HabitStore(Protocol):
    """Persistence collaborator consumed by HabitService."""

    async def fetch_all(self) -> list[Habit]: ...

    async def upsert(self, habit: Habit) -> bool: ...

    async def delete(self, habit_id: str) -> bool: ...

    async def fetch_aspirations(self) -> list[str]: ...

    async def add_aspiration(self, name: str) -> bool: ...


class InMemoryHabitStore:
    """
    Dict-backed store for tests and local development.

    Stores deep copies so that later changes to a caller's objects never
    leak into the "persisted" state.
    """

    def __init__(self, habits: list[Habit] | None = None, aspirations: list[str] | None = None) -> None:
        self._habits: dict[str, Habit] = {}
        for habit in habits or []:
            self._habits[habit.id] = copy.deepcopy(habit)
        self._aspirations: list[str] = list(dict.fromkeys(aspirations or []))

    async def fetch_all(self) -> list[Habit]:
        return sorted(
            (copy.deepcopy(habit) for habit in self._habits.values()),
            key=lambda habit: habit.created_at,
        )

    async def upsert(self, habit: Habit) -> bool:
        self._habits[habit.id] = copy.deepcopy(habit)
        return True

    async def delete(self, habit_id: str) -> bool:
        self._habits.pop(habit_id, None)
        return True

    async def fetch_aspirations(self) -> list[str]:
        return list(self._aspirations)

    async def add_aspiration(self, name: str) -> bool:
        if name not in self._aspirations:
            self._aspirations.append(name)
        return True

    def __len__(self) -> int:
        return len(self._habits)

    def __contains__(self, habit_id: object) -> bool:
        return habit_id in self._habits


class SqlAlchemyHabitStore:
    """
    Store backed by the ``habits`` and ``aspirations`` tables.

    Every operation runs on an AsyncSession, so a slow database yields to
    the event loop and the caller's timeout can cancel it.

    Args:
        session_factory: ``async_sessionmaker`` bound to an async engine
            (see ``fuge.models.database``).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch_all(self) -> list[Habit]:
        """All habits ordered by creation time; an empty list on error."""
        try:
            async with self._session_factory() as session:
                records = await session.scalars(
                    select(HabitRecord).order_by(HabitRecord.created_at)
                )
                return [record.to_habit() for record in records.all()]
        except SQLAlchemyError:
            logger.exception("Failed to fetch habits")
            return []

    async def upsert(self, habit: Habit) -> bool:
        try:
            async with self._session_factory() as session, session.begin():
                await session.merge(HabitRecord.from_habit(habit))
            return True
        except SQLAlchemyError:
            logger.exception("Failed to save habit %s", habit.id)
            return False

    async def delete(self, habit_id: str) -> bool:
        """Delete by id. Deleting an id that is not stored counts as success."""
        try:
            async with self._session_factory() as session, session.begin():
                record = await session.get(HabitRecord, habit_id)
                if record is not None:
                    await session.delete(record)
            return True
        except SQLAlchemyError:
            logger.exception("Failed to delete habit %s", habit_id)
            return False

    async def fetch_aspirations(self) -> list[str]:
        """Aspiration names in the order they were added; empty on error."""
        try:
            async with self._session_factory() as session:
                names = await session.scalars(
                    select(AspirationRecord.name).order_by(AspirationRecord.id)
                )
                return list(names.all())
        except SQLAlchemyError:
            logger.exception("Failed to fetch aspirations")
            return []

    async def add_aspiration(self, name: str) -> bool:
        """Insert ``name`` unless it already exists."""
        try:
            async with self._session_factory() as session, session.begin():
                existing = await session.scalar(
                    select(AspirationRecord).where(AspirationRecord.name == name)
                )
                if existing is None:
                    session.add(AspirationRecord(name=name))
            return True
        except SQLAlchemyError:
            logger.exception("Failed to save aspiration %r", name)
            return False


__all__ = ["HabitStore", "InMemoryHabitStore", "SqlAlchemyHabitStore"]
