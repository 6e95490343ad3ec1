"""
Habit persistence record for Fuge.

One row per habit in the ``habits`` table. List-valued fields (history,
evolution log, scaled versions, checklist) are stored as JSON columns in
the same shape ``Habit.to_dict()`` produces.

``next_habit_id`` deliberately has no foreign key: deleting a habit may
leave a dangling successor link on its predecessor, and the chain
resolver truncates at such links instead of failing.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from fuge.models.base import Base
from fuge.models.habit import Habit


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on round-trip; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class HabitRecord(Base):
    """
    Row representation of a Habit.

    Attributes:
        id: UUID string primary key
        anchor, tiny_behavior: Core recipe text
        evolution_log: JSON list of {date, type, change, note?}
        history: JSON list of ISO timestamps
        backup_time: "HH:MM" or NULL
        next_habit_id: Successor id, not constrained
        sort_order: Root position in the cluster view
    """

    __tablename__ = "habits"

    id = Column(String(36), primary_key=True)

    # Recipe
    anchor = Column(Text, nullable=False)
    tiny_behavior = Column(Text, nullable=False)
    original_behavior = Column(Text, nullable=False, default="")
    motivation = Column(Integer, nullable=False, default=5)
    ability = Column(Integer, nullable=False, default=5)
    ai_suggestion = Column(Text, nullable=False, default="")
    environment_setup = Column(JSON, nullable=True)
    aspiration = Column(String(200), nullable=False, default="uncategorized")
    celebration_method = Column(Text, nullable=False, default="")
    habit_type = Column(String(10), nullable=False, default="regular")

    # Evolution
    difficulty_level = Column(Integer, nullable=False, default=1)
    evolution_log = Column(JSON, nullable=False, default=list)
    scaled_versions = Column(JSON, nullable=False, default=list)

    # Stats
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_count = Column(Integer, nullable=False, default=0)
    current_streak = Column(Integer, nullable=False, default=0)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    last_completed = Column(DateTime(timezone=True), nullable=True)
    history = Column(JSON, nullable=False, default=list)

    # Prompt, chaining and display
    backup_time = Column(String(5), nullable=True)
    paused = Column(Boolean, nullable=False, default=False)
    next_habit_id = Column(String(36), nullable=True, index=True)
    sort_order = Column(Integer, nullable=False, default=0)

    @classmethod
    def from_habit(cls, habit: Habit) -> "HabitRecord":
        """Build a detached record carrying every field of ``habit``."""
        data = habit.to_dict()
        data["created_at"] = habit.created_at
        data["last_completed"] = habit.last_completed
        return cls(**data)

    def to_habit(self) -> Habit:
        """Convert back to the in-memory entity."""
        data: dict[str, Any] = {
            column.name: getattr(self, column.name) for column in self.__table__.columns
        }
        data["created_at"] = _as_utc(self.created_at)
        data["last_completed"] = _as_utc(self.last_completed)
        return Habit.from_dict(data)

    def __repr__(self) -> str:
        return f"<HabitRecord id={self.id} anchor={self.anchor!r}>"
