"""
Fuge data models.

The Habit dataclass is the in-memory entity; HabitRecord is its row in
the ``habits`` table. AspirationRecord rows hold the user's aspirations.
"""

from fuge.models.aspiration_record import AspirationRecord
from fuge.models.base import Base
from fuge.models.habit import (
    EnvironmentSetup,
    EvolutionEvent,
    EvolutionKind,
    Habit,
    HabitType,
    is_valid_chain_target,
)
from fuge.models.habit_record import HabitRecord

__all__ = [
    "AspirationRecord",
    "Base",
    "EnvironmentSetup",
    "EvolutionEvent",
    "EvolutionKind",
    "Habit",
    "HabitRecord",
    "HabitType",
    "is_valid_chain_target",
]
