"""
Habit entity model for Fuge.

A Habit is a tiny behavior anchored to an existing moment ("after I brush
my teeth, I will do one pushup"). This module defines its canonical shape,
serialization, and the pure predicates that guard its invariants:

- difficulty_level >= 1
- completed_count, current_streak, consecutive_failures >= 0
- current_streak <= completed_count
- next_habit_id references another habit of the same collection
- following next_habit_id never cycles
- evolution_log is append-only and starts with a creation event

Instances are treated as values: lifecycle operations in
``fuge.core.lifecycle`` return new Habit objects instead of mutating.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, time
from enum import StrEnum
from typing import Any

from fuge.lib.exceptions import InvalidInput

DEFAULT_ASPIRATION = "uncategorized"
DEFAULT_CELEBRATION = 'Fist pump and say "Yes!"'
DEFAULT_SCORE = 5

_BACKUP_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


class HabitType(StrEnum):
    """regular: neutral routine anchor. pearl: an irritation is the anchor."""

    REGULAR = "regular"
    PEARL = "pearl"


class EvolutionKind(StrEnum):
    CREATION = "creation"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


@dataclass(frozen=True)
class EvolutionEvent:
    """One entry of a habit's evolution audit trail."""

    date: datetime
    kind: EvolutionKind
    description: str
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "date": self.date.isoformat(),
            "type": self.kind.value,
            "change": self.description,
        }
        if self.note is not None:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvolutionEvent:
        return cls(
            date=parse_timestamp(data["date"]),
            kind=EvolutionKind(data["type"]),
            description=data.get("change", ""),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class EnvironmentSetup:
    """Checklist that makes the behavior easier to start."""

    design_script: str | None = None
    ready_checklist: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "design_script": self.design_script,
            "ready_checklist": list(self.ready_checklist),
        }

    @classmethod
    def from_value(cls, value: Any) -> EnvironmentSetup | None:
        """Accept a dict, a plain checklist, or an existing instance."""
        if value is None or isinstance(value, EnvironmentSetup):
            return value
        if isinstance(value, dict):
            return cls(
                design_script=value.get("design_script"),
                ready_checklist=tuple(value.get("ready_checklist") or ()),
            )
        return cls(ready_checklist=tuple(str(item) for item in value))


# =============================================================================
# Parsing helpers
# =============================================================================

def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are assumed to be UTC."""
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def in_zone_of(value: datetime, reference: datetime) -> datetime:
    """
    ``value`` converted to ``reference``'s timezone, for calendar-day math.

    Naive datetimes on either side are taken as UTC.
    """
    zone = parse_timestamp(reference).tzinfo
    return parse_timestamp(value).astimezone(zone)


def parse_backup_time(value: time | str | None) -> time | None:
    """
    Parse a reminder time of day.

    Args:
        value: a ``datetime.time``, an "HH:MM" string, or None/"" for no reminder.

    Raises:
        InvalidInput: for malformed strings or out-of-range hours/minutes.
    """
    if value is None or isinstance(value, time):
        return value
    text = value.strip()
    if not text:
        return None
    match = _BACKUP_TIME_PATTERN.match(text)
    if match is None:
        raise InvalidInput(f"backup_time must be HH:MM, got {value!r}", field="backup_time")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidInput(f"backup_time out of range: {value!r}", field="backup_time")
    return time(hour, minute)


def format_backup_time(value: time | None) -> str | None:
    if value is None:
        return None
    return f"{value.hour:02d}:{value.minute:02d}"


# =============================================================================
# Habit
# =============================================================================

@dataclass
class Habit:
    """
    Canonical habit entity.

    Attributes:
        id: Opaque unique id (UUID string), immutable after creation
        anchor: The moment that triggers the habit
        tiny_behavior: The minimal action done right after the anchor
        original_behavior: The larger aspiration the user started from
        motivation: Design-time motivation score, 1-10
        ability: Design-time ability score, 1-10
        aspiration: Life-goal bucket label
        difficulty_level: Starts at 1, moved by evolution events
        evolution_log: Append-only audit trail, first entry is creation
        completed_count: Total successful check-ins
        current_streak: Consecutive check-ins since the last failure
        consecutive_failures: Failures since the last check-in
        history: Completion timestamps, append-only
        backup_time: Time of day for a fallback reminder
        paused: Excluded from the active dashboard and active chain walks
        scaled_versions: Pre-authored simpler variants offered on auto-scaling
        next_habit_id: Single chained successor
        sort_order: Position among cluster roots
    """

    id: str
    anchor: str
    tiny_behavior: str
    created_at: datetime
    original_behavior: str = ""
    motivation: int = DEFAULT_SCORE
    ability: int = DEFAULT_SCORE
    ai_suggestion: str = ""
    environment_setup: EnvironmentSetup | None = None
    aspiration: str = DEFAULT_ASPIRATION
    difficulty_level: int = 1
    evolution_log: list[EvolutionEvent] = field(default_factory=list)
    completed_count: int = 0
    current_streak: int = 0
    consecutive_failures: int = 0
    last_completed: datetime | None = None
    history: list[datetime] = field(default_factory=list)
    celebration_method: str = DEFAULT_CELEBRATION
    backup_time: time | None = None
    habit_type: HabitType = HabitType.REGULAR
    paused: bool = False
    scaled_versions: list[str] = field(default_factory=list)
    next_habit_id: str | None = None
    sort_order: int = 0

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible primitives."""
        return {
            "id": self.id,
            "anchor": self.anchor,
            "tiny_behavior": self.tiny_behavior,
            "original_behavior": self.original_behavior,
            "motivation": self.motivation,
            "ability": self.ability,
            "ai_suggestion": self.ai_suggestion,
            "environment_setup": (
                self.environment_setup.to_dict() if self.environment_setup else None
            ),
            "aspiration": self.aspiration,
            "difficulty_level": self.difficulty_level,
            "evolution_log": [event.to_dict() for event in self.evolution_log],
            "created_at": self.created_at.isoformat(),
            "completed_count": self.completed_count,
            "current_streak": self.current_streak,
            "consecutive_failures": self.consecutive_failures,
            "last_completed": self.last_completed.isoformat() if self.last_completed else None,
            "history": [ts.isoformat() for ts in self.history],
            "celebration_method": self.celebration_method,
            "backup_time": format_backup_time(self.backup_time),
            "habit_type": self.habit_type.value,
            "paused": self.paused,
            "scaled_versions": list(self.scaled_versions),
            "next_habit_id": self.next_habit_id,
            "sort_order": self.sort_order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Habit:
        """
        Deserialize, filling absent or null fields with their defaults.

        Falsy stored values fall back the same way the cloud rows did:
        a stored motivation of 0 reads back as the default score.
        """
        last_completed = data.get("last_completed")
        return cls(
            id=str(data["id"]),
            anchor=data.get("anchor") or "",
            tiny_behavior=data.get("tiny_behavior") or "",
            created_at=parse_timestamp(data.get("created_at") or utcnow()),
            original_behavior=data.get("original_behavior") or "",
            motivation=data.get("motivation") or DEFAULT_SCORE,
            ability=data.get("ability") or DEFAULT_SCORE,
            ai_suggestion=data.get("ai_suggestion") or "",
            environment_setup=EnvironmentSetup.from_value(data.get("environment_setup")),
            aspiration=data.get("aspiration") or DEFAULT_ASPIRATION,
            difficulty_level=data.get("difficulty_level") or 1,
            evolution_log=[
                EvolutionEvent.from_dict(item) for item in data.get("evolution_log") or []
            ],
            completed_count=data.get("completed_count") or 0,
            current_streak=data.get("current_streak") or 0,
            consecutive_failures=data.get("consecutive_failures") or 0,
            last_completed=parse_timestamp(last_completed) if last_completed else None,
            history=[parse_timestamp(ts) for ts in data.get("history") or []],
            celebration_method=data.get("celebration_method") or DEFAULT_CELEBRATION,
            backup_time=parse_backup_time(data.get("backup_time")),
            habit_type=HabitType(data.get("habit_type") or HabitType.REGULAR),
            paused=bool(data.get("paused", False)),
            scaled_versions=list(data.get("scaled_versions") or []),
            next_habit_id=data.get("next_habit_id") or None,
            sort_order=data.get("sort_order") or 0,
        )

    # -------------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------------

    def invariant_violations(self, collection: Sequence[Habit] | None = None) -> list[str]:
        """
        List every violated invariant; empty when the habit is well-formed.

        Chain invariants are only checked when ``collection`` is given.
        """
        problems: list[str] = []
        if self.difficulty_level < 1:
            problems.append("difficulty_level below 1")
        for name in ("completed_count", "current_streak", "consecutive_failures"):
            if getattr(self, name) < 0:
                problems.append(f"{name} is negative")
        if self.current_streak > self.completed_count:
            problems.append("current_streak exceeds completed_count")
        if not self.evolution_log or self.evolution_log[0].kind != EvolutionKind.CREATION:
            problems.append("evolution_log does not start with creation")
        if self.next_habit_id is not None:
            if self.next_habit_id == self.id:
                problems.append("habit chains to itself")
            elif collection is not None:
                ids = {habit.id for habit in collection}
                if self.next_habit_id not in ids:
                    problems.append("next_habit_id references a missing habit")
                elif not _chain_terminates(self.id, collection):
                    problems.append("chain contains a cycle")
        return problems


# =============================================================================
# Chain predicates
# =============================================================================

def _walk_reaches(
    start_id: str,
    target_id: str,
    collection: Iterable[Habit],
    extra_link: tuple[str, str] | None = None,
) -> bool:
    """
    Follow next_habit_id from ``start_id`` and report whether ``target_id``
    is reached. ``extra_link`` overrides one habit's successor so a
    hypothetical link can be simulated without building a new collection.
    """
    successors = {habit.id: habit.next_habit_id for habit in collection}
    if extra_link is not None:
        successors[extra_link[0]] = extra_link[1]

    visited: set[str] = set()
    current: str | None = start_id
    # A walk longer than the collection has revisited something.
    for _ in range(len(successors) + 1):
        if current is None or current in visited:
            return False
        if current == target_id:
            return True
        visited.add(current)
        current = successors.get(current)
    return False


def _chain_terminates(start_id: str, collection: Iterable[Habit]) -> bool:
    """True when the walk from ``start_id`` ends at a terminal or dangling id."""
    successors = {habit.id: habit.next_habit_id for habit in collection}
    visited: set[str] = set()
    current: str | None = start_id
    while current is not None and current in successors:
        if current in visited:
            return False
        visited.add(current)
        current = successors[current]
    return True


def is_valid_chain_target(from_id: str, to_id: str, collection: Sequence[Habit]) -> bool:
    """
    Check whether ``from_id -> to_id`` may be linked.

    False when linking to itself, when ``to_id`` is not in the collection,
    or when the new link would close a cycle.
    """
    if to_id == from_id:
        return False
    if not any(habit.id == to_id for habit in collection):
        return False
    return not _walk_reaches(to_id, from_id, collection, extra_link=(from_id, to_id))


__all__ = [
    "DEFAULT_ASPIRATION",
    "DEFAULT_CELEBRATION",
    "EnvironmentSetup",
    "EvolutionEvent",
    "EvolutionKind",
    "Habit",
    "HabitType",
    "format_backup_time",
    "in_zone_of",
    "is_valid_chain_target",
    "parse_backup_time",
    "parse_timestamp",
    "utcnow",
]
