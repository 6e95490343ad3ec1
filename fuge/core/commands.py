"""
Habit commands for Fuge.

Every change to the habit collection is expressed as a HabitCommand and
applied through ``reduce``, a pure function from (collection, command) to
a Reduction. The state holder (``fuge.services.habit_service``) applies
reductions one at a time and persists the changed habits afterwards.

Whether an optimistic change is undone when its durable write fails is a
per-command policy (``ROLLBACK_ON_SYNC_FAILURE``). Check-ins are kept even
when the write fails so a celebrated completion is never taken back from
the user; every structural change is reverted.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from fuge.core import lifecycle
from fuge.lib.exceptions import HabitNotFoundError, InvalidInput
from fuge.models.habit import Habit, utcnow


class CommandType(StrEnum):
    """Operations that change the habit collection."""

    CREATE = "create"
    CHECK_IN = "check_in"
    BATCH_CHECK_IN = "batch_check_in"
    RECORD_FAILURE = "record_failure"
    EVOLVE = "evolve"
    SET_CHAIN = "set_chain"
    PAUSE = "pause"
    UPDATE = "update"
    DELETE = "delete"
    REORDER = "reorder"


ROLLBACK_ON_SYNC_FAILURE: dict[CommandType, bool] = {
    CommandType.CREATE: True,
    CommandType.CHECK_IN: False,
    CommandType.BATCH_CHECK_IN: False,
    CommandType.RECORD_FAILURE: False,
    CommandType.EVOLVE: True,
    CommandType.SET_CHAIN: True,
    CommandType.PAUSE: True,
    CommandType.UPDATE: True,
    CommandType.DELETE: True,
    CommandType.REORDER: True,
}


@dataclass
class HabitCommand:
    """A requested change to the habit collection.

    Attributes:
        command_type: The operation
        payload: Operation arguments
        id: Unique identifier for this command
        created_at: When the command was issued
    """

    command_type: CommandType
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not isinstance(self.command_type, CommandType):
            self.command_type = CommandType(self.command_type)

    @property
    def rollback_on_sync_failure(self) -> bool:
        return ROLLBACK_ON_SYNC_FAILURE[self.command_type]

    @classmethod
    def create(cls, anchor: str, behavior: str, **options: Any) -> HabitCommand:
        """Create a habit; ``options`` are ``lifecycle.create_habit`` keywords."""
        return cls(CommandType.CREATE, {"anchor": anchor, "behavior": behavior, **options})

    @classmethod
    def check_in(cls, habit_id: str) -> HabitCommand:
        return cls(CommandType.CHECK_IN, {"habit_id": habit_id})

    @classmethod
    def batch_check_in(cls, habit_ids: Sequence[str]) -> HabitCommand:
        """Check in several habits at once (a whole cluster)."""
        return cls(CommandType.BATCH_CHECK_IN, {"habit_ids": list(habit_ids)})

    @classmethod
    def record_failure(cls, habit_id: str) -> HabitCommand:
        return cls(CommandType.RECORD_FAILURE, {"habit_id": habit_id})

    @classmethod
    def evolve(
        cls,
        habit_id: str,
        new_anchor: str,
        new_behavior: str,
        direction: str = lifecycle.EvolutionDirection.UPGRADE,
        note: str | None = None,
    ) -> HabitCommand:
        return cls(
            CommandType.EVOLVE,
            {
                "habit_id": habit_id,
                "new_anchor": new_anchor,
                "new_behavior": new_behavior,
                "direction": direction,
                "note": note,
            },
        )

    @classmethod
    def set_chain(cls, habit_id: str, next_habit_id: str | None) -> HabitCommand:
        return cls(CommandType.SET_CHAIN, {"habit_id": habit_id, "next_habit_id": next_habit_id})

    @classmethod
    def pause(cls, habit_id: str, paused: bool = True) -> HabitCommand:
        return cls(CommandType.PAUSE, {"habit_id": habit_id, "paused": paused})

    @classmethod
    def update(cls, habit_id: str, patch: Mapping[str, Any]) -> HabitCommand:
        return cls(CommandType.UPDATE, {"habit_id": habit_id, "patch": dict(patch)})

    @classmethod
    def delete(cls, habit_id: str) -> HabitCommand:
        return cls(CommandType.DELETE, {"habit_id": habit_id})

    @classmethod
    def reorder(cls, root_ids: Sequence[str]) -> HabitCommand:
        return cls(CommandType.REORDER, {"root_ids": list(root_ids)})


@dataclass(frozen=True)
class Reduction:
    """
    Result of applying one command.

    Attributes:
        habits: The full new collection
        changed: New versions of created or modified habits
        removed: Ids of deleted habits
        result: Operation-specific value (CheckInResult, FailureResult, Habit...)
    """

    habits: list[Habit]
    changed: list[Habit] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    result: Any = None


def _find(collection: Sequence[Habit], habit_id: str) -> Habit:
    for habit in collection:
        if habit.id == habit_id:
            return habit
    raise HabitNotFoundError(habit_id)


def _replace_all(collection: Sequence[Habit], changed: Sequence[Habit]) -> list[Habit]:
    replacements = {habit.id: habit for habit in changed}
    return [replacements.get(habit.id, habit) for habit in collection]


def reduce(
    collection: Sequence[Habit],
    command: HabitCommand,
    now: datetime | None = None,
) -> Reduction:
    """
    Apply ``command`` to ``collection`` without mutating it.

    Raises:
        InvalidInput, InvalidChain: rejected before any new state exists.
        HabitNotFoundError: the command names an unknown habit.
    """
    payload = command.payload
    now = now or utcnow()
    kind = command.command_type

    if kind == CommandType.CREATE:
        options = {k: v for k, v in payload.items() if k not in ("anchor", "behavior")}
        habit = lifecycle.create_habit(payload["anchor"], payload["behavior"], now=now, **options)
        return Reduction(habits=[*collection, habit], changed=[habit], result=habit)

    if kind == CommandType.REORDER:
        changed = lifecycle.assign_sort_order(collection, payload["root_ids"])
        return Reduction(habits=_replace_all(collection, changed), changed=changed)

    if kind == CommandType.BATCH_CHECK_IN:
        targets = [_find(collection, habit_id) for habit_id in dict.fromkeys(payload["habit_ids"])]
        results = [lifecycle.check_in(habit, now=now) for habit in targets]
        changed = [r.habit for r in results]
        return Reduction(habits=_replace_all(collection, changed), changed=changed, result=results)

    target = _find(collection, payload["habit_id"])

    if kind == CommandType.DELETE:
        remaining = [habit for habit in collection if habit.id != target.id]
        return Reduction(habits=remaining, removed=[target.id], result=target)

    result: Any
    if kind == CommandType.CHECK_IN:
        result = lifecycle.check_in(target, now=now)
        updated = result.habit
    elif kind == CommandType.RECORD_FAILURE:
        result = lifecycle.record_failure(target)
        updated = result.habit
    elif kind == CommandType.EVOLVE:
        updated = lifecycle.evolve(
            target,
            payload["new_anchor"],
            payload["new_behavior"],
            payload.get("direction", lifecycle.EvolutionDirection.UPGRADE),
            now=now,
            note=payload.get("note"),
        )
        result = updated
    elif kind == CommandType.SET_CHAIN:
        updated = lifecycle.set_chain(target, payload.get("next_habit_id"), collection)
        result = updated
    elif kind == CommandType.PAUSE:
        updated = lifecycle.pause(target, bool(payload.get("paused", True)))
        result = updated
    elif kind == CommandType.UPDATE:
        updated = lifecycle.update(target, payload.get("patch") or {})
        result = updated
    else:
        raise InvalidInput(f"Unsupported command type: {kind}")

    return Reduction(habits=_replace_all(collection, [updated]), changed=[updated], result=result)


__all__ = [
    "ROLLBACK_ON_SYNC_FAILURE",
    "CommandType",
    "HabitCommand",
    "Reduction",
    "reduce",
]
