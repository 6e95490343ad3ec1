"""
Habit lifecycle engine for Fuge.

Pure transforms over Habit values, following the Fogg Behavior Model:

- create: a tiny behavior anchored to an existing moment
- check_in: celebrate a completion, hand back the chained successor
- record_failure: three misses in a row surface a scaling-back suggestion
- evolve: upgrade to a harder version or scale back, logged
- set_chain / pause / update: structural and manual edits

No function mutates its input; each returns a new Habit (or result object
wrapping one). Rejections (InvalidInput, InvalidChain) happen before any
new state is built. Persistence is the caller's job, see
``fuge.services.habit_service``.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, time
from enum import StrEnum
from typing import Any

from fuge.core.chains import find_predecessor, index_by_id
from fuge.lib.exceptions import InvalidChain, InvalidInput
from fuge.models.habit import (
    DEFAULT_ASPIRATION,
    DEFAULT_CELEBRATION,
    EnvironmentSetup,
    EvolutionEvent,
    EvolutionKind,
    Habit,
    HabitType,
    is_valid_chain_target,
    parse_backup_time,
    utcnow,
)

logger = logging.getLogger(__name__)

# Consecutive misses that trigger a scaling-back suggestion
FAILURE_SCALING_THRESHOLD = 3

# Fields update() refuses: identity and the append-only audit trail
_IMMUTABLE_FIELDS = frozenset({"id", "evolution_log"})
_HABIT_FIELDS = frozenset(f.name for f in dataclasses.fields(Habit))


class EvolutionDirection(StrEnum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


@dataclass(frozen=True)
class CheckInResult:
    """Updated habit plus the successor id the caller should prompt next."""

    habit: Habit
    next_habit_id: str | None


@dataclass(frozen=True)
class FailureResult:
    """
    Outcome of a recorded miss.

    Attributes:
        habit: Updated habit (streak reset, failure counter bumped)
        should_scale: True once consecutive failures reach the threshold
        failures: Consecutive failures after this one
        scaled_suggestion: First pre-authored simpler version, when scaling
    """

    habit: Habit
    should_scale: bool
    failures: int
    scaled_suggestion: str | None = None


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidInput(f"{field} must not be empty", field=field)
    return text


def _coerce(enum_type: type[StrEnum], value: Any, field: str) -> Any:
    try:
        return enum_type(value)
    except ValueError as e:
        raise InvalidInput(f"Invalid {field}: {value!r}", field=field) from e


def _require_score(value: int, field: str) -> int:
    if not 1 <= value <= 10:
        raise InvalidInput(f"{field} must be between 1 and 10, got {value}", field=field)
    return value


# =============================================================================
# Operations
# =============================================================================

def create_habit(
    anchor: str,
    behavior: str,
    *,
    original_behavior: str = "",
    motivation: int = 5,
    ability: int = 5,
    environment_setup: EnvironmentSetup | Mapping[str, Any] | Iterable[str] | None = None,
    aspiration: str | None = None,
    celebration_method: str | None = None,
    backup_time: time | str | None = None,
    habit_type: HabitType | str = HabitType.REGULAR,
    scaled_versions: Iterable[str] | None = None,
    ai_suggestion: str = "",
    now: datetime | None = None,
) -> Habit:
    """
    Create a new habit recipe.

    Raises:
        InvalidInput: empty anchor/behavior, scores outside 1-10, or a
            malformed backup time.
    """
    anchor = _require_text(anchor, "anchor")
    behavior = _require_text(behavior, "tiny_behavior")
    now = now or utcnow()

    return Habit(
        id=str(uuid.uuid4()),
        anchor=anchor,
        tiny_behavior=behavior,
        created_at=now,
        original_behavior=original_behavior,
        motivation=_require_score(motivation, "motivation"),
        ability=_require_score(ability, "ability"),
        ai_suggestion=ai_suggestion,
        environment_setup=EnvironmentSetup.from_value(environment_setup),
        aspiration=(aspiration or "").strip() or DEFAULT_ASPIRATION,
        difficulty_level=1,
        evolution_log=[
            EvolutionEvent(
                date=now,
                kind=EvolutionKind.CREATION,
                description=f'Started: "{behavior}"',
            )
        ],
        celebration_method=(celebration_method or "").strip() or DEFAULT_CELEBRATION,
        backup_time=parse_backup_time(backup_time),
        habit_type=_coerce(HabitType, habit_type, "habit_type"),
        scaled_versions=list(scaled_versions or []),
    )


def check_in(habit: Habit, now: datetime | None = None) -> CheckInResult:
    """Record a successful completion."""
    now = now or utcnow()
    updated = dataclasses.replace(
        habit,
        completed_count=habit.completed_count + 1,
        current_streak=habit.current_streak + 1,
        consecutive_failures=0,
        last_completed=now,
        history=[*habit.history, now],
    )
    return CheckInResult(habit=updated, next_habit_id=habit.next_habit_id)


def record_failure(habit: Habit) -> FailureResult:
    """
    Record a miss. Resets the streak and counts consecutive failures.

    The scaling suggestion is only surfaced; applying it is an explicit
    ``evolve(..., DOWNGRADE)`` once the user accepts.
    """
    failures = habit.consecutive_failures + 1
    should_scale = failures >= FAILURE_SCALING_THRESHOLD
    suggestion = habit.scaled_versions[0] if should_scale and habit.scaled_versions else None

    updated = dataclasses.replace(habit, consecutive_failures=failures, current_streak=0)
    if should_scale:
        logger.info("Habit %s missed %d times in a row; suggesting scale-back", habit.id, failures)
    return FailureResult(
        habit=updated,
        should_scale=should_scale,
        failures=failures,
        scaled_suggestion=suggestion,
    )


def evolve(
    habit: Habit,
    new_anchor: str,
    new_behavior: str,
    direction: EvolutionDirection | str,
    now: datetime | None = None,
    note: str | None = None,
) -> Habit:
    """
    Replace the recipe and move difficulty one step.

    Upgrade is the "harder version" path after sustained success; downgrade
    is the accepted scaling-back path and never goes below level 1.
    """
    direction = _coerce(EvolutionDirection, direction, "direction")
    new_anchor = _require_text(new_anchor, "anchor")
    new_behavior = _require_text(new_behavior, "tiny_behavior")
    now = now or utcnow()

    if direction == EvolutionDirection.UPGRADE:
        level = habit.difficulty_level + 1
        label = "Level Up"
        kind = EvolutionKind.UPGRADE
    else:
        level = max(1, habit.difficulty_level - 1)
        label = "Adjustment"
        kind = EvolutionKind.DOWNGRADE

    event = EvolutionEvent(
        date=now,
        kind=kind,
        description=f"{label}: {habit.tiny_behavior} -> {new_behavior}",
        note=note,
    )
    return dataclasses.replace(
        habit,
        anchor=new_anchor,
        tiny_behavior=new_behavior,
        difficulty_level=level,
        evolution_log=[*habit.evolution_log, event],
    )


def set_chain(habit: Habit, next_habit_id: str | None, collection: Sequence[Habit]) -> Habit:
    """
    Link ``habit`` to a successor, or unlink with ``None``.

    Raises:
        InvalidChain: self-link, unknown target, or a link that closes a cycle.
    """
    if next_habit_id is None:
        return dataclasses.replace(habit, next_habit_id=None)

    if not is_valid_chain_target(habit.id, next_habit_id, collection):
        if next_habit_id == habit.id:
            reason = "a habit cannot chain to itself"
        elif next_habit_id not in index_by_id(collection):
            reason = "target habit not found"
        else:
            reason = "link would create a cycle"
        raise InvalidChain(habit.id, next_habit_id, reason)

    existing = find_predecessor(next_habit_id, collection)
    if existing is not None and existing.id != habit.id:
        logger.warning(
            "Habit %s already follows %s; %s becomes a second predecessor",
            next_habit_id,
            existing.id,
            habit.id,
        )
    return dataclasses.replace(habit, next_habit_id=next_habit_id)


def pause(habit: Habit, paused: bool) -> Habit:
    """Pause or resume. Chain links are left as they are."""
    return dataclasses.replace(habit, paused=paused)


def update(habit: Habit, patch: Mapping[str, Any]) -> Habit:
    """
    Shallow-merge ``patch`` into ``habit``.

    Used for manual count corrections, accepted AI fixes and scaled-version
    edits. Only clamping is applied: when the patch sets both counters,
    the streak is kept within ``[0, completed_count]``.

    Raises:
        InvalidInput: unknown field names, or ``id``/``evolution_log``.
    """
    unknown = set(patch) - _HABIT_FIELDS
    if unknown:
        raise InvalidInput(f"Unknown habit fields: {', '.join(sorted(unknown))}")
    frozen = set(patch) & _IMMUTABLE_FIELDS
    if frozen:
        raise InvalidInput(f"Fields cannot be patched: {', '.join(sorted(frozen))}")

    changes = dict(patch)
    if "backup_time" in changes:
        changes["backup_time"] = parse_backup_time(changes["backup_time"])
    if "habit_type" in changes:
        changes["habit_type"] = _coerce(HabitType, changes["habit_type"], "habit_type")
    if "environment_setup" in changes:
        changes["environment_setup"] = EnvironmentSetup.from_value(changes["environment_setup"])
    for list_field in ("history", "scaled_versions"):
        if list_field in changes:
            changes[list_field] = list(changes[list_field])
    if "completed_count" in changes and "current_streak" in changes:
        changes["current_streak"] = min(
            max(changes["current_streak"], 0), changes["completed_count"]
        )
    return dataclasses.replace(habit, **changes)


# =============================================================================
# Collection helpers
# =============================================================================

def successor_prompt(result: CheckInResult, collection: Sequence[Habit]) -> Habit | None:
    """
    The habit to prompt right after a check-in.

    None when there is no successor, when it was deleted, or when it is
    paused (a paused habit is hidden from the dashboard, so prompting it
    would point the user at something they cannot see).
    """
    if result.next_habit_id is None:
        return None
    successor = index_by_id(collection).get(result.next_habit_id)
    if successor is None or successor.paused:
        return None
    return successor


def assign_sort_order(collection: Sequence[Habit], ordered_root_ids: Sequence[str]) -> list[Habit]:
    """
    Give each listed root its index as ``sort_order``.

    Returns only the habits whose order actually changed. Unknown ids are
    skipped.
    """
    index = index_by_id(collection)
    changed: list[Habit] = []
    for position, habit_id in enumerate(ordered_root_ids):
        habit = index.get(habit_id)
        if habit is None:
            logger.debug("Reorder skipped unknown habit %s", habit_id)
            continue
        if habit.sort_order != position:
            changed.append(dataclasses.replace(habit, sort_order=position))
    return changed


__all__ = [
    "FAILURE_SCALING_THRESHOLD",
    "CheckInResult",
    "EvolutionDirection",
    "FailureResult",
    "assign_sort_order",
    "check_in",
    "create_habit",
    "evolve",
    "pause",
    "record_failure",
    "set_chain",
    "successor_prompt",
    "update",
]
