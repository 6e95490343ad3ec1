"""
Backup-time reminders.

A habit with a ``backup_time`` gets a fallback nudge at that minute of the
day unless it was already done today. The host polls
``due_backup_reminders`` once a minute and delivers what it returns;
delivery itself (notifications, alarms) lives outside the engine.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from fuge.models.habit import Habit, in_zone_of


@dataclass(frozen=True)
class Reminder:
    habit_id: str
    title: str
    body: str


def _same_day(timestamp: datetime, now: datetime) -> bool:
    return in_zone_of(timestamp, now).date() == now.date()


def is_completed_on(habit: Habit, now: datetime) -> bool:
    """True when the most recent completion falls on ``now``'s calendar day."""
    last = habit.last_completed or (habit.history[-1] if habit.history else None)
    return last is not None and _same_day(last, now)


def due_backup_reminders(collection: Sequence[Habit], now: datetime) -> list[Reminder]:
    """
    Reminders due at ``now`` (matched to the minute, in ``now``'s timezone).

    Paused habits and habits already completed today are skipped.
    """
    due: list[Reminder] = []
    for habit in collection:
        if habit.paused or habit.backup_time is None:
            continue
        if (habit.backup_time.hour, habit.backup_time.minute) != (now.hour, now.minute):
            continue
        if is_completed_on(habit, now):
            continue
        due.append(
            Reminder(
                habit_id=habit.id,
                title=f"Backup reminder: {habit.tiny_behavior}",
                body=f"After {habit.anchor}, {habit.tiny_behavior}",
            )
        )
    return due


__all__ = ["Reminder", "due_backup_reminders", "is_completed_on"]
