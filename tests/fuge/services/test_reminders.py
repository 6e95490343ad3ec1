"""
Tests for backup-time reminders (fuge/services/reminders.py).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from fuge.services.reminders import due_backup_reminders, is_completed_on

EVENING = datetime(2026, 3, 2, 21, 30, tzinfo=UTC)


def test_due_at_matching_minute(make_habit):
    habit = make_habit(backup_time="21:30")

    reminders = due_backup_reminders([habit], EVENING)

    assert [r.habit_id for r in reminders] == [habit.id]
    assert habit.tiny_behavior in reminders[0].title


def test_not_due_at_other_minutes(make_habit):
    habit = make_habit(backup_time="21:30")

    assert due_backup_reminders([habit], EVENING + timedelta(minutes=1)) == []
    assert due_backup_reminders([habit], EVENING - timedelta(hours=1)) == []


def test_skipped_when_done_today(make_habit):
    habit = make_habit(backup_time="21:30", last_completed=EVENING - timedelta(hours=12))
    assert due_backup_reminders([habit], EVENING) == []


def test_due_when_done_yesterday(make_habit):
    habit = make_habit(backup_time="21:30", last_completed=EVENING - timedelta(days=1))
    assert len(due_backup_reminders([habit], EVENING)) == 1


def test_paused_and_unscheduled_are_skipped(make_habit):
    paused = make_habit(backup_time="21:30", paused=True)
    unscheduled = make_habit()

    assert due_backup_reminders([paused, unscheduled], EVENING) == []


def test_day_boundary_uses_local_timezone(make_habit):
    shanghai = timezone(timedelta(hours=8))
    local_now = datetime(2026, 3, 3, 7, 0, tzinfo=shanghai)
    # 15:00 UTC on the 2nd is 23:00 on the 2nd in UTC+8: yesterday locally,
    # but the same UTC day as local_now (23:00 UTC on the 2nd)
    done = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)
    habit = make_habit(last_completed=done)

    assert is_completed_on(habit, local_now) is False
    assert is_completed_on(habit, local_now.astimezone(UTC)) is True


def test_history_used_without_last_completed(make_habit):
    habit = make_habit(history=[EVENING - timedelta(hours=2)])
    assert is_completed_on(habit, EVENING) is True
