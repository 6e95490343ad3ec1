"""
Tests for the Habit entity (fuge/models/habit.py).

Covers:
- backup time parsing and formatting
- to_dict / from_dict, including defaults for missing or falsy fields
- invariant_violations for counters, evolution log and chain links
- is_valid_chain_target
"""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime, time

import pytest

from fuge.lib.exceptions import InvalidInput
from fuge.models.habit import (
    DEFAULT_ASPIRATION,
    DEFAULT_CELEBRATION,
    EnvironmentSetup,
    EvolutionEvent,
    EvolutionKind,
    Habit,
    HabitType,
    format_backup_time,
    is_valid_chain_target,
    parse_backup_time,
    parse_timestamp,
)

# =============================================================================
# Parsing helpers
# =============================================================================


class TestBackupTime:
    """Tests for parse_backup_time / format_backup_time."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("07:30", time(7, 30)),
            ("7:05", time(7, 5)),
            ("23:59", time(23, 59)),
            (" 21:00 ", time(21, 0)),
        ],
    )
    def test_parses_hh_mm(self, raw, expected):
        assert parse_backup_time(raw) == expected

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty_means_no_reminder(self, raw):
        assert parse_backup_time(raw) is None

    def test_time_passes_through(self):
        assert parse_backup_time(time(6, 0)) == time(6, 0)

    @pytest.mark.parametrize("raw", ["24:00", "12:60", "noon", "12-30", "1230"])
    def test_rejects_malformed(self, raw):
        with pytest.raises(InvalidInput) as exc_info:
            parse_backup_time(raw)
        assert exc_info.value.field == "backup_time"

    def test_format_pads(self):
        assert format_backup_time(time(7, 5)) == "07:05"
        assert format_backup_time(None) is None


def test_parse_timestamp_assumes_utc_for_naive():
    parsed = parse_timestamp("2026-03-02T08:00:00")
    assert parsed.tzinfo == UTC


def test_environment_setup_from_list_and_dict():
    assert EnvironmentSetup.from_value(["mat out"]).ready_checklist == ("mat out",)
    setup = EnvironmentSetup.from_value({"design_script": "put shoes by door", "ready_checklist": ["a"]})
    assert setup.design_script == "put shoes by door"
    assert setup.ready_checklist == ("a",)
    assert EnvironmentSetup.from_value(None) is None


# =============================================================================
# Serialization
# =============================================================================


class TestSerialization:
    """Tests for Habit.to_dict / Habit.from_dict."""

    def test_round_trip_keeps_every_field(self, make_habit, now):
        habit = make_habit(
            backup_time="21:30",
            habit_type="pearl",
            scaled_versions=["Floss half a tooth"],
            environment_setup=["Floss on the sink"],
            completed_count=4,
            current_streak=2,
            history=[now],
            last_completed=now,
            next_habit_id="other",
            sort_order=3,
        )

        restored = Habit.from_dict(habit.to_dict())

        assert restored == habit

    def test_to_dict_uses_wire_shapes(self, make_habit):
        data = make_habit(backup_time="07:05").to_dict()

        assert data["backup_time"] == "07:05"
        assert data["habit_type"] == "regular"
        assert data["evolution_log"][0]["type"] == "creation"
        assert data["evolution_log"][0]["change"] == 'Started: "Floss one tooth"'
        assert "note" not in data["evolution_log"][0]

    def test_missing_fields_get_defaults(self):
        habit = Habit.from_dict(
            {"id": "h1", "anchor": "After lunch", "tiny_behavior": "Walk 10 steps"}
        )

        assert habit.motivation == 5
        assert habit.ability == 5
        assert habit.difficulty_level == 1
        assert habit.aspiration == DEFAULT_ASPIRATION
        assert habit.celebration_method == DEFAULT_CELEBRATION
        assert habit.habit_type == HabitType.REGULAR
        assert habit.history == []
        assert habit.evolution_log == []
        assert habit.next_habit_id is None
        assert habit.paused is False

    def test_falsy_values_fall_back(self):
        habit = Habit.from_dict(
            {
                "id": "h1",
                "anchor": "a",
                "tiny_behavior": "b",
                "motivation": 0,
                "difficulty_level": 0,
                "next_habit_id": "",
                "backup_time": "",
            }
        )

        assert habit.motivation == 5
        assert habit.difficulty_level == 1
        assert habit.next_habit_id is None
        assert habit.backup_time is None

    def test_evolution_event_note_round_trip(self, now):
        event = EvolutionEvent(date=now, kind=EvolutionKind.UPGRADE, description="x", note="why")
        assert EvolutionEvent.from_dict(event.to_dict()) == event


# =============================================================================
# Invariants
# =============================================================================


class TestInvariants:
    """Tests for Habit.invariant_violations."""

    def test_new_habit_is_well_formed(self, make_habit):
        habit = make_habit()
        assert habit.invariant_violations([habit]) == []

    def test_counter_violations(self, make_habit):
        habit = make_habit(difficulty_level=0, completed_count=1, current_streak=2, consecutive_failures=-1)

        problems = habit.invariant_violations()

        assert "difficulty_level below 1" in problems
        assert "current_streak exceeds completed_count" in problems
        assert "consecutive_failures is negative" in problems

    def test_log_must_start_with_creation(self, make_habit):
        habit = make_habit(evolution_log=[])
        assert "evolution_log does not start with creation" in habit.invariant_violations()

    def test_self_link(self, make_habit):
        habit = make_habit()
        habit = dataclasses.replace(habit, next_habit_id=habit.id)
        assert "habit chains to itself" in habit.invariant_violations()

    def test_dangling_link_needs_collection(self, make_habit):
        habit = make_habit(next_habit_id="ghost")

        assert habit.invariant_violations() == []
        assert "next_habit_id references a missing habit" in habit.invariant_violations([habit])

    def test_cycle_is_reported(self, make_habit):
        a = make_habit("A", "a")
        b = make_habit("B", "b", next_habit_id=a.id)
        a = dataclasses.replace(a, next_habit_id=b.id)

        assert "chain contains a cycle" in a.invariant_violations([a, b])

    def test_link_into_terminating_chain_is_fine(self, make_habit):
        c = make_habit("C", "c")
        b = make_habit("B", "b", next_habit_id=c.id)
        a = make_habit("A", "a", next_habit_id=b.id)

        assert a.invariant_violations([a, b, c]) == []


# =============================================================================
# Chain target validation
# =============================================================================


class TestIsValidChainTarget:
    """Tests for is_valid_chain_target."""

    def test_self_target(self, make_habit):
        a = make_habit()
        assert is_valid_chain_target(a.id, a.id, [a]) is False

    def test_missing_target(self, make_habit):
        a = make_habit()
        assert is_valid_chain_target(a.id, "ghost", [a]) is False

    def test_plain_link(self, make_habit):
        a, b = make_habit("A", "a"), make_habit("B", "b")
        assert is_valid_chain_target(a.id, b.id, [a, b]) is True

    def test_closing_a_cycle(self, make_habit):
        c = make_habit("C", "c")
        b = make_habit("B", "b", next_habit_id=c.id)
        a = make_habit("A", "a", next_habit_id=b.id)

        assert is_valid_chain_target(c.id, a.id, [a, b, c]) is False

    def test_relinking_replaces_old_edge(self, make_habit):
        # a -> b today; pointing a at c instead must not count b's chain
        c = make_habit("C", "c")
        b = make_habit("B", "b")
        a = make_habit("A", "a", next_habit_id=b.id)

        assert is_valid_chain_target(a.id, c.id, [a, b, c]) is True

    def test_existing_cycle_elsewhere_terminates(self, make_habit):
        x = make_habit("X", "x")
        y = make_habit("Y", "y", next_habit_id=x.id)
        x = dataclasses.replace(x, next_habit_id=y.id)
        a = make_habit("A", "a")

        assert is_valid_chain_target(a.id, x.id, [a, x, y]) is True


def test_created_at_is_timezone_aware(make_habit):
    assert make_habit().created_at.tzinfo is not None
    assert make_habit().created_at == datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
