"""
Tests for the chain resolver (fuge/core/chains.py).

The resolver must terminate on every collection, including ones holding
cycles and links to deleted habits.
"""

from __future__ import annotations

import dataclasses

from fuge.core.chains import (
    find_chain_root,
    find_predecessor,
    incoming_edge_counts,
    index_by_id,
    predecessor_map,
    resolve_chain,
)


def _ids(habits):
    return [habit.id for habit in habits]


def _linked(make_habit, *names):
    """Build habits named ``names`` linked in order: names[0] -> names[1] -> ..."""
    habits = [make_habit(f"anchor {name}", name) for name in names]
    for current, following in zip(habits, habits[1:]):
        index = habits.index(current)
        habits[index] = dataclasses.replace(current, next_habit_id=following.id)
    return habits


# =============================================================================
# resolve_chain
# =============================================================================


class TestResolveChain:
    """Tests for resolve_chain."""

    def test_linear_chain_excludes_root(self, make_habit):
        a, b, c = _linked(make_habit, "a", "b", "c")
        assert _ids(resolve_chain(a.id, [a, b, c])) == [b.id, c.id]

    def test_no_successor(self, make_habit):
        a = make_habit()
        assert list(resolve_chain(a.id, [a])) == []

    def test_unknown_root(self, make_habit):
        assert list(resolve_chain("ghost", [make_habit()])) == []

    def test_dangling_link_truncates(self, make_habit):
        a, b = _linked(make_habit, "a", "b")
        b = dataclasses.replace(b, next_habit_id="deleted")
        assert _ids(resolve_chain(a.id, [a, b])) == [b.id]

    def test_cycle_terminates(self, make_habit):
        a, b, c = _linked(make_habit, "a", "b", "c")
        c = dataclasses.replace(c, next_habit_id=a.id)

        assert _ids(resolve_chain(a.id, [a, b, c])) == [b.id, c.id]
        assert _ids(resolve_chain(b.id, [a, b, c])) == [c.id, a.id]

    def test_two_cycle(self, make_habit):
        a, b = _linked(make_habit, "a", "b")
        b = dataclasses.replace(b, next_habit_id=a.id)
        assert _ids(resolve_chain(a.id, [a, b])) == [b.id]

    def test_restartable(self, make_habit):
        a, b, c = _linked(make_habit, "a", "b", "c")
        collection = [a, b, c]
        assert list(resolve_chain(a.id, collection)) == list(resolve_chain(a.id, collection))

    def test_active_walk_steps_over_paused(self, make_habit):
        a, b, c = _linked(make_habit, "a", "b", "c")
        b = dataclasses.replace(b, paused=True)

        assert _ids(resolve_chain(a.id, [a, b, c])) == [b.id, c.id]
        assert _ids(resolve_chain(a.id, [a, b, c], include_paused=False)) == [c.id]


# =============================================================================
# Predecessor helpers
# =============================================================================


def test_index_by_id_first_wins(make_habit):
    a = make_habit("A", "a")
    duplicate = dataclasses.replace(a, tiny_behavior="other")
    assert index_by_id([a, duplicate])[a.id] is a


def test_incoming_edge_counts(make_habit):
    c = make_habit("C", "c")
    a = make_habit("A", "a", next_habit_id=c.id)
    b = make_habit("B", "b", next_habit_id=c.id)

    counts = incoming_edge_counts([a, b, c])

    assert counts[c.id] == 2
    assert counts[a.id] == 0


def test_predecessor_map_first_in_collection_wins(make_habit):
    c = make_habit("C", "c")
    a = make_habit("A", "a", next_habit_id=c.id)
    b = make_habit("B", "b", next_habit_id=c.id)

    assert predecessor_map([b, a, c]) == {c.id: b.id}
    assert find_predecessor(c.id, [a, b, c]) is a


class TestFindChainRoot:
    """Tests for find_chain_root."""

    def test_head_of_chain(self, make_habit):
        a, b, c = _linked(make_habit, "a", "b", "c")
        collection = [a, b, c]

        assert find_chain_root(c.id, collection) == a.id
        assert find_chain_root(b.id, collection) == a.id
        assert find_chain_root(a.id, collection) == a.id

    def test_unchained_habit_is_its_own_root(self, make_habit):
        a = make_habit()
        assert find_chain_root(a.id, [a]) == a.id

    def test_cycle_uses_first_member_in_collection(self, make_habit):
        a, b, c = _linked(make_habit, "a", "b", "c")
        c = dataclasses.replace(c, next_habit_id=a.id)
        collection = [b, c, a]

        roots = {find_chain_root(h.id, collection) for h in collection}

        assert roots == {b.id}

    def test_tail_leading_into_cycle(self, make_habit):
        # x -> a -> b -> a: x heads the chain
        a, b = _linked(make_habit, "a", "b")
        b = dataclasses.replace(b, next_habit_id=a.id)
        x = make_habit("X", "x", next_habit_id=a.id)
        collection = [x, a, b]

        assert find_chain_root(b.id, collection) == x.id
