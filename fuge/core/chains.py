"""
Chain resolver for Fuge.

Habits link to at most one successor through ``next_habit_id``. These
helpers walk those links in both directions. Every walk carries a visited
set: ``set_chain`` refuses cycles at write time, but a collection may still
hold one (a bad import, a race between two devices), and a rendering pass
must never loop on it. Links to deleted habits simply end the walk.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator, Sequence

from fuge.models.habit import Habit

logger = logging.getLogger(__name__)


def index_by_id(collection: Sequence[Habit]) -> dict[str, Habit]:
    """Map habit id to habit; the first occurrence wins on duplicate ids."""
    index: dict[str, Habit] = {}
    for habit in collection:
        index.setdefault(habit.id, habit)
    return index


def resolve_chain(
    root_id: str,
    collection: Sequence[Habit],
    include_paused: bool = True,
) -> Iterator[Habit]:
    """
    Yield the chained successors of ``root_id``, root excluded.

    The walk stops at a habit without successor, at a successor id that is
    not in the collection, or before revisiting an id (the root included).
    With ``include_paused=False`` paused habits are stepped over: the walk
    continues through them but does not yield them.

    Calling it again restarts the walk from scratch.
    """
    index = index_by_id(collection)
    root = index.get(root_id)
    if root is None:
        return

    visited = {root_id}
    next_id = root.next_habit_id
    while next_id is not None:
        if next_id in visited:
            logger.debug("Chain from %s revisits %s; truncating", root_id, next_id)
            return
        successor = index.get(next_id)
        if successor is None:
            logger.debug("Chain from %s hits missing habit %s; truncating", root_id, next_id)
            return
        visited.add(next_id)
        if include_paused or not successor.paused:
            yield successor
        next_id = successor.next_habit_id


def incoming_edge_counts(collection: Sequence[Habit]) -> Counter[str]:
    """Count, per habit id, how many habits name it as their successor."""
    return Counter(habit.next_habit_id for habit in collection if habit.next_habit_id)


def predecessor_map(collection: Sequence[Habit]) -> dict[str, str]:
    """
    Map successor id to predecessor id.

    When several habits point at the same successor, the one that comes
    first in collection order is the predecessor.
    """
    parents: dict[str, str] = {}
    for habit in collection:
        if habit.next_habit_id and habit.next_habit_id not in parents:
            parents[habit.next_habit_id] = habit.id
    return parents


def find_predecessor(habit_id: str, collection: Sequence[Habit]) -> Habit | None:
    """First habit in collection order whose successor is ``habit_id``."""
    for habit in collection:
        if habit.next_habit_id == habit_id:
            return habit
    return None


def find_chain_root(
    habit_id: str,
    collection: Sequence[Habit],
    parents: dict[str, str] | None = None,
) -> str:
    """
    Walk predecessor links back to the head of ``habit_id``'s chain.

    If the walk runs into a cycle there is no head; the cycle member that
    appears first in the collection stands in for it, so every member of
    the cycle resolves to the same root.

    Args:
        habit_id: Habit to start from.
        collection: The full habit collection.
        parents: Precomputed ``predecessor_map`` (avoids rescanning in loops).
    """
    if parents is None:
        parents = predecessor_map(collection)

    path: list[str] = []
    seen: set[str] = set()
    current = habit_id
    while current in parents:
        if current in seen:
            position = {habit.id: i for i, habit in enumerate(collection)}
            cycle = path[path.index(current):]
            return min(cycle, key=lambda member: position.get(member, len(position)))
        seen.add(current)
        path.append(current)
        current = parents[current]
    return current


__all__ = [
    "find_chain_root",
    "find_predecessor",
    "incoming_edge_counts",
    "index_by_id",
    "predecessor_map",
    "resolve_chain",
]
