"""
Cluster aggregator for Fuge.

Groups habits that hang off the same triggering moment. Habits sharing an
anchor reinforce each other, so the "group by anchor" view shows one card
per cluster with a health score.

Grouping key: the normalized anchor of each habit's chain root. Later
steps of a chain usually carry anchors like "after step 1"; keying them by
their root keeps the whole chain in the root's cluster.

Anchor normalization is a fixed, best-effort text fold (see
``normalize_anchor``). Two different anchors that fold to the same key are
merged; that is accepted, not a bug. Pass another ``AnchorNormalizer`` to
``build_clusters`` to change the rules.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from fuge.core.chains import find_chain_root, predecessor_map, resolve_chain
from fuge.models.habit import Habit

AnchorNormalizer = Callable[[str], str]

UNCATEGORIZED_KEY = "uncategorized"

# Connective particles ("when", "at", "every", "after", "while", "finished")
_CJK_PARTICLES = re.compile(r"[当在每后时完]")
# Self-referential pronouns ("I", "myself")
_CJK_PRONOUNS = re.compile(r"我|自己")
_EN_STOPWORDS = re.compile(
    r"\b(?:after|when|once|every|each|then|i|me|my|myself)\b",
    re.IGNORECASE,
)
_WHITESPACE = re.compile(r"\s+")

# Health score caps
_SIZE_POINTS_PER_HABIT = 20
_SIZE_CAP = 40
_COMPLETION_POINTS = 2
_COMPLETION_CAP = 30
_CHAIN_BONUS = 30


def normalize_anchor(anchor: str) -> str:
    """
    Fold an anchor text to a grouping key.

    Rules, in order: drop the particles 当 在 每 后 时 完, drop the pronouns
    我 and 自己, drop the English words after/when/once/every/each/then and
    i/me/my/myself, lower-case, collapse whitespace.

    >>> normalize_anchor("当我刷完牙后")
    '刷牙'
    >>> normalize_anchor("After I brush my teeth")
    'brush teeth'
    """
    key = _CJK_PARTICLES.sub("", anchor)
    key = _CJK_PRONOUNS.sub("", key)
    key = _EN_STOPWORDS.sub(" ", key)
    return _WHITESPACE.sub(" ", key).strip().lower()


def cluster_health(habit_count: int, total_completions: int, chained_count: int) -> int:
    """
    Score a cluster from 0 to 100.

    Size is worth up to 40, completion volume up to 30, and having at least
    one chain a flat 30; each part is capped on its own.
    """
    size_score = min(habit_count * _SIZE_POINTS_PER_HABIT, _SIZE_CAP)
    completion_score = min(total_completions * _COMPLETION_POINTS, _COMPLETION_CAP)
    chain_score = _CHAIN_BONUS if chained_count > 0 else 0
    return size_score + completion_score + chain_score


@dataclass
class Cluster:
    """
    Habits sharing a normalized root anchor.

    Attributes:
        key: Normalized anchor of the chain roots
        display_anchor: Literal anchor text of the first root
        habits: Members, each root followed by its chain, then leftovers
        total_completions: Sum of completed_count over members
        chained_count: Members with a successor link
    """

    key: str
    display_anchor: str
    habits: list[Habit] = field(default_factory=list)
    total_completions: int = 0
    chained_count: int = 0

    @property
    def health_score(self) -> int:
        return cluster_health(len(self.habits), self.total_completions, self.chained_count)

    @property
    def habit_ids(self) -> list[str]:
        return [habit.id for habit in self.habits]


def _order_members(members: list[Habit], positions: dict[str, int]) -> tuple[list[Habit], list[Habit]]:
    """
    Order cluster members root-first-then-chain.

    Returns (ordered members, local roots).
    """
    member_ids = {habit.id for habit in members}
    has_local_parent = {
        habit.next_habit_id
        for habit in members
        if habit.next_habit_id in member_ids and habit.next_habit_id != habit.id
    }
    roots = [habit for habit in members if habit.id not in has_local_parent]
    roots.sort(key=lambda habit: (habit.sort_order, positions[habit.id]))

    ordered: list[Habit] = []
    placed: set[str] = set()
    for root in roots:
        if root.id in placed:
            continue
        placed.add(root.id)
        ordered.append(root)
        for successor in resolve_chain(root.id, members):
            if successor.id in placed:
                break
            placed.add(successor.id)
            ordered.append(successor)

    ordered.extend(habit for habit in members if habit.id not in placed)
    return ordered, roots


def build_clusters(
    collection: Sequence[Habit],
    normalizer: AnchorNormalizer = normalize_anchor,
    include_paused: bool = True,
) -> list[Cluster]:
    """
    Partition habits into display clusters, largest first.

    Chain roots are computed over the whole collection, so a paused head
    still decides where its chain lands even when ``include_paused=False``
    leaves it out of the listing.
    """
    positions = {habit.id: i for i, habit in enumerate(collection)}
    parents = predecessor_map(collection)
    by_id = {habit.id: habit for habit in collection}

    groups: dict[str, list[Habit]] = {}
    for habit in collection:
        if not include_paused and habit.paused:
            continue
        root = by_id.get(find_chain_root(habit.id, collection, parents), habit)
        key = normalizer(root.anchor) or UNCATEGORIZED_KEY
        groups.setdefault(key, []).append(habit)

    clusters: list[Cluster] = []
    for key, members in groups.items():
        ordered, roots = _order_members(members, positions)
        display_anchor = roots[0].anchor if roots else members[0].anchor
        clusters.append(
            Cluster(
                key=key,
                display_anchor=display_anchor,
                habits=ordered,
                total_completions=sum(habit.completed_count for habit in members),
                chained_count=sum(1 for habit in members if habit.next_habit_id),
            )
        )

    clusters.sort(key=lambda cluster: len(cluster.habits), reverse=True)
    return clusters


# =============================================================================
# Root reordering
# =============================================================================

class MoveDirection(StrEnum):
    UP = "up"
    DOWN = "down"


def cluster_roots(cluster: Cluster) -> list[Habit]:
    """Members that do not directly follow their predecessor in the listing."""
    roots: list[Habit] = []
    for i, habit in enumerate(cluster.habits):
        follows_previous = i > 0 and cluster.habits[i - 1].next_habit_id == habit.id
        if not follows_previous:
            roots.append(habit)
    return roots


def move_root(cluster: Cluster, habit_id: str, direction: MoveDirection | str) -> list[str] | None:
    """
    Swap a root with its neighbour among the cluster's roots.

    Chained children are not reordered; they stay right after their parent.

    Returns:
        The new ordered list of root ids, or None when ``habit_id`` is not a
        root or the move would go past either end.
    """
    direction = MoveDirection(direction)
    root_ids = [habit.id for habit in cluster_roots(cluster)]
    if habit_id not in root_ids:
        return None

    i = root_ids.index(habit_id)
    j = i - 1 if direction == MoveDirection.UP else i + 1
    if not 0 <= j < len(root_ids):
        return None
    root_ids[i], root_ids[j] = root_ids[j], root_ids[i]
    return root_ids


__all__ = [
    "AnchorNormalizer",
    "Cluster",
    "MoveDirection",
    "UNCATEGORIZED_KEY",
    "build_clusters",
    "cluster_health",
    "cluster_roots",
    "move_root",
    "normalize_anchor",
]
