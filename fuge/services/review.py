"""
Weekly review and identity milestones.

The weekly review looks back seven days and splits active habits into
top performers (celebrate) and "zombies" (prune: pause, shrink or delete).
Identity badges turn a completion count into a label such as "Reader,
level 2" once the first milestone is reached.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from fuge.models.habit import Habit, in_zone_of, parse_timestamp

REVIEW_WINDOW = timedelta(days=7)
TOP_PERFORMER_LIMIT = 3
ZOMBIE_RATE_BELOW = 20

# Completions needed for each badge level
MILESTONES: dict[int, int] = {1: 20, 2: 50, 3: 100}
LEVEL_NAMES: dict[int, str] = {1: "Beginner", 2: "Committed", 3: "Master"}

# Keyword -> (emoji, identity). First match in this order wins.
IDENTITY_MAP: dict[str, tuple[str, str]] = {
    # Exercise
    "跑步": ("🏃", "Runner"),
    "跑": ("🏃", "Runner"),
    "run": ("🏃", "Runner"),
    "健身": ("💪", "Athlete"),
    "俯卧撑": ("💪", "Athlete"),
    "锻炼": ("💪", "Athlete"),
    "pushup": ("💪", "Athlete"),
    "squat": ("💪", "Athlete"),
    "瑜伽": ("🧘", "Yogi"),
    "yoga": ("🧘", "Yogi"),
    # Reading and learning
    "阅读": ("📚", "Reader"),
    "读书": ("📚", "Reader"),
    "看书": ("📚", "Reader"),
    "read": ("📚", "Reader"),
    "学习": ("🎓", "Learner"),
    "学": ("🎓", "Learner"),
    "study": ("🎓", "Learner"),
    # Body and mind
    "冥想": ("🧘", "Meditator"),
    "打坐": ("🧘", "Meditator"),
    "meditat": ("🧘", "Meditator"),
    "深呼吸": ("🌬️", "Breather"),
    "breath": ("🌬️", "Breather"),
    "喝水": ("💧", "Hydrator"),
    "水": ("💧", "Hydrator"),
    "water": ("💧", "Hydrator"),
    # Writing and creating
    "写作": ("✍️", "Writer"),
    "写": ("✍️", "Writer"),
    "writ": ("✍️", "Writer"),
    "日记": ("📔", "Journaler"),
    "journal": ("📔", "Journaler"),
    "画": ("🎨", "Artist"),
    "draw": ("🎨", "Artist"),
    "创作": ("🎨", "Creator"),
    # Order and planning
    "整理": ("🧹", "Organizer"),
    "清洁": ("🧹", "Organizer"),
    "tidy": ("🧹", "Organizer"),
    "计划": ("📋", "Planner"),
    "plan": ("📋", "Planner"),
    "早起": ("🌅", "Early Bird"),
    "起床": ("🌅", "Early Bird"),
    # Connection
    "感谢": ("🙏", "Grateful"),
    "thank": ("🙏", "Grateful"),
    "联系": ("💬", "Connector"),
    "问候": ("👋", "Connector"),
}
FALLBACK_IDENTITY = ("⭐", "Achiever")


# =============================================================================
# Weekly review
# =============================================================================

def weekly_completion_rate(habit: Habit, now: datetime) -> int:
    """
    Percent of the last seven days with at least one completion.

    Days are counted as distinct calendar dates, in ``now``'s timezone, of
    history entries newer than ``now - 7 days``; capped at 100. A naive
    ``now`` is taken as UTC.
    """
    now = parse_timestamp(now)
    since = now - REVIEW_WINDOW
    local = (in_zone_of(timestamp, now) for timestamp in habit.history)
    days = {timestamp.date() for timestamp in local if timestamp >= since}
    return min(100, round(len(days) / 7 * 100))


@dataclass(frozen=True)
class HabitRate:
    habit: Habit
    rate: int


@dataclass(frozen=True)
class WeeklyReview:
    """
    Attributes:
        stats: Every active habit with its rate, best first
        top_performers: Up to three habits with a rate above 0
        zombies: Habits below 20%, candidates for pruning
    """

    stats: list[HabitRate] = field(default_factory=list)
    top_performers: list[HabitRate] = field(default_factory=list)
    zombies: list[HabitRate] = field(default_factory=list)


def weekly_review(collection: Sequence[Habit], now: datetime) -> WeeklyReview:
    stats = [
        HabitRate(habit=habit, rate=weekly_completion_rate(habit, now))
        for habit in collection
        if not habit.paused
    ]
    stats.sort(key=lambda item: item.rate, reverse=True)
    return WeeklyReview(
        stats=stats,
        top_performers=[item for item in stats if item.rate > 0][:TOP_PERFORMER_LIMIT],
        zombies=[item for item in stats if item.rate < ZOMBIE_RATE_BELOW],
    )


# =============================================================================
# Identity badges
# =============================================================================

@dataclass(frozen=True)
class IdentityBadge:
    emoji: str
    name: str
    level: int
    level_name: str


@dataclass(frozen=True)
class MilestoneProgress:
    current: int
    next: int
    percentage: int


def badge_level(completed_count: int) -> int:
    """Highest milestone level reached; 0 below the first."""
    reached = [level for level, threshold in MILESTONES.items() if completed_count >= threshold]
    return max(reached, default=0)


def identity_badge(behavior: str, completed_count: int) -> IdentityBadge | None:
    """Badge for a behavior, or None before the first milestone."""
    level = badge_level(completed_count)
    if level == 0:
        return None

    lowered = behavior.lower()
    emoji, name = next(
        (identity for keyword, identity in IDENTITY_MAP.items() if keyword in lowered),
        FALLBACK_IDENTITY,
    )
    return IdentityBadge(emoji=emoji, name=name, level=level, level_name=LEVEL_NAMES[level])


def milestone_progress(completed_count: int) -> MilestoneProgress | None:
    """Progress from the last milestone to the next; None at the top level."""
    level = badge_level(completed_count)
    if level == max(MILESTONES):
        return None
    current = MILESTONES[level] if level else 0
    upcoming = MILESTONES[level + 1]
    percentage = round((completed_count - current) / (upcoming - current) * 100)
    return MilestoneProgress(current=current, next=upcoming, percentage=percentage)


__all__ = [
    "HabitRate",
    "IdentityBadge",
    "MilestoneProgress",
    "WeeklyReview",
    "identity_badge",
    "milestone_progress",
    "weekly_completion_rate",
    "weekly_review",
]
