"""
Habit state holder for Fuge.

HabitService owns the in-memory habit collection for one user and is the
only writer to it. Each change arrives as a HabitCommand:

1. ``reduce`` builds the new collection (validation errors propagate here,
   before anything changes);
2. the new collection replaces the old one immediately, so reads right
   after a dispatch see the new state;
3. the changed habits are written to the HabitStore, serialized per habit
   id and bounded by ``sync_timeout``;
4. if a write fails and the command's policy says so, the habits whose
   write failed are compensated, then a SyncFailure is reported on the
   outcome and to registered listeners.

Step 1-2 run synchronously on the event loop, so two dispatches can never
interleave half-applied state. Compensation only restores a habit while
the in-memory value is still the one this command wrote; a newer command
that already replaced it wins.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any

from fuge.core import lifecycle
from fuge.core.chains import resolve_chain
from fuge.core.clusters import AnchorNormalizer, Cluster, build_clusters, move_root, normalize_anchor
from fuge.core.commands import HabitCommand, Reduction, reduce
from fuge.lib.exceptions import InvalidInput, SyncFailure
from fuge.models.habit import Habit
from fuge.services.store import HabitStore

logger = logging.getLogger(__name__)

SyncFailureListener = Callable[[SyncFailure], None]

# Shown until the user adds an aspiration of their own
DEFAULT_ASPIRATIONS = ("Health", "Career", "Happiness")

ADD_ASPIRATION = "add_aspiration"


@dataclass(frozen=True)
class DispatchOutcome:
    """
    What a dispatched command produced.

    Attributes:
        command: The command that was applied
        result: Operation-specific value from the reducer
        sync_error: Set when the durable write failed
    """

    command: HabitCommand
    result: Any
    sync_error: SyncFailure | None = None

    @property
    def ok(self) -> bool:
        return self.sync_error is None

    @property
    def rolled_back(self) -> bool:
        return self.sync_error is not None and self.sync_error.rolled_back


class HabitService:
    """
    Serialized, optimistic state holder over a HabitStore.

    Args:
        store: Durable persistence collaborator.
        sync_timeout: Seconds to wait for each durable write.
        now: Clock used for check-ins and evolution timestamps.
    """

    def __init__(
        self,
        store: HabitStore,
        sync_timeout: float = 10.0,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._sync_timeout = sync_timeout
        self._now = now
        self._habits: list[Habit] = []
        self._write_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._listeners: list[SyncFailureListener] = []
        self._aspirations: list[str] = list(DEFAULT_ASPIRATIONS)

    # =========================================================================
    # Reads
    # =========================================================================

    @property
    def habits(self) -> tuple[Habit, ...]:
        """Snapshot of the current collection."""
        return tuple(self._habits)

    def get(self, habit_id: str) -> Habit | None:
        for habit in self._habits:
            if habit.id == habit_id:
                return habit
        return None

    def active_habits(self) -> list[Habit]:
        """Habits shown on the dashboard (not paused)."""
        return [habit for habit in self._habits if not habit.paused]

    def chain(self, root_id: str, include_paused: bool = True) -> list[Habit]:
        return list(resolve_chain(root_id, self._habits, include_paused=include_paused))

    def clusters(
        self,
        normalizer: AnchorNormalizer = normalize_anchor,
        include_paused: bool = True,
    ) -> list[Cluster]:
        return build_clusters(self._habits, normalizer=normalizer, include_paused=include_paused)

    # =========================================================================
    # Loading and listeners
    # =========================================================================

    async def load(self) -> list[Habit]:
        """Replace the in-memory collection with the store's contents."""
        self._habits = list(await self._store.fetch_all())
        stored_aspirations = await self._store.fetch_aspirations()
        self._aspirations = list(stored_aspirations or DEFAULT_ASPIRATIONS)
        logger.info("Loaded %d habits, %d aspirations", len(self._habits), len(self._aspirations))
        return list(self._habits)

    def add_sync_failure_listener(self, listener: SyncFailureListener) -> None:
        """Register a callback for failed writes (e.g. to show an error notice)."""
        self._listeners.append(listener)

    # =========================================================================
    # Aspirations
    # =========================================================================

    @property
    def aspirations(self) -> tuple[str, ...]:
        """Aspiration buckets in the order they were added."""
        return tuple(self._aspirations)

    async def add_aspiration(self, name: str) -> bool:
        """
        Add an aspiration bucket; a name already present is a no-op.

        The name shows up immediately. If saving fails it is removed again
        and a SyncFailure goes to the listeners.

        Returns:
            True when the aspiration was added and saved.

        Raises:
            InvalidInput: blank name.
        """
        name = (name or "").strip()
        if not name:
            raise InvalidInput("Aspiration name must not be empty", field="aspiration")
        if name in self._aspirations:
            return False

        self._aspirations.append(name)
        try:
            ok = await asyncio.wait_for(self._store.add_aspiration(name), timeout=self._sync_timeout)
        except TimeoutError:
            logger.error("Saving aspiration %r timed out after %.1fs", name, self._sync_timeout)
            ok = False
        if ok:
            return True

        if name in self._aspirations:
            self._aspirations.remove(name)
        self._notify(SyncFailure(command_type=ADD_ASPIRATION, habit_ids=[], rolled_back=True))
        return False

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch(self, command: HabitCommand) -> DispatchOutcome:
        """
        Apply a command optimistically and persist it.

        Raises:
            InvalidInput, InvalidChain, HabitNotFoundError: nothing changed.
        """
        before = list(self._habits)
        now = self._now() if self._now else None
        reduction = reduce(before, command, now=now)
        self._habits = list(reduction.habits)

        failed_ids = await self._persist(reduction)
        if not failed_ids:
            return DispatchOutcome(command=command, result=reduction.result)

        rolled_back = False
        if command.rollback_on_sync_failure:
            rolled_back = self._compensate(before, reduction, failed_ids)
        else:
            logger.warning(
                "Keeping %s for %s although it was not saved",
                command.command_type.value,
                ", ".join(failed_ids),
            )

        error = SyncFailure(
            command_type=command.command_type.value,
            habit_ids=failed_ids,
            rolled_back=rolled_back,
        )
        self._notify(error)
        return DispatchOutcome(command=command, result=reduction.result, sync_error=error)

    async def _persist(self, reduction: Reduction) -> list[str]:
        """Write changed/removed habits; return the ids whose write failed."""
        writes: list[tuple[str, Callable[[], Awaitable[bool]]]] = [
            (habit.id, partial(self._store.upsert, habit)) for habit in reduction.changed
        ]
        writes += [
            (habit_id, partial(self._store.delete, habit_id)) for habit_id in reduction.removed
        ]

        failed: list[str] = []
        for habit_id, write in writes:
            async with self._write_locks[habit_id]:
                try:
                    ok = await asyncio.wait_for(write(), timeout=self._sync_timeout)
                except TimeoutError:
                    logger.error("Write for habit %s timed out after %.1fs", habit_id, self._sync_timeout)
                    ok = False
                except Exception:  # Store adapters may raise anything; the outcome reports it
                    logger.exception("Write for habit %s raised", habit_id)
                    ok = False
            if not ok:
                failed.append(habit_id)
            elif habit_id in reduction.removed and self.get(habit_id) is None:
                self._write_locks.pop(habit_id, None)
        return failed

    def _compensate(
        self,
        before: Sequence[Habit],
        reduction: Reduction,
        failed_ids: Sequence[str],
    ) -> bool:
        """
        Undo this reduction's failed writes that no later command has superseded.

        Habits whose write succeeded keep their new version, so memory
        matches the store after a partial failure.

        Returns True when anything was restored.
        """
        restored = False
        failed = set(failed_ids)
        previous = {habit.id: (i, habit) for i, habit in enumerate(before)}

        for written in reduction.changed:
            if written.id not in failed:
                continue
            current_index = next(
                (i for i, habit in enumerate(self._habits) if habit.id == written.id), None
            )
            if current_index is None or self._habits[current_index] is not written:
                logger.info("Habit %s changed again since; not rolling back", written.id)
                continue
            if written.id in previous:
                self._habits[current_index] = previous[written.id][1]
            else:
                del self._habits[current_index]
            restored = True

        for habit_id in reduction.removed:
            if habit_id not in failed or habit_id not in previous or self.get(habit_id) is not None:
                continue
            index, habit = previous[habit_id]
            self._habits.insert(min(index, len(self._habits)), habit)
            restored = True
        return restored

    def _notify(self, error: SyncFailure) -> None:
        logger.error("%s", error)
        for listener in self._listeners:
            listener(error)

    # =========================================================================
    # Convenience wrappers
    # =========================================================================

    async def create_habit(self, anchor: str, behavior: str, **options: Any) -> DispatchOutcome:
        return await self.dispatch(HabitCommand.create(anchor, behavior, **options))

    async def check_in(self, habit_id: str) -> DispatchOutcome:
        """Result is a ``CheckInResult``."""
        return await self.dispatch(HabitCommand.check_in(habit_id))

    async def batch_check_in(self, habit_ids: Sequence[str]) -> DispatchOutcome:
        return await self.dispatch(HabitCommand.batch_check_in(habit_ids))

    async def record_failure(self, habit_id: str) -> DispatchOutcome:
        """Result is a ``FailureResult``."""
        return await self.dispatch(HabitCommand.record_failure(habit_id))

    async def evolve(
        self,
        habit_id: str,
        new_anchor: str,
        new_behavior: str,
        direction: str = lifecycle.EvolutionDirection.UPGRADE,
        note: str | None = None,
    ) -> DispatchOutcome:
        return await self.dispatch(
            HabitCommand.evolve(habit_id, new_anchor, new_behavior, direction, note)
        )

    async def accept_scaling(self, habit_id: str, new_behavior: str) -> DispatchOutcome:
        """Apply an accepted scaling-back suggestion, keeping the anchor."""
        habit = self.get(habit_id)
        anchor = habit.anchor if habit is not None else ""
        return await self.evolve(
            habit_id, anchor, new_behavior, lifecycle.EvolutionDirection.DOWNGRADE
        )

    async def set_chain(self, habit_id: str, next_habit_id: str | None) -> DispatchOutcome:
        return await self.dispatch(HabitCommand.set_chain(habit_id, next_habit_id))

    async def pause(self, habit_id: str, paused: bool = True) -> DispatchOutcome:
        return await self.dispatch(HabitCommand.pause(habit_id, paused))

    async def update(self, habit_id: str, patch: dict[str, Any]) -> DispatchOutcome:
        return await self.dispatch(HabitCommand.update(habit_id, patch))

    async def delete(self, habit_id: str) -> DispatchOutcome:
        """Delete a habit. Predecessors keep their (now dangling) links."""
        return await self.dispatch(HabitCommand.delete(habit_id))

    async def reorder_roots(self, root_ids: Sequence[str]) -> DispatchOutcome:
        return await self.dispatch(HabitCommand.reorder(root_ids))

    async def move_root(self, cluster: Cluster, habit_id: str, direction: str) -> DispatchOutcome | None:
        """Move a cluster root up or down; None when the move is a no-op."""
        root_ids = move_root(cluster, habit_id, direction)
        if root_ids is None:
            return None
        return await self.reorder_roots(root_ids)

    def successor_prompt(self, outcome: DispatchOutcome) -> Habit | None:
        """The habit to prompt after a check-in outcome, if any."""
        return lifecycle.successor_prompt(outcome.result, self._habits)


__all__ = ["DEFAULT_ASPIRATIONS", "DispatchOutcome", "HabitService", "SyncFailureListener"]
