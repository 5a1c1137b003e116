"""
Interactive merge sort driven by an external oracle.

`InteractiveMergeSort.sort(items, oracle)` is one long coroutine. Between
oracle calls the merge sort runs without yielding; on every cache miss it
awaits the oracle, records the answer (undo snapshot first, then cache
write, counter, progress callback, save callback) and resumes.

States: idle -> sorting -> (suspended <-> sorting)* -> complete.
Undo, reset and item removal supersede a running sort: the pending oracle
call is cancelled, the superseded `sort()` returns None, and the restart
callback fires so the caller can call `sort()` again. Because every
answer stays cached, the fresh traversal only suspends on pairs that are
still unknown.

Callback contract:
    on_progress(completed_comparisons, total_estimate)
        `total_estimate` is always the raw battle estimate, never a
        percentage; see `estimate.progress_percent` for display.
    on_save()
        Pull state via the accessors and persist it. Exceptions are
        logged and swallowed so a failing save never blocks progress.
    on_restart()
        Call `sort()` again from scratch.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set, Union

import numpy as np

from ..errors import InvalidChoiceError
from ..items import Item, coerce_items
from .cache import ComparisonCache
from .estimate import DAMPING, estimate_total_battles
from .history import HistoryStack, StateSnapshot
from .stepper import MergeSortStepper, NeedComparison

__all__ = ["Oracle", "SorterState", "InteractiveMergeSort"]

log = logging.getLogger(__name__)

Oracle = Callable[[Item, Item], Union[Awaitable[str], str]]
ProgressCallback = Callable[[int, int], None]
Callback = Callable[[], None]


@dataclass
class SorterState:
    """Everything the engine owns and mutates; also what gets persisted."""

    cache: ComparisonCache = field(default_factory=ComparisonCache)
    history: HistoryStack = field(default_factory=HistoryStack)
    comparison_count: int = 0
    total_battles: int = 0
    sorted_no: int = 0
    shuffled_ids: List[str] = field(default_factory=list)
    removed_ids: Set[str] = field(default_factory=set)


class _PendingComparison:
    def __init__(self, request: NeedComparison, task: "asyncio.Future[str]") -> None:
        self.request = request
        self.task = task
        self.abandoned = False
        self.settled_with: Optional[str] = None

    def abandon(self, winner_id: Optional[str] = None) -> None:
        self.abandoned = True
        self.settled_with = winner_id
        self.task.cancel()


class InteractiveMergeSort:
    def __init__(
        self,
        state: Optional[SorterState] = None,
        *,
        on_progress: Optional[ProgressCallback] = None,
        on_save: Optional[Callback] = None,
        on_restart: Optional[Callback] = None,
        history_limit: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        damping: float = DAMPING,
    ) -> None:
        self._state = state if state is not None else SorterState()
        if history_limit is not None:
            self._state.history.set_limit(history_limit)
        self._on_progress = on_progress
        self._on_save = on_save
        self._on_restart = on_restart
        self._rng = rng
        self._damping = damping

        self._generation = 0
        self._sorting = False
        self._complete = False
        self._pending: Optional[_PendingComparison] = None

    # ------------------------- accessors ------------------------- #

    @property
    def state(self) -> SorterState:
        return self._state

    @property
    def cache(self) -> ComparisonCache:
        return self._state.cache

    @property
    def history(self) -> HistoryStack:
        return self._state.history

    @property
    def comparison_count(self) -> int:
        return self._state.comparison_count

    @property
    def total_battles(self) -> int:
        return self._state.total_battles

    @property
    def sorted_no(self) -> int:
        return self._state.sorted_no

    @property
    def shuffled_ids(self) -> List[str]:
        return list(self._state.shuffled_ids)

    @property
    def removed_ids(self) -> Set[str]:
        return set(self._state.removed_ids)

    @property
    def pending(self) -> Optional[NeedComparison]:
        return self._pending.request if self._pending is not None else None

    @property
    def is_sorting(self) -> bool:
        return self._sorting

    @property
    def status(self) -> str:
        if self._pending is not None:
            return "suspended"
        if self._sorting:
            return "sorting"
        if self._complete:
            return "complete"
        return "idle"

    def can_undo(self) -> bool:
        return len(self._state.history) > 0

    # ------------------------- sorting ------------------------- #

    async def sort(self, items: Iterable[Any], oracle: Oracle) -> Optional[List[Item]]:
        """
        Rank `items` best-first, asking `oracle` for every unknown pair.

        Returns
        -------
        list[Item] | None
            The ordered items, or None if a sort was already running
            (re-entrant call) or this sort was superseded by undo, reset
            or removal before it finished.

        Raises
        ------
        InvalidChoiceError
            If the oracle answers with an id outside the presented pair.
        Exception
            Whatever the oracle raises is propagated unchanged.
        """
        if self._sorting:
            log.debug("sort() already running; ignoring re-entrant call")
            return None

        self._sorting = True
        self._complete = False
        generation = self._generation
        try:
            st = self._state
            working = self._working_order(coerce_items(items))
            st.total_battles = estimate_total_battles(working, st.cache, self._damping)
            st.sorted_no = 0
            log.debug("sorting %d items, estimated %d battles", len(working), st.total_battles)
            self._emit_progress()

            stepper = MergeSortStepper(working, st.cache)
            request = stepper.start()
            while request is not None:
                st.sorted_no = stepper.placed
                winner_id = await self._ask(request, oracle)
                if generation != self._generation:
                    log.debug("sort superseded while waiting on %s", request.key)
                    return None
                self._record(request, winner_id)
                request = stepper.resume(winner_id)

            st.sorted_no = stepper.placed
            self._complete = True
            return stepper.result
        finally:
            if generation == self._generation:
                self._sorting = False
                self._pending = None

    def _working_order(self, items: List[Item]) -> List[Item]:
        st = self._state
        working = [item for item in items if item.id not in st.removed_ids]
        if not st.shuffled_ids and self._rng is not None and len(working) > 1:
            order = self._rng.permutation(len(working))
            st.shuffled_ids = [working[int(k)].id for k in order]
            self._emit_save()
        if not st.shuffled_ids:
            return working

        by_id = {item.id: item for item in working}
        ordered = [by_id.pop(i) for i in st.shuffled_ids if i in by_id]
        # items unknown to the stored order keep their given order at the end
        ordered.extend(item for item in working if item.id in by_id)
        return ordered

    async def _ask(self, request: NeedComparison, oracle: Oracle) -> Optional[str]:
        answer = oracle(request.item_a, request.item_b)
        if not inspect.isawaitable(answer):
            winner_id = answer
        else:
            pending = _PendingComparison(request, asyncio.ensure_future(answer))
            self._pending = pending
            try:
                winner_id = await pending.task
            except asyncio.CancelledError:
                if not pending.abandoned:
                    raise
                return pending.settled_with
            finally:
                if self._pending is pending:
                    self._pending = None

        if winner_id not in request.ids:
            raise InvalidChoiceError(winner_id, *request.ids)
        return winner_id

    def _record(self, request: NeedComparison, winner_id: str) -> None:
        st = self._state
        st.history.push(
            StateSnapshot.capture(st.cache, st.comparison_count, st.total_battles, st.sorted_no)
        )
        st.cache.set(request.item_a, request.item_b, winner_id)
        st.comparison_count += 1
        self._emit_progress()
        self._emit_save()

    # ------------------------- undo / reset / removal ------------------------- #

    def undo(self) -> bool:
        """
        Step back one answer. Returns False (and changes nothing) when
        there is nothing to undo. The estimate is not rewound.
        """
        snapshot = self._state.history.pop()
        if snapshot is None:
            return False

        self._supersede()
        st = self._state
        st.cache = snapshot.cache.copy()
        st.comparison_count = snapshot.comparison_count
        st.sorted_no = snapshot.sorted_no
        log.debug("undo: back to %d comparisons", st.comparison_count)

        self._emit_progress()
        self._emit_save()
        self._emit_restart()
        return True

    def reset(self) -> None:
        """Forget every answer, removal and shuffle, then request a restart."""
        self._supersede()
        st = self._state
        st.cache.clear()
        st.history.clear()
        st.comparison_count = 0
        st.total_battles = 0
        st.sorted_no = 0
        st.shuffled_ids = []
        st.removed_ids = set()

        self._emit_progress()
        self._emit_save()
        self._emit_restart()

    def remove_item(self, item_id: Union[Item, str]) -> None:
        """
        Withdraw an item from the working set.

        Every cached answer and history snapshot entry referencing the item
        is purged. If the item is part of the comparison currently awaiting
        the oracle, that comparison is resolved in favour of the other item
        (without being recorded) and the running sort is superseded.
        """
        target = item_id.id if isinstance(item_id, Item) else str(item_id)
        st = self._state
        st.removed_ids.add(target)
        dropped = st.cache.remove_all_referencing(target)
        st.history.purge_item(target)
        st.comparison_count = len(st.cache)
        st.shuffled_ids = [i for i in st.shuffled_ids if i != target]
        log.debug("removed %r; dropped %d cached answers", target, dropped)

        pending = self._pending
        if pending is not None and target in pending.request.ids:
            self._supersede(settle_with=pending.request.other(target).id)
        else:
            self._supersede()

        self._emit_progress()
        self._emit_save()
        self._emit_restart()

    def _supersede(self, settle_with: Optional[str] = None) -> None:
        self._generation += 1
        self._sorting = False
        self._complete = False
        pending, self._pending = self._pending, None
        if pending is not None:
            pending.abandon(settle_with)

    # ------------------------- callbacks ------------------------- #

    def _emit_progress(self) -> None:
        if self._on_progress is not None:
            self._on_progress(self._state.comparison_count, self._state.total_battles)

    def _emit_save(self) -> None:
        if self._on_save is None:
            return
        try:
            self._on_save()
        except Exception:
            log.warning("save callback failed; continuing without persisting", exc_info=True)

    def _emit_restart(self) -> None:
        if self._on_restart is not None:
            self._on_restart()
