"""
Caller-side glue around the engine: restore, persist, restart.

A `SortSession` does what a front end does around `InteractiveMergeSort`:

1. Load any saved progress for (sorter id, filter selection) from a
   key-value store; unreadable state just means a fresh start.
2. Build the engine with save/restart/progress callbacks wired up.
3. `run(oracle)` calls `sort()` in a loop, starting it again whenever undo,
   reset or removal superseded the previous call, until it completes.
4. On completion, the stored progress is cleared.

Undo/reset/remove may be called from another task while `run()` is
parked on the oracle.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Tuple

import numpy as np

from .engine.estimate import progress_percent
from .engine.sorter import InteractiveMergeSort, Oracle
from .items import Item, coerce_items
from .persist.store import KeyValueStore, MemoryStore, clear_state, load_state, progress_key, save_state

__all__ = ["SortSession"]

log = logging.getLogger(__name__)


class SortSession:
    def __init__(
        self,
        items: Iterable[Any],
        store: Optional[KeyValueStore] = None,
        sorter_id: str = "default",
        filter_slugs: Iterable[str] = (),
        *,
        rng: Optional[np.random.Generator] = None,
        history_limit: Optional[int] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        self.items: List[Item] = coerce_items(items)
        self.store: KeyValueStore = store if store is not None else MemoryStore()
        self.key = progress_key(sorter_id, filter_slugs)
        self.result: Optional[List[Item]] = None
        self.completed = 0
        self.total = 0
        self._on_progress = on_progress
        self._restart_requested = False
        self._running = False

        state = load_state(self.store, self.key, self.items)
        self.resumed = state is not None
        if state is not None:
            self.completed = state.comparison_count
            self.total = state.total_battles
            log.info("resuming %s with %d saved answers", self.key, len(state.cache))

        self.engine = InteractiveMergeSort(
            state,
            on_progress=self._handle_progress,
            on_save=self._save,
            on_restart=self._request_restart,
            history_limit=history_limit,
            rng=rng,
        )

    # ------------------------- callbacks ------------------------- #

    def _handle_progress(self, completed: int, total: int) -> None:
        self.completed = completed
        self.total = total
        if self._on_progress is not None:
            self._on_progress(completed, total)

    def _save(self) -> None:
        save_state(self.store, self.key, self.items, self.engine.state)

    def _request_restart(self) -> None:
        self._restart_requested = True
        self.result = None

    # ------------------------- driving ------------------------- #

    async def run(self, oracle: Oracle) -> Optional[List[Item]]:
        """
        Sort to completion, restarting after every undo/reset/removal.

        Returns
        -------
        list[Item] | None
            The ranking, or None (doing nothing) if another `run()` is
            already driving this session.

        Raises
        ------
        RuntimeError
            If the engine is being sorted by something other than this
            session.
        """
        if self._running:
            log.debug("run() already active for %s; ignoring", self.key)
            return None

        self._running = True
        try:
            while True:
                self._restart_requested = False
                result = await self.engine.sort(self.items, oracle)
                if result is not None:
                    break
                if not self._restart_requested:
                    raise RuntimeError("the engine is already being sorted elsewhere")
                log.debug("restarting sort for %s", self.key)
        finally:
            self._running = False

        self.result = result
        clear_state(self.store, self.key)
        return result

    @property
    def progress(self) -> Tuple[int, int, int]:
        """(completed comparisons, battle estimate, display percent)."""
        done = self.result is not None
        return self.completed, self.total, progress_percent(self.completed, self.total, done)

    def can_undo(self) -> bool:
        return self.engine.can_undo()

    def undo(self) -> bool:
        return self.engine.undo()

    def reset(self) -> None:
        self.engine.reset()

    def remove_item(self, item_id: str) -> None:
        self.engine.remove_item(item_id)
