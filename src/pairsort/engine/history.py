"""
Undo history: snapshots of cache state taken after each new oracle answer.

Each snapshot records the cache and counters as they were *before* the
answer that triggered it, so popping one steps back exactly one decision.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterator, List, Optional

from .cache import ComparisonCache

__all__ = ["StateSnapshot", "HistoryStack"]


@dataclass(frozen=True)
class StateSnapshot:
    cache: ComparisonCache
    comparison_count: int
    total_battles: int
    sorted_no: int

    @classmethod
    def capture(
        cls,
        cache: ComparisonCache,
        comparison_count: int,
        total_battles: int,
        sorted_no: int,
    ) -> "StateSnapshot":
        # copy so later cache writes cannot leak into the snapshot
        return cls(cache.copy(), comparison_count, total_battles, sorted_no)

    def without_item(self, item_id: str) -> "StateSnapshot":
        pruned = self.cache.copy()
        if pruned.remove_all_referencing(item_id) == 0:
            return self
        return replace(self, cache=pruned, comparison_count=len(pruned))


class HistoryStack:
    """
    Append-only during forward progress, pop-only during undo.

    `limit` keeps only the newest N snapshots (None means unbounded).
    """

    def __init__(self, limit: Optional[int] = None) -> None:
        if limit is not None and limit < 1:
            raise ValueError("history limit must be a positive int or None")
        self.limit = limit
        self._stack: List[StateSnapshot] = []

    def push(self, snapshot: StateSnapshot) -> None:
        self._stack.append(snapshot)
        self._trim()

    def set_limit(self, limit: Optional[int]) -> None:
        if limit is not None and limit < 1:
            raise ValueError("history limit must be a positive int or None")
        self.limit = limit
        self._trim()

    def _trim(self) -> None:
        if self.limit is not None and len(self._stack) > self.limit:
            del self._stack[: len(self._stack) - self.limit]

    def pop(self) -> Optional[StateSnapshot]:
        if not self._stack:
            return None
        return self._stack.pop()

    def peek(self) -> Optional[StateSnapshot]:
        return self._stack[-1] if self._stack else None

    def clear(self) -> None:
        self._stack.clear()

    def purge_item(self, item_id: str) -> None:
        self._stack = [snap.without_item(item_id) for snap in self._stack]

    def __len__(self) -> int:
        return len(self._stack)

    def __bool__(self) -> bool:
        return bool(self._stack)

    def __iter__(self) -> Iterator[StateSnapshot]:
        """Oldest first."""
        return iter(self._stack)
