"""
Suspend/resume merge sort as an explicit state machine.

`merge_sort_steps` is a generator that runs a classic top-down merge sort
and yields a `NeedComparison` request whenever the merge step meets a pair
whose outcome is not in the cache. The driver answers by sending the
winner id back in. Cache hits never suspend. The generator reads the cache
but never writes it; recording answers is the driver's job.

`MergeSortStepper` wraps the generator with `start()` / `resume()` and
exposes the pending request, completion flag and result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generator, List, Optional, Sequence, Tuple

from ..errors import InvalidChoiceError
from ..items import Item, comparison_key
from .cache import ComparisonCache

__all__ = ["NeedComparison", "merge_sort_steps", "MergeSortStepper"]

Steps = Generator["NeedComparison", str, List[Item]]


@dataclass(frozen=True)
class NeedComparison:
    item_a: Item
    item_b: Item

    @property
    def ids(self) -> Tuple[str, str]:
        return self.item_a.id, self.item_b.id

    @property
    def key(self) -> str:
        return comparison_key(self.item_a, self.item_b)

    def other(self, item_id: str) -> Item:
        """The item of the pair that is not `item_id`."""
        if item_id == self.item_a.id:
            return self.item_b
        if item_id == self.item_b.id:
            return self.item_a
        raise ValueError(f"{item_id!r} is not part of {self.ids}")


def merge_sort_steps(
    items: Sequence[Item],
    cache: ComparisonCache,
    on_place: Optional[Callable[[], None]] = None,
) -> Steps:
    """
    Sort `items` best-first, suspending on every unknown comparison.

    Lists of length <= 1 return immediately. Splits at floor(n/2).
    `on_place` is called once per item placed into a merged run.
    """
    items = list(items)
    if len(items) <= 1:
        return items
    mid = len(items) // 2
    left = yield from merge_sort_steps(items[:mid], cache, on_place)
    right = yield from merge_sort_steps(items[mid:], cache, on_place)
    merged = yield from _merge(left, right, cache, on_place)
    return merged


def _merge(
    left: List[Item],
    right: List[Item],
    cache: ComparisonCache,
    on_place: Optional[Callable[[], None]],
) -> Steps:
    result: List[Item] = []
    i = j = 0
    while i < len(left) and j < len(right):
        a, b = left[i], right[j]
        winner = cache.get(a, b)
        if winner is None:
            winner = yield NeedComparison(a, b)
        elif winner not in (a.id, b.id):
            raise InvalidChoiceError(winner, a.id, b.id)
        if winner == a.id:
            result.append(a)
            i += 1
        else:
            result.append(b)
            j += 1
        if on_place is not None:
            on_place()

    # stable tail: whatever remains keeps its run order, no comparisons needed
    tail = left[i:] + right[j:]
    for item in tail:
        result.append(item)
        if on_place is not None:
            on_place()
    return result


class MergeSortStepper:
    """
    Drive `merge_sort_steps` one comparison at a time.

    >>> stepper = MergeSortStepper(items, cache)
    >>> request = stepper.start()
    >>> while request is not None:
    ...     request = stepper.resume(ask_somebody(request))
    >>> stepper.result
    """

    def __init__(self, items: Sequence[Item], cache: ComparisonCache) -> None:
        self.placed = 0
        self.pending: Optional[NeedComparison] = None
        self.result: Optional[List[Item]] = None
        self._started = False
        self._gen = merge_sort_steps(items, cache, self._count_placement)

    def _count_placement(self) -> None:
        self.placed += 1

    @property
    def done(self) -> bool:
        return self.result is not None

    def start(self) -> Optional[NeedComparison]:
        if self._started:
            raise RuntimeError("stepper already started")
        self._started = True
        return self._advance(None)

    def resume(self, winner_id: str) -> Optional[NeedComparison]:
        if self.pending is None:
            raise RuntimeError("no comparison is pending")
        if winner_id not in self.pending.ids:
            raise InvalidChoiceError(winner_id, *self.pending.ids)
        return self._advance(winner_id)

    def _advance(self, value: Optional[str]) -> Optional[NeedComparison]:
        try:
            self.pending = self._gen.send(value)  # type: ignore[arg-type]
        except StopIteration as stop:
            self.pending = None
            self.result = stop.value
        return self.pending
