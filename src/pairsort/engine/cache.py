"""
Cache of resolved pairwise comparisons.

Maps an unordered pair of item ids to the id of the preferred item. Pairs
are stored under the (lower id, higher id) tuple, so ids that contain the
display delimiter can never collide with another pair. Absence is the
normal "ask the oracle" state, never an error.

Public API (stable):
    ComparisonCache
        get(a, b) -> str | None
        set(a, b, winner) -> None
        has(a, b) -> bool
        remove_all_referencing(item_id) -> int
        entries() -> iterator of (id_a, id_b, winner)
        copy() / clear() / to_dict()
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, Optional, Tuple, Union

from ..errors import ConflictingChoiceError, InvalidChoiceError
from ..items import Item, comparison_key

__all__ = ["ComparisonCache"]

IdLike = Union[Item, str]
PairKey = Tuple[str, str]


def _as_id(x: IdLike) -> str:
    return x.id if isinstance(x, Item) else str(x)


def _pair(a: IdLike, b: IdLike) -> PairKey:
    id_a, id_b = _as_id(a), _as_id(b)
    return (id_a, id_b) if id_a <= id_b else (id_b, id_a)


class ComparisonCache:
    """Order-independent store of pairwise outcomes."""

    def __init__(self, entries: Optional[Iterable[Tuple[str, str, str]]] = None) -> None:
        self._winners: Dict[PairKey, str] = {}
        if entries is not None:
            for id_a, id_b, winner in entries:
                self.set(id_a, id_b, winner)

    def get(self, a: IdLike, b: IdLike) -> Optional[str]:
        return self._winners.get(_pair(a, b))

    def has(self, a: IdLike, b: IdLike) -> bool:
        return _pair(a, b) in self._winners

    def set(self, a: IdLike, b: IdLike, winner: IdLike) -> None:
        """
        Record `winner` for the pair (a, b).

        Re-recording the same winner is a no-op. Recording a different
        winner for a known pair raises ConflictingChoiceError.
        """
        id_a, id_b, winner_id = _as_id(a), _as_id(b), _as_id(winner)
        if winner_id not in (id_a, id_b):
            raise InvalidChoiceError(winner_id, id_a, id_b)
        if id_a == id_b:
            raise ValueError(f"cannot compare an item with itself: {id_a!r}")
        pair = _pair(id_a, id_b)
        known = self._winners.get(pair)
        if known is not None and known != winner_id:
            raise ConflictingChoiceError(
                f"pair {pair!r} already resolved in favour of {known!r}, got {winner_id!r}"
            )
        self._winners[pair] = winner_id

    def remove_all_referencing(self, item_id: IdLike) -> int:
        """Drop every entry whose pair contains `item_id`; return how many were dropped."""
        target = _as_id(item_id)
        doomed = [pair for pair in self._winners if target in pair]
        for pair in doomed:
            del self._winners[pair]
        return len(doomed)

    def entries(self) -> Iterator[Tuple[str, str, str]]:
        """Yield (id_a, id_b, winner) in insertion order."""
        for (id_a, id_b), winner in self._winners.items():
            yield id_a, id_b, winner

    def count_known_among(self, ids: Iterable[str]) -> int:
        """Number of cached pairs whose both ids are in `ids`."""
        present = set(ids)
        return sum(1 for a, b in self._winners if a in present and b in present)

    def copy(self) -> "ComparisonCache":
        dup = ComparisonCache()
        dup._winners = dict(self._winners)
        return dup

    def clear(self) -> None:
        self._winners.clear()

    def to_dict(self) -> Dict[str, str]:
        """Winners under their joined display keys, for logging and inspection."""
        return {comparison_key(a, b): winner for (a, b), winner in self._winners.items()}

    def __len__(self) -> int:
        return len(self._winners)

    def __contains__(self, pair: object) -> bool:
        if not isinstance(pair, tuple) or len(pair) != 2:
            return False
        return _pair(pair[0], pair[1]) in self._winners

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ComparisonCache):
            return NotImplemented
        return self._winners == other._winners

    def __repr__(self) -> str:
        return f"ComparisonCache({len(self)} entries)"
