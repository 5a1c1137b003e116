"""
Property helpers for validating ranking results.

These are lightweight checks used in tests and inside the simulation
harness for sanity validation.

Public API (stable):
    is_ranked(out, prefer) -> bool
    first_rank_violation_index(out, prefer) -> int | None
    is_permutation(a, b) -> bool
    permutation_counter_diff(a, b) -> dict[str, int]
    assert_no_mutation(before, after) -> None

Notes
-----
- `prefer(a, b)` returns the id of the preferred item; a ranking is valid
  when every adjacent pair agrees with it. For a transitive preference
  that is the same as the whole list agreeing.
- Permutation checks compare item ids, so two Items with equal titles
  are never confused.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable, Dict, Sequence

from ..items import Item

__all__ = [
    "is_ranked",
    "first_rank_violation_index",
    "is_permutation",
    "permutation_counter_diff",
    "assert_no_mutation",
]

Prefer = Callable[[Item, Item], str]


def is_ranked(out: Sequence[Item], prefer: Prefer) -> bool:
    """Return True iff prefer(out[i], out[i+1]) picks out[i] for all i."""
    return first_rank_violation_index(out, prefer) is None


def first_rank_violation_index(out: Sequence[Item], prefer: Prefer) -> int | None:
    """
    Return the first index i where out[i+1] is preferred over out[i], or None.

    Useful for precise error messages:
        i = first_rank_violation_index(out, oracle.prefer)
        assert i is None, f"out of order at i={i}: {out[i].id} < {out[i+1].id}"
    """
    for i in range(len(out) - 1):
        if prefer(out[i], out[i + 1]) != out[i].id:
            return i
    return None


def is_permutation(a: Sequence[Item], b: Sequence[Item]) -> bool:
    """Return True iff `a` and `b` hold exactly the same multiset of ids."""
    if len(a) != len(b):
        return False
    return Counter(x.id for x in a) == Counter(x.id for x in b)


def permutation_counter_diff(a: Sequence[Item], b: Sequence[Item]) -> Dict[str, int]:
    """
    Return a dict of id -> count difference (count_a - count_b).

    Empty dict means `a` and `b` have identical multiplicities.
    """
    ca = Counter(x.id for x in a)
    cb = Counter(x.id for x in b)
    diff: Dict[str, int] = {}
    for k in set(ca) | set(cb):
        d = ca.get(k, 0) - cb.get(k, 0)
        if d != 0:
            diff[k] = d
    return diff


def assert_no_mutation(before: Sequence[Item], after: Sequence[Item]) -> None:
    """
    Assert that two sequences are element-wise equal, used to ensure a
    sort did not reorder its input in place.

    Raises AssertionError with a concise message if they differ.
    """
    if len(before) != len(after):
        raise AssertionError(
            f"Input mutated: length changed from {len(before)} to {len(after)}"
        )
    for i, (x, y) in enumerate(zip(before, after)):
        if x != y:
            raise AssertionError(f"Input mutated at index {i}: before={x.id}, after={y.id}")
