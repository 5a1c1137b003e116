"""
Progress estimation for an interactive merge sort.

Before a sort starts we predict how many oracle calls ("battles") it will
take, so a front end can show a percentage instead of an unbounded spinner.

Structural count:
    For a list of length n split into floor(n/2) and n - floor(n/2), count
    min(left, right) merge steps at this level, then recurse into both
    halves and sum. Runs that merge without comparisons (one side
    exhausted early) are not modelled, so this is an estimate.

Refinement:
    Subtract floor(DAMPING * known) where `known` is the number of pairs
    among the items whose outcome is already cached, with a hard floor of 1
    so percentage math never divides by zero.

Public API (stable):
    count_merge_steps(n: int) -> int
    estimate_total_battles(items, cache, damping=DAMPING) -> int
    progress_percent(completed, total, complete=False) -> int
"""

from __future__ import annotations

from typing import Sequence

from ..items import Item
from .cache import ComparisonCache

DAMPING: float = 0.3
MAX_PROGRESS_PERCENT: int = 99

__all__ = [
    "DAMPING",
    "MAX_PROGRESS_PERCENT",
    "count_merge_steps",
    "estimate_total_battles",
    "progress_percent",
]


def count_merge_steps(n: int) -> int:
    """Structural merge-step count for a top-down merge sort over n items."""
    if not isinstance(n, int) or n < 0:
        raise ValueError("n must be a nonnegative int")
    if n <= 1:
        return 0
    left = n // 2
    right = n - left
    return min(left, right) + count_merge_steps(left) + count_merge_steps(right)


def estimate_total_battles(
    items: Sequence[Item],
    cache: ComparisonCache,
    damping: float = DAMPING,
) -> int:
    """
    Estimate the number of oracle calls a sort over `items` will need.

    Parameters
    ----------
    items : sequence of Item
        The working set about to be sorted.
    cache : ComparisonCache
        Outcomes already known; pairs among `items` reduce the estimate.
    damping : float
        Fraction of each known pair credited against the structural count.

    Returns
    -------
    int
        The estimate, always >= 1.
    """
    if not (0.0 <= damping <= 1.0):
        raise ValueError(f"damping must be in [0.0, 1.0]; got {damping}")
    structural = count_merge_steps(len(items))
    known = cache.count_known_among(item.id for item in items)
    return max(1, structural - int(known * damping))


def progress_percent(completed: int, total: int, complete: bool = False) -> int:
    """
    Convert (completed, total) into a display percentage.

    The estimate is heuristic and can be exceeded, so the value is clamped
    to MAX_PROGRESS_PERCENT until the sort has actually completed.
    """
    if complete:
        return 100
    if total <= 0:
        return 0
    pct = (completed * 100) // total
    return max(0, min(MAX_PROGRESS_PERCENT, pct))
