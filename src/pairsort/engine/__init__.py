"""
Ranking engine public API.

Re-exports so callers can write:
    from pairsort.engine import InteractiveMergeSort, ComparisonCache
"""

from .cache import ComparisonCache
from .estimate import (
    DAMPING,
    MAX_PROGRESS_PERCENT,
    count_merge_steps,
    estimate_total_battles,
    progress_percent,
)
from .history import HistoryStack, StateSnapshot
from .sorter import InteractiveMergeSort, Oracle, SorterState
from .stepper import MergeSortStepper, NeedComparison, merge_sort_steps

__all__ = [
    "ComparisonCache",
    "DAMPING",
    "MAX_PROGRESS_PERCENT",
    "count_merge_steps",
    "estimate_total_battles",
    "progress_percent",
    "HistoryStack",
    "StateSnapshot",
    "InteractiveMergeSort",
    "Oracle",
    "SorterState",
    "MergeSortStepper",
    "NeedComparison",
    "merge_sort_steps",
]
