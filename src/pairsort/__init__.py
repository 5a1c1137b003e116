"""
pairsort: rank a list of items by asking pairwise questions.

The engine runs a merge sort that suspends on every comparison it cannot
answer from its cache, asks an external oracle (usually a person), and
keeps enough state to undo, reset, drop items mid-session, and resume
after a reload from compact persisted state.

    from pairsort import Item, SortSession, ManualOracle
"""

from .engine import (
    ComparisonCache,
    HistoryStack,
    InteractiveMergeSort,
    MergeSortStepper,
    NeedComparison,
    SorterState,
    StateSnapshot,
    estimate_total_battles,
    progress_percent,
)
from .errors import ConflictingChoiceError, InvalidChoiceError, PairsortError
from .items import Item, comparison_key
from .oracles import ManualOracle, ScoreOracle
from .session import SortSession

__version__ = "0.1.0"

__all__ = [
    "ComparisonCache",
    "HistoryStack",
    "InteractiveMergeSort",
    "MergeSortStepper",
    "NeedComparison",
    "SorterState",
    "StateSnapshot",
    "estimate_total_battles",
    "progress_percent",
    "ConflictingChoiceError",
    "InvalidChoiceError",
    "PairsortError",
    "Item",
    "comparison_key",
    "ManualOracle",
    "ScoreOracle",
    "SortSession",
]
