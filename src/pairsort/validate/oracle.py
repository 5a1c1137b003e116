"""
Reference ranking for correctness checks.

Given the hidden scores a simulated user ranks by, the ground-truth order
is Python's built-in `sorted()` on (-score, id):
- Correct total order (higher score first, ties by smaller id), which is
  exactly the preference `ScoreOracle` answers with when noise is 0
- Deterministic and portable

Public API (stable):
    oracle_order(items, scores) -> list[Item]
    equals_oracle(items, scores, out) -> bool

Conventions:
- The reference never mutates its input and always returns a **new** list.
- Any consistent interactive sort must match it exactly.
"""

from __future__ import annotations

from typing import List, Mapping, Sequence

from ..items import Item

ORACLE_NAME: str = "python_sorted_by_score"

__all__ = ["ORACLE_NAME", "oracle_order", "equals_oracle"]


def oracle_order(items: Sequence[Item], scores: Mapping[str, float]) -> List[Item]:
    """
    Return the ground-truth best-first order of `items`.

    Parameters
    ----------
    items : sequence of Item
        Items to rank. Not mutated.
    scores : mapping id -> score
        Hidden preference scores; higher is better.
    """
    return sorted(items, key=lambda item: (-scores[item.id], item.id))


def equals_oracle(items: Sequence[Item], scores: Mapping[str, float], out: Sequence[Item]) -> bool:
    """True iff `out` is exactly `oracle_order(items, scores)`."""
    return list(out) == oracle_order(items, scores)
