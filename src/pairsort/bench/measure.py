"""
Simulation harness for interactive ranking sessions.

One call runs a complete `SortSession` over a generated item set, with a
`ScoreOracle` playing the user through a `ManualOracle` bridge, exactly
the way a front end drives the engine. Optionally the simulated user
presses "undo" instead of answering with probability `undo_rate`.

Public API (stable):
    simulate_session(...) -> dict

Returned dict schema:
    {
        "n": int,
        "status": "ok" | "error",
        "error": str | None,
        "oracle_calls": int,           # answers the simulated user gave
        "distinct_pairs": int,         # distinct pairs it was asked
        "comparisons": int,            # engine's comparison counter at the end
        "initial_estimate": int,       # battle estimate before the first answer
        "undos": int,
        "elapsed_ns": int,
        "is_permutation": bool | None,
        "matches_reference": bool | None,   # only meaningful when noise == 0
    }
"""

from __future__ import annotations

import asyncio
import gc
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..engine.cache import ComparisonCache
from ..engine.estimate import estimate_total_battles
from ..items import Item
from ..oracles import ManualOracle, ScoreOracle
from ..session import SortSession
from ..validate.oracle import equals_oracle
from ..validate.properties import is_permutation, permutation_counter_diff

__all__ = ["simulate_session"]


async def _drive(
    session: SortSession,
    user: ScoreOracle,
    undo_rate: float,
    rng: Optional[np.random.Generator],
) -> Tuple[List[Item], int]:
    bridge = ManualOracle()
    run = asyncio.ensure_future(session.run(bridge))
    undos = 0
    while True:
        question = asyncio.ensure_future(bridge.next_question())
        done, _ = await asyncio.wait({run, question}, return_when=asyncio.FIRST_COMPLETED)
        if run in done:
            question.cancel()
            return run.result(), undos
        item_a, item_b = question.result()
        if undo_rate > 0.0 and rng is not None and session.can_undo() and rng.random() < undo_rate:
            session.undo()
            undos += 1
            continue
        bridge.choose(await user(item_a, item_b))


def simulate_session(
    *,
    items: Sequence[Item],
    scores: Mapping[str, float],
    noise: float = 0.0,
    undo_rate: float = 0.0,
    rng: Optional[np.random.Generator] = None,
    shuffle: bool = False,
    history_limit: Optional[int] = None,
    disable_gc: bool = False,
) -> Dict[str, Any]:
    """
    Run one simulated ranking session to completion.

    Parameters
    ----------
    items : sequence of Item
        Items in presentation order.
    scores : mapping id -> score
        Hidden preferences of the simulated user.
    noise : float
        Probability that the simulated user flips an answer.
    undo_rate : float
        Probability of pressing undo instead of answering (when undo is possible).
    rng : numpy.random.Generator | None
        Required when noise, undo_rate or shuffle is used.
    shuffle : bool
        Let the engine shuffle the presentation order once with `rng`.
    history_limit : int | None
        Passed to the engine.
    disable_gc : bool
        If True, collect and disable Python GC during the timed run; restore afterward.

    Returns
    -------
    dict
        See module docstring for exact schema.
    """
    if not (0.0 <= undo_rate < 1.0):
        raise ValueError("undo_rate must be in [0.0, 1.0)")
    if (undo_rate > 0.0 or shuffle) and rng is None:
        raise ValueError("rng is required for undo_rate > 0 or shuffle")

    user = ScoreOracle(scores, noise=noise, rng=rng)
    session = SortSession(
        items,
        rng=rng if shuffle else None,
        history_limit=history_limit,
    )
    result: Dict[str, Any] = {
        "n": len(items),
        "status": "ok",
        "error": None,
        "oracle_calls": 0,
        "distinct_pairs": 0,
        "comparisons": 0,
        "initial_estimate": estimate_total_battles(list(items), ComparisonCache()),
        "undos": 0,
        "elapsed_ns": 0,
        "is_permutation": None,
        "matches_reference": None,
    }

    prev_gc_enabled = gc.isenabled()
    try:
        if disable_gc:
            gc.collect()
            gc.disable()
        t0 = time.perf_counter_ns()
        try:
            out, undos = asyncio.run(_drive(session, user, undo_rate, rng))
        except Exception as e:
            result["status"] = "error"
            result["error"] = f"session failed: {e!r}"
            return result
        finally:
            result["elapsed_ns"] = int(time.perf_counter_ns() - t0)
    finally:
        # If GC was previously disabled, leave it disabled (respect caller's global state).
        if disable_gc and prev_gc_enabled:
            gc.enable()

    result["oracle_calls"] = user.calls
    result["distinct_pairs"] = user.distinct_pairs
    result["comparisons"] = session.engine.comparison_count
    result["undos"] = undos
    result["is_permutation"] = is_permutation(items, out)
    if not result["is_permutation"]:
        result["status"] = "error"
        result["error"] = f"output is not a permutation of the input: {permutation_counter_diff(items, out)}"
    if noise == 0.0:
        result["matches_reference"] = equals_oracle(items, scores, out)
    return result
