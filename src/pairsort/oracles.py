"""
Oracles: the things that answer "which of these two do you prefer?".

The engine only consumes the capability `(item_a, item_b) -> awaitable
winner id`. Two implementations live here:

- ManualOracle
    Bridges the engine to an interactive front end. The engine's call
    parks on a future; the front end reads `current` (or awaits
    `next_question()`) and answers with `choose(winner_id)`.

- ScoreOracle
    Simulated user with latent scores (higher wins, ties broken by the
    lexicographically smaller id). Optional `noise` flips an answer with
    that probability using the caller's numpy Generator. Counts calls and
    records every pair it was asked, for benchmarks and tests.
"""

from __future__ import annotations

import asyncio
from typing import List, Mapping, Optional, Tuple

import numpy as np

from .items import Item

__all__ = ["ManualOracle", "ScoreOracle"]


class ManualOracle:
    def __init__(self) -> None:
        self.current: Optional[Tuple[Item, Item]] = None
        self._future: Optional["asyncio.Future[str]"] = None
        self._questions: "asyncio.Queue[Tuple[Item, Item, asyncio.Future[str]]]" = asyncio.Queue()

    async def __call__(self, item_a: Item, item_b: Item) -> str:
        fut: "asyncio.Future[str]" = asyncio.get_running_loop().create_future()
        self._future = fut
        self.current = (item_a, item_b)
        self._questions.put_nowait((item_a, item_b, fut))
        try:
            return await fut
        finally:
            # a newer question may already be in flight
            if self._future is fut:
                self._future = None
                self.current = None

    async def next_question(self) -> Tuple[Item, Item]:
        """Wait for the next question that is still open; abandoned ones are skipped."""
        while True:
            item_a, item_b, fut = await self._questions.get()
            if not fut.done():
                return item_a, item_b

    def choose(self, winner_id: str) -> bool:
        """Answer the pending question. Returns False if nothing is pending."""
        fut = self._future
        if fut is None or fut.done():
            return False
        self._future = None
        self.current = None
        fut.set_result(winner_id)
        return True


class ScoreOracle:
    def __init__(
        self,
        scores: Mapping[str, float],
        noise: float = 0.0,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if not (0.0 <= noise <= 1.0):
            raise ValueError(f"noise must be in [0.0, 1.0]; got {noise}")
        if noise > 0.0 and rng is None:
            raise ValueError("a numpy Generator is required when noise > 0")
        self.scores = dict(scores)
        self.noise = noise
        self.rng = rng
        self.calls = 0
        # (lower id, higher id) per question, in asking order
        self.asked: List[Tuple[str, str]] = []

    def prefer(self, item_a: Item, item_b: Item) -> str:
        """Noise-free preference between two items."""
        sa, sb = self.scores[item_a.id], self.scores[item_b.id]
        if sa != sb:
            return item_a.id if sa > sb else item_b.id
        return min(item_a.id, item_b.id)

    async def __call__(self, item_a: Item, item_b: Item) -> str:
        self.calls += 1
        self.asked.append(tuple(sorted((item_a.id, item_b.id))))
        winner = self.prefer(item_a, item_b)
        if self.noise > 0.0 and self.rng is not None and self.rng.random() < self.noise:
            winner = item_b.id if winner == item_a.id else item_a.id
        return winner

    @property
    def distinct_pairs(self) -> int:
        return len(set(self.asked))
