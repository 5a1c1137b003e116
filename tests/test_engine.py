"""
Behaviour tests for InteractiveMergeSort.

What we check:
- Output matches the reference order for consistent oracles (property-based)
- Known pairs are never asked twice
- Callback contract: progress (count, raw estimate), save after each answer
- Failure modes: oracle rejection, invalid answers, failing saves
- Re-entrancy guard and the suspended/complete states
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
import sys
from typing import List, Tuple

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from pairsort.engine.sorter import InteractiveMergeSort
from pairsort.errors import InvalidChoiceError
from pairsort.items import Item, comparison_key
from pairsort.oracles import ManualOracle, ScoreOracle
from pairsort.validate import assert_no_mutation, is_permutation, is_ranked, oracle_order


# ------------------------- helpers ------------------------- #

def _items(ids) -> List[Item]:
    return [Item(x, f"Title {x}") for x in ids]


class Lexicographic:
    """Prefers the lexicographically smaller id and records what it was asked."""

    def __init__(self) -> None:
        self.asked: List[str] = []

    async def __call__(self, a: Item, b: Item) -> str:
        self.asked.append(comparison_key(a, b))
        return min(a.id, b.id)


def _sort(engine: InteractiveMergeSort, items, oracle):
    return asyncio.run(engine.sort(items, oracle))


# ------------------------- scenarios ------------------------- #

def test_four_items_lexicographic() -> None:
    oracle = Lexicographic()
    out = _sort(InteractiveMergeSort(), _items("ABCD"), oracle)
    assert [i.id for i in out] == ["A", "B", "C", "D"]
    assert oracle.asked == ["A,B", "C,D", "A,C", "B,C"]


def test_two_items_one_question() -> None:
    calls = []

    async def prefers_y(a: Item, b: Item) -> str:
        calls.append((a.id, b.id))
        return "Y"

    engine = InteractiveMergeSort()
    out = _sort(engine, _items("XY"), prefers_y)
    assert [i.id for i in out] == ["Y", "X"]
    assert calls == [("X", "Y")]
    assert engine.comparison_count == 1


def test_trivial_lists_never_ask() -> None:
    async def never(a: Item, b: Item) -> str:
        raise AssertionError("oracle must not be called")

    assert _sort(InteractiveMergeSort(), [], never) == []
    assert [i.id for i in _sort(InteractiveMergeSort(), _items("A"), never)] == ["A"]


def test_sync_oracle_is_accepted() -> None:
    out = _sort(InteractiveMergeSort(), _items("CAB"), lambda a, b: min(a.id, b.id))
    assert [i.id for i in out] == ["A", "B", "C"]


def test_dict_items_are_accepted() -> None:
    raw = [{"id": "b", "title": "Bee"}, {"id": "a", "title": "Ay", "imageUrl": "a.png"}]
    out = _sort(InteractiveMergeSort(), raw, lambda a, b: min(a.id, b.id))
    assert [i.id for i in out] == ["a", "b"]
    assert out[0].image_url == "a.png"


# ------------------------- correctness (property-based) ------------------------- #

@settings(deadline=None, max_examples=80)
@given(st.lists(st.integers(min_value=-50, max_value=50), min_size=0, max_size=40))
def test_matches_reference_order(raw_scores: List[int]) -> None:
    items = _items([f"i{k:03d}" for k in range(len(raw_scores))])
    scores = {item.id: s for item, s in zip(items, raw_scores)}
    oracle = ScoreOracle(scores)
    before = list(items)

    engine = InteractiveMergeSort()
    out = _sort(engine, items, oracle)

    assert_no_mutation(before, items)
    assert out == oracle_order(items, scores)
    assert is_permutation(items, out)
    assert is_ranked(out, oracle.prefer)
    # every question was new, and each one is counted once
    assert oracle.calls == oracle.distinct_pairs == engine.comparison_count


# ------------------------- cache reuse ------------------------- #

def test_second_sort_never_reasks_known_pairs() -> None:
    rng = np.random.default_rng(7)
    items = _items([f"i{k:02d}" for k in range(12)])
    scores = {item.id: int(s) for item, s in zip(items, rng.permutation(12))}

    engine = InteractiveMergeSort()
    first = ScoreOracle(scores)
    _sort(engine, items, first)
    count_after_first = engine.comparison_count

    again = ScoreOracle(scores)
    assert _sort(engine, items, again) == oracle_order(items, scores)
    assert again.calls == 0
    assert engine.comparison_count == count_after_first

    # a different order may need new pairs, but never an old one
    reordered = ScoreOracle(scores)
    assert _sort(engine, list(reversed(items)), reordered) == oracle_order(items, scores)
    assert set(reordered.asked).isdisjoint(first.asked)
    assert engine.comparison_count == count_after_first + reordered.calls


# ------------------------- callbacks ------------------------- #

def test_progress_and_save_callbacks() -> None:
    progress: List[Tuple[int, int]] = []
    saves: List[int] = []
    engine = InteractiveMergeSort(
        on_progress=lambda done, total: progress.append((done, total)),
        on_save=lambda: saves.append(engine.comparison_count),
    )
    oracle = Lexicographic()
    _sort(engine, _items("ABCDEFG"), oracle)

    assert progress[0] == (0, engine.total_battles)
    completed = [done for done, _ in progress]
    assert completed == sorted(completed)
    assert completed[-1] == len(oracle.asked)
    # total is the raw estimate and stays fixed for one sort() call
    assert {total for _, total in progress} == {engine.total_battles}
    # one save per new answer, each after the cache write
    assert saves == list(range(1, len(oracle.asked) + 1))


def test_failing_save_does_not_block_progress(caplog) -> None:
    def broken_save() -> None:
        raise OSError("quota exceeded")

    engine = InteractiveMergeSort(on_save=broken_save)
    with caplog.at_level(logging.WARNING, logger="pairsort.engine.sorter"):
        out = _sort(engine, _items("DCBA"), Lexicographic())
    assert [i.id for i in out] == ["A", "B", "C", "D"]
    assert "save callback failed" in caplog.text


# ------------------------- failure modes ------------------------- #

def test_oracle_rejection_propagates_and_releases_guard() -> None:
    async def boom(a: Item, b: Item) -> str:
        raise RuntimeError("user went away")

    engine = InteractiveMergeSort()
    with pytest.raises(RuntimeError, match="user went away"):
        _sort(engine, _items("AB"), boom)
    assert not engine.is_sorting
    assert engine.comparison_count == 0

    out = _sort(engine, _items("AB"), Lexicographic())
    assert [i.id for i in out] == ["A", "B"]


def test_invalid_answer_raises_and_records_nothing() -> None:
    engine = InteractiveMergeSort()
    with pytest.raises(InvalidChoiceError):
        _sort(engine, _items("AB"), lambda a, b: "nobody")
    assert len(engine.cache) == 0
    assert not engine.can_undo()


# ------------------------- re-entrancy & states ------------------------- #

def test_reentrant_sort_is_a_noop() -> None:
    async def scenario() -> None:
        engine = InteractiveMergeSort()
        oracle = ManualOracle()
        assert engine.status == "idle"

        first = asyncio.ensure_future(engine.sort(_items("ABC"), oracle))
        a, b = await oracle.next_question()
        assert engine.status == "suspended"
        assert engine.pending.ids == (a.id, b.id)

        assert await engine.sort(_items("ABC"), oracle) is None
        assert engine.is_sorting

        oracle.choose(min(a.id, b.id))
        while not first.done():
            question = asyncio.ensure_future(oracle.next_question())
            done, _ = await asyncio.wait({first, question}, return_when=asyncio.FIRST_COMPLETED)
            if question in done:
                x, y = question.result()
                oracle.choose(min(x.id, y.id))
            else:
                question.cancel()

        assert [i.id for i in first.result()] == ["A", "B", "C"]
        assert engine.status == "complete"
        assert not engine.is_sorting

    asyncio.run(scenario())


def test_shuffle_is_drawn_once_and_kept() -> None:
    items = _items([f"i{k}" for k in range(8)])
    engine = InteractiveMergeSort(rng=np.random.default_rng(3))
    out = _sort(engine, items, lambda a, b: min(a.id, b.id))
    assert [i.id for i in out] == sorted(i.id for i in items)

    order = engine.shuffled_ids
    assert sorted(order) == sorted(i.id for i in items)
    _sort(engine, items, lambda a, b: min(a.id, b.id))
    assert engine.shuffled_ids == order


def test_ids_containing_the_key_delimiter_rank_correctly() -> None:
    # "a,b"+"c" and "a"+"b,c" join to the same display key; they are different pairs
    items = _items(["a,b", "c", "a", "b,c"])
    scores = {"a": 4, "b,c": 3, "c": 2, "a,b": 1}
    oracle = ScoreOracle(scores)
    engine = InteractiveMergeSort()

    out = _sort(engine, items, oracle)
    assert [i.id for i in out] == ["a", "b,c", "c", "a,b"]
    assert oracle.calls == oracle.distinct_pairs == engine.comparison_count
