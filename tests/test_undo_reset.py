"""
Undo and reset: stepping back decisions, restarting, history bounds.
"""

from __future__ import annotations

import asyncio
import pathlib
import sys
from typing import List

_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from pairsort.engine.sorter import InteractiveMergeSort
from pairsort.items import Item, comparison_key
from pairsort.oracles import ManualOracle, ScoreOracle
from pairsort.persist.store import MemoryStore
from pairsort.session import SortSession


def _items(ids) -> List[Item]:
    return [Item(x, x) for x in ids]


def _lexicographic(a: Item, b: Item) -> str:
    return min(a.id, b.id)


def _sort(engine, items, oracle=_lexicographic):
    return asyncio.run(engine.sort(items, oracle))


class Recorder:
    def __init__(self) -> None:
        self.progress = []
        self.saves = 0
        self.restarts = 0

    def wire(self, **kwargs) -> InteractiveMergeSort:
        return InteractiveMergeSort(
            on_progress=lambda done, total: self.progress.append((done, total)),
            on_save=self._save,
            on_restart=self._restart,
            **kwargs,
        )

    def _save(self) -> None:
        self.saves += 1

    def _restart(self) -> None:
        self.restarts += 1


# ------------------------- undo ------------------------- #

def test_undo_without_history_changes_nothing() -> None:
    rec = Recorder()
    engine = rec.wire()
    assert not engine.can_undo()
    assert engine.undo() is False
    assert (rec.progress, rec.saves, rec.restarts) == ([], 0, 0)


def test_undo_restores_state_before_last_answer() -> None:
    rec = Recorder()
    engine = rec.wire()
    _sort(engine, _items("ABCD"))
    total = engine.total_battles
    assert engine.comparison_count == 4

    assert engine.undo() is True
    assert engine.comparison_count == 3
    assert len(engine.cache) == 3
    assert not engine.cache.has("B", "C")
    assert engine.cache.get("A", "C") == "A"
    # the estimate is not rewound
    assert engine.total_battles == total
    assert rec.restarts == 1
    assert rec.progress[-1] == (3, total)


def test_undo_after_final_answer_reasks_it() -> None:
    engine = InteractiveMergeSort()
    out = _sort(engine, _items("XY"), lambda a, b: "Y")
    assert [i.id for i in out] == ["Y", "X"]
    assert engine.status == "complete"

    assert engine.undo() is True
    assert engine.comparison_count == 0
    assert len(engine.cache) == 0
    assert not engine.can_undo()
    assert engine.status == "idle"

    asked = []

    def now_prefers_x(a: Item, b: Item) -> str:
        asked.append((a.id, b.id))
        return "X"

    out = _sort(engine, _items("XY"), now_prefers_x)
    assert asked == [("X", "Y")]
    assert [i.id for i in out] == ["X", "Y"]


def test_mid_session_undo_reasks_only_the_undone_pair() -> None:
    scores = {"A": 5, "C": 4, "B": 3, "D": 2, "E": 1}
    prefer = ScoreOracle(scores).prefer

    async def scenario():
        store = MemoryStore()
        session = SortSession(_items("ABCDE"), store, sorter_id="s1")
        oracle = ManualOracle()
        run = asyncio.ensure_future(session.run(oracle))
        asked: List[str] = []
        undone = False

        while True:
            question = asyncio.ensure_future(oracle.next_question())
            done, _ = await asyncio.wait({run, question}, return_when=asyncio.FIRST_COMPLETED)
            if question not in done:
                question.cancel()
                break
            a, b = question.result()
            key = comparison_key(a, b)
            asked.append(key)
            if key == "C,E" and not undone:
                # the user notices the C/D mistake before answering
                undone = True
                assert session.undo()
            elif key == "C,D" and not undone:
                oracle.choose("D")
            else:
                oracle.choose(prefer(a, b))

        return session, store, asked, run.result()

    session, store, asked, result = asyncio.run(scenario())
    assert asked == ["A,B", "D,E", "C,D", "C,E", "C,D", "A,C", "B,C", "B,D"]
    assert [i.id for i in result] == ["A", "C", "B", "D", "E"]
    assert session.engine.comparison_count == 6
    assert session.key not in store.data


def test_history_limit_bounds_undo_depth() -> None:
    engine = InteractiveMergeSort(history_limit=2)
    _sort(engine, _items("ABCD"))
    assert len(engine.history) == 2
    assert engine.undo() and engine.undo()
    assert engine.undo() is False
    assert engine.comparison_count == 2


def test_repeated_undo_empties_cache_and_history() -> None:
    engine = InteractiveMergeSort()
    _sort(engine, _items("EDCBA"))
    n = engine.comparison_count
    assert n == len(engine.cache) == len(engine.history)

    for k in range(n):
        assert engine.undo() is True
        assert engine.comparison_count == len(engine.cache) == n - k - 1
        assert len(engine.history) == n - k - 1

    assert not engine.can_undo()
    assert engine.undo() is False
    assert len(engine.cache) == 0


# ------------------------- reset ------------------------- #

def test_reset_clears_everything_and_is_idempotent() -> None:
    rec = Recorder()
    engine = rec.wire()
    _sort(engine, _items("DCBA"))

    engine.reset()
    snapshot = (len(engine.cache), len(engine.history), engine.comparison_count, engine.total_battles)
    engine.reset()
    assert snapshot == (0, 0, 0, 0)
    assert (len(engine.cache), len(engine.history), engine.comparison_count) == (0, 0, 0)
    assert engine.shuffled_ids == [] and engine.removed_ids == set()
    assert rec.restarts == 2
    assert rec.progress[-1] == (0, 0)


def test_reset_while_suspended_supersedes_the_sort() -> None:
    async def scenario():
        engine = InteractiveMergeSort()
        oracle = ManualOracle()
        first = asyncio.ensure_future(engine.sort(_items("ABC"), oracle))
        a, b = await oracle.next_question()
        oracle.choose(min(a.id, b.id))
        await oracle.next_question()
        assert engine.comparison_count == 1

        engine.reset()
        assert await first is None
        assert not engine.is_sorting
        assert engine.comparison_count == 0

        out = await engine.sort(_items("ABC"), _lexicographic)
        return [i.id for i in out]

    assert asyncio.run(scenario()) == ["A", "B", "C"]
