"""
Persistence: index-based payloads, legacy payloads, encoding, stores.
"""

from __future__ import annotations

import asyncio
import json
import logging
import pathlib
import sys
from typing import List

import numpy as np
import pytest

_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from pairsort.engine.sorter import InteractiveMergeSort
from pairsort.items import Item
from pairsort.persist import (
    JsonFileStore,
    MemoryStore,
    decode_payload,
    deserialize_state,
    encode_payload,
    load_state,
    progress_key,
    save_state,
    serialize_state,
)


def _items(ids) -> List[Item]:
    return [Item(x, x) for x in ids]


def _sorted_engine(ids="ABCDE", rng=None) -> InteractiveMergeSort:
    engine = InteractiveMergeSort(rng=rng)
    asyncio.run(engine.sort(_items(ids), lambda a, b: min(a.id, b.id)))
    return engine


# ------------------------- codec ------------------------- #

def test_payload_uses_indexes() -> None:
    items = _items("ABC")
    engine = _sorted_engine("ABC")
    payload = serialize_state(items, engine.state)

    assert payload["optimized"] is True
    assert payload["itemMap"] == ["A", "B", "C"]
    for triple in payload["choices"]:
        assert len(triple) == 3 and all(isinstance(k, int) for k in triple)
    assert len(payload["historyChoices"]) == engine.comparison_count
    assert payload["completedComparisons"] == engine.comparison_count
    # index payloads must survive a JSON round trip unchanged
    assert json.loads(json.dumps(payload)) == payload


def test_state_round_trip() -> None:
    items = _items("ABCDE")
    engine = _sorted_engine("ABCDE", rng=np.random.default_rng(11))
    engine.remove_item("E")
    state = deserialize_state(serialize_state(items, engine.state), items)

    assert list(state.cache.entries()) == list(engine.cache.entries())
    assert state.comparison_count == engine.comparison_count
    assert state.total_battles == engine.total_battles
    assert state.shuffled_ids == engine.shuffled_ids
    assert state.removed_ids == {"E"}
    assert [s.comparison_count for s in state.history] == [s.comparison_count for s in engine.history]
    assert [s.cache for s in state.history] == [s.cache for s in engine.history]


def test_bad_triples_are_dropped_one_by_one() -> None:
    payload = {
        "optimized": True,
        "itemMap": ["a", "b", "c"],
        "choices": [[0, 1, 1], [0, 9, 0], [0, "x", 0], [2, 2, 2], [1, 2], [0, 2, 1], [1, 2, 2]],
    }
    state = deserialize_state(payload, _items(["a", "b", "c"]))
    assert list(state.cache.entries()) == [("a", "b", "b"), ("b", "c", "c")]
    assert state.comparison_count == 2


def test_ids_missing_from_items_are_dropped() -> None:
    items = _items("ABCD")
    payload = serialize_state(items, _sorted_engine("ABCD").state)
    state = deserialize_state(payload, _items("ACD"))
    assert all("B" not in (a, b) for a, b, _ in state.cache.entries())
    assert state.cache.get("C", "D") == "C"


def test_legacy_payload() -> None:
    payload = {
        "userChoicesArray": [["a,b", "b"], ["b,c", "c"], ["a,zz", "a"], "junk"],
        "completedComparisons": 2,
        "stateHistoryArray": [
            {"userChoicesArray": [], "comparisonCount": 0},
            {"userChoicesArray": [["a,b", "b"]], "comparisonCount": 1},
        ],
    }
    state = deserialize_state(payload, _items("abc"))
    assert state.cache.get("a", "b") == "b"
    assert state.cache.get("c", "b") == "c"
    assert len(state.cache) == 2
    assert state.comparison_count == 2
    assert [s.comparison_count for s in state.history] == [0, 1]
    assert state.shuffled_ids == []


def test_non_dict_payload_rejected() -> None:
    with pytest.raises(ValueError):
        deserialize_state(["not", "a", "dict"], _items("ab"))
    with pytest.raises(ValueError):
        deserialize_state({"optimized": True}, _items("ab"))


def test_encoding_accepts_plain_json_and_rejects_garbage() -> None:
    payload = {"optimized": True, "itemMap": ["é"], "choices": []}
    assert decode_payload(encode_payload(payload)) == payload
    assert decode_payload(json.dumps(payload)) == payload
    with pytest.raises(ValueError):
        decode_payload("garbage")


# ------------------------- stores ------------------------- #

def test_progress_key_is_per_filter_selection() -> None:
    assert progress_key("s1") == "progress:s1:all"
    assert progress_key("s1", ["rock", "jazz"]) == progress_key("s1", ["jazz", "rock"]) == "progress:s1:jazz-rock"
    assert progress_key("s1", ["jazz"]) != progress_key("s2", ["jazz"])


def test_save_and_load_through_json_file(tmp_path) -> None:
    items = _items("ABCD")
    engine = _sorted_engine("ABCD")
    store = JsonFileStore(tmp_path / "progress.json")
    key = progress_key("s1")

    assert save_state(store, key, items, engine.state)
    on_disk = json.loads((tmp_path / "progress.json").read_text(encoding="utf-8"))
    assert list(on_disk) == [key]

    restored = load_state(JsonFileStore(tmp_path / "progress.json"), key, items)
    assert restored is not None
    assert restored.cache == engine.cache

    store.delete(key)
    assert store.get(key) is None
    assert load_state(store, key, items) is None


def test_corrupt_state_is_ignored_with_warning(caplog) -> None:
    store = MemoryStore()
    store.set("progress:s1:all", "definitely not a payload")
    with caplog.at_level(logging.WARNING, logger="pairsort.persist.store"):
        assert load_state(store, "progress:s1:all", _items("ab")) is None
    assert "unreadable" in caplog.text


def test_failing_store_reports_false(caplog) -> None:
    class FullStore(MemoryStore):
        def set(self, key: str, value: str) -> None:
            raise OSError("quota exceeded")

    engine = _sorted_engine("AB")
    with caplog.at_level(logging.WARNING, logger="pairsort.persist.store"):
        assert save_state(FullStore(), "k", _items("AB"), engine.state) is False
    assert "quota exceeded" in caplog.text


def test_deeply_nested_state_is_ignored_with_warning(caplog) -> None:
    nested = '{"a":' * 200000 + "1" + "}" * 200000
    with pytest.raises(ValueError):
        decode_payload(nested)

    store = MemoryStore()
    store.set("progress:s1:all", nested)
    with caplog.at_level(logging.WARNING, logger="pairsort.persist.store"):
        assert load_state(store, "progress:s1:all", _items("ab")) is None
    assert "unreadable" in caplog.text
