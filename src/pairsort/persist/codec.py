"""
Compact, index-based serialization of engine state.

Item ids (often long, UUID-like) are replaced by their index in the current
item list. Every cache entry becomes a triple [idx_a, idx_b, idx_winner];
every history snapshot gets the same treatment, in stack order.

Optimized payload (the `optimized: true` flag is the only discriminator):
    {
        "optimized": true,
        "itemMap": [id, ...],                  # index -> id
        "choices": [[a, b, winner], ...],
        "historyChoices": [
            {"choices": [...], "comparisonCount": int,
             "sortedNo": int, "totalBattles": int},
            ...
        ],
        "shuffledOrderIndexes": [int, ...],
        "removedIndexes": [int, ...],
        "completedComparisons": int,
        "totalBattles": int,
        "sortedNo": int
    }

Legacy payload (no flag, full ids):
    {
        "userChoicesArray": [["idA,idB", winnerId], ...],
        "completedComparisons": int,
        "stateHistoryArray": [{"userChoicesArray": [...], "comparisonCount": int}, ...]
    }

Rules:
- Entries referencing an id that is not in the item list are dropped on
  serialize; this is how removals become durable.
- On deserialize, out-of-range or malformed triples are dropped one by one.
  A partial cache is always usable; at worst a few questions are re-asked.

`encode_payload` / `decode_payload` wrap the JSON in zlib + URL-safe base64
so it fits in plain string key-value storage.
"""

from __future__ import annotations

import base64
import json
import zlib
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..engine.cache import ComparisonCache
from ..engine.history import HistoryStack, StateSnapshot
from ..engine.sorter import SorterState
from ..errors import PairsortError
from ..items import Item, split_key

__all__ = [
    "serialize_choices",
    "serialize_state",
    "deserialize_state",
    "encode_payload",
    "decode_payload",
]

Triple = List[int]


# ------------------------- serialize ------------------------- #


def _to_triples(cache: ComparisonCache, index_of: Dict[str, int]) -> List[Triple]:
    out: List[Triple] = []
    for id_a, id_b, winner in cache.entries():
        ia, ib, iw = index_of.get(id_a), index_of.get(id_b), index_of.get(winner)
        if ia is None or ib is None or iw is None:
            continue
        out.append([ia, ib, iw])
    return out


def serialize_choices(
    items: Sequence[Item],
    cache: ComparisonCache,
    history: Iterable[StateSnapshot],
    shuffled_ids: Sequence[str] = (),
    total_battles: int = 0,
    sorted_no: int = 0,
) -> Dict[str, Any]:
    """Index-transform the cache, the history and the shuffled order."""
    item_map = [item.id for item in items]
    index_of = {item_id: i for i, item_id in enumerate(item_map)}

    history_choices = [
        {
            "choices": _to_triples(snap.cache, index_of),
            "comparisonCount": snap.comparison_count,
            "sortedNo": snap.sorted_no,
            "totalBattles": snap.total_battles,
        }
        for snap in history
    ]
    shuffled = [index_of[i] for i in shuffled_ids if i in index_of]

    return {
        "itemMap": item_map,
        "choices": _to_triples(cache, index_of),
        "historyChoices": history_choices,
        "shuffledOrderIndexes": shuffled,
        "totalBattles": int(total_battles),
        "sortedNo": int(sorted_no),
    }


def serialize_state(items: Sequence[Item], state: SorterState) -> Dict[str, Any]:
    """Full optimized payload for an engine's state."""
    payload = serialize_choices(
        items,
        state.cache,
        state.history,
        state.shuffled_ids,
        state.total_battles,
        state.sorted_no,
    )
    index_of = {item_id: i for i, item_id in enumerate(payload["itemMap"])}
    payload["removedIndexes"] = sorted(index_of[i] for i in state.removed_ids if i in index_of)
    payload["completedComparisons"] = int(state.comparison_count)
    payload["optimized"] = True
    return payload


# ------------------------- deserialize ------------------------- #


def _int_or(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def _add_entry(cache: ComparisonCache, id_a: str, id_b: str, winner: str) -> None:
    try:
        cache.set(id_a, id_b, winner)
    except PairsortError:
        # winner outside the pair, or contradicts an earlier entry: drop this one
        pass


def _lookup(item_map: Sequence[Any], index: Any, present: set) -> Optional[str]:
    if isinstance(index, bool) or not isinstance(index, int):
        return None
    if not (0 <= index < len(item_map)):
        return None
    item_id = item_map[index]
    if not isinstance(item_id, str) or item_id not in present:
        return None
    return item_id


def _from_triples(raw: Any, item_map: Sequence[Any], present: set) -> ComparisonCache:
    cache = ComparisonCache()
    if not isinstance(raw, list):
        return cache
    for triple in raw:
        if not isinstance(triple, (list, tuple)) or len(triple) != 3:
            continue
        ids = [_lookup(item_map, k, present) for k in triple]
        if None in ids or ids[0] == ids[1]:
            continue
        _add_entry(cache, ids[0], ids[1], ids[2])
    return cache


def _indexes_to_ids(raw: Any, item_map: Sequence[Any], present: set) -> List[str]:
    if not isinstance(raw, list):
        return []
    out = []
    for k in raw:
        item_id = _lookup(item_map, k, present)
        if item_id is not None and item_id not in out:
            out.append(item_id)
    return out


def _deserialize_optimized(payload: Dict[str, Any], present: set) -> SorterState:
    item_map = payload.get("itemMap")
    if not isinstance(item_map, list):
        raise ValueError("optimized payload has no itemMap list")

    total_battles = _int_or(payload.get("totalBattles"), 0)
    cache = _from_triples(payload.get("choices"), item_map, present)

    history = HistoryStack()
    for entry in payload.get("historyChoices") or []:
        if not isinstance(entry, dict):
            continue
        history.push(
            StateSnapshot(
                cache=_from_triples(entry.get("choices"), item_map, present),
                comparison_count=_int_or(entry.get("comparisonCount"), 0),
                total_battles=_int_or(entry.get("totalBattles"), 0) or total_battles,
                sorted_no=_int_or(entry.get("sortedNo"), 0),
            )
        )

    return SorterState(
        cache=cache,
        history=history,
        comparison_count=_int_or(payload.get("completedComparisons"), len(cache)),
        total_battles=total_battles,
        sorted_no=_int_or(payload.get("sortedNo"), 0),
        shuffled_ids=_indexes_to_ids(payload.get("shuffledOrderIndexes"), item_map, present),
        removed_ids=set(_indexes_to_ids(payload.get("removedIndexes"), item_map, present)),
    )


def _legacy_entry(entry: Any) -> Optional[Tuple[str, str, str]]:
    if not isinstance(entry, (list, tuple)):
        return None
    if len(entry) == 2 and all(isinstance(x, str) for x in entry):
        try:
            id_a, id_b = split_key(entry[0])
        except ValueError:
            return None
        return id_a, id_b, entry[1]
    if len(entry) == 3 and all(isinstance(x, str) for x in entry):
        return entry[0], entry[1], entry[2]
    return None


def _legacy_cache(raw: Any, present: set) -> ComparisonCache:
    cache = ComparisonCache()
    if not isinstance(raw, list):
        return cache
    for entry in raw:
        parsed = _legacy_entry(entry)
        if parsed is None:
            continue
        id_a, id_b, winner = parsed
        if id_a in present and id_b in present and id_a != id_b:
            _add_entry(cache, id_a, id_b, winner)
    return cache


def _deserialize_legacy(payload: Dict[str, Any], present: set) -> SorterState:
    cache = _legacy_cache(payload.get("userChoicesArray"), present)
    history = HistoryStack()
    for entry in payload.get("stateHistoryArray") or []:
        if not isinstance(entry, dict):
            continue
        history.push(
            StateSnapshot(
                cache=_legacy_cache(entry.get("userChoicesArray"), present),
                comparison_count=_int_or(entry.get("comparisonCount"), 0),
                total_battles=0,
                sorted_no=0,
            )
        )
    return SorterState(
        cache=cache,
        history=history,
        comparison_count=_int_or(payload.get("completedComparisons"), len(cache)),
    )


def deserialize_state(payload: Dict[str, Any], items: Sequence[Item]) -> SorterState:
    """
    Rebuild engine state from an optimized or legacy payload.

    Only ids present in `items` survive. Raises ValueError if `payload` is
    not a dict or an optimized payload lacks its item map; individual bad
    entries are dropped silently.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"state payload must be a dict, got {type(payload).__name__}")
    present = {item.id for item in items}
    if payload.get("optimized"):
        return _deserialize_optimized(payload, present)
    return _deserialize_legacy(payload, present)


# ------------------------- text encoding ------------------------- #


def encode_payload(payload: Dict[str, Any]) -> str:
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(zlib.compress(raw, 9)).decode("ascii")


def decode_payload(text: str) -> Dict[str, Any]:
    """
    Inverse of `encode_payload`. Plain (uncompressed) JSON text is accepted
    too, since older sessions stored it that way.

    Raises
    ------
    ValueError
        If the text is neither.
    """
    stripped = text.strip()
    if stripped.startswith("{"):
        raw = stripped.encode("utf-8")
    else:
        try:
            raw = zlib.decompress(base64.urlsafe_b64decode(stripped.encode("ascii")))
        except (zlib.error, ValueError) as e:
            raise ValueError(f"cannot decode stored state: {e}") from e
    try:
        data = json.loads(raw.decode("utf-8"))
    except RecursionError as e:
        # pathologically nested JSON exhausts the parser stack
        raise ValueError("stored state is nested too deeply to parse") from e
    if not isinstance(data, dict):
        raise ValueError("stored state is not a JSON object")
    return data
