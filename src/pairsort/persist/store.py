"""
Durable string key-value storage for sort progress.

The engine never touches storage itself; the caller's save callback goes
through `save_state` and a fresh engine is seeded through `load_state`.

Public API (stable):
    KeyValueStore            protocol: get / set / delete
    MemoryStore              dict-backed, for tests and short-lived sessions
    JsonFileStore(path)      one JSON object on disk, atomically replaced
    progress_key(sorter_id, filter_slugs) -> str
    save_state(store, key, items, state) -> bool
    load_state(store, key, items) -> SorterState | None
    clear_state(store, key) -> None

Keys are per (sorter, filter selection), so different filtered subsets of
the same item pool never collide:
    progress:<sorterId>:<slugs sorted and joined with "-", or "all">
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol, Sequence, Union

from ..engine.sorter import SorterState
from ..items import Item
from .codec import decode_payload, deserialize_state, encode_payload, serialize_state

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "progress_key",
    "save_state",
    "load_state",
    "clear_state",
]

log = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self) -> None:
        self.data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """
    All keys in a single JSON object file.

    Writes go to a temp file in the same directory followed by os.replace,
    so a crash mid-write leaves the previous file intact.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, separators=(",", ":"))
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


def progress_key(sorter_id: str, filter_slugs: Iterable[str] = ()) -> str:
    slugs = sorted(filter_slugs)
    suffix = "-".join(slugs) if slugs else "all"
    return f"progress:{sorter_id}:{suffix}"


def save_state(store: KeyValueStore, key: str, items: Sequence[Item], state: SorterState) -> bool:
    """
    Serialize, encode and store `state`. Storage failures (quota, disk,
    permissions) are logged and reported as False, never raised.
    """
    text = encode_payload(serialize_state(items, state))
    try:
        store.set(key, text)
    except (OSError, ValueError) as e:
        log.warning("could not persist progress under %r: %s", key, e)
        return False
    return True


def load_state(store: KeyValueStore, key: str, items: Sequence[Item]) -> Optional[SorterState]:
    """
    Read back a stored state for `items`.

    Anything that fails to read, decompress or parse is treated as "no
    saved state": a warning is logged and None returned.
    """
    try:
        text = store.get(key)
        if not text:
            return None
        return deserialize_state(decode_payload(text), items)
    except (OSError, ValueError, TypeError, KeyError) as e:
        log.warning("discarding unreadable saved progress under %r: %s", key, e)
        return None


def clear_state(store: KeyValueStore, key: str) -> None:
    try:
        store.delete(key)
    except (OSError, ValueError) as e:
        log.warning("could not clear saved progress under %r: %s", key, e)
