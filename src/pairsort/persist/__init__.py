"""
Persistence public API.

Re-exports:
    - Codec:  serialize_choices, serialize_state, deserialize_state,
              encode_payload, decode_payload
    - Store:  KeyValueStore, MemoryStore, JsonFileStore, progress_key,
              save_state, load_state, clear_state
"""

from .codec import (
    decode_payload,
    deserialize_state,
    encode_payload,
    serialize_choices,
    serialize_state,
)
from .store import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    clear_state,
    load_state,
    progress_key,
    save_state,
)

__all__ = [
    "serialize_choices",
    "serialize_state",
    "deserialize_state",
    "encode_payload",
    "decode_payload",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "progress_key",
    "save_state",
    "load_state",
    "clear_state",
]
