"""
Items and comparison keys.

Public API (stable):
    Item(id, title, image_url=None)
    comparison_key(a, b) -> str
    split_key(key) -> tuple[str, str]
    coerce_items(seq) -> list[Item]

Conventions:
- Item ids are unique within a session; the engine never mutates items.
- A comparison key is the two ids sorted and joined with KEY_DELIMITER,
  so key(a, b) == key(b, a).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

KEY_DELIMITER = ","

__all__ = ["KEY_DELIMITER", "Item", "comparison_key", "split_key", "coerce_items"]


@dataclass(frozen=True)
class Item:
    id: str
    title: str
    image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        if "id" not in data:
            raise ValueError(f"item is missing an 'id': {data!r}")
        item_id = str(data["id"])
        return cls(
            id=item_id,
            title=str(data.get("title", item_id)),
            image_url=data.get("imageUrl", data.get("image_url")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id, "title": self.title}
        if self.image_url is not None:
            out["imageUrl"] = self.image_url
        return out


def _as_id(x: Union[Item, str]) -> str:
    return x.id if isinstance(x, Item) else str(x)


def comparison_key(a: Union[Item, str], b: Union[Item, str]) -> str:
    """Return the canonical, order-independent key for the pair (a, b)."""
    id_a, id_b = _as_id(a), _as_id(b)
    if id_b < id_a:
        id_a, id_b = id_b, id_a
    return f"{id_a}{KEY_DELIMITER}{id_b}"


def split_key(key: str) -> Tuple[str, str]:
    """
    Inverse of `comparison_key` for ids that do not contain the delimiter.

    Only used to read legacy payloads, which store the joined key.
    """
    parts = key.split(KEY_DELIMITER)
    if len(parts) != 2:
        raise ValueError(f"not a comparison key: {key!r}")
    return parts[0], parts[1]


def coerce_items(seq: Iterable[Union[Item, Dict[str, Any]]]) -> List[Item]:
    """
    Normalise a sequence of Items / plain dicts into a list of Items.

    Raises
    ------
    ValueError
        If an id occurs twice.
    """
    out: List[Item] = []
    seen = set()
    for raw in seq:
        item = raw if isinstance(raw, Item) else Item.from_dict(raw)
        if item.id in seen:
            raise ValueError(f"duplicate item id: {item.id!r}")
        seen.add(item.id)
        out.append(item)
    return out
