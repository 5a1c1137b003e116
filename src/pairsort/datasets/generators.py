"""
Synthetic item sets for simulated ranking sessions.

Each generator returns the items in *presentation order* together with a
hidden score per item id. A `ScoreOracle` built from the scores plays the
user: higher score wins, ties go to the lexicographically smaller id.

Currently implemented:
- dist == "random":
    Integer scores drawn uniformly from an inclusive range.

- dist == "nearly_sorted":
    Presentation order is already best-first; then ceil(swap_frac * n)
    random score swaps degrade it.

- dist == "few_uniques":
    Only up to k distinct scores, so many pairs tie and fall back to the id
    tie-break.

- dist == "reversed":
    Presentation order is worst-first: item i has score i.

Public API (stable):
    make_items(n: int, spec: dict, rng: numpy.random.Generator)
        -> tuple[list[Item], dict[str, int]]

Conventions:
- params["id_style"] is "seq" (default, ids "item-0000", ...) or "uuid"
  (random v4 UUIDs from `rng`, the shape real sorters use).
- The caller supplies the RNG (for reproducibility across runs).
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Tuple

import numpy as np

from ..items import Item

SUPPORTED_DISTS = {
    "random",
    "nearly_sorted",
    "few_uniques",
    "reversed",
}
ID_STYLES = {"seq", "uuid"}
__all__ = ["SUPPORTED_DISTS", "ID_STYLES", "make_items"]


def make_items(
    n: int, spec: Dict[str, Any], rng: np.random.Generator
) -> Tuple[List[Item], Dict[str, int]]:
    """
    Generate `n` items and their hidden scores according to `spec`.

    Parameters
    ----------
    n : int
        Number of items. Must be >= 0.
    spec : dict
        {"dist": <one of SUPPORTED_DISTS>, "params": {...}}

        Random:       {"range": [min_int, max_int]}   # optional, inclusive; default [0, 1000000]
        Nearly-sorted:{"swap_frac": 0.05}             # in [0.0, 1.0]
        Few-uniques:  {"k": 3}                        # >= 1
        Reversed:     {}
        Any dist may add {"id_style": "seq" | "uuid"}.
    rng : numpy.random.Generator
        Random number generator owned by the caller.

    Returns
    -------
    (items, scores)

    Raises
    ------
    ValueError
        If inputs are invalid or the distribution is unsupported.
    """
    _validate_n(n)

    if not isinstance(spec, dict):
        raise ValueError("spec must be a dict")

    dist = spec.get("dist", None)
    if dist not in SUPPORTED_DISTS:
        raise ValueError(
            f"Unsupported dataset dist: {dist!r}. Supported: {sorted(SUPPORTED_DISTS)}"
        )

    params = spec.get("params", {}) or {}
    ids = _make_ids(n, params, rng)

    if dist == "random":
        lo, hi = _parse_optional_inclusive_range(params, default=(0, 1_000_000))
        if n == 0:
            return [], {}
        scores = rng.integers(lo, hi + 1, size=n, dtype=np.int64).tolist()

    elif dist == "nearly_sorted":
        swap_frac = _parse_swap_frac(params)
        scores = list(range(n - 1, -1, -1))
        num_swaps = int(np.ceil(swap_frac * n))
        if n > 0 and num_swaps > 0:
            idxs = rng.integers(0, n, size=2 * num_swaps)
            for k in range(num_swaps):
                i = int(idxs[2 * k])
                j = int(idxs[2 * k + 1])
                # i == j is a no-op; effective swaps may be fewer than requested
                scores[i], scores[j] = scores[j], scores[i]

    elif dist == "few_uniques":
        k = _parse_k(params)
        if n == 0:
            return [], {}
        actual_k = int(min(k, n))
        scores = rng.integers(0, actual_k, size=n).tolist()

    else:  # reversed
        scores = list(range(n))

    items = [Item(id=item_id, title=f"Item {i}") for i, item_id in enumerate(ids)]
    return items, {item_id: int(s) for item_id, s in zip(ids, scores)}


# ------------------------- helpers ------------------------- #


def _validate_n(n: int) -> None:
    if not isinstance(n, int):
        raise ValueError("n must be an int")
    if n < 0:
        raise ValueError("n must be nonnegative")


def _make_ids(n: int, params: Dict[str, Any], rng: np.random.Generator) -> List[str]:
    style = params.get("id_style", "seq")
    if style not in ID_STYLES:
        raise ValueError(f"id_style must be one of {sorted(ID_STYLES)}; got {style!r}")
    if style == "seq":
        return [f"item-{i:04d}" for i in range(n)]
    out: List[str] = []
    seen = set()
    while len(out) < n:
        candidate = str(uuid.UUID(bytes=rng.bytes(16), version=4))
        if candidate not in seen:
            seen.add(candidate)
            out.append(candidate)
    return out


def _parse_optional_inclusive_range(
    params: Dict[str, Any], default: Tuple[int, int]
) -> Tuple[int, int]:
    """
    Parse an optional inclusive integer range from params.
    If not present, return `default`.
    """
    if "range" not in params:
        return default
    spec = params["range"]
    if not isinstance(spec, (list, tuple)) or len(spec) != 2:
        raise ValueError("params.range must be a 2-element list/tuple [min, max]")
    lo_raw, hi_raw = spec
    if not _is_int_like(lo_raw) or not _is_int_like(hi_raw):
        raise ValueError("params.range values must be integers")
    lo, hi = int(lo_raw), int(hi_raw)
    if lo > hi:
        raise ValueError(f"params.range invalid: min > max ({lo} > {hi})")
    return lo, hi


def _parse_swap_frac(params: Dict[str, Any]) -> float:
    """
    Parse and validate swap_frac in [0.0, 1.0] for nearly_sorted.
    Default to 0.05 if not provided.
    """
    val = params.get("swap_frac", 0.05)
    try:
        x = float(val)
    except (TypeError, ValueError) as e:
        raise ValueError(
            f"nearly_sorted.params.swap_frac must be a float in [0.0, 1.0]; got {val!r}"
        ) from e
    if not (0.0 <= x <= 1.0):
        raise ValueError(
            f"nearly_sorted.params.swap_frac must be in [0.0, 1.0]; got {x}"
        )
    return x


def _parse_k(params: Dict[str, Any]) -> int:
    """
    Parse and validate k (desired #distinct scores) for few_uniques.
    Must be an integer >= 1.
    """
    if "k" not in params:
        raise ValueError("few_uniques.params.k must be provided (int >= 1)")
    k = params["k"]
    if not isinstance(k, int) or k < 1:
        raise ValueError(f"few_uniques.params.k must be an integer >= 1; got {k!r}")
    return k


def _is_int_like(x: Any) -> bool:
    # Accept Python ints and NumPy integer types
    return isinstance(x, (int, np.integer))
