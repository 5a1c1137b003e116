"""
Datasets package public API.

Re-export the item generator so callers can write:
    from pairsort.datasets import make_items, SUPPORTED_DISTS
"""

from .generators import ID_STYLES, SUPPORTED_DISTS, make_items

__all__ = ["make_items", "SUPPORTED_DISTS", "ID_STYLES"]
