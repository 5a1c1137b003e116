"""
Exception types raised by the ranking engine.

All of them subclass ValueError so callers that already guard input
validation with `except ValueError` keep working.
"""

from __future__ import annotations

__all__ = ["PairsortError", "InvalidChoiceError", "ConflictingChoiceError"]


class PairsortError(ValueError):
    """Base class for engine errors."""


class InvalidChoiceError(PairsortError):
    """The oracle answered with an id that is not one of the two presented items."""

    def __init__(self, winner_id: object, id_a: str, id_b: str) -> None:
        super().__init__(
            f"winner {winner_id!r} is not one of the compared items ({id_a!r}, {id_b!r})"
        )
        self.winner_id = winner_id
        self.pair = (id_a, id_b)


class ConflictingChoiceError(PairsortError):
    """A different winner was recorded for a pair whose outcome is already known."""
