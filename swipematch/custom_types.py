"""Type definitions for the SwipeMatch engine."""

from typing import NewType

# Opaque identifiers; equality is plain string equality.
UserId = NewType("UserId", str)
MatchId = NewType("MatchId", str)

# Canonical (low, high) ordering of an unordered user pair.
PairKey = tuple[UserId, UserId]


def pair_key(user_a: str, user_b: str) -> PairKey:
    """Return the canonical key for an unordered pair of users."""
    if user_a <= user_b:
        return UserId(user_a), UserId(user_b)
    return UserId(user_b), UserId(user_a)
