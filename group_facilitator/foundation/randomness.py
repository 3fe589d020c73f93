"""Injectable pseudo-random source.

Probabilistic choices (distress sampling, routine interventions, canned
message selection) draw from a RandomSource so tests can pin outcomes.
``random.Random`` satisfies the protocol.
"""

from __future__ import annotations

import random
from typing import Protocol, Sequence, TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    def random(self) -> float:
        """Return a float in [0.0, 1.0)."""
        ...

    def choice(self, seq: Sequence[T]) -> T:
        """Return one element of a non-empty sequence."""
        ...


def default_random() -> RandomSource:
    """A fresh, OS-seeded generator."""
    return random.Random()
