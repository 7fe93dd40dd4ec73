"""Randomness source — uniform integers in a closed range.

Every resolver takes its draws from an injected source matching:

    def roll_uniform(self, low: int, high: int) -> int: ...

Two implementations are provided:

    SystemRandom   — wraps a private random.Random instance. Seedable, so a
                     session can be replayed, and isolated from the global
                     random module state.
    SequenceRandom — hands out a fixed sequence of values. Used by tests
                     (and anywhere a roll must be reproduced exactly).
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from typing import Protocol

logger = logging.getLogger(__name__)

PERCENTILE_LOW = 1
PERCENTILE_HIGH = 100


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class RandomSource(Protocol):
    def roll_uniform(self, low: int, high: int) -> int: ...


def roll_percentile(source: RandomSource) -> int:
    """Draw one d100 value in [1, 100]."""
    return source.roll_uniform(PERCENTILE_LOW, PERCENTILE_HIGH)


# ---------------------------------------------------------------------------
# SystemRandom
# ---------------------------------------------------------------------------

class SystemRandom:
    """Uniform draws from a per-instance Mersenne Twister.

    Args:
        seed: Optional seed. None seeds from the OS.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def reseed(self, seed: int | None = None) -> None:
        self._rng.seed(seed)

    def roll_uniform(self, low: int, high: int) -> int:
        if low > high:
            raise ValueError(f"Empty range [{low}, {high}]")
        return self._rng.randint(low, high)


# ---------------------------------------------------------------------------
# SequenceRandom
# ---------------------------------------------------------------------------

class SequenceRandom:
    """Returns the given values in order. No randomness at all.

    Each value must fall inside the range requested by the caller; a value
    outside it (or running out of values) is a bug in the test that set up
    the sequence, so it raises instead of silently wrapping.
    """

    def __init__(self, values: Iterable[int]) -> None:
        self._values = list(values)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._values) - self._pos

    def roll_uniform(self, low: int, high: int) -> int:
        if self._pos >= len(self._values):
            raise RandomSourceExhausted(
                f"SequenceRandom ran out after {len(self._values)} values"
            )
        value = self._values[self._pos]
        self._pos += 1
        if not low <= value <= high:
            raise ValueError(f"Scripted value {value} outside [{low}, {high}]")
        logger.debug("SequenceRandom draw=%d range=[%d, %d]", value, low, high)
        return value


class RandomSourceExhausted(RuntimeError):
    """Raised when a SequenceRandom has no values left."""
