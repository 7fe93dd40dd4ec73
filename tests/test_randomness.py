"""Tests for obscura.randomness — SystemRandom and SequenceRandom."""

import pytest

from obscura.randomness import (
    RandomSourceExhausted,
    SequenceRandom,
    SystemRandom,
    roll_percentile,
)


class TestSystemRandom:
    def test_values_stay_in_closed_range(self) -> None:
        rng = SystemRandom(seed=7)
        values = {rng.roll_uniform(1, 6) for _ in range(500)}
        assert values == {1, 2, 3, 4, 5, 6}

    def test_same_seed_same_sequence(self) -> None:
        a = SystemRandom(seed=42)
        b = SystemRandom(seed=42)
        assert [a.roll_uniform(1, 100) for _ in range(20)] == [
            b.roll_uniform(1, 100) for _ in range(20)
        ]

    def test_reseed_restarts_sequence(self) -> None:
        rng = SystemRandom(seed=3)
        first = [rng.roll_uniform(1, 100) for _ in range(5)]
        rng.reseed(3)
        assert [rng.roll_uniform(1, 100) for _ in range(5)] == first

    def test_single_value_range(self) -> None:
        assert SystemRandom().roll_uniform(5, 5) == 5

    def test_empty_range_rejected(self) -> None:
        with pytest.raises(ValueError):
            SystemRandom().roll_uniform(10, 1)


class TestSequenceRandom:
    def test_returns_values_in_order(self) -> None:
        rng = SequenceRandom([3, 1, 4])
        assert [rng.roll_uniform(1, 6) for _ in range(3)] == [3, 1, 4]
        assert rng.remaining == 0

    def test_exhausted_raises(self) -> None:
        rng = SequenceRandom([1])
        rng.roll_uniform(1, 6)
        with pytest.raises(RandomSourceExhausted):
            rng.roll_uniform(1, 6)

    def test_out_of_range_value_raises(self) -> None:
        rng = SequenceRandom([7])
        with pytest.raises(ValueError, match="outside"):
            rng.roll_uniform(1, 6)


def test_roll_percentile_uses_d100_range():
    rng = SequenceRandom([100, 1])
    assert roll_percentile(rng) == 100
    assert roll_percentile(rng) == 1
