"""
Unit Tests for the Deterministic Sequence
=========================================
Run with: pytest stratbench/tests/unit/test_sequence.py -v
"""
import pytest
from datetime import date

from stratbench.models.strategy import Strategy, StrategyType
from stratbench.services.backtesting.sequence import (
    DeterministicSequence,
    MODULUS,
    MULTIPLIER,
    INCREMENT,
)


@pytest.fixture
def strategies():
    return [
        Strategy(id="micro-1", type=StrategyType.MICROSCALPING, tickers=["AAPL", "TSLA"]),
        Strategy(id="meanrev-1", type=StrategyType.MEAN_REVERSION, tickers=["MSFT"]),
    ]


class TestNextFloat:
    """LCG stream"""

    def test_first_value_from_seed(self):
        seq = DeterministicSequence(42)
        expected_state = (42 * MULTIPLIER + INCREMENT) % MODULUS
        assert seq.next_float() == expected_state / MODULUS

    def test_same_seed_same_stream(self):
        a = DeterministicSequence(12345)
        b = DeterministicSequence(12345)
        assert [a.next_float() for _ in range(100)] == [b.next_float() for _ in range(100)]

    def test_different_seeds_differ(self):
        a = DeterministicSequence(1)
        b = DeterministicSequence(2)
        assert [a.next_float() for _ in range(10)] != [b.next_float() for _ in range(10)]

    def test_values_in_unit_interval(self):
        seq = DeterministicSequence(7)
        for _ in range(1000):
            value = seq.next_float()
            assert 0.0 <= value < 1.0

    def test_uniform_and_randint_bounds(self):
        seq = DeterministicSequence(99)
        for _ in range(500):
            assert 20.0 <= seq.uniform(20.0, 200.0) < 200.0
            assert 1 <= seq.randint(1, 6) <= 6


class TestSeedFor:
    """Seed derivation from run inputs"""

    def test_stable(self, strategies):
        seed_a = DeterministicSequence.seed_for(strategies, date(2024, 1, 2), date(2024, 1, 31), 50000)
        seed_b = DeterministicSequence.seed_for(strategies, date(2024, 1, 2), date(2024, 1, 31), 50000)
        assert seed_a == seed_b
        assert 0 <= seed_a < MODULUS

    def test_depends_on_inputs(self, strategies):
        base = DeterministicSequence.seed_for(strategies, date(2024, 1, 2), date(2024, 1, 31), 50000)

        assert base != DeterministicSequence.seed_for(strategies, date(2024, 1, 3), date(2024, 1, 31), 50000)
        assert base != DeterministicSequence.seed_for(strategies, date(2024, 1, 2), date(2024, 1, 31), 50000.01)
        assert base != DeterministicSequence.seed_for(strategies[:1], date(2024, 1, 2), date(2024, 1, 31), 50000)
