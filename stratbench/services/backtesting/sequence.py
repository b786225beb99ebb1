"""
Deterministic pseudo-random sequence for the synthetic fallback.

Integer-only linear congruential arithmetic, so the same seed gives the same
stream on every platform and every run. Never touches an entropy source.
"""

from datetime import date
from typing import Iterable

from stratbench.models.strategy import Strategy

MODULUS = 2147483647
MULTIPLIER = 1664525
INCREMENT = 1013904223


def _string_hash(value: str) -> int:
    """Stable string hash (Python's hash() is salted per process)."""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) % MODULUS
    return h


class DeterministicSequence:
    """
    Reproducible stream of floats in [0, 1).

    One instance is scoped to one engine run; its state is never shared
    across runs.
    """

    def __init__(self, seed: int):
        self.seed = seed % MODULUS
        self._state = self.seed

    @staticmethod
    def seed_for(
        strategies: Iterable[Strategy],
        start_date: date,
        end_date: date,
        capital: float
    ) -> int:
        """
        Derive a seed from everything that defines a backtest run.

        Args:
            strategies: Strategies in run order
            start_date: First day of the range
            end_date: Last day of the range
            capital: Starting capital (folded in as whole cents)

        Returns:
            Seed in [0, MODULUS)
        """
        strategy_hash = 0
        for strategy in strategies:
            strategy_hash = (strategy_hash + _string_hash(strategy.id) + len(strategy.tickers)) % MODULUS

        date_hash = start_date.toordinal() + end_date.toordinal()
        capital_cents = int(round(capital * 100))

        return (strategy_hash + date_hash + capital_cents) % MODULUS

    def next_float(self) -> float:
        """Advance the generator and return a value in [0, 1)."""
        self._state = (self._state * MULTIPLIER + INCREMENT) % MODULUS
        return self._state / MODULUS

    def uniform(self, low: float, high: float) -> float:
        """Value in [low, high)."""
        return low + (high - low) * self.next_float()

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high] inclusive."""
        return low + int(self.next_float() * (high - low + 1))
