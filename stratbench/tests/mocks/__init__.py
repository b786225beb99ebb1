"""
StratBench Test Mocks Package
=============================
Mock implementations for external collaborators used in testing.

This package provides:
- MockBarSource: Mock implementation of the BarSource protocol
- FakeSleep: Awaitable sleep that records waits instead of waiting
- Bar factories: Minute bars and whole sessions with controlled prices/volumes
- Strategy builders: Strategies with predictable costs
"""

from .bar_source_mock import (
    MockBarSource,
    FakeSleep,
    create_mock_bar,
    create_session_bars,
    create_burst_session,
)
from .fixtures import make_strategy

__all__ = [
    "MockBarSource",
    "FakeSleep",
    "create_mock_bar",
    "create_session_bars",
    "create_burst_session",
    "make_strategy",
]
