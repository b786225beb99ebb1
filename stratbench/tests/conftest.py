"""
StratBench Test Configuration
=============================
Shared pytest fixtures and configuration for all tests.

This file is automatically loaded by pytest and provides:
- Backtest configuration fixtures (singleton reset between tests)
- Mock bar source and fake sleep fixtures
- Strategy fixtures for each entry family
- Sample session fixtures (flat, burst)
"""
import pytest
from datetime import date
from typing import List

from stratbench.config import BacktestConfig, reset_backtest_config
from stratbench.models.strategy import Strategy, StrategyType
from stratbench.services.backtesting.data_loader import MarketBar

from stratbench.tests.mocks.fixtures import make_strategy
from stratbench.tests.mocks.bar_source_mock import (
    MockBarSource,
    FakeSleep,
    create_session_bars,
    create_burst_session,
)


# ============================================================
# Pytest Configuration
# ============================================================

def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


# ============================================================
# Configuration Fixtures
# ============================================================

@pytest.fixture(autouse=True)
def _reset_config():
    """Drop the shared BacktestConfig so env overrides never leak between tests."""
    reset_backtest_config()
    yield
    reset_backtest_config()


@pytest.fixture
def backtest_config() -> BacktestConfig:
    """
    Default backtest configuration with explicit values.

    Returns:
        BacktestConfig independent of BACKTEST_* environment variables
    """
    return BacktestConfig(
        request_delay_seconds=0.1,
        max_fetch_retries=3,
        backoff_base_seconds=1.0,
        http_timeout_seconds=30.0,
        half_spread=0.005,
        risk_free_rate=0.02,
        periods_per_year=252,
        session_bars=390,
        single_session_multiplier=0.1,
        synthetic_base_volume=150000,
        synthetic_bar_volatility=0.003,
    )


# ============================================================
# Mock Service Fixtures
# ============================================================

@pytest.fixture
def mock_bar_source() -> MockBarSource:
    """
    Create a mock bar source with no bars configured.

    Returns:
        MockBarSource instance
    """
    return MockBarSource()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    """
    Awaitable sleep that records waits.

    Returns:
        FakeSleep instance; inspect `.calls` for requested waits
    """
    return FakeSleep()


# ============================================================
# Strategy Fixtures
# ============================================================

@pytest.fixture
def microscalping_strategy() -> Strategy:
    """Microscalping strategy on AAPL with clean costs."""
    return make_strategy(StrategyType.MICROSCALPING, strategy_id="micro-1")


@pytest.fixture
def momentum_strategy() -> Strategy:
    """Momentum strategy on AAPL using family default sizing and levels."""
    return Strategy(id="momentum-1", name="Momentum", type=StrategyType.MOMENTUM, tickers=["AAPL"])


@pytest.fixture
def mean_reversion_strategy() -> Strategy:
    """Mean-reversion strategy on MSFT and NVDA using family defaults."""
    return Strategy(
        id="meanrev-1",
        name="Mean Reversion",
        type=StrategyType.MEAN_REVERSION,
        tickers=["MSFT", "NVDA"],
    )


# ============================================================
# Session Fixtures
# ============================================================

@pytest.fixture
def trading_day() -> date:
    """A Wednesday."""
    return date(2024, 3, 6)


@pytest.fixture
def flat_session(trading_day: date) -> List[MarketBar]:
    """
    30 bars flat at 100.0 on constant volume.

    No strategy family can enter on this session.
    """
    return create_session_bars(trading_day, [100.0] * 30)


@pytest.fixture
def burst_session(trading_day: date) -> List[MarketBar]:
    """
    Flat session with a volume burst on bar 20 and a rally to 103 after it.

    Returns:
        List of MarketBar; bar 20 triggers an entry, bar 21 hits a 2% target
    """
    return create_burst_session(trading_day, burst_close=100.5, after=[103.0] * 4)
