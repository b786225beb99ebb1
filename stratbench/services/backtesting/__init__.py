"""
Backtesting engine for StratBench.

Components:
- BacktestEngine: Orchestrates fetch, fallback, simulation and aggregation
- DataLoader: Historical bar fetching with rate-limit retries
- SyntheticBarGenerator: Deterministic bars when the source cannot deliver
- TradeSimulator: Per ticker-day entries and exits
- EquityTracker: Daily equity, drawdown and monthly returns
- PerformanceAnalyzer: Win rate, Sharpe, drawdown, etc.
"""

from .engine import BacktestEngine, BacktestState, trading_days
from .data_loader import DataLoader, MarketBar, BarSource, TickerData, LoadedData
from .sequence import DeterministicSequence
from .synthetic import SyntheticBarGenerator
from .simulator import TradeSimulator, Position
from .portfolio import EquityTracker
from .metrics import PerformanceAnalyzer

__all__ = [
    "BacktestEngine",
    "BacktestState",
    "trading_days",
    "DataLoader",
    "MarketBar",
    "BarSource",
    "TickerData",
    "LoadedData",
    "DeterministicSequence",
    "SyntheticBarGenerator",
    "TradeSimulator",
    "Position",
    "EquityTracker",
    "PerformanceAnalyzer",
]
