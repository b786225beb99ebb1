"""
Pydantic models for strategies and backtest results
"""
from .strategy import (
    StrategyType,
    Strategy,
    StrategyParameters,
    PercentOfEquitySizing,
    FixedRiskSizing,
    PercentLevels,
    DollarLevels,
    ATRLevels,
    EntryConditions,
    ExitConditions,
    TradingHours,
)
from .backtest import (
    ExitReason,
    BacktestMode,
    DataSource,
    Trade,
    EquityPoint,
    DrawdownPoint,
    MonthlyReturn,
    PerformanceMetrics,
    BacktestResult,
)

__all__ = [
    "StrategyType",
    "Strategy",
    "StrategyParameters",
    "PercentOfEquitySizing",
    "FixedRiskSizing",
    "PercentLevels",
    "DollarLevels",
    "ATRLevels",
    "EntryConditions",
    "ExitConditions",
    "TradingHours",
    "ExitReason",
    "BacktestMode",
    "DataSource",
    "Trade",
    "EquityPoint",
    "DrawdownPoint",
    "MonthlyReturn",
    "PerformanceMetrics",
    "BacktestResult",
]
