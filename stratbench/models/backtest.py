"""
Backtest result models
Trades, equity curve points, and the performance report handed to the presentation layer
"""
from pydantic import BaseModel, ConfigDict
from typing import List
import datetime as dt
from enum import Enum


# ============== Enums ==============

class ExitReason(str, Enum):
    """Why a simulated position was closed"""
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TIME_EXIT = "time_exit"
    TRAILING_STOP = "trailing_stop"


class BacktestMode(str, Enum):
    """Single session runs synthesize a fraction of a full session's activity"""
    SINGLE = "single"
    MULTI = "multi"


class DataSource(str, Enum):
    """Where a result's bars came from"""
    MARKET = "market"        # Every ticker from the bar source
    SYNTHETIC = "synthetic"  # Every ticker synthesized
    MIXED = "mixed"          # Some tickers synthesized


# ============== Trade Log ==============

class Trade(BaseModel):
    """A completed round trip. Created when a position closes."""
    model_config = ConfigDict(frozen=True)

    id: str
    ticker: str
    entry_time: dt.datetime
    exit_time: dt.datetime
    entry_price: float
    exit_price: float
    quantity: int
    pnl: float
    pnl_percent: float
    fees: float
    slippage: float
    reason: ExitReason
    hold_time: float  # minutes


# ============== Curves ==============

class EquityPoint(BaseModel):
    """Equity at the end of one trading day"""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    equity: float
    return_pct: float  # cumulative, vs starting capital


class DrawdownPoint(BaseModel):
    """Decline from the running equity peak at the end of one trading day"""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    drawdown: float  # percent
    peak: float


class MonthlyReturn(BaseModel):
    """Equity change and trade count for one calendar month"""
    model_config = ConfigDict(frozen=True)

    month: str  # YYYY-MM
    return_pct: float
    trades: int


# ============== Report ==============

class PerformanceMetrics(BaseModel):
    """
    Performance report for one strategy run.

    Percent fields: total_return, annualized_return, max_drawdown,
    win_rate, volatility. Dollar fields: avg_trade_return, best_trade,
    worst_trade. Every field is finite.
    """
    model_config = ConfigDict(frozen=True)

    total_return: float
    annualized_return: float
    sharpe_ratio: float
    sortino_ratio: float
    calmar_ratio: float
    max_drawdown: float
    win_rate: float
    profit_factor: float
    total_trades: int
    avg_trade_return: float
    best_trade: float
    worst_trade: float
    avg_hold_time: float  # minutes
    volatility: float

    @classmethod
    def empty(cls) -> "PerformanceMetrics":
        """All-zero metrics for runs without trades"""
        return cls(
            total_return=0.0,
            annualized_return=0.0,
            sharpe_ratio=0.0,
            sortino_ratio=0.0,
            calmar_ratio=0.0,
            max_drawdown=0.0,
            win_rate=0.0,
            profit_factor=0.0,
            total_trades=0,
            avg_trade_return=0.0,
            best_trade=0.0,
            worst_trade=0.0,
            avg_hold_time=0.0,
            volatility=0.0,
        )


class BacktestResult(BaseModel):
    """Everything the presentation layer gets for one strategy"""
    model_config = ConfigDict(frozen=True)

    strategy_id: str
    capital: float
    start_date: dt.date
    end_date: dt.date
    performance: PerformanceMetrics
    trades: List[Trade] = []
    equity_curve: List[EquityPoint] = []
    drawdown_curve: List[DrawdownPoint] = []
    monthly_returns: List[MonthlyReturn] = []
    data_source: DataSource = DataSource.MARKET
    synthetic_tickers: List[str] = []
