"""
Performance metrics calculation for backtesting.

Reduces a trade log and daily equity curve into win rate, Sharpe ratio,
max drawdown, etc. Every degenerate case (no trades, no losses, flat equity)
resolves to 0 so the report is always finite.
"""

import math
import logging
from datetime import date
from typing import List, Optional

from stratbench.config import BacktestConfig, get_backtest_config
from stratbench.models.backtest import Trade, EquityPoint, PerformanceMetrics

logger = logging.getLogger(__name__)


def _finite(value: float, digits: int = 4) -> float:
    """Round, collapsing NaN and infinities to 0."""
    if not math.isfinite(value):
        return 0.0
    return round(value, digits)


class PerformanceAnalyzer:
    """
    Calculate performance metrics from backtest results.
    """

    @classmethod
    def calculate(
        cls,
        trades: List[Trade],
        equity_curve: List[EquityPoint],
        capital: float,
        start_date: date,
        end_date: date,
        config: Optional[BacktestConfig] = None
    ) -> PerformanceMetrics:
        """
        Calculate all performance metrics.

        Args:
            trades: Closed trades of the run
            equity_curve: One point per trading day
            capital: Starting capital
            start_date: First day of the run
            end_date: Last day of the run
            config: Supplies the risk-free rate (defaults to the shared instance)

        Returns:
            PerformanceMetrics; PerformanceMetrics.empty() when there are no trades
        """
        if not trades:
            return PerformanceMetrics.empty()

        config = config or get_backtest_config()

        equities = [p.equity for p in equity_curve]
        final_equity = equities[-1] if equities else capital

        # Returns
        total_return = (final_equity - capital) / capital * 100
        annualized_return = cls._calculate_annualized_return(total_return, start_date, end_date)

        # Risk metrics
        returns = cls._calculate_period_returns(equities, capital)
        mean_return = sum(returns) / len(returns) if returns else 0.0
        std_return = cls._std(returns, mean_return)

        max_drawdown = cls._calculate_max_drawdown(equities, capital)
        sharpe = cls._calculate_sharpe_ratio(mean_return, std_return, config.risk_free_rate_per_period)
        sortino = cls._calculate_sortino_ratio(returns, mean_return)
        calmar = annualized_return / max_drawdown if max_drawdown > 0 else 0.0

        # Trade metrics
        pnls = [t.pnl for t in trades]
        winners = [p for p in pnls if p > 0]
        losers = [p for p in pnls if p < 0]

        gross_profit = sum(winners)
        gross_loss = abs(sum(losers))
        # No losing trades reads as 0, not infinity
        profit_factor = gross_profit / gross_loss if gross_loss > 0 else 0.0

        return PerformanceMetrics(
            total_return=_finite(total_return),
            annualized_return=_finite(annualized_return),
            sharpe_ratio=_finite(sharpe),
            sortino_ratio=_finite(sortino),
            calmar_ratio=_finite(calmar),
            max_drawdown=_finite(max_drawdown),
            win_rate=_finite(len(winners) / len(trades) * 100),
            profit_factor=_finite(profit_factor),
            total_trades=len(trades),
            avg_trade_return=_finite(sum(pnls) / len(pnls)),
            best_trade=_finite(max(pnls)),
            worst_trade=_finite(min(pnls)),
            avg_hold_time=_finite(sum(t.hold_time for t in trades) / len(trades)),
            volatility=_finite(std_return * 100),
        )

    @classmethod
    def _calculate_max_drawdown(cls, equities: List[float], capital: float) -> float:
        """
        Calculate maximum drawdown percentage.

        Max drawdown is the largest peak-to-trough decline. The peak starts at
        capital, so a loss on the first day counts.
        """
        peak = capital
        max_dd = 0.0

        for equity in equities:
            if equity > peak:
                peak = equity
            if peak > 0:
                max_dd = max(max_dd, (peak - equity) / peak * 100)

        return max_dd

    @classmethod
    def _calculate_annualized_return(cls, total_return_pct: float, start_date: date, end_date: date) -> float:
        """Calculate annualized return percentage: (1 + total)^(365/days) - 1."""
        days = (end_date - start_date).days
        if days <= 0:
            return 0.0

        growth = 1 + total_return_pct / 100
        if growth <= 0:
            return -100.0

        try:
            return (growth ** (365 / days) - 1) * 100
        except OverflowError:
            logger.debug(f"Annualized return overflowed for {days} days, reporting 0")
            return 0.0

    @classmethod
    def _calculate_sharpe_ratio(cls, mean_return: float, std_return: float, rf_per_period: float) -> float:
        """
        Calculate Sharpe ratio.

        Sharpe = (MeanReturn - RiskFreeRatePerPeriod) / StdDev(Returns)
        """
        if std_return == 0:
            return 0.0
        return (mean_return - rf_per_period) / std_return

    @classmethod
    def _calculate_sortino_ratio(cls, returns: List[float], mean_return: float) -> float:
        """
        Calculate Sortino ratio.

        Like Sharpe but only penalizes downside volatility.
        """
        negative_returns = [r for r in returns if r < 0]
        if not negative_returns:
            return 0.0

        downside_std = math.sqrt(sum(r ** 2 for r in negative_returns) / len(negative_returns))
        if downside_std == 0:
            return 0.0

        return mean_return / downside_std

    @classmethod
    def _calculate_period_returns(cls, equities: List[float], capital: float) -> List[float]:
        """Per-day fractional returns; the first day is measured from capital."""
        returns = []
        prev = capital
        for curr in equities:
            returns.append((curr - prev) / prev if prev > 0 else 0.0)
            prev = curr
        return returns

    @staticmethod
    def _std(values: List[float], mean: float) -> float:
        """Population standard deviation."""
        if not values:
            return 0.0
        variance = sum((v - mean) ** 2 for v in values) / len(values)
        return math.sqrt(variance) if variance > 0 else 0.0
