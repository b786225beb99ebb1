"""
Portfolio equity tracker for backtesting.

Folds each day's closed-trade P&L into equity and keeps one curve point per
trading day.
"""

import logging
from datetime import date
from typing import Dict, List

from stratbench.models.backtest import Trade, EquityPoint, DrawdownPoint, MonthlyReturn

logger = logging.getLogger(__name__)


class EquityTracker:
    """
    Tracks equity through a backtest, one trading day at a time.

    Positions never carry overnight, so end-of-day equity is simply starting
    capital plus every realized P&L so far.
    """

    def __init__(self, capital: float):
        """
        Initialize the tracker.

        Args:
            capital: Starting capital
        """
        self.capital = capital
        self.equity = capital
        self.equity_curve: List[EquityPoint] = []

    def record_day(self, day: date, trades: List[Trade]) -> EquityPoint:
        """
        Apply a day's trades and append its equity point.

        Days without trades still get a point, at unchanged equity.

        Args:
            day: The trading day
            trades: Trades closed that day

        Returns:
            The appended point
        """
        if self.equity_curve and day <= self.equity_curve[-1].date:
            raise ValueError(f"Equity days must be ascending: {day} after {self.equity_curve[-1].date}")

        day_pnl = sum(t.pnl for t in trades)
        self.equity += day_pnl

        point = EquityPoint(
            date=day,
            equity=self.equity,
            return_pct=(self.equity - self.capital) / self.capital * 100,
        )
        self.equity_curve.append(point)

        if trades:
            logger.debug(f"{day}: {len(trades)} trades, P&L ${day_pnl:.2f}, equity ${self.equity:.2f}")
        return point

    def drawdown_curve(self) -> List[DrawdownPoint]:
        """Drawdown from the running peak (seeded with capital) for every point."""
        peak = self.capital
        curve = []
        for point in self.equity_curve:
            peak = max(peak, point.equity)
            drawdown = (peak - point.equity) / peak * 100 if peak > 0 else 0.0
            curve.append(DrawdownPoint(date=point.date, drawdown=drawdown, peak=peak))
        return curve

    def monthly_returns(self, trades: List[Trade]) -> List[MonthlyReturn]:
        """
        Equity change per calendar month.

        Each month is measured from the previous month's closing equity (or
        starting capital for the first). Trades are counted in their exit month.
        """
        trade_counts: Dict[str, int] = {}
        for trade in trades:
            key = trade.exit_time.strftime("%Y-%m")
            trade_counts[key] = trade_counts.get(key, 0) + 1

        month_end: Dict[str, float] = {}
        for point in self.equity_curve:
            month_end[point.date.strftime("%Y-%m")] = point.equity

        results = []
        prev_equity = self.capital
        for month, equity in month_end.items():
            return_pct = (equity - prev_equity) / prev_equity * 100 if prev_equity > 0 else 0.0
            results.append(MonthlyReturn(month=month, return_pct=return_pct, trades=trade_counts.get(month, 0)))
            prev_equity = equity

        return results
