"""
Trade simulator for backtesting.

Walks one ticker's bars for one trading day, opening and closing at most one
position at a time under a strategy's rules.
"""

import logging
import math
from datetime import datetime
from typing import List, Optional
from dataclasses import dataclass

from stratbench.config import BacktestConfig, get_backtest_config
from stratbench.models.backtest import Trade, ExitReason
from stratbench.models.strategy import Strategy, FixedRiskSizing
from .data_loader import MarketBar
from .rules import should_enter, should_exit, resolve_levels, hold_minutes

logger = logging.getLogger(__name__)


@dataclass
class Position:
    """An open simulated position."""
    ticker: str
    entry_time: datetime
    entry_price: float
    quantity: int
    stop_price: float
    target_price: float
    high_water: float
    fees: float = 0.0
    slippage: float = 0.0


class TradeSimulator:
    """
    Simulates one strategy's trades, one ticker-day at a time.

    The sizing and stop/target representations are resolved once, when the
    simulator is built, from the strategy's parameters and family defaults.
    """

    def __init__(self, strategy: Strategy, config: Optional[BacktestConfig] = None):
        self.strategy = strategy
        self.params = strategy.parameters
        self.config = config or get_backtest_config()

        self.sizing = self.params.resolved_sizing(strategy.type)
        self.risk_levels = self.params.resolved_risk_levels(strategy.type)

    def simulate_ticker_day(self, ticker: str, day_bars: List[MarketBar], equity: float) -> List[Trade]:
        """
        Simulate one ticker over one trading day.

        Args:
            ticker: Ticker symbol
            day_bars: The day's bars in timestamp order
            equity: Portfolio equity at the start of the day, used for sizing

        Returns:
            Closed trades in entry order. Every position opened here is also
            closed here, at the latest on the day's final bar.
        """
        hours = self.params.trading_hours
        bars = [bar for bar in day_bars if hours.contains(bar.timestamp.time())]
        if len(bars) < 2:
            return []

        cap = self.params.max_trades_per_symbol
        last = len(bars) - 1
        trades: List[Trade] = []
        position: Optional[Position] = None

        for i, bar in enumerate(bars):
            if position is not None:
                position.high_water = max(position.high_water, bar.close)

                if i == last:
                    hit, reason = True, ExitReason.TIME_EXIT
                else:
                    hit, reason = should_exit(position, bar, bar.timestamp, self.params.exit_conditions)

                if hit:
                    trades.append(self._close(position, bar, reason))
                    position = None
                continue

            # Nothing can be opened on the final bar
            if i == last:
                break

            if cap is not None and len(trades) >= cap:
                break

            if should_enter(self.strategy.type, bars, i, self.params.entry_conditions):
                position = self._open(ticker, bars, i, equity)

        return trades

    def position_size(self, price: float, stop_distance: float, equity: float) -> int:
        """
        Whole shares for an entry at `price`.

        Percent-of-equity sizing spends a fixed share of equity. Fixed-risk
        sizing loses `risk_per_trade` if the stop is hit, but never buys more
        than equity can pay for.
        """
        if price <= 0:
            return 0

        affordable = math.floor(equity / price)

        if isinstance(self.sizing, FixedRiskSizing):
            if stop_distance <= 0:
                return 0
            return max(0, min(math.floor(self.sizing.risk_per_trade / stop_distance), affordable))

        return max(0, math.floor(equity * self.sizing.position_size_pct / 100 / price))

    def _open(self, ticker: str, bars: List[MarketBar], index: int, equity: float) -> Optional[Position]:
        bar = bars[index]
        entry_price = bar.close + self.config.half_spread

        stop_distance, target_distance = resolve_levels(self.risk_levels, entry_price, bars, index)
        if stop_distance <= 0 or target_distance <= 0:
            logger.debug(f"Degenerate stop/target for {ticker} at {bar.timestamp}, skipping entry")
            return None

        quantity = self.position_size(entry_price, stop_distance, equity)
        if quantity <= 0:
            logger.debug(f"Position size too small for {ticker} at ${entry_price:.2f}")
            return None

        slippage = entry_price * quantity * self.params.slippage_buffer / 100

        logger.debug(f"ENTER {quantity} {ticker} @ ${entry_price:.4f} ({bar.timestamp})")
        return Position(
            ticker=ticker,
            entry_time=bar.timestamp,
            entry_price=entry_price,
            quantity=quantity,
            stop_price=entry_price - stop_distance,
            target_price=entry_price + target_distance,
            high_water=bar.close,
            fees=self.params.commission_per_trade,
            slippage=slippage,
        )

    def _close(self, position: Position, bar: MarketBar, reason: ExitReason) -> Trade:
        exit_price = bar.close - self.config.half_spread
        notional = position.entry_price * position.quantity

        pnl = (exit_price - position.entry_price) * position.quantity - position.fees - position.slippage
        pnl_percent = pnl / notional * 100 if notional > 0 else 0.0

        entry_ms = int(position.entry_time.timestamp() * 1000)

        logger.debug(f"EXIT {position.quantity} {position.ticker} @ ${exit_price:.4f} | {reason.value} | P&L ${pnl:.2f}")
        return Trade(
            id=f"{position.ticker}-{entry_ms}",
            ticker=position.ticker,
            entry_time=position.entry_time,
            exit_time=bar.timestamp,
            entry_price=position.entry_price,
            exit_price=exit_price,
            quantity=position.quantity,
            pnl=pnl,
            pnl_percent=pnl_percent,
            fees=position.fees,
            slippage=position.slippage,
            reason=reason,
            hold_time=hold_minutes(position.entry_time, bar.timestamp),
        )

    def admit_trades(self, trades: List[Trade]) -> List[Trade]:
        """
        Apply the day-level caps to one day's candidate trades.

        Candidates are taken in entry-time order. A trade is dropped when
        `max_positions` trades are already open at its entry time; admission
        stops once `max_daily_trades` have been accepted.

        Args:
            trades: Every ticker's trades for one day

        Returns:
            Admitted trades in entry-time order
        """
        admitted: List[Trade] = []

        for trade in sorted(trades, key=lambda t: (t.entry_time, t.ticker)):
            if len(admitted) >= self.params.max_daily_trades:
                break

            still_open = sum(1 for t in admitted if t.exit_time > trade.entry_time)
            if still_open >= self.params.max_positions:
                logger.debug(f"Max positions reached, dropping {trade.id}")
                continue

            admitted.append(trade)

        return admitted
