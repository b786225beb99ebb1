"""
Synthetic minute bars for when the bar source cannot deliver.

Bars are drawn from the run's DeterministicSequence, so a fallback run is as
reproducible as a run on market data.
"""

import logging
from datetime import datetime, date, time, timedelta
from typing import List, Optional

import pytz

from stratbench.config import BacktestConfig, get_backtest_config
from stratbench.models.backtest import BacktestMode
from .data_loader import MarketBar, TickerData
from .sequence import DeterministicSequence

logger = logging.getLogger(__name__)

EASTERN = pytz.timezone("US/Eastern")
SESSION_OPEN = time(9, 30)

# Shortest synthetic session; leaves room after the indicator lookback
MIN_SESSION_BARS = 40


class SyntheticBarGenerator:
    """
    Generates plausible intraday sessions for a ticker.

    Price follows a bounded random walk from a per-ticker starting level with a
    small overnight gap. Volume hovers around a base level with occasional
    spikes, which is what the volume-driven entry rules look for.
    """

    def __init__(
        self,
        sequence: DeterministicSequence,
        mode: BacktestMode = BacktestMode.MULTI,
        config: Optional[BacktestConfig] = None,
    ):
        self.sequence = sequence
        self.mode = BacktestMode(mode)
        self.config = config or get_backtest_config()

    @property
    def bars_per_session(self) -> int:
        """Session length for the run mode."""
        full = self.config.session_bars
        if self.mode == BacktestMode.SINGLE:
            scaled = int(round(full * self.config.single_session_multiplier))
            return min(full, max(scaled, MIN_SESSION_BARS))
        return full

    def generate(self, ticker: str, trading_days: List[date]) -> TickerData:
        """
        Build synthetic bars for every trading day.

        Args:
            ticker: Ticker symbol (only used for labelling)
            trading_days: Days to fill, ascending

        Returns:
            TickerData flagged as synthetic
        """
        rng = self.sequence
        vol = self.config.synthetic_bar_volatility
        base_volume = self.config.synthetic_base_volume

        price = rng.uniform(20.0, 200.0)
        bars: List[MarketBar] = []

        for day in trading_days:
            # Overnight gap
            price *= 1 + rng.uniform(-0.01, 0.01)
            session_start = EASTERN.localize(datetime.combine(day, SESSION_OPEN))

            for minute in range(self.bars_per_session):
                open_price = price
                close_price = open_price * (1 + rng.uniform(-vol, vol))
                high_price = max(open_price, close_price) * (1 + rng.uniform(0, vol / 3))
                low_price = min(open_price, close_price) * (1 - rng.uniform(0, vol / 3))

                volume = base_volume * rng.uniform(0.5, 1.5)
                if rng.next_float() < 0.1:
                    volume *= rng.uniform(1.5, 3.0)

                bars.append(MarketBar(
                    timestamp=session_start + timedelta(minutes=minute),
                    open=round(open_price, 4),
                    high=round(high_price, 4),
                    low=round(low_price, 4),
                    close=round(close_price, 4),
                    volume=float(int(volume)),
                ))
                price = close_price

        logger.info(f"Synthesized {len(bars)} bars for {ticker} over {len(trading_days)} days")
        return TickerData(ticker=ticker, bars=bars, synthetic=True)
