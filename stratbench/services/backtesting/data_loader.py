"""
Historical data loader for backtesting.

Fetches minute bars from an injected bar source, one ticker at a time, and
organizes them by trading day.
"""

import asyncio
import logging
from datetime import datetime, date
from typing import List, Dict, Optional, Protocol, Callable, Awaitable
from dataclasses import dataclass, field

from stratbench.config import BacktestConfig, get_backtest_config
from stratbench.exceptions import BarSourceError, BarSourceRateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketBar:
    """A single OHLCV bar. Timestamps are tz-aware exchange time."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


class BarSource(Protocol):
    """Anything that can supply bars for a ticker and date range."""

    async def fetch_bars(self, ticker: str, from_date: date, to_date: date) -> List[MarketBar]:
        """
        Return bars in ascending timestamp order.

        Raises:
            BarSourceRateLimitError: upstream rate limit hit
            BarSourceError: any other fetch failure
        """
        ...


def normalize_bars(bars: List[MarketBar]) -> List[MarketBar]:
    """Sort by timestamp and drop duplicate timestamps (first one wins)."""
    seen = set()
    result = []
    for bar in sorted(bars, key=lambda b: b.timestamp):
        if bar.timestamp in seen:
            continue
        seen.add(bar.timestamp)
        result.append(bar)
    return result


@dataclass
class TickerData:
    """Bars for a single ticker, indexed by trading day."""
    ticker: str
    bars: List[MarketBar] = field(default_factory=list)
    synthetic: bool = False
    _by_day: Dict[date, List[MarketBar]] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for bar in self.bars:
            self._by_day.setdefault(bar.timestamp.date(), []).append(bar)

    def bars_on(self, day: date) -> List[MarketBar]:
        """Bars whose exchange-local date is `day`, in timestamp order."""
        return self._by_day.get(day, [])


@dataclass
class LoadedData:
    """
    Result of loading one strategy's tickers.

    `failed` lists tickers the source could not supply (errors, exhausted
    retries, or empty responses); they need fallback synthesis.
    """
    tickers: List[str]
    start_date: date
    end_date: date
    ticker_data: Dict[str, TickerData] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)


class DataLoader:
    """
    Loads historical bars from a bar source for backtesting.

    Requests are sequential with a fixed delay between them. A rate-limited
    request is retried with exponential backoff before the ticker is given up.
    """

    def __init__(
        self,
        bar_source: Optional[BarSource] = None,
        config: Optional[BacktestConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the data loader.

        Args:
            bar_source: Source of market bars. None means no source is available.
            config: Backtest configuration (defaults to the shared instance)
            sleep: Awaitable sleep, injectable so tests do not wait
        """
        self.bar_source = bar_source
        self.config = config or get_backtest_config()
        self._sleep = sleep
        # Requests issued over the loader lifetime; the delay spans load() calls
        self._requests_issued = 0

    async def fetch_with_retry(self, ticker: str, start_date: date, end_date: date) -> List[MarketBar]:
        """
        Fetch one ticker, retrying rate-limit responses.

        Waits backoff_base, 2x, 4x ... between attempts (1s, 2s, 4s by default),
        or longer when the source asks for it through retry_after.

        Raises:
            BarSourceError: when retries are exhausted or the source fails otherwise
        """
        if self.bar_source is None:
            raise BarSourceError("No bar source configured", ticker=ticker)

        retries = 0
        while True:
            try:
                return await self.bar_source.fetch_bars(ticker, start_date, end_date)
            except BarSourceRateLimitError as e:
                if retries >= self.config.max_fetch_retries:
                    logger.warning(f"Rate limited on {ticker} after {retries + 1} attempts, giving up")
                    raise
                wait = max(self.config.backoff_base_seconds * (2 ** retries), e.retry_after or 0.0)
                retries += 1
                logger.info(f"Rate limited on {ticker}. Waiting {wait:.1f}s before retry {retries}")
                await self._sleep(wait)

    async def load(self, tickers: List[str], start_date: date, end_date: date) -> LoadedData:
        """
        Load bars for every ticker of a strategy.

        Args:
            tickers: Ticker symbols, in strategy order
            start_date: First day of the range
            end_date: Last day of the range

        Returns:
            LoadedData with per-ticker bars and the list of failed tickers
        """
        logger.info(f"Loading bars for {len(tickers)} tickers from {start_date} to {end_date}")

        data = LoadedData(tickers=list(tickers), start_date=start_date, end_date=end_date)

        if self.bar_source is None:
            logger.info("No bar source available")
            data.failed = list(tickers)
            return data

        for ticker in tickers:
            if self._requests_issued > 0 and self.config.request_delay_seconds > 0:
                await self._sleep(self.config.request_delay_seconds)
            self._requests_issued += 1

            try:
                bars = await self.fetch_with_retry(ticker, start_date, end_date)
            except Exception as e:
                # Continue with other tickers; this one gets synthetic bars
                logger.error(f"Failed to load bars for {ticker}: {e}")
                data.failed.append(ticker)
                continue

            bars = normalize_bars(bars)
            if not bars:
                logger.info(f"No bars received for {ticker}")
                data.failed.append(ticker)
                continue

            data.ticker_data[ticker] = TickerData(ticker=ticker, bars=bars)
            logger.info(f"Loaded {len(bars)} bars for {ticker}")

        logger.info(f"Loaded data for {len(data.ticker_data)}/{len(tickers)} tickers")
        return data
