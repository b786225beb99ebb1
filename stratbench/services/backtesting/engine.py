"""
Core backtesting engine.

Runs every strategy of a request through the same date range: load bars
(or synthesize them), simulate each trading day per ticker, track equity, and
reduce the result into a performance report.
"""

import asyncio
import logging
import math
import time
from datetime import date, timedelta
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from stratbench.config import BacktestConfig, get_backtest_config
from stratbench.exceptions import InvalidBacktestInputError
from stratbench.models.backtest import (
    BacktestMode,
    BacktestResult,
    DataSource,
    PerformanceMetrics,
    Trade,
)
from stratbench.models.strategy import Strategy
from stratbench.services.logging_config import log_method, set_run_id
from .data_loader import BarSource, DataLoader, TickerData
from .metrics import PerformanceAnalyzer
from .portfolio import EquityTracker
from .sequence import DeterministicSequence
from .simulator import TradeSimulator
from .synthetic import SyntheticBarGenerator

logger = logging.getLogger(__name__)


class BacktestState(str, Enum):
    """Orchestrator lifecycle. FALLBACK_SYNTHESIS is only entered when bars are missing."""
    IDLE = "idle"
    FETCHING_DATA = "fetching_data"
    FALLBACK_SYNTHESIS = "fallback_synthesis"
    SIMULATING = "simulating"
    AGGREGATING = "aggregating"
    DONE = "done"


def trading_days(start_date: date, end_date: date) -> List[date]:
    """Weekdays in [start_date, end_date], ascending. Exchange holidays are not excluded."""
    days = []
    day = start_date
    while day <= end_date:
        if day.weekday() < 5:
            days.append(day)
        day += timedelta(days=1)
    return days


class BacktestEngine:
    """
    Backtest orchestrator.

    Flow, per strategy:
    1. FETCHING_DATA: load bars for every ticker from the bar source
    2. FALLBACK_SYNTHESIS: synthesize bars for tickers the source could not supply
    3. SIMULATING: for each trading day, simulate each ticker, apply the
       day-level trade caps, record equity
    4. AGGREGATING: compute metrics and curves

    After input validation nothing is raised to the caller: a strategy that
    fails is rerun on synthetic bars, and if that fails too it gets a flat
    zero-trade result. Every strategy always gets exactly one result.
    """

    def __init__(
        self,
        capital: float,
        strategies: List[Strategy],
        start_date: date,
        end_date: date,
        mode: BacktestMode = BacktestMode.MULTI,
        bar_source: Optional[BarSource] = None,
        config: Optional[BacktestConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the backtest engine.

        Args:
            capital: Starting capital, applied to each strategy independently
            strategies: Strategies to backtest, results keep this order
            start_date: First day of the range
            end_date: Last day of the range (inclusive)
            mode: SINGLE shortens synthetic sessions, MULTI uses full sessions
            bar_source: Source of market bars; None runs fully synthetic
            config: Backtest configuration (defaults to the shared instance)
            sleep: Awaitable sleep used between requests and retries
        """
        self.capital = capital
        self.strategies = strategies
        self.start_date = start_date
        self.end_date = end_date
        self.mode = mode
        self.config = config or get_backtest_config()

        self.data_loader = DataLoader(bar_source=bar_source, config=self.config, sleep=sleep)

        self.state = BacktestState.IDLE
        self.state_history: List[BacktestState] = [BacktestState.IDLE]

        self.run_id: Optional[str] = None
        self.sequence: Optional[DeterministicSequence] = None
        self.synthesizer: Optional[SyntheticBarGenerator] = None

        # Per-run ticker bars, shared by every strategy that trades the ticker
        self._market_data: Dict[str, TickerData] = {}
        self._unavailable: Set[str] = set()
        self._synthetic_data: Dict[str, TickerData] = {}

    def _transition(self, state: BacktestState) -> None:
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state
        self.state_history.append(state)

    def validate(self) -> None:
        """
        Reject bad input before any work is done.

        Raises:
            InvalidBacktestInputError: on the first invalid field
        """
        if isinstance(self.capital, bool) or not isinstance(self.capital, (int, float)):
            raise InvalidBacktestInputError("Capital must be a number", field="capital", value=self.capital)
        if not math.isfinite(self.capital) or self.capital <= 0:
            raise InvalidBacktestInputError("Capital must be greater than zero", field="capital", value=self.capital)

        for name in ("start_date", "end_date"):
            if not isinstance(getattr(self, name), date):
                raise InvalidBacktestInputError(f"{name} must be a date", field=name, value=getattr(self, name))
        if self.start_date > self.end_date:
            raise InvalidBacktestInputError(
                f"Start date {self.start_date} is after end date {self.end_date}",
                field="start_date",
                value=self.start_date,
            )

        try:
            self.mode = BacktestMode(self.mode)
        except ValueError:
            raise InvalidBacktestInputError(f"Unknown backtest mode: {self.mode}", field="mode", value=self.mode)

        if not isinstance(self.strategies, (list, tuple)):
            raise InvalidBacktestInputError("Strategies must be a list", field="strategies", value=self.strategies)
        for strategy in self.strategies:
            if not isinstance(strategy, Strategy):
                raise InvalidBacktestInputError("Every strategy must be a Strategy", field="strategies", value=strategy)

    @log_method(logger=logger)
    async def run(self) -> List[BacktestResult]:
        """
        Run the backtest for every strategy.

        Returns:
            One BacktestResult per strategy, in input order

        Raises:
            InvalidBacktestInputError: if the inputs are rejected
        """
        self.validate()

        self.run_id = set_run_id()
        started = time.perf_counter()

        days = trading_days(self.start_date, self.end_date)
        self.sequence = DeterministicSequence(
            DeterministicSequence.seed_for(self.strategies, self.start_date, self.end_date, self.capital)
        )
        self.synthesizer = SyntheticBarGenerator(self.sequence, mode=self.mode, config=self.config)
        self._market_data = {}
        self._unavailable = set()
        self._synthetic_data = {}

        logger.info(
            f"Starting backtest: {len(self.strategies)} strategies, {len(days)} trading days "
            f"({self.start_date} to {self.end_date}), capital ${self.capital:,.2f}"
        )

        results = []
        for strategy in self.strategies:
            results.append(await self._run_strategy(strategy, days))

        self._transition(BacktestState.DONE)
        logger.info(f"Backtest complete: {len(results)} results in {time.perf_counter() - started:.2f}s")
        return results

    async def _run_strategy(self, strategy: Strategy, days: List[date]) -> BacktestResult:
        """Backtest one strategy, degrading to synthetic bars and then to a flat result."""
        if not strategy.is_active:
            logger.info(f"Strategy {strategy.id} is inactive, backtesting anyway")

        try:
            return await self._backtest_strategy(strategy, days, force_synthetic=False)
        except Exception as e:
            logger.error(f"Backtest failed for {strategy.id}: {e}. Retrying on synthetic bars")

        try:
            return await self._backtest_strategy(strategy, days, force_synthetic=True)
        except Exception as e:
            logger.error(f"Synthetic backtest failed for {strategy.id}: {e}. Returning flat result")

        return self._flat_result(strategy, days)

    async def _backtest_strategy(self, strategy: Strategy, days: List[date], force_synthetic: bool) -> BacktestResult:
        tickers = list(dict.fromkeys(strategy.tickers))

        self._transition(BacktestState.FETCHING_DATA)
        if force_synthetic:
            failed = list(tickers)
        else:
            await self._resolve_market_data(tickers)
            failed = [ticker for ticker in tickers if ticker in self._unavailable]
        ticker_data = {ticker: self._market_data[ticker] for ticker in tickers if ticker not in failed}

        if failed:
            self._transition(BacktestState.FALLBACK_SYNTHESIS)
            if len(failed) == len(tickers):
                logger.warning(f"No market data for strategy {strategy.id}, running entirely on synthetic bars")
            else:
                logger.info(f"Synthesizing bars for {', '.join(failed)} ({strategy.id})")
            for ticker in failed:
                ticker_data[ticker] = self._synthetic_bars(ticker, days)

        self._transition(BacktestState.SIMULATING)
        simulator = TradeSimulator(strategy, config=self.config)
        tracker = EquityTracker(self.capital)
        trades: List[Trade] = []

        for day in days:
            candidates: List[Trade] = []
            for ticker in tickers:
                candidates.extend(simulator.simulate_ticker_day(ticker, ticker_data[ticker].bars_on(day), tracker.equity))

            admitted = simulator.admit_trades(candidates)
            tracker.record_day(day, admitted)
            trades.extend(admitted)

        self._transition(BacktestState.AGGREGATING)
        performance = PerformanceAnalyzer.calculate(
            trades=trades,
            equity_curve=tracker.equity_curve,
            capital=self.capital,
            start_date=self.start_date,
            end_date=self.end_date,
            config=self.config,
        )

        if tickers and not failed:
            data_source = DataSource.MARKET
        elif failed and len(failed) < len(tickers):
            data_source = DataSource.MIXED
        else:
            # Also covers a strategy with no tickers: no market bars were used
            data_source = DataSource.SYNTHETIC

        logger.info(
            f"Strategy {strategy.id}: {performance.total_trades} trades, "
            f"{performance.total_return:.2f}% return, data: {data_source.value}"
        )

        return BacktestResult(
            strategy_id=strategy.id,
            capital=self.capital,
            start_date=self.start_date,
            end_date=self.end_date,
            performance=performance,
            trades=trades,
            equity_curve=tracker.equity_curve,
            drawdown_curve=tracker.drawdown_curve(),
            monthly_returns=tracker.monthly_returns(trades),
            data_source=data_source,
            synthetic_tickers=failed,
        )

    async def _resolve_market_data(self, tickers: List[str]) -> None:
        """Fetch tickers not yet requested in this run. Each ticker hits the source at most once."""
        pending = [t for t in tickers if t not in self._market_data and t not in self._unavailable]
        if not pending:
            return
        loaded = await self.data_loader.load(pending, self.start_date, self.end_date)
        self._market_data.update(loaded.ticker_data)
        self._unavailable.update(loaded.failed)

    def _synthetic_bars(self, ticker: str, days: List[date]) -> TickerData:
        """Synthesize a ticker once per run so every strategy sees the same path."""
        if ticker not in self._synthetic_data:
            self._synthetic_data[ticker] = self.synthesizer.generate(ticker, days)
        return self._synthetic_data[ticker]

    def _flat_result(self, strategy: Strategy, days: List[date]) -> BacktestResult:
        """Zero-trade result with equity flat at capital on every day."""
        tracker = EquityTracker(self.capital)
        for day in days:
            tracker.record_day(day, [])

        return BacktestResult(
            strategy_id=strategy.id,
            capital=self.capital,
            start_date=self.start_date,
            end_date=self.end_date,
            performance=PerformanceMetrics.empty(),
            trades=[],
            equity_curve=tracker.equity_curve,
            drawdown_curve=tracker.drawdown_curve(),
            monthly_returns=tracker.monthly_returns([]),
            data_source=DataSource.SYNTHETIC,
            synthetic_tickers=list(dict.fromkeys(strategy.tickers)),
        )
