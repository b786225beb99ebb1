"""
Unit Tests for the Trade Simulator
==================================
Tests cover:
- Entry fills (half spread), sizing and P&L
- Take profit and stop loss exits
- Day-end closure of open positions
- No entry on the final bar of a day
- Trading-hours window and per-symbol trade cap
- Fixed-risk vs percent-of-equity sizing
- Day-level admission (max positions, max daily trades)

Run with: pytest stratbench/tests/unit/test_simulator.py -v
"""
import pytest
from dataclasses import replace
from datetime import datetime, timedelta

from stratbench.models.backtest import Trade, ExitReason
from stratbench.models.strategy import (
    Strategy,
    StrategyType,
    TradingHours,
    FixedRiskSizing,
    PercentOfEquitySizing,
    DollarLevels,
)
from stratbench.services.backtesting.simulator import TradeSimulator
from stratbench.tests.mocks.bar_source_mock import EASTERN, create_burst_session
from stratbench.tests.mocks.fixtures import make_strategy


@pytest.fixture
def simulator(microscalping_strategy, backtest_config) -> TradeSimulator:
    """Simulator for a microscalping strategy with clean costs."""
    return TradeSimulator(microscalping_strategy, config=backtest_config)


# ============================================================
# Single Ticker-Day
# ============================================================

class TestSimulateTickerDay:
    """Entries, exits and P&L on one ticker for one day"""

    def test_take_profit_trade(self, simulator, burst_session):
        trades = simulator.simulate_ticker_day("AAPL", burst_session, 100000.0)

        assert len(trades) == 1
        trade = trades[0]

        # Buy at close + half spread, sell at close - half spread
        assert trade.entry_price == pytest.approx(100.505)
        assert trade.exit_price == pytest.approx(102.995)
        # floor(100000 * 10% / 100.505)
        assert trade.quantity == 99
        assert trade.pnl == pytest.approx((102.995 - 100.505) * 99)
        assert trade.pnl_percent == pytest.approx(trade.pnl / (100.505 * 99) * 100)
        assert trade.reason == ExitReason.TAKE_PROFIT
        assert trade.hold_time == pytest.approx(1.0)
        assert trade.entry_time == burst_session[20].timestamp
        assert trade.exit_time == burst_session[21].timestamp

    def test_trade_id_from_ticker_and_entry_time(self, simulator, burst_session):
        trade = simulator.simulate_ticker_day("AAPL", burst_session, 100000.0)[0]
        entry_ms = int(burst_session[20].timestamp.timestamp() * 1000)
        assert trade.id == f"AAPL-{entry_ms}"

    def test_stop_loss_trade(self, simulator, trading_day):
        bars = create_burst_session(trading_day, after=[99.0, 99.0, 99.0])
        trades = simulator.simulate_ticker_day("AAPL", bars, 100000.0)

        assert len(trades) == 1
        assert trades[0].reason == ExitReason.STOP_LOSS
        assert trades[0].pnl < 0

    def test_open_position_closed_at_day_end(self, simulator, trading_day):
        bars = create_burst_session(trading_day, after=[100.6, 100.6, 100.6])
        trades = simulator.simulate_ticker_day("AAPL", bars, 100000.0)

        assert len(trades) == 1
        assert trades[0].reason == ExitReason.TIME_EXIT
        assert trades[0].exit_time == bars[-1].timestamp

    def test_no_entry_on_final_bar(self, simulator, trading_day):
        bars = create_burst_session(trading_day, after=[])
        assert simulator.simulate_ticker_day("AAPL", bars, 100000.0) == []

    def test_flat_session_no_trades(self, simulator, flat_session):
        assert simulator.simulate_ticker_day("AAPL", flat_session, 100000.0) == []

    def test_empty_day(self, simulator):
        assert simulator.simulate_ticker_day("AAPL", [], 100000.0) == []

    def test_costs_reduce_pnl(self, backtest_config, burst_session):
        strategy = make_strategy(StrategyType.MICROSCALPING, commission_per_trade=1.0, slippage_buffer=0.1)
        trade = TradeSimulator(strategy, config=backtest_config).simulate_ticker_day("AAPL", burst_session, 100000.0)[0]

        slippage = 100.505 * 99 * 0.1 / 100
        assert trade.fees == pytest.approx(1.0)
        assert trade.slippage == pytest.approx(slippage)
        assert trade.pnl == pytest.approx((102.995 - 100.505) * 99 - 1.0 - slippage)

    def test_trading_hours_filter(self, backtest_config, burst_session):
        # Session bars run 09:30-09:54; window opens at 10:00
        strategy = make_strategy(StrategyType.MICROSCALPING, trading_hours=TradingHours(start="10:00", end="16:00"))
        simulator = TradeSimulator(strategy, config=backtest_config)
        assert simulator.simulate_ticker_day("AAPL", burst_session, 100000.0) == []

    def test_per_symbol_trade_cap(self, backtest_config, trading_day):
        # Two bursts: bar 20 (then target hit on 21) and bar 23 (target hit on 24)
        bars = create_burst_session(trading_day, after=[103.0, 103.0, 103.6, 107.0, 107.0])
        bars = [
            replace(bar, volume=200000.0) if i == 23 else bar
            for i, bar in enumerate(bars)
        ]

        uncapped = TradeSimulator(make_strategy(StrategyType.MICROSCALPING), config=backtest_config)
        capped = TradeSimulator(make_strategy(StrategyType.MICROSCALPING, max_trades_per_symbol=1), config=backtest_config)

        assert len(uncapped.simulate_ticker_day("AAPL", bars, 100000.0)) == 2
        assert len(capped.simulate_ticker_day("AAPL", bars, 100000.0)) == 1

    def test_deterministic(self, simulator, burst_session):
        first = simulator.simulate_ticker_day("AAPL", burst_session, 100000.0)
        second = simulator.simulate_ticker_day("AAPL", burst_session, 100000.0)
        assert first == second


# ============================================================
# Sizing
# ============================================================

class TestPositionSizing:
    """Resolved sizing representation per family"""

    def test_scalping_defaults_to_fixed_risk(self, backtest_config):
        strategy = Strategy(id="s", type=StrategyType.MICROSCALPING, tickers=["AAPL"])
        simulator = TradeSimulator(strategy, config=backtest_config)

        assert isinstance(simulator.sizing, FixedRiskSizing)
        assert isinstance(simulator.risk_levels, DollarLevels)

    def test_fixed_risk_quantity(self, backtest_config):
        strategy = Strategy(id="s", type=StrategyType.MICROSCALPING, tickers=["AAPL"])
        simulator = TradeSimulator(strategy, config=backtest_config)

        # $50 risk over a $0.10 stop
        assert simulator.position_size(100.0, 0.10, 100000.0) == 500

    def test_fixed_risk_capped_by_equity(self, backtest_config):
        strategy = Strategy(id="s", type=StrategyType.MICROSCALPING, tickers=["AAPL"])
        simulator = TradeSimulator(strategy, config=backtest_config)

        assert simulator.position_size(100.0, 0.10, 10000.0) == 100

    def test_percent_of_equity_quantity(self, backtest_config):
        strategy = make_strategy(StrategyType.MOMENTUM, sizing=PercentOfEquitySizing(position_size_pct=20))
        simulator = TradeSimulator(strategy, config=backtest_config)

        assert simulator.position_size(50.0, 1.0, 10000.0) == 40

    def test_zero_quantity_skips_entry(self, simulator, burst_session):
        # 10% of $500 cannot buy a $100 share
        assert simulator.simulate_ticker_day("AAPL", burst_session, 500.0) == []


# ============================================================
# Day-level Admission
# ============================================================

def make_trade(ticker: str, entry_minute: int, exit_minute: int) -> Trade:
    open_time = EASTERN.localize(datetime(2024, 3, 6, 10, 0))
    return Trade(
        id=f"{ticker}-{entry_minute}",
        ticker=ticker,
        entry_time=open_time + timedelta(minutes=entry_minute),
        exit_time=open_time + timedelta(minutes=exit_minute),
        entry_price=100.0,
        exit_price=101.0,
        quantity=10,
        pnl=10.0,
        pnl_percent=1.0,
        fees=0.0,
        slippage=0.0,
        reason=ExitReason.TAKE_PROFIT,
        hold_time=float(exit_minute - entry_minute),
    )


class TestAdmitTrades:
    """max_positions and max_daily_trades across tickers"""

    def test_max_positions_drops_overlapping(self, backtest_config):
        simulator = TradeSimulator(make_strategy(StrategyType.MOMENTUM, max_positions=1), config=backtest_config)
        trades = [
            make_trade("MSFT", 10, 20),
            make_trade("AAPL", 0, 30),
            make_trade("NVDA", 40, 50),
        ]

        admitted = simulator.admit_trades(trades)

        assert [t.ticker for t in admitted] == ["AAPL", "NVDA"]

    def test_position_freed_at_exit(self, backtest_config):
        simulator = TradeSimulator(make_strategy(StrategyType.MOMENTUM, max_positions=1), config=backtest_config)
        admitted = simulator.admit_trades([make_trade("AAPL", 0, 10), make_trade("MSFT", 10, 20)])
        assert len(admitted) == 2

    def test_max_daily_trades(self, backtest_config):
        simulator = TradeSimulator(make_strategy(StrategyType.MOMENTUM, max_daily_trades=2), config=backtest_config)
        trades = [make_trade("AAPL", i * 10, i * 10 + 5) for i in range(4)]

        admitted = simulator.admit_trades(trades)

        assert len(admitted) == 2
        assert admitted == sorted(admitted, key=lambda t: t.entry_time)
