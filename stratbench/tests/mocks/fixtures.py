"""
Strategy Fixtures for Testing
=============================
Builders for strategies with predictable costs.

Usage:
    from stratbench.tests.mocks.fixtures import make_strategy

    strategy = make_strategy(StrategyType.MICROSCALPING, max_trades_per_symbol=1)
"""

from typing import List, Optional

from stratbench.models.strategy import (
    Strategy,
    StrategyType,
    StrategyParameters,
    PercentOfEquitySizing,
    PercentLevels,
)


def make_strategy(
    strategy_type: StrategyType,
    strategy_id: str = "test-strategy",
    tickers: Optional[List[str]] = None,
    **param_overrides
) -> Strategy:
    """
    Build a strategy with clean cost settings.

    Percent sizing (10%) and percent levels (1% stop, 2% target) with no
    commission and no slippage unless overridden, so P&L is easy to compute
    by hand.

    Args:
        strategy_type: Strategy family
        strategy_id: Strategy id
        tickers: Tickers (defaults to ["AAPL"])
        **param_overrides: StrategyParameters fields to override

    Returns:
        Strategy
    """
    params = dict(
        sizing=PercentOfEquitySizing(position_size_pct=10),
        risk_levels=PercentLevels(stop_loss=1.0, take_profit=2.0),
        commission_per_trade=0.0,
        slippage_buffer=0.0,
    )
    params.update(param_overrides)
    return Strategy(
        id=strategy_id,
        name=strategy_id,
        type=strategy_type,
        parameters=StrategyParameters(**params),
        tickers=tickers or ["AAPL"],
    )
