"""
Strategy rule evaluator.

Stateless entry and exit decisions. Entry runs generic pre-filters, then the
family predicate for the strategy type. Exit checks a fixed priority list:
stop loss, take profit, max hold time, trailing stop.
"""

from datetime import datetime
from typing import Callable, Dict, Optional, Sequence, Tuple, Union, TYPE_CHECKING

from stratbench.models.backtest import ExitReason
from stratbench.models.strategy import (
    StrategyType,
    EntryConditions,
    ExitConditions,
    PercentLevels,
    DollarLevels,
    ATRLevels,
)
from .data_loader import MarketBar

if TYPE_CHECKING:
    from .simulator import Position

EntryPredicate = Callable[[Sequence[MarketBar], int], bool]


# ============================================================
# Family Entry Predicates
# ============================================================

def _microscalping_entry(bars: Sequence[MarketBar], index: int) -> bool:
    """Volume burst on an up bar."""
    current = bars[index]
    prev = bars[index - 1]
    return current.volume > prev.volume * 1.5 and current.close > prev.close


def _momentum_entry(bars: Sequence[MarketBar], index: int) -> bool:
    """Volume above the 5-bar average on an up bar."""
    if index < 5:
        return False

    current = bars[index]
    avg_volume = sum(bar.volume for bar in bars[index - 5:index]) / 5

    return current.volume > avg_volume * 1.2 and current.close > bars[index - 1].close


def _mean_reversion_entry(bars: Sequence[MarketBar], index: int) -> bool:
    """Close more than 2% below the 20-bar SMA."""
    if index < 20:
        return False

    sma20 = sum(bar.close for bar in bars[index - 20:index]) / 20
    return bars[index].close < sma20 * 0.98


def _no_entry(bars: Sequence[MarketBar], index: int) -> bool:
    return False


# Every StrategyType must have an entry here
ENTRY_PREDICATES: Dict[StrategyType, EntryPredicate] = {
    StrategyType.MICROSCALPING: _microscalping_entry,
    StrategyType.MOMENTUM: _momentum_entry,
    StrategyType.MEAN_REVERSION: _mean_reversion_entry,
    # No entry rule defined for these families yet
    StrategyType.BREAKOUT: _no_entry,
    StrategyType.GAP_AND_GO: _no_entry,
    StrategyType.NEWS_SCALPING: _no_entry,
}


def should_enter(
    strategy_type: StrategyType,
    bars: Sequence[MarketBar],
    index: int,
    conditions: EntryConditions
) -> bool:
    """
    Decide whether to open a position at bars[index].

    Args:
        strategy_type: Strategy family
        bars: The day's bars, ascending
        index: Position of the current bar in `bars`
        conditions: Generic pre-filter thresholds

    Returns:
        True if every pre-filter and the family predicate pass
    """
    if index < conditions.min_lookback_bars or index >= len(bars):
        return False

    current = bars[index]
    prev = bars[index - 1]

    if current.volume < conditions.volume_threshold:
        return False

    if prev.close <= 0:
        return False

    price_change = (current.close - prev.close) / prev.close
    if abs(price_change) < conditions.price_change_threshold / 100:
        return False

    return ENTRY_PREDICATES[StrategyType(strategy_type)](bars, index)


# ============================================================
# Stop / Target Resolution
# ============================================================

def average_true_range(bars: Sequence[MarketBar], index: int, period: int) -> float:
    """
    Mean true range over the `period` bars ending at bars[index].

    The first bar of a window has no previous close, so its range is high - low.
    """
    start = max(0, index - period + 1)
    ranges = []
    for i in range(start, index + 1):
        bar = bars[i]
        if i == 0:
            ranges.append(bar.high - bar.low)
            continue
        prev_close = bars[i - 1].close
        ranges.append(max(
            bar.high - bar.low,
            abs(bar.high - prev_close),
            abs(bar.low - prev_close)
        ))
    return sum(ranges) / len(ranges) if ranges else 0.0


def resolve_levels(
    levels: Union[PercentLevels, DollarLevels, ATRLevels],
    entry_price: float,
    bars: Sequence[MarketBar],
    index: int
) -> Tuple[float, float]:
    """
    Turn a stop/target representation into per-share distances at entry.

    Returns:
        (stop_distance, target_distance), both in dollars per share
    """
    if isinstance(levels, PercentLevels):
        return entry_price * levels.stop_loss / 100, entry_price * levels.take_profit / 100

    if isinstance(levels, DollarLevels):
        return levels.stop_loss, levels.take_profit

    atr = average_true_range(bars, index, levels.atr_period)
    return atr * levels.stop_loss, atr * levels.take_profit


# ============================================================
# Exit
# ============================================================

def hold_minutes(entry_time: datetime, now: datetime) -> float:
    return (now - entry_time).total_seconds() / 60


def should_exit(
    position: "Position",
    bar: MarketBar,
    now: datetime,
    conditions: ExitConditions
) -> Tuple[bool, Optional[ExitReason]]:
    """
    Check exit rules for an open position against the current bar's close.

    Priority: stop loss, take profit, max hold time (if enabled), trailing
    stop (if enabled). The first match wins.

    Returns:
        (should_exit, reason); reason is None when the position stays open
    """
    price = bar.close

    if price <= position.stop_price:
        return True, ExitReason.STOP_LOSS

    if price >= position.target_price:
        return True, ExitReason.TAKE_PROFIT

    if conditions.time_based_exit and hold_minutes(position.entry_time, now) >= conditions.max_hold_time:
        return True, ExitReason.TIME_EXIT

    if conditions.trailing_stop:
        trail_price = position.high_water * (1 - conditions.trailing_stop_percent / 100)
        if price <= trail_price:
            return True, ExitReason.TRAILING_STOP

    return False, None
