"""
Strategy definition models
Strategies, their parameters, and the tagged sizing / stop-target representations
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Dict, Any, Union, Literal, Annotated
from datetime import time
from enum import Enum


# ============== Enums ==============

class StrategyType(str, Enum):
    """Strategy family. Drives the entry predicate and default risk model."""
    MICROSCALPING = "microscalping"
    MOMENTUM = "momentum"
    MEAN_REVERSION = "mean-reversion"
    BREAKOUT = "breakout"
    GAP_AND_GO = "gap-and-go"
    NEWS_SCALPING = "news-scalping"


SCALPING_TYPES = frozenset({StrategyType.MICROSCALPING, StrategyType.NEWS_SCALPING})


class FrozenModel(BaseModel):
    """Base for models that must not change during a backtest run"""
    model_config = ConfigDict(frozen=True)


# ============== Position Sizing ==============

class PercentOfEquitySizing(FrozenModel):
    """Size each entry as a percentage of current equity"""
    kind: Literal["percent_of_equity"] = "percent_of_equity"
    position_size_pct: float = Field(default=20.0, gt=0, le=100)


class FixedRiskSizing(FrozenModel):
    """Size each entry so that hitting the stop loses a fixed dollar amount"""
    kind: Literal["fixed_risk"] = "fixed_risk"
    risk_per_trade: float = Field(default=50.0, gt=0)


Sizing = Annotated[
    Union[PercentOfEquitySizing, FixedRiskSizing],
    Field(discriminator="kind"),
]


# ============== Stop Loss / Take Profit ==============

class PercentLevels(FrozenModel):
    """Stop and target as a percentage move from entry"""
    kind: Literal["percent"] = "percent"
    stop_loss: float = Field(default=2.0, gt=0, lt=100)
    take_profit: float = Field(default=3.0, gt=0)


class DollarLevels(FrozenModel):
    """Stop and target as a per-share dollar distance from entry"""
    kind: Literal["dollar"] = "dollar"
    stop_loss: float = Field(default=0.10, gt=0)
    take_profit: float = Field(default=0.20, gt=0)


class ATRLevels(FrozenModel):
    """Stop and target as multiples of the average true range at entry"""
    kind: Literal["atr"] = "atr"
    stop_loss: float = Field(default=1.5, gt=0)
    take_profit: float = Field(default=3.0, gt=0)
    atr_period: int = Field(default=14, ge=1)


RiskLevels = Annotated[
    Union[PercentLevels, DollarLevels, ATRLevels],
    Field(discriminator="kind"),
]


# ============== Conditions ==============

class EntryConditions(FrozenModel):
    """Generic entry pre-filters applied before the family predicate"""
    volume_threshold: float = Field(default=100000, ge=0)
    price_change_threshold: float = Field(default=0.1, ge=0)  # percent vs prior bar
    min_lookback_bars: int = Field(default=20, ge=1)


class ExitConditions(FrozenModel):
    """Optional exit rules checked after stop loss and take profit"""
    time_based_exit: bool = False
    max_hold_time: float = Field(default=60, gt=0)  # minutes
    trailing_stop: bool = False
    trailing_stop_percent: float = Field(default=1.0, gt=0, lt=100)


class TradingHours(FrozenModel):
    """Intraday window, exchange local time"""
    start: str = "09:30"
    end: str = "16:00"

    @field_validator("start", "end")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        time.fromisoformat(value)
        return value

    @property
    def start_time(self) -> time:
        return time.fromisoformat(self.start)

    @property
    def end_time(self) -> time:
        return time.fromisoformat(self.end)

    def contains(self, moment: time) -> bool:
        return self.start_time <= moment <= self.end_time


# ============== Parameters ==============

class StrategyParameters(FrozenModel):
    """
    Full parameter bundle for one strategy.

    `sizing` and `risk_levels` are tagged unions. Leaving either unset means
    "use the family default", which is resolved per strategy type by
    resolved_sizing() / resolved_risk_levels().
    """
    # Position sizing
    max_positions: int = Field(default=5, ge=1)
    max_daily_trades: int = Field(default=50, ge=1)
    max_trades_per_symbol: Optional[int] = Field(default=None, ge=1)
    sizing: Optional[Sizing] = None

    # Risk management
    risk_levels: Optional[RiskLevels] = None

    # Entry/Exit conditions
    entry_conditions: EntryConditions = Field(default_factory=EntryConditions)
    exit_conditions: ExitConditions = Field(default_factory=ExitConditions)

    # Fees and costs
    commission_per_trade: float = Field(default=0.0, ge=0)
    slippage_buffer: float = Field(default=0.1, ge=0)  # percent of notional

    # Time-based filters
    trading_hours: TradingHours = Field(default_factory=TradingHours)
    avoid_news_minutes: int = Field(default=0, ge=0)

    def resolved_sizing(self, strategy_type: StrategyType) -> Union[PercentOfEquitySizing, FixedRiskSizing]:
        """Return the active sizing representation for this strategy family"""
        if self.sizing is not None:
            return self.sizing
        if strategy_type in SCALPING_TYPES:
            return FixedRiskSizing()
        return PercentOfEquitySizing()

    def resolved_risk_levels(self, strategy_type: StrategyType) -> Union[PercentLevels, DollarLevels, ATRLevels]:
        """Return the active stop/target representation for this strategy family"""
        if self.risk_levels is not None:
            return self.risk_levels
        if strategy_type in SCALPING_TYPES:
            return DollarLevels()
        if strategy_type == StrategyType.MOMENTUM:
            return ATRLevels()
        return PercentLevels()

    @classmethod
    def from_legacy(cls, data: Dict[str, Any], strategy_type: StrategyType) -> "StrategyParameters":
        """
        Build parameters from the flat camelCase field bag used by older configs.

        Old configs carry overlapping optional fields (stopLoss, stopLossDollar,
        stopLossATR, ...) for the same concept. Exactly one representation is
        picked here, based on the strategy family and which fields are set.
        """
        strategy_type = StrategyType(strategy_type)

        risk_per_trade = data.get("riskPerTrade")
        if strategy_type in SCALPING_TYPES and risk_per_trade:
            sizing = FixedRiskSizing(risk_per_trade=risk_per_trade)
        else:
            sizing = PercentOfEquitySizing(position_size_pct=data.get("positionSize") or 20.0)

        stop_dollar = data.get("stopLossDollar")
        stop_atr = data.get("stopLossATR")
        if strategy_type in SCALPING_TYPES and stop_dollar:
            risk_levels = DollarLevels(
                stop_loss=stop_dollar,
                take_profit=data.get("takeProfitDollar") or stop_dollar * 2,
            )
        elif strategy_type == StrategyType.MOMENTUM and stop_atr:
            risk_levels = ATRLevels(stop_loss=stop_atr, take_profit=stop_atr * 2)
        else:
            risk_levels = PercentLevels(
                stop_loss=data.get("stopLoss") or 2.0,
                take_profit=data.get("takeProfit") or 3.0,
            )

        entry = data.get("entryConditions") or {}
        exit_ = data.get("exitConditions") or {}
        hours = data.get("tradingHours") or {}

        return cls(
            max_positions=data.get("maxPositions") or 5,
            max_daily_trades=data.get("maxDailyTrades") or 50,
            max_trades_per_symbol=data.get("maxTradesPerSymbol"),
            sizing=sizing,
            risk_levels=risk_levels,
            entry_conditions=EntryConditions(
                volume_threshold=entry.get("volumeThreshold", 100000),
                price_change_threshold=entry.get("priceChangeThreshold", 0.1),
            ),
            exit_conditions=ExitConditions(
                time_based_exit=exit_.get("timeBasedExit", False),
                max_hold_time=exit_.get("maxHoldTime") or 60,
                trailing_stop=exit_.get("trailingStop", False),
                trailing_stop_percent=exit_.get("trailingStopPercent") or 1.0,
            ),
            commission_per_trade=data.get("commissionPerTrade") or 0.0,
            slippage_buffer=data.get("slippageBuffer", 0.1),
            trading_hours=TradingHours(
                start=hours.get("start", "09:30"),
                end=hours.get("end", "16:00"),
            ),
            avoid_news_minutes=data.get("avoidNewsMinutes") or 0,
        )


# ============== Strategy ==============

class Strategy(FrozenModel):
    """A strategy to backtest. Owned by the caller; never mutated by the engine."""
    id: str
    name: str = ""
    type: StrategyType
    parameters: StrategyParameters = Field(default_factory=StrategyParameters)
    tickers: List[str] = []
    is_active: bool = True
