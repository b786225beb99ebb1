"""
Backtest Configuration
Centralized configuration for the backtesting engine.

All values can be overridden via environment variables with the BACKTEST_ prefix.
Example: BACKTEST_REQUEST_DELAY_SECONDS=0.25 overrides request_delay_seconds
"""

import os
import logging
from dataclasses import asdict, dataclass, field
from typing import Optional, TypeVar

logger = logging.getLogger(__name__)

Number = TypeVar("Number", int, float)


def _env(key: str, default: Number) -> Number:
    """Read BACKTEST_<KEY>, cast to the type of `default`; malformed values keep the default."""
    env_key = f"BACKTEST_{key.upper()}"
    raw = os.getenv(env_key)
    if raw is None:
        return default
    cast = type(default)
    try:
        parsed = cast(raw)
    except ValueError:
        logger.warning(f"Ignoring {env_key}={raw!r}: not a valid {cast.__name__}, keeping {default}")
        return default
    logger.info(f"{key} overridden to {parsed} by {env_key}")
    return parsed


@dataclass
class BacktestConfig:
    """
    Centralized backtest configuration.

    Engine-wide constants that are not part of a strategy's own parameters.
    Values can be overridden via environment variables with BACKTEST_ prefix.
    """

    # ===== Data Retrieval =====
    # Fixed pause between per-ticker requests to respect upstream rate limits
    request_delay_seconds: float = field(default_factory=lambda: _env('request_delay_seconds', 0.1))

    # Retries after a rate-limit response before giving up on a ticker
    max_fetch_retries: int = field(default_factory=lambda: _env('max_fetch_retries', 3))

    # First backoff wait; doubles on each retry (1s, 2s, 4s)
    backoff_base_seconds: float = field(default_factory=lambda: _env('backoff_base_seconds', 1.0))

    # HTTP request timeout in seconds
    http_timeout_seconds: float = field(default_factory=lambda: _env('http_timeout_seconds', 30.0))

    # ===== Execution Model =====
    # Synthetic half-spread added to buys and subtracted from sells (1 cent spread)
    half_spread: float = field(default_factory=lambda: _env('half_spread', 0.005))

    # ===== Metrics =====
    # Annual risk-free rate used by the Sharpe ratio
    risk_free_rate: float = field(default_factory=lambda: _env('risk_free_rate', 0.02))

    # Periods per year used to turn the annual risk-free rate into a per-period rate
    periods_per_year: int = field(default_factory=lambda: _env('periods_per_year', 252))

    # ===== Synthetic Fallback =====
    # Minute bars in a full regular session (09:30-16:00)
    session_bars: int = field(default_factory=lambda: _env('session_bars', 390))

    # Share of a full session synthesized in single-session mode
    single_session_multiplier: float = field(default_factory=lambda: _env('single_session_multiplier', 0.1))

    # Mean per-bar volume of synthetic bars
    synthetic_base_volume: int = field(default_factory=lambda: _env('synthetic_base_volume', 150000))

    # Max absolute per-bar close-to-close move of synthetic bars
    synthetic_bar_volatility: float = field(default_factory=lambda: _env('synthetic_bar_volatility', 0.003))

    def __post_init__(self):
        self._validate()

    def _validate(self):
        """Collect every out-of-range setting and raise one ValueError listing them."""
        errors = []

        if self.request_delay_seconds < 0:
            errors.append(f"request_delay_seconds cannot be negative, got {self.request_delay_seconds}")

        if self.max_fetch_retries < 0:
            errors.append(f"max_fetch_retries cannot be negative, got {self.max_fetch_retries}")

        if self.backoff_base_seconds < 0:
            errors.append(f"backoff_base_seconds cannot be negative, got {self.backoff_base_seconds}")

        if self.http_timeout_seconds <= 0:
            errors.append(f"http_timeout_seconds must be positive, got {self.http_timeout_seconds}")

        if not 0 <= self.half_spread < 1:
            errors.append(f"half_spread should be between 0 and 1, got {self.half_spread}")

        if self.periods_per_year < 1:
            errors.append(f"periods_per_year must be at least 1, got {self.periods_per_year}")

        if self.session_bars < 2:
            errors.append(f"session_bars must be at least 2, got {self.session_bars}")

        if not 0 < self.single_session_multiplier <= 1:
            errors.append(f"single_session_multiplier must be between 0 and 1, got {self.single_session_multiplier}")

        if self.synthetic_base_volume <= 0:
            errors.append(f"synthetic_base_volume must be positive, got {self.synthetic_base_volume}")

        if not 0 < self.synthetic_bar_volatility < 0.1:
            errors.append(f"synthetic_bar_volatility should be between 0 and 0.1, got {self.synthetic_bar_volatility}")

        if errors:
            for error in errors:
                logger.error(f"Rejected backtest setting: {error}")
            raise ValueError(f"Invalid backtest configuration: {'; '.join(errors)}")

    @property
    def risk_free_rate_per_period(self) -> float:
        """Risk-free rate for one equity-curve period."""
        return self.risk_free_rate / self.periods_per_year

    def to_dict(self) -> dict:
        """Plain dict of every setting, as logged at startup."""
        return asdict(self)


# Singleton instance
_config_instance: Optional[BacktestConfig] = None


def get_backtest_config() -> BacktestConfig:
    """Get the singleton BacktestConfig instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = BacktestConfig()
        logger.info(f"Initialized BacktestConfig: {_config_instance.to_dict()}")
    return _config_instance


def reset_backtest_config():
    """Drop the cached instance so the next get re-reads the environment."""
    global _config_instance
    _config_instance = None
