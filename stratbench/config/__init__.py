"""
Configuration module for the StratBench backtesting engine.

Centralizes all configurable values with environment variable overrides.
"""

from .backtest_config import BacktestConfig, get_backtest_config, reset_backtest_config

__all__ = ['BacktestConfig', 'get_backtest_config', 'reset_backtest_config']
