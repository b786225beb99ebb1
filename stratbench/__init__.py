"""
StratBench: intraday strategy backtesting.
"""

__version__ = "0.1.0"
