"""
StratBench Integration Tests Package
====================================
Integration tests for complete backtest runs and the orchestrator state machine.

This package provides:
- Fallback and market-data backtest scenarios
- Determinism and day-end closure checks
- Failure degradation and input validation tests
"""
