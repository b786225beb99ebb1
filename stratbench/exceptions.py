"""
StratBench Custom Exception Classes

This module provides a hierarchical exception structure for the backtesting
engine, enabling callers to catch specific exception types.

Exception Hierarchy:
    StratBenchError (base)
    |-- BarSourceError
    |   +-- BarSourceRateLimitError
    |
    +-- InvalidBacktestInputError

Usage:
    from stratbench.exceptions import InvalidBacktestInputError

    try:
        results = await engine.run()
    except InvalidBacktestInputError as e:
        show_form_error(e.field, e.message)

Bar source errors never escape the orchestrator: they are retried and then
replaced with synthetic data. Only input validation errors reach the caller.
"""

from typing import Optional, Any, Dict


class StratBenchError(Exception):
    """
    Base exception for all StratBench errors.

    Attributes:
        message: Description shown to the caller
        error_code: Stable identifier such as INVALID_BACKTEST_INPUT
        details: Structured context (ticker, field, status)
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or "STRATBENCH_ERROR"
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, used in diagnostics and log payloads."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Bar Source Exceptions
# =============================================================================

class BarSourceError(StratBenchError):
    """
    Raised when a market bar source fails to deliver bars.

    This includes:
    - Network errors and timeouts
    - Non-2xx HTTP responses
    - Provider-level error payloads
    - Missing credentials

    Attributes:
        ticker: The ticker being fetched
        status_code: HTTP status of the failing response, if any
    """

    def __init__(
        self,
        message: str = "Failed to fetch market bars.",
        ticker: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None
    ):
        self.ticker = ticker
        self.status_code = status_code
        super().__init__(
            message=message,
            error_code=error_code or "BAR_SOURCE_ERROR",
            details={
                "ticker": ticker,
                "status_code": status_code
            }
        )


class BarSourceRateLimitError(BarSourceError):
    """
    Raised when the bar source reports a rate limit (HTTP 429).

    Attributes:
        retry_after: Suggested wait time in seconds, if the provider sent one
    """

    def __init__(
        self,
        message: str = "Bar source rate limit reached.",
        ticker: Optional[str] = None,
        retry_after: Optional[float] = None
    ):
        self.retry_after = retry_after
        super().__init__(
            message=message,
            ticker=ticker,
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED"
        )
        self.details["retry_after_seconds"] = retry_after


# =============================================================================
# Input Validation Exceptions
# =============================================================================

class InvalidBacktestInputError(StratBenchError):
    """
    Raised when a backtest request is rejected before any simulation work.

    Examples:
    - capital is zero or negative
    - end date is before start date

    Attributes:
        field: Name of the offending input
        value: The rejected value
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            error_code="INVALID_BACKTEST_INPUT",
            details={
                "field": field,
                "value": str(value) if value is not None else None
            }
        )
