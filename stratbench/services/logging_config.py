"""
Logging setup for stratbench

Every record emitted during a backtest carries the run ID of that backtest,
held in a context variable so concurrent runs on one event loop stay apart.

Two output shapes are available:
- JSON lines: {timestamp, run_id, service, level, message, extra}
- Console lines: "[run_id] LEVEL service - message"

Helpers:
- log_api_call() records one bar source HTTP request
- @log_method times a sync or async callable
"""
import functools
import inspect
import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

_current_run: ContextVar[Optional[str]] = ContextVar("stratbench_run_id", default=None)

Decorated = TypeVar("Decorated", bound=Callable[..., Any])

# Everything logging.LogRecord sets on itself; the rest came in through extra=
_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_COLOR_OFF = "\033[0m"


def get_run_id() -> str:
    """Return the active run ID, minting one on first use in this context."""
    current = _current_run.get()
    if current is None:
        current = set_run_id()
    return current


def set_run_id(run_id: Optional[str] = None) -> str:
    """Bind a run ID (a fresh UUID when omitted) and return it."""
    chosen = run_id or uuid.uuid4().hex
    _current_run.set(chosen)
    return chosen


def clear_run_id() -> None:
    _current_run.set(None)


def _service_name(record: logging.LogRecord) -> str:
    return record.name.rsplit(".", 1)[-1]


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """Collect the fields passed through extra=, coerced to JSON-safe values."""
    extras: Dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _RECORD_FIELDS or key.startswith("_"):
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = str(value)
        extras[key] = value
    return extras


class StructuredFormatter(logging.Formatter):
    """Renders each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "run_id": get_run_id(),
            "service": _service_name(record),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        extras = _record_extras(record)
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output for a terminal, prefixed with the short run ID."""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8}"
        color = _LEVEL_COLORS.get(record.levelno) if self.use_color else None
        if color:
            level = f"{color}{level}{_COLOR_OFF}"

        line = f"[{get_run_id()[:8]}] {level} {_service_name(record):20} - {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str, use_json: bool = False) -> logging.Logger:
    """
    Return the named logger, attaching a stream handler the first time.

    Handlers are only added once per logger name, so repeated imports do not
    duplicate output. The handler passes INFO and above; the logger itself
    stays at DEBUG so tests can capture @log_method timings.
    """
    named = logging.getLogger(name)
    if named.handlers:
        return named

    stream = logging.StreamHandler()
    stream.setLevel(logging.INFO)
    stream.setFormatter(StructuredFormatter() if use_json else ConsoleFormatter())
    named.addHandler(stream)
    named.setLevel(logging.DEBUG)
    return named


def _api_call_level(status_code: Optional[int], error: Optional[str]) -> int:
    if status_code == 429:
        return logging.WARNING
    if error or (status_code is not None and status_code >= 400):
        return logging.ERROR
    return logging.INFO


def log_api_call(
    logger: logging.Logger,
    method: str,
    endpoint: str,
    status_code: Optional[int] = None,
    response_time_ms: Optional[float] = None,
    error: Optional[str] = None,
    **extra: Any
) -> None:
    """
    Record one outbound HTTP request.

    Rate-limited responses log at WARNING, failures at ERROR and everything
    else at INFO. `endpoint` must already be stripped of credentials.
    """
    level = _api_call_level(status_code, error)
    label = {logging.WARNING: "API RATE LIMITED", logging.ERROR: "API ERROR"}.get(level, "API CALL")

    fields: Dict[str, Any] = {"api_method": method, "api_endpoint": endpoint, **extra}
    parts = [f"{label}: {method} {endpoint}"]

    if response_time_ms is not None:
        fields["response_time_ms"] = round(response_time_ms, 2)
        parts.append(f"({response_time_ms:.0f}ms)")
    if status_code is not None:
        fields["status_code"] = status_code
        parts.append(f"-> {status_code}")
    if error:
        fields["error"] = error

    logger.log(level, " ".join(parts), extra=fields)


def log_method(
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG,
) -> Callable[[Decorated], Decorated]:
    """
    Time a function or coroutine function, logging its start and outcome.

        @log_method(logger=logger)
        async def run(self):
            ...

    Exceptions are logged with their type and re-raised unchanged.
    """
    def decorator(func: Decorated) -> Decorated:
        target = logger or logging.getLogger(func.__module__)
        name = func.__qualname__

        def started() -> float:
            target.log(level, f"ENTER: {name}", extra={"function": name})
            return time.perf_counter()

        def finished(began: float, failure: Optional[BaseException] = None) -> None:
            elapsed = round((time.perf_counter() - began) * 1000, 2)
            fields: Dict[str, Any] = {"function": name, "execution_time_ms": elapsed}
            if failure is None:
                target.log(level, f"EXIT: {name} ({elapsed:.2f}ms)", extra=fields)
                return
            fields["error_type"] = type(failure).__name__
            target.log(
                level,
                f"ERROR: {name} ({elapsed:.2f}ms) - {fields['error_type']}: {failure}",
                extra=fields,
            )

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def timed_coroutine(*args: Any, **kwargs: Any) -> Any:
                began = started()
                try:
                    outcome = await func(*args, **kwargs)
                except Exception as e:
                    finished(began, e)
                    raise
                finished(began)
                return outcome

            return timed_coroutine  # type: ignore[return-value]

        @functools.wraps(func)
        def timed_call(*args: Any, **kwargs: Any) -> Any:
            began = started()
            try:
                outcome = func(*args, **kwargs)
            except Exception as e:
                finished(began, e)
                raise
            finished(began)
            return outcome

        return timed_call  # type: ignore[return-value]

    return decorator
