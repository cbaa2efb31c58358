import asyncio
import json
import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator

from pageflow.core.config import settings

correlation_context_var: ContextVar[Dict[str, Any]] = ContextVar(
    "correlation_context", default={}
)


def add_correlation_id(key: str, value: Any) -> None:
    """
    Add a key-value pair to the correlation context of the current task
    """
    ctx = dict(correlation_context_var.get())
    ctx[key] = value
    correlation_context_var.set(ctx)


def get_correlation_context() -> Dict[str, Any]:
    return correlation_context_var.get()


def reset_correlation_context() -> None:
    correlation_context_var.set({})


@contextmanager
def correlation_scope(**values: Any) -> Iterator[Dict[str, Any]]:
    """
    Attach values to every log line emitted inside the block

    The previous context is restored on exit, so ids such as a page
    request id do not leak into later logs from the same task.
    """
    ctx = {**correlation_context_var.get(), **values}
    token = correlation_context_var.set(ctx)
    try:
        yield ctx
    finally:
        correlation_context_var.reset(token)


class LogContext:
    """
    Logger wrapper that merges the correlation context into structured extras
    """

    def __init__(self, logger_name: str | None = None):
        self.logger = (
            logging.getLogger(logger_name) if logger_name else logging.getLogger()
        )

    def info(self, message: str, extra: Dict[str, Any] | None = None) -> None:
        self._log(logging.INFO, message, extra)

    def warning(self, message: str, extra: Dict[str, Any] | None = None) -> None:
        self._log(logging.WARNING, message, extra)

    def error(
        self, message: str, extra: Dict[str, Any] | None = None, exc_info: bool = False
    ) -> None:
        self._log(logging.ERROR, message, extra, exc_info)

    def debug(self, message: str, extra: Dict[str, Any] | None = None) -> None:
        self._log(logging.DEBUG, message, extra)

    def _log(
        self,
        level: int,
        message: str,
        extra: Dict[str, Any] | None = None,
        exc_info: bool = False,
    ) -> None:
        log_extra = {**get_correlation_context(), **(extra or {})}
        self.logger.log(level, message, extra=log_extra, exc_info=exc_info)


# Attributes every LogRecord carries; anything else on a record came from `extra`
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}

_PROMOTED_ATTRS = ("request_id", "metrics", "duration_ms")


class CustomFormatter(logging.Formatter):
    """
    JSON formatter for structured logs
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
            "path": f"{record.pathname}:{record.lineno}",
            "service": settings.PROJECT_NAME,
        }

        for key in _PROMOTED_ATTRS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        for key, value in record.__dict__.items():
            if (
                key not in _PROMOTED_ATTRS
                and key not in _RESERVED_ATTRS
                and not key.startswith("_")
            ):
                log_entry[key] = value

        if record.exc_info and isinstance(record.exc_info, tuple):
            exc_type, exc_value, *_ = record.exc_info
            if exc_type and exc_value:
                log_entry["error"] = {
                    "type": exc_type.__name__,
                    "message": str(exc_value),
                }

        return json.dumps(log_entry, default=str)


class PerformanceLogger:
    """
    Times a block and logs its duration

    With log_failures=False a failing block is only logged at debug level;
    use it where the caller reports the failure itself. Cancellation is
    never treated as a failure.
    """

    def __init__(self, logger: LogContext, operation_name: str, log_failures: bool = True):
        self.logger = logger
        self.operation_name = operation_name
        self.log_failures = log_failures
        self.start_time = None
        self.duration_ms = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        extra = {"duration_ms": self.duration_ms}

        if exc_type is None:
            self.logger.debug(
                f"Operation {self.operation_name} completed in {self.duration_ms:.2f}ms",
                extra=extra,
            )
        elif issubclass(exc_type, asyncio.CancelledError):
            self.logger.debug(
                f"Operation {self.operation_name} cancelled after {self.duration_ms:.2f}ms",
                extra=extra,
            )
        elif self.log_failures:
            self.logger.error(
                f"Operation {self.operation_name} failed after {self.duration_ms:.2f}ms",
                extra=extra,
                exc_info=True,
            )
        else:
            self.logger.debug(
                f"Operation {self.operation_name} failed after {self.duration_ms:.2f}ms",
                extra={**extra, "error_type": exc_type.__name__},
            )


def setup_logging() -> None:
    """Route every logger through the JSON formatter: all levels to file, warnings and up to the console"""
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL)
    root_logger.handlers = []

    formatter = CustomFormatter()

    file_handler = logging.FileHandler(settings.LOG_FILE)
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.WARNING)
    root_logger.addHandler(console_handler)

    reset_correlation_context()
