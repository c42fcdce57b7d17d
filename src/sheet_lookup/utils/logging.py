"""Structured logging utilities for sheet lookup.

This module provides:
- Request ID tracking using contextvars for correlation across a request
- Structured logging with consistent format and metadata
- Performance metrics logging helpers for parsing and lookups

Usage:
    from sheet_lookup.utils.logging import (
        get_logger,
        set_request_id,
        LogContext,
    )

    logger = get_logger(__name__)

    # Set request ID for correlation
    set_request_id("abc-123")

    # Log with context
    with LogContext(file_id="file-456", operation="search"):
        logger.info("Searching stored file")

    # Time an operation
    with timed_operation(logger, "parse_workbook") as metrics:
        metrics.sheets_parsed = 3
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Context variables for request tracking
_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_file_id_var: ContextVar[str | None] = ContextVar("file_id", default=None)
_extra_context_var: ContextVar[dict[str, Any] | None] = ContextVar(
    "extra_context", default=None
)


def get_request_id() -> str | None:
    """Get the current request ID from context.

    Returns:
        The current request ID or None if not set.
    """
    return _request_id_var.get()


def set_request_id(request_id: str | None) -> None:
    """Set the request ID in context.

    Args:
        request_id: The request ID to set, or None to clear.
    """
    _request_id_var.set(request_id)


def get_file_id() -> str | None:
    """Get the current stored file ID from context.

    Returns:
        The current file ID or None if not set.
    """
    return _file_id_var.get()


def set_file_id(file_id: str | None) -> None:
    """Set the stored file ID in context.

    Args:
        file_id: The file ID to set, or None to clear.
    """
    _file_id_var.set(file_id)


def get_extra_context() -> dict[str, Any]:
    """Get additional context from context vars.

    Returns:
        Dictionary of extra context values.
    """
    ctx = _extra_context_var.get()
    return ctx if ctx is not None else {}


def set_extra_context(context: dict[str, Any]) -> None:
    """Set additional context in context vars.

    Args:
        context: Dictionary of extra context values.
    """
    _extra_context_var.set(context)


def clear_context() -> None:
    """Clear all context variables."""
    _request_id_var.set(None)
    _file_id_var.set(None)
    _extra_context_var.set(None)


@dataclass
class PerformanceMetrics:
    """Container for performance metrics during parsing and lookup.

    Attributes:
        operation: Name of the operation being measured.
        start_time: When the operation started.
        end_time: When the operation ended.
        duration_seconds: Duration in seconds.
        bytes_processed: Number of input bytes handled (if applicable).
        sheets_parsed: Number of sheets produced (if applicable).
        rows_scanned: Number of rows examined (if applicable).
        custom_metrics: Additional custom metrics.
    """

    operation: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    bytes_processed: int = 0
    sheets_parsed: int = 0
    rows_scanned: int = 0
    custom_metrics: dict[str, Any] = field(default_factory=dict)

    def finish(self) -> None:
        """Mark the operation as complete and calculate duration."""
        self.end_time = datetime.now(UTC)
        self.duration_seconds = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging.

        Returns:
            Dictionary with all non-zero metrics.
        """
        result: dict[str, Any] = {
            "operation": self.operation,
            "duration_seconds": self.duration_seconds,
        }
        if self.bytes_processed > 0:
            result["bytes_processed"] = self.bytes_processed
        if self.sheets_parsed > 0:
            result["sheets_parsed"] = self.sheets_parsed
        if self.rows_scanned > 0:
            result["rows_scanned"] = self.rows_scanned
        if self.custom_metrics:
            result["custom_metrics"] = self.custom_metrics
        return result


class StructuredLogFormatter(logging.Formatter):
    """Custom log formatter that includes context variables.

    This formatter adds request_id and file_id to log records when available,
    creating a consistent structured format for all log messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with context information.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message string.
        """
        request_id = get_request_id()
        file_id = get_file_id()

        prefix_parts = []
        if request_id:
            prefix_parts.append(f"request_id={request_id}")
        if file_id:
            prefix_parts.append(f"file_id={file_id}")

        extra = get_extra_context()
        for key, value in extra.items():
            prefix_parts.append(f"{key}={value}")

        prefix = f"[{' '.join(prefix_parts)}] " if prefix_parts else ""

        original_msg = record.msg
        record.msg = f"{prefix}{original_msg}"
        result = super().format(record)
        record.msg = original_msg

        return result


class StructuredLogger:
    """Enhanced logger with structured logging capabilities.

    Wraps a standard Python logger with additional methods for:
    - Logging with automatic context inclusion
    - Performance metrics logging
    - Remote call logging
    """

    def __init__(self, name: str) -> None:
        """Initialize the structured logger.

        Args:
            name: Logger name (typically __name__ of the module).
        """
        self._logger = logging.getLogger(name)
        self._name = name

    @property
    def logger(self) -> logging.Logger:
        """Access the underlying Python logger."""
        return self._logger

    def _build_message(
        self,
        message: str,
        **kwargs: Any,
    ) -> str:
        """Build a message with structured key-value pairs.

        Args:
            message: Base message.
            **kwargs: Additional key-value pairs to include.

        Returns:
            Formatted message string.
        """
        if not kwargs:
            return message

        parts = [f"{k}={v}" for k, v in kwargs.items()]
        return f"{message} | {', '.join(parts)}"

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log a debug message."""
        self._logger.debug(self._build_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Log an info message."""
        self._logger.info(self._build_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log a warning message."""
        self._logger.warning(self._build_message(message, **kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Log an error message.

        Args:
            message: Log message.
            exc_info: Whether to include exception info.
            **kwargs: Additional structured data.
        """
        self._logger.error(self._build_message(message, **kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self._logger.exception(self._build_message(message, **kwargs))

    def log_performance(self, metrics: PerformanceMetrics) -> None:
        """Log performance metrics.

        Args:
            metrics: Performance metrics to log.
        """
        self.debug(
            f"Performance: {metrics.operation}",
            **metrics.to_dict(),
        )

    def log_api_call(
        self,
        service: str,
        operation: str,
        duration_seconds: float,
        status_code: int | None = None,
        success: bool = True,
        error_message: str | None = None,
    ) -> None:
        """Log an outbound call with relevant metrics.

        Args:
            service: Service name (e.g., "google_sheets").
            operation: Operation performed.
            duration_seconds: Time taken for the call.
            status_code: Upstream HTTP status, if a response was received.
            success: Whether the call succeeded.
            error_message: Error message if call failed.
        """
        kwargs: dict[str, Any] = {
            "service": service,
            "operation": operation,
            "duration_seconds": f"{duration_seconds:.3f}",
            "success": success,
        }
        if status_code is not None:
            kwargs["status_code"] = status_code
        if error_message:
            kwargs["error"] = error_message

        level = logging.INFO if success else logging.WARNING
        self._logger.log(level, self._build_message("API call", **kwargs))


class LogContext:
    """Context manager for adding temporary context to logs.

    Usage:
        with LogContext(file_id="123", operation="search"):
            logger.info("Searching...")  # Will include file_id and operation
    """

    def __init__(self, **kwargs: Any) -> None:
        """Initialize with context values.

        Args:
            **kwargs: Key-value pairs to add to log context.
        """
        self._new_context = kwargs
        self._old_context: dict[str, Any] = {}
        self._old_file_id: str | None = None
        self._old_request_id: str | None = None

    def __enter__(self) -> "LogContext":
        """Enter the context, saving old values and setting new ones."""
        self._old_context = get_extra_context().copy()
        self._old_file_id = get_file_id()
        self._old_request_id = get_request_id()

        new_context = dict(self._new_context)
        file_id = new_context.pop("file_id", None)
        request_id = new_context.pop("request_id", None)

        if file_id is not None:
            set_file_id(file_id)

        if request_id is not None:
            set_request_id(request_id)

        merged = self._old_context.copy()
        merged.update(new_context)
        set_extra_context(merged)

        return self

    def __exit__(self, *args: Any) -> None:
        """Exit the context, restoring old values."""
        set_extra_context(self._old_context)
        set_file_id(self._old_file_id)
        set_request_id(self._old_request_id)


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Context manager for timing operations.

    Usage:
        with timed_operation(logger, "resolve") as metrics:
            metrics.rows_scanned = 1000

        # Logs: "Performance: resolve | duration_seconds=..."

    Args:
        logger: Logger to use for output.
        operation: Name of the operation.

    Yields:
        PerformanceMetrics instance for tracking.
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        logger.log_performance(metrics)


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    use_structured_formatter: bool = True,
) -> None:
    """Configure logging for the application.

    Args:
        level: Log level (int or string like "INFO").
        format_string: Custom format string (uses default if None).
        use_structured_formatter: Whether to use the structured formatter.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)

    formatter: logging.Formatter
    if use_structured_formatter:
        formatter = StructuredLogFormatter(format_string)
    else:
        formatter = logging.Formatter(format_string)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module.

    This is the primary way to get a logger in the application.

    Args:
        name: Logger name (typically __name__).

    Returns:
        StructuredLogger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("Parsed workbook", sheets=3, rows=120)
    """
    return StructuredLogger(name)
