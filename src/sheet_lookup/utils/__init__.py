"""Utilities package for sheet lookup.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from sheet_lookup.utils.exceptions import (
    EmptyInputError,
    ErrorCode,
    FileError,
    HTTPStatusMixin,
    ParseError,
    RemoteSheetError,
    RowNotFoundError,
    SheetLookupError,
    UnreadableWorkbookError,
    UnsupportedFormatError,
    UnsupportedKindError,
    ValidationError,
)
from sheet_lookup.utils.logging import (
    LogContext,
    StructuredLogger,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Exceptions
    "EmptyInputError",
    "ErrorCode",
    "FileError",
    "HTTPStatusMixin",
    "ParseError",
    "RemoteSheetError",
    "RowNotFoundError",
    "SheetLookupError",
    "UnreadableWorkbookError",
    "UnsupportedFormatError",
    "UnsupportedKindError",
    "ValidationError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
