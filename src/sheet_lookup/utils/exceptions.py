"""Centralized exception classes for sheet lookup.

This module provides a hierarchy of custom exceptions with error codes,
HTTP status code mapping, and structured error details for consistent
error handling throughout the application.

Exception Hierarchy:
    SheetLookupError (base)
    ├── FileError
    │   ├── StoredFileNotFoundError
    │   ├── FileTooLargeError
    │   ├── UnsupportedFormatError
    │   └── StorageError
    ├── ParseError
    │   ├── EmptyInputError
    │   ├── UnreadableWorkbookError
    │   └── UnsupportedKindError
    ├── RowNotFoundError
    ├── ValidationError
    ├── RemoteSheetError
    │   └── InvalidSheetUrlError
    └── ConfigurationError

Error Codes:
    All errors have a unique error code (e.g., "E1001") that can be used
    for programmatic error handling and documentation.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the application.

    Error codes are grouped by category:
    - E1xxx: Stored file errors
    - E2xxx: Parsing errors
    - E3xxx: Lookup and request validation errors
    - E4xxx: Remote sheet errors
    - E9xxx: Internal/unexpected errors
    """

    # File errors (E1xxx)
    FILE_NOT_FOUND = "E1001"
    FILE_TOO_LARGE = "E1002"
    UNSUPPORTED_FORMAT = "E1003"
    FILE_READ_ERROR = "E1004"
    FILE_WRITE_ERROR = "E1005"

    # Parse errors (E2xxx)
    EMPTY_INPUT = "E2001"
    UNREADABLE_WORKBOOK = "E2002"
    UNSUPPORTED_KIND = "E2003"

    # Lookup errors (E3xxx)
    ROW_NOT_FOUND = "E3001"
    VALIDATION_FAILED = "E3002"

    # Remote sheet errors (E4xxx)
    INVALID_SHEET_URL = "E4001"
    SHEET_ACCESS_DENIED = "E4002"
    SHEET_NOT_FOUND = "E4003"
    SHEET_FETCH_FAILED = "E4004"
    SHEET_EMPTY = "E4005"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    CONFIGURATION_ERROR = "E9002"
    UNEXPECTED_ERROR = "E9999"


class HTTPStatusMixin:
    """Mixin that provides HTTP status code for exceptions.

    This mixin allows exceptions to declare their appropriate HTTP status code
    for API responses. Subclasses should set the `http_status` class attribute.
    """

    http_status: int = 500

    def get_http_status(self) -> int:
        """Get the HTTP status code for this exception.

        Returns:
            HTTP status code appropriate for this error.
        """
        return self.http_status


class SheetLookupError(Exception, HTTPStatusMixin):
    """Base exception for all sheet lookup errors.

    All custom exceptions in the application should inherit from this class.
    It provides:
    - Unique error codes for programmatic handling
    - HTTP status code mapping for API responses
    - Structured error details for logging and debugging

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
        http_status: HTTP status code for API responses (default 500).
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for API responses.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code.value}] {self.message}"


# =============================================================================
# File Errors (E1xxx)
# =============================================================================


class FileError(SheetLookupError):
    """Base class for stored file errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FILE_READ_ERROR,
        file_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with file reference information.

        Args:
            message: Error message.
            error_code: Error code.
            file_id: Identifier of the problematic stored file.
            details: Additional details.
        """
        details = details or {}
        if file_id:
            details["file_id"] = file_id
        super().__init__(message, error_code, details)
        self.file_id = file_id


class StoredFileNotFoundError(FileError):
    """Raised when a stored file reference does not exist.

    Note: Named StoredFileNotFoundError to avoid shadowing built-in
    FileNotFoundError.
    """

    http_status: int = 404

    def __init__(
        self,
        file_id: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with file ID.

        Args:
            file_id: ID of the file that was not found.
            message: Optional custom message.
            details: Additional details.
        """
        message = message or "File not found"
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_NOT_FOUND,
            file_id=file_id,
            details=details,
        )


class FileTooLargeError(FileError):
    """Raised when an upload exceeds the maximum allowed size."""

    http_status: int = 413

    def __init__(
        self,
        file_size: int,
        max_size: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with size information.

        Args:
            file_size: Actual file size in bytes.
            max_size: Maximum allowed size in bytes.
            details: Additional details.
        """
        details = details or {}
        details["file_size_bytes"] = file_size
        details["max_size_bytes"] = max_size
        message = (
            f"File size ({file_size} bytes) exceeds maximum "
            f"allowed size ({max_size} bytes)"
        )
        super().__init__(
            message=message,
            error_code=ErrorCode.FILE_TOO_LARGE,
            details=details,
        )
        self.file_size = file_size
        self.max_size = max_size


class UnsupportedFormatError(FileError):
    """Raised when an upload is neither an Excel workbook nor a CSV file."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        detected_mime: str | None = None,
        filename: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with format information.

        Args:
            message: Error message.
            detected_mime: MIME type that was declared or detected.
            filename: Name of the rejected upload.
            details: Additional details.
        """
        details = details or {}
        if detected_mime:
            details["detected_mime_type"] = detected_mime
        if filename:
            details["filename"] = filename
        super().__init__(
            message=message,
            error_code=ErrorCode.UNSUPPORTED_FORMAT,
            details=details,
        )
        self.detected_mime = detected_mime


class StorageError(FileError):
    """Raised when the file repository cannot read or write."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FILE_WRITE_ERROR,
        file_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            file_id=file_id,
            details=details,
        )


# =============================================================================
# Parse Errors (E2xxx)
# =============================================================================


class ParseError(SheetLookupError):
    """Base class for errors raised while building sheets from raw input."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.EMPTY_INPUT,
        kind: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the declared input kind.

        Args:
            message: Error message.
            error_code: Error code.
            kind: Declared kind of the input ("csv", "workbook", ...).
            details: Additional details.
        """
        details = details or {}
        if kind:
            details["kind"] = kind
        super().__init__(message, error_code, details)
        self.kind = kind


class EmptyInputError(ParseError):
    """Raised when delimited text has no non-blank lines."""

    def __init__(
        self,
        message: str = "No data found in CSV file",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.EMPTY_INPUT,
            kind="csv",
            details=details,
        )


class UnreadableWorkbookError(ParseError):
    """Raised when workbook bytes cannot be decoded."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.UNREADABLE_WORKBOOK,
            kind="workbook",
            details=details,
        )


class UnsupportedKindError(ParseError):
    """Raised when a caller declares a file kind the parser does not handle."""

    def __init__(
        self,
        kind: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the rejected kind.

        Args:
            kind: The declared kind that is not supported.
            message: Optional custom message.
            details: Additional details.
        """
        message = message or f"Unsupported file type: {kind}"
        super().__init__(
            message=message,
            error_code=ErrorCode.UNSUPPORTED_KIND,
            kind=kind,
            details=details,
        )


# =============================================================================
# Lookup and Validation Errors (E3xxx)
# =============================================================================


class RowNotFoundError(SheetLookupError):
    """Raised by the web layer when a lookup matched no row."""

    http_status: int = 404

    def __init__(
        self,
        searched_value: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the value that was searched for.

        Args:
            searched_value: The caller's search value, unchanged.
            message: Optional custom message.
            details: Additional details.
        """
        details = details or {}
        details["searched_value"] = searched_value
        message = message or f"No data found for ID: {searched_value}"
        super().__init__(
            message=message,
            error_code=ErrorCode.ROW_NOT_FOUND,
            details=details,
        )
        self.searched_value = searched_value


class ValidationError(SheetLookupError):
    """General validation error for request input."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        field: str | None = None,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with validation details.

        Args:
            message: Main error message.
            field: Field that failed validation.
            errors: List of validation errors.
            details: Additional details.
        """
        details = details or {}
        if field:
            details["field"] = field
        if errors:
            details["validation_errors"] = errors
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_FAILED,
            details=details,
        )


# =============================================================================
# Remote Sheet Errors (E4xxx)
# =============================================================================


class RemoteSheetError(SheetLookupError):
    """Raised when a published Google Sheet cannot be fetched."""

    http_status: int = 502

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SHEET_FETCH_FAILED,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize with the remote URL and upstream status.

        Args:
            message: Error message.
            error_code: Error code.
            url: URL that was requested.
            status_code: Upstream HTTP status, when a response was received.
            details: Additional details.
        """
        details = details or {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["upstream_status"] = status_code
        super().__init__(message, error_code, details)
        self.url = url
        self.status_code = status_code


class InvalidSheetUrlError(RemoteSheetError):
    """Raised when a URL is not a recognizable Google Sheets link."""

    http_status: int = 400

    def __init__(
        self,
        url: str,
        message: str = "Invalid Google Sheets URL",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorCode.INVALID_SHEET_URL,
            url=url,
            details=details,
        )


# =============================================================================
# Internal Errors (E9xxx)
# =============================================================================


class ConfigurationError(SheetLookupError):
    """Raised when a required setting is missing or invalid."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if setting:
            details["setting"] = setting
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
        )
