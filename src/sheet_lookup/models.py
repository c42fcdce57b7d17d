"""Pydantic models for API requests and responses."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from sheet_lookup.utils.exceptions import ErrorCode


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: str
    version: str


class StorageHealthResponse(BaseModel):
    """Response model for the storage connectivity check."""

    success: bool
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class FileKind(str, Enum):
    """Kind of a stored file."""

    EXCEL = "excel"
    CSV = "csv"
    OTHER = "other"


class FileAction(str, Enum):
    """What GET /files/{file_id} returns when no search value is given."""

    METADATA = "metadata"
    DOWNLOAD = "download"
    READ = "read"


class StoredFile(BaseModel):
    """Metadata of an uploaded file."""

    id: str = Field(..., description="Unique identifier of the stored file")
    filename: str = Field(..., description="Unique stored filename")
    original_name: str = Field(..., description="Filename as uploaded")
    file_path: str = Field(..., description="Object path inside the bucket")
    file_size: int = Field(..., description="Size of the file in bytes")
    mime_type: str = Field(..., description="MIME type declared at upload")
    upload_date: str = Field(..., description="ISO-8601 upload timestamp")
    file_type: FileKind = Field(..., description="excel, csv or other")
    sheet_count: int | None = Field(
        default=None, description="Number of sheets (tabs) in the file"
    )
    public_url: str | None = Field(
        default=None, description="Public URL of the object, if served publicly"
    )


class UploadResponse(BaseModel):
    """Response model for the upload endpoint."""

    success: bool = True
    file: StoredFile


class FileListResponse(BaseModel):
    """Response model for the file listing endpoint."""

    success: bool = True
    files: list[StoredFile]
    page: int
    limit: int


class FileMetadataResponse(BaseModel):
    """Response model for GET /files/{file_id}?action=metadata."""

    success: bool = True
    file: StoredFile


class DeleteResponse(BaseModel):
    """Response model for the delete endpoint."""

    success: bool = True
    message: str


class SheetData(BaseModel):
    """One sheet rendered for display."""

    file_name: str = Field(..., description="Name of the source file or sheet")
    sheet_name: str
    columns: list[str]
    data: list[dict[str, Any]]
    total_rows: int


class FileDataResponse(BaseModel):
    """Response model for GET /files/{file_id}?action=read."""

    success: bool = True
    data: SheetData | None = Field(
        default=None, description="First sheet of the file, if any"
    )
    all_sheets: list[SheetData] = Field(default_factory=list)


class SheetMatchModel(BaseModel):
    """A matched row tagged with its sheet and identifier column."""

    sheet_name: str
    data: dict[str, Any]
    searched_column: str


class SearchResponse(BaseModel):
    """Response model for identifier lookups."""

    success: bool = True
    data: dict[str, Any] | list[SheetMatchModel] = Field(
        ..., description="Matched row, or one match per sheet when several match"
    )
    multiple_sheets: bool = False
    sheets: list[SheetMatchModel] = Field(default_factory=list)
    searched_value: str


class RemoteCsvResponse(BaseModel):
    """Response model for GET /sheets/url."""

    success: bool = True
    url: str = Field(..., description="CSV export URL that was fetched")
    data: str = Field(..., description="Raw CSV text")


class ErrorDetail(BaseModel):
    """Error detail model for API error responses.

    This model provides structured error responses with:
    - Human-readable error message
    - Machine-readable error code
    - Optional additional details for debugging
    - Optional request ID for correlation
    """

    success: bool = False
    detail: str = Field(..., description="Human-readable error message")
    error_code: str | None = Field(
        default=None,
        description="Machine-readable error code (e.g., 'E1001')",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details for debugging",
    )
    request_id: str | None = Field(
        default=None,
        description="Request ID for error correlation",
    )

    @classmethod
    def from_error_code(
        cls,
        error_code: ErrorCode,
        detail: str,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> "ErrorDetail":
        """Create an ErrorDetail from an ErrorCode enum value."""
        return cls(
            detail=detail,
            error_code=error_code.value,
            details=details,
            request_id=request_id,
        )
