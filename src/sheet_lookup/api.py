"""FastAPI application for spreadsheet upload and identifier lookup."""

import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import (
    FastAPI,
    File,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sheet_lookup.config import settings, validate_settings_on_startup
from sheet_lookup.models import (
    DeleteResponse,
    ErrorDetail,
    FileAction,
    FileDataResponse,
    FileKind,
    FileListResponse,
    FileMetadataResponse,
    HealthResponse,
    RemoteCsvResponse,
    SearchResponse,
    SheetData,
    SheetMatchModel,
    StorageHealthResponse,
    UploadResponse,
)
from sheet_lookup.services.file_repository import (
    FileRepository,
    LocalFileRepository,
)
from sheet_lookup.services.google_sheets import GoogleSheetsClient
from sheet_lookup.services.identifier_resolver import (
    LookupResult,
    NotFound,
    SheetMatch,
)
from sheet_lookup.services.lookup_service import SpreadsheetService
from sheet_lookup.utils.exceptions import (
    ErrorCode,
    RowNotFoundError,
    SheetLookupError,
    ValidationError,
)
from sheet_lookup.utils.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_file_id,
    set_request_id,
)

# Configure structured logging using settings
configure_logging(
    level=settings.log_level_int,
    use_structured_formatter=True,
)
logger = get_logger(__name__)

API_VERSION = "0.1.0"


def _match_model(match: SheetMatch) -> SheetMatchModel:
    return SheetMatchModel(
        sheet_name=match.sheet_name,
        data=dict(match.row),
        searched_column=match.identifier_column,
    )


def build_search_response(result: LookupResult) -> dict[str, Any]:
    """Render a lookup result as a search response payload.

    A single match is returned as the bare row; several matches are returned
    as the list of per-sheet matches.

    Raises:
        RowNotFoundError: If nothing matched.
    """
    if isinstance(result, NotFound):
        raise RowNotFoundError(result.searched_value)

    sheets = [_match_model(m) for m in result.matches]
    multiple = len(sheets) > 1
    return SearchResponse(
        data=sheets if multiple else sheets[0].data,
        multiple_sheets=multiple,
        sheets=sheets,
        searched_value=result.searched_value,
    ).model_dump()


def _content_disposition(filename: str) -> str:
    safe = filename.replace('"', "")
    return f'attachment; filename="{safe}"'


def create_app(
    repository: FileRepository | None = None,
    sheets_client: GoogleSheetsClient | None = None,
    published_sheet_url: str | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        repository: File repository to use. Built from settings when omitted.
        sheets_client: Google Sheets client to use. Built from settings when
            omitted, and closed on shutdown.
        published_sheet_url: Default sheet for GET /sheets. Falls back to the
            configured published sheet URL.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        owned_client = sheets_client is None
        client = sheets_client or GoogleSheetsClient.from_settings(settings)
        app.state.service = SpreadsheetService(
            repository=repository or LocalFileRepository.from_settings(settings),
            sheets_client=client,
            published_sheet_url=(
                published_sheet_url or settings.get_published_sheet_url() or None
            ),
            max_file_size_bytes=settings.max_file_size_bytes,
        )
        try:
            yield
        finally:
            if owned_client:
                await client.aclose()
            app.state.service = None

    app = FastAPI(
        title="Sheet Lookup API",
        description=(
            "Upload Excel or CSV files and look up rows by their identifier "
            "column, in stored files or in published Google Sheets."
        ),
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Configure CORS using settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    validate_settings_on_startup(settings)

    def get_service(request: Request) -> SpreadsheetService:
        service: SpreadsheetService = request.app.state.service
        return service

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        """Assign a request ID, expose it to logging and echo it back."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()

    @app.exception_handler(SheetLookupError)
    async def sheet_lookup_exception_handler(
        request: Request, exc: SheetLookupError
    ) -> JSONResponse:
        """Render application errors as structured error responses."""
        request_id = getattr(request.state, "request_id", get_request_id())
        log = logger.warning if exc.http_status < 500 else logger.error
        log(
            f"Request failed: {exc.message}",
            error_code=exc.error_code.value,
            http_status=exc.http_status,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content=ErrorDetail(
                detail=exc.message,
                error_code=exc.error_code.value,
                details=exc.details if exc.details else None,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        """Custom exception handler for HTTP exceptions."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.warning(
            f"HTTP Error: {exc.detail}",
            status_code=exc.status_code,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorDetail(
                detail=str(exc.detail),
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch-all handler that hides internal details from clients."""
        request_id = getattr(request.state, "request_id", get_request_id())
        logger.exception(
            f"Unexpected error: {type(exc).__name__}",
            error_type=type(exc).__name__,
        )
        if settings.debug:
            detail = f"Internal server error: {type(exc).__name__}: {exc}"
        else:
            detail = "Internal server error. Please try again later."

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorDetail.from_error_code(
                ErrorCode.INTERNAL_ERROR,
                detail=detail,
                request_id=request_id,
            ).model_dump(exclude_none=True),
        )

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> dict[str, Any]:
        """Check the health status of the service."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": API_VERSION,
        }

    @app.get(
        "/health/storage",
        response_model=StorageHealthResponse,
        tags=["Health"],
        responses={500: {"model": ErrorDetail}},
    )
    def storage_health(request: Request) -> dict[str, Any]:
        """Check that file storage and the metadata index are reachable."""
        details = get_service(request).repository.check_health()
        return {
            "success": True,
            "message": "Storage connection successful",
            "details": details,
        }

    # ------------------------------------------------------------------ #
    # Stored files
    # ------------------------------------------------------------------ #

    @app.post(
        "/files",
        response_model=UploadResponse,
        tags=["Files"],
        responses={
            400: {"model": ErrorDetail, "description": "Unsupported file type"},
            413: {"model": ErrorDetail, "description": "File too large"},
        },
    )
    async def upload_file(
        request: Request,
        file: Annotated[UploadFile, File(description="Excel or CSV file")],
    ) -> dict[str, Any]:
        """Upload an Excel or CSV file and record its metadata."""
        content = await file.read()
        filename = file.filename or "upload"
        logger.info(
            "Upload received",
            filename=filename,
            content_type=file.content_type,
            size=len(content),
        )
        stored = get_service(request).upload(
            content,
            filename,
            file.content_type or "application/octet-stream",
        )
        set_file_id(stored.id)
        logger.info("File uploaded", file_type=stored.file_type.value)
        return {"success": True, "file": stored}

    @app.get("/files", response_model=FileListResponse, tags=["Files"])
    def list_files(
        request: Request,
        page: Annotated[int, Query(ge=1)] = 1,
        limit: Annotated[
            int, Query(ge=1, le=settings.max_page_size)
        ] = settings.default_page_size,
        file_type: Annotated[FileKind | None, Query(alias="type")] = None,
    ) -> dict[str, Any]:
        """List stored files, newest first."""
        files = get_service(request).repository.list_files(
            page=page, limit=limit, file_type=file_type
        )
        return {"success": True, "files": files, "page": page, "limit": limit}

    @app.get(
        "/files/{file_id}",
        tags=["Files"],
        responses={
            200: {
                "description": (
                    "File metadata, file content, parsed sheets, or the "
                    "row matching the searched identifier"
                ),
            },
            400: {"model": ErrorDetail, "description": "Invalid action"},
            404: {"model": ErrorDetail, "description": "File or row not found"},
        },
    )
    def get_file(
        request: Request,
        file_id: str,
        search: str | None = None,
        lower_id: Annotated[str | None, Query(alias="id")] = None,
        upper_id: Annotated[str | None, Query(alias="Id")] = None,
        action: str | None = None,
    ) -> Any:
        """Return metadata, content or parsed data of a stored file.

        When a ``search``, ``id`` or ``Id`` query parameter is present the row
        with that identifier is looked up instead.
        """
        set_file_id(file_id)
        service = get_service(request)

        search_value = next(
            (v for v in (search, lower_id, upper_id) if v is not None), None
        )
        if search_value is not None:
            return build_search_response(service.search_file(file_id, search_value))

        try:
            file_action = FileAction(action) if action else FileAction.METADATA
        except ValueError:
            raise ValidationError(
                "Invalid action parameter",
                field="action",
                details={"allowed": [a.value for a in FileAction]},
            ) from None

        if file_action == FileAction.METADATA:
            stored = service.repository.get(file_id)
            return FileMetadataResponse(file=stored).model_dump()

        if file_action == FileAction.DOWNLOAD:
            stored = service.repository.get(file_id)
            content = service.repository.download(file_id)
            return Response(
                content=content,
                media_type=stored.mime_type,
                headers={
                    "Content-Disposition": _content_disposition(
                        stored.original_name
                    )
                },
            )

        sheets = service.read_file(file_id)
        return FileDataResponse(
            data=sheets[0] if sheets else None,
            all_sheets=sheets,
        ).model_dump()

    @app.delete(
        "/files/{file_id}",
        response_model=DeleteResponse,
        tags=["Files"],
        responses={404: {"model": ErrorDetail}},
    )
    def delete_file(request: Request, file_id: str) -> dict[str, Any]:
        """Delete a stored file and its metadata."""
        set_file_id(file_id)
        get_service(request).repository.delete(file_id)
        return {"success": True, "message": "File deleted successfully"}

    # ------------------------------------------------------------------ #
    # Google Sheets
    # ------------------------------------------------------------------ #

    def _require(value: str | None, field: str) -> str:
        if not value:
            raise ValidationError(
                f"{field.upper()} parameter is required", field=field
            )
        return value

    @app.get(
        "/sheets/url",
        response_model=RemoteCsvResponse,
        tags=["Google Sheets"],
        responses={
            400: {"model": ErrorDetail, "description": "Invalid sheet URL"},
            502: {"model": ErrorDetail, "description": "Sheet fetch failed"},
        },
    )
    async def fetch_sheet_csv(
        request: Request, url: str | None = None
    ) -> dict[str, Any]:
        """Fetch a Google Sheet as raw CSV text."""
        export_url, text = await get_service(request).fetch_remote_csv(
            _require(url, "url")
        )
        return {"success": True, "url": export_url, "data": text}

    @app.get(
        "/sheets/url/read",
        response_model=SheetData,
        tags=["Google Sheets"],
        responses={
            400: {"model": ErrorDetail, "description": "Invalid sheet URL"},
            502: {"model": ErrorDetail, "description": "Sheet fetch failed"},
        },
    )
    async def read_sheet(request: Request, url: str | None = None) -> SheetData:
        """Fetch a Google Sheet and parse it for display."""
        return await get_service(request).read_remote_sheet(_require(url, "url"))

    @app.get(
        "/sheets",
        tags=["Google Sheets"],
        responses={
            200: {"model": SearchResponse},
            400: {"model": ErrorDetail, "description": "Missing ID"},
            404: {"model": ErrorDetail, "description": "Row not found"},
            502: {"model": ErrorDetail, "description": "Sheet fetch failed"},
        },
    )
    async def search_sheet(
        request: Request,
        lookup_id: Annotated[str | None, Query(alias="id")] = None,
        url: str | None = None,
    ) -> dict[str, Any]:
        """Look up a row by identifier in a published Google Sheet."""
        result = await get_service(request).search_remote_sheet(
            _require(lookup_id, "id"), url=url
        )
        return build_search_response(result)

    logger.info("FastAPI application created successfully")
    return app


# Create the application instance
app = create_app()
