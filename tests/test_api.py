"""Tests for the FastAPI application."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi import status

from sheet_lookup.api import build_search_response, create_app
from sheet_lookup.services.file_repository import LocalFileRepository
from sheet_lookup.services.google_sheets import GoogleSheetsClient
from sheet_lookup.services.identifier_resolver import Found, NotFound, SheetMatch
from sheet_lookup.utils.exceptions import RowNotFoundError

WorkbookBuilder = Callable[[dict[str, list[list[Any]]]], bytes]
ClientFactory = Callable[..., GoogleSheetsClient]

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
EDIT_URL = "https://docs.google.com/spreadsheets/d/abc123/edit"
USERS_CSV = b"id,name,email\nU1,Alice,alice@example.com\nU2,Bob,bob@example.com\n"


@asynccontextmanager
async def create_test_client(
    repository: LocalFileRepository,
    sheets_client: GoogleSheetsClient,
    published_sheet_url: str | None = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client with proper lifespan handling."""
    app = create_app(
        repository=repository,
        sheets_client=sheets_client,
        published_sheet_url=published_sheet_url,
    )
    async with (
        app.router.lifespan_context(app),
        httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
        ) as client,
    ):
        yield client


@pytest.fixture
async def client(
    repository: LocalFileRepository, sheets_client: GoogleSheetsClient
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an async test client for the FastAPI application."""
    async with create_test_client(repository, sheets_client) as ac:
        yield ac


async def _upload(
    client: httpx.AsyncClient,
    content: bytes = USERS_CSV,
    filename: str = "users.csv",
    content_type: str = "text/csv",
) -> dict[str, Any]:
    response = await client.post(
        "/files", files={"file": (filename, content, content_type)}
    )
    assert response.status_code == status.HTTP_200_OK, response.text
    file: dict[str, Any] = response.json()["file"]
    return file


class TestHealthEndpoints:
    """Tests for the health endpoints."""

    async def test_health_check(self, client: httpx.AsyncClient) -> None:
        """The service reports itself healthy."""
        response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data

    async def test_storage_health(self, client: httpx.AsyncClient) -> None:
        """The storage check reports the bucket and file count."""
        await _upload(client)

        response = await client.get("/health/storage")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        assert data["details"]["file_count"] == 1

    async def test_request_id_is_echoed(self, client: httpx.AsyncClient) -> None:
        """A caller-supplied request ID comes back in the response headers."""
        response = await client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    async def test_request_id_is_generated(self, client: httpx.AsyncClient) -> None:
        """A request ID is generated when none is supplied."""
        response = await client.get("/health")
        assert response.headers["X-Request-ID"]


class TestUploadEndpoint:
    """Tests for POST /files."""

    async def test_upload_csv(self, client: httpx.AsyncClient) -> None:
        """CSV uploads return the stored file metadata."""
        file = await _upload(client, filename="team users.csv")

        assert file["original_name"] == "team users.csv"
        assert file["filename"].endswith("_team_users.csv")
        assert file["file_type"] == "csv"
        assert file["sheet_count"] == 1
        assert file["file_size"] == len(USERS_CSV)

    async def test_upload_workbook(
        self, client: httpx.AsyncClient, workbook_bytes: WorkbookBuilder
    ) -> None:
        """Workbook uploads record their tab count."""
        data = workbook_bytes({"A": [["id"], [1]], "B": [["id"], [2]]})

        file = await _upload(client, data, "book.xlsx", XLSX_MIME)

        assert file["file_type"] == "excel"
        assert file["sheet_count"] == 2

    async def test_upload_unsupported_type(self, client: httpx.AsyncClient) -> None:
        """Non-spreadsheet uploads are rejected with 400."""
        response = await client.post(
            "/files",
            files={"file": ("scan.pdf", b"%PDF-1.4\n", "application/pdf")},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        data = response.json()
        assert data["success"] is False
        assert data["error_code"] == "E1003"
        assert "Only Excel" in data["detail"]
        assert data["request_id"]

    async def test_upload_too_large(
        self,
        repository: LocalFileRepository,
        sheets_client: GoogleSheetsClient,
    ) -> None:
        """Uploads over the size limit are rejected with 413."""
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("sheet_lookup.api.settings.max_file_size_mb", 1)
            async with create_test_client(repository, sheets_client) as ac:
                response = await ac.post(
                    "/files",
                    files={"file": ("big.csv", b"x" * (1024 * 1024 + 1), "text/csv")},
                )

        assert response.status_code == status.HTTP_413_CONTENT_TOO_LARGE
        assert response.json()["error_code"] == "E1002"

    async def test_upload_without_file(self, client: httpx.AsyncClient) -> None:
        """A request without a file part fails validation."""
        response = await client.post("/files")
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT


class TestListEndpoint:
    """Tests for GET /files."""

    async def test_list_files(
        self, client: httpx.AsyncClient, workbook_bytes: WorkbookBuilder
    ) -> None:
        """Files are listed with the page parameters echoed."""
        await _upload(client)
        await _upload(
            client, workbook_bytes({"A": [["id"], [1]]}), "book.xlsx", XLSX_MIME
        )

        response = await client.get("/files", params={"page": 1, "limit": 5})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["page"] == 1
        assert data["limit"] == 5
        assert len(data["files"]) == 2

    async def test_list_files_by_type(
        self, client: httpx.AsyncClient, workbook_bytes: WorkbookBuilder
    ) -> None:
        """The type parameter filters by file kind."""
        await _upload(client)
        await _upload(
            client, workbook_bytes({"A": [["id"], [1]]}), "book.xlsx", XLSX_MIME
        )

        response = await client.get("/files", params={"type": "excel"})

        files = response.json()["files"]
        assert [f["original_name"] for f in files] == ["book.xlsx"]

    async def test_list_rejects_bad_page(self, client: httpx.AsyncClient) -> None:
        """Pages start at 1."""
        response = await client.get("/files", params={"page": 0})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT


class TestFileEndpoint:
    """Tests for GET /files/{file_id}."""

    async def test_metadata_is_default(self, client: httpx.AsyncClient) -> None:
        """Without parameters the file metadata is returned."""
        file = await _upload(client)

        response = await client.get(f"/files/{file['id']}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True, "file": file}

    async def test_download(self, client: httpx.AsyncClient) -> None:
        """The download action returns the original bytes as an attachment."""
        file = await _upload(client)

        response = await client.get(
            f"/files/{file['id']}", params={"action": "download"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.content == USERS_CSV
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == (
            'attachment; filename="users.csv"'
        )

    async def test_read(self, client: httpx.AsyncClient) -> None:
        """The read action returns the parsed sheets."""
        file = await _upload(client)

        response = await client.get(f"/files/{file['id']}", params={"action": "read"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["data"]["columns"] == ["id", "name", "email"]
        assert data["data"]["total_rows"] == 2
        assert data["data"]["file_name"] == "users.csv"
        assert len(data["all_sheets"]) == 1

    async def test_read_workbook_sheets(
        self, client: httpx.AsyncClient, workbook_bytes: WorkbookBuilder
    ) -> None:
        """Every non-empty tab of a workbook is returned."""
        data = workbook_bytes(
            {"One": [["id"], [1]], "Blank": [], "Two": [["id"], [2], [3]]}
        )
        file = await _upload(client, data, "book.xlsx", XLSX_MIME)

        response = await client.get(f"/files/{file['id']}", params={"action": "read"})

        body = response.json()
        assert body["data"]["sheet_name"] == "One"
        assert [s["sheet_name"] for s in body["all_sheets"]] == ["One", "Two"]
        assert body["all_sheets"][1]["total_rows"] == 2

    async def test_invalid_action(self, client: httpx.AsyncClient) -> None:
        """Unknown actions are rejected with 400."""
        file = await _upload(client)

        response = await client.get(
            f"/files/{file['id']}", params={"action": "explode"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Invalid action parameter"

    async def test_unknown_file(self, client: httpx.AsyncClient) -> None:
        """Unknown IDs return 404."""
        response = await client.get("/files/does-not-exist")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "E1001"

    @pytest.mark.parametrize("param", ["search", "id", "Id"])
    async def test_search_parameters(
        self, client: httpx.AsyncClient, param: str
    ) -> None:
        """Each search parameter spelling triggers a lookup."""
        file = await _upload(client)

        response = await client.get(f"/files/{file['id']}", params={param: "u2"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["data"] == {
            "id": "U2",
            "name": "Bob",
            "email": "bob@example.com",
        }
        assert data["multiple_sheets"] is False
        assert data["searched_value"] == "u2"
        assert data["sheets"][0]["searched_column"] == "id"

    async def test_search_takes_precedence_over_action(
        self, client: httpx.AsyncClient
    ) -> None:
        """A search value wins over the action parameter."""
        file = await _upload(client)

        response = await client.get(
            f"/files/{file['id']}", params={"search": "U1", "action": "download"}
        )

        assert response.json()["data"]["name"] == "Alice"

    async def test_search_across_workbook_tabs(
        self, client: httpx.AsyncClient, workbook_bytes: WorkbookBuilder
    ) -> None:
        """Matches in several tabs are returned as a list."""
        data = workbook_bytes(
            {
                "Jan": [["ID", "Total"], ["A7", 1]],
                "Feb": [["ID", "Total"], ["B8", 2]],
                "Mar": [["Id", "Total"], ["a7", 3]],
            }
        )
        file = await _upload(client, data, "book.xlsx", XLSX_MIME)

        response = await client.get(f"/files/{file['id']}", params={"id": "A7"})

        body = response.json()
        assert body["multiple_sheets"] is True
        assert [m["sheet_name"] for m in body["data"]] == ["Jan", "Mar"]
        assert body["data"] == body["sheets"]
        assert body["data"][1]["searched_column"] == "Id"

    async def test_search_not_found(self, client: httpx.AsyncClient) -> None:
        """A search without a match returns 404 with the searched value."""
        file = await _upload(client)

        response = await client.get(f"/files/{file['id']}", params={"search": "U9"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        data = response.json()
        assert data["detail"] == "No data found for ID: U9"
        assert data["details"]["searched_value"] == "U9"


class TestDeleteEndpoint:
    """Tests for DELETE /files/{file_id}."""

    async def test_delete(self, client: httpx.AsyncClient) -> None:
        """Deleted files are no longer found."""
        file = await _upload(client)

        response = await client.delete(f"/files/{file['id']}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["success"] is True
        missing = await client.get(f"/files/{file['id']}")
        assert missing.status_code == status.HTTP_404_NOT_FOUND

    async def test_delete_unknown(self, client: httpx.AsyncClient) -> None:
        """Deleting an unknown file returns 404."""
        response = await client.delete("/files/nope")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestSheetEndpoints:
    """Tests for the Google Sheets endpoints."""

    async def test_fetch_raw_csv(self, client: httpx.AsyncClient) -> None:
        """The raw CSV export is returned with the URL that was fetched."""
        response = await client.get("/sheets/url", params={"url": EDIT_URL})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["url"].endswith("/d/abc123/export?format=csv")
        assert data["data"].startswith("ID,Name,Email")

    async def test_fetch_requires_url(self, client: httpx.AsyncClient) -> None:
        """The url parameter is required."""
        response = await client.get("/sheets/url")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "URL parameter is required"

    async def test_fetch_invalid_url(self, client: httpx.AsyncClient) -> None:
        """Non-Sheets URLs are rejected with 400."""
        response = await client.get(
            "/sheets/url", params={"url": "https://example.com/a.csv"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "E4001"

    async def test_read_sheet(self, client: httpx.AsyncClient) -> None:
        """The sheet is fetched and parsed for display."""
        response = await client.get("/sheets/url/read", params={"url": EDIT_URL})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["file_name"] == "Google Sheet"
        assert data["columns"] == ["ID", "Name", "Email"]
        assert data["total_rows"] == 2

    async def test_upstream_failure(
        self,
        repository: LocalFileRepository,
        sheets_client_factory: ClientFactory,
    ) -> None:
        """Private sheets surface as 502 with the access denied code."""
        failing = sheets_client_factory(body="denied", status_code=403)

        async with create_test_client(repository, failing) as ac:
            response = await ac.get("/sheets/url/read", params={"url": EDIT_URL})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error_code"] == "E4002"

    async def test_search_configured_sheet(
        self,
        repository: LocalFileRepository,
        sheets_client: GoogleSheetsClient,
    ) -> None:
        """The configured published sheet is searched by default."""
        async with create_test_client(
            repository, sheets_client, published_sheet_url=EDIT_URL
        ) as ac:
            response = await ac.get("/sheets", params={"id": "usr001"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["data"]["Name"] == "Alice"
        assert data["searched_value"] == "usr001"

    async def test_search_explicit_sheet(self, client: httpx.AsyncClient) -> None:
        """An explicit url parameter is searched."""
        response = await client.get("/sheets", params={"id": "USR002", "url": EDIT_URL})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["Email"] == "bob@example.com"

    async def test_search_requires_id(self, client: httpx.AsyncClient) -> None:
        """The id parameter is required."""
        response = await client.get("/sheets", params={"url": EDIT_URL})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "ID parameter is required"

    async def test_search_not_found(self, client: httpx.AsyncClient) -> None:
        """A missing ID returns 404."""
        response = await client.get("/sheets", params={"id": "nobody", "url": EDIT_URL})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"] == "No data found for ID: nobody"


class TestBuildSearchResponse:
    """Tests for rendering lookup results."""

    def test_single_match(self) -> None:
        """A single match is returned as the bare row."""
        match = SheetMatch("S", "id", {"id": "1"})

        body = build_search_response(Found(match, "1"))

        assert body["data"] == {"id": "1"}
        assert body["sheets"] == [
            {"sheet_name": "S", "data": {"id": "1"}, "searched_column": "id"}
        ]

    def test_not_found_raises(self) -> None:
        """NotFound becomes a 404 error."""
        with pytest.raises(RowNotFoundError):
            build_search_response(NotFound("x"))


class TestAppFactory:
    """Tests for application construction."""

    async def test_default_collaborators_from_settings(
        self, tmp_path: Path
    ) -> None:
        """Without explicit collaborators the app builds them from settings."""
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr("sheet_lookup.api.settings.storage_dir", str(tmp_path))
            app = create_app()
            async with (
                app.router.lifespan_context(app),
                httpx.AsyncClient(
                    transport=httpx.ASGITransport(app=app),
                    base_url="http://test",
                ) as ac,
            ):
                response = await ac.get("/health/storage")
                service = app.state.service

            assert response.status_code == status.HTTP_200_OK
            assert service.repository.root == tmp_path
            assert app.state.service is None
