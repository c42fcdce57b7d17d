from __future__ import annotations

import io
from collections.abc import AsyncIterator, Callable
from datetime import date
from pathlib import Path
from typing import Any

import httpx
import pytest
import xlwt
from openpyxl import Workbook

from sheet_lookup.services.file_repository import LocalFileRepository
from sheet_lookup.services.google_sheets import GoogleSheetsClient

WorkbookBuilder = Callable[[dict[str, list[list[Any]]]], bytes]

SHEET_CSV = (
    "ID,Name,Email\n"
    "USR001,Alice,alice@example.com\n"
    "USR002,Bob,bob@example.com\n"
)


def build_workbook(tabs: dict[str, list[list[Any]]]) -> bytes:
    """Build an .xlsx workbook in memory, one tab per entry, in order."""
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in tabs.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def workbook_bytes() -> WorkbookBuilder:
    """Builder for in-memory .xlsx content."""
    return build_workbook


def build_legacy_workbook(tabs: dict[str, list[list[Any]]]) -> bytes:
    """Build an .xls workbook in memory; dates get a date number format."""
    wb = xlwt.Workbook()
    date_style = xlwt.easyxf(num_format_str="YYYY-MM-DD")
    for title, rows in tabs.items():
        ws = wb.add_sheet(title)
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                if isinstance(value, date):
                    ws.write(r, c, value, date_style)
                else:
                    ws.write(r, c, value)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def legacy_workbook_bytes() -> WorkbookBuilder:
    """Builder for in-memory .xls content."""
    return build_legacy_workbook


@pytest.fixture
def repository(tmp_path: Path) -> LocalFileRepository:
    """Local file repository rooted in a temporary directory."""
    return LocalFileRepository(
        tmp_path / "store", public_base_url="http://files.test/storage"
    )


def sheet_transport(
    body: str = SHEET_CSV, status_code: int = 200
) -> httpx.MockTransport:
    """Transport answering every request with a fixed CSV body."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code, text=body, headers={"Content-Type": "text/csv"}
        )

    return httpx.MockTransport(handler)


SheetsClientFactory = Callable[..., GoogleSheetsClient]


@pytest.fixture
async def sheets_client_factory() -> AsyncIterator[SheetsClientFactory]:
    """Factory for Google Sheets clients backed by a mock transport.

    Accepts either ``body``/``status_code`` or a custom ``handler``.
    """
    clients: list[GoogleSheetsClient] = []

    def factory(
        body: str = SHEET_CSV,
        status_code: int = 200,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> GoogleSheetsClient:
        transport = (
            httpx.MockTransport(handler)
            if handler is not None
            else sheet_transport(body, status_code)
        )
        client = GoogleSheetsClient(httpx.AsyncClient(transport=transport))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()


@pytest.fixture
def sheets_client(sheets_client_factory: SheetsClientFactory) -> GoogleSheetsClient:
    """Google Sheets client answering with a small CSV export."""
    return sheets_client_factory()
