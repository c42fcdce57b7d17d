"""Client for fetching published Google Sheets as CSV text."""

from __future__ import annotations

import re
import time

import httpx

from sheet_lookup.config import Settings
from sheet_lookup.utils.exceptions import (
    ErrorCode,
    InvalidSheetUrlError,
    RemoteSheetError,
)
from sheet_lookup.utils.logging import get_logger

logger = get_logger(__name__)

GOOGLE_SHEETS_MARKER = "docs.google.com/spreadsheets"

_SPREADSHEET_ID = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")
_GID = re.compile(r"[?&#]gid=(\d+)")
_PUBLISHED_SUFFIX = re.compile(r"/pub(html)?([?#].*)?$")


def to_csv_export_url(url: str) -> str:
    """Convert a Google Sheets link into its CSV export URL.

    - ``.../spreadsheets/d/<id>/edit...`` becomes ``.../d/<id>/export?format=csv``
    - ``.../pub...`` / ``.../pubhtml...`` becomes ``.../pub?output=csv``
    - links already using ``export?format=csv`` are returned unchanged

    A ``gid`` (tab id) present in the link is carried over.

    Raises:
        InvalidSheetUrlError: If the link is not in a recognized format.
    """
    url = url.strip()
    if GOOGLE_SHEETS_MARKER not in url:
        raise InvalidSheetUrlError(url)

    gid_match = _GID.search(url)
    gid = f"&gid={gid_match.group(1)}" if gid_match else ""

    if "export?format=csv" in url:
        return url
    if "/edit" in url:
        match = _SPREADSHEET_ID.search(url)
        if match:
            return (
                f"https://docs.google.com/spreadsheets/d/{match.group(1)}"
                f"/export?format=csv{gid}"
            )
    elif "/pub" in url:
        if "output=csv" in url:
            return url
        converted = _PUBLISHED_SUFFIX.sub(f"/pub?output=csv{gid}", url)
        if converted != url:
            return converted

    raise InvalidSheetUrlError(
        url, message="Please provide a valid Google Sheets URL"
    )


class GoogleSheetsClient:
    """Fetches CSV exports of published Google Sheets.

    The underlying ``httpx.AsyncClient`` is owned by the caller that passed
    it in, or by this instance when built with ``from_settings``.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_settings(
        cls,
        s: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> GoogleSheetsClient:
        client = httpx.AsyncClient(
            timeout=s.sheets_fetch_timeout_seconds,
            headers={"User-Agent": s.sheets_user_agent},
            follow_redirects=True,
            transport=transport,
        )
        return cls(client)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_csv(self, url: str) -> str:
        """Download CSV text from a Google Sheets export URL.

        Raises:
            InvalidSheetUrlError: If the URL is not a Google Sheets URL.
            RemoteSheetError: If the sheet is private, missing, unreachable,
                or empty.
        """
        if GOOGLE_SHEETS_MARKER not in url:
            raise InvalidSheetUrlError(url)

        start = time.perf_counter()
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            logger.log_api_call(
                service="google_sheets",
                operation="fetch_csv",
                duration_seconds=time.perf_counter() - start,
                success=False,
                error_message=str(e),
            )
            raise RemoteSheetError(
                "Failed to fetch data from Google Sheets",
                url=url,
                details={"error_type": type(e).__name__},
            ) from e

        duration = time.perf_counter() - start
        status = response.status_code
        logger.log_api_call(
            service="google_sheets",
            operation="fetch_csv",
            duration_seconds=duration,
            status_code=status,
            success=response.is_success,
        )

        if status == 403:
            raise RemoteSheetError(
                "Access denied. Please ensure the Google Sheet is publicly "
                "accessible or shared with view permissions.",
                error_code=ErrorCode.SHEET_ACCESS_DENIED,
                url=url,
                status_code=status,
            )
        if status == 404:
            raise RemoteSheetError(
                "Google Sheet not found. Please check the URL.",
                error_code=ErrorCode.SHEET_NOT_FOUND,
                url=url,
                status_code=status,
            )
        if not response.is_success:
            raise RemoteSheetError(
                f"Failed to fetch data from Google Sheets (Status: {status})",
                url=url,
                status_code=status,
            )

        text = response.text
        if not text.strip():
            raise RemoteSheetError(
                "No data found in the Google Sheet",
                error_code=ErrorCode.SHEET_EMPTY,
                url=url,
                status_code=status,
            )
        return text
