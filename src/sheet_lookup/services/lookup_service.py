"""Orchestration of uploads, sheet reads and identifier lookups."""

from __future__ import annotations

from dataclasses import replace

from sheet_lookup.models import FileKind, SheetData, StoredFile
from sheet_lookup.services import tabular_parser
from sheet_lookup.services.file_repository import FileRepository
from sheet_lookup.services.format_detector import FormatDetector
from sheet_lookup.services.google_sheets import GoogleSheetsClient, to_csv_export_url
from sheet_lookup.services.identifier_resolver import LookupResult, resolve
from sheet_lookup.services.tabular_parser import (
    DISPLAY_POLICY,
    SEARCH_POLICY,
    URL_IMPORT_POLICY,
    NormalizationPolicy,
)
from sheet_lookup.sheet_document import Sheet
from sheet_lookup.utils.exceptions import (
    ConfigurationError,
    FileTooLargeError,
    UnreadableWorkbookError,
    UnsupportedKindError,
)
from sheet_lookup.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

REMOTE_SHEET_NAME = "Google Sheet"
REMOTE_SEARCH_POLICY = replace(SEARCH_POLICY, quote_aware=True)


def to_sheet_data(
    sheet: Sheet, file_name: str, policy: NormalizationPolicy
) -> SheetData:
    """Render a parsed sheet for display."""
    return SheetData(
        file_name=file_name,
        sheet_name=sheet.name,
        columns=sheet.header_view(policy.hide_synthesized_headers),
        data=[dict(row) for row in sheet.rows],
        total_rows=sheet.row_count,
    )


class SpreadsheetService:
    """Uploads, reads and searches stored files and published sheets.

    Collaborators are passed in explicitly; the service keeps no state of
    its own between calls and reparses its source on every call.
    """

    def __init__(
        self,
        repository: FileRepository,
        sheets_client: GoogleSheetsClient | None = None,
        detector: FormatDetector | None = None,
        published_sheet_url: str | None = None,
        max_file_size_bytes: int | None = None,
    ) -> None:
        self.repository = repository
        self.sheets_client = sheets_client
        self.detector = detector or FormatDetector()
        self.published_sheet_url = published_sheet_url
        self.max_file_size_bytes = max_file_size_bytes

    # ------------------------------------------------------------------ #
    # Stored files
    # ------------------------------------------------------------------ #

    def upload(self, content: bytes, filename: str, mime_type: str) -> StoredFile:
        """Validate, store and record an uploaded spreadsheet.

        Raises:
            FileTooLargeError: If the upload exceeds the configured limit.
            UnsupportedFormatError: If the upload is neither Excel nor CSV.
            StorageError: If the repository cannot store it.
        """
        if (
            self.max_file_size_bytes is not None
            and len(content) > self.max_file_size_bytes
        ):
            raise FileTooLargeError(len(content), self.max_file_size_bytes)

        with LogContext(operation="upload", filename=filename):
            kind = self.detector.detect(filename, mime_type, content)

            sheet_count = 1
            if kind == FileKind.EXCEL:
                try:
                    sheet_count = tabular_parser.count_workbook_sheets(content)
                except UnreadableWorkbookError as e:
                    logger.warning(
                        "Could not read Excel file for sheet count",
                        error=e.message,
                    )

            return self.repository.save(
                content=content,
                original_name=filename,
                mime_type=mime_type,
                file_type=kind,
                sheet_count=sheet_count,
            )

    def load_sheets(
        self, stored: StoredFile, policy: NormalizationPolicy
    ) -> list[Sheet]:
        """Download a stored file and parse it.

        Raises:
            UnsupportedKindError: If the file is neither Excel nor CSV.
        """
        if stored.file_type == FileKind.OTHER:
            raise UnsupportedKindError(stored.file_type.value)

        data = self.repository.download(stored.id)
        return tabular_parser.parse(data, stored.file_type.value, policy)

    def read_file(self, file_id: str) -> list[SheetData]:
        """Return every non-empty sheet of a stored file for display."""
        with LogContext(file_id=file_id, operation="read"):
            stored = self.repository.get(file_id)
            sheets = self.load_sheets(stored, DISPLAY_POLICY)
            return [
                to_sheet_data(s, stored.original_name, DISPLAY_POLICY) for s in sheets
            ]

    def search_file(self, file_id: str, search_value: str) -> LookupResult:
        """Look up a row by identifier across every sheet of a stored file."""
        with LogContext(file_id=file_id, operation="search"):
            stored = self.repository.get(file_id)
            sheets = self.load_sheets(stored, SEARCH_POLICY)
            result = resolve(sheets, search_value)
            logger.info(
                "Stored file searched",
                sheets=len(sheets),
                matches=len(result.matches),
            )
            return result

    # ------------------------------------------------------------------ #
    # Published Google Sheets
    # ------------------------------------------------------------------ #

    async def fetch_remote_csv(self, url: str) -> tuple[str, str]:
        """Fetch a Google Sheet as CSV.

        Returns:
            The export URL that was fetched and the CSV text.
        """
        export_url = to_csv_export_url(url)
        text = await self._require_client().fetch_csv(export_url)
        return export_url, text

    async def read_remote_sheet(self, url: str) -> SheetData:
        """Fetch and parse a Google Sheet for display."""
        _, text = await self.fetch_remote_csv(url)
        sheet = tabular_parser.parse_delimited_text(text, URL_IMPORT_POLICY)
        return to_sheet_data(sheet, REMOTE_SHEET_NAME, URL_IMPORT_POLICY)

    async def search_remote_sheet(
        self, search_value: str, url: str | None = None
    ) -> LookupResult:
        """Look up a row by identifier in a published Google Sheet.

        Raises:
            ConfigurationError: If no url is given and none is configured.
        """
        target = url or self.published_sheet_url
        if not target:
            raise ConfigurationError(
                "No published Google Sheet is configured",
                setting="published_sheet_url",
            )
        _, text = await self.fetch_remote_csv(target)
        sheet = tabular_parser.parse_delimited_text(text, REMOTE_SEARCH_POLICY)
        return resolve([sheet], search_value)

    def _require_client(self) -> GoogleSheetsClient:
        if self.sheets_client is None:
            raise ConfigurationError("Google Sheets client is not configured")
        return self.sheets_client
