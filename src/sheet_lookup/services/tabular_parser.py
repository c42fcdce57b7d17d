"""Tabular parser turning CSV text and workbook bytes into normalized sheets."""

from __future__ import annotations

import io
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

import xlrd
from openpyxl import load_workbook

from sheet_lookup.sheet_document import CellValue, Row, Sheet, is_blank
from sheet_lookup.utils.exceptions import (
    EmptyInputError,
    UnreadableWorkbookError,
    UnsupportedKindError,
)
from sheet_lookup.utils.logging import get_logger, timed_operation

logger = get_logger(__name__)

CSV_SHEET_NAME = "Sheet1"

_XLSX_SIGNATURE = b"PK\x03\x04"
_XLS_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_CSV_KINDS = {"csv"}
_WORKBOOK_KINDS = {"workbook", "excel"}


@dataclass(frozen=True)
class NormalizationPolicy:
    """Row and header normalization shared by every parse entry point."""

    drop_blank_rows: bool = True
    """Drop CSV rows whose cells are all empty."""

    hide_synthesized_headers: bool = True
    """Leave ``Column_<n>`` names out of the displayed header list."""

    quote_aware: bool = False
    """Track double-quote state so quoted commas do not split a cell."""


DISPLAY_POLICY = NormalizationPolicy()
SEARCH_POLICY = NormalizationPolicy(
    drop_blank_rows=False, hide_synthesized_headers=False
)
URL_IMPORT_POLICY = NormalizationPolicy(quote_aware=True)


# --------------------------------------------------------------------------- #
# Delimited text
# --------------------------------------------------------------------------- #


def split_plain_line(line: str) -> list[str]:
    """Split on every comma, stripping quote characters and whitespace."""
    return [cell.replace('"', "").strip() for cell in line.split(",")]


def split_quoted_line(line: str) -> list[str]:
    """Split on commas outside double quotes.

    Quote characters toggle the quoted state and are dropped; escaped
    quotes (``""``) are not unescaped.
    """
    cells: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    cells.append("".join(current).strip())
    return cells


def parse_delimited_text(
    text: str, policy: NormalizationPolicy = DISPLAY_POLICY
) -> Sheet:
    """Parse comma-delimited text into a single sheet named ``Sheet1``.

    Raises:
        EmptyInputError: If no non-blank line remains.
    """
    lines = [line for line in text.split("\n") if line.strip()]
    if not lines:
        raise EmptyInputError()

    split = split_quoted_line if policy.quote_aware else split_plain_line
    columns, synthesized = _build_header(split(lines[0]))

    rows: list[Row] = []
    for line in lines[1:]:
        cells = split(line)
        if policy.drop_blank_rows and all(is_blank(c) for c in cells):
            continue
        rows.append(_build_row(columns, cells))

    logger.debug(
        "Parsed delimited text",
        columns=len(columns),
        rows=len(rows),
        quote_aware=policy.quote_aware,
    )
    return _make_sheet(CSV_SHEET_NAME, columns, rows, synthesized)


def decode_text(data: bytes) -> str:
    """Decode CSV bytes as UTF-8, dropping a BOM and replacing bad bytes."""
    return data.decode("utf-8-sig", errors="replace")


# --------------------------------------------------------------------------- #
# Workbooks
# --------------------------------------------------------------------------- #


def parse_workbook(data: bytes) -> list[Sheet]:
    """Parse an .xlsx or .xls workbook into sheets, in workbook order.

    Tabs without any non-empty cell are skipped and data rows whose cells
    are all empty are dropped. Display callers hide synthesized headers via
    ``Sheet.header_view``.

    Raises:
        UnreadableWorkbookError: If the bytes are not a supported workbook.
    """
    sheets: list[Sheet] = []
    with timed_operation(logger, "parse_workbook") as metrics:
        metrics.bytes_processed = len(data)
        for name, grid in _read_grids(data):
            grid = _trim_grid(grid)
            if not grid:
                logger.debug("Skipping empty sheet", sheet=name)
                continue

            header = _trim_trailing_blanks(grid[0])
            columns, synthesized = _build_header(header)
            rows = [
                _build_row(columns, cells)
                for cells in grid[1:]
                if not all(is_blank(c) for c in cells)
            ]
            sheets.append(_make_sheet(name, columns, rows, synthesized))
        metrics.sheets_parsed = len(sheets)
    return sheets


def count_workbook_sheets(data: bytes) -> int:
    """Return the number of tabs in a workbook, empty tabs included.

    Raises:
        UnreadableWorkbookError: If the bytes are not a supported workbook.
    """
    return sum(1 for _ in _read_grids(data))


def _read_grids(data: bytes) -> list[tuple[str, list[list[Any]]]]:
    if data.startswith(_XLSX_SIGNATURE):
        reader = _read_xlsx
    elif data.startswith(_XLS_SIGNATURE):
        reader = _read_xls
    else:
        raise UnreadableWorkbookError(
            "Unable to read workbook: content is not an .xlsx or .xls file",
            details={"size_bytes": len(data)},
        )

    try:
        return reader(data)
    except Exception as e:
        logger.warning(
            "Workbook decode failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise UnreadableWorkbookError(
            f"Unable to read workbook: {e}",
            details={"error_type": type(e).__name__},
        ) from e


def _read_xlsx(data: bytes) -> list[tuple[str, list[list[Any]]]]:
    workbook = load_workbook(filename=io.BytesIO(data), data_only=True)
    try:
        return [
            (
                sheet.title,
                [
                    [_normalize_value(v) for v in row]
                    for row in sheet.iter_rows(values_only=True)
                ],
            )
            for sheet in workbook.worksheets
        ]
    finally:
        workbook.close()


def _read_xls(data: bytes) -> list[tuple[str, list[list[Any]]]]:
    book = xlrd.open_workbook(file_contents=data)
    grids: list[tuple[str, list[list[Any]]]] = []
    for sheet in book.sheets():
        grid = [
            [_xls_value(sheet.cell(r, c), book.datemode) for c in range(sheet.ncols)]
            for r in range(sheet.nrows)
        ]
        grids.append((sheet.name, grid))
    return grids


def _xls_value(cell: Any, datemode: int) -> CellValue:
    """Convert an xlrd cell to a normalized value."""
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return ""
    if cell.ctype == xlrd.XL_CELL_DATE:
        try:
            return _normalize_value(xlrd.xldate_as_datetime(cell.value, datemode))
        except (ValueError, OverflowError, xlrd.xldate.XLDateError):
            return _normalize_value(cell.value)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return _normalize_value(bool(cell.value))
    if cell.ctype == xlrd.XL_CELL_ERROR:
        return "#ERROR"
    return _normalize_value(cell.value)


def _normalize_value(value: Any) -> CellValue:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    if isinstance(value, int):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _trim_grid(grid: list[list[Any]]) -> list[list[Any]]:
    """Drop leading blank rows and leading blank columns."""
    start = 0
    while start < len(grid) and all(is_blank(c) for c in grid[start]):
        start += 1
    grid = grid[start:]
    if not grid:
        return []

    offset = min(
        (
            next(i for i, c in enumerate(row) if not is_blank(c))
            for row in grid
            if not all(is_blank(c) for c in row)
        ),
        default=0,
    )
    return [row[offset:] for row in grid]


def _trim_trailing_blanks(cells: Sequence[Any]) -> list[Any]:
    end = len(cells)
    while end > 0 and is_blank(cells[end - 1]):
        end -= 1
    return list(cells[:end])


# --------------------------------------------------------------------------- #
# Shared helpers
# --------------------------------------------------------------------------- #


def _build_header(cells: Iterable[Any]) -> tuple[list[str], set[str]]:
    """Name each header position, synthesizing ``Column_<n>`` for blanks.

    Duplicate names keep their first position. A synthesized name never
    reuses a real header name; ``_<k>`` is appended until it is free.
    """
    names = ["" if is_blank(cell) else str(cell).strip() for cell in cells]
    taken = {name for name in names if name}

    columns: list[str] = []
    synthesized: set[str] = set()
    for index, name in enumerate(names):
        if not name:
            base = name = f"Column_{index + 1}"
            suffix = 1
            while name in taken:
                name = f"{base}_{suffix}"
                suffix += 1
            taken.add(name)
            synthesized.add(name)
        columns.append(name)
    return columns, synthesized


def _build_row(columns: Sequence[str], cells: Sequence[Any]) -> Row:
    """Map cells onto header names; later duplicates win, short rows pad."""
    row: Row = {}
    for index, column in enumerate(columns):
        value = cells[index] if index < len(cells) else ""
        row[column] = "" if value is None else value
    return row


def _make_sheet(
    name: str, columns: list[str], rows: list[Row], synthesized: set[str]
) -> Sheet:
    unique_columns = tuple(dict.fromkeys(columns))
    return Sheet(
        name=name,
        columns=unique_columns,
        rows=tuple(rows),
        synthesized_columns=frozenset(synthesized & set(unique_columns)),
    )


# --------------------------------------------------------------------------- #
# Entry point
# --------------------------------------------------------------------------- #


def parse(
    data: bytes,
    declared_kind: str,
    policy: NormalizationPolicy = DISPLAY_POLICY,
) -> list[Sheet]:
    """Parse raw bytes of a declared kind into sheets.

    Args:
        data: File content.
        declared_kind: ``"csv"`` or ``"workbook"`` (``"excel"`` is accepted
            as an alias).
        policy: Row/header normalization policy for delimited text.

    Raises:
        EmptyInputError: CSV input has no non-blank lines.
        UnreadableWorkbookError: Workbook bytes cannot be decoded.
        UnsupportedKindError: ``declared_kind`` is not handled.
    """
    kind = declared_kind.lower()
    if kind in _CSV_KINDS:
        return [parse_delimited_text(decode_text(data), policy)]
    if kind in _WORKBOOK_KINDS:
        return parse_workbook(data)
    raise UnsupportedKindError(declared_kind)
