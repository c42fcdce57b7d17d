"""Identifier-column lookup across parsed sheets.

Each sheet picks its own identifier column: the first header spelled
``id``, ``ID``, ``Id`` or ``iD``, falling back to the first column. The
first row whose identifier cell equals the search value, compared
case-insensitively after trimming, is that sheet's match.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from sheet_lookup.sheet_document import Row, Sheet, cell_text
from sheet_lookup.utils.logging import get_logger, timed_operation

logger = get_logger(__name__)

IDENTIFIER_SPELLINGS = ("id", "ID", "Id", "iD")


@dataclass(frozen=True)
class SheetMatch:
    """The first matching row of one sheet."""

    sheet_name: str
    identifier_column: str
    row: Row


@dataclass(frozen=True)
class Found:
    """Exactly one sheet produced a match."""

    match: SheetMatch
    searched_value: str

    @property
    def matches(self) -> tuple[SheetMatch, ...]:
        return (self.match,)


@dataclass(frozen=True)
class MultiSheetFound:
    """More than one sheet produced a match, in sheet order."""

    matches: tuple[SheetMatch, ...]
    searched_value: str


@dataclass(frozen=True)
class NotFound:
    """No sheet produced a match. ``searched_value`` is echoed unchanged."""

    searched_value: str

    @property
    def matches(self) -> tuple[SheetMatch, ...]:
        return ()


LookupResult = Found | MultiSheetFound | NotFound


def select_identifier_column(columns: Sequence[str]) -> str | None:
    """Return the identifier column for a header list, or None if it is empty."""
    for column in columns:
        if column in IDENTIFIER_SPELLINGS:
            return column
    return columns[0] if columns else None


def normalize_key(value: Any) -> str:
    return cell_text(value).strip().lower()


def find_in_sheet(sheet: Sheet, search_value: Any) -> SheetMatch | None:
    """Return the first row of ``sheet`` whose identifier matches."""
    column = select_identifier_column(sheet.columns)
    if column is None:
        return None

    target = normalize_key(search_value)
    for row in sheet.rows:
        if normalize_key(row.get(column, "")) == target:
            return SheetMatch(sheet_name=sheet.name, identifier_column=column, row=row)
    return None


def resolve(sheets: Iterable[Sheet], search_value: Any) -> LookupResult:
    """Search every sheet for ``search_value`` and aggregate the matches."""
    searched = str(search_value)
    matches: list[SheetMatch] = []

    with timed_operation(logger, "resolve") as metrics:
        for sheet in sheets:
            metrics.rows_scanned += sheet.row_count
            match = find_in_sheet(sheet, search_value)
            if match is not None:
                matches.append(match)

    if not matches:
        logger.debug("Lookup found no match", searched_value=searched)
        return NotFound(searched_value=searched)

    logger.debug(
        "Lookup matched",
        searched_value=searched,
        sheets=[m.sheet_name for m in matches],
    )
    if len(matches) == 1:
        return Found(match=matches[0], searched_value=searched)
    return MultiSheetFound(matches=tuple(matches), searched_value=searched)
