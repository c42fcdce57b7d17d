"""Services for sheet lookup."""

from sheet_lookup.services.identifier_resolver import (
    Found,
    LookupResult,
    MultiSheetFound,
    NotFound,
    SheetMatch,
    resolve,
)
from sheet_lookup.services.tabular_parser import (
    DISPLAY_POLICY,
    SEARCH_POLICY,
    URL_IMPORT_POLICY,
    NormalizationPolicy,
    parse,
    parse_delimited_text,
    parse_workbook,
)

__all__ = [
    "DISPLAY_POLICY",
    "SEARCH_POLICY",
    "URL_IMPORT_POLICY",
    "Found",
    "LookupResult",
    "MultiSheetFound",
    "NormalizationPolicy",
    "NotFound",
    "SheetMatch",
    "parse",
    "parse_delimited_text",
    "parse_workbook",
    "resolve",
]
