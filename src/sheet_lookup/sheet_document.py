"""Dataclasses representing a normalized sheet."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CellValue = str | int | float
"""Normalized cell value; empty cells are represented by ``""``."""

Row = dict[str, CellValue]


def cell_text(value: Any) -> str:
    """Render a cell value the way it is compared and displayed.

    Integral floats lose their trailing ``.0`` so that ``1.0`` and ``"1"``
    compare equal.
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_blank(value: Any) -> bool:
    """Return True for cells that carry no data."""
    return value is None or value == ""


@dataclass(frozen=True)
class Sheet:
    """One table parsed from a CSV body or a single workbook tab.

    Every row holds exactly one entry per member of ``columns``. Columns
    listed in ``synthesized_columns`` had a blank header cell and were named
    ``Column_<n>``.
    """

    name: str
    columns: tuple[str, ...]
    rows: tuple[Row, ...]
    synthesized_columns: frozenset[str] = field(default_factory=frozenset)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def header_view(self, hide_synthesized: bool) -> list[str]:
        """Header list for display, optionally without synthesized names."""
        if not hide_synthesized:
            return list(self.columns)
        return [c for c in self.columns if c not in self.synthesized_columns]
