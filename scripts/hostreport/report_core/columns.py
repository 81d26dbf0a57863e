"""Column width model for aligned table output."""

from __future__ import annotations

from rich.cells import cell_len
from rich.text import Text

from report_core.models import Column, Row

DEFAULT_GAP = "   "


def display_width(text: str) -> int:
    # Escape sequences never count toward alignment.
    return cell_len(Text.from_ansi(str(text)).plain)


def column_width(column: Column, rows: list[Row], extra: list[str] | None = None) -> int:
    width = display_width(column.header)
    for row in rows:
        width = max(width, display_width(row.cell(column).plain))
    for text in extra or []:
        width = max(width, display_width(text))
    return width


def compute_widths(columns: list[Column], rows: list[Row], extra_rows: list[dict[str, str]] | None = None) -> dict[str, int]:
    widths: dict[str, int] = {}
    for column in columns:
        extra = [r[column.key] for r in (extra_rows or []) if column.key in r]
        widths[column.key] = column_width(column, rows, extra)
    return widths


def gap_for(separator: str | None) -> str:
    if separator:
        return f" {separator} "
    return DEFAULT_GAP


def rule_width(columns: list[Column], widths: dict[str, int], gap: str = DEFAULT_GAP) -> int:
    if not columns:
        return 0
    total = sum(widths[column.key] for column in columns)
    return total + display_width(gap) * (len(columns) - 1)


def active_columns(columns: list[Column], flags: set[str] | None = None) -> list[Column]:
    enabled = flags or set()
    return [column for column in columns if column.optional is None or column.optional in enabled]
