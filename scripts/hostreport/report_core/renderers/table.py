"""Aligned, optionally colored table renderer."""

from __future__ import annotations

from rich.text import Text

from report_core.columns import compute_widths, display_width, gap_for, rule_width
from report_core.models import Cell, Column, Report

TOTAL_ROW_LABEL = "TOTAL"


def _line(cells: list[Cell], columns: list[Column], widths: dict[str, int], gap: str) -> Text:
    text = Text()
    last = len(columns) - 1
    for idx, (column, cell) in enumerate(zip(columns, cells)):
        if idx:
            text.append(gap)
        text.append(cell.plain, style=cell.style)
        if idx < last:
            pad = widths[column.key] - display_width(cell.plain)
            if pad > 0:
                text.append(" " * pad)
    return text


def _total_row(report: Report, columns: list[Column]) -> dict[str, str]:
    shown = report.totals_dict()
    row: dict[str, str] = {}
    for idx, column in enumerate(columns):
        if idx == 0:
            row[column.key] = TOTAL_ROW_LABEL
        else:
            row[column.key] = str(shown.get(column.key, ""))
    return row


def render_rows(report: Report, separator: str | None = None) -> list[Text]:
    """Header, dash rule, one line per row, then a closing rule when rows exist."""
    columns = report.columns_for("table")
    gap = gap_for(separator)
    total_row = _total_row(report, columns) if report.totals_layout == "row" else None
    widths = compute_widths(columns, report.rows, [total_row] if total_row else None)
    rule = "-" * rule_width(columns, widths, gap)

    lines = [_line([Cell(c.header) for c in columns], columns, widths, gap), Text(rule)]
    for row in report.rows:
        lines.append(_line([row.cell(c) for c in columns], columns, widths, gap))
    if report.rows:
        lines.append(Text(rule))

    if total_row is not None:
        if not report.rows:
            lines.append(Text(rule))
        lines.append(_line([Cell(total_row[c.key]) for c in columns], columns, widths, gap))
        lines.append(Text("=" * len(rule)))
    return lines


def render_totals(report: Report) -> list[Text]:
    if report.totals_layout != "lines":
        return []
    lines = []
    for total in report.totals:
        unit = f" {total.unit}" if total.unit else ""
        lines.append(Text(f"{total.label}: {total.shown}{unit}"))
    return lines


def render(report: Report, separator: str | None = None) -> list[Text]:
    lines = [Text(line) for line in report.preamble]
    lines.extend(render_rows(report, separator))
    lines.extend(render_totals(report))
    lines.extend(Text(line) for line in report.epilogue)
    for message in report.errors:
        lines.append(Text(f"Warning: {message}", style="yellow"))
    return lines
