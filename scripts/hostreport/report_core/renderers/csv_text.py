"""Quoted CSV renderer."""

from __future__ import annotations

from report_core.models import Report

DEFAULT_DELIMITER = ","


def quote(value: object) -> str:
    text = str(value)
    return '"' + text.replace('"', '""') + '"'


def render(report: Report, separator: str | None = None) -> str:
    delimiter = separator or DEFAULT_DELIMITER
    columns = report.columns_for("csv")
    lines = [delimiter.join(quote(column.header) for column in columns)]
    for row in report.rows:
        lines.append(delimiter.join(quote(row.value(column)) for column in columns))
    return "\n".join(lines)
