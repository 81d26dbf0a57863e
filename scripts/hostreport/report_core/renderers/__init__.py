"""Renderer dispatch and console output."""

from __future__ import annotations

from rich.console import Console

from report_core.errors import UsageError
from report_core.models import OUTPUT_FORMATS, Report
from report_core.renderers import csv_text, json_text, table


def emit(report: Report, fmt: str, console: Console, separator: str | None = None) -> None:
    if fmt not in OUTPUT_FORMATS:
        raise UsageError(f"Invalid output format: {fmt}. Choose from table, csv, or json.")

    if fmt == "table":
        for line in table.render(report, separator):
            console.print(line, highlight=False, soft_wrap=True)
    elif fmt == "csv":
        console.out(csv_text.render(report, separator), highlight=False)
    else:
        console.out(json_text.render(report), highlight=False)
