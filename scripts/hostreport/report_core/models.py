"""Shared model contracts for the collect -> render data flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

NOT_APPLICABLE = "N/A"

OUTPUT_FORMATS = ("table", "csv", "json")


def truncdiv(value: int, divisor: int) -> int:
    """Integer division truncating toward zero (1535 MiB -> 1 GB, -1535 -> -1)."""
    quotient = abs(int(value)) // divisor
    return quotient if value >= 0 else -quotient


@dataclass(frozen=True)
class Column:
    key: str
    header: str
    kind: str = "str"
    field: str | None = None
    scale: int = 1
    optional: str | None = None
    colorize: Callable[[Any], str | None] | None = None

    @property
    def source(self) -> str:
        return self.field or self.key

    def default(self) -> Any:
        return 0 if self.kind == "int" else NOT_APPLICABLE

    def present(self, raw: Any) -> Any:
        if self.kind != "int":
            return NOT_APPLICABLE if raw is None else str(raw)
        try:
            number = int(raw)
        except (TypeError, ValueError):
            return 0
        if self.scale > 1:
            return truncdiv(number, self.scale)
        return number


@dataclass
class Cell:
    plain: str
    style: str | None = None


@dataclass
class Row:
    ident: str
    values: dict[str, Any] = field(default_factory=dict)
    styles: dict[str, str] = field(default_factory=dict)

    def value(self, column: Column) -> Any:
        return column.present(self.values.get(column.source))

    def cell(self, column: Column) -> Cell:
        shown = self.value(column)
        style = self.styles.get(column.key)
        if style is None and column.colorize is not None:
            style = column.colorize(shown)
        return Cell(plain=str(shown), style=style)


@dataclass
class Total:
    key: str
    label: str
    value: int
    scale: int = 1
    unit: str = ""

    @property
    def shown(self) -> int:
        return truncdiv(self.value, self.scale) if self.scale > 1 else int(self.value)


@dataclass
class Report:
    key: str
    title: str
    columns: list[Column]
    rows: list[Row] = field(default_factory=list)
    host_summary: dict[str, Any] = field(default_factory=dict)
    totals: list[Total] = field(default_factory=list)
    sections: dict[str, Any] = field(default_factory=dict)
    preamble: list[str] = field(default_factory=list)
    epilogue: list[str] = field(default_factory=list)
    entity_key: str | None = "rows"
    summary_key: str = "host_summary"
    totals_layout: str = "lines"
    field_sets: dict[str, list[str]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def add_row(self, ident: str, values: dict[str, Any], styles: dict[str, str] | None = None) -> Row:
        complete = dict(values)
        for column in self.columns:
            if complete.get(column.source) is None:
                complete[column.source] = column.default()
        row = Row(ident=str(ident), values=complete, styles=dict(styles or {}))
        self.rows.append(row)
        return row

    def columns_for(self, fmt: str) -> list[Column]:
        keys = self.field_sets.get(fmt)
        if not keys:
            return list(self.columns)
        by_key = {column.key: column for column in self.columns}
        return [by_key[k] for k in keys if k in by_key]

    def totals_dict(self) -> dict[str, int]:
        return {total.key: total.shown for total in self.totals}

    def to_dict(self, fmt: str = "json") -> Any:
        columns = self.columns_for(fmt)
        items = [{column.key: row.value(column) for column in columns} for row in self.rows]
        if self.entity_key is None:
            return items

        payload: dict[str, Any] = {}
        if self.host_summary:
            payload[self.summary_key] = dict(self.host_summary)
        payload[self.entity_key] = items
        payload["totals"] = self.totals_dict()
        payload.update(self.sections)
        return payload
