"""Running totals accumulated while rows are discovered."""

from __future__ import annotations

from report_core.models import Row


def add(total: int, value: int) -> int:
    return int(total) + int(value or 0)


def host_used_excluding(host_used: int, entities_total: int) -> int:
    # Stale or zombie allocations can push this below zero; callers report it as-is.
    return int(host_used) - int(entities_total)


class Aggregator:
    """Named sums over row fields, applied once per row in discovery order."""

    def __init__(self, fields: list[str]):
        self.fields = list(fields)
        self.sums: dict[str, int] = {name: 0 for name in self.fields}
        self.count = 0

    def update(self, values: dict) -> None:
        for name in self.fields:
            self.sums[name] = add(self.sums[name], values.get(name, 0))
        self.count += 1

    def update_row(self, row: Row) -> None:
        self.update(row.values)

    def __getitem__(self, name: str) -> int:
        return self.sums[name]
