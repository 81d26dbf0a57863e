"""Row ordering for grouped table output."""

from __future__ import annotations

from report_core.models import Row


def group_rows(rows: list[Row], group_field: str, name_field: str, ungrouped: str = "None") -> list[Row]:
    """Grouped rows first, sorted by (group, name); ungrouped rows after, by name."""
    grouped = [row for row in rows if row.values.get(group_field) not in (None, "", ungrouped)]
    loose = [row for row in rows if row.values.get(group_field) in (None, "", ungrouped)]
    grouped.sort(key=lambda row: (str(row.values[group_field]), str(row.values.get(name_field, ""))))
    loose.sort(key=lambda row: str(row.values.get(name_field, "")))
    return grouped + loose
