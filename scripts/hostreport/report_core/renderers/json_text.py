"""JSON renderer: a bare array of rows, or a sectioned object."""

from __future__ import annotations

import json

from report_core.models import Report


def render(report: Report) -> str:
    return json.dumps(report.to_dict("json"), indent=2, ensure_ascii=False)
