"""Shared display helpers: status colors, speed tiers and banner text."""

from __future__ import annotations

import re

from report_core.models import NOT_APPLICABLE

LINK_STYLES = {
    "up": "bold green",
    "down": "bold red",
}

# (minimum Mb/s, style); first match wins.
SPEED_TIERS = [
    (200000, "bold magenta"),
    (100000, "bold cyan"),
    (25000, "bold white"),
    (10000, "bold green"),
    (1000, "yellow"),
]
SPEED_FALLBACK_STYLE = "red"

BOND_PALETTE = [
    "bold blue",
    "bold cyan",
    "bold yellow",
    "bold magenta",
    "bold white",
]

LEADING_DIGITS_RE = re.compile(r"^(\d+)")


def link_style(value: str | None) -> str | None:
    return LINK_STYLES.get(str(value or "").strip())


def speed_style(value: str | None) -> str:
    match = LEADING_DIGITS_RE.match(str(value or "").strip())
    if not match:
        return SPEED_FALLBACK_STYLE
    speed = int(match.group(1))
    for minimum, style in SPEED_TIERS:
        if speed >= minimum:
            return style
    return SPEED_FALLBACK_STYLE


def lacp_style(value: str | None) -> str | None:
    text = str(value or "")
    if not text or text == NOT_APPLICABLE:
        return None
    if "(Partial)" in text:
        return "bold yellow"
    if text.startswith("AggID"):
        return "bold green"
    return "bold red"


class BondPalette:
    """Assigns palette colors to bond names in first-seen order."""

    def __init__(self, palette: list[str] | None = None):
        self.palette = list(palette or BOND_PALETTE)
        self.assigned: dict[str, str] = {}

    def style_for(self, bond: str | None) -> str | None:
        if not bond or bond == "None":
            return None
        if bond not in self.assigned:
            self.assigned[bond] = self.palette[len(self.assigned) % len(self.palette)]
        return self.assigned[bond]


def banner(title: str, width: int = 35) -> list[str]:
    line = "=" * width
    return [line, f" {title}", line]


def section_header(title: str) -> str:
    return f"--- {title} ---"


def thousands(value: int) -> str:
    return f"{int(value):,}"


def label_line(label: str, value: str, width: int = 28) -> str:
    return f"{label:<{width}} : {value}"
