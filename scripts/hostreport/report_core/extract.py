"""Field extraction from the text output of host-management CLIs.

Every helper here is fail-soft: a missing label or an unparsable token is an
expected condition (a feature not enabled on a VM, a tool printing "Unknown")
and yields the caller's fallback instead of raising.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from report_core.models import truncdiv

LAST_TOKEN = "last_token"
AFTER_EQUALS = "after_equals"
AFTER_COLON = "after_colon"
QUOTED = "quoted"
KEYED = "keyed"

RULES = (LAST_TOKEN, AFTER_EQUALS, AFTER_COLON, QUOTED, KEYED)

INT_RE = re.compile(r"-?\d+")
QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')


@dataclass(frozen=True)
class Field:
    value: Any
    present: bool


MISSING = Field(value=None, present=False)


def _matches(line: str, label: str, regex: bool, ignore_case: bool) -> bool:
    if regex:
        flags = re.IGNORECASE if ignore_case else 0
        return re.search(label, line, flags) is not None
    if ignore_case:
        return label.lower() in line.lower()
    return label in line


def find_line(raw_text: str | None, label: str, regex: bool = False, ignore_case: bool = False) -> str | None:
    if not raw_text:
        return None
    for line in raw_text.splitlines():
        if _matches(line, label, regex, ignore_case):
            return line
    return None


def parse_int(token: str | None) -> int | None:
    if token is None:
        return None
    text = token.strip()
    if not text:
        return None
    text = text.split()[0].replace(",", "")
    if not INT_RE.fullmatch(text):
        return None
    return int(text)


def _token(line: str, rule: str, index: int) -> str | None:
    if rule == LAST_TOKEN:
        parts = line.split()
        return parts[-1] if parts else None
    if rule == AFTER_EQUALS:
        if "=" not in line:
            return None
        return line.split("=", 1)[1].strip().rstrip(",")
    if rule == AFTER_COLON:
        if ":" not in line:
            return None
        return line.split(":", 1)[1].strip()
    if rule == QUOTED:
        match = QUOTED_RE.search(line)
        return match.group(1) if match else None
    if rule == KEYED:
        parts = line.split()
        return parts[index] if len(parts) > index else None
    return None


def find_field(
    raw_text: str | None,
    label: str,
    rule: str = LAST_TOKEN,
    kind: str = "int",
    regex: bool = False,
    ignore_case: bool = False,
    index: int = 1,
) -> Field:
    """Locate the first line matching ``label`` and pull a typed value from it.

    ``KEYED`` matches lines whose first whitespace token equals ``label``
    (the ``awk '$1 == key'`` idiom) and returns the token at ``index``.
    Integer values use the first token of the extracted text with thousands
    separators removed, so ``"1,024 KB"`` and ``"1024,"`` both give 1024.
    """
    if rule not in RULES:
        raise ValueError(f"unknown extraction rule: {rule}")
    if rule == KEYED:
        line = None
        for candidate in (raw_text or "").splitlines():
            parts = candidate.split()
            if parts and parts[0] == label:
                line = candidate
                break
    else:
        line = find_line(raw_text, label, regex=regex, ignore_case=ignore_case)
    if line is None:
        return MISSING

    token = _token(line, rule, index)
    if token is None:
        return MISSING
    if kind == "int":
        number = parse_int(token)
        if number is None:
            return MISSING
        return Field(value=number, present=True)
    return Field(value=token.strip(), present=True)


def extract(
    raw_text: str | None,
    label: str,
    fallback: Any = 0,
    rule: str = LAST_TOKEN,
    regex: bool = False,
    ignore_case: bool = False,
    index: int = 1,
) -> Any:
    kind = "int" if isinstance(fallback, int) and not isinstance(fallback, bool) else "str"
    found = find_field(raw_text, label, rule=rule, kind=kind, regex=regex, ignore_case=ignore_case, index=index)
    return found.value if found.present else fallback


def kib_to_mib(kib: int) -> int:
    return truncdiv(kib, 1024)


def mib_to_gb(mib: int) -> int:
    return truncdiv(mib, 1024)
