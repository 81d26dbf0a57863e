"""Per-report defaults and user config merging."""

from __future__ import annotations

import json
import os
from pathlib import Path

from report_core.collectors import DEFAULT_TIMEOUT, esxi, kvm, nic, openstack
from report_core.errors import UsageError
from report_core.models import OUTPUT_FORMATS

CONFIG_ENV = "HOST_REPORT_CONFIG"

DEFAULT_SEPARATOR = "│"

BUILTIN_PROFILES: dict[str, dict] = {
    "esxi-memory": {
        "output": "table",
        "fields": {},
    },
    "kvm-memory": {
        "output": "table",
        "fields": {},
        "baseline": str(kvm.DEFAULT_BASELINE),
    },
    "openstack-summary": {
        "output": "table",
        "fields": {},
    },
    "nic-xray": {
        "output": "table",
        "fields": {},
        "separator": None,
        "group_bond": False,
        "show": [],
    },
    "csr": {
        "site": "site1",
        "org_domain": "my.corp",
        "country": "PY",
        "state": "Central",
        "locality": "Asuncion",
        "org": "Super Corp",
        "org_unit": "IT Infra",
        "email": None,
        "bits": 2048,
        "days_valid": 365,
    },
    "otp-reset": {
        "database": "guacamole",
        "mysql_command": "mysql",
    },
    "bench-cpu": {},
    "bench-storage": {
        "tests": ["iozone", "fio", "postmark", "compilebench"],
    },
}

# Column keys a "fields" override may name.
REPORT_COLUMNS = {
    "esxi-memory": [column.key for column in esxi.COLUMNS],
    "kvm-memory": [column.key for column in kvm.COLUMNS],
    "openstack-summary": [column.key for column in openstack.COLUMNS],
    "nic-xray": [column.key for column in nic.COLUMNS],
}


def config_path_from_env(explicit: str | None = None) -> str | None:
    return explicit or os.environ.get(CONFIG_ENV) or None


def load_user_config(path: str | None) -> dict:
    if not path:
        return {}

    config_path = Path(path)
    if not config_path.exists():
        raise UsageError(f"config path not found: {config_path}")

    try:
        data = json.loads(config_path.read_text())
    except json.JSONDecodeError as exc:
        raise UsageError(f"invalid JSON config: {exc}") from exc
    if not isinstance(data, dict):
        raise UsageError("config must be a JSON object")
    return data


def _validate_fields(report: str, fields) -> dict[str, list[str]]:
    if not isinstance(fields, dict):
        raise UsageError(f"{report}.fields must map an output format to a list of column keys")
    for fmt, keys in fields.items():
        if fmt not in OUTPUT_FORMATS:
            raise UsageError(f"unknown output format in {report}.fields: {fmt}")
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise UsageError(f"{report}.fields.{fmt} must be a list of column keys")
        unknown = [k for k in keys if k not in REPORT_COLUMNS.get(report, [])]
        if unknown:
            raise UsageError(f"unknown column in {report}.fields.{fmt}: {unknown[0]}")
    return {fmt: list(keys) for fmt, keys in fields.items()}


def _validate_show(report: str, show) -> list[str]:
    if not isinstance(show, list) or not all(isinstance(flag, str) for flag in show):
        raise UsageError(f"{report}.show must be a list of optional columns")
    unknown = [flag for flag in show if flag not in nic.OPTIONAL_FLAGS]
    if unknown:
        raise UsageError(
            f"unknown optional column in {report}.show: {unknown[0]}. Choose from {', '.join(nic.OPTIONAL_FLAGS)}."
        )
    return list(show)


def resolve_profile(report: str, config_path: str | None = None) -> dict:
    if report not in BUILTIN_PROFILES:
        raise UsageError(f"unknown report: {report}")

    resolved = dict(BUILTIN_PROFILES[report])
    resolved["timeout"] = DEFAULT_TIMEOUT
    user_config = load_user_config(config_path)

    if "timeout" in user_config:
        try:
            value = int(user_config["timeout"])
        except (TypeError, ValueError) as exc:
            raise UsageError(f"invalid timeout: {user_config['timeout']!r}") from exc
        resolved["timeout"] = max(1, value)

    reports = user_config.get("reports", {})
    if not isinstance(reports, dict):
        raise UsageError("'reports' must be an object keyed by report name")
    unknown = sorted(set(reports) - set(BUILTIN_PROFILES))
    if unknown:
        raise UsageError(f"unknown report in config: {unknown[0]}")

    overrides = reports.get(report, {})
    if not isinstance(overrides, dict):
        raise UsageError(f"config for {report} must be an object")
    for key, value in overrides.items():
        if key not in resolved or key == "timeout":
            raise UsageError(f"unknown option for {report}: {key}")
        resolved[key] = value

    if "output" in resolved and resolved["output"] not in OUTPUT_FORMATS:
        raise UsageError(f"Invalid output format: {resolved['output']}. Choose from table, csv, or json.")
    if "fields" in resolved:
        resolved["fields"] = _validate_fields(report, resolved["fields"])
    if "show" in resolved:
        resolved["show"] = _validate_show(report, resolved["show"])

    resolved["name"] = report
    return resolved
