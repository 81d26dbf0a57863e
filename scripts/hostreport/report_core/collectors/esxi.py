"""ESXi host and per-VM memory collector (vsish + vim-cmd)."""

from __future__ import annotations

import logging
import socket
from datetime import datetime

from report_core.aggregate import Aggregator, host_used_excluding
from report_core.collectors import Runner, run_command
from report_core.extract import AFTER_COLON, AFTER_EQUALS, QUOTED, extract, kib_to_mib, mib_to_gb
from report_core.formatting import banner
from report_core.models import Column, Report, Total

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = ["vsish", "vim-cmd"]

GB = 1024

# quickStats KPI label -> row field (MiB)
KPI_FIELDS = [
    ("balloonedMemory", "balloon_mib"),
    ("swappedMemory", "swap_mib"),
    ("compressedMemory", "compress_mib"),
    ("sharedMemory", "shared_mib"),
    ("guestMemoryUsage", "guest_mib"),
    ("hostMemoryUsage", "host_mib"),
    ("grantedMemory", "granted_mib"),
    ("privateMemory", "private_mib"),
    ("consumedOverheadMemory", "overhead_mib"),
]

COLUMNS = [
    Column("id", "ID"),
    Column("name", "VM Name"),
    Column("ram_gb", "RAM(GB)", kind="int", field="memory_mib", scale=GB),
    Column("balloon_gb", "Balloon", kind="int", field="balloon_mib", scale=GB),
    Column("swap_gb", "Swap", kind="int", field="swap_mib", scale=GB),
    Column("compress_gb", "Compress", kind="int", field="compress_mib", scale=GB),
    Column("shared_gb", "Shared", kind="int", field="shared_mib", scale=GB),
    Column("guest_gb", "Guest", kind="int", field="guest_mib", scale=GB),
    Column("host_gb", "Host", kind="int", field="host_mib", scale=GB),
    Column("granted_gb", "Granted", kind="int", field="granted_mib", scale=GB),
    Column("private_gb", "Private", kind="int", field="private_mib", scale=GB),
    Column("overhead_gb", "Overhead", kind="int", field="overhead_mib", scale=GB),
]

TOTAL_FIELDS = ["memory_mib", "balloon_mib", "swap_mib", "compress_mib", "shared_mib"]


def parse_host_memory(mem_stats: str) -> dict[str, int]:
    total_kib = extract(mem_stats, "Physical memory estimate", 0, rule=AFTER_COLON)
    free_kib = extract(mem_stats, "Free:", 0, rule=AFTER_COLON)
    total_mib = kib_to_mib(total_kib)
    used_mib = total_mib - kib_to_mib(free_kib)
    # Percentage from MiB so sub-GB hosts still get a meaningful value.
    percent = used_mib * 100 // total_mib if total_mib > 0 else 0
    return {
        "total_mib": total_mib,
        "used_mib": used_mib,
        "total_gb": mib_to_gb(total_mib),
        "used_gb": mib_to_gb(used_mib),
        "usage_percent": percent,
    }


def parse_vm_ids(getallvms: str) -> list[str]:
    ids = []
    for line in (getallvms or "").splitlines()[1:]:
        parts = line.split()
        if parts:
            ids.append(parts[0])
    return ids


def parse_vm_summary(summary: str) -> dict:
    values = {
        "name": extract(summary, r"\bname = ", "", rule=QUOTED, regex=True),
        "memory_mib": extract(summary, "memorySizeMB =", 0, rule=AFTER_EQUALS),
    }
    for label, field in KPI_FIELDS:
        values[field] = extract(summary, label, 0)
    return values


def collect(runner: Runner = run_command, hostname: str | None = None) -> Report:
    report = Report(
        key="esxi-memory",
        title="ESXi Memory Usage Report",
        columns=list(COLUMNS),
        entity_key="vms",
    )

    mem = runner(["vsish", "-e", "get", "/memory/comprehensive"])
    if not mem.ok:
        logger.warning("host memory unavailable: %s", mem.error)
        report.errors.append(f"host memory unavailable: {mem.error}")
    host = parse_host_memory(mem.stdout)

    listing = runner(["vim-cmd", "vmsvc/getallvms"])
    if not listing.ok:
        logger.warning("VM list unavailable: %s", listing.error)
        report.errors.append(f"VM list unavailable: {listing.error}")

    totals = Aggregator(TOTAL_FIELDS)
    for vmid in parse_vm_ids(listing.stdout):
        summary = runner(["vim-cmd", "vmsvc/get.summary", vmid])
        if not summary.ok:
            logger.warning("summary for VM %s unavailable: %s", vmid, summary.error)
        values = parse_vm_summary(summary.stdout)
        if not values["name"]:
            logger.debug("skipping VM %s without a name", vmid)
            continue
        row = report.add_row(vmid, {"id": vmid, **values})
        totals.update_row(row)

    report.host_summary = {
        "total_gb": host["total_gb"],
        "used_gb": host["used_gb"],
        "usage_percent": host["usage_percent"],
    }
    report.totals = [
        Total("vm_mem_gb", "Total VM Memory Usage", totals["memory_mib"], GB, "GB"),
        Total("balloon_gb", "Total Ballooned Memory", totals["balloon_mib"], GB, "GB"),
        Total("swap_gb", "Total Swapped Memory", totals["swap_mib"], GB, "GB"),
        Total("compress_gb", "Total Compressed Memory", totals["compress_mib"], GB, "GB"),
        Total("shared_gb", "Total Shared Memory", totals["shared_mib"], GB, "GB"),
        Total(
            "host_excl_vms_gb",
            "Memory Used by Host (excl. VMs)",
            host_used_excluding(host["used_gb"], mib_to_gb(totals["memory_mib"])),
            1,
            "GB",
        ),
    ]

    report.preamble = banner(report.title) + [
        f"Date: {datetime.now().strftime('%a %b %d %H:%M:%S %Y')}",
        f"Hostname: {hostname or socket.gethostname()}",
        "",
        f"Total System Memory: {host['total_gb']} GB",
        f"Used by Host: {host['used_gb']} GB ({host['usage_percent']}%)",
        "",
    ]
    return report
