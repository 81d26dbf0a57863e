"""KVM host memory collector (virsh, free, sysctl, /sys/kernel/mm/ksm)."""

from __future__ import annotations

import logging
import os
import socket
from datetime import datetime
from pathlib import Path

from report_core.aggregate import Aggregator
from report_core.collectors import Runner, read_int, read_text, run_command
from report_core.extract import AFTER_COLON, KEYED, extract, kib_to_mib, parse_int
from report_core.formatting import banner, label_line, section_header, thousands
from report_core.models import Column, Report, Total

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = ["virsh", "free", "sysctl"]

DEFAULT_BASELINE = Path("/var/log/mem_baseline.txt")
KSM_DIR = Path("/sys/kernel/mm/ksm")
MEMINFO = Path("/proc/meminfo")

COLUMNS = [
    Column("name", "VM Name"),
    Column("max_alloc_mib", "Max Alloc (MiB)", kind="int"),
    Column("current_alloc_mib", "Current Alloc (MiB)", kind="int"),
    Column("guest_used_mib", "Guest Used (MiB)", kind="int"),
    Column("guest_free_mib", "Guest Free (MiB)", kind="int"),
    Column("swap_in_mib", "Swap In (MiB)", kind="int"),
    Column("swap_out_mib", "Swap Out (MiB)", kind="int"),
]

# free -m "Mem:" line: total used free shared buff/cache available
FREE_FIELDS = ["total", "used", "free", "shared", "buff_cache", "available"]


def parse_free_line(text: str | None, key: str = "Mem:") -> dict[str, int]:
    return {name: extract(text, key, 0, rule=KEYED, index=idx) for idx, name in enumerate(FREE_FIELDS, start=1)}


def find_free_line(text: str | None, key: str = "Mem:") -> str:
    for line in (text or "").splitlines():
        if line.split()[:1] == [key]:
            return line
    return ""


def parse_vm_names(listing: str) -> list[str]:
    return [line.strip() for line in (listing or "").splitlines() if line.strip()]


def parse_vm_memory(dominfo: str, dommemstat: str) -> dict[str, int]:
    max_kib = extract(dominfo, "Max memory:", 0, rule=AFTER_COLON)
    current_mib = kib_to_mib(extract(dommemstat, "actual", 0, rule=KEYED))
    free_mib = kib_to_mib(extract(dommemstat, "unused", 0, rule=KEYED))
    return {
        "max_alloc_mib": kib_to_mib(max_kib),
        "current_alloc_mib": current_mib,
        "guest_used_mib": current_mib - free_mib,
        "guest_free_mib": free_mib,
        "swap_in_mib": kib_to_mib(extract(dommemstat, "swap_in", 0, rule=KEYED)),
        "swap_out_mib": kib_to_mib(extract(dommemstat, "swap_out", 0, rule=KEYED)),
    }


def collect_ksm(ksm_dir: Path = KSM_DIR, page_size: int | None = None) -> dict:
    run = read_int(ksm_dir / "run")
    if run is None:
        return {"supported": False, "active": False}
    if run != 1:
        return {"supported": True, "active": False}

    sharing = read_int(ksm_dir / "pages_sharing") or 0
    shared = read_int(ksm_dir / "pages_shared") or 0
    size = page_size or os.sysconf("SC_PAGESIZE")
    saved = sharing - shared
    # Two decimals, truncated.
    hundredths = saved * size * 100 // (1024 * 1024)
    return {
        "supported": True,
        "active": True,
        "pages_saved": saved,
        "page_size": size,
        "saved_mib": f"{hundredths // 100}.{hundredths % 100:02d}",
    }


def collect_hugepages(meminfo: Path = MEMINFO) -> dict[str, int]:
    result = {}
    for line in (read_text(meminfo) or "").splitlines():
        if line.startswith("HugePages"):
            key, _, value = line.partition(":")
            result[key.strip()] = parse_int(value) or 0
    return result


def read_baseline(path: Path) -> dict:
    text = read_text(path)
    if text is None:
        return {"available": False, "path": str(path)}
    lines = text.splitlines()
    mem_line = find_free_line(text)
    if len(lines) < 2 or not mem_line:
        logger.warning("baseline file %s is malformed; ignoring", path)
        return {"available": False, "path": str(path)}
    return {
        "available": True,
        "path": str(path),
        "recorded": lines[0].lstrip("#").strip(),
        "line": mem_line,
        "memory": parse_free_line(mem_line),
    }


def _ksm_lines(ksm: dict) -> list[str]:
    if not ksm["supported"]:
        return ["Status: KSM not supported or enabled by the kernel."]
    if not ksm["active"]:
        return ["Status: KSM is Inactive (/sys/kernel/mm/ksm/run is 0)"]
    return [
        "Status: KSM is Active",
        f"{'Pages saved':<25} : {thousands(ksm['pages_saved'])}",
        f"{'Estimated memory saved':<25} : {ksm['saved_mib']} MiB",
    ]


def _baseline_lines(baseline: dict, current_line: str) -> list[str]:
    if not baseline["available"]:
        return [
            section_header("Baseline Comparison"),
            "No baseline found. To create one, run:",
            f'  (echo "# Recorded on: $(date)"; free -m) > {baseline["path"]}',
        ]
    return [
        section_header("Comparing with Baseline"),
        f"Baseline recorded on: {baseline['recorded']}",
        "",
        "Current Host Memory (MiB):",
        current_line,
        "Baseline Host Memory (MiB):",
        baseline["line"],
    ]


def collect(
    runner: Runner = run_command,
    baseline_path: Path = DEFAULT_BASELINE,
    ksm_dir: Path = KSM_DIR,
    meminfo: Path = MEMINFO,
    hostname: str | None = None,
) -> Report:
    report = Report(
        key="kvm-memory",
        title="KVM Memory Usage Report",
        columns=list(COLUMNS),
        entity_key="vms",
    )

    free_m = runner(["free", "-m"])
    if not free_m.ok:
        report.errors.append(f"host memory unavailable: {free_m.error}")
    host = parse_free_line(free_m.stdout)

    listing = runner(["virsh", "list", "--state-running", "--name"])
    if not listing.ok:
        logger.warning("VM list unavailable: %s", listing.error)
        report.errors.append(f"VM list unavailable: {listing.error}")

    totals = Aggregator(["max_alloc_mib", "current_alloc_mib"])
    for name in parse_vm_names(listing.stdout):
        dominfo = runner(["virsh", "dominfo", name])
        memstat = runner(["virsh", "dommemstat", name])
        if not memstat.ok:
            logger.warning("dommemstat for %s unavailable: %s", name, memstat.error)
        row = report.add_row(name, {"name": name, **parse_vm_memory(dominfo.stdout, memstat.stdout)})
        totals.update_row(row)

    ksm = collect_ksm(ksm_dir)
    hugepages = collect_hugepages(meminfo)
    overcommit = {
        key: runner(["sysctl", "-n", f"vm.{key}"]).stdout.strip() or "n/a"
        for key in ("overcommit_memory", "overcommit_ratio")
    }
    free_h = runner(["free", "-h"]).stdout
    baseline = read_baseline(baseline_path)
    if baseline["available"]:
        baseline["used_delta_mib"] = host["used"] - baseline["memory"]["used"]

    report.host_summary = {
        "total_mib": host["total"],
        "used_mib": host["used"],
        "available_mib": host["available"],
    }
    report.totals = [
        Total("vm_max_mib", "Total VM Max Allocation", totals["max_alloc_mib"], 1, "MiB"),
        Total("vm_current_mib", "Total VM Current Allocation", totals["current_alloc_mib"], 1, "MiB"),
    ]
    report.totals_layout = "none"
    report.sections = {
        "ksm": ksm,
        "hugepages": hugepages,
        "overcommit": overcommit,
        "baseline": {k: v for k, v in baseline.items() if k != "line"},
    }

    report.preamble = banner(report.title) + [
        f"Date: {datetime.now().strftime('%a %b %d %H:%M:%S %Y')}",
        f"Hostname: {hostname or socket.gethostname()}",
        "",
        section_header("Host & VM Memory Summary"),
        label_line("Host Total Memory", f"{thousands(host['total'])} MiB"),
        label_line("Total VM Max Allocation", f"{thousands(totals['max_alloc_mib'])} MiB"),
        label_line("Total VM Current Allocation", f"{thousands(totals['current_alloc_mib'])} MiB"),
        label_line("Host Available Memory", f"{thousands(host['available'])} MiB"),
        "",
        section_header("VM Memory & Swap Details"),
    ]
    report.epilogue = (
        ["", section_header("KSM Memory Savings")]
        + _ksm_lines(ksm)
        + ["", section_header("Host Configuration"), "Host Memory Usage:", find_free_line(free_h)]
        + ["", "Host Swap Usage:", find_free_line(free_h, "Swap:")]
        + ["", "Hugepages Usage:"]
        + [f"{key}: {value}" for key, value in hugepages.items()]
        + ["", "Overcommit Settings:"]
        + [f"vm.{key}: {value}" for key, value in overcommit.items()]
        + [""]
        + _baseline_lines(baseline, find_free_line(free_m.stdout))
        + ["", "==================== End of Report ===================="]
    )
    return report
