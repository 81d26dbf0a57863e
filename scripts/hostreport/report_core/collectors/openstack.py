"""OpenStack per-domain resource collector (openstack CLI, JSON output)."""

from __future__ import annotations

import logging

from report_core.aggregate import Aggregator
from report_core.collectors import Runner, parse_json, run_command, run_json
from report_core.models import Column, Report, Total

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = ["openstack"]

COLUMNS = [
    Column("project", "Project"),
    Column("instances", "Instances", kind="int"),
    Column("vcpus", "vCPUs", kind="int"),
    Column("ram_mib", "RAM (MiB)", kind="int"),
    Column("volumes", "Volumes", kind="int"),
    Column("volume_size_gib", "Size (GiB)", kind="int"),
]

TOTAL_FIELDS = ["instances", "vcpus", "ram_mib", "volumes", "volume_size_gib"]


def _as_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def flavor_ref(server: dict) -> str | None:
    """Best-effort flavor identifier; clouds expose it as a dict, an ID or a name."""
    flavor = server.get("flavor", server.get("Flavor"))
    if isinstance(flavor, dict):
        for key in ("id", "ID", "FlavorID", "original_name", "name"):
            value = flavor.get(key)
            if value:
                return str(value)
        return None
    if isinstance(flavor, str) and flavor.strip() and flavor != "null":
        text = flavor.strip()
        # "m1.small (3f1c...)" -> the ID in parentheses
        if text.endswith(")") and " (" in text:
            return text.rsplit(" (", 1)[1][:-1]
        return text
    return None


class FlavorCache:
    """Maps flavor reference -> (vcpus, ram MiB); unreadable flavors count as zero."""

    def __init__(self, runner: Runner):
        self.runner = runner
        self.entries: dict[str, tuple[int, int]] = {}

    def get(self, ref: str) -> tuple[int, int]:
        if ref not in self.entries:
            data = run_json(self.runner, ["openstack", "flavor", "show", ref, "-f", "json"], {})
            if not isinstance(data, dict):
                data = {}
            self.entries[ref] = (_as_int(data.get("vcpus")), _as_int(data.get("ram")))
        return self.entries[ref]


def sum_project_compute(runner: Runner, project_id: str, flavors: FlavorCache) -> dict[str, int]:
    servers = run_json(runner, ["openstack", "server", "list", "--project", project_id, "-f", "json"], [])
    if not isinstance(servers, list):
        servers = []

    vcpus = 0
    ram = 0
    for server in servers:
        server_id = server.get("ID") or server.get("id") if isinstance(server, dict) else None
        if not server_id:
            continue
        detail = run_json(runner, ["openstack", "server", "show", str(server_id), "-f", "json"], {})
        if not isinstance(detail, dict) or not detail:
            continue
        ref = flavor_ref(detail)
        if ref is None:
            logger.debug("server %s has no resolvable flavor", server_id)
            continue
        flavor_vcpus, flavor_ram = flavors.get(ref)
        vcpus += flavor_vcpus
        ram += flavor_ram
    return {"instances": len(servers), "vcpus": vcpus, "ram_mib": ram}


def sum_project_volumes(runner: Runner, project_id: str) -> dict[str, int]:
    volumes = run_json(runner, ["openstack", "volume", "list", "--project", project_id, "-f", "json"], [])
    if not isinstance(volumes, list):
        volumes = []
    size = sum(_as_int(volume.get("Size")) for volume in volumes if isinstance(volume, dict))
    return {"volumes": len(volumes), "volume_size_gib": size}


def collect(domain: str, runner: Runner = run_command) -> Report:
    report = Report(
        key="openstack-summary",
        title=f"Domain: {domain}",
        columns=list(COLUMNS),
        entity_key="projects",
        summary_key="domain_summary",
        totals_layout="row",
    )

    logger.info("Fetching projects for domain: %s ...", domain)
    listing = runner(["openstack", "project", "list", "--domain", domain, "-f", "json"])
    if not listing.ok:
        logger.warning("project list failed: %s", listing.error)
        report.errors.append(f"project list failed: {listing.error}")
        projects = []
    else:
        projects = parse_json(listing.stdout, [])
    if not isinstance(projects, list):
        projects = []
    if not projects:
        logger.warning("No projects found in domain '%s'.", domain)

    flavors = FlavorCache(runner)
    totals = Aggregator(TOTAL_FIELDS)
    projects = [p for p in projects if isinstance(p, dict)]
    for idx, project in enumerate(projects, start=1):
        project_id = str(project.get("ID") or project.get("id") or "")
        name = str(project.get("Name") or project.get("name") or project_id)
        logger.info("  [%d/%d] %s ...", idx, len(projects), name)
        values = {"project": name}
        values.update(sum_project_compute(runner, project_id, flavors))
        values.update(sum_project_volumes(runner, project_id))
        row = report.add_row(project_id or name, values)
        totals.update_row(row)

    report.host_summary = {"domain": domain, "projects": len(report.rows)}
    report.totals = [Total(field, field, totals[field]) for field in TOTAL_FIELDS]
    report.preamble = ["", report.title]
    return report
