"""Physical NIC inventory collector (sysfs, ethtool, lldpctl, /proc/net/bonding)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from report_core.collectors import Runner, read_int, read_text, run_command
from report_core.columns import active_columns
from report_core.extract import AFTER_COLON, extract
from report_core.formatting import BondPalette, lacp_style, link_style, speed_style
from report_core.models import NOT_APPLICABLE, Column, Report
from report_core.ordering import group_rows

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = ["ethtool", "lldpctl"]

SYS_NET = Path("/sys/class/net")
BONDING_DIR = Path("/proc/net/bonding")

EXCLUDE_RE = re.compile(r"lo|vnet|virbr|br|bond|docker|tap|tun")
VLAN_RE = re.compile(r"VLAN:\s*([^,\s]+)")
PVID_RE = re.compile(r"pvid:\s*(\S+)")

NO_BOND = "None"
LACP_SYNCED_STATE = "63"

OPTIONAL_FLAGS = ("bmac", "lacp", "vlan")

COLUMNS = [
    Column("device", "Device"),
    Column("firmware", "Firmware"),
    Column("interface", "Interface"),
    Column("mac_address", "MAC Address"),
    Column("mtu", "MTU", kind="int"),
    Column("link", "Link", colorize=link_style),
    Column("speed_duplex", "Speed/Duplex", colorize=speed_style),
    Column("parent_bond", "Parent Bond"),
    Column("bond_mac", "Bond MAC", optional="bmac"),
    Column("lacp_status", "LACP Status", optional="lacp", colorize=lacp_style),
    Column("vlan", "VLAN", optional="vlan"),
    Column("switch_name", "Switch Name"),
    Column("port_name", "Port Name"),
]


@dataclass
class SlaveInfo:
    permanent_mac: str = ""
    aggregator_id: str = ""
    actor_port_state: str = ""
    partner_mac: str = ""


@dataclass
class BondInfo:
    system_mac: str = ""
    slaves: dict[str, SlaveInfo] = field(default_factory=dict)


def parse_bonding(text: str | None) -> BondInfo:
    """Parse /proc/net/bonding/<bond> into the bond MAC and per-slave LACP details."""
    info = BondInfo()
    current: SlaveInfo | None = None
    pdu = None
    for raw in (text or "").splitlines():
        line = raw.strip()
        if line.startswith("Slave Interface:"):
            current = info.slaves.setdefault(line.split(":", 1)[1].strip(), SlaveInfo())
            pdu = None
            continue
        if current is None:
            if line.startswith("System MAC address:"):
                info.system_mac = line.split(":", 1)[1].strip()
            continue

        if line.startswith("Permanent HW addr:"):
            current.permanent_mac = line.split(":", 1)[1].strip()
        elif line.startswith("Aggregator ID:"):
            current.aggregator_id = line.split(":", 1)[1].strip()
        elif line.startswith("details actor lacp pdu:"):
            pdu = "actor"
        elif line.startswith("details partner lacp pdu:"):
            pdu = "partner"
        elif pdu == "actor" and line.startswith("port state:"):
            current.actor_port_state = line.split(":", 1)[1].strip()
            pdu = None
        elif pdu == "partner" and line.startswith("system mac address:"):
            current.partner_mac = line.split(":", 1)[1].strip()
            pdu = None
    return info


def lacp_status(slave: SlaveInfo | None) -> str:
    if slave is None or not (slave.aggregator_id and slave.partner_mac):
        return "Pending"
    status = f"AggID:{slave.aggregator_id} Peer:{slave.partner_mac}"
    if slave.actor_port_state != LACP_SYNCED_STATE:
        status += " (Partial)"
    return status


def parse_vlans(lldp_output: str | None) -> str:
    entries = []
    for line in (lldp_output or "").splitlines():
        match = VLAN_RE.search(line)
        if not match:
            continue
        pvid = PVID_RE.search(line)
        suffix = "[P]" if pvid and pvid.group(1).rstrip(",") == "yes" else ""
        entries.append(f"{match.group(1)}{suffix}")
    return ";".join(entries) or NOT_APPLICABLE


def _known(value: str | None) -> str:
    text = (value or "").strip()
    if not text or text.startswith("Unknown"):
        return NOT_APPLICABLE
    return text


def speed_duplex(ethtool_output: str | None) -> str:
    speed = _known(extract(ethtool_output, "Speed:", "", rule=AFTER_COLON))
    duplex = _known(extract(ethtool_output, "Duplex:", "", rule=AFTER_COLON))
    return f"{speed} ({duplex})"


def discover_interfaces(sys_net: Path = SYS_NET) -> list[Path]:
    try:
        entries = sorted(sys_net.iterdir(), key=lambda p: p.name)
    except OSError:
        return []
    found = []
    for entry in entries:
        name = entry.name
        if EXCLUDE_RE.search(name) or "." in name:
            continue
        if not (entry / "device").exists():
            continue
        found.append(entry)
    return found


def _link_target_name(path: Path) -> str | None:
    try:
        if not path.is_symlink() and not path.exists():
            return None
        return path.resolve().name
    except OSError:
        return None


def collect_interface(entry: Path, runner: Runner, bonding_dir: Path, bonds: dict[str, BondInfo]) -> dict:
    iface = entry.name
    firmware = extract(runner(["ethtool", "-i", iface]).stdout, "firmware-version", "", rule=AFTER_COLON)
    operstate = (read_text(entry / "operstate") or "").strip()
    bond = _link_target_name(entry / "master") or NO_BOND

    slave = None
    if bond != NO_BOND:
        if bond not in bonds:
            bonds[bond] = parse_bonding(read_text(bonding_dir / bond))
        slave = bonds[bond].slaves.get(iface)

    mac = (slave.permanent_mac if slave else "") or (read_text(entry / "address") or "").strip()
    lldp = runner(["lldpctl", iface]).stdout
    has_bonding_file = bond != NO_BOND and (bonding_dir / bond).exists()

    return {
        "device": _link_target_name(entry / "device") or NOT_APPLICABLE,
        "firmware": _known(firmware),
        "interface": iface,
        "mac_address": mac or NOT_APPLICABLE,
        "mtu": read_int(entry / "mtu") or 0,
        "link": "up" if operstate == "up" else "down",
        "speed_duplex": speed_duplex(runner(["ethtool", iface]).stdout),
        "parent_bond": bond,
        "bond_mac": (bonds[bond].system_mac or NOT_APPLICABLE) if bond != NO_BOND else NOT_APPLICABLE,
        "lacp_status": lacp_status(slave) if has_bonding_file else NOT_APPLICABLE,
        "vlan": parse_vlans(lldp),
        "switch_name": _known(extract(lldp, "SysName:", "", rule=AFTER_COLON)),
        "port_name": _known(extract(lldp, "PortID:", "", rule=AFTER_COLON)),
    }


def build_schema(flags: set[str] | None = None) -> list[Column]:
    return active_columns(COLUMNS, flags)


def collect(
    flags: set[str] | None = None,
    group_bond: bool = False,
    runner: Runner = run_command,
    sys_net: Path = SYS_NET,
    bonding_dir: Path = BONDING_DIR,
) -> Report:
    report = Report(
        key="nic-xray",
        title="NIC X-Ray",
        columns=build_schema(flags),
        entity_key=None,
    )

    palette = BondPalette()
    bonds: dict[str, BondInfo] = {}
    for entry in discover_interfaces(sys_net):
        values = collect_interface(entry, runner, bonding_dir, bonds)
        styles = {}
        bond_style = palette.style_for(values["parent_bond"])
        if bond_style:
            styles["parent_bond"] = bond_style
        report.add_row(values["interface"], values, styles)

    if not report.rows:
        report.errors.append(f"no physical interfaces found under {sys_net}")
        logger.warning("no physical interfaces found under %s", sys_net)
    if group_bond:
        report.rows = group_rows(report.rows, "parent_bond", "interface", ungrouped=NO_BOND)
    return report
