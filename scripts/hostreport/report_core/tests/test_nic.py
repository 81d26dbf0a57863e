from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from report_core.collectors import CommandResult  # noqa: E402
from report_core.collectors import nic  # noqa: E402
from report_core.formatting import BondPalette, lacp_style, link_style, speed_style  # noqa: E402
from report_core.models import Row  # noqa: E402
from report_core.ordering import group_rows  # noqa: E402
from report_core.renderers import csv_text, json_text, table  # noqa: E402

BONDING = """Ethernet Channel Bonding Driver: v5.15.0

Bonding Mode: IEEE 802.3ad Dynamic link aggregation
Transmit Hash Policy: layer3+4 (1)
MII Status: up

802.3ad info
LACP active: on
LACP rate: fast
System priority: 65535
System MAC address: aa:bb:cc:dd:ee:ff
Active Aggregator Info:
	Aggregator ID: 1
	Number of ports: 2

Slave Interface: eth0
MII Status: up
Speed: 25000 Mbps
Permanent HW addr: 11:11:11:11:11:00
Slave queue ID: 0
Aggregator ID: 1
details actor lacp pdu:
    system priority: 65535
    system mac address: aa:bb:cc:dd:ee:ff
    port key: 15
    port state: 63
details partner lacp pdu:
    system priority: 127
    system mac address: 00:11:22:33:44:55
    oper key: 1
    port state: 63

Slave Interface: eth1
MII Status: down
Permanent HW addr: 11:11:11:11:11:01
Aggregator ID: 1
details actor lacp pdu:
    system mac address: aa:bb:cc:dd:ee:ff
    port state: 61
details partner lacp pdu:
    system mac address: 00:11:22:33:44:55
    port state: 1
"""

LLDP_ETH0 = """-------------------------------------------------------------------------------
LLDP neighbors:
-------------------------------------------------------------------------------
Interface:    eth0, via: LLDP, RID: 1, Time: 0 day, 00:10:00
  Chassis:
    ChassisID:    mac 00:11:22:33:44:55
    SysName:      switch-a
  Port:
    PortID:       ifname Ethernet1/1
  VLAN:         100, pvid: yes
  VLAN:         200, pvid: no
"""


class FakeTools:
    def __init__(self):
        self.outputs = {
            ("lldpctl", "eth0"): LLDP_ETH0,
        }
        for iface in ("eth0", "eth1", "eth2"):
            self.outputs[("ethtool", "-i", iface)] = "driver: mlx5_core\nfirmware-version: 14.32.1010 (MT_0000000012)\n"
        self.outputs[("ethtool", "eth0")] = "Settings for eth0:\n\tSpeed: 25000Mb/s\n\tDuplex: Full\n"
        self.outputs[("ethtool", "eth1")] = "Settings for eth1:\n\tSpeed: 25000Mb/s\n\tDuplex: Full\n"
        self.outputs[("ethtool", "eth2")] = "Settings for eth2:\n\tSpeed: Unknown!\n\tDuplex: Unknown! (255)\n"

    def __call__(self, cmd, **kwargs):
        key = tuple(cmd)
        if key not in self.outputs:
            return CommandResult(ok=False, error=f"{cmd[0]} failed")
        return CommandResult(ok=True, stdout=self.outputs[key], returncode=0)


class NicTreeMixin:
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.sys_net = root / "class" / "net"
        self.bonding_dir = root / "bonding"
        devices = root / "devices"
        self.sys_net.mkdir(parents=True)
        self.bonding_dir.mkdir()
        (self.sys_net / "bond0").mkdir()

        for idx, (name, state, bond) in enumerate(
            [("eth0", "up", "bond0"), ("eth1", "down", "bond0"), ("eth2", "up", None)]
        ):
            iface = self.sys_net / name
            iface.mkdir()
            device = devices / f"0000:01:00.{idx}"
            device.mkdir(parents=True)
            os.symlink(device, iface / "device")
            (iface / "operstate").write_text(f"{state}\n")
            (iface / "mtu").write_text("9000\n")
            (iface / "address").write_text(f"aa:aa:aa:aa:aa:0{idx}\n")
            if bond:
                os.symlink(self.sys_net / bond, iface / "master")

        # Filtered out: loopback, VLAN sub-interface, bridge, no device link.
        for name in ("lo", "eth0.100", "virbr0"):
            (self.sys_net / name).mkdir()
            os.symlink(devices / "0000:01:00.0", self.sys_net / name / "device")
        (self.sys_net / "ens9").mkdir()

        (self.bonding_dir / "bond0").write_text(BONDING)

    def tearDown(self):
        self.tmp.cleanup()

    def collect(self, **kwargs):
        return nic.collect(runner=FakeTools(), sys_net=self.sys_net, bonding_dir=self.bonding_dir, **kwargs)


class NicCollectTests(NicTreeMixin, unittest.TestCase):
    def test_discovers_physical_interfaces_only(self):
        names = [entry.name for entry in nic.discover_interfaces(self.sys_net)]
        self.assertEqual(names, ["eth0", "eth1", "eth2"])

    def test_bonded_interface(self):
        row = self.collect(flags={"bmac", "lacp", "vlan"}).rows[0]
        values = row.values
        self.assertEqual(values["device"], "0000:01:00.0")
        self.assertEqual(values["firmware"], "14.32.1010 (MT_0000000012)")
        self.assertEqual(values["mac_address"], "11:11:11:11:11:00")
        self.assertEqual(values["mtu"], 9000)
        self.assertEqual(values["link"], "up")
        self.assertEqual(values["speed_duplex"], "25000Mb/s (Full)")
        self.assertEqual(values["parent_bond"], "bond0")
        self.assertEqual(values["bond_mac"], "aa:bb:cc:dd:ee:ff")
        self.assertEqual(values["lacp_status"], "AggID:1 Peer:00:11:22:33:44:55")
        self.assertEqual(values["vlan"], "100[P];200")
        self.assertEqual(values["switch_name"], "switch-a")
        self.assertEqual(values["port_name"], "ifname Ethernet1/1")
        self.assertEqual(row.styles["parent_bond"], "bold blue")

    def test_partial_lacp_and_missing_lldp(self):
        values = self.collect(flags={"lacp"}).rows[1].values
        self.assertEqual(values["lacp_status"], "AggID:1 Peer:00:11:22:33:44:55 (Partial)")
        self.assertEqual(values["link"], "down")
        self.assertEqual(values["switch_name"], "N/A")
        self.assertEqual(values["vlan"], "N/A")

    def test_unbonded_interface(self):
        row = self.collect().rows[2]
        self.assertEqual(row.values["parent_bond"], "None")
        self.assertEqual(row.values["mac_address"], "aa:aa:aa:aa:aa:02")
        self.assertEqual(row.values["bond_mac"], "N/A")
        self.assertEqual(row.values["lacp_status"], "N/A")
        self.assertEqual(row.values["speed_duplex"], "N/A (N/A)")
        self.assertNotIn("parent_bond", row.styles)

    def test_json_is_bare_array_without_optional_columns(self):
        data = json.loads(json_text.render(self.collect()))
        self.assertEqual(len(data), 3)
        self.assertEqual(
            list(data[0]),
            ["device", "firmware", "interface", "mac_address", "mtu", "link", "speed_duplex", "parent_bond", "switch_name", "port_name"],
        )

    def test_optional_columns_do_not_change_other_values(self):
        plain = json.loads(json_text.render(self.collect()))
        extended = json.loads(json_text.render(self.collect(flags={"lacp", "vlan", "bmac"})))
        for before, after in zip(plain, extended):
            self.assertEqual(before, {k: after[k] for k in before})
        self.assertIn("lacp_status", extended[0])

    def test_table_header_and_separator(self):
        lines = [line.plain for line in table.render(self.collect(flags={"lacp"}), separator="|")]
        self.assertTrue(lines[0].startswith("Device       | Firmware"))
        self.assertIn("LACP Status", lines[0])
        self.assertEqual(len(lines), 6)

    def test_csv_uses_separator(self):
        lines = csv_text.render(self.collect(), "|").splitlines()
        self.assertEqual(lines[0].split("|")[0], '"Device"')
        self.assertEqual(len(lines), 4)

    def test_group_bond_order(self):
        rows = self.collect(group_bond=True).rows
        self.assertEqual([row.ident for row in rows], ["eth0", "eth1", "eth2"])

    def test_no_interfaces(self):
        empty = Path(self.tmp.name) / "empty"
        empty.mkdir()
        report = nic.collect(runner=FakeTools(), sys_net=empty, bonding_dir=self.bonding_dir)
        self.assertEqual(json.loads(json_text.render(report)), [])


class NicParsingTests(unittest.TestCase):
    def test_parse_bonding(self):
        info = nic.parse_bonding(BONDING)
        self.assertEqual(info.system_mac, "aa:bb:cc:dd:ee:ff")
        self.assertEqual(info.slaves["eth0"].actor_port_state, "63")
        self.assertEqual(info.slaves["eth1"].partner_mac, "00:11:22:33:44:55")

    def test_lacp_pending(self):
        self.assertEqual(nic.lacp_status(None), "Pending")
        self.assertEqual(nic.lacp_status(nic.SlaveInfo(aggregator_id="1")), "Pending")

    def test_group_rows(self):
        rows = [
            Row("eth3", {"interface": "eth3", "parent_bond": "None"}),
            Row("eth1", {"interface": "eth1", "parent_bond": "bond1"}),
            Row("eth0", {"interface": "eth0", "parent_bond": "bond1"}),
            Row("eth2", {"interface": "eth2", "parent_bond": "bond0"}),
        ]
        ordered = group_rows(rows, "parent_bond", "interface")
        self.assertEqual([row.ident for row in ordered], ["eth2", "eth0", "eth1", "eth3"])


class NicColorTests(unittest.TestCase):
    def test_link(self):
        self.assertEqual(link_style("up"), "bold green")
        self.assertEqual(link_style("down"), "bold red")

    def test_speed_tiers(self):
        self.assertEqual(speed_style("400000Mb/s (Full)"), "bold magenta")
        self.assertEqual(speed_style("100000Mb/s (Full)"), "bold cyan")
        self.assertEqual(speed_style("25000Mb/s (Full)"), "bold white")
        self.assertEqual(speed_style("10000Mb/s (Full)"), "bold green")
        self.assertEqual(speed_style("1000Mb/s (Full)"), "yellow")
        self.assertEqual(speed_style("100Mb/s (Half)"), "red")
        self.assertEqual(speed_style("N/A (N/A)"), "red")

    def test_lacp(self):
        self.assertEqual(lacp_style("AggID:1 Peer:x"), "bold green")
        self.assertEqual(lacp_style("AggID:1 Peer:x (Partial)"), "bold yellow")
        self.assertEqual(lacp_style("Pending"), "bold red")
        self.assertIsNone(lacp_style("N/A"))

    def test_bond_palette_in_discovery_order(self):
        palette = BondPalette()
        self.assertEqual(palette.style_for("bond1"), "bold blue")
        self.assertEqual(palette.style_for("bond0"), "bold cyan")
        self.assertEqual(palette.style_for("bond1"), "bold blue")
        self.assertIsNone(palette.style_for("None"))


if __name__ == "__main__":
    unittest.main()
