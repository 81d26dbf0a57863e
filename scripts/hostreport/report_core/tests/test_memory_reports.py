from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from report_core.collectors import CommandResult  # noqa: E402
from report_core.collectors import esxi, kvm  # noqa: E402
from report_core.renderers import csv_text, json_text, table  # noqa: E402


class FakeRunner:
    def __init__(self, outputs: dict[tuple, str]):
        self.outputs = outputs
        self.calls: list[list[str]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        key = tuple(cmd)
        if key not in self.outputs:
            return CommandResult(ok=False, error=f"{cmd[0]} not installed")
        return CommandResult(ok=True, stdout=self.outputs[key], returncode=0)


GETALLVMS = """Vmid   Name   File                 Guest OS        Version
1      VM1    [ds1] VM1/VM1.vmx    ubuntu64Guest   vmx-19
2      VM2    [ds1] VM2/VM2.vmx    ubuntu64Guest   vmx-19
"""


def vsish(total_kib: int, free_kib: int) -> str:
    return f"Comprehensive Memory Stats {{\n   Physical memory estimate:{total_kib} KB\n   Free:{free_kib} KB\n}}\n"


def summary(name: str, memory_mib: int, balloon_mib: int) -> str:
    return f"""(vim.vm.Summary) {{
   vm = 'vim.VirtualMachine:{name}',
   config = (vim.vm.Summary.ConfigSummary) {{
      name = "{name}",
      memorySizeMB = {memory_mib},
   }},
   quickStats = (vim.vm.Summary.QuickStats) {{
      guestMemoryUsage = 300,
      hostMemoryUsage = 1900,
      balloonedMemory = {balloon_mib},
      swappedMemory = 0,
      compressedMemory = 0,
   }},
}}
"""


def esxi_runner(total_kib=8388608, free_kib=4194304, vms=True) -> FakeRunner:
    outputs = {
        ("vsish", "-e", "get", "/memory/comprehensive"): vsish(total_kib, free_kib),
        ("vim-cmd", "vmsvc/getallvms"): GETALLVMS if vms else GETALLVMS.splitlines()[0] + "\n",
        ("vim-cmd", "vmsvc/get.summary", "1"): summary("VM1", 2048, 512),
        ("vim-cmd", "vmsvc/get.summary", "2"): summary("VM2", 1024, 0),
    }
    return FakeRunner(outputs)


class EsxiTests(unittest.TestCase):
    def test_host_memory(self):
        host = esxi.parse_host_memory(vsish(8388608, 4194304))
        self.assertEqual(host["total_gb"], 8)
        self.assertEqual(host["used_gb"], 4)
        self.assertEqual(host["usage_percent"], 50)

    def test_zero_total_memory_gives_zero_percent(self):
        self.assertEqual(esxi.parse_host_memory("")["usage_percent"], 0)

    def test_table_totals(self):
        report = esxi.collect(runner=esxi_runner(), hostname="esx01")
        lines = [line.plain for line in table.render(report)]
        self.assertIn("Hostname: esx01", lines)
        self.assertIn("Used by Host: 4 GB (50%)", lines)
        self.assertIn("Total VM Memory Usage: 3 GB", lines)
        self.assertIn("Total Ballooned Memory: 0 GB", lines)
        self.assertIn("Memory Used by Host (excl. VMs): 1 GB", lines)

    def test_csv_has_one_line_per_vm(self):
        report = esxi.collect(runner=esxi_runner(), hostname="esx01")
        lines = csv_text.render(report).splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[1].startswith('"1","VM1","2","0"'))

    def test_json_sections(self):
        data = json.loads(json_text.render(esxi.collect(runner=esxi_runner(), hostname="esx01")))
        self.assertEqual(data["host_summary"], {"total_gb": 8, "used_gb": 4, "usage_percent": 50})
        self.assertEqual([vm["name"] for vm in data["vms"]], ["VM1", "VM2"])
        self.assertEqual(data["vms"][0]["ram_gb"], 2)
        self.assertEqual(data["totals"]["vm_mem_gb"], 3)
        self.assertEqual(data["totals"]["balloon_gb"], 0)

    def test_host_excluding_vms_can_be_negative(self):
        report = esxi.collect(runner=esxi_runner(total_kib=4194304, free_kib=3145728), hostname="esx01")
        self.assertEqual(report.totals_dict()["host_excl_vms_gb"], -2)

    def test_no_vms_still_renders(self):
        report = esxi.collect(runner=esxi_runner(vms=False), hostname="esx01")
        data = json.loads(json_text.render(report))
        self.assertEqual(data["vms"], [])
        self.assertEqual(data["totals"]["vm_mem_gb"], 0)
        self.assertEqual(len(csv_text.render(report).splitlines()), 1)

    def test_unnamed_vm_is_skipped(self):
        runner = esxi_runner()
        runner.outputs[("vim-cmd", "vmsvc/get.summary", "2")] = "(vim.vm.Summary) {\n}\n"
        report = esxi.collect(runner=runner, hostname="esx01")
        self.assertEqual([row.ident for row in report.rows], ["1"])

    def test_failed_listing_is_recorded(self):
        runner = esxi_runner()
        del runner.outputs[("vim-cmd", "vmsvc/getallvms")]
        report = esxi.collect(runner=runner, hostname="esx01")
        self.assertEqual(report.rows, [])
        self.assertTrue(report.errors)


FREE_M = """               total        used        free      shared  buff/cache   available
Mem:           15885        4000        8000         100        3885       11500
Swap:           2047           0        2047
"""

DOMMEMSTAT = """actual 4194304
swap_in 0
swap_out 1024
unused 1048576
available 4046508
rss 3000000
"""


def kvm_runner() -> FakeRunner:
    return FakeRunner(
        {
            ("free", "-m"): FREE_M,
            ("free", "-h"): FREE_M,
            ("virsh", "list", "--state-running", "--name"): "vm-a\nvm-b\n\n",
            ("virsh", "dominfo", "vm-a"): "Name:           vm-a\nMax memory:     4194304 KiB\n",
            ("virsh", "dommemstat", "vm-a"): DOMMEMSTAT,
            ("virsh", "dominfo", "vm-b"): "Name:           vm-b\nMax memory:     2097152 KiB\n",
            ("sysctl", "-n", "vm.overcommit_memory"): "0\n",
            ("sysctl", "-n", "vm.overcommit_ratio"): "50\n",
        }
    )


class KvmTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.ksm = self.root / "ksm"
        self.ksm.mkdir()
        self.meminfo = self.root / "meminfo"
        self.meminfo.write_text("MemTotal: 16266000 kB\nHugePages_Total:       4\nHugePages_Free:        1\nHugepagesize:       2048 kB\n")

    def tearDown(self):
        self.tmp.cleanup()

    def _collect(self, baseline: Path | None = None):
        return kvm.collect(
            runner=kvm_runner(),
            baseline_path=baseline or self.root / "missing-baseline.txt",
            ksm_dir=self.ksm,
            meminfo=self.meminfo,
            hostname="kvm01",
        )

    def test_vm_memory(self):
        values = kvm.parse_vm_memory("Max memory:     4194304 KiB\n", DOMMEMSTAT)
        self.assertEqual(values["max_alloc_mib"], 4096)
        self.assertEqual(values["current_alloc_mib"], 4096)
        self.assertEqual(values["guest_free_mib"], 1024)
        self.assertEqual(values["guest_used_mib"], 3072)
        self.assertEqual(values["swap_out_mib"], 1)

    def test_unreachable_vm_counts_as_zero(self):
        report = self._collect()
        vm_b = report.rows[1].values
        self.assertEqual(vm_b["max_alloc_mib"], 2048)
        self.assertEqual(vm_b["current_alloc_mib"], 0)
        self.assertEqual(report.totals_dict(), {"vm_max_mib": 6144, "vm_current_mib": 4096})

    def test_ksm_states(self):
        self.assertEqual(kvm.collect_ksm(self.ksm), {"supported": False, "active": False})
        (self.ksm / "run").write_text("0\n")
        self.assertEqual(kvm.collect_ksm(self.ksm), {"supported": True, "active": False})
        (self.ksm / "run").write_text("1\n")
        (self.ksm / "pages_sharing").write_text("3000\n")
        (self.ksm / "pages_shared").write_text("1000\n")
        ksm = kvm.collect_ksm(self.ksm, page_size=4096)
        self.assertEqual(ksm["pages_saved"], 2000)
        self.assertEqual(ksm["saved_mib"], "7.81")

    def test_hugepages(self):
        self.assertEqual(kvm.collect_hugepages(self.meminfo), {"HugePages_Total": 4, "HugePages_Free": 1})

    def test_missing_baseline_shows_hint(self):
        report = self._collect()
        lines = [line.plain for line in table.render(report)]
        self.assertIn("No baseline found. To create one, run:", lines)
        self.assertFalse(report.sections["baseline"]["available"])

    def test_baseline_comparison(self):
        baseline = self.root / "baseline.txt"
        baseline.write_text("# Recorded on: Mon Jan  1 00:00:00 UTC 2024\n" + FREE_M.replace("4000", "3500"))
        data = json.loads(json_text.render(self._collect(baseline)))
        self.assertTrue(data["baseline"]["available"])
        self.assertEqual(data["baseline"]["recorded"], "Recorded on: Mon Jan  1 00:00:00 UTC 2024")
        self.assertEqual(data["baseline"]["used_delta_mib"], 500)

    def test_json_sections(self):
        data = json.loads(json_text.render(self._collect()))
        self.assertEqual(data["host_summary"], {"total_mib": 15885, "used_mib": 4000, "available_mib": 11500})
        self.assertEqual([vm["name"] for vm in data["vms"]], ["vm-a", "vm-b"])
        self.assertEqual(data["overcommit"], {"overcommit_memory": "0", "overcommit_ratio": "50"})
        self.assertEqual(data["hugepages"]["HugePages_Total"], 4)

    def test_table_summary_lines(self):
        lines = [line.plain for line in table.render(self._collect())]
        self.assertIn(f"{'Host Total Memory':<28} : 15,885 MiB", lines)
        self.assertIn(f"{'Total VM Max Allocation':<28} : 6,144 MiB", lines)
        self.assertEqual(lines[-1], "==================== End of Report ====================")


if __name__ == "__main__":
    unittest.main()
