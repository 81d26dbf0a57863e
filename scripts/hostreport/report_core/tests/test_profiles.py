from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from report_core.collectors import kvm  # noqa: E402
from report_core.errors import UsageError  # noqa: E402
from report_core.profiles import CONFIG_ENV, config_path_from_env, resolve_profile  # noqa: E402


class ProfileTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.cfg_path = Path(self.tmp.name) / "cfg.json"

    def tearDown(self):
        self.tmp.cleanup()

    def _write(self, payload) -> str:
        self.cfg_path.write_text(payload if isinstance(payload, str) else json.dumps(payload))
        return str(self.cfg_path)

    def test_builtin_defaults(self):
        profile = resolve_profile("nic-xray")
        self.assertEqual(profile["name"], "nic-xray")
        self.assertEqual(profile["output"], "table")
        self.assertIsNone(profile["separator"])
        self.assertEqual(profile["timeout"], 30)

    def test_report_overrides_and_timeout(self):
        path = self._write({"reports": {"nic-xray": {"output": "json", "separator": "|"}}, "timeout": 10})
        profile = resolve_profile("nic-xray", path)
        self.assertEqual(profile["output"], "json")
        self.assertEqual(profile["separator"], "|")
        self.assertEqual(profile["timeout"], 10)

    def test_overrides_for_other_reports_do_not_leak(self):
        path = self._write({"reports": {"nic-xray": {"output": "json"}}})
        self.assertEqual(resolve_profile("esxi-memory", path)["output"], "table")

    def test_timeout_floor(self):
        self.assertEqual(resolve_profile("kvm-memory", self._write({"timeout": 0}))["timeout"], 1)

    def test_field_sets(self):
        path = self._write({"reports": {"esxi-memory": {"fields": {"csv": ["id", "name", "ram_gb"]}}}})
        self.assertEqual(resolve_profile("esxi-memory", path)["fields"], {"csv": ["id", "name", "ram_gb"]})

    def test_show_list(self):
        path = self._write({"reports": {"nic-xray": {"show": ["lacp", "vlan"]}}})
        self.assertEqual(resolve_profile("nic-xray", path)["show"], ["lacp", "vlan"])

    def test_show_and_fields_must_name_known_columns(self):
        cases = [
            ("nic-xray", {"show": "lacp"}),
            ("nic-xray", {"show": ["speed"]}),
            ("nic-xray", {"fields": {"json": ["interface", "vendor"]}}),
            ("esxi-memory", {"fields": {"csv": ["vm_id"]}}),
        ]
        for report, overrides in cases:
            with self.subTest(report=report, overrides=overrides):
                with self.assertRaises(UsageError):
                    resolve_profile(report, self._write({"reports": {report: overrides}}))

    def test_baseline_default(self):
        self.assertEqual(resolve_profile("kvm-memory")["baseline"], str(kvm.DEFAULT_BASELINE))

    def test_errors(self):
        cases = [
            {"reports": {"esx": {}}},
            {"reports": {"nic-xray": {"output": "xml"}}},
            {"reports": {"nic-xray": {"colour": True}}},
            {"reports": {"nic-xray": {"fields": {"yaml": []}}}},
            {"reports": []},
            {"timeout": "soon"},
            "{not json",
            [],
        ]
        for payload in cases:
            with self.subTest(payload=payload):
                with self.assertRaises(UsageError):
                    resolve_profile("nic-xray", self._write(payload))

    def test_unknown_report_and_missing_file(self):
        with self.assertRaises(UsageError):
            resolve_profile("bogus")
        with self.assertRaises(UsageError):
            resolve_profile("nic-xray", str(Path(self.tmp.name) / "absent.json"))

    def test_config_from_environment(self):
        with mock.patch.dict(os.environ, {CONFIG_ENV: "/etc/host-report.json"}):
            self.assertEqual(config_path_from_env(None), "/etc/host-report.json")
            self.assertEqual(config_path_from_env("local.json"), "local.json")
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertIsNone(config_path_from_env(None))


if __name__ == "__main__":
    unittest.main()
