"""CPU and storage benchmarks driven through the Phoronix Test Suite (PTS)."""

from __future__ import annotations

import getpass
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from report_core.collectors import Runner, run_command
from report_core.errors import CommandError, UsageError
from report_core.extract import AFTER_COLON, extract
from report_core.provision import run_checked

logger = logging.getLogger(__name__)

PTS = "phoronix-test-suite"

CPU_REQUIRED_COMMANDS = ["lscpu", PTS]
STORAGE_REQUIRED_COMMANDS = [PTS, "mkfs.xfs", "mount", "umount", "wipefs", "chown"]

CPU_TESTS = ["pts/build-linux-kernel"]
STORAGE_TESTS = ["iozone", "fio", "postmark", "compilebench"]

# Answers to the batch-setup questionnaire.
BATCH_SETUP_ANSWERS = "Y\nY\nN\nN\nN\n"

MOUNT_ROOT = Path("/mnt")
LABEL_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class PhoronixSuite:
    """Thin wrapper over the phoronix-test-suite CLI."""

    def __init__(self, runner: Runner = run_command, results_dir: Path | None = None):
        self.runner = runner
        self.results_dir = results_dir or Path.home() / ".phoronix-test-suite" / "test-results"

    def _run(self, args: list[str], env: dict[str, str] | None = None, **kwargs):
        merged = None
        if env:
            merged = dict(os.environ)
            merged.update(env)
        return run_checked(self.runner, [PTS, *args], env=merged, **kwargs)

    def batch_setup(self) -> None:
        logger.info("Setting up Phoronix Test Suite in batch mode...")
        self._run(["batch-setup"], input_text=BATCH_SETUP_ANSWERS)

    def install(self, tests: list[str]) -> None:
        for test in tests:
            logger.info("Installing test: %s", test)
            self._run(["install", test], timeout=None, capture=False)

    def batch_run(self, test: str, env: dict[str, str], save_name: str | None = None) -> None:
        args = ["batch-run", test]
        if save_name:
            args += ["-s", save_name]
        self._run(args, env=env, timeout=None, capture=False)

    def upload(self, result: str, env: dict[str, str]) -> None:
        self._run(["upload-result", result], env=env, timeout=None, capture=False)

    def compare(self, results: list[str]) -> None:
        self._run(["compare-results", *results], timeout=None, capture=False)

    def latest_result(self) -> Path | None:
        try:
            candidates = [p for p in self.results_dir.iterdir() if p.is_dir()]
        except OSError:
            return None
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.stat().st_mtime)


# -- CPU ---------------------------------------------------------------------


@dataclass
class CpuTopology:
    sockets: int
    cores_per_socket: int
    threads_per_core: int

    @property
    def total_threads(self) -> int:
        return self.sockets * self.cores_per_socket * self.threads_per_core


def parse_topology(lscpu_output: str) -> CpuTopology:
    def field(pattern: str) -> int:
        return extract(lscpu_output, pattern, 0, rule=AFTER_COLON, regex=True, ignore_case=True)

    return CpuTopology(
        sockets=field(r"^socket\(s\):"),
        cores_per_socket=field(r"^core\(s\) per socket:"),
        threads_per_core=field(r"^thread\(s\) per core:"),
    )


def resolve_threads(requested: int | None, available: int) -> int:
    if not requested:
        return available
    if requested < 0:
        raise UsageError(f"thread count must be positive, got: {requested}")
    if requested > available:
        raise UsageError(
            f"The specified number of threads ({requested}) is greater than the available threads ({available})."
        )
    return requested


def default_result_id(prefix: str = "quick-benchmark-cpu") -> str:
    return f"{prefix}-{datetime.now().strftime('%Y-%m-%d-%H%M%S')}"


def cpu_environment(threads: int, upload: bool, result_id: str, result_name: str) -> dict[str, str]:
    env = {
        "FORCE_TIMES_TO_RUN": "1",
        "PTS_CONCURRENT_TEST_RUNS": str(threads),
    }
    if upload:
        env.update(
            {
                "UPLOAD_RESULTS": "TRUE",
                "TEST_RESULTS_NAME": result_id,
                "TEST_RESULTS_DESCRIPTION": result_name,
            }
        )
    return env


def run_cpu_benchmark(
    threads: int | None = None,
    upload: bool = False,
    result_id: str | None = None,
    result_name: str | None = None,
    runner: Runner = run_command,
    suite: PhoronixSuite | None = None,
) -> list[str]:
    suite = suite or PhoronixSuite(runner)
    result_id = result_id or default_result_id()
    result_name = result_name or "Automated CPU benchmark run with quick-benchmark-cpu"

    topology = parse_topology(run_checked(runner, ["lscpu"]).stdout)
    if topology.total_threads <= 0:
        raise UsageError("could not determine CPU topology from lscpu")
    selected = resolve_threads(threads, topology.total_threads)

    for line in [
        "--- Detecting CPU Resources ---",
        f"Sockets:          {topology.sockets}",
        f"Cores per socket: {topology.cores_per_socket}",
        f"Threads per core: {topology.threads_per_core}",
        f"Total threads:    {topology.total_threads}",
        "--------------------------------",
        f"Using {'manually specified thread count' if threads else 'all available threads'}: {selected}",
    ]:
        logger.info(line)

    suite.batch_setup()
    suite.install(CPU_TESTS)

    env = cpu_environment(selected, upload, result_id, result_name)
    if upload:
        logger.info("Results will be uploaded as %s (%s)", result_id, result_name)
    for test in CPU_TESTS:
        logger.info("=== Starting CPU Benchmark === test profile: %s", test)
        suite.batch_run(test, env, save_name=result_id)
    return ["=== Benchmark Complete ==="]


# -- Storage -----------------------------------------------------------------


@dataclass(frozen=True)
class DiskTarget:
    device: str
    label: str

    @property
    def mount_point(self) -> Path:
        return MOUNT_ROOT / self.label


def parse_disk(spec: str) -> DiskTarget:
    """Parse ``DEVICE:LABEL`` (``/dev/vdb:NVMe_Replica3``)."""
    device, sep, label = spec.rpartition(":")
    if not sep or not device or not label:
        raise UsageError(f"invalid disk spec {spec!r}; expected DEVICE:LABEL")
    if not device.startswith("/dev/"):
        raise UsageError(f"invalid device {device!r}; expected a /dev path")
    if not LABEL_RE.match(label):
        raise UsageError(f"invalid label {label!r}; use letters, digits, '_' or '-'")
    return DiskTarget(device=device, label=label)


def parse_disks(specs: list[str]) -> list[DiskTarget]:
    disks = [parse_disk(spec) for spec in specs]
    labels = [disk.label for disk in disks]
    devices = [disk.device for disk in disks]
    if len(set(labels)) != len(labels) or len(set(devices)) != len(devices):
        raise UsageError("each disk needs a distinct device and label")
    return disks


def result_name_for(label: str, test: str) -> str:
    return f"{label}_{test}_result"


def benchmark_user() -> str:
    return os.environ.get("SUDO_USER") or getpass.getuser()


class StorageBenchmark:
    """Format, mount, benchmark, compare and release a set of scratch disks."""

    def __init__(
        self,
        disks: list[DiskTarget],
        runner: Runner = run_command,
        suite: PhoronixSuite | None = None,
        user: str | None = None,
        tests: list[str] | None = None,
    ):
        self.disks = disks
        self.runner = runner
        self.suite = suite or PhoronixSuite(runner)
        self.user = user or benchmark_user()
        self.tests = list(tests or STORAGE_TESTS)
        self.results: list[str] = []

    def prepare(self, disk: DiskTarget) -> None:
        logger.warning("Preparing %s as %s; all data on it will be erased.", disk.device, disk.label)
        # Not mounted is fine.
        self.runner(["umount", disk.device])
        run_checked(self.runner, ["mkfs.xfs", "-f", "-L", disk.label, disk.device], timeout=None)
        disk.mount_point.mkdir(parents=True, exist_ok=True)
        run_checked(self.runner, ["mount", f"LABEL={disk.label}", str(disk.mount_point)])
        run_checked(self.runner, ["chown", f"{self.user}:", str(disk.mount_point)])
        logger.info("Disk %s mounted at %s and ready for testing.", disk.device, disk.mount_point)

    def run_tests(self, disk: DiskTarget) -> None:
        for test in self.tests:
            logger.info("--- Running %s on %s (%s) ---", test, disk.label, disk.mount_point)
            self.suite.batch_run(test, {"PTS_TEST_DIR_OVERRIDE": str(disk.mount_point)})
            latest = self.suite.latest_result()
            if latest is None:
                logger.warning("No result directory found for %s on %s", test, disk.label)
                continue
            name = result_name_for(disk.label, test)
            target = latest.parent / name
            if target.exists():
                logger.warning("%s already exists; keeping result as %s", target, latest.name)
                self.results.append(latest.name)
                continue
            latest.rename(target)
            self.results.append(name)
            logger.info("Result for %s on %s saved as: %s", test, disk.label, name)

    def upload(self, result_name: str, result_id: str) -> None:
        env = {"PTS_UPLOAD_NAME": result_name, "PTS_UPLOAD_IDENTIFIER": result_id}
        for result in self.results:
            logger.info("Uploading result: %s", result)
            self.suite.upload(result, env)

    def compare(self) -> list[str]:
        lines = []
        for test in self.tests:
            matching = [r for r in self.results if r.endswith(f"_{test}_result")]
            if matching:
                lines.append(f"Comparison for {test}: {', '.join(matching)}")
                self.suite.compare(matching)
            else:
                lines.append(f"No results found to compare for {test}.")
        return lines

    def release(self, disk: DiskTarget) -> None:
        logger.info("--- Releasing disk %s (%s) ---", disk.device, disk.label)
        if os.path.ismount(disk.mount_point):
            run_checked(self.runner, ["umount", str(disk.mount_point)])
        if disk.mount_point.is_dir():
            try:
                disk.mount_point.rmdir()
            except OSError as exc:
                logger.warning("could not remove %s: %s", disk.mount_point, exc)
        run_checked(self.runner, ["wipefs", "--all", "--force", disk.device])

    def run(self, upload: bool = False, result_name: str | None = None, result_id: str | None = None) -> list[str]:
        if upload and not (result_name and result_id):
            raise UsageError("When using --upload, both --result-name and --result-id must be provided.")

        self.suite.batch_setup()
        self.suite.install(self.tests)

        prepared: list[DiskTarget] = []
        failures: list[str] = []
        try:
            for disk in self.disks:
                prepared.append(disk)
                self.prepare(disk)
            for disk in self.disks:
                self.run_tests(disk)
            if upload:
                self.upload(result_name, result_id)
            lines = self.compare()
        finally:
            for disk in prepared:
                try:
                    self.release(disk)
                except CommandError as exc:
                    logger.error("releasing %s failed: %s", disk.device, exc)
                    failures.append(disk.device)
        if failures:
            raise CommandError(f"could not release: {', '.join(failures)}")
        return lines + ["--- Benchmark script finished ---"]
