"""Command-line entrypoint for host-report."""

from __future__ import annotations

import argparse
import functools
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.text import Text

from report_core import __version__
from report_core.collectors import require_commands, require_root, run_command
from report_core.collectors import esxi, kvm, nic, openstack
from report_core.errors import ReportError, UsageError
from report_core.models import OUTPUT_FORMATS, Report
from report_core.profiles import DEFAULT_SEPARATOR, config_path_from_env, resolve_profile
from report_core.provision import benchmark, csr, otp
from report_core.renderers import emit

logger = logging.getLogger(__name__)

PROG = "host-report"


class ReportArgumentParser(argparse.ArgumentParser):
    """argparse exits 2 on bad usage; every failure here exits 1."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def configure_logging(debug: bool = False, quiet: bool = False) -> None:
    if debug:
        level, fmt = logging.DEBUG, "%(levelname)s [%(name)s] %(message)s"
    elif quiet:
        level, fmt = logging.WARNING, "%(levelname)s: %(message)s"
    else:
        level, fmt = logging.INFO, "%(message)s"
    logging.basicConfig(level=level, format=fmt, stream=sys.stderr, force=True)


def _output_format(args: argparse.Namespace, profile: dict) -> str:
    fmt = args.output or profile.get("output", "table")
    if fmt not in OUTPUT_FORMATS:
        raise UsageError(f"Invalid output format: {fmt}. Choose from table, csv, or json.")
    return fmt


def _apply_fields(report: Report, profile: dict) -> Report:
    report.field_sets.update(profile.get("fields") or {})
    return report


def _runner(profile: dict):
    return functools.partial(run_command, timeout=profile["timeout"])


def _print_lines(console: Console, lines: list[str]) -> None:
    # Usernames, paths and result names may contain brackets.
    for line in lines:
        console.print(Text(line), highlight=False)


# -- report commands ---------------------------------------------------------


def cmd_esxi_memory(args: argparse.Namespace, profile: dict, console: Console) -> int:
    fmt = _output_format(args, profile)
    require_root()
    require_commands(esxi.REQUIRED_COMMANDS)
    report = esxi.collect(runner=_runner(profile))
    emit(_apply_fields(report, profile), fmt, console)
    return 0


def cmd_kvm_memory(args: argparse.Namespace, profile: dict, console: Console) -> int:
    fmt = _output_format(args, profile)
    require_root()
    require_commands(kvm.REQUIRED_COMMANDS)
    baseline = Path(args.baseline or profile["baseline"])
    report = kvm.collect(runner=_runner(profile), baseline_path=baseline)
    emit(_apply_fields(report, profile), fmt, console)
    return 0


def cmd_openstack_summary(args: argparse.Namespace, profile: dict, console: Console) -> int:
    fmt = _output_format(args, profile)
    domain = args.domain.strip()
    if not domain:
        raise UsageError("domain name must not be empty")
    require_commands(openstack.REQUIRED_COMMANDS)
    report = openstack.collect(domain, runner=_runner(profile))
    emit(_apply_fields(report, profile), fmt, console)
    return 0


def cmd_nic_xray(args: argparse.Namespace, profile: dict, console: Console) -> int:
    fmt = _output_format(args, profile)
    flags = set(profile.get("show") or [])
    flags.update(flag for flag in nic.OPTIONAL_FLAGS if getattr(args, flag))
    separator = args.separator if args.separator is not None else profile.get("separator")
    group_bond = args.group_bond or bool(profile.get("group_bond"))

    require_root()
    require_commands(nic.REQUIRED_COMMANDS)
    report = nic.collect(flags=flags, group_bond=group_bond, runner=_runner(profile))
    emit(_apply_fields(report, profile), fmt, console, separator=separator)
    return 0


# -- provisioning commands ---------------------------------------------------


def cmd_csr(args: argparse.Namespace, profile: dict, console: Console) -> int:
    values = {key: value for key, value in profile.items() if key in csr.CsrSettings.__dataclass_fields__}
    for key in csr.CsrSettings.__dataclass_fields__:
        override = getattr(args, key, None)
        if override is not None:
            values[key] = override
    settings = csr.CsrSettings(**values)
    require_commands(csr.REQUIRED_COMMANDS)
    lines = csr.generate(settings, Path(args.output_dir), self_signed=args.self_signed, runner=_runner(profile))
    _print_lines(console, lines)
    return 0


def cmd_otp_reset(args: argparse.Namespace, profile: dict, console: Console) -> int:
    mysql = args.mysql_command or profile["mysql_command"]
    database = args.database or profile["database"]
    require_commands(otp.mysql_command(mysql, database)[:1])
    lines = otp.reset_otp(args.username, database=database, mysql=mysql, runner=_runner(profile))
    _print_lines(console, lines)
    return 0


def cmd_bench_cpu(args: argparse.Namespace, profile: dict, console: Console) -> int:
    if args.threads is not None and args.threads < 0:
        raise UsageError(f"thread count must be positive, got: {args.threads}")
    require_commands(benchmark.CPU_REQUIRED_COMMANDS)
    lines = benchmark.run_cpu_benchmark(
        threads=args.threads,
        upload=args.upload,
        result_id=args.result_id,
        result_name=args.result_name,
        runner=_runner(profile),
    )
    _print_lines(console, lines)
    return 0


def cmd_bench_storage(args: argparse.Namespace, profile: dict, console: Console) -> int:
    disks = benchmark.parse_disks(args.disk)
    if not args.yes_wipe:
        raise UsageError("refusing to erase " + ", ".join(d.device for d in disks) + " without --yes-wipe")
    if args.upload and not (args.result_name and args.result_id):
        raise UsageError("When using --upload, both --result-name and --result-id must be provided.")
    require_root()
    require_commands(benchmark.STORAGE_REQUIRED_COMMANDS)
    bench = benchmark.StorageBenchmark(disks, runner=_runner(profile), tests=profile.get("tests"))
    lines = bench.run(upload=args.upload, result_name=args.result_name, result_id=args.result_id)
    _print_lines(console, lines)
    return 0


# -- parser ------------------------------------------------------------------


def _add_output(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output", help="Output format: table (default), csv, or json")


def _common_options() -> argparse.ArgumentParser:
    # SUPPRESS keeps a subcommand from resetting a flag given before it.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--version", action="version", version=f"{PROG} {__version__}")
    common.add_argument(
        "--config",
        default=argparse.SUPPRESS,
        help="JSON config file with per-report overrides (env: HOST_REPORT_CONFIG)",
    )
    verbosity = common.add_mutually_exclusive_group()
    verbosity.add_argument("--debug", action="store_true", default=argparse.SUPPRESS, help="Log every command run")
    verbosity.add_argument("--quiet", action="store_true", default=argparse.SUPPRESS, help="Only log warnings and errors")
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = ReportArgumentParser(
        prog=PROG,
        description="Host memory, NIC and provisioning reports",
        parents=[common],
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    p = sub.add_parser("esxi-memory", parents=[common], help="ESXi host and per-VM memory usage")
    _add_output(p)
    p.set_defaults(handler=cmd_esxi_memory)

    p = sub.add_parser("kvm-memory", parents=[common], help="KVM host memory, per-VM allocation, KSM and hugepages")
    _add_output(p)
    p.add_argument("--baseline", help="Baseline file written by 'free -m' (default /var/log/mem_baseline.txt)")
    p.set_defaults(handler=cmd_kvm_memory)

    p = sub.add_parser("openstack-summary", parents=[common], help="Per-project compute and volume totals for a domain")
    p.add_argument("domain", help="OpenStack domain name")
    _add_output(p)
    p.set_defaults(handler=cmd_openstack_summary)

    p = sub.add_parser("nic-xray", parents=[common], help="Physical NIC, bond, LACP and LLDP inventory")
    _add_output(p)
    p.add_argument("--lacp", action="store_true", help="Show LACP Aggregator ID and Partner MAC per interface")
    p.add_argument("--vlan", action="store_true", help="Show VLAN tagging information (from LLDP)")
    p.add_argument("--bmac", action="store_true", help="Show bond MAC address")
    p.add_argument(
        "-s",
        "--separator",
        nargs="?",
        const=DEFAULT_SEPARATOR,
        help=f"Column separator for table and CSV output (bare flag uses {DEFAULT_SEPARATOR})",
    )
    p.add_argument("--group-bond", action="store_true", help="Sort rows by bond group, then by interface name")
    p.set_defaults(handler=cmd_nic_xray)

    p = sub.add_parser("csr", parents=[common], help="Generate a private key and CSR with openssl")
    p.add_argument("--site")
    p.add_argument("--org-domain", dest="org_domain")
    p.add_argument("--fqdn", help="Common name (default thesite.oam.SITE.platform.ORG_DOMAIN)")
    p.add_argument("--country", help="2-letter country code")
    p.add_argument("--state")
    p.add_argument("--locality")
    p.add_argument("--org")
    p.add_argument("--org-unit", dest="org_unit")
    p.add_argument("--email")
    p.add_argument("--bits", type=int)
    p.add_argument("--days-valid", dest="days_valid", type=int)
    p.add_argument("--output-dir", default=".", help="Directory for the key, CSR and config files")
    p.add_argument("--self-signed", action="store_true", help="Also create a self-signed certificate")
    p.set_defaults(handler=cmd_csr)

    p = sub.add_parser("otp-reset", parents=[common], help="Force a Guacamole user to re-enroll TOTP")
    p.add_argument("username")
    p.add_argument("--database", help="Database name (default guacamole)")
    p.add_argument("--mysql-command", dest="mysql_command", help="mysql client command (default mysql)")
    p.set_defaults(handler=cmd_otp_reset)

    p = sub.add_parser("bench-cpu", parents=[common], help="Kernel build benchmark through the Phoronix Test Suite")
    p.add_argument("-t", "--threads", type=int, help="Number of threads (default: all available)")
    p.add_argument("-u", "--upload", action="store_true", help="Upload results to OpenBenchmarking.org")
    p.add_argument("-i", "--result-id", dest="result_id", help="Test identifier for the upload")
    p.add_argument("-n", "--result-name", dest="result_name", help="Saved test name for the upload")
    p.set_defaults(handler=cmd_bench_cpu)

    p = sub.add_parser("bench-storage", parents=[common], help="Destructive I/O benchmark on scratch disks")
    p.add_argument("--disk", action="append", required=True, metavar="DEV:LABEL", help="Disk to wipe and test")
    p.add_argument("--yes-wipe", dest="yes_wipe", action="store_true", help="Confirm that every --disk is erased")
    p.add_argument("--upload", action="store_true", help="Upload results to OpenBenchmarking.org")
    p.add_argument("--result-name", dest="result_name", help="Saved test name for the upload")
    p.add_argument("--result-id", dest="result_id", help="Test identifier for the upload")
    p.set_defaults(handler=cmd_bench_storage)

    return parser


def main(argv: list[str] | None = None, console: Console | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(getattr(args, "debug", False), getattr(args, "quiet", False))
    console = console or Console()

    try:
        profile = resolve_profile(args.command, config_path_from_env(getattr(args, "config", None)))
        logger.debug("profile %s: %s", args.command, profile)
        return args.handler(args, profile, console)
    except ReportError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 1


def _script_entry(command: str):
    """Console-script wrapper: ``nic-xray ARGS`` runs ``host-report nic-xray ARGS``."""

    def entry() -> int:
        return main([command, *sys.argv[1:]])

    entry.__name__ = f"main_{command.replace('-', '_')}"
    return entry


main_esxi_memory = _script_entry("esxi-memory")
main_kvm_memory = _script_entry("kvm-memory")
main_openstack_summary = _script_entry("openstack-summary")
main_nic_xray = _script_entry("nic-xray")
main_csr = _script_entry("csr")
main_otp_reset = _script_entry("otp-reset")
main_bench_cpu = _script_entry("bench-cpu")
main_bench_storage = _script_entry("bench-storage")


if __name__ == "__main__":
    raise SystemExit(main())
