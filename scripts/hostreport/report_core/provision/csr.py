"""Private key and certificate signing request generation via openssl."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from report_core.collectors import Runner, run_command
from report_core.errors import UsageError
from report_core.provision import run_checked

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = ["openssl"]


@dataclass
class CsrSettings:
    site: str = "site1"
    org_domain: str = "my.corp"
    country: str = "PY"
    state: str = "Central"
    locality: str = "Asuncion"
    org: str = "Super Corp"
    org_unit: str = "IT Infra"
    email: str | None = None
    fqdn: str | None = None
    bits: int = 2048
    days_valid: int = 365

    @property
    def common_name(self) -> str:
        return self.fqdn or f"thesite.oam.{self.site}.platform.{self.org_domain}"

    @property
    def contact(self) -> str:
        return self.email or f"admin@{self.org_domain}"

    def validate(self) -> None:
        if len(self.country) != 2:
            raise UsageError(f"country must be a 2-letter code, got: {self.country!r}")
        if self.bits < 2048:
            raise UsageError(f"key size must be at least 2048 bits, got: {self.bits}")
        if self.days_valid < 1:
            raise UsageError(f"days valid must be positive, got: {self.days_valid}")


@dataclass
class CsrFiles:
    key: Path
    csr: Path
    config: Path
    cert: Path


def csr_files(settings: CsrSettings, output_dir: Path) -> CsrFiles:
    cn = settings.common_name
    return CsrFiles(
        key=output_dir / f"{cn}.key",
        csr=output_dir / f"{cn}.csr",
        config=output_dir / f"{cn}_csr.conf",
        cert=output_dir / f"{cn}.crt",
    )


def render_config(settings: CsrSettings) -> str:
    cn = settings.common_name
    return "\n".join(
        [
            "[ req ]",
            f"default_bits       = {settings.bits}",
            "prompt             = no",
            "default_md         = sha256",
            "req_extensions     = req_ext",
            "distinguished_name = dn",
            "",
            "[ dn ]",
            f"C  = {settings.country}",
            f"ST = {settings.state}",
            f"L  = {settings.locality}",
            f"O  = {settings.org}",
            f"OU = {settings.org_unit}",
            f"CN = {cn}",
            f"emailAddress = {settings.contact}",
            "",
            "[ req_ext ]",
            "subjectAltName = @alt_names",
            "",
            "[ alt_names ]",
            f"DNS.1 = {cn}",
            "",
        ]
    )


def request_command(settings: CsrSettings, files: CsrFiles) -> list[str]:
    return [
        "openssl", "req", "-new",
        "-newkey", f"rsa:{settings.bits}",
        "-nodes",
        "-keyout", str(files.key),
        "-out", str(files.csr),
        "-config", str(files.config),
    ]


def self_sign_command(settings: CsrSettings, files: CsrFiles) -> list[str]:
    return [
        "openssl", "x509", "-req",
        "-days", str(settings.days_valid),
        "-in", str(files.csr),
        "-signkey", str(files.key),
        "-out", str(files.cert),
        "-extensions", "req_ext",
        "-extfile", str(files.config),
    ]


def generate(
    settings: CsrSettings,
    output_dir: Path = Path("."),
    self_signed: bool = False,
    runner: Runner = run_command,
) -> list[str]:
    """Write the openssl config, create key and CSR, optionally self-sign.

    Returns the summary lines to show the operator.
    """
    settings.validate()
    files = csr_files(settings, output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        files.config.write_text(render_config(settings))
    except OSError as exc:
        raise UsageError(f"cannot write to output directory {output_dir}: {exc.strerror or exc}") from exc
    logger.debug("wrote %s", files.config)

    run_checked(runner, request_command(settings, files))
    lines = ["Key and CSR generated:", f"  - Key: {files.key}", f"  - CSR: {files.csr}"]
    if self_signed:
        run_checked(runner, self_sign_command(settings, files))
        lines.append(f"  - Self-signed cert: {files.cert}")
    return lines
