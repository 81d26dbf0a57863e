"""Collector helpers: fail-soft subprocess and file access, prerequisite checks."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from report_core.errors import PrerequisiteError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


@dataclass
class CommandResult:
    ok: bool
    stdout: str = ""
    error: str = ""
    returncode: int | None = None


Runner = Callable[..., CommandResult]


def run_command(
    cmd: list[str],
    timeout: int | None = DEFAULT_TIMEOUT,
    input_text: str | None = None,
    env: dict[str, str] | None = None,
    capture: bool = True,
) -> CommandResult:
    """Run ``cmd`` and capture its output without ever raising.

    A missing binary, a timeout or a non-zero exit all come back as
    ``ok=False`` with a one-line ``error``; callers decide whether that is a
    missing metric or a fatal failure. With ``capture=False`` the command
    writes straight to the terminal (long benchmark runs) and ``stdout`` is
    empty.
    """
    logger.debug("running: %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            input=input_text,
            env=env,
            check=False,
        )
    except FileNotFoundError:
        return CommandResult(ok=False, error=f"{cmd[0]} not installed")
    except subprocess.TimeoutExpired:
        return CommandResult(ok=False, error=f"{cmd[0]} timed out after {timeout}s")
    except OSError as exc:
        return CommandResult(ok=False, error=f"{cmd[0]}: {exc}")

    if proc.returncode != 0:
        fallback = f"{cmd[0]} exited with status {proc.returncode}"
        lines = (proc.stderr or proc.stdout or fallback).strip().splitlines()
        message = lines[0] if lines else fallback
        return CommandResult(ok=False, stdout=proc.stdout or "", error=message, returncode=proc.returncode)

    return CommandResult(ok=True, stdout=proc.stdout or "", returncode=0)


def parse_json(text: str | None, default: Any) -> Any:
    try:
        parsed = json.loads(text or "null")
    except json.JSONDecodeError:
        return default
    return default if parsed is None else parsed


def run_json(runner: Runner, cmd: list[str], default: Any) -> Any:
    result = runner(cmd)
    if not result.ok:
        logger.warning("%s: %s", " ".join(cmd[:3]), result.error)
        return default
    parsed = parse_json(result.stdout, None)
    if parsed is None:
        logger.warning("invalid JSON from %s", " ".join(cmd[:3]))
        return default
    return parsed


def read_text(path: Path) -> str | None:
    try:
        return path.read_text(errors="replace")
    except OSError:
        return None


def read_int(path: Path) -> int | None:
    text = read_text(path)
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


def is_root() -> bool:
    return os.geteuid() == 0


def require_root() -> None:
    if not is_root():
        raise PrerequisiteError("This script must be run as root. Please use sudo or switch to root.")


def missing_commands(commands: list[str]) -> list[str]:
    return [cmd for cmd in commands if shutil.which(cmd) is None]


def require_commands(commands: list[str]) -> None:
    missing = missing_commands(commands)
    if missing:
        raise PrerequisiteError(f"Required command '{missing[0]}' not found.")
