"""Provisioning helpers: commands that change host state rather than report on it."""

from __future__ import annotations

import logging

from report_core.collectors import CommandResult, Runner
from report_core.errors import CommandError

logger = logging.getLogger(__name__)


def run_checked(runner: Runner, cmd: list[str], **kwargs) -> CommandResult:
    """Run ``cmd`` through ``runner`` and raise CommandError when it fails."""
    logger.info("$ %s", " ".join(cmd))
    result = runner(cmd, **kwargs)
    if not result.ok:
        raise CommandError(f"{' '.join(cmd[:2])} failed: {result.error}", result.returncode)
    return result
