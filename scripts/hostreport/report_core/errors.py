"""Error types raised before or outside of data collection."""

from __future__ import annotations


class ReportError(Exception):
    """Base class for fatal conditions; the CLI reports them and exits 1."""


class PrerequisiteError(ReportError):
    """A required tool is missing or the process lacks privileges."""


class UsageError(ReportError):
    """An argument or config value is invalid."""


class CommandError(ReportError):
    """A provisioning command exited non-zero."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode
