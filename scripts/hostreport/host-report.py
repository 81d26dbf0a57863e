#!/usr/bin/env python3
"""Thin entrypoint for the host-report CLI."""

from __future__ import annotations

from report_core.app import main


if __name__ == "__main__":
    raise SystemExit(main())
