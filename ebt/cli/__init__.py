"""
ebtctl: command-line interface for the Embedded Board Tester.

Main commands:
- boards: List board manifests
- dry-run: Validate a manifest, suite selection and firmware bundle
- flash: Flash a firmware bundle with the manifest's adapter
- test: Run test suites on a device through the Espruino CLI
- baseline: Run the same suites under Node.js on the host

Entry points:
- ebtctl: Main CLI entry point (installed via pip)
- Can also be imported and called programmatically via main(argv)
"""

from __future__ import annotations

from ebt.cli.helpers import _now_iso, _print
from ebt.cli.board_cmds import cmd_boards, cmd_dry_run
from ebt.cli.flash_cmds import cmd_flash
from ebt.cli.session_cmds import cmd_baseline, cmd_test
from ebt.cli.dispatch import main

__all__ = [
    "_now_iso",
    "_print",
    "cmd_baseline",
    "cmd_boards",
    "cmd_dry_run",
    "cmd_flash",
    "cmd_test",
    "main",
]
