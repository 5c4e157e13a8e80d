"""Argument parser for ebtctl CLI."""

from __future__ import annotations

import argparse

from ebt import __version__

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

_GLOBAL_VALUE_FLAGS = ("--root", "--log-level")


def _preprocess_argv(argv: list[str]) -> list[str]:
    """Reorder global flags (--json, --root, --log-level) before the subcommand.

    argparse only accepts parent-parser flags ahead of the subcommand, so
    ``ebtctl test --board X --json`` would otherwise be rejected.

    Args:
        argv: Raw argument list (without ``sys.argv[0]``).

    Returns:
        Reordered argument list with global flags moved to the front.
    """
    global_args: list[str] = []
    rest: list[str] = []
    i = 0
    while i < len(argv):
        token = argv[i]
        if token == "--json":
            global_args.append(token)
            i += 1
            continue
        if any(token.startswith(f"{flag}=") for flag in _GLOBAL_VALUE_FLAGS):
            global_args.append(token)
            i += 1
            continue
        if token in _GLOBAL_VALUE_FLAGS:
            # Needs a value.
            if i + 1 >= len(argv):
                rest.append(token)
                i += 1
                continue
            global_args.extend([token, argv[i + 1]])
            i += 2
            continue

        rest.append(token)
        i += 1

    return global_args + rest


def _timeout_seconds(value: str) -> float:
    seconds = float(value)
    if seconds <= 0:
        raise argparse.ArgumentTypeError("timeout must be positive")
    return seconds


def _build_parser() -> argparse.ArgumentParser:
    """Build the full argparse parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="ebtctl",
        description="Flash Espruino firmware and run on-device JavaScript test suites",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__} (embedded-board-tester)",
    )
    parser.add_argument("--json", action="store_true", help="Output machine-parseable JSON")
    parser.add_argument(
        "--root",
        default=None,
        help="Repository root holding boards/, firmware/, tests/ (default: $EBT_ROOT or cwd)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging threshold (default: INFO)",
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("boards", help="List available board manifests")

    p_dry = sub.add_parser(
        "dry-run",
        help="Validate manifest, suites and firmware bundle without touching a device",
    )
    p_dry.add_argument("--board", "-b", required=True, help="Board manifest name")
    p_dry.add_argument("--version", "-v", dest="fw_version", default=None,
                       help="Firmware version directory under firmware/<board>/")
    p_dry.add_argument("--suites", "-s", default=None, help="Comma separated suites to validate")

    p_flash = sub.add_parser("flash", help="Flash a firmware bundle to a board")
    p_flash.add_argument("--board", "-b", required=True, help="Board manifest name")
    p_flash.add_argument("--version", "-v", dest="fw_version", default=None,
                         help="Firmware version directory under firmware/<board>/")
    p_flash.add_argument("--port", "-p", default=None,
                         help="Serial port (default: first manifest hint)")
    p_flash.add_argument("--suites", "-s", default=None,
                         help="Validate suite availability before flashing")
    p_flash.add_argument("--esptool", default=None,
                         help="esptool executable (default: $ESPTOOL, manifest, esptool.py)")
    p_flash.add_argument("--baud", type=int, default=None, help="Override flashing baud rate")
    p_flash.add_argument("--flash-mode", default=None, help="Override flash mode (e.g. dio)")
    p_flash.add_argument("--flash-freq", default=None, help="Override flash frequency (e.g. 40m)")
    p_flash.add_argument("--flash-size", default=None, help="Override flash size (e.g. 4MB)")
    p_flash.add_argument("--compress", action=argparse.BooleanOptionalAction, default=None,
                         help="Force esptool --compress on or off")
    p_flash.add_argument("--esptool-arg", action="append", dest="esptool_args", default=None,
                         help="Extra esptool argument (repeatable, replaces manifest extraArgs)")
    p_flash.add_argument("--dry-run", "-n", action="store_true",
                         help="Print the esptool command and exit without flashing")

    p_test = sub.add_parser("test", help="Run test suites on a connected device")
    p_test.add_argument("--board", "-b", required=True, help="Board manifest name")
    p_test.add_argument("--port", "-p", default=None, help="Serial port (default: manifest hint)")
    p_test.add_argument("--suites", "-s", default=None, help="Comma separated suites to run")
    p_test.add_argument("--filter", dest="filter_pattern", default=None,
                        help="Only run test files matching this glob")
    p_test.add_argument("--timeout", type=_timeout_seconds, default=None,
                        help="Per-test timeout in seconds (default: 15)")
    p_test.add_argument("--no-save", dest="save", action="store_false",
                        help="Do not write results/<stamp>/<board>/<suite>.json")
    p_test.add_argument("--quiet", "-q", action="store_true",
                        help="Hide device output and informational logging")

    p_base = sub.add_parser("baseline", help="Run test suites under host Node.js (no hardware)")
    p_base.add_argument("--board", "-b", default=None,
                        help="Board manifest used to pick default suites")
    p_base.add_argument("--suites", "-s", default=None, help="Comma separated suites to run")
    p_base.add_argument("--filter", dest="filter_pattern", default=None,
                        help="Only run test files matching this glob")
    p_base.add_argument("--timeout", type=_timeout_seconds, default=None,
                        help="Per-test timeout in seconds (default: 15)")

    return parser
