"""Command dispatch for ebtctl CLI."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from ebt.config import HarnessConfig
from ebt.cli.parser import _build_parser, _preprocess_argv


def _log_level(args) -> str:
    if args.log_level:
        return args.log_level
    if getattr(args, "quiet", False):
        return "WARNING"
    return "INFO"


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the ``ebtctl`` CLI.

    Parses arguments, configures logging, resolves the harness configuration
    and dispatches to the appropriate command handler.

    Args:
        argv: Argument list to parse.  Defaults to ``sys.argv[1:]``.

    Returns:
        Exit code: 0 on success, non-zero on error.
    """
    if argv is None:
        argv = sys.argv[1:]

    argv = _preprocess_argv(argv)

    # Late import to allow tests to monkeypatch ebt.cli.cmd_xxx
    import ebt.cli as cli

    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(format="%(levelname)s:%(message)s", level=_log_level(args))
    config = HarnessConfig.from_env(args.root)

    if args.cmd == "boards":
        return cli.cmd_boards(config=config, json_mode=args.json)
    if args.cmd == "dry-run":
        return cli.cmd_dry_run(
            config=config,
            board=args.board,
            version=args.fw_version,
            suites=args.suites,
            json_mode=args.json,
        )
    if args.cmd == "flash":
        return cli.cmd_flash(
            config=config,
            board=args.board,
            version=args.fw_version,
            port=args.port,
            suites=args.suites,
            esptool=args.esptool,
            overrides={
                "baud": args.baud,
                "mode": args.flash_mode,
                "freq": args.flash_freq,
                "size": args.flash_size,
                "compress": args.compress,
                "extra_args": args.esptool_args,
            },
            dry_run=args.dry_run,
            json_mode=args.json,
        )
    if args.cmd == "test":
        return cli.cmd_test(
            config=config,
            board=args.board,
            port=args.port,
            suites=args.suites,
            filter_pattern=args.filter_pattern,
            timeout_s=args.timeout,
            save=args.save,
            quiet=args.quiet,
            json_mode=args.json,
        )
    if args.cmd == "baseline":
        return cli.cmd_baseline(
            config=config,
            board=args.board,
            suites=args.suites,
            filter_pattern=args.filter_pattern,
            timeout_s=args.timeout,
            json_mode=args.json,
        )

    parser.error(f"unknown command: {args.cmd}")
    return 2
