"""Board listing and dry-run validation commands for ebtctl."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from ebt.config import HarnessConfig
from ebt.errors import EbtError
from ebt.manifest import list_boards, resolve_firmware

from ebt.cli.helpers import _load_board, _print, _print_error, _select_suites

logger = logging.getLogger(__name__)


def cmd_boards(*, config: HarnessConfig, json_mode: bool) -> int:
    boards = list_boards(config.boards_dir)
    if json_mode:
        _print({"boards": boards, "boards_dir": str(config.boards_dir)}, json_mode=True)
        return 0
    print("Available boards:")
    for name in boards:
        print(f"  - {name}")
    return 0


def cmd_dry_run(
    *,
    config: HarnessConfig,
    board: str,
    version: Optional[str],
    suites: Optional[str],
    json_mode: bool,
) -> int:
    """Validate a board's manifest, suites and firmware bundle.

    Missing firmware is reported as a warning only; nothing is flashed and
    no device is opened.
    """
    try:
        manifest = _load_board(config, board)
        selection = _select_suites(manifest, suites)
    except EbtError as e:
        _print_error(str(e), json_mode=json_mode)
        return 1

    firmware = resolve_firmware(manifest, config.firmware_dir, version)
    warnings: list[str] = []
    if not firmware.version_provided and firmware.requires_version:
        warnings.append(
            "firmware version is required (pattern includes %v) but no --version was provided."
        )
    if firmware.version_provided and not firmware.firmware_dir_exists:
        warnings.append("firmware directory does not exist.")
    if not manifest.flash_type:
        warnings.append("manifest missing flash.type; adapter selection may fail.")
    for warning in warnings:
        logger.warning(warning)

    if json_mode:
        _print(
            {
                "board": board,
                "manifest": manifest.path,
                "suites": selection.requested,
                "available_suites": selection.available,
                "firmware": dataclasses.asdict(firmware),
                "flash_type": manifest.flash_type,
                "warnings": warnings,
            },
            json_mode=True,
        )
        return 0

    print("Dry Run Summary")
    print("================")
    print(f"Board:           {board}")
    print(f"Manifest:        {manifest.path}")
    print(f"Suites:          {', '.join(selection.requested) or '(none)'}")
    print(f"Available suites:{', '.join(selection.available) or '(none)'}")
    if not firmware.version_provided:
        if not firmware.requires_version:
            print("Firmware:        no version specified (not required by manifest).")
    else:
        print(f"Firmware dir:    {firmware.firmware_dir}")
        print(f"Dir exists:      {'yes' if firmware.firmware_dir_exists else 'no'}")
        if firmware.artifacts:
            print("Artifacts:")
            for item in firmware.artifacts:
                status = "ok" if item.exists else "missing"
                print(f"  - {item.name}: {item.filename} @ {item.offset or 'n/a'} ({status})")
        else:
            print("Artifacts:       none defined in manifest.")
    if manifest.flash_type:
        print(f"Flashing via:    {manifest.flash_type}")
    print("Dry run completed without executing flashing or device communication.")
    return 0
