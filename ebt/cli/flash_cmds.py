"""Flash command for ebtctl."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from ebt.config import HarnessConfig
from ebt.errors import EbtError, ToolExecutionFailed, ValidationError
from ebt.flashers import get_adapter
from ebt.flashers.resolver import format_command
from ebt.manifest import ensure_artifacts, resolve_firmware
from ebt.port_lock import PortLock
from ebt.ports import resolve_port

from ebt.cli.helpers import _load_board, _now_iso, _print, _print_error, _select_suites

logger = logging.getLogger(__name__)


def cmd_flash(
    *,
    config: HarnessConfig,
    board: str,
    version: Optional[str],
    port: Optional[str],
    suites: Optional[str],
    esptool: Optional[str],
    overrides: Optional[dict[str, Any]] = None,
    dry_run: bool = False,
    json_mode: bool,
) -> int:
    """Validate the bundle for *board* and flash it with the manifest's adapter.

    The serial port is held under a :class:`PortLock` for the duration of
    the flash so a concurrent ``ebtctl test`` cannot open it.
    """
    started = time.time()
    try:
        manifest = _load_board(config, board)
        if not manifest.flash_type:
            raise ValidationError("manifest is missing flash.type; cannot determine adapter.")
        firmware = resolve_firmware(manifest, config.firmware_dir, version)
        ensure_artifacts(firmware)
        if suites:
            _select_suites(manifest, suites)
        adapter = get_adapter(manifest.flash_type)
        selected_port = resolve_port(port, manifest.serial_ports, allow_wildcard=True)
        if not selected_port:
            raise ValidationError("--port is required (manifest declares no serial ports).")
    except EbtError as e:
        _print_error(str(e), json_mode=json_mode)
        return 1

    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    if not json_mode:
        print("Flash Summary")
        print("============")
        print(f"Board:      {board}")
        print(f"Manifest:   {manifest.path}")
        print(f"Version:    {version or '(none)'}")
        print(f"Adapter:    {manifest.flash_type}")
        print(f"Port:       {selected_port}")
        print(f"Baud:       {overrides.get('baud') or manifest.flash.get('baud') or 'default'}")
        print(f"Dry run:    {'yes' if dry_run else 'no'}")

    flash_kwargs = dict(
        manifest=manifest,
        firmware=firmware,
        port=selected_port,
        esptool=esptool or config.esptool,
        overrides=overrides,
        dry_run=dry_run,
        capture=json_mode,
    )
    try:
        if dry_run:
            result = adapter.flash(**flash_kwargs)
        else:
            with PortLock(selected_port, run_dir=config.run_dir):
                result = adapter.flash(**flash_kwargs)
    except EbtError as e:
        if json_mode:
            payload = {"error": str(e), "board": board, "port": selected_port}
            if isinstance(e, ToolExecutionFailed):
                payload["returncode"] = e.returncode
            _print(payload, json_mode=True)
        else:
            print(f"Flashing failed: {e}")
        return 1

    if json_mode:
        _print(
            {
                "schema_version": 1,
                "timestamp": _now_iso(),
                "board": board,
                "version": version,
                "port": selected_port,
                "adapter": manifest.flash_type,
                "duration_s": round(time.time() - started, 2),
                **result,
            },
            json_mode=True,
        )
    elif dry_run:
        print(f"Command:    {format_command(result['command'])}")
    else:
        print(f"Flashed {board} via {result['executable']} in {time.time() - started:.1f}s")
    return 0
