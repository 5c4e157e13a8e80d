"""ESP32-family flasher using esptool.

Validates the firmware bundle, derives the esptool argument list from the
board manifest and runs it through the invocation fallback chain. Boot and
reset are left to esptool (``--before``/``--after`` via ``extraArgs``); no
host GPIO is touched.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, Sequence

from ebt.config import DEFAULT_ESPTOOL
from ebt.errors import ValidationError
from ebt.flashers.base import Artifact, ExecutionPlan
from ebt.flashers.resolver import esptool_candidates, format_command, resolve_and_run
from ebt.manifest import BoardManifest, FirmwareArtifact, FirmwareInfo, ensure_artifacts
from ebt.process_utils import run_process

logger = logging.getLogger(__name__)

ADAPTER_TYPE = "esp32-esptool"

DEFAULT_BAUD = 921600
DEFAULT_FLASH_MODE = "dio"
DEFAULT_FLASH_FREQ = "40m"
DEFAULT_FLASH_SIZE = "detect"


def _pick(override: Any, configured: Any, default: Any) -> Any:
    if override is not None:
        return override
    if configured is not None and configured != "":
        return configured
    return default


def _baud_rate(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid flash baud rate: {value!r}")
    try:
        baud = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid flash baud rate: {value!r}") from None
    if baud <= 0:
        raise ValidationError(f"Invalid flash baud rate: {value!r}")
    return baud


def plan_artifacts(artifacts: Sequence[FirmwareArtifact]) -> tuple[Artifact, ...]:
    """Convert validated firmware artifacts into plan artifacts."""
    return tuple(
        Artifact(name=a.name, offset=a.offset or "", absolute_path=os.path.abspath(a.path))
        for a in artifacts
    )


def build_plan(
    flash_config: dict[str, Any],
    artifacts: Sequence[Artifact],
    *,
    port: str,
    overrides: Optional[dict[str, Any]] = None,
) -> ExecutionPlan:
    """Merge overrides, manifest ``flash`` settings and defaults into a plan.

    Args:
        flash_config: The manifest's ``flash`` mapping.
        artifacts: Artifacts in flashing order, offsets already validated.
        port: Serial port for esptool.
        overrides: Optional ``baud``, ``mode``, ``freq``, ``size``,
            ``compress`` and ``extra_args`` values from the command line.

    Raises:
        ValidationError: The baud rate is not a positive integer.
    """
    overrides = overrides or {}
    configured_extra = flash_config.get("extraArgs")
    extra = _pick(
        overrides.get("extra_args"),
        list(configured_extra) if isinstance(configured_extra, list) else None,
        [],
    )
    compress = _pick(overrides.get("compress"), flash_config.get("compress") is True, False)
    return ExecutionPlan(
        chip=flash_config.get("chip") or None,
        port=port,
        baud_rate=_baud_rate(_pick(overrides.get("baud"), flash_config.get("baud"), DEFAULT_BAUD)),
        flash_mode=str(_pick(overrides.get("mode"), flash_config.get("mode"), DEFAULT_FLASH_MODE)),
        flash_frequency=str(_pick(overrides.get("freq"), flash_config.get("freq"), DEFAULT_FLASH_FREQ)),
        flash_size=str(_pick(
            overrides.get("size"),
            flash_config.get("size") or flash_config.get("flashSize"),
            DEFAULT_FLASH_SIZE,
        )),
        compress=bool(compress),
        extra_args=tuple(str(a) for a in extra),
        artifacts=tuple(artifacts),
    )


def build_command_args(plan: ExecutionPlan) -> list[str]:
    """esptool argv tail for *plan*.

    The order is fixed: chip, port, baud, extra flags, ``write_flash``,
    ``--compress``, mode/freq/size, then one offset/path pair per artifact.
    """
    args: list[str] = []
    if plan.chip:
        args.extend(["--chip", plan.chip])
    args.extend(["--port", plan.port])
    args.extend(["--baud", str(plan.baud_rate)])
    args.extend(plan.extra_args)
    args.append("write_flash")
    if plan.compress:
        args.append("--compress")
    args.extend(["--flash_mode", plan.flash_mode])
    args.extend(["--flash_freq", plan.flash_frequency])
    args.extend(["--flash_size", plan.flash_size])
    for artifact in plan.artifacts:
        args.extend([artifact.offset, artifact.absolute_path])
    return args


def flash(
    *,
    manifest: BoardManifest,
    firmware: FirmwareInfo,
    port: str,
    esptool: Optional[str] = None,
    overrides: Optional[dict[str, Any]] = None,
    dry_run: bool = False,
    capture: bool = False,
    runner=run_process,
) -> dict[str, Any]:
    """Validate the bundle and flash it with esptool.

    Args:
        manifest: Board manifest.
        firmware: Resolved firmware bundle.
        port: Serial port.
        esptool: Preferred esptool executable (``--esptool``/``ESPTOOL``).
        overrides: Tunable overrides, see :func:`build_plan`.
        dry_run: Log the prepared command and stop.
        capture: Capture esptool output instead of streaming it.
        runner: Process runner handed to the resolver.

    Returns:
        Dict with keys: success, dry_run, command, executable, stdout, stderr.

    Raises:
        ValidationError: The firmware bundle is incomplete or a flash setting is invalid.
        ToolNotFound: No esptool invocation could be launched.
        ToolExecutionFailed: esptool ran and failed.
    """
    ensure_artifacts(firmware)

    preferred = esptool or manifest.flash.get("esptool") or DEFAULT_ESPTOOL
    plan = build_plan(
        manifest.flash,
        plan_artifacts(firmware.artifacts),
        port=port,
        overrides=overrides,
    )
    args = build_command_args(plan)
    logger.info("Prepared esptool command: %s", format_command([preferred, *args]))

    if dry_run:
        logger.info("Dry run enabled; skipping flashing operation.")
        return {
            "success": True,
            "dry_run": True,
            "command": [preferred, *args],
            "executable": preferred,
            "stdout": "",
            "stderr": "",
        }

    outcome = resolve_and_run(esptool_candidates(preferred), args, runner=runner, capture=capture)
    logger.info("Flash completed for %s", manifest.name)
    return {
        "success": True,
        "dry_run": False,
        "command": list(outcome.argv),
        "executable": outcome.argv[0],
        "stdout": outcome.stdout,
        "stderr": outcome.stderr,
    }
