"""Board manifests and firmware bundles.

A manifest lives at ``boards/<Board>.json`` (or ``.yaml``/``.yml``) and
describes:

- ``firmware.pattern`` and ``firmware.artifacts`` (filenames with offsets)
- ``flash.type`` (adapter), chip/baud/mode/freq/size, ``ports.serial`` hints
- ``suites.available`` / ``suites.default`` (runnable test sets)

Firmware bundles are stored under ``firmware/<Board>/<Version>/`` and hold
the artifacts named by the manifest.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ebt.errors import ValidationError

MANIFEST_SUFFIXES = (".json", ".yaml", ".yml")


@dataclass
class BoardManifest:
    """A parsed board manifest."""

    name: str
    path: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def flash(self) -> dict[str, Any]:
        flash = self.data.get("flash")
        return flash if isinstance(flash, dict) else {}

    @property
    def flash_type(self) -> Optional[str]:
        return self.flash.get("type")

    @property
    def serial_ports(self) -> list[str]:
        ports = self.data.get("ports")
        serial = ports.get("serial") if isinstance(ports, dict) else None
        return [str(p) for p in serial] if isinstance(serial, list) else []

    @property
    def espruino_board(self) -> Optional[str]:
        """Board id handed to the Espruino CLI (``board`` or ``upstream.id``)."""
        if self.data.get("board"):
            return str(self.data["board"])
        upstream = self.data.get("upstream")
        if isinstance(upstream, dict) and upstream.get("id"):
            return str(upstream["id"])
        return None


@dataclass
class SuiteSelection:
    available: list[str]
    defaults: list[str]
    requested: list[str]
    unknown: list[str]


@dataclass
class FirmwareArtifact:
    name: str
    filename: str
    offset: Optional[str]
    path: str
    exists: bool


@dataclass
class FirmwareInfo:
    requires_version: bool
    version_provided: bool
    firmware_dir: Optional[str]
    firmware_dir_exists: bool
    artifacts: list[FirmwareArtifact]
    resolved_pattern: str


def list_boards(boards_dir: Path) -> list[str]:
    """Sorted board names (manifest file stems) under *boards_dir*."""
    if not boards_dir.is_dir():
        return []
    names = {
        p.stem for p in boards_dir.iterdir()
        if p.is_file() and p.suffix in MANIFEST_SUFFIXES
    }
    return sorted(names)


def get_manifest_path(boards_dir: Path, board: str) -> Path:
    """Path of the manifest for *board*; JSON wins when several exist."""
    for suffix in MANIFEST_SUFFIXES:
        candidate = boards_dir / f"{board}{suffix}"
        if candidate.is_file():
            return candidate
    return boards_dir / f"{board}.json"


def load_manifest(boards_dir: Path, board: str) -> BoardManifest:
    """Load and parse the manifest for *board*.

    Raises:
        ValidationError: The file is missing, unparseable, or not a mapping.
    """
    path = get_manifest_path(boards_dir, board)
    if not path.is_file():
        raise ValidationError(f"Board manifest not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValidationError(f"Failed to parse manifest {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Failed to read manifest {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Invalid manifest (expected mapping): {path}")
    return BoardManifest(name=board, path=str(path), data=data)


def parse_suites_arg(suites_arg: Optional[str]) -> list[str]:
    if not suites_arg:
        return []
    return [s.strip() for s in suites_arg.split(",") if s.strip()]


def resolve_suites(manifest: BoardManifest, suites_arg: Optional[str] = None) -> SuiteSelection:
    """Work out which suites to run.

    An explicit comma-separated *suites_arg* is checked against
    ``suites.available``; otherwise ``suites.default`` is used, or every
    available suite when no default is declared.
    """
    suites = manifest.data.get("suites")
    suites = suites if isinstance(suites, dict) else {}
    available = list(suites.get("available") or [])
    defaults = list(suites.get("default") or []) or available
    requested = parse_suites_arg(suites_arg) if suites_arg else list(defaults)
    unknown = [s for s in requested if s not in available]
    return SuiteSelection(
        available=available, defaults=defaults,
        requested=requested, unknown=unknown,
    )


def _format_offset(value: Any) -> Optional[str]:
    # YAML reads unquoted 0x10000 as an int; keep offsets in hex text form.
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return hex(value)
    return str(value) or None


def resolve_firmware(
    manifest: BoardManifest,
    firmware_root: Path,
    version: Optional[str],
) -> FirmwareInfo:
    """Resolve artifact paths for *version* and check which exist.

    Filename substitutions: ``%pattern%`` becomes ``firmware.pattern`` (with
    ``%v`` already replaced), then ``%v`` becomes the version.
    """
    firmware = manifest.data.get("firmware")
    firmware = firmware if isinstance(firmware, dict) else {}
    pattern = str(firmware.get("pattern") or "")
    requires_version = "%v" in pattern
    version_provided = bool(version)
    firmware_dir = str(firmware_root / manifest.name / version) if version else None
    firmware_dir_exists = bool(firmware_dir) and os.path.isdir(firmware_dir)
    resolved_pattern = pattern.replace("%v", version) if version else pattern

    artifacts: list[FirmwareArtifact] = []
    for item in firmware.get("artifacts") or []:
        if not isinstance(item, dict):
            continue
        filename = str(item.get("filename") or "")
        if "%pattern%" in filename:
            filename = filename.replace("%pattern%", resolved_pattern, 1)
        if version:
            filename = filename.replace("%v", version)
        path = os.path.join(firmware_dir, filename) if firmware_dir else filename
        artifacts.append(FirmwareArtifact(
            name=str(item.get("name") or filename),
            filename=filename,
            offset=_format_offset(item.get("offset")),
            path=path,
            exists=firmware_dir_exists and os.path.isfile(path),
        ))

    return FirmwareInfo(
        requires_version=requires_version,
        version_provided=version_provided,
        firmware_dir=firmware_dir,
        firmware_dir_exists=firmware_dir_exists,
        artifacts=artifacts,
        resolved_pattern=resolved_pattern,
    )


def ensure_artifacts(info: FirmwareInfo) -> None:
    """Reject a firmware bundle that cannot be flashed.

    Raises:
        ValidationError: Version missing, bundle directory missing, artifact
            files missing, or artifacts without a flash offset.
    """
    if info.requires_version and not info.version_provided:
        raise ValidationError(
            "Firmware version is required (manifest pattern includes %v). Supply --version."
        )
    if info.version_provided and not info.firmware_dir_exists:
        raise ValidationError(f"Firmware directory not found: {info.firmware_dir}")
    missing = [a for a in info.artifacts if not a.exists]
    if missing:
        listing = ", ".join(f"{a.name} ({a.filename})" for a in missing)
        raise ValidationError(f"Missing firmware artifacts: {listing}")
    if not info.artifacts:
        raise ValidationError("Manifest declares no firmware artifacts")
    no_offset = [a for a in info.artifacts if not a.offset]
    if no_offset:
        listing = ", ".join(a.name for a in no_offset)
        raise ValidationError(f"Firmware artifacts missing flash offsets: {listing}")
