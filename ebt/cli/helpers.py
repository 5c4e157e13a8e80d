"""Shared utilities for ebtctl CLI commands."""

from __future__ import annotations

import json
import time
from typing import Any, Optional

from ebt.config import HarnessConfig
from ebt.errors import ValidationError
from ebt.manifest import BoardManifest, SuiteSelection, load_manifest, resolve_suites


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime())


def _print(obj: Any, *, json_mode: bool) -> None:
    if json_mode:
        print(json.dumps(obj, indent=2, sort_keys=True))
    else:
        if isinstance(obj, str):
            print(obj)
        else:
            print(json.dumps(obj, indent=2, sort_keys=True))


def _print_error(message: str, *, json_mode: bool, prefix: str = "Error") -> None:
    if json_mode:
        _print({"error": message}, json_mode=True)
    else:
        print(f"{prefix}: {message}")


def _load_board(config: HarnessConfig, board: str) -> BoardManifest:
    return load_manifest(config.boards_dir, board)


def _select_suites(manifest: BoardManifest, suites_arg: Optional[str]) -> SuiteSelection:
    """Resolve suites for *manifest*, rejecting names it does not declare.

    Raises:
        ValidationError: Unknown suites were requested.
    """
    selection = resolve_suites(manifest, suites_arg)
    if selection.unknown:
        available = ", ".join(selection.available) or "(none listed)"
        raise ValidationError(
            f"unknown suites requested: {', '.join(selection.unknown)}. "
            f"Available suites for {manifest.name}: {available}"
        )
    return selection
