"""Harness configuration resolved from environment variables.

Priority for every setting: explicit CLI flag > environment > default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_ESPTOOL = "esptool.py"
DEFAULT_ESPRUINO_CLI = "espruino"
DEFAULT_NODE = "node"

# Per-test host budget; the device deadline is derived from it.
DEFAULT_TEST_TIMEOUT_MS = 15000
DEFAULT_WATCHDOG_MARGIN_MS = 1000


def _get_run_dir() -> str:
    # Read lazily so tests can monkeypatch EBT_RUN_DIR after import.
    return os.environ.get("EBT_RUN_DIR", "/tmp")


@dataclass(frozen=True)
class HarnessConfig:
    """Locations and external tools used by the orchestrating commands."""

    root: Path
    esptool: Optional[str] = None
    espruino_cli: str = DEFAULT_ESPRUINO_CLI
    espruino_board: Optional[str] = None
    node: str = DEFAULT_NODE
    run_dir: str = "/tmp"

    @property
    def boards_dir(self) -> Path:
        return self.root / "boards"

    @property
    def firmware_dir(self) -> Path:
        return self.root / "firmware"

    @property
    def tests_dir(self) -> Path:
        return self.root / "tests"

    @property
    def results_dir(self) -> Path:
        return self.root / "results"

    @classmethod
    def from_env(cls, root: Optional[str] = None) -> "HarnessConfig":
        """Build a config from ``EBT_*``/tool environment variables.

        Args:
            root: Repository root override (``--root``). Falls back to
                ``EBT_ROOT``, then the current working directory.
        """
        root_dir = root or os.environ.get("EBT_ROOT") or os.getcwd()
        return cls(
            root=Path(root_dir).resolve(),
            esptool=os.environ.get("ESPTOOL") or None,
            espruino_cli=os.environ.get("ESPRUINO_CLI") or DEFAULT_ESPRUINO_CLI,
            espruino_board=os.environ.get("ESPRUINO_BOARD") or None,
            node=os.environ.get("NODE") or DEFAULT_NODE,
            run_dir=_get_run_dir(),
        )
