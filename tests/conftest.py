"""Shared pytest fixtures for ebt tests."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import pytest
import yaml

from ebt.config import HarnessConfig


DEFAULT_MANIFEST: dict[str, Any] = {
    "board": "ESP32C3",
    "firmware": {
        "pattern": "espruino_%v_esp32c3",
        "artifacts": [
            {"name": "bootloader", "filename": "bootloader.bin", "offset": "0x0"},
            {"name": "app", "filename": "%pattern%.bin", "offset": "0x10000"},
        ],
    },
    "flash": {"type": "esp32-esptool", "chip": "esp32c3", "baud": 460800},
    "ports": {"serial": ["/dev/ttyACM0"]},
    "suites": {
        "available": ["javascript-core", "wifi-connectivity"],
        "default": ["javascript-core"],
    },
}

PASSING_TEST = "result = true;\n"
FAILING_TEST = "result = false;\nresultReason = 'math is broken';\n"


@pytest.fixture
def isolate_run_dir(tmp_path, monkeypatch):
    """Keep port locks out of the real /tmp."""
    run_dir = tmp_path / "run"
    monkeypatch.setenv("EBT_RUN_DIR", str(run_dir))
    return run_dir


@pytest.fixture
def board_repo(tmp_path, isolate_run_dir):
    """Factory for a harness repository laid out under ``tmp_path``.

    Returns a callable building ``boards/``, ``firmware/`` and ``tests/``
    and returning the matching :class:`HarnessConfig`.
    """
    root = tmp_path / "repo"

    def make(
        board: str = "ESP32C3",
        manifest: Optional[dict[str, Any]] = None,
        *,
        fmt: str = "json",
        firmware_version: Optional[str] = None,
        firmware_files: tuple[str, ...] = (),
        tests: Optional[dict[str, dict[str, str]]] = None,
    ) -> HarnessConfig:
        boards_dir = root / "boards"
        boards_dir.mkdir(parents=True, exist_ok=True)
        data = DEFAULT_MANIFEST if manifest is None else manifest
        path = boards_dir / f"{board}.{fmt}"
        if fmt == "json":
            path.write_text(json.dumps(data, indent=2))
        else:
            path.write_text(yaml.safe_dump(data))

        if firmware_version is not None:
            fw_dir = root / "firmware" / board / firmware_version
            fw_dir.mkdir(parents=True, exist_ok=True)
            for name in firmware_files:
                (fw_dir / name).write_bytes(b"\xe9\x00")

        for suite, files in (tests or {}).items():
            suite_dir = root / "tests" / suite
            suite_dir.mkdir(parents=True, exist_ok=True)
            for name, source in files.items():
                (suite_dir / name).write_text(source)

        return HarnessConfig(root=root, run_dir=str(isolate_run_dir))

    return make


def write_file(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


FAKE_ESPRUINO = '''\
import json, re, sys
code = sys.argv[sys.argv.index("-e") + 1]
if "__TEST_TIMEOUT_SEC" not in code:
    print(">" + code)
    print("__RUNNER_READY__")
    sys.exit(0)
print("Espruino fake REPL")
m = re.search(r'file: ("(?:[^"\\\\]|\\\\.)*")', code)
passed = "result = true" in code
print(json.dumps({"__espruino_test__": True, "file": json.loads(m.group(1)), "pass": passed,
                  "duration_ms": 3, "reason": None if passed else "assert failed"}))
'''

FAKE_ESPTOOL = '''\
import json, os, sys
with open(os.environ["FAKE_ESPTOOL_LOG"], "a") as f:
    f.write(json.dumps(sys.argv[1:]) + "\\n")
sys.exit(int(os.environ.get("FAKE_ESPTOOL_EXIT", "0")))
'''


def _make_tool(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(0o755)
    return path


@pytest.fixture
def fake_espruino(tmp_path, monkeypatch):
    """An ``espruino`` stand-in: answers the warmup probe and reports
    ``pass`` for payloads whose source sets ``result = true``."""
    tool = _make_tool(tmp_path / "bin" / "espruino", FAKE_ESPRUINO)
    monkeypatch.setenv("ESPRUINO_CLI", str(tool))
    monkeypatch.setenv("NODE", str(tool))
    return tool


@pytest.fixture
def fake_esptool(tmp_path, monkeypatch):
    """An ``esptool`` stand-in that logs its argv; returns the log path."""
    log = tmp_path / "esptool.log"
    tool = _make_tool(tmp_path / "bin" / "esptool.py", FAKE_ESPTOOL)
    monkeypatch.setenv("FAKE_ESPTOOL_LOG", str(log))
    monkeypatch.setenv("ESPTOOL", str(tool))
    return log
