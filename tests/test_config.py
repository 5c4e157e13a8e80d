"""Tests for ebt/config.py — environment-driven configuration."""

from __future__ import annotations

from pathlib import Path

from ebt.config import DEFAULT_ESPRUINO_CLI, DEFAULT_NODE, HarnessConfig


def _clear(monkeypatch):
    for name in ("EBT_ROOT", "ESPTOOL", "ESPRUINO_CLI", "ESPRUINO_BOARD", "NODE", "EBT_RUN_DIR"):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path, monkeypatch):
    _clear(monkeypatch)
    monkeypatch.chdir(tmp_path)
    config = HarnessConfig.from_env()
    assert config.root == tmp_path.resolve()
    assert config.esptool is None
    assert config.espruino_cli == DEFAULT_ESPRUINO_CLI
    assert config.espruino_board is None
    assert config.node == DEFAULT_NODE
    assert config.run_dir == "/tmp"


def test_env_overrides(tmp_path, monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("EBT_ROOT", str(tmp_path))
    monkeypatch.setenv("ESPTOOL", "/opt/esptool")
    monkeypatch.setenv("ESPRUINO_CLI", "/opt/espruino")
    monkeypatch.setenv("ESPRUINO_BOARD", "ESP32C3")
    monkeypatch.setenv("NODE", "/opt/node")
    monkeypatch.setenv("EBT_RUN_DIR", str(tmp_path / "run"))
    config = HarnessConfig.from_env()
    assert config.root == tmp_path.resolve()
    assert config.esptool == "/opt/esptool"
    assert config.espruino_cli == "/opt/espruino"
    assert config.espruino_board == "ESP32C3"
    assert config.node == "/opt/node"
    assert config.run_dir == str(tmp_path / "run")


def test_explicit_root_beats_env(tmp_path, monkeypatch):
    monkeypatch.setenv("EBT_ROOT", "/somewhere/else")
    config = HarnessConfig.from_env(str(tmp_path))
    assert config.root == tmp_path.resolve()


def test_layout(tmp_path):
    config = HarnessConfig(root=Path(tmp_path))
    assert config.boards_dir == tmp_path / "boards"
    assert config.firmware_dir == tmp_path / "firmware"
    assert config.tests_dir == tmp_path / "tests"
    assert config.results_dir == tmp_path / "results"
