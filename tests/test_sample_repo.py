"""The sample harness under examples/esp32c3 must stay loadable."""

from __future__ import annotations

from pathlib import Path

from ebt.config import HarnessConfig
from ebt.manifest import list_boards, load_manifest, resolve_firmware, resolve_suites
from ebt.suites import resolve_suite_tests

SAMPLE_ROOT = Path(__file__).resolve().parent.parent / "examples" / "esp32c3"


def test_boards_listed():
    config = HarnessConfig(root=SAMPLE_ROOT)
    assert list_boards(config.boards_dir) == ["ESP32", "ESP32C3"]


def test_yaml_manifest_offsets():
    config = HarnessConfig(root=SAMPLE_ROOT)
    manifest = load_manifest(config.boards_dir, "ESP32")
    info = resolve_firmware(manifest, config.firmware_dir, "2v25")
    assert [a.offset for a in info.artifacts] == ["0x1000", "0x8000", "0x10000"]
    assert info.artifacts[-1].filename == "espruino_2v25_esp32.bin"


def test_every_available_suite_has_tests():
    config = HarnessConfig(root=SAMPLE_ROOT)
    manifest = load_manifest(config.boards_dir, "ESP32C3")
    selection = resolve_suites(manifest, ",".join(resolve_suites(manifest).available))
    for suite in selection.requested:
        assert resolve_suite_tests(config.tests_dir, [suite]), suite
