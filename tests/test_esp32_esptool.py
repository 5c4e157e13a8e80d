"""Tests for ebt/flashers/esp32_esptool.py — plan building and flashing."""

from __future__ import annotations

import os

import pytest

from ebt.errors import ToolExecutionFailed, ValidationError
from ebt.flashers import get_adapter, list_adapters
from ebt.flashers import esp32_esptool
from ebt.flashers.base import Artifact
from ebt.flashers.esp32_esptool import build_command_args, build_plan, flash
from ebt.manifest import load_manifest, resolve_firmware
from ebt.process_utils import ProcessOutcome, ProcessOutcomeKind

ARTIFACTS = (
    Artifact(name="bootloader", offset="0x0", absolute_path="/fw/bootloader.bin"),
    Artifact(name="app", offset="0x10000", absolute_path="/fw/app.bin"),
)


class RecordingRunner:
    def __init__(self, kind=ProcessOutcomeKind.OK):
        self.kind = kind
        self.calls: list[list[str]] = []

    def __call__(self, argv, *, capture=False):
        self.calls.append(list(argv))
        return ProcessOutcome(
            kind=self.kind,
            argv=tuple(argv),
            returncode=0 if self.kind is ProcessOutcomeKind.OK else 1,
            error=None if self.kind is ProcessOutcomeKind.OK else "esptool exited with code 1",
            stdout="Hash of data verified.",
        )


class TestBuildPlan:
    def test_defaults(self):
        plan = build_plan({}, ARTIFACTS, port="/dev/ttyUSB0")
        assert plan.baud_rate == 921600
        assert plan.flash_mode == "dio"
        assert plan.flash_frequency == "40m"
        assert plan.flash_size == "detect"
        assert plan.compress is False
        assert plan.extra_args == ()
        assert plan.chip is None

    def test_manifest_values(self):
        plan = build_plan(
            {"chip": "esp32c3", "baud": 460800, "mode": "qio", "freq": "80m",
             "flashSize": "4MB", "compress": True, "extraArgs": ["--before", "default_reset"]},
            ARTIFACTS,
            port="/dev/ttyACM0",
        )
        assert plan.chip == "esp32c3"
        assert plan.baud_rate == 460800
        assert plan.flash_size == "4MB"
        assert plan.compress is True
        assert plan.extra_args == ("--before", "default_reset")

    def test_compress_requires_literal_true(self):
        plan = build_plan({"compress": "yes"}, ARTIFACTS, port="p")
        assert plan.compress is False

    def test_overrides_win(self):
        plan = build_plan(
            {"baud": 460800, "compress": True, "extraArgs": ["--after", "hard_reset"]},
            ARTIFACTS,
            port="p",
            overrides={"baud": 115200, "compress": False, "extra_args": ["--no-stub"], "size": "2MB"},
        )
        assert plan.baud_rate == 115200
        assert plan.compress is False
        assert plan.extra_args == ("--no-stub",)
        assert plan.flash_size == "2MB"

    def test_numeric_string_baud(self):
        assert build_plan({"baud": "115200"}, ARTIFACTS, port="p").baud_rate == 115200

    @pytest.mark.parametrize("baud", ["fast", 0, -9600, True, [460800]])
    def test_invalid_baud_rejected(self, baud):
        with pytest.raises(ValidationError, match="Invalid flash baud rate"):
            build_plan({"baud": baud}, ARTIFACTS, port="p")

    def test_building_is_idempotent(self):
        config = {"chip": "esp32", "compress": True}
        first = build_command_args(build_plan(config, ARTIFACTS, port="p"))
        second = build_command_args(build_plan(config, ARTIFACTS, port="p"))
        assert first == second


class TestBuildCommandArgs:
    def test_full_order(self):
        plan = build_plan(
            {"chip": "esp32c3", "baud": 460800, "compress": True,
             "size": "4MB", "extraArgs": ["--before", "default_reset"]},
            ARTIFACTS,
            port="/dev/ttyACM0",
        )
        assert build_command_args(plan) == [
            "--chip", "esp32c3",
            "--port", "/dev/ttyACM0",
            "--baud", "460800",
            "--before", "default_reset",
            "write_flash",
            "--compress",
            "--flash_mode", "dio",
            "--flash_freq", "40m",
            "--flash_size", "4MB",
            "0x0", "/fw/bootloader.bin",
            "0x10000", "/fw/app.bin",
        ]

    def test_no_chip_no_compress(self):
        args = build_command_args(build_plan({}, ARTIFACTS[:1], port="p"))
        assert "--chip" not in args
        assert "--compress" not in args
        assert args[:4] == ["--port", "p", "--baud", "921600"]
        assert args[-2:] == ["0x0", "/fw/bootloader.bin"]


class TestFlash:
    @pytest.fixture
    def bundle(self, board_repo):
        config = board_repo(firmware_version="2v25", firmware_files=("bootloader.bin", "espruino_2v25_esp32c3.bin"))
        manifest = load_manifest(config.boards_dir, "ESP32C3")
        firmware = resolve_firmware(manifest, config.firmware_dir, "2v25")
        return manifest, firmware

    def test_two_artifacts_flashed_in_manifest_order(self, bundle):
        manifest, firmware = bundle
        runner = RecordingRunner()
        result = flash(manifest=manifest, firmware=firmware, port="/dev/ttyACM0", runner=runner)
        assert result["success"] is True
        assert result["dry_run"] is False
        argv = runner.calls[0]
        assert argv[0] == "esptool.py"
        boot = argv.index("0x0")
        app = argv.index("0x10000")
        assert boot < app
        assert argv[boot + 1].endswith(os.path.join("2v25", "bootloader.bin"))
        assert argv[app + 1].endswith("espruino_2v25_esp32c3.bin")
        assert os.path.isabs(argv[app + 1])

    def test_preferred_esptool(self, bundle):
        manifest, firmware = bundle
        runner = RecordingRunner()
        flash(manifest=manifest, firmware=firmware, port="p", esptool="/opt/esptool", runner=runner)
        assert runner.calls[0][0] == "/opt/esptool"

    def test_dry_run_does_not_spawn(self, bundle):
        manifest, firmware = bundle
        runner = RecordingRunner()
        result = flash(manifest=manifest, firmware=firmware, port="p", dry_run=True, runner=runner)
        assert runner.calls == []
        assert result["dry_run"] is True
        assert "write_flash" in result["command"]

    def test_tool_failure_propagates(self, bundle):
        manifest, firmware = bundle
        runner = RecordingRunner(kind=ProcessOutcomeKind.NONZERO_EXIT)
        with pytest.raises(ToolExecutionFailed) as exc_info:
            flash(manifest=manifest, firmware=firmware, port="p", runner=runner)
        assert exc_info.value.returncode == 1

    def test_missing_artifact_rejected_before_spawn(self, board_repo):
        config = board_repo(firmware_version="2v25", firmware_files=("bootloader.bin",))
        manifest = load_manifest(config.boards_dir, "ESP32C3")
        firmware = resolve_firmware(manifest, config.firmware_dir, "2v25")
        runner = RecordingRunner()
        with pytest.raises(ValidationError, match="Missing firmware artifacts"):
            flash(manifest=manifest, firmware=firmware, port="p", runner=runner)
        assert runner.calls == []


class TestAdapterRegistry:
    def test_get_known_adapter(self):
        assert get_adapter("esp32-esptool") is esp32_esptool

    def test_unknown_adapter(self):
        with pytest.raises(ValidationError, match="Supported: esp32-esptool"):
            get_adapter("nrf-jlink")

    def test_list(self):
        assert list_adapters() == ["esp32-esptool"]
