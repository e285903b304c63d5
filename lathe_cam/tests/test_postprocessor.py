"""Tests for the post-processor and machine profiles."""

from __future__ import annotations

from pathlib import Path

import pytest

from lathe_cam.configs.loader import LatheConfig
from lathe_cam.gcode.postprocessor import MachineType, PostProcessor
from lathe_cam.operations.base import point
from lathe_cam.toolpath.types import OperationType, Tool, Toolpath


@pytest.fixture()
def facing_path(turning_tool: Tool) -> Toolpath:
    tp = Toolpath("face", turning_tool, OperationType.FACING)
    tp.add_rapid(point(12.0, 0.5))
    tp.add_linear(point(0.0, 0.5))
    tp.add_rapid(point(12.0, 5.0))
    return tp


class TestProcess:
    def test_success(self, facing_path: Toolpath) -> None:
        result = PostProcessor().process([facing_path])
        assert result.success
        assert not result.errors
        assert result.toolpath_count == 1
        assert result.line_count == result.gcode.count("\n")
        assert result.estimated_time > 0.0
        assert "G1 X0.000 Z0.500 F12.0" in result.gcode

    def test_empty_toolpath_skipped(self, facing_path: Toolpath, turning_tool: Tool) -> None:
        result = PostProcessor().process([Toolpath("nothing", turning_tool), facing_path])
        assert result.success
        assert result.toolpath_count == 1
        assert "Skipping empty toolpath 'nothing'" in result.warnings

    def test_nothing_to_process(self, turning_tool: Tool) -> None:
        result = PostProcessor().process([Toolpath("nothing", turning_tool)])
        assert not result.success
        assert result.errors == ["No toolpaths to process"]

    def test_generation_error_reported(self, turning_tool: Tool) -> None:
        tp = Toolpath("nan", turning_tool)
        tp.add_rapid(point(10.0, 1.0))
        tp.add_linear(point(10.0, float("inf")))
        result = PostProcessor().process_toolpath(tp)
        assert not result.success
        assert "non-finite" in result.errors[0]
        assert result.gcode == ""

    def test_limit_warnings_prefixed(self, turning_tool: Tool) -> None:
        tp = Toolpath("long", turning_tool)
        tp.add_rapid(point(10.0, 1.0))
        tp.add_linear(point(10.0, -400.0))
        result = PostProcessor().process([tp])
        assert result.success
        assert "long: Z minimum -400.000 below limit -300.000" in result.warnings


class TestMachineType:
    def test_from_config(self, lathe_config: LatheConfig) -> None:
        assert PostProcessor(lathe_config).machine_type is MachineType.GENERIC

    def test_override(self, lathe_config: LatheConfig, facing_path: Toolpath) -> None:
        post = PostProcessor(lathe_config, "FANUC")
        assert post.machine_type is MachineType.FANUC
        assert post.process([facing_path]).gcode.startswith("%\n")
        # the original config is untouched
        assert lathe_config.machine.machine_type == "generic"

    def test_enum_override(self) -> None:
        assert PostProcessor(machine_type=MachineType.HAAS).machine_type is MachineType.HAAS

    def test_unknown_override(self) -> None:
        with pytest.raises(ValueError):
            PostProcessor(machine_type="heidenhain")


class TestProfiles:
    def test_save_and_load(self, tmp_path: Path) -> None:
        post = PostProcessor(machine_type="haas")
        path = tmp_path / "haas.yaml"
        post.save_machine_profile(path)
        loaded = PostProcessor.load_machine_profile(path)
        assert loaded.machine_type is MachineType.HAAS
        assert loaded.config.machine == post.config.machine
        assert loaded.config.gcode.program_number == "1001"
        assert loaded.config.pipeline.time_overhead_factor == pytest.approx(1.1)

    def test_missing_profile(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            PostProcessor.load_machine_profile(tmp_path / "absent.yaml")
