"""Tests for threading: designations, depth progression and pass planning."""

from __future__ import annotations

from dataclasses import replace

import pytest

from lathe_cam.errors import ParameterError
from lathe_cam.operations.threading import (
    ThreadForm,
    ThreadingOperation,
    ThreadingParameters,
    calculate_depth_progression,
    coarse_pitch,
    parse_thread_designation,
)
from lathe_cam.toolpath.types import MovementType, Tool


# ---------------------------------------------------------------------------
# Designations
# ---------------------------------------------------------------------------


class TestDesignation:
    def test_metric_fine(self) -> None:
        spec = parse_thread_designation("M20x1.5")
        assert (spec.major_diameter, spec.pitch, spec.form) == (20.0, 1.5, ThreadForm.METRIC)

    def test_metric_with_spaces(self) -> None:
        assert parse_thread_designation("M20 x 1.5").pitch == 1.5

    def test_metric_coarse_default(self) -> None:
        assert parse_thread_designation("M12").pitch == pytest.approx(1.75)
        assert parse_thread_designation("M20").pitch == pytest.approx(2.5)

    def test_unified_coarse(self) -> None:
        spec = parse_thread_designation("1/4-20 UNC")
        assert spec.major_diameter == pytest.approx(6.35)
        assert spec.pitch == pytest.approx(1.27)
        assert spec.form is ThreadForm.UNC

    def test_unified_fine(self) -> None:
        assert parse_thread_designation("3/8-24 UNF").form is ThreadForm.UNF

    def test_unparseable(self) -> None:
        with pytest.raises(ParameterError):
            parse_thread_designation("quarter inch")

    def test_coarse_pitch_between_sizes(self) -> None:
        assert coarse_pitch(11.0) == pytest.approx(1.5)

    def test_depth_from_form(self) -> None:
        params = ThreadingOperation.calculate_thread_parameters("M10")
        assert params.thread_depth == pytest.approx(0.613 * 1.5)


# ---------------------------------------------------------------------------
# Depth progression
# ---------------------------------------------------------------------------


class TestDepthProgression:
    def test_constant(self) -> None:
        params = ThreadingParameters(thread_depth=1.0, number_of_passes=4, constant_depth_passes=True)
        assert calculate_depth_progression(params) == pytest.approx([0.25, 0.5, 0.75, 1.0])

    def test_degressive(self) -> None:
        depths = calculate_depth_progression(ThreadingParameters())
        assert len(depths) == 6
        assert depths[0] == pytest.approx(0.92 * 0.2)
        assert depths[-1] == pytest.approx(0.92)
        increments = [b - a for a, b in zip(depths, depths[1:])]
        assert all(i > 0.0 for i in increments)
        # each pass removes less than the one before, apart from the closing pass
        assert all(a > b for a, b in zip(increments[:-2], increments[1:-1]))

    def test_single_pass(self) -> None:
        params = ThreadingParameters(number_of_passes=1)
        assert calculate_depth_progression(params) == pytest.approx([0.92])


# ---------------------------------------------------------------------------
# Toolpaths
# ---------------------------------------------------------------------------


class TestGeneration:
    def test_result_geometry(self, threading_tool: Tool) -> None:
        result = ThreadingOperation(tool=threading_tool).generate_toolpaths()
        assert result.success
        assert result.total_passes == 7
        assert result.pass_depths[-1] == pytest.approx(0.92)
        assert result.pass_depths[-2] == pytest.approx(0.92)
        assert result.minor_diameter == pytest.approx(18.16)
        assert result.pitch_diameter == pytest.approx(19.08)
        assert result.thread_angle == 60.0
        assert result.estimated_time > 0.0

    def test_passes_feed_one_pitch(self, threading_tool: Tool) -> None:
        path = ThreadingOperation(tool=threading_tool).generate_from_profile(None)
        cuts = [mv for mv in path if mv.type is MovementType.LINEAR]
        assert all(mv.feed_rate == pytest.approx(1.5) for mv in cuts)
        assert min(mv.end.x for mv in cuts) == pytest.approx(10.0 - 0.92)

    def test_pass_runs_past_thread_end(self, threading_tool: Tool) -> None:
        path = ThreadingOperation(tool=threading_tool).generate_from_profile(None)
        axial = [
            mv for mv in path
            if mv.type is MovementType.LINEAR and mv.start.x == mv.end.x
        ]
        assert axial
        assert all(mv.end.z == pytest.approx(-30.0 + 1.5) for mv in axial)
        assert all(mv.start.z >= 3.0 for mv in axial)

    def test_designation_overrides_geometry(self, threading_tool: Tool) -> None:
        params = replace(ThreadingParameters(), thread_designation="M24")
        result = ThreadingOperation(tool=threading_tool, params=params).generate_toolpaths()
        assert result.used_parameters.major_diameter == 24.0
        assert result.used_parameters.pitch == 3.0

    def test_bad_designation_reported(self, threading_tool: Tool) -> None:
        params = replace(ThreadingParameters(), thread_designation="bogus")
        result = ThreadingOperation(tool=threading_tool, params=params).generate_toolpaths()
        assert not result.success
        assert "Unrecognised thread designation" in result.error_message

    def test_no_tool_reported(self) -> None:
        result = ThreadingOperation().generate_toolpaths()
        assert not result.success
        assert "requires a tool" in result.error_message

    def test_chamfers(self, threading_tool: Tool) -> None:
        params = replace(
            ThreadingParameters(), chamfer_thread_start=True, chamfer_thread_end=True
        )
        op = ThreadingOperation(tool=threading_tool, params=params)
        result = op.generate_toolpaths()
        assert [tp.name for tp in result.chamfer_toolpaths] == [
            "Threading Chamfer Start",
            "Threading Chamfer End",
        ]
        combined = op.generate_from_profile(None)
        assert len(combined) == len(result.threading_toolpath) + sum(
            len(tp) for tp in result.chamfer_toolpaths
        )


class TestValidationAndDefaults:
    def test_defaults_valid(self) -> None:
        assert ThreadingOperation.validate_parameters(ThreadingParameters()) == ""

    def test_depth_too_large_for_diameter(self) -> None:
        msg = ThreadingOperation.validate_parameters(
            ThreadingParameters(major_diameter=4.0, pitch=1.0, thread_depth=1.5)
        )
        assert "Thread depth is too large for diameter" in msg

    def test_material_tuned_defaults(self) -> None:
        params = ThreadingOperation.get_default_parameters(ThreadForm.METRIC, 20.0, "aluminum")
        assert params.pitch == pytest.approx(2.5)
        assert params.spindle_speed == 500.0
        assert params.thread_depth == pytest.approx(0.613 * 2.5)

    def test_bsw_depth(self) -> None:
        params = ThreadingOperation.get_default_parameters(ThreadForm.BSW, 20.0)
        assert params.thread_depth == pytest.approx(0.640 * 1.5)
