"""Tests for the finishing pass."""

from __future__ import annotations

import math

import pytest

from lathe_cam.operations.finishing import FinishingOperation, FinishingParameters
from lathe_cam.profile.extractor import Profile2D
from lathe_cam.toolpath.types import MovementType, Tool


class TestSpindleSpeed:
    def test_constant_surface_speed(self, turning_tool: Tool) -> None:
        op = FinishingOperation(tool=turning_tool)
        assert op.effective_spindle_speed() == pytest.approx(1000.0 * 150.0 / (math.pi * 20.0))

    def test_clamped_to_maximum(self, turning_tool: Tool) -> None:
        op = FinishingOperation(tool=turning_tool, params=FinishingParameters(target_diameter=5.0))
        assert op.effective_spindle_speed() == pytest.approx(3000.0)

    def test_explicit_speed_wins(self, turning_tool: Tool) -> None:
        op = FinishingOperation(tool=turning_tool, params=FinishingParameters(spindle_speed=900.0))
        assert op.effective_spindle_speed() == 900.0
        path = op.generate_from_profile(None)
        assert path.tool.cutting.spindle_speed == 900.0


class TestPoints:
    def test_plain_cylinder_without_profile(self, turning_tool: Tool) -> None:
        op = FinishingOperation(tool=turning_tool)
        assert op.finishing_points(None) == [(10.0, 0.0), (10.0, -50.0)]

    def test_follows_stepped_profile(self, turning_tool: Tool, shaft_profile: Profile2D) -> None:
        op = FinishingOperation(
            tool=turning_tool,
            params=FinishingParameters(target_diameter=30.0, start_z=50.0, end_z=0.0),
        )
        pts = [(round(r, 6), round(z, 6)) for r, z in op.finishing_points(shaft_profile)]
        assert pts == [(10.0, 50.0), (10.0, 20.0), (15.0, 20.0), (15.0, 0.0)]

    def test_window_outside_profile_falls_back(
        self, turning_tool: Tool, shaft_profile: Profile2D
    ) -> None:
        op = FinishingOperation(
            tool=turning_tool,
            params=FinishingParameters(target_diameter=30.0, start_z=-10.0, end_z=-20.0),
        )
        assert op.finishing_points(shaft_profile) == [(15.0, -10.0), (15.0, -20.0)]


class TestToolpath:
    def test_cuts_visit_every_point(self, turning_tool: Tool, shaft_profile: Profile2D) -> None:
        op = FinishingOperation(
            tool=turning_tool,
            params=FinishingParameters(target_diameter=30.0, start_z=50.0, end_z=0.0),
        )
        path = op.generate_from_profile(shaft_profile)
        cuts = [(mv.end.x, mv.end.z) for mv in path if mv.type is MovementType.LINEAR]
        assert cuts == pytest.approx([(10.0, 50.0), (10.0, 20.0), (15.0, 20.0), (15.0, 0.0)])
        assert all(mv.feed_rate == pytest.approx(0.05) for mv in path if mv.is_cutting)

    def test_ends_clear_of_part(self, turning_tool: Tool) -> None:
        path = FinishingOperation(tool=turning_tool).generate_from_profile(None)
        last = path.movements[-1]
        assert last.type is MovementType.RAPID
        assert last.end.x == pytest.approx(11.0)
        assert last.end.z == pytest.approx(5.0)


class TestValidation:
    def test_defaults_valid(self) -> None:
        assert FinishingOperation.validate_parameters(FinishingParameters()) == ""

    def test_high_feed(self) -> None:
        msg = FinishingOperation.validate_parameters(FinishingParameters(feed_rate=2.0))
        assert "Feed rate too high for finishing" in msg

    def test_excessive_surface_speed(self) -> None:
        msg = FinishingOperation.validate_parameters(FinishingParameters(surface_speed=800.0))
        assert "Surface speed seems excessive" in msg
