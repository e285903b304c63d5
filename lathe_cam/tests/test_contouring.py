"""Tests for the contouring coordinator."""

from __future__ import annotations

import math
from dataclasses import replace

import pytest

from lathe_cam.errors import OperationError
from lathe_cam.geometry.solids import RevolvedSolid
from lathe_cam.operations.contouring import ContouringOperation, ContouringParameters
from lathe_cam.operations.facing import FacingParameters
from lathe_cam.operations.roughing import RoughingParameters
from lathe_cam.profile.extractor import Profile2D
from lathe_cam.toolpath.types import OperationType, Tool


class TestSubParameters:
    def test_fitted_to_envelope(self, turning_tool: Tool, shaft_profile: Profile2D) -> None:
        op = ContouringOperation(tool=turning_tool)
        facing, roughing, finishing = op.sub_parameters(shaft_profile)
        assert facing.start_diameter == pytest.approx(34.0)
        assert (facing.start_z, facing.end_z) == pytest.approx((52.0, 50.0))
        assert roughing.start_diameter == pytest.approx(34.0)
        assert roughing.end_diameter == pytest.approx(20.0)
        assert (roughing.start_z, roughing.end_z) == pytest.approx((50.0, 0.0))
        assert roughing.use_profile_following
        assert finishing.target_diameter == pytest.approx(30.0)

    def test_explicit_stock_diameter(self, turning_tool: Tool, shaft_profile: Profile2D) -> None:
        op = ContouringOperation(tool=turning_tool, params=ContouringParameters(stock_diameter=40.0))
        facing, roughing, _ = op.sub_parameters(shaft_profile)
        assert facing.start_diameter == 40.0
        assert roughing.start_diameter == 40.0

    def test_sequence(self, turning_tool: Tool) -> None:
        op = ContouringOperation(
            tool=turning_tool, params=ContouringParameters(enable_roughing=False)
        )
        assert op.plan_operation_sequence() == ["Facing", "Finishing"]


class TestGeneration:
    def test_full_sequence_on_shaft(self, turning_tool: Tool, shaft: RevolvedSolid) -> None:
        result = ContouringOperation(tool=turning_tool).generate_contouring(part=shaft)
        assert result.success, result.errors
        assert result.operation_sequence == ["Facing", "Roughing", "Finishing"]
        types = [tp.operation_type for tp in result.toolpaths()]
        assert types == [OperationType.FACING, OperationType.ROUGHING, OperationType.FINISHING]
        assert result.total_moves == sum(len(tp) for tp in result.toolpaths())
        assert result.estimated_time > 0.0
        assert result.material_removed == pytest.approx(math.pi * (15.0**2 * 20.0 + 10.0**2 * 30.0))

    def test_shared_profile(self, turning_tool: Tool, cylinder_profile: Profile2D) -> None:
        result = ContouringOperation(tool=turning_tool).generate_contouring(profile=cylinder_profile)
        assert result.success
        assert result.extracted_profile is cylinder_profile

    def test_failed_sub_operation_does_not_stop_others(
        self, turning_tool: Tool, shaft_profile: Profile2D
    ) -> None:
        params = ContouringParameters(facing_params=FacingParameters(stepover=50.0))
        result = ContouringOperation(tool=turning_tool, params=params).generate_contouring(
            profile=shaft_profile
        )
        assert not result.success
        assert len(result.errors) == 1
        assert result.facing_toolpath is None
        assert result.roughing_toolpath is not None
        assert result.finishing_toolpath is not None

    def test_empty_profile(self, turning_tool: Tool) -> None:
        result = ContouringOperation(tool=turning_tool).generate_contouring(profile=Profile2D())
        assert not result.success
        assert result.errors == ["Profile extraction produced no segments"]

    def test_all_disabled(self, turning_tool: Tool, shaft_profile: Profile2D) -> None:
        params = ContouringParameters(
            enable_facing=False, enable_roughing=False, enable_finishing=False
        )
        result = ContouringOperation(tool=turning_tool, params=params).generate_contouring(
            profile=shaft_profile
        )
        assert not result.success
        assert "At least one operation must be enabled" in result.errors[0]

    def test_combined_toolpath(self, turning_tool: Tool, shaft_profile: Profile2D) -> None:
        op = ContouringOperation(tool=turning_tool)
        path = op.generate_from_profile(shaft_profile)
        result = op.generate_contouring(profile=shaft_profile)
        assert len(path) == result.total_moves
        assert path.operation_type is OperationType.CONTOURING

    def test_combined_toolpath_keeps_successful_parts(
        self, turning_tool: Tool, shaft_profile: Profile2D
    ) -> None:
        params = ContouringParameters(facing_params=FacingParameters(stepover=50.0))
        op = ContouringOperation(tool=turning_tool, params=params)
        path = op.generate_from_profile(shaft_profile)
        result = op.generate_contouring(profile=shaft_profile)
        assert len(path) == len(result.roughing_toolpath) + len(result.finishing_toolpath)
        assert len(op.warnings) == 1
        assert op.warnings[0].startswith("Contouring Facing:")

    def test_combined_toolpath_keeps_sub_operation_speeds(
        self, turning_tool: Tool, shaft_profile: Profile2D
    ) -> None:
        params = ContouringParameters(
            facing_params=FacingParameters(spindle_speed=600.0),
            roughing_params=RoughingParameters(spindle_speed=900.0, use_profile_following=True),
        )
        path = ContouringOperation(tool=turning_tool, params=params).generate_from_profile(
            shaft_profile
        )
        cuts = [mv for mv in path if mv.is_cutting]
        assert all(mv.spindle_speed is not None for mv in cuts)
        assert {600.0, 900.0} <= {mv.spindle_speed for mv in cuts}
        assert path.tool.cutting.spindle_speed == pytest.approx(600.0)

    def test_combined_toolpath_needs_profile(self, turning_tool: Tool) -> None:
        with pytest.raises(OperationError):
            ContouringOperation(tool=turning_tool).generate_from_profile(None)


class TestDefaults:
    def test_complex_steel(self) -> None:
        params = ContouringOperation.get_default_parameters("steel", "complex")
        assert params.profile_tolerance == pytest.approx(0.005)
        assert params.profile_sections == 200
        assert params.enable_facing
        assert params.roughing_params.depth_of_cut == pytest.approx(0.5)
        assert params.finishing_params.feed_rate == pytest.approx(0.025)
        assert ContouringOperation.validate_parameters(params) == ""

    def test_simple_aluminum(self) -> None:
        params = ContouringOperation.get_default_parameters("aluminum", "simple")
        assert params.profile_sections == 50
        assert params.roughing_params.depth_of_cut == pytest.approx(2.0)
        assert params.finishing_params.feed_rate == pytest.approx(0.1)

    def test_invalid_sections(self) -> None:
        params = replace(ContouringParameters(), profile_sections=5)
        assert "Profile sections" in ContouringOperation.validate_parameters(params)
