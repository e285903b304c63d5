"""Tests for the grooving operation."""

from __future__ import annotations

import math

import pytest

from lathe_cam.errors import OperationError
from lathe_cam.operations.grooving import GroovingOperation, GroovingParameters
from lathe_cam.toolpath.types import MovementType, Tool


class TestPlungePositions:
    def test_groove_matching_insert_is_one_plunge(self, grooving_tool: Tool) -> None:
        op = GroovingOperation(tool=grooving_tool, params=GroovingParameters(groove_width=2.0))
        assert op.plunge_positions() == [-25.0]

    def test_slightly_wider_groove(self, grooving_tool: Tool) -> None:
        op = GroovingOperation(tool=grooving_tool)
        assert op.plunge_positions() == pytest.approx([-25.0, -26.0])

    def test_wide_groove_steps(self, grooving_tool: Tool) -> None:
        op = GroovingOperation(tool=grooving_tool, params=GroovingParameters(groove_width=10.0))
        positions = op.plunge_positions()
        assert len(positions) == 6
        assert positions[0] == pytest.approx(-25.0)
        assert positions[-1] == pytest.approx(-33.0)
        steps = [a - b for a, b in zip(positions, positions[1:])]
        assert max(steps) <= 2.0 * 0.8 + 1e-9


class TestToolpath:
    def test_reaches_floor_only_in_finish(self, grooving_tool: Tool) -> None:
        path = GroovingOperation(tool=grooving_tool).generate_from_profile(None)
        cuts = [mv for mv in path if mv.is_cutting]
        assert min(mv.end.x for mv in cuts) == pytest.approx(8.0)
        plunges = [mv for mv in cuts if mv.feed_rate == pytest.approx(0.05)]
        assert min(mv.end.x for mv in plunges) == pytest.approx(8.1)

    def test_dwell_at_every_plunge(self, grooving_tool: Tool) -> None:
        path = GroovingOperation(tool=grooving_tool).generate_from_profile(None)
        assert path.count(MovementType.DWELL) == 2

    def test_pecking(self, grooving_tool: Tool) -> None:
        params = GroovingParameters(groove_width=2.0, peck_depth=0.5)
        path = GroovingOperation(tool=grooving_tool, params=params).generate_from_profile(None)
        pecks = [mv for mv in path if mv.comment == "Peck"]
        # 10 -> 9.5 -> 9.0 -> 8.5 -> 8.1, retract after all but the last
        assert len(pecks) == 3

    def test_without_finishing_pass(self, grooving_tool: Tool) -> None:
        params = GroovingParameters(finishing_pass=False)
        path = GroovingOperation(tool=grooving_tool, params=params).generate_from_profile(None)
        assert min(mv.end.x for mv in path if mv.is_cutting) == pytest.approx(8.0)
        assert all(mv.comment != "Groove finish" for mv in path)

    def test_material_removed(self, grooving_tool: Tool) -> None:
        op = GroovingOperation(tool=grooving_tool)
        assert op.estimate_material_removed(None) == pytest.approx(math.pi * (100.0 - 64.0) * 3.0)


class TestValidation:
    def test_insert_wider_than_groove(self, grooving_tool: Tool) -> None:
        op = GroovingOperation(tool=grooving_tool, params=GroovingParameters(groove_width=1.5))
        assert "exceeds groove width" in op.validation_error()
        with pytest.raises(OperationError):
            op.generate_from_profile(None)

    def test_depth_beyond_radius(self) -> None:
        msg = GroovingOperation.validate_parameters(GroovingParameters(groove_depth=12.0))
        assert "Groove depth must be less than the groove radius" in msg

    def test_parting_blade_accepted(self, parting_tool: Tool) -> None:
        assert GroovingOperation(tool=parting_tool).validate()
