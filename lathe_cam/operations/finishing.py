"""Finishing: one profile-following pass at the final boundary.

The pass visits every ordered profile point between ``start_z`` and
``end_z`` (points on the axis are left to facing and parting).  Without a
profile it cuts a plain cylinder at ``target_diameter``.  When no spindle
speed is given the RPM is derived from ``surface_speed`` at the target
diameter and clamped to ``max_spindle_speed``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from lathe_cam.operations.base import AXIS_TOLERANCE, Operation, point
from lathe_cam.profile.extractor import Profile2D
from lathe_cam.toolpath.types import OperationType, Tool, ToolType, Toolpath

logger = logging.getLogger(__name__)

_Z_EPS = 1e-6


@dataclass(frozen=True)
class FinishingParameters:
    """Finishing pass data (mm, m/min, mm/rev, RPM)."""

    target_diameter: float = 20.0
    start_z: float = 0.0
    end_z: float = -50.0
    surface_speed: float = 150.0
    feed_rate: float = 0.05
    spindle_speed: float | None = None
    max_spindle_speed: float = 3000.0
    safety_height: float = 5.0
    clearance: float = 1.0
    profile_tolerance: float = 0.01


class FinishingOperation(Operation[FinishingParameters]):
    operation_type = OperationType.FINISHING
    compatible_tools = (ToolType.TURNING,)

    def __init__(
        self,
        name: str = "Finishing",
        tool: Tool | None = None,
        params: FinishingParameters | None = None,
    ) -> None:
        super().__init__(name, tool, params)

    @classmethod
    def default_parameters(cls) -> FinishingParameters:
        return FinishingParameters()

    @staticmethod
    def validate_parameters(params: FinishingParameters) -> str:
        errors: list[str] = []
        if params.target_diameter <= 0.0:
            errors.append("Target diameter must be positive")
        if params.start_z <= params.end_z:
            errors.append("Start Z must be greater than end Z")
        if params.surface_speed <= 0.0:
            errors.append("Surface speed must be positive")
        elif params.surface_speed > 500.0:
            errors.append("Surface speed seems excessive (>500 m/min)")
        if params.feed_rate <= 0.0:
            errors.append("Feed rate must be positive")
        elif params.feed_rate > 1.0:
            errors.append("Feed rate too high for finishing (>1 mm/rev)")
        if params.spindle_speed is not None and params.spindle_speed <= 0.0:
            errors.append("Spindle speed must be positive")
        return "; ".join(errors)

    def effective_spindle_speed(self) -> float:
        """Explicit RPM, or the constant-surface-speed RPM at the target diameter."""
        p = self.params
        if p.spindle_speed is not None:
            return p.spindle_speed
        rpm = 1000.0 * p.surface_speed / (math.pi * p.target_diameter)
        return min(rpm, p.max_spindle_speed)

    def finishing_points(self, profile: Profile2D | None) -> list[tuple[float, float]]:
        """Ordered (radius, z) points of the pass, from ``start_z`` toward ``end_z``."""
        p = self.params
        if profile is None or profile.is_empty():
            r = p.target_diameter / 2.0
            return [(r, p.start_z), (r, p.end_z)]
        pts = [
            (q.x, q.z)
            for q in reversed(profile.to_point_array(p.profile_tolerance))
            if p.end_z - _Z_EPS <= q.z <= p.start_z + _Z_EPS and q.x > AXIS_TOLERANCE
        ]
        if len(pts) < 2:
            r = p.target_diameter / 2.0
            return [(r, p.start_z), (r, p.end_z)]
        return pts

    def _build(self, profile: Profile2D | None) -> Toolpath:
        p = self.params
        path = self._new_toolpath(p.feed_rate, self.effective_spindle_speed())
        pts = self.finishing_points(profile)
        outer = max(r for r, _ in pts) + p.clearance
        safe_z = p.start_z + p.safety_height

        first_r, first_z = pts[0]
        path.add_rapid(point(outer, safe_z), "Finishing start")
        path.add_rapid(point(first_r + p.clearance, first_z + p.clearance))
        path.add_linear(point(first_r, first_z), p.feed_rate)
        for r, z in pts[1:]:
            path.add_linear(point(r, z), p.feed_rate)

        last_z = pts[-1][1]
        path.add_rapid(point(outer, last_z))
        path.add_rapid(point(outer, safe_z), "Finishing end")
        return path
