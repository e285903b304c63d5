"""Grooving: external grooves, including grooves wider than the insert.

The groove runs from ``groove_z`` toward the chuck (-Z) over
``groove_width``.  The insert's +Z edge is the tool reference, so plunge
positions go from ``groove_z`` to ``groove_z - (groove_width - insert
width)`` in steps of ``step_factor`` times the insert width.  Each plunge
may peck, dwells at the bottom, and leaves ``finish_allowance`` for a
final pass down the front wall, along the floor and up the back wall.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from lathe_cam.operations.base import Operation, point
from lathe_cam.profile.extractor import Profile2D
from lathe_cam.toolpath.types import OperationType, Tool, ToolType, Toolpath

logger = logging.getLogger(__name__)

_EPS = 1e-9


@dataclass(frozen=True)
class GroovingParameters:
    groove_diameter: float = 20.0
    groove_width: float = 3.0
    groove_depth: float = 2.0
    groove_z: float = -25.0
    feed_rate: float = 0.05
    spindle_speed: float = 600.0
    peck_depth: float = 0.0  # 0 disables pecking
    peck_retract: float = 0.5
    dwell_time: float = 0.5  # s at the groove floor
    finishing_pass: bool = True
    finishing_feed_rate: float = 0.03
    finish_allowance: float = 0.1
    step_factor: float = 0.8
    safety_height: float = 5.0
    clearance: float = 1.0


class GroovingOperation(Operation[GroovingParameters]):
    operation_type = OperationType.GROOVING
    compatible_tools = (ToolType.GROOVING, ToolType.PARTING)

    def __init__(
        self,
        name: str = "Grooving",
        tool: Tool | None = None,
        params: GroovingParameters | None = None,
    ) -> None:
        super().__init__(name, tool, params)

    @classmethod
    def default_parameters(cls) -> GroovingParameters:
        return GroovingParameters()

    @staticmethod
    def validate_parameters(params: GroovingParameters) -> str:
        errors: list[str] = []
        if params.groove_diameter <= 0.0:
            errors.append("Groove diameter must be positive")
        if params.groove_width <= 0.0:
            errors.append("Groove width must be positive")
        if params.groove_depth <= 0.0:
            errors.append("Groove depth must be positive")
        elif params.groove_depth >= params.groove_diameter / 2.0:
            errors.append("Groove depth must be less than the groove radius")
        if params.feed_rate <= 0.0 or params.finishing_feed_rate <= 0.0:
            errors.append("Feed rates must be positive")
        if params.spindle_speed <= 0.0:
            errors.append("Spindle speed must be positive")
        if params.peck_depth < 0.0 or params.peck_retract < 0.0:
            errors.append("Peck depth and retract cannot be negative")
        if params.dwell_time < 0.0:
            errors.append("Dwell time cannot be negative")
        if not 0.0 < params.step_factor <= 1.0:
            errors.append("Step factor must be in (0, 1]")
        if params.finish_allowance < 0.0 or params.finish_allowance >= params.groove_depth:
            errors.append("Finish allowance must be in [0, groove depth)")
        return "; ".join(errors)

    def validation_error(self) -> str:
        reason = super().validation_error()
        if reason or self.tool is None:
            return reason
        if self.tool.geometry.insert_width > self.params.groove_width + _EPS:
            return (
                f"Insert width {self.tool.geometry.insert_width:g} mm exceeds "
                f"groove width {self.params.groove_width:g} mm"
            )
        return ""

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plunge_positions(self) -> list[float]:
        """Z of every plunge, front wall first."""
        p = self.params
        width = self.tool.geometry.insert_width if self.tool is not None else p.groove_width
        span = max(0.0, p.groove_width - width)
        if span <= _EPS:
            return [p.groove_z]
        step = width * p.step_factor
        n = max(1, math.ceil(span / step - _EPS))
        return [p.groove_z - span * k / n for k in range(n + 1)]

    def _plunge(self, path: Toolpath, z: float, top: float, bottom: float) -> None:
        p = self.params
        outside = top + p.clearance
        path.add_rapid(point(outside, z))
        if p.peck_depth > 0.0:
            r = top
            path.add_linear(point(r, z), p.feed_rate)
            while r - bottom > _EPS:
                r = max(bottom, r - p.peck_depth)
                path.add_linear(point(r, z), p.feed_rate)
                if r - bottom > _EPS:
                    path.add_rapid(point(r + p.peck_retract, z), "Peck")
        else:
            path.add_linear(point(bottom, z), p.feed_rate)
        if p.dwell_time > 0.0:
            path.add_dwell(p.dwell_time)
        path.add_rapid(point(outside, z))

    def _build(self, profile: Profile2D | None) -> Toolpath:
        p = self.params
        path = self._new_toolpath(p.feed_rate, p.spindle_speed)
        top = p.groove_diameter / 2.0
        floor = top - p.groove_depth
        outside = top + p.clearance
        safe_z = max(p.groove_z, 0.0) + p.safety_height
        allowance = p.finish_allowance if p.finishing_pass else 0.0
        positions = self.plunge_positions()

        path.add_rapid(point(outside, safe_z), "Grooving start")
        for z in positions:
            self._plunge(path, z, top, floor + allowance)

        if p.finishing_pass:
            front, back = positions[0], positions[-1]
            path.add_rapid(point(outside, front), "Groove finish")
            path.add_linear(point(floor, front), p.finishing_feed_rate)
            path.add_linear(point(floor, back), p.finishing_feed_rate)
            path.add_linear(point(outside, back), p.finishing_feed_rate)

        path.add_rapid(point(outside, safe_z), "Grooving end")
        logger.debug("%s: %d plunges", self.name, len(positions))
        return path

    def estimate_material_removed(self, profile: Profile2D | None) -> float:
        p = self.params
        r_out = p.groove_diameter / 2.0
        r_in = r_out - p.groove_depth
        return math.pi * (r_out**2 - r_in**2) * p.groove_width
