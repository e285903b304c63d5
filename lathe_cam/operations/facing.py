"""Facing: establishes the reference end face before any other cut.

The face is removed in axial levels of ``depth_of_cut`` down to
``end_z + stock_allowance``; a finishing pass at ``end_z`` follows when
stock remains.  Each level is swept radially according to the strategy.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

from lathe_cam.operations.base import Operation, point
from lathe_cam.profile.extractor import Profile2D
from lathe_cam.toolpath.types import OperationType, Tool, ToolType, Toolpath

logger = logging.getLogger(__name__)

_HIGH_SPEED_FEED_FACTOR = 1.5
_LEVEL_EPS = 1e-9


class FacingStrategy(Enum):
    INSIDE_OUT = "InsideOut"
    OUTSIDE_IN = "OutsideIn"
    SPIRAL = "Spiral"
    CONVENTIONAL = "Conventional"
    CLIMB = "Climb"
    ADAPTIVE_ROUGHING = "AdaptiveRoughing"
    HIGH_SPEED_FACING = "HighSpeedFacing"


@dataclass(frozen=True)
class FacingParameters:
    """Facing geometry and cutting data.

    ``start_z`` is the raw stock face, ``end_z`` the finished face; both
    diameters are in mm and feeds in mm/rev.
    """

    start_diameter: float = 50.0
    end_diameter: float = 0.0
    start_z: float = 2.0
    end_z: float = 0.0
    depth_of_cut: float = 1.0
    stepover: float = 0.5
    stock_allowance: float = 0.2
    feed_rate: float = 0.15
    finishing_feed_rate: float = 0.08
    spindle_speed: float = 800.0
    safety_height: float = 5.0
    clearance: float = 1.0
    strategy: FacingStrategy = FacingStrategy.OUTSIDE_IN
    roughing_only: bool = False
    enable_finishing_pass: bool = True


class FacingOperation(Operation[FacingParameters]):
    """Radial sweeps across the end face."""

    operation_type = OperationType.FACING
    compatible_tools = (ToolType.TURNING, ToolType.FACING)

    def __init__(
        self,
        name: str = "Facing",
        tool: Tool | None = None,
        params: FacingParameters | None = None,
    ) -> None:
        super().__init__(name, tool, params)

    @classmethod
    def default_parameters(cls) -> FacingParameters:
        return FacingParameters()

    @staticmethod
    def validate_parameters(params: FacingParameters) -> str:
        errors: list[str] = []
        if params.start_diameter <= 0.0:
            errors.append("Start diameter must be positive")
        if params.end_diameter < 0.0:
            errors.append("End diameter cannot be negative")
        if params.start_diameter <= params.end_diameter:
            errors.append("Start diameter must be greater than end diameter")
        if params.start_z < params.end_z:
            errors.append("Start Z must not be below end Z")
        if params.depth_of_cut <= 0.0:
            errors.append("Depth of cut must be positive")
        if params.stepover <= 0.0:
            errors.append("Stepover must be positive")
        elif params.stepover > (params.start_diameter - params.end_diameter) / 2.0:
            errors.append("Stepover too large for diameter range")
        if params.stock_allowance < 0.0:
            errors.append("Stock allowance cannot be negative")
        if params.stock_allowance > 5.0:
            errors.append("Stock allowance seems excessive (>5mm)")
        if params.feed_rate <= 0.0 or params.finishing_feed_rate <= 0.0:
            errors.append("Feed rates must be positive")
        if params.spindle_speed <= 0.0:
            errors.append("Spindle speed must be positive")
        if params.safety_height <= 0.0 or params.clearance <= 0.0:
            errors.append("Safety height and clearance must be positive")
        return "; ".join(errors)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def roughing_levels(self) -> list[float]:
        """Z of every roughing level, top to bottom."""
        p = self.params
        floor = p.end_z + p.stock_allowance
        if p.start_z - floor <= _LEVEL_EPS:
            return []
        levels: list[float] = []
        z = p.start_z
        while z - floor > _LEVEL_EPS:
            z = max(floor, z - p.depth_of_cut)
            levels.append(z)
        return levels

    def _build(self, profile: Profile2D | None) -> Toolpath:
        p = self.params
        feed = p.feed_rate
        if p.strategy is FacingStrategy.HIGH_SPEED_FACING:
            feed *= _HIGH_SPEED_FEED_FACTOR
        path = self._new_toolpath(feed, p.spindle_speed)

        r_out = p.start_diameter / 2.0 + p.clearance
        r_in = p.end_diameter / 2.0
        safe_z = p.start_z + p.safety_height
        path.add_rapid(point(r_out, safe_z), "Facing start")

        surface = p.start_z
        for i, z in enumerate(self.roughing_levels()):
            self._level(path, z, surface, feed, reverse=(i % 2 == 1))
            surface = z

        needs_finish = p.stock_allowance > 0.0 or not self.roughing_levels()
        if p.enable_finishing_pass and not p.roughing_only and needs_finish:
            retract = surface + p.clearance
            path.add_rapid(point(r_out, retract), "Finishing pass")
            path.add_rapid(point(r_out, p.end_z))
            path.add_linear(point(r_in, p.end_z), p.finishing_feed_rate)
            path.add_rapid(point(r_in, retract))

        path.add_rapid(point(path.current_position.x, safe_z))
        path.add_rapid(point(r_out, safe_z), "Facing end")
        return path

    def _level(self, path: Toolpath, z: float, surface: float, feed: float, reverse: bool) -> None:
        """One axial level; *surface* is the face Z before this level."""
        p = self.params
        r_out = p.start_diameter / 2.0 + p.clearance
        r_in = p.end_diameter / 2.0
        retract = surface + p.clearance
        strategy = p.strategy

        if strategy in (FacingStrategy.OUTSIDE_IN, FacingStrategy.CONVENTIONAL):
            path.add_rapid(point(r_out, retract))
            path.add_rapid(point(r_out, z))
            path.add_linear(point(r_in, z), feed)
            path.add_rapid(point(r_in, retract))
        elif strategy in (FacingStrategy.INSIDE_OUT, FacingStrategy.CLIMB):
            path.add_rapid(point(r_in, retract))
            path.add_linear(point(r_in, z), feed)
            path.add_linear(point(r_out, z), feed)
            path.add_rapid(point(r_out, retract))
        elif strategy is FacingStrategy.SPIRAL:
            # zigzag: step down at whichever side the previous sweep ended
            start, end = (r_in, r_out) if reverse else (r_out, r_in)
            cur = path.current_position
            if cur is None or cur.x != start or cur.z > retract:
                path.add_rapid(point(start, retract))
            path.add_linear(point(start, z), feed)
            path.add_linear(point(end, z), feed)
        elif strategy is FacingStrategy.ADAPTIVE_ROUGHING:
            bands = max(1, math.ceil((r_out - r_in) / p.stepover - _LEVEL_EPS))
            outer = r_out
            for k in range(1, bands + 1):
                inner = max(r_in, r_out - k * p.stepover)
                path.add_rapid(point(outer, retract))
                path.add_linear(point(outer, z), feed)
                path.add_linear(point(inner, z), feed)
                path.add_rapid(point(inner, retract))
                outer = inner
        elif strategy is FacingStrategy.HIGH_SPEED_FACING:
            lead = p.clearance
            path.add_rapid(point(r_out + lead, z + lead))
            path.add_linear(point(r_out, z), feed, "45 deg lead-in")
            path.add_linear(point(r_in, z), feed)
            path.add_rapid(point(r_in, retract))
        else:
            raise ValueError(f"Unhandled facing strategy: {strategy}")

    def estimate_material_removed(self, profile: Profile2D | None) -> float:
        p = self.params
        r_out = p.start_diameter / 2.0
        r_in = p.end_diameter / 2.0
        return math.pi * (r_out**2 - r_in**2) * max(0.0, p.start_z - p.end_z)
