"""Roughing: strips bulk stock down to the finishing boundary.

Two pass orders are supported:

    - AXIAL passes travel along Z at a fixed radius, stepping the radius
      inward by the radial step (long, slender removal)
    - RADIAL passes travel across the radius at a fixed Z, stepping Z
      toward the chuck (short, wide removal)

``AUTO`` picks AXIAL when the axial length exceeds ``axial_ratio`` times
the radial removal.  Every pass stops ``stock_allowance`` short of the
boundary, which is either the plain ``end_diameter`` cylinder or, with
``use_profile_following``, the part profile itself.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from lathe_cam.operations.base import Operation, point, sample_breakpoints
from lathe_cam.profile.extractor import Profile2D
from lathe_cam.toolpath.types import OperationType, Tool, ToolType, Toolpath

logger = logging.getLogger(__name__)

_EPS = 1e-9
# Offset used to read the boundary radius on either side of a shoulder.
_SHOULDER_OFFSET = 1e-6


class RoughingStrategy(Enum):
    AUTO = "Auto"
    AXIAL = "Axial"
    RADIAL = "Radial"


@dataclass(frozen=True)
class RoughingParameters:
    """Roughing geometry and cutting data (mm, mm/rev, RPM, s)."""

    start_diameter: float = 50.0
    end_diameter: float = 20.0
    start_z: float = 0.0
    end_z: float = -50.0
    depth_of_cut: float = 2.0
    stock_allowance: float = 0.5
    feed_rate: float = 0.25
    spindle_speed: float = 800.0
    safety_height: float = 5.0
    clearance: float = 1.0
    strategy: RoughingStrategy = RoughingStrategy.AUTO
    axial_ratio: float = 3.0
    use_profile_following: bool = False
    profile_tolerance: float = 0.01
    reverse_passes: bool = False
    enable_chip_breaking: bool = False
    chip_break_interval: float = 10.0
    chip_break_retract: float = 0.5
    chip_break_dwell: float = 0.2


class RoughingOperation(Operation[RoughingParameters]):
    """Multi-pass stock removal."""

    operation_type = OperationType.ROUGHING
    compatible_tools = (ToolType.TURNING,)

    def __init__(
        self,
        name: str = "Roughing",
        tool: Tool | None = None,
        params: RoughingParameters | None = None,
    ) -> None:
        super().__init__(name, tool, params)
        self._profile: Profile2D | None = None
        self._profile_zs: list[float] = []

    @classmethod
    def default_parameters(cls) -> RoughingParameters:
        return RoughingParameters()

    @staticmethod
    def validate_parameters(params: RoughingParameters) -> str:
        errors: list[str] = []
        if params.start_diameter <= 0.0:
            errors.append("Start diameter must be positive")
        if params.end_diameter <= 0.0:
            errors.append("End diameter must be positive")
        if params.start_diameter <= params.end_diameter:
            errors.append("Start diameter must be greater than end diameter")
        if params.start_z <= params.end_z:
            errors.append("Start Z must be greater than end Z (cutting toward the chuck)")
        if params.depth_of_cut <= 0.0:
            errors.append("Depth of cut must be positive")
        elif params.depth_of_cut > (params.start_diameter - params.end_diameter) / 2.0:
            errors.append("Depth of cut too large for diameter range")
        if params.stock_allowance < 0.0:
            errors.append("Stock allowance cannot be negative")
        if params.stock_allowance > 5.0:
            errors.append("Stock allowance seems excessive (>5mm)")
        if params.feed_rate <= 0.0:
            errors.append("Feed rate must be positive")
        if params.spindle_speed <= 0.0:
            errors.append("Spindle speed must be positive")
        if params.enable_chip_breaking and params.chip_break_interval <= 0.0:
            errors.append("Chip break interval must be positive")
        return "; ".join(errors)

    # ------------------------------------------------------------------
    # Strategy
    # ------------------------------------------------------------------

    def radial_step(self) -> float:
        """Radial distance between AXIAL passes."""
        return self.params.depth_of_cut

    def resolve_strategy(self) -> RoughingStrategy:
        p = self.params
        if p.strategy is not RoughingStrategy.AUTO:
            return p.strategy
        axial_length = abs(p.start_z - p.end_z)
        radial_removal = (p.start_diameter - p.end_diameter) / 2.0
        if axial_length > radial_removal * p.axial_ratio:
            return RoughingStrategy.AXIAL
        return RoughingStrategy.RADIAL

    def pass_radii(self) -> list[float]:
        """Radius of each AXIAL pass, outermost first."""
        p = self.params
        start_r = p.start_diameter / 2.0
        target = p.end_diameter / 2.0 + p.stock_allowance
        step = self.radial_step()
        radii: list[float] = []
        k = 1
        while True:
            r = max(target, start_r - k * step)
            if r >= start_r - _EPS:
                break
            radii.append(r)
            if r <= target + _EPS:
                break
            k += 1
        return radii

    def pass_levels(self) -> list[float]:
        """Z of each RADIAL pass, nearest the face first."""
        p = self.params
        levels: list[float] = []
        k = 1
        while True:
            z = max(p.end_z, p.start_z - k * p.depth_of_cut)
            levels.append(z)
            if z <= p.end_z + _EPS:
                break
            k += 1
        return levels

    # ------------------------------------------------------------------
    # Boundary
    # ------------------------------------------------------------------

    def _set_profile(self, profile: Profile2D | None) -> None:
        self._profile = profile if profile is not None and not profile.is_empty() else None
        self._profile_zs = (
            sorted({pt.z for pt in self._profile.to_point_array(self.params.profile_tolerance)})
            if self._profile is not None
            else []
        )

    def _following(self) -> bool:
        return self.params.use_profile_following and self._profile is not None

    def boundary_radius(self, z: float, pass_radius: float) -> float:
        """Radius a pass at *pass_radius* may reach at *z* without gouging.

        The profile is grown by ``stock_allowance`` along Z as well as along
        the radius, so shoulder faces keep their allowance too.
        """
        if not self._following():
            return pass_radius
        a = self.params.stock_allowance
        window = [z - a, z, z + a]
        window.extend(bz for bz in self._profile_zs if z - a < bz < z + a)
        radii = [r for r in map(self._profile.radius_at, window) if r is not None]
        if not radii:
            return pass_radius
        return max(pass_radius, max(radii) + a)

    def _pass_points(self, pass_radius: float) -> list[tuple[float, float]]:
        """(radius, z) polyline of one AXIAL pass from start_z to end_z."""
        p = self.params
        if not self._following():
            return [(pass_radius, p.start_z), (pass_radius, p.end_z)]
        zs = sample_breakpoints(self._profile, p.end_z, p.start_z, p.profile_tolerance)
        a = p.stock_allowance
        shifted = {
            min(p.start_z, max(p.end_z, z + d)) for z in zs for d in (-a, a)
        }
        zs = sorted(set(zs) | shifted)
        pts: list[tuple[float, float]] = []
        for z in reversed(zs):
            above = self.boundary_radius(min(p.start_z, z + _SHOULDER_OFFSET), pass_radius)
            below = self.boundary_radius(max(p.end_z, z - _SHOULDER_OFFSET), pass_radius)
            for r in (above, below):
                if pts and abs(pts[-1][0] - r) <= _EPS and abs(pts[-1][1] - z) <= _EPS:
                    continue
                if len(pts) >= 2 and abs(pts[-1][0] - r) <= _EPS and abs(pts[-2][0] - r) <= _EPS:
                    # extend the axial run instead of adding a collinear point
                    pts[-1] = (r, z)
                else:
                    pts.append((r, z))
        return pts

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_from_profile(self, profile: Profile2D | None) -> Toolpath:
        self._set_profile(profile)
        return super().generate_from_profile(profile)

    def _build(self, profile: Profile2D | None) -> Toolpath:
        p = self.params
        path = self._new_toolpath(p.feed_rate, p.spindle_speed)
        start_r = p.start_diameter / 2.0
        safe = point(start_r + p.clearance, p.start_z + p.safety_height)
        path.add_rapid(safe, "Roughing start")

        strategy = self.resolve_strategy()
        if strategy is RoughingStrategy.AXIAL:
            self._axial_passes(path)
        else:
            self._radial_passes(path)

        path.add_rapid(point(start_r + p.clearance, path.current_position.z))
        path.add_rapid(safe, "Roughing end")
        logger.debug("%s: %s strategy, %d moves", self.name, strategy.value, len(path))
        return path

    def _axial_passes(self, path: Toolpath) -> None:
        p = self.params
        c = p.clearance
        surface = p.start_diameter / 2.0
        reverse = False
        for r in self.pass_radii():
            pts = self._pass_points(r)
            if all(x >= surface - _EPS for x, _ in pts):
                # boundary sits above this pass everywhere: nothing to cut
                continue
            if reverse:
                pts = list(reversed(pts))
                path.add_rapid(point(surface + c, p.end_z))
                path.add_linear(point(pts[0][0], pts[0][1]), p.feed_rate, "Reverse pass")
            else:
                path.add_rapid(point(surface + c, p.start_z + c))
                path.add_rapid(point(pts[0][0], p.start_z + c))
                path.add_linear(point(pts[0][0], pts[0][1]), p.feed_rate)
            self._cut_polyline(path, pts[1:])
            last_r, last_z = pts[-1]
            exit_z = p.start_z + c if reverse else last_z
            path.add_rapid(point(max(last_r, r) + c, exit_z))
            surface = r
            if p.reverse_passes:
                reverse = not reverse

    def _radial_passes(self, path: Toolpath) -> None:
        p = self.params
        c = p.clearance
        start_r = p.start_diameter / 2.0
        target = p.end_diameter / 2.0 + p.stock_allowance
        surface_z = p.start_z
        reverse = False
        for z in self.pass_levels():
            # never gouge the slab between this level and the last one
            inner = max(
                self.boundary_radius(z, target),
                self.boundary_radius(surface_z, target),
            )
            if inner >= start_r - _EPS:
                surface_z = z
                continue
            if reverse:
                path.add_rapid(point(inner, surface_z + c))
                path.add_linear(point(inner, z), p.feed_rate, "Reverse pass")
                path.add_linear(point(start_r + c, z), p.feed_rate)
                path.add_rapid(point(start_r + c, surface_z + c))
            else:
                path.add_rapid(point(start_r + c, surface_z + c))
                path.add_rapid(point(start_r + c, z))
                path.add_linear(point(inner, z), p.feed_rate)
                path.add_rapid(point(inner + c, z + c))
                path.add_rapid(point(start_r + c, z + c))
            surface_z = z
            if p.reverse_passes:
                reverse = not reverse

    def _cut_polyline(self, path: Toolpath, pts: list[tuple[float, float]]) -> None:
        """Feed through *pts*, breaking chips every ``chip_break_interval`` of Z."""
        p = self.params
        travelled = 0.0
        for r, z in pts:
            cur = path.current_position
            if not p.enable_chip_breaking or abs(cur.x - r) > _EPS:
                path.add_linear(point(r, z), p.feed_rate)
                continue
            # straight axial run: split at chip-break marks
            direction = -1.0 if z < cur.z else 1.0
            remaining = abs(z - cur.z)
            while travelled + remaining > p.chip_break_interval + _EPS:
                step = p.chip_break_interval - travelled
                zb = path.current_position.z + direction * step
                path.add_linear(point(r, zb), p.feed_rate)
                path.add_rapid(point(r + p.chip_break_retract, zb), "Chip break")
                if p.chip_break_dwell > 0.0:
                    path.add_dwell(p.chip_break_dwell)
                path.add_linear(point(r, zb), p.feed_rate)
                remaining -= step
                travelled = 0.0
            path.add_linear(point(r, z), p.feed_rate)
            travelled += remaining

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def estimate_material_removed(self, profile: Profile2D | None) -> float:
        """Stock cylinder minus the roughed boundary, integrated along Z."""
        p = self.params
        self._set_profile(profile)
        start_r = p.start_diameter / 2.0
        target = p.end_diameter / 2.0 + p.stock_allowance
        n = max(2, int(math.ceil(abs(p.start_z - p.end_z))) + 1)
        zs = np.linspace(p.end_z, p.start_z, n)
        radii = np.array([min(start_r, self.boundary_radius(z, target)) for z in zs])
        area = np.pi * (start_r**2 - radii**2)
        return float(np.sum((area[1:] + area[:-1]) * np.diff(zs)) / 2.0)
