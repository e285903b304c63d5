"""Parting: cuts the finished part off the bar.

The cut position is either given explicitly (``parting_z``) or detected
from the profile.  Detection scores candidate positions with the
empirical weights in :class:`~lathe_cam.configs.loader.PartingScoring`:

    - straight runs of near-constant radius (best, small bonus close to
      the chuck-side end of the part)
    - shoulders, where a radial face meets a diameter
    - the chuck-side end of the profile, and its middle for long parts

The blade then cuts from outside the stock radially inward to
``center_hole_diameter`` (0 for solid bar).  The blade reference edge sits
at ``parting_z`` and the kerf extends toward the chuck (-Z) by
``parting_width``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum

from lathe_cam.configs.loader import PartingScoring, default_cam_defaults
from lathe_cam.errors import OperationError
from lathe_cam.operations.base import Operation, point
from lathe_cam.profile.extractor import Profile2D, ProfileSegment
from lathe_cam.toolpath.types import OperationType, Tool, ToolType, Toolpath

logger = logging.getLogger(__name__)

_EPS = 1e-9


class PartingStrategy(Enum):
    STRAIGHT = "Straight"
    STEPPED = "Stepped"
    GROOVE = "Groove"
    UNDERCUT = "Undercut"
    TREPANNING = "Trepanning"


@dataclass(frozen=True)
class PartingParameters:
    """Parting geometry and cutting data (mm, mm/rev, RPM)."""

    parting_diameter: float = 20.0
    parting_z: float = -50.0
    center_hole_diameter: float = 0.0
    parting_width: float = 3.0
    strategy: PartingStrategy = PartingStrategy.STRAIGHT
    feed_rate: float = 0.05
    finishing_feed_rate: float = 0.02
    spindle_speed: float = 800.0
    depth_of_cut: float = 0.5
    retract_distance: float = 2.0
    safety_height: float = 5.0
    clearance: float = 1.0
    enable_roughing_groove: bool = False
    groove_width: float = 4.0
    groove_depth: float = 1.0
    enable_finishing_pass: bool = False
    auto_detect_position: bool = True


@dataclass(frozen=True)
class PartingPosition:
    """A scored candidate cut location."""

    z_position: float
    diameter: float
    accessibility: float
    preference: float
    description: str
    requires_special_tool: bool = False


@dataclass
class PartingResult:
    success: bool = False
    error_message: str = ""
    groove_toolpath: Toolpath | None = None
    parting_toolpath: Toolpath | None = None
    finishing_toolpath: Toolpath | None = None
    detected_positions: list[PartingPosition] = field(default_factory=list)
    selected_position: PartingPosition | None = None
    used_parameters: PartingParameters | None = None
    estimated_time: float = 0.0
    total_passes: int = 0
    material_removed: float = 0.0
    warnings: list[str] = field(default_factory=list)

    def toolpaths(self) -> list[Toolpath]:
        """Generated toolpaths in cutting order."""
        return [
            tp
            for tp in (self.groove_toolpath, self.parting_toolpath, self.finishing_toolpath)
            if tp is not None
        ]


# ---------------------------------------------------------------------------
# Position detection
# ---------------------------------------------------------------------------


def _sample_segment(seg: ProfileSegment, spacing: float) -> list[tuple[float, float]]:
    n = max(1, math.ceil(seg.length / spacing)) if spacing > 0.0 else 1
    pts = (seg.point_at(i / n) for i in range(n + 1))
    return [(p.x, p.z) for p in pts]


def detect_parting_positions(
    profile: Profile2D | None,
    params: PartingParameters,
    scoring: PartingScoring | None = None,
    max_depth: float | None = None,
) -> list[PartingPosition]:
    """Candidate parting positions, best preference first.

    Parameters
    ----------
    profile : Profile2D | None
        Part profile; an empty or missing profile yields only the manual
        position from *params*.
    params : PartingParameters
        Supplies the manual fallback position and the centre hole.
    scoring : PartingScoring | None
        Heuristic weights; the packaged defaults when ``None``.
    max_depth : float | None
        Radial reach of the blade.  Deeper candidates are flagged as
        requiring a special tool.
    """
    s = scoring or default_cam_defaults().parting_scoring
    inner = params.center_hole_diameter / 2.0

    def special(diameter: float) -> bool:
        return max_depth is not None and diameter / 2.0 - inner > max_depth + _EPS

    if profile is None or profile.is_empty():
        return [
            PartingPosition(
                params.parting_z,
                params.parting_diameter,
                s.manual_accessibility,
                s.manual_preference,
                "Manual position",
                special(params.parting_diameter),
            )
        ]

    out: list[PartingPosition] = []

    # straight runs
    samples: list[tuple[float, float]] = []
    for seg in profile:
        if seg.is_vertical():
            continue
        for x, z in _sample_segment(seg, s.sample_tolerance):
            if not samples or abs(samples[-1][1] - z) > _EPS or abs(samples[-1][0] - x) > _EPS:
                samples.append((x, z))
    samples.sort(key=lambda xz: xz[1])

    w = s.neighbour_window
    run: list[tuple[float, float]] = []
    runs: list[list[tuple[float, float]]] = []
    for i, (x, z) in enumerate(samples):
        window = samples[max(0, i - w) : i + w + 1]
        straight = x > s.min_radius and all(
            abs(xn - x) <= s.straight_radius_tolerance for xn, _ in window
        )
        if straight:
            run.append((x, z))
        elif run:
            runs.append(run)
            run = []
    if run:
        runs.append(run)

    chuck_end = profile.bounds().min_z

    def straight_preference(z: float) -> float:
        bonus = max(0.0, 1.0 - abs(z - chuck_end) / s.end_bonus_span) * s.end_bonus_weight
        return min(1.0, s.straight_preference + bonus)

    for r in runs:
        _, z = max(r, key=lambda xz: straight_preference(xz[1]))
        d = 2.0 * max(xr for xr, _ in r)
        out.append(
            PartingPosition(
                z, d, s.straight_accessibility, straight_preference(z),
                "Straight section", special(d),
            )
        )

    # shoulders
    for seg in profile:
        if not seg.is_vertical():
            continue
        hi = max(seg.start.x, seg.end.x)
        lo = min(seg.start.x, seg.end.x)
        if lo <= s.min_radius:
            # end face down to the axis
            continue
        d = 2.0 * hi
        out.append(
            PartingPosition(
                seg.start.z, d, s.shoulder_accessibility, s.shoulder_preference,
                "Shoulder", special(d),
            )
        )

    # end and middle fallbacks
    b = profile.bounds()
    end_r = profile.radius_at(b.min_z) or b.max_radius
    out.append(
        PartingPosition(
            b.min_z, 2.0 * end_r, s.end_accessibility, s.end_preference,
            "Part end", special(2.0 * end_r),
        )
    )
    if b.length > s.middle_min_length:
        mid_z = (b.min_z + b.max_z) / 2.0
        mid_r = profile.radius_at(mid_z) or b.max_radius
        out.append(
            PartingPosition(
                mid_z, 2.0 * mid_r, s.middle_accessibility, s.middle_preference,
                "Part middle", special(2.0 * mid_r),
            )
        )

    out.sort(key=lambda p: p.preference, reverse=True)
    return out


# ---------------------------------------------------------------------------
# Operation
# ---------------------------------------------------------------------------


class PartingOperation(Operation[PartingParameters]):
    operation_type = OperationType.PARTING
    compatible_tools = (ToolType.PARTING, ToolType.GROOVING)

    def __init__(
        self,
        name: str = "Parting",
        tool: Tool | None = None,
        params: PartingParameters | None = None,
        scoring: PartingScoring | None = None,
    ) -> None:
        super().__init__(name, tool, params)
        self.scoring = scoring or default_cam_defaults().parting_scoring

    @classmethod
    def default_parameters(cls) -> PartingParameters:
        return PartingParameters()

    @staticmethod
    def validate_parameters(params: PartingParameters) -> str:
        errors: list[str] = []
        if params.parting_diameter <= 0.0:
            errors.append("Parting diameter must be positive")
        if params.center_hole_diameter < 0.0:
            errors.append("Center hole diameter cannot be negative")
        if params.parting_diameter <= params.center_hole_diameter:
            errors.append("Parting diameter must be greater than center hole diameter")
        if params.parting_width <= 0.0:
            errors.append("Parting width must be positive")
        if params.feed_rate <= 0.0 or params.finishing_feed_rate <= 0.0:
            errors.append("Feed rates must be positive")
        if params.spindle_speed <= 0.0:
            errors.append("Spindle speed must be positive")
        if params.depth_of_cut <= 0.0:
            errors.append("Depth of cut must be positive")
        if params.retract_distance < 0.0:
            errors.append("Retract distance cannot be negative")
        if params.enable_roughing_groove or params.strategy is PartingStrategy.GROOVE:
            if params.groove_width <= 0.0 or params.groove_depth <= 0.0:
                errors.append("Relief groove width and depth must be positive")
            elif params.groove_depth >= (params.parting_diameter - params.center_hole_diameter) / 2.0:
                errors.append("Relief groove deeper than the parting cut")
        return "; ".join(errors)

    # ------------------------------------------------------------------
    # Position
    # ------------------------------------------------------------------

    def _blade_reach(self) -> float | None:
        return self.tool.geometry.length if self.tool is not None else None

    def select_optimal_position(
        self, positions: list[PartingPosition]
    ) -> tuple[PartingParameters, PartingPosition | None, list[str]]:
        """Adopt the best standard-tool candidate when it scores high enough.

        Returns
        -------
        tuple
            Possibly updated parameters, the selected position (or ``None``)
            and warnings.
        """
        warnings: list[str] = []
        params = self.params
        chosen = next((p for p in positions if not p.requires_special_tool), None)
        if chosen is None:
            if positions:
                warnings.append("Every detected parting position needs a special tool")
            return params, None, warnings
        if chosen.preference > self.scoring.adopt_threshold:
            params = replace(params, parting_z=chosen.z_position, parting_diameter=chosen.diameter)
        if chosen.accessibility < self.scoring.low_accessibility_warning:
            warnings.append(
                f"Low accessibility ({chosen.accessibility:.2f}) at Z={chosen.z_position:.3f}"
            )
        return params, chosen, warnings

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_toolpaths(self, profile: Profile2D | None) -> PartingResult:
        """Plan the relief groove, parting and finishing toolpaths.

        Validation problems are reported in the result rather than raised.
        """
        result = PartingResult()
        reason = self.validation_error()
        if reason:
            result.error_message = reason
            return result

        params = self.params
        if params.auto_detect_position:
            result.detected_positions = detect_parting_positions(
                profile, params, self.scoring, self._blade_reach()
            )
            params, result.selected_position, warnings = self.select_optimal_position(
                result.detected_positions
            )
            result.warnings.extend(warnings)
            reason = self.validate_parameters(params)
            if reason:
                result.error_message = reason
                return result

        if params.enable_roughing_groove or params.strategy is PartingStrategy.GROOVE:
            result.groove_toolpath = self._groove_toolpath(params)
        result.parting_toolpath = self._parting_toolpath(params)
        if params.enable_finishing_pass:
            result.finishing_toolpath = self._finishing_toolpath(params)

        paths = result.toolpaths()
        result.used_parameters = params
        result.estimated_time = sum(tp.estimate_machining_time() for tp in paths)
        result.total_passes = len(self.plunge_radii(params)) + len(paths) - 1
        r_out = params.parting_diameter / 2.0
        r_in = params.center_hole_diameter / 2.0
        result.material_removed = math.pi * (r_out**2 - r_in**2) * params.parting_width
        result.success = True
        logger.info(
            "%s at Z=%.3f D=%.3f (%s): %d passes",
            self.name,
            params.parting_z,
            params.parting_diameter,
            params.strategy.value,
            result.total_passes,
        )
        return result

    def _build(self, profile: Profile2D | None) -> Toolpath:
        result = self.generate_toolpaths(profile)
        if not result.success:
            raise OperationError(f"{self.name}: {result.error_message}")
        out = self._new_toolpath(self.params.feed_rate, self.params.spindle_speed)
        for tp in result.toolpaths():
            out.extend(tp)
        return out

    def estimate_material_removed(self, profile: Profile2D | None) -> float:
        p = self.params
        return math.pi * ((p.parting_diameter / 2.0) ** 2 - (p.center_hole_diameter / 2.0) ** 2) * p.parting_width

    # ------------------------------------------------------------------
    # Toolpaths
    # ------------------------------------------------------------------

    @staticmethod
    def plunge_radii(params: PartingParameters) -> list[float]:
        """Radius reached by each plunge of the main cut."""
        r_out = params.parting_diameter / 2.0
        r_in = params.center_hole_diameter / 2.0
        if params.strategy in (PartingStrategy.STRAIGHT, PartingStrategy.GROOVE):
            return [r_in]
        if params.strategy is PartingStrategy.UNDERCUT:
            return [(r_out + r_in) / 2.0, r_in]
        radii: list[float] = []
        r = r_out
        while r - r_in > _EPS:
            r = max(r_in, r - params.depth_of_cut)
            radii.append(r)
        return radii

    def _approach(self, path: Toolpath, params: PartingParameters, z: float) -> float:
        """Rapid outside the stock to Z; returns the outside radius."""
        outside = params.parting_diameter / 2.0 + params.clearance
        safe_z = max(z, 0.0) + params.safety_height
        path.add_rapid(point(outside, safe_z))
        path.add_rapid(point(outside, z))
        return outside

    def _leave(self, path: Toolpath, params: PartingParameters, outside: float) -> None:
        z = path.current_position.z
        path.add_rapid(point(outside, z))
        path.add_rapid(point(outside, max(z, 0.0) + params.safety_height))

    def _groove_toolpath(self, params: PartingParameters) -> Toolpath:
        """Relief groove cut ahead of the parting blade."""
        path = self._new_toolpath(params.feed_rate, params.spindle_speed, f"{self.name} Groove")
        z0 = params.parting_z
        width = self.tool.geometry.insert_width if self.tool is not None else params.parting_width
        floor = params.parting_diameter / 2.0 - params.groove_depth
        outside = self._approach(path, params, z0)
        span = max(0.0, params.groove_width - width)
        n = max(1, math.ceil(span / width - _EPS)) if span > 0.0 else 0
        for k in range(n + 1):
            z = z0 - span * k / n if n else z0
            path.add_rapid(point(outside, z))
            path.add_linear(point(floor, z), params.feed_rate)
            path.add_rapid(point(outside, z))
        self._leave(path, params, outside)
        return path

    def _parting_toolpath(self, params: PartingParameters) -> Toolpath:
        path = self._new_toolpath(params.feed_rate, params.spindle_speed, f"{self.name} Main")
        z = params.parting_z
        outside = self._approach(path, params, z)
        radii = self.plunge_radii(params)
        strategy = params.strategy

        if strategy in (PartingStrategy.STRAIGHT, PartingStrategy.GROOVE):
            path.add_linear(point(radii[0], z), params.feed_rate, "Part off")
        elif strategy is PartingStrategy.STEPPED:
            for i, r in enumerate(radii):
                path.add_linear(point(r, z), params.feed_rate)
                if i < len(radii) - 1:
                    path.add_rapid(point(r + params.retract_distance, z), "Peck retract")
        elif strategy is PartingStrategy.UNDERCUT:
            mid, r_in = radii
            side = z - params.parting_width / 2.0
            path.add_linear(point(mid, z), params.feed_rate)
            path.add_linear(point(mid, side), params.feed_rate, "Undercut")
            path.add_linear(point(mid, z), params.feed_rate)
            path.add_linear(point(r_in, z), params.feed_rate, "Part off")
        elif strategy is PartingStrategy.TREPANNING:
            offset = z - params.parting_width / 2.0
            for r in radii:
                back = r + params.retract_distance
                path.add_linear(point(r, z), params.feed_rate)
                path.add_rapid(point(back, z))
                path.add_rapid(point(back, offset))
                path.add_linear(point(r, offset), params.feed_rate)
                path.add_rapid(point(back, offset))
                path.add_rapid(point(back, z))
        else:
            raise ValueError(f"Unhandled parting strategy: {strategy}")

        self._leave(path, params, outside)
        return path

    def _finishing_toolpath(self, params: PartingParameters) -> Toolpath:
        path = self._new_toolpath(
            params.finishing_feed_rate, params.spindle_speed, f"{self.name} Finish"
        )
        z = params.parting_z
        outside = self._approach(path, params, z)
        path.add_linear(
            point(params.center_hole_diameter / 2.0, z), params.finishing_feed_rate, "Finish face"
        )
        self._leave(path, params, outside)
        return path

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    @staticmethod
    def get_default_parameters(
        diameter: float, material: str = "steel", part_type: str = "standard"
    ) -> PartingParameters:
        """Material- and part-type-tuned parameters for a given diameter."""
        feed, rpm, doc = 0.05, 800.0, 0.5
        mat = material.lower()
        if mat == "aluminum":
            feed, rpm, doc = 0.08, 1200.0, 0.8
        elif mat in ("stainless", "stainless_steel"):
            feed, rpm, doc = 0.03, 600.0, 0.3
        params = PartingParameters(
            parting_diameter=diameter,
            feed_rate=feed,
            finishing_feed_rate=feed * 0.4,
            spindle_speed=rpm,
            depth_of_cut=doc,
        )
        if part_type == "thin_wall":
            params = replace(
                params,
                feed_rate=feed * 0.7,
                depth_of_cut=doc * 0.8,
                enable_finishing_pass=True,
            )
        return params
