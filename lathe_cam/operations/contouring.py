"""Contouring: coordinates facing, roughing and finishing on one profile.

Contouring does not cut on its own.  It extracts (or receives) the shared
profile, derives each sub-operation's geometry from the profile envelope
and the stock size, runs the enabled sub-operations in the order facing,
roughing, finishing, and aggregates their statistics.  A failing
sub-operation is recorded and the remaining ones still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from lathe_cam.errors import CamError, OperationError
from lathe_cam.geometry.primitives import TurningAxis
from lathe_cam.geometry.solids import Part
from lathe_cam.operations.base import Operation, cutting_envelope
from lathe_cam.operations.facing import FacingOperation, FacingParameters
from lathe_cam.operations.finishing import FinishingOperation, FinishingParameters
from lathe_cam.operations.roughing import RoughingOperation, RoughingParameters
from lathe_cam.profile.extractor import Profile2D, extract_segment_profile, revolved_volume
from lathe_cam.toolpath.types import OperationType, Tool, ToolType, Toolpath

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContouringParameters:
    """Coordinator settings plus templates for the sub-operations.

    Geometry fields of the templates (diameters and Z limits) are replaced
    from the profile envelope; cutting data is taken as given.
    ``stock_diameter`` of ``None`` means the largest part diameter plus
    ``2 * facing_allowance``.
    """

    safety_height: float = 5.0
    clearance: float = 1.0
    enable_facing: bool = True
    enable_roughing: bool = True
    enable_finishing: bool = True
    facing_params: FacingParameters = field(default_factory=FacingParameters)
    roughing_params: RoughingParameters = field(
        default_factory=lambda: RoughingParameters(use_profile_following=True)
    )
    finishing_params: FinishingParameters = field(default_factory=FinishingParameters)
    profile_tolerance: float = 0.01
    profile_sections: int = 100
    facing_allowance: float = 2.0
    time_overhead_factor: float = 1.1
    stock_diameter: float | None = None


@dataclass
class ContouringResult:
    success: bool = False
    facing_toolpath: Toolpath | None = None
    roughing_toolpath: Toolpath | None = None
    finishing_toolpath: Toolpath | None = None
    extracted_profile: Profile2D | None = None
    operation_sequence: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    estimated_time: float = 0.0
    material_removed: float = 0.0
    total_moves: int = 0

    def toolpaths(self) -> list[Toolpath]:
        return [
            tp
            for tp in (self.facing_toolpath, self.roughing_toolpath, self.finishing_toolpath)
            if tp is not None
        ]


class ContouringOperation(Operation[ContouringParameters]):
    operation_type = OperationType.CONTOURING
    compatible_tools = (ToolType.TURNING,)

    def __init__(
        self,
        name: str = "Contouring",
        tool: Tool | None = None,
        params: ContouringParameters | None = None,
    ) -> None:
        super().__init__(name, tool, params)

    @classmethod
    def default_parameters(cls) -> ContouringParameters:
        return ContouringParameters()

    @staticmethod
    def validate_parameters(params: ContouringParameters) -> str:
        errors: list[str] = []
        if params.safety_height <= 0.0:
            errors.append("Safety height must be positive")
        if params.clearance <= 0.0:
            errors.append("Clearance distance must be positive")
        if params.profile_tolerance <= 0.0:
            errors.append("Profile tolerance must be positive")
        if not 10 <= params.profile_sections <= 1000:
            errors.append("Profile sections must be between 10 and 1000")
        if not (params.enable_facing or params.enable_roughing or params.enable_finishing):
            errors.append("At least one operation must be enabled")
        if params.facing_allowance < 0.0:
            errors.append("Facing allowance cannot be negative")
        if params.stock_diameter is not None and params.stock_diameter <= 0.0:
            errors.append("Stock diameter must be positive")
        return "; ".join(errors)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan_operation_sequence(self) -> list[str]:
        p = self.params
        seq: list[str] = []
        if p.enable_facing:
            seq.append(OperationType.FACING.value)
        if p.enable_roughing:
            seq.append(OperationType.ROUGHING.value)
        if p.enable_finishing:
            seq.append(OperationType.FINISHING.value)
        return seq

    def sub_parameters(
        self, profile: Profile2D
    ) -> tuple[FacingParameters, RoughingParameters, FinishingParameters]:
        """Sub-operation parameters fitted to *profile*.

        Raises
        ------
        ParameterError
            If the profile has no material off the turning axis.
        """
        p = self.params
        env = cutting_envelope(profile, p.profile_tolerance)
        stock_d = p.stock_diameter or 2.0 * env.max_radius + 2.0 * p.facing_allowance
        common = dict(safety_height=p.safety_height, clearance=p.clearance)

        facing = replace(
            p.facing_params,
            start_diameter=stock_d,
            end_diameter=0.0,
            start_z=env.max_z + p.facing_allowance,
            end_z=env.max_z,
            **common,
        )
        end_d = 2.0 * env.min_radius
        removal = max(0.0, (stock_d - end_d) / 2.0)
        roughing = replace(
            p.roughing_params,
            start_diameter=stock_d,
            end_diameter=end_d,
            start_z=env.max_z,
            end_z=env.min_z,
            depth_of_cut=min(p.roughing_params.depth_of_cut, removal) or p.roughing_params.depth_of_cut,
            profile_tolerance=p.profile_tolerance,
            **common,
        )
        finishing = replace(
            p.finishing_params,
            target_diameter=2.0 * env.max_radius,
            start_z=env.max_z,
            end_z=env.min_z,
            profile_tolerance=p.profile_tolerance,
            **common,
        )
        return facing, roughing, finishing

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_contouring(
        self,
        part: Part | None = None,
        axis: TurningAxis | None = None,
        profile: Profile2D | None = None,
    ) -> ContouringResult:
        """Run the enabled sub-operations against one shared profile.

        Either *part* (profile extracted here) or an already extracted
        *profile* must be given.
        """
        result = ContouringResult()
        reason = self.validation_error()
        if reason:
            result.errors.append(reason)
            return result

        if profile is None:
            profile = extract_segment_profile(part, axis, self.params.profile_tolerance)
        result.extracted_profile = profile
        if profile.is_empty():
            result.errors.append("Profile extraction produced no segments")
            return result

        try:
            facing_p, roughing_p, finishing_p = self.sub_parameters(profile)
        except CamError as exc:
            result.errors.append(str(exc))
            return result

        result.operation_sequence = self.plan_operation_sequence()
        subs: list[tuple[str, Operation]] = []
        if self.params.enable_facing:
            subs.append(("facing_toolpath", FacingOperation(f"{self.name} Facing", self.tool, facing_p)))
        if self.params.enable_roughing:
            subs.append(
                ("roughing_toolpath", RoughingOperation(f"{self.name} Roughing", self.tool, roughing_p))
            )
        if self.params.enable_finishing:
            subs.append(
                ("finishing_toolpath", FinishingOperation(f"{self.name} Finishing", self.tool, finishing_p))
            )

        for attr, op in subs:
            try:
                setattr(result, attr, op.generate_from_profile(profile))
            except CamError as exc:
                logger.warning("%s failed: %s", op.name, exc)
                result.errors.append(str(exc))

        paths = result.toolpaths()
        result.total_moves = sum(len(tp) for tp in paths)
        result.estimated_time = (
            sum(tp.estimate_machining_time() for tp in paths) * self.params.time_overhead_factor
        )
        result.material_removed = self.estimate_material_removed(profile)
        if not paths:
            result.warnings.append("No toolpaths generated")
        result.success = not result.errors
        logger.info(
            "%s: %s, %d moves, %.2f min",
            self.name,
            " -> ".join(result.operation_sequence),
            result.total_moves,
            result.estimated_time,
        )
        return result

    def _build(self, profile: Profile2D | None) -> Toolpath:
        if profile is None or profile.is_empty():
            raise OperationError(f"{self.name}: contouring needs a part profile")
        result = self.generate_contouring(profile=profile)
        paths = result.toolpaths()
        if not paths:
            reason = "; ".join(result.errors) or "no toolpaths generated"
            raise OperationError(f"{self.name}: {reason}")
        self.warnings.extend(result.errors)
        first = paths[0].tool.cutting
        path = self._new_toolpath(first.feed_rate, first.spindle_speed)
        for tp in paths:
            path.extend(tp, keep_spindle_speed=True)
        return path

    def estimate_material_removed(self, profile: Profile2D | None) -> float:
        """Volume of the revolved profile (frustum sum over its points)."""
        if profile is None or profile.is_empty():
            return 0.0
        p = self.params
        # at least profile_sections chords along the boundary
        tolerance = min(p.profile_tolerance, profile.total_length / p.profile_sections)
        return revolved_volume(profile.to_point_array(tolerance))

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    @staticmethod
    def get_default_parameters(material: str = "steel", complexity: str = "medium") -> ContouringParameters:
        """Parameters tuned for a material and a part complexity.

        ``complexity`` is ``"simple"``, ``"medium"`` or ``"complex"``.
        """
        params = ContouringParameters()
        rough = params.roughing_params
        finish = params.finishing_params
        sections = params.profile_sections
        tolerance = params.profile_tolerance

        mat = material.lower()
        if mat == "aluminum":
            rough = replace(rough, depth_of_cut=3.0)
            finish = replace(finish, feed_rate=0.1)
        elif mat == "steel":
            rough = replace(rough, depth_of_cut=2.0)
            finish = replace(finish, feed_rate=0.05)
        elif mat in ("stainless", "stainless_steel"):
            rough = replace(rough, depth_of_cut=1.5)
            finish = replace(finish, feed_rate=0.03)

        if complexity == "simple":
            sections = 50
            rough = replace(rough, depth_of_cut=2.0)
        elif complexity == "complex":
            sections = 200
            tolerance = 0.005
            rough = replace(rough, depth_of_cut=0.5)
            finish = replace(finish, feed_rate=finish.feed_rate * 0.5)

        return replace(
            params,
            roughing_params=rough,
            finishing_params=finish,
            profile_sections=sections,
            profile_tolerance=tolerance,
        )
