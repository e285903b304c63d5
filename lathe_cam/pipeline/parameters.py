"""Build typed operation parameters from a filled ``OperationConfig``.

The pipeline owns the geometry: diameters and Z limits come from the
profile envelope and the stock, cutting data comes from the (validated,
filled) config.  ``OperationConfig.overrides`` are applied last and may
replace any field of the operation's ``Parameters`` dataclass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, TypeVar

from lathe_cam.errors import ParameterError
from lathe_cam.operations.base import CuttingEnvelope, apply_overrides
from lathe_cam.operations.contouring import ContouringParameters
from lathe_cam.operations.external_roughing import ExternalRoughingParameters
from lathe_cam.operations.facing import FacingParameters, FacingStrategy
from lathe_cam.operations.finishing import FinishingParameters
from lathe_cam.operations.grooving import GroovingParameters
from lathe_cam.operations.parting import PartingParameters, PartingStrategy
from lathe_cam.operations.roughing import RoughingParameters, RoughingStrategy
from lathe_cam.operations.threading import ThreadingParameters
from lathe_cam.params.config import OperationConfig
from lathe_cam.profile.extractor import Profile2D
from lathe_cam.toolpath.types import OperationType, Tool

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

# Default thread length when none is given (mm), capped by the part length.
DEFAULT_THREAD_LENGTH = 30.0


@dataclass(frozen=True)
class BuildContext:
    """Everything a parameter builder may read besides the config."""

    profile: Profile2D
    envelope: CuttingEnvelope
    tool: Tool
    stock_diameter: float
    stock_face_z: float
    safety_height: float
    clearance: float
    profile_tolerance: float
    profile_sections: int
    facing_allowance: float
    time_overhead_factor: float
    max_spindle_speed: float


def parse_enum(enum_cls: type[E], text: str) -> E:
    """Match *text* against member values or names, ignoring case and ``_``.

    Raises
    ------
    ParameterError
        If nothing matches.
    """
    key = text.replace("_", "").replace(" ", "").lower()
    for member in enum_cls:
        if key in (member.value.lower(), member.name.replace("_", "").lower()):
            return member
    names = ", ".join(m.value for m in enum_cls)
    raise ParameterError(f"Unknown {enum_cls.__name__} '{text}'; expected one of {names}")


def _num(config: OperationConfig, name: str, default: float) -> float:
    return float(config.value(name, default))


def _override(config: OperationConfig, name: str, default: Any) -> Any:
    return config.overrides.get(name, default)


def _coerce(current: Any, value: Any) -> Any:
    """Convert override strings for enum-typed fields."""
    if isinstance(current, Enum) and isinstance(value, str):
        return parse_enum(type(current), value)
    return value


def _radius_over(profile: Profile2D, z_lo: float, z_hi: float, fallback: float) -> float:
    zs = (z_lo, (z_lo + z_hi) / 2.0, z_hi)
    radii = [r for r in (profile.radius_at(z) for z in zs) if r is not None]
    return max(radii) if radii else fallback


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _facing(config: OperationConfig, ctx: BuildContext) -> FacingParameters:
    env = ctx.envelope
    params = FacingParameters(
        start_diameter=ctx.stock_diameter,
        end_diameter=0.0,
        start_z=ctx.stock_face_z,
        end_z=env.max_z,
        depth_of_cut=_num(config, "depth_of_cut", FacingParameters.depth_of_cut),
        stock_allowance=_num(config, "stock_allowance", FacingParameters.stock_allowance),
        feed_rate=_num(config, "feed_rate", FacingParameters.feed_rate),
        spindle_speed=_num(config, "spindle_speed", FacingParameters.spindle_speed),
        safety_height=ctx.safety_height,
        clearance=ctx.clearance,
    )
    strategy = config.value("strategy")
    if strategy:
        params = replace(params, strategy=parse_enum(FacingStrategy, strategy))
    return params


def _roughing_fields(config: OperationConfig, ctx: BuildContext, stepover: bool) -> dict[str, Any]:
    env = ctx.envelope
    end_d = 2.0 * env.min_radius
    removal = (ctx.stock_diameter - end_d) / 2.0
    doc = _num(config, "depth_of_cut", RoughingParameters.depth_of_cut)
    fields: dict[str, Any] = dict(
        start_diameter=ctx.stock_diameter,
        end_diameter=end_d,
        start_z=env.max_z,
        end_z=env.min_z,
        depth_of_cut=min(doc, removal) if removal > 0.0 else doc,
        stock_allowance=_num(config, "stock_allowance", RoughingParameters.stock_allowance),
        feed_rate=_num(config, "feed_rate", RoughingParameters.feed_rate),
        spindle_speed=_num(config, "spindle_speed", RoughingParameters.spindle_speed),
        safety_height=ctx.safety_height,
        clearance=ctx.clearance,
        use_profile_following=True,
        profile_tolerance=ctx.profile_tolerance,
    )
    if stepover:
        fields["stepover"] = min(ctx.tool.cutting.stepover, removal) if removal > 0.0 else ctx.tool.cutting.stepover
    strategy = config.value("strategy")
    if strategy:
        fields["strategy"] = parse_enum(RoughingStrategy, strategy)
    return fields


def _roughing(config: OperationConfig, ctx: BuildContext) -> RoughingParameters:
    return RoughingParameters(**_roughing_fields(config, ctx, stepover=False))


def _external_roughing(config: OperationConfig, ctx: BuildContext) -> ExternalRoughingParameters:
    return ExternalRoughingParameters(**_roughing_fields(config, ctx, stepover=True))


def _finishing(config: OperationConfig, ctx: BuildContext) -> FinishingParameters:
    env = ctx.envelope
    rpm = config.get("spindle_speed")
    return FinishingParameters(
        target_diameter=2.0 * env.max_radius,
        start_z=env.max_z,
        end_z=env.min_z,
        feed_rate=_num(config, "feed_rate", FinishingParameters.feed_rate),
        # constant surface speed unless the user fixed the RPM
        spindle_speed=float(rpm.value) if rpm is not None and rpm.provided else None,
        max_spindle_speed=ctx.max_spindle_speed,
        safety_height=ctx.safety_height,
        clearance=ctx.clearance,
        profile_tolerance=ctx.profile_tolerance,
    )


def _grooving(config: OperationConfig, ctx: BuildContext) -> GroovingParameters:
    env = ctx.envelope
    width = _num(config, "groove_width", GroovingParameters.groove_width)
    groove_z = float(_override(config, "groove_z", (env.min_z + env.max_z) / 2.0 + width / 2.0))
    radius = _radius_over(ctx.profile, groove_z - width, groove_z, env.max_radius)
    return GroovingParameters(
        groove_diameter=2.0 * radius,
        groove_width=width,
        groove_depth=_num(config, "groove_depth", GroovingParameters.groove_depth),
        groove_z=groove_z,
        feed_rate=_num(config, "feed_rate", GroovingParameters.feed_rate),
        spindle_speed=_num(config, "spindle_speed", GroovingParameters.spindle_speed),
        peck_depth=_num(config, "peck_depth", GroovingParameters.peck_depth),
        safety_height=ctx.safety_height,
        clearance=ctx.clearance,
    )


def _threading(config: OperationConfig, ctx: BuildContext) -> ThreadingParameters:
    env = ctx.envelope
    return ThreadingParameters(
        major_diameter=2.0 * env.max_radius,
        pitch=_num(config, "thread_pitch", ThreadingParameters.pitch),
        thread_depth=_num(config, "thread_depth", ThreadingParameters.thread_depth),
        thread_length=min(DEFAULT_THREAD_LENGTH, env.length),
        start_z=env.max_z,
        number_of_passes=int(round(_num(config, "thread_passes", ThreadingParameters.number_of_passes))),
        feed_rate=_num(config, "feed_rate", ThreadingParameters.feed_rate),
        spindle_speed=_num(config, "spindle_speed", ThreadingParameters.spindle_speed),
        safety_height=ctx.safety_height,
        clearance=ctx.clearance,
        thread_designation=str(config.value("thread_designation", "") or ""),
    )


def _parting(config: OperationConfig, ctx: BuildContext) -> PartingParameters:
    env = ctx.envelope
    params = PartingParameters(
        parting_diameter=ctx.stock_diameter,
        parting_z=env.min_z,
        parting_width=_num(config, "parting_width", ctx.tool.geometry.insert_width),
        feed_rate=_num(config, "feed_rate", PartingParameters.feed_rate),
        spindle_speed=_num(config, "spindle_speed", PartingParameters.spindle_speed),
        depth_of_cut=_num(config, "peck_depth", PartingParameters.depth_of_cut),
        safety_height=ctx.safety_height,
        clearance=ctx.clearance,
    )
    strategy = config.value("strategy")
    if strategy:
        params = replace(params, strategy=parse_enum(PartingStrategy, strategy))
    return params


def _contouring(config: OperationConfig, ctx: BuildContext) -> ContouringParameters:
    feed = _num(config, "feed_rate", RoughingParameters.feed_rate)
    rpm = _num(config, "spindle_speed", RoughingParameters.spindle_speed)
    doc = _num(config, "depth_of_cut", RoughingParameters.depth_of_cut)
    return ContouringParameters(
        safety_height=ctx.safety_height,
        clearance=ctx.clearance,
        facing_params=FacingParameters(feed_rate=feed, spindle_speed=rpm, depth_of_cut=doc),
        roughing_params=RoughingParameters(
            feed_rate=feed,
            spindle_speed=rpm,
            depth_of_cut=doc,
            stock_allowance=_num(config, "stock_allowance", RoughingParameters.stock_allowance),
            use_profile_following=True,
        ),
        finishing_params=FinishingParameters(feed_rate=min(feed, FinishingParameters.feed_rate)),
        profile_tolerance=ctx.profile_tolerance,
        profile_sections=ctx.profile_sections,
        facing_allowance=ctx.facing_allowance,
        time_overhead_factor=ctx.time_overhead_factor,
        stock_diameter=ctx.stock_diameter,
    )


_BUILDERS: dict[OperationType, Callable[[OperationConfig, BuildContext], Any]] = {
    OperationType.FACING: _facing,
    OperationType.ROUGHING: _roughing,
    OperationType.EXTERNAL_ROUGHING: _external_roughing,
    OperationType.FINISHING: _finishing,
    OperationType.GROOVING: _grooving,
    OperationType.THREADING: _threading,
    OperationType.PARTING: _parting,
    OperationType.CONTOURING: _contouring,
}


def build_parameters(config: OperationConfig, ctx: BuildContext) -> tuple[Any, list[str]]:
    """Typed parameters for ``config.operation_type``.

    Returns
    -------
    tuple
        The parameters and the override names that matched no field.

    Raises
    ------
    ParameterError
        For an operation type without a builder or an unknown strategy.
    """
    builder = _BUILDERS.get(config.operation_type)
    if builder is None:
        raise ParameterError(f"No parameter builder for {config.operation_type.value}")
    params = builder(config, ctx)
    overrides = {
        name: _coerce(getattr(params, name, None), value) for name, value in config.overrides.items()
    }
    params, unknown = apply_overrides(params, overrides)
    if unknown:
        logger.warning(
            "%s: ignoring unknown parameters %s", config.operation_type.value, ", ".join(unknown)
        )
    return params, unknown
