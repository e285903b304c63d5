"""Common operation contract and shared path-building helpers.

Every machining operation owns a ``Parameters`` dataclass and a ``Tool``.
It exposes:

    - ``validate_parameters(params) -> str``: pure static check, empty on
      success, otherwise the reasons joined by ``"; "``
    - ``validate() -> bool``: tool present, compatible, parameters valid
    - ``generate_toolpath(part) -> Toolpath``: extract the profile, then plan
    - ``generate_from_profile(profile) -> Toolpath``: plan against an
      already-extracted, shared profile (used by the pipeline)

A failing ``validate()`` blocks generation with :class:`OperationError`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from typing import Any, ClassVar, Generic, Mapping, TypeVar

from lathe_cam.errors import OperationError, ParameterError
from lathe_cam.geometry.primitives import Point3D, TurningAxis
from lathe_cam.geometry.solids import Part
from lathe_cam.profile.extractor import Profile2D, extract_segment_profile
from lathe_cam.toolpath.types import OperationType, Tool, ToolType, Toolpath

logger = logging.getLogger(__name__)

P = TypeVar("P")

# Points closer to the axis than this are treated as lying on it.
AXIS_TOLERANCE = 1e-6


def point(radius: float, z: float) -> Point3D:
    """Tool position at *radius* from the axis and axial position *z*."""
    return Point3D(radius, 0.0, z)


def apply_overrides(params: P, overrides: Mapping[str, Any]) -> tuple[P, list[str]]:
    """Replace dataclass fields named in *overrides*.

    Returns
    -------
    tuple
        The updated parameters and the override names that matched no field.
    """
    names = {f.name for f in fields(params)}
    known = {k: v for k, v in overrides.items() if k in names}
    unknown = sorted(k for k in overrides if k not in names)
    return (replace(params, **known) if known else params), unknown


# ---------------------------------------------------------------------------
# Profile envelope
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CuttingEnvelope:
    """Extents of the material-bearing part of a profile.

    Points on the turning axis are ignored for ``min_radius`` so end faces
    running to the centre do not collapse the envelope.
    """

    min_z: float
    max_z: float
    min_radius: float
    max_radius: float

    @property
    def length(self) -> float:
        return self.max_z - self.min_z


def cutting_envelope(profile: Profile2D, tolerance: float = 0.01) -> CuttingEnvelope:
    """Envelope of *profile*.

    Raises
    ------
    ParameterError
        If the profile is empty or lies entirely on the axis.
    """
    pts = [p for p in profile.to_point_array(tolerance) if p.x > AXIS_TOLERANCE]
    if not pts:
        raise ParameterError("Profile has no points off the turning axis")
    return CuttingEnvelope(
        min_z=min(p.z for p in pts),
        max_z=max(p.z for p in pts),
        min_radius=min(p.x for p in pts),
        max_radius=max(p.x for p in pts),
    )


def sample_breakpoints(profile: Profile2D, z_lo: float, z_hi: float, tolerance: float) -> list[float]:
    """Distinct profile Z values inside ``[z_lo, z_hi]``, both ends included."""
    zs = {z_lo, z_hi}
    for p in profile.to_point_array(tolerance):
        if z_lo < p.z < z_hi:
            zs.add(p.z)
    return sorted(zs)


# ---------------------------------------------------------------------------
# Operation base
# ---------------------------------------------------------------------------


class Operation(ABC, Generic[P]):
    """Base class of the closed operation family.

    Parameters
    ----------
    name : str
        Display name, also used as the toolpath name.
    tool : Tool | None
        Cutting tool; generation fails without one.
    params : P | None
        Operation parameters; the class defaults when ``None``.
    """

    operation_type: ClassVar[OperationType] = OperationType.UNKNOWN
    compatible_tools: ClassVar[tuple[ToolType, ...]] = ()

    def __init__(self, name: str, tool: Tool | None = None, params: P | None = None) -> None:
        self.name = name
        self.tool = tool
        self.params: P = params if params is not None else self.default_parameters()
        # non-fatal problems of the last generation, each naming its source
        self.warnings: list[str] = []

    def __repr__(self) -> str:
        tool = self.tool.name if self.tool else None
        return f"{type(self).__name__}(name={self.name!r}, tool={tool!r})"

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @classmethod
    @abstractmethod
    def default_parameters(cls) -> P:
        """Fresh default parameters."""

    @staticmethod
    @abstractmethod
    def validate_parameters(params: Any) -> str:
        """Empty string when *params* are usable, else the reasons."""

    @abstractmethod
    def _build(self, profile: Profile2D | None) -> Toolpath:
        """Plan the moves; parameters and tool are already validated."""

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validation_error(self) -> str:
        """Why :meth:`validate` fails, or an empty string."""
        if self.tool is None:
            return f"{self.operation_type.value} requires a tool"
        if self.compatible_tools and self.tool.tool_type not in self.compatible_tools:
            allowed = " or ".join(t.value for t in self.compatible_tools)
            return (
                f"Tool '{self.tool.name}' ({self.tool.tool_type.value}) is not "
                f"compatible with {self.operation_type.value}; needs {allowed}"
            )
        return self.validate_parameters(self.params)

    def validate(self) -> bool:
        return not self.validation_error()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_toolpath(
        self,
        part: Part,
        axis: TurningAxis | None = None,
        tolerance: float = 0.01,
    ) -> Toolpath:
        """Extract the part profile and plan the toolpath against it."""
        profile = extract_segment_profile(part, axis, tolerance)
        return self.generate_from_profile(profile)

    def generate_from_profile(self, profile: Profile2D | None) -> Toolpath:
        """Plan against an already extracted profile.

        Raises
        ------
        OperationError
            If :meth:`validate` fails.
        """
        reason = self.validation_error()
        if reason:
            raise OperationError(f"{self.name}: {reason}")
        self.warnings = []
        path = self._build(profile)
        logger.debug(
            "%s: %d moves, %.1f mm cutting", self.name, len(path), path.cutting_length()
        )
        return path

    def estimate_material_removed(self, profile: Profile2D | None) -> float:
        """Volume (mm^3) the operation removes; 0 when not modelled."""
        return 0.0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_toolpath(
        self,
        feed_rate: float,
        spindle_speed: float,
        name: str | None = None,
    ) -> Toolpath:
        """Empty toolpath whose tool carries this operation's cutting data."""
        if self.tool is None:
            raise OperationError(f"{self.name}: no tool assigned")
        tool = replace(
            self.tool,
            cutting=replace(
                self.tool.cutting, feed_rate=feed_rate, spindle_speed=spindle_speed
            ),
        )
        return Toolpath(name or self.name, tool, self.operation_type)
