"""Threading: external single-point threads cut in successive passes.

Helical motion is approximated by straight Z passes at increasing radial
depth; each cutting move feeds one pitch per revolution.  Per-pass depths
are either constant or degressive: every pass removes ``1 - degression``
of the depth still remaining, and the last pass takes whatever is left.
Spring passes repeat the full depth without further infeed.

Thread geometry comes from explicit parameters or from a designation
string such as ``"M20x1.5"``, ``"M12"`` or ``"1/4-20 UNC"``.
"""

from __future__ import annotations

import bisect
import logging
import math
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from fractions import Fraction

from lathe_cam.errors import OperationError, ParameterError
from lathe_cam.operations.base import Operation, point
from lathe_cam.profile.extractor import Profile2D
from lathe_cam.toolpath.types import OperationType, Tool, ToolType, Toolpath

logger = logging.getLogger(__name__)

MM_PER_INCH = 25.4

# Lead-in and lead-out as multiples of the pitch.
LEAD_IN_PITCHES = 2.0
LEAD_OUT_PITCHES = 1.0
CHAMFER_FEED_FACTOR = 0.8


class ThreadForm(Enum):
    METRIC = "Metric"
    UNC = "UNC"
    UNF = "UNF"
    ACME = "ACME"
    TRAPEZOIDAL = "Trapezoidal"
    BSW = "BSW"
    CUSTOM = "Custom"


# Included flank angle (degrees) per form.
THREAD_ANGLES: dict[ThreadForm, float] = {
    ThreadForm.METRIC: 60.0,
    ThreadForm.UNC: 60.0,
    ThreadForm.UNF: 60.0,
    ThreadForm.ACME: 29.0,
    ThreadForm.TRAPEZOIDAL: 30.0,
    ThreadForm.BSW: 55.0,
    ThreadForm.CUSTOM: 60.0,
}

# External thread depth as a fraction of pitch.
DEPTH_FACTORS: dict[ThreadForm, float] = {
    ThreadForm.METRIC: 0.613,
    ThreadForm.UNC: 0.613,
    ThreadForm.UNF: 0.613,
    ThreadForm.ACME: 0.5,
    ThreadForm.TRAPEZOIDAL: 0.5,
    ThreadForm.BSW: 0.640,
    ThreadForm.CUSTOM: 0.613,
}

# ISO 261 coarse pitch series, nominal diameter (mm) -> pitch (mm).
ISO_METRIC_COARSE: dict[float, float] = {
    1.0: 0.25, 1.2: 0.25, 1.6: 0.35, 2.0: 0.4, 2.5: 0.45, 3.0: 0.5,
    4.0: 0.7, 5.0: 0.8, 6.0: 1.0, 8.0: 1.25, 10.0: 1.5, 12.0: 1.75,
    14.0: 2.0, 16.0: 2.0, 18.0: 2.5, 20.0: 2.5, 22.0: 2.5, 24.0: 3.0,
    27.0: 3.0, 30.0: 3.5, 33.0: 3.5, 36.0: 4.0, 39.0: 4.0, 42.0: 4.5,
    45.0: 4.5, 48.0: 5.0, 52.0: 5.0, 56.0: 5.5, 60.0: 5.5, 64.0: 6.0,
}
_ISO_KEYS = sorted(ISO_METRIC_COARSE)

_METRIC_RE = re.compile(r"^M(\d+(?:\.\d+)?)(?:\s*[xX×]\s*(\d+(?:\.\d+)?))?$")
_INCH_RE = re.compile(r"^(\d+/\d+|\d+(?:\.\d+)?)\s*-\s*(\d+)\s*(UNC|UNF)?$", re.IGNORECASE)


def coarse_pitch(diameter: float) -> float:
    """ISO coarse pitch for *diameter* (nearest tabulated size at or below)."""
    i = bisect.bisect_right(_ISO_KEYS, diameter + 1e-9) - 1
    return ISO_METRIC_COARSE[_ISO_KEYS[max(i, 0)]]


@dataclass(frozen=True)
class ThreadSpec:
    """Geometry parsed from a thread designation."""

    major_diameter: float
    pitch: float
    form: ThreadForm

    @property
    def depth(self) -> float:
        return DEPTH_FACTORS[self.form] * self.pitch


def parse_thread_designation(designation: str) -> ThreadSpec:
    """Parse ``"M20x1.5"``, ``"M12"``, ``"1/4-20 UNC"`` or ``"0.5-13"``.

    Raises
    ------
    ParameterError
        If the designation matches no supported pattern.
    """
    text = designation.strip()
    m = _METRIC_RE.match(text)
    if m:
        d = float(m.group(1))
        pitch = float(m.group(2)) if m.group(2) else coarse_pitch(d)
        return ThreadSpec(d, pitch, ThreadForm.METRIC)
    m = _INCH_RE.match(text)
    if m:
        inches = float(Fraction(m.group(1)))
        tpi = int(m.group(2))
        if tpi <= 0:
            raise ParameterError(f"Invalid threads per inch in '{designation}'")
        form = ThreadForm.UNF if (m.group(3) or "").upper() == "UNF" else ThreadForm.UNC
        return ThreadSpec(inches * MM_PER_INCH, MM_PER_INCH / tpi, form)
    raise ParameterError(f"Unrecognised thread designation '{designation}'")


@dataclass(frozen=True)
class ThreadingParameters:
    """Thread geometry and cutting data.

    ``feed_rate`` (mm/rev) applies to chamfers only; threading passes
    always feed one pitch per revolution.  A non-empty
    ``thread_designation`` overrides diameter, pitch, depth and form.
    """

    major_diameter: float = 20.0
    pitch: float = 1.5
    thread_depth: float = 0.92
    thread_length: float = 30.0
    start_z: float = 0.0
    thread_form: ThreadForm = ThreadForm.METRIC
    number_of_passes: int = 6
    constant_depth_passes: bool = False
    degression: float = 0.8
    spring_passes: int = 1
    infeed_angle: float = 29.5
    feed_rate: float = 0.1
    spindle_speed: float = 300.0
    safety_height: float = 5.0
    clearance: float = 1.0
    chamfer_thread_start: bool = False
    chamfer_thread_end: bool = False
    thread_designation: str = ""

    @property
    def end_z(self) -> float:
        return self.start_z - self.thread_length


@dataclass
class ThreadingResult:
    success: bool = False
    error_message: str = ""
    threading_toolpath: Toolpath | None = None
    chamfer_toolpaths: list[Toolpath] = field(default_factory=list)
    used_parameters: ThreadingParameters | None = None
    pass_depths: list[float] = field(default_factory=list)
    total_passes: int = 0
    actual_thread_depth: float = 0.0
    minor_diameter: float = 0.0
    pitch_diameter: float = 0.0
    thread_angle: float = 0.0
    estimated_time: float = 0.0
    material_removed: float = 0.0


def resolve_designation(params: ThreadingParameters) -> ThreadingParameters:
    """Apply ``thread_designation`` to the geometry fields, if set."""
    if not params.thread_designation:
        return params
    spec = parse_thread_designation(params.thread_designation)
    return replace(
        params,
        major_diameter=spec.major_diameter,
        pitch=spec.pitch,
        thread_depth=spec.depth,
        thread_form=spec.form,
    )


def calculate_depth_progression(params: ThreadingParameters) -> list[float]:
    """Cumulative radial depth reached by each cutting pass."""
    n = params.number_of_passes
    total = params.thread_depth
    if params.constant_depth_passes:
        return [total * k / n for k in range(1, n + 1)]
    depths: list[float] = []
    remaining = total
    current = 0.0
    for k in range(n):
        if k == n - 1:
            current = total
        else:
            step = remaining * (1.0 - params.degression)
            current += step
            remaining -= step
        depths.append(current)
    return depths


def thread_geometry(params: ThreadingParameters) -> tuple[float, float, float]:
    """(minor diameter, pitch diameter, included angle)."""
    return (
        params.major_diameter - 2.0 * params.thread_depth,
        params.major_diameter - params.thread_depth,
        THREAD_ANGLES[params.thread_form],
    )


class ThreadingOperation(Operation[ThreadingParameters]):
    operation_type = OperationType.THREADING
    compatible_tools = (ToolType.THREADING, ToolType.TURNING)

    def __init__(
        self,
        name: str = "Threading",
        tool: Tool | None = None,
        params: ThreadingParameters | None = None,
    ) -> None:
        super().__init__(name, tool, params)

    @classmethod
    def default_parameters(cls) -> ThreadingParameters:
        return ThreadingParameters()

    @staticmethod
    def validate_parameters(params: ThreadingParameters) -> str:
        try:
            p = resolve_designation(params)
        except ParameterError as exc:
            return str(exc)
        errors: list[str] = []
        if p.major_diameter <= 0.0:
            errors.append("Major diameter must be positive")
        if p.pitch <= 0.0:
            errors.append("Thread pitch must be positive")
        if p.thread_depth <= 0.0:
            errors.append("Thread depth must be positive")
        if p.thread_length <= 0.0:
            errors.append("Thread length must be positive")
        if p.number_of_passes < 1:
            errors.append("Number of passes must be at least 1")
        if p.spring_passes < 0:
            errors.append("Spring passes cannot be negative")
        if not 0.0 < p.degression <= 1.0:
            errors.append("Degression must be in (0, 1]")
        if not 0.0 <= p.infeed_angle < 60.0:
            errors.append("Infeed angle must be in [0, 60) degrees")
        if p.feed_rate <= 0.0:
            errors.append("Feed rate must be positive")
        if p.spindle_speed <= 0.0:
            errors.append("Spindle speed must be positive")
        if p.major_diameter > 0.0:
            if p.thread_depth > p.major_diameter / 4.0:
                errors.append("Thread depth is too large for diameter")
            if p.pitch > p.major_diameter / 3.0:
                errors.append("Thread pitch is too large for diameter")
        return "; ".join(errors)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_toolpaths(self, profile: Profile2D | None = None) -> ThreadingResult:
        """Plan threading and chamfer passes; problems go into the result."""
        result = ThreadingResult()
        reason = self.validation_error()
        if reason:
            result.error_message = reason
            return result

        p = resolve_designation(self.params)
        depths = calculate_depth_progression(p)
        depths += [p.thread_depth] * p.spring_passes
        minor, pitch_d, angle = thread_geometry(p)

        # cutting feed is the pitch itself (mm/rev)
        path = self._new_toolpath(p.pitch, p.spindle_speed)
        outside = p.major_diameter / 2.0 + p.clearance
        path.add_rapid(point(outside, p.start_z + p.safety_height), "Threading start")
        for i, d in enumerate(depths, start=1):
            self._single_pass(path, p, d, i)
        path.add_rapid(point(outside, p.start_z + p.safety_height), "Threading end")

        if p.chamfer_thread_start:
            result.chamfer_toolpaths.append(self._chamfer(p, at_start=True))
        if p.chamfer_thread_end:
            result.chamfer_toolpaths.append(self._chamfer(p, at_start=False))

        result.threading_toolpath = path
        result.used_parameters = p
        result.pass_depths = depths
        result.total_passes = len(depths)
        result.actual_thread_depth = depths[-1]
        result.minor_diameter = minor
        result.pitch_diameter = pitch_d
        result.thread_angle = angle
        result.estimated_time = path.estimate_machining_time() + sum(
            tp.estimate_machining_time() for tp in result.chamfer_toolpaths
        )
        result.material_removed = self._removed_volume(p)
        result.success = True
        logger.info(
            "%s: %s D=%.3f P=%.3f depth=%.3f, %d passes",
            self.name,
            p.thread_form.value,
            p.major_diameter,
            p.pitch,
            p.thread_depth,
            result.total_passes,
        )
        return result

    def _single_pass(self, path: Toolpath, p: ThreadingParameters, depth: float, number: int) -> None:
        r = p.major_diameter / 2.0 - depth
        outside = p.major_diameter / 2.0 + p.clearance
        shift = depth * math.tan(math.radians(p.infeed_angle))
        z0 = p.start_z + LEAD_IN_PITCHES * p.pitch + shift
        z_out = p.end_z + LEAD_OUT_PITCHES * p.pitch
        path.add_rapid(point(outside, z0), f"Pass {number} depth {depth:.3f}")
        path.add_rapid(point(r, z0))
        path.add_linear(point(r, z_out), p.pitch)
        # pull out over the lead-out
        path.add_linear(point(min(r + LEAD_OUT_PITCHES * p.pitch, outside), p.end_z), p.pitch)
        path.add_rapid(point(outside, p.end_z))

    def _chamfer(self, p: ThreadingParameters, at_start: bool) -> Toolpath:
        feed = p.feed_rate * CHAMFER_FEED_FACTOR
        label = "Start" if at_start else "End"
        path = self._new_toolpath(feed, p.spindle_speed, f"{self.name} Chamfer {label}")
        r = p.major_diameter / 2.0
        c = p.thread_depth
        outside = r + p.clearance
        if at_start:
            path.add_rapid(point(r - c, p.start_z + p.clearance))
            path.add_linear(point(r - c, p.start_z), feed)
            path.add_linear(point(r, p.start_z - c), feed, "Thread start chamfer")
            path.add_rapid(point(outside, p.start_z - c))
        else:
            path.add_rapid(point(outside, p.end_z + c + p.clearance))
            path.add_rapid(point(r, p.end_z + c))
            path.add_linear(point(r - c, p.end_z), feed, "Thread end chamfer")
            path.add_rapid(point(outside, p.end_z))
        path.add_rapid(point(outside, p.start_z + p.safety_height))
        return path

    @staticmethod
    def _removed_volume(p: ThreadingParameters) -> float:
        # half of the annulus between major and minor diameter, at the pitch diameter
        return math.pi * (p.major_diameter - p.thread_depth) * 0.5 * p.thread_depth * p.thread_length

    def _build(self, profile: Profile2D | None) -> Toolpath:
        result = self.generate_toolpaths(profile)
        if not result.success:
            raise OperationError(f"{self.name}: {result.error_message}")
        path = result.threading_toolpath
        for chamfer in result.chamfer_toolpaths:
            path.extend(chamfer)
        return path

    def estimate_material_removed(self, profile: Profile2D | None) -> float:
        return self._removed_volume(resolve_designation(self.params))

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_thread_parameters(designation: str) -> ThreadingParameters:
        """Parameters for a standard designation.

        Raises
        ------
        ParameterError
            If the designation cannot be parsed.
        """
        spec = parse_thread_designation(designation)
        return ThreadingParameters(
            major_diameter=spec.major_diameter,
            pitch=spec.pitch,
            thread_depth=spec.depth,
            thread_form=spec.form,
        )

    @staticmethod
    def get_default_parameters(
        form: ThreadForm, diameter: float, material: str = "steel"
    ) -> ThreadingParameters:
        """Form-, size- and material-tuned parameters."""
        if form is ThreadForm.METRIC:
            pitch = coarse_pitch(diameter)
        elif form in (ThreadForm.UNC, ThreadForm.UNF):
            pitch = max(0.5, diameter * 0.1)
        elif form is ThreadForm.ACME:
            pitch = max(1.5, diameter * 0.15)
        elif form is ThreadForm.TRAPEZOIDAL:
            pitch = max(1.5, diameter * 0.08)
        elif form is ThreadForm.BSW:
            pitch = max(1.0, diameter * 0.075)
        else:
            pitch = ThreadingParameters.pitch

        rpm = {"aluminum": 500.0, "stainless_steel": 200.0, "stainless": 200.0}.get(
            material.lower(), 300.0
        )
        return ThreadingParameters(
            major_diameter=diameter,
            pitch=pitch,
            thread_depth=DEPTH_FACTORS[form] * pitch,
            thread_form=form,
            spindle_speed=rpm,
        )
