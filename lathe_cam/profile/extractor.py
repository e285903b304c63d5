"""2D profile extraction from a turned part.

Sections the part with the plane containing the turning axis and keeps the
positive-radius half of the section: the generatrix of the solid of
revolution.  The result is a :class:`Profile2D`, an arena of
:class:`ProfileSegment` values sorted by axial position.

Coordinates are ``(x, z)``: ``x`` is the radius (>= 0), ``z`` the axial
position along the turning axis.

Usage::

    from lathe_cam.profile import extract_segment_profile
    profile = extract_segment_profile(part, TurningAxis(), tolerance=0.01)
    if profile.is_empty():
        ...
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterator

from lathe_cam.errors import GeometryError, ParameterError
from lathe_cam.geometry.primitives import Point2D, TurningAxis
from lathe_cam.geometry.solids import Part, SectionEdge

logger = logging.getLogger(__name__)

_AXIS_EPS = 1e-9
_BISECT_TOL = 1e-6
_BISECT_MAX_ITER = 50


# ---------------------------------------------------------------------------
# Arc helpers (2D, angle measured from +z toward +x)
# ---------------------------------------------------------------------------


def _angle(c: Point2D, p: Point2D) -> float:
    return math.atan2(p.x - c.x, p.z - c.z)


def _arc_sweep(start: Point2D, mid: Point2D, end: Point2D, c: Point2D) -> tuple[float, float]:
    """Return ``(start_angle, signed_sweep)`` of the arc through *mid*."""
    two_pi = 2.0 * math.pi
    a0 = _angle(c, start)
    positive = (_angle(c, end) - a0) % two_pi
    if positive == 0.0:
        positive = two_pi
    if (_angle(c, mid) - a0) % two_pi < positive:
        return a0, positive
    return a0, positive - two_pi


def _arc_point(c: Point2D, r: float, angle: float) -> Point2D:
    return Point2D(c.x + r * math.sin(angle), c.z + r * math.cos(angle))


# ---------------------------------------------------------------------------
# Segment & profile
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProfileSegment:
    """One boundary piece of the profile.

    ``mid`` and ``center`` are set for circular arcs so intermediate points
    can be re-derived; linear segments carry only their endpoints.
    """

    start: Point2D
    end: Point2D
    length: float
    is_linear: bool = True
    mid: Point2D | None = None
    center: Point2D | None = None

    @classmethod
    def line(cls, start: Point2D, end: Point2D) -> ProfileSegment:
        return cls(start, end, start.distance_to(end))

    @classmethod
    def arc(cls, start: Point2D, mid: Point2D, end: Point2D, center: Point2D) -> ProfileSegment:
        r = center.distance_to(start)
        _, sweep = _arc_sweep(start, mid, end, center)
        return cls(start, end, abs(sweep) * r, False, mid, center)

    @property
    def z_min(self) -> float:
        return min(self.start.z, self.end.z)

    @property
    def z_max(self) -> float:
        return max(self.start.z, self.end.z)

    @property
    def average_z(self) -> float:
        return (self.start.z + self.end.z) / 2.0

    def is_vertical(self, tol: float = 1e-9) -> bool:
        """True for radial faces (constant z)."""
        return self.is_linear and abs(self.start.z - self.end.z) <= tol

    def point_at(self, t: float) -> Point2D:
        """Point at parameter ``t`` in [0, 1] from start to end."""
        if self.is_linear or self.center is None:
            return Point2D(
                self.start.x + (self.end.x - self.start.x) * t,
                self.start.z + (self.end.z - self.start.z) * t,
            )
        c = self.center
        a0, sweep = _arc_sweep(self.start, self.mid, self.end, c)
        return _arc_point(c, c.distance_to(self.start), a0 + sweep * t)

    def reversed(self) -> ProfileSegment:
        return ProfileSegment(
            self.end, self.start, self.length, self.is_linear, self.mid, self.center
        )

    def interior_points(self, tolerance: float) -> list[Point2D]:
        """Intermediate points for curved segments at the given chord tolerance.

        Arcs are subdivided so the sagitta stays within *tolerance*; curved
        segments without a centre get their midpoint only.
        """
        if self.is_linear or self.length <= 2.0 * tolerance:
            return []
        if self.center is None:
            return [self.mid] if self.mid is not None else []
        r = self.center.distance_to(self.start)
        if tolerance >= r:
            return [self.point_at(0.5)]
        max_step = 2.0 * math.acos(1.0 - tolerance / r)
        sweep = self.length / r
        n = max(2, math.ceil(sweep / max_step))
        return [self.point_at(i / n) for i in range(1, n)]

    def radius_at(self, z: float) -> float | None:
        """Radius of the segment at axial position *z*, or ``None``."""
        if z < self.z_min - _AXIS_EPS or z > self.z_max + _AXIS_EPS:
            return None
        if self.is_linear or self.center is None:
            dz = self.end.z - self.start.z
            if abs(dz) <= _AXIS_EPS:
                return max(self.start.x, self.end.x)
            t = (z - self.start.z) / dz
            return self.start.x + (self.end.x - self.start.x) * t
        c = self.center
        r = c.distance_to(self.start)
        h = r * r - (z - c.z) ** 2
        if h < 0.0:
            return None
        a0, sweep = _arc_sweep(self.start, self.mid, self.end, c)
        two_pi = 2.0 * math.pi
        best: float | None = None
        for x in (c.x + math.sqrt(h), c.x - math.sqrt(h)):
            a = _angle(c, Point2D(x, z))
            if sweep > 0.0:
                travel = (a - a0) % two_pi
            else:
                travel = (a0 - a) % two_pi
            if travel <= abs(sweep) + 1e-9 and (best is None or x > best):
                best = x
        return best


@dataclass(frozen=True, slots=True)
class ProfileBounds:
    """Axial and radial extents of a profile."""

    min_z: float = 0.0
    max_z: float = 0.0
    min_radius: float = 0.0
    max_radius: float = 0.0

    @property
    def length(self) -> float:
        return self.max_z - self.min_z


@dataclass(frozen=True)
class Profile2D:
    """Ordered (radius, z) boundary of the part's generatrix.

    Segments are sorted by non-decreasing average Z and addressed by index.
    An empty profile is a valid state; check it with :meth:`is_empty`.
    """

    segments: tuple[ProfileSegment, ...] = ()

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[ProfileSegment]:
        return iter(self.segments)

    def is_empty(self) -> bool:
        return not self.segments

    def segment(self, index: int) -> ProfileSegment:
        return self.segments[index]

    @property
    def total_length(self) -> float:
        return sum(s.length for s in self.segments)

    def bounds(self) -> ProfileBounds:
        """Extents over all segment endpoints; zeros for an empty profile."""
        if not self.segments:
            return ProfileBounds()
        pts = [p for s in self.segments for p in (s.start, s.end)]
        for s in self.segments:
            if not s.is_linear and s.mid is not None:
                pts.append(s.mid)
        return ProfileBounds(
            min_z=min(p.z for p in pts),
            max_z=max(p.z for p in pts),
            min_radius=min(p.x for p in pts),
            max_radius=max(p.x for p in pts),
        )

    def to_point_array(self, tolerance: float = 0.01) -> list[Point2D]:
        """Flatten into an ordered point list.

        Each segment contributes its start, interior points for curved
        segments, and its end.  Consecutive duplicates are dropped.
        """
        out: list[Point2D] = []

        def push(p: Point2D) -> None:
            if not out or not out[-1].is_close(p, 1e-9):
                out.append(p)

        for seg in self.segments:
            push(seg.start)
            for p in seg.interior_points(tolerance):
                push(p)
            push(seg.end)
        return out

    def radius_at(self, z: float) -> float | None:
        """Largest profile radius at *z*; ``None`` outside the profile."""
        best: float | None = None
        for seg in self.segments:
            r = seg.radius_at(z)
            if r is not None and (best is None or r > best):
                best = r
        return best

    def min_radius_between(self, z0: float, z1: float, floor: float = 0.0) -> float | None:
        """Smallest boundary radius strictly above *floor* in ``[z0, z1]``."""
        lo, hi = min(z0, z1), max(z0, z1)
        radii = [
            p.x
            for s in self.segments
            for p in (s.start, s.end)
            if lo - _AXIS_EPS <= p.z <= hi + _AXIS_EPS and p.x > floor
        ]
        return min(radii) if radii else None


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtractionParameters:
    """Knobs for :class:`ProfileExtractor`."""

    turning_axis: TurningAxis = field(default_factory=TurningAxis)
    tolerance: float = 0.01
    merge_collinear: bool = True
    sort_segments: bool = True


def _split_linear(a: Point2D, b: Point2D) -> list[tuple[Point2D, Point2D]]:
    """Keep the positive-radius part of a line segment."""
    if a.x >= -_AXIS_EPS and b.x >= -_AXIS_EPS:
        return [(Point2D(max(a.x, 0.0), a.z), Point2D(max(b.x, 0.0), b.z))]
    if a.x <= _AXIS_EPS and b.x <= _AXIS_EPS:
        return []
    t = a.x / (a.x - b.x)
    cross = Point2D(0.0, a.z + (b.z - a.z) * t)
    return [(cross, b)] if b.x > 0.0 else [(a, cross)]


def _bisect_axis(seg: ProfileSegment, t0: float, t1: float) -> float:
    """Parameter in ``[t0, t1]`` where the arc meets the axis."""
    x0 = seg.point_at(t0).x
    for _ in range(_BISECT_MAX_ITER):
        tm = (t0 + t1) / 2.0
        xm = seg.point_at(tm).x
        if abs(xm) < _BISECT_TOL or (t1 - t0) < _BISECT_TOL:
            return tm
        if (xm > 0.0) == (x0 > 0.0):
            t0, x0 = tm, xm
        else:
            t1 = tm
    return (t0 + t1) / 2.0


def _split_arc(seg: ProfileSegment) -> list[ProfileSegment]:
    """Keep the positive-radius pieces of an arc."""
    samples = 16
    ts = [i / samples for i in range(samples + 1)]
    xs = [seg.point_at(t).x for t in ts]
    if all(x >= -_AXIS_EPS for x in xs):
        return [seg]
    if all(x <= _AXIS_EPS for x in xs):
        return []
    cuts = [0.0]
    for i in range(samples):
        if (xs[i] > 0.0) != (xs[i + 1] > 0.0):
            cuts.append(_bisect_axis(seg, ts[i], ts[i + 1]))
    cuts.append(1.0)
    out: list[ProfileSegment] = []
    for ta, tb in zip(cuts[:-1], cuts[1:]):
        tm = (ta + tb) / 2.0
        if tb - ta < 1e-12 or seg.point_at(tm).x <= 0.0:
            continue
        a = seg.point_at(ta)
        b = seg.point_at(tb)
        out.append(
            ProfileSegment.arc(
                Point2D(max(a.x, 0.0), a.z), seg.point_at(tm), Point2D(max(b.x, 0.0), b.z), seg.center
            )
        )
    return out


def _edge_to_segments(edge: SectionEdge, axis: TurningAxis) -> list[ProfileSegment]:
    a = Point2D(*axis.to_profile(edge.start))
    b = Point2D(*axis.to_profile(edge.end))
    if edge.is_linear:
        return [ProfileSegment.line(p, q) for p, q in _split_linear(a, b)]
    m = Point2D(*axis.to_profile(edge.mid))
    if edge.center is not None:
        c = Point2D(*axis.to_profile(edge.center))
        return _split_arc(ProfileSegment.arc(a, m, b, c))
    # curved edge without a centre: treat as a polyline through the midpoint
    out: list[ProfileSegment] = []
    for p, q in ((a, m), (m, b)):
        out.extend(ProfileSegment.line(s, e) for s, e in _split_linear(p, q))
    return out


def _orient(seg: ProfileSegment) -> ProfileSegment:
    """Point the segment toward +z (radial faces are left alone)."""
    if seg.start.z > seg.end.z + _AXIS_EPS:
        return seg.reversed()
    return seg


def _orient_chain(segments: list[ProfileSegment]) -> list[ProfileSegment]:
    """Flip radial faces so each joins its neighbours end to start."""
    out = list(segments)
    for i, seg in enumerate(out):
        if not seg.is_vertical():
            continue
        if i > 0:
            prev_end = out[i - 1].end
            if seg.end.distance_to(prev_end) < seg.start.distance_to(prev_end):
                out[i] = seg.reversed()
        elif i + 1 < len(out):
            nxt_start = out[i + 1].start
            if seg.start.distance_to(nxt_start) < seg.end.distance_to(nxt_start):
                out[i] = seg.reversed()
    return out


def _merge_collinear(segments: list[ProfileSegment], tol: float) -> list[ProfileSegment]:
    out: list[ProfileSegment] = []
    for seg in segments:
        if out and seg.is_linear and out[-1].is_linear:
            prev = out[-1]
            if prev.end.is_close(seg.start, tol):
                d1 = prev.end - prev.start
                d2 = seg.end - seg.start
                cross = d1.x * d2.z - d1.z * d2.x
                dot = d1.x * d2.x + d1.z * d2.z
                if abs(cross) <= tol * max(prev.length, seg.length) and dot > 0.0:
                    out[-1] = ProfileSegment.line(prev.start, seg.end)
                    continue
        out.append(seg)
    return out


class ProfileExtractor:
    """Configurable profile extraction.

    Parameters
    ----------
    params : ExtractionParameters | None
        Defaults to a Z turning axis at the origin with 0.01 mm tolerance.
    """

    def __init__(self, params: ExtractionParameters | None = None) -> None:
        self.params = params or ExtractionParameters()

    @staticmethod
    def validate_parameters(params: ExtractionParameters) -> str:
        """Return an empty string when valid, else the reason."""
        if params.tolerance <= 0.0:
            return "Tolerance must be positive"
        if params.tolerance > 1.0:
            return "Tolerance too large (max 1.0 mm)"
        return ""

    @staticmethod
    def get_recommended_tolerance(part: Part) -> float:
        """0.1 % of the largest part extent, clamped to [0.001, 0.1] mm."""
        box = part.bounding_box()
        if not box.is_valid():
            return 0.01
        size = box.size()
        extent = max(size.x, size.y, size.z)
        return min(max(extent * 0.001, 0.001), 0.1)

    def extract_profile(self, part: Part | None) -> Profile2D:
        """Section *part* and return its profile (empty on failure).

        Raises
        ------
        ParameterError
            If the extraction parameters are invalid.
        """
        p = self.params
        reason = self.validate_parameters(p)
        if reason:
            raise ParameterError(reason)
        if part is None:
            logger.warning("Profile extraction called with no part")
            return Profile2D()

        axis = p.turning_axis
        try:
            edges = part.section_edges(axis.origin, axis.section_normal(), p.tolerance)
        except GeometryError as exc:
            logger.warning("Sectioning failed: %s", exc)
            return Profile2D()

        segments: list[ProfileSegment] = []
        for edge in edges:
            for seg in _edge_to_segments(edge, axis):
                if seg.length > p.tolerance:
                    segments.append(_orient(seg))
        if not segments:
            logger.warning("No positive-radius section edges found (%d raw edges)", len(edges))
            return Profile2D()

        if p.sort_segments:
            segments.sort(key=lambda s: (s.average_z, s.z_min))
            segments = _orient_chain(segments)
        if p.merge_collinear:
            segments = _merge_collinear(segments, p.tolerance * 0.1)

        profile = Profile2D(tuple(segments))
        b = profile.bounds()
        logger.info(
            "Extracted profile: %d segments, z=[%.3f, %.3f], r=[%.3f, %.3f]",
            len(profile),
            b.min_z,
            b.max_z,
            b.min_radius,
            b.max_radius,
        )
        return profile


def extract_segment_profile(
    part: Part | None,
    axis: TurningAxis | None = None,
    tolerance: float = 0.01,
) -> Profile2D:
    """Section *part* with the plane containing *axis*.

    Returns an empty :class:`Profile2D` when no valid intersection exists;
    callers must check :meth:`Profile2D.is_empty`.
    """
    params = ExtractionParameters(turning_axis=axis or TurningAxis(), tolerance=tolerance)
    return ProfileExtractor(params).extract_profile(part)


# ---------------------------------------------------------------------------
# Volume
# ---------------------------------------------------------------------------


def revolved_volume(points: list[Point2D]) -> float:
    """Volume swept by revolving a ``(radius, z)`` polyline about the axis.

    Sums conical frustums between consecutive points:
    ``V = sum(pi * h * (r1**2 + r1*r2 + r2**2) / 3)`` with ``h = |dz|``.
    Radial faces (``h = 0``) contribute nothing.
    """
    total = 0.0
    for a, b in zip(points[:-1], points[1:]):
        h = abs(b.z - a.z)
        if h == 0.0:
            continue
        r1, r2 = a.x, b.x
        total += math.pi * h * (r1 * r1 + r1 * r2 + r2 * r2) / 3.0
    return total
