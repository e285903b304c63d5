"""Part solid representations consumed by profile extraction.

The engine only ever asks a part two questions: its bounding box and the
edges produced by cutting it with a plane (:class:`Part`).  Two concrete
representations are provided:

``RevolvedSolid``
    Exact solid of revolution defined by its generatrix (lines and circular
    arcs in the (radius, z) half-plane).  Sectioning with a plane that
    contains the axis is analytic.

``MeshSolid``
    Closed triangle mesh held as numpy arrays.  Sectioning intersects every
    triangle with the plane; only linear edges are produced.

Builders (:func:`make_cylinder`, :func:`make_stepped_shaft`,
:func:`revolve_profile`) cover the common turned shapes.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable

import numpy as np

from lathe_cam.errors import GeometryError
from lathe_cam.geometry.primitives import (
    BoundingBox,
    Point2D,
    Point3D,
    TurningAxis,
    Vector3D,
)

logger = logging.getLogger(__name__)

_ON_AXIS_TOL = 1e-9


# ---------------------------------------------------------------------------
# Section edges and the Part protocol
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SectionEdge:
    """One edge of a planar section.

    Linear when ``mid`` is ``None``; otherwise a circular arc through
    ``start``, ``mid`` and ``end`` with centre ``center``.
    """

    start: Point3D
    end: Point3D
    mid: Point3D | None = None
    center: Point3D | None = None

    @property
    def is_linear(self) -> bool:
        return self.mid is None


@runtime_checkable
class Part(Protocol):
    """Opaque turned part as seen by the toolpath engine."""

    def bounding_box(self) -> BoundingBox:
        ...

    def section_edges(
        self, origin: Point3D, normal: Vector3D, tolerance: float
    ) -> list[SectionEdge]:
        ...


# ---------------------------------------------------------------------------
# Exact solid of revolution
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GeneratrixElement:
    """Line or arc of the generatrix in (radius, z) coordinates.

    ``center`` set means a circular arc; ``clockwise`` is measured in the
    (z horizontal, radius vertical) view.
    """

    start: Point2D
    end: Point2D
    center: Point2D | None = None
    clockwise: bool = False

    def arc_mid(self) -> Point2D:
        """Point halfway along the arc (only valid when ``center`` is set)."""
        c = self.center
        r = c.distance_to(self.start)
        a0 = math.atan2(self.start.x - c.x, self.start.z - c.z)
        a1 = math.atan2(self.end.x - c.x, self.end.z - c.z)
        sweep = a1 - a0
        if self.clockwise:
            while sweep >= 0.0:
                sweep -= 2.0 * math.pi
        else:
            while sweep <= 0.0:
                sweep += 2.0 * math.pi
        am = a0 + sweep / 2.0
        return Point2D(c.x + r * math.sin(am), c.z + r * math.cos(am))


class RevolvedSolid:
    """Solid of revolution about ``axis`` with the given generatrix.

    Parameters
    ----------
    elements : Sequence[GeneratrixElement]
        Boundary elements in the half-plane (radius >= 0).  The chain is
        closed implicitly along the axis.
    axis : TurningAxis
        Placement of the axis of revolution.
    """

    def __init__(
        self,
        elements: Sequence[GeneratrixElement],
        axis: TurningAxis | None = None,
    ) -> None:
        if not elements:
            raise GeometryError("RevolvedSolid needs at least one generatrix element")
        for el in elements:
            if el.start.x < -_ON_AXIS_TOL or el.end.x < -_ON_AXIS_TOL:
                raise GeometryError(
                    f"Generatrix element has negative radius: {el.start} -> {el.end}"
                )
        self.elements: tuple[GeneratrixElement, ...] = tuple(elements)
        self.axis = axis or TurningAxis()

    @classmethod
    def from_points(
        cls,
        points: Sequence[tuple[float, float]],
        axis: TurningAxis | None = None,
    ) -> RevolvedSolid:
        """Build from an open polyline of ``(radius, z)`` points.

        End points off the axis are closed down to it with a radial face.
        """
        if len(points) < 2:
            raise GeometryError("Generatrix needs at least 2 points")
        pts = [Point2D(float(r), float(z)) for r, z in points]
        if pts[0].x > _ON_AXIS_TOL:
            pts.insert(0, Point2D(0.0, pts[0].z))
        if pts[-1].x > _ON_AXIS_TOL:
            pts.append(Point2D(0.0, pts[-1].z))
        elements = [
            GeneratrixElement(a, b)
            for a, b in zip(pts[:-1], pts[1:])
            if not a.is_close(b)
        ]
        return cls(elements, axis)

    def max_radius(self) -> float:
        r = max(max(el.start.x, el.end.x) for el in self.elements)
        for el in self.elements:
            if el.center is not None:
                r = max(r, el.arc_mid().x)
        return r

    def bounding_box(self) -> BoundingBox:
        r = self.max_radius()
        zs = [el.start.z for el in self.elements] + [el.end.z for el in self.elements]
        pts = []
        ref = self.axis.reference_direction()
        other = self.axis.direction.cross(ref)
        for z in (min(zs), max(zs)):
            base = self.axis.origin + self.axis.direction * z
            for sx, sy in ((1, 0), (-1, 0), (0, 1), (0, -1)):
                pts.append(base + ref * (sx * r) + other * (sy * r))
        return BoundingBox.from_points(pts)

    def section_edges(
        self, origin: Point3D, normal: Vector3D, tolerance: float
    ) -> list[SectionEdge]:
        """Section with a plane containing the axis of revolution.

        Produces the generatrix on both sides of the axis.  Radial faces
        that meet the axis are returned as a single edge straddling it.

        Raises
        ------
        GeometryError
            If the plane does not contain the axis.
        """
        n = normal.normalized()
        d = self.axis.direction
        if abs(n.dot(d)) > 1e-9 or abs((origin - self.axis.origin).dot(n)) > 1e-9:
            raise GeometryError("Section plane must contain the axis of revolution")
        radial = n.cross(d).normalized()

        def lift(p: Point2D, side: float) -> Point3D:
            return self.axis.origin + radial * (side * p.x) + d * p.z

        edges: list[SectionEdge] = []
        for el in self.elements:
            on_a = el.start.x <= _ON_AXIS_TOL
            on_b = el.end.x <= _ON_AXIS_TOL
            if on_a and on_b and el.center is None:
                continue
            if el.center is None:
                if (on_a or on_b) and abs(el.start.z - el.end.z) <= _ON_AXIS_TOL:
                    # radial face through the axis
                    outer = el.end if on_a else el.start
                    edges.append(SectionEdge(lift(outer, -1.0), lift(outer, 1.0)))
                    continue
                for side in (1.0, -1.0):
                    edges.append(SectionEdge(lift(el.start, side), lift(el.end, side)))
            else:
                mid = el.arc_mid()
                for side in (1.0, -1.0):
                    edges.append(
                        SectionEdge(
                            lift(el.start, side),
                            lift(el.end, side),
                            mid=lift(mid, side),
                            center=lift(el.center, side),
                        )
                    )
        logger.debug("RevolvedSolid section: %d edges", len(edges))
        return edges


# ---------------------------------------------------------------------------
# Triangle mesh
# ---------------------------------------------------------------------------


class MeshSolid:
    """Closed triangle mesh.

    Parameters
    ----------
    vertices : array_like, shape (N, 3)
        Vertex coordinates in mm.
    faces : array_like, shape (M, 3)
        Vertex indices per triangle.
    """

    def __init__(self, vertices, faces) -> None:
        self.vertices = np.asarray(vertices, dtype=np.float64)
        self.faces = np.asarray(faces, dtype=np.int64)
        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3:
            raise GeometryError(f"vertices must be (N, 3), got {self.vertices.shape}")
        if self.faces.ndim != 2 or self.faces.shape[1] != 3:
            raise GeometryError(f"faces must be (M, 3), got {self.faces.shape}")
        if len(self.faces) and (
            self.faces.min() < 0 or self.faces.max() >= len(self.vertices)
        ):
            raise GeometryError("face index out of range")

    def bounding_box(self) -> BoundingBox:
        if len(self.vertices) == 0:
            return BoundingBox.empty()
        lo = self.vertices.min(axis=0)
        hi = self.vertices.max(axis=0)
        return BoundingBox(Point3D(*map(float, lo)), Point3D(*map(float, hi)))

    def section_edges(
        self, origin: Point3D, normal: Vector3D, tolerance: float
    ) -> list[SectionEdge]:
        """Intersect every triangle with the plane.

        Triangles lying in the plane are ignored.  Edges shared by two
        triangles that touch the plane are reported once.
        """
        n = normal.normalized()
        nv = np.array([n.x, n.y, n.z])
        o = np.array([origin.x, origin.y, origin.z])
        dist = (self.vertices - o) @ nv
        eps = max(tolerance * 1e-3, 1e-12)
        dist[np.abs(dist) < eps] = 0.0

        tri_d = dist[self.faces]  # (M, 3)
        crosses = (tri_d.min(axis=1) <= 0.0) & (tri_d.max(axis=1) >= 0.0)
        coplanar = np.all(tri_d == 0.0, axis=1)
        candidates = np.nonzero(crosses & ~coplanar)[0]

        seen: set[tuple] = set()
        edges: list[SectionEdge] = []
        for fi in candidates:
            idx = self.faces[fi]
            d = tri_d[fi]
            pts: list[np.ndarray] = []
            for k in range(3):
                if d[k] == 0.0:
                    pts.append(self.vertices[idx[k]])
            for a, b in ((0, 1), (1, 2), (2, 0)):
                if d[a] * d[b] < 0.0:
                    t = d[a] / (d[a] - d[b])
                    va = self.vertices[idx[a]]
                    vb = self.vertices[idx[b]]
                    pts.append(va + (vb - va) * t)
            if len(pts) != 2:
                continue
            p0, p1 = pts
            if np.linalg.norm(p1 - p0) <= eps:
                continue
            k0 = tuple(np.round(p0, 9))
            k1 = tuple(np.round(p1, 9))
            key = (k0, k1) if k0 <= k1 else (k1, k0)
            if key in seen:
                continue
            seen.add(key)
            edges.append(
                SectionEdge(Point3D(*map(float, p0)), Point3D(*map(float, p1)))
            )
        logger.debug(
            "MeshSolid section: %d triangles crossed, %d edges",
            len(candidates),
            len(edges),
        )
        return edges


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_cylinder(
    radius: float, length: float, axis: TurningAxis | None = None
) -> RevolvedSolid:
    """Plain cylinder spanning z in [0, length]."""
    if radius <= 0.0 or length <= 0.0:
        raise GeometryError(f"Cylinder needs positive radius and length, got {radius}, {length}")
    return RevolvedSolid.from_points([(radius, 0.0), (radius, length)], axis)


def make_stepped_shaft(
    steps: Sequence[tuple[float, float]], axis: TurningAxis | None = None
) -> RevolvedSolid:
    """Shaft made of coaxial cylinders.

    Parameters
    ----------
    steps : Sequence[tuple[float, float]]
        ``(radius, length)`` pairs, starting at z = 0 and stacking toward +z.
    """
    if not steps:
        raise GeometryError("Stepped shaft needs at least one step")
    pts: list[tuple[float, float]] = []
    z = 0.0
    for radius, length in steps:
        if radius <= 0.0 or length <= 0.0:
            raise GeometryError(f"Invalid shaft step ({radius}, {length})")
        pts.append((radius, z))
        z += length
        pts.append((radius, z))
    return RevolvedSolid.from_points(pts, axis)


def revolve_profile(
    points: Sequence[tuple[float, float]], segments: int = 72
) -> MeshSolid:
    """Revolve a ``(radius, z)`` polyline about world Z into a closed mesh.

    The first angular sample lies on +X so the XZ plane passes through
    mesh vertices.  Open ends are capped with triangle fans.
    """
    if segments < 3:
        raise GeometryError(f"segments must be >= 3, got {segments}")
    prof = np.asarray(points, dtype=np.float64)
    if prof.ndim != 2 or prof.shape[1] != 2 or len(prof) < 2:
        raise GeometryError("revolve_profile needs an (N, 2) array with N >= 2")
    if np.any(prof[:, 0] < 0.0):
        raise GeometryError("revolve_profile radii must be non-negative")

    ang = np.linspace(0.0, 2.0 * np.pi, segments, endpoint=False)
    cos, sin = np.cos(ang), np.sin(ang)
    rings = len(prof)
    verts = np.empty((rings * segments, 3))
    for i, (r, z) in enumerate(prof):
        s = slice(i * segments, (i + 1) * segments)
        verts[s, 0] = r * cos
        verts[s, 1] = r * sin
        verts[s, 2] = z

    faces: list[tuple[int, int, int]] = []
    for i in range(rings - 1):
        for k in range(segments):
            a = i * segments + k
            b = i * segments + (k + 1) % segments
            c = (i + 1) * segments + k
            d = (i + 1) * segments + (k + 1) % segments
            faces.append((a, b, d))
            faces.append((a, d, c))

    extra: list[np.ndarray] = []
    for ring, z in ((0, prof[0, 1]), (rings - 1, prof[-1, 1])):
        if prof[ring, 0] <= _ON_AXIS_TOL:
            continue
        centre = len(verts) + len(extra)
        extra.append(np.array([0.0, 0.0, z]))
        for k in range(segments):
            a = ring * segments + k
            b = ring * segments + (k + 1) % segments
            faces.append((centre, b, a) if ring == 0 else (centre, a, b))
    if extra:
        verts = np.vstack([verts, np.array(extra)])
    return MeshSolid(verts, np.array(faces, dtype=np.int64))
