"""Geometric value types used throughout the engine.

All types are frozen dataclasses: immutable once constructed, hashable, and
safe to share between operations.  Lengths are in millimeters.

Profile coordinates use ``(x, z)`` where ``x`` is the radius measured from
the turning axis and ``z`` is the axial position.  Tool positions are
``Point3D`` with ``x`` = radial, ``y`` = 0 and ``z`` = axial so that a
position maps directly onto lathe ``X``/``Z`` words.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from lathe_cam.errors import GeometryError


@dataclass(frozen=True, slots=True)
class Point2D:
    """Point in the (radius, z) profile plane."""

    x: float = 0.0
    z: float = 0.0

    def __add__(self, other: Point2D) -> Point2D:
        return Point2D(self.x + other.x, self.z + other.z)

    def __sub__(self, other: Point2D) -> Point2D:
        return Point2D(self.x - other.x, self.z - other.z)

    def scaled(self, factor: float) -> Point2D:
        return Point2D(self.x * factor, self.z * factor)

    def distance_to(self, other: Point2D) -> float:
        return math.hypot(self.x - other.x, self.z - other.z)

    def is_close(self, other: Point2D, tol: float = 1e-9) -> bool:
        return self.distance_to(other) <= tol

    def to_3d(self) -> Point3D:
        """Lift into tool space (radial on X, axial on Z)."""
        return Point3D(self.x, 0.0, self.z)


@dataclass(frozen=True, slots=True)
class Point3D:
    """Point in 3D space (mm)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: Vector3D) -> Point3D:
        return Point3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Point3D) -> Vector3D:
        return Vector3D(self.x - other.x, self.y - other.y, self.z - other.z)

    def distance_to(self, other: Point3D) -> float:
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True, slots=True)
class Vector3D:
    """Direction or displacement in 3D space."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: Vector3D) -> Vector3D:
        return Vector3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vector3D) -> Vector3D:
        return Vector3D(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, factor: float) -> Vector3D:
        return Vector3D(self.x * factor, self.y * factor, self.z * factor)

    __rmul__ = __mul__

    def length(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def normalized(self) -> Vector3D:
        """Return the unit vector.

        Raises
        ------
        GeometryError
            If the vector has zero length.
        """
        n = self.length()
        if n < 1e-12:
            raise GeometryError("Cannot normalize a zero-length vector")
        return Vector3D(self.x / n, self.y / n, self.z / n)

    def dot(self, other: Vector3D) -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vector3D) -> Vector3D:
        return Vector3D(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned bounding box.

    An empty box is represented with ``min`` greater than ``max``; use
    :meth:`empty` to create one and :meth:`is_valid` to check it.
    """

    min: Point3D
    max: Point3D

    @classmethod
    def empty(cls) -> BoundingBox:
        inf = math.inf
        return cls(Point3D(inf, inf, inf), Point3D(-inf, -inf, -inf))

    @classmethod
    def from_points(cls, points) -> BoundingBox:
        box = cls.empty()
        for p in points:
            box = box.expand(p)
        return box

    def is_valid(self) -> bool:
        return (
            self.min.x <= self.max.x
            and self.min.y <= self.max.y
            and self.min.z <= self.max.z
        )

    def expand(self, p: Point3D) -> BoundingBox:
        """Return a new box grown to include *p*."""
        return BoundingBox(
            Point3D(min(self.min.x, p.x), min(self.min.y, p.y), min(self.min.z, p.z)),
            Point3D(max(self.max.x, p.x), max(self.max.y, p.y), max(self.max.z, p.z)),
        )

    def contains(self, p: Point3D, tol: float = 0.0) -> bool:
        return (
            self.min.x - tol <= p.x <= self.max.x + tol
            and self.min.y - tol <= p.y <= self.max.y + tol
            and self.min.z - tol <= p.z <= self.max.z + tol
        )

    def size(self) -> Vector3D:
        if not self.is_valid():
            return Vector3D()
        return self.max - self.min

    def center(self) -> Point3D:
        return Point3D(
            (self.min.x + self.max.x) / 2.0,
            (self.min.y + self.max.y) / 2.0,
            (self.min.z + self.max.z) / 2.0,
        )


@dataclass(frozen=True, slots=True)
class TurningAxis:
    """Spindle rotation axis: an origin point and a direction.

    ``direction`` must be non-zero; it is normalized on construction.
    """

    origin: Point3D = Point3D()
    direction: Vector3D = Vector3D(0.0, 0.0, 1.0)

    def __post_init__(self) -> None:
        if self.direction.length() < 1e-12:
            raise GeometryError("Turning axis direction must be non-zero")
        object.__setattr__(self, "direction", self.direction.normalized())

    def reference_direction(self) -> Vector3D:
        """Unit vector perpendicular to the axis used as the +radius direction.

        World X is used unless the axis is (nearly) parallel to it, in which
        case world Y is used.
        """
        d = self.direction
        ref = Vector3D(1.0, 0.0, 0.0)
        if abs(d.dot(ref)) > 0.9:
            ref = Vector3D(0.0, 1.0, 0.0)
        # Gram-Schmidt
        return (ref - d * ref.dot(d)).normalized()

    def section_normal(self) -> Vector3D:
        """Normal of the plane containing the axis and the reference direction."""
        return self.direction.cross(self.reference_direction()).normalized()

    def to_profile(self, p: Point3D) -> tuple[float, float]:
        """Map a point lying in the section plane to signed (radius, z).

        The radius is signed along the reference direction so that geometry
        on the mirror side of the axis comes out negative.
        """
        v = p - self.origin
        return v.dot(self.reference_direction()), v.dot(self.direction)

    def from_profile(self, radius: float, z: float) -> Point3D:
        """Inverse of :meth:`to_profile` for points in the section plane."""
        ref = self.reference_direction()
        return self.origin + ref * radius + self.direction * z
