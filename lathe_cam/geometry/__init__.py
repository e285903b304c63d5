"""Geometric value types and part solid representations."""

from lathe_cam.geometry.primitives import (
    BoundingBox,
    Point2D,
    Point3D,
    TurningAxis,
    Vector3D,
)
from lathe_cam.geometry.solids import (
    GeneratrixElement,
    MeshSolid,
    Part,
    RevolvedSolid,
    SectionEdge,
    make_cylinder,
    make_stepped_shaft,
    revolve_profile,
)

__all__ = [
    "BoundingBox",
    "GeneratrixElement",
    "MeshSolid",
    "Part",
    "Point2D",
    "Point3D",
    "RevolvedSolid",
    "SectionEdge",
    "TurningAxis",
    "Vector3D",
    "make_cylinder",
    "make_stepped_shaft",
    "revolve_profile",
]
