"""Tool, Movement and Toolpath value types."""

from lathe_cam.toolpath.types import (
    CuttingParameters,
    Movement,
    MovementType,
    OperationType,
    Tool,
    ToolGeometry,
    ToolType,
    Toolpath,
)

__all__ = [
    "CuttingParameters",
    "Movement",
    "MovementType",
    "OperationType",
    "Tool",
    "ToolGeometry",
    "ToolType",
    "Toolpath",
]
