"""
Lathe CAM Package.

Toolpath generation engine for 2-axis (X/Z) CNC turning. Sections a solid
of revolution into its 2D generatrix, plans machining operations over it,
and serializes the resulting toolpaths into G-code.

Subpackages:
    geometry: Point/vector value types and part solid representations
    profile: 2D profile extraction from the part solid
    toolpath: Tool, Movement and Toolpath value types
    params: Material table and operation parameter validation/defaulting
    operations: Facing, roughing, finishing, parting, threading, grooving, contouring
    pipeline: Orchestrator that sequences operations for one part
    gcode: G-code generation, machine dialects and post-processing
    configs: Machine and CAM defaults loading and validation
"""

__version__ = "0.4.0"

__all__ = [
    "geometry",
    "profile",
    "toolpath",
    "params",
    "operations",
    "pipeline",
    "gcode",
    "configs",
]
