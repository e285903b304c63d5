"""Shared utilities for the lathe CAM engine.

Architecture layers (strict one-way dependency):
    lathe_cam/scripts/ → lathe_cam/{pipeline,operations,gcode,...}/ → src/utils/

Key invariants:
    - Geometry in millimeters end-to-end
    - Cutting feed in mm/rev until G-code emission
    - YAML-only configs, no JSON
"""

__version__ = "0.4.0"
