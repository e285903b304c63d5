"""G-code serialisation of toolpaths."""

from lathe_cam.gcode.dialects import DIALECTS, Dialect, FanucDialect, HaasDialect
from lathe_cam.gcode.generator import GCodeError, GCodeGenerator, get_dialect
from lathe_cam.gcode.postprocessor import MachineType, PostProcessor, ProcessingResult

__all__ = [
    "DIALECTS",
    "Dialect",
    "FanucDialect",
    "GCodeError",
    "GCodeGenerator",
    "HaasDialect",
    "MachineType",
    "PostProcessor",
    "ProcessingResult",
    "get_dialect",
]
