"""Controller dialects.

A dialect formats the controller-specific blocks of a program: framing,
comments, tool selection, spindle start and dwell.  Motion blocks
(``G0``/``G1``/``G2``/``G3`` with ``X``/``Z``/``F``) are identical for all
dialects and are written by :class:`~lathe_cam.gcode.generator.GCodeGenerator`.
"""

from __future__ import annotations

from lathe_cam.configs.loader import GCodeOptions
from lathe_cam.toolpath.types import Tool


class Dialect:
    """Generic ISO lathe dialect (``;`` comments, ``T<nn>``, ``G4 P<s>``)."""

    name = "generic"

    def comment(self, text: str) -> str:
        return f"; {text}"

    def program_start(self, options: GCodeOptions) -> list[str]:
        return []

    def program_end(self, options: GCodeOptions) -> list[str]:
        return []

    def tool_change(self, tool: Tool) -> str:
        return f"T{tool.tool_number:02d}"

    def spindle_on(self, rpm: float, clockwise: bool) -> str:
        return f"{'M3' if clockwise else 'M4'} S{rpm:.0f}"

    def spindle_speed(self, rpm: float) -> str:
        return f"S{rpm:.0f}"

    def dwell(self, seconds: float) -> str:
        return f"G4 P{seconds:.3f}"

    def home(self) -> str:
        return "G28 U0 W0"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class FanucDialect(Dialect):
    """Fanuc-style: ``%`` framing, ``O`` program number, parenthesised comments.

    Tool calls carry the offset number (``T0101``) and dwell uses ``U``.
    """

    name = "fanuc"

    def comment(self, text: str) -> str:
        # parentheses cannot nest in Fanuc comments
        return f"({text.replace('(', '[').replace(')', ']')})"

    def program_start(self, options: GCodeOptions) -> list[str]:
        return ["%", f"O{options.program_number} {self.comment(options.program_name)}"]

    def program_end(self, options: GCodeOptions) -> list[str]:
        return ["%"]

    def tool_change(self, tool: Tool) -> str:
        n = tool.tool_number
        return f"T{n:02d}{n:02d}"


class HaasDialect(FanucDialect):
    """Haas lathes: Fanuc framing, ``G97`` constant RPM before spindle start."""

    name = "haas"

    def spindle_on(self, rpm: float, clockwise: bool) -> str:
        return f"G97 S{rpm:.0f} {'M3' if clockwise else 'M4'}"

    def dwell(self, seconds: float) -> str:
        return f"G4 P{seconds:.3f}"


DIALECTS: dict[str, type[Dialect]] = {
    "generic": Dialect,
    "fanuc": FanucDialect,
    "haas": HaasDialect,
    # Mazak accepts Fanuc (EIA/ISO) programs; Okuma and Siemens get
    # the plain ISO output.
    "mazak": FanucDialect,
    "okuma": Dialect,
    "siemens": Dialect,
}
