"""G-code generator -- Toolpath movements to G-code text.

Every toolpath position is already in machine coordinates (X radial,
Z axial, mm).  The generator only formats: it never moves, clips or
reorders anything.  With ``MachineConfig.diameter_mode`` the X word is
written as a diameter (radius * 2).

Feed rate convention:
    Toolpaths store cutting feed in **mm/rev**.  This module converts to
    the G-code ``F`` word at the generation boundary::

        F_value = feed_mm_rev * 60.0

Program layout::

    [dialect framing]
    header      G21 / G90 / G40
    per toolpath: tool change, spindle start, coolant, motion blocks
    footer      M5 / M9 / G28 U0 W0 / M30
    [dialect framing]
"""

from __future__ import annotations

import logging
import math
from io import StringIO
from typing import Iterable

from lathe_cam.configs.loader import GCodeOptions, MachineConfig
from lathe_cam.gcode.dialects import DIALECTS, Dialect
from lathe_cam.toolpath.types import Movement, MovementType, Tool, Toolpath

logger = logging.getLogger(__name__)


class GCodeError(Exception):
    """Raised when G-code generation fails due to invalid input."""

    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _f(feed_mm_rev: float) -> str:
    """Convert a mm/rev feed to the G-code ``F`` word (x60, one decimal)."""
    return f"F{feed_mm_rev * 60.0:.1f}"


def _check_finite(mv: Movement, index: int) -> None:
    values = (mv.end.x, mv.end.z, mv.feed_rate)
    if mv.center is not None:
        values += (mv.center.x, mv.center.z)
    if not all(math.isfinite(v) for v in values):
        raise GCodeError(f"Movement {index} ({mv.type.value}) has a non-finite value: {values}")


def get_dialect(name: str) -> Dialect:
    """Dialect instance for a machine type name (case-insensitive).

    Raises
    ------
    GCodeError
        If *name* is not a known machine type.
    """
    try:
        return DIALECTS[name.lower()]()
    except KeyError:
        raise GCodeError(
            f"Unknown machine type '{name}'; expected one of {sorted(DIALECTS)}"
        ) from None


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class GCodeGenerator:
    """Convert toolpaths to a G-code program.

    Parameters
    ----------
    machine : MachineConfig | None
        Machine profile; ``None`` uses the built-in defaults.
    options : GCodeOptions | None
        Formatting switches; ``None`` uses the built-in defaults.
    dialect : Dialect | None
        Controller dialect; ``None`` picks it from ``machine.machine_type``.
    """

    def __init__(
        self,
        machine: MachineConfig | None = None,
        options: GCodeOptions | None = None,
        dialect: Dialect | None = None,
    ) -> None:
        self.machine = machine or MachineConfig()
        self.options = options or GCodeOptions()
        self.dialect = dialect or get_dialect(self.machine.machine_type)
        self._line_number = self.options.line_number_start
        self._rpm: float | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(self, toolpath: Toolpath) -> str:
        """Generate a complete program for one toolpath.

        Raises
        ------
        GCodeError
            If any movement carries a non-finite coordinate or feed.
        """
        return self.generate_program([toolpath])

    def generate_program(self, toolpaths: Iterable[Toolpath]) -> str:
        """Generate one program running *toolpaths* in order.

        Returns
        -------
        str
            Complete G-code program including header and footer.

        Raises
        ------
        GCodeError
            If any movement carries a non-finite coordinate or feed.
        """
        if not self.machine.absolute_coordinates:
            raise GCodeError("Incremental output is not supported; set absolute_coordinates")
        buf = StringIO()
        self._reset_state()
        self._write_header(buf)

        count = 0
        for tp in toolpaths:
            self._write_toolpath(tp, buf)
            count += 1

        self._write_footer(buf)
        text = buf.getvalue()
        logger.info(
            "G-code generated: %d toolpaths, %d lines (%s)",
            count,
            text.count("\n"),
            self.dialect.name,
        )
        return text

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_machine_limits(self, toolpath: Toolpath) -> list[str]:
        """Warnings for positions outside the machine's X/Z travel."""
        if toolpath.is_empty():
            return []
        box = toolpath.bounding_box()
        travel = self.machine.travel
        scale = 2.0 if self.machine.diameter_mode else 1.0
        warnings: list[str] = []
        if box.min.x * scale < travel.min_x:
            warnings.append(f"X minimum {box.min.x * scale:.3f} below limit {travel.min_x:.3f}")
        if box.max.x * scale > travel.max_x:
            warnings.append(f"X maximum {box.max.x * scale:.3f} beyond limit {travel.max_x:.3f}")
        if box.min.z < travel.min_z:
            warnings.append(f"Z minimum {box.min.z:.3f} below limit {travel.min_z:.3f}")
        if box.max.z > travel.max_z:
            warnings.append(f"Z maximum {box.max.z:.3f} beyond limit {travel.max_z:.3f}")
        for w in warnings:
            logger.warning("%s: %s", toolpath.name, w)
        return warnings

    def validate_toolpath(self, toolpath: Toolpath) -> list[str]:
        """Non-fatal problems found in *toolpath*, limits included."""
        if toolpath.is_empty():
            return [f"Toolpath '{toolpath.name}' is empty"]
        warnings: list[str] = []
        for i, mv in enumerate(toolpath):
            try:
                _check_finite(mv, i)
            except GCodeError as exc:
                warnings.append(str(exc))
                continue
            if mv.is_cutting and mv.feed_rate <= 0.0:
                warnings.append(f"Movement {i} ({mv.type.value}) has no feed rate")
            if mv.is_cutting and mv.type is not MovementType.LINEAR and mv.center is None:
                warnings.append(f"Movement {i} is an arc without a centre")
            rpm = mv.spindle_speed or toolpath.tool.cutting.spindle_speed
            if rpm > self.machine.max_spindle_speed:
                warnings.append(
                    f"Movement {i} spindle {rpm:.0f} RPM exceeds machine maximum "
                    f"{self.machine.max_spindle_speed:.0f}"
                )
                break
        warnings.extend(self.check_machine_limits(toolpath))
        return warnings

    def estimate_machining_time(self, toolpath: Toolpath) -> float:
        """Run time in minutes using the machine's rapid rate.

        Spindle speeds are clamped to the machine maximum, as emitted.
        """
        minutes = 0.0
        for mv in toolpath:
            if mv.type is MovementType.DWELL:
                minutes += mv.dwell_time / 60.0
            elif mv.type is MovementType.RAPID:
                minutes += mv.length() / self.machine.rapid_feed_rate
            elif mv.is_cutting:
                rpm = self._clamp_rpm(mv.spindle_speed or toolpath.tool.cutting.spindle_speed)
                feed_mm_min = mv.feed_rate * rpm
                if feed_mm_min > 0.0:
                    minutes += mv.length() / feed_mm_min
        return minutes

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _reset_state(self) -> None:
        self._line_number = self.options.line_number_start
        self._rpm = None

    def _emit(self, buf: StringIO, code: str) -> None:
        if self.options.include_line_numbers:
            buf.write(f"N{self._line_number} {code}\n")
            self._line_number += self.options.line_number_increment
        else:
            buf.write(f"{code}\n")

    def _comment(self, buf: StringIO, text: str) -> None:
        if self.options.include_comments and text:
            buf.write(f"{self.dialect.comment(text)}\n")

    def _clamp_rpm(self, rpm: float) -> float:
        return min(rpm, self.machine.max_spindle_speed)

    def _x(self, radius: float) -> float:
        return radius * 2.0 if self.machine.diameter_mode else radius

    def _write_header(self, buf: StringIO) -> None:
        for line in self.dialect.program_start(self.options):
            buf.write(f"{line}\n")
        self._comment(buf, f"Program: {self.options.program_name}")
        self._comment(buf, f"Machine: {self.machine.name}")
        self._comment(buf, "Generated by lathe_cam")
        self._emit(buf, "G21")
        self._comment(buf, "mm mode")
        self._emit(buf, "G90")
        self._comment(buf, "absolute positioning")
        self._emit(buf, "G40")
        self._comment(buf, "cancel tool nose compensation")

    def _write_footer(self, buf: StringIO) -> None:
        self._comment(buf, "Program end")
        self._emit(buf, "M5")
        self._emit(buf, "M9")
        self._emit(buf, self.dialect.home())
        self._emit(buf, "M30")
        for line in self.dialect.program_end(self.options):
            buf.write(f"{line}\n")

    def _write_tool_start(self, tool: Tool, buf: StringIO) -> None:
        if self.options.include_tool_changes:
            self._comment(buf, f"Tool: {tool.name}")
            self._emit(buf, self.dialect.tool_change(tool))
        requested = tool.cutting.spindle_speed
        rpm = self._clamp_rpm(requested)
        if rpm < requested:
            logger.warning(
                "%s: spindle %.0f RPM clamped to machine maximum %.0f",
                tool.name,
                requested,
                rpm,
            )
        self._emit(buf, self.dialect.spindle_on(rpm, self.machine.spindle_clockwise))
        self._rpm = rpm
        if self.machine.use_coolant:
            self._emit(buf, "M8")

    def _write_toolpath(self, toolpath: Toolpath, buf: StringIO) -> None:
        self._comment(buf, f"{toolpath.operation_type.value}: {toolpath.name}")
        self._write_tool_start(toolpath.tool, buf)
        for i, mv in enumerate(toolpath):
            _check_finite(mv, i)
            self._write_movement(mv, toolpath.tool, buf)

    def _write_movement(self, mv: Movement, tool: Tool, buf: StringIO) -> None:
        if mv.type is MovementType.TOOL_CHANGE:
            self._comment(buf, mv.comment)
            self._write_tool_start(tool, buf)
            return

        self._comment(buf, mv.comment)
        if mv.type is MovementType.DWELL:
            self._emit(buf, self.dialect.dwell(mv.dwell_time))
            return

        if mv.spindle_speed is not None:
            rpm = self._clamp_rpm(mv.spindle_speed)
            if rpm != self._rpm:
                self._emit(buf, self.dialect.spindle_speed(rpm))
                self._rpm = rpm

        xz = f"X{self._x(mv.end.x):.3f} Z{mv.end.z:.3f}"
        if mv.type is MovementType.RAPID:
            self._emit(buf, f"G0 {xz}")
            return

        if mv.type is MovementType.LINEAR:
            code = f"G1 {xz}"
        else:
            code = f"{'G2' if mv.type is MovementType.CIRCULAR_CW else 'G3'} {xz}"
            if mv.center is not None:
                # I/K are incremental radial/axial offsets from the arc start
                code += f" I{mv.center.x - mv.start.x:.3f} K{mv.center.z - mv.start.z:.3f}"
        if mv.feed_rate > 0.0:
            code += f" {_f(mv.feed_rate)}"
        self._emit(buf, code)
