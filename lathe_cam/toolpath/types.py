"""Tool, Movement and Toolpath types.

A ``Toolpath`` is the output of every operation: an ordered list of
``Movement`` records plus the ``Tool`` that executes them.  Positions are
``Point3D`` with ``x`` = radial distance from the turning axis and ``z`` =
axial position; ``y`` is always 0 for 2-axis turning.

Units:
    - Lengths in mm
    - Cutting feed in mm/rev (converted to mm/min only by the G-code layer)
    - Rapid feed in mm/min
    - Spindle speed in RPM
    - Dwell in seconds
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator

from lathe_cam.geometry.primitives import BoundingBox, Point3D

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ToolType(Enum):
    """Lathe tool families."""

    TURNING = "Turning"
    FACING = "Facing"
    PARTING = "Parting"
    THREADING = "Threading"
    GROOVING = "Grooving"


class OperationType(Enum):
    """Machining operation a movement or config belongs to."""

    FACING = "Facing"
    ROUGHING = "Roughing"
    EXTERNAL_ROUGHING = "ExternalRoughing"
    FINISHING = "Finishing"
    PARTING = "Parting"
    THREADING = "Threading"
    GROOVING = "Grooving"
    CONTOURING = "Contouring"
    UNKNOWN = "Unknown"


class MovementType(Enum):
    """Atomic tool actions."""

    RAPID = "Rapid"
    LINEAR = "Linear"
    CIRCULAR_CW = "CircularCW"
    CIRCULAR_CCW = "CircularCCW"
    DWELL = "Dwell"
    TOOL_CHANGE = "ToolChange"


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ToolGeometry:
    """Insert and holder geometry (mm / degrees)."""

    tip_radius: float = 0.4
    clearance_angle: float = 7.0
    rake_angle: float = 0.0
    insert_width: float = 3.0
    diameter: float = 10.0
    length: float = 50.0


@dataclass(frozen=True, slots=True)
class CuttingParameters:
    """Default cutting data carried by a tool."""

    feed_rate: float = 0.1  # mm/rev
    spindle_speed: float = 1000.0  # RPM
    depth_of_cut: float = 1.0  # mm
    stepover: float = 0.5  # mm
    rapid_feed_rate: float = 5000.0  # mm/min


@dataclass(frozen=True, slots=True)
class Tool:
    """Immutable cutting tool supplied by the caller."""

    name: str
    tool_type: ToolType = ToolType.TURNING
    geometry: ToolGeometry = ToolGeometry()
    cutting: CuttingParameters = CuttingParameters()
    tool_number: int = 1

    def __post_init__(self) -> None:
        if self.tool_number < 0:
            raise ValueError(f"tool_number must be >= 0, got {self.tool_number}")


# ---------------------------------------------------------------------------
# Movement
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Movement:
    """One atomic tool action.

    Parameters
    ----------
    type : MovementType
        Kind of move.
    start, end : Point3D
        Tool position before and after the move.  Equal for dwells.
    feed_rate : float
        Cutting feed in mm/rev; 0 for rapids and dwells.
    comment : str
        Optional note carried into G-code comments.
    operation_type : OperationType
        Operation that produced the move.
    dwell_time : float
        Seconds (dwell moves only).
    center : Point3D | None
        Arc centre (circular moves only).
    spindle_speed : float | None
        RPM override for the move; ``None`` keeps the tool's speed.
    """

    type: MovementType
    start: Point3D
    end: Point3D
    feed_rate: float = 0.0
    comment: str = ""
    operation_type: OperationType = OperationType.UNKNOWN
    dwell_time: float = 0.0
    center: Point3D | None = None
    spindle_speed: float | None = None

    @property
    def is_cutting(self) -> bool:
        return self.type in (
            MovementType.LINEAR,
            MovementType.CIRCULAR_CW,
            MovementType.CIRCULAR_CCW,
        )

    def length(self) -> float:
        """Travel length in mm (arc length for circular moves)."""
        if self.type in (MovementType.DWELL, MovementType.TOOL_CHANGE):
            return 0.0
        if self.center is not None and self.type in (
            MovementType.CIRCULAR_CW,
            MovementType.CIRCULAR_CCW,
        ):
            c = self.center
            r = math.hypot(self.start.x - c.x, self.start.z - c.z)
            a0 = math.atan2(self.start.x - c.x, self.start.z - c.z)
            a1 = math.atan2(self.end.x - c.x, self.end.z - c.z)
            sweep = a1 - a0
            if self.type is MovementType.CIRCULAR_CW:
                sweep = -sweep
            sweep %= 2.0 * math.pi
            if sweep == 0.0:
                sweep = 2.0 * math.pi
            return r * sweep
        return self.start.distance_to(self.end)


# ---------------------------------------------------------------------------
# Toolpath
# ---------------------------------------------------------------------------


@dataclass
class Toolpath:
    """Named, ordered sequence of movements executed with one tool.

    Built incrementally by an operation through the ``add_*`` helpers,
    each of which starts where the previous move ended.
    """

    name: str
    tool: Tool
    operation_type: OperationType = OperationType.UNKNOWN
    _movements: list[Movement] = field(default_factory=list, repr=False)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def movements(self) -> tuple[Movement, ...]:
        return tuple(self._movements)

    def __len__(self) -> int:
        return len(self._movements)

    def __iter__(self) -> Iterator[Movement]:
        return iter(self._movements)

    def is_empty(self) -> bool:
        return not self._movements

    @property
    def current_position(self) -> Point3D | None:
        """End position of the last move, or ``None`` for an empty path."""
        if not self._movements:
            return None
        return self._movements[-1].end

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_movement(self, movement: Movement) -> None:
        self._movements.append(movement)

    def _start(self, end: Point3D) -> Point3D:
        cur = self.current_position
        return end if cur is None else cur

    def add_rapid(self, end: Point3D, comment: str = "") -> None:
        self._movements.append(
            Movement(
                MovementType.RAPID,
                self._start(end),
                end,
                comment=comment,
                operation_type=self.operation_type,
            )
        )

    def add_linear(
        self,
        end: Point3D,
        feed_rate: float | None = None,
        comment: str = "",
        spindle_speed: float | None = None,
    ) -> None:
        """Feed move; *feed_rate* defaults to the tool's mm/rev feed."""
        if feed_rate is None:
            feed_rate = self.tool.cutting.feed_rate
        self._movements.append(
            Movement(
                MovementType.LINEAR,
                self._start(end),
                end,
                feed_rate=feed_rate,
                comment=comment,
                operation_type=self.operation_type,
                spindle_speed=spindle_speed,
            )
        )

    def add_arc(
        self,
        end: Point3D,
        center: Point3D,
        clockwise: bool,
        feed_rate: float | None = None,
        comment: str = "",
    ) -> None:
        if feed_rate is None:
            feed_rate = self.tool.cutting.feed_rate
        self._movements.append(
            Movement(
                MovementType.CIRCULAR_CW if clockwise else MovementType.CIRCULAR_CCW,
                self._start(end),
                end,
                feed_rate=feed_rate,
                comment=comment,
                operation_type=self.operation_type,
                center=center,
            )
        )

    def add_dwell(self, seconds: float, comment: str = "") -> None:
        if seconds < 0.0:
            raise ValueError(f"dwell must be >= 0 s, got {seconds}")
        pos = self.current_position or Point3D()
        self._movements.append(
            Movement(
                MovementType.DWELL,
                pos,
                pos,
                comment=comment,
                operation_type=self.operation_type,
                dwell_time=seconds,
            )
        )

    def add_tool_change(self, comment: str = "") -> None:
        pos = self.current_position or Point3D()
        self._movements.append(
            Movement(
                MovementType.TOOL_CHANGE,
                pos,
                pos,
                comment=comment or f"Tool change: {self.tool.name}",
                operation_type=self.operation_type,
            )
        )

    def extend(self, other: Toolpath, keep_spindle_speed: bool = False) -> None:
        """Append another toolpath's moves, re-anchoring its first start.

        With *keep_spindle_speed*, cutting moves without their own speed
        take *other*'s tool speed, so a merged path still changes RPM
        between its parts.
        """
        rpm = other.tool.cutting.spindle_speed
        for i, mv in enumerate(other):
            if i == 0 and self.current_position is not None:
                mv = replace(mv, start=self.current_position)
            if keep_spindle_speed and mv.is_cutting and mv.spindle_speed is None:
                mv = replace(mv, spindle_speed=rpm)
            self._movements.append(mv)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def bounding_box(self) -> BoundingBox:
        """Box around every move start and end position."""
        box = BoundingBox.empty()
        for mv in self._movements:
            box = box.expand(mv.start).expand(mv.end)
        return box

    def total_length(self) -> float:
        return sum(mv.length() for mv in self._movements)

    def cutting_length(self) -> float:
        return sum(mv.length() for mv in self._movements if mv.is_cutting)

    def count(self, movement_type: MovementType) -> int:
        return sum(1 for mv in self._movements if mv.type is movement_type)

    def estimate_machining_time(self) -> float:
        """Estimated run time in minutes.

        Cutting moves run at ``feed (mm/rev) * rpm``; rapids at the tool's
        rapid rate; dwells add their duration.
        """
        cutting = self.tool.cutting
        minutes = 0.0
        for mv in self._movements:
            if mv.type is MovementType.DWELL:
                minutes += mv.dwell_time / 60.0
            elif mv.type is MovementType.RAPID:
                if cutting.rapid_feed_rate > 0.0:
                    minutes += mv.length() / cutting.rapid_feed_rate
            elif mv.is_cutting:
                rpm = mv.spindle_speed or cutting.spindle_speed
                feed_mm_min = mv.feed_rate * rpm
                if feed_mm_min > 0.0:
                    minutes += mv.length() / feed_mm_min
        return minutes

    # ------------------------------------------------------------------
    # Optimisation
    # ------------------------------------------------------------------

    def remove_redundant_moves(self, tol: float = 1e-9) -> Toolpath:
        """Return a copy without moves that go nowhere.

        A motion move is dropped when its end equals the position reached
        by the previous kept move.  Dwells and tool changes are always kept.
        """
        out = Toolpath(self.name, self.tool, self.operation_type)
        for mv in self._movements:
            if mv.type in (MovementType.DWELL, MovementType.TOOL_CHANGE):
                out.add_movement(mv)
                continue
            cur = out.current_position
            if cur is not None and cur.distance_to(mv.end) <= tol:
                continue
            out.add_movement(mv)
        removed = len(self) - len(out)
        if removed:
            logger.debug("%s: removed %d redundant moves", self.name, removed)
        return out
