"""Post-processor: turns finished toolpaths into a machine-ready program.

Wraps :class:`GCodeGenerator` with the machine profile, validates every
toolpath first, and reports problems in a :class:`ProcessingResult`
instead of raising.  Machine profiles are stored in the ``lathe.v1`` YAML
format read by :func:`lathe_cam.configs.loader.load_config`.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

from lathe_cam.configs.loader import LatheConfig, load_config
from lathe_cam.gcode.generator import GCodeError, GCodeGenerator
from lathe_cam.toolpath.types import Toolpath
from src.utils import fs

logger = logging.getLogger(__name__)


class MachineType(Enum):
    """Controller families with a known dialect."""

    GENERIC = "generic"
    FANUC = "fanuc"
    HAAS = "haas"
    MAZAK = "mazak"
    OKUMA = "okuma"
    SIEMENS = "siemens"


@dataclass
class ProcessingResult:
    """Outcome of :meth:`PostProcessor.process`."""

    success: bool = False
    gcode: str = ""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    line_count: int = 0
    estimated_time: float = 0.0  # minutes
    toolpath_count: int = 0


class PostProcessor:
    """Machine-specific G-code output.

    Parameters
    ----------
    config : LatheConfig | None
        Machine profile and G-code options; ``None`` uses the defaults.
    machine_type : MachineType | str | None
        Overrides ``config.machine.machine_type`` when given.
    """

    def __init__(
        self,
        config: LatheConfig | None = None,
        machine_type: MachineType | str | None = None,
    ) -> None:
        config = config or LatheConfig()
        if machine_type is not None:
            mt = MachineType(machine_type.value if isinstance(machine_type, MachineType) else machine_type.lower())
            config = dataclasses.replace(
                config, machine=dataclasses.replace(config.machine, machine_type=mt.value)
            )
        self.config = config
        self.generator = GCodeGenerator(config.machine, config.gcode)

    @property
    def machine_type(self) -> MachineType:
        return MachineType(self.config.machine.machine_type)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, toolpaths: Iterable[Toolpath]) -> ProcessingResult:
        """Validate and serialise *toolpaths* into one program.

        Empty toolpaths are skipped with a warning.  A generation error
        (non-finite values) fails the whole result.
        """
        result = ProcessingResult()
        paths: list[Toolpath] = []
        for tp in toolpaths:
            if tp.is_empty():
                result.warnings.append(f"Skipping empty toolpath '{tp.name}'")
                continue
            result.warnings.extend(
                f"{tp.name}: {w}" for w in self.generator.validate_toolpath(tp)
            )
            paths.append(tp)

        if not paths:
            result.errors.append("No toolpaths to process")
            return result

        try:
            result.gcode = self.generator.generate_program(paths)
        except GCodeError as exc:
            logger.error("G-code generation failed: %s", exc)
            result.errors.append(str(exc))
            return result

        result.toolpath_count = len(paths)
        result.line_count = result.gcode.count("\n")
        result.estimated_time = sum(self.generator.estimate_machining_time(tp) for tp in paths)
        result.success = True
        logger.info(
            "Post-processed %d toolpaths for %s: %d lines, %.2f min, %d warnings",
            result.toolpath_count,
            self.machine_type.value,
            result.line_count,
            result.estimated_time,
            len(result.warnings),
        )
        return result

    def process_toolpath(self, toolpath: Toolpath) -> ProcessingResult:
        return self.process([toolpath])

    # ------------------------------------------------------------------
    # Machine profiles
    # ------------------------------------------------------------------

    def save_machine_profile(self, path: str | Path) -> None:
        """Write the machine profile as ``lathe.v1`` YAML (atomic)."""
        machine = dataclasses.asdict(self.config.machine)
        machine["type"] = machine.pop("machine_type")
        data = {
            "schema": "lathe.v1",
            "machine": machine,
            "gcode": dataclasses.asdict(self.config.gcode),
            "pipeline": dataclasses.asdict(self.config.pipeline),
        }
        fs.atomic_yaml_dump(data, path)
        logger.info("Machine profile saved to %s", path)

    @classmethod
    def load_machine_profile(cls, path: str | Path) -> PostProcessor:
        """Post-processor for a ``lathe.v1`` YAML profile.

        Raises
        ------
        ConfigError
            If the profile fails validation.
        FileNotFoundError
            If *path* does not exist.
        """
        return cls(load_config(path))
