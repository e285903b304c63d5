"""Configuration loader for the lathe CAM engine.

Loads and validates ``lathe.yaml`` (machine profile, G-code options,
pipeline tunables) and ``cam_defaults.yaml`` (material table, parameter
definitions, safety ceilings, heuristic weights) into typed, frozen
dataclasses.  Schema checks are done by the pydantic models in
``src.utils.validators``; this module turns them into the immutable tables
the engine passes around.

Cutting feeds are stored in **mm/rev** throughout Python.  Conversion to
the G-code ``F`` word (mm/min) happens only in the G-code generator.

Usage::

    from lathe_cam.configs.loader import load_config, load_cam_defaults
    cfg = load_config()                      # packaged lathe.yaml
    cfg = load_config("/custom/lathe.yaml")  # explicit path
    defaults = default_cam_defaults()        # cached packaged table
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import ValidationError

from src.utils.fs import load_yaml
from src.utils.validators import CamDefaultsV1, LatheConfigV1

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path(__file__).parent


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Dataclasses -- lathe.yaml
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TravelLimits:
    """Axis travel limits in mm (X radial)."""

    min_x: float = 0.0
    max_x: float = 200.0
    min_z: float = -300.0
    max_z: float = 300.0


@dataclass(frozen=True)
class MachineConfig:
    """Lathe capabilities used by the G-code layer."""

    name: str = "Generic 2-Axis Lathe"
    machine_type: str = "generic"
    units: str = "mm"
    absolute_coordinates: bool = True
    diameter_mode: bool = False
    spindle_clockwise: bool = True
    use_coolant: bool = True
    max_spindle_speed: float = 3000.0
    rapid_feed_rate: float = 5000.0
    safe_retract_z: float = 5.0
    travel: TravelLimits = field(default_factory=TravelLimits)


@dataclass(frozen=True)
class GCodeOptions:
    """Formatting switches for emitted programs."""

    include_comments: bool = True
    include_line_numbers: bool = True
    line_number_start: int = 10
    line_number_increment: int = 10
    program_number: str = "1001"
    program_name: str = "LATHE_CAM"
    include_tool_changes: bool = True


@dataclass(frozen=True)
class PipelineTunables:
    """Pipeline defaults and empirical constants."""

    profile_tolerance: float = 0.01
    profile_sections: int = 100
    safety_height: float = 5.0
    clearance_distance: float = 1.0
    facing_allowance: float = 2.0
    time_overhead_factor: float = 1.1


@dataclass(frozen=True)
class LatheConfig:
    """Top-level lathe configuration."""

    machine: MachineConfig = field(default_factory=MachineConfig)
    gcode: GCodeOptions = field(default_factory=GCodeOptions)
    pipeline: PipelineTunables = field(default_factory=PipelineTunables)


# ---------------------------------------------------------------------------
# Dataclasses -- cam_defaults.yaml
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MaterialProperties:
    """Workpiece material data driving parameter defaults."""

    name: str
    hardness: float
    tensile_strength: float
    thermal_conductivity: float
    machinability_rating: float
    recommended_feed_rate: float
    recommended_spindle_speed: float
    recommended_depth_of_cut: float
    requires_coolant: bool = False
    work_hardening: bool = False
    chip_formation_factor: float = 1.0


@dataclass(frozen=True)
class ParameterDefinition:
    """Range and default for one operation parameter."""

    name: str
    description: str
    required: bool
    min_value: float
    max_value: float
    default_value: float
    unit: str = ""


@dataclass(frozen=True)
class SafetyLimits:
    max_spindle_speed: float = 3000.0
    max_feed_rate: float = 1.0
    max_material_removal_rate: float = 1000.0
    reference_diameter: float = 50.0
    high_feed_warning: float = 0.5
    high_speed_warning: float = 2000.0
    dry_speed_warning: float = 1500.0


@dataclass(frozen=True)
class OptimizationConstants:
    base_cutting_speed: float = 200.0
    min_spindle_speed: float = 100.0
    max_spindle_speed: float = 3000.0
    roughing_depth_factor: float = 1.5
    finishing_depth_factor: float = 0.3


@dataclass(frozen=True)
class PartingScoring:
    """Weights of the parting position heuristic.

    The values are empirical; they rank candidates rather than measure
    anything physical.
    """

    sample_tolerance: float = 0.5
    neighbour_window: int = 2
    straight_radius_tolerance: float = 0.2
    min_radius: float = 1.0
    straight_accessibility: float = 1.0
    straight_preference: float = 0.9
    end_bonus_weight: float = 0.1
    end_bonus_span: float = 100.0
    shoulder_accessibility: float = 0.95
    shoulder_preference: float = 0.85
    end_accessibility: float = 0.9
    end_preference: float = 0.8
    middle_accessibility: float = 0.7
    middle_preference: float = 0.6
    middle_min_length: float = 20.0
    manual_accessibility: float = 1.0
    manual_preference: float = 0.8
    adopt_threshold: float = 0.7
    low_accessibility_warning: float = 0.5


@dataclass(frozen=True)
class CamDefaults:
    """Immutable material and parameter tables.

    Built once (see :func:`default_cam_defaults`) and passed by reference
    to the parameter manager, operations and pipeline.
    """

    default_material: str
    materials: Mapping[str, MaterialProperties]
    parameters: Mapping[str, tuple[ParameterDefinition, ...]]
    unknown_parameter: ParameterDefinition
    safety: SafetyLimits = field(default_factory=SafetyLimits)
    optimization: OptimizationConstants = field(default_factory=OptimizationConstants)
    parting_scoring: PartingScoring = field(default_factory=PartingScoring)

    def material(self, name: str) -> MaterialProperties:
        """Material by name; unknown names fall back to the default material."""
        key = name.strip().lower().replace(" ", "_")
        props = self.materials.get(key)
        if props is None:
            logger.debug("Unknown material '%s', using '%s'", name, self.default_material)
            props = self.materials[self.default_material]
        return props

    def definitions_for(self, operation: str) -> tuple[ParameterDefinition, ...]:
        """Common definitions followed by the operation's own extras."""
        return self.parameters.get("common", ()) + self.parameters.get(operation, ())


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _read(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    logger.info("Loading configuration from %s", path)
    data = load_yaml(path)
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")
    return data


def _parse_lathe(schema: LatheConfigV1) -> LatheConfig:
    m = schema.machine
    return LatheConfig(
        machine=MachineConfig(
            name=m.name,
            machine_type=m.type,
            units=m.units,
            absolute_coordinates=m.absolute_coordinates,
            diameter_mode=m.diameter_mode,
            spindle_clockwise=m.spindle_clockwise,
            use_coolant=m.use_coolant,
            max_spindle_speed=m.max_spindle_speed,
            rapid_feed_rate=m.rapid_feed_rate,
            safe_retract_z=m.safe_retract_z,
            travel=TravelLimits(**m.travel.model_dump()),
        ),
        gcode=GCodeOptions(**schema.gcode.model_dump()),
        pipeline=PipelineTunables(**schema.pipeline.model_dump()),
    )


def _parse_cam_defaults(schema: CamDefaultsV1) -> CamDefaults:
    materials = {
        name.lower(): MaterialProperties(name=name.lower(), **mat.model_dump())
        for name, mat in schema.materials.items()
    }
    parameters: dict[str, tuple[ParameterDefinition, ...]] = {}
    for group, defs in schema.parameters.items():
        parameters[group] = tuple(
            ParameterDefinition(
                name=pname,
                description=d.description,
                required=d.required,
                min_value=d.min,
                max_value=d.max,
                default_value=d.default,
                unit=d.unit,
            )
            for pname, d in defs.items()
        )
    u = schema.unknown_parameter
    return CamDefaults(
        default_material=schema.default_material.lower(),
        materials=MappingProxyType(materials),
        parameters=MappingProxyType(parameters),
        unknown_parameter=ParameterDefinition(
            name="", description="", required=False,
            min_value=u.min, max_value=u.max, default_value=u.default,
        ),
        safety=SafetyLimits(**schema.safety.model_dump()),
        optimization=OptimizationConstants(**schema.optimization.model_dump()),
        parting_scoring=PartingScoring(**schema.parting_scoring.model_dump()),
    )


def _validate_config(cfg: LatheConfig) -> None:
    """Cross-field checks the schema cannot express."""
    m = cfg.machine
    if m.safe_retract_z > m.travel.max_z:
        raise ConfigError(
            f"safe_retract_z ({m.safe_retract_z}) beyond max_z ({m.travel.max_z})"
        )
    if cfg.pipeline.safety_height > m.travel.max_z:
        raise ConfigError(
            f"pipeline.safety_height ({cfg.pipeline.safety_height}) beyond max_z "
            f"({m.travel.max_z})"
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: str | Path | None = None) -> LatheConfig:
    """Load and validate the lathe configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``lathe.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    LatheConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If any field is missing or fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    path = _CONFIG_DIR / "lathe.yaml" if path is None else Path(path)
    data = _read(path)
    try:
        schema = LatheConfigV1(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid lathe config {path}: {exc}") from exc
    cfg = _parse_lathe(schema)
    _validate_config(cfg)
    logger.info("Lathe config loaded: %s (%s)", cfg.machine.name, cfg.machine.machine_type)
    return cfg


def load_cam_defaults(path: str | Path | None = None) -> CamDefaults:
    """Load the material table and parameter definitions from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``cam_defaults.yaml``; ``None`` loads the packaged file.

    Raises
    ------
    ConfigError
        If the file fails schema validation.
    FileNotFoundError
        If *path* does not exist.
    """
    path = _CONFIG_DIR / "cam_defaults.yaml" if path is None else Path(path)
    data = _read(path)
    try:
        schema = CamDefaultsV1(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid CAM defaults {path}: {exc}") from exc
    defaults = _parse_cam_defaults(schema)
    logger.info(
        "CAM defaults loaded: %d materials, %d parameter groups",
        len(defaults.materials),
        len(defaults.parameters),
    )
    return defaults


@functools.lru_cache(maxsize=1)
def default_cam_defaults() -> CamDefaults:
    """Packaged CAM defaults, loaded once per process."""
    return load_cam_defaults()


@functools.lru_cache(maxsize=1)
def default_config() -> LatheConfig:
    """Packaged lathe configuration, loaded once per process."""
    return load_config()
