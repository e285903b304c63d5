"""YAML schema validation and config loading.

Provides centralized validation for all configuration files using pydantic:
    - Lathe schema (lathe.v1): machine profile, G-code options, pipeline tunables
    - CAM defaults schema (cam_defaults.v1): materials, parameter definitions,
      safety ceilings, optimisation and parting heuristics
    - Job schema (job.v1): part generatrix, stock, tools and operations for the CLI

All modules must use these validators to load configs for fail-fast error detection
with actionable messages (offending keys, expected ranges).

Units:
    - Geometry: millimeters (mm)
    - Cutting feed: mm/rev
    - Rapid feed: mm/min
    - Spindle speed: RPM

Usage:
    from src.utils import validators

    job = validators.load_job_config("part.yaml")
    lathe = validators.LatheConfigV1(**data)
"""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# LATHE SCHEMA V1
# ============================================================================

MACHINE_TYPES = ("generic", "fanuc", "haas", "mazak", "okuma", "siemens")


class TravelLimits(BaseModel):
    """Axis travel limits (mm). X is radial."""
    min_x: float = Field(0.0, description="Minimum X (mm)")
    max_x: float = Field(200.0, gt=0.0, description="Maximum X (mm)")
    min_z: float = Field(-300.0, description="Minimum Z (mm)")
    max_z: float = Field(300.0, description="Maximum Z (mm)")

    @model_validator(mode='after')
    def validate_ranges(self) -> 'TravelLimits':
        if self.min_x >= self.max_x:
            raise ValueError(f"min_x ({self.min_x}) must be < max_x ({self.max_x})")
        if self.min_z >= self.max_z:
            raise ValueError(f"min_z ({self.min_z}) must be < max_z ({self.max_z})")
        return self


class LatheMachine(BaseModel):
    """Lathe machine profile."""
    name: str = Field("Generic 2-Axis Lathe", min_length=1)
    type: str = Field("generic", description=f"One of {MACHINE_TYPES}")
    units: str = Field("mm", description="Units (mm only)")
    absolute_coordinates: bool = True
    diameter_mode: bool = False
    spindle_clockwise: bool = True
    use_coolant: bool = True
    max_spindle_speed: float = Field(3000.0, gt=0.0, le=20000.0, description="RPM")
    rapid_feed_rate: float = Field(5000.0, gt=0.0, description="mm/min")
    safe_retract_z: float = Field(5.0, ge=0.0, description="mm")
    travel: TravelLimits = Field(default_factory=TravelLimits)

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.lower()
        if v not in MACHINE_TYPES:
            raise ValueError(f"Machine type must be one of {list(MACHINE_TYPES)}, got '{v}'")
        return v

    @field_validator('units')
    @classmethod
    def validate_units(cls, v: str) -> str:
        if v != "mm":
            raise ValueError(f"Units must be 'mm', got '{v}'")
        return v


class GCodeOptions(BaseModel):
    """G-code output options."""
    include_comments: bool = True
    include_line_numbers: bool = True
    line_number_start: int = Field(10, ge=0)
    line_number_increment: int = Field(10, ge=1, le=1000)
    program_number: str = Field("1001", pattern=r"^\d{1,5}$")
    program_name: str = "LATHE_CAM"
    include_tool_changes: bool = True


class PipelineTunables(BaseModel):
    """Pipeline defaults and empirical constants."""
    profile_tolerance: float = Field(0.01, gt=0.0, le=1.0)
    profile_sections: int = Field(100, ge=10, le=1000)
    safety_height: float = Field(5.0, gt=0.0)
    clearance_distance: float = Field(1.0, gt=0.0)
    facing_allowance: float = Field(2.0, ge=0.0)
    time_overhead_factor: float = Field(1.1, ge=1.0, le=3.0)


class LatheConfigV1(BaseModel):
    """Lathe profile schema v1 (lathe.yaml)."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("lathe.v1", alias="schema", description="Schema version")
    machine: LatheMachine = Field(default_factory=LatheMachine)
    gcode: GCodeOptions = Field(default_factory=GCodeOptions)
    pipeline: PipelineTunables = Field(default_factory=PipelineTunables)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "lathe.v1":
            raise ValueError(f"Expected schema 'lathe.v1', got '{v}'")
        return v


# ============================================================================
# CAM DEFAULTS SCHEMA V1
# ============================================================================

class MaterialSchema(BaseModel):
    """Workpiece material properties."""
    hardness: float = Field(..., gt=0.0, description="HB")
    tensile_strength: float = Field(..., gt=0.0, description="MPa")
    thermal_conductivity: float = Field(..., gt=0.0, description="W/mK")
    machinability_rating: float = Field(..., gt=0.0, le=1.0)
    recommended_feed_rate: float = Field(..., gt=0.0, description="mm/rev")
    recommended_spindle_speed: float = Field(..., gt=0.0, description="RPM")
    recommended_depth_of_cut: float = Field(..., gt=0.0, description="mm")
    requires_coolant: bool = False
    work_hardening: bool = False
    chip_formation_factor: float = Field(1.0, gt=0.0)


class ParameterDefinitionSchema(BaseModel):
    """Single parameter definition."""
    description: str = ""
    required: bool = False
    min: float
    max: float
    default: float
    unit: str = ""

    @model_validator(mode='after')
    def validate_range(self) -> 'ParameterDefinitionSchema':
        if self.min > self.max:
            raise ValueError(f"min ({self.min}) must be <= max ({self.max})")
        if not self.min <= self.default <= self.max:
            raise ValueError(
                f"default ({self.default}) outside [{self.min}, {self.max}]"
            )
        return self


class UnknownParameterSchema(BaseModel):
    min: float = 0.0
    max: float = 1000.0
    default: float = 1.0


class SafetySchema(BaseModel):
    """Hard ceilings and warning thresholds."""
    max_spindle_speed: float = Field(3000.0, gt=0.0)
    max_feed_rate: float = Field(1.0, gt=0.0)
    max_material_removal_rate: float = Field(1000.0, gt=0.0)
    reference_diameter: float = Field(50.0, gt=0.0)
    high_feed_warning: float = Field(0.5, gt=0.0)
    high_speed_warning: float = Field(2000.0, gt=0.0)
    dry_speed_warning: float = Field(1500.0, gt=0.0)


class OptimizationSchema(BaseModel):
    """Constants for optimal parameter derivation."""
    base_cutting_speed: float = Field(200.0, gt=0.0, description="m/min")
    min_spindle_speed: float = Field(100.0, gt=0.0)
    max_spindle_speed: float = Field(3000.0, gt=0.0)
    roughing_depth_factor: float = Field(1.5, gt=0.0)
    finishing_depth_factor: float = Field(0.3, gt=0.0)

    @model_validator(mode='after')
    def validate_speeds(self) -> 'OptimizationSchema':
        if self.min_spindle_speed > self.max_spindle_speed:
            raise ValueError("min_spindle_speed must be <= max_spindle_speed")
        return self


class PartingScoringSchema(BaseModel):
    """Parting position heuristic weights."""
    sample_tolerance: float = Field(0.5, gt=0.0)
    neighbour_window: int = Field(2, ge=1)
    straight_radius_tolerance: float = Field(0.2, gt=0.0)
    min_radius: float = Field(1.0, ge=0.0)
    straight_accessibility: float = Field(1.0, ge=0.0, le=1.0)
    straight_preference: float = Field(0.9, ge=0.0, le=1.0)
    end_bonus_weight: float = Field(0.1, ge=0.0, le=1.0)
    end_bonus_span: float = Field(100.0, gt=0.0)
    shoulder_accessibility: float = Field(0.95, ge=0.0, le=1.0)
    shoulder_preference: float = Field(0.85, ge=0.0, le=1.0)
    end_accessibility: float = Field(0.9, ge=0.0, le=1.0)
    end_preference: float = Field(0.8, ge=0.0, le=1.0)
    middle_accessibility: float = Field(0.7, ge=0.0, le=1.0)
    middle_preference: float = Field(0.6, ge=0.0, le=1.0)
    middle_min_length: float = Field(20.0, ge=0.0)
    manual_accessibility: float = Field(1.0, ge=0.0, le=1.0)
    manual_preference: float = Field(0.8, ge=0.0, le=1.0)
    adopt_threshold: float = Field(0.7, ge=0.0, le=1.0)
    low_accessibility_warning: float = Field(0.5, ge=0.0, le=1.0)


class CamDefaultsV1(BaseModel):
    """CAM defaults schema v1 (cam_defaults.yaml)."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("cam_defaults.v1", alias="schema")
    default_material: str = "steel"
    materials: Dict[str, MaterialSchema]
    parameters: Dict[str, Dict[str, ParameterDefinitionSchema]]
    unknown_parameter: UnknownParameterSchema = Field(default_factory=UnknownParameterSchema)
    safety: SafetySchema = Field(default_factory=SafetySchema)
    optimization: OptimizationSchema = Field(default_factory=OptimizationSchema)
    parting_scoring: PartingScoringSchema = Field(default_factory=PartingScoringSchema)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "cam_defaults.v1":
            raise ValueError(f"Expected schema 'cam_defaults.v1', got '{v}'")
        return v

    @model_validator(mode='after')
    def validate_tables(self) -> 'CamDefaultsV1':
        if self.default_material not in self.materials:
            raise ValueError(
                f"default_material '{self.default_material}' not in materials "
                f"{sorted(self.materials)}"
            )
        if 'common' not in self.parameters:
            raise ValueError("parameters must define a 'common' group")
        return self


# ============================================================================
# JOB SCHEMA V1
# ============================================================================

OPERATION_NAMES = (
    "Facing", "Roughing", "ExternalRoughing", "Finishing",
    "Parting", "Threading", "Grooving", "Contouring",
)
TOOL_TYPES = ("Turning", "Facing", "Parting", "Threading", "Grooving")


class JobStock(BaseModel):
    """Raw bar stock (mm)."""
    diameter: float = Field(..., gt=0.0)
    length: float = Field(..., gt=0.0)


class JobTool(BaseModel):
    """Tool definition for a job."""
    name: str = Field(..., min_length=1)
    type: str = "Turning"
    tool_number: int = Field(1, ge=0, le=99)
    operations: List[str] = Field(default_factory=list, description="Operations this tool serves")
    feed_rate: float = Field(0.1, gt=0.0, description="mm/rev")
    spindle_speed: float = Field(1000.0, gt=0.0, description="RPM")
    depth_of_cut: float = Field(1.0, gt=0.0)
    stepover: float = Field(0.5, gt=0.0)
    rapid_feed_rate: float = Field(5000.0, gt=0.0, description="mm/min")
    tip_radius: float = Field(0.4, ge=0.0)
    insert_width: float = Field(3.0, gt=0.0)

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in TOOL_TYPES:
            raise ValueError(f"Tool type must be one of {list(TOOL_TYPES)}, got '{v}'")
        return v

    @field_validator('operations')
    @classmethod
    def validate_operations(cls, v: List[str]) -> List[str]:
        for name in v:
            if name not in OPERATION_NAMES:
                raise ValueError(f"Unknown operation '{name}'; expected one of {list(OPERATION_NAMES)}")
        return v


class JobOperation(BaseModel):
    """One operation entry; ``params`` keys are parameter names."""
    type: str
    enabled: bool = True
    params: Dict[str, Union[float, str, bool]] = Field(default_factory=dict)

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in OPERATION_NAMES:
            raise ValueError(f"Unknown operation '{v}'; expected one of {list(OPERATION_NAMES)}")
        return v


class JobV1(BaseModel):
    """Turning job schema v1 (consumed by scripts/generate_gcode.py)."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("job.v1", alias="schema")
    name: str = "part"
    material: str = "steel"
    profile: List[Tuple[float, float]] = Field(..., description="Generatrix (radius, z) points")
    stock: Optional[JobStock] = None
    machine_type: Optional[str] = None
    tolerance: float = Field(0.01, gt=0.0, le=1.0)
    tools: List[JobTool] = Field(..., min_length=1)
    operations: List[JobOperation] = Field(..., min_length=1)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "job.v1":
            raise ValueError(f"Expected schema 'job.v1', got '{v}'")
        return v

    @field_validator('profile')
    @classmethod
    def validate_profile(cls, v: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        if len(v) < 2:
            raise ValueError(f"profile needs at least 2 points, got {len(v)}")
        for r, _ in v:
            if r < 0.0:
                raise ValueError(f"profile radius must be >= 0, got {r}")
        return v

    @field_validator('machine_type')
    @classmethod
    def validate_machine_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v.lower() not in MACHINE_TYPES:
            raise ValueError(f"machine_type must be one of {list(MACHINE_TYPES)}, got '{v}'")
        return v.lower() if v is not None else v


# ============================================================================
# PUBLIC API
# ============================================================================

def _load(path: Union[str, Path], model: Any, label: str):
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{label} not found: {path}")

    data = fs.load_yaml(path)
    if data is None:
        raise ValueError(f"{label} is empty: {path}")
    try:
        return model(**data)
    except Exception as e:
        raise ValueError(f"{label} validation failed at {path}: {e}") from e


def load_job_config(path: Union[str, Path]) -> JobV1:
    """Load and validate a turning job from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to a job.v1 YAML file

    Returns
    -------
    JobV1
        Validated job

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (with actionable error message)
    """
    return _load(path, JobV1, "Job config")


def load_lathe_profile(path: Union[str, Path]) -> LatheConfigV1:
    """Load and validate a lathe profile (lathe.v1) from YAML."""
    return _load(path, LatheConfigV1, "Lathe profile")


def load_cam_defaults(path: Union[str, Path]) -> CamDefaultsV1:
    """Load and validate CAM defaults (cam_defaults.v1) from YAML."""
    return _load(path, CamDefaultsV1, "CAM defaults")


def flatten_config(cfg: Union[Dict, BaseModel], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested config into dotted keys (for logging run parameters).

    Examples
    --------
    >>> flatten_config({"machine": {"travel": {"max_x": 200.0}}})
    {'machine.travel.max_x': 200.0}
    """
    if isinstance(cfg, BaseModel):
        cfg = cfg.model_dump()
    flat: Dict[str, Any] = {}
    for key, value in cfg.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten_config(value, name))
        else:
            flat[name] = value
    return flat
