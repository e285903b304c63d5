"""Lathe machine and CAM defaults loading and validation."""

from lathe_cam.configs.loader import (
    CamDefaults,
    ConfigError,
    GCodeOptions,
    LatheConfig,
    MachineConfig,
    MaterialProperties,
    OptimizationConstants,
    ParameterDefinition,
    PartingScoring,
    PipelineTunables,
    SafetyLimits,
    TravelLimits,
    default_cam_defaults,
    default_config,
    load_cam_defaults,
    load_config,
)

__all__ = [
    "CamDefaults",
    "ConfigError",
    "GCodeOptions",
    "LatheConfig",
    "MachineConfig",
    "MaterialProperties",
    "OptimizationConstants",
    "ParameterDefinition",
    "PartingScoring",
    "PipelineTunables",
    "SafetyLimits",
    "TravelLimits",
    "default_cam_defaults",
    "default_config",
    "load_cam_defaults",
    "load_config",
]
