"""Operation parameter validation, defaulting and material data."""

from lathe_cam.params.config import (
    OperationConfig,
    Setting,
    SettingSource,
)
from lathe_cam.params.manager import (
    METRIC_THREAD_DEPTH_FACTOR,
    OperationParameterManager,
    ParameterStatus,
    ValidationResult,
)

__all__ = [
    "METRIC_THREAD_DEPTH_FACTOR",
    "OperationConfig",
    "OperationParameterManager",
    "ParameterStatus",
    "Setting",
    "SettingSource",
    "ValidationResult",
]
