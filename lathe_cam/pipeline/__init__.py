"""Pipeline orchestrating profile extraction and operation planning."""

from lathe_cam.pipeline.parameters import BuildContext, build_parameters, parse_enum
from lathe_cam.pipeline.pipeline import (
    CANONICAL_ORDER,
    GenerationRequest,
    GenerationResult,
    GenerationStatistics,
    GlobalParameters,
    OperationRequest,
    ProgressCallback,
    ToolpathGenerationPipeline,
)

__all__ = [
    "CANONICAL_ORDER",
    "BuildContext",
    "GenerationRequest",
    "GenerationResult",
    "GenerationStatistics",
    "GlobalParameters",
    "OperationRequest",
    "ProgressCallback",
    "ToolpathGenerationPipeline",
    "build_parameters",
    "parse_enum",
]
