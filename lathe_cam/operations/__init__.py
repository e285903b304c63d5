"""Machining operations: the closed family of toolpath planners."""

from lathe_cam.operations.base import (
    CuttingEnvelope,
    Operation,
    apply_overrides,
    cutting_envelope,
)
from lathe_cam.operations.contouring import (
    ContouringOperation,
    ContouringParameters,
    ContouringResult,
)
from lathe_cam.operations.external_roughing import (
    ExternalRoughingOperation,
    ExternalRoughingParameters,
)
from lathe_cam.operations.facing import FacingOperation, FacingParameters, FacingStrategy
from lathe_cam.operations.finishing import FinishingOperation, FinishingParameters
from lathe_cam.operations.grooving import GroovingOperation, GroovingParameters
from lathe_cam.operations.parting import (
    PartingOperation,
    PartingParameters,
    PartingPosition,
    PartingResult,
    PartingStrategy,
    detect_parting_positions,
)
from lathe_cam.operations.roughing import (
    RoughingOperation,
    RoughingParameters,
    RoughingStrategy,
)
from lathe_cam.operations.threading import (
    ThreadForm,
    ThreadingOperation,
    ThreadingParameters,
    ThreadingResult,
    parse_thread_designation,
)
from lathe_cam.toolpath.types import OperationType

OPERATION_CLASSES: dict[OperationType, type[Operation]] = {
    OperationType.FACING: FacingOperation,
    OperationType.ROUGHING: RoughingOperation,
    OperationType.EXTERNAL_ROUGHING: ExternalRoughingOperation,
    OperationType.FINISHING: FinishingOperation,
    OperationType.PARTING: PartingOperation,
    OperationType.THREADING: ThreadingOperation,
    OperationType.GROOVING: GroovingOperation,
    OperationType.CONTOURING: ContouringOperation,
}

__all__ = [
    "OPERATION_CLASSES",
    "ContouringOperation",
    "ContouringParameters",
    "ContouringResult",
    "CuttingEnvelope",
    "ExternalRoughingOperation",
    "ExternalRoughingParameters",
    "FacingOperation",
    "FacingParameters",
    "FacingStrategy",
    "FinishingOperation",
    "FinishingParameters",
    "GroovingOperation",
    "GroovingParameters",
    "Operation",
    "PartingOperation",
    "PartingParameters",
    "PartingPosition",
    "PartingResult",
    "PartingStrategy",
    "RoughingOperation",
    "RoughingParameters",
    "RoughingStrategy",
    "ThreadForm",
    "ThreadingOperation",
    "ThreadingParameters",
    "ThreadingResult",
    "apply_overrides",
    "cutting_envelope",
    "detect_parting_positions",
    "parse_thread_designation",
]
