"""Toolpath generation pipeline.

Single entry point from a part and a list of operation requests to one
toolpath per operation:

    1. validate the request and fill/validate each operation's parameters
    2. extract the shared profile once
    3. generate every enabled operation in canonical order
    4. aggregate statistics

Fatal conditions (no part, empty profile, missing tool) fail the whole
run.  An operation whose parameters fail validation is skipped with a
warning; an operation that fails during generation is recorded as an
error and the remaining operations still run.  Nothing escapes
:meth:`ToolpathGenerationPipeline.generate_toolpaths`: every failure ends
up in the returned :class:`GenerationResult`.

Runs can be moved to a background worker with
:meth:`~ToolpathGenerationPipeline.generate_toolpaths_async`; cancellation
is cooperative and checked between stages and operations.
"""

from __future__ import annotations

import contextvars
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from lathe_cam.configs.loader import LatheConfig, default_config
from lathe_cam.errors import CamError, GeometryError, PipelineError
from lathe_cam.geometry.primitives import TurningAxis
from lathe_cam.geometry.solids import Part
from lathe_cam.operations import OPERATION_CLASSES
from lathe_cam.operations.base import Operation, cutting_envelope
from lathe_cam.params.config import OperationConfig
from lathe_cam.params.manager import OperationParameterManager
from lathe_cam.pipeline.parameters import BuildContext, build_parameters
from lathe_cam.profile.extractor import Profile2D, extract_segment_profile
from lathe_cam.toolpath.types import OperationType, Tool, Toolpath
from src.utils.logging_config import log_context
from src.utils.profiler import TimerAccumulator, timer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

CANONICAL_ORDER: tuple[OperationType, ...] = (
    OperationType.FACING,
    OperationType.CONTOURING,
    OperationType.ROUGHING,
    OperationType.EXTERNAL_ROUGHING,
    OperationType.FINISHING,
    OperationType.GROOVING,
    OperationType.THREADING,
    OperationType.PARTING,
)

# Progress fractions of the fixed stages; operations share the span between
# PROGRESS_OPERATIONS and PROGRESS_OPERATIONS + PROGRESS_OPERATIONS_SPAN.
PROGRESS_VALIDATION = 0.1
PROGRESS_PROFILE = 0.2
PROGRESS_OPERATIONS = 0.3
PROGRESS_OPERATIONS_SPAN = 0.6
PROGRESS_STATISTICS = 0.95


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------


@dataclass
class OperationRequest:
    """One operation to run.

    ``config`` of ``None`` means fully defaulted; ``tool`` of ``None``
    falls back to the request's primary tool.
    """

    operation_type: OperationType
    enabled: bool = True
    config: OperationConfig | None = None
    tool: Tool | None = None

    @property
    def name(self) -> str:
        return self.operation_type.value


@dataclass(frozen=True)
class GlobalParameters:
    """Run-wide settings shared by every operation.

    ``stock_diameter`` of ``None`` means the largest part diameter plus
    ``2 * facing_allowance``; ``stock_length`` of ``None`` places the raw
    face ``facing_allowance`` above the part face.
    """

    turning_axis: TurningAxis = field(default_factory=TurningAxis)
    safety_height: float = 5.0
    clearance_distance: float = 1.0
    profile_tolerance: float = 0.01
    profile_sections: int = 100
    material: str = "steel"
    stock_diameter: float | None = None
    stock_length: float | None = None
    facing_allowance: float = 2.0
    time_overhead_factor: float = 1.1

    @classmethod
    def from_config(cls, config: LatheConfig, **overrides) -> GlobalParameters:
        """Defaults taken from the machine config's pipeline tunables."""
        t = config.pipeline
        values = dict(
            safety_height=t.safety_height,
            clearance_distance=t.clearance_distance,
            profile_tolerance=t.profile_tolerance,
            profile_sections=t.profile_sections,
            facing_allowance=t.facing_allowance,
            time_overhead_factor=t.time_overhead_factor,
        )
        values.update(overrides)
        return cls(**values)


@dataclass
class GenerationRequest:
    part: Part | None
    operations: list[OperationRequest]
    primary_tool: Tool | None = None
    global_params: GlobalParameters = field(default_factory=GlobalParameters)
    progress_callback: ProgressCallback | None = None

    def enabled_operations(self) -> list[OperationRequest]:
        """Enabled requests in canonical order (stable within a type)."""
        rank = {t: i for i, t in enumerate(CANONICAL_ORDER)}
        enabled = [
            r for r in self.operations
            if r.enabled and (r.config is None or r.config.is_enabled)
        ]
        return sorted(enabled, key=lambda r: rank.get(r.operation_type, len(rank)))

    def tool_for(self, op: OperationRequest) -> Tool | None:
        return op.tool or self.primary_tool


@dataclass
class GenerationStatistics:
    """Aggregates of one run.  Times in minutes, volume in mm^3."""

    total_time: float = 0.0
    total_moves: int = 0
    material_removed: float = 0.0
    operation_times: dict[str, float] = field(default_factory=dict)
    operation_moves: dict[str, int] = field(default_factory=dict)
    stage_times: dict[str, float] = field(default_factory=dict)  # wall-clock seconds


@dataclass
class GenerationResult:
    success: bool = False
    toolpaths: dict[str, Toolpath] = field(default_factory=dict)  # by unique operation name
    profile: Profile2D | None = None
    statistics: GenerationStatistics = field(default_factory=GenerationStatistics)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    processing_time: float = 0.0  # seconds
    timestamp: str = ""
    cancelled: bool = False
    failed_operation: str | None = None

    def ordered_toolpaths(self) -> list[Toolpath]:
        """Toolpaths in execution order (canonical, stable within a type)."""
        return list(self.toolpaths.values())

    def toolpaths_of(self, operation_type: OperationType) -> list[Toolpath]:
        return [tp for tp in self.toolpaths.values() if tp.operation_type is operation_type]

    def raise_for_failure(self) -> None:
        """Raise :class:`PipelineError` unless the run succeeded."""
        if self.success:
            return
        if self.cancelled:
            raise PipelineError("Generation cancelled")
        raise PipelineError("; ".join(self.errors) or "Generation failed", self.failed_operation)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ToolpathGenerationPipeline:
    """Sequences profile extraction and operation planning for one part.

    Parameters
    ----------
    parameter_manager : OperationParameterManager | None
        Validation and defaulting authority; a default manager when ``None``.
    config : LatheConfig | None
        Machine configuration (spindle ceiling); the packaged one when ``None``.
    """

    def __init__(
        self,
        parameter_manager: OperationParameterManager | None = None,
        config: LatheConfig | None = None,
    ) -> None:
        self.parameter_manager = parameter_manager or OperationParameterManager()
        self.config = config or default_config()
        self._cancel_flag = threading.Event()
        self._running = threading.Event()
        self._executor: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    @property
    def is_generating(self) -> bool:
        return self._running.is_set()

    def cancel_generation(self) -> None:
        """Request cancellation; honoured at the next stage boundary."""
        if self._running.is_set():
            logger.info("Cancellation requested")
        self._cancel_flag.set()

    def shutdown(self) -> None:
        """Stop the background worker, if one was started."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def generate_toolpaths(self, request: GenerationRequest) -> GenerationResult:
        """Run the pipeline synchronously."""
        self._cancel_flag.clear()
        return self._run(request)

    def generate_toolpaths_async(self, request: GenerationRequest) -> Future:
        """Run the pipeline on a background worker.

        Returns
        -------
        concurrent.futures.Future
            Resolves to the :class:`GenerationResult`.
        """
        self._cancel_flag.clear()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="toolpath")
        # the worker runs with the caller's logging context
        ctx = contextvars.copy_context()
        return self._executor.submit(ctx.run, self._run, request)

    def validate_request(self, request: GenerationRequest) -> list[str]:
        """Problems that prevent the run from starting; empty when usable."""
        problems: list[str] = []
        if request.part is None:
            problems.append("No part geometry provided")
        enabled = request.enabled_operations()
        if not enabled:
            problems.append("No operations enabled")
        for op in enabled:
            if request.tool_for(op) is None:
                problems.append(f"{op.name}: no tool assigned")
            if op.operation_type not in OPERATION_CLASSES:
                problems.append(f"{op.name}: unsupported operation type")
        gp = request.global_params
        if gp.profile_tolerance <= 0.0:
            problems.append("Profile tolerance must be positive")
        if gp.safety_height <= 0.0 or gp.clearance_distance <= 0.0:
            problems.append("Safety height and clearance must be positive")
        if gp.stock_diameter is not None and gp.stock_diameter <= 0.0:
            problems.append("Stock diameter must be positive")
        return problems

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _run(self, request: GenerationRequest) -> GenerationResult:
        result = GenerationResult(timestamp=datetime.now(timezone.utc).isoformat())
        start = time.perf_counter()
        self._running.set()
        logger.info("Toolpath generation started: %d operation(s)", len(request.operations))
        try:
            self._execute(request, result)
        except CamError as exc:
            logger.error("Toolpath generation aborted: %s", exc)
            result.errors.append(str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure during toolpath generation")
            result.errors.append(f"Unexpected error: {exc}")
        finally:
            self._running.clear()

        result.processing_time = time.perf_counter() - start
        result.success = not result.errors and not result.cancelled
        logger.info(
            "Toolpath generation %s in %.3f s: %d toolpath(s), %d error(s), %d warning(s)",
            "succeeded" if result.success else ("cancelled" if result.cancelled else "failed"),
            result.processing_time,
            len(result.toolpaths),
            len(result.errors),
            len(result.warnings),
        )
        return result

    def _cancelled(self, result: GenerationResult) -> bool:
        if self._cancel_flag.is_set():
            result.cancelled = True
            result.warnings.append("Generation cancelled")
            return True
        return False

    @staticmethod
    def _report(request: GenerationRequest, fraction: float, status: str) -> None:
        logger.debug("Progress %.0f%%: %s", fraction * 100.0, status)
        if request.progress_callback is None:
            return
        try:
            request.progress_callback(fraction, status)
        except Exception as exc:  # noqa: BLE001
            logger.error("Progress callback error: %s", exc)

    def _execute(self, request: GenerationRequest, result: GenerationResult) -> None:
        stats = result.statistics
        gp = request.global_params

        self._report(request, 0.0, "Validating request")
        problems = self.validate_request(request)
        if problems:
            result.errors.extend(problems)
            return
        if self._cancelled(result):
            return

        # 1. parameters
        self._report(request, PROGRESS_VALIDATION, "Validating operation parameters")
        plans: list[tuple[OperationRequest, OperationConfig, Tool]] = []
        manager = self.parameter_manager
        for op in request.enabled_operations():
            tool = request.tool_for(op)
            config = op.config or OperationConfig(op.operation_type)
            config = manager.fill_missing_parameters(config, gp.material, tool)
            validation = manager.validate_operation_parameters(config, gp.material, tool)
            if not validation.is_valid:
                reason = "; ".join(validation.messages()) or validation.status.value
                logger.warning("Skipping %s: %s", op.name, reason)
                result.warnings.append(f"{op.name} skipped: {reason}")
                continue
            result.warnings.extend(f"{op.name}: {w}" for w in validation.warnings)
            plans.append((op, config, tool))
        if self._cancelled(result):
            return

        # 2. shared profile
        self._report(request, PROGRESS_PROFILE, "Extracting profile")
        with timer("profile_extraction", sink=stats.stage_times.__setitem__):
            profile = extract_segment_profile(request.part, gp.turning_axis, gp.profile_tolerance)
        if profile.is_empty():
            raise GeometryError("Profile extraction produced no segments")
        result.profile = profile
        envelope = cutting_envelope(profile, gp.profile_tolerance)
        logger.info(
            "Profile: %d segments, Z %.3f..%.3f, R %.3f..%.3f",
            len(profile),
            envelope.min_z,
            envelope.max_z,
            envelope.min_radius,
            envelope.max_radius,
        )

        stock_d = gp.stock_diameter or 2.0 * envelope.max_radius + 2.0 * gp.facing_allowance
        if gp.stock_length is not None:
            stock_face_z = max(envelope.max_z, envelope.min_z + gp.stock_length)
        else:
            stock_face_z = envelope.max_z + gp.facing_allowance

        # 3. operations
        op_timer = TimerAccumulator("operations")
        n = max(1, len(plans))
        for i, (op, config, tool) in enumerate(plans):
            if self._cancelled(result):
                return
            name = self._unique_name(op.name, result)
            self._report(
                request,
                PROGRESS_OPERATIONS + PROGRESS_OPERATIONS_SPAN * i / n,
                f"Generating {name}",
            )
            ctx = BuildContext(
                profile=profile,
                envelope=envelope,
                tool=tool,
                stock_diameter=stock_d,
                stock_face_z=stock_face_z,
                safety_height=gp.safety_height,
                clearance=gp.clearance_distance,
                profile_tolerance=gp.profile_tolerance,
                profile_sections=gp.profile_sections,
                facing_allowance=gp.facing_allowance,
                time_overhead_factor=gp.time_overhead_factor,
                max_spindle_speed=self.config.machine.max_spindle_speed,
            )
            with log_context(op=name):
                try:
                    with op_timer.measure(), timer(name, sink=stats.stage_times.__setitem__):
                        operation = self._build_operation(op, name, config, ctx, result)
                        reason = operation.validation_error()
                        if reason:
                            logger.warning("Skipping %s: %s", name, reason)
                            result.warnings.append(f"{name}: {reason}")
                            continue
                        path = operation.generate_from_profile(profile)
                        result.warnings.extend(operation.warnings)
                except CamError as exc:
                    logger.error("%s failed: %s", name, exc)
                    result.errors.append(str(exc))
                    if result.failed_operation is None:
                        result.failed_operation = name
                    continue

            minutes = path.estimate_machining_time()
            result.toolpaths[name] = path
            stats.operation_times[name] = minutes
            stats.operation_moves[name] = len(path)
            stats.material_removed += operation.estimate_material_removed(profile)
            logger.info("%s: %d moves, %.2f min", name, len(path), minutes)

        # 4. statistics
        self._report(request, PROGRESS_STATISTICS, "Computing statistics")
        stats.total_moves = sum(stats.operation_moves.values())
        stats.total_time = sum(stats.operation_times.values()) * gp.time_overhead_factor
        stats.stage_times["operations_mean"] = op_timer.mean()
        stats.stage_times["operations_max"] = op_timer.as_dict()["max_s"]
        self._report(request, 1.0, "Complete")

    def _build_operation(
        self,
        op: OperationRequest,
        name: str,
        config: OperationConfig,
        ctx: BuildContext,
        result: GenerationResult,
    ) -> Operation:
        params, unknown = build_parameters(config, ctx)
        if unknown:
            result.warnings.append(f"{name}: ignored unknown parameters {', '.join(unknown)}")
        cls = OPERATION_CLASSES[op.operation_type]
        return cls(name, ctx.tool, params)

    @staticmethod
    def _unique_name(base: str, result: GenerationResult) -> str:
        """*base*, or *base* with a counter when a toolpath already uses it."""
        name, k = base, 2
        while name in result.toolpaths:
            name = f"{base} {k}"
            k += 1
        return name
