"""Tests for the toolpath generation pipeline.

Runs complete requests on the reference cylinder and checks ordering,
skip and failure semantics, progress reporting, cancellation and the
background worker.
"""

from __future__ import annotations

import pytest

from lathe_cam.configs.loader import LatheConfig
from lathe_cam.errors import PipelineError
from lathe_cam.geometry.solids import MeshSolid, RevolvedSolid, make_cylinder
from lathe_cam.params.config import OperationConfig
from lathe_cam.pipeline.pipeline import (
    GenerationRequest,
    GlobalParameters,
    OperationRequest,
    ToolpathGenerationPipeline,
)
from lathe_cam.toolpath.types import MovementType, OperationType, Tool
from src.utils.logging_config import get_context, log_context


@pytest.fixture()
def pipeline(lathe_config: LatheConfig) -> ToolpathGenerationPipeline:
    p = ToolpathGenerationPipeline(config=lathe_config)
    yield p
    p.shutdown()


@pytest.fixture()
def full_request(
    cylinder: RevolvedSolid,
    turning_tool: Tool,
    threading_tool: Tool,
    parting_tool: Tool,
) -> GenerationRequest:
    return GenerationRequest(
        part=cylinder,
        operations=[
            OperationRequest(OperationType.PARTING, tool=parting_tool),
            OperationRequest(OperationType.THREADING, tool=threading_tool),
            OperationRequest(OperationType.FINISHING),
            OperationRequest(OperationType.ROUGHING),
            OperationRequest(OperationType.FACING),
        ],
        primary_tool=turning_tool,
    )


# ---------------------------------------------------------------------------
# Successful runs
# ---------------------------------------------------------------------------


class TestSuccessfulRun:
    def test_all_operations_generated(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        result = pipeline.generate_toolpaths(full_request)
        assert result.success, result.errors
        assert [tp.operation_type for tp in result.ordered_toolpaths()] == [
            OperationType.FACING,
            OperationType.ROUGHING,
            OperationType.FINISHING,
            OperationType.THREADING,
            OperationType.PARTING,
        ]
        assert result.profile is not None and len(result.profile) == 3
        assert result.timestamp
        result.raise_for_failure()

    def test_repeated_runs_are_identical(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        first = pipeline.generate_toolpaths(full_request)
        second = pipeline.generate_toolpaths(full_request)
        assert list(first.toolpaths) == list(second.toolpaths)
        for name, path in first.toolpaths.items():
            again = second.toolpaths[name]
            assert len(again) == len(path)
            assert again.current_position == path.current_position
        assert second.statistics.total_moves == first.statistics.total_moves

    def test_statistics(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        result = pipeline.generate_toolpaths(full_request)
        stats = result.statistics
        assert stats.total_moves == sum(len(tp) for tp in result.toolpaths.values())
        assert stats.total_time == pytest.approx(sum(stats.operation_times.values()) * 1.1)
        assert stats.material_removed > 0.0
        assert "profile_extraction" in stats.stage_times
        assert set(stats.operation_moves) == {
            "Facing", "Roughing", "Finishing", "Threading", "Parting"
        }

    def test_geometry_from_profile_and_stock(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        result = pipeline.generate_toolpaths(full_request)
        facing = result.toolpaths["Facing"]
        # stock face sits facing_allowance above the part face
        assert max(mv.end.z for mv in facing if mv.is_cutting) == pytest.approx(51.0)
        roughing = result.toolpaths["Roughing"]
        assert min(mv.end.x for mv in roughing if mv.is_cutting) == pytest.approx(10.5)
        parting = result.toolpaths["Parting"]
        assert min(mv.end.x for mv in parting if mv.is_cutting) == pytest.approx(0.0)

    def test_finishing_uses_constant_surface_speed(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        result = pipeline.generate_toolpaths(full_request)
        finishing = result.toolpaths["Finishing"]
        assert finishing.tool.cutting.spindle_speed == pytest.approx(2387.3, abs=0.1)

    def test_stock_length(
        self,
        pipeline: ToolpathGenerationPipeline,
        cylinder: RevolvedSolid,
        turning_tool: Tool,
    ) -> None:
        request = GenerationRequest(
            part=cylinder,
            operations=[OperationRequest(OperationType.FACING)],
            primary_tool=turning_tool,
            global_params=GlobalParameters(stock_length=55.0),
        )
        result = pipeline.generate_toolpaths(request)
        first = result.toolpaths["Facing"].movements[0]
        assert first.end.z == pytest.approx(60.0)

    def test_strategy_and_overrides(
        self,
        pipeline: ToolpathGenerationPipeline,
        cylinder: RevolvedSolid,
        turning_tool: Tool,
    ) -> None:
        config = OperationConfig.from_values(
            OperationType.ROUGHING,
            overrides={"reverse_passes": False, "wobble": 3},
            strategy="radial",
        )
        request = GenerationRequest(
            part=cylinder,
            operations=[OperationRequest(OperationType.ROUGHING, config=config)],
            primary_tool=turning_tool,
        )
        result = pipeline.generate_toolpaths(request)
        assert result.success
        path = result.toolpaths["Roughing"]
        # one facing-direction cut per 1 mm level over 50 mm
        assert path.count(MovementType.LINEAR) == 50
        assert any("wobble" in w for w in result.warnings)


# ---------------------------------------------------------------------------
# Skips and failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_missing_part(self, pipeline: ToolpathGenerationPipeline, turning_tool: Tool) -> None:
        request = GenerationRequest(
            part=None, operations=[OperationRequest(OperationType.FACING)], primary_tool=turning_tool
        )
        result = pipeline.generate_toolpaths(request)
        assert not result.success
        assert "No part geometry provided" in result.errors

    def test_missing_tool(self, pipeline: ToolpathGenerationPipeline, cylinder: RevolvedSolid) -> None:
        request = GenerationRequest(part=cylinder, operations=[OperationRequest(OperationType.FACING)])
        result = pipeline.generate_toolpaths(request)
        assert not result.success
        assert "Facing: no tool assigned" in result.errors

    def test_nothing_enabled(
        self, pipeline: ToolpathGenerationPipeline, cylinder: RevolvedSolid, turning_tool: Tool
    ) -> None:
        disabled = OperationConfig.from_values(OperationType.FACING, enabled=False)
        request = GenerationRequest(
            part=cylinder,
            operations=[
                OperationRequest(OperationType.ROUGHING, enabled=False),
                OperationRequest(OperationType.FACING, config=disabled),
            ],
            primary_tool=turning_tool,
        )
        result = pipeline.generate_toolpaths(request)
        assert "No operations enabled" in result.errors

    def test_empty_profile(self, pipeline: ToolpathGenerationPipeline, turning_tool: Tool) -> None:
        # a triangle that never meets the section plane
        part = MeshSolid([(0.0, 5.0, 0.0), (1.0, 5.0, 0.0), (0.0, 5.0, 1.0)], [(0, 1, 2)])
        request = GenerationRequest(
            part=part, operations=[OperationRequest(OperationType.FACING)], primary_tool=turning_tool
        )
        result = pipeline.generate_toolpaths(request)
        assert not result.success
        assert result.errors == ["Profile extraction produced no segments"]
        with pytest.raises(PipelineError):
            result.raise_for_failure()

    def test_invalid_parameters_skip_operation(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        full_request.operations.append(
            OperationRequest(
                OperationType.GROOVING,
                config=OperationConfig.from_values(OperationType.GROOVING, spindle_speed=5000.0),
            )
        )
        result = pipeline.generate_toolpaths(full_request)
        assert result.success
        assert "Grooving" not in result.toolpaths
        assert any(w.startswith("Grooving skipped") for w in result.warnings)

    def test_failed_validation_skips_operation(
        self,
        pipeline: ToolpathGenerationPipeline,
        full_request: GenerationRequest,
        grooving_tool: Tool,
    ) -> None:
        config = OperationConfig.from_values(OperationType.GROOVING, overrides={"groove_depth": 15.0})
        full_request.operations.append(
            OperationRequest(OperationType.GROOVING, config=config, tool=grooving_tool)
        )
        result = pipeline.generate_toolpaths(full_request)
        assert result.success, result.errors
        assert "Grooving" not in result.toolpaths
        assert len(result.toolpaths) == 5
        assert any(
            w.startswith("Grooving: Groove depth must be less than") for w in result.warnings
        )

    def test_thread_too_coarse_for_small_bar(
        self,
        pipeline: ToolpathGenerationPipeline,
        turning_tool: Tool,
        threading_tool: Tool,
    ) -> None:
        request = GenerationRequest(
            part=make_cylinder(2.0, 40.0),
            operations=[
                OperationRequest(OperationType.FINISHING),
                OperationRequest(OperationType.THREADING, tool=threading_tool),
            ],
            primary_tool=turning_tool,
        )
        result = pipeline.generate_toolpaths(request)
        assert result.success, result.errors
        assert list(result.toolpaths) == ["Finishing"]
        assert "Threading: Thread pitch is too large for diameter" in result.warnings
        assert result.failed_operation is None

    def test_generation_failure_keeps_other_operations(
        self,
        pipeline: ToolpathGenerationPipeline,
        full_request: GenerationRequest,
    ) -> None:
        config = OperationConfig.from_values(
            OperationType.EXTERNAL_ROUGHING, overrides={"strategy": "zigzag"}
        )
        full_request.operations.append(
            OperationRequest(OperationType.EXTERNAL_ROUGHING, config=config)
        )
        result = pipeline.generate_toolpaths(full_request)
        assert not result.success
        assert result.failed_operation == "ExternalRoughing"
        assert len(result.toolpaths) == 5
        with pytest.raises(PipelineError) as info:
            result.raise_for_failure()
        assert info.value.operation == "ExternalRoughing"

    def test_same_operation_twice(
        self,
        pipeline: ToolpathGenerationPipeline,
        cylinder: RevolvedSolid,
        turning_tool: Tool,
    ) -> None:
        request = GenerationRequest(
            part=cylinder,
            operations=[
                OperationRequest(OperationType.FACING),
                OperationRequest(OperationType.FACING),
            ],
            primary_tool=turning_tool,
        )
        result = pipeline.generate_toolpaths(request)
        assert result.success, result.errors
        assert list(result.toolpaths) == ["Facing", "Facing 2"]
        assert [tp.name for tp in result.toolpaths_of(OperationType.FACING)] == [
            "Facing", "Facing 2"
        ]
        assert set(result.statistics.operation_moves) == {"Facing", "Facing 2"}

    def test_unknown_strategy_is_an_operation_error(
        self,
        pipeline: ToolpathGenerationPipeline,
        cylinder: RevolvedSolid,
        turning_tool: Tool,
    ) -> None:
        config = OperationConfig.from_values(OperationType.FACING, strategy="zigzag")
        request = GenerationRequest(
            part=cylinder,
            operations=[OperationRequest(OperationType.FACING, config=config)],
            primary_tool=turning_tool,
        )
        result = pipeline.generate_toolpaths(request)
        assert not result.success
        assert "Unknown FacingStrategy 'zigzag'" in result.errors[0]


# ---------------------------------------------------------------------------
# Progress, cancellation, async
# ---------------------------------------------------------------------------


class TestControl:
    def test_progress_is_monotonic(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        seen: list[tuple[float, str]] = []
        full_request.progress_callback = lambda f, s: seen.append((f, s))
        pipeline.generate_toolpaths(full_request)
        fractions = [f for f, _ in seen]
        assert fractions[0] == 0.0
        assert fractions[-1] == 1.0
        assert fractions == sorted(fractions)
        assert seen[-1][1] == "Complete"

    def test_failing_callback_does_not_abort(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        def boom(fraction: float, status: str) -> None:
            raise RuntimeError("display gone")

        full_request.progress_callback = boom
        assert pipeline.generate_toolpaths(full_request).success

    def test_cancel_between_stages(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        def cancel_on_profile(fraction: float, status: str) -> None:
            if status == "Extracting profile":
                pipeline.cancel_generation()

        full_request.progress_callback = cancel_on_profile
        result = pipeline.generate_toolpaths(full_request)
        assert result.cancelled
        assert not result.success
        assert not result.toolpaths
        with pytest.raises(PipelineError, match="cancelled"):
            result.raise_for_failure()

    def test_new_run_clears_cancellation(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        pipeline.cancel_generation()
        assert pipeline.generate_toolpaths(full_request).success

    def test_async_run(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        future = pipeline.generate_toolpaths_async(full_request)
        result = future.result(timeout=60)
        assert result.success
        assert not pipeline.is_generating

    def test_async_run_keeps_log_context(
        self, pipeline: ToolpathGenerationPipeline, full_request: GenerationRequest
    ) -> None:
        seen: list[dict] = []
        full_request.progress_callback = lambda f, s: seen.append(get_context())
        with log_context(job="shaft_01"):
            result = pipeline.generate_toolpaths_async(full_request).result(timeout=60)
        assert result.success
        assert seen
        assert all(fields.get("job") == "shaft_01" for fields in seen)


class TestRequest:
    def test_canonical_order(self, full_request: GenerationRequest) -> None:
        names = [op.name for op in full_request.enabled_operations()]
        assert names == ["Facing", "Roughing", "Finishing", "Threading", "Parting"]

    def test_global_parameters_from_config(self, lathe_config: LatheConfig) -> None:
        gp = GlobalParameters.from_config(lathe_config, material="aluminum")
        assert gp.material == "aluminum"
        assert gp.time_overhead_factor == pytest.approx(1.1)
        assert gp.profile_sections == 100
