"""Tests for OperationConfig and OperationParameterManager.

Covers defaulting (material, computed, definition defaults), range and
safety validation, status precedence and parameter optimisation.
"""

from __future__ import annotations

import pytest

from lathe_cam.errors import ParameterError, SafetyError
from lathe_cam.params.config import OperationConfig, Setting, SettingSource
from lathe_cam.params.manager import (
    METRIC_THREAD_DEPTH_FACTOR,
    OperationParameterManager,
    ParameterStatus,
)
from lathe_cam.toolpath.types import OperationType, Tool, ToolType


@pytest.fixture()
def manager(cam_defaults) -> OperationParameterManager:
    return OperationParameterManager(cam_defaults)


# ---------------------------------------------------------------------------
# OperationConfig
# ---------------------------------------------------------------------------


class TestOperationConfig:
    def test_from_values_marks_user_source(self) -> None:
        cfg = OperationConfig.from_values(OperationType.ROUGHING, feed_rate=0.3)
        assert cfg.get("feed_rate") == Setting(0.3, SettingSource.USER)
        assert cfg.provided_names() == ["feed_rate"]

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ParameterError):
            OperationConfig.from_values(OperationType.ROUGHING, feedrate=0.3)

    def test_overrides_kept_separately(self) -> None:
        cfg = OperationConfig.from_values(
            OperationType.ROUGHING, overrides={"reverse_passes": True}, depth_of_cut=2
        )
        assert cfg.overrides["reverse_passes"] is True
        assert cfg.value("depth_of_cut") == 2.0

    def test_enabled_defaults_to_true(self) -> None:
        assert OperationConfig(OperationType.FACING).is_enabled
        assert not OperationConfig.from_values(OperationType.FACING, enabled=False).is_enabled


# ---------------------------------------------------------------------------
# Defaulting
# ---------------------------------------------------------------------------


class TestFillMissing:
    def test_material_values(self, manager: OperationParameterManager) -> None:
        cfg = manager.fill_missing_parameters(OperationConfig(OperationType.FACING), "aluminum")
        assert cfg.value("feed_rate") == pytest.approx(0.15)
        assert cfg.value("spindle_speed") == pytest.approx(2000.0)
        assert cfg.get("feed_rate").source is SettingSource.MATERIAL

    def test_user_values_never_replaced(self, manager: OperationParameterManager) -> None:
        cfg = OperationConfig.from_values(OperationType.FACING, spindle_speed=450.0)
        filled = manager.fill_missing_parameters(cfg, "steel")
        assert filled.value("spindle_speed") == 450.0
        assert filled.get("spindle_speed").provided

    def test_thread_depth_from_pitch(self, manager: OperationParameterManager) -> None:
        cfg = OperationConfig.from_values(OperationType.THREADING, thread_pitch=2.0)
        filled = manager.fill_missing_parameters(cfg)
        assert filled.value("thread_depth") == pytest.approx(METRIC_THREAD_DEPTH_FACTOR * 2.0)
        assert filled.get("thread_depth").source is SettingSource.COMPUTED

    def test_parting_width_from_insert(
        self, manager: OperationParameterManager, parting_tool: Tool
    ) -> None:
        filled = manager.fill_missing_parameters(
            OperationConfig(OperationType.PARTING), tool=parting_tool
        )
        assert filled.value("parting_width") == pytest.approx(parting_tool.geometry.insert_width)

    def test_definition_defaults(self, manager: OperationParameterManager) -> None:
        filled = manager.fill_missing_parameters(OperationConfig(OperationType.ROUGHING))
        assert filled.value("stock_allowance") == pytest.approx(0.5)
        assert filled.get("stock_allowance").source is SettingSource.DEFAULT

    def test_coolant_for_stainless(self, manager: OperationParameterManager) -> None:
        filled = manager.fill_missing_parameters(
            OperationConfig(OperationType.FACING), "stainless_steel"
        )
        assert filled.value("coolant") == "flood"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_filled_config_is_valid(self, manager: OperationParameterManager) -> None:
        cfg = manager.create_default_configuration(OperationType.ROUGHING)
        result = manager.validate_operation_parameters(cfg)
        assert result.is_valid
        assert result.status in (ParameterStatus.COMPLETE, ParameterStatus.HAS_WARNINGS)

    def test_missing_required(self, manager: OperationParameterManager) -> None:
        result = manager.validate_operation_parameters(OperationConfig(OperationType.FACING))
        assert result.status is ParameterStatus.MISSING_REQUIRED
        assert "feed_rate" in result.missing_parameters
        with pytest.raises(ParameterError):
            result.raise_for_status()

    def test_out_of_range(self, manager: OperationParameterManager) -> None:
        cfg = manager.fill_missing_parameters(
            OperationConfig.from_values(OperationType.FACING, depth_of_cut=25.0)
        )
        result = manager.validate_operation_parameters(cfg)
        assert result.status is ParameterStatus.INVALID_CONFIGURATION
        assert any("depth_of_cut" in m for m in result.invalid_parameters)

    def test_spindle_over_safety_limit(self, manager: OperationParameterManager) -> None:
        cfg = manager.fill_missing_parameters(
            OperationConfig.from_values(OperationType.FACING, spindle_speed=5000.0)
        )
        result = manager.validate_operation_parameters(cfg)
        assert result.status is ParameterStatus.INVALID_CONFIGURATION
        assert result.safety_issues
        with pytest.raises(SafetyError):
            result.raise_for_status()

    def test_threading_without_tool_needs_validation(
        self, manager: OperationParameterManager
    ) -> None:
        cfg = manager.create_default_configuration(OperationType.THREADING)
        result = manager.validate_operation_parameters(cfg, tool=None)
        assert result.status is ParameterStatus.NEEDS_VALIDATION
        assert result.requires_user_confirmation
        assert not result.is_valid

    def test_incompatible_tool(
        self, manager: OperationParameterManager, turning_tool: Tool
    ) -> None:
        cfg = manager.create_default_configuration(OperationType.PARTING)
        result = manager.validate_operation_parameters(cfg, tool=turning_tool)
        assert result.status is ParameterStatus.INVALID_CONFIGURATION

    def test_thread_depth_above_pitch(self, manager: OperationParameterManager) -> None:
        cfg = manager.fill_missing_parameters(
            OperationConfig.from_values(
                OperationType.THREADING, thread_pitch=1.0, thread_depth=1.5
            )
        )
        tool = Tool("T", ToolType.THREADING)
        result = manager.validate_operation_parameters(cfg, tool=tool)
        assert any("thread_depth" in m for m in result.invalid_parameters)

    def test_dry_high_speed_warning(self, manager: OperationParameterManager) -> None:
        cfg = OperationConfig.from_values(
            OperationType.FACING, spindle_speed=2500.0, feed_rate=0.1, depth_of_cut=1.0
        )
        result = manager.validate_safety(cfg)
        assert result.is_valid
        assert result.warnings

    def test_feed_over_safety_limit_for_any_material(
        self, manager: OperationParameterManager
    ) -> None:
        cfg = OperationConfig.from_values(
            OperationType.ROUGHING, spindle_speed=500.0, feed_rate=1.2, depth_of_cut=0.5
        )
        for material in ("steel", "aluminum", "brass"):
            result = manager.validate_safety(cfg, material)
            assert result.status is ParameterStatus.INVALID_CONFIGURATION
            assert any(issue.startswith("Feed rate 1.2 mm/rev") for issue in result.safety_issues)


# ---------------------------------------------------------------------------
# Physics and optimisation
# ---------------------------------------------------------------------------


class TestOptimisation:
    def test_material_removal_rate(self) -> None:
        assert OperationParameterManager.material_removal_rate(0.2, 2.0, 100.0) == pytest.approx(40.0)

    def test_spindle_speed_for_rejects_zero_diameter(self) -> None:
        with pytest.raises(ParameterError):
            OperationParameterManager.spindle_speed_for(150.0, 0.0)

    def test_optimal_rpm_clamped(self, manager: OperationParameterManager) -> None:
        cfg = manager.calculate_optimal_parameters(OperationType.FINISHING, "aluminum", 2.0)
        assert cfg.value("spindle_speed") == pytest.approx(3000.0)

    def test_roughing_depth_scaled(self, manager: OperationParameterManager) -> None:
        rough = manager.calculate_optimal_parameters(OperationType.ROUGHING, "steel", 50.0)
        finish = manager.calculate_optimal_parameters(OperationType.FINISHING, "steel", 50.0)
        assert rough.value("depth_of_cut") == pytest.approx(1.5)
        assert finish.value("depth_of_cut") == pytest.approx(0.3)

    def test_optimal_rejects_bad_diameter(self, manager: OperationParameterManager) -> None:
        with pytest.raises(ParameterError):
            manager.calculate_optimal_parameters(OperationType.ROUGHING, "steel", 0.0)

    def test_unknown_material_falls_back(self, manager: OperationParameterManager) -> None:
        assert manager.get_material("unobtainium").name == "steel"
