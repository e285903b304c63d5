"""Operation parameter validation, defaulting and optimisation.

The :class:`OperationParameterManager` is the single authority on which
parameters an operation needs, their valid ranges, and the material-driven
defaults used when the user leaves them out.  It reads the immutable
:class:`~lathe_cam.configs.loader.CamDefaults` tables and never mutates a
config: every method returns a new :class:`OperationConfig` or a fresh
:class:`ValidationResult`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum

from lathe_cam.configs.loader import (
    CamDefaults,
    MaterialProperties,
    ParameterDefinition,
    default_cam_defaults,
)
from lathe_cam.errors import ParameterError, SafetyError
from lathe_cam.params.config import OperationConfig, Setting, SettingSource
from lathe_cam.toolpath.types import OperationType, Tool, ToolType

logger = logging.getLogger(__name__)

# Thread depth as a fraction of pitch for external ISO metric threads.
METRIC_THREAD_DEPTH_FACTOR = 0.613

_TOOL_COMPATIBILITY: dict[OperationType, tuple[ToolType, ...]] = {
    OperationType.THREADING: (ToolType.THREADING, ToolType.TURNING),
    OperationType.PARTING: (ToolType.PARTING, ToolType.GROOVING),
    OperationType.GROOVING: (ToolType.GROOVING, ToolType.PARTING),
}

_ROUGHING_TYPES = (OperationType.ROUGHING, OperationType.EXTERNAL_ROUGHING)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ParameterStatus(Enum):
    COMPLETE = "Complete"
    MISSING_REQUIRED = "MissingRequired"
    NEEDS_VALIDATION = "NeedsValidation"
    INVALID_CONFIGURATION = "InvalidConfiguration"
    HAS_WARNINGS = "HasWarnings"


@dataclass
class ValidationResult:
    """Outcome of a parameter or safety validation.

    ``is_valid`` is true for ``COMPLETE`` and ``HAS_WARNINGS`` only.
    """

    status: ParameterStatus = ParameterStatus.COMPLETE
    missing_parameters: list[str] = field(default_factory=list)
    invalid_parameters: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    safety_issues: list[str] = field(default_factory=list)
    confidence: float = 1.0
    requires_user_confirmation: bool = False

    @property
    def is_valid(self) -> bool:
        return self.status in (ParameterStatus.COMPLETE, ParameterStatus.HAS_WARNINGS)

    @property
    def has_issues(self) -> bool:
        return bool(
            self.missing_parameters or self.invalid_parameters or self.safety_issues
        )

    def messages(self) -> list[str]:
        """Every blocking problem as one flat list."""
        out = [f"Missing required parameter: {m}" for m in self.missing_parameters]
        out.extend(self.invalid_parameters)
        out.extend(self.safety_issues)
        return out

    def raise_for_status(self) -> None:
        """Raise if the result is not valid.

        Raises
        ------
        SafetyError
            When any safety issue was found.
        ParameterError
            For missing, invalid or unverified parameters.
        """
        if self.is_valid:
            return
        if self.safety_issues:
            raise SafetyError("; ".join(self.safety_issues))
        msgs = self.messages() or [f"Parameters {self.status.value}"]
        raise ParameterError("; ".join(msgs))


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class OperationParameterManager:
    """Validates, fills and optimises operation parameters.

    Parameters
    ----------
    defaults : CamDefaults | None
        Material and parameter tables; the packaged defaults when ``None``.
    """

    def __init__(self, defaults: CamDefaults | None = None) -> None:
        self.defaults = defaults or default_cam_defaults()

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    @staticmethod
    def _group(operation_type: OperationType) -> str:
        if operation_type in _ROUGHING_TYPES:
            return OperationType.ROUGHING.value
        return operation_type.value

    def get_material(self, name: str) -> MaterialProperties:
        return self.defaults.material(name)

    def get_parameter_definitions(
        self, operation_type: OperationType
    ) -> tuple[ParameterDefinition, ...]:
        return self.defaults.definitions_for(self._group(operation_type))

    def get_required_parameters(self, operation_type: OperationType) -> list[str]:
        return [d.name for d in self.get_parameter_definitions(operation_type) if d.required]

    def get_optional_parameters(self, operation_type: OperationType) -> list[str]:
        return [
            d.name for d in self.get_parameter_definitions(operation_type) if not d.required
        ]

    def get_parameter_constraints(
        self, operation_type: OperationType, name: str
    ) -> tuple[float, float, float]:
        """``(min, max, default)`` for a parameter; generic bounds if unknown."""
        for d in self.get_parameter_definitions(operation_type):
            if d.name == name:
                return d.min_value, d.max_value, d.default_value
        u = self.defaults.unknown_parameter
        return u.min_value, u.max_value, u.default_value

    # ------------------------------------------------------------------
    # Physics helpers
    # ------------------------------------------------------------------

    @staticmethod
    def cutting_speed(diameter: float, spindle_speed: float) -> float:
        """Surface speed in m/min for a diameter (mm) at a spindle speed (RPM)."""
        return math.pi * diameter * spindle_speed / 1000.0

    @staticmethod
    def spindle_speed_for(surface_speed: float, diameter: float) -> float:
        """RPM giving *surface_speed* (m/min) at *diameter* (mm)."""
        if diameter <= 0.0:
            raise ParameterError(f"Diameter must be positive, got {diameter}")
        return 1000.0 * surface_speed / (math.pi * diameter)

    @staticmethod
    def material_removal_rate(
        feed_rate: float, depth_of_cut: float, cutting_speed: float
    ) -> float:
        """Removal rate in cm^3/min: feed (mm/rev) x depth (mm) x Vc (m/min)."""
        return feed_rate * depth_of_cut * cutting_speed

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_operation_parameters(
        self,
        config: OperationConfig,
        material: str = "steel",
        tool: Tool | None = None,
    ) -> ValidationResult:
        """Check presence, ranges, tool compatibility and safety.

        Returns
        -------
        ValidationResult
            Status ``MISSING_REQUIRED`` or ``INVALID_CONFIGURATION`` blocks
            the operation; ``NEEDS_VALIDATION`` means tool compatibility
            could not be checked because no tool was given.
        """
        result = ValidationResult()
        op = config.operation_type
        mat = self.get_material(material)

        for d in self.get_parameter_definitions(op):
            setting = config.get(d.name)
            if setting is None:
                if d.required:
                    result.missing_parameters.append(d.name)
                continue
            value = float(setting.value)
            if not d.min_value <= value <= d.max_value:
                result.invalid_parameters.append(
                    f"{d.name}={value:g} outside [{d.min_value:g}, {d.max_value:g}] {d.unit}".rstrip()
                )
            if setting.source is SettingSource.MATERIAL:
                result.warnings.append(f"{d.name} defaulted from {mat.name} to {value:g}")

        self._check_combinations(config, tool, result)

        safety = self.validate_safety(config, material)
        result.safety_issues.extend(safety.safety_issues)
        result.warnings.extend(safety.warnings)

        if mat.requires_coolant and config.value("coolant", "none") == "none":
            result.recommendations.append(f"Use coolant when machining {mat.name}")
        if mat.work_hardening:
            result.recommendations.append(
                f"{mat.name} work-hardens: keep tools sharp and avoid rubbing passes"
            )
        if op is OperationType.FINISHING:
            result.recommendations.append(
                "Reduce feed rate on finishing passes for a better surface"
            )

        needs_tool_check = op in _TOOL_COMPATIBILITY and tool is None
        if result.safety_issues or result.invalid_parameters:
            result.status = ParameterStatus.INVALID_CONFIGURATION
        elif result.missing_parameters:
            result.status = ParameterStatus.MISSING_REQUIRED
        elif needs_tool_check:
            result.status = ParameterStatus.NEEDS_VALIDATION
            result.requires_user_confirmation = True
        elif result.warnings:
            result.status = ParameterStatus.HAS_WARNINGS
        else:
            result.status = ParameterStatus.COMPLETE

        result.confidence = self._confidence(result)
        logger.debug(
            "%s parameters: %s (confidence %.2f)",
            op.value,
            result.status.value,
            result.confidence,
        )
        return result

    def _check_combinations(
        self, config: OperationConfig, tool: Tool | None, result: ValidationResult
    ) -> None:
        op = config.operation_type
        allowed = _TOOL_COMPATIBILITY.get(op)
        if tool is not None and allowed and tool.tool_type not in allowed:
            result.invalid_parameters.append(
                f"{op.value} requires a {' or '.join(t.value for t in allowed)} tool, "
                f"got {tool.tool_type.value}"
            )
        if op is OperationType.THREADING:
            pitch = config.value("thread_pitch")
            depth = config.value("thread_depth")
            if pitch is not None and depth is not None and depth > pitch:
                result.invalid_parameters.append(
                    f"thread_depth ({depth:g}) cannot exceed thread_pitch ({pitch:g})"
                )
        if op is OperationType.PARTING and tool is not None:
            width = config.value("parting_width")
            if width is not None and abs(width - tool.geometry.insert_width) > 1e-6:
                result.warnings.append(
                    f"parting_width {width:g} differs from insert width "
                    f"{tool.geometry.insert_width:g}"
                )
        if op is OperationType.GROOVING and tool is not None:
            width = config.value("groove_width")
            if width is not None and width < tool.geometry.insert_width - 1e-6:
                result.invalid_parameters.append(
                    f"groove_width ({width:g}) narrower than insert "
                    f"({tool.geometry.insert_width:g})"
                )

    @staticmethod
    def _confidence(result: ValidationResult) -> float:
        c = 1.0
        c -= 0.2 * len(result.missing_parameters)
        c -= 0.2 * len(result.invalid_parameters)
        c -= 0.3 * len(result.safety_issues)
        c -= 0.05 * len(result.warnings)
        if result.status is ParameterStatus.NEEDS_VALIDATION:
            c -= 0.1
        return min(1.0, max(0.0, c))

    def validate_safety(
        self, config: OperationConfig, material: str = "steel"
    ) -> ValidationResult:
        """Reject configs above the fixed spindle, feed and removal-rate ceilings."""
        limits = self.defaults.safety
        result = ValidationResult()
        rpm = float(config.value("spindle_speed", 0.0))
        feed = float(config.value("feed_rate", 0.0))
        doc = float(config.value("depth_of_cut", 0.0))

        if rpm > limits.max_spindle_speed:
            result.safety_issues.append(
                f"Spindle speed {rpm:g} RPM exceeds safe limit ({limits.max_spindle_speed:g} RPM)"
            )
        if feed > limits.max_feed_rate:
            result.safety_issues.append(
                f"Feed rate {feed:g} mm/rev exceeds safe limit ({limits.max_feed_rate:g} mm/rev)"
            )
        vc = self.cutting_speed(limits.reference_diameter, rpm)
        mrr = self.material_removal_rate(feed, doc, vc)
        if mrr > limits.max_material_removal_rate:
            result.safety_issues.append(
                f"Material removal rate {mrr:.0f} cm3/min too high, risk of tool breakage"
            )

        if feed > limits.high_feed_warning and rpm > limits.high_speed_warning:
            result.warnings.append("High feed at high spindle speed, check rigidity")
        coolant = config.value("coolant", "none")
        if rpm > limits.dry_speed_warning and coolant == "none":
            result.warnings.append(
                f"Spindle speed above {limits.dry_speed_warning:g} RPM without coolant"
            )

        if result.safety_issues:
            result.status = ParameterStatus.INVALID_CONFIGURATION
        elif result.warnings:
            result.status = ParameterStatus.HAS_WARNINGS
        result.confidence = self._confidence(result)
        return result

    # ------------------------------------------------------------------
    # Defaulting
    # ------------------------------------------------------------------

    def fill_missing_parameters(
        self,
        config: OperationConfig,
        material: str = "steel",
        tool: Tool | None = None,
    ) -> OperationConfig:
        """Fill absent fields; values already present are never replaced.

        Feed, spindle speed and depth of cut come from the material table,
        other parameters from their definitions.  A threading depth
        missing alongside a known pitch is derived from the pitch, and a
        parting or groove width missing alongside a tool takes the insert
        width.
        """
        mat = self.get_material(material)
        out = config

        material_values = {
            "feed_rate": mat.recommended_feed_rate,
            "spindle_speed": mat.recommended_spindle_speed,
            "depth_of_cut": mat.recommended_depth_of_cut,
        }
        for name, value in material_values.items():
            if out.get(name) is None:
                out = out.with_setting(name, Setting(value, SettingSource.MATERIAL))

        if (
            config.operation_type is OperationType.THREADING
            and out.get("thread_depth") is None
            and out.get("thread_pitch") is not None
        ):
            depth = METRIC_THREAD_DEPTH_FACTOR * float(out.value("thread_pitch"))
            out = out.with_setting("thread_depth", Setting(depth, SettingSource.COMPUTED))

        if tool is not None:
            width_field = {
                OperationType.PARTING: "parting_width",
                OperationType.GROOVING: "groove_width",
            }.get(config.operation_type)
            if width_field and out.get(width_field) is None:
                out = out.with_setting(
                    width_field,
                    Setting(tool.geometry.insert_width, SettingSource.COMPUTED),
                )

        for d in self.get_parameter_definitions(config.operation_type):
            if out.get(d.name) is None:
                out = out.with_setting(d.name, Setting(d.default_value, SettingSource.DEFAULT))

        if out.get("coolant") is None:
            coolant = "flood" if mat.requires_coolant else "none"
            out = out.with_setting("coolant", Setting(coolant, SettingSource.MATERIAL))
        if out.get("enabled") is None:
            out = out.with_setting("enabled", Setting(True, SettingSource.DEFAULT))

        filled = [n for n in out.defaulted_names() if config.get(n) is None]
        if filled:
            logger.debug("%s: filled %s", config.operation_type.value, ", ".join(filled))
        return out

    def create_default_configuration(
        self, operation_type: OperationType, material: str = "steel"
    ) -> OperationConfig:
        """Fully defaulted, enabled configuration for an operation."""
        return self.fill_missing_parameters(OperationConfig(operation_type), material)

    def calculate_optimal_parameters(
        self,
        operation_type: OperationType,
        material: str,
        part_diameter: float,
    ) -> OperationConfig:
        """Derive spindle speed, feed and depth from material and diameter.

        ``RPM = 1000 * Vc / (pi * D)`` with ``Vc`` the base cutting speed
        scaled by machinability, clamped to the optimisation RPM window.
        Depth is scaled up for roughing and down for finishing.

        Raises
        ------
        ParameterError
            If *part_diameter* is not positive.
        """
        if part_diameter <= 0.0:
            raise ParameterError(f"Part diameter must be positive, got {part_diameter}")
        opt = self.defaults.optimization
        mat = self.get_material(material)

        vc = opt.base_cutting_speed * mat.machinability_rating
        rpm = self.spindle_speed_for(vc, part_diameter)
        rpm = min(max(rpm, opt.min_spindle_speed), opt.max_spindle_speed)

        feed = mat.recommended_feed_rate * mat.machinability_rating
        doc = mat.recommended_depth_of_cut
        if operation_type in _ROUGHING_TYPES:
            doc *= opt.roughing_depth_factor
        elif operation_type is OperationType.FINISHING:
            doc *= opt.finishing_depth_factor

        computed = SettingSource.COMPUTED
        config = OperationConfig(
            operation_type,
            feed_rate=Setting(feed, computed),
            spindle_speed=Setting(rpm, computed),
            depth_of_cut=Setting(doc, computed),
        )
        logger.debug(
            "Optimal %s on %s D=%.1f: %.0f RPM, %.3f mm/rev, %.2f mm",
            operation_type.value,
            mat.name,
            part_diameter,
            rpm,
            feed,
            doc,
        )
        return config
