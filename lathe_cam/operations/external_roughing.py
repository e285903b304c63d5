"""External roughing: roughing of outside diameters with profile following.

Same pass engine as :class:`RoughingOperation`; the radial step between
axial passes is ``stepover`` rather than ``depth_of_cut``, and profile
following plus chip breaking are on by default.
"""

from __future__ import annotations

from dataclasses import dataclass

from lathe_cam.operations.roughing import RoughingOperation, RoughingParameters
from lathe_cam.toolpath.types import OperationType, Tool


@dataclass(frozen=True)
class ExternalRoughingParameters(RoughingParameters):
    end_z: float = -40.0
    stepover: float = 1.5
    feed_rate: float = 0.2
    use_profile_following: bool = True
    enable_chip_breaking: bool = True


class ExternalRoughingOperation(RoughingOperation):
    operation_type = OperationType.EXTERNAL_ROUGHING

    def __init__(
        self,
        name: str = "External Roughing",
        tool: Tool | None = None,
        params: ExternalRoughingParameters | None = None,
    ) -> None:
        super().__init__(name, tool, params)

    @classmethod
    def default_parameters(cls) -> ExternalRoughingParameters:
        return ExternalRoughingParameters()

    @staticmethod
    def validate_parameters(params: ExternalRoughingParameters) -> str:
        errors = [e for e in RoughingOperation.validate_parameters(params).split("; ") if e]
        stepover = getattr(params, "stepover", params.depth_of_cut)
        removal = (params.start_diameter - params.end_diameter) / 2.0
        if stepover <= 0.0:
            errors.append("Stepover must be positive")
        elif stepover > removal > 0.0:
            errors.append("Stepover too large for diameter range")
        if removal > 0.0 and removal <= params.stock_allowance:
            errors.append("Stock allowance exceeds material to be removed")
        return "; ".join(errors)

    def radial_step(self) -> float:
        return getattr(self.params, "stepover", self.params.depth_of_cut)
