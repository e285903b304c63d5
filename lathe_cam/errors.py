"""Exception taxonomy shared by every stage of the toolpath engine.

Parameter and safety errors are raised before any geometry work and only
block the offending operation.  Geometry errors from profile extraction are
fatal to a whole pipeline run.  The pipeline catches everything at its
boundary and reports a failed ``GenerationResult``.
"""

from __future__ import annotations


class CamError(Exception):
    """Base class for all toolpath engine errors."""

    pass


class GeometryError(CamError):
    """Profile extraction failed, the profile is empty or the axis is degenerate."""

    pass


class ParameterError(CamError):
    """A required value is missing, out of range, or conflicts with another."""

    pass


class SafetyError(CamError):
    """A computed parameter exceeds a fixed machine or material ceiling."""

    pass


class OperationError(CamError):
    """An operation cannot run: missing tool or ``validate()`` returned False."""

    pass


class PipelineError(CamError):
    """Aggregate pipeline failure.

    Parameters
    ----------
    message : str
        Human-readable description.
    operation : str | None
        Name of the operation that failed, ``None`` for run-level failures
        (empty profile, missing part, cancellation).
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation

    def __str__(self) -> str:
        base = super().__str__()
        if self.operation:
            return f"[{self.operation}] {base}"
        return base
