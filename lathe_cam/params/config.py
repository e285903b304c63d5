"""Typed operation configuration with provided-vs-defaulted tracking.

An :class:`OperationConfig` carries the cutting parameters of one
operation before its strongly-typed ``Parameters`` are built.  Every field
is either ``None`` (missing) or a :class:`Setting` that records where the
value came from, so defaulting never overwrites what the user supplied.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, Mapping, TypeVar

from lathe_cam.errors import ParameterError
from lathe_cam.toolpath.types import OperationType

T = TypeVar("T")


class SettingSource(Enum):
    """Origin of a configuration value."""

    USER = "user"
    MATERIAL = "material"
    DEFAULT = "default"
    COMPUTED = "computed"


@dataclass(frozen=True)
class Setting(Generic[T]):
    """A value plus its origin."""

    value: T
    source: SettingSource = SettingSource.USER

    @property
    def provided(self) -> bool:
        """True when the user supplied the value explicitly."""
        return self.source is SettingSource.USER


NUMERIC_FIELDS = (
    "feed_rate",
    "spindle_speed",
    "depth_of_cut",
    "stock_allowance",
    "finishing_passes",
    "thread_pitch",
    "thread_depth",
    "thread_passes",
    "parting_width",
    "peck_depth",
    "groove_width",
    "groove_depth",
)
STRING_FIELDS = ("coolant", "strategy", "thread_designation")
BOOLEAN_FIELDS = ("enabled",)


@dataclass(frozen=True)
class OperationConfig:
    """Cutting configuration for one operation.

    ``overrides`` holds extra values addressed to fields of the
    operation's own ``Parameters`` dataclass (e.g. ``stepover`` or
    ``reverse_passes``); they are applied verbatim when the operation is
    built.
    """

    operation_type: OperationType
    enabled: Setting[bool] | None = None
    feed_rate: Setting[float] | None = None
    spindle_speed: Setting[float] | None = None
    depth_of_cut: Setting[float] | None = None
    stock_allowance: Setting[float] | None = None
    finishing_passes: Setting[float] | None = None
    thread_pitch: Setting[float] | None = None
    thread_depth: Setting[float] | None = None
    thread_passes: Setting[float] | None = None
    parting_width: Setting[float] | None = None
    peck_depth: Setting[float] | None = None
    groove_width: Setting[float] | None = None
    groove_depth: Setting[float] | None = None
    coolant: Setting[str] | None = None
    strategy: Setting[str] | None = None
    thread_designation: Setting[str] | None = None
    overrides: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_values(
        cls,
        operation_type: OperationType,
        overrides: Mapping[str, Any] | None = None,
        **values: Any,
    ) -> OperationConfig:
        """Build a config where every given value is user-provided.

        Raises
        ------
        ParameterError
            If a value name is not a configuration field.
        """
        known = set(NUMERIC_FIELDS) | set(STRING_FIELDS) | set(BOOLEAN_FIELDS)
        kwargs: dict[str, Any] = {}
        for name, value in values.items():
            if name not in known:
                raise ParameterError(f"Unknown configuration field '{name}'")
            if value is None:
                continue
            if name in NUMERIC_FIELDS:
                value = float(value)
            elif name in BOOLEAN_FIELDS:
                value = bool(value)
            else:
                value = str(value)
            kwargs[name] = Setting(value, SettingSource.USER)
        return cls(
            operation_type=operation_type,
            overrides=MappingProxyType(dict(overrides or {})),
            **kwargs,
        )

    @property
    def is_enabled(self) -> bool:
        return self.enabled is None or bool(self.enabled.value)

    def get(self, name: str) -> Setting | None:
        if name not in NUMERIC_FIELDS and name not in STRING_FIELDS and name not in BOOLEAN_FIELDS:
            raise ParameterError(f"Unknown configuration field '{name}'")
        return getattr(self, name)

    def value(self, name: str, default: Any = None) -> Any:
        s = self.get(name)
        return default if s is None else s.value

    def with_setting(self, name: str, setting: Setting) -> OperationConfig:
        self.get(name)
        return replace(self, **{name: setting})

    def settings(self) -> dict[str, Setting]:
        """All present settings by field name."""
        out: dict[str, Setting] = {}
        for f in fields(self):
            v = getattr(self, f.name)
            if isinstance(v, Setting):
                out[f.name] = v
        return out

    def provided_names(self) -> list[str]:
        return [name for name, s in self.settings().items() if s.provided]

    def defaulted_names(self) -> list[str]:
        return [name for name, s in self.settings().items() if not s.provided]
