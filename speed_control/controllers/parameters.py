"""
Parameter schema and the readiness gate.

Every tunable the controller understands is listed once in
``PARAMETER_SCHEMA``: full dotted name → ``(group, field, kind)``.  The gate
keeps, per group, the names that have not been seen yet and flips the
group's readiness flag the moment that set empties.  Flags only go back to
False through ``rearm()`` (a fresh start).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Set


class ParameterGroup(enum.Enum):
    PLUGIN         = "plugin"
    POSITION       = "position"
    VELOCITY       = "velocity"
    SPEED_IN_PLANE = "speed_in_plane"
    TRAJECTORY     = "trajectory"
    YAW            = "yaw"


class ParamSpec(NamedTuple):
    group: ParameterGroup
    field: str   # name inside the group, e.g. "kp.x" or "height.kd"
    kind:  type  # bool or float


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_COMMON_FIELDS = (("reset_integral", bool), ("antiwindup_cte", float), ("alpha", float))
_GAIN_FIELDS_3D = tuple(
    (f"{gain}.{axis}", float) for gain in ("kp", "ki", "kd") for axis in ("x", "y", "z")
)
_GAIN_FIELDS_1D = (("kp", float), ("ki", float), ("kd", float))
_SPEED_IN_PLANE_FIELDS = (
    _COMMON_FIELDS
    + tuple((f"height.{gain}", float) for gain in ("kp", "ki", "kd"))
    + tuple((f"speed.{gain}.{axis}", float) for gain in ("kp", "ki", "kd") for axis in ("x", "y"))
)

GROUP_PREFIXES: Dict[ParameterGroup, str] = {
    ParameterGroup.POSITION:       "position_control",
    ParameterGroup.VELOCITY:       "velocity_control",
    ParameterGroup.SPEED_IN_PLANE: "speed_in_a_plane_control",
    ParameterGroup.TRAJECTORY:     "trajectory_control",
    ParameterGroup.YAW:            "yaw_control",
}

_GROUP_FIELDS = {
    ParameterGroup.POSITION:       _COMMON_FIELDS + _GAIN_FIELDS_3D,
    ParameterGroup.VELOCITY:       _COMMON_FIELDS + _GAIN_FIELDS_3D,
    ParameterGroup.SPEED_IN_PLANE: _SPEED_IN_PLANE_FIELDS,
    ParameterGroup.TRAJECTORY:     _COMMON_FIELDS + _GAIN_FIELDS_3D,
    ParameterGroup.YAW:            _COMMON_FIELDS + _GAIN_FIELDS_1D,
}


def _build_schema() -> Dict[str, ParamSpec]:
    schema = {
        "proportional_limitation": ParamSpec(ParameterGroup.PLUGIN, "proportional_limitation", bool),
        "use_bypass":              ParamSpec(ParameterGroup.PLUGIN, "use_bypass", bool),
    }
    for group, group_fields in _GROUP_FIELDS.items():
        prefix = GROUP_PREFIXES[group]
        for name, kind in group_fields:
            schema[f"{prefix}.{name}"] = ParamSpec(group, name, kind)
    return schema


PARAMETER_SCHEMA: Dict[str, ParamSpec] = _build_schema()


def parameters_of(group: ParameterGroup) -> FrozenSet[str]:
    """All full parameter names belonging to *group*."""
    return frozenset(name for name, spec in PARAMETER_SCHEMA.items() if spec.group is group)


def lookup(name: str) -> Optional[ParamSpec]:
    return PARAMETER_SCHEMA.get(name)


# ---------------------------------------------------------------------------
# Flags
# ---------------------------------------------------------------------------

@dataclass
class ReadinessFlags:
    plugin:             bool = False
    position:           bool = False
    velocity:           bool = False
    speed_in_plane:     bool = False
    trajectory:         bool = False
    yaw:                bool = False
    state_received:     bool = False
    reference_received: bool = False

    def clear(self) -> None:
        for f in fields(self):
            setattr(self, f.name, False)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

class ParameterReadinessGate:
    """Tracks which parameters of each group have been observed at least once."""

    def __init__(self) -> None:
        self.flags = ReadinessFlags()
        self._pending: Dict[ParameterGroup, Set[str]] = {}
        self.rearm()

    def rearm(self) -> None:
        """Forget everything: every group pending again, every flag False."""
        self.flags.clear()
        self._pending = {group: set(parameters_of(group)) for group in ParameterGroup}

    def observe(self, name: str, group: ParameterGroup) -> None:
        pending = self._pending[group]
        pending.discard(name)
        if not pending:
            setattr(self.flags, group.value, True)

    def is_ready(self, group: ParameterGroup) -> bool:
        return getattr(self.flags, group.value)

    def pending(self, group: ParameterGroup) -> FrozenSet[str]:
        return frozenset(self._pending[group])


# ---------------------------------------------------------------------------
# Update result
# ---------------------------------------------------------------------------

@dataclass
class ParameterUpdateResult:
    """Outcome of one batch of parameter updates."""
    successful: bool = True
    reason:     str = "success"
    rejected:   List[str] = field(default_factory=list)

    def reject(self, name: str, why: str) -> None:
        self.rejected.append(name)
        self.successful = False
        msg = f"{name}: {why}"
        self.reason = msg if self.reason == "success" else f"{self.reason}; {msg}"
