from .pid import PIDController, PIDController3D
from .modes import (
    PrimaryMode,
    YawMode,
    ReferenceFrame,
    ControlModeDescriptor,
    ModeStateMachine,
)
from .parameters import (
    PARAMETER_SCHEMA,
    ParameterGroup,
    ParameterReadinessGate,
    ParameterUpdateResult,
    ReadinessFlags,
    parameters_of,
)
from .speed_controller import SpeedController, MalformedReferenceError

__all__ = [
    "PIDController",
    "PIDController3D",
    "PrimaryMode",
    "YawMode",
    "ReferenceFrame",
    "ControlModeDescriptor",
    "ModeStateMachine",
    "PARAMETER_SCHEMA",
    "ParameterGroup",
    "ParameterReadinessGate",
    "ParameterUpdateResult",
    "ReadinessFlags",
    "parameters_of",
    "SpeedController",
    "MalformedReferenceError",
]
