from .controllers.speed_controller import SpeedController, MalformedReferenceError
from .controllers.pid import PIDController, PIDController3D
from .controllers.modes import PrimaryMode, YawMode, ReferenceFrame, ControlModeDescriptor
from .controllers.parameters import ParameterGroup, ParameterUpdateResult, ReadinessFlags
from .config.loader import load_config, SpeedControllerConfig
from .utils.messages import (
    Pose,
    Twist,
    TrajectoryPoint,
    Command,
    Blocked,
    BlockReason,
)

__all__ = [
    "SpeedController",
    "MalformedReferenceError",
    "PIDController",
    "PIDController3D",
    "PrimaryMode",
    "YawMode",
    "ReferenceFrame",
    "ControlModeDescriptor",
    "ParameterGroup",
    "ParameterUpdateResult",
    "ReadinessFlags",
    "load_config",
    "SpeedControllerConfig",
    "Pose",
    "Twist",
    "TrajectoryPoint",
    "Command",
    "Blocked",
    "BlockReason",
]
