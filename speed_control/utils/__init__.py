from .math_utils import (
    as_vec3,
    zeros3,
    yaw_from_quat,
    quat_from_yaw,
    wrap_angle,
    angle_min_error,
)
from .messages import (
    Pose,
    Twist,
    TrajectoryPoint,
    VehicleState,
    GuidanceReference,
    Command,
    Blocked,
    BlockReason,
)

__all__ = [
    "as_vec3",
    "zeros3",
    "yaw_from_quat",
    "quat_from_yaw",
    "wrap_angle",
    "angle_min_error",
    "Pose",
    "Twist",
    "TrajectoryPoint",
    "VehicleState",
    "GuidanceReference",
    "Command",
    "Blocked",
    "BlockReason",
]
