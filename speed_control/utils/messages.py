"""
Plain data carriers exchanged with the controller.

Inputs (``Pose``, ``Twist``, ``TrajectoryPoint``) are whatever the host has
already unmarshalled from the wire and transformed into the frames the
controller asked for.  Outputs are either a ``Command`` or a ``Blocked``
outcome describing which precondition failed.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Sequence

import torch

from .math_utils import VectorLike, as_vec3, zeros3


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class Pose:
    """Position [m] and orientation quaternion **[w, x, y, z]**."""
    position:    VectorLike = (0.0, 0.0, 0.0)
    orientation: VectorLike = (1.0, 0.0, 0.0, 0.0)
    frame_id:    str = ""


@dataclass
class Twist:
    """Linear [m/s] and angular [rad/s] velocity."""
    linear:   VectorLike = (0.0, 0.0, 0.0)
    angular:  VectorLike = (0.0, 0.0, 0.0)
    frame_id: str = ""


@dataclass
class TrajectoryPoint:
    """
    One sample of a 4-DOF trajectory: ``[x, y, z, yaw]`` for positions,
    velocities and accelerations.
    """
    positions:     Sequence[float] = ()
    velocities:    Sequence[float] = ()
    accelerations: Sequence[float] = ()


# ---------------------------------------------------------------------------
# Staged state / reference
# ---------------------------------------------------------------------------

@dataclass
class VehicleState:
    position: torch.Tensor = field(default_factory=zeros3)  # [3] m
    velocity: torch.Tensor = field(default_factory=zeros3)  # [3] m/s
    yaw:      float = 0.0                                   # rad


@dataclass
class GuidanceReference:
    position: torch.Tensor = field(default_factory=zeros3)  # [3] m
    velocity: torch.Tensor = field(default_factory=zeros3)  # [3] m/s
    # (angle [rad], rate [rad/s], acceleration [rad/s²]); which slots are
    # meaningful depends on the active mode.
    yaw:      torch.Tensor = field(default_factory=zeros3)


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass
class Command:
    """Velocity + yaw-rate intent, expressed in ``frame_id``."""
    velocity:  torch.Tensor = field(default_factory=zeros3)
    yaw_speed: float = 0.0
    frame_id:  str = ""

    def as_twist(self) -> Twist:
        return Twist(
            linear=self.velocity.clone(),
            angular=torch.tensor([0.0, 0.0, self.yaw_speed], dtype=torch.float32),
            frame_id=self.frame_id,
        )

    def copy(self) -> "Command":
        return Command(as_vec3(self.velocity), float(self.yaw_speed), self.frame_id)


class BlockReason(enum.Enum):
    STATE_NOT_RECEIVED             = "state not received yet"
    PLUGIN_PARAMETERS_NOT_READ     = "plugin parameters not read yet"
    POSITION_PARAMETERS_NOT_READ   = "position controller parameters not read yet"
    REFERENCE_NOT_RECEIVED         = "mode changed, but reference not received yet"
    TRAJECTORY_PARAMETERS_NOT_READ = "trajectory controller parameters not read yet"
    YAW_PARAMETERS_NOT_READ        = "yaw controller parameters not read yet"
    UNKNOWN_CONTROL_MODE           = "unknown control mode"
    UNKNOWN_YAW_MODE               = "unknown yaw mode"


@dataclass(frozen=True)
class Blocked:
    """No command this tick; ``reason`` says why."""
    reason: BlockReason

    @property
    def is_error(self) -> bool:
        return self.reason in (BlockReason.UNKNOWN_CONTROL_MODE, BlockReason.UNKNOWN_YAW_MODE)

    def __bool__(self) -> bool:
        return False
