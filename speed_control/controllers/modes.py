"""
Control-mode descriptors and the input/output mode negotiation.

Mode numbering follows the aerial-stack ``ControlMode`` message so values
coming straight off the wire can be passed through unchanged.  Integers that
are not members of the enumerations are stored as-is and rejected later by
the dispatcher for that tick only.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Union

logger = logging.getLogger(__name__)

DEFAULT_ODOM_FRAME = "odom"
DEFAULT_BASE_FRAME = "base_link"


class PrimaryMode(enum.IntEnum):
    UNSET            = 0
    HOVER            = 1
    ACRO             = 2
    ATTITUDE         = 3
    SPEED            = 4
    SPEED_IN_A_PLANE = 5
    POSITION         = 6
    TRAJECTORY       = 7


class YawMode(enum.IntEnum):
    YAW_ANGLE = 0
    YAW_SPEED = 1


class ReferenceFrame(enum.IntEnum):
    UNDEFINED_FRAME      = 0
    LOCAL_ENU_FRAME      = 1
    BODY_FLU_FRAME       = 2
    GLOBAL_LAT_LONG_ASML = 3


ModeValue = Union[PrimaryMode, int]


@dataclass(frozen=True)
class ControlModeDescriptor:
    control_mode:    ModeValue = PrimaryMode.UNSET
    yaw_mode:        Union[YawMode, int] = YawMode.YAW_ANGLE
    reference_frame: Union[ReferenceFrame, int] = ReferenceFrame.LOCAL_ENU_FRAME

    def __str__(self) -> str:
        return f"{_name(PrimaryMode, self.control_mode)}/{_name(YawMode, self.yaw_mode)}" \
               f"@{_name(ReferenceFrame, self.reference_frame)}"


def _name(enum_cls, value) -> str:
    try:
        return enum_cls(value).name
    except ValueError:
        return f"<{int(value)}>"


def tf_name(namespace: str, frame: str) -> str:
    """Prefix *frame* with the vehicle namespace (``drone0/odom``)."""
    namespace = namespace.strip("/")
    return f"{namespace}/{frame}" if namespace else frame


class ModeStateMachine:
    """
    Holds the negotiated input/output modes and the frames they imply.

    ``negotiate`` never rejects a request; it reports whether the staged
    state and reference stay valid so the owner can clear its flags.
    """

    def __init__(
        self,
        namespace: str = "",
        odom_frame: str = DEFAULT_ODOM_FRAME,
        base_frame: str = DEFAULT_BASE_FRAME,
    ) -> None:
        self.enu_frame_id = tf_name(namespace, odom_frame)
        self.flu_frame_id = tf_name(namespace, base_frame)

        self.input_mode  = ControlModeDescriptor()
        self.output_mode = ControlModeDescriptor()

        self.input_pose_frame_id   = self.enu_frame_id
        self.input_twist_frame_id  = self.enu_frame_id
        self.output_twist_frame_id = self.enu_frame_id

    @property
    def control_mode(self) -> ModeValue:
        return self.input_mode.control_mode

    @property
    def yaw_mode(self) -> Union[YawMode, int]:
        return self.input_mode.yaw_mode

    def negotiate(self, requested_input: ControlModeDescriptor,
                  requested_output: ControlModeDescriptor) -> bool:
        """
        Install the requested modes.

        Returns True when the staged state/reference must be considered stale
        (any primary mode other than HOVER).  HOVER is forced to
        ``YAW_ANGLE`` in the local frame and keeps the staged data.
        """
        if requested_input.control_mode == PrimaryMode.HOVER:
            self.input_mode = ControlModeDescriptor(
                PrimaryMode.HOVER, YawMode.YAW_ANGLE, ReferenceFrame.LOCAL_ENU_FRAME
            )
            invalidates = False
        else:
            self.input_mode = replace(requested_input)
            invalidates = True

        self.output_mode = replace(requested_output)
        self._update_frames()
        logger.info("Control mode set: in=%s out=%s", self.input_mode, self.output_mode)
        return invalidates

    def _update_frames(self) -> None:
        mode = self.input_mode.control_mode
        if mode in (PrimaryMode.HOVER, PrimaryMode.POSITION, PrimaryMode.TRAJECTORY):
            self.input_pose_frame_id   = self.enu_frame_id
            self.input_twist_frame_id  = self.enu_frame_id
            self.output_twist_frame_id = self.enu_frame_id
        elif mode in (PrimaryMode.SPEED, PrimaryMode.SPEED_IN_A_PLANE):
            self.input_pose_frame_id = self.enu_frame_id
            if self.output_mode.reference_frame == ReferenceFrame.BODY_FLU_FRAME:
                twist_frame = self.flu_frame_id
            else:
                twist_frame = self.enu_frame_id
            self.input_twist_frame_id  = twist_frame
            self.output_twist_frame_id = twist_frame

    def desired_pose_frame(self) -> str:
        return self.input_pose_frame_id

    def desired_twist_frame(self) -> str:
        return self.input_twist_frame_id
