"""
Tests for mode negotiation and the frames each mode asks for.
"""

import pytest
import torch

from speed_control import SpeedController, Pose, Twist
from speed_control.controllers.modes import (
    ControlModeDescriptor,
    ModeStateMachine,
    PrimaryMode,
    ReferenceFrame,
    YawMode,
    tf_name,
)

from conftest import mode

NON_HOVER = [
    PrimaryMode.POSITION,
    PrimaryMode.SPEED,
    PrimaryMode.SPEED_IN_A_PLANE,
    PrimaryMode.TRAJECTORY,
]


def _prime(ctrl: SpeedController) -> None:
    """Mark state and reference as received."""
    ctrl.update_state(Pose(), Twist())
    ctrl.flags.reference_received = True


# ---------------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------------

class TestNegotiation:
    def test_always_accepted(self, ctrl, enu_out):
        assert ctrl.negotiate_mode(mode(PrimaryMode.SPEED), enu_out) is True
        assert ctrl.negotiate_mode(mode(PrimaryMode.ACRO), enu_out) is True

    @pytest.mark.parametrize("primary", NON_HOVER)
    def test_non_hover_clears_received_flags(self, ctrl, enu_out, primary):
        _prime(ctrl)
        ctrl.negotiate_mode(mode(primary), enu_out)
        assert not ctrl.flags.state_received
        assert not ctrl.flags.reference_received

    def test_hover_keeps_reference_and_zeroes_state(self, ctrl, enu_out):
        ctrl.negotiate_mode(mode(PrimaryMode.POSITION), enu_out)
        ctrl.update_state(Pose(position=(1.0, 2.0, 3.0)), Twist())
        ctrl.flags.reference_received = True
        ctrl.negotiate_mode(mode(PrimaryMode.HOVER), enu_out)
        assert ctrl.flags.reference_received
        assert not ctrl.flags.state_received
        assert torch.allclose(ctrl.state.position, torch.zeros(3))
        assert torch.allclose(ctrl.reference.position, torch.tensor([1.0, 2.0, 3.0]))

    def test_hover_is_forced_to_yaw_angle_enu(self, ctrl):
        requested = ControlModeDescriptor(
            PrimaryMode.HOVER, YawMode.YAW_SPEED, ReferenceFrame.BODY_FLU_FRAME
        )
        ctrl.negotiate_mode(requested, requested)
        assert ctrl.modes.input_mode == ControlModeDescriptor(
            PrimaryMode.HOVER, YawMode.YAW_ANGLE, ReferenceFrame.LOCAL_ENU_FRAME
        )
        # output is taken verbatim
        assert ctrl.modes.output_mode == requested

    def test_input_taken_verbatim(self, ctrl):
        requested = mode(PrimaryMode.SPEED, YawMode.YAW_SPEED, ReferenceFrame.BODY_FLU_FRAME)
        ctrl.negotiate_mode(requested, mode(PrimaryMode.UNSET))
        assert ctrl.modes.input_mode == requested

    def test_unknown_integer_mode_stored(self, ctrl, enu_out):
        ctrl.negotiate_mode(ControlModeDescriptor(42), enu_out)
        assert ctrl.modes.control_mode == 42

    def test_descriptor_str(self):
        assert str(mode(PrimaryMode.SPEED)) == "SPEED/YAW_ANGLE@LOCAL_ENU_FRAME"
        assert "<42>" in str(ControlModeDescriptor(42))


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------

class TestFrames:
    def test_defaults(self):
        sm = ModeStateMachine()
        assert sm.desired_pose_frame() == "odom"
        assert sm.desired_twist_frame() == "odom"

    def test_namespace_prefix(self):
        assert tf_name("drone0", "odom") == "drone0/odom"
        assert tf_name("/drone0/", "base_link") == "drone0/base_link"
        assert tf_name("", "odom") == "odom"

    @pytest.mark.parametrize("primary", [PrimaryMode.POSITION, PrimaryMode.TRAJECTORY])
    def test_position_like_modes_bind_to_enu(self, primary):
        sm = ModeStateMachine(namespace="drone0")
        sm.negotiate(mode(primary), mode(PrimaryMode.UNSET, frame=ReferenceFrame.BODY_FLU_FRAME))
        assert sm.desired_pose_frame() == "drone0/odom"
        assert sm.desired_twist_frame() == "drone0/odom"
        assert sm.output_twist_frame_id == "drone0/odom"

    @pytest.mark.parametrize("primary", [PrimaryMode.SPEED, PrimaryMode.SPEED_IN_A_PLANE])
    def test_speed_modes_follow_output_frame(self, primary):
        sm = ModeStateMachine()
        sm.negotiate(mode(primary), mode(PrimaryMode.UNSET, frame=ReferenceFrame.BODY_FLU_FRAME))
        assert sm.desired_pose_frame() == "odom"
        assert sm.desired_twist_frame() == "base_link"
        assert sm.output_twist_frame_id == "base_link"

    def test_speed_mode_defaults_to_enu(self):
        sm = ModeStateMachine()
        sm.negotiate(mode(PrimaryMode.SPEED),
                     mode(PrimaryMode.UNSET, frame=ReferenceFrame.UNDEFINED_FRAME))
        assert sm.desired_twist_frame() == "odom"

    def test_hover_rebinds_body_frames_to_enu(self):
        sm = ModeStateMachine()
        flu_out = mode(PrimaryMode.UNSET, frame=ReferenceFrame.BODY_FLU_FRAME)
        sm.negotiate(mode(PrimaryMode.SPEED), flu_out)
        assert sm.desired_twist_frame() == "base_link"
        sm.negotiate(mode(PrimaryMode.HOVER), flu_out)
        assert sm.desired_pose_frame() == "odom"
        assert sm.desired_twist_frame() == "odom"
        assert sm.output_twist_frame_id == "odom"

    def test_controller_delegates_frames(self, enu_out):
        ctrl = SpeedController(namespace="uav")
        ctrl.negotiate_mode(mode(PrimaryMode.SPEED),
                            mode(PrimaryMode.UNSET, frame=ReferenceFrame.BODY_FLU_FRAME))
        assert ctrl.desired_pose_frame() == "uav/odom"
        assert ctrl.desired_twist_frame() == "uav/base_link"
