"""
Tests for the parameter schema, the readiness gate, and parameter
application through SpeedController.update_params.
"""

import pytest
import torch

from speed_control.controllers.parameters import (
    PARAMETER_SCHEMA,
    ParameterGroup,
    ParameterReadinessGate,
    parameters_of,
)

POSITION_NAMES = sorted(parameters_of(ParameterGroup.POSITION))


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class TestSchema:
    def test_position_group_names(self):
        expected = {
            "position_control." + n for n in (
                "reset_integral", "antiwindup_cte", "alpha",
                "kp.x", "kp.y", "kp.z", "ki.x", "ki.y", "ki.z", "kd.x", "kd.y", "kd.z",
            )
        }
        assert parameters_of(ParameterGroup.POSITION) == expected

    def test_plugin_group_names(self):
        assert parameters_of(ParameterGroup.PLUGIN) == {"proportional_limitation", "use_bypass"}

    def test_yaw_group_is_scalar(self):
        names = parameters_of(ParameterGroup.YAW)
        assert "yaw_control.kp" in names
        assert "yaw_control.kp.x" not in names
        assert len(names) == 6

    def test_speed_in_plane_has_height_and_horizontal_gains(self):
        names = parameters_of(ParameterGroup.SPEED_IN_PLANE)
        assert "speed_in_a_plane_control.height.kd" in names
        assert "speed_in_a_plane_control.speed.kp.y" in names
        assert "speed_in_a_plane_control.speed.kp.z" not in names
        assert len(names) == 12

    def test_every_group_covered(self):
        groups = {spec.group for spec in PARAMETER_SCHEMA.values()}
        assert groups == set(ParameterGroup)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

class TestGate:
    def test_starts_not_ready(self):
        gate = ParameterReadinessGate()
        assert not any(gate.is_ready(g) for g in ParameterGroup)
        assert not gate.flags.state_received
        assert not gate.flags.reference_received

    def test_all_but_one_keeps_group_pending(self):
        gate = ParameterReadinessGate()
        for name in POSITION_NAMES[:-1]:
            gate.observe(name, ParameterGroup.POSITION)
        assert not gate.is_ready(ParameterGroup.POSITION)
        assert gate.pending(ParameterGroup.POSITION) == {POSITION_NAMES[-1]}

    def test_last_name_flips_and_stays(self):
        gate = ParameterReadinessGate()
        for name in POSITION_NAMES:
            gate.observe(name, ParameterGroup.POSITION)
        assert gate.is_ready(ParameterGroup.POSITION)
        gate.observe("yaw_control.kp", ParameterGroup.YAW)
        gate.observe("position_control.kp.x", ParameterGroup.POSITION)
        assert gate.is_ready(ParameterGroup.POSITION)

    def test_unknown_name_is_noop(self):
        gate = ParameterReadinessGate()
        gate.observe("position_control.bogus", ParameterGroup.POSITION)
        assert len(gate.pending(ParameterGroup.POSITION)) == 12

    def test_groups_are_independent(self):
        gate = ParameterReadinessGate()
        for name in POSITION_NAMES:
            gate.observe(name, ParameterGroup.POSITION)
        assert not gate.is_ready(ParameterGroup.VELOCITY)

    def test_rearm(self):
        gate = ParameterReadinessGate()
        for name in POSITION_NAMES:
            gate.observe(name, ParameterGroup.POSITION)
        gate.flags.state_received = True
        gate.rearm()
        assert not gate.is_ready(ParameterGroup.POSITION)
        assert not gate.flags.state_received
        assert len(gate.pending(ParameterGroup.POSITION)) == 12


# ---------------------------------------------------------------------------
# update_params
# ---------------------------------------------------------------------------

class TestUpdateParams:
    def test_gain_reaches_pid(self, ctrl):
        result = ctrl.update_params({"position_control.kp.y": 2.5})
        assert result.successful
        assert ctrl.pid_position.kp[1].item() == pytest.approx(2.5)

    def test_accepts_pairs(self, ctrl):
        ctrl.update_params([("yaw_control.kd", 0.3), ("yaw_control.alpha", 0.5)])
        assert ctrl.pid_yaw.kd.item() == pytest.approx(0.3)
        assert ctrl.pid_yaw.alpha == pytest.approx(0.5)

    def test_common_fields(self, ctrl):
        ctrl.update_params({
            "trajectory_control.reset_integral": True,
            "trajectory_control.antiwindup_cte": 2.0,
        })
        assert ctrl.pid_trajectory.reset_integral is True
        assert ctrl.pid_trajectory.antiwindup_cte == pytest.approx(2.0)

    def test_speed_in_plane_shared_fields_hit_both_pids(self, ctrl):
        ctrl.update_params({"speed_in_a_plane_control.antiwindup_cte": 0.7})
        assert ctrl.pid_speed_in_a_plane.antiwindup_cte == pytest.approx(0.7)
        assert ctrl.pid_speed_in_a_plane_height.antiwindup_cte == pytest.approx(0.7)

    def test_speed_in_plane_split_gains(self, ctrl):
        ctrl.update_params({
            "speed_in_a_plane_control.height.kp": 4.0,
            "speed_in_a_plane_control.speed.ki.x": 0.2,
        })
        assert ctrl.pid_speed_in_a_plane_height.kp.item() == pytest.approx(4.0)
        assert ctrl.pid_speed_in_a_plane.ki[0].item() == pytest.approx(0.2)

    def test_plugin_flags(self, ctrl):
        ctrl.update_params({"use_bypass": True, "proportional_limitation": True})
        assert ctrl.use_bypass is True
        assert ctrl.pid_velocity.proportional_saturation is True
        assert ctrl.pid_position.proportional_saturation is True

    def test_unknown_name_rejected_rest_applied(self, ctrl):
        result = ctrl.update_params({"position_control.kp.w": 1.0, "position_control.kp.x": 3.0})
        assert not result.successful
        assert result.rejected == ["position_control.kp.w"]
        assert "unknown parameter" in result.reason
        assert ctrl.pid_position.kp[0].item() == pytest.approx(3.0)

    def test_wrong_type_rejected_and_not_observed(self, ctrl):
        result = ctrl.update_params({"use_bypass": "maybe"})
        assert not result.successful
        assert "use_bypass" in ctrl.gate.pending(ParameterGroup.PLUGIN)

    def test_bool_is_not_a_gain(self, ctrl):
        result = ctrl.update_params({"position_control.kp.x": True})
        assert not result.successful

    def test_string_bool_accepted(self, ctrl):
        assert ctrl.update_params({"use_bypass": "true"}).successful
        assert ctrl.use_bypass is True

    def test_invalid_alpha_rejected(self, ctrl):
        result = ctrl.update_params({"yaw_control.alpha": 3.0})
        assert not result.successful
        assert ctrl.pid_yaw.alpha == pytest.approx(1.0)

    def test_full_group_marks_ready(self, ctrl):
        ctrl.update_params({name: 1.0 if "reset" not in name else False for name in POSITION_NAMES})
        assert ctrl.flags.position
        assert not ctrl.flags.velocity

    def test_full_config_marks_every_group_ready(self, tuned):
        for group in ParameterGroup:
            assert tuned.gate.is_ready(group), group

    def test_initialize_rearms(self, tuned):
        tuned.initialize()
        assert not tuned.flags.position
        assert torch.allclose(tuned.pid_position.kp, torch.ones(3))
