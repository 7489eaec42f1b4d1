"""
SpeedController: velocity + yaw-rate command from interchangeable references.

Loop selection
──────────────
HOVER / POSITION   → position PID           → [velocity]
SPEED              → velocity PID (or bypass) → [velocity]
SPEED_IN_A_PLANE   → horizontal velocity PID (or bypass) + height PID on z
TRAJECTORY         → trajectory PID on position with rate error / feed-forward
YAW_ANGLE          → yaw PID on the wrapped heading error → [yaw rate]
YAW_SPEED          → reference yaw rate passed through

No command is produced until the state, a reference for the active mode, and
every parameter group the mode depends on have been received.  Those checks
all run before any PID is stepped, so a blocked tick leaves the integrators
untouched.

Usage
-----
>>> from speed_control import load_config, SpeedController, ControlModeDescriptor, PrimaryMode
>>> ctrl = SpeedController.from_config(load_config("configs/speed_controller.yaml"))
>>> ctrl.negotiate_mode(ControlModeDescriptor(PrimaryMode.POSITION), ControlModeDescriptor())
>>> ctrl.update_state(pose, twist)
>>> ctrl.update_reference_pose(target)
>>> out = ctrl.compute_command(dt=0.01)   # Command or Blocked

Not thread-safe: the host must serialise every call on one instance.
"""

from __future__ import annotations

import functools
import logging
import numbers
import time
from collections.abc import Mapping
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

import torch

from ..utils.math_utils import angle_min_error, as_vec3, yaw_from_quat, zeros3
from ..utils.messages import (
    Blocked,
    BlockReason,
    Command,
    GuidanceReference,
    Pose,
    TrajectoryPoint,
    Twist,
    VehicleState,
)
from .modes import (
    DEFAULT_BASE_FRAME,
    DEFAULT_ODOM_FRAME,
    ControlModeDescriptor,
    ModeStateMachine,
    PrimaryMode,
    YawMode,
)
from .parameters import (
    GROUP_PREFIXES,
    PARAMETER_SCHEMA,
    ParameterGroup,
    ParameterReadinessGate,
    ParameterUpdateResult,
    ReadinessFlags,
    lookup,
)
from .pid import PIDController, PIDController3D

logger = logging.getLogger(__name__)

LOG_THROTTLE_S = 5.0  # min spacing between identical not-ready messages

ParamItems = Union[Mapping, Iterable[Tuple[str, object]]]


class MalformedReferenceError(ValueError):
    """A reference message is too short for the fields the active mode reads."""


def _coerce(value, kind: type):
    if kind is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise TypeError(f"expected a bool, got {value!r}")
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError(f"expected a number, got {value!r}")
    return float(value)


class SpeedController:
    """
    Mode-dispatched cascaded PID producing a velocity + yaw-rate ``Command``.

    Parameters
    ----------
    namespace : str
        Vehicle namespace prepended to frame ids (``"drone0"`` → ``drone0/odom``).
    odom_frame, base_frame : str
        Local-level (ENU) and body (FLU) frame names.
    """

    def __init__(
        self,
        namespace: str = "",
        odom_frame: str = DEFAULT_ODOM_FRAME,
        base_frame: str = DEFAULT_BASE_FRAME,
    ) -> None:
        self._frame_args = (namespace, odom_frame, base_frame)
        self.initialize()

    @classmethod
    def from_config(cls, config) -> "SpeedController":
        """
        Build from a :class:`~speed_control.config.loader.SpeedControllerConfig`
        and push every parameter it carries.

        Raises ``ValueError`` if any configured parameter is rejected.
        """
        ctrl = cls(
            namespace=config.namespace,
            odom_frame=config.odom_frame,
            base_frame=config.base_frame,
        )
        result = ctrl.update_params(config.parameters)
        if not result.successful:
            raise ValueError(f"Invalid controller parameters: {result.reason}")
        return ctrl

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def initialize(self) -> None:
        """
        Fresh start: new PID primitives, empty staging, every parameter
        group pending again.
        """
        self.modes = ModeStateMachine(*self._frame_args)
        self.gate  = ParameterReadinessGate()

        self.pid_yaw                     = PIDController()
        self.pid_position                = PIDController3D()
        self.pid_velocity                = PIDController3D()
        self.pid_speed_in_a_plane_height = PIDController()
        self.pid_speed_in_a_plane        = PIDController3D()
        self.pid_trajectory              = PIDController3D()

        self.proportional_limitation = False
        self.use_bypass              = False
        self.speed_limits            = zeros3()

        self.state     = VehicleState()
        self.reference = GuidanceReference()
        self.command   = Command(frame_id=self.modes.output_twist_frame_id)

        self._last_log: Dict[str, float] = {}
        self._setters = self._build_setters()

        self._translation_handlers: Dict[PrimaryMode, Callable[[float], torch.Tensor]] = {
            PrimaryMode.HOVER:            self._cmd_position,
            PrimaryMode.POSITION:         self._cmd_position,
            PrimaryMode.SPEED:            self._cmd_speed,
            PrimaryMode.SPEED_IN_A_PLANE: self._cmd_speed_in_a_plane,
            PrimaryMode.TRAJECTORY:       self._cmd_trajectory,
        }
        self.reset()

    def reset(self) -> None:
        """
        Re-anchor the reference on the last received state, then return the
        state to zero / identity, zero the command and clear every PID's
        dynamic state.

        Parameter readiness is kept.  The zeroed state no longer counts as
        received, so a fresh ``update_state`` is needed before the next
        command and a second ``reset()`` leaves the reference where the
        first one put it.
        """
        if self.gate.flags.state_received:
            self._reset_references()
        self._reset_state()
        self._reset_commands()
        for pid in self._pids():
            pid.reset_controller()
        logger.debug("Speed controller reset")

    def _pids(self):
        return (
            self.pid_yaw,
            self.pid_position,
            self.pid_velocity,
            self.pid_speed_in_a_plane_height,
            self.pid_speed_in_a_plane,
            self.pid_trajectory,
        )

    def _pids_3d(self):
        return (
            self.pid_position,
            self.pid_velocity,
            self.pid_speed_in_a_plane,
            self.pid_trajectory,
        )

    def _reset_references(self) -> None:
        self.reference = GuidanceReference(
            position=self.state.position.clone(),
            velocity=zeros3(),
            yaw=torch.tensor([self.state.yaw, 0.0, 0.0], dtype=torch.float32),
        )

    def _reset_state(self) -> None:
        self.state = VehicleState()
        self.gate.flags.state_received = False

    def _reset_commands(self) -> None:
        self.command.velocity  = zeros3()
        self.command.yaw_speed = 0.0

    @property
    def flags(self) -> ReadinessFlags:
        return self.gate.flags

    # ── Parameters ───────────────────────────────────────────────────────────

    def _build_setters(self) -> Dict[str, Callable]:
        setters: Dict[str, Callable] = {
            "proportional_limitation": self._set_proportional_limitation,
            "use_bypass":              self._set_use_bypass,
        }
        for group, pid in (
            (ParameterGroup.POSITION,   self.pid_position),
            (ParameterGroup.VELOCITY,   self.pid_velocity),
            (ParameterGroup.TRAJECTORY, self.pid_trajectory),
        ):
            prefix = GROUP_PREFIXES[group]
            setters.update({f"{prefix}.{k}": v for k, v in _common_setters(pid).items()})
            setters.update({f"{prefix}.{k}": v for k, v in _axis_gain_setters(pid, "xyz").items()})

        prefix = GROUP_PREFIXES[ParameterGroup.YAW]
        setters.update({f"{prefix}.{k}": v for k, v in _common_setters(self.pid_yaw).items()})
        setters.update({f"{prefix}.{k}": v for k, v in _scalar_gain_setters(self.pid_yaw).items()})

        # Shared tuning fields drive both halves of the speed-in-a-plane loop
        prefix = GROUP_PREFIXES[ParameterGroup.SPEED_IN_PLANE]
        height, plane = self.pid_speed_in_a_plane_height, self.pid_speed_in_a_plane
        height_common, plane_common = _common_setters(height), _common_setters(plane)
        for key in height_common:
            setters[f"{prefix}.{key}"] = functools.partial(
                _apply_both, height_common[key], plane_common[key]
            )
        setters.update({f"{prefix}.height.{k}": v for k, v in _scalar_gain_setters(height).items()})
        setters.update({f"{prefix}.speed.{k}": v for k, v in _axis_gain_setters(plane, "xy").items()})

        mismatch = set(setters) ^ set(PARAMETER_SCHEMA)
        if mismatch:
            raise RuntimeError(f"Parameter setters out of sync with schema: {sorted(mismatch)}")
        return setters

    def _set_proportional_limitation(self, flag: bool) -> None:
        self.proportional_limitation = flag
        for pid in self._pids_3d():
            pid.set_proportional_saturation_flag(flag)

    def _set_use_bypass(self, flag: bool) -> None:
        self.use_bypass = flag

    def update_params(self, params: ParamItems) -> ParameterUpdateResult:
        """
        Apply ``(name, value)`` pairs (or a mapping) and record them with the
        readiness gate.

        Unknown names and values of the wrong type are rejected and listed in
        the returned result; every other entry of the batch is still applied.
        """
        items = params.items() if isinstance(params, Mapping) else params
        result = ParameterUpdateResult()
        for name, value in items:
            spec = lookup(name)
            if spec is None:
                logger.warning("Rejecting unknown parameter '%s'", name)
                result.reject(name, "unknown parameter")
                continue
            try:
                self._setters[name](_coerce(value, spec.kind))
            except (TypeError, ValueError) as exc:
                logger.warning("Rejecting parameter '%s': %s", name, exc)
                result.reject(name, str(exc))
                continue
            self.gate.observe(name, spec.group)
            logger.debug("Parameter %s = %r", name, value)
        return result

    # ── Modes ────────────────────────────────────────────────────────────────

    def negotiate_mode(self, input_mode: ControlModeDescriptor,
                       output_mode: ControlModeDescriptor) -> bool:
        """Install new input/output modes.  Always accepted."""
        previous = self.modes.control_mode
        if self.modes.negotiate(input_mode, output_mode):
            self.gate.flags.state_received     = False
            self.gate.flags.reference_received = False

        current = self.modes.control_mode
        if current == PrimaryMode.HOVER and previous != PrimaryMode.HOVER:
            self.reset()
        elif current != previous:
            for pid in self._pids():
                pid.reset_controller()
        return True

    def desired_pose_frame(self) -> str:
        return self.modes.desired_pose_frame()

    def desired_twist_frame(self) -> str:
        return self.modes.desired_twist_frame()

    # ── State / reference staging ────────────────────────────────────────────

    def update_state(self, pose: Pose, twist: Twist) -> None:
        self.state = VehicleState(
            position=as_vec3(pose.position),
            velocity=as_vec3(twist.linear),
            yaw=yaw_from_quat(pose.orientation),
        )
        self.gate.flags.state_received = True

    def update_reference(self, msg: Union[Pose, Twist, TrajectoryPoint]) -> None:
        if isinstance(msg, Pose):
            self.update_reference_pose(msg)
        elif isinstance(msg, Twist):
            self.update_reference_twist(msg)
        elif isinstance(msg, TrajectoryPoint):
            self.update_reference_trajectory(msg)
        else:
            raise TypeError(f"Unsupported reference type {type(msg).__name__}")

    def update_reference_pose(self, pose: Pose) -> None:
        mode = self.modes.control_mode
        if mode in (PrimaryMode.POSITION, PrimaryMode.SPEED_IN_A_PLANE):
            self.reference.position = as_vec3(pose.position)
            self.gate.flags.reference_received = True

        if (mode in (PrimaryMode.SPEED, PrimaryMode.POSITION, PrimaryMode.SPEED_IN_A_PLANE)
                and self.modes.yaw_mode == YawMode.YAW_ANGLE):
            yaw = self.reference.yaw.clone()
            yaw[0] = yaw_from_quat(pose.orientation)
            self.reference.yaw = yaw

    def update_reference_twist(self, twist: Twist) -> None:
        """
        Velocity reference in SPEED / SPEED_IN_A_PLANE.

        In POSITION mode the twist is a speed limit instead: it becomes the
        output saturation of the position, velocity and trajectory loops and
        does not count as a reference.
        """
        mode = self.modes.control_mode
        if mode == PrimaryMode.POSITION:
            self.speed_limits = as_vec3(twist.linear)
            for pid in (self.pid_position, self.pid_velocity, self.pid_trajectory):
                pid.set_output_saturation(self.speed_limits)
            logger.debug("Speed limits set to %s", self.speed_limits.tolist())
            return

        if mode not in (PrimaryMode.SPEED, PrimaryMode.SPEED_IN_A_PLANE):
            return

        self.reference.velocity = as_vec3(twist.linear)
        if self.modes.yaw_mode == YawMode.YAW_SPEED:
            yaw = self.reference.yaw.clone()
            yaw[1] = float(as_vec3(twist.angular)[2])
            self.reference.yaw = yaw
        self.gate.flags.reference_received = True

    def update_reference_trajectory(self, point: TrajectoryPoint) -> None:
        if self.modes.control_mode != PrimaryMode.TRAJECTORY:
            return

        for label, values in (("positions", point.positions),
                              ("velocities", point.velocities),
                              ("accelerations", point.accelerations)):
            if len(values) < 4:
                raise MalformedReferenceError(
                    f"Trajectory point needs 4 {label} (x, y, z, yaw), got {len(values)}"
                )

        p, v, a = point.positions, point.velocities, point.accelerations
        self.reference.position = as_vec3(p[:3])
        self.reference.velocity = as_vec3(v[:3])
        self.reference.yaw = torch.tensor([p[3], v[3], a[3]], dtype=torch.float32)
        self.gate.flags.reference_received = True

    # ── Command computation ──────────────────────────────────────────────────

    def compute_command(self, dt: float) -> Union[Command, Blocked]:
        """
        One control tick.

        Returns a fresh ``Command`` or a ``Blocked`` naming the first unmet
        precondition.  ``dt`` must be positive.
        """
        dt = float(dt)
        if not dt > 0.0:
            raise ValueError(f"dt must be positive, got {dt}")

        flags = self.gate.flags
        if not flags.state_received:
            return self._blocked(BlockReason.STATE_NOT_RECEIVED)
        if not flags.plugin:
            return self._blocked(BlockReason.PLUGIN_PARAMETERS_NOT_READ)
        # Checked for every mode, including those that never run the position loop
        if not flags.position:
            return self._blocked(BlockReason.POSITION_PARAMETERS_NOT_READ)
        if not flags.reference_received:
            return self._blocked(BlockReason.REFERENCE_NOT_RECEIVED)

        mode = self.modes.control_mode
        handler = self._translation_handlers.get(mode)
        if handler is None:
            return self._blocked(BlockReason.UNKNOWN_CONTROL_MODE, logging.ERROR)
        if mode == PrimaryMode.TRAJECTORY and not flags.trajectory:
            return self._blocked(BlockReason.TRAJECTORY_PARAMETERS_NOT_READ)

        yaw_mode = self.modes.yaw_mode
        if yaw_mode == YawMode.YAW_ANGLE:
            if not flags.yaw:
                return self._blocked(BlockReason.YAW_PARAMETERS_NOT_READ)
        elif yaw_mode != YawMode.YAW_SPEED:
            return self._blocked(BlockReason.UNKNOWN_YAW_MODE, logging.ERROR)

        self._reset_commands()
        self.command.velocity  = handler(dt)
        self.command.yaw_speed = self._cmd_yaw(dt, yaw_mode)
        self.command.frame_id  = self.modes.output_twist_frame_id
        return self.command.copy()

    def _cmd_position(self, dt: float) -> torch.Tensor:
        return self.pid_position.compute_control(dt, self.state.position, self.reference.position)

    def _cmd_speed(self, dt: float) -> torch.Tensor:
        if self.use_bypass:
            return self.reference.velocity.clone()
        if not self.gate.flags.velocity:
            self._log_throttled(logging.WARNING, "Velocity controller parameters not read yet")
        return self.pid_velocity.compute_control(dt, self.state.velocity, self.reference.velocity)

    def _cmd_speed_in_a_plane(self, dt: float) -> torch.Tensor:
        """
        Horizontal velocity from the plane PID (or bypass), z from the height
        PID on position.

        The not-read warning follows the ``speed_in_plane`` group, whose PIDs
        this loop runs, not the ``velocity`` group used by SPEED.  Like SPEED
        it only warns and still returns a command.
        """
        if self.use_bypass:
            velocity = self.reference.velocity.clone()
        else:
            if not self.gate.flags.speed_in_plane:
                self._log_throttled(logging.WARNING,
                                    "Speed in a plane controller parameters not read yet")
            velocity = self.pid_speed_in_a_plane.compute_control(
                dt, self.state.velocity, self.reference.velocity
            ).clone()
        velocity[2] = self.pid_speed_in_a_plane_height.compute_control(
            dt, float(self.state.position[2]), float(self.reference.position[2])
        )
        return velocity

    def _cmd_trajectory(self, dt: float) -> torch.Tensor:
        return self.pid_trajectory.compute_control(
            dt,
            self.state.position, self.reference.position,
            self.state.velocity, self.reference.velocity,
        )

    def _cmd_yaw(self, dt: float, yaw_mode: YawMode) -> float:
        if yaw_mode == YawMode.YAW_SPEED:
            return float(self.reference.yaw[1])
        error = angle_min_error(float(self.reference.yaw[0]), self.state.yaw)
        return self.pid_yaw.compute_control_from_error(dt, error)

    # ── Logging ──────────────────────────────────────────────────────────────

    def _blocked(self, reason: BlockReason, level: int = logging.WARNING) -> Blocked:
        self._log_throttled(level, reason.value.capitalize())
        return Blocked(reason)

    def _log_throttled(self, level: int, message: str) -> None:
        now = time.monotonic()
        last: Optional[float] = self._last_log.get(message)
        if last is None or now - last >= LOG_THROTTLE_S:
            self._last_log[message] = now
            logger.log(level, message)


# ---------------------------------------------------------------------------
# Setter tables
# ---------------------------------------------------------------------------

def _apply_both(first: Callable, second: Callable, value) -> None:
    first(value)
    second(value)


def _common_setters(pid) -> Dict[str, Callable]:
    return {
        "reset_integral": pid.set_reset_integral_saturation_flag,
        "antiwindup_cte": pid.set_anti_windup,
        "alpha":          pid.set_alpha,
    }


def _scalar_gain_setters(pid: PIDController) -> Dict[str, Callable]:
    return {"kp": pid.set_gain_kp, "ki": pid.set_gain_ki, "kd": pid.set_gain_kd}


def _axis_gain_setters(pid: PIDController3D, axes: str) -> Dict[str, Callable]:
    return {
        f"{gain}.{axis}": functools.partial(setter, axis=axis)
        for gain, setter in (("kp", pid.set_gain_kp), ("ki", pid.set_gain_ki), ("kd", pid.set_gain_kd))
        for axis in axes
    }
