"""
Discrete-time PID primitives for the speed controller.

Two flavours share one implementation:

* ``PIDController``: single axis (yaw, height); scalars in, float out.
* ``PIDController3D``: three axes (position, velocity, trajectory); per-axis
  gains, ``[3]`` tensors in and out.

Key features
────────────
* Error computed from ``(measured, reference)`` or supplied directly to
  ``forward()``.
* Derivative on rates when ``measured_rate`` / ``reference_rate`` are given
  (no derivative kick on set-point steps); otherwise a backward difference
  smoothed by a first-order low-pass ``alpha`` (``alpha = 1`` → unfiltered).
* Integral clamping at ``±antiwindup_cte`` (disabled when ``<= 0``).
* Optional integral reset whenever the output saturates.
* Per-axis output saturation; the 3-axis variant can instead scale the whole
  vector so that its direction is preserved (proportional saturation).
* Feed-forward term ``kff * reference_rate``.

All setters are idempotent and may be called at any time; ``reset_controller``
only clears the dynamic state, never the gains.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Union

import torch
import torch.nn as nn

Scalar = Union[float, int]
AxisLike = Union[int, str]

_AXIS_INDEX = {"x": 0, "y": 1, "z": 2}


def _axis_index(axis: AxisLike) -> int:
    if isinstance(axis, str):
        try:
            return _AXIS_INDEX[axis.lower()]
        except KeyError:
            raise ValueError(f"Unknown axis '{axis}', expected one of x, y, z") from None
    if axis not in (0, 1, 2):
        raise ValueError(f"Axis index must be 0, 1 or 2, got {axis}")
    return int(axis)


class _PIDBase(nn.Module):
    """Shared state and stepping logic, ``axes`` components wide."""

    def __init__(
        self,
        axes: int,
        *,
        kp: Union[Scalar, Sequence[float]] = 1.0,
        ki: Union[Scalar, Sequence[float]] = 0.0,
        kd: Union[Scalar, Sequence[float]] = 0.0,
        kff: Union[Scalar, Sequence[float]] = 0.0,
        alpha: float = 1.0,
        antiwindup_cte: float = 0.0,
        reset_integral: bool = False,
    ) -> None:
        super().__init__()
        self._axes = axes

        self.kp  = self._gain(kp)
        self.ki  = self._gain(ki)
        self.kd  = self._gain(kd)
        self.kff = self._gain(kff)
        self.alpha          = float(alpha)
        self.antiwindup_cte = float(antiwindup_cte)
        self.reset_integral = bool(reset_integral)

        # +inf on an axis means "no bound"
        self.saturation_enabled = False
        self.limit = torch.full((axes,), math.inf, dtype=torch.float32)

        zeros = torch.zeros(axes, dtype=torch.float32)
        self.register_buffer("integrator",     zeros.clone())
        self.register_buffer("differentiator", zeros.clone())
        self.register_buffer("error_d1",       zeros.clone())
        self.register_buffer("u",              zeros.clone())
        self._has_previous_error = False

    # ── Internal helpers ─────────────────────────────────────────────────────

    def _gain(self, value: Union[Scalar, Sequence[float], torch.Tensor]) -> torch.Tensor:
        g = torch.as_tensor(value, dtype=torch.float32).reshape(-1)
        if g.numel() == 1:
            return g.expand(self._axes).clone()
        if g.numel() != self._axes:
            raise ValueError(f"Expected 1 or {self._axes} gain values, got {g.numel()}")
        return g.clone()

    def _vector(self, value) -> torch.Tensor:
        v = torch.as_tensor(value, dtype=torch.float32).reshape(-1)
        if v.numel() != self._axes:
            raise ValueError(f"Expected {self._axes} components, got {v.numel()}")
        return v

    def _saturate(self, u: torch.Tensor) -> torch.Tensor:
        return torch.maximum(torch.minimum(u, self.limit), -self.limit)

    # ── Setters ──────────────────────────────────────────────────────────────

    def set_gains(self, kp, ki, kd) -> None:
        self.kp = self._gain(kp)
        self.ki = self._gain(ki)
        self.kd = self._gain(kd)

    def set_gain_kff(self, kff) -> None:
        self.kff = self._gain(kff)

    def set_anti_windup(self, value: float) -> None:
        self.antiwindup_cte = float(value)

    def set_alpha(self, value: float) -> None:
        value = float(value)
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"alpha must lie in [0, 1], got {value}")
        self.alpha = value

    def set_reset_integral_saturation_flag(self, flag: bool) -> None:
        self.reset_integral = bool(flag)

    def set_output_saturation(self, limit) -> None:
        """Symmetric bound ``|u| <= limit`` per axis; non-positive entries leave that axis free."""
        lim = self._gain(limit)
        self.limit = torch.where(lim > 0.0, lim, torch.full_like(lim, math.inf))
        self.saturation_enabled = True

    def disable_output_saturation(self) -> None:
        self.limit = torch.full((self._axes,), math.inf, dtype=torch.float32)
        self.saturation_enabled = False

    # ── Reset ────────────────────────────────────────────────────────────────

    def reset_controller(self) -> None:
        """Clear integrator, derivative filter and error history."""
        for buf in (self.integrator, self.differentiator, self.error_d1, self.u):
            buf.zero_()
        self._has_previous_error = False

    # ── Forward pass ─────────────────────────────────────────────────────────

    def forward(
        self,
        error: torch.Tensor,
        dt: float,
        derivative_error: Optional[torch.Tensor] = None,
        feedforward: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """
        One discrete PID step on an already-computed tracking error.

        Parameters
        ----------
        error : Tensor ``[axes]``
            ``reference − measured``.
        dt : float
            Timestep [s], strictly positive.
        derivative_error : Tensor, optional
            Rate error ``reference_rate − measured_rate``.  When omitted the
            derivative is the filtered backward difference of *error*.
        feedforward : Tensor, optional
            Added as ``kff * feedforward``.

        Returns
        -------
        Tensor ``[axes]``
            Saturated output.
        """
        dt = float(dt)
        if not dt > 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        error = self._vector(error)

        # ── Integrator ───────────────────────────────────────────────────────
        self.integrator = self.integrator + error * dt
        if self.antiwindup_cte > 0.0:
            self.integrator = torch.clamp(self.integrator, -self.antiwindup_cte, self.antiwindup_cte)

        # ── Derivative ───────────────────────────────────────────────────────
        if derivative_error is not None:
            d_term = self._vector(derivative_error)
        else:
            if self._has_previous_error:
                raw = (error - self.error_d1) / dt
            else:
                raw = torch.zeros_like(error)
            self.differentiator = self.alpha * raw + (1.0 - self.alpha) * self.differentiator
            d_term = self.differentiator

        self.error_d1 = error.clone()
        self._has_previous_error = True

        # ── PID sum ──────────────────────────────────────────────────────────
        u = self.kp * error + self.ki * self.integrator + self.kd * d_term
        if feedforward is not None:
            u = u + self.kff * self._vector(feedforward)

        # ── Output saturation ────────────────────────────────────────────────
        if self.saturation_enabled:
            u_sat = self._saturate(u)
            if self.reset_integral:
                saturated = u_sat != u
                self.integrator = torch.where(saturated, torch.zeros_like(self.integrator), self.integrator)
            u = u_sat

        self.u = u.clone()
        return u


# ---------------------------------------------------------------------------
# Single axis
# ---------------------------------------------------------------------------

class PIDController(_PIDBase):
    """Single-axis PID.  ``compute_control`` takes and returns plain floats."""

    def __init__(self, **kwargs) -> None:
        super().__init__(1, **kwargs)

    def set_gain_kp(self, value: float) -> None:
        self.kp = self._gain(value)

    def set_gain_ki(self, value: float) -> None:
        self.ki = self._gain(value)

    def set_gain_kd(self, value: float) -> None:
        self.kd = self._gain(value)

    def compute_control(
        self,
        dt: float,
        measured: float,
        reference: float,
        measured_rate: Optional[float] = None,
        reference_rate: Optional[float] = None,
    ) -> float:
        error = torch.tensor([float(reference) - float(measured)], dtype=torch.float32)
        derivative_error = None
        feedforward = None
        if measured_rate is not None and reference_rate is not None:
            derivative_error = torch.tensor(
                [float(reference_rate) - float(measured_rate)], dtype=torch.float32
            )
            feedforward = torch.tensor([float(reference_rate)], dtype=torch.float32)
        return float(self.forward(error, dt, derivative_error, feedforward)[0])

    def compute_control_from_error(self, dt: float, error: float) -> float:
        """Step directly on a precomputed error (e.g. a wrapped yaw error)."""
        return float(self.forward(torch.tensor([float(error)], dtype=torch.float32), dt)[0])


# ---------------------------------------------------------------------------
# Three axes
# ---------------------------------------------------------------------------

class PIDController3D(_PIDBase):
    """
    Three-axis PID with per-axis gains.

    With ``proportional_saturation`` enabled the output vector is scaled
    uniformly until every axis respects its bound, so the commanded direction
    is kept even when a speed limit is hit.
    """

    def __init__(self, *, proportional_saturation: bool = False, **kwargs) -> None:
        super().__init__(3, **kwargs)
        self.proportional_saturation = bool(proportional_saturation)

    def set_gain_kp(self, value: float, axis: AxisLike) -> None:
        self.kp[_axis_index(axis)] = float(value)

    def set_gain_ki(self, value: float, axis: AxisLike) -> None:
        self.ki[_axis_index(axis)] = float(value)

    def set_gain_kd(self, value: float, axis: AxisLike) -> None:
        self.kd[_axis_index(axis)] = float(value)

    def set_proportional_saturation_flag(self, flag: bool) -> None:
        self.proportional_saturation = bool(flag)

    def _saturate(self, u: torch.Tensor) -> torch.Tensor:
        if not self.proportional_saturation:
            return super()._saturate(u)
        mag = u.abs()
        over = mag > self.limit
        if not bool(over.any()):
            return u
        ratio = torch.where(over, self.limit / mag, torch.ones_like(mag))
        return u * ratio.min()

    def compute_control(
        self,
        dt: float,
        measured,
        reference,
        measured_rate=None,
        reference_rate=None,
    ) -> torch.Tensor:
        """
        ``reference − measured`` through the PID.

        Passing both rate arguments switches the derivative to the rate error
        and feeds ``reference_rate`` forward through ``kff``.
        """
        error = self._vector(reference) - self._vector(measured)
        derivative_error = None
        feedforward = None
        if measured_rate is not None and reference_rate is not None:
            reference_rate = self._vector(reference_rate)
            derivative_error = reference_rate - self._vector(measured_rate)
            feedforward = reference_rate
        return self.forward(error, dt, derivative_error, feedforward)
