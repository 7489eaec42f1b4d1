"""
Small rotation and vector helpers shared by the controller.

Convention
----------
Quaternions are stored as **[w, x, y, z]** (scalar-first).  Vectors are
float32 tensors of shape ``[3]``.
"""

from __future__ import annotations

import math
from typing import Sequence, Union

import torch

VectorLike = Union[Sequence[float], torch.Tensor]


# ---------------------------------------------------------------------------
# Vector helpers
# ---------------------------------------------------------------------------

def as_vec3(value: VectorLike) -> torch.Tensor:
    """Return *value* as a fresh float32 tensor of shape ``[3]``."""
    vec = torch.as_tensor(value, dtype=torch.float32).detach().clone().reshape(-1)
    if vec.numel() != 3:
        raise ValueError(f"Expected 3 components, got {vec.numel()}")
    return vec


def zeros3() -> torch.Tensor:
    return torch.zeros(3, dtype=torch.float32)


# ---------------------------------------------------------------------------
# Angles
# ---------------------------------------------------------------------------

def yaw_from_quat(quat: VectorLike) -> float:
    """Yaw (rotation about z) of a unit quaternion **[w, x, y, z]**, in radians.

    Same ZYX extraction as the full roll/pitch/yaw conversion, keeping only
    the heading term.
    """
    q = torch.as_tensor(quat, dtype=torch.float64).reshape(-1)
    if q.numel() != 4:
        raise ValueError(f"Quaternion must have 4 components, got {q.numel()}")
    w, x, y, z = (float(v) for v in q)
    return math.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))


def quat_from_yaw(yaw: float) -> torch.Tensor:
    """Pure-heading quaternion **[w, x, y, z]**."""
    half = 0.5 * yaw
    return torch.tensor([math.cos(half), 0.0, 0.0, math.sin(half)], dtype=torch.float32)


def wrap_angle(angle: float) -> float:
    """Wrap *angle* into ``(-π, π]``."""
    wrapped = math.fmod(angle + math.pi, 2.0 * math.pi)
    if wrapped <= 0.0:
        wrapped += 2.0 * math.pi
    return wrapped - math.pi


def angle_min_error(reference: float, measured: float) -> float:
    """Signed shortest rotation from *measured* to *reference*, in ``(-π, π]``.

    >>> round(angle_min_error(math.pi - 0.01, -math.pi + 0.01), 6)
    -0.02
    """
    return wrap_angle(reference - measured)
