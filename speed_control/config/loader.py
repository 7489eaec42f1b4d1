"""
YAML configuration loader for speed_control.

A config file holds one ``speed_controller`` section: frame naming plus a
(possibly nested) ``parameters`` tree.  Nested maps are flattened into the
dotted names the controller's parameter schema uses, so

    position_control:
      kp: {x: 1.0, y: 1.0, z: 1.5}

becomes ``position_control.kp.x`` … ``position_control.kp.z``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from ..controllers.modes import DEFAULT_BASE_FRAME, DEFAULT_ODOM_FRAME


@dataclass
class SpeedControllerConfig:
    namespace:  str = ""
    odom_frame: str = DEFAULT_ODOM_FRAME   # local-level (ENU) frame
    base_frame: str = DEFAULT_BASE_FRAME   # body (FLU) frame
    # Flat ``dotted.name -> value`` map, fed to SpeedController.update_params
    parameters: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Loader helpers
# ---------------------------------------------------------------------------

def flatten_parameters(tree: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested mappings into ``{"a.b.c": value}``."""
    flat: Dict[str, Any] = {}
    for key, value in tree.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_parameters(value, name))
        else:
            flat[name] = value
    return flat


def load_config(path: str | Path) -> SpeedControllerConfig:
    """
    Parse a speed-controller YAML file.

    Example
    -------
    >>> cfg  = load_config("configs/speed_controller.yaml")
    >>> ctrl = SpeedController.from_config(cfg)
    """
    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, Mapping) or "speed_controller" not in raw:
        raise ValueError(f"{path}: missing top-level 'speed_controller' section")
    section = raw["speed_controller"] or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"{path}: 'speed_controller' must be a mapping")

    params = section.get("parameters") or {}
    if not isinstance(params, Mapping):
        raise ValueError(f"{path}: 'parameters' must be a mapping")

    return SpeedControllerConfig(
        namespace=str(section.get("namespace") or ""),
        odom_frame=str(section.get("odom_frame", DEFAULT_ODOM_FRAME)),
        base_frame=str(section.get("base_frame", DEFAULT_BASE_FRAME)),
        parameters=flatten_parameters(params),
    )
