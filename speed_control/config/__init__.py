from .loader import (
    load_config,
    flatten_parameters,
    SpeedControllerConfig,
)

__all__ = [
    "load_config",
    "flatten_parameters",
    "SpeedControllerConfig",
]
