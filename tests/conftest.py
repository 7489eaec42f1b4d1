"""
Shared fixtures for the speed_control test suite.

All path resolution is relative to the repository root so tests can be
invoked from any working directory (repo root, tests/, etc.).
"""

from pathlib import Path

import pytest

from speed_control import (
    load_config,
    SpeedController,
    ControlModeDescriptor,
    PrimaryMode,
    YawMode,
    ReferenceFrame,
)

# Absolute path to the repo root, independent of cwd
REPO_ROOT = Path(__file__).parent.parent
CONFIGS_DIR = REPO_ROOT / "configs"


# ---------------------------------------------------------------------------
# Config fixtures  (session-scoped: loaded once for the whole test run)
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def default_config():
    """SpeedControllerConfig shipped in configs/."""
    return load_config(CONFIGS_DIR / "speed_controller.yaml")


# ---------------------------------------------------------------------------
# Controller fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def ctrl():
    """Fresh controller, no parameters received."""
    return SpeedController()


@pytest.fixture
def tuned(default_config):
    """Fresh controller with every parameter group ready."""
    return SpeedController.from_config(default_config)


def mode(control_mode, yaw_mode=YawMode.YAW_ANGLE, frame=ReferenceFrame.LOCAL_ENU_FRAME):
    return ControlModeDescriptor(control_mode, yaw_mode, frame)


@pytest.fixture
def enu_out():
    return mode(PrimaryMode.UNSET)
