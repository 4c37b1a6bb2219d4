import os
import sys

import pytest

# Make the package importable without installing it
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from vehicle_mpc.utils.parameters import MPCConfig


@pytest.fixture
def small_config():
    """Short horizon with the default weights; generous time budget so tests are not timing dependent."""
    return MPCConfig(N=10, dt=0.05, latency_seconds=0.1, ref_v=40.0,
                     solver_time_budget=5.0, solver_max_iter=500)
