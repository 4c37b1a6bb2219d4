"""Model Predictive Control of a ground vehicle along a cubic reference path."""

from vehicle_mpc.algorithms.classic.mpc_controller import (
    ControllerState,
    FailureKind,
    MPCController,
    MPCSolution,
    SolveDiagnostics,
    SolverStatus,
)
from vehicle_mpc.utils.parameters import InvalidConfigurationError, MPCConfig, load_mpc_config

__version__ = "0.1.0"
