"""
mpc_helpers.py

Builds the bound vectors handed to the NLP solver: variable bounds (lbx, ubx)
for every state and actuation in the decision vector, and constraint bounds
(lbg, ubg) for the residual vector.
"""

from typing import List, Sequence, Tuple

import numpy as np

from vehicle_mpc.environments.casadi_dynamics import STATE_NAMES
from vehicle_mpc.utils.parameters import InvalidConfigurationError


def build_mpc_bounds(
    layout,
    x0: Sequence[float],
    last_actuation: Tuple[float, float],
    latency_steps: int,
    max_steer: float,
    max_accel: float = 1.0,
    state_bound: float = 1.0e19,
) -> Tuple[List[float], List[float], List[float], List[float]]:
    """
    Build the lbx/ubx and lbg/ubg vectors for one MPC solve.

    - State variables are effectively unbounded (+/- state_bound), except the
      step-0 block which is pinned to the measured state x0.
    - Steering is bounded to [-max_steer, max_steer], acceleration to
      [-max_accel, max_accel].
    - The first `latency_steps` steering and acceleration slots are pinned to
      the last commanded actuation: those commands are already in flight.
    - Constraint bounds pin the step-0 residuals to x0 and force every
      dynamics residual to zero.

    Args:
        layout: MPCLayout of the decision vector.
        x0: Measured state [x, y, psi, v, cte, epsi].
        last_actuation: Last commanded (steering, acceleration).
        latency_steps: Number of actuation slots covered by the latency.
        max_steer: Steering limit (rad).
        max_accel: Acceleration limit (normalised).
        state_bound: Magnitude standing in for "unbounded".

    Returns:
        lbx, ubx, lbg, ubg as flat lists.
    """
    x0 = np.asarray(x0, dtype=float).ravel()
    if x0.shape != (len(STATE_NAMES),):
        raise ValueError(f"Initial state must have {len(STATE_NAMES)} entries, got shape {x0.shape}")
    if layout.N < 2:
        raise InvalidConfigurationError(f"Horizon N must be >= 2, got {layout.N}")
    if not 0 <= latency_steps < layout.N - 1:
        raise InvalidConfigurationError(
            f"Latency steps must be in [0, N-1) = [0, {layout.N - 1}), got {latency_steps}")

    steering, acceleration = (float(u) for u in last_actuation)

    lbx = [-state_bound] * layout.n_vars
    ubx = [state_bound] * layout.n_vars

    # Initial state is fixed to the measurement
    for idx, value in zip(layout.initial_state_indices(), x0):
        lbx[idx] = value
        ubx[idx] = value

    for i in range(layout.n_actuations):
        lbx[layout.delta_start + i] = -max_steer
        ubx[layout.delta_start + i] = max_steer
        lbx[layout.a_start + i] = -max_accel
        ubx[layout.a_start + i] = max_accel

    # Actuations that will not take effect until after the latency
    for i in range(latency_steps):
        lbx[layout.delta_start + i] = steering
        ubx[layout.delta_start + i] = steering
        lbx[layout.a_start + i] = acceleration
        ubx[layout.a_start + i] = acceleration

    lbg = [0.0] * layout.n_constraints
    ubg = [0.0] * layout.n_constraints
    for idx, value in zip(layout.initial_state_indices(), x0):
        lbg[idx] = value
        ubg[idx] = value

    return lbx, ubx, lbg, ubg


def constraint_violation(g, lbg, ubg) -> float:
    """Largest distance of any constraint value outside its [lbg, ubg] interval."""
    g = np.asarray(g, dtype=float).ravel()
    lbg = np.asarray(lbg, dtype=float)
    ubg = np.asarray(ubg, dtype=float)
    if g.size == 0:
        return 0.0
    return float(np.max(np.maximum(lbg - g, 0.0) + np.maximum(g - ubg, 0.0)))
