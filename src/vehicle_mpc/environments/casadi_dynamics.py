# casadi_dynamics.py
import casadi as ca
from typing import Sequence

from vehicle_mpc.utils.polynomial import poly3, poly3_derivative

STATE_NAMES = ("x", "y", "psi", "v", "cte", "epsi")
ACTUATION_NAMES = ("delta", "a")


def kinematic_step(x, y, psi, v, cte, epsi, delta, a, coeffs, dt: float, Lf: float):
    """
    One Euler step of the kinematic bicycle model with tracking errors.

    Works on scalars of any CasADi type (SX for the solver graph, DM for
    numeric evaluation). Returns the six next-state expressions in state order.
    """
    # Reference path height and heading at the current x
    f0 = poly3(coeffs, x)
    psides0 = ca.atan(poly3_derivative(coeffs, x))
    yaw_step = v / Lf * delta * dt

    next_x = x + v * ca.cos(psi) * dt
    next_y = y + v * ca.sin(psi) * dt
    next_psi = psi + yaw_step
    next_v = v + a * dt
    next_cte = (f0 - y) + v * ca.sin(epsi) * dt
    next_epsi = (psi - psides0) + yaw_step
    return next_x, next_y, next_psi, next_v, next_cte, next_epsi


def bicycle_dynamics(state, actuation, coeffs, dt: float, Lf: float) -> ca.SX:
    """
    Computes the next state of the vehicle over one timestep.

    State: [x, y, psi, v, cte, epsi]. Actuation: [delta, a].

    Args:
        state: State vector (CasADi SX/MX/DM or a length-6 sequence).
        actuation: Actuation vector (length 2).
        coeffs: Reference cubic coefficients, lowest order first (length 4).
        dt: Timestep (s).
        Lf: Front axle to centre of gravity distance (m).

    Returns:
        Next state stacked as a 6x1 CasADi column.
    """
    x, y, psi, v, cte, epsi = (state[i] for i in range(len(STATE_NAMES)))
    delta, a = actuation[0], actuation[1]
    return ca.vertcat(*kinematic_step(x, y, psi, v, cte, epsi, delta, a, coeffs, dt, Lf))


def build_dynamics_function(dt: float, Lf: float) -> ca.Function:
    """
    Wrap the bicycle model in a CasADi Function f(state, actuation, coeffs) -> next_state,
    convenient for numeric rollouts and for checking the model against other implementations.
    """
    state = ca.SX.sym("state", len(STATE_NAMES))
    actuation = ca.SX.sym("actuation", len(ACTUATION_NAMES))
    coeffs = ca.SX.sym("coeffs", 4)
    return ca.Function(
        "bicycle_dynamics",
        [state, actuation, coeffs],
        [bicycle_dynamics(state, actuation, coeffs, dt, Lf)],
        ["state", "actuation", "coeffs"],
        ["next_state"],
    )


def rollout(dynamics: ca.Function, x0: Sequence[float], actuations, coeffs) -> ca.DM:
    """Propagate x0 through a sequence of actuations, returning a 6 x (len+1) DM."""
    states = [ca.DM(x0)]
    for u in actuations:
        states.append(dynamics(states[-1], ca.DM(u), ca.DM(coeffs)))
    return ca.horzcat(*states)
