import numpy as np

from vehicle_mpc.utils.polynomial import poly3, poly3_derivative


def bicycle_dynamics(state, actuation, coeffs, dt, Lf):
    """
    Discrete-time kinematic bicycle model, NumPy version of
    casadi_dynamics.bicycle_dynamics (same equations, same state order).

    Args:
        state (array-like): [x, y, psi, v, cte, epsi].
        actuation (array-like): [delta, a] (steering angle in rad, normalised acceleration).
        coeffs (array-like): Reference cubic coefficients, lowest order first.
        dt (float): Timestep (s).
        Lf (float): Front axle to centre of gravity distance (m).

    Returns:
        np.ndarray: Next state [x, y, psi, v, cte, epsi].
    """
    x, y, psi, v, cte, epsi = np.asarray(state, dtype=float)
    delta, a = np.asarray(actuation, dtype=float)
    coeffs = np.asarray(coeffs, dtype=float)

    f0 = poly3(coeffs, x)
    psides0 = np.arctan(poly3_derivative(coeffs, x))
    yaw_step = v / Lf * delta * dt

    return np.array([
        x + v * np.cos(psi) * dt,
        y + v * np.sin(psi) * dt,
        psi + yaw_step,
        v + a * dt,
        (f0 - y) + v * np.sin(epsi) * dt,
        (psi - psides0) + yaw_step,
    ])


def simulate_vehicle(px, py, psi, v, delta, a, dt, Lf):
    """
    Advance a vehicle pose in the map frame with the same kinematic model,
    without the path-relative error terms. Used by closed-loop simulations.

    Returns:
        tuple: (px, py, psi, v) after dt seconds.
    """
    return (
        px + v * np.cos(psi) * dt,
        py + v * np.sin(psi) * dt,
        psi + v / Lf * delta * dt,
        v + a * dt,
    )
