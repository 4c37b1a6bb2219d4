"""
polynomial.py

Helpers for the cubic reference path y = f(x), coefficients ordered from the
constant term upwards: f(x) = c0 + c1*x + c2*x^2 + c3*x^3.

poly3 and poly3_derivative only use arithmetic, so they accept floats, NumPy
arrays and CasADi SX/MX/DM alike.
"""

import numpy as np

POLY_ORDER = 3


def poly3(coeffs, x):
    """Evaluate the reference cubic at x."""
    return coeffs[0] + coeffs[1] * x + coeffs[2] * x ** 2 + coeffs[3] * x ** 3


def poly3_derivative(coeffs, x):
    """Evaluate f'(x), the slope of the reference cubic."""
    return coeffs[1] + 2 * coeffs[2] * x + 3 * coeffs[3] * x ** 2


def polyfit(xs, ys, order: int = POLY_ORDER) -> np.ndarray:
    """
    Least-squares fit of waypoints, returned lowest order first and padded to
    four coefficients so it can be passed straight to the controller.
    """
    xs = np.asarray(xs, dtype=float)
    ys = np.asarray(ys, dtype=float)
    if xs.shape != ys.shape or xs.ndim != 1:
        raise ValueError(f"Waypoint arrays must be 1D and equal length, got {xs.shape} and {ys.shape}")
    if not 0 <= order <= POLY_ORDER:
        raise ValueError(f"Fit order must be between 0 and {POLY_ORDER}, got {order}")
    if len(xs) <= order:
        raise ValueError(f"Need more than {order} waypoints for an order {order} fit, got {len(xs)}")
    coeffs = np.polyfit(xs, ys, order)[::-1]
    padded = np.zeros(POLY_ORDER + 1)
    padded[:len(coeffs)] = coeffs
    return padded


def to_vehicle_frame(px: float, py: float, psi: float, ptsx, ptsy):
    """
    Transform map-frame waypoints into the frame anchored at the vehicle
    (origin at (px, py), x axis along heading psi).
    """
    dx = np.asarray(ptsx, dtype=float) - px
    dy = np.asarray(ptsy, dtype=float) - py
    cos_psi, sin_psi = np.cos(-psi), np.sin(-psi)
    return dx * cos_psi - dy * sin_psi, dx * sin_psi + dy * cos_psi
