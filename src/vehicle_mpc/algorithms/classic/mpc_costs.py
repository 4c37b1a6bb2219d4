# src/vehicle_mpc/algorithms/classic/mpc_costs.py
"""
Cost and constraint evaluation for the vehicle MPC.

Everything here indexes the flat decision vector through an MPCLayout and only
uses CasADi operations, so the same code builds the symbolic NLP (SX) and
evaluates a candidate solution numerically (DM / NumPy).
"""

import casadi as ca
import numpy as np

from vehicle_mpc.algorithms.classic.mpc_layout import MPCLayout
from vehicle_mpc.environments.casadi_dynamics import STATE_NAMES, kinematic_step
from vehicle_mpc.utils.parameters import MPCConfig


class VehicleTrackingCost:
    """
    Quadratic MPC cost made of three independently weighted groups:

    - tracking: cte, epsi and speed error at every one of the N states
    - actuation: delta^2 and a^2 at every one of the N-1 actuations
    - actuation rate: change between consecutive actuations (N-2 terms)

    A larger rate weight trades agility for smoothness.
    """

    def __init__(self, config: MPCConfig):
        self.config = config

    def tracking_cost(self, opt_vars, layout: MPCLayout):
        c = self.config
        cost = 0
        for i in range(layout.N):
            cost += c.weight_cte * (opt_vars[layout.cte_start + i] - c.ref_cte) ** 2
            cost += c.weight_epsi * (opt_vars[layout.epsi_start + i] - c.ref_epsi) ** 2
            cost += c.weight_v * (opt_vars[layout.v_start + i] - c.ref_v) ** 2
        return cost

    def actuation_cost(self, opt_vars, layout: MPCLayout):
        c = self.config
        cost = 0
        for i in range(layout.n_actuations):
            cost += c.weight_delta * opt_vars[layout.delta_start + i] ** 2
            cost += c.weight_accel * opt_vars[layout.a_start + i] ** 2
        return cost

    def actuation_rate_cost(self, opt_vars, layout: MPCLayout):
        c = self.config
        cost = 0
        for i in range(layout.n_actuations - 1):
            cost += c.weight_delta_rate * (opt_vars[layout.delta_start + i + 1] - opt_vars[layout.delta_start + i]) ** 2
            cost += c.weight_accel_rate * (opt_vars[layout.a_start + i + 1] - opt_vars[layout.a_start + i]) ** 2
        return cost

    def total_cost(self, opt_vars, layout: MPCLayout):
        return (self.tracking_cost(opt_vars, layout)
                + self.actuation_cost(opt_vars, layout)
                + self.actuation_rate_cost(opt_vars, layout))


def evaluate_constraints(opt_vars, coeffs, layout: MPCLayout, config: MPCConfig):
    """
    Constraint residual vector g(opt_vars), length 6*N.

    The step-0 entry of each state block is the raw state value (pinned to the
    measured state through the constraint bounds). Entry `start + i + 1` is the
    difference between the state variable at step i+1 and the bicycle model
    applied to step i, which the bounds force to zero.
    """
    opt_vars, coeffs = _as_casadi(opt_vars), _as_casadi(coeffs)
    g = [None] * layout.n_constraints
    for name in STATE_NAMES:
        start = layout.state_start(name)
        g[start] = opt_vars[start]

    for i in range(layout.n_actuations):
        current = [opt_vars[layout.state_start(name) + i] for name in STATE_NAMES]
        delta0 = opt_vars[layout.delta_start + i]
        a0 = opt_vars[layout.a_start + i]
        predicted = kinematic_step(*current, delta0, a0, coeffs, config.dt, config.Lf)
        for name, expected in zip(STATE_NAMES, predicted):
            idx = layout.state_start(name) + i + 1
            g[idx] = opt_vars[idx] - expected

    return ca.vertcat(*g)


def evaluate_cost_and_constraints(opt_vars, coeffs, layout: MPCLayout, config: MPCConfig,
                                  cost_calculator: VehicleTrackingCost = None):
    """
    Evaluate (cost, g) for a decision vector and reference polynomial.

    Args:
        opt_vars: Decision vector of length layout.n_vars (SX for the solver graph,
                  DM or array-like for numeric evaluation).
        coeffs: Reference cubic coefficients, lowest order first.
        layout: Decision vector layout.
        config: Cost weights, reference speed, dt and Lf.
        cost_calculator: Optional pre-built cost object.

    Returns:
        Tuple of the scalar cost and the 6*N constraint residual column.
    """
    opt_vars, coeffs = _as_casadi(opt_vars), _as_casadi(coeffs)
    cost_calculator = cost_calculator or VehicleTrackingCost(config)
    cost = cost_calculator.total_cost(opt_vars, layout)
    g = evaluate_constraints(opt_vars, coeffs, layout, config)
    return cost, g


def build_fg_function(layout: MPCLayout, config: MPCConfig) -> ca.Function:
    """
    Compile the evaluator into a CasADi Function fg(opt_vars, coeffs) -> (cost, g).

    The resulting function is differentiable by CasADi and can also be called
    with plain arrays for numeric checks.
    """
    opt_vars = ca.SX.sym("opt_vars", layout.n_vars)
    coeffs = ca.SX.sym("coeffs", 4)
    cost, g = evaluate_cost_and_constraints(opt_vars, coeffs, layout, config)
    return ca.Function("fg", [opt_vars, coeffs], [cost, g], ["opt_vars", "coeffs"], ["cost", "g"])


def _as_casadi(values):
    """Plain sequences and arrays become DM columns; CasADi types pass through."""
    if isinstance(values, (list, tuple, np.ndarray)):
        return ca.DM(np.asarray(values, dtype=float).ravel())
    return values
