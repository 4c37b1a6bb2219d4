import numpy as np
import pytest

from vehicle_mpc.algorithms.classic.mpc_costs import (
    VehicleTrackingCost,
    build_fg_function,
    evaluate_constraints,
    evaluate_cost_and_constraints,
)
from vehicle_mpc.algorithms.classic.mpc_layout import build_layout
from vehicle_mpc.environments import dynamics
from vehicle_mpc.environments.casadi_dynamics import STATE_NAMES, ACTUATION_NAMES
from vehicle_mpc.utils.parameters import MPCConfig

COEFFS = np.array([0.3, 0.05, -0.002, 0.0001])


@pytest.fixture
def config():
    return MPCConfig(N=6, dt=0.1, latency_seconds=0.0, Lf=2.67, ref_v=10.0,
                     weight_cte=2.0, weight_epsi=3.0, weight_v=0.5,
                     weight_delta=7.0, weight_accel=11.0,
                     weight_delta_rate=13.0, weight_accel_rate=17.0)


@pytest.fixture
def layout(config):
    return build_layout(config.N)


def pack(layout, states, actuations):
    """Stack per-step states (N x 6) and actuations (N-1 x 2) into a decision vector."""
    opt_vars = np.zeros(layout.n_vars)
    for c, name in enumerate(STATE_NAMES):
        opt_vars[layout.state_block(name)] = states[:, c]
    for c, name in enumerate(ACTUATION_NAMES):
        opt_vars[layout.actuation_block(name)] = actuations[:, c]
    return opt_vars


def simulate(config, x0, actuations, coeffs=COEFFS):
    states = [np.asarray(x0, dtype=float)]
    for u in actuations:
        states.append(dynamics.bicycle_dynamics(states[-1], u, coeffs, config.dt, config.Lf))
    return np.array(states)


def residuals(config, layout, opt_vars, coeffs=COEFFS):
    return np.array(evaluate_constraints(opt_vars, coeffs, layout, config)).flatten()


def test_constraint_vector_size(config, layout):
    g = residuals(config, layout, np.zeros(layout.n_vars))
    assert g.shape == (layout.n_constraints,)


def test_consistent_trajectory_has_zero_dynamics_residuals(config, layout):
    x0 = [0.0, 0.1, 0.02, 9.0, 0.2, -0.05]
    actuations = np.array([[0.05, 0.5], [0.02, 0.3], [-0.01, 0.0], [0.0, -0.2], [0.03, 0.1]])
    opt_vars = pack(layout, simulate(config, x0, actuations), actuations)

    g = residuals(config, layout, opt_vars)
    initial = layout.initial_state_indices()
    np.testing.assert_allclose(g[initial], x0)
    dynamics_rows = np.delete(g, initial)
    np.testing.assert_allclose(dynamics_rows, 0.0, atol=1e-12)


def test_residual_equals_state_minus_model_prediction(config, layout):
    rng = np.random.default_rng(42)
    opt_vars = rng.uniform(-1.0, 1.0, size=layout.n_vars)
    opt_vars[layout.state_block("v")] += 10.0
    g = residuals(config, layout, opt_vars)

    for i in range(layout.N - 1):
        state_i = [opt_vars[layout.state_index(name, i)] for name in STATE_NAMES]
        state_next = np.array([opt_vars[layout.state_index(name, i + 1)] for name in STATE_NAMES])
        actuation_i = [opt_vars[layout.actuation_index(name, i)] for name in ACTUATION_NAMES]
        expected = state_next - dynamics.bicycle_dynamics(state_i, actuation_i, COEFFS, config.dt, config.Lf)
        got = np.array([g[layout.state_index(name, i + 1)] for name in STATE_NAMES])
        np.testing.assert_allclose(got, expected, atol=1e-10)


def test_perturbing_a_state_shows_up_in_its_residual(config, layout):
    x0 = [0.0, 0.0, 0.0, 10.0, 0.0, 0.0]
    actuations = np.zeros((layout.N - 1, 2))
    opt_vars = pack(layout, simulate(config, x0, actuations), actuations)
    opt_vars[layout.state_index("v", 3)] += 0.5

    g = residuals(config, layout, opt_vars)
    assert g[layout.state_index("v", 3)] == pytest.approx(0.5)
    assert g[layout.state_index("x", 3)] == pytest.approx(0.0, abs=1e-12)


def test_cost_groups(config, layout):
    N = layout.N
    states = np.zeros((N, 6))
    states[:, 3] = config.ref_v  # no speed error
    states[:, 4] = 0.5           # constant cte
    states[:, 5] = -0.1          # constant epsi
    actuations = np.zeros((N - 1, 2))
    actuations[:, 0] = 0.1
    actuations[2, 1] = 1.0
    opt_vars = pack(layout, states, actuations)

    cost = VehicleTrackingCost(config)
    tracking = float(cost.tracking_cost(opt_vars, layout))
    actuation = float(cost.actuation_cost(opt_vars, layout))
    rate = float(cost.actuation_rate_cost(opt_vars, layout))

    assert tracking == pytest.approx(N * (config.weight_cte * 0.25 + config.weight_epsi * 0.01))
    assert actuation == pytest.approx((N - 1) * config.weight_delta * 0.01 + config.weight_accel * 1.0)
    # a goes 0 -> 1 -> 0: two unit jumps, steering is constant
    assert rate == pytest.approx(2 * config.weight_accel_rate)
    assert float(cost.total_cost(opt_vars, layout)) == pytest.approx(tracking + actuation + rate)


def test_speed_error_is_penalised_at_every_step(config, layout):
    opt_vars = np.zeros(layout.n_vars)
    cost = VehicleTrackingCost(config)
    assert float(cost.tracking_cost(opt_vars, layout)) == pytest.approx(
        layout.N * config.weight_v * config.ref_v ** 2)


def test_rate_cost_is_zero_for_horizon_of_two():
    config = MPCConfig(N=2, latency_seconds=0.0)
    layout = build_layout(2)
    opt_vars = np.ones(layout.n_vars)
    assert float(VehicleTrackingCost(config).actuation_rate_cost(opt_vars, layout)) == 0.0


def test_fg_function_matches_direct_evaluation(config, layout):
    rng = np.random.default_rng(1)
    opt_vars = rng.normal(size=layout.n_vars)
    fg = build_fg_function(layout, config)
    cost_fn, g_fn = fg(opt_vars, COEFFS)
    cost, g = evaluate_cost_and_constraints(opt_vars, COEFFS, layout, config)
    assert float(cost_fn) == pytest.approx(float(cost))
    np.testing.assert_allclose(np.array(g_fn).flatten(), np.array(g).flatten(), atol=1e-12)
