import pytest

from vehicle_mpc.algorithms.classic.mpc_layout import build_layout
from vehicle_mpc.utils.parameters import InvalidConfigurationError


def test_offsets_for_horizon_of_ten():
    layout = build_layout(10)
    assert (layout.x_start, layout.y_start, layout.psi_start) == (0, 10, 20)
    assert (layout.v_start, layout.cte_start, layout.epsi_start) == (30, 40, 50)
    assert layout.delta_start == 60
    assert layout.a_start == 69
    assert layout.n_vars == 78
    assert layout.n_constraints == 60


@pytest.mark.parametrize("N", [2, 3, 7, 10, 25])
def test_vector_sizes_scale_with_horizon(N):
    layout = build_layout(N)
    assert layout.n_vars == 6 * N + 2 * (N - 1)
    assert layout.n_constraints == 6 * N
    assert layout.n_actuations == N - 1
    # Last actuation block ends exactly at the end of the vector
    assert layout.a_start + layout.n_actuations == layout.n_vars


@pytest.mark.parametrize("N", [1, 0, -3, 2.5])
def test_invalid_horizon_raises(N):
    with pytest.raises(InvalidConfigurationError):
        build_layout(N)


def test_layouts_are_independent_values():
    short = build_layout(5)
    build_layout(20)
    assert short == build_layout(5)
    assert short.y_start == 5


def test_index_helpers():
    layout = build_layout(4)
    assert layout.state_index("v", 2) == layout.v_start + 2
    assert layout.actuation_index("a", 1) == layout.a_start + 1
    assert layout.initial_state_indices() == [0, 4, 8, 12, 16, 20]
    assert layout.state_block("cte") == slice(16, 20)
    assert layout.actuation_block("delta") == slice(24, 27)


def test_index_helpers_reject_out_of_range():
    layout = build_layout(4)
    with pytest.raises(IndexError):
        layout.state_index("x", 4)
    with pytest.raises(IndexError):
        layout.actuation_index("delta", 3)
    with pytest.raises(KeyError):
        layout.state_index("speed", 0)
    with pytest.raises(KeyError):
        layout.actuation_index("throttle", 0)
