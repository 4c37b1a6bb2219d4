# src/vehicle_mpc/algorithms/classic/mpc_layout.py
"""
Offsets of every variable block inside the flat NLP decision vector.

The solver sees all states and actuations as one vector:
    [x_0..x_{N-1}, y_.., psi_.., v_.., cte_.., epsi_.., delta_0..delta_{N-2}, a_..]
The constraint vector uses the same state block offsets, one entry per state
component and step.
"""

from dataclasses import dataclass

from vehicle_mpc.environments.casadi_dynamics import STATE_NAMES, ACTUATION_NAMES
from vehicle_mpc.utils.parameters import InvalidConfigurationError


@dataclass(frozen=True)
class MPCLayout:
    N: int
    x_start: int
    y_start: int
    psi_start: int
    v_start: int
    cte_start: int
    epsi_start: int
    delta_start: int
    a_start: int
    n_vars: int
    n_constraints: int

    @property
    def n_actuations(self) -> int:
        return self.N - 1

    def state_start(self, name: str) -> int:
        if name not in STATE_NAMES:
            raise KeyError(f"Unknown state component '{name}', expected one of {STATE_NAMES}")
        return getattr(self, f"{name}_start")

    def state_index(self, name: str, step: int) -> int:
        """Index of state component `name` at `step` (0..N-1)."""
        if not 0 <= step < self.N:
            raise IndexError(f"State step {step} outside horizon 0..{self.N - 1}")
        return self.state_start(name) + step

    def actuation_index(self, name: str, step: int) -> int:
        """Index of actuation `name` at `step` (0..N-2)."""
        if name not in ACTUATION_NAMES:
            raise KeyError(f"Unknown actuation '{name}', expected one of {ACTUATION_NAMES}")
        if not 0 <= step < self.n_actuations:
            raise IndexError(f"Actuation step {step} outside 0..{self.n_actuations - 1}")
        return getattr(self, f"{name}_start") + step

    def state_block(self, name: str) -> slice:
        start = self.state_start(name)
        return slice(start, start + self.N)

    def actuation_block(self, name: str) -> slice:
        start = getattr(self, f"{name}_start")
        return slice(start, start + self.n_actuations)

    def initial_state_indices(self) -> list:
        """Indices of the step-0 entry of every state block, in state order."""
        return [self.state_start(name) for name in STATE_NAMES]


def build_layout(N: int) -> MPCLayout:
    """
    Compute the decision/constraint vector layout for a horizon of N states.

    N states are connected by N-1 actuations, so the decision vector holds
    6*N + 2*(N-1) values and the constraint vector 6*N.
    """
    if int(N) != N or N < 2:
        raise InvalidConfigurationError(f"Horizon N must be an integer >= 2, got {N}")
    N = int(N)

    starts = {}
    offset = 0
    for name in STATE_NAMES:
        starts[f"{name}_start"] = offset
        offset += N
    for name in ACTUATION_NAMES:
        starts[f"{name}_start"] = offset
        offset += N - 1

    return MPCLayout(
        N=N,
        n_vars=offset,
        n_constraints=len(STATE_NAMES) * N,
        **starts,
    )
