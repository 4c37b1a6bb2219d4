"""
Model Predictive Controller for a ground vehicle following a cubic reference path.

Every control cycle the controller solves a nonlinear program over a short
horizon (kinematic bicycle dynamics, quadratic tracking/actuation cost,
latency-clamped actuator bounds) with IPOPT through CasADi, validates the
result and returns the first actuation that is not already in flight.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

import casadi as ca
import numpy as np

from vehicle_mpc.algorithms.classic.mpc_costs import VehicleTrackingCost, evaluate_cost_and_constraints
from vehicle_mpc.algorithms.classic.mpc_guesses import GUESS_STRATEGY_MAP, MPCGuessBase
from vehicle_mpc.algorithms.classic.mpc_layout import MPCLayout, build_layout
from vehicle_mpc.environments import dynamics
from vehicle_mpc.environments.casadi_dynamics import STATE_NAMES
from vehicle_mpc.utils.mpc_helpers import build_mpc_bounds, constraint_violation
from vehicle_mpc.utils.parameters import MPCConfig, load_mpc_config

logger = logging.getLogger(__name__)


class SolverStatus(Enum):
    SUCCESS = "success"
    NOT_CONVERGED = "not_converged"
    INFEASIBLE = "infeasible"
    TIME_EXCEEDED = "time_exceeded"


class FailureKind(Enum):
    NON_CONVERGENCE = "non_convergence"
    NUMERICAL = "numerical_instability"
    TIME_BUDGET = "time_budget_exceeded"


# IPOPT return_status strings (as reported by CasADi's solver stats)
_RETURN_STATUS_MAP = {
    "Solve_Succeeded": SolverStatus.SUCCESS,
    "Solved_To_Acceptable_Level": SolverStatus.SUCCESS,
    "Feasible_Point_Found": SolverStatus.SUCCESS,
    "Infeasible_Problem_Detected": SolverStatus.INFEASIBLE,
    "Maximum_CpuTime_Exceeded": SolverStatus.TIME_EXCEEDED,
    "Maximum_WallTime_Exceeded": SolverStatus.TIME_EXCEEDED,
}


def classify_return_status(return_status: str, success: bool = False) -> SolverStatus:
    """Map a raw solver return status onto the four statuses the controller acts on."""
    if return_status in _RETURN_STATUS_MAP:
        return _RETURN_STATUS_MAP[return_status]
    return SolverStatus.SUCCESS if success else SolverStatus.NOT_CONVERGED


@dataclass
class ControllerState:
    """Last actuation sent to the vehicle. Read when clamping the latency slots."""
    steering: float = 0.0
    acceleration: float = 0.0

    def as_tuple(self) -> Tuple[float, float]:
        return self.steering, self.acceleration


@dataclass
class NLPResult:
    """What came back from one solver call."""
    status: SolverStatus
    return_status: str
    x: Optional[np.ndarray]
    f: float
    g: Optional[np.ndarray]
    solve_time_ms: float
    error: Optional[str] = None


@dataclass
class SolveDiagnostics:
    status: SolverStatus
    return_status: str
    cost: float
    constraint_violation: float
    solve_time_ms: float
    used_fallback: bool = False
    failure: Optional[FailureKind] = None
    message: str = ""


@dataclass
class MPCSolution:
    """
    Result of one control cycle.

    Attributes:
        next_state: Predicted state one step ahead [x, y, psi, v, cte, epsi].
        actuation: Commanded [delta, a].
        predicted_x, predicted_y: Predicted path for steps 1..N-1 (empty when
            the fail-safe was used).
        diagnostics: Solver status, cost, constraint violation and timing.
    """
    next_state: np.ndarray
    actuation: np.ndarray
    predicted_x: np.ndarray = field(default_factory=lambda: np.zeros(0))
    predicted_y: np.ndarray = field(default_factory=lambda: np.zeros(0))
    diagnostics: Optional[SolveDiagnostics] = None

    @property
    def steering(self) -> float:
        return float(self.actuation[0])

    @property
    def acceleration(self) -> float:
        return float(self.actuation[1])

    def as_vector(self) -> np.ndarray:
        """The 8 output values: next x, y, psi, v, cte, epsi, commanded delta, a."""
        return np.concatenate([self.next_state, self.actuation])


def build_mpc_solver(layout: MPCLayout, config: MPCConfig,
                     cost_calculator: VehicleTrackingCost) -> ca.Function:
    """
    Build the IPOPT solver for the vehicle MPC.

    The reference polynomial coefficients are the NLP parameter `p`, so the
    solver is built once per controller and reused every cycle. The initial
    state enters through the bounds only.

    Args:
        layout: Decision vector layout.
        config: MPC configuration (weights, dt, Lf, solver limits).
        cost_calculator: Object computing the symbolic cost.

    Returns:
        CasADi NLP solver instance.
    """
    opt_vars = ca.SX.sym("opt_vars", layout.n_vars)
    coeffs = ca.SX.sym("coeffs", 4)
    cost, g = evaluate_cost_and_constraints(opt_vars, coeffs, layout, config, cost_calculator)

    # {"x": decision vector, "f": cost, "g": constraints, "p": reference polynomial}
    nlp = {"x": opt_vars, "f": cost, "g": g, "p": coeffs}

    opts = {
        "ipopt.print_level": 0,
        "ipopt.sb": "yes",  # Suppress banner
        "print_time": False,
        "error_on_fail": False,
        "ipopt.tol": config.solver_tol,
        "ipopt.max_iter": config.solver_max_iter,
        "ipopt.linear_solver": "mumps",
        # Hard real-time cap; IPOPT returns its current iterate when reached
        "ipopt.max_wall_time": config.solver_time_budget,
    }
    return ca.nlpsol("solver", "ipopt", nlp, opts)


class MPCController:
    """
    Model Predictive Controller for a vehicle tracking a cubic reference path.

    Responsibilities:
    - Validate the configuration and build the decision vector layout
    - Build the CasADi NLP once per controller
    - Per cycle: build bounds (latency clamp from the controller state), solve,
      validate the result and apply the fail-safe policy on failure
    """

    def __init__(self, config: Optional[MPCConfig] = None, preset: Optional[str] = None):
        """
        Args:
            config: Full configuration. If omitted, `preset` is loaded from the
                    packaged presets (or the default preset).
            preset: Name of a packaged preset, used only when config is None.

        Raises:
            InvalidConfigurationError: If the configuration cannot be solved.
        """
        self.config = (config if config is not None else load_mpc_config(preset)).validate()
        self.layout = build_layout(self.config.N)
        self.latency_steps = self.config.latency_steps

        self.cost_calculator = VehicleTrackingCost(self.config)
        self.guess_strategy: MPCGuessBase = GUESS_STRATEGY_MAP[self.config.guess_type]()
        self.solver = build_mpc_solver(self.layout, self.config, self.cost_calculator)

        self.controller_state = ControllerState()
        # Previous accepted solution, used by the warm-start guess
        self.prev_solution: Optional[np.ndarray] = None
        self._lock = threading.Lock()

        logger.info("MPC initialised: N=%d, dt=%.3f, latency_steps=%d, n_vars=%d, n_constraints=%d",
                    self.layout.N, self.config.dt, self.latency_steps,
                    self.layout.n_vars, self.layout.n_constraints)

    @property
    def N(self) -> int:
        return self.layout.N

    @property
    def dt(self) -> float:
        return self.config.dt

    def reset(self) -> None:
        """Forget the last command and the warm-start memory."""
        with self._lock:
            self.controller_state = ControllerState()
            self.prev_solution = None

    def solve(self, state: Sequence[float], coeffs: Sequence[float]) -> MPCSolution:
        """
        Solve the MPC problem for the current state and reference polynomial.

        Args:
            state: Current state [x, y, psi, v, cte, epsi] in the vehicle frame.
            coeffs: Reference cubic coefficients, lowest order first.

        Returns:
            MPCSolution with the next state, commanded actuation, predicted path
            and diagnostics. Solver failures never raise; they are reported in
            the diagnostics and replaced by the fail-safe command.
        """
        x0 = _as_finite_vector(state, len(STATE_NAMES), "state")
        coeffs = _as_finite_vector(coeffs, 4, "coeffs")

        with self._lock:
            initial = self.guess_strategy.get_guess(x0, self.layout, self)
            lbx, ubx, lbg, ubg = build_mpc_bounds(
                self.layout, x0, self.controller_state.as_tuple(), self.latency_steps,
                self.config.max_steer, self.config.max_accel, self.config.state_bound)

            result = self._run_solver(initial, lbx, ubx, lbg, ubg, coeffs)
            failure, violation, message = self._check_result(result, lbg, ubg)

            if failure is None:
                return self._accept(result, violation, message)
            return self._fail_safe(x0, coeffs, result, failure, violation, message)

    def step(self, state: Sequence[float], coeffs: Sequence[float]) -> Tuple[float, float]:
        """
        Return the commanded (steering, acceleration) for this cycle.

        Args:
            state: Current state [x, y, psi, v, cte, epsi].
            coeffs: Reference cubic coefficients.

        Returns:
            Tuple[float, float]: Steering angle (rad) and normalised acceleration.
        """
        solution = self.solve(state, coeffs)
        return solution.steering, solution.acceleration

    def _run_solver(self, initial, lbx, ubx, lbg, ubg, coeffs) -> NLPResult:
        """Call the NLP solver and collect its status, solution and timing."""
        start = time.perf_counter()
        try:
            solution = self.solver(x0=initial, lbx=lbx, ubx=ubx, lbg=lbg, ubg=ubg, p=coeffs)
        except RuntimeError as e:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            logger.error("Exception during solver call: %s", e)
            return NLPResult(SolverStatus.NOT_CONVERGED, "exception", None, np.inf, None,
                             elapsed_ms, error=str(e))
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        stats = self.solver.stats()
        return_status = stats.get("return_status", "unknown")
        status = classify_return_status(return_status, bool(stats.get("success", False)))
        return NLPResult(
            status=status,
            return_status=return_status,
            x=np.asarray(solution["x"].full(), dtype=float).ravel(),
            f=float(solution["f"]),
            g=np.asarray(solution["g"].full(), dtype=float).ravel(),
            solve_time_ms=elapsed_ms,
        )

    def _check_result(self, result: NLPResult, lbg, ubg) -> Tuple[Optional[FailureKind], float, str]:
        """
        Decide whether a solver result may be commanded to the vehicle.

        Returns:
            (failure kind or None if acceptable, constraint violation, message)
        """
        if result.x is None or result.g is None:
            return FailureKind.NUMERICAL, np.inf, f"solver raised: {result.error}"
        if not (np.all(np.isfinite(result.x)) and np.all(np.isfinite(result.g)) and np.isfinite(result.f)):
            return FailureKind.NUMERICAL, np.inf, "solution contains non-finite values"

        violation = constraint_violation(result.g, lbg, ubg)
        if result.status is SolverStatus.SUCCESS:
            return None, violation, ""
        if result.status is SolverStatus.TIME_EXCEEDED:
            if self.config.accept_time_exceeded and violation <= self.config.best_effort_tolerance:
                return None, violation, "time budget exceeded, best-effort solution accepted"
            return (FailureKind.TIME_BUDGET, violation,
                    f"time budget exceeded with constraint violation {violation:.2e}")
        return FailureKind.NON_CONVERGENCE, violation, f"solver status {result.return_status}"

    def _accept(self, result: NLPResult, violation: float, message: str) -> MPCSolution:
        layout, x = self.layout, result.x
        k = self.latency_steps

        # First actuation after the latency; earlier slots are already in flight
        steering = float(np.clip(x[layout.delta_start + k], -self.config.max_steer, self.config.max_steer))
        acceleration = float(np.clip(x[layout.a_start + k], -self.config.max_accel, self.config.max_accel))
        self.controller_state = ControllerState(steering, acceleration)
        self.prev_solution = x.copy()

        next_state = np.array([x[layout.state_start(name) + 1] for name in STATE_NAMES])
        diagnostics = SolveDiagnostics(
            status=result.status,
            return_status=result.return_status,
            cost=result.f,
            constraint_violation=violation,
            solve_time_ms=result.solve_time_ms,
            message=message,
        )
        if message:
            logger.warning("MPC: %s", message)
        logger.debug("MPC Solve: Cost=%.2f, ConstrViol=%.2e, status=%s, delta=%.4f, a=%.4f, %.1f ms",
                     result.f, violation, result.return_status, steering, acceleration,
                     result.solve_time_ms)

        return MPCSolution(
            next_state=next_state,
            actuation=np.array([steering, acceleration]),
            predicted_x=x[layout.x_start + 1: layout.x_start + layout.N].copy(),
            predicted_y=x[layout.y_start + 1: layout.y_start + layout.N].copy(),
            diagnostics=diagnostics,
        )

    def _fail_safe(self, x0: np.ndarray, coeffs: np.ndarray, result: NLPResult,
                   failure: FailureKind, violation: float, message: str) -> MPCSolution:
        last = self.controller_state
        if self.config.failure_policy == "decelerate":
            command = (last.steering, self.config.safe_deceleration)
        else:
            command = last.as_tuple()

        # Step 0 applies the command already in flight when there is latency
        applied = last.as_tuple() if self.latency_steps > 0 else command
        next_state = dynamics.bicycle_dynamics(x0, applied, coeffs, self.config.dt, self.config.Lf)

        self.controller_state = ControllerState(*command)
        # A rejected solution must not seed the next warm start
        self.prev_solution = None

        logger.warning("MPC solve rejected (%s: %s); applying '%s' fail-safe delta=%.4f, a=%.4f",
                       failure.value, message, self.config.failure_policy, command[0], command[1])

        diagnostics = SolveDiagnostics(
            status=result.status,
            return_status=result.return_status,
            cost=result.f if np.isfinite(result.f) else np.inf,
            constraint_violation=violation,
            solve_time_ms=result.solve_time_ms,
            used_fallback=True,
            failure=failure,
            message=message,
        )
        return MPCSolution(next_state=next_state, actuation=np.array(command, dtype=float),
                           diagnostics=diagnostics)


def _as_finite_vector(values, size: int, name: str) -> np.ndarray:
    vector = np.asarray(values, dtype=float).ravel()
    if vector.shape != (size,):
        raise ValueError(f"{name} must have {size} entries, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise ValueError(f"{name} contains non-finite values: {vector}")
    return vector
