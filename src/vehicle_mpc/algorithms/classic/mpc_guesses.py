# src/vehicle_mpc/algorithms/classic/mpc_guesses.py
import numpy as np

from vehicle_mpc.environments.casadi_dynamics import STATE_NAMES, ACTUATION_NAMES


class MPCGuessBase:
    """Base class for MPC initial guess strategies."""
    def get_guess(self, x0: np.ndarray, layout, controller: 'MPCController') -> np.ndarray:
        """
        Generate the initial decision vector for the solver.

        Args:
            x0 (np.ndarray): Measured state [x, y, psi, v, cte, epsi].
            layout (MPCLayout): Decision vector layout.
            controller (MPCController): Reference to the controller instance
                                        (needed for warm starts).

        Returns:
            np.ndarray: Flat decision vector of length layout.n_vars.
        """
        raise NotImplementedError


class BasicGuess(MPCGuessBase):
    """Zero guess except the step-0 state block, which holds the measured state."""
    def get_guess(self, x0: np.ndarray, layout, controller: 'MPCController') -> np.ndarray:
        guess = np.zeros(layout.n_vars)
        guess[layout.initial_state_indices()] = x0
        return guess


class WarmStartGuess(MPCGuessBase):
    """Warm start: shift the previous solution by one step if available, otherwise basic."""
    def get_guess(self, x0: np.ndarray, layout, controller: 'MPCController') -> np.ndarray:
        prev = controller.prev_solution
        if prev is None or len(prev) != layout.n_vars:
            return BasicGuess().get_guess(x0, layout, controller)

        guess = np.empty(layout.n_vars)
        for name in STATE_NAMES:
            block = layout.state_block(name)
            guess[block] = _shift(prev[block])
        for name in ACTUATION_NAMES:
            block = layout.actuation_block(name)
            guess[block] = _shift(prev[block])

        # Override first state with current state
        guess[layout.initial_state_indices()] = x0
        return guess


def _shift(values: np.ndarray) -> np.ndarray:
    shifted = np.empty_like(values)
    shifted[:-1] = values[1:]
    shifted[-1] = values[-1]
    return shifted


# Dictionary to map guess type strings to classes
GUESS_STRATEGY_MAP = {
    'basic': BasicGuess,
    'warmstart': WarmStartGuess,
}
