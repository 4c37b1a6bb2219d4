"""
parameters.py

Runtime configuration for the vehicle MPC. Parameter profiles live in a JSON
file (``config/mpc_presets.json``) and are loaded into an ``MPCConfig``, so
tuning never requires touching the controller code.
"""

import json
import logging
import math
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PRESETS_PATH = Path(__file__).resolve().parent.parent / "config" / "mpc_presets.json"

FAILURE_POLICIES = ("hold", "decelerate")
GUESS_TYPES = ("basic", "warmstart")


class InvalidConfigurationError(ValueError):
    """Raised when an MPC configuration can never produce a meaningful solve."""


@dataclass(frozen=True)
class MPCConfig:
    """
    All tunable MPC options.

    Attributes:
        N: Horizon length (number of predicted states, >= 2).
        dt: Timestep between predicted states (s).
        latency_seconds: Actuation pipeline delay to compensate (s).
        Lf: Distance from the front axle to the centre of gravity (m).
        ref_v: Target cruise speed.
        ref_cte, ref_epsi: Reference cross-track / heading errors.
        weight_*: Cost weights; tracking, actuation magnitude and actuation rate.
        max_steer: Steering limit (rad), symmetric.
        max_accel: Normalised throttle/brake limit, symmetric.
        solver_time_budget: Hard wall-clock cap per solve (s).
        state_bound: Magnitude used as "unbounded" for state variables.
        failure_policy: 'hold' repeats the last command, 'decelerate' keeps the
            last steering and applies safe_deceleration.
        safe_deceleration: Acceleration command used by the 'decelerate' policy.
        accept_time_exceeded: Whether a solve that ran out of time may still be
            used if its constraint violation is below best_effort_tolerance.
        best_effort_tolerance: Max constraint violation for best-effort results.
        guess_type: Initial guess strategy ('basic' or 'warmstart').
        solver_max_iter, solver_tol: IPOPT iteration limit and tolerance.
    """

    N: int = 12
    dt: float = 0.05
    latency_seconds: float = 0.1
    Lf: float = 2.67
    ref_v: float = 85.0
    ref_cte: float = 0.0
    ref_epsi: float = 0.0
    weight_cte: float = 1.0
    weight_epsi: float = 1.0
    weight_v: float = 1.0
    weight_delta: float = 200.0
    weight_accel: float = 1.0
    weight_delta_rate: float = 700.0
    weight_accel_rate: float = 1.0
    max_steer: float = 0.436332  # 25 degrees
    max_accel: float = 1.0
    solver_time_budget: float = 0.05
    state_bound: float = 1.0e19
    failure_policy: str = "hold"
    safe_deceleration: float = -0.5
    accept_time_exceeded: bool = True
    best_effort_tolerance: float = 1.0e-3
    guess_type: str = "basic"
    solver_max_iter: int = 200
    solver_tol: float = 1.0e-6

    @property
    def latency_steps(self) -> int:
        """Number of actuation slots already committed because of latency."""
        return latency_to_steps(self.latency_seconds, self.dt)

    def validate(self) -> "MPCConfig":
        """Check the configuration, raising InvalidConfigurationError on the first problem."""
        if int(self.N) != self.N or self.N < 2:
            raise InvalidConfigurationError(f"Horizon N must be an integer >= 2, got {self.N}")
        if not self.dt > 0:
            raise InvalidConfigurationError(f"Timestep dt must be > 0, got {self.dt}")
        if self.latency_seconds < 0:
            raise InvalidConfigurationError(
                f"latency_seconds must be >= 0, got {self.latency_seconds}")
        if self.latency_steps >= self.N - 1:
            raise InvalidConfigurationError(
                f"Latency of {self.latency_seconds}s clamps {self.latency_steps} actuation steps, "
                f"which leaves no free actuation for N={self.N} (need latency steps < {self.N - 1})")
        for name in ("Lf", "max_steer", "max_accel", "solver_time_budget", "state_bound"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise InvalidConfigurationError(f"{name} must be finite and > 0, got {value}")
        for f in fields(self):
            if f.name.startswith("weight_") and getattr(self, f.name) < 0:
                raise InvalidConfigurationError(f"{f.name} must be >= 0, got {getattr(self, f.name)}")
        if self.failure_policy not in FAILURE_POLICIES:
            raise InvalidConfigurationError(
                f"Unknown failure_policy: '{self.failure_policy}'. Available: {list(FAILURE_POLICIES)}")
        if abs(self.safe_deceleration) > self.max_accel:
            raise InvalidConfigurationError(
                f"safe_deceleration {self.safe_deceleration} is outside [-max_accel, max_accel]")
        if self.guess_type not in GUESS_TYPES:
            raise InvalidConfigurationError(
                f"Unknown guess_type: '{self.guess_type}'. Available: {list(GUESS_TYPES)}")
        if self.solver_max_iter < 1 or not self.solver_tol > 0:
            raise InvalidConfigurationError("solver_max_iter must be >= 1 and solver_tol > 0")
        return self

    def with_overrides(self, **overrides: Any) -> "MPCConfig":
        """Return a validated copy with some options replaced."""
        _check_keys(overrides)
        return replace(self, **overrides).validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def latency_to_steps(latency_seconds: float, dt: float) -> int:
    """Round a latency to a whole number of timesteps (half rounds up)."""
    return int(latency_seconds / dt + 0.5)


def _check_keys(options: Dict[str, Any]) -> None:
    known = {f.name for f in fields(MPCConfig)}
    unknown = sorted(set(options) - known)
    if unknown:
        raise InvalidConfigurationError(f"Unknown MPC option(s): {unknown}")


def load_mpc_config(preset: Optional[str] = None,
                    json_file: Optional[str] = None,
                    **overrides: Any) -> MPCConfig:
    """
    Load an MPC configuration from a JSON preset file.

    The file holds a "common" block shared by every preset and a "presets"
    mapping of named profiles. Keyword overrides are applied last.

    Args:
        preset: Name of the profile to use. Defaults to the file's "default_preset".
        json_file: Path to the presets JSON. Defaults to the packaged presets.
        **overrides: Individual options replacing the preset values.

    Returns:
        MPCConfig: A validated configuration.
    """
    json_file = Path(json_file) if json_file is not None else PRESETS_PATH
    try:
        with open(json_file, "r") as f:
            all_params = json.load(f)
    except FileNotFoundError as e:
        raise InvalidConfigurationError(f"Preset file not found at: {json_file}") from e
    except json.JSONDecodeError as e:
        raise InvalidConfigurationError(f"Error decoding JSON from {json_file}: {e}") from e

    presets = all_params.get("presets", {})
    preset = preset or all_params.get("default_preset")
    if preset not in presets:
        raise InvalidConfigurationError(
            f"Unknown preset: '{preset}'. Available presets: {list(presets.keys())}")

    options = dict(all_params.get("common", {}))
    options.update(presets[preset])
    options.update(overrides)
    _check_keys(options)

    config = MPCConfig(**options).validate()
    logger.info("Loaded MPC preset '%s' from '%s'", preset, json_file)
    for k, v in config.to_dict().items():
        logger.debug("  %s = %s", k, v)
    return config


def available_presets(json_file: Optional[str] = None) -> list:
    json_file = Path(json_file) if json_file is not None else PRESETS_PATH
    with open(json_file, "r") as f:
        return list(json.load(f).get("presets", {}).keys())
