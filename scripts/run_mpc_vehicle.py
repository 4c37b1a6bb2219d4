"""
Closed-loop demo: drive the kinematic bicycle model along a winding road with
the MPC, simulating the actuation delay the controller compensates for.

Each cycle the upcoming waypoints are transformed into the vehicle frame, a
cubic is fitted through them, and the controller returns the next command.
Commands reach the simulated vehicle only after `latency_seconds`.

Example:
    python scripts/run_mpc_vehicle.py --preset 72mph --ref-v 30 --steps 300
"""

import argparse
import json
import logging
from collections import deque
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import numpy as np

from vehicle_mpc.algorithms.classic.mpc_controller import MPCController
from vehicle_mpc.environments.dynamics import simulate_vehicle
from vehicle_mpc.utils.parameters import load_mpc_config, available_presets
from vehicle_mpc.utils.plotting import plot_diagnostics
from vehicle_mpc.utils.polynomial import polyfit, to_vehicle_frame


def make_road(length=600.0, amplitude=8.0, wavelength=150.0, spacing=5.0):
    """Waypoints of a sinusoidal road in the map frame."""
    xs = np.arange(0.0, length, spacing)
    ys = amplitude * np.sin(2 * np.pi * xs / wavelength)
    return xs, ys


def fit_local_reference(pose, road_x, road_y, n_points=8):
    """Fit the reference cubic through the waypoints just ahead of the vehicle."""
    px, py, psi, _ = pose
    nearest = int(np.argmin(np.hypot(road_x - px, road_y - py)))
    end = min(nearest + n_points, len(road_x))
    start = max(end - n_points, 0)
    local_x, local_y = to_vehicle_frame(px, py, psi, road_x[start:end], road_y[start:end])
    return polyfit(local_x, local_y)


def run_mpc_experiment(args):
    overrides = {}
    if args.ref_v is not None:
        overrides["ref_v"] = args.ref_v
    if args.horizon is not None:
        overrides["N"] = args.horizon
    if args.latency is not None:
        overrides["latency_seconds"] = args.latency
    if args.failure_policy is not None:
        overrides["failure_policy"] = args.failure_policy
    config = load_mpc_config(args.preset, **overrides)
    print(f"MPC config: {config.to_dict()}")

    controller = MPCController(config)
    road_x, road_y = make_road()

    pose = (0.0, 0.0, 0.0, args.initial_speed)
    # Commands take latency_steps cycles to reach the vehicle
    in_flight = deque([(0.0, 0.0)] * controller.latency_steps)
    history = []

    for step in range(args.steps):
        coeffs = fit_local_reference(pose, road_x, road_y)
        cte = coeffs[0]
        epsi = -np.arctan(coeffs[1])
        state = [0.0, 0.0, 0.0, pose[3], cte, epsi]

        solution = controller.solve(state, coeffs)
        diag = solution.diagnostics
        history.append({
            "pose": list(pose),
            "cte": float(cte),
            "epsi": float(epsi),
            "delta": solution.steering,
            "a": solution.acceleration,
            "cost": diag.cost,
            "constraint_violation": diag.constraint_violation,
            "solve_time_ms": diag.solve_time_ms,
            "status": diag.status.value,
            "used_fallback": diag.used_fallback,
            "reference": np.column_stack([road_x, road_y]).tolist() if step == 0 else None,
        })
        if step % 20 == 0:
            print(f"Step {step}: cte={cte:.3f}, epsi={epsi:.3f}, v={pose[3]:.2f}, "
                  f"delta={solution.steering:.4f}, a={solution.acceleration:.3f}, "
                  f"status={diag.return_status}, {diag.solve_time_ms:.1f} ms")

        in_flight.append((solution.steering, solution.acceleration))
        applied_delta, applied_a = in_flight.popleft()
        pose = simulate_vehicle(*pose, applied_delta, applied_a, config.dt, config.Lf)

        if pose[0] >= road_x[-1] - 20.0:
            print(f"End of road reached after {step + 1} cycles.")
            break

    run_dir = Path(args.save_dir)
    run_dir.mkdir(parents=True, exist_ok=True)
    ctes = np.array([h["cte"] for h in history])
    summary = {
        "cycles": len(history),
        "mean_abs_cte": float(np.mean(np.abs(ctes))),
        "max_abs_cte": float(np.max(np.abs(ctes))),
        "fallback_cycles": int(sum(h["used_fallback"] for h in history)),
        "mean_solve_time_ms": float(np.mean([h["solve_time_ms"] for h in history])),
        "config": config.to_dict(),
    }
    summary_path = run_dir / "summary.json"
    with open(summary_path, "w") as f:
        json.dump(summary, f, indent=2)
    print(f"\nRun summary saved to {summary_path}")

    if args.plot_diagnostics:
        plot_diagnostics(history, run_dir, run_name=f"mpc_{args.preset or 'default'}")
    return summary


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the vehicle MPC in a closed-loop simulation.")
    parser.add_argument("--preset", type=str, default=None, choices=available_presets(),
                        help="MPC parameter preset (default: the presets file default)")
    parser.add_argument("--ref-v", type=float, default=None, help="Override target speed")
    parser.add_argument("--horizon", "-N", type=int, default=None, help="Override prediction horizon")
    parser.add_argument("--latency", type=float, default=None, help="Override actuation latency (s)")
    parser.add_argument("--failure-policy", type=str, default=None, choices=["hold", "decelerate"],
                        help="Fail-safe policy on solver failure")
    parser.add_argument("--initial-speed", type=float, default=10.0, help="Initial vehicle speed")
    parser.add_argument("--steps", type=int, default=400, help="Maximum control cycles")
    parser.add_argument("--save-dir", type=str, default="runs/MPC", help="Directory for results")
    parser.add_argument("--no-plot", dest="plot_diagnostics", action="store_false",
                        help="Skip the diagnostic plots")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    run_mpc_experiment(args)
