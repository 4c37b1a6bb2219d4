import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path


def plot_diagnostics(history, plots_dir, run_name="mpc_run", plot_cost: bool = True):
    """Generates and saves diagnostic plots for one closed-loop run.

    Args:
        history (list): List of dictionaries, one per control cycle, with keys
                        'pose' (px, py, psi, v), 'cte', 'epsi', 'delta', 'a' and,
                        for MPC runs, 'cost', 'constraint_violation', 'used_fallback'.
        plots_dir (Path or str): Directory to save the plots.
        run_name (str): Used in titles and in the file name.
        plot_cost (bool): Whether to plot the cost/constraint subplot.

    Returns:
        Path: The saved figure.
    """
    print(f"Generating diagnostic plots for {run_name}...")
    plots_dir = Path(plots_dir)
    plots_dir.mkdir(parents=True, exist_ok=True)

    time_indices = np.arange(len(history))
    poses = np.array([step["pose"] for step in history])
    errors = np.array([[step["cte"], step["epsi"]] for step in history])
    controls = np.array([[step["delta"], step["a"]] for step in history])

    if plot_cost and not all("cost" in step and "constraint_violation" in step for step in history):
        print("Warning: 'cost' or 'constraint_violation' keys missing, cannot plot cost.")
        plot_cost = False

    num_subplots = 4 if plot_cost else 3
    fig, axs = plt.subplots(num_subplots, 1, figsize=(12, 4 * num_subplots))

    axs[0].plot(poses[:, 0], poses[:, 1], label="Vehicle path")
    if "reference" in history[0]:
        ref = np.array(history[0]["reference"])
        axs[0].plot(ref[:, 0], ref[:, 1], "k--", alpha=0.6, label="Reference waypoints")
    axs[0].set_title(f"{run_name}: Path (map frame)")
    axs[0].set_xlabel("x (m)")
    axs[0].set_ylabel("y (m)")
    axs[0].axis("equal")
    axs[0].legend()
    axs[0].grid(True)

    axs[1].plot(time_indices, errors[:, 0], label="cte (m)")
    axs[1].plot(time_indices, errors[:, 1], label="epsi (rad)")
    ax_speed = axs[1].twinx()
    ax_speed.plot(time_indices, poses[:, 3], color="g", alpha=0.5, label="v")
    ax_speed.set_ylabel("Speed", color="g")
    axs[1].set_title("Tracking Errors and Speed")
    axs[1].legend(loc="upper left")
    axs[1].grid(True)

    axs[2].plot(time_indices, controls[:, 0], marker=".", label="delta (rad)")
    axs[2].plot(time_indices, controls[:, 1], marker=".", label="a (normalised)")
    fallback_steps = [i for i, step in enumerate(history) if step.get("used_fallback")]
    if fallback_steps:
        axs[2].scatter(fallback_steps, controls[fallback_steps, 0], color="r", zorder=3, label="Fail-safe")
    axs[2].set_title("Actuation Over Time")
    axs[2].legend()
    axs[2].grid(True)

    if plot_cost:
        costs = np.array([step.get("cost", np.nan) for step in history], dtype=float)
        violations = np.array([step.get("constraint_violation", np.nan) for step in history], dtype=float)
        costs[~np.isfinite(costs)] = np.nan
        violations[~np.isfinite(violations)] = np.nan

        ax_cost = axs[3]
        ax_constraint = ax_cost.twinx()
        line_cost, = ax_cost.plot(time_indices, costs, color="b", label="Cost")
        ax_cost.set_ylabel("Cost", color="b")
        line_constraint, = ax_constraint.plot(time_indices, violations, color="r", label="Constraint Violation")
        ax_constraint.set_ylabel("Constraint Violation", color="r")
        ax_cost.set_title("MPC Cost and Constraint Violation")
        lines = [line_cost, line_constraint]
        ax_cost.legend(lines, [l.get_label() for l in lines], loc="upper right")
        ax_cost.grid(True)
    axs[-1].set_xlabel("Control cycle")

    fig.tight_layout()
    plot_filename = plots_dir / f"{run_name}_diagnostic_plots.png"
    plt.savefig(plot_filename)
    print(f"Diagnostic plot saved to: {plot_filename}")
    plt.close(fig)
    return plot_filename
