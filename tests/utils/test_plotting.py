import matplotlib
matplotlib.use("Agg")
import numpy as np

from vehicle_mpc.utils.plotting import plot_diagnostics


def _history(n=5, with_cost=True):
    history = []
    for i in range(n):
        step = {
            "pose": [float(i), 0.1 * i, 0.01 * i, 10.0],
            "cte": 0.1 * i,
            "epsi": -0.01 * i,
            "delta": 0.02,
            "a": 0.5,
            "used_fallback": i == 3,
        }
        if with_cost:
            step["cost"] = 100.0 - i
            step["constraint_violation"] = np.inf if i == 3 else 1e-9
        history.append(step)
    history[0]["reference"] = [[0.0, 0.0], [5.0, 0.5]]
    return history


def test_plot_diagnostics_saves_figure(tmp_path):
    path = plot_diagnostics(_history(), tmp_path / "plots", run_name="unit")
    assert path.exists()
    assert path.name == "unit_diagnostic_plots.png"


def test_plot_diagnostics_without_cost(tmp_path):
    path = plot_diagnostics(_history(with_cost=False), tmp_path, run_name="no_cost")
    assert path.exists()
