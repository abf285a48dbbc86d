"""Headless-safe plotting adapters."""

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import numpy as np


def _pyplot():
    import matplotlib

    matplotlib.use("Agg", force=True)
    import matplotlib.pyplot as plt  # imported lazily for headless safety

    return plt


class PlotAdapter:
    """Collect per-step loss and optionally write ``loss.png`` on close."""

    def __init__(self, run_dir: str | Path, enable_plots: bool = False):
        self.enable_plots = enable_plots
        self.run_dir = Path(run_dir)
        self._history: List[Tuple[int, float]] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def on_step(self, step: int, metrics):
        if not self.enable_plots:
            return
        self._history.append((step, float(metrics.get("loss", 0.0))))

    def close(self) -> Path | None:
        if not self.enable_plots or not self._history:
            return None
        plt = _pyplot()
        steps, losses = zip(*self._history)
        fig, ax = plt.subplots()
        ax.plot(steps, losses)
        ax.set_xlabel("Step")
        ax.set_ylabel("Loss")
        ax.set_title("Training Curve")
        plot_path = self.run_dir / "loss.png"
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path

    __call__ = on_step


def plot_decision_field(
    network,
    bounds,
    path: str | Path,
    *,
    resolution: int = 64,
    points: np.ndarray | None = None,
    labels: np.ndarray | None = None,
    markers: dict | None = None,
) -> Path:
    """Render the network's probability over ``bounds`` with optional overlays.

    ``markers`` maps a legend label to a 2-D point (e.g. an attack result).
    """

    lo, hi = (np.asarray(b, dtype=np.float64) for b in bounds)
    xs = np.linspace(lo[0], hi[0], resolution)
    ys = np.linspace(lo[1], hi[1], resolution)
    gx, gy = np.meshgrid(xs, ys)
    probs = network.predict(np.column_stack([gx.ravel(), gy.ravel()]))[:, 0].reshape(gx.shape)

    plt = _pyplot()
    fig, ax = plt.subplots()
    mesh = ax.pcolormesh(gx, gy, probs, vmin=0.0, vmax=1.0, cmap="RdBu_r", shading="auto")
    ax.contour(gx, gy, probs, levels=[0.5], colors="k", linewidths=1.0)
    fig.colorbar(mesh, ax=ax, label="p(y=1)")
    if points is not None:
        colour = None if labels is None else np.asarray(labels).reshape(-1)
        ax.scatter(points[:, 0], points[:, 1], c=colour, cmap="bwr", edgecolors="k", s=18)
    for name, point in (markers or {}).items():
        ax.scatter([point[0]], [point[1]], marker="x", s=60, label=name)
    if markers:
        ax.legend(loc="best")
    ax.set_xlim(lo[0], hi[0])
    ax.set_ylim(lo[1], hi[1])
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out)
    plt.close(fig)
    return out


__all__ = ["PlotAdapter", "plot_decision_field"]
