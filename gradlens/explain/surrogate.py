"""LIME-style local linear surrogate around a single point."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..core.network import FeedForwardNetwork
from ..core.types import Array
from .saliency import as_point

DET_EPS = 1e-9


@dataclass(frozen=True)
class Surrogate:
    """Weighted linear fit ``p ~ b0 + bx * x + by * y`` around ``center``."""

    b0: float
    bx: float
    by: float
    center: Tuple[float, float]
    sigma: float
    samples: int

    @property
    def coefficients(self) -> Array:
        return np.array([self.b0, self.bx, self.by])

    @property
    def degenerate(self) -> bool:
        return self.b0 == 0.0 and self.bx == 0.0 and self.by == 0.0

    def predict(self, points: Array) -> Array:
        pts = np.atleast_2d(np.asarray(points, dtype=np.float64))
        return self.b0 + self.bx * pts[:, 0] + self.by * pts[:, 1]

    def boundary_distance(self, point, level: float = 0.5) -> float:
        """Euclidean distance from ``point`` to the line ``surrogate = level``."""

        p = as_point(point)
        norm = float(np.hypot(self.bx, self.by))
        if norm < 1e-12:
            return float("inf")
        return abs(self.b0 - level + self.bx * p[0] + self.by * p[1]) / norm

    def boundary_segment(
        self, lo, hi, level: float = 0.5
    ) -> Optional[Tuple[Array, Array]]:
        return boundary_segment(self.coefficients, lo, hi, level=level)


def solve_3x3(A: Array, b: Array) -> Array:
    """Solve ``A @ x = b`` through the adjugate; zeros when ``A`` is singular."""

    (a, b01, c), (d, e, f), (g, h, i) = np.asarray(A, dtype=np.float64)
    det = a * (e * i - f * h) - b01 * (d * i - f * g) + c * (d * h - e * g)
    if abs(det) < DET_EPS:
        return np.zeros(3)
    adj = np.array(
        [
            [e * i - f * h, -(b01 * i - c * h), b01 * f - c * e],
            [-(d * i - f * g), a * i - c * g, -(a * f - c * d)],
            [d * h - e * g, -(a * h - b01 * g), a * e - b01 * d],
        ]
    )
    return (adj / det) @ np.asarray(b, dtype=np.float64)


def fit_local_surrogate(
    network: FeedForwardNetwork,
    x,
    sigma: float = 0.15,
    samples: int = 128,
    rng: np.random.Generator | None = None,
    seed: int = 0,
) -> Surrogate:
    """Fit a proximity-weighted linear model to the network around ``x``.

    ``samples`` neighbours are drawn from ``N(x, sigma^2 I)`` and weighted by
    ``exp(-|xi - x|^2 / (2 sigma^2))``. A singular normal-equation system
    yields an all-zero (flat) surrogate.
    """

    center = as_point(x)
    sigma = max(float(sigma), 1e-6)
    rng = rng if rng is not None else np.random.default_rng(seed)
    neighbours = center + sigma * rng.standard_normal((int(samples), 2))
    probs = network.predict(neighbours)[:, 0]
    sq_dist = np.sum((neighbours - center) ** 2, axis=1)
    weights = np.exp(-sq_dist / (2.0 * sigma * sigma))

    design = np.column_stack([np.ones(len(neighbours)), neighbours])
    weighted = design * weights[:, None]
    S = weighted.T @ design
    t = weighted.T @ probs
    b0, bx, by = solve_3x3(S, t)
    return Surrogate(
        b0=float(b0),
        bx=float(bx),
        by=float(by),
        center=(float(center[0]), float(center[1])),
        sigma=sigma,
        samples=int(samples),
    )


def boundary_segment(coefficients, lo, hi, level: float = 0.5) -> Optional[Tuple[Array, Array]]:
    """Clip ``b0 + bx * x + by * y = level`` to the rectangle ``[lo, hi]``.

    Returns the two end points, or ``None`` when the line misses the box.
    """

    b0, bx, by = (float(v) for v in coefficients)
    c = b0 - level
    lo = np.asarray(lo, dtype=np.float64)
    hi = np.asarray(hi, dtype=np.float64)
    hits = []
    if abs(by) > 1e-6:
        for xe in (lo[0], hi[0]):
            ye = -(c + bx * xe) / by
            if lo[1] <= ye <= hi[1]:
                hits.append(np.array([xe, ye]))
    if abs(bx) > 1e-6:
        for ye in (lo[1], hi[1]):
            xe = -(c + by * ye) / bx
            if lo[0] <= xe <= hi[0]:
                hits.append(np.array([xe, ye]))
    if len(hits) < 2:
        return None
    return hits[0], hits[1]


__all__ = ["Surrogate", "solve_3x3", "fit_local_surrogate", "boundary_segment"]
