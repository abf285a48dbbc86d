"""Integrated Gradients attribution."""

from __future__ import annotations

import numpy as np

from ..core.network import FeedForwardNetwork
from ..core.types import Array
from .saliency import as_point, saliency


def integrated_gradients(
    network: FeedForwardNetwork,
    x,
    baseline=None,
    steps: int = 32,
    *,
    wrt: str = "probability",
) -> Array:
    """Attribute ``f(x) - f(baseline)`` to the input features.

    Gradients are averaged at ``steps`` points ``baseline + k/steps * (x - baseline)``
    for ``k = 1..steps`` and scaled elementwise by ``x - baseline``. The sum of
    the attributions approaches ``f(x) - f(baseline)`` as ``steps`` grows.
    """

    point = as_point(x)
    base = np.zeros_like(point) if baseline is None else as_point(baseline)
    steps = max(1, int(steps))
    delta = point - base
    total = np.zeros_like(point)
    for k in range(1, steps + 1):
        total += saliency(network, base + (k / steps) * delta, wrt=wrt)
    return delta * (total / steps)


def completeness_gap(network: FeedForwardNetwork, x, baseline=None, steps: int = 32) -> float:
    """``|sum(IG) - (p(x) - p(baseline))|`` for the probability output."""

    point = as_point(x)
    base = np.zeros_like(point) if baseline is None else as_point(baseline)
    attributions = integrated_gradients(network, point, base, steps, wrt="probability")
    p = network.predict(np.vstack([point, base]))[:, 0]
    return float(abs(attributions.sum() - (p[0] - p[1])))


__all__ = ["integrated_gradients", "completeness_gap"]
