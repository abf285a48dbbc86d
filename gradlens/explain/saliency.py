"""Input-space gradients of a network's output.

All functions evaluate the network on their own forward pass (dropout off,
``record=False``) so the caches of a pending training step stay intact.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from ..core import activations
from ..core import tensor_ops as T
from ..core.network import FeedForwardNetwork
from ..core.types import Array


def as_point(x) -> Array:
    point = np.asarray(x, dtype=np.float64).reshape(-1)
    if point.shape != (2,):
        raise ValueError(f"Expected a single 2-D point, got shape {np.shape(x)}")
    return point


def _walk_back(network: FeedForwardNetwork, caches, g_out: Array) -> Array:
    """Propagate ``dOut/dZ_out`` (shape ``(1, d_out)``) back to the input."""

    _, dphi = activations.get(network.activation)
    last = len(network.layers) - 1
    gA = T.matmul(g_out, T.transpose(network.layers[last].W))
    for idx in range(last - 1, -1, -1):
        gZ = T.hadamard(gA, T.apply(caches[idx].Z, dphi))
        gA = T.matmul(gZ, T.transpose(network.layers[idx].W))
    return gA[0]


def logit_gradient(network: FeedForwardNetwork, x, output: int = 0) -> Array:
    """Gradient of output logit ``output`` with respect to the input point."""

    point = as_point(x)
    fp = network.forward_pass(point.reshape(1, -1), record=False)
    seed = np.zeros((1, network.layer_dims[-1]))
    seed[0, output] = 1.0
    return _walk_back(network, fp.caches, seed)


def probability_gradient(network: FeedForwardNetwork, x, output: int = 0) -> Array:
    """Gradient of the reported prediction, ``dP/dZ * dZ/dx``."""

    point = as_point(x)
    fp = network.forward_pass(point.reshape(1, -1), record=False)
    seed = np.zeros((1, network.layer_dims[-1]))
    seed[0, output] = network.output_derivative(fp.logits)[0, output]
    return _walk_back(network, fp.caches, seed)


def saliency(network: FeedForwardNetwork, x, *, wrt: str = "logit") -> Array:
    """Saliency vector at ``x``; ``wrt`` is ``"logit"`` or ``"probability"``."""

    if wrt == "logit":
        return logit_gradient(network, x)
    if wrt == "probability":
        return probability_gradient(network, x)
    raise ValueError(f"wrt must be 'logit' or 'probability', got {wrt!r}")


def loss_gradient(network: FeedForwardNetwork, x, y: float) -> Array:
    """Gradient of the training loss at ``(x, y)`` with respect to ``x``.

    ``dL/dx = dL/dz * dz/dx``; for sigmoid outputs with BCE the first factor
    is ``p - y``.
    """

    point = as_point(x)
    coeff = network.output_delta(point.reshape(1, -1), np.array([[float(y)]]))
    return float(coeff[0, 0]) * logit_gradient(network, point)


def gradient_field(
    network: FeedForwardNetwork,
    bounds: Tuple[Array, Array],
    grid: int = 12,
    *,
    wrt: str = "probability",
) -> Tuple[Array, Array]:
    """Sample saliency on a ``grid x grid`` lattice covering ``bounds``.

    Returns ``(points, gradients)``, both shaped ``(grid * grid, 2)`` with
    points in row-major order (y outer, x inner).
    """

    lo, hi = (np.asarray(b, dtype=np.float64) for b in bounds)
    grid = max(2, int(grid))
    xs = np.linspace(lo[0], hi[0], grid)
    ys = np.linspace(lo[1], hi[1], grid)
    points = np.array([[px, py] for py in ys for px in xs])
    grads = np.array([saliency(network, p, wrt=wrt) for p in points])
    return points, grads


def world_bounds(X: Array, pad: float = 0.15) -> Tuple[Array, Array]:
    """Bounding box of ``X`` padded by ``pad`` times its extent on each side."""

    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2 or X.shape[0] == 0:
        raise ValueError(f"Expected a non-empty (N, D) array, got {X.shape}")
    lo, hi = X.min(axis=0), X.max(axis=0)
    margin = pad * (hi - lo)
    return lo - margin, hi + margin


__all__ = [
    "as_point",
    "logit_gradient",
    "probability_gradient",
    "saliency",
    "loss_gradient",
    "gradient_field",
    "world_bounds",
]
