"""Activation utilities for gradlens."""

from __future__ import annotations

from typing import Callable, Dict, Tuple

import numpy as np

from .types import ActivationKind, Array, coerce_kind

PointwiseFn = Callable[[Array], Array]


def relu(x: Array) -> Array:
    """Return the ReLU activation."""

    return np.maximum(x, 0.0)


def relu_deriv(x: Array) -> Array:
    return (x > 0).astype(np.float64)


def sigmoid(x: Array) -> Array:
    # Split by sign so neither branch exponentiates a large positive number.
    x = np.asarray(x, dtype=np.float64)
    out = np.empty_like(x)
    pos = x >= 0
    out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
    ex = np.exp(x[~pos])
    out[~pos] = ex / (1.0 + ex)
    return out


def sigmoid_deriv(x: Array) -> Array:
    s = sigmoid(x)
    return s * (1.0 - s)


def tanh(x: Array) -> Array:
    return np.tanh(x)


def tanh_deriv(x: Array) -> Array:
    t = np.tanh(x)
    return 1.0 - t * t


_PAIRS: Dict[ActivationKind, Tuple[PointwiseFn, PointwiseFn]] = {
    ActivationKind.RELU: (relu, relu_deriv),
    ActivationKind.SIGMOID: (sigmoid, sigmoid_deriv),
    ActivationKind.TANH: (tanh, tanh_deriv),
}


def get(kind: ActivationKind | str) -> Tuple[PointwiseFn, PointwiseFn]:
    """Return the ``(f, f')`` pair for ``kind``; both take pre-activations."""

    return _PAIRS[coerce_kind(ActivationKind, kind)]


__all__ = [
    "relu",
    "relu_deriv",
    "sigmoid",
    "sigmoid_deriv",
    "tanh",
    "tanh_deriv",
    "get",
]
