"""First-order optimizers with per-parameter state.

Each optimizer binds its accumulators to one network's layer shapes and
weight initialisation. :meth:`apply` refuses to run with state bound to a
different architecture; :meth:`FeedForwardNetwork.step_update` resets the
state first when the binding is stale.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from ..core import tensor_ops as T
from ..core.network import FeedForwardNetwork, ShapeSignature
from ..core.types import Array

_Binding = Tuple[int, ShapeSignature]


def _binding(network: FeedForwardNetwork) -> _Binding:
    return network.weights_version, network.shape_signature()


@dataclass
class _BaseOptimizer:
    _bound: _Binding | None = field(default=None, init=False, repr=False)

    name = "base"

    def is_bound_to(self, network: FeedForwardNetwork) -> bool:
        return self._bound == _binding(network)

    def has_state(self) -> bool:
        return False

    def reset(self, network: FeedForwardNetwork) -> None:
        if self._bound is not None and self.has_state():
            warnings.warn(
                f"{self.name}: discarding optimizer state for a re-initialised network",
                RuntimeWarning,
                stacklevel=3,
            )
        self._bound = _binding(network)
        self._init_state(network)

    def _init_state(self, network: FeedForwardNetwork) -> None:
        pass

    def _check(self, network: FeedForwardNetwork) -> None:
        if self._bound is None:
            raise ValueError(f"{self.name}: optimizer has not been reset for this network")
        version, signature = _binding(network)
        if self._bound[1] != signature:
            raise ValueError(
                f"{self.name}: optimizer state shaped {self._bound[1]} does not match "
                f"network layers {signature}"
            )
        if self._bound[0] != version:
            raise ValueError(f"{self.name}: optimizer state belongs to previous weights; reset it")

    def _grads(self, network: FeedForwardNetwork, batch_size: int) -> List[Tuple[Array, Array]]:
        inv = 1.0 / max(1, batch_size)
        out = []
        for layer, (dW, db) in zip(network.layers, network.gradients()):
            out.append((network.regularised(layer.W, dW * inv), db * inv))
        return out


@dataclass
class SGD(_BaseOptimizer):
    """Plain stochastic gradient descent; stateless."""

    name = "SGD"

    def apply(self, network: FeedForwardNetwork, batch_size: int) -> None:
        self._check(network)
        lr = network.lr
        for layer, (gW, gb) in zip(network.layers, self._grads(network, batch_size)):
            T.add_in_place(layer.W, gW, -lr)
            T.add_in_place(layer.b, gb, -lr)


@dataclass
class Momentum(_BaseOptimizer):
    """Polyak momentum with an exponential moving average of gradients."""

    beta: float = 0.9
    steps: int = field(default=0, init=False)
    vW: List[Array] = field(default_factory=list, init=False, repr=False)
    vb: List[Array] = field(default_factory=list, init=False, repr=False)

    name = "Momentum"

    def has_state(self) -> bool:
        return self.steps > 0

    def _init_state(self, network: FeedForwardNetwork) -> None:
        self.steps = 0
        self.vW = [np.zeros_like(layer.W) for layer in network.layers]
        self.vb = [np.zeros_like(layer.b) for layer in network.layers]

    def apply(self, network: FeedForwardNetwork, batch_size: int) -> None:
        self._check(network)
        lr, beta = network.lr, self.beta
        self.steps += 1
        for k, (layer, (gW, gb)) in enumerate(zip(network.layers, self._grads(network, batch_size))):
            self.vW[k] = beta * self.vW[k] + (1.0 - beta) * gW
            self.vb[k] = beta * self.vb[k] + (1.0 - beta) * gb
            T.add_in_place(layer.W, self.vW[k], -lr)
            T.add_in_place(layer.b, self.vb[k], -lr)


@dataclass
class Adam(_BaseOptimizer):
    """Adam with bias-corrected first and second moments."""

    beta1: float = 0.9
    beta2: float = 0.999
    eps: float = 1e-8
    t: int = field(default=0, init=False)
    mW: List[Array] = field(default_factory=list, init=False, repr=False)
    vW: List[Array] = field(default_factory=list, init=False, repr=False)
    mb: List[Array] = field(default_factory=list, init=False, repr=False)
    vb: List[Array] = field(default_factory=list, init=False, repr=False)

    name = "Adam"

    def has_state(self) -> bool:
        return self.t > 0

    def _init_state(self, network: FeedForwardNetwork) -> None:
        self.t = 0
        self.mW = [np.zeros_like(layer.W) for layer in network.layers]
        self.vW = [np.zeros_like(layer.W) for layer in network.layers]
        self.mb = [np.zeros_like(layer.b) for layer in network.layers]
        self.vb = [np.zeros_like(layer.b) for layer in network.layers]

    def apply(self, network: FeedForwardNetwork, batch_size: int) -> None:
        self._check(network)
        grads = self._grads(network, batch_size)
        # One time step per call, shared by every parameter.
        self.t += 1
        corr1 = 1.0 / (1.0 - self.beta1**self.t)
        corr2 = 1.0 / (1.0 - self.beta2**self.t)
        lr = network.lr
        for k, (layer, (gW, gb)) in enumerate(zip(network.layers, grads)):
            self.mW[k], self.vW[k], stepW = self._moments(self.mW[k], self.vW[k], gW, corr1, corr2)
            self.mb[k], self.vb[k], stepb = self._moments(self.mb[k], self.vb[k], gb, corr1, corr2)
            T.add_in_place(layer.W, stepW, -lr)
            T.add_in_place(layer.b, stepb, -lr)

    def _moments(self, m: Array, v: Array, g: Array, corr1: float, corr2: float) -> tuple[Array, Array, Array]:
        m = self.beta1 * m + (1.0 - self.beta1) * g
        v = self.beta2 * v + (1.0 - self.beta2) * g * g
        step = (m * corr1) / (np.sqrt(v * corr2) + self.eps)
        return m, v, step


_OPTIMIZERS: Dict[str, type] = {"sgd": SGD, "momentum": Momentum, "adam": Adam}


def make_optimizer(name: str, **params) -> _BaseOptimizer:
    """Build an optimizer by name, ignoring hyperparameters it does not take."""

    key = str(name).lower()
    if key not in _OPTIMIZERS:
        available = ", ".join(sorted(_OPTIMIZERS))
        raise KeyError(f"Unknown optimizer {name!r}. Available optimizers: {available}")
    cls = _OPTIMIZERS[key]
    accepted = {k: float(v) for k, v in params.items() if k in cls.__dataclass_fields__ and v is not None}
    accepted = {k: v for k, v in accepted.items() if cls.__dataclass_fields__[k].init}
    return cls(**accepted)


__all__ = ["SGD", "Momentum", "Adam", "make_optimizer"]
