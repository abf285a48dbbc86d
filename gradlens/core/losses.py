"""Loss registry used by the feed-forward network."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable

import numpy as np

from .types import Array, LossKind, coerce_kind

LossFn = Callable[[Array, Array], tuple[float, Array]]

PROB_EPS = 1e-6


@dataclass(frozen=True)
class Loss:
    """Loss wrapper returning both the scalar loss and its per-sample gradient."""

    name: str
    fn: LossFn

    def __call__(self, predictions: Array, targets: Array) -> tuple[float, Array]:
        if predictions.shape != targets.shape:
            raise ValueError(
                f"{self.name}: predictions {predictions.shape} and targets "
                f"{targets.shape} must have the same shape"
            )
        return self.fn(predictions, targets)


class LossRegistry:
    """Central registry for loss functions."""

    def __init__(self) -> None:
        self._registry: Dict[str, Loss] = {}

    def register(self, name: str, fn: LossFn) -> None:
        self._registry[name] = Loss(name, fn)

    def names(self) -> Iterable[str]:
        return sorted(self._registry)

    def resolve(self, name: LossKind | str) -> Loss:
        if isinstance(name, LossKind):
            key = name.value
        else:
            key = str(name).lower()
        if key not in self._registry:
            available = ", ".join(sorted(self._registry))
            raise KeyError(f"Unknown loss {name!r}. Available losses: {available}")
        return self._registry[key]


REGISTRY = LossRegistry()


def _mse(pred: Array, target: Array) -> tuple[float, Array]:
    n = max(1, pred.shape[0])
    diff = pred - target
    loss = float(np.sum(0.5 * np.square(diff)) / n)
    return loss, diff


def _bce(prob: Array, target: Array) -> tuple[float, Array]:
    """Binary cross-entropy on probabilities.

    The returned gradient is ``p - y``: the derivative with respect to the
    *logit* when ``prob = sigmoid(logit)``, not ``dL/dp``. Callers must only
    use it behind a sigmoid output.
    """

    n = max(1, prob.shape[0])
    p = np.clip(prob, PROB_EPS, 1.0 - PROB_EPS)
    target = target.astype(np.float64)
    loss = float(-np.sum(target * np.log(p) + (1.0 - target) * np.log(1.0 - p)) / n)
    return loss, p - target


REGISTRY.register(LossKind.MSE.value, _mse)
REGISTRY.register(LossKind.BCE.value, _bce)


def get(kind: LossKind | str) -> Loss:
    return REGISTRY.resolve(coerce_kind(LossKind, kind))


__all__ = ["Loss", "LossRegistry", "REGISTRY", "PROB_EPS", "get"]
