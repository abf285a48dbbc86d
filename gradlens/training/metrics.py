"""Evaluation metrics and per-neuron statistics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

import numpy as np

from ..core import activations
from ..core.network import FeedForwardNetwork
from ..core.types import ActivationKind, Array

DEFAULT_METRICS = ("accuracy", "precision", "recall", "f1")


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: float


def _labels(probs: Array, targets: Array, threshold: float) -> tuple[Array, Array]:
    pred_idx = (np.asarray(probs).reshape(-1) >= threshold).astype(int)
    targ_idx = (np.asarray(targets).reshape(-1) > 0.5).astype(int)
    return pred_idx, targ_idx


def compute_metric(name: str, probs: Array, targets: Array, *, threshold: float = 0.5) -> MetricResult:
    key = name.lower()
    pred_idx, targ_idx = _labels(probs, targets, threshold)
    if key == "accuracy":
        value = float(np.mean(pred_idx == targ_idx)) if pred_idx.size else 0.0
    elif key in {"precision", "recall", "f1"}:
        tp = float(np.sum((pred_idx == 1) & (targ_idx == 1)))
        fp = float(np.sum((pred_idx == 1) & (targ_idx == 0)))
        fn = float(np.sum((pred_idx == 0) & (targ_idx == 1)))
        precision = tp / (tp + fp + 1e-9)
        recall = tp / (tp + fn + 1e-9)
        if key == "precision":
            value = float(precision)
        elif key == "recall":
            value = float(recall)
        else:
            value = float(2 * precision * recall / (precision + recall + 1e-9))
    elif key == "auc":
        value = roc_auc(probs, targets)
    else:
        raise KeyError(f"Unknown metric: {name}")
    return MetricResult(name=key, value=value)


def compute_metrics(
    names: Iterable[str], probs: Array, targets: Array, *, threshold: float = 0.5
) -> Mapping[str, float]:
    results: Dict[str, float] = {}
    for name in names:
        metric = compute_metric(name, probs, targets, threshold=threshold)
        results[metric.name] = metric.value
    return results


def roc_curve(probs: Array, targets: Array, steps: int = 100) -> Array:
    """``(FPR, TPR)`` rows for thresholds ``1, 1 - 1/steps, ..., 0``."""

    p = np.asarray(probs, dtype=np.float64).reshape(-1)
    y = np.asarray(targets).reshape(-1) > 0.5
    pos = max(1, int(y.sum()))
    neg = max(1, int((~y).sum()))
    points = []
    for t in np.linspace(1.0, 0.0, int(steps) + 1):
        hit = p >= t
        points.append((float(np.sum(hit & ~y)) / neg, float(np.sum(hit & y)) / pos))
    return np.array(points)


def roc_auc(probs: Array, targets: Array, steps: int = 100) -> float:
    roc = roc_curve(probs, targets, steps)
    fpr, tpr = roc[:, 0], roc[:, 1]
    return float(np.sum((fpr[1:] - fpr[:-1]) * (tpr[1:] + tpr[:-1]) * 0.5))


def generalization_gap(train_acc: float, val_acc: float) -> float:
    return max(0.0, float(train_acc) - float(val_acc))


@dataclass(frozen=True)
class HiddenUnitStats:
    """Sensitivity summary of the first hidden layer over a dataset."""

    saturated_fraction: float
    dead_units: int
    units: int
    mean_abs_grad: float
    per_unit_grad: List[float]


def hidden_unit_stats(
    network: FeedForwardNetwork,
    X: Array,
    Y: Array,
    *,
    sat_thresh: float = 0.05,
    dead_mean: float = 0.02,
    dead_var: float = 0.002,
) -> HiddenUnitStats:
    """Saturation, dead ReLU units and gradient flow of hidden layer 0.

    A unit is saturated on a sample when ``|phi'(z)| < sat_thresh``; a ReLU
    unit is dead when its activation mean and variance over ``X`` fall below
    ``dead_mean`` and ``dead_var``. Gradient flow is the mean ``|dL/dz|``.
    """

    fp = network.forward_pass(X, Y, record=False)
    _, dphi = activations.get(network.activation)
    first = fp.caches[0]
    dphz = dphi(first.Z)
    n = max(1, fp.batch_size)
    saturated = float(np.mean(np.abs(dphz) < sat_thresh)) if dphz.size else 0.0

    dead = 0
    if network.activation is ActivationKind.RELU:
        means = first.A.mean(axis=0)
        variances = first.A.var(axis=0)
        dead = int(np.sum((means < dead_mean) & (variances < dead_var)))

    dZ = first.dZ if first.dZ is not None else np.zeros_like(first.Z)
    per_unit = np.abs(dZ).sum(axis=0) / n
    return HiddenUnitStats(
        saturated_fraction=saturated,
        dead_units=dead,
        units=int(first.Z.shape[1]),
        mean_abs_grad=float(np.abs(dZ).mean()) if dZ.size else 0.0,
        per_unit_grad=[float(v) for v in per_unit],
    )


__all__ = [
    "MetricResult",
    "DEFAULT_METRICS",
    "compute_metric",
    "compute_metrics",
    "roc_curve",
    "roc_auc",
    "generalization_gap",
    "HiddenUnitStats",
    "hidden_unit_stats",
]
