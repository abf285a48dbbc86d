"""Norm-bounded adversarial and counterfactual search in input space."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from ..core.network import FeedForwardNetwork
from ..core.types import Array, AttackKind, NormKind, coerce_kind
from .saliency import as_point, loss_gradient, probability_gradient

NORM_EPS = 1e-12


@dataclass
class AttackResult:
    """Outcome of an FGSM/PGD run."""

    point: Array
    path: List[Array] = field(default_factory=list)
    original_label: int = 0
    predicted_label: int = 0
    probability: float = 0.0

    @property
    def flipped(self) -> bool:
        return self.predicted_label != self.original_label

    @property
    def steps_taken(self) -> int:
        return max(0, len(self.path) - 1)


def step_direction(g: Array, norm: NormKind | str) -> Array:
    """Unit ascent direction for ``norm``: sign for L-inf, ``g / |g|_p`` otherwise."""

    norm = coerce_kind(NormKind, norm)
    g = np.asarray(g, dtype=np.float64)
    if norm is NormKind.LINF:
        return np.sign(g)
    if norm is NormKind.L2:
        return g / (np.sqrt(np.sum(g * g)) + NORM_EPS)
    return g / (np.sum(np.abs(g)) + NORM_EPS)


def project(x: Array, center: Array, eps: float, norm: NormKind | str) -> Array:
    """Project ``x`` into the ``eps``-ball of ``norm`` around ``center``."""

    norm = coerce_kind(NormKind, norm)
    x = np.asarray(x, dtype=np.float64)
    center = np.asarray(center, dtype=np.float64)
    d = x - center
    if norm is NormKind.LINF:
        return center + np.clip(d, -eps, eps)
    radius = np.sqrt(np.sum(d * d)) if norm is NormKind.L2 else np.sum(np.abs(d))
    if radius <= eps:
        return x
    return center + (eps / (radius + NORM_EPS)) * d


def clamp_bounds(x: Array, bounds: Optional[Tuple[Array, Array]]) -> Array:
    if bounds is None:
        return x
    lo, hi = bounds
    return np.clip(x, np.asarray(lo, dtype=np.float64), np.asarray(hi, dtype=np.float64))


def _label(network: FeedForwardNetwork, x: Array, threshold: float = 0.5) -> tuple[int, float]:
    p = float(network.predict(x.reshape(1, -1))[0, 0])
    return int(p >= threshold), p


def fgsm(
    network: FeedForwardNetwork,
    x0,
    y: float,
    eps: float,
    norm: NormKind | str = NormKind.L2,
) -> AttackResult:
    """Single step of size ``eps`` up the loss gradient, projected to the ball."""

    start = as_point(x0)
    g = loss_gradient(network, start, y)
    x = project(start + eps * step_direction(g, norm), start, eps, norm)
    label, p = _label(network, x)
    return AttackResult(
        point=x,
        path=[start, x],
        original_label=int(float(y) > 0.5),
        predicted_label=label,
        probability=p,
    )


def pgd(
    network: FeedForwardNetwork,
    x0,
    y: float,
    eps: float,
    norm: NormKind | str = NormKind.L2,
    *,
    steps: int = 10,
    alpha: float | None = None,
    project_to_ball: bool = True,
    stop_at_flip: bool = False,
    bounds: Optional[Tuple[Array, Array]] = None,
) -> AttackResult:
    """Iterated gradient ascent on the loss.

    Each step moves ``alpha`` along the norm's ascent direction, optionally
    re-projects into the ``eps``-ball around ``x0`` and clamps to ``bounds``.
    With ``stop_at_flip`` the walk ends the first time the predicted label
    differs from ``y``.
    """

    start = as_point(x0)
    alpha = min(0.1, eps) if alpha is None else float(alpha)
    original = int(float(y) > 0.5)
    x = start.copy()
    path = [start.copy()]
    label, p = _label(network, x)
    for _ in range(max(1, int(steps))):
        g = loss_gradient(network, x, y)
        x = x + alpha * step_direction(g, norm)
        if project_to_ball:
            x = project(x, start, eps, norm)
        x = clamp_bounds(x, bounds)
        path.append(x.copy())
        label, p = _label(network, x)
        if stop_at_flip and label != original:
            break
    return AttackResult(point=x, path=path, original_label=original, predicted_label=label, probability=p)


def attack(
    network: FeedForwardNetwork,
    x0,
    y: float,
    eps: float,
    norm: NormKind | str = NormKind.L2,
    kind: AttackKind | str = AttackKind.FGSM,
    **pgd_options,
) -> AttackResult:
    """Dispatch to :func:`fgsm` or :func:`pgd` by ``kind``."""

    kind = coerce_kind(AttackKind, kind)
    if kind is AttackKind.FGSM:
        return fgsm(network, x0, y, eps, norm)
    return pgd(network, x0, y, eps, norm, **pgd_options)


def counterfactual_to_boundary(
    network: FeedForwardNetwork,
    x0,
    steps: int = 6,
    alpha: float = 0.8,
    bounds: Optional[Tuple[Array, Array]] = None,
) -> Array:
    """Walk toward ``p = 0.5`` with damped Newton steps on the probability."""

    x = as_point(x0).copy()
    for _ in range(max(1, int(steps))):
        p = float(network.predict(x.reshape(1, -1))[0, 0])
        g = probability_gradient(network, x)
        g2 = float(np.sum(g * g)) + 1e-8
        x = clamp_bounds(x - alpha * ((p - 0.5) / g2) * g, bounds)
    return x


__all__ = [
    "AttackResult",
    "step_direction",
    "project",
    "clamp_bounds",
    "fgsm",
    "pgd",
    "attack",
    "counterfactual_to_boundary",
]
