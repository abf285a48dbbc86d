"""Core typing contracts for gradlens."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

Array = np.ndarray


class ActivationKind(str, Enum):
    """Hidden-layer nonlinearity."""

    TANH = "tanh"
    RELU = "relu"
    SIGMOID = "sigmoid"


class LossKind(str, Enum):
    MSE = "mse"
    BCE = "bce"


class OutputMode(str, Enum):
    """How the output layer turns its affine result into predictions.

    ``LOGITS`` keeps the output layer linear and lets the loss interpret the
    raw logit; ``SIGMOID`` squashes the output inside the network.
    """

    LOGITS = "logits"
    SIGMOID = "sigmoid"


class NormKind(str, Enum):
    L1 = "l1"
    L2 = "l2"
    LINF = "linf"


class AttackKind(str, Enum):
    FGSM = "fgsm"
    PGD = "pgd"


def coerce_kind(enum_cls, value):
    """Return ``value`` as a member of ``enum_cls`` accepting names or values."""

    if isinstance(value, enum_cls):
        return value
    key = str(value).strip().lower()
    for member in enum_cls:
        if member.value == key or member.name.lower() == key:
            return member
    available = ", ".join(m.value for m in enum_cls)
    raise ValueError(f"Unknown {enum_cls.__name__}: {value!r}. Available: {available}")


@dataclass(frozen=True)
class Batch:
    """A single mini-batch of data."""

    inputs: Array
    targets: Array


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`gradlens.training.pipelines.run_pipeline`."""

    steps: int
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    explain_path: str = ""


@dataclass
class LayerCache:
    """Intermediate tensors of one layer for a single forward/backward pass.

    ``dZ`` keeps the per-sample pre-activation gradient. ``dW`` and ``db``
    hold batch-summed gradients; divide by the batch size
    (or use :meth:`mean_grads`) to obtain the gradient of the mean loss.
    """

    inputs: Array
    Z: Array
    A: Array
    drop_mask: Optional[Array] = None
    dZ: Optional[Array] = None
    dW: Optional[Array] = None
    db: Optional[Array] = None

    @property
    def batch_size(self) -> int:
        return int(self.Z.shape[0])

    def mean_grads(self) -> Tuple[Array, Array]:
        if self.dW is None or self.db is None:
            raise ValueError("Layer cache has no gradients; run forward with targets first")
        n = max(1, self.batch_size)
        return self.dW / n, self.db / n


@dataclass
class ForwardPass:
    """Value object produced by :meth:`FeedForwardNetwork.forward`."""

    generation: int
    caches: List[LayerCache]
    predictions: Array
    loss: float = 0.0
    train: bool = False
    has_grads: bool = False

    @property
    def batch_size(self) -> int:
        return int(self.predictions.shape[0])

    @property
    def logits(self) -> Array:
        return self.caches[-1].Z


__all__ = [
    "Array",
    "ActivationKind",
    "LossKind",
    "OutputMode",
    "NormKind",
    "AttackKind",
    "coerce_kind",
    "Batch",
    "RunResult",
    "LayerCache",
    "ForwardPass",
]
