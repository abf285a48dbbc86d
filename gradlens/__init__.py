"""gradlens public API."""

from .core import activations  # noqa: F401
from .core import types  # noqa: F401
from .core.network import FeedForwardNetwork, Layer
from .core.types import ActivationKind, AttackKind, LossKind, NormKind, OutputMode
from .explain import (
    attack,
    counterfactual_to_boundary,
    fgsm,
    fit_local_surrogate,
    integrated_gradients,
    pgd,
    saliency,
)
from .training.optimizers import SGD, Adam, Momentum, make_optimizer
from .training.pipelines import load_preset, presets, run_pipeline
from .training.trainer import Trainer, compare_optimizers

__all__ = [
    "ActivationKind",
    "AttackKind",
    "LossKind",
    "NormKind",
    "OutputMode",
    "FeedForwardNetwork",
    "Layer",
    "SGD",
    "Momentum",
    "Adam",
    "make_optimizer",
    "Trainer",
    "compare_optimizers",
    "saliency",
    "integrated_gradients",
    "fit_local_surrogate",
    "fgsm",
    "pgd",
    "attack",
    "counterfactual_to_boundary",
    "activations",
    "types",
    "load_preset",
    "presets",
    "run_pipeline",
]
