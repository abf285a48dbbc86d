"""Post-hoc explanation algorithms for :class:`FeedForwardNetwork`."""

from .adversarial import AttackResult, attack, counterfactual_to_boundary, fgsm, pgd, project, step_direction
from .integrated_gradients import completeness_gap, integrated_gradients
from .saliency import gradient_field, logit_gradient, loss_gradient, probability_gradient, saliency, world_bounds
from .surrogate import Surrogate, boundary_segment, fit_local_surrogate, solve_3x3

__all__ = [
    "AttackResult",
    "attack",
    "counterfactual_to_boundary",
    "fgsm",
    "pgd",
    "project",
    "step_direction",
    "completeness_gap",
    "integrated_gradients",
    "gradient_field",
    "logit_gradient",
    "loss_gradient",
    "probability_gradient",
    "saliency",
    "world_bounds",
    "Surrogate",
    "boundary_segment",
    "fit_local_surrogate",
    "solve_3x3",
]
