import numpy as np
import pytest

from gradlens.core.network import FeedForwardNetwork
from gradlens.core.types import NormKind
from gradlens.explain import (
    attack,
    boundary_segment,
    completeness_gap,
    counterfactual_to_boundary,
    fgsm,
    fit_local_surrogate,
    gradient_field,
    integrated_gradients,
    logit_gradient,
    loss_gradient,
    pgd,
    probability_gradient,
    project,
    saliency,
    solve_3x3,
    step_direction,
    world_bounds,
)


def _diagonal_net():
    """Boundary on the line y = -x: z = tanh(x / 2) + tanh(y / 2)."""

    net = FeedForwardNetwork([2, 2, 1], activation="tanh", seed=0)
    net.load_state_dict(
        {
            "W0": np.array([[0.5, 0.0], [0.0, 0.5]]),
            "b0": np.zeros(2),
            "W1": np.array([[2.0], [2.0]]),
            "b1": np.zeros(1),
        }
    )
    return net


def _numeric_input_grad(fn, x, h=1e-6):
    grad = np.zeros(2)
    for i in range(2):
        step = np.zeros(2)
        step[i] = h
        grad[i] = (fn(x + step) - fn(x - step)) / (2 * h)
    return grad


@pytest.mark.parametrize("activation", ["tanh", "relu", "sigmoid"])
def test_saliency_matches_finite_differences(activation):
    net = FeedForwardNetwork.build(2, 5, 1, layers=2, activation=activation, seed=21)
    x = np.array([0.37, -0.81])
    logit = lambda p: net.forward_pass(p, record=False).logits[0, 0]  # noqa: E731
    prob = lambda p: net.predict(p)[0, 0]  # noqa: E731
    assert np.allclose(logit_gradient(net, x), _numeric_input_grad(logit, x), atol=1e-6)
    assert np.allclose(probability_gradient(net, x), _numeric_input_grad(prob, x), atol=1e-6)
    assert np.allclose(saliency(net, x), logit_gradient(net, x))


def test_loss_gradient_is_chain_of_residual_and_logit_gradient():
    net = FeedForwardNetwork.build(2, 4, 1, seed=3)
    x = np.array([0.2, 0.4])
    p = net.predict(x)[0, 0]
    assert np.allclose(loss_gradient(net, x, 1.0), (p - 1.0) * logit_gradient(net, x))
    loss = lambda q: net.forward_pass(q, np.array([[1.0]]), record=False).loss  # noqa: E731
    assert np.allclose(loss_gradient(net, x, 1.0), _numeric_input_grad(loss, x), atol=1e-6)


def test_saliency_rejects_batches_and_unknown_targets():
    net = FeedForwardNetwork.build(seed=3)
    with pytest.raises(ValueError):
        saliency(net, np.zeros((2, 2)))
    with pytest.raises(ValueError):
        saliency(net, [0.0, 0.0], wrt="loss")


def test_saliency_keeps_training_pass():
    net = FeedForwardNetwork.build(seed=3)
    net.forward(np.ones((4, 2)), np.ones(4))
    generation = net.last_pass.generation
    saliency(net, [10.0, -10.0])
    integrated_gradients(net, [1.0, 1.0], steps=4)
    assert net.last_pass.generation == generation


def test_gradient_field_covers_grid():
    net = _diagonal_net()
    points, grads = gradient_field(net, (np.array([-1.0, -1.0]), np.array([1.0, 1.0])), grid=4)
    assert points.shape == grads.shape == (16, 2)
    assert np.allclose(points[0], [-1.0, -1.0])
    assert np.allclose(points[1, 1], -1.0)
    assert np.allclose(points[-1], [1.0, 1.0])


def test_integrated_gradients_completeness_improves_with_steps():
    net = FeedForwardNetwork.build(2, 6, 1, layers=2, seed=11)
    x = np.array([1.4, -0.9])
    coarse = completeness_gap(net, x, steps=8)
    fine = completeness_gap(net, x, steps=128)
    assert fine < coarse
    assert fine < 1e-2


def test_integrated_gradients_vanishes_at_baseline():
    net = _diagonal_net()
    assert np.allclose(integrated_gradients(net, [0.0, 0.0]), 0.0)
    attributions = integrated_gradients(net, [1.0, 1.0], baseline=[-1.0, -1.0], steps=64)
    assert attributions[0] == pytest.approx(attributions[1])


def test_solve_3x3_matches_numpy_and_handles_singular():
    A = np.array([[4.0, 1.0, 0.5], [1.0, 3.0, 0.2], [0.5, 0.2, 2.0]])
    b = np.array([1.0, -2.0, 0.5])
    assert np.allclose(solve_3x3(A, b), np.linalg.solve(A, b))
    assert np.array_equal(solve_3x3(np.ones((3, 3)), b), np.zeros(3))


def test_surrogate_degenerates_to_zero_on_collinear_samples():
    net = _diagonal_net()
    surrogate = fit_local_surrogate(net, [0.0, 0.0], samples=2)
    assert surrogate.degenerate
    assert surrogate.boundary_segment([-1, -1], [1, 1]) is None


def test_surrogate_boundary_passes_near_point_on_decision_boundary():
    net = _diagonal_net()
    point = np.array([0.3, -0.3])
    assert net.predict(point)[0, 0] == pytest.approx(0.5)
    surrogate = fit_local_surrogate(net, point, sigma=0.15, samples=128, seed=4)
    assert not surrogate.degenerate
    assert surrogate.boundary_distance(point) < 0.05
    assert surrogate.bx > 0 and surrogate.by > 0


def test_surrogate_is_reproducible_for_seed():
    net = FeedForwardNetwork.build(seed=2)
    a = fit_local_surrogate(net, [0.1, 0.2], seed=9)
    b = fit_local_surrogate(net, [0.1, 0.2], seed=9)
    assert np.array_equal(a.coefficients, b.coefficients)


def test_boundary_segment_clips_line_to_box():
    segment = boundary_segment([0.5, 1.0, -1.0], [-1.0, -1.0], [1.0, 1.0])
    assert segment is not None
    start, end = segment
    assert np.allclose(start, [-1.0, -1.0])
    assert np.allclose(end, [1.0, 1.0])
    assert boundary_segment([5.0, 1.0, 0.0], [-1.0, -1.0], [1.0, 1.0]) is None


def test_step_directions_per_norm():
    g = np.array([3.0, -4.0])
    assert np.allclose(step_direction(g, "linf"), [1.0, -1.0])
    assert np.allclose(step_direction(g, NormKind.L2), [0.6, -0.8])
    assert np.allclose(step_direction(g, "l1"), [3.0 / 7.0, -4.0 / 7.0])
    assert np.allclose(step_direction(np.zeros(2), "l2"), 0.0)


def test_projection_per_norm():
    center = np.zeros(2)
    assert np.allclose(project([3.0, -0.5], center, 1.0, "linf"), [1.0, -0.5])
    assert np.allclose(project([3.0, 4.0], center, 1.0, "l2"), [0.6, 0.8])
    assert np.allclose(project([3.0, 1.0], center, 1.0, "l1"), [0.75, 0.25])
    assert np.allclose(project([0.1, 0.1], center, 1.0, "l2"), [0.1, 0.1])


@pytest.mark.parametrize("norm", ["l1", "l2", "linf"])
def test_fgsm_stays_in_ball_and_increases_loss(norm):
    net = _diagonal_net()
    x0 = np.array([0.4, 0.2])
    result = fgsm(net, x0, 1.0, eps=0.3, norm=norm)
    offset = result.point - x0
    radius = {"l1": np.abs(offset).sum(), "l2": np.linalg.norm(offset), "linf": np.abs(offset).max()}[norm]
    assert radius <= 0.3 + 1e-9
    assert result.probability < net.predict(x0)[0, 0]
    assert result.steps_taken == 1


def test_pgd_stop_at_flip_changes_label():
    net = _diagonal_net()
    x0 = np.array([1.0, 1.0])
    assert net.predict_labels(x0)[0, 0] == 1
    result = pgd(net, x0, 1.0, eps=5.0, norm="l2", steps=100, alpha=0.2, stop_at_flip=True)
    assert result.flipped
    assert result.predicted_label == 0
    assert result.steps_taken < 100
    assert len(result.path) == result.steps_taken + 1


def test_pgd_respects_ball_and_bounds():
    net = _diagonal_net()
    x0 = np.array([0.5, 0.5])
    bounds = (np.array([0.0, 0.0]), np.array([1.0, 1.0]))
    result = attack(net, x0, 1.0, 0.25, "linf", "pgd", steps=20, alpha=0.05, bounds=bounds)
    for point in result.path:
        assert np.all(np.abs(point - x0) <= 0.25 + 1e-9)
        assert np.all(point >= 0.0) and np.all(point <= 1.0)


def test_pgd_default_alpha():
    net = _diagonal_net()
    result = pgd(net, [1.0, 1.0], 1.0, eps=0.05, norm="linf", steps=1, project_to_ball=False)
    assert np.allclose(np.abs(result.point - np.array([1.0, 1.0])), 0.05)


def test_counterfactual_reaches_boundary():
    net = _diagonal_net()
    point = counterfactual_to_boundary(net, [1.0, 1.0], steps=10)
    assert net.predict(point)[0, 0] == pytest.approx(0.5, abs=0.05)


def test_world_bounds_pads_extent():
    lo, hi = world_bounds(np.array([[0.0, 0.0], [2.0, 1.0]]))
    assert np.allclose(lo, [-0.3, -0.15])
    assert np.allclose(hi, [2.3, 1.15])
    with pytest.raises(ValueError):
        world_bounds(np.zeros((0, 2)))


def test_explainers_tolerate_far_points():
    net = FeedForwardNetwork.build(seed=5)
    far = np.array([1e3, -1e3])
    assert np.all(np.isfinite(saliency(net, far, wrt="probability")))
    assert np.all(np.isfinite(integrated_gradients(net, far, steps=4)))
    assert np.all(np.isfinite(fit_local_surrogate(net, far).coefficients))
