import numpy as np
import pytest

from gradlens.core.network import FeedForwardNetwork
from gradlens.core.types import ActivationKind, LossKind, OutputMode

COMBOS = [
    (LossKind.BCE, OutputMode.LOGITS),
    (LossKind.BCE, OutputMode.SIGMOID),
    (LossKind.MSE, OutputMode.LOGITS),
    (LossKind.MSE, OutputMode.SIGMOID),
]


def _batch(n=5, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n, 2))
    Y = (rng.random((n, 1)) > 0.5).astype(np.float64)
    return X, Y


def _loss(net, X, Y, *, train=False, mask_seed=None):
    if mask_seed is not None:
        net._dropout_rng = np.random.default_rng(mask_seed)
    return net.forward_pass(X, Y, train=train, record=False).loss


def _numeric_grads(net, X, Y, *, train=False, mask_seed=None, h=1e-6):
    grads = []
    for layer in net.layers:
        pair = []
        for param in (layer.W, layer.b):
            g = np.zeros_like(param)
            for idx in np.ndindex(param.shape):
                orig = param[idx]
                param[idx] = orig + h
                up = _loss(net, X, Y, train=train, mask_seed=mask_seed)
                param[idx] = orig - h
                down = _loss(net, X, Y, train=train, mask_seed=mask_seed)
                param[idx] = orig
                g[idx] = (up - down) / (2 * h)
            pair.append(g)
        grads.append(pair)
    return grads


@pytest.mark.parametrize("activation", list(ActivationKind))
@pytest.mark.parametrize("loss,output", COMBOS)
def test_backward_matches_finite_differences(activation, loss, output):
    net = FeedForwardNetwork.build(2, 4, 1, layers=2, activation=activation, loss=loss, output=output, seed=5)
    # Nonzero biases keep every ReLU pre-activation off the kink at 0.
    for layer in net.layers:
        layer.b += 0.05
    X, Y = _batch()
    fp = net.forward_pass(X, Y)
    numeric = _numeric_grads(net, X, Y)
    for cache, (num_W, num_b) in zip(fp.caches, numeric):
        dW, db = cache.mean_grads()
        assert np.allclose(dW, num_W, rtol=1e-3, atol=1e-7)
        assert np.allclose(db, num_b, rtol=1e-3, atol=1e-7)


def test_dropout_backward_reuses_forward_mask():
    net = FeedForwardNetwork.build(2, 6, 1, layers=2, activation="relu", dropout=0.3, seed=2)
    X, Y = _batch(n=7, seed=3)
    net._dropout_rng = np.random.default_rng(42)
    fp = net.forward_pass(X, Y, train=True)
    assert fp.caches[0].drop_mask is not None
    assert fp.caches[-1].drop_mask is None
    kept = fp.caches[0].drop_mask[fp.caches[0].drop_mask > 0]
    assert np.allclose(kept, 1.0 / 0.7)
    numeric = _numeric_grads(net, X, Y, train=True, mask_seed=42)
    for cache, (num_W, num_b) in zip(fp.caches, numeric):
        dW, db = cache.mean_grads()
        assert np.allclose(dW, num_W, rtol=1e-3, atol=1e-7)
        assert np.allclose(db, num_b, rtol=1e-3, atol=1e-7)


def test_batch_of_one_uses_unscaled_gradient():
    net = FeedForwardNetwork.build(2, 3, 1, seed=9)
    X, Y = _batch(n=1, seed=4)
    fp = net.forward_pass(X, Y)
    numeric = _numeric_grads(net, X, Y)
    dW, _ = fp.caches[0].mean_grads()
    assert np.allclose(fp.caches[0].dW, dW)
    assert np.allclose(dW, numeric[0][0], rtol=1e-3, atol=1e-7)


def test_reset_weights_is_deterministic():
    net = FeedForwardNetwork.build(2, 5, 1, layers=3, activation="relu", seed=17)
    first = net.state_dict()
    net.layers[0].W += 1.0
    net.reset_weights(17)
    second = net.state_dict()
    assert first.keys() == second.keys()
    for name in first:
        assert np.array_equal(first[name], second[name])
    net.reset_weights(18)
    assert not np.array_equal(first["W0"], net.layers[0].W)


def test_initialisation_scales():
    relu = FeedForwardNetwork([2, 400, 1], activation="relu", init="uniform", seed=0)
    assert np.abs(relu.layers[0].W).max() <= np.sqrt(6.0 / 2) + 1e-12
    tanh = FeedForwardNetwork([2, 400, 1], activation="tanh", init="gaussian", seed=0)
    assert tanh.layers[0].W.std() == pytest.approx(np.sqrt(1.0 / 2), rel=0.1)
    assert np.all(tanh.layers[0].b == 0.0)


def test_build_clamps_hidden_layers():
    assert len(FeedForwardNetwork.build(layers=0).layers) == 2
    assert len(FeedForwardNetwork.build(layers=7).layers) == 4


def test_forward_without_targets_is_inference_only():
    net = FeedForwardNetwork.build(seed=1)
    loss, preds = net.forward(np.zeros((3, 2)))
    assert loss == 0.0
    assert preds.shape == (3, 1)
    with pytest.raises(ValueError):
        net.gradients()


def test_shape_errors_fail_fast():
    net = FeedForwardNetwork.build(seed=1)
    with pytest.raises(ValueError):
        net.forward(np.zeros((3, 3)))
    with pytest.raises(ValueError):
        net.forward(np.zeros((3, 2)), np.zeros((4, 1)))
    with pytest.raises(ValueError):
        FeedForwardNetwork([2, 3, 1], dropout=1.0)
    with pytest.raises(ValueError):
        FeedForwardNetwork([2, 3, 1], activation="swish")


def test_caches_follow_latest_batch_size():
    net = FeedForwardNetwork.build(seed=3)
    net.forward(np.zeros((8, 2)), np.zeros(8))
    net.forward(np.zeros((2, 2)), np.zeros(2))
    assert net.last_pass.batch_size == 2
    assert all(cache.Z.shape[0] == 2 for cache in net.last_pass.caches)


def test_explanation_passes_do_not_replace_training_pass():
    net = FeedForwardNetwork.build(seed=3)
    net.forward(np.ones((4, 2)), np.ones(4))
    generation = net.last_pass.generation
    net.predict(np.zeros((1, 2)))
    assert net.last_pass.generation == generation
    assert net.last_pass.has_grads


def test_clone_and_state_dict_are_independent():
    net = FeedForwardNetwork.build(2, 4, 1, seed=8, l2=0.1)
    twin = net.clone()
    X = np.array([[0.3, -0.2]])
    assert np.allclose(net.predict(X), twin.predict(X))
    twin.layers[0].W[0, 0] += 1.0
    assert not np.allclose(net.layers[0].W, twin.layers[0].W)
    with pytest.raises(ValueError):
        net.load_state_dict({**net.state_dict(), "W0": np.zeros((3, 3))})
    with pytest.raises(KeyError):
        net.load_state_dict({"W0": net.layers[0].W})


def test_bce_logits_report_probabilities():
    net = FeedForwardNetwork.build(seed=4, loss="bce", output="logits")
    fp = net.forward_pass(np.array([[0.5, -1.0]]), record=False)
    assert np.allclose(fp.predictions, 1.0 / (1.0 + np.exp(-fp.logits)))
    mse = FeedForwardNetwork.build(seed=4, loss="mse", output="logits")
    fp = mse.forward_pass(np.array([[0.5, -1.0]]), record=False)
    assert np.allclose(fp.predictions, fp.logits)
