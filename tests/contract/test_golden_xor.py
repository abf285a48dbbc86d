import numpy as np
import pytest

from gradlens.core.network import FeedForwardNetwork
from gradlens.training.optimizers import SGD

XOR_X = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
XOR_Y = np.array([[0.0], [1.0], [1.0], [0.0]])

HAND_WEIGHTS = {
    "W0": np.array([[1.0, 0.0, 1.0], [0.0, 1.0, 1.0]]),
    "b0": np.array([0.0, 0.0, -1.0]),
    "W1": np.array([[1.0], [1.0], [-2.0]]),
    "b1": np.array([0.0]),
}

# Mean BCE of the hand weights on the XOR batch, computed by hand.
GOLDEN_LOSS = 0.794973

# Seed 123, tanh 2-3-1, lr 0.05: XOR loss before and after one SGD step.
SEEDED_W0_FIRST = 0.399512915616
SEEDED_LOSS_BEFORE = 0.665422277336
SEEDED_LOSS_AFTER = 0.663730608477


def _network():
    net = FeedForwardNetwork([2, 3, 1], activation="tanh", loss="bce", seed=123, lr=0.05)
    net.load_state_dict(HAND_WEIGHTS)
    return net


def test_xor_forward_loss_matches_golden_value():
    loss, preds = _network().forward(XOR_X, XOR_Y)
    assert loss == pytest.approx(GOLDEN_LOSS, abs=1e-4)
    assert preds[3, 0] == pytest.approx(0.5)


def test_one_sgd_step_lowers_loss():
    net = _network()
    before, _ = net.forward(XOR_X, XOR_Y)
    net.step_update(SGD(), batch_size=4)
    after, _ = net.forward(XOR_X, XOR_Y)
    assert after < before


def test_seeded_step_is_bit_for_bit_reproducible():
    def run():
        net = FeedForwardNetwork([2, 3, 1], activation="tanh", loss="bce", seed=123, lr=0.05)
        net.forward(XOR_X, XOR_Y)
        net.step_update(SGD(), batch_size=4)
        loss, _ = net.forward(XOR_X, XOR_Y)
        return loss, net.state_dict()

    loss_a, state_a = run()
    loss_b, state_b = run()
    assert loss_a == loss_b
    for name in state_a:
        assert np.array_equal(state_a[name], state_b[name])


def test_seeded_step_matches_golden_losses():
    net = FeedForwardNetwork([2, 3, 1], activation="tanh", loss="bce", seed=123, lr=0.05)
    assert net.layers[0].W[0, 0] == pytest.approx(SEEDED_W0_FIRST, abs=1e-10)
    before, _ = net.forward(XOR_X, XOR_Y)
    net.step_update(SGD(), batch_size=4)
    after, _ = net.forward(XOR_X, XOR_Y)
    assert before == pytest.approx(SEEDED_LOSS_BEFORE, abs=1e-9)
    assert after == pytest.approx(SEEDED_LOSS_AFTER, abs=1e-9)
