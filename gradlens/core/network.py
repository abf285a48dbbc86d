"""Dense feed-forward network with hand-written backpropagation."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np

from . import activations, losses
from . import tensor_ops as T
from .types import (
    ActivationKind,
    Array,
    ForwardPass,
    LayerCache,
    LossKind,
    OutputMode,
    coerce_kind,
)

MIN_HIDDEN_LAYERS = 1
MAX_HIDDEN_LAYERS = 3

ShapeSignature = Tuple[Tuple[Tuple[int, int], Tuple[int]], ...]

_GENERATIONS = itertools.count(1)


class Optimizer(Protocol):
    """Minimal interface :meth:`FeedForwardNetwork.step_update` relies on."""

    def is_bound_to(self, network: "FeedForwardNetwork") -> bool:
        ...

    def has_state(self) -> bool:
        ...

    def reset(self, network: "FeedForwardNetwork") -> None:
        ...

    def apply(self, network: "FeedForwardNetwork", batch_size: int) -> None:
        ...


@dataclass
class Layer:
    """One affine transform ``Z = X @ W + b``."""

    W: Array
    b: Array

    @property
    def fan_in(self) -> int:
        return int(self.W.shape[0])

    @property
    def fan_out(self) -> int:
        return int(self.W.shape[1])

    def affine(self, inputs: Array) -> Array:
        return T.add_bias_row(T.matmul(inputs, self.W), self.b)


@dataclass
class FeedForwardNetwork:
    """Feed-forward binary classifier/regressor over small 2-D inputs.

    ``layer_dims`` lists the input width, each hidden width and the output
    width. Hidden layers share ``activation``; the output layer is linear in
    ``OutputMode.LOGITS`` and sigmoid in ``OutputMode.SIGMOID``. The output
    convention is fixed for the lifetime of the instance.
    """

    layer_dims: Sequence[int]
    activation: ActivationKind | str = ActivationKind.TANH
    loss: LossKind | str = LossKind.BCE
    output: OutputMode | str = OutputMode.LOGITS
    lr: float = 0.05
    seed: int = 123
    dropout: float = 0.0
    l1: float = 0.0
    l2: float = 0.0
    init: str = "uniform"
    layers: List[Layer] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.activation = coerce_kind(ActivationKind, self.activation)
        self.loss = coerce_kind(LossKind, self.loss)
        self.output = coerce_kind(OutputMode, self.output)
        self.layer_dims = [int(d) for d in self.layer_dims]
        if len(self.layer_dims) < 2 or min(self.layer_dims) < 1:
            raise ValueError(f"layer_dims must hold at least two positive widths, got {self.layer_dims}")
        if not 0.0 <= self.dropout < 1.0:
            raise ValueError(f"dropout must be in [0, 1), got {self.dropout}")
        if self.init not in {"uniform", "gaussian"}:
            raise ValueError(f"Unknown init scheme: {self.init!r}")
        self.weights_version = 0
        self.last_pass: Optional[ForwardPass] = None
        self.last_grad_pass: Optional[ForwardPass] = None
        self.reset_weights(self.seed)

    @classmethod
    def build(
        cls,
        d_in: int = 2,
        hidden: int = 3,
        d_out: int = 1,
        layers: int = 1,
        **kwargs,
    ) -> "FeedForwardNetwork":
        """Build ``d_in -> hidden x layers -> d_out`` with 1..3 hidden layers."""

        layers = min(max(int(layers), MIN_HIDDEN_LAYERS), MAX_HIDDEN_LAYERS)
        dims = [d_in] + [hidden] * layers + [d_out]
        return cls(layer_dims=dims, **kwargs)

    # ------------------------------------------------------------------
    # Parameters

    def reset_weights(self, seed: int | None = None) -> None:
        """Replace every layer with freshly initialised parameters.

        The same ``seed`` always yields identical weights. Any optimizer state
        tied to the previous parameters is invalidated.
        """

        if seed is not None:
            self.seed = int(seed)
        rng = np.random.default_rng(self.seed)
        self._dropout_rng = np.random.default_rng(self.seed + 1)
        dims = self.layer_dims
        last = len(dims) - 2
        self.layers = [
            Layer(
                W=self._init_weight(rng, fan_in, fan_out, hidden=idx < last),
                b=np.zeros(fan_out, dtype=np.float64),
            )
            for idx, (fan_in, fan_out) in enumerate(zip(dims[:-1], dims[1:]))
        ]
        self.weights_version += 1
        self.last_pass = None
        self.last_grad_pass = None

    def _init_weight(self, rng: np.random.Generator, fan_in: int, fan_out: int, *, hidden: bool) -> Array:
        # He for ReLU hidden layers, Glorot/Xavier otherwise.
        he = hidden and self.activation is ActivationKind.RELU
        if self.init == "uniform":
            limit = math.sqrt(6.0 / fan_in) if he else math.sqrt(6.0 / (fan_in + fan_out))
            return rng.uniform(-limit, limit, size=(fan_in, fan_out))
        scale = math.sqrt((2.0 if he else 1.0) / max(1, fan_in))
        return rng.standard_normal((fan_in, fan_out)) * scale

    def shape_signature(self) -> ShapeSignature:
        return tuple((layer.W.shape, layer.b.shape) for layer in self.layers)

    def parameter_count(self) -> int:
        return int(sum(layer.W.size + layer.b.size for layer in self.layers))

    def state_dict(self) -> Mapping[str, Array]:
        state = {}
        for idx, layer in enumerate(self.layers):
            state[f"W{idx}"] = layer.W.copy()
            state[f"b{idx}"] = layer.b.copy()
        return state

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        for idx, layer in enumerate(self.layers):
            for name, current in ((f"W{idx}", layer.W), (f"b{idx}", layer.b)):
                if name not in state:
                    raise KeyError(f"Missing parameter {name} in state dict")
                value = np.asarray(state[name], dtype=np.float64)
                if value.shape != current.shape:
                    raise ValueError(f"{name} has shape {value.shape}, expected {current.shape}")
            layer.W = np.array(state[f"W{idx}"], dtype=np.float64)
            layer.b = np.array(state[f"b{idx}"], dtype=np.float64)
        self.weights_version += 1
        self.last_pass = None
        self.last_grad_pass = None

    def clone(self) -> "FeedForwardNetwork":
        """Return an independent network with identical weights and settings."""

        twin = FeedForwardNetwork(
            layer_dims=list(self.layer_dims),
            activation=self.activation,
            loss=self.loss,
            output=self.output,
            lr=self.lr,
            seed=self.seed,
            dropout=self.dropout,
            l1=self.l1,
            l2=self.l2,
            init=self.init,
        )
        twin.load_state_dict(self.state_dict())
        return twin

    # ------------------------------------------------------------------
    # Forward / backward

    def forward(self, X: Array, Y: Array | None = None, train: bool = False) -> Tuple[float, Array]:
        """Run the network on ``X`` and return ``(loss, predictions)``.

        With ``Y`` the loss is computed and gradients are cached for
        :meth:`step_update`; without it the call is inference only and the
        loss is ``0.0``. ``train`` enables dropout sampling.
        """

        fp = self.forward_pass(X, Y, train=train)
        return fp.loss, fp.predictions

    def forward_pass(
        self,
        X: Array,
        Y: Array | None = None,
        *,
        train: bool = False,
        record: bool = True,
    ) -> ForwardPass:
        """Run a full pass and return its caches as a :class:`ForwardPass`.

        ``record=False`` leaves :attr:`last_pass` untouched, which is how the
        explainers evaluate points without clobbering a training pass.
        """

        X = self._check_inputs(X)
        phi, _ = activations.get(self.activation)
        caches: List[LayerCache] = []
        a = X
        last = len(self.layers) - 1
        for idx, layer in enumerate(self.layers):
            z = layer.affine(a)
            mask = None
            if idx < last:
                out = T.apply(z, phi)
                if train and self.dropout > 0.0:
                    keep = 1.0 - self.dropout
                    mask = (self._dropout_rng.random(out.shape) < keep) / keep
                    out = T.hadamard(out, mask)
            elif self.output is OutputMode.SIGMOID:
                out = activations.sigmoid(z)
            else:
                out = z
            caches.append(LayerCache(inputs=a, Z=z, A=out, drop_mask=mask))
            a = out

        fp = ForwardPass(
            generation=next(_GENERATIONS),
            caches=caches,
            predictions=self._predictions(caches[-1]),
            train=train,
        )
        if Y is not None:
            Y = self._check_targets(Y, fp.batch_size)
            loss_value, grad = losses.get(self.loss)(fp.predictions, Y)
            fp.loss = loss_value
            self._backward(fp, self._output_delta(fp.predictions, grad))
            fp.has_grads = True
        if record:
            self.last_pass = fp
            if fp.has_grads:
                self.last_grad_pass = fp
        return fp

    def _predictions(self, out_cache: LayerCache) -> Array:
        if self.output is OutputMode.LOGITS and self.loss is LossKind.BCE:
            return activations.sigmoid(out_cache.Z)
        return out_cache.A

    def _output_delta(self, predictions: Array, grad: Array) -> Array:
        """Turn the loss gradient into ``dL/dZ`` of the output layer."""

        if self.loss is LossKind.BCE:
            # sigmoid + BCE: the registry already returns dL/dz = p - y.
            return grad
        if self.output is OutputMode.SIGMOID:
            # MSE behind a sigmoid needs the full chain (p - y) * p * (1 - p).
            return grad * predictions * (1.0 - predictions)
        return grad

    def output_derivative(self, logits: Array) -> Array:
        """``dP/dZ`` of the reported predictions with respect to the logits."""

        if self.output is OutputMode.SIGMOID or self.loss is LossKind.BCE:
            p = activations.sigmoid(logits)
            return p * (1.0 - p)
        return np.ones_like(logits)

    def output_delta(self, X: Array, Y: Array) -> Array:
        """``dL/dZ`` at the output for ``(X, Y)`` without touching caches."""

        fp = self.forward_pass(X, record=False)
        Y = self._check_targets(Y, fp.batch_size)
        _, grad = losses.get(self.loss)(fp.predictions, Y)
        return self._output_delta(fp.predictions, grad)

    def _backward(self, fp: ForwardPass, dZ: Array) -> None:
        _, dphi = activations.get(self.activation)
        last = len(self.layers) - 1
        dA: Array | None = None
        for idx in range(last, -1, -1):
            cache = fp.caches[idx]
            if idx < last:
                dZ = T.hadamard(dA, T.apply(cache.Z, dphi))
                if cache.drop_mask is not None:
                    dZ = T.hadamard(dZ, cache.drop_mask)
            cache.dZ = dZ
            cache.dW = T.matmul(T.transpose(cache.inputs), dZ)
            cache.db = T.col_sum(dZ)
            if idx > 0:
                dA = T.matmul(dZ, T.transpose(self.layers[idx].W))

    # ------------------------------------------------------------------
    # Updates

    def gradients(self) -> List[Tuple[Array, Array]]:
        """Batch-summed ``(dW, db)`` per layer from the last forward-with-targets pass."""

        fp = self.last_grad_pass
        if fp is None or not fp.has_grads:
            raise ValueError("No gradients available; call forward(X, Y) before stepping")
        return [(cache.dW, cache.db) for cache in fp.caches]

    def step_update(self, optimizer: Optimizer, batch_size: int | None = None) -> None:
        """Apply one optimizer update using the last forward-with-targets pass."""

        fp = self.last_grad_pass
        if fp is None or not fp.has_grads:
            raise ValueError("No gradients available; call forward(X, Y) before stepping")
        if not optimizer.is_bound_to(self):
            optimizer.reset(self)
        optimizer.apply(self, fp.batch_size if batch_size is None else int(batch_size))

    def regularised(self, W: Array, grad: Array) -> Array:
        """Add the configured L1/L2 terms to a normalised weight gradient."""

        if self.l1 > 0.0:
            grad = grad + self.l1 * np.sign(W)
        if self.l2 > 0.0:
            grad = grad + self.l2 * W
        return grad

    # ------------------------------------------------------------------
    # Convenience

    def predict(self, X: Array) -> Array:
        return self.forward_pass(X, record=False).predictions

    def predict_labels(self, X: Array, threshold: float = 0.5) -> Array:
        return (self.predict(X) >= threshold).astype(np.int64)

    def _check_inputs(self, X: Array) -> Array:
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        if X.ndim != 2 or X.shape[1] != self.layer_dims[0]:
            raise ValueError(f"Expected inputs of shape (N, {self.layer_dims[0]}), got {X.shape}")
        return X

    def _check_targets(self, Y: Array, batch: int) -> Array:
        Y = np.asarray(Y, dtype=np.float64)
        if Y.ndim == 1:
            Y = Y.reshape(-1, 1)
        if Y.shape != (batch, self.layer_dims[-1]):
            raise ValueError(f"Targets of shape {Y.shape} do not match predictions ({batch}, {self.layer_dims[-1]})")
        return Y


__all__ = ["Layer", "FeedForwardNetwork", "Optimizer", "MIN_HIDDEN_LAYERS", "MAX_HIDDEN_LAYERS"]
