"""Deterministic fixed-step training loops for gradlens networks."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

import numpy as np

from ..core.network import FeedForwardNetwork, Optimizer
from ..core.types import Batch, RunResult
from .metrics import DEFAULT_METRICS, compute_metrics, generalization_gap


def evaluate(
    network: FeedForwardNetwork,
    batch: Batch,
    metric_names: Sequence[str] = DEFAULT_METRICS,
) -> Dict[str, float]:
    """Loss and metrics on ``batch`` without disturbing the training caches."""

    fp = network.forward_pass(batch.inputs, batch.targets, record=False)
    metrics = {"loss": float(fp.loss)}
    metrics.update(compute_metrics(metric_names, fp.predictions, batch.targets))
    return metrics


class Trainer:
    """Run single-step training loops with pluggable callbacks."""

    def __init__(
        self,
        network: FeedForwardNetwork,
        optimizer: Optimizer,
        callbacks: Sequence[object] | None = None,
    ) -> None:
        self.network = network
        self.optimizer = optimizer
        self.callbacks = list(callbacks or [])
        self.history: List[Tuple[int, Mapping[str, float]]] = []

    def run(
        self,
        batches: Iterable[Batch],
        steps: int,
        *,
        seed: int | None = None,
        eval_data: Mapping[str, Batch] | None = None,
        eval_every: int = 0,
        metric_names: Sequence[str] = DEFAULT_METRICS,
        split_loggers: Mapping[str, Sequence[object]] | None = None,
    ) -> RunResult:
        """Train for ``steps`` updates drawn from ``batches``.

        ``batches`` is re-iterated when exhausted. With ``seed`` the network is
        re-initialised first. Every ``eval_every`` steps each split of
        ``eval_data`` is evaluated and reported to ``split_loggers[split]``
        (``"eval_train"`` for the training split, whose ``"train"`` loggers
        receive the per-step loss); when both ``train`` and ``val`` are present the validation record
        carries the generalisation ``gap``.
        """

        if steps < 0:
            raise ValueError(f"steps must be non-negative, got {steps}")
        if seed is not None:
            self.network.reset_weights(seed)
        split_loggers = split_loggers or {}
        eval_data = eval_data or {}
        iterator = self._cycle(batches)

        for step in range(1, steps + 1):
            batch = next(iterator)
            loss, _ = self.network.forward(batch.inputs, batch.targets, train=True)
            if not np.isfinite(loss):
                raise FloatingPointError(f"Loss diverged at step {step}: {loss}")
            self.network.step_update(self.optimizer, batch_size=len(batch.inputs))
            metrics = {"loss": float(loss)}
            self.history.append((step, metrics))
            self._emit("train", step, metrics, split_loggers, callbacks=True)

            if eval_every and eval_data and (step % eval_every == 0 or step == steps):
                self._evaluate_splits(step, eval_data, metric_names, split_loggers)

        return RunResult(steps=steps, metrics_path="", manifest_path="")

    # ------------------------------------------------------------------
    # Internal helpers

    def _evaluate_splits(
        self,
        step: int,
        eval_data: Mapping[str, Batch],
        metric_names: Sequence[str],
        loggers: Mapping[str, Sequence[object]],
    ) -> None:
        results = {split: evaluate(self.network, batch, metric_names) for split, batch in eval_data.items()}
        if "train" in results and "val" in results and "accuracy" in results["val"]:
            results["val"]["gap"] = generalization_gap(
                results["train"].get("accuracy", 0.0), results["val"]["accuracy"]
            )
        for split, metrics in results.items():
            self._emit(f"eval_{split}" if split == "train" else split, step, metrics, loggers)

    def _emit(
        self,
        split: str,
        step: int,
        metrics: Mapping[str, float],
        loggers: Mapping[str, Sequence[object]],
        *,
        callbacks: bool = False,
    ) -> None:
        targets = list(self.callbacks) if callbacks else []
        targets.extend(loggers.get(split, []))
        for callback in targets:
            if hasattr(callback, "on_step"):
                callback.on_step(step, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(step, metrics)

    @staticmethod
    def _cycle(batches: Iterable[Batch]) -> Iterator[Batch]:
        iterator = iter(batches)
        while True:
            try:
                yield next(iterator)
            except StopIteration:
                iterator = iter(batches)
                try:
                    yield next(iterator)
                except StopIteration:
                    raise ValueError("Training data yielded no batches") from None


def compare_optimizers(
    network: FeedForwardNetwork,
    optimizers: Mapping[str, Optimizer],
    batches: Sequence[Batch],
    *,
    eval_batch: Batch | None = None,
) -> Dict[str, List[float]]:
    """Train one clone of ``network`` per optimizer on identical batches.

    Returns the full-data loss after every step for each optimizer name. The
    source network is left untouched.
    """

    if not batches:
        raise ValueError("compare_optimizers needs at least one batch")
    if eval_batch is None:
        eval_batch = Batch(
            inputs=np.concatenate([b.inputs for b in batches], axis=0),
            targets=np.concatenate([b.targets for b in batches], axis=0),
        )
    curves: Dict[str, List[float]] = {}
    for name, optimizer in optimizers.items():
        twin = network.clone()
        curve: List[float] = []
        for batch in batches:
            twin.forward(batch.inputs, batch.targets, train=True)
            twin.step_update(optimizer, batch_size=len(batch.inputs))
            curve.append(evaluate(twin, eval_batch, ())["loss"])
        curves[name] = curve
    return curves


__all__ = ["Trainer", "evaluate", "compare_optimizers"]
