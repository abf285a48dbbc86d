"""Config-driven runs: train a network on a point set, then explain it."""

from __future__ import annotations

import json
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Mapping

import numpy as np

from ..core.network import FeedForwardNetwork
from ..core.types import AttackKind, NormKind, RunResult, coerce_kind
from ..data.loaders import PointSet, load_points, stratified_split
from ..explain import (
    attack,
    completeness_gap,
    counterfactual_to_boundary,
    fit_local_surrogate,
    integrated_gradients,
    saliency,
    world_bounds,
)
from ..reporting.artifacts import write_json, write_manifest
from ..reporting.metrics import CsvSink, JsonlSink, MetricsCapture
from ..reporting.plots import PlotAdapter, plot_decision_field
from ..reporting.summary import write_summary
from .metrics import DEFAULT_METRICS, hidden_unit_stats, roc_auc
from .optimizers import make_optimizer
from .trainer import Trainer

REQUIRED_SECTIONS = ("data", "model", "train")

_PRESETS: Dict[str, Mapping[str, object]] = {
    "blobs-tanh-sgd": {
        "data": {"val_split": 0.2, "seed": 0},
        "model": {"hidden": [3], "activation": "tanh", "loss": "bce", "output": "logits"},
        "train": {
            "steps": 200,
            "batch_size": 8,
            "seed": 123,
            "lr": 0.1,
            "optimizer": "sgd",
            "eval_every": 20,
            "run_dir": "runs/blobs-tanh-sgd",
            "enable_plots": False,
        },
    },
    "blobs-relu-adam": {
        "data": {"val_split": 0.2, "seed": 0},
        "model": {
            "hidden_dim": 8,
            "depth": 2,
            "activation": "relu",
            "loss": "bce",
            "output": "logits",
            "dropout": 0.1,
            "l2": 1e-4,
            "init": "gaussian",
        },
        "train": {
            "steps": 150,
            "batch_size": 16,
            "seed": 7,
            "lr": 0.01,
            "optimizer": "adam",
            "eval_every": 25,
            "run_dir": "runs/blobs-relu-adam",
            "enable_plots": False,
        },
    },
    "blobs-sigmoid-mse-momentum": {
        "data": {"val_split": 0.25, "seed": 1},
        "model": {"hidden": [4], "activation": "sigmoid", "loss": "mse", "output": "sigmoid"},
        "train": {
            "steps": 300,
            "batch_size": 8,
            "seed": 11,
            "lr": 1.0,
            "optimizer": "momentum",
            "beta": 0.9,
            "eval_every": 50,
            "run_dir": "runs/blobs-sigmoid-mse-momentum",
            "enable_plots": False,
        },
    },
    "blobs-explain": {
        "data": {"val_split": 0.2, "seed": 0},
        "model": {"hidden": [3], "activation": "tanh", "loss": "bce", "output": "logits"},
        "train": {
            "steps": 120,
            "batch_size": 8,
            "seed": 123,
            "lr": 0.1,
            "optimizer": "sgd",
            "eval_every": 40,
            "run_dir": "runs/blobs-explain",
            "enable_plots": False,
        },
        "explain": {
            "point": [-0.8, -0.6],
            "label": 0,
            "ig_steps": 32,
            "sigma": 0.15,
            "samples": 128,
            "eps": 1.5,
            "norm": "l2",
            "attack": "pgd",
            "steps": 40,
            "alpha": 0.1,
            "stop_at_flip": True,
        },
    },
}

_PRESET_DIR = Path(__file__).resolve().parents[2] / "configs" / "presets"
_FILE_PRESETS_CACHE: Dict[str, Mapping[str, object]] | None = None


def _read_preset_file(path: Path) -> Mapping[str, object]:
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load preset files in YAML format") from exc
        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported preset file type: {path.suffix}")

    if not isinstance(data, Mapping):
        raise TypeError(f"Preset {path.name} must decode to a mapping")
    return data


def _file_presets() -> Dict[str, Mapping[str, object]]:
    global _FILE_PRESETS_CACHE
    if _FILE_PRESETS_CACHE is None:
        found: Dict[str, Mapping[str, object]] = {}
        if _PRESET_DIR.exists():
            for file in sorted(_PRESET_DIR.iterdir()):
                if file.suffix.lower() not in {".yaml", ".yml", ".json"}:
                    continue
                data = _read_preset_file(file)
                _require_sections(data, file.name)
                found[file.stem] = json.loads(json.dumps(data))
        _FILE_PRESETS_CACHE = found
    return {name: deepcopy(cfg) for name, cfg in _FILE_PRESETS_CACHE.items()}


def _require_sections(config: Mapping[str, object], origin: str) -> None:
    missing = [name for name in REQUIRED_SECTIONS if name not in config]
    if missing:
        raise KeyError(f"{origin} is missing required sections: {', '.join(missing)}")


def presets() -> Mapping[str, Mapping[str, object]]:
    combined: Dict[str, Mapping[str, object]] = {name: deepcopy(cfg) for name, cfg in _PRESETS.items()}
    combined.update(_file_presets())
    return combined


def load_preset(name: str) -> Mapping[str, object]:
    file_overrides = _file_presets()
    if name in file_overrides:
        return file_overrides[name]
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        available = ", ".join(sorted(presets()))
        raise KeyError(f"Unknown preset: {name}. Available presets: {available}") from exc


# ----------------------------------------------------------------------
# Assembly


def build_network(model_cfg: Mapping[str, object], train_cfg: Mapping[str, object], d_in: int) -> FeedForwardNetwork:
    dims = [int(model_cfg.get("d_in", d_in))]
    dims.extend(_build_hidden(model_cfg))
    dims.append(int(model_cfg.get("d_out", 1)))
    if dims[0] != d_in:
        raise ValueError(f"Configured d_in={dims[0]} but the data has {d_in} features")
    return FeedForwardNetwork(
        layer_dims=dims,
        activation=str(model_cfg.get("activation", "tanh")),
        loss=str(model_cfg.get("loss", "bce")),
        output=str(model_cfg.get("output", "logits")),
        lr=float(train_cfg.get("lr", 0.05)),
        seed=int(train_cfg.get("seed", 123)),
        dropout=float(model_cfg.get("dropout", 0.0)),
        l1=float(model_cfg.get("l1", 0.0)),
        l2=float(model_cfg.get("l2", 0.0)),
        init=str(model_cfg.get("init", "uniform")),
    )


def _build_hidden(model_cfg: Mapping[str, object]) -> List[int]:
    if "hidden" in model_cfg:
        hidden = [int(h) for h in model_cfg["hidden"]]  # type: ignore[union-attr]
    else:
        depth = int(model_cfg.get("depth", 1))
        hidden = [int(model_cfg.get("hidden_dim", 3))] * depth
    if not 1 <= len(hidden) <= 3:
        raise ValueError(f"Networks take 1 to 3 hidden layers, got {len(hidden)}")
    return hidden


def _load_data(data_cfg: Mapping[str, object]) -> PointSet:
    return load_points(
        data_cfg.get("path"),  # type: ignore[arg-type]
        target_col=str(data_cfg.get("target_col", "label")),
        standardize_inputs=bool(data_cfg.get("standardize", False)),
    )


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    """Train per ``config`` and write metrics, manifest, summary and explanations."""

    _require_sections(config, "config")
    data_cfg = dict(config["data"])  # type: ignore[arg-type]
    model_cfg = dict(config["model"])  # type: ignore[arg-type]
    train_cfg = dict(config["train"])  # type: ignore[arg-type]
    explain_cfg = config.get("explain")

    points = _load_data(data_cfg)
    seed = int(train_cfg.get("seed", 123))
    splits = stratified_split(
        points.Y,
        val_split=float(data_cfg.get("val_split", 0.2)),
        test_split=float(data_cfg.get("test_split", 0.0)),
        seed=int(data_cfg.get("seed", 0)),
    )
    train_set = points.subset(splits.train)
    eval_data = {"train": train_set}
    if splits.val.size:
        eval_data["val"] = points.subset(splits.val)
    if splits.test.size:
        eval_data["test"] = points.subset(splits.test)

    network = build_network(model_cfg, train_cfg, d_in=points.X.shape[1])
    optimizer_name = str(train_cfg.get("optimizer", "sgd"))
    optimizer = make_optimizer(
        optimizer_name,
        beta=train_cfg.get("beta"),
        beta1=train_cfg.get("beta1"),
        beta2=train_cfg.get("beta2"),
        eps=train_cfg.get("eps"),
    )

    run_dir = _resolve_run_dir(train_cfg, optimizer_name)
    run_dir.mkdir(parents=True, exist_ok=True)
    _print_startup_summary(
        data=str(points.provenance["path"]),
        network=network,
        optimizer=optimizer_name,
        splits=splits.sizes,
    )

    train_jsonl = JsonlSink(run_dir / "metrics_train.jsonl", split="train", seed=seed)
    train_csv = CsvSink(run_dir / "metrics_train.csv", split="train")
    val_jsonl = JsonlSink(run_dir / "metrics_val.jsonl", split="val", seed=seed)
    capture_val = MetricsCapture()
    capture_eval = MetricsCapture()
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))

    trainer = Trainer(network, optimizer, callbacks=[plots])
    batch_size = int(train_cfg.get("batch_size", 8))
    result = trainer.run(
        points.batches(splits.train, batch_size=batch_size, seed=seed),
        steps=int(train_cfg.get("steps", 100)),
        seed=seed,
        eval_data=eval_data,
        eval_every=int(train_cfg.get("eval_every", 0)),
        metric_names=DEFAULT_METRICS + ("auc",),
        split_loggers={
            "train": [train_jsonl, train_csv],
            "val": [val_jsonl, capture_val],
            "eval_train": [capture_eval],
        },
    )
    plots.close()

    safe_config = json.loads(json.dumps(config))
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=safe_config,
        data_provenance={**points.provenance, "splits": dict(splits.sizes)},
        network={
            "layer_dims": list(network.layer_dims),
            "activation": network.activation.value,
            "loss": network.loss.value,
            "output": network.output.value,
            "parameters": network.parameter_count(),
        },
    )
    summary_path = write_summary(
        train_jsonl.path,
        run_dir / "summary.json",
        val_jsonl=val_jsonl.path,
        tail=int(train_cfg.get("summary_tail", 32)),
    )
    (run_dir / "config.json").write_text(json.dumps(safe_config, indent=2))
    (run_dir / "metrics.jsonl").write_text(train_jsonl.path.read_text())
    (run_dir / "metrics.csv").write_text(train_csv.path.read_text())
    final_metrics = {"train": capture_eval.last, "val": capture_val.last}
    write_json(run_dir / "metrics_final.json", final_metrics)

    explain_path = ""
    if explain_cfg is not None:
        report = explain_point(network, points, dict(explain_cfg))  # type: ignore[arg-type]
        explain_path = write_json(run_dir / "explain.json", report)
        if plots.enable_plots:
            markers = {"query": report["point"], "attack": report["attack"]["point"]}
            plot_decision_field(
                network,
                world_bounds(points.X),
                run_dir / "decision_field.png",
                points=points.X,
                labels=points.Y,
                markers=markers,
            )

    return RunResult(
        steps=result.steps,
        metrics_path=str(train_jsonl.path),
        manifest_path=manifest,
        summary_path=summary_path,
        explain_path=explain_path,
    )


def explain_point(network: FeedForwardNetwork, points: PointSet, cfg: Mapping[str, object]) -> Dict[str, object]:
    """Run every explainer on one point and collect the results."""

    bounds = world_bounds(points.X, pad=float(cfg.get("pad", 0.15)))
    point = np.asarray(cfg.get("point", points.X[0]), dtype=np.float64)
    if "label" in cfg:
        label = float(cfg["label"])  # type: ignore[arg-type]
    else:
        label = float(network.predict_labels(point)[0, 0])
    baseline = cfg.get("baseline")
    ig_steps = int(cfg.get("ig_steps", 32))
    eps = float(cfg.get("eps", 0.5))
    kind = coerce_kind(AttackKind, cfg.get("attack", "pgd"))
    norm = coerce_kind(NormKind, cfg.get("norm", "l2"))

    surrogate = fit_local_surrogate(
        network,
        point,
        sigma=float(cfg.get("sigma", 0.15)),
        samples=int(cfg.get("samples", 128)),
        seed=int(cfg.get("seed", 0)),
    )
    segment = surrogate.boundary_segment(*bounds)
    pgd_options = {}
    if kind is AttackKind.PGD:
        pgd_options = {
            "steps": int(cfg.get("steps", 10)),
            "alpha": cfg.get("alpha"),
            "project_to_ball": bool(cfg.get("project", True)),
            "stop_at_flip": bool(cfg.get("stop_at_flip", False)),
            "bounds": bounds,
        }
    outcome = attack(network, point, label, eps, norm, kind, **pgd_options)
    stats = hidden_unit_stats(network, points.X, points.Y)

    return {
        "point": point,
        "label": label,
        "probability": float(network.predict(point)[0, 0]),
        "saliency": {
            "logit": saliency(network, point, wrt="logit"),
            "probability": saliency(network, point, wrt="probability"),
        },
        "integrated_gradients": {
            "steps": ig_steps,
            "attributions": integrated_gradients(network, point, baseline, ig_steps),
            "completeness_gap": completeness_gap(network, point, baseline, ig_steps),
        },
        "surrogate": {
            "coefficients": surrogate.coefficients,
            "degenerate": surrogate.degenerate,
            "boundary_distance": _finite_or_none(surrogate.boundary_distance(point)),
            "boundary_segment": None if segment is None else [segment[0], segment[1]],
        },
        "attack": {
            "kind": kind.value,
            "norm": norm.value,
            "eps": eps,
            "point": outcome.point,
            "path": outcome.path,
            "flipped": outcome.flipped,
            "probability": outcome.probability,
            "steps_taken": outcome.steps_taken,
        },
        "counterfactual": counterfactual_to_boundary(network, point, bounds=bounds),
        "hidden_units": {
            "saturated_fraction": stats.saturated_fraction,
            "dead_units": stats.dead_units,
            "mean_abs_grad": stats.mean_abs_grad,
            "per_unit_grad": stats.per_unit_grad,
        },
        "roc_auc": roc_auc(network.predict(points.X), points.Y),
    }


def _finite_or_none(value: float) -> float | None:
    return value if np.isfinite(value) else None


def _resolve_run_dir(train_cfg: Mapping[str, object], optimizer: str) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / optimizer


def _print_startup_summary(
    *,
    data: str,
    network: FeedForwardNetwork,
    optimizer: str,
    splits: Mapping[str, int],
) -> None:
    print("=== gradlens run ===")
    print(f"Data          : {data}")
    print(f"Splits        : {dict(splits)}")
    print(f"Dimensions    : {list(network.layer_dims)}")
    print(f"Activation    : {network.activation.value}")
    print(f"Loss / output : {network.loss.value} / {network.output.value}")
    print(f"Optimizer     : {optimizer}")
    print(f"Parameters    : {network.parameter_count()}")
    print("====================")


__all__ = ["run_pipeline", "load_preset", "presets", "build_network", "explain_point"]
