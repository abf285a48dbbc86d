"""Command line entry point for gradlens training and explanation runs."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable

from gradlens.training import pipelines


def _format_result(result) -> str:
    payload = {
        "steps": result.steps,
        "metrics": result.metrics_path,
        "manifest": result.manifest_path,
    }
    if getattr(result, "summary_path", ""):
        payload["summary"] = result.summary_path
    if getattr(result, "explain_path", ""):
        payload["explain"] = result.explain_path
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=sorted(pipelines.presets().keys()),
        default="blobs-tanh-sgd",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument("--enable-plots", action="store_true", help="Write loss and decision-field plots")
    parser.add_argument("--seed", type=int, help="Seed used for weight init and batching")
    parser.add_argument("--steps", type=int, help="Override the number of training steps")
    parser.add_argument("--optimizer", choices=["sgd", "momentum", "adam"], help="Override the optimizer")
    parser.add_argument("--data", type=Path, help="CSV of points with x, y and label columns")
    parser.add_argument("--run-dir", type=Path, help="Directory receiving run artifacts")
    parser.add_argument(
        "--explain",
        nargs=2,
        type=float,
        metavar=("X", "Y"),
        help="Explain the prediction at this point after training",
    )
    parser.add_argument("--list-presets", action="store_true", help="List available presets and exit")
    parser.add_argument("--dump-config", type=Path, help="Dump the resolved config to a JSON file")
    return parser.parse_args(argv)


def _load_override(path: Path) -> dict:
    text = path.read_text()
    if path.suffix in {".yml", ".yaml"}:
        try:
            import yaml  # type: ignore
        except Exception as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load YAML configs") from exc
        return yaml.safe_load(text) or {}
    return json.loads(text)


def _merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(dict(base[key]), value)
        else:
            base[key] = value
    return base


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    config = json.loads(json.dumps(pipelines.load_preset(args.preset)))
    if args.config:
        config = _merge(config, _load_override(args.config))

    train_cfg = config.setdefault("train", {})
    if args.enable_plots:
        train_cfg["enable_plots"] = True
    if args.seed is not None:
        train_cfg["seed"] = int(args.seed)
    if args.steps is not None:
        train_cfg["steps"] = int(args.steps)
    if args.optimizer:
        train_cfg["optimizer"] = args.optimizer
    if args.run_dir:
        train_cfg["run_dir"] = str(args.run_dir)
    if args.data:
        config.setdefault("data", {})["path"] = str(args.data)
    if args.explain:
        explain_cfg = config.setdefault("explain", {})
        explain_cfg["point"] = list(args.explain)
        # Attack the predicted label of the new point.
        explain_cfg.pop("label", None)

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    print(_format_result(pipelines.run_pipeline(config)))


if __name__ == "__main__":
    main()
