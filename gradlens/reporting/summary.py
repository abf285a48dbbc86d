"""Per-split run summaries of the metrics a training run emits.

The summary is a pure function of the metric files, so two runs with the
same config and seeds produce byte-identical ``summary.json`` files.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import numpy as np

SUMMARY_METRICS = ("loss", "accuracy", "precision", "recall", "f1", "auc", "gap")
LOWER_IS_BETTER = frozenset({"loss", "gap"})


def curve_area(values: Sequence[float]) -> float:
    """Trapezoid area under ``values`` sampled at unit-spaced steps."""

    y = np.asarray(values, dtype=np.float64)
    if y.size < 2:
        return 0.0
    return float(np.sum((y[1:] + y[:-1]) * 0.5))


def read_records(path: str | Path) -> List[Mapping[str, object]]:
    path = Path(path)
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def _metric_summary(name: str, steps: Sequence[int], values: Sequence[float], tail: int) -> Dict[str, float]:
    arr = np.asarray(values, dtype=np.float64)
    best = int(np.argmin(arr) if name in LOWER_IS_BETTER else np.argmax(arr))
    window = arr[-tail:] if tail else arr[:0]
    return {
        "best": float(arr[best]),
        "best_step": int(steps[best]),
        "first": float(arr[0]),
        "last": float(arr[-1]),
        "tail_mean": float(window.mean()) if window.size else float(arr[-1]),
        "tail_area": curve_area(window),
    }


def summarize(records: Sequence[Mapping[str, object]], tail: int = 32) -> Mapping[str, object]:
    """Best/first/last value and tail statistics for each known metric.

    ``best`` is the minimum for loss and generalisation gap and the maximum
    otherwise. Metrics absent from ``records`` are left out.
    """

    tail_window = min(max(0, int(tail)), len(records))
    metrics: Dict[str, Dict[str, float]] = {}
    for name in SUMMARY_METRICS:
        rows = [(int(r["step"]), float(r[name])) for r in records if name in r]  # type: ignore[arg-type]
        if rows:
            steps, values = zip(*rows)
            metrics[name] = _metric_summary(name, steps, values, min(tail_window, len(values)))
    return {
        "records": len(records),
        "last_step": int(records[-1]["step"]) if records else 0,  # type: ignore[arg-type]
        "tail_window": tail_window,
        "metrics": metrics,
    }


def write_summary(
    metrics_jsonl: str | Path,
    out_summary_json: str | Path,
    *,
    val_jsonl: str | Path | None = None,
    tail: int = 32,
) -> str:
    """Summarise the train (and optional validation) metric files."""

    out_path = Path(out_summary_json)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"version": 1, "train": summarize(read_records(metrics_jsonl), tail)}
    if val_jsonl is not None:
        payload["val"] = summarize(read_records(val_jsonl), tail)
    out_path.write_text(json.dumps(payload, sort_keys=True, indent=2))
    return str(out_path)


__all__ = ["SUMMARY_METRICS", "curve_area", "read_records", "summarize", "write_summary"]
