"""Loading of labelled 2-D point sets and deterministic batching."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping, Sequence

import numpy as np
import pandas as pd

from ..core.types import Array, Batch

FIXTURE_DIR = Path(__file__).resolve().parent / "_fixtures"
DEFAULT_FIXTURE = FIXTURE_DIR / "blobs.csv"


@dataclass(frozen=True)
class PointSet:
    """Features ``X`` of shape ``(N, D)`` and binary targets ``Y`` of shape ``(N, 1)``."""

    X: Array
    Y: Array
    provenance: Mapping[str, object]

    def __len__(self) -> int:
        return int(self.X.shape[0])

    def subset(self, indices: Sequence[int]) -> Batch:
        idx = np.asarray(indices, dtype=np.int64)
        return Batch(inputs=self.X[idx], targets=self.Y[idx])

    def as_batch(self) -> Batch:
        return Batch(inputs=self.X, targets=self.Y)

    def batches(self, indices: Sequence[int], *, batch_size: int, seed: int) -> Iterator[Batch]:
        """Endless seeded mini-batches drawn with replacement from ``indices``."""

        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        pool = np.asarray(indices, dtype=np.int64)
        if pool.size == 0:
            raise ValueError("Cannot draw batches from an empty split")
        rng = np.random.default_rng(seed)
        while True:
            yield self.subset(pool[rng.integers(0, pool.size, size=batch_size)])


def load_points(
    path: str | Path | None = None,
    *,
    target_col: str = "label",
    feature_cols: Sequence[str] | None = None,
    standardize_inputs: bool = False,
) -> PointSet:
    """Read a CSV of points with a binary ``target_col``.

    ``path`` defaults to the packaged two-blob fixture. Labels other than 0/1
    are rejected.
    """

    path = Path(path) if path else DEFAULT_FIXTURE
    df = pd.read_csv(path)
    if target_col not in df.columns:
        raise KeyError(f"Target column {target_col!r} not found in CSV")
    y_raw = df.pop(target_col).to_numpy(dtype=np.float64)
    if feature_cols:
        missing = [c for c in feature_cols if c not in df.columns]
        if missing:
            raise KeyError(f"Feature columns not found in CSV: {', '.join(missing)}")
        df = df[list(feature_cols)]
    X = df.to_numpy(dtype=np.float64)
    if not np.all(np.isin(y_raw, (0.0, 1.0))):
        raise ValueError(f"{path.name}: labels must be 0 or 1")

    provenance: dict[str, object] = {
        "path": str(path),
        "target_col": target_col,
        "features": list(df.columns),
        "rows": int(X.shape[0]),
    }
    if standardize_inputs:
        X, mean, std = _standardize(X)
        provenance["normalization"] = {"mean": mean.tolist(), "std": std.tolist()}
    return PointSet(X=X, Y=y_raw.reshape(-1, 1), provenance=provenance)


@dataclass(frozen=True)
class PointSplit:
    """Row indices of the train/validation/test partitions of a point set."""

    train: np.ndarray
    val: np.ndarray
    test: np.ndarray

    @property
    def sizes(self) -> Mapping[str, int]:
        return {"train": int(self.train.size), "val": int(self.val.size), "test": int(self.test.size)}


def stratified_split(
    labels: Array,
    *,
    val_split: float = 0.2,
    test_split: float = 0.0,
    seed: int = 0,
) -> PointSplit:
    """Split rows so each class keeps its share in every partition.

    Each class is shuffled with ``seed`` on its own and cut into
    ``round(n_class * fraction)`` test and validation rows. Index arrays are
    returned sorted.
    """

    if not 0 <= val_split < 1 or not 0 <= test_split < 1:
        raise ValueError("val_split and test_split must be in [0, 1)")
    if val_split + test_split >= 1:
        raise ValueError("val_split + test_split must be < 1")

    y = np.asarray(labels).reshape(-1) > 0.5
    rng = np.random.default_rng(seed)
    parts: dict[str, list[np.ndarray]] = {"train": [], "val": [], "test": []}
    for cls in (False, True):
        rows = np.flatnonzero(y == cls)
        rng.shuffle(rows)
        n_test = int(round(rows.size * test_split))
        n_val = int(round(rows.size * val_split))
        parts["test"].append(rows[:n_test])
        parts["val"].append(rows[n_test : n_test + n_val])
        parts["train"].append(rows[n_test + n_val :])

    split = PointSplit(**{name: np.sort(np.concatenate(chunks)) for name, chunks in parts.items()})
    if split.train.size == 0:
        raise ValueError(f"No training rows left after splitting {y.size} points")
    return split


def _standardize(X: Array) -> tuple[Array, Array, Array]:
    mean = X.mean(axis=0)
    std = X.std(axis=0)
    std = np.where(std == 0, 1.0, std)
    return (X - mean) / std, mean, std


__all__ = ["PointSet", "PointSplit", "load_points", "stratified_split", "DEFAULT_FIXTURE"]
