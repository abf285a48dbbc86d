"""Dense 2-D/1-D array primitives used by the network and explainers.

Every function returns a fresh array; inputs are never written except by
:func:`add_in_place`, whose destination must not alias its source. Shape
mismatches are programming errors and raise :class:`ValueError` immediately
instead of relying on numpy broadcasting.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from .types import Array


def _require_ndim(name: str, x: Array, ndim: int) -> None:
    if x.ndim != ndim:
        raise ValueError(f"{name} must be {ndim}-D, got shape {x.shape}")


def matmul(A: Array, B: Array) -> Array:
    _require_ndim("A", A, 2)
    _require_ndim("B", B, 2)
    if A.shape[1] != B.shape[0]:
        raise ValueError(f"matmul shape mismatch: {A.shape} @ {B.shape}")
    return A @ B


def transpose(A: Array) -> Array:
    _require_ndim("A", A, 2)
    return np.ascontiguousarray(A.T)


def add_bias_row(A: Array, b: Array) -> Array:
    """Add ``b`` to every row of ``A``."""

    _require_ndim("A", A, 2)
    _require_ndim("b", b, 1)
    if A.shape[1] != b.shape[0]:
        raise ValueError(f"bias length {b.shape[0]} does not match {A.shape[1]} columns")
    return A + b[np.newaxis, :]


def apply(A: Array, fn: Callable[[Array], Array]) -> Array:
    """Evaluate the vectorised pointwise function ``fn`` on ``A``."""

    out = np.asarray(fn(A), dtype=np.float64)
    if out.shape != A.shape:
        raise ValueError(f"pointwise function changed shape {A.shape} -> {out.shape}")
    return out


def hadamard(A: Array, B: Array) -> Array:
    if A.shape != B.shape:
        raise ValueError(f"hadamard shape mismatch: {A.shape} vs {B.shape}")
    return A * B


def col_sum(A: Array) -> Array:
    _require_ndim("A", A, 2)
    return A.sum(axis=0)


def add_in_place(dst: Array, src: Array, scale: float = 1.0) -> None:
    """``dst += scale * src`` without allocating a new destination."""

    if dst.shape != src.shape:
        raise ValueError(f"add_in_place shape mismatch: {dst.shape} vs {src.shape}")
    if np.shares_memory(dst, src):
        raise ValueError("add_in_place source and destination must not alias")
    dst += scale * src


__all__ = [
    "matmul",
    "transpose",
    "add_bias_row",
    "apply",
    "hadamard",
    "col_sum",
    "add_in_place",
]
