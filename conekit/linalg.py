"""Small dense vector routines used throughout the solver."""

from __future__ import annotations

import math
from typing import Sequence, Union

import numpy as np

ArrayLike = Union[Sequence[float], np.ndarray]


def _vec(v: ArrayLike) -> np.ndarray:
    return np.asarray(v, dtype=float).ravel()


def dot(x: ArrayLike, y: ArrayLike) -> float:
    """Inner product x'y."""
    xa, ya = _vec(x), _vec(y)
    if xa.shape != ya.shape:
        raise ValueError(f"length mismatch: {xa.size} vs {ya.size}")
    return float(xa @ ya)


def norm_sq(v: ArrayLike) -> float:
    """Squared Euclidean norm ||v||_2^2."""
    va = _vec(v)
    return float(va @ va)


def norm_2(v: ArrayLike) -> float:
    """Euclidean norm ||v||_2."""
    return math.sqrt(norm_sq(v))


def norm_inf(v: ArrayLike) -> float:
    """Maximum absolute entry; 0 for an empty vector."""
    va = _vec(v)
    if va.size == 0:
        return 0.0
    return float(np.max(np.abs(va)))


def norm_diff(a: ArrayLike, b: ArrayLike) -> float:
    """Euclidean norm of a - b."""
    aa, ba = _vec(a), _vec(b)
    if aa.shape != ba.shape:
        raise ValueError(f"length mismatch: {aa.size} vs {ba.size}")
    return norm_2(aa - ba)


def norm_inf_diff(a: ArrayLike, b: ArrayLike) -> float:
    """Maximum absolute entry of a - b."""
    aa, ba = _vec(a), _vec(b)
    if aa.shape != ba.shape:
        raise ValueError(f"length mismatch: {aa.size} vs {ba.size}")
    return norm_inf(aa - ba)


def mean(x: ArrayLike) -> float:
    """Arithmetic mean; NaN for an empty vector."""
    xa = _vec(x)
    if xa.size == 0:
        return float("nan")
    return float(np.sum(xa) / xa.size)


def add_scaled(a: ArrayLike, b: ArrayLike, sc: float) -> np.ndarray:
    """Return a + sc * b as a new array."""
    aa, ba = _vec(a), _vec(b)
    if aa.shape != ba.shape:
        raise ValueError(f"length mismatch: {aa.size} vs {ba.size}")
    return aa + sc * ba