"""Compressed sparse column matrices and the operations the solver needs on them.

Covers validation of the problem matrices, the products y + A x, y + A'x and
y + P x (P given by its upper triangle), and Ruiz / l2 equilibration of
P and A that respects cone boundaries.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from conekit.cones import ConeWork
from conekit.linalg import mean, norm_inf

ArrayLike = Union[Sequence[float], np.ndarray]

MIN_NORMALIZATION_FACTOR = 1e-4
MAX_NORMALIZATION_FACTOR = 1e4
NUM_RUIZ_PASSES = 25
NUM_L2_PASSES = 1


class MatrixError(ValueError):
    """Raised when matrix data is malformed or inconsistent."""


@dataclass
class CscMatrix:
    """An m x n matrix in compressed sparse column format.

    ``x`` holds the values, ``i`` the row index of each value and ``p`` the
    n + 1 column pointers into ``x`` and ``i``.
    """

    m: int
    n: int
    x: np.ndarray
    i: np.ndarray
    p: np.ndarray

    def __post_init__(self) -> None:
        self.m = int(self.m)
        self.n = int(self.n)
        self.x = np.array(self.x, dtype=float).ravel()
        self.i = np.array(self.i, dtype=np.int64).ravel()
        self.p = np.array(self.p, dtype=np.int64).ravel()

    def nnz(self) -> int:
        """Number of stored entries, p[n]."""
        if self.p.size < self.n + 1:
            raise MatrixError(
                f"column pointers need {self.n + 1} entries, got {self.p.size}"
            )
        return int(self.p[self.n])

    def copy(self) -> "CscMatrix":
        """Independent copy holding exactly the nnz stored entries."""
        nnz = self.nnz()
        return CscMatrix(
            m=self.m,
            n=self.n,
            x=self.x[:nnz].copy(),
            i=self.i[:nnz].copy(),
            p=self.p[: self.n + 1].copy(),
        )

    def _columns(self) -> np.ndarray:
        """Column index of every stored entry."""
        return np.repeat(np.arange(self.n), np.diff(self.p[: self.n + 1]))


@dataclass
class Scaling:
    """Diagonal equilibration: A -> D A E and P -> E P E."""

    D: np.ndarray
    E: np.ndarray
    primal_scale: float = 1.0
    dual_scale: float = 1.0

    @property
    def m(self) -> int:
        return int(self.D.size)

    @property
    def n(self) -> int:
        return int(self.E.size)


def validate_lin_sys(a: CscMatrix, p: Optional[CscMatrix] = None) -> None:
    """Check A (and P if given) for consistency; raise MatrixError if invalid."""
    if a.p.size < a.n + 1:
        raise MatrixError("data incompletely specified")
    anz = int(a.p[a.n])
    if anz < 0:
        raise MatrixError(f"Anz (nonzeros in A) = {anz}, outside of valid range")
    if a.x.size < anz or a.i.size < anz:
        raise MatrixError("data incompletely specified")
    if a.m == 0:
        too_dense = anz > 0
    else:
        too_dense = anz / a.m > a.n
    if too_dense:
        raise MatrixError(f"Anz (nonzeros in A) = {anz}, outside of valid range")
    r_max = int(np.max(a.i[:anz])) if anz > 0 else 0
    if r_max > a.m - 1 and anz > 0:
        raise MatrixError("number of rows in A inconsistent with input dimension")
    if p is None:
        return
    if p.n != a.n:
        raise MatrixError(f"P dimension = {p.n}, inconsistent with n = {a.n}")
    if p.m != p.n:
        raise MatrixError("P is not square")
    pnz = p.nnz()
    if p.i.size < pnz or p.x.size < pnz:
        raise MatrixError("data incompletely specified")
    if np.any(p.i[:pnz] > p._columns()):
        raise MatrixError("P is not upper triangular")


def _check_vec(v: ArrayLike, size: int, name: str) -> np.ndarray:
    va = np.array(v, dtype=float).ravel()
    if va.size != size:
        raise ValueError(f"{name} must have length {size}, got {va.size}")
    return va


def accum_by_a(a: CscMatrix, x: ArrayLike, y: ArrayLike) -> np.ndarray:
    """Return y + A x."""
    xa = _check_vec(x, a.n, "x")
    out = _check_vec(y, a.m, "y")
    nnz = a.nnz()
    np.add.at(out, a.i[:nnz], a.x[:nnz] * xa[a._columns()])
    return out


def accum_by_atrans(a: CscMatrix, x: ArrayLike, y: ArrayLike) -> np.ndarray:
    """Return y + A' x."""
    xa = _check_vec(x, a.m, "x")
    out = _check_vec(y, a.n, "y")
    nnz = a.nnz()
    np.add.at(out, a._columns(), a.x[:nnz] * xa[a.i[:nnz]])
    return out


def accum_by_p(p: CscMatrix, x: ArrayLike, y: ArrayLike) -> np.ndarray:
    """Return y + P x where P is symmetric and stored by its upper triangle."""
    xa = _check_vec(x, p.n, "x")
    out = _check_vec(y, p.n, "y")
    nnz = p.nnz()
    rows = p.i[:nnz]
    cols = p._columns()
    off = rows != cols
    # strictly upper part; the diagonal comes with the transposed product
    np.add.at(out, rows[off], p.x[:nnz][off] * xa[cols[off]])
    return accum_by_atrans(p, xa, out)


def _apply_limit(v: np.ndarray) -> np.ndarray:
    # rows/cols of all zeros would blow up, so they get factor 1
    v = np.where(v < MIN_NORMALIZATION_FACTOR, 1.0, v)
    return np.minimum(v, MAX_NORMALIZATION_FACTOR)


def _ruiz_factors(
    p: Optional[CscMatrix], a: CscMatrix, cone_work: ConeWork
) -> Tuple[np.ndarray, np.ndarray]:
    abs_a = np.abs(a.x)
    dt = np.zeros(a.m)
    np.maximum.at(dt, a.i, abs_a)
    dt = cone_work.enforce_cone_boundaries(dt, norm_inf)
    dt = 1.0 / np.sqrt(_apply_limit(dt))

    et = np.zeros(a.n)
    if p is not None:
        rows, cols = p.i, p._columns()
        wrk = np.abs(p.x)
        np.maximum.at(et, cols, wrk)
        off = rows != cols
        np.maximum.at(et, rows[off], wrk[off])
    np.maximum.at(et, a._columns(), abs_a)
    et = 1.0 / np.sqrt(_apply_limit(et))
    return dt, et


def _l2_factors(
    p: Optional[CscMatrix], a: CscMatrix, cone_work: ConeWork
) -> Tuple[np.ndarray, np.ndarray]:
    sq_a = a.x * a.x
    dt = np.zeros(a.m)
    np.add.at(dt, a.i, sq_a)
    dt = np.sqrt(dt)
    dt = cone_work.enforce_cone_boundaries(dt, mean)
    dt = 1.0 / np.sqrt(_apply_limit(dt))

    et = np.zeros(a.n)
    if p is not None:
        rows, cols = p.i, p._columns()
        wrk = p.x * p.x
        np.add.at(et, cols, wrk)
        off = rows != cols
        np.add.at(et, rows[off], wrk[off])
    np.add.at(et, a._columns(), sq_a)
    et = 1.0 / np.sqrt(_apply_limit(np.sqrt(et)))
    return dt, et


def _rescale(
    p: Optional[CscMatrix],
    a: CscMatrix,
    dt: np.ndarray,
    et: np.ndarray,
    scaling: Scaling,
) -> None:
    a.x = a.x * dt[a.i] * et[a._columns()]
    if p is not None:
        p.x = p.x * et[p.i] * et[p._columns()]
    scaling.D = scaling.D * dt
    scaling.E = scaling.E * et


def normalize_a_p(
    p: Optional[CscMatrix], a: CscMatrix, cone_work: ConeWork
) -> Tuple[Optional[CscMatrix], CscMatrix, Scaling]:
    """Equilibrate P and A, returning (E P E, D A E, scaling).

    D scales the rows of A and is constant within each cone block; E scales
    the columns of A and both sides of P. The inputs are left untouched.
    """
    if cone_work.m != a.m:
        raise MatrixError(f"cone spans {cone_work.m} rows but A has {a.m}")
    a_work = a.copy()
    p_work = p.copy() if p is not None else None
    scaling = Scaling(D=np.ones(a.m), E=np.ones(a.n))
    for _ in range(NUM_RUIZ_PASSES):
        dt, et = _ruiz_factors(p_work, a_work, cone_work)
        _rescale(p_work, a_work, dt, et, scaling)
    for _ in range(NUM_L2_PASSES):
        dt, et = _l2_factors(p_work, a_work, cone_work)
        _rescale(p_work, a_work, dt, et, scaling)
    return p_work, a_work, scaling