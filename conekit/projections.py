"""Euclidean projections onto the individual cones the solver supports.

Every routine takes its input without modifying it and returns a new array.
Positive semidefinite matrices are stored as the lower triangle in
column-major order, with off-diagonal entries scaled by sqrt(2) so that the
vector inner product matches the matrix (Frobenius) inner product.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from conekit.linalg import norm_2

log = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]

CONE_TOL = 1e-9
CONE_THRESH = 1e-8
EXP_CONE_MAX_ITERS = 100
BOX_CONE_MAX_ITERS = 25
POW_CONE_MAX_ITERS = 20
MAX_BOX_VAL = 1e15
"""Box limits at or beyond this magnitude are treated as infinite."""


def _vec(v: ArrayLike) -> np.ndarray:
    return np.array(v, dtype=float).ravel()


def _triple(v: ArrayLike) -> np.ndarray:
    va = _vec(v)
    if va.size != 3:
        raise ValueError(f"expected a vector of length 3, got {va.size}")
    return va


def _exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


def sd_cone_size(n: int) -> int:
    """Number of packed entries for an n x n symmetric matrix."""
    return (n * (n + 1)) // 2


# --------------------------------------------------------------------------
# exponential cone
# --------------------------------------------------------------------------


def _exp_newton_one_d(rho: float, y_hat: float, z_hat: float, w: float) -> float:
    t = max(w - z_hat, max(-z_hat, 1e-9))
    t_prev = t
    f = fp = 1.0
    for _ in range(EXP_CONE_MAX_ITERS):
        t_prev = t
        f = t * (t + z_hat) / rho / rho - y_hat / rho + math.log(t / rho) + 1
        fp = (2 * t + z_hat) / rho / rho + 1 / t
        t = t - f / fp
        if t <= -z_hat:
            t = -z_hat
            break
        if t <= 0:
            t = 0.0
            break
        if abs(t - t_prev) < CONE_TOL:
            break
        if math.sqrt(f * f / fp) < CONE_TOL:
            break
    else:
        log.warning(
            "exp cone newton step hit maximum %i iters: rho=%1.5e; y_hat=%1.5e; "
            "z_hat=%1.5e; w=%1.5e; f=%1.5e, fp=%1.5e, t=%1.5e, t_prev=%1.5e",
            EXP_CONE_MAX_ITERS, rho, y_hat, z_hat, w, f, fp, t, t_prev,
        )
    return t + z_hat


def _exp_solve_for_x(v: np.ndarray, rho: float, w: float) -> List[float]:
    x2 = _exp_newton_one_d(rho, v[1], v[2], w)
    x1 = (x2 - v[2]) * x2 / rho
    x0 = v[0] - rho
    return [x0, x1, x2]


def _exp_calc_grad(v: np.ndarray, rho: float, w: float) -> Tuple[float, List[float]]:
    x = _exp_solve_for_x(v, rho, w)
    if x[1] <= 1e-12:
        return x[0], x
    return x[0] + x[1] * math.log(x[1] / x[2]), x


def project_exp_cone(v: ArrayLike) -> np.ndarray:
    """Project a 3-vector (r, s, t) onto the closed exponential cone."""
    va = _triple(v)
    r, s, t = (float(c) for c in va)

    # v already in the cone
    if (s > 0 and s * _exp(r / s) - t <= CONE_THRESH) or (r <= 0 and s == 0 and t >= 0):
        return va

    # -v in the dual cone: projection is the origin
    if (r > 0 and r * _exp(s / r) + math.e * t <= CONE_THRESH) or (
        r == 0 and s <= 0 and t <= 0
    ):
        return np.zeros(3)

    # analytical special case
    if r < 0 and s < 0:
        return np.array([r, 0.0, max(t, 0.0)])

    # bracket the dual variable, then bisect on it
    lb, ub = 0.0, 0.125
    grad, x = _exp_calc_grad(va, ub, va[1])
    while grad > 0:
        lb = ub
        ub *= 2
        grad, x = _exp_calc_grad(va, ub, va[1])

    for _ in range(EXP_CONE_MAX_ITERS):
        rho = (ub + lb) / 2
        grad, x = _exp_calc_grad(va, rho, x[1])
        if grad > 0:
            lb = rho
        else:
            ub = rho
        if ub - lb < CONE_TOL:
            break
    else:
        log.warning(
            "exp cone outer step hit maximum %i iters: r=%1.5e; s=%1.5e; t=%1.5e",
            EXP_CONE_MAX_ITERS, r, s, t,
        )
    return np.array(x, dtype=float)


# --------------------------------------------------------------------------
# power cone
# --------------------------------------------------------------------------


def _pow_calc_x(r: float, xh: float, rh: float, a: float) -> float:
    x = 0.5 * (xh + math.sqrt(xh * xh + 4 * a * (rh - r) * r))
    return max(x, 1e-12)


def _pow_calc_dxdr(x: float, xh: float, rh: float, r: float, a: float) -> float:
    return a * (rh - 2 * r) / (2 * x - xh)


def _pow_calc_f(x: float, y: float, r: float, a: float) -> float:
    return math.pow(x, a) * math.pow(y, 1 - a) - r


def _pow_calc_fp(x: float, y: float, dxdr: float, dydr: float, a: float) -> float:
    return (
        math.pow(x, a) * math.pow(y, 1 - a) * (a * dxdr / x + (1 - a) * dydr / y) - 1
    )


def project_power_cone(v: ArrayLike, a: float) -> np.ndarray:
    """Project (x, y, z) onto {x^a y^(1-a) >= |z|, x, y >= 0} for a in [0, 1]."""
    va = _triple(v)
    a = float(a)
    xh, yh, z = float(va[0]), float(va[1]), float(va[2])
    rh = abs(z)

    if xh >= 0 and yh >= 0 and CONE_THRESH + math.pow(xh, a) * math.pow(yh, 1 - a) >= rh:
        return va

    if (
        xh <= 0
        and yh <= 0
        and CONE_THRESH + math.pow(-xh, a) * math.pow(-yh, 1 - a)
        >= rh * math.pow(a, a) * math.pow(1 - a, 1 - a)
    ):
        return np.zeros(3)

    x = y = 0.0
    r = rh / 2
    for _ in range(POW_CONE_MAX_ITERS):
        x = _pow_calc_x(r, xh, rh, a)
        y = _pow_calc_x(r, yh, rh, 1 - a)
        f = _pow_calc_f(x, y, r, a)
        if abs(f) < CONE_TOL:
            break
        dxdr = _pow_calc_dxdr(x, xh, rh, r, a)
        dydr = _pow_calc_dxdr(y, yh, rh, r, 1 - a)
        fp = _pow_calc_fp(x, y, dxdr, dydr, a)
        r = min(max(r - f / fp, 0.0), rh)
    return np.array([x, y, -r if z < 0 else r])


# --------------------------------------------------------------------------
# second-order cone
# --------------------------------------------------------------------------


def project_soc(x: ArrayLike) -> np.ndarray:
    """Project onto the second-order cone {(t, u) : ||u|| <= t}."""
    xa = _vec(x)
    q = xa.size
    if q == 0:
        return xa
    if q == 1:
        return np.array([max(xa[0], 0.0)])
    v1 = float(xa[0])
    s = norm_2(xa[1:])
    alpha = (s + v1) / 2.0
    if s <= v1:
        return xa
    if s <= -v1:
        return np.zeros(q)
    out = np.empty(q)
    out[0] = alpha
    out[1:] = xa[1:] * (alpha / s)
    return out


# --------------------------------------------------------------------------
# positive semidefinite cone
# --------------------------------------------------------------------------


def project_psd_cone(x: ArrayLike, n: int) -> np.ndarray:
    """Project a packed n x n symmetric matrix onto the PSD cone."""
    xa = _vec(x)
    n = int(n)
    if n < 0:
        raise ValueError("matrix dimension must be non-negative")
    if xa.size != sd_cone_size(n):
        raise ValueError(
            f"packed matrix of dimension {n} needs {sd_cone_size(n)} entries, got {xa.size}"
        )
    if n == 0:
        return xa
    if n == 1:
        return np.array([max(xa[0], 0.0)])

    sqrt2 = math.sqrt(2.0)
    upper_rows, upper_cols = np.triu_indices(n)
    rows, cols = upper_cols, upper_rows  # column-major lower triangle

    mat = np.zeros((n, n))
    mat[rows, cols] = xa
    diag = np.arange(n)
    # packed off-diagonals carry sqrt(2); scaling the diagonal likewise gives
    # sqrt(2) times the true matrix, which has the same eigenvectors
    mat[diag, diag] *= sqrt2

    eigvals, eigvecs = np.linalg.eigh(mat, UPLO="L")
    positive = eigvals > 0
    if not positive.any():
        return np.zeros_like(xa)

    z = eigvecs[:, positive] * np.sqrt(eigvals[positive])
    proj = z @ z.T
    proj[diag, diag] /= sqrt2
    return proj[rows, cols].copy()


# --------------------------------------------------------------------------
# box cone
# --------------------------------------------------------------------------


def normalize_box_bounds(
    bl: ArrayLike, bu: ArrayLike, d: Optional[ArrayLike]
) -> Tuple[np.ndarray, np.ndarray]:
    """Rescale box limits by the diagonal ``d`` covering (t, s).

    Returns (l', u') with l' = D l / d0 and u' = D u / d0. Limits at or beyond
    ``MAX_BOX_VAL`` in magnitude become infinite. With ``d`` None only the
    infinite limits are sanitised.
    """
    bla, bua = _vec(bl), _vec(bu)
    if bla.size != bua.size:
        raise ValueError("lower and upper bounds differ in length")
    if d is None:
        new_bu = bua.copy()
        new_bl = bla.copy()
    else:
        da = _vec(d)
        if da.size != bla.size + 1:
            raise ValueError(f"scaling needs {bla.size + 1} entries, got {da.size}")
        ratio = da[1:] / da[0]
        new_bu = ratio * bua
        new_bl = ratio * bla
    new_bu[bua >= MAX_BOX_VAL] = math.inf
    new_bl[bla <= -MAX_BOX_VAL] = -math.inf
    return new_bl, new_bu


def project_box_cone(
    tx: ArrayLike,
    bl: ArrayLike,
    bu: ArrayLike,
    t_warm_start: float = 1.0,
    r_box: Optional[ArrayLike] = None,
) -> Tuple[np.ndarray, float]:
    """Project (t, s) onto {t * l <= s <= t * u, t >= 0}.

    ``r_box`` optionally gives the diagonal of the inverse metric over
    (t, s). Returns the projected vector and its t component, which is a
    good warm start for the next call.
    """
    txa = _vec(tx)
    if txa.size == 0:
        raise ValueError("box cone needs at least one entry")
    if txa.size == 1:
        t0 = max(float(txa[0]), 0.0)
        return np.array([t0]), t0

    bla, bua = _vec(bl), _vec(bu)
    k = txa.size - 1
    if bla.size != k or bua.size != k:
        raise ValueError(f"box bounds must have length {k}")

    x = txa[1:].copy()
    if r_box is not None:
        ra = _vec(r_box)
        if ra.size != txa.size:
            raise ValueError(f"r_box must have length {txa.size}")
        rho_t = 1.0 / ra[0]
        weights = 1.0 / ra[1:]
    else:
        rho_t = 1.0
        weights = np.ones(k)

    t = float(t_warm_start)
    with np.errstate(invalid="ignore"):
        for _ in range(BOX_CONE_MAX_ITERS):
            t_prev = t
            up = x > t * bua
            lo = ~up & (x < t * bla)
            bu_up, bl_lo = bua[up], bla[lo]
            gt = rho_t * (t - txa[0])
            gt += float(np.sum(weights[up] * (t * bu_up - x[up]) * bu_up))
            gt += float(np.sum(weights[lo] * (t * bl_lo - x[lo]) * bl_lo))
            ht = rho_t
            ht += float(np.sum(weights[up] * bu_up * bu_up))
            ht += float(np.sum(weights[lo] * bl_lo * bl_lo))
            t = max(t - gt / max(ht, 1e-8), 0.0)
            if (
                abs(gt / max(ht, 1e-6)) < 1e-12 * max(t, 1.0)
                or abs(t - t_prev) < 1e-11 * max(t, 1.0)
            ):
                break
        else:
            log.warning("box cone proj hit maximum %i iters", BOX_CONE_MAX_ITERS)

        up = x > t * bua
        lo = ~up & (x < t * bla)
        x[up] = t * bua[up]
        x[lo] = t * bla[lo]

    out = np.empty(txa.size)
    out[0] = t
    out[1:] = x
    return out, t