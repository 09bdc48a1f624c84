"""Anderson acceleration of a fixed-point map.

Notation: x is the input iterate, f = F(x) the map's output, g = x - f the
residual, s = x - x_prev, y = g - g_prev and d = f - f_prev = s - y. The
last ``mem`` of these are kept as columns of S, Y and D, written cyclically.

Type-I:  f <- f - D (S'Y + rI)^{-1} S'g
Type-II: f <- f - D (Y'Y + rI)^{-1} Y'g
"""

from __future__ import annotations

import logging
from typing import Sequence, Tuple, Union

import numpy as np

log = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]


class AndersonAccelerator:
    """State for Anderson acceleration over vectors of length ``dim``."""

    def __init__(
        self,
        dim: int,
        mem: int,
        type1: bool = False,
        regularization: float = 1e-8,
        relaxation: float = 1.0,
        safeguard_factor: float = 1.0,
        max_weight_norm: float = 1e10,
        verbosity: int = 0,
    ) -> None:
        self.dim = int(dim)
        self.mem = min(int(mem), self.dim)  # for rank stability
        self.type1 = bool(type1)
        self.regularization = float(regularization)
        self.relaxation = float(relaxation)
        self.safeguard_factor = float(safeguard_factor)
        self.max_weight_norm = float(max_weight_norm)
        self.verbosity = int(verbosity)
        self.iter = 0
        self.success = False
        self.norm_g = 0.0
        if self.mem <= 0:
            return
        self._x = np.zeros(self.dim)
        self._f = np.zeros(self.dim)
        self._g = np.zeros(self.dim)
        self._g_prev = np.zeros(self.dim)
        self._x_work = np.zeros(self.dim)
        self._Y = np.zeros((self.dim, self.mem))
        self._S = np.zeros((self.dim, self.mem))
        self._D = np.zeros((self.dim, self.mem))
        self._work = np.zeros(0)

    def reset(self) -> None:
        """Forget stored history; the next apply seeds it again."""
        if self.verbosity > 0:
            log.info("AA reset.")
        self.iter = 0

    def _update_params(self, x: np.ndarray, f: np.ndarray) -> None:
        idx = (self.iter - 1) % self.mem
        g = x - f
        self._S[:, idx] = x - self._x
        self._D[:, idx] = f - self._f
        self._Y[:, idx] = g - self._g_prev
        self._f = f.copy()
        self._x = x.copy()
        self._x_work = x.copy()
        self._g = g
        self._g_prev = g.copy()
        self.norm_g = float(np.linalg.norm(g))

    def _form_m(self, length: int) -> np.ndarray:
        left = self._S if self.type1 else self._Y
        m = left[:, :length].T @ self._Y[:, :length]
        if self.regularization > 0:
            nrm_m = float(np.linalg.norm(m))
            r = self.regularization * nrm_m
            if self.verbosity > 2:
                log.debug("iter: %i, norm: M %.2e, r: %.2e", self.iter, nrm_m, r)
            m = m + r * np.eye(length)
        return m

    def _solve(self, f: np.ndarray, m: np.ndarray, length: int) -> Tuple[np.ndarray, float]:
        left = self._S if self.type1 else self._Y
        rhs = left[:, :length].T @ self._g
        try:
            gamma = np.linalg.solve(m, rhs)
            ok = True
        except np.linalg.LinAlgError:
            gamma = rhs
            ok = False
        aa_norm = float(np.linalg.norm(gamma))
        kind = 1 if self.type1 else 2
        if self.verbosity > 1:
            log.debug("AA type %i, iter: %i, len %i, aa_norm %.2e", kind, self.iter, length, aa_norm)
        if not ok or not np.isfinite(aa_norm) or aa_norm >= self.max_weight_norm:
            if self.verbosity > 0:
                log.info("Error in AA type %i, iter: %i, len %i, aa_norm %.2e",
                         kind, self.iter, length, aa_norm)
            self.success = False
            self.reset()
            return f, -aa_norm
        self._work = gamma
        out = f - self._D[:, :length] @ gamma
        if self.relaxation != 1.0:
            x_work = self._x_work - self._S[:, :length] @ gamma
            out = self.relaxation * out + (1.0 - self.relaxation) * x_work
        self.success = True
        return out, aa_norm

    def apply(self, f: ArrayLike, x: ArrayLike) -> Tuple[np.ndarray, float]:
        """Feed the pair (x, F(x)) and return (next iterate, weight norm).

        The weight norm is 0 when no step was taken and negative when the
        step failed and the history was reset; the returned iterate is then
        ``f`` itself.
        """
        fa = np.array(f, dtype=float).ravel()
        xa = np.array(x, dtype=float).ravel()
        length = min(self.iter, self.mem)
        self.success = False
        if self.mem <= 0:
            return fa, 0.0
        if fa.size != self.dim or xa.size != self.dim:
            raise ValueError(f"expected vectors of length {self.dim}")
        if self.iter == 0:
            self._x = xa.copy()
            self._f = fa.copy()
            self._g_prev = xa - fa
            self.iter += 1
            return fa, 0.0
        self._update_params(xa, fa)
        aa_norm = 0.0
        if self.iter >= self.mem:
            m = self._form_m(length)
            fa, aa_norm = self._solve(fa, m, length)
        self.iter += 1
        return fa, aa_norm

    def safeguard(self, f_new: ArrayLike, x_new: ArrayLike) -> Tuple[np.ndarray, np.ndarray, bool]:
        """Check the last accelerated step.

        Returns (f, x, accepted). When the step made the residual grow by
        more than ``safeguard_factor``, the previous pair is returned, the
        history is reset and accepted is False.
        """
        fa = np.array(f_new, dtype=float).ravel()
        xa = np.array(x_new, dtype=float).ravel()
        if not self.success:
            return fa, xa, True
        self.success = False
        norm_diff = float(np.linalg.norm(xa - fa))
        if norm_diff > self.safeguard_factor * self.norm_g:
            if self.verbosity > 0:
                log.info("AA rejection, iter: %i, norm_diff %.4e, prev_norm_diff %.4e",
                         self.iter, norm_diff, self.norm_g)
            f_prev, x_prev = self._f.copy(), self._x.copy()
            self.reset()
            return f_prev, x_prev, False
        return fa, xa, True