"""Cone descriptions, validation and projection onto the dual of a product cone.

A product cone is laid out in this fixed order: zero cone (z), non-negative
orthant (l), box cone (bsize, with bounds bl/bu for all but the first entry),
second-order cones (q), positive semidefinite cones (s, packed), primal
exponential cones (ep), dual exponential cones (ed) and power cones (p,
negative parameters meaning the dual power cone).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Union

import numpy as np

from conekit.projections import (
    normalize_box_bounds,
    project_box_cone,
    project_exp_cone,
    project_power_cone,
    project_psd_cone,
    project_soc,
    sd_cone_size,
)

log = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]


class ConeError(ValueError):
    """Raised when a cone specification is invalid or inconsistent."""


@dataclass
class Cone:
    """Specification of a product cone."""

    z: int = 0
    l: int = 0
    bu: List[float] = field(default_factory=list)
    bl: List[float] = field(default_factory=list)
    bsize: int = 0
    q: List[int] = field(default_factory=list)
    s: List[int] = field(default_factory=list)
    ep: int = 0
    ed: int = 0
    p: List[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.z = int(self.z)
        self.l = int(self.l)
        self.bu = [float(v) for v in self.bu]
        self.bl = [float(v) for v in self.bl]
        self.bsize = int(self.bsize)
        if self.bsize == 0 and (self.bu or self.bl):
            self.bsize = max(len(self.bu), len(self.bl)) + 1
        self.q = [int(v) for v in self.q]
        self.s = [int(v) for v in self.s]
        self.ep = int(self.ep)
        self.ed = int(self.ed)
        self.p = [float(v) for v in self.p]

    def dims(self) -> int:
        """Total number of entries the cone spans."""
        total = self.z + self.l + self.bsize
        total += sum(self.q)
        total += sum(sd_cone_size(n) for n in self.s)
        total += 3 * self.ed + 3 * self.ep + 3 * len(self.p)
        return total

    def header(self) -> str:
        """Human-readable summary of the cone sizes."""
        parts = ["cones: "]
        if self.z:
            parts.append(f"\t  z: primal zero / dual free vars: {self.z}\n")
        if self.l:
            parts.append(f"\t  l: linear vars: {self.l}\n")
        if self.bsize:
            parts.append(f"\t  b: box cone vars: {self.bsize}\n")
        if self.q:
            parts.append(f"\t  q: soc vars: {sum(self.q)}, qsize: {len(self.q)}\n")
        if self.s:
            sd_vars = sum(sd_cone_size(n) for n in self.s)
            parts.append(f"\t  s: psd vars: {sd_vars}, ssize: {len(self.s)}\n")
        if self.ep or self.ed:
            parts.append(
                f"\t  e: exp vars: {3 * self.ep}, dual exp vars: {3 * self.ed}\n"
            )
        if self.p:
            parts.append(f"\t  p: primal + dual power vars: {3 * len(self.p)}\n")
        return "".join(parts)

    def copy(self) -> "Cone":
        """Deep copy of the specification."""
        return Cone(
            z=self.z,
            l=self.l,
            bu=list(self.bu),
            bl=list(self.bl),
            bsize=self.bsize,
            q=list(self.q),
            s=list(self.s),
            ep=self.ep,
            ed=self.ed,
            p=list(self.p),
        )


def validate_cones(cone: Cone, m: int) -> None:
    """Check that ``cone`` is well formed and spans exactly ``m`` rows."""
    dims = cone.dims()
    if dims != m:
        raise ConeError(f"cone dimensions {dims} not equal to num rows in A = m = {m}")
    if cone.z < 0:
        raise ConeError("free cone dimension error")
    if cone.l < 0:
        raise ConeError("lp cone dimension error")
    if cone.bsize:
        if cone.bsize < 0:
            raise ConeError("box cone dimension error")
        needed = cone.bsize - 1
        if len(cone.bl) != needed or len(cone.bu) != needed:
            raise ConeError(f"box cone bounds must have length {needed}")
        for lo, hi in zip(cone.bl, cone.bu):
            if lo > hi:
                raise ConeError("infeasible: box lower bound larger than upper bound")
    if any(n < 0 for n in cone.q):
        raise ConeError("soc cone dimension error")
    if any(n < 0 for n in cone.s):
        raise ConeError("sd cone dimension error")
    if cone.ed < 0:
        raise ConeError("ed cone dimension error")
    if cone.ep < 0:
        raise ConeError("ep cone dimension error")
    if any(a < -1 or a > 1 for a in cone.p):
        raise ConeError("power cone error, values must be in [-1,1]")


def cone_boundaries(cone: Cone) -> List[int]:
    """Sizes of the blocks that must be scaled together.

    The first entry counts the leading rows (zero, orthant and box) that can
    be scaled independently; each later entry is the size of one cone.
    """
    bounds = [cone.z + cone.l + cone.bsize]
    bounds.extend(cone.q)
    bounds.extend(sd_cone_size(n) for n in cone.s)
    bounds.extend([3] * (cone.ep + cone.ed))
    bounds.extend([3] * len(cone.p))
    return bounds


class ConeWork:
    """Workspace for repeated projections onto the dual of a cone."""

    def __init__(self, cone: Cone, m: int) -> None:
        m = int(m)
        if cone.dims() != m:
            raise ConeError(
                f"cone dimensions {cone.dims()} not equal to num rows m = {m}"
            )
        self.cone = cone
        self.m = m
        self.boundaries = cone_boundaries(cone)
        self.box_t_warm_start = 0.0
        self.scaled_cones = False
        self._bl = np.array(cone.bl, dtype=float)
        self._bu = np.array(cone.bu, dtype=float)

    def set_r_y(self, scale: float) -> np.ndarray:
        """Diagonal of the dual metric for the given scale."""
        r_y = np.full(self.m, 1.0 / scale)
        # small penalty on dual-free entries, letting the linear system decide
        r_y[: self.cone.z] = 1.0 / (1000.0 * scale)
        return r_y

    def enforce_cone_boundaries(
        self, vec: ArrayLike, f: Callable[[np.ndarray], float]
    ) -> np.ndarray:
        """Replace each cone's block of ``vec`` by ``f`` of that block."""
        out = np.array(vec, dtype=float).ravel()
        count = self.boundaries[0]
        for delta in self.boundaries[1:]:
            out[count : count + delta] = f(out[count : count + delta])
            count += delta
        return out

    def _scale_box_cone(self, scaling: Optional[Any]) -> None:
        k = self.cone
        if k.bsize and k.bu and k.bl:
            self.box_t_warm_start = 1.0
            if scaling is not None:
                start = k.z + k.l
                d = np.asarray(scaling.D, dtype=float)[start : start + k.bsize]
                self._bl, self._bu = normalize_box_bounds(self._bl, self._bu, d)

    def _proj_cone(self, x: np.ndarray, r_y: Optional[np.ndarray]) -> np.ndarray:
        k = self.cone
        out = x.copy()
        count = 0

        if k.z:
            out[: k.z] = 0.0
            count += k.z

        if k.l:
            out[count : count + k.l] = np.maximum(out[count : count + k.l], 0.0)
            count += k.l

        if k.bsize:
            seg = slice(count, count + k.bsize)
            r_box = r_y[seg] if r_y is not None else None
            out[seg], self.box_t_warm_start = project_box_cone(
                out[seg], self._bl, self._bu, self.box_t_warm_start, r_box
            )
            count += k.bsize

        for q in k.q:
            out[count : count + q] = project_soc(out[count : count + q])
            count += q

        for n in k.s:
            size = sd_cone_size(n)
            out[count : count + size] = project_psd_cone(out[count : count + size], n)
            count += size

        for _ in range(k.ep):
            out[count : count + 3] = project_exp_cone(out[count : count + 3])
            count += 3

        for _ in range(k.ed):
            # dual exponential cone via Moreau: Pi_{K*}(v) = v + Pi_K(-v)
            v = out[count : count + 3].copy()
            out[count : count + 3] = project_exp_cone(-v) + v
            count += 3

        for a in k.p:
            seg = slice(count, count + 3)
            if a >= 0:
                out[seg] = project_power_cone(out[seg], a)
            else:
                out[seg] = out[seg] + project_power_cone(-out[seg], -a)
            count += 3

        return out

    def proj_dual_cone(
        self,
        x: ArrayLike,
        scaling: Optional[Any] = None,
        r_y: Optional[ArrayLike] = None,
    ) -> np.ndarray:
        """Project ``x`` onto the dual cone under the metric diag(r_y)^-1.

        Uses the Moreau identity x + R^{-1} Pi_K^{R^{-1}}(-R x). ``scaling``,
        if given, must carry the row scaling ``D`` used to rescale box limits
        on the first call.
        """
        xa = np.array(x, dtype=float).ravel()
        if xa.size != self.m:
            raise ValueError(f"expected a vector of length {self.m}, got {xa.size}")
        ra = None
        if r_y is not None:
            ra = np.array(r_y, dtype=float).ravel()
            if ra.size != self.m:
                raise ValueError(f"r_y must have length {self.m}, got {ra.size}")

        if not self.scaled_cones:
            self._scale_box_cone(scaling)
            self.scaled_cones = True

        neg = -ra * xa if ra is not None else -xa
        proj = self._proj_cone(neg, ra)
        if ra is not None:
            return proj / ra + xa
        return proj + xa