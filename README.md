# conekit

Building blocks for first-order conic optimization solvers, written in Python
on top of NumPy.

## What it provides

- `conekit.linalg` has small vector helpers: `dot`, `norm_sq`, `norm_2`,
  `norm_inf`, `norm_diff`, `norm_inf_diff`, `mean` and `add_scaled`. The last
  one returns `a + sc * b` as a new array.
- `conekit.projections` has Euclidean projections onto single cones:
  `project_soc` (second-order cone), `project_psd_cone` (positive semidefinite
  cone in packed, sqrt(2)-scaled lower-triangular form), `project_exp_cone`
  (exponential cone, 3-vectors), `project_power_cone` (power cone with
  parameter `a` in [0, 1]) and `project_box_cone` (box cone
  `{t*l <= s <= t*u, t >= 0}`). `project_box_cone` returns the projected
  vector together with its `t` value, which can be used as a warm start.
  The module also has `normalize_box_bounds`, which rescales box limits by a
  diagonal and turns limits at or beyond `1e15` in magnitude into infinities,
  and `sd_cone_size`. None of these functions modify their input. Each one
  returns a new array.
- `conekit.cones` has `Cone`, a dataclass that describes a product of cones in
  this fixed order:
  1. zero cone `z`
  2. orthant `l`
  3. box cone `bsize`, with bounds `bl` and `bu`
  4. second-order cones `q`
  5. PSD cones `s`
  6. primal exponential cones `ep`
  7. dual exponential cones `ed`
  8. power cones `p`, where negative values mean the dual power cone

  `Cone` has `dims`, `header` and `copy`. The module also has
  `validate_cones`, which raises `ConeError`, and `cone_boundaries`.
  `ConeWork` projects onto the dual of the whole product with
  `proj_dual_cone`, optionally under the metric `diag(r_y)^-1`. It also has
  `set_r_y` and `enforce_cone_boundaries`.
- `conekit.aa` has `AndersonAccelerator`, which does type-I or type-II
  Anderson acceleration of a fixed-point map. Its `apply(f, x)` returns the
  next iterate and the weight norm. `safeguard(f_new, x_new)` rejects steps
  that made the residual grow too much, and `reset()` clears the history.
  Messages go to the `logging` module.
- `conekit.matrix` has `CscMatrix` (compressed sparse column storage, with
  `copy` and `nnz`) and `validate_lin_sys`, which raises `MatrixError`. It has
  the products `accum_by_a`, `accum_by_atrans` and `accum_by_p`, each of which
  returns `y + M x`; `accum_by_p` takes a symmetric `P` stored by its upper
  triangle. It also has `normalize_a_p`, which applies 25 Ruiz passes and one
  l2 pass of equilibration and keeps the row scaling constant within each
  cone. It returns copies of `P` and `A` that have been scaled, together with
  a `Scaling`.
- `conekit.interrupt` has `InterruptListener`, a context manager that records
  Ctrl-C (SIGINT) as a flag instead of raising, so that a long iteration can
  poll `is_interrupted()` and stop cleanly. It can only install its handler
  in the main thread.

## Example

```python
import numpy as np
from conekit.cones import Cone, ConeWork
from conekit.projections import project_soc

x = np.array([1.0, 2.0, 2.0])
p = project_soc(x)  # new array, the projection onto the second-order cone

cone = Cone(z=1, l=2, q=[3])
work = ConeWork(cone, m=6)
y = np.array([0.5, -1.0, 2.0, 1.0, 2.0, 2.0])
dual = work.proj_dual_cone(y)  # projection onto the dual cone
```

## What it does not do

The package supplies the pieces of a conic solver. It is not a solver. It has
no main iteration loop and no linear-system solver. It does not read or write
problem files, and it has no command-line program.

## Installation

```
pip install .
```

## Running the tests

```
pip install ".[test]"
pytest
```