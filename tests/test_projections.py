import math

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conekit.projections import (
    normalize_box_bounds,
    project_box_cone,
    project_exp_cone,
    project_power_cone,
    project_psd_cone,
    project_soc,
    sd_cone_size,
)

finite = st.floats(min_value=-100, max_value=100, allow_nan=False, allow_infinity=False)


def _pack(mat):
    n = mat.shape[0]
    out = []
    for j in range(n):
        for i in range(j, n):
            out.append(mat[i, j] if i == j else mat[i, j] * math.sqrt(2))
    return np.array(out)


def _unpack(vec, n):
    mat = np.zeros((n, n))
    k = 0
    for j in range(n):
        for i in range(j, n):
            val = vec[k] if i == j else vec[k] / math.sqrt(2)
            mat[i, j] = mat[j, i] = val
            k += 1
    return mat


# ---------------------------------------------------------------- sizes


def test_sd_cone_size_zero():
    assert sd_cone_size(0) == 0


@pytest.mark.parametrize("n", range(1, 12))
def test_sd_cone_size_increments(n):
    assert sd_cone_size(n) - sd_cone_size(n - 1) == n


# ---------------------------------------------------------------- SOC


def test_soc_empty_and_scalar():
    assert project_soc([]).size == 0
    assert project_soc([-3.0]).tolist() == [0.0]
    assert project_soc([2.0]).tolist() == [2.0]


def test_soc_inside_unchanged():
    v = [5.0, 3.0, 4.0]
    assert np.allclose(project_soc(v), v)


def test_soc_polar_goes_to_zero():
    assert np.allclose(project_soc([-5.0, 3.0, 4.0]), 0.0)


def test_soc_does_not_modify_input():
    v = np.array([0.0, 3.0, 4.0])
    project_soc(v)
    assert v.tolist() == [0.0, 3.0, 4.0]


@settings(max_examples=60, deadline=None)
@given(st.lists(finite, min_size=2, max_size=6))
def test_soc_moreau(values):
    x = np.array(values)
    p = project_soc(x)
    q = project_soc(-x)
    assert np.allclose(p - q, x, atol=1e-9)
    assert abs(p @ q) <= 1e-7 * (1 + x @ x)
    assert np.linalg.norm(p[1:]) <= p[0] + 1e-9


# ---------------------------------------------------------------- PSD


def test_psd_scalar_clamped():
    assert project_psd_cone([-2.0], 1).tolist() == [0.0]
    assert project_psd_cone([2.0], 1).tolist() == [2.0]


def test_psd_wrong_size_raises():
    with pytest.raises(ValueError):
        project_psd_cone([1.0, 2.0], 2)


def test_psd_identity_unchanged():
    packed = _pack(np.eye(3))
    assert np.allclose(project_psd_cone(packed, 3), packed)


def test_psd_negative_definite_to_zero():
    packed = _pack(-np.eye(3) - 0.1)
    assert np.allclose(project_psd_cone(packed, 3), 0.0)


@pytest.mark.parametrize("seed", range(5))
def test_psd_moreau_and_psd(seed):
    rng = np.random.default_rng(seed)
    n = 4
    a = rng.standard_normal((n, n))
    x = _pack(a + a.T)
    p = project_psd_cone(x, n)
    q = project_psd_cone(-x, n)
    assert np.allclose(p - q, x, atol=1e-9)
    assert abs(p @ q) < 1e-8
    assert np.linalg.eigvalsh(_unpack(p, n)).min() > -1e-9


def test_psd_idempotent():
    rng = np.random.default_rng(7)
    a = rng.standard_normal((3, 3))
    p = project_psd_cone(_pack(a + a.T), 3)
    assert np.allclose(project_psd_cone(p, 3), p, atol=1e-9)


# ---------------------------------------------------------------- exp cone


def test_exp_inside_unchanged():
    v = [0.0, 1.0, 2.0]
    assert np.allclose(project_exp_cone(v), v)


def test_exp_special_case():
    assert np.allclose(project_exp_cone([-1.0, -2.0, 3.0]), [-1.0, 0.0, 3.0])


def test_exp_polar_to_zero():
    assert np.allclose(project_exp_cone([0.0, -1.0, -1.0]), 0.0)


def test_exp_wrong_length():
    with pytest.raises(ValueError):
        project_exp_cone([1.0, 2.0])


@pytest.mark.parametrize(
    "v", [[1.0, 1.0, 1.0], [2.0, 0.5, -1.0], [0.5, -1.0, 2.0], [3.0, 2.0, 0.0]]
)
def test_exp_general_point(v):
    v = np.array(v)
    p = project_exp_cone(v)
    assert p[1] >= 0
    if p[1] > 1e-10:
        assert p[1] * math.exp(p[0] / p[1]) <= p[2] + 1e-6
    else:
        assert p[0] <= 1e-6 and p[2] >= -1e-6
    assert abs((v - p) @ p) < 1e-5


# ---------------------------------------------------------------- power cone


def test_power_inside_unchanged():
    v = [1.0, 1.0, 0.5]
    assert np.allclose(project_power_cone(v, 0.5), v)


def test_power_polar_to_zero():
    assert np.allclose(project_power_cone([-1.0, -1.0, 0.1], 0.5), 0.0)


@pytest.mark.parametrize(
    "v,a",
    [([1.0, -0.5, 2.0], 0.3), ([-1.0, 2.0, 3.0], 0.6), ([0.5, 0.5, -4.0], 0.5)],
)
def test_power_general_point(v, a):
    v = np.array(v)
    p = project_power_cone(v, a)
    assert p[0] >= 0 and p[1] >= 0
    assert p[0] ** a * p[1] ** (1 - a) >= abs(p[2]) - 1e-6
    assert math.copysign(1.0, p[2]) == math.copysign(1.0, v[2])
    assert abs((v - p) @ p) < 1e-5


# ---------------------------------------------------------------- box cone


def test_box_scalar_case():
    out, t = project_box_cone([-2.0], [], [])
    assert out.tolist() == [0.0]
    assert t == 0.0


def test_box_inside_unchanged():
    out, t = project_box_cone([1.0, 0.5, -0.5], [-1.0, -1.0], [1.0, 1.0])
    assert np.allclose(out, [1.0, 0.5, -0.5])
    assert t == pytest.approx(1.0)


def test_box_bad_bounds_length():
    with pytest.raises(ValueError):
        project_box_cone([1.0, 0.5], [-1.0, -1.0], [1.0, 1.0])


@pytest.mark.parametrize("seed", range(6))
def test_box_projection_properties(seed):
    rng = np.random.default_rng(seed)
    k = 5
    bl = -rng.uniform(0.1, 2.0, k)
    bu = rng.uniform(0.1, 2.0, k)
    tx = rng.standard_normal(k + 1) * 3
    out, t = project_box_cone(tx, bl, bu)
    assert out[0] == t and t >= 0
    assert np.all(out[1:] <= t * bu + 1e-9)
    assert np.all(out[1:] >= t * bl - 1e-9)
    assert abs((tx - out) @ out) < 1e-7


def test_box_unit_metric_matches_default():
    tx = [0.3, 2.0, -3.0, 0.1]
    bl, bu = [-1.0, -1.0, -1.0], [1.0, 1.0, 1.0]
    plain, _ = project_box_cone(tx, bl, bu)
    weighted, _ = project_box_cone(tx, bl, bu, 1.0, np.ones(4))
    assert np.allclose(plain, weighted)


def test_box_infinite_bounds():
    out, t = project_box_cone([1.0, 50.0, -2.0], [0.0, -math.inf], [math.inf, 0.0])
    assert out[1] == pytest.approx(50.0)
    assert out[2] == pytest.approx(-2.0)
    assert t == pytest.approx(1.0)


# ---------------------------------------------------------------- normalize


def test_normalize_without_scaling_sanitises():
    bl, bu = normalize_box_bounds([-1e20, 2.0], [50.0, 1e20], None)
    assert bl[0] == -math.inf and bl[1] == 2.0
    assert bu[0] == 50.0 and bu[1] == math.inf


def test_normalize_scaling_round_trip():
    d = np.array([2.0, 4.0, 0.5, 3.0])
    bl = np.array([1.0, -1.0, -1e20])
    bu = np.array([3.0, 2.0, 1e20])
    nbl, nbu = normalize_box_bounds(bl, bu, d)
    assert np.allclose(nbl[:2] * d[0] / d[1:3], bl[:2])
    assert np.allclose(nbu[:2] * d[0] / d[1:3], bu[:2])
    assert nbl[2] == -math.inf and nbu[2] == math.inf


def test_normalize_bad_scaling_length():
    with pytest.raises(ValueError):
        normalize_box_bounds([1.0], [2.0], [1.0])