"""Tests for multigrid cycles."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import csr_array, identity

from pyamg.gallery import poisson

from amgcore import apply_cycle, build_hierarchy
from amgcore.core.cycle import amli_coefficients, variable_cycle_types


def _laplacian(shape):
    return csr_array(poisson(shape, format="csr"))


def _cycle_residuals(ml, b, ncycles):
    A = ml.levels[0].A
    x = np.zeros_like(b)
    res = [np.linalg.norm(b - A @ x)]
    for _ in range(ncycles):
        apply_cycle(ml, b, x)
        res.append(np.linalg.norm(b - A @ x))
    return np.array(res)


def test_v_cycle_converges_1d():
    ml = build_hierarchy(_laplacian((63,)))
    res = _cycle_residuals(ml, np.ones(63), 10)
    # ratios only while the residual is above round-off
    active = res[:-1] > 1e-10 * res[0]
    ratios = res[1:][active] / res[:-1][active]
    assert ratios.size >= 1
    assert np.all(ratios < 0.5)


def test_cycle_is_deterministic():
    ml = build_hierarchy(_laplacian((20, 20)))
    b = np.arange(400, dtype=float)
    x0 = np.zeros(400)
    x1 = np.zeros(400)
    apply_cycle(ml, b, x0)
    apply_cycle(ml, b, x1)
    np.testing.assert_array_equal(x0, x1)


@pytest.mark.parametrize("kwargs", [
    {"cycle": "W"},
    {"cycle": "AMLI"},
    {"cycle": "AMLI", "amli_degree": 2},
    {"cycle": "variable"},
    {"smoother_ordering": "cf"},
    {"smoother_ordering": "fc"},
    {"presmoother": "jacobi", "postsmoother": "jacobi"},
    {"coarsening": "vmb", "smooth_aggregation": True},
    {"coarsening": "pairwise"},
    {"coarse_solver": "cg"},
])
def test_cycle_variants_reduce_residual(kwargs):
    ml = build_hierarchy(_laplacian((20, 20)), max_coarse=20, **kwargs)
    assert len(ml) > 2
    res = _cycle_residuals(ml, np.ones(400), 5)
    assert res[-1] < 0.5 * res[0]


def test_single_level_cycle_is_coarse_solve():
    ml = build_hierarchy(identity(20, format="csr") * 2.0)
    assert len(ml) == 1
    b = np.arange(20, dtype=float)
    x = np.ones(20)
    apply_cycle(ml, b, x)
    np.testing.assert_allclose(x, b / 2.0)


def test_amli_coefficients():
    np.testing.assert_allclose(amli_coefficients(0), [0.8])
    coef = amli_coefficients(2)
    assert coef.shape == (3,)
    # 1 - t q(t) vanishes at the Chebyshev points of [0.5, 2]
    t = 1.25 - 0.75 * np.cos(np.pi / 6.0)
    q = np.polynomial.polynomial.polyval(t, coef)
    assert 1.0 - t * q == pytest.approx(0.0, abs=1e-12)


def test_cycle_types():
    ml = build_hierarchy(_laplacian((20, 20)), max_coarse=5, cycle="variable")
    types = variable_cycle_types(ml.levels)
    assert types[0] == 1
    assert types[-1] == 0
    assert set(types[:-1]) <= {1, 2}
    assert [lvl.cycle_type for lvl in ml.levels] == types

    ml = build_hierarchy(_laplacian((20, 20)), cycle="W")
    assert [lvl.cycle_type for lvl in ml.levels] == [2] * (len(ml) - 1) + [0]
