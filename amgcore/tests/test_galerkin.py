"""Tests for restriction and Galerkin coarse operators."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import csr_array

from pyamg.gallery import poisson

from amgcore.core.galerkin import galerkin_product, restriction, symmetry_defect
from amgcore.core.interpolation import build_interpolation
from amgcore.core.splitting import rs_splitting
from amgcore.core.strength import classical_strength


def _prolongation(A, method):
    S = classical_strength(A)
    labels = rs_splitting(A, S, second_pass=(method != "standard"))
    return build_interpolation(A, S, labels, method)


def test_restriction_is_transpose():
    P = csr_array(np.array([[1.0, 0.0], [0.5, 0.5], [0.0, 1.0]]))
    np.testing.assert_array_equal(restriction(P).toarray(), P.toarray().T)


def test_galerkin_matches_dense_product():
    A = csr_array(poisson((9,), format="csr"))
    P = _prolongation(A, "direct")
    Ac = galerkin_product(A, P)
    expected = P.toarray().T @ A.toarray() @ P.toarray()
    np.testing.assert_allclose(Ac.toarray(), expected, atol=1e-14)
    assert Ac.has_sorted_indices


@pytest.mark.parametrize("method", ["direct", "standard", "energy_min"])
def test_coarse_operator_is_symmetric(method):
    A = csr_array(poisson((12, 12), format="csr"))
    P = _prolongation(A, method)
    Ac = galerkin_product(A, P, restriction(P))
    assert Ac.shape == (P.shape[1], P.shape[1])
    assert symmetry_defect(Ac) < 1e-12


def test_symmetry_defect_detects_nonsymmetric():
    A = csr_array(np.array([[2.0, -1.0], [-0.5, 2.0]]))
    assert symmetry_defect(A) == pytest.approx(0.25)
