"""Tests for classical interpolation and truncation."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import csr_array

from pyamg.gallery import poisson

from amgcore.core.errors import ParameterError, SingularBlockError
from amgcore.core.interpolation import build_interpolation, energy_min, truncate
from amgcore.core.parallel import ExecutionPolicy
from amgcore.core.splitting import aggressive_splitting, rs_splitting
from amgcore.core.strength import classical_strength
from amgcore.core.types import VertexLabel

C = int(VertexLabel.COARSE)


def _split(shape, **kwargs):
    A = csr_array(poisson(shape, format="csr"))
    S = classical_strength(A, theta=0.25)
    return A, S, rs_splitting(A, S, **kwargs)


def test_direct_1d_is_linear_interpolation():
    A, S, labels = _split((9,))
    P = build_interpolation(A, S, labels, "direct")
    expected = np.array([
        [0.5, 0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0, 0.0],
        [0.5, 0.5, 0.0, 0.0],
        [0.0, 1.0, 0.0, 0.0],
        [0.0, 0.5, 0.5, 0.0],
        [0.0, 0.0, 1.0, 0.0],
        [0.0, 0.0, 0.5, 0.5],
        [0.0, 0.0, 0.0, 1.0],
        [0.0, 0.0, 0.0, 0.5],
    ])
    np.testing.assert_allclose(P.toarray(), expected)


@pytest.mark.parametrize("method", ["direct", "standard", "energy_min"])
def test_coarse_rows_are_injection(method):
    A, S, labels = _split((10, 10), second_pass=(method != "standard"))
    P = build_interpolation(A, S, labels, method)
    cpts = np.flatnonzero(labels == C)
    assert P.shape == (A.shape[0], cpts.shape[0])
    np.testing.assert_allclose(P[cpts].toarray(), np.eye(cpts.shape[0]), atol=1e-6)


@pytest.mark.parametrize("method", ["direct", "standard"])
def test_interior_rows_reproduce_constants(method):
    # rows whose own and neighboring rows of A have zero row sum
    A, S, labels = _split((10, 10), second_pass=(method != "standard"))
    P = build_interpolation(A, S, labels, method, truncation=0.0)
    zero_sum = np.isclose(A @ np.ones(A.shape[0]), 0.0)
    interior = np.array([i for i in range(A.shape[0])
                         if zero_sum[A.indices[A.indptr[i]:A.indptr[i + 1]]].all()])
    nonempty = np.diff(P.indptr) > 0
    rows = interior[nonempty[interior]]
    np.testing.assert_allclose((P @ np.ones(P.shape[1]))[rows], 1.0, atol=1e-12)


def test_energy_min_reproduces_constants():
    A, S, labels = _split((10, 10))
    P = build_interpolation(A, S, labels, "energy_min", truncation=0.0,
                            energy_tol=1e-12, energy_maxiter=500)
    nonempty = np.diff(P.indptr) > 0
    np.testing.assert_allclose((P @ np.ones(P.shape[1]))[nonempty], 1.0, atol=1e-6)


def test_energy_min_singular_block():
    A = csr_array(np.array([[1.0, 1.0], [1.0, 1.0]]))
    P = csr_array(np.array([[1.0], [1.0]]))
    with pytest.raises(SingularBlockError) as excinfo:
        energy_min(A, P)
    assert excinfo.value.column == 0
    assert isinstance(excinfo.value, np.linalg.LinAlgError)


def test_standard_after_aggressive_reaches_two_hops():
    A = csr_array(poisson((16, 16), format="csr"))
    S = classical_strength(A, theta=0.25)
    labels = aggressive_splitting(A, S)
    P = build_interpolation(A, S, labels, "standard")
    fine = labels != C
    # every F point has a C point within two hops, so no F row is empty
    assert np.all(np.diff(P.indptr)[fine] > 0)


def test_unknown_method():
    A, S, labels = _split((6,))
    with pytest.raises(ParameterError):
        build_interpolation(A, S, labels, "bogus")


def test_truncation_example():
    P = csr_array(np.array([[-0.5, -0.05, 0.3, 0.01]]))
    Pt = truncate(P, 0.2)
    np.testing.assert_allclose(Pt.toarray(), [[-0.55, 0.0, 0.31, 0.0]])
    assert Pt.nnz == 2


@pytest.mark.parametrize("policy", [ExecutionPolicy(), ExecutionPolicy(num_workers=3, threshold=1)])
def test_truncation_preserves_signed_row_sums(policy):
    rng = np.random.default_rng(42)
    P = csr_array((rng.random((40, 12)) - 0.5) * (rng.random((40, 12)) < 0.4))
    Pt = truncate(P, 0.3, policy=policy)

    dense, dense_t = P.toarray(), Pt.toarray()
    np.testing.assert_allclose(np.where(dense_t < 0, dense_t, 0).sum(axis=1),
                               np.where(dense < 0, dense, 0).sum(axis=1))
    np.testing.assert_allclose(np.where(dense_t > 0, dense_t, 0).sum(axis=1),
                               np.where(dense > 0, dense, 0).sum(axis=1))
    assert Pt.nnz <= P.nnz
