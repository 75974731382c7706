"""Tests for pairwise and VMB aggregation and tentative prolongation."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import block_diag, csr_array

from pyamg.gallery import poisson

from amgcore.core.aggregation import (
    adapt_threshold,
    aggregation_operator,
    build_aggregation_interpolation,
    count_aggregates,
    pairwise_aggregation,
    smooth_prolongation,
    tentative_prolongation,
    vmb_aggregation,
)
from amgcore.core.errors import CoarseningFailure, ParameterError
from amgcore.core.parallel import ExecutionPolicy


def _laplacian(shape):
    return csr_array(poisson(shape, format="csr"))


def test_pairwise_single_pass_pairs_neighbors():
    aggregates, n_aggs = pairwise_aggregation(_laplacian((8,)), passes=1)
    np.testing.assert_array_equal(aggregates, [0, 0, 1, 1, 2, 2, 3, 3])
    assert n_aggs == 4


def test_pairwise_two_passes_quadruples():
    aggregates, n_aggs = pairwise_aggregation(_laplacian((8,)), passes=2)
    np.testing.assert_array_equal(aggregates, [0, 0, 0, 0, 1, 1, 1, 1])
    assert n_aggs == 2


def test_vmb_1d_neighborhoods():
    aggregates, n_aggs = vmb_aggregation(_laplacian((9,)), max_size=9)
    # vertex 8 joins its neighbor's aggregate in the second phase
    np.testing.assert_array_equal(aggregates, [0, 0, 1, 1, 1, 2, 2, 2, 2])
    assert n_aggs == 3


def test_vmb_respects_size_cap():
    A = _laplacian((12, 12))
    aggregates, n_aggs = vmb_aggregation(A, max_size=3)
    sizes = np.bincount(aggregates[aggregates >= 0], minlength=n_aggs)
    assert sizes.max() <= 3
    assert np.all(aggregates >= 0)


def test_vmb_leaves_uncoupled_vertices_out():
    A = csr_array(block_diag([poisson((4,), format="csr"), csr_array(np.array([[2.0]]))]))
    aggregates, _ = vmb_aggregation(A)
    assert aggregates[4] == -1
    assert np.all(aggregates[:4] >= 0)


@pytest.mark.parametrize("policy", [ExecutionPolicy(), ExecutionPolicy(num_workers=2, threshold=1)])
def test_count_aggregates_reduction(policy):
    aggregates = np.array([0, 0, -1, 2, 1, 2], dtype=np.int32)
    assert count_aggregates(aggregates, policy) == 3
    assert count_aggregates(np.full(4, -1, dtype=np.int32), policy) == 0


def test_aggregation_operator_has_empty_rows_for_unaggregated():
    AggOp = aggregation_operator(np.array([1, -1, 0, 1], dtype=np.int32), 2)
    np.testing.assert_array_equal(AggOp.toarray(), [[0, 1], [0, 0], [1, 0], [0, 1]])


@pytest.mark.parametrize("theta, n_aggs, expected", [
    (0.08, 30, 0.04),
    (0.08, 4, 0.16),
    (0.08, 25, 0.16),
])
def test_adapt_threshold(theta, n_aggs, expected):
    assert adapt_threshold(theta, 100, n_aggs) == pytest.approx(expected)


def test_tentative_prolongation_fits_near_kernel():
    aggregates = np.array([0, 0, 1, 1, 1, -1], dtype=np.int32)
    x = np.linspace(0.0, 1.0, 6)
    B = np.column_stack([np.ones(6), x])
    T, Bc = tentative_prolongation(aggregates, 2, B)
    assert T.shape == (6, 4)
    assert Bc.shape == (4, 2)
    np.testing.assert_allclose((T @ Bc)[:5], B[:5], atol=1e-12)
    assert np.diff(T.indptr)[5] == 0
    # columns are orthonormal
    np.testing.assert_allclose((T.T @ T).toarray(), np.eye(4), atol=1e-12)


def test_smoothed_prolongation_keeps_shape():
    A = _laplacian((16,))
    aggregates, n_aggs = pairwise_aggregation(A)
    T, _ = tentative_prolongation(aggregates, n_aggs, np.ones((16, 1)))
    P = smooth_prolongation(A, T)
    assert P.shape == T.shape
    assert P.nnz > T.nnz


def test_build_aggregation_interpolation():
    A = _laplacian((10, 10))
    P, aggregates, n_aggs, Bc = build_aggregation_interpolation(
        A, np.ones((100, 1)), "vmb", theta=0.08)
    assert P.shape == (100, n_aggs)
    assert Bc.shape == (n_aggs, 1)
    assert aggregates.shape == (100,)


def test_build_aggregation_interpolation_errors():
    A = csr_array(np.diag(np.arange(1.0, 6.0)))
    with pytest.raises(CoarseningFailure):
        build_aggregation_interpolation(A, np.ones((5, 1)), "vmb", theta=0.08)
    with pytest.raises(ParameterError):
        build_aggregation_interpolation(A, np.ones((5, 1)), "bogus", theta=0.08)
