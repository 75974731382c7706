"""Tests for Ruge-Stuben and aggressive C/F splitting."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import block_diag, csr_array, identity

from pyamg.gallery import poisson

from amgcore.core.errors import CoarseningFailure
from amgcore.core.sparse import adjacency_lists
from amgcore.core.splitting import (
    _repair_fine_points,
    aggressive_splitting,
    coarse_index,
    greedy_select,
    rs_splitting,
)
from amgcore.core.strength import classical_strength
from amgcore.core.types import VertexLabel

F = int(VertexLabel.FINE)
C = int(VertexLabel.COARSE)
ISO = int(VertexLabel.ISOLATED)
U = int(VertexLabel.UNDECIDED)


def _setup(A):
    A = csr_array(A)
    return A, classical_strength(A, theta=0.25)


def _covered_within_two_hops(S, labels) -> bool:
    rows = adjacency_lists(S)
    for i in np.flatnonzero(labels == F):
        if any(labels[k] == C for k in rows[i]):
            continue
        if any(labels[m] == C for k in rows[i] for m in rows[k]):
            continue
        return False
    return True


def test_1d_laplacian_alternates():
    A, S = _setup(poisson((63,), format="csr"))
    labels = rs_splitting(A, S)
    assert labels.dtype == np.int8
    assert np.all(labels[1::2] == C)
    assert np.all(labels[0::2] == F)


def test_greedy_ties_pick_lowest_index():
    S_rows = [[1, 2], [0, 2], [0, 1]]
    labels = [U, U, U]
    greedy_select(S_rows, S_rows, labels, [2, 2, 2])
    assert labels == [C, F, F]


def test_greedy_zero_measure_becomes_fine():
    # vertex 2 has nobody depending on it
    S_rows = [[1], [0], [0]]
    ST_rows = [[1, 2], [0], []]
    labels = [U, U, U]
    greedy_select(S_rows, ST_rows, labels, [2, 1, 0])
    assert labels == [C, F, F]


@pytest.mark.parametrize("shape", [(12, 12), (7, 19)])
def test_classical_coverage(shape):
    A, S = _setup(poisson(shape, format="csr"))
    labels = rs_splitting(A, S)
    assert np.any(labels == C)
    assert not np.any(labels == U)
    assert _covered_within_two_hops(S, labels)


def test_isolated_vertices():
    A = csr_array(block_diag([poisson((5,), format="csr"), csr_array(np.array([[4.0]]))]))
    A, S = _setup(A)
    labels = rs_splitting(A, S)
    assert labels[5] == ISO
    assert set(labels[:5].tolist()) <= {C, F}


def test_empty_strength_graph_fails():
    A, S = _setup(identity(5, format="csr"))
    with pytest.raises(CoarseningFailure):
        rs_splitting(A, S)
    with pytest.raises(CoarseningFailure):
        aggressive_splitting(A, S)


def test_repair_promotes_shared_neighbor():
    # 0 and 1 are strongly coupled F points without a common C point
    S_rows = [[1, 2], [0, 3], [0], [1]]
    labels = [F, F, C, C]
    _repair_fine_points(S_rows, labels)
    assert labels == [F, C, C, C]


def test_repair_keeps_supported_pairs():
    # 0 and 1 share the C point 2
    S_rows = [[1, 2], [0, 2], [0, 1]]
    labels = [F, F, C]
    _repair_fine_points(S_rows, labels)
    assert labels == [F, F, C]


@pytest.mark.parametrize("path", [1, 2])
def test_aggressive_is_coarser_and_covered(path):
    A, S = _setup(poisson((16, 16), format="csr"))
    classical = rs_splitting(A, S, second_pass=False)
    aggressive = aggressive_splitting(A, S, path=path)
    assert 0 < np.count_nonzero(aggressive == C) < np.count_nonzero(classical == C)
    assert _covered_within_two_hops(S, aggressive)


def test_aggressive_invalid_path():
    A, S = _setup(poisson((4, 4), format="csr"))
    with pytest.raises(ValueError):
        aggressive_splitting(A, S, path=3)


def test_coarse_index_numbers_c_points_in_order():
    labels = np.array([F, C, F, C, C], dtype=np.int8)
    np.testing.assert_array_equal(coarse_index(labels), [-1, 0, -1, 1, 2])
