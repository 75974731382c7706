"""Row-compressed sparse matrix helpers.

The sparse matrix type used throughout is ``scipy.sparse.csr_array``. The
helpers here cover the handful of structural operations the setup phase
needs on top of what scipy provides directly: validated conversion,
transpose, in-row sorting, symmetric permutation, symmetric part, row
compression, and the structural (integer payload) graphs used for
strength of connection.
"""

from __future__ import annotations

from warnings import warn

import numpy as np
from scipy.sparse import SparseEfficiencyWarning, csr_array, issparse

from pyamg.util.utils import asfptype

from .parallel import SEQUENTIAL, ExecutionPolicy


def as_csr(A, *, name: str = "A", square: bool = True) -> csr_array:
    """Return A as a floating point ``csr_array``.

    Non-CSR input is converted with a ``SparseEfficiencyWarning``. Input that
    cannot be converted raises ``TypeError``; a non-square matrix raises
    ``ValueError`` when ``square`` is set.
    """
    if not issparse(A) or A.format != "csr":
        try:
            A = csr_array(A)
            warn(f"Implicit conversion of {name} to CSR", SparseEfficiencyWarning)
        except Exception as e:
            raise TypeError(f"Argument {name} must have type csr_array, "
                            "or be convertible to csr_array") from e
    elif not isinstance(A, csr_array):
        A = csr_array(A)

    if square and A.shape[0] != A.shape[1]:
        raise ValueError("expected square matrix")

    return asfptype(A)


def transpose(A) -> csr_array:
    """Transpose as a new CSR array with sorted rows."""
    AT = csr_array(A.T.tocsr())
    AT.sort_indices()
    return AT


def sort_rows(A) -> csr_array:
    """Sort column indices within each row, in place, and return A."""
    A.sort_indices()
    return A


def permute(A, perm) -> csr_array:
    """Symmetric permutation ``A[perm][:, perm]``.

    Row ``k`` of the result is row ``perm[k]`` of A with columns renumbered
    the same way.
    """
    perm = np.asarray(perm)
    n = A.shape[0]
    if perm.shape != (n,) or not np.array_equal(np.sort(perm), np.arange(n)):
        raise ValueError("perm must be a permutation of range(n)")
    Ap = csr_array(A)[perm][:, perm]
    Ap.sort_indices()
    return csr_array(Ap)


def symmetric_part(A) -> csr_array:
    """Return (A + A^T) / 2."""
    S = csr_array(0.5 * (A + A.T))
    S.sort_indices()
    return S


def compress_rows(A, tol: float = 0.0) -> csr_array:
    """Drop off-diagonal entries with ``|a_ij| <= tol``.

    Diagonal entries are always kept, even when zero.
    """
    A = csr_array(A)
    rows = np.repeat(np.arange(A.shape[0]), np.diff(A.indptr))
    keep = (np.abs(A.data) > tol) | (A.indices == rows)
    counts = np.bincount(rows[keep], minlength=A.shape[0])
    indptr = np.concatenate(([0], np.cumsum(counts))).astype(A.indptr.dtype)
    return csr_array((A.data[keep], A.indices[keep], indptr), shape=A.shape)


def row_lengths(A) -> np.ndarray:
    """Number of stored entries per row."""
    return np.diff(A.indptr)


def row_index(A) -> np.ndarray:
    """Row number of every stored entry (same length as ``A.data``)."""
    return np.repeat(np.arange(A.shape[0], dtype=A.indices.dtype), np.diff(A.indptr))


def int32_indices(A) -> csr_array:
    """Store the index arrays of A as int32, in place, and return A.

    The compiled relaxation kernels of pyamg accept int32 indices only, while
    products and COO conversions may hand back int64 index arrays.
    """
    if A.indices.dtype != np.int32:
        A.indices = A.indices.astype(np.int32)
    if A.indptr.dtype != np.int32:
        A.indptr = A.indptr.astype(np.int32)
    return A


def diagonal(A, policy: ExecutionPolicy = SEQUENTIAL) -> np.ndarray:
    """Extract the main diagonal, one row block per worker."""
    n = A.shape[0]
    diag = np.zeros(n, dtype=A.dtype)
    indptr, indices, data = A.indptr, A.indices, A.data

    def _block(start: int, stop: int) -> None:
        lo, hi = indptr[start], indptr[stop]
        rows = np.repeat(np.arange(start, stop), np.diff(indptr[start:stop + 1]))
        mask = indices[lo:hi] == rows
        np.add.at(diag, rows[mask], data[lo:hi][mask])

    policy.parallel_for(n, _block)
    return diag


def structure(indptr, indices, shape) -> csr_array:
    """Structural graph with an int8 payload of ones."""
    indices = np.asarray(indices, dtype=np.int32)
    indptr = np.asarray(indptr, dtype=np.int32)
    data = np.ones(indices.shape[0], dtype=np.int8)
    return csr_array((data, indices, indptr), shape=shape)


def adjacency_lists(G) -> list[list[int]]:
    """Per-row neighbor lists of a CSR graph as plain Python lists."""
    indptr = G.indptr.tolist()
    indices = G.indices.tolist()
    return [indices[indptr[i]:indptr[i + 1]] for i in range(G.shape[0])]
