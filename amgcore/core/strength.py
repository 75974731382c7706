"""Classical strength of connection.

For row i let ``m_i = min(0, min_k a_ik)`` (the diagonal included). An
off-diagonal entry is strong iff ``a_ij < theta * m_i``; ties are weak, so a
row without negative entries never has strong couplings. A row whose scaled
absolute row sum ``|sum_k a_ik| / |a_ii|`` exceeds ``max_row_sum`` (only when
``max_row_sum < 1``) is treated as entirely weak.

The result is compacted: weak entries are removed from the graph rather than
flagged, and the payload is int8 ones.
"""

from __future__ import annotations

import numpy as np

from .parallel import SEQUENTIAL, ExecutionPolicy
from .sparse import structure

SMALL_REAL = 1e-20


def _strong_mask(A, theta: float, max_row_sum: float, start: int, stop: int) -> np.ndarray:
    """Strong-entry mask for the stored entries of rows start..stop."""
    indptr, indices, data = A.indptr, A.indices, A.data
    lo, hi = indptr[start], indptr[stop]
    counts = np.diff(indptr[start:stop + 1])
    local_rows = np.repeat(np.arange(stop - start), counts)
    rows = local_rows + start
    vals = data[lo:hi]
    cols = indices[lo:hi]

    row_scale = np.zeros(stop - start, dtype=vals.dtype)
    np.minimum.at(row_scale, local_rows, vals)

    is_diag = cols == rows
    diag = np.zeros(stop - start, dtype=vals.dtype)
    np.add.at(diag, local_rows[is_diag], vals[is_diag])
    row_sum = np.abs(np.bincount(local_rows, weights=vals, minlength=stop - start))
    row_sum = row_sum / np.maximum(SMALL_REAL, np.abs(diag))

    if max_row_sum < 1.0:
        weak_row = row_sum > max_row_sum
    else:
        weak_row = np.zeros(stop - start, dtype=bool)

    strong = (~is_diag) & (vals < theta * row_scale[local_rows]) & (~weak_row[local_rows])
    return strong


def classical_strength(A, theta: float = 0.3, max_row_sum: float = 0.9,
                       policy: ExecutionPolicy = SEQUENTIAL):
    """Return the compacted strength graph S of A.

    Parameters
    ----------
    A : csr_array
        Square level operator.
    theta : float
        Strength threshold in (0, 1).
    max_row_sum : float
        Row-sum cap. Values >= 1 disable the cap.
    policy : ExecutionPolicy
        Controls whether rows are classified in parallel blocks.

    Returns
    -------
    S : csr_array
        Structural graph (int8 ones) with the same shape as A. ``S[i, j]`` is
        stored iff i strongly depends on j. Rows with no strong couplings are
        empty.
    """
    if not 0.0 < theta < 1.0:
        raise ValueError("expected theta in (0, 1)")

    n = A.shape[0]
    masks = policy.parallel_for(n, lambda start, stop: _strong_mask(A, theta, max_row_sum, start, stop))
    strong = np.concatenate(masks) if masks else np.zeros(0, dtype=bool)

    rows = np.repeat(np.arange(n), np.diff(A.indptr))
    counts = np.bincount(rows[strong], minlength=n)
    indptr = np.concatenate(([0], np.cumsum(counts)))
    return structure(indptr, A.indices[strong], A.shape)


def symmetric_strength(A, theta: float):
    """Return the symmetric strength graph used by aggregation.

    Entry (i, j), i != j, is strong iff ``|a_ij| >= theta * sqrt(|a_ii a_jj|)``.
    """
    n = A.shape[0]
    rows = np.repeat(np.arange(n), np.diff(A.indptr))
    cols = A.indices
    diag = np.abs(A.diagonal())
    bound = theta * np.sqrt(diag[rows] * diag[cols])
    strong = (rows != cols) & (np.abs(A.data) >= bound) & (A.data != 0)
    counts = np.bincount(rows[strong], minlength=n)
    indptr = np.concatenate(([0], np.cumsum(counts)))
    return structure(indptr, cols[strong], A.shape)
