"""Aggregation-based coarsening.

An aggregation is stored as an int32 array ``aggregates`` mapping each fine
vertex to an aggregate id, with -1 for vertices left out (vertices without
strong couplings). The matching aggregation operator ``AggOp`` is the
(n_fine x n_aggs) 0/1 matrix with one nonzero per aggregated row.

Methods
-------
pairwise
    Greedy matching of each unmatched vertex with its strongest unmatched
    neighbor. Several passes are composed, each pass matching the aggregates
    of the previous one through the Galerkin operator ``AggOp^T A AggOp``.
vmb
    Neighborhood growing in three phases: whole free neighborhoods become
    aggregates, left-over vertices join the neighboring aggregate they are
    most strongly tied to, and what remains is grouped with its free
    neighbors. Aggregate size is capped by ``max_aggregation``.

The tentative prolongation is built from a near-kernel basis by a QR
factorization on each aggregate, and may be smoothed by one damped Jacobi
step (smoothed aggregation).
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import csr_array

from pyamg.util.linalg import approximate_spectral_radius

from .errors import CoarseningFailure, ParameterError
from .parallel import SEQUENTIAL, ExecutionPolicy
from .sparse import adjacency_lists, int32_indices
from .strength import symmetric_strength


def aggregation_operator(aggregates: np.ndarray, n_aggs: int) -> csr_array:
    """0/1 aggregation operator; rows of unaggregated vertices are empty."""
    n = aggregates.shape[0]
    member = aggregates >= 0
    counts = member.astype(np.int64)
    indptr = np.concatenate(([0], np.cumsum(counts)))
    return csr_array((np.ones(int(member.sum())), aggregates[member], indptr), shape=(n, n_aggs))


def count_aggregates(aggregates: np.ndarray, policy: ExecutionPolicy = SEQUENTIAL) -> int:
    """Number of aggregates, reduced over per-block maxima."""
    n = aggregates.shape[0]

    def _block(start: int, stop: int) -> int:
        if stop <= start:
            return -1
        return int(aggregates[start:stop].max())

    return max(policy.parallel_for(n, _block)) + 1


def _abs_row_weights(A) -> list[dict[int, float]]:
    """Per-row maps from column to summed absolute value."""
    indptr = A.indptr.tolist()
    indices = A.indices.tolist()
    data = np.abs(A.data).tolist()
    rows = []
    for i in range(A.shape[0]):
        row: dict[int, float] = {}
        for p in range(indptr[i], indptr[i + 1]):
            row[indices[p]] = row.get(indices[p], 0.0) + data[p]
        rows.append(row)
    return rows


def _pairwise_pass(A, theta: float) -> tuple[np.ndarray, int]:
    """One round of matching each vertex with its strongest free neighbor."""
    S_rows = adjacency_lists(symmetric_strength(A, theta))
    weights = _abs_row_weights(A)
    n = A.shape[0]
    aggregates = np.full(n, -1, dtype=np.int32)
    n_aggs = 0
    for i in range(n):
        if aggregates[i] >= 0:
            continue
        best, best_w = -1, 0.0
        for j in S_rows[i]:
            if aggregates[j] >= 0 or j == i:
                continue
            w = weights[i].get(j, 0.0)
            if w > best_w:
                best, best_w = j, w
        aggregates[i] = n_aggs
        if best >= 0:
            aggregates[best] = n_aggs
        n_aggs += 1
    return aggregates, n_aggs


def pairwise_aggregation(A, *, theta: float = 0.08, passes: int = 2) -> tuple[np.ndarray, int]:
    """Compose ``passes`` rounds of pairwise matching.

    Every vertex ends up in an aggregate; a vertex without an unmatched
    strong neighbor forms a singleton.
    """
    aggregates = np.arange(A.shape[0], dtype=np.int32)
    n_aggs = A.shape[0]
    Ac = csr_array(A)
    for k in range(passes):
        sub, n_sub = _pairwise_pass(Ac, theta)
        aggregates = sub[aggregates]
        n_aggs = n_sub
        if k + 1 < passes:
            AggOp = aggregation_operator(sub, n_sub)
            Ac = csr_array(AggOp.T @ Ac @ AggOp)
            Ac.eliminate_zeros()
            if n_sub <= 1:
                break
    return aggregates, n_aggs


def vmb_aggregation(A, *, theta: float = 0.08, max_size: int = 9) -> tuple[np.ndarray, int]:
    """Neighborhood-growing aggregation with a size cap."""
    S_rows = adjacency_lists(symmetric_strength(A, theta))
    weights = _abs_row_weights(A)
    n = A.shape[0]
    aggregates = np.full(n, -1, dtype=np.int32)
    sizes: list[int] = []
    free = [len(S_rows[i]) > 0 for i in range(n)]

    # phase 1: whole free neighborhoods
    for i in range(n):
        if not free[i] or aggregates[i] >= 0:
            continue
        if any(aggregates[j] >= 0 for j in S_rows[i]):
            continue
        members = [i] + S_rows[i][: max_size - 1]
        aggregates[members] = len(sizes)
        sizes.append(len(members))

    # phase 2: join the most strongly connected aggregate with room left
    first_pass = aggregates.copy()
    for i in range(n):
        if not free[i] or aggregates[i] >= 0:
            continue
        votes: dict[int, float] = {}
        for j in S_rows[i]:
            a = int(first_pass[j])
            if a >= 0:
                votes[a] = votes.get(a, 0.0) + weights[i].get(j, 0.0)
        for a, _ in sorted(votes.items(), key=lambda kv: (-kv[1], kv[0])):
            if sizes[a] < max_size:
                aggregates[i] = a
                sizes[a] += 1
                break

    # phase 3: group what is left with its free neighbors
    for i in range(n):
        if not free[i] or aggregates[i] >= 0:
            continue
        members = [i] + [j for j in S_rows[i] if aggregates[j] < 0][: max_size - 1]
        aggregates[members] = len(sizes)
        sizes.append(len(members))

    return aggregates, len(sizes)


def adapt_threshold(theta: float, n_fine: int, n_aggs: int) -> float:
    """Threshold for the next level given this level's aggregate count.

    Too many aggregates (coarsening slower than 4:1) halves the threshold;
    otherwise a coarsening faster than 1.25:1 doubles it.
    """
    if 4 * n_aggs > n_fine:
        return theta / 2.0
    if 1.25 * n_aggs < n_fine:
        return theta * 2.0
    return theta


def tentative_prolongation(aggregates: np.ndarray, n_aggs: int,
                           B: np.ndarray) -> tuple[csr_array, np.ndarray]:
    """Fit the near-kernel basis B aggregate by aggregate.

    Each aggregate's rows of B are factored as Q R; Q fills the aggregate's
    k columns of the tentative operator and R becomes its block of the
    coarse basis, so that ``T @ Bc == B`` on aggregated rows.

    Returns
    -------
    T : csr_array
        Shape (n_fine, n_aggs * k).
    Bc : ndarray
        Coarse near-kernel basis of shape (n_aggs * k, k).
    """
    n, k = B.shape
    order = np.argsort(aggregates, kind="stable")
    order = order[aggregates[order] >= 0]
    counts = np.bincount(aggregates[order], minlength=n_aggs)
    starts = np.concatenate(([0], np.cumsum(counts)))

    rows, cols, vals = [], [], []
    Bc = np.zeros((n_aggs * k, k))
    for a in range(n_aggs):
        I = order[starts[a]:starts[a + 1]]
        if I.shape[0] == 0:
            continue
        Q, R = np.linalg.qr(B[I], mode="reduced")
        s = np.sign(np.diag(R))
        s[s == 0] = 1.0
        Q = Q * s
        R = R * s[:, None]
        m = Q.shape[1]
        rows.append(np.repeat(I, m))
        cols.append(np.tile(a * k + np.arange(m), I.shape[0]))
        vals.append(Q.ravel())
        Bc[a * k:a * k + m] = R

    if rows:
        T = csr_array((np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                      shape=(n, n_aggs * k))
    else:
        T = csr_array((n, n_aggs * k))
    T = int32_indices(T)
    T.sort_indices()
    return T, Bc


def smooth_prolongation(A, T, *, weight: float = 4.0 / 3.0) -> csr_array:
    """One damped Jacobi step ``P = (I - w / rho(D^-1 A) D^-1 A) T``."""
    d = A.diagonal()
    dinv = np.zeros_like(d)
    dinv[d != 0] = 1.0 / d[d != 0]
    n = A.shape[0]
    D_inv_A = csr_array((dinv, (np.arange(n), np.arange(n))), shape=(n, n)) @ A
    rho = approximate_spectral_radius(D_inv_A)
    P = int32_indices(csr_array(T - (weight / rho) * (D_inv_A @ T)))
    P.sort_indices()
    return P


def build_aggregation_interpolation(A, B: np.ndarray, method: str, *,
                                    theta: float, max_size: int = 9,
                                    passes: int = 2, smooth: bool = False,
                                    weight: float = 4.0 / 3.0,
                                    policy: ExecutionPolicy = SEQUENTIAL):
    """Aggregate A and build its prolongation.

    Returns
    -------
    P : csr_array
    aggregates : ndarray of int32
    n_aggs : int
    Bc : ndarray
        Coarse near-kernel basis.

    Raises
    ------
    CoarseningFailure
        If no aggregate is formed.
    """
    if method == "pairwise":
        aggregates, _ = pairwise_aggregation(A, theta=theta, passes=passes)
    elif method == "vmb":
        aggregates, _ = vmb_aggregation(A, theta=theta, max_size=max_size)
    else:
        raise ParameterError(f"Unrecognized aggregation method: {method!r}")

    n_aggs = count_aggregates(aggregates, policy)
    if n_aggs <= 0:
        raise CoarseningFailure("aggregation formed no aggregates")

    T, Bc = tentative_prolongation(aggregates, n_aggs, B)
    P = smooth_prolongation(A, T, weight=weight) if smooth else T
    return P, aggregates, n_aggs, Bc
