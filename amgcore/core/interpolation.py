"""Prolongation operators for classical coarsening.

All variants share the same sparsity preamble:

- a C point interpolates from itself with weight 1,
- an F point interpolates from its strong C neighbors, and for the
  ``standard`` variant also from the strong C neighbors of its strong F
  neighbors,
- Isolated points (and F points without any C point in reach) get an empty
  row.

Weights
-------
direct
    Two-sided scaling of the strong couplings in the pattern against all
    off-diagonal couplings of the row, split by sign.
standard
    Strong F neighbors k are eliminated through row k of A before the
    direct-style scaling is applied.
energy_min
    Each coarse column c is supported on the rows I_c of the pattern. With
    ``T = sum_c E_c inv(A[I_c, I_c]) E_c^T`` (identity on empty rows) and
    ``T lam = 1``, the column values are ``inv(A[I_c, I_c]) lam[I_c]``, so the
    rows of P reproduce the constant vector.

Every variant ends with ``truncate``.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import csr_array

from pyamg.krylov import cg

from .errors import ParameterError, SingularBlockError
from .parallel import SEQUENTIAL, ExecutionPolicy
from .sparse import adjacency_lists, int32_indices, row_index, transpose
from .splitting import coarse_index
from .types import VertexLabel

F = int(VertexLabel.FINE)
C = int(VertexLabel.COARSE)


def interpolation_pattern(S_rows: list[list[int]], labels: list[int], *,
                          standard: bool = False,
                          policy: ExecutionPolicy = SEQUENTIAL) -> list[list[int]]:
    """Fine column indices of every row of P, in visiting order."""

    def _block(start: int, stop: int) -> list[list[int]]:
        out: list[list[int]] = []
        for i in range(start, stop):
            if labels[i] == C:
                out.append([i])
                continue
            if labels[i] != F:
                out.append([])
                continue
            row: list[int] = []
            seen: set[int] = set()
            for j in S_rows[i]:
                if labels[j] == C and j not in seen:
                    seen.add(j)
                    row.append(j)
            if standard:
                for j in S_rows[i]:
                    if labels[j] != F:
                        continue
                    for k in S_rows[j]:
                        if labels[k] == C and k not in seen:
                            seen.add(k)
                            row.append(k)
            out.append(row)
        return out

    pattern: list[list[int]] = []
    for part in policy.parallel_for(len(labels), _block):
        pattern.extend(part)
    return pattern


def _row_dict(indptr, indices, data, i: int) -> dict[int, float]:
    """Row i as a column-to-value map, duplicates summed."""
    row: dict[int, float] = {}
    for p in range(indptr[i], indptr[i + 1]):
        row[indices[p]] = row.get(indices[p], 0.0) + data[p]
    return row


def direct_weights(A, labels: list[int], pattern: list[list[int]], *,
                   policy: ExecutionPolicy = SEQUENTIAL) -> list[list[float]]:
    """Direct interpolation weights, aligned with ``pattern``."""
    indptr = A.indptr.tolist()
    indices = A.indices.tolist()
    data = A.data.tolist()

    def _block(start: int, stop: int) -> list[list[float]]:
        out: list[list[float]] = []
        for i in range(start, stop):
            if labels[i] == C:
                out.append([1.0])
                continue
            if not pattern[i]:
                out.append([])
                continue

            row = _row_dict(indptr, indices, data, i)
            in_pattern = set(pattern[i])
            aii = row.get(i, 0.0)
            amN = apN = amP = apP = 0.0
            for j, a in row.items():
                if j == i:
                    continue
                if a > 0:
                    apN += a
                    if j in in_pattern:
                        apP += a
                else:
                    amN += a
                    if j in in_pattern:
                        amP += a

            alpha = amN / amP if amP != 0.0 else 0.0
            if apP > 0.0:
                beta = apN / apP
            else:
                beta = 0.0
                aii += apN

            if aii == 0.0:
                out.append([0.0] * len(pattern[i]))
                continue
            vals = []
            for j in pattern[i]:
                a = row.get(j, 0.0)
                scale = beta if a > 0 else alpha
                vals.append(-scale * a / aii)
            out.append(vals)
        return out

    weights: list[list[float]] = []
    for part in policy.parallel_for(A.shape[0], _block):
        weights.extend(part)
    return weights


def standard_weights(A, S_rows: list[list[int]], labels: list[int],
                     pattern: list[list[int]], *,
                     policy: ExecutionPolicy = SEQUENTIAL) -> list[list[float]]:
    """Standard interpolation weights, aligned with ``pattern``.

    For an F point i, every strong F neighbor k is eliminated with row k of
    A: the off-diagonal sum ``alN`` and the strong-C sum ``alP`` of row i are
    corrected by ``a_ik / a_kk`` times the matching sums of row k, and the
    eliminated couplings are redistributed onto the C points k strongly
    depends on (and onto the diagonal when k strongly depends on i).
    The weights are ``-alN / alP * hat_a_ij / hat_a_ii``.
    """
    n = A.shape[0]
    indptr = A.indptr.tolist()
    indices = A.indices.tolist()
    data = A.data.tolist()

    diag = [0.0] * n
    off_sum = [0.0] * n
    c_sum = [0.0] * n
    for i in range(n):
        strong_c = {k for k in S_rows[i] if labels[k] == C}
        for p in range(indptr[i], indptr[i + 1]):
            k, a = indices[p], data[p]
            if k == i:
                diag[i] = a
            else:
                off_sum[i] += a
            if k in strong_c:
                c_sum[i] += a

    def _block(start: int, stop: int) -> list[list[float]]:
        out: list[list[float]] = []
        for i in range(start, stop):
            if labels[i] == C:
                out.append([1.0])
                continue
            if not pattern[i]:
                out.append([])
                continue

            row_i = _row_dict(indptr, indices, data, i)
            alN = off_sum[i]
            alP = c_sum[i]
            hat = {k: 0.0 for k in pattern[i]}
            hat[i] = diag[i]

            for k in S_rows[i]:
                aik = row_i.get(k, 0.0)
                if labels[k] == C:
                    hat[k] = hat.get(k, 0.0) + aik
                elif labels[k] == F:
                    akk = diag[k]
                    if akk == 0.0:
                        continue
                    row_k = _row_dict(indptr, indices, data, k)
                    aki = row_k.get(i, 0.0)
                    alN -= (off_sum[k] - aki + akk) * aik / akk
                    alP -= c_sum[k] * aik / akk
                    for h in S_rows[k]:
                        if labels[h] == C or h == i:
                            hat[h] = hat.get(h, 0.0) - aik * row_k.get(h, 0.0) / akk

            if alP == 0.0 or hat[i] == 0.0:
                out.append([0.0] * len(pattern[i]))
                continue
            alpha = alN / alP
            out.append([-alpha * hat[k] / hat[i] for k in pattern[i]])
        return out

    weights: list[list[float]] = []
    for part in policy.parallel_for(n, _block):
        weights.extend(part)
    return weights


def assemble(pattern: list[list[int]], weights: list[list[float]] | None,
             labels: np.ndarray) -> csr_array:
    """Build P (n_fine x n_coarse) from per-row fine columns and weights.

    Fine column numbers are mapped to coarse numbers (C points in ascending
    order). With ``weights=None`` the structure is filled with ones.
    """
    cindex = coarse_index(labels)
    n = len(pattern)
    n_coarse = int(np.count_nonzero(cindex >= 0))
    lengths = np.fromiter((len(r) for r in pattern), dtype=np.int64, count=n)
    indptr = np.concatenate(([0], np.cumsum(lengths))).astype(np.int32)
    flat = np.fromiter((j for r in pattern for j in r), dtype=np.int32, count=int(indptr[-1]))
    if weights is None:
        data = np.ones(flat.shape[0])
    else:
        data = np.fromiter((w for r in weights for w in r), dtype=np.float64, count=int(indptr[-1]))
    P = csr_array((data, cindex[flat], indptr), shape=(n, n_coarse))
    P.sort_indices()
    return P


def energy_min(A, P, *, tol: float = 1e-8, maxiter: int = 200,
               policy: ExecutionPolicy = SEQUENTIAL) -> csr_array:
    """Energy-minimizing values on the sparsity pattern of P.

    Raises
    ------
    SingularBlockError
        If the local block of some coarse column cannot be inverted.
    """
    n, n_coarse = P.shape
    PT = transpose(P)
    supports = [PT.indices[PT.indptr[c]:PT.indptr[c + 1]] for c in range(n_coarse)]

    def _invert(start: int, stop: int) -> list[np.ndarray]:
        inverses = []
        for c in range(start, stop):
            I = supports[c]
            block = A[I][:, I].toarray()
            try:
                inv = np.linalg.inv(block)
            except np.linalg.LinAlgError as e:
                raise SingularBlockError(c) from e
            if not np.all(np.isfinite(inv)):
                raise SingularBlockError(c)
            inverses.append(inv)
        return inverses

    inverses: list[np.ndarray] = []
    for part in policy.parallel_for(n_coarse, _invert):
        inverses.extend(part)

    rows = [np.repeat(I, I.shape[0]) for I in supports]
    cols = [np.tile(I, I.shape[0]) for I in supports]
    vals = [inv.ravel() for inv in inverses]
    empty = np.flatnonzero(np.diff(P.indptr) == 0)
    rows.append(empty)
    cols.append(empty)
    vals.append(np.ones(empty.shape[0]))
    T = csr_array((np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))), shape=(n, n))

    d = T.diagonal()
    d = np.where(d != 0.0, d, 1.0)
    M = csr_array((1.0 / d, (np.arange(n), np.arange(n))), shape=(n, n))
    lam, _ = cg(T, np.ones(n), tol=tol, maxiter=maxiter, M=M)

    out_rows = np.concatenate([I for I in supports]) if supports else np.zeros(0, dtype=np.int64)
    out_cols = np.repeat(np.arange(n_coarse), [I.shape[0] for I in supports])
    out_vals = np.concatenate([inv @ lam[I] for inv, I in zip(inverses, supports)]) if supports else np.zeros(0)
    Pem = int32_indices(csr_array((out_vals, (out_rows, out_cols)), shape=(n, n_coarse)))
    Pem.sort_indices()
    return Pem


def truncate(P, eps: float, *, policy: ExecutionPolicy = SEQUENTIAL) -> csr_array:
    """Drop small interpolation weights and rescale the survivors.

    In each row, a negative entry survives iff ``v <= eps * min_row`` and a
    positive entry iff ``v >= eps * max_row``. Surviving negative (positive)
    entries are scaled so that the row's negative (positive) sum is
    unchanged. Zero entries are always dropped.
    """
    P = csr_array(P)
    n = P.shape[0]
    rows = row_index(P)
    vals = P.data

    def _block(start: int, stop: int):
        lo, hi = P.indptr[start], P.indptr[stop]
        r = rows[lo:hi] - start
        v = vals[lo:hi]
        m = stop - start
        neg = v < 0
        pos = v > 0

        m_min = np.zeros(m)
        p_max = np.zeros(m)
        np.minimum.at(m_min, r[neg], v[neg])
        np.maximum.at(p_max, r[pos], v[pos])
        m_sum = np.bincount(r[neg], weights=v[neg], minlength=m)
        p_sum = np.bincount(r[pos], weights=v[pos], minlength=m)

        keep_neg = neg & (v <= eps * m_min[r])
        keep_pos = pos & (v >= eps * p_max[r])
        m_kept = np.bincount(r[keep_neg], weights=v[keep_neg], minlength=m)
        p_kept = np.bincount(r[keep_pos], weights=v[keep_pos], minlength=m)

        out = v.astype(np.float64, copy=True)
        out[keep_neg] *= m_sum[r[keep_neg]] / m_kept[r[keep_neg]]
        out[keep_pos] *= p_sum[r[keep_pos]] / p_kept[r[keep_pos]]
        keep = keep_neg | keep_pos
        return keep, out

    parts = policy.parallel_for(n, _block)
    keep = np.concatenate([k for k, _ in parts])
    out = np.concatenate([v for _, v in parts])

    counts = np.bincount(rows[keep], minlength=n)
    indptr = np.concatenate(([0], np.cumsum(counts))).astype(np.int32)
    return csr_array((out[keep], P.indices[keep].astype(np.int32), indptr), shape=P.shape)


def build_interpolation(A, S, labels: np.ndarray, method: str = "direct", *,
                        truncation: float = 0.2,
                        energy_tol: float = 1e-8,
                        energy_maxiter: int = 200,
                        policy: ExecutionPolicy = SEQUENTIAL) -> csr_array:
    """Build the prolongation P for a C/F splitting.

    Parameters
    ----------
    A : csr_array
        Level operator.
    S : csr_array
        Strength graph used for the splitting.
    labels : ndarray of int8
        ``VertexLabel`` values from the splitter.
    method : str
        ``direct``, ``standard`` or ``energy_min``.
    truncation : float
        Truncation fraction; 0 keeps every nonzero weight.

    Returns
    -------
    P : csr_array
        Shape (n_fine, n_coarse) with coarse columns numbered by ascending
        fine index of the C points.
    """
    S_rows = adjacency_lists(S)
    label_list = labels.tolist()

    if method == "direct":
        pattern = interpolation_pattern(S_rows, label_list, policy=policy)
        P = assemble(pattern, direct_weights(A, label_list, pattern, policy=policy), labels)
    elif method == "standard":
        pattern = interpolation_pattern(S_rows, label_list, standard=True, policy=policy)
        P = assemble(pattern, standard_weights(A, S_rows, label_list, pattern, policy=policy), labels)
    elif method == "energy_min":
        pattern = interpolation_pattern(S_rows, label_list, policy=policy)
        P = energy_min(A, assemble(pattern, None, labels),
                       tol=energy_tol, maxiter=energy_maxiter, policy=policy)
    else:
        raise ParameterError(f"Unrecognized interpolation method: {method!r}")

    if truncation > 0.0:
        P = truncate(P, truncation, policy=policy)
    P.eliminate_zeros()
    return P
