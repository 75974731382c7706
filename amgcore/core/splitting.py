"""C/F splitting for classical (Ruge-Stuben) coarsening.

Labels are ``VertexLabel`` values stored in an int8 array. The splitter
works on plain Python adjacency lists of the strength graph S (row i lists
the vertices i strongly depends on) and of its transpose (row i lists the
vertices that strongly depend on i).

Pipeline
--------
1. Vertices whose row of A has at most one stored entry are Isolated.
2. The lambda measure of every other vertex is its row length in S^T.
3. A greedy pass driven by ``BucketQueue`` picks C points by maximum lambda.
4. Optionally (non-standard interpolation) a second pass repairs F points
   that have a strong F neighbor with no common strong C neighbor.

Aggressive coarsening runs the same greedy pass a second time on the graph
Sh among the C points of the first pass and finishes with a repair pass that
promotes F points with no C point within two strong hops. All passes visit
vertices in ascending index order.
"""

from __future__ import annotations

import numpy as np

from .bucket import BucketQueue
from .errors import CoarseningFailure
from .sparse import adjacency_lists, row_lengths, transpose
from .types import VertexLabel

F = int(VertexLabel.FINE)
C = int(VertexLabel.COARSE)
ISO = int(VertexLabel.ISOLATED)
U = int(VertexLabel.UNDECIDED)


def _make_fine(j, labels, lam, queue, S_rows) -> None:
    """Label j Fine and raise the measure of its Undecided strong neighbors."""
    labels[j] = F
    queue.remove(j)
    for k in S_rows[j]:
        if labels[k] == U:
            lam[k] += 1
            queue.update(k, lam[k])


def greedy_select(S_rows: list[list[int]], ST_rows: list[list[int]],
                  labels: list[int], lam: list[int]) -> list[int]:
    """Greedy maximum-lambda selection over the Undecided vertices.

    Parameters
    ----------
    S_rows, ST_rows
        Adjacency lists of the graph and its transpose.
    labels
        Per-vertex labels; only ``UNDECIDED`` entries take part. Mutated in
        place: every Undecided vertex ends up Coarse or Fine.
    lam
        Initial measures (transpose row lengths). Mutated in place.

    Returns
    -------
    labels
        The same list, for convenience.

    Notes
    -----
    Undecided vertices with measure 0 become Fine before the main loop and
    raise the measure of the vertices they depend on. In the main loop the
    vertex with the largest measure (lowest index among equals, through the
    bucket FIFO order) becomes Coarse, its Undecided dependents become Fine,
    and the measures of the vertices it depends on drop by one.
    """
    n = len(labels)
    queue = BucketQueue(n, max(lam, default=0))

    for i in range(n):
        if labels[i] != U:
            continue
        if lam[i] > 0:
            queue.insert(i, lam[i])
            continue
        labels[i] = F
        for j in S_rows[i]:
            if labels[j] == ISO:
                continue
            lam[j] += 1
            if j in queue:
                queue.update(j, lam[j])

    while len(queue):
        i = queue.pop_max()
        labels[i] = C
        lam[i] = 0

        for j in ST_rows[i]:
            if labels[j] == U:
                _make_fine(j, labels, lam, queue, S_rows)

        for j in S_rows[i]:
            if labels[j] != U:
                continue
            lam[j] -= 1
            if lam[j] > 0:
                queue.update(j, lam[j])
            else:
                _make_fine(j, labels, lam, queue, S_rows)

    return labels


def _repair_fine_points(S_rows: list[list[int]], labels: list[int]) -> None:
    """Second pass: give F points with unsupported strong F neighbors a C point.

    For an F point i, every strong F neighbor j must share a strong C
    neighbor with i. The first violation promotes j to C (tentatively) and
    re-examines i; a second violation for the same i promotes i itself and
    reverts the tentative choice.
    """
    n = len(labels)
    marker = [-1] * n
    tilde = -1
    tilde_owner = -1
    tentative = False

    i = 0
    while i < n:
        if tilde_owner != i:
            tilde = -1
            tentative = False

        if labels[i] == F:
            for j in S_rows[i]:
                if labels[j] == C:
                    marker[j] = i

            for j in S_rows[i]:
                if labels[j] != F:
                    continue
                if any(marker[k] == i for k in S_rows[j]):
                    continue
                if tentative:
                    labels[i] = C
                    if tilde > -1:
                        labels[tilde] = F
                        tilde = -1
                    tentative = False
                    break
                tilde = j
                tilde_owner = i
                labels[j] = C
                tentative = True
                marker[j] = i
                i -= 1
                break
        i += 1


def rs_splitting(A, S, *, second_pass: bool = True) -> np.ndarray:
    """Classical Ruge-Stuben C/F splitting.

    Parameters
    ----------
    A : csr_array
        Level operator; used only for the Isolated test.
    S : csr_array
        Strength graph from ``classical_strength``.
    second_pass : bool
        Run the F-point repair pass (wanted for direct and energy-min
        interpolation).

    Returns
    -------
    labels : ndarray of int8
        ``VertexLabel`` values.

    Raises
    ------
    CoarseningFailure
        If S has no edges or no C point was selected.
    """
    if S.nnz == 0:
        raise CoarseningFailure("strength graph has no edges")

    S_rows = adjacency_lists(S)
    ST_rows = adjacency_lists(transpose(S))
    labels = _rs_labels(A, S, S_rows, ST_rows)

    if second_pass:
        _repair_fine_points(S_rows, labels)

    out = np.asarray(labels, dtype=np.int8)
    if not np.any(out == C):
        raise CoarseningFailure("splitting selected no coarse points")
    return out


def _rs_labels(A, S, S_rows, ST_rows) -> list[int]:
    """First-pass labels: Isolated detection followed by greedy selection."""
    isolated = row_lengths(A) <= 1
    lam = row_lengths(transpose(S)).astype(np.int64)
    lam[isolated] = 0
    labels = np.where(isolated, ISO, U).tolist()
    return greedy_select(S_rows, ST_rows, labels, lam.tolist())


def _coarse_graph(S_rows, labels, path: int):
    """Build Sh among C points.

    Two C points are linked when one strongly depends on the other, or when
    they are joined through a strongly connected F point (path 1: one such
    F point suffices, path 2: two distinct visits are needed).
    """
    cpts = [i for i, lab in enumerate(labels) if lab == C]
    cindex = {i: ci for ci, i in enumerate(cpts)}
    visited = [0] * len(cpts)
    Sh_rows: list[list[int]] = []

    for ci, i in enumerate(cpts):
        row: list[int] = []
        seen, once = ci + 1, -ci - 1
        for j in S_rows[i]:
            if labels[j] == C and j != i:
                cj = cindex[j]
                if visited[cj] != seen:
                    visited[cj] = seen
                    row.append(cj)
            elif labels[j] == F:
                for k in S_rows[j]:
                    if labels[k] != C or k == i:
                        continue
                    ck = cindex[k]
                    if visited[ck] == seen:
                        continue
                    if path == 1 or visited[ck] == once:
                        visited[ck] = seen
                        row.append(ck)
                    else:
                        visited[ck] = once
        Sh_rows.append(row)

    return cpts, Sh_rows


def _transpose_lists(rows: list[list[int]], n: int) -> list[list[int]]:
    """Transpose of a graph given as adjacency lists."""
    out: list[list[int]] = [[] for _ in range(n)]
    for i, row in enumerate(rows):
        for j in row:
            out[j].append(i)
    return out


def _promote_distant_fine_points(S_rows, labels) -> None:
    """Make C every F point with no C point within two strong hops."""
    for i in range(len(labels)):
        if labels[i] != F:
            continue
        found = False
        for k in S_rows[i]:
            if labels[k] == C:
                found = True
            elif labels[k] == F:
                found = any(labels[m] == C for m in S_rows[k])
            if found:
                break
        if not found:
            labels[i] = C


def aggressive_splitting(A, S, *, path: int = 1) -> np.ndarray:
    """Aggressive C/F splitting.

    A first Ruge-Stuben pass (without the repair pass) produces temporary C
    points, which are then thinned by a second greedy pass on Sh. The
    temporary points that do not survive become F points. A last pass in
    ascending order promotes F points left without a C point within two
    strong hops.

    Raises
    ------
    CoarseningFailure
        If S has no edges or no C point survives.
    """
    if path not in (1, 2):
        raise ValueError(f"Unrecognized aggressive path: {path!r}")
    if S.nnz == 0:
        raise CoarseningFailure("strength graph has no edges")

    S_rows = adjacency_lists(S)
    ST_rows = adjacency_lists(transpose(S))
    labels = _rs_labels(A, S, S_rows, ST_rows)

    cpts, Sh_rows = _coarse_graph(S_rows, labels, path)
    ShT_rows = _transpose_lists(Sh_rows, len(cpts))
    sub_labels = [U] * len(cpts)
    sub_lam = [len(r) for r in ShT_rows]
    greedy_select(Sh_rows, ShT_rows, sub_labels, sub_lam)

    for ci, i in enumerate(cpts):
        labels[i] = C if sub_labels[ci] == C else F

    _promote_distant_fine_points(S_rows, labels)

    out = np.asarray(labels, dtype=np.int8)
    if not np.any(out == C):
        raise CoarseningFailure("aggressive splitting selected no coarse points")
    return out


def coarse_index(labels: np.ndarray) -> np.ndarray:
    """Map fine vertices to coarse column numbers (-1 for non-C vertices).

    C points are numbered in ascending fine index order.
    """
    is_c = labels == C
    index = np.full(labels.shape[0], -1, dtype=np.int32)
    index[is_c] = np.arange(int(is_c.sum()), dtype=np.int32)
    return index
