"""Solve drivers on top of a built hierarchy.

``solve`` runs stationary multigrid cycles or a Krylov method preconditioned
by one cycle per iteration. ``aspreconditioner`` wraps the hierarchy as a
``scipy.sparse.linalg.LinearOperator`` for use with any scipy or pyamg
iterative solver.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse.linalg import LinearOperator

from pyamg.krylov import cg, fgmres

from .core.cycle import apply_cycle
from .core.errors import ParameterError
from .core.types import LevelHierarchy

ACCELERATORS = {"cg": cg, "fgmres": fgmres}


def _as_vector(v, n: int, dtype) -> np.ndarray:
    """Contiguous 1-D copy of v with the operator dtype."""
    v = np.array(v, dtype=dtype, copy=True).ravel()
    if v.shape[0] != n:
        raise ValueError(f"expected vector of length {n}, got {v.shape[0]}")
    return np.ascontiguousarray(v)


class HierarchyPreconditioner(LinearOperator):
    """One multigrid cycle from a zero initial guess, as a linear operator."""

    def __init__(self, hierarchy: LevelHierarchy):
        self.hierarchy = hierarchy
        A = hierarchy.levels[0].A
        super().__init__(dtype=A.dtype, shape=A.shape)

    def _matvec(self, b):
        A = self.hierarchy.levels[0].A
        b = _as_vector(b, A.shape[0], A.dtype)
        x = np.zeros_like(b)
        apply_cycle(self.hierarchy, b, x)
        return x

    def __repr__(self):
        return repr(self.hierarchy)


def aspreconditioner(hierarchy: LevelHierarchy) -> HierarchyPreconditioner:
    """Wrap the hierarchy as a preconditioner.

    Examples
    --------
    >>> import numpy as np
    >>> from pyamg.gallery import poisson
    >>> from pyamg.krylov import cg
    >>> from amgcore import build_hierarchy, aspreconditioner
    >>> A = poisson((63,), format='csr')
    >>> M = aspreconditioner(build_hierarchy(A))
    >>> x, info = cg(A, A @ np.ones(63), tol=1e-8, M=M)
    """
    return HierarchyPreconditioner(hierarchy)


def solve(hierarchy: LevelHierarchy, b, x0=None, tol: float = 1e-8, maxiter: int = 100,
          accel: str | None = None, residuals: list | None = None) -> np.ndarray:
    """Solve ``A x = b`` with the finest operator of the hierarchy.

    Parameters
    ----------
    hierarchy
        Hierarchy returned by ``build_hierarchy``.
    b : array_like
        Right-hand side.
    x0 : array_like, optional
        Initial guess; zero by default. Not modified.
    tol : float
        Relative residual tolerance ``||b - A x|| < tol * ||b||``.
    maxiter : int
        Maximum number of cycles (or Krylov iterations).
    accel : {None, 'cg', 'fgmres'}
        Krylov accelerator. None runs stationary cycles.
    residuals : list, optional
        Residual norms are appended to this list.

    Returns
    -------
    x : ndarray
        Approximate solution.
    """
    A = hierarchy.levels[0].A
    n = A.shape[0]
    b = _as_vector(b, n, A.dtype)
    x = np.zeros(n, dtype=A.dtype) if x0 is None else _as_vector(x0, n, A.dtype)

    if accel is not None:
        try:
            krylov = ACCELERATORS[accel]
        except KeyError:
            raise ParameterError(f"Unrecognized accelerator: {accel!r}") from None
        x, _ = krylov(A, b, x0=x, tol=tol, maxiter=maxiter,
                      M=aspreconditioner(hierarchy), residuals=residuals)
        return x

    normb = np.linalg.norm(b)
    if normb == 0.0:
        normb = 1.0

    normr = np.linalg.norm(b - A @ x)
    if residuals is not None:
        residuals.append(normr)

    it = 0
    while it < maxiter and normr >= tol * normb:
        apply_cycle(hierarchy, b, x)
        normr = np.linalg.norm(b - A @ x)
        if residuals is not None:
            residuals.append(normr)
        it += 1

    return x
