"""Coarsest-level solvers.

A coarse solver exposes ``factorize(A) -> handle`` and
``solve(handle, b) -> x``. ``DirectSolver`` factors with SuperLU;
``IterativeSolver`` keeps the matrix and a Jacobi preconditioner and runs
CG. ``iterative_solve`` is the stand-alone fallback used when a direct
factorization is unavailable or fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from warnings import warn

import numpy as np
from scipy.sparse import csr_array
from scipy.sparse.linalg import splu

from pyamg.krylov import cg

from .errors import ParameterError


def _jacobi_preconditioner(A) -> csr_array:
    """Inverse diagonal of A; zero diagonal entries are replaced by one."""
    n = A.shape[0]
    d = A.diagonal()
    d = np.where(d != 0.0, d, 1.0)
    return csr_array((1.0 / d, (np.arange(n), np.arange(n))), shape=(n, n))


def iterative_solve(A, b, x=None, tol: float = 1e-10, maxiter: int | None = None, M=None):
    """Solve ``A x = b`` with Jacobi-preconditioned CG, starting from x.

    Returns the solution; x (if given) is not modified.
    """
    if M is None:
        M = _jacobi_preconditioner(A)
    if maxiter is None:
        maxiter = max(10 * A.shape[0], 100)
    x0 = None if x is None else np.array(x, copy=True)
    sol, _ = cg(A, b, x0=x0, tol=tol, maxiter=maxiter, M=M)
    return sol


@dataclass(slots=True)
class IterativeHandle:
    """Matrix and preconditioner kept by ``IterativeSolver``."""

    A: csr_array
    M: csr_array


class DirectSolver:
    """Sparse LU factorization of the coarsest operator."""

    name = "splu"

    def factorize(self, A):
        return splu(csr_array(A).tocsc())

    def solve(self, handle, b):
        return handle.solve(np.asarray(b))


class IterativeSolver:
    """Preconditioned CG on the coarsest operator."""

    name = "cg"

    def __init__(self, tol: float = 1e-10, maxiter: int | None = None):
        self.tol = tol
        self.maxiter = maxiter

    def factorize(self, A):
        A = csr_array(A)
        return IterativeHandle(A=A, M=_jacobi_preconditioner(A))

    def solve(self, handle, b):
        return iterative_solve(handle.A, b, tol=self.tol, maxiter=self.maxiter, M=handle.M)


def make_coarse_solver(name: str, *, tol: float = 1e-10):
    """Coarse solver for ``name`` (``splu`` or ``cg``)."""
    if name == "splu":
        return DirectSolver()
    if name == "cg":
        return IterativeSolver(tol=tol)
    raise ParameterError(f"Unrecognized coarse solver: {name!r}")


def setup_coarse_solver(A, name: str, *, tol: float = 1e-10):
    """Build and factorize the coarse solver; fall back to CG if LU fails.

    Returns
    -------
    solver, handle
    """
    solver = make_coarse_solver(name, tol=tol)
    try:
        return solver, solver.factorize(A)
    except RuntimeError as e:
        warn(f"direct coarse factorization failed ({e}); using iterative coarse solve",
             RuntimeWarning)
        solver = IterativeSolver(tol=tol)
        return solver, solver.factorize(A)
