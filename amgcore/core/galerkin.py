"""Galerkin coarse operators."""

from __future__ import annotations

import numpy as np
from scipy.sparse import csr_array

from .parallel import SEQUENTIAL, ExecutionPolicy
from .sparse import diagonal, int32_indices, transpose


def restriction(P) -> csr_array:
    """R = P^H in CSR form."""
    return int32_indices(csr_array(transpose(P.conjugate())))


def galerkin_product(A, P, R=None) -> csr_array:
    """Coarse operator ``R @ (A @ P)``.

    R defaults to the conjugate transpose of P, in which case a symmetric A
    yields a symmetric coarse operator up to rounding.
    """
    if R is None:
        R = restriction(P)
    AP = csr_array(A @ P)
    Ac = int32_indices(csr_array(R @ AP))
    Ac.sum_duplicates()
    Ac.sort_indices()
    return Ac


def symmetry_defect(A, policy: ExecutionPolicy = SEQUENTIAL) -> float:
    """``max |A - A^T|`` relative to the largest diagonal magnitude."""
    D = csr_array(A - A.T)
    scale = float(np.max(np.abs(diagonal(A, policy)), initial=0.0))
    if D.nnz == 0:
        return 0.0
    return float(np.max(np.abs(D.data))) / (scale if scale > 0 else 1.0)
