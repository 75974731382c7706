"""Smoother plug-ins and their construction from ``(name, kwargs)`` specs.

Supported smoothers
-------------------
- "gauss_seidel" : pointwise Gauss-Seidel (``sweep`` forward/backward/symmetric);
  honours a C/F visiting order through ``gauss_seidel_indexed``
- "sor"          : successive over-relaxation (``omega``, ``sweep``)
- "jacobi"       : damped Jacobi (``omega``)
- "ilu"          : incomplete LU defect correction (``drop_tol``, ``fill_factor``)
- "schwarz"      : overlapping multiplicative Schwarz on the row neighborhoods
  of A (``sweep``); block inverses are computed once during setup
- None           : skip the sweep on this level

Every smoother exposes ``setup(A)`` and ``presmooth`` / ``postsmooth`` with
the signature ``(A, b, x, iterations, ordering)``; ``x`` is updated in place.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import numpy as np
from scipy.sparse.linalg import spilu

from pyamg.relaxation.relaxation import (
    gauss_seidel,
    gauss_seidel_indexed,
    jacobi,
    schwarz,
    schwarz_parameters,
    sor,
)

from .errors import ParameterError
from .types import VertexLabel

SmootherSpec = tuple[str, dict[str, Any]]


def unpack_arg(v: Any) -> tuple[Any, dict[str, Any]]:
    """Normalize a method spec into (name, kwargs).

    Parameters
    ----------
    v
        Either a string name like "gauss_seidel", a pair (name, kwargs) like
        ("sor", {"omega": 1.2}), or None.
    """
    if isinstance(v, tuple):
        return v[0], dict(v[1])
    return v, {}


class Relaxation(ABC):
    """Base class: pre- and post-smoothing run the same relaxation.

    Subclasses implement ``relax``; ``supports_ordering`` marks the ones that
    accept a visiting order other than the natural one.
    """

    supports_ordering = False

    def setup(self, A) -> None:
        """Precompute per-level data. The default does nothing."""

    @abstractmethod
    def relax(self, A, b, x, iterations: int, ordering) -> None:
        """Run ``iterations`` sweeps on x in place."""

    def presmooth(self, A, b, x, iterations: int, ordering=None) -> None:
        """Relax ``iterations`` times before the coarse correction."""
        if iterations > 0:
            self.relax(A, b, x, iterations, ordering)

    def postsmooth(self, A, b, x, iterations: int, ordering=None) -> None:
        """Relax ``iterations`` times after the coarse correction."""
        if iterations > 0:
            self.relax(A, b, x, iterations, ordering)


class GaussSeidel(Relaxation):
    """Gauss-Seidel in natural order or along a given index sequence."""

    supports_ordering = True

    def __init__(self, sweep: str = "forward"):
        self.sweep = sweep

    def relax(self, A, b, x, iterations, ordering):
        if ordering is None:
            gauss_seidel(A, x, b, iterations=iterations, sweep=self.sweep)
        else:
            gauss_seidel_indexed(A, x, b, ordering, iterations=iterations, sweep=self.sweep)

    def __repr__(self):
        return f"GaussSeidel(sweep={self.sweep!r})"


class SOR(Relaxation):
    """Successive over-relaxation."""

    def __init__(self, omega: float = 1.0, sweep: str = "forward"):
        self.omega = omega
        self.sweep = sweep

    def relax(self, A, b, x, iterations, ordering):
        sor(A, x, b, self.omega, iterations=iterations, sweep=self.sweep)


class Jacobi(Relaxation):
    """Damped Jacobi."""

    def __init__(self, omega: float = 2.0 / 3.0):
        self.omega = omega

    def relax(self, A, b, x, iterations, ordering):
        jacobi(A, x, b, iterations=iterations, omega=self.omega)


class ILU(Relaxation):
    """Defect correction with an incomplete LU factorization of A."""

    def __init__(self, drop_tol: float = 1e-3, fill_factor: float = 10.0):
        self.drop_tol = drop_tol
        self.fill_factor = fill_factor
        self.factor = None

    def setup(self, A) -> None:
        self.factor = spilu(A.tocsc(), drop_tol=self.drop_tol, fill_factor=self.fill_factor)

    def relax(self, A, b, x, iterations, ordering):
        if self.factor is None:
            self.setup(A)
        for _ in range(iterations):
            x += self.factor.solve(b - A @ x)


class Schwarz(Relaxation):
    """Overlapping multiplicative Schwarz over the row neighborhoods of A."""

    def __init__(self, sweep: str = "symmetric"):
        self.sweep = sweep
        self.blocks = None

    def setup(self, A) -> None:
        A.sort_indices()
        self.blocks = schwarz_parameters(A)

    def relax(self, A, b, x, iterations, ordering):
        if self.blocks is None:
            self.setup(A)
        subdomain, subdomain_ptr, inv_subblock, inv_subblock_ptr = self.blocks
        schwarz(A, x, b, iterations=iterations,
                subdomain=subdomain, subdomain_ptr=subdomain_ptr,
                inv_subblock=inv_subblock, inv_subblock_ptr=inv_subblock_ptr,
                sweep=self.sweep)


_SMOOTHERS = {
    "gauss_seidel": GaussSeidel,
    "sor": SOR,
    "jacobi": Jacobi,
    "ilu": ILU,
    "schwarz": Schwarz,
}


def make_smoother(spec: Any) -> Relaxation | None:
    """Instantiate the smoother named by ``spec``.

    Raises
    ------
    ParameterError
        If the name is not a supported smoother.
    """
    name, kwargs = unpack_arg(spec)
    if name is None:
        return None
    try:
        cls = _SMOOTHERS[name]
    except KeyError:
        raise ParameterError(f"Invalid smoother type: {name!r}") from None
    return cls(**kwargs)


def smoother_ordering(labels: np.ndarray | None, ordering: str) -> np.ndarray | None:
    """Visiting order for ``cf`` / ``fc`` smoothing, or None for natural order.

    Levels without a C/F splitting (aggregation levels) always use natural
    order.
    """
    if ordering == "natural" or labels is None:
        return None
    is_c = labels == int(VertexLabel.COARSE)
    cpts = np.flatnonzero(is_c).astype(np.int32)
    fpts = np.flatnonzero(~is_c).astype(np.int32)
    if ordering == "cf":
        return np.concatenate((cpts, fpts))
    if ordering == "fc":
        return np.concatenate((fpts, cpts))
    raise ParameterError(f"Unrecognized smoother ordering: {ordering!r}")
