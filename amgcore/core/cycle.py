"""Recursive multigrid cycles over a ``LevelHierarchy``.

For a non-terminal level l the cycle runs

    presmooth -> r = b - A x -> b_{l+1} = R r -> coarse correction
    -> x += P x_{l+1} -> postsmooth

where the coarse correction visits level l+1 ``levels[l].cycle_type`` times
(1 for V, 2 for W, per-level for the variable cycle), or, for AMLI, applies
a Chebyshev polynomial in the coarse-level cycle. The coarsest level is
solved by the hierarchy's coarse solver.

Restricted right-hand sides and coarse corrections live in each level's
``work`` vectors, so the recursion never allocates on V and W cycles and
no state persists between calls beyond those scratch buffers.
"""

from __future__ import annotations

import numpy as np
from numpy.polynomial import Polynomial

from .types import Level, LevelHierarchy

# variable cycle parameters
VARIABLE_XSI = 0.6
VARIABLE_CPLXMAX = 3.0


def amli_coefficients(degree: int, a: float = 0.5, b: float = 2.0) -> np.ndarray:
    """Coefficients of the AMLI polynomial q, lowest degree first.

    q has degree ``degree`` and satisfies

        1 - t q(t) = T_{d+1}((b + a - 2t) / (b - a)) / T_{d+1}((b + a) / (b - a))

    with T_k the Chebyshev polynomials, so that ``1 - t q(t)`` is minimal in
    max-norm on [a, b] among polynomials equal to 1 at t = 0. Degree 0
    gives the constant ``2 / (a + b)``.
    """
    s = Polynomial([(b + a) / (b - a), -2.0 / (b - a)])
    T_prev, T = Polynomial([1.0]), s
    for _ in range(degree):
        T_prev, T = T, 2 * s * T - T_prev
    p = T / T(0.0)
    coef = np.zeros(degree + 2)
    coef[:p.coef.shape[0]] = p.coef
    return -coef[1:]


def variable_cycle_types(levels: list[Level]) -> list[int]:
    """Number of coarse visits per level for the variable cycle.

    Level 0 visits once and the coarsest level not at all. In between, the
    count is chosen from the operator density so that the total work stays
    bounded by ``VARIABLE_CPLXMAX``; it is always 1 or 2.
    """
    nlev = len(levels)
    nnz0 = float(levels[0].A.nnz)
    eta = VARIABLE_XSI / ((1.0 - VARIABLE_XSI) * (VARIABLE_CPLXMAX - 1.0))

    types = []
    icum = 1.0
    for l, lvl in enumerate(levels):
        if l == nlev - 1:
            types.append(0)
            continue
        if l == 0:
            nu = 1
        else:
            nu = int(VARIABLE_XSI**l / (eta * lvl.A.nnz / nnz0 * icum))
            nu = min(max(nu, 1), 2)
        icum *= nu
        types.append(nu)
    return types


def assign_cycle_types(hierarchy: LevelHierarchy) -> None:
    """Set ``cycle_type`` on every level from ``hierarchy.config.cycle``."""
    levels = hierarchy.levels
    cycle = hierarchy.config.cycle
    if cycle == "variable":
        types = variable_cycle_types(levels)
    else:
        visits = 2 if cycle == "W" else 1
        types = [visits] * (len(levels) - 1) + [0]
    for lvl, nu in zip(levels, types):
        lvl.cycle_type = nu


def _coarse_cycle(hierarchy: LevelHierarchy, level: int, v: np.ndarray) -> np.ndarray:
    """One cycle on ``level`` applied to v from a zero initial guess."""
    y = np.zeros_like(v)
    apply_cycle(hierarchy, v, y, level)
    return y


def _amli_correction(hierarchy: LevelHierarchy, level: int) -> None:
    """Polynomial coarse correction ``x = q(B A) B b`` on ``level``.

    B is one cycle on ``level``; q is evaluated by Horner's rule.
    """
    lvl = hierarchy.levels[level]
    coef = hierarchy.amli_coefficients
    b = lvl.work.b
    y = lvl.work.x

    y[:] = coef[-1] * _coarse_cycle(hierarchy, level, b)
    for c in coef[-2::-1]:
        y[:] = _coarse_cycle(hierarchy, level, c * b + lvl.A @ y)


def apply_cycle(hierarchy: LevelHierarchy, b: np.ndarray, x: np.ndarray, level: int = 0) -> None:
    """Apply one multigrid cycle to ``A_level x = b``, updating x in place.

    Parameters
    ----------
    hierarchy
        Hierarchy returned by ``build_hierarchy``.
    b
        Right-hand side on ``level``.
    x
        Initial guess on ``level``; overwritten with the improved iterate.
        Must be a contiguous array with the dtype of the level operator.
    level
        Index of the level to start from (0 = finest).
    """
    levels = hierarchy.levels
    lvl = levels[level]

    if level == len(levels) - 1:
        x[:] = hierarchy.coarse_solver.solve(hierarchy.coarse_handle, b)
        return

    config = hierarchy.config
    A = lvl.A

    if lvl.presmoother is not None:
        lvl.presmoother.presmooth(A, b, x, config.presmooth_iterations, lvl.ordering)

    r = lvl.work.r
    r[:] = b - A @ x

    nxt = levels[level + 1]
    nxt.work.b[:] = lvl.R @ r
    nxt.work.x[:] = 0

    if config.cycle == "AMLI" and level + 1 < len(levels) - 1:
        _amli_correction(hierarchy, level + 1)
    else:
        for _ in range(lvl.cycle_type):
            apply_cycle(hierarchy, nxt.work.b, nxt.work.x, level + 1)

    x += lvl.P @ nxt.work.x

    if lvl.postsmoother is not None:
        lvl.postsmoother.postsmooth(A, b, x, config.postsmooth_iterations, lvl.ordering)
