"""Algebraic multigrid hierarchy setup.

``build_hierarchy`` coarsens a sparse operator level by level (classical
Ruge-Stuben, aggressive, pairwise or VMB aggregation), attaches smoothers
and work vectors to every level and factorizes the coarsest operator. The
result is applied with ``amgcore.core.cycle.apply_cycle`` or through the
drivers in ``amgcore.solve``.

AMGCORE_PRINT_INFO=1 pytest -q -s amgcore/tests/test_hierarchy.py
"""

from __future__ import annotations

import os
import time
from dataclasses import replace

import numpy as np

from pyamg.util.utils import levelize_smooth_or_improve_candidates

from .core.coarse import setup_coarse_solver
from .core.cycle import amli_coefficients, assign_cycle_types
from .core.errors import CoarseningFailure, InterpolationRejected, ParameterError
from .core.hierarchy import CoarseningState, extend_hierarchy
from .core.smoothers import make_smoother, smoother_ordering
from .core.sparse import as_csr, int32_indices
from .core.stats import print_hierarchy_summary, print_stop
from .core.types import AMGConfig, Level, LevelHierarchy, WorkVectors


def _make_config(config: AMGConfig | None, kwargs: dict) -> AMGConfig:
    """Merge keyword overrides into a config and validate it."""
    try:
        if config is None:
            config = AMGConfig(**kwargs)
        elif kwargs:
            config = replace(config, **kwargs)
    except TypeError as e:
        raise ParameterError(str(e)) from e
    config.validate()
    return config


def _near_kernel(B, n: int, dtype) -> np.ndarray | None:
    """Validate a user near-kernel basis and return it as an (n, k) array."""
    if B is None:
        return None
    B = np.asarray(B, dtype=dtype)
    if B.ndim == 1:
        B = B.reshape(-1, 1)
    if B.ndim != 2 or B.shape[0] != n:
        raise ParameterError(f"near_kernel must have {n} rows, got shape {B.shape}")
    return B


def _setup_smoothers(levels: list[Level], config: AMGConfig) -> None:
    """Attach pre/post smoothers, visiting orders and work vectors."""
    nlev = len(levels)
    presmoother = config.presmoother
    postsmoother = config.postsmoother
    if isinstance(presmoother, list):
        presmoother = list(presmoother)
    if isinstance(postsmoother, list):
        postsmoother = list(postsmoother)
    presmoother = levelize_smooth_or_improve_candidates(presmoother, nlev)
    postsmoother = levelize_smooth_or_improve_candidates(postsmoother, nlev)

    for i, lvl in enumerate(levels):
        lvl.work = WorkVectors.allocate(lvl.A.shape[0], lvl.A.dtype)
        if i == nlev - 1:
            continue

        lvl.ordering = smoother_ordering(lvl.labels, config.smoother_ordering)
        lvl.presmoother = make_smoother(presmoother[i])
        lvl.postsmoother = make_smoother(postsmoother[i])

        for sm in (lvl.presmoother, lvl.postsmoother):
            if sm is not None:
                sm.setup(lvl.A)


def build_hierarchy(A, config: AMGConfig | None = None, **kwargs) -> LevelHierarchy:
    """Build an AMG hierarchy for the square sparse operator A.

    Parameters
    ----------
    A : sparse matrix
        Square operator. Anything other than CSR is converted with a
        ``SparseEfficiencyWarning``. A itself is never modified.
    config : AMGConfig, optional
        Setup parameters. Keyword arguments override its fields, or build a
        fresh config when none is given.

    Returns
    -------
    LevelHierarchy
        Levels finest first; the coarsest operator is factorized by the
        configured coarse solver.

    Raises
    ------
    ParameterError
        Unknown method names, invalid values or smoother arguments, and
        smoothers that cannot follow ``smoother_ordering``; raised before any
        level is built.
    SingularBlockError
        Energy-min interpolation met a singular local block.
    TypeError, ValueError
        A cannot be converted to CSR, or is not square.

    Notes
    -----
    A level that cannot be coarsened (no strong couplings, no coarse points,
    a coarse size below ``min_coarse`` or a coarsening ratio above
    ``max_coarsening_rate``) ends construction; the hierarchy built so far is
    returned with that level as the coarsest.

    Examples
    --------
    >>> from pyamg.gallery import poisson
    >>> from amgcore import build_hierarchy
    >>> A = poisson((63,), format='csr')
    >>> ml = build_hierarchy(A, max_coarse=5)
    >>> len(ml) > 1
    True
    """
    t0 = time.perf_counter()
    config = _make_config(config, kwargs)
    print_info = config.print_info or os.environ.get("AMGCORE_PRINT_INFO") == "1"
    if print_info != config.print_info:
        config = replace(config, print_info=print_info)

    A_in = A
    A = as_csr(A)
    if A is A_in:
        A = A.copy()
    A = int32_indices(A)
    A.eliminate_zeros()
    A.sort_indices()

    levels = [Level(A=A, near_kernel=_near_kernel(config.near_kernel, A.shape[0], A.dtype))]
    state = CoarseningState.from_config(config)

    while len(levels) < config.max_levels and levels[-1].A.shape[0] > config.max_coarse:
        try:
            extend_hierarchy(levels=levels, config=config, state=state)
        except (CoarseningFailure, InterpolationRejected) as e:
            levels[-1].release_transfer()
            print_stop(level=len(levels) - 1, n=levels[-1].A.shape[0], reason=str(e),
                       print_info=print_info)
            break
    else:
        reason = ("max_levels reached" if len(levels) >= config.max_levels
                  else f"n <= max_coarse={config.max_coarse}")
        print_stop(level=len(levels) - 1, n=levels[-1].A.shape[0], reason=reason,
                   print_info=print_info)

    _setup_smoothers(levels, config)

    coarse_solver, coarse_handle = setup_coarse_solver(levels[-1].A, config.coarse_solver,
                                                       tol=config.coarse_tol)
    hierarchy = LevelHierarchy(levels=levels, config=config,
                               coarse_solver=coarse_solver, coarse_handle=coarse_handle)
    if config.cycle == "AMLI":
        hierarchy.amli_coefficients = amli_coefficients(config.amli_degree)
    assign_cycle_types(hierarchy)

    print_hierarchy_summary(hierarchy, setup_time=time.perf_counter() - t0, print_info=print_info)
    return hierarchy
