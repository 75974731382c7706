"""Hierarchy extension for classical and aggregation AMG.

This module provides:
  - the size checks that accept or reject a proposed coarse level,
  - the per-build coarsening state (aggressive fallback, adaptive
    aggregation threshold),
  - appending the next level,
  - the orchestration routine that builds one additional level.

The entrypoint used by `amgcore.amg.build_hierarchy` is `extend_hierarchy`.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .aggregation import adapt_threshold, build_aggregation_interpolation
from .errors import CoarseningFailure, InterpolationRejected
from .galerkin import galerkin_product, restriction
from .interpolation import build_interpolation
from .sparse import int32_indices
from .splitting import aggressive_splitting, rs_splitting
from .stats import LevelStats, finalize_level_stats, print_level_summary
from .strength import classical_strength
from .types import AMGConfig, Level

# an aggressive level coarsening by less than this hands over to classical
AGGRESSIVE_MIN_RATIO = 1.5


@dataclass(slots=True)
class CoarseningState:
    """Mutable per-build state carried from one extension to the next.

    Attributes
    ----------
    aggressive_left
        Number of further levels allowed to use aggressive coarsening.
    theta
        Current aggregation strength threshold (adapted per level for vmb).
    """

    aggressive_left: int = 0
    theta: float = 0.08

    @classmethod
    def from_config(cls, config: AMGConfig) -> "CoarseningState":
        """Initial state for a new build."""
        aggressive = config.aggressive_levels if config.coarsening == "aggressive" else 0
        return cls(aggressive_left=aggressive, theta=config.strong_coupled)

    def method(self, config: AMGConfig) -> str:
        """Coarsening method for the next level."""
        if config.coarsening == "aggressive":
            return "aggressive" if self.aggressive_left > 0 else "classical"
        return config.coarsening


def check_coarse_size(*, n_fine: int, n_coarse: int, config: AMGConfig) -> None:
    """Accept a proposed coarse dimension or raise.

    Raises
    ------
    CoarseningFailure
        If the coarse level is not smaller than the fine level.
    InterpolationRejected
        If the coarse level is below ``min_coarse`` or the coarsening ratio
        exceeds ``max_coarsening_rate``.
    """
    if n_coarse <= 0 or n_coarse >= n_fine:
        raise CoarseningFailure(f"coarse size {n_coarse} does not reduce fine size {n_fine}")
    if n_coarse < config.min_coarse:
        raise InterpolationRejected(
            f"coarse size {n_coarse} below min_coarse={config.min_coarse}")
    if n_fine > config.max_coarsening_rate * n_coarse:
        raise InterpolationRejected(
            f"coarsening ratio {n_fine / n_coarse:.3g} exceeds "
            f"max_coarsening_rate={config.max_coarsening_rate:g}")


def _classical_transfer(*, level: Level, config: AMGConfig, method: str, stats: LevelStats):
    """C/F split the level and build P. Returns (P, None)."""
    A = level.A
    policy = config.policy

    with stats.timeit("strength"):
        S = classical_strength(A, config.strength_threshold, config.max_row_sum, policy)
    stats.extra["S_nnz"] = int(S.nnz)
    stats.extra["theta"] = config.strength_threshold

    # aggressive levels always interpolate through F-F couplings
    interpolation = "standard" if method == "aggressive" else config.interpolation

    with stats.timeit("splitting"):
        if method == "aggressive":
            labels = aggressive_splitting(A, S, path=config.aggressive_path)
        else:
            labels = rs_splitting(A, S, second_pass=(interpolation != "standard"))
    level.labels = labels

    with stats.timeit("interpolation"):
        P = build_interpolation(A, S, labels, interpolation,
                                truncation=config.truncation,
                                energy_tol=config.energy_min_tol,
                                energy_maxiter=config.energy_min_maxiter,
                                policy=policy)
    stats.extra["interpolation"] = interpolation
    return P, None


def _aggregation_transfer(*, level: Level, config: AMGConfig, method: str,
                          state: CoarseningState, stats: LevelStats):
    """Aggregate the level and build P. Returns (P, coarse near-kernel basis)."""
    A = level.A
    if level.near_kernel is None:
        level.near_kernel = np.ones((A.shape[0], 1), dtype=A.dtype)

    with stats.timeit("aggregate"):
        P, aggregates, n_aggs, Bc = build_aggregation_interpolation(
            A, level.near_kernel, method,
            theta=state.theta,
            max_size=config.max_aggregation,
            passes=config.pair_passes,
            smooth=config.smooth_aggregation,
            weight=config.smoothing_weight,
            policy=config.policy,
        )
    level.aggregates = aggregates
    stats.extra["n_aggs"] = n_aggs
    stats.extra["theta"] = state.theta

    if method == "vmb" and config.adaptive_threshold:
        state.theta = adapt_threshold(state.theta, A.shape[0], n_aggs)
    return P, Bc


def append_next_level(*, levels: list[Level], A, near_kernel=None) -> Level:
    """Append a new level holding the coarse operator and return it."""
    levels.append(Level(A=A, near_kernel=near_kernel))
    return levels[-1]


def extend_hierarchy(*, levels: list[Level], config: AMGConfig, state: CoarseningState) -> None:
    """Extend the hierarchy by one level.

    Parameters
    ----------
    levels
        Levels built so far. The routine reads ``levels[-1]``, sets its P, R
        and splitting data, and appends the coarse level.
    config
        Validated setup parameters.
    state
        Coarsening state shared across calls of one build.

    Raises
    ------
    CoarseningFailure, InterpolationRejected
        When no acceptable coarse level can be formed. ``levels[-1]`` may
        hold partial transfer data; the caller releases it.
    SingularBlockError
        From energy-min interpolation.
    """
    level = levels[-1]
    A = level.A
    n_fine = A.shape[0]
    method = state.method(config)

    stats = LevelStats(level=len(levels) - 1, n_fine=n_fine, method=method)

    if method in ("classical", "aggressive"):
        P, Bc = _classical_transfer(level=level, config=config, method=method, stats=stats)
    else:
        P, Bc = _aggregation_transfer(level=level, config=config, method=method,
                                      state=state, stats=stats)

    n_coarse = P.shape[1]
    check_coarse_size(n_fine=n_fine, n_coarse=n_coarse, config=config)

    if method == "aggressive":
        state.aggressive_left -= 1
        if n_fine < AGGRESSIVE_MIN_RATIO * n_coarse:
            state.aggressive_left = 0

    level.P = int32_indices(P)
    level.R = restriction(P)

    with stats.timeit("galerkin"):
        A_c = galerkin_product(A, level.P, level.R)

    finalize_level_stats(stats=stats, P=P, n_coarse=n_coarse)
    print_level_summary(stats, print_info=config.print_info)
    level.stats = stats

    append_next_level(levels=levels, A=A_c, near_kernel=Bc)
