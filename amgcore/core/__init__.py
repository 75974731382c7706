"""Classical and aggregation AMG internals.

This package contains the building blocks used by `amgcore.amg.build_hierarchy`
and the cycle drivers.

Modules
-------
sparse
    CSR conversion and structural helpers.
strength
    Classical and symmetric strength-of-connection graphs.
bucket
    Bucket priority queue used by the greedy splitter.
splitting
    Ruge-Stuben and aggressive C/F splitting.
interpolation
    Direct, standard and energy-min prolongation, and truncation.
aggregation
    Pairwise and VMB aggregation, tentative and smoothed prolongation.
galerkin
    Restriction and Galerkin coarse operators.
hierarchy
    Extension of the hierarchy by one level.
smoothers
    Relaxation plug-ins.
coarse
    Coarsest-level solvers.
cycle
    V, W, variable and AMLI cycles.
parallel
    Execution policy and the data-parallel loop.
stats
    Per-level timing and diagnostic reporting.
"""

from __future__ import annotations

from . import (
    aggregation,
    bucket,
    coarse,
    cycle,
    errors,
    galerkin,
    hierarchy,
    interpolation,
    parallel,
    smoothers,
    sparse,
    splitting,
    stats,
    strength,
    types,
)

__all__ = [
    "sparse",
    "strength",
    "bucket",
    "splitting",
    "interpolation",
    "aggregation",
    "galerkin",
    "hierarchy",
    "smoothers",
    "coarse",
    "cycle",
    "parallel",
    "stats",
    "errors",
    "types",
]
