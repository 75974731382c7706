"""Timing and diagnostic reporting for hierarchy setup.

This module provides:
  - A per-level timing collector (`LevelStats`) with labeled timers.
  - `finalize_level_stats`, which records the coarse size, coarsening ratio
    and the min/median/max row length of P.
  - Printers for the per-level summary, early-stop notices and the final
    hierarchy table.

Typical usage
-------------
Within hierarchy construction, create a `LevelStats` for the current level:

    stats = LevelStats(level=ell, n_fine=A.shape[0], method="classical")
    with stats.timeit("strength"):
        ... build strength graph ...
    with stats.timeit("interpolation"):
        ... build P ...
    finalize_level_stats(stats=stats, P=P, n_coarse=P.shape[1])
    print_level_summary(stats, print_info=print_info)

All printing in the package goes through this module.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any
import time

import numpy as np


@dataclass(slots=True)
class LevelStats:
    """Per-level setup timings and summary statistics.

    Attributes
    ----------
    level
        Level index (0 = finest).
    n_fine
        Fine dimension on this level.
    method
        Coarsening method used on this level.
    n_coarse
        Coarse dimension produced by this level (filled in finalize).
    timings
        Dict mapping timer keys to elapsed seconds.
    extra
        Derived metrics (coarsening ratio, strength nnz, row-length summaries).
    """

    level: int
    n_fine: int
    method: str = ""
    n_coarse: int | None = None
    timings: dict[str, float] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @contextmanager
    def timeit(self, key: str):
        """Context manager that accumulates elapsed time under `timings[key]`."""
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.timings[key] = self.timings.get(key, 0.0) + (time.perf_counter() - t0)


def finalize_level_stats(*, stats: LevelStats, P, n_coarse: int) -> None:
    """Record the coarse size, coarsening ratio and P row lengths."""
    stats.n_coarse = int(n_coarse)
    stats.extra["cr"] = float(stats.n_fine / n_coarse) if n_coarse > 0 else float("inf")
    if P is not None:
        lengths = np.diff(P.indptr)
        if lengths.size:
            stats.extra["prow"] = (int(lengths.min()), float(np.median(lengths)), int(lengths.max()))
        stats.extra["P_nnz"] = int(P.nnz)


def _fmt(x) -> str:
    """Format a scalar for compact printing."""
    try:
        x = float(x)
    except (TypeError, ValueError):
        return str(x)
    ax = abs(x)
    if ax != 0.0 and (ax < 1e-2 or ax >= 1e4):
        return f"{x:.2e}"
    return f"{x:.3g}"


def _fmt_ms(t: float) -> str:
    """Format a duration in seconds as either milliseconds or seconds."""
    return f"{t*1e3:7.1f}ms" if t < 1.0 else f"{t:7.2f}s"


_TIMING_ORDER = ("strength", "splitting", "aggregate", "interpolation", "galerkin")


def print_level_summary(stats: LevelStats, *, print_info: bool, prefix: str = "AMG",
                        indent: str = "") -> None:
    """Print a compact per-level summary of setup diagnostics and timings.

    Parameters
    ----------
    stats
        Per-level stats object that has already been finalized.
    print_info
        If False, does nothing.
    prefix
        Short label prefix printed per level.
    indent
        Optional indentation string (useful if caller nests printing).
    """
    if not print_info:
        return

    n_c = stats.n_coarse if stats.n_coarse is not None else "?"
    cr = _fmt(stats.extra.get("cr", "n/a"))
    print(f"{indent}{prefix:<3}  level={stats.level:<2d}  {stats.method:<10}"
          f"  n={stats.n_fine:<7d} -> {n_c:<7}  cr={cr}")

    if "S_nnz" in stats.extra:
        print(f"{indent}     strength nnz : {stats.extra['S_nnz']}"
              f"  theta={_fmt(stats.extra.get('theta', 'n/a'))}")
    if "n_aggs" in stats.extra:
        print(f"{indent}     aggregates   : {stats.extra['n_aggs']}")
    prow = stats.extra.get("prow")
    prow = "/".join(_fmt(v) for v in prow) if prow else "n/a"
    print(f"{indent}     P row length : {prow}  (min/med/max)")

    total = 0.0
    print(f"{indent}     timing:")
    for k in _TIMING_ORDER:
        if k in stats.timings:
            v = stats.timings[k]
            total += v
            print(f"{indent}       {k:<13} {_fmt_ms(v)}")
    print(f"{indent}       {'total':<13} {_fmt_ms(total)}")


def print_stop(*, level: int, n: int, reason: str, print_info: bool, indent: str = "") -> None:
    """Report why hierarchy construction stopped at `level`."""
    if not print_info:
        return
    print(f"{indent}AMG  stop at level {level} (n={n}): {reason}")


def print_hierarchy_summary(hierarchy, *, setup_time: float, print_info: bool, indent: str = "") -> None:
    """Print the level table and complexities of a finished hierarchy."""
    if not print_info:
        return
    for line in repr(hierarchy).splitlines():
        print(f"{indent}{line}")
    print(f"{indent}AMG  setup time {_fmt_ms(float(setup_time))}")
