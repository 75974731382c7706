"""Typed containers shared by the AMG setup and cycle code.

Containers
----------
VertexLabel
    Per-vertex state of the C/F splitter. Label arrays are stored as int8
    numpy arrays holding the enum values.
AMGConfig
    Frozen bundle of every setup parameter. Validated once at setup entry.
WorkVectors
    Residual / right-hand side / correction buffers owned by one level.
Level
    Operator, transfer operators, splitting data and smoother state for one
    level of the hierarchy.
LevelHierarchy
    Ordered sequence of levels (index 0 = finest) plus the coarsest-level
    solver handle and cycle parameters.

Invariants
----------
- For 0 <= i < len(levels) - 1, ``levels[i + 1].A == levels[i].R @ levels[i].A @ levels[i].P``.
- Only the coarsest level has ``P is None``.
- ``levels[i].work`` vectors have length ``levels[i].A.shape[0]``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray

from scipy.sparse import spmatrix, sparray

from .errors import ParameterError
from .parallel import ExecutionPolicy

SparseLike = spmatrix | sparray
MethodSpec = str | tuple[str, dict[str, Any]] | None
IndexArray = NDArray[np.int32]
LabelArray = NDArray[np.int8]

COARSENING_METHODS = ("classical", "aggressive", "pairwise", "vmb")
INTERPOLATION_METHODS = ("direct", "standard", "energy_min")
CYCLE_TYPES = ("V", "W", "AMLI", "variable")
SMOOTHER_METHODS = ("gauss_seidel", "sor", "jacobi", "ilu", "schwarz")
SMOOTHER_ORDERINGS = ("natural", "cf", "fc")
COARSE_SOLVERS = ("splu", "cg")


class VertexLabel(IntEnum):
    """State of a vertex during and after C/F splitting."""

    FINE = 0
    COARSE = 1
    ISOLATED = 2
    UNDECIDED = 3


def _spec_name(spec: MethodSpec) -> Any:
    """Method name of a string or (name, kwargs) spec."""
    if isinstance(spec, tuple):
        return spec[0]
    return spec


@dataclass(slots=True, frozen=True)
class AMGConfig:
    """Setup parameters for one hierarchy.

    Attributes
    ----------
    coarsening : str
        One of ``classical``, ``aggressive``, ``pairwise``, ``vmb``.
    strength_threshold : float
        Threshold of the classical strength rule, in (0, 1).
    max_row_sum : float
        Rows whose scaled absolute row sum exceeds this cap have no strong
        couplings. Values >= 1 disable the cap.
    interpolation : str
        One of ``direct``, ``standard``, ``energy_min``. Aggressive levels
        always use ``standard``.
    truncation : float
        Fraction of the row extreme below which interpolation weights are
        dropped. 0 disables truncation.
    max_levels, max_coarse : int
        Construction stops once the hierarchy has ``max_levels`` levels or
        the coarsest operator has at most ``max_coarse`` rows.
    min_coarse : int
        A coarse level with fewer columns than this is rejected.
    max_coarsening_rate : float
        A coarse level with ``n_fine > max_coarsening_rate * n_coarse`` is
        rejected as too aggressive.
    aggressive_levels, aggressive_path : int
        Number of levels using aggressive coarsening, and the Sh path rule
        (1 or 2).
    strong_coupled, adaptive_threshold, max_aggregation, pair_passes
        Aggregation controls.
    smooth_aggregation, smoothing_weight
        Smoothed aggregation toggle and the Jacobi damping numerator.
    near_kernel : ndarray | None
        Near-kernel basis of shape (n, k). Defaults to the constant vector.
    cycle : str
        One of ``V``, ``W``, ``AMLI``, ``variable``.
    amli_degree : int
        Degree of the AMLI polynomial.
    presmoother, postsmoother
        Smoother specs, or per-level lists of specs.
    presmooth_iterations, postsmooth_iterations : int
        Sweeps per visit.
    smoother_ordering : str
        ``natural``, ``cf`` or ``fc``.
    coarse_solver : str
        ``splu`` or ``cg``.
    coarse_tol : float
        Tolerance of the iterative coarse solve.
    energy_min_tol, energy_min_maxiter
        Controls of the global CG solve in energy-min interpolation.
    policy : ExecutionPolicy
        Worker count and parallel threshold.
    print_info : bool
        Print setup diagnostics through ``stats``.
    """

    coarsening: str = "classical"
    strength_threshold: float = 0.3
    max_row_sum: float = 0.9
    interpolation: str = "direct"
    truncation: float = 0.2
    max_levels: int = 12
    max_coarse: int = 10
    min_coarse: int = 1
    max_coarsening_rate: float = 20.0
    aggressive_levels: int = 1
    aggressive_path: int = 1
    strong_coupled: float = 0.08
    adaptive_threshold: bool = True
    max_aggregation: int = 9
    pair_passes: int = 2
    smooth_aggregation: bool = False
    smoothing_weight: float = 4.0 / 3.0
    near_kernel: np.ndarray | None = None
    cycle: str = "V"
    amli_degree: int = 1
    presmoother: MethodSpec | list[MethodSpec] = ("gauss_seidel", {"sweep": "forward"})
    postsmoother: MethodSpec | list[MethodSpec] = ("gauss_seidel", {"sweep": "backward"})
    presmooth_iterations: int = 1
    postsmooth_iterations: int = 1
    smoother_ordering: str = "natural"
    coarse_solver: str = "splu"
    coarse_tol: float = 1e-10
    energy_min_tol: float = 1e-8
    energy_min_maxiter: int = 200
    policy: ExecutionPolicy = field(default_factory=ExecutionPolicy)
    print_info: bool = False

    def validate(self) -> None:
        """Raise ``ParameterError`` for unknown method names or bad values."""
        if self.coarsening not in COARSENING_METHODS:
            raise ParameterError(f"Unrecognized coarsening method: {self.coarsening!r}")
        if self.interpolation not in INTERPOLATION_METHODS:
            raise ParameterError(f"Unrecognized interpolation method: {self.interpolation!r}")
        if self.cycle not in CYCLE_TYPES:
            raise ParameterError(f"Unrecognized cycle type: {self.cycle!r}")
        if self.smoother_ordering not in SMOOTHER_ORDERINGS:
            raise ParameterError(f"Unrecognized smoother ordering: {self.smoother_ordering!r}")
        if self.coarse_solver not in COARSE_SOLVERS:
            raise ParameterError(f"Unrecognized coarse solver: {self.coarse_solver!r}")

        # smoothers import this module
        from .smoothers import make_smoother

        for specs in (self.presmoother, self.postsmoother):
            if not isinstance(specs, list):
                specs = [specs]
            for spec in specs:
                name = _spec_name(spec)
                if name is None:
                    continue
                if name not in SMOOTHER_METHODS:
                    raise ParameterError(f"Invalid smoother type: {name!r}")
                try:
                    smoother = make_smoother(spec)
                except TypeError as e:
                    raise ParameterError(f"Invalid arguments for smoother {name!r}: {e}") from e
                if self.smoother_ordering != "natural" and not smoother.supports_ordering:
                    raise ParameterError(
                        f"smoother {name!r} does not support ordering {self.smoother_ordering!r}")

        if not 0.0 < self.strength_threshold < 1.0:
            raise ParameterError("expected strength_threshold in (0, 1)")
        if not 0.0 <= self.truncation < 1.0:
            raise ParameterError("expected truncation in [0, 1)")
        if self.max_levels < 1:
            raise ParameterError("expected max_levels >= 1")
        if self.max_coarse < 1 or self.min_coarse < 1:
            raise ParameterError("expected max_coarse >= 1 and min_coarse >= 1")
        if self.max_coarsening_rate <= 1.0:
            raise ParameterError("expected max_coarsening_rate > 1")
        if self.aggressive_path not in (1, 2):
            raise ParameterError(f"Unrecognized aggressive path: {self.aggressive_path!r}")
        if self.strong_coupled <= 0.0:
            raise ParameterError("expected strong_coupled > 0")
        if self.max_aggregation < 2 or self.pair_passes < 1:
            raise ParameterError("expected max_aggregation >= 2 and pair_passes >= 1")
        if self.amli_degree < 0:
            raise ParameterError("expected amli_degree >= 0")
        if self.presmooth_iterations < 0 or self.postsmooth_iterations < 0:
            raise ParameterError("expected non-negative smoothing iterations")


@dataclass(slots=True)
class WorkVectors:
    """Scratch vectors owned by one level.

    ``b`` and ``x`` receive the restricted right-hand side and the coarse
    correction when this level is visited from the level above; ``r``
    holds this level's residual.
    """

    b: np.ndarray
    x: np.ndarray
    r: np.ndarray

    @classmethod
    def allocate(cls, n: int, dtype=np.float64) -> "WorkVectors":
        """Allocate zeroed buffers of length n."""
        return cls(b=np.zeros(n, dtype=dtype), x=np.zeros(n, dtype=dtype), r=np.zeros(n, dtype=dtype))


class Smoother(Protocol):
    """Relaxation plug-in attached to one level."""

    def setup(self, A: SparseLike) -> None: ...

    def presmooth(self, A, b, x, iterations: int, ordering: IndexArray | None) -> None: ...

    def postsmooth(self, A, b, x, iterations: int, ordering: IndexArray | None) -> None: ...


@dataclass(slots=True)
class Level:
    """One level of the hierarchy.

    Attributes
    ----------
    A
        Level operator (CSR).
    P, R
        Prolongation to this level from the next coarser level, and
        restriction to it. ``None`` on the coarsest level.
    labels
        C/F splitting (int8 ``VertexLabel`` values) for classical levels.
    aggregates
        Aggregate id per vertex (-1 = unaggregated) for aggregation levels.
    near_kernel
        Near-kernel basis restricted to this level (aggregation path).
    presmoother, postsmoother
        Smoother objects, or ``None`` to skip that sweep.
    ordering
        Visiting order handed to the smoothers (``None`` = natural order).
        Gauss-Seidel applies its sweep direction to this sequence.
    work
        Scratch vectors sized to this level.
    cycle_type
        Number of coarse visits made from this level (0 on the coarsest).
    stats
        ``LevelStats`` gathered while building P on this level.
    """

    A: Any
    P: Any = None
    R: Any = None
    labels: LabelArray | None = None
    aggregates: IndexArray | None = None
    near_kernel: np.ndarray | None = None
    presmoother: Any = None
    postsmoother: Any = None
    ordering: IndexArray | None = None
    work: WorkVectors | None = None
    cycle_type: int = 1
    stats: Any = None

    def release_transfer(self) -> None:
        """Drop the transfer operators and splitting data of an aborted extension."""
        self.P = None
        self.R = None
        self.labels = None
        self.aggregates = None


@dataclass(slots=True)
class LevelHierarchy:
    """Ordered levels (0 = finest) plus coarsest-level solver state.

    Attributes
    ----------
    levels
        The levels, finest first.
    config
        The validated configuration the hierarchy was built with.
    coarse_solver
        Coarse solver plug-in used on ``levels[-1]``.
    coarse_handle
        Handle returned by ``coarse_solver.factorize(levels[-1].A)``.
    amli_coefficients
        Polynomial coefficients (lowest degree first) for AMLI cycles.
    """

    levels: list[Level]
    config: AMGConfig
    coarse_solver: Any = None
    coarse_handle: Any = None
    amli_coefficients: np.ndarray | None = None

    def __len__(self) -> int:
        return len(self.levels)

    def operator_complexity(self) -> float:
        """Sum of nnz over all levels divided by nnz of the finest operator."""
        return sum(lvl.A.nnz for lvl in self.levels) / float(self.levels[0].A.nnz)

    def grid_complexity(self) -> float:
        """Sum of rows over all levels divided by rows of the finest operator."""
        return sum(lvl.A.shape[0] for lvl in self.levels) / float(self.levels[0].A.shape[0])

    def __repr__(self) -> str:
        output = "AMG hierarchy\n"
        output += f"Number of levels:     {len(self.levels)}\n"
        output += f"Cycle type:           {self.config.cycle}\n"
        output += f"Operator complexity: {self.operator_complexity():6.3f}\n"
        output += f"Grid complexity:     {self.grid_complexity():6.3f}\n"
        output += "  level   unknowns     nonzeros\n"
        total = sum(lvl.A.nnz for lvl in self.levels)
        for n, lvl in enumerate(self.levels):
            A = lvl.A
            ratio = 100 * A.nnz / total
            output += f"{n:>6} {A.shape[1]:>11} {A.nnz:>12} [{ratio:2.2f}%]\n"
        return output
