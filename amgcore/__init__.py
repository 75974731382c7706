"""Algebraic multigrid: classical Ruge-Stuben and aggregation hierarchies."""
from . import amg, core
from .amg import build_hierarchy
from .core.cycle import apply_cycle
from .core.errors import (
    AMGError,
    CoarseningFailure,
    InterpolationRejected,
    ParameterError,
    SingularBlockError,
)
from .core.parallel import ExecutionPolicy
from .core.types import AMGConfig, Level, LevelHierarchy, VertexLabel
from .solve import aspreconditioner, solve

__all__ = [
    'amg',
    'core',
    'build_hierarchy',
    'apply_cycle',
    'solve',
    'aspreconditioner',
    'AMGConfig',
    'ExecutionPolicy',
    'Level',
    'LevelHierarchy',
    'VertexLabel',
    'AMGError',
    'ParameterError',
    'SingularBlockError',
    'CoarseningFailure',
    'InterpolationRejected',
]
