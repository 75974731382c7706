"""Exception types raised during hierarchy setup.

Fatal errors (``ParameterError``, ``SingularBlockError``) propagate to the
caller of ``build_hierarchy``. ``CoarseningFailure`` and
``InterpolationRejected`` are raised inside a single extension step and are
caught by the build loop, which keeps the hierarchy built so far.
"""

from __future__ import annotations

import numpy as np


class AMGError(Exception):
    """Base class for errors raised by amgcore."""


class ParameterError(AMGError, ValueError):
    """Unrecognized method name or out-of-range setup parameter."""


class SingularBlockError(AMGError, np.linalg.LinAlgError):
    """A local dense block of energy-min interpolation could not be inverted.

    Attributes
    ----------
    column
        Coarse column whose local block is singular.
    """

    def __init__(self, column: int, message: str | None = None):
        self.column = int(column)
        if message is None:
            message = f"singular local block for coarse column {self.column}"
        super().__init__(message)


class CoarseningFailure(AMGError):
    """Coarsening cannot produce a usable coarse level (non-fatal)."""


class InterpolationRejected(AMGError):
    """The coarse level violates the size or coarsening-rate bounds (non-fatal)."""
