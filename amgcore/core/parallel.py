"""Execution policy and fork/join data-parallel loop.

A loop over ``range(n)`` is cut into contiguous chunks and each chunk is
handed to ``body(start, stop)``. Bodies write only into their own slice of
any output array; anything that needs a global reduction is returned from
the body and combined by the caller once every chunk has finished.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(slots=True, frozen=True)
class ExecutionPolicy:
    """Worker count and size threshold for data-parallel loops.

    Attributes
    ----------
    num_workers : int
        Number of threads used for loops at or above the threshold.
    threshold : int
        Loops shorter than this run sequentially in the calling thread.
    """

    num_workers: int = 1
    threshold: int = 10000

    def is_parallel(self, n: int) -> bool:
        """Return True when a loop of length n is split across workers."""
        return self.num_workers > 1 and n >= self.threshold

    def chunks(self, n: int) -> list[tuple[int, int]]:
        """Contiguous ``(start, stop)`` ranges covering ``range(n)``."""
        if not self.is_parallel(n):
            return [(0, n)]
        nchunks = min(self.num_workers, n)
        bounds = [(k * n) // nchunks for k in range(nchunks + 1)]
        return [(bounds[k], bounds[k + 1]) for k in range(nchunks)]

    def parallel_for(self, n: int, body: Callable[[int, int], Any]) -> list[Any]:
        """Run ``body(start, stop)`` over ``range(n)`` and return results in chunk order.

        The call returns only after every chunk has finished.
        """
        chunks = self.chunks(n)
        if len(chunks) == 1:
            return [body(*chunks[0])]

        with ThreadPoolExecutor(max_workers=self.num_workers) as pool:
            futures = [pool.submit(body, start, stop) for start, stop in chunks]
            return [f.result() for f in futures]


SEQUENTIAL = ExecutionPolicy()
