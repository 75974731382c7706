"""Bucket priority queue keyed by a non-negative integer measure.

Each bucket is a doubly linked list threaded through flat ``next``/``prev``
arrays indexed by vertex number, so a vertex is its own list node. Insert,
remove and re-key are O(1); ``pop_max`` is amortized O(1) because the
cursor on the highest non-empty bucket only moves down between inserts.

Within a bucket vertices leave in insertion order. When vertices are
inserted in ascending index order this makes the lowest index win ties.
"""

from __future__ import annotations

_NIL = -1


class BucketQueue:
    """Max-priority queue over vertices ``0..n-1`` with integer measures.

    Parameters
    ----------
    n : int
        Number of vertices.
    max_measure : int
        Initial number of buckets minus one. Buckets are added on demand when
        a larger measure is inserted.
    """

    def __init__(self, n: int, max_measure: int = 0):
        self._next = [_NIL] * n
        self._prev = [_NIL] * n
        self._key = [_NIL] * n
        self._head = [_NIL] * (max_measure + 1)
        self._tail = [_NIL] * (max_measure + 1)
        self._top = _NIL
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __contains__(self, i: int) -> bool:
        return self._key[i] != _NIL

    def measure(self, i: int) -> int:
        """Measure of a queued vertex (-1 if not queued)."""
        return self._key[i]

    def insert(self, i: int, m: int) -> None:
        """Append vertex i to the tail of bucket m."""
        if self._key[i] != _NIL:
            raise KeyError(f"vertex {i} already queued")
        if m < 0:
            raise ValueError("measure must be non-negative")
        if m >= len(self._head):
            grow = m + 1 - len(self._head)
            self._head.extend([_NIL] * grow)
            self._tail.extend([_NIL] * grow)

        tail = self._tail[m]
        self._prev[i] = tail
        self._next[i] = _NIL
        if tail == _NIL:
            self._head[m] = i
        else:
            self._next[tail] = i
        self._tail[m] = i
        self._key[i] = m
        self._size += 1
        if m > self._top:
            self._top = m

    def remove(self, i: int) -> None:
        """Unlink vertex i from its bucket. No-op if i is not queued."""
        m = self._key[i]
        if m == _NIL:
            return
        prv, nxt = self._prev[i], self._next[i]
        if prv == _NIL:
            self._head[m] = nxt
        else:
            self._next[prv] = nxt
        if nxt == _NIL:
            self._tail[m] = prv
        else:
            self._prev[nxt] = prv
        self._next[i] = self._prev[i] = self._key[i] = _NIL
        self._size -= 1

    def update(self, i: int, m: int) -> None:
        """Move vertex i to the tail of bucket m."""
        self.remove(i)
        self.insert(i, m)

    def pop_max(self) -> int:
        """Remove and return the first vertex of the highest non-empty bucket."""
        if self._size == 0:
            raise IndexError("pop from empty BucketQueue")
        while self._head[self._top] == _NIL:
            self._top -= 1
        i = self._head[self._top]
        self.remove(i)
        return i
