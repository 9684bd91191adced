# src/viral_dynamics/model/indexing.py
"""
Observation windows for the flat observation table.

All observations of one individual sit in a contiguous block of the flat
arrays. Given the per-individual counts we precompute where each block starts
and stops, so the trajectory code never has to search the ``id`` column.
Windows are 0-based and half-open: individual ``i`` owns
``outcome[start[i]:stop[i]]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

import numpy as np


@dataclass(frozen=True, eq=False)
class IndexTable:
    start: np.ndarray
    stop: np.ndarray

    def __len__(self) -> int:
        return int(self.start.size)

    def __iter__(self) -> Iterator[slice]:
        for i in range(len(self)):
            yield self.slice(i)

    @property
    def n_total(self) -> int:
        return int(self.stop[-1]) if len(self) else 0

    def slice(self, i: int) -> slice:
        return slice(int(self.start[i]), int(self.stop[i]))

    def owner(self) -> np.ndarray:
        """0-based individual index of every observation."""
        return np.repeat(np.arange(len(self)), self.stop - self.start)


def observation_windows(n_obs: Sequence[int], n_total: Optional[int] = None) -> IndexTable:
    """Build the contiguous observation windows from per-individual counts.

    Args:
        n_obs: number of observations of each individual, in table order
        n_total: expected length of the flat table; checked when given
    Returns:
        IndexTable with ``start``/``stop`` arrays of length ``len(n_obs)``
    Raises:
        ValueError
    """
    counts = np.asarray(n_obs)

    if counts.ndim != 1 or counts.size == 0:
        raise ValueError("n_obs must be a non-empty 1D sequence of counts")
    if not np.issubdtype(counts.dtype, np.integer):
        if not np.all(np.mod(counts, 1) == 0):
            raise ValueError("n_obs must contain whole numbers")
    counts = counts.astype(np.int64)
    if np.any(counts <= 0):
        raise ValueError("every individual needs at least one observation")

    stop = np.cumsum(counts)
    start = stop - counts

    if n_total is not None and int(stop[-1]) != int(n_total):
        raise ValueError(
            f"observation counts sum to {int(stop[-1])} but the table has {int(n_total)} rows"
        )

    return IndexTable(start=start, stop=stop)
