"""Worker distribution planner.

Splits ``total_pages`` into contiguous, non-overlapping page ranges, one
per worker browser::

    >>> [(a.start, a.end) for a in plan_workers(25, 10, 3)]
    [(1, 9), (10, 17), (18, 25)]

The worker count is ``min(ceil(total / per_worker), max_workers)``; pages
are spread so that range sizes differ by at most one, the first
``total % workers`` ranges taking the extra page.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class WorkerAssignment:
    """Inclusive 1-based page range owned by one worker."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def pages(self) -> range:
        return range(self.start, self.end + 1)

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


def plan_workers(
    total_pages: int,
    pages_per_worker: int,
    max_workers: int,
) -> list[WorkerAssignment]:
    """Compute the page ranges for a multi-page fetch.

    Args:
        total_pages: Number of pages in the work (``>= 1``).
        pages_per_worker: Target pages per worker (``>= 1``).
        max_workers: Upper bound on the number of workers (``>= 1``).

    Returns:
        Assignments in increasing page order, covering ``[1, total_pages]``
        exactly once.

    Raises:
        ValueError: If any argument is smaller than 1.
    """
    if total_pages < 1:
        raise ValueError("total_pages must be >= 1")
    if pages_per_worker < 1:
        raise ValueError("pages_per_worker must be >= 1")
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")

    worker_count = min(math.ceil(total_pages / pages_per_worker), max_workers)
    base, remainder = divmod(total_pages, worker_count)

    assignments: list[WorkerAssignment] = []
    start = 1
    for i in range(worker_count):
        size = base + (1 if i < remainder else 0)
        end = start + size - 1
        assignments.append(WorkerAssignment(start=start, end=end))
        start = end + 1
    return assignments
