"""Round-robin split of the roster across worker slots."""

from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")


def partition(roster: Sequence[T], workers: int) -> list[list[T]]:
    """
    Assign roster item i to partition i mod workers.

    Order within each partition follows the roster. Always returns exactly
    `workers` lists; some (or all, for an empty roster) may be empty.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    return [list(roster[slot::workers]) for slot in range(workers)]
