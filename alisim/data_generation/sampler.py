"""Discrete samplers used to draw states and rate categories.

Both samplers consume exactly one uniform draw per call, so the sequence of
draws (and therefore the simulated alignment) is fully determined by the seed
of the ``random.Random`` instance handed in.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

NOT_FOUND = -1


def sample_cumulative(
    rng: random.Random,
    distribution: Sequence[float],
    start: int = 0,
    count: int | None = None,
) -> int:
    """Draw an index from ``distribution[start:start + count]`` by a linear cumulative scan.

    Returns the offset (relative to ``start``) of the first entry whose running
    sum reaches the uniform draw, or :data:`NOT_FOUND` when rounding leaves the
    total short of the draw. Callers decide what a miss means.
    """
    if count is None:
        count = len(distribution) - start
    random_number = rng.random()
    accumulated = 0.0
    for offset in range(count):
        accumulated += distribution[start + offset]
        if random_number <= accumulated:
            return offset
    return NOT_FOUND


def sample_descending_sorted(rng: random.Random, accumulated_row: Sequence[float]) -> int:
    """Return the position of the first accumulated value reaching a uniform draw.

    ``accumulated_row`` must already be accumulated in descending order of
    probability, so the dominant outcome (the diagonal of a short branch) is
    checked first. The returned position is mapped back to a state by the
    caller.
    """
    random_number = rng.random()
    for position, value in enumerate(accumulated_row):
        if random_number <= value:
            return position
    return NOT_FOUND


@dataclass
class AccumulatedMatrix:
    """Transition matrix rows accumulated in descending-probability order."""

    accumulated: list[list[float]]
    order: list[list[int]]

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> "AccumulatedMatrix":
        # stable sort keeps the lower state first among equal probabilities
        order = np.argsort(-matrix, axis=1, kind="stable")
        sorted_rows = np.take_along_axis(matrix, order, axis=1)
        return cls(
            accumulated=np.cumsum(sorted_rows, axis=1).tolist(),
            order=order.tolist(),
        )

    def sample(self, rng: random.Random, parent_state: int) -> int:
        position = sample_descending_sorted(rng, self.accumulated[parent_state])
        row_order = self.order[parent_state]
        if position == NOT_FOUND:
            position = len(row_order) - 1
        return row_order[position]


def sample_state(rng: random.Random, matrix_rows: Sequence[Sequence[float]], parent_state: int) -> int:
    """Draw a child state from the parent's row; a rounding miss falls back to the last state."""
    row = matrix_rows[parent_state]
    state = sample_cumulative(rng, row)
    if state == NOT_FOUND:
        return len(row) - 1
    return state


__all__ = [
    "NOT_FOUND",
    "AccumulatedMatrix",
    "sample_cumulative",
    "sample_descending_sorted",
    "sample_state",
]
