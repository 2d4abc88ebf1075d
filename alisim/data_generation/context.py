from __future__ import annotations

import random
from dataclasses import dataclass, field

from .models import SubstitutionModel
from .sampler import AccumulatedMatrix
from .tree import SimulationTree


@dataclass
class SimulationContext:
    """Mutable state of one dataset: RNG, node sequences, release counters and scratch buffers.

    A fresh context is built for every dataset so nothing leaks from one run
    into the next; the tree and model stay read-only.
    """

    rng: random.Random
    sequence_length: int
    sequences: list[list[int] | None]
    pending: list[int]
    site_rates: list[int] = field(default_factory=list)
    transition_rows: list[list[float]] = field(default_factory=list)
    accumulated: AccumulatedMatrix | None = None
    category_rows: dict[int, list[list[float]]] = field(default_factory=dict)
    edge_model: SubstitutionModel | None = None
    edge_length: float = 0.0
    fundi_pending: int | None = None
    written: list[int] = field(default_factory=list)
    released: list[int] = field(default_factory=list)

    @classmethod
    def for_tree(cls, tree: SimulationTree, rng: random.Random, sequence_length: int) -> "SimulationContext":
        return cls(
            rng=rng,
            sequence_length=sequence_length,
            sequences=[None] * len(tree),
            pending=[tree.child_count(index) for index in range(len(tree))],
        )


__all__ = ["SimulationContext"]
