from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import numpy as np
import pytest

from alisim.data_generation.models import ModelDefinition, parse_model
from alisim.data_generation.tree import SimulationTree

# 0.97 on the diagonal, 0.01 everywhere else
FIXED_MATRIX = np.full((4, 4), 0.01) + np.diag([0.96] * 4)


class ConstantRandom:
    """Stand-in for ``random.Random`` that replays a fixed list of uniform draws."""

    def __init__(self, values: Iterable[float]) -> None:
        self.values = list(values)
        self.calls = 0

    def random(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


@pytest.fixture()
def jc_model() -> ModelDefinition:
    return parse_model("JC")


@pytest.fixture()
def star_tree() -> SimulationTree:
    return SimulationTree.from_newick("(A:0.1,B:0.2,C:0.3);")


@pytest.fixture()
def fixed_transition_matrix(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Replace every transition matrix the regimes compute by :data:`FIXED_MATRIX`; returns the lengths asked for."""
    lengths: list[float] = []

    def fake_matrix(model, length):
        lengths.append(length)
        return FIXED_MATRIX.copy()

    monkeypatch.setattr("alisim.data_generation.rates.compute_transition_matrix", fake_matrix)
    return lengths


@pytest.fixture()
def base_payload(tmp_path: Path) -> dict[str, object]:
    return {
        "seed": 42,
        "tree": {"newick": "(A:0.1,B:0.2,C:0.3);"},
        "sequence": {"length": 20, "model": "JC"},
        "dataset": {"count": 2, "output_name": "generated", "output_directory": str(tmp_path / "out")},
    }


@pytest.fixture()
def constant_random() -> type[ConstantRandom]:
    return ConstantRandom
