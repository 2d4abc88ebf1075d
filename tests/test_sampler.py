from __future__ import annotations

import random

import numpy as np

from alisim.data_generation.sampler import (
    NOT_FOUND,
    AccumulatedMatrix,
    sample_cumulative,
    sample_descending_sorted,
    sample_state,
)


def test_sample_cumulative_returns_first_reaching_index(constant_random) -> None:
    assert sample_cumulative(constant_random([0.5]), [0.2, 0.3, 0.5]) == 1
    assert sample_cumulative(constant_random([0.1]), [0.2, 0.3, 0.5]) == 0
    assert sample_cumulative(constant_random([0.9]), [0.2, 0.3, 0.5]) == 2


def test_sample_cumulative_reports_miss(constant_random) -> None:
    assert sample_cumulative(constant_random([0.95]), [0.3, 0.3, 0.3]) == NOT_FOUND


def test_sample_cumulative_window_is_relative(constant_random) -> None:
    distribution = [0.9, 0.05, 0.05, 0.9]
    assert sample_cumulative(constant_random([0.08]), distribution, start=1, count=2) == 1
    assert sample_cumulative(constant_random([0.5]), distribution, start=1, count=2) == NOT_FOUND


def test_sample_descending_sorted(constant_random) -> None:
    accumulated = [0.7, 0.9, 1.0]
    assert sample_descending_sorted(constant_random([0.6]), accumulated) == 0
    assert sample_descending_sorted(constant_random([0.75]), accumulated) == 1
    assert sample_descending_sorted(constant_random([0.95]), [0.5, 0.9]) == NOT_FOUND


def test_accumulated_matrix_orders_rows_by_probability(constant_random) -> None:
    matrix = np.array([[0.1, 0.7, 0.2], [0.4, 0.2, 0.4], [0.0, 0.0, 1.0]])
    accumulated = AccumulatedMatrix.from_matrix(matrix)
    assert accumulated.order[0] == [1, 2, 0]
    # ties keep the lower state first
    assert accumulated.order[1] == [0, 2, 1]
    assert accumulated.sample(constant_random([0.75]), 0) == 2
    assert accumulated.sample(constant_random([0.5]), 0) == 1


def test_accumulated_matrix_miss_falls_back_to_least_likely_state(constant_random) -> None:
    accumulated = AccumulatedMatrix(accumulated=[[0.6, 0.8, 0.9]], order=[[2, 0, 1]])
    assert accumulated.sample(constant_random([0.95]), 0) == 1


def test_sample_state_miss_falls_back_to_last_state(constant_random) -> None:
    rows = [[0.3, 0.3, 0.3]]
    assert sample_state(constant_random([0.95]), rows, 0) == 2


def test_samplers_consume_one_draw(constant_random) -> None:
    rng = constant_random([0.5])
    sample_state(rng, [[0.25, 0.25, 0.25, 0.25]], 0)
    AccumulatedMatrix.from_matrix(np.full((2, 2), 0.5)).sample(rng, 1)
    assert rng.calls == 2


def test_same_seed_same_draws() -> None:
    distribution = [0.1, 0.2, 0.3, 0.4]
    first = [sample_cumulative(random.Random(3), distribution) for _ in range(5)]
    second = [sample_cumulative(random.Random(3), distribution) for _ in range(5)]
    assert first == second
