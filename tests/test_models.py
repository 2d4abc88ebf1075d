from __future__ import annotations

import math

import numpy as np
import pytest

from alisim.data_generation.alphabet import DNA, PROTEIN, alphabet_for
from alisim.data_generation.config import ConfigurationError
from alisim.data_generation.models import (
    compute_transition_matrix,
    gamma_category_rates,
    parse_model,
    parse_substitution_model,
)


@pytest.mark.parametrize(
    "text",
    [
        "JC",
        "K2P{2.5}",
        "HKY{2.0}+F{0.3,0.2,0.2,0.3}",
        "TN93{2.0,3.0}+FQ",
        "GTR{1,2,1,1,2}+F{0.1,0.2,0.3,0.4}",
        "GTR{1,2,1,1,2,1}+FQ",
        "GTR2+F{0.3,0.7}",
        "POISSON",
    ],
)
@pytest.mark.parametrize("length", [0.0, 0.01, 0.5, 3.0])
def test_transition_rows_sum_to_one(text: str, length: float) -> None:
    model = parse_model(text).substitution
    matrix = compute_transition_matrix(model, length)
    assert matrix.shape == (model.num_states, model.num_states)
    assert np.all(matrix >= 0)
    np.testing.assert_allclose(matrix.sum(axis=1), 1.0, atol=1e-9)


def test_jukes_cantor_matches_closed_form() -> None:
    model = parse_model("JC").substitution
    length = 0.3
    matrix = compute_transition_matrix(model, length)
    same = 0.25 + 0.75 * math.exp(-4.0 * length / 3.0)
    different = 0.25 - 0.25 * math.exp(-4.0 * length / 3.0)
    assert matrix[0, 0] == pytest.approx(same, abs=1e-9)
    assert matrix[1, 3] == pytest.approx(different, abs=1e-9)


def test_zero_length_is_identity_and_negative_is_rejected() -> None:
    model = parse_model("HKY{4}+F{0.1,0.2,0.3,0.4}").substitution
    np.testing.assert_array_equal(compute_transition_matrix(model, 0.0), np.identity(4))
    with pytest.raises(ValueError):
        compute_transition_matrix(model, -0.1)
    with pytest.raises(ValueError):
        compute_transition_matrix(model, float("nan"))


def test_frequencies_are_stationary() -> None:
    model = parse_model("F81+F{0.1,0.2,0.3,0.4}").substitution
    frequencies = model.state_frequencies()
    np.testing.assert_allclose(frequencies @ compute_transition_matrix(model, 0.7), frequencies, atol=1e-9)
    assert not model.equal_frequencies


def test_rate_matrix_is_normalised() -> None:
    model = parse_model("GTR{1,2,1,1,2}+F{0.1,0.2,0.3,0.4}").substitution
    expected_rate = -np.dot(model.frequencies, np.diag(model.rate_matrix))
    assert expected_rate == pytest.approx(1.0)


@pytest.mark.parametrize("alpha,categories", [(0.5, 4), (1.0, 4), (2.0, 8), (0.2, 3)])
def test_gamma_category_rates_average_one(alpha: float, categories: int) -> None:
    rates = gamma_category_rates(alpha, categories)
    assert len(rates) == categories
    assert sum(rates) / categories == pytest.approx(1.0, abs=1e-9)
    assert list(rates) == sorted(rates)


def test_gamma_with_invariant_keeps_mean_rate() -> None:
    rate_heterogeneity = parse_model("JC+I{0.2}+G4{0.5}").rate_heterogeneity
    assert rate_heterogeneity.kind == "gamma"
    assert rate_heterogeneity.has_invariant_sites
    assert sum(rate_heterogeneity.weights) == pytest.approx(0.8)
    mean_rate = sum(w * r for w, r in zip(rate_heterogeneity.weights, rate_heterogeneity.rates))
    assert mean_rate == pytest.approx(1.0)


def test_freerate_categories_are_normalised() -> None:
    rate_heterogeneity = parse_model("JC+R2{0.5,0.5,0.5,1.5}").rate_heterogeneity
    assert rate_heterogeneity.kind == "freerate"
    assert rate_heterogeneity.weights == pytest.approx((0.5, 0.5))
    assert rate_heterogeneity.rates == pytest.approx((0.5, 1.5))


def test_default_gamma_categories() -> None:
    assert parse_model("JC+G{1.0}").rate_heterogeneity.num_categories == 4


def test_sequence_type_inferred_from_model() -> None:
    assert parse_model("GTR2+FQ").alphabet.sequence_type == "BIN"
    assert parse_model("POISSON").alphabet is PROTEIN
    assert parse_model("JC", "dna").alphabet is DNA


@pytest.mark.parametrize(
    "text,sequence_type",
    [
        ("JC", "AA"),
        ("HKY{2.0}", None),
        ("K2P", None),
        ("JC+X", None),
        ("JC+I{1.0}", None),
        ("JC+G4", None),
        ("JC+G4{0.5}+R2{0.5,1,0.5,1}", None),
        ("JC+F{0.5,0.5}", None),
        ("WAG", None),
        ("GTR{1,2,x,1,2}+FQ", None),
        ("", None),
    ],
)
def test_invalid_models_rejected(text: str, sequence_type: str | None) -> None:
    with pytest.raises(ConfigurationError):
        parse_model(text, sequence_type)


def test_branch_model_rejects_rate_heterogeneity() -> None:
    with pytest.raises(ConfigurationError):
        parse_substitution_model("JC+G4{0.5}", "DNA")
    with pytest.raises(ConfigurationError):
        parse_substitution_model("JC+I{0.1}", "DNA")
    assert parse_substitution_model("K80{3}", "DNA").name == "K80"


def test_alphabet_round_trip_and_errors() -> None:
    assert DNA.encode("acgu") == [0, 1, 2, 3]
    assert DNA.decode([3, 2, 1, 0]) == "TGCA"
    with pytest.raises(ValueError):
        DNA.encode("ACGN")
    with pytest.raises(ValueError):
        alphabet_for("RNA")
