"""Substitution models and rate-heterogeneity definitions.

Model strings follow the IQ-TREE/AliSim syntax, for example
``HKY{2.0}+F{0.3,0.2,0.2,0.3}+I{0.1}+G4{0.5}`` or ``GTR{1,2,1,1,2}+R3{0.2,0.1,0.5,0.8,0.3,2.4}``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from scipy import special, stats

from .alphabet import Alphabet, alphabet_for
from .config import ConfigurationError

DEFAULT_GAMMA_CATEGORIES = 4

_NAME_PATTERN = re.compile(r"^(?P<name>[A-Za-z][A-Za-z0-9]*)(?:\{(?P<params>[^{}]*)\})?$")
_RATE_PATTERN = re.compile(r"^(?P<kind>[GR])(?P<count>\d*)(?:\{(?P<params>[^{}]*)\})?$")
_INVARIANT_PATTERN = re.compile(r"^I(?:\{(?P<params>[^{}]*)\})?$")
_FREQUENCY_PATTERN = re.compile(r"^F(?P<kind>Q?)(?:\{(?P<params>[^{}]*)\})?$")

# exchangeability order for DNA models: AC, AG, AT, CG, CT, GT
_DNA_MODELS: dict[str, tuple[int, bool]] = {
    # name: (number of parameters, uses +F frequencies by default)
    "JC": (0, False),
    "JC69": (0, False),
    "F81": (0, True),
    "K2P": (1, False),
    "K80": (1, False),
    "HKY": (1, True),
    "HKY85": (1, True),
    "TN": (2, True),
    "TN93": (2, True),
    "GTR": (6, True),
}
_BINARY_MODELS = {"JC2", "GTR2"}
_PROTEIN_MODELS = {"POISSON"}


class SubstitutionModel:
    """Time-reversible Markov model normalised to one expected substitution per unit length."""

    def __init__(
        self,
        name: str,
        exchangeabilities: np.ndarray,
        frequencies: np.ndarray,
        *,
        equal_frequencies: bool = False,
    ) -> None:
        frequencies = np.asarray(frequencies, dtype=float)
        exchangeabilities = np.asarray(exchangeabilities, dtype=float)
        num_states = frequencies.shape[0]
        if exchangeabilities.shape != (num_states, num_states):
            raise ConfigurationError(f"Model '{name}' exchangeability matrix does not match {num_states} states")
        if np.any(frequencies <= 0):
            raise ConfigurationError(f"Model '{name}' state frequencies must all be positive")

        self.name = name
        self.num_states = num_states
        self.frequencies = frequencies / frequencies.sum()
        self.equal_frequencies = equal_frequencies
        self.rate_matrix = _normalised_rate_matrix(exchangeabilities, self.frequencies)

        # eigensystem of the symmetrised matrix D^1/2 Q D^-1/2
        sqrt_pi = np.sqrt(self.frequencies)
        symmetric = sqrt_pi[:, None] * self.rate_matrix / sqrt_pi[None, :]
        symmetric = (symmetric + symmetric.T) / 2.0
        eigenvalues, eigenvectors = np.linalg.eigh(symmetric)
        self._eigenvalues = eigenvalues
        self._left = eigenvectors / sqrt_pi[:, None]
        self._right = eigenvectors.T * sqrt_pi[None, :]

    def transition_matrix(self, length: float) -> np.ndarray:
        if length < 0 or not math.isfinite(length):
            raise ValueError(f"Branch length must be a finite non-negative number, got {length!r}")
        if length == 0:
            return np.identity(self.num_states)
        matrix = self._left @ np.diag(np.exp(self._eigenvalues * length)) @ self._right
        matrix = np.maximum(matrix, 0.0)
        return matrix / matrix.sum(axis=1, keepdims=True)

    def state_frequencies(self) -> np.ndarray:
        return self.frequencies.copy()

    def __repr__(self) -> str:
        return f"SubstitutionModel({self.name!r}, num_states={self.num_states})"


@dataclass(frozen=True)
class RateHeterogeneity:
    """Rate categories attached to a model (empty ``rates`` means no discrete categories)."""

    invariant_proportion: float = 0.0
    rates: tuple[float, ...] = ()
    weights: tuple[float, ...] = ()
    kind: str = "none"

    @property
    def has_invariant_sites(self) -> bool:
        return self.invariant_proportion > 0

    @property
    def has_categories(self) -> bool:
        return bool(self.rates)

    @property
    def num_categories(self) -> int:
        return len(self.rates)


@dataclass(frozen=True)
class ModelDefinition:
    """A parsed model string: substitution process, rate heterogeneity and alphabet."""

    text: str
    substitution: SubstitutionModel
    rate_heterogeneity: RateHeterogeneity
    alphabet: Alphabet


def compute_transition_matrix(model: SubstitutionModel, length: float) -> np.ndarray:
    """Return the row-stochastic transition matrix of ``model`` for a (rate-scaled) branch length."""
    return model.transition_matrix(length)


def get_state_frequency(model: SubstitutionModel) -> np.ndarray:
    return model.state_frequencies()


def parse_model(text: str, sequence_type: str | None = None) -> ModelDefinition:
    """Parse a full model string, including ``+F``, ``+I``, ``+G`` and ``+R`` components."""
    name, name_params, components = _split_model(text)
    resolved_type = _resolve_sequence_type(name, sequence_type, text)
    alphabet = alphabet_for(resolved_type)

    frequencies: np.ndarray | None = None
    equal_frequencies = False
    invariant_proportion = 0.0
    rate_component: tuple[str, int | None, list[float]] | None = None

    for component in components:
        frequency_match = _FREQUENCY_PATTERN.match(component)
        invariant_match = _INVARIANT_PATTERN.match(component)
        rate_match = _RATE_PATTERN.match(component)
        if frequency_match:
            if frequency_match.group("kind"):
                equal_frequencies = True
                frequencies = np.full(alphabet.num_states, 1.0 / alphabet.num_states)
            else:
                frequencies = _parse_frequencies(frequency_match.group("params"), alphabet, text)
        elif invariant_match:
            values = _parse_numbers(invariant_match.group("params"), text)
            if len(values) != 1 or not 0 <= values[0] < 1:
                raise ConfigurationError(f"'+I' in model '{text}' requires one proportion in [0, 1)")
            invariant_proportion = values[0]
        elif rate_match:
            if rate_component is not None:
                raise ConfigurationError(f"Model '{text}' declares more than one rate-heterogeneity component")
            count = int(rate_match.group("count")) if rate_match.group("count") else None
            rate_component = (rate_match.group("kind"), count, _parse_numbers(rate_match.group("params"), text))
        else:
            raise ConfigurationError(f"Unsupported model component '+{component}' in '{text}'")

    substitution = _build_substitution_model(
        name, name_params, alphabet, frequencies, equal_frequencies, text
    )
    rate_heterogeneity = _build_rate_heterogeneity(rate_component, invariant_proportion, text)
    return ModelDefinition(
        text=text,
        substitution=substitution,
        rate_heterogeneity=rate_heterogeneity,
        alphabet=alphabet,
    )


def parse_substitution_model(text: str, sequence_type: str) -> SubstitutionModel:
    """Parse a branch-specific model, which may not carry rate heterogeneity of its own."""
    definition = parse_model(text, sequence_type)
    if definition.rate_heterogeneity.kind != "none" or definition.rate_heterogeneity.has_invariant_sites:
        raise ConfigurationError(f"Branch-specific model '{text}' must not declare rate heterogeneity")
    return definition.substitution


def gamma_category_rates(alpha: float, categories: int) -> tuple[float, ...]:
    """Mean rate of each of ``categories`` equiprobable slices of Gamma(alpha, 1/alpha)."""
    if alpha <= 0:
        raise ConfigurationError("Gamma shape parameter must be positive")
    if categories <= 0:
        raise ConfigurationError("Gamma rate heterogeneity needs at least one category")
    cut_points = stats.gamma.ppf(np.arange(1, categories) / categories, a=alpha, scale=1.0 / alpha)
    bounds = np.concatenate(([0.0], special.gammainc(alpha + 1.0, alpha * cut_points), [1.0]))
    rates = categories * np.diff(bounds)
    return tuple(float(rate) for rate in rates)


def _split_model(text: str) -> tuple[str, list[float], list[str]]:
    parts = [part.strip() for part in text.strip().split("+")]
    if not parts or not parts[0]:
        raise ConfigurationError(f"Model string '{text}' is empty or malformed")
    match = _NAME_PATTERN.match(parts[0])
    if match is None:
        raise ConfigurationError(f"Malformed model name '{parts[0]}' in '{text}'")
    if any(not part for part in parts[1:]):
        raise ConfigurationError(f"Model string '{text}' contains an empty component")
    return match.group("name").upper(), _parse_numbers(match.group("params"), text), parts[1:]


def _resolve_sequence_type(name: str, sequence_type: str | None, text: str) -> str:
    if name in _BINARY_MODELS:
        inferred = "BIN"
    elif name in _PROTEIN_MODELS:
        inferred = "AA"
    elif name in _DNA_MODELS:
        inferred = "DNA"
    else:
        raise ConfigurationError(f"Unsupported substitution model '{name}' in '{text}'")
    if sequence_type is not None and sequence_type.upper() != inferred:
        raise ConfigurationError(
            f"Model '{text}' describes {inferred} data but sequence type {sequence_type.upper()} was requested"
        )
    return inferred


def _parse_numbers(params: str | None, text: str) -> list[float]:
    if params is None or not params.strip():
        return []
    try:
        return [float(value) for value in params.split(",")]
    except ValueError as exc:
        raise ConfigurationError(f"Non-numeric parameter in model '{text}'") from exc


def _parse_frequencies(params: str | None, alphabet: Alphabet, text: str) -> np.ndarray:
    values = _parse_numbers(params, text)
    if len(values) != alphabet.num_states:
        raise ConfigurationError(
            f"'+F' in model '{text}' requires {alphabet.num_states} frequencies, got {len(values)}"
        )
    frequencies = np.asarray(values, dtype=float)
    if np.any(frequencies <= 0):
        raise ConfigurationError(f"State frequencies in model '{text}' must all be positive")
    if abs(frequencies.sum() - 1.0) > 1e-3:
        raise ConfigurationError(f"State frequencies in model '{text}' must sum to 1")
    return frequencies / frequencies.sum()


def _build_substitution_model(
    name: str,
    params: list[float],
    alphabet: Alphabet,
    frequencies: np.ndarray | None,
    equal_frequencies: bool,
    text: str,
) -> SubstitutionModel:
    num_states = alphabet.num_states
    if frequencies is None:
        if (name in _DNA_MODELS and _DNA_MODELS[name][1]) or name == "GTR2":
            raise ConfigurationError(f"Model '{name}' requires '+F{{...}}' or '+FQ' state frequencies in '{text}'")
        frequencies = np.full(num_states, 1.0 / num_states)
        equal_frequencies = True
    elif np.allclose(frequencies, 1.0 / num_states):
        equal_frequencies = True

    if name in _DNA_MODELS:
        exchangeabilities = _dna_exchangeabilities(name, params, text)
    else:
        if params:
            raise ConfigurationError(f"Model '{name}' takes no parameters in '{text}'")
        exchangeabilities = np.ones((num_states, num_states))
    np.fill_diagonal(exchangeabilities, 0.0)
    return SubstitutionModel(name, exchangeabilities, frequencies, equal_frequencies=equal_frequencies)


def _dna_exchangeabilities(name: str, params: list[float], text: str) -> np.ndarray:
    expected, _ = _DNA_MODELS[name]
    if name == "GTR" and len(params) == 5:
        params = [*params, 1.0]
    if len(params) != expected:
        raise ConfigurationError(f"Model '{name}' requires {expected} parameter(s) in '{text}', got {len(params)}")
    if any(value <= 0 for value in params):
        raise ConfigurationError(f"Model '{name}' parameters must be positive in '{text}'")

    if expected == 0:
        rates = [1.0] * 6
    elif expected == 1:
        kappa = params[0]
        rates = [1.0, kappa, 1.0, 1.0, kappa, 1.0]
    elif expected == 2:
        purine, pyrimidine = params
        rates = [1.0, purine, 1.0, 1.0, pyrimidine, 1.0]
    else:
        rates = list(params)

    matrix = np.zeros((4, 4))
    for (row, column), rate in zip(((0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3)), rates):
        matrix[row, column] = matrix[column, row] = rate
    return matrix


def _normalised_rate_matrix(exchangeabilities: np.ndarray, frequencies: np.ndarray) -> np.ndarray:
    rate_matrix = exchangeabilities * frequencies[None, :]
    np.fill_diagonal(rate_matrix, 0.0)
    np.fill_diagonal(rate_matrix, -rate_matrix.sum(axis=1))
    scale = -np.dot(frequencies, np.diag(rate_matrix))
    if scale <= 0:
        raise ConfigurationError("Substitution model has no positive substitution rate")
    return rate_matrix / scale


def _build_rate_heterogeneity(
    component: tuple[str, int | None, list[float]] | None,
    invariant_proportion: float,
    text: str,
) -> RateHeterogeneity:
    if component is None:
        if invariant_proportion > 0:
            return RateHeterogeneity(invariant_proportion=invariant_proportion, kind="invariant")
        return RateHeterogeneity()

    kind, count, values = component
    if kind == "G":
        if len(values) != 1:
            raise ConfigurationError(f"'+G' in model '{text}' requires a single shape parameter")
        categories = count if count is not None else DEFAULT_GAMMA_CATEGORIES
        rates = list(gamma_category_rates(values[0], categories))
        weights = [1.0 / categories] * categories
        label = "gamma"
    else:
        categories = count if count is not None else len(values) // 2
        if categories <= 0 or len(values) != 2 * categories:
            raise ConfigurationError(f"'+R' in model '{text}' requires weight,rate pairs for each category")
        weights = values[0::2]
        rates = values[1::2]
        if any(value <= 0 for value in weights) or any(value < 0 for value in rates):
            raise ConfigurationError(f"'+R' weights must be positive and rates non-negative in '{text}'")
        total_weight = sum(weights)
        weights = [weight / total_weight for weight in weights]
        mean_rate = sum(weight * rate for weight, rate in zip(weights, rates))
        if mean_rate <= 0:
            raise ConfigurationError(f"'+R' rates in model '{text}' must not all be zero")
        rates = [rate / mean_rate for rate in rates]
        label = "freerate"

    # the invariant class takes p_inv of the mass; rescale so the mean rate stays 1
    variable_share = 1.0 - invariant_proportion
    return RateHeterogeneity(
        invariant_proportion=invariant_proportion,
        rates=tuple(rate / variable_share for rate in rates),
        weights=tuple(weight * variable_share for weight in weights),
        kind=label,
    )


def category_table(rate_heterogeneity: RateHeterogeneity) -> Sequence[tuple[float, float]]:
    """(weight, rate) pairs, convenient for logging."""
    return tuple(zip(rate_heterogeneity.weights, rate_heterogeneity.rates))


__all__ = [
    "DEFAULT_GAMMA_CATEGORIES",
    "ModelDefinition",
    "RateHeterogeneity",
    "SubstitutionModel",
    "category_table",
    "compute_transition_matrix",
    "gamma_category_rates",
    "get_state_frequency",
    "parse_model",
    "parse_substitution_model",
]
