"""Rate-regime strategies: how each child state is drawn from its parent state.

Exactly one regime is active per run. The only-invariant-sites regime fixes
its invariant sites once per dataset because that choice does not depend on
the branch; the discrete-category regimes redraw a category for every site on
every edge, so the rate a site evolves at is not fixed across the tree.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from .config import ConfigurationError
from .context import SimulationContext
from .models import RateHeterogeneity, SubstitutionModel, compute_transition_matrix
from .sampler import NOT_FOUND, AccumulatedMatrix, sample_cumulative, sample_state

logger = logging.getLogger(__name__)


class RateRegime(ABC):
    """Strategy selected once per run from the model's rate heterogeneity."""

    name = "base"

    def __init__(self, rate_heterogeneity: RateHeterogeneity) -> None:
        self.rate_heterogeneity = rate_heterogeneity

    def initialize(self, context: SimulationContext) -> None:
        """Reset per-dataset scratch buffers before the traversal starts."""
        context.transition_rows = []
        context.accumulated = None
        context.category_rows = {}

    @abstractmethod
    def begin_edge(self, context: SimulationContext, model: SubstitutionModel, length: float) -> None:
        """Prepare whatever the edge needs before its site loop."""

    @abstractmethod
    def resolve_child_state(self, context: SimulationContext, parent_state: int, site: int) -> int:
        """Draw the child's state at ``site`` given the parent's state."""

    def evolve(
        self,
        context: SimulationContext,
        parent_sequence: Sequence[int],
        model: SubstitutionModel,
        length: float,
    ) -> list[int]:
        self.begin_edge(context, model, length)
        resolve = self.resolve_child_state
        return [resolve(context, parent_state, site) for site, parent_state in enumerate(parent_sequence)]


class NoHeterogeneity(RateRegime):
    name = "none"

    def begin_edge(self, context: SimulationContext, model: SubstitutionModel, length: float) -> None:
        context.transition_rows = compute_transition_matrix(model, length).tolist()

    def resolve_child_state(self, context: SimulationContext, parent_state: int, site: int) -> int:
        return sample_state(context.rng, context.transition_rows, parent_state)


class OnlyInvariantSites(RateRegime):
    name = "invariant"

    def initialize(self, context: SimulationContext) -> None:
        super().initialize(context)
        rng = context.rng
        proportion = self.rate_heterogeneity.invariant_proportion
        # 0 marks an invariant site, 1 a variable one
        context.site_rates = [0 if rng.random() <= proportion else 1 for _ in range(context.sequence_length)]
        logger.debug(
            "Flagged %d of %d sites as invariant",
            context.site_rates.count(0),
            context.sequence_length,
        )

    def begin_edge(self, context: SimulationContext, model: SubstitutionModel, length: float) -> None:
        context.accumulated = AccumulatedMatrix.from_matrix(compute_transition_matrix(model, length))

    def resolve_child_state(self, context: SimulationContext, parent_state: int, site: int) -> int:
        if context.site_rates[site] == 0:
            return parent_state
        return context.accumulated.sample(context.rng, parent_state)


class DiscreteCategories(RateRegime):
    """Gamma or FreeRate categories without an invariant class."""

    name = "categories"

    def __init__(self, rate_heterogeneity: RateHeterogeneity) -> None:
        super().__init__(rate_heterogeneity)
        self._weights = list(rate_heterogeneity.weights)
        self._rates = list(rate_heterogeneity.rates)

    def begin_edge(self, context: SimulationContext, model: SubstitutionModel, length: float) -> None:
        context.edge_model = model
        context.edge_length = length
        # matrices depend on (model, length * rate); reusable only within this edge
        context.category_rows = {}

    def resolve_child_state(self, context: SimulationContext, parent_state: int, site: int) -> int:
        category = sample_cumulative(context.rng, self._weights)
        if category == NOT_FOUND:
            return self._on_missing_category(context, parent_state)
        return sample_state(context.rng, self._category_rows(context, category), parent_state)

    def _on_missing_category(self, context: SimulationContext, parent_state: int) -> int:
        # weights sum to 1 here, so a miss is floating-point shortfall: use the last category
        last = len(self._weights) - 1
        return sample_state(context.rng, self._category_rows(context, last), parent_state)

    def _category_rows(self, context: SimulationContext, category: int) -> list[list[float]]:
        rows = context.category_rows.get(category)
        if rows is None:
            scaled_length = context.edge_length * self._rates[category]
            rows = compute_transition_matrix(context.edge_model, scaled_length).tolist()
            context.category_rows[category] = rows
        return rows


class DiscreteCategoriesWithInvariant(DiscreteCategories):
    """Category weights sum to ``1 - p_inv``; a draw past the last category is the invariant class."""

    name = "categories+invariant"

    def _on_missing_category(self, context: SimulationContext, parent_state: int) -> int:
        return parent_state


def select_regime(rate_heterogeneity: RateHeterogeneity) -> RateRegime:
    if rate_heterogeneity.kind not in {"none", "invariant", "gamma", "freerate"}:
        raise ConfigurationError(f"Unsupported rate heterogeneity '{rate_heterogeneity.kind}'")
    if rate_heterogeneity.has_categories:
        if rate_heterogeneity.has_invariant_sites:
            return DiscreteCategoriesWithInvariant(rate_heterogeneity)
        return DiscreteCategories(rate_heterogeneity)
    if rate_heterogeneity.has_invariant_sites:
        return OnlyInvariantSites(rate_heterogeneity)
    return NoHeterogeneity(rate_heterogeneity)


__all__ = [
    "DiscreteCategories",
    "DiscreteCategoriesWithInvariant",
    "NoHeterogeneity",
    "OnlyInvariantSites",
    "RateRegime",
    "select_regime",
]
