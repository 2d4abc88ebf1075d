from __future__ import annotations

import random
from collections.abc import Iterable, MutableSequence, Sequence
from dataclasses import dataclass

from .config import ConfigurationError, FunDiSettings


@dataclass(frozen=True)
class FunDiSelection:
    """Sites whose states are exchanged between pairs of qualifying taxa."""

    taxa: frozenset[str]
    sites: tuple[int, ...]

    @classmethod
    def from_settings(
        cls,
        settings: FunDiSettings,
        sequence_length: int,
        rng: random.Random,
        leaf_names: Iterable[str] = (),
    ) -> "FunDiSelection":
        known = set(leaf_names)
        if known:
            missing = sorted(set(settings.taxa) - known)
            if missing:
                raise ConfigurationError(f"FunDi taxa not found in the tree: {', '.join(missing)}")

        if settings.sites is not None:
            out_of_range = [site for site in settings.sites if site >= sequence_length]
            if out_of_range:
                raise ConfigurationError(
                    f"FunDi site {out_of_range[0]} is outside a sequence of length {sequence_length}"
                )
            sites = tuple(settings.sites)
        else:
            proportion = settings.proportion or 0.0
            count = max(1, round(proportion * sequence_length))
            sites = tuple(sorted(rng.sample(range(sequence_length), min(count, sequence_length))))
        return cls(taxa=frozenset(settings.taxa), sites=sites)

    def qualifies(self, name: str) -> bool:
        return name in self.taxa


def permute_selected_sites(
    first: MutableSequence[int],
    second: MutableSequence[int],
    sites: Sequence[int],
) -> None:
    """Swap the states of ``first`` and ``second`` at ``sites`` in place."""
    for site in sites:
        first[site], second[site] = second[site], first[site]


__all__ = ["FunDiSelection", "permute_selected_sites"]
