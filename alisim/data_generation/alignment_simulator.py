from __future__ import annotations

import logging
import multiprocessing as mp
import random
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from alisim.utils import format_categories, format_frequencies, format_tuple

from .ancestral import generate_random_sequence, read_ancestral_sequence
from .config import ConfigurationError, GenerationConfig
from .fundi import FunDiSelection
from .models import ModelDefinition, category_table, parse_model
from .postprocess import TrimResult, remove_constant_sites
from .rates import select_regime
from .tree import SimulationTree
from .walker import SimulationResult, TreeWalker
from .writer import SequenceWriter, alignment_output

logger = logging.getLogger(__name__)


@dataclass
class DatasetResult:
    """Container for one exported alignment and how it was produced."""

    index: int
    seed: int
    output_path: Path
    simulation: SimulationResult
    trim: TrimResult | None = None


class AlignmentSimulator:
    """Generate one or more simulated alignments from a fixed tree and model."""

    def __init__(self, config: GenerationConfig) -> None:
        self.config = config
        self._rng = random.Random(config.seed)
        self.parallel_cores = max(1, config.parallel_cores)

        sequence = config.sequence
        self.model: ModelDefinition = parse_model(sequence.model, sequence.sequence_type)
        self.tree = SimulationTree.from_newick(config.tree.read_newick())
        if not self.tree.leaves():
            raise ConfigurationError("Tree must contain at least one leaf besides the root")

        self.ancestral_sequence: list[int] | None = None
        if sequence.ancestral is not None:
            self.ancestral_sequence = read_ancestral_sequence(sequence.ancestral, self.model.alphabet)
            if sequence.length and sequence.length != len(self.ancestral_sequence):
                raise ConfigurationError(
                    f"'sequence.length' is {sequence.length} but the ancestral sequence has "
                    f"{len(self.ancestral_sequence)} sites"
                )
            self.requested_length = len(self.ancestral_sequence)
        else:
            self.requested_length = sequence.length

        self.length_ratio = self._resolve_length_ratio()
        self.sequence_length = round(self.requested_length * self.length_ratio)
        # trimming renumbers columns, so FunDi site indices would no longer match the output
        if config.fundi is not None and self.sequence_length != self.requested_length:
            raise ConfigurationError(
                f"'fundi' cannot be combined with a length ratio of {self.length_ratio:g}; "
                "set 'sequence.length_ratio' to 1"
            )

    @classmethod
    def from_config_file(cls, config_path: Path | str) -> "AlignmentSimulator":
        from .config import load_generation_config

        config = load_generation_config(config_path)
        return cls(config)

    def generate_dataset(self, index: int, seed: int) -> DatasetResult:
        """Simulate dataset ``index`` with its own RNG and write it to its output file."""
        rng = random.Random(seed)
        dataset = self.config.dataset

        if self.ancestral_sequence is not None:
            root_sequence = list(self.ancestral_sequence)
        else:
            root_sequence = generate_random_sequence(rng, self.model.substitution, self.sequence_length)

        fundi = None
        if self.config.fundi is not None:
            fundi = FunDiSelection.from_settings(
                self.config.fundi, self.sequence_length, rng, leaf_names=self.tree.leaf_names()
            )

        regime = select_regime(self.model.rate_heterogeneity)
        walker = TreeWalker(self.tree)
        output_path = dataset.output_path(index)
        with alignment_output(output_path, compress=dataset.compress) as handle:
            writer = SequenceWriter(
                handle,
                self.model.alphabet,
                output_format=dataset.output_format,
                target=output_path,
            )
            simulation = walker.simulate(
                root_sequence,
                self.sequence_length,
                self.model,
                regime,
                writer,
                rng=rng,
                fundi=fundi,
            )
        logger.info("An alignment has just been exported to %s", output_path)

        trim = None
        if self.sequence_length > self.requested_length:
            trim = remove_constant_sites(
                output_path,
                self.requested_length,
                self.model.alphabet,
                output_format=dataset.output_format,
                compress=dataset.compress,
            )
        return DatasetResult(index=index, seed=seed, output_path=output_path, simulation=simulation, trim=trim)

    def generate_datasets(self) -> list[DatasetResult]:
        count = self.config.dataset.count
        seeds = [self._rng.randint(0, 2**32 - 1) for _ in range(count)]
        self.log_parameters()
        self.config.dataset.ensure_output_directory()

        results: list[DatasetResult] = []
        if self.parallel_cores <= 1 or count == 1:
            for index, seed in enumerate(seeds):
                results.append(self.generate_dataset(index, seed))
        else:
            payloads: Iterable[tuple[GenerationConfig, int, int]] = (
                (self.config, index, seed) for index, seed in enumerate(seeds)
            )
            ctx = mp.get_context("spawn")
            with ctx.Pool(processes=min(self.parallel_cores, count)) as pool:
                for result in pool.imap(_generate_dataset_worker, payloads):
                    results.append(result)
        return results

    def write_alignments(self) -> list[Path]:
        return [result.output_path for result in self.generate_datasets()]

    def log_parameters(self) -> None:
        tree = self.tree
        logger.info("Tree: %d nodes, %d leaves", len(tree), len(tree.leaves()))
        logger.info("Length of output sequences: %d", self.requested_length)
        if self.sequence_length != self.requested_length:
            logger.info("Simulating %d sites before removing surplus constant sites", self.sequence_length)
        logger.info("Model: %s (%s regime)", self.model.text, select_regime(self.model.rate_heterogeneity).name)
        logger.info(
            "State frequencies: %s",
            format_frequencies(self.model.substitution.frequencies, self.model.alphabet.symbols),
        )
        rate_heterogeneity = self.model.rate_heterogeneity
        if rate_heterogeneity.has_invariant_sites:
            logger.info("Proportion of invariant sites: %s", format_tuple(rate_heterogeneity.invariant_proportion, digits=4))
        if rate_heterogeneity.has_categories:
            weights, rates = zip(*category_table(rate_heterogeneity))
            logger.info("Rate categories (weight:rate): %s", format_categories(weights, rates))
        logger.info("Number of output datasets: %d", self.config.dataset.count)
        if self.ancestral_sequence is not None:
            logger.info("Ancestral sequence: %s", self.config.sequence.ancestral.path)

    def _resolve_length_ratio(self) -> float:
        ratio = self.config.sequence.length_ratio
        invariant_proportion = self.model.rate_heterogeneity.invariant_proportion
        if ratio == "auto":
            return 1.0 / (1.0 - invariant_proportion) if invariant_proportion > 0 else 1.0
        return float(ratio)


__all__ = ["AlignmentSimulator", "DatasetResult"]


def _generate_dataset_worker(payload: tuple[GenerationConfig, int, int]) -> DatasetResult:
    config, index, seed = payload
    simulator = AlignmentSimulator(config)
    return simulator.generate_dataset(index, seed)
