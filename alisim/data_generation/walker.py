"""Depth-first simulation of every node's sequence from the root down.

Each edge is simulated from its parent's already finished sequence, so the
only ordering requirement is parent before child. Leaves are written as soon
as they are final and every sequence is dropped once all its children have
been drawn from it, which keeps roughly one sequence per node on the current
path (plus the siblings still waiting) in memory.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from .config import ConfigurationError
from .context import SimulationContext
from .fundi import FunDiSelection, permute_selected_sites
from .models import ModelDefinition, SubstitutionModel, parse_substitution_model
from .rates import RateRegime
from .tree import Edge, SimulationTree
from .writer import SequenceWriter, SimulationError

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    """Outcome of one traversal: written leaves, their order, and optionally every node's sequence."""

    leaf_names: list[str]
    sequence_length: int
    released: list[int] = field(default_factory=list)
    sequences: dict[str, list[int]] = field(default_factory=dict)


class TreeWalker:
    """Simulate sequences down a :class:`SimulationTree` and stream its leaves to a writer."""

    def __init__(self, tree: SimulationTree, *, keep_sequences: bool = False) -> None:
        self.tree = tree
        self.keep_sequences = keep_sequences
        self._branch_models: dict[str, SubstitutionModel] = {}

    def simulate(
        self,
        root_sequence: Sequence[int],
        sequence_length: int,
        model: ModelDefinition,
        regime: RateRegime,
        writer: SequenceWriter,
        *,
        rng: random.Random,
        fundi: FunDiSelection | None = None,
    ) -> SimulationResult:
        """Run one full pass from the root and write every non-root leaf to ``writer``.

        Parameters
        ----------
        root_sequence:
            Encoded ancestral sequence; copied, never modified.
        sequence_length:
            Number of sites to simulate (the inflated length when trimming follows).
        model:
            Default model; branches carrying ``model=...`` override its substitution part.
        regime:
            Rate regime selected once for the run.
        writer:
            Destination of the leaf sequences, already opened by the caller.
        rng:
            Source of every random draw of this dataset.
        fundi:
            Optional FunDi selection applied to pairs of qualifying leaves.
        """
        self._check_root_sequence(root_sequence, sequence_length, model)
        tree = self.tree
        context = SimulationContext.for_tree(tree, rng, sequence_length)
        context.sequences[tree.root] = list(root_sequence)
        regime.initialize(context)

        leaves = tree.leaves()
        writer.name_width = max(writer.name_width, max((len(tree.name(leaf)) for leaf in leaves), default=0))
        writer.write_header(len(leaves), sequence_length)

        for node, edge in self._edges_preorder():
            self._simulate_edge(context, node, edge, model, regime, writer, fundi)

        if context.fundi_pending is not None:
            leftover = context.fundi_pending
            logger.warning(
                "FunDi taxon '%s' has no partner left to exchange sites with; written unchanged",
                tree.name(leftover),
            )
            context.fundi_pending = None
            self._write_leaf(context, leftover, writer)

        if len(context.written) != len(leaves):
            raise SimulationError(f"Expected {len(leaves)} leaf sequences but wrote {len(context.written)}")

        result = SimulationResult(
            leaf_names=[tree.name(index) for index in context.written],
            sequence_length=sequence_length,
            released=list(context.released),
        )
        if self.keep_sequences:
            result.sequences = {
                tree.name(index): sequence
                for index, sequence in enumerate(context.sequences)
                if sequence is not None
            }
        return result

    def _edges_preorder(self) -> Iterator[tuple[int, Edge]]:
        """Yield ``(parent, edge)`` in the order a recursive ``visit(node, dad)`` would process them."""
        tree = self.tree
        stack: list[tuple[int, Iterator[Edge]]] = [(tree.root, tree.neighbors(tree.root, exclude=None))]
        while stack:
            node, edges = stack[-1]
            edge = next(edges, None)
            if edge is None:
                stack.pop()
                continue
            yield node, edge
            stack.append((edge.node, tree.neighbors(edge.node, exclude=node)))

    def _simulate_edge(
        self,
        context: SimulationContext,
        node: int,
        edge: Edge,
        model: ModelDefinition,
        regime: RateRegime,
        writer: SequenceWriter,
        fundi: FunDiSelection | None,
    ) -> None:
        tree = self.tree
        child = edge.node
        length = edge.length
        if length is None or not math.isfinite(length) or length < 0:
            raise SimulationError(f"Branch leading to '{tree.name(child)}' has an invalid length: {length!r}")

        parent_sequence = context.sequences[node]
        if parent_sequence is None:
            raise SimulationError(f"Sequence of '{tree.name(node)}' was released before all its children were simulated")

        substitution = self._resolve_model(edge, model)
        context.sequences[child] = regime.evolve(context, parent_sequence, substitution, length)
        context.pending[node] -= 1
        logger.debug("Simulated %s -> %s (length %g)", tree.name(node), tree.name(child), length)

        if tree.is_leaf(child):
            self._finish_leaf(context, child, writer, fundi)
        if context.pending[node] == 0:
            self._release(context, node)

    def _resolve_model(self, edge: Edge, model: ModelDefinition) -> SubstitutionModel:
        if not edge.model:
            return model.substitution
        cached = self._branch_models.get(edge.model)
        if cached is None:
            try:
                cached = parse_substitution_model(edge.model, model.alphabet.sequence_type)
            except ConfigurationError as exc:
                raise ConfigurationError(f"Invalid branch-specific model '{edge.model}': {exc}") from exc
            self._branch_models[edge.model] = cached
        return cached

    def _finish_leaf(
        self,
        context: SimulationContext,
        leaf: int,
        writer: SequenceWriter,
        fundi: FunDiSelection | None,
    ) -> None:
        if fundi is None or not fundi.qualifies(self.tree.name(leaf)):
            self._write_leaf(context, leaf, writer)
            return

        partner = context.fundi_pending
        if partner is None:
            context.fundi_pending = leaf
            return
        permute_selected_sites(context.sequences[partner], context.sequences[leaf], fundi.sites)
        context.fundi_pending = None
        self._write_leaf(context, partner, writer)
        self._write_leaf(context, leaf, writer)

    def _write_leaf(self, context: SimulationContext, leaf: int, writer: SequenceWriter) -> None:
        writer.write(self.tree.name(leaf), context.sequences[leaf])
        context.written.append(leaf)
        self._release(context, leaf)

    def _release(self, context: SimulationContext, index: int) -> None:
        context.released.append(index)
        if not self.keep_sequences:
            context.sequences[index] = None

    def _check_root_sequence(self, root_sequence: Sequence[int], sequence_length: int, model: ModelDefinition) -> None:
        if len(root_sequence) != sequence_length:
            raise ConfigurationError(
                f"Root sequence has {len(root_sequence)} sites but {sequence_length} were requested"
            )
        num_states = model.alphabet.num_states
        if any(state < 0 or state >= num_states for state in root_sequence):
            raise ConfigurationError(f"Root sequence contains states outside 0..{num_states - 1}")


__all__ = ["SimulationResult", "TreeWalker"]
