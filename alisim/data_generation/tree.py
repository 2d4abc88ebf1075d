from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from io import StringIO

from Bio import Phylo
from Bio.Phylo.BaseTree import Clade, Tree as BaseTree
from Bio.Phylo.NewickIO import NewickError

from .config import ConfigurationError

ROOT_NAME = "__root__"

_MODEL_KEY = re.compile(r"model\s*=", re.IGNORECASE)


@dataclass(frozen=True)
class Edge:
    """Directed view of an undirected branch: the neighbor it leads to and its attributes."""

    node: int
    length: float | None
    model: str | None = None


@dataclass
class TreeNode:
    index: int
    name: str
    neighbors: list[Edge] = field(default_factory=list)

    @property
    def degree(self) -> int:
        return len(self.neighbors)


class SimulationTree:
    """Arena of nodes addressed by index; the simulation never mutates it."""

    def __init__(self, nodes: list[TreeNode], root: int = 0) -> None:
        if not nodes:
            raise ConfigurationError("Tree must contain at least one node")
        self.nodes = nodes
        self.root = root

    @classmethod
    def from_newick(cls, newick: str) -> "SimulationTree":
        try:
            tree = Phylo.read(StringIO(newick.strip()), "newick")
        except (NewickError, ValueError) as exc:
            raise ConfigurationError(f"Unable to parse Newick tree: {exc}") from exc
        return cls.from_phylo(tree)

    @classmethod
    def from_phylo(cls, tree: BaseTree) -> "SimulationTree":
        nodes: list[TreeNode] = []
        cls._add_clade(tree.root, None, nodes)
        simulation_tree = cls(nodes, root=0)
        # names are written as the first token of a PHYLIP/FASTA record
        for name in simulation_tree.leaf_names():
            if any(character.isspace() for character in name):
                raise ConfigurationError(f"Taxon name '{name}' contains whitespace, which alignment files cannot hold")
        return simulation_tree

    @staticmethod
    def _add_clade(clade: Clade, parent: int | None, nodes: list[TreeNode]) -> None:
        # iterative pre-order so deep caterpillar trees do not hit the recursion limit here
        stack: list[tuple[Clade, int | None]] = [(clade, parent)]
        while stack:
            current, parent_index = stack.pop()
            index = len(nodes)
            name = current.name or (ROOT_NAME if parent_index is None else f"node_{index}")
            nodes.append(TreeNode(index=index, name=name))
            if parent_index is not None:
                length = current.branch_length
                model = _branch_model(getattr(current, "comment", None))
                nodes[parent_index].neighbors.append(Edge(node=index, length=length, model=model))
                nodes[index].neighbors.append(Edge(node=parent_index, length=length, model=model))
            for child in reversed(current.clades):
                stack.append((child, index))

    def neighbors(self, index: int, exclude: int | None = None) -> Iterator[Edge]:
        for edge in self.nodes[index].neighbors:
            if edge.node != exclude:
                yield edge

    def is_root(self, index: int) -> bool:
        return index == self.root

    def is_leaf(self, index: int) -> bool:
        return index != self.root and self.nodes[index].degree == 1

    def child_count(self, index: int) -> int:
        degree = self.nodes[index].degree
        return degree if self.is_root(index) else degree - 1

    def name(self, index: int) -> str:
        return self.nodes[index].name

    def leaves(self) -> list[int]:
        """Non-root leaves in pre-order from the root."""
        order: list[int] = []
        stack: list[tuple[int, int | None]] = [(self.root, None)]
        while stack:
            index, dad = stack.pop()
            if self.is_leaf(index):
                order.append(index)
            children = [edge.node for edge in self.neighbors(index, exclude=dad)]
            stack.extend((child, index) for child in reversed(children))
        return order

    def leaf_names(self) -> list[str]:
        return [self.name(index) for index in self.leaves()]

    def __len__(self) -> int:
        return len(self.nodes)


def _branch_model(comment: str | None) -> str | None:
    """Extract ``model=...`` from an IQ-TREE style branch comment such as ``&model=GTR{1,2,1,1,2}+FQ``."""
    if not comment:
        return None
    match = _MODEL_KEY.search(comment)
    if match is None:
        return None
    depth = 0
    characters: list[str] = []
    for character in comment[match.end():]:
        if character == "{":
            depth += 1
        elif character == "}":
            depth -= 1
        elif character in ",]" and depth == 0:
            break
        characters.append(character)
    return "".join(characters).strip() or None


__all__ = ["ROOT_NAME", "Edge", "SimulationTree", "TreeNode"]
