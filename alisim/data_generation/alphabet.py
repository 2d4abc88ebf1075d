from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

NUCLEOTIDE_ORDER: tuple[str, ...] = ("A", "C", "G", "T")
BINARY_ORDER: tuple[str, ...] = ("0", "1")
AMINO_ACID_ORDER: tuple[str, ...] = tuple("ARNDCQEGHILKMFPSTWYV")


@dataclass(frozen=True)
class Alphabet:
    """Maps characters of one sequence type to integer state codes and back."""

    sequence_type: str
    symbols: tuple[str, ...]
    aliases: Mapping[str, str] = field(default_factory=dict)

    @property
    def num_states(self) -> int:
        return len(self.symbols)

    def encode(self, sequence: Iterable[str]) -> list[int]:
        mapping = self._symbol_to_state()
        states: list[int] = []
        for position, symbol in enumerate(sequence):
            key = symbol.upper()
            key = self.aliases.get(key, key)
            try:
                states.append(mapping[key])
            except KeyError as exc:
                raise ValueError(
                    f"Unsupported {self.sequence_type} character {symbol!r} at position {position}"
                ) from exc
        return states

    def decode(self, states: Sequence[int]) -> str:
        symbols = self.symbols
        return "".join(symbols[state] for state in states)

    def _symbol_to_state(self) -> dict[str, int]:
        return {symbol: index for index, symbol in enumerate(self.symbols)}


DNA = Alphabet("DNA", NUCLEOTIDE_ORDER, aliases={"U": "T"})
BINARY = Alphabet("BIN", BINARY_ORDER)
PROTEIN = Alphabet("AA", AMINO_ACID_ORDER)

ALPHABETS: Mapping[str, Alphabet] = {alphabet.sequence_type: alphabet for alphabet in (DNA, BINARY, PROTEIN)}


def alphabet_for(sequence_type: str) -> Alphabet:
    try:
        return ALPHABETS[sequence_type.upper()]
    except KeyError as exc:
        raise ValueError(f"Unsupported sequence type '{sequence_type}'") from exc


__all__ = [
    "ALPHABETS",
    "AMINO_ACID_ORDER",
    "BINARY",
    "BINARY_ORDER",
    "DNA",
    "NUCLEOTIDE_ORDER",
    "PROTEIN",
    "Alphabet",
    "alphabet_for",
]
