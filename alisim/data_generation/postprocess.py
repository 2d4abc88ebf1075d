"""Remove the surplus constant columns produced by a length-inflated run."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from Bio import AlignIO

from .alphabet import Alphabet
from .writer import OutputWriteError, SequenceWriter, SimulationError, alignment_output, open_alignment_input

logger = logging.getLogger(__name__)

ALIGNIO_FORMATS = {"phylip": "phylip-relaxed", "fasta": "fasta"}


@dataclass(frozen=True)
class TrimResult:
    removed_constant: int
    truncated: int
    final_length: int


def constant_columns(sequences: Sequence[str]) -> list[int]:
    """Indices of columns where every sequence carries the same character, left to right."""
    if not sequences:
        return []
    length = len(sequences[0])
    if any(len(sequence) != length for sequence in sequences):
        raise SimulationError("Cannot trim an alignment whose sequences differ in length")
    first = sequences[0]
    return [column for column in range(length) if all(sequence[column] == first[column] for sequence in sequences)]


def select_columns_to_keep(sequences: Sequence[str], requested_length: int) -> tuple[list[int], int, int]:
    """Pick the columns that survive trimming to ``requested_length``.

    Constant columns are dropped left to right until the excess is gone. When
    there are not enough of them, the trailing remaining columns are cut as well.
    Returns ``(kept_columns, removed_constant, truncated)``.
    """
    length = len(sequences[0]) if sequences else 0
    excess = length - requested_length
    if excess <= 0:
        return list(range(length)), 0, 0

    dropped = set(constant_columns(sequences)[:excess])
    kept = [column for column in range(length) if column not in dropped]
    truncated = len(kept) - requested_length
    if truncated > 0:
        kept = kept[:requested_length]
    return kept, len(dropped), max(truncated, 0)


def remove_constant_sites(
    path: Path,
    requested_length: int,
    alphabet: Alphabet,
    *,
    output_format: str = "phylip",
    compress: bool = False,
) -> TrimResult:
    """Rewrite the alignment at ``path`` so it is exactly ``requested_length`` columns long."""
    with open_alignment_input(path) as handle:
        try:
            alignment = AlignIO.read(handle, ALIGNIO_FORMATS[output_format])
        except ValueError as exc:
            raise SimulationError(f"Unable to read back alignment {path} for trimming: {exc}") from exc

    names = [record.id for record in alignment]
    sequences = [str(record.seq) for record in alignment]
    kept, removed_constant, truncated = select_columns_to_keep(sequences, requested_length)
    if truncated:
        logger.warning(
            "Only %d constant sites available in %s; truncated %d trailing sites to reach length %d",
            removed_constant,
            path,
            truncated,
            requested_length,
        )

    temporary = path.with_name(f".{path.name}.tmp")
    with alignment_output(temporary, compress=compress) as handle:
        writer = SequenceWriter(
            handle,
            alphabet,
            output_format=output_format,
            name_width=max((len(name) for name in names), default=0),
            target=path,
        )
        writer.write_header(len(names), len(kept))
        for name, sequence in zip(names, sequences):
            writer.write_text(name, "".join(sequence[column] for column in kept))
    try:
        os.replace(temporary, path)
    except OSError as exc:
        raise OutputWriteError(f"Unable to replace {path} with its trimmed alignment: {exc}") from exc

    logger.info("Removed %d constant sites from %s", removed_constant, path)
    return TrimResult(removed_constant=removed_constant, truncated=truncated, final_length=len(kept))


__all__ = ["TrimResult", "constant_columns", "remove_constant_sites", "select_columns_to_keep"]
