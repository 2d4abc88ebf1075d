"""Read simulated alignments back and report their size and constant columns."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path

from Bio import AlignIO

from .config import load_generation_config
from .postprocess import ALIGNIO_FORMATS, constant_columns
from .writer import open_alignment_input


@dataclass(frozen=True)
class AlignmentSummary:
    path: Path
    num_sequences: int
    length: int
    constant_columns: int

    def describe(self) -> str:
        return (
            f"{self.path}: {self.num_sequences} sequences x {self.length} sites, "
            f"{self.constant_columns} constant"
        )


def detect_format(path: Path) -> str:
    suffixes = [suffix.lower() for suffix in path.suffixes if suffix.lower() != ".gz"]
    if suffixes and suffixes[-1] in {".fa", ".fas", ".fasta"}:
        return "fasta"
    return "phylip"


def summarize_alignment(path: Path | str, *, output_format: str | None = None) -> AlignmentSummary:
    """Parse ``path`` (optionally gzipped) and count its rows, columns and constant columns."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Alignment file not found: {path}")
    file_format = output_format or detect_format(path)
    with open_alignment_input(path) as handle:
        alignment = AlignIO.read(handle, ALIGNIO_FORMATS[file_format])
    sequences = [str(record.seq) for record in alignment]
    return AlignmentSummary(
        path=path,
        num_sequences=len(sequences),
        length=len(sequences[0]) if sequences else 0,
        constant_columns=len(constant_columns(sequences)),
    )


def verify_from_config(config_path: Path | str) -> list[AlignmentSummary]:
    """Summarize every alignment that the configuration at ``config_path`` produces."""
    config = load_generation_config(config_path)
    dataset = config.dataset
    return [
        summarize_alignment(dataset.output_path(index), output_format=dataset.output_format)
        for index in range(dataset.count)
    ]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--alignment",
        "-a",
        type=Path,
        help="Path to a PHYLIP or FASTA alignment (may be gzipped)",
    )
    group.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Summarize every dataset written for this configuration file",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    if args.alignment is not None:
        summaries = [summarize_alignment(args.alignment)]
    else:
        summaries = verify_from_config(args.config)
    for summary in summaries:
        print(summary.describe())


if __name__ == "__main__":
    main()
