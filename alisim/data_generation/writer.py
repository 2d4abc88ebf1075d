from __future__ import annotations

import gzip
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

from .alphabet import Alphabet


class SimulationError(RuntimeError):
    """Raised when a dataset cannot be simulated from the given tree and model."""


class OutputWriteError(SimulationError):
    """Raised when the alignment output cannot be opened or written."""


def open_alignment_output(path: Path, *, compress: bool = False) -> TextIO:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if compress:
            return gzip.open(path, "wt", encoding="utf-8")
        return path.open("w", encoding="utf-8")
    except OSError as exc:
        raise OutputWriteError(f"Unable to open alignment output {path}: {exc}") from exc


@contextmanager
def alignment_output(path: Path, *, compress: bool = False) -> Iterator[TextIO]:
    """Open ``path`` for writing and close it on exit, reporting a failed final flush as :class:`OutputWriteError`."""
    handle = open_alignment_output(path, compress=compress)
    try:
        yield handle
    finally:
        try:
            handle.close()
        except OSError as exc:
            raise OutputWriteError(f"Unable to finish writing alignment {path}: {exc}") from exc


def open_alignment_input(path: Path) -> TextIO:
    try:
        if path.suffix == ".gz":
            return gzip.open(path, "rt", encoding="utf-8")
        return path.open("r", encoding="utf-8")
    except OSError as exc:
        raise OutputWriteError(f"Unable to read alignment {path}: {exc}") from exc


class SequenceWriter:
    """Streams leaf sequences to an open handle as PHYLIP (relaxed) or FASTA records."""

    def __init__(
        self,
        handle: TextIO,
        alphabet: Alphabet,
        *,
        output_format: str = "phylip",
        name_width: int = 0,
        target: Path | str | None = None,
    ) -> None:
        if output_format not in {"phylip", "fasta"}:
            raise ValueError(f"Unsupported alignment format '{output_format}'")
        self.handle = handle
        self.alphabet = alphabet
        self.output_format = output_format
        self.name_width = name_width
        self.target = target if target is not None else getattr(handle, "name", "<stream>")
        self.written: list[str] = []
        self._seen: set[str] = set()

    def write_header(self, num_sequences: int, sequence_length: int) -> None:
        if self.output_format == "phylip":
            self._emit(f"{num_sequences} {sequence_length}\n")

    def write(self, name: str, states: Sequence[int]) -> None:
        self.write_text(name, self.alphabet.decode(states))

    def write_text(self, name: str, sequence: str) -> None:
        if name in self._seen:
            raise SimulationError(f"Sequence '{name}' was already written to {self.target}")
        if self.output_format == "phylip":
            self._emit(f"{name.ljust(self.name_width)} {sequence}\n")
        else:
            self._emit(f">{name}\n{sequence}\n")
        self.written.append(name)
        self._seen.add(name)

    def _emit(self, text: str) -> None:
        try:
            self.handle.write(text)
        except OSError as exc:
            raise OutputWriteError(f"Unable to write alignment to {self.target}: {exc}") from exc


__all__ = [
    "OutputWriteError",
    "SequenceWriter",
    "SimulationError",
    "alignment_output",
    "open_alignment_input",
    "open_alignment_output",
]
