from __future__ import annotations

import random

from Bio import SeqIO

from .alphabet import Alphabet
from .config import AncestralSettings, ConfigurationError
from .models import SubstitutionModel, get_state_frequency
from .sampler import NOT_FOUND, sample_cumulative

_SEQIO_FORMATS = {
    ".fa": "fasta",
    ".fas": "fasta",
    ".fasta": "fasta",
    ".fna": "fasta",
    ".phy": "phylip-relaxed",
    ".phylip": "phylip-relaxed",
}


def read_ancestral_sequence(settings: AncestralSettings, alphabet: Alphabet) -> list[int]:
    """Load the root sequence from a FASTA/PHYLIP file, by record name or the first record."""
    path = settings.path
    if not path.exists():
        raise ConfigurationError(f"Ancestral sequence file not found: {path}")
    file_format = _SEQIO_FORMATS.get(path.suffix.lower(), "fasta")

    with path.open("r", encoding="utf-8") as handle:
        records = list(SeqIO.parse(handle, file_format))
    if not records:
        raise ConfigurationError(f"No sequences found in ancestral sequence file {path}")

    if settings.name is None:
        record = records[0]
    else:
        matches = [record for record in records if record.id == settings.name]
        if not matches:
            raise ConfigurationError(f"Sequence '{settings.name}' not found in {path}")
        record = matches[0]

    try:
        return alphabet.encode(str(record.seq))
    except ValueError as exc:
        raise ConfigurationError(f"Ancestral sequence '{record.id}' in {path}: {exc}") from exc


def generate_random_sequence(rng: random.Random, model: SubstitutionModel, sequence_length: int) -> list[int]:
    """Draw a root sequence site by site from the model's state frequencies."""
    num_states = model.num_states
    if model.equal_frequencies:
        return [rng.randrange(num_states) for _ in range(sequence_length)]

    frequencies = get_state_frequency(model).tolist()
    sequence: list[int] = []
    for _ in range(sequence_length):
        state = sample_cumulative(rng, frequencies)
        sequence.append(num_states - 1 if state == NOT_FOUND else state)
    return sequence


__all__ = ["generate_random_sequence", "read_ancestral_sequence"]
