"""Simulate multiple sequence alignments along a fixed phylogenetic tree."""

from .data_generation.alignment_simulator import AlignmentSimulator, DatasetResult
from .data_generation.config import ConfigurationError, GenerationConfig, load_generation_config
from .data_generation.writer import OutputWriteError, SimulationError

__all__ = [
    "AlignmentSimulator",
    "ConfigurationError",
    "DatasetResult",
    "GenerationConfig",
    "OutputWriteError",
    "SimulationError",
    "load_generation_config",
]
