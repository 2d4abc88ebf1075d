from __future__ import annotations

from .alignment_simulator import AlignmentSimulator, DatasetResult
from .models import ModelDefinition, parse_model
from .tree import SimulationTree
from .walker import SimulationResult, TreeWalker


def verify_from_config(*args, **kwargs):
    from .verify import verify_from_config as _verify_from_config

    return _verify_from_config(*args, **kwargs)


__all__ = [
    "AlignmentSimulator",
    "DatasetResult",
    "ModelDefinition",
    "SimulationResult",
    "SimulationTree",
    "TreeWalker",
    "parse_model",
    "verify_from_config",
]
