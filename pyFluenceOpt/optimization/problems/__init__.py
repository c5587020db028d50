"""Fluence map optimization problems."""

from ._config import FluenceMapConfig, validate_config
from ._result import OptimizationResult
from ._assembly import (
    AssembledTerm,
    AssembledStructure,
    assemble_structures,
    stack_matrix,
    stack_dose_vector,
    normal_matrix,
)
from ._fluence_map import FluenceMapProblem

__all__ = [
    "FluenceMapProblem",
    "FluenceMapConfig",
    "validate_config",
    "OptimizationResult",
    "AssembledTerm",
    "AssembledStructure",
    "assemble_structures",
    "stack_matrix",
    "stack_dose_vector",
    "normal_matrix",
]
