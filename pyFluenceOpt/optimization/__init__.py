"""Fluence map optimization with dose-volume constraints."""

from .objectives import Term, UniformTarget, LowerDVC, UpperDVC
from .projections import project_cardinality
from .solvers import get_solver, get_available_solvers, NumericalInfeasibilityError
from .problems import FluenceMapProblem, FluenceMapConfig, OptimizationResult
from ._fluence_optimization import fluence_optimization

__all__ = [
    "fluence_optimization",
    "FluenceMapProblem",
    "FluenceMapConfig",
    "OptimizationResult",
    "Term",
    "UniformTarget",
    "LowerDVC",
    "UpperDVC",
    "project_cardinality",
    "get_solver",
    "get_available_solvers",
    "NumericalInfeasibilityError",
]
