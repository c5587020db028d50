"""
Python package for fluence map optimization with dose-volume constraints.

This package provides
- Dose influence matrix data structures.
- Structure sets with uniform dose targets and dose-volume constraints.
- Alternating minimization of beamlet intensities and constraint slacks.

Import packages as follows:

    from pyFluenceOpt import (
        create_dij,
        StructureSet,
        fluence_optimization,
    )

Use the docstrings or examples for a detailed overview.
"""

from importlib.metadata import version, PackageNotFoundError
import logging

from .core import PyFluenceOptBaseModel
from .dij import Dij, create_dij, validate_dij, compose_beam_dijs
from .optimization import (
    fluence_optimization,
    FluenceMapProblem,
    FluenceMapConfig,
    OptimizationResult,
    UniformTarget,
    LowerDVC,
    UpperDVC,
)
from .cst import Structure, StructureSet, validate_cst
from .quantities import Dose

try:
    __version__ = version(__name__)
except PackageNotFoundError:
    # package is not installed
    pass

# Logging is not exposed by default and needs to be configured by the user.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    "PyFluenceOptBaseModel",
    "Dij",
    "create_dij",
    "validate_dij",
    "compose_beam_dijs",
    "Structure",
    "StructureSet",
    "validate_cst",
    "UniformTarget",
    "LowerDVC",
    "UpperDVC",
    "Dose",
    "FluenceMapProblem",
    "FluenceMapConfig",
    "OptimizationResult",
    "fluence_optimization",
]
