from typing import Any, Union

import numpy as np

from pyFluenceOpt.cst import StructureSet, validate_cst
from pyFluenceOpt.dij import Dij, validate_dij

from .problems import FluenceMapConfig, FluenceMapProblem, OptimizationResult


def fluence_optimization(
    dij: Union[Dij, dict[str, Any]],
    cst: Union[StructureSet, list, dict[str, Any]],
    config: Union[FluenceMapConfig, dict[str, Any], None] = None,
    print_progress: bool = True,
    **options,
) -> tuple[np.ndarray, OptimizationResult]:
    """
    Optimize beamlet intensities for a set of structures with dose-volume constraints.

    Parameters
    ----------
    dij : Dij
        Dij object (or anything `validate_dij` accepts).
    cst : StructureSet
        StructureSet object (or anything `validate_cst` accepts).
    config : FluenceMapConfig, optional
        Problem options. Keyword arguments override them.
    print_progress : bool, default=True
        Log per-iteration progress at INFO level.

    Returns
    -------
    tuple[np.ndarray, OptimizationResult]
        The optimized beamlet intensities and the full result record.
    """

    _dij = validate_dij(dij)
    _cst = validate_cst(cst)

    problem = FluenceMapProblem(_dij, _cst, config, **options)
    x = problem.calc_beamlets(print_progress=print_progress)

    return x, problem.result()
