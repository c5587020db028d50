"""Result record of a fluence map optimization."""

from typing import Annotated, Optional

from numpydantic import NDArray
from pydantic import Field

from ...core import PyFluenceOptBaseModel


class OptimizationResult(PyFluenceOptBaseModel):
    """
    Public state of a solved fluence map optimization problem.

    Attributes
    ----------
    structure_names : list[str]
        Structures in structure set order.
    angles : list[float], optional
        Gantry angles of the beams used.
    lambda_ : float
        L2 regularization coefficient.
    overlap_allowed : bool
        Whether structures were allowed to share voxels.
    x0 : NDArray
        Initial beamlet intensities.
    x : NDArray
        Final beamlet intensities.
    obj : NDArray
        Objective value per iteration (length n_iter + 1).
    w_diff : NDArray
        Slack change per iteration (length n_iter).
    n_iter : int
        Number of iterations performed.
    time : float
        Computation time in seconds.
    tol : float
        Stopping tolerance.
    max_iter : int
        Maximum number of iterations.
    converged : bool
        Whether the stopping tolerance was met.
    """

    structure_names: list[str]
    angles: Optional[list[float]] = None
    lambda_: Annotated[float, Field(alias="lambda")]
    overlap_allowed: bool
    x0: NDArray
    x: NDArray
    obj: NDArray
    w_diff: NDArray
    n_iter: int
    time: float
    tol: float
    max_iter: int
    converged: bool
