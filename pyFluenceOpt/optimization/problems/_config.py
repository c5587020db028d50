"""Configuration of a fluence map optimization problem."""

from typing import Annotated, Any, Optional, Union

import numpy as np
from numpydantic import NDArray
from pydantic import AliasChoices, ConfigDict, Field, field_validator

from ...core import PyFluenceOptBaseModel
from ...core.xp_utils import as_float_vector
from ..solvers import get_available_solvers


class FluenceMapConfig(PyFluenceOptBaseModel):
    """
    Options of a fluence map optimization problem.

    Options may be given by field name, by their camelCase alias, or by the
    short names used in older scripts ('overlap', 'x0', 'tol', 'maxIter').

    Attributes
    ----------
    angles : list[float], optional
        Gantry angles of the beams to use. None uses all beams of the Dij.
    overlap_allowed : bool
        Whether voxels may belong to more than one structure.
    lambda_ : float
        L2 regularization coefficient (alias 'lambda').
    initial_intensities : NDArray, optional
        Initial beamlet intensities. None solves the uniform target subproblem.
    tolerance : float
        Stopping tolerance on the per-iteration slack change.
    max_iterations : int
        Maximum number of outer iterations.
    solver : str
        Short name of the solver for the beamlet subproblem.
    """

    model_config = ConfigDict(extra="forbid")

    angles: Annotated[Optional[list[float]], Field(default=None)]
    overlap_allowed: Annotated[
        bool,
        Field(
            default=False,
            validation_alias=AliasChoices("overlap_allowed", "overlapAllowed", "overlap"),
        ),
    ]
    lambda_: Annotated[
        float,
        Field(
            default=1e-8,
            ge=0.0,
            alias="lambda",
            validation_alias=AliasChoices("lambda_", "lambda"),
        ),
    ]
    initial_intensities: Annotated[
        Optional[NDArray],
        Field(
            default=None,
            validation_alias=AliasChoices("initial_intensities", "initialIntensities", "x0"),
        ),
    ]
    tolerance: Annotated[
        float, Field(default=1e-3, ge=0.0, validation_alias=AliasChoices("tolerance", "tol"))
    ]
    max_iterations: Annotated[
        int,
        Field(
            default=500,
            ge=0,
            validation_alias=AliasChoices("max_iterations", "maxIterations", "maxIter"),
        ),
    ]
    solver: Annotated[str, Field(default="newton")]

    @field_validator("initial_intensities", mode="before")
    @classmethod
    def validate_initial_intensities(cls, v: Any) -> Optional[np.ndarray]:
        """
        Coerce initial intensities to a float vector.

        Raises
        ------
            ValueError: negative or non-finite intensities.
        """
        if v is None:
            return v
        v = as_float_vector(v, name="initial_intensities")
        if not np.all(np.isfinite(v)):
            raise ValueError("Initial intensities must be finite.")
        if np.any(v < 0):
            raise ValueError("Initial intensities must be non-negative.")
        return v

    @field_validator("solver")
    @classmethod
    def validate_solver(cls, v: str) -> str:
        if v not in get_available_solvers():
            raise ValueError(f"Unknown solver '{v}'. Available: {get_available_solvers()}")
        return v


def validate_config(
    config: Union[FluenceMapConfig, dict[str, Any], None] = None, **kwargs
) -> FluenceMapConfig:
    """
    Validate and create a FluenceMapConfig, with keyword arguments overriding `config`.

    Returns
    -------
    FluenceMapConfig
        A validated configuration.
    """
    if config is None:
        return FluenceMapConfig.model_validate(kwargs)
    if isinstance(config, FluenceMapConfig):
        if not kwargs:
            return config
        config = config.model_dump(exclude_unset=True)
    return FluenceMapConfig.model_validate({**config, **kwargs})
