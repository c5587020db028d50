"""Base class for objective / constraint terms attached to a structure."""

from abc import ABC
from typing import Annotated, Any, ClassVar, Optional
import math

import numpy as np
import pint
from pydantic import Field, field_validator

from ...core import PyFluenceOptBaseModel
from ...quantities import Dose, ureg


class Term(PyFluenceOptBaseModel, ABC):
    """
    A weighted least-squares term on the dose of a structure.

    Attributes
    ----------
    dose : float
        Dose level in Gy. Quantities and strings with a dose unit (e.g. "200 cGy")
        are converted to Gy.
    weight : float
        Coefficient of the term in the objective function.
    """

    name: ClassVar[str]
    is_dvc: ClassVar[bool] = False
    sign: ClassVar[int] = 1

    dose: Annotated[float, Field(ge=0.0)]
    weight: Annotated[float, Field(default=1.0, ge=0.0)]

    @field_validator("dose", mode="before")
    @classmethod
    def validate_dose_unit(cls, v: Any) -> Any:
        """Convert dose levels given with a unit to Gy."""
        if isinstance(v, str):
            try:
                v = ureg.Quantity(v)
            except pint.PintError as e:
                raise ValueError(f"Invalid dose level '{v}'.") from e

        if isinstance(v, pint.Quantity):
            if v.dimensionless:
                return v.magnitude
            try:
                return v.m_as(Dose.unit)
            except pint.DimensionalityError as e:
                raise ValueError(f"Dose level must have a dose unit, got '{v.units}'.") from e

        return v

    def target(self, num_voxels: int) -> np.ndarray:
        """Per-voxel target dose vector."""
        return np.full(num_voxels, self.dose, dtype=np.float64)

    def step_size(self, num_voxels: int) -> float:
        """Step size of the slack update, `num_voxels / weight`."""
        if self.weight == 0.0:
            return math.inf
        return num_voxels / self.weight

    def residual(self, dose_values: np.ndarray, slack: Optional[np.ndarray] = None) -> np.ndarray:
        """Deviation of the structure dose from the target."""
        return dose_values - self.dose

    def compute_objective(
        self, dose_values: np.ndarray, slack: Optional[np.ndarray] = None
    ) -> float:
        """
        Term objective `weight / (2 n) * ||r||^2`.

        Parameters
        ----------
        dose_values : np.ndarray
            Dose in the voxels of the structure.
        slack : np.ndarray, optional
            Slack vector of dose-volume constraint terms.

        Returns
        -------
        float
            Objective value of the term.
        """
        res = self.residual(dose_values, slack)
        return float(self.weight * (res @ res) / (2.0 * dose_values.size))
