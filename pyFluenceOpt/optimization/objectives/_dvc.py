"""Dose-volume constraint terms."""

from typing import Annotated, Literal, Optional
import math

import numpy as np
from pydantic import Field

from ._term import Term


class DoseVolumeConstraint(Term):
    """
    Dose-volume constraint (DVC) relaxed with a per-voxel slack vector.

    At most `percent` % of the voxels may violate the dose level. The violating
    voxels are encoded by the positive entries of the slack vector `w`, whose
    number is limited to `allowed_violations`.

    Attributes
    ----------
    percent : float
        Allowed violation percentage in [0, 100].
    """

    is_dvc = True

    percent: Annotated[float, Field(ge=0.0, le=100.0)]

    def allowed_violations(self, num_voxels: int) -> int:
        """Maximum number of voxels permitted to violate the dose level."""
        return int(math.floor(self.percent * num_voxels / 100.0))

    def signed_residual(self, dose_values: np.ndarray) -> np.ndarray:
        """Residual oriented such that positive entries are violations."""
        return self.sign * (dose_values - self.dose)

    def residual(self, dose_values: np.ndarray, slack: Optional[np.ndarray] = None) -> np.ndarray:
        res = self.signed_residual(dose_values)
        if slack is not None:
            res = res - slack
        return res

    def violation_percent(self, dose_values: np.ndarray) -> float:
        """Percentage of voxels violating the dose level."""
        return 100.0 * np.count_nonzero(self.signed_residual(dose_values) > 0) / dose_values.size


class LowerDVC(DoseVolumeConstraint):
    """No more than `percent` % of the voxels may receive less than `dose` Gy."""

    name = "Lower DVC"
    sign = -1

    type: Literal["ldvc"] = "ldvc"


class UpperDVC(DoseVolumeConstraint):
    """No more than `percent` % of the voxels may receive more than `dose` Gy."""

    name = "Upper DVC"
    sign = 1

    type: Literal["udvc"] = "udvc"
