from abc import ABC, abstractmethod
from typing import ClassVar, Optional

import logging

import numpy as np
import pint

from ..core.xp_utils import as_float_vector
from ..core.xp_utils.typing import Array

ureg = pint.UnitRegistry()

logger = logging.getLogger(__name__)


class RTQuantity(ABC):
    """Base class for quantities evaluated on the voxels of a structure."""

    name: ClassVar[str]
    unit: ClassVar[pint.Unit]


class FluenceDependentQuantity(RTQuantity, ABC):
    """
    Base class for quantities that depend linearly or non-linearly on the fluence.

    The last evaluated fluence and quantity vector are cached, so repeated
    evaluations for the same fluence (e.g. by several terms on one structure)
    only compute the quantity once.

    Parameters
    ----------
    num_bixels : int
        Length of the fluence vectors the quantity accepts.
    """

    def __init__(self, num_bixels: int):
        self.num_bixels = int(num_bixels)

        self._w_cache: Optional[np.ndarray] = None
        self._q_cache: Optional[np.ndarray] = None

    def __call__(self, fluence: Array) -> np.ndarray:
        """Make the quantity callable by calling the compute method."""
        return self.compute(fluence)

    def compute(self, fluence: Array) -> np.ndarray:
        """
        Forward calculation of the quantity from the fluence.

        Parameters
        ----------
        fluence : Array
            Fluence vector.

        Returns
        -------
        np.ndarray
            Quantity vector.
        """

        fluence = as_float_vector(fluence, self.num_bixels, "fluence")

        if self._w_cache is None or not np.array_equal(self._w_cache, fluence):
            self._w_cache = fluence.copy()
            self._q_cache = self._compute_quantity(self._w_cache)

        return self._q_cache

    @abstractmethod
    def _compute_quantity(self, fluence: np.ndarray) -> np.ndarray:
        """
        Calculate the quantity for a fluence vector.

        Parameters
        ----------
        fluence : np.ndarray
            Fluence vector.

        Returns
        -------
        np.ndarray
            Quantity vector.
        """
