import numpy as np

from ._base import FluenceDependentQuantity, ureg


class Dose(FluenceDependentQuantity):
    """
    Dose quantity depending linearly on fluence.

    Parameters
    ----------
    influence_matrix : np.ndarray or scipy.sparse matrix
        Dose influence matrix (voxels x bixels), e.g. the rows of a Dij
        belonging to one structure.
    """

    unit = ureg.gray
    name = "dose"

    def __init__(self, influence_matrix):
        if influence_matrix.ndim != 2:
            raise ValueError("Dose influence matrix must be 2D.")

        self.influence_matrix = influence_matrix

        super().__init__(influence_matrix.shape[1])

    @property
    def num_voxels(self) -> int:
        return int(self.influence_matrix.shape[0])

    def _compute_quantity(self, fluence: np.ndarray) -> np.ndarray:
        return np.asarray(self.influence_matrix @ fluence).reshape(-1)
