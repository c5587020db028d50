"""
Assembly of the structure data and stacked least-squares matrices.

For a subset of terms, the stacked matrix and dose vector are

    A = [sqrt(w_1 / n_1) A_1; ...; sqrt(w_m / n_m) A_m; sqrt(lambda) I]
    d = [sqrt(w_1 / n_1) (d_1 + s_1 w_1); ...; 0]

so that `0.5 ||A x - d||^2` equals the beamlet part of the objective. The
regularization block is only appended for `lambda > 0`.
"""

from typing import Literal, Optional, Union
import logging
import math

import numpy as np
import scipy.sparse as sp
from numpy.typing import NDArray

from ...cst import StructureSet
from ...dij import Dij
from ...quantities import Dose
from ..objectives import Term

TermSubset = Literal["full", "unif"]

logger = logging.getLogger(__name__)


class AssembledTerm:
    """
    A term bound to the voxels of its structure.

    Holds the derived constants (target vector, allowed violations, step size),
    the slack vector of dose-volume constraints and the per-iteration traces.

    Parameters
    ----------
    term : Term
        The term specification.
    num_voxels : int
        Number of voxels of the structure.
    """

    def __init__(self, term: Term, num_voxels: int):
        self.term = term
        self.num_voxels = num_voxels

        self.target = term.target(num_voxels)
        self.step_size = term.step_size(num_voxels)
        if term.is_dvc:
            self.allowed_violations = term.allowed_violations(num_voxels)
        else:
            self.allowed_violations = None

        self.slack: Optional[NDArray] = None

        self.objective_trace = np.zeros(0)
        self.violation_trace = np.zeros(0)
        self.slack_trace = np.zeros(0)

    @property
    def is_dvc(self) -> bool:
        return self.term.is_dvc

    @property
    def weight(self) -> float:
        return self.term.weight

    @property
    def coefficient(self) -> float:
        """Row scaling `sqrt(weight / n)` of the term in the stacked system."""
        return math.sqrt(self.term.weight / self.num_voxels)

    @property
    def slack_step_coefficient(self) -> float:
        """Coefficient `step_size * weight / n` of the slack gradient step."""
        if math.isinf(self.step_size):
            return 1.0
        return self.step_size * self.term.weight / self.num_voxels

    def stacked_target(self) -> NDArray:
        """Unscaled right-hand side block `d + s w` of the term."""
        if self.is_dvc and self.slack is not None:
            return self.target + self.term.sign * self.slack
        return self.target

    def reset_traces(self, max_iter: int):
        self.objective_trace = np.zeros(max_iter + 1)
        if self.is_dvc:
            self.violation_trace = np.zeros(max_iter + 1)
            self.slack_trace = np.zeros(max_iter + 1)

    def truncate_traces(self, n_iter: int):
        self.objective_trace = self.objective_trace[: n_iter + 1]
        if self.is_dvc:
            self.violation_trace = self.violation_trace[: n_iter + 1]
            self.slack_trace = self.slack_trace[: n_iter + 1]


class AssembledStructure:
    """
    A structure restricted to its voxels of the dose influence matrix.

    Parameters
    ----------
    name : str
        Structure name.
    voxels : NDArray
        Voxel indices (rows of the Dij) of the structure.
    influence_matrix : np.ndarray or scipy.sparse matrix
        Rows of the Dij belonging to the structure.
    terms : list[Term]
        Terms of the structure.
    """

    def __init__(self, name: str, voxels: NDArray, influence_matrix, terms: list[Term]):
        self.name = name
        self.voxels = voxels
        self.influence_matrix = influence_matrix
        self.dose = Dose(influence_matrix)
        self.terms = [AssembledTerm(t, self.num_voxels) for t in terms]

    @property
    def num_voxels(self) -> int:
        return int(self.voxels.size)

    def __repr__(self) -> str:
        return (
            f"AssembledStructure({self.name}, {self.num_voxels} voxels, {len(self.terms)} terms)"
        )


def assemble_structures(
    dij: Dij, cst: StructureSet, overlap_allowed: bool = False
) -> list[AssembledStructure]:
    """
    Restrict the dose influence matrix to each structure and derive the term constants.

    Parameters
    ----------
    dij : Dij
        Full dose influence matrix.
    cst : StructureSet
        Structures in structure set order.
    overlap_allowed : bool
        If False, voxels shared with an earlier structure are removed.

    Returns
    -------
    list[AssembledStructure]
        Assembled structures in structure set order.

    Raises
    ------
    ValueError
        If a structure has no voxels or references voxels outside the Dij.
    """

    if len(cst) == 0:
        raise ValueError("Structure set must contain at least one structure.")

    structures = []
    for s, voxels in zip(cst, cst.resolve_voxels(overlap_allowed)):
        if voxels.size == 0:
            raise ValueError(f"Structure '{s.name}' has no voxels.")
        if voxels[-1] >= dij.num_of_voxels:
            raise ValueError(
                f"Structure '{s.name}' references voxel {voxels[-1]}, but the Dij only has "
                f"{dij.num_of_voxels} voxels."
            )

        influence_matrix = dij.physical_dose[voxels, :]
        structures.append(AssembledStructure(s.name, voxels, influence_matrix, s.terms))
        logger.debug("Assembled structure '%s' with %d voxels", s.name, voxels.size)

    return structures


def _selected_terms(structures: list[AssembledStructure], subset: TermSubset):
    if subset not in ("full", "unif"):
        raise ValueError(f"Unknown term subset '{subset}', must be 'full' or 'unif'.")
    for s in structures:
        for t in s.terms:
            if subset == "full" or not t.is_dvc:
                yield s, t


def stack_matrix(
    structures: list[AssembledStructure],
    subset: TermSubset,
    lambda_: float,
    num_bixels: int,
) -> Union[NDArray, sp.csr_array]:
    """
    Build the stacked (scaled) influence matrix of a term subset.

    Parameters
    ----------
    structures : list[AssembledStructure]
        Assembled structures.
    subset : {'full', 'unif'}
        All terms or only uniform target terms.
    lambda_ : float
        Regularization coefficient.
    num_bixels : int
        Number of beamlets.

    Returns
    -------
    NDArray or scipy.sparse.csr_array
        Stacked matrix, sparse if any structure matrix is sparse.
    """

    blocks = [(t.coefficient, s.influence_matrix) for s, t in _selected_terms(structures, subset)]
    num_rows = sum(mat.shape[0] for _, mat in blocks)
    if lambda_ > 0:
        num_rows += num_bixels

    if any(sp.issparse(mat) for _, mat in blocks):
        sp_blocks = [sp.csr_array(c * mat) for c, mat in blocks]
        if lambda_ > 0:
            sp_blocks.append(math.sqrt(lambda_) * sp.eye_array(num_bixels, format="csr"))
        a = sp.vstack(sp_blocks, format="csr")
    else:
        a = np.empty((num_rows, num_bixels), dtype=np.float64)
        row = 0
        for c, mat in blocks:
            a[row : row + mat.shape[0], :] = c * mat
            row += mat.shape[0]
        if lambda_ > 0:
            a[row:, :] = math.sqrt(lambda_) * np.eye(num_bixels)

    if a.shape != (num_rows, num_bixels):
        raise ValueError(f"Stacked matrix has shape {a.shape}, expected {(num_rows, num_bixels)}.")
    return a


def stack_dose_vector(
    structures: list[AssembledStructure],
    subset: TermSubset,
    lambda_: float,
    num_bixels: int,
) -> NDArray:
    """
    Build the stacked (scaled) dose vector of a term subset.

    Dose-volume constraint blocks include the current slack vectors.

    Returns
    -------
    NDArray
        Stacked right-hand side matching `stack_matrix`.
    """

    selected = list(_selected_terms(structures, subset))
    num_rows = sum(t.num_voxels for _, t in selected)
    if lambda_ > 0:
        num_rows += num_bixels

    d = np.zeros(num_rows, dtype=np.float64)
    row = 0
    for _, t in selected:
        d[row : row + t.num_voxels] = t.coefficient * t.stacked_target()
        row += t.num_voxels
    return d


def normal_matrix(a: Union[NDArray, sp.csr_array]) -> NDArray:
    """Dense normal-equations Hessian `A^T A`."""
    h = a.T @ a
    if sp.issparse(h):
        h = h.toarray()
    return np.asarray(h, dtype=np.float64)
