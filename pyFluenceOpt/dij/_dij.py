"""Contains the dij class holding the beamlet-to-voxel dose influence matrix."""

from typing import Any, Annotated, Optional, Sequence, Union
import logging

from pydantic import (
    Field,
    computed_field,
    field_validator,
    model_validator,
    ValidationInfo,
)
from numpydantic import NDArray

import array_api_compat
import numpy as np
import scipy.sparse as sp

from pyFluenceOpt.core import PyFluenceOptBaseModel
from ..core.xp_utils import to_numpy, as_float_vector
from ..core.xp_utils.typing import Array

InfluenceMatrix = Union[np.ndarray, sp.spmatrix, sp.sparray]

logger = logging.getLogger(__name__)


def _num_columns(mat: Any) -> Optional[int]:
    """Number of columns of a raw (not yet validated) influence matrix, if it has any."""
    try:
        shape = mat.shape if hasattr(mat, "shape") else np.shape(mat)
    except ValueError:
        return None
    return int(shape[1]) if len(shape) == 2 else None


class Dij(PyFluenceOptBaseModel):
    """
    Dose influence matrix mapping beamlet (bixel) intensities to voxel doses.

    Attributes
    ----------
    physical_dose : np.ndarray or scipy.sparse matrix
        Influence matrix with one row per voxel and one column per bixel.
        Sparse input is stored in CSR format for fast row (voxel) selection.
    num_of_beams : int
        Number of beams the bixels belong to.
    beam_num : NDArray
        0-based beam index of every bixel.
    gantry_angles : list[float], optional
        Gantry angle of every beam.
    """

    physical_dose: Any
    num_of_beams: Annotated[int, Field(default=1, ge=1)]
    beam_num: Annotated[NDArray, Field(default=None)]
    gantry_angles: Annotated[Optional[list[float]], Field(default=None)]

    @computed_field
    @property
    def total_num_of_bixels(self) -> int:
        """Number of bixels / beamlets in the dose influence matrix."""
        return int(self.physical_dose.shape[1])

    @computed_field
    @property
    def num_of_voxels(self) -> int:
        """Number of voxels in the dose influence matrix."""
        return int(self.physical_dose.shape[0])

    @model_validator(mode="before")
    @classmethod
    def fill_beam_numbering(cls, data: Any) -> Any:
        """Assign all bixels to a single beam when no beam numbering is given."""
        if not isinstance(data, dict):
            return data

        if data.get("beam_num") is None and data.get("beamNum") is None:
            mat = data.get("physical_dose", data.get("physicalDose"))
            num_bixels = _num_columns(mat)
            if num_bixels is not None:
                data = dict(data)
                data["beam_num"] = np.zeros(num_bixels, dtype=np.int64)
        return data

    @field_validator("physical_dose")
    @classmethod
    def validate_influence_matrix(cls, mat: Any, info: ValidationInfo) -> InfluenceMatrix:
        """
        Validate / coerce the influence matrix.

        Raises
        ------
            ValueError: if the matrix is missing, not numeric or not 2D.
        """
        if mat is None:
            raise ValueError(f"{info.field_name} is required.")

        if isinstance(mat, (sp.spmatrix, sp.sparray)):
            if not np.issubdtype(mat.dtype, np.number):
                raise ValueError(f"{info.field_name} must be a numeric matrix.")
            return sp.csr_array(mat, dtype=np.float64)

        if array_api_compat.is_array_api_obj(mat):
            mat = to_numpy(mat)
        mat = np.asarray(mat)

        if not np.issubdtype(mat.dtype, np.number):
            raise ValueError(f"{info.field_name} must be a numeric matrix.")
        if mat.ndim != 2:
            raise ValueError(f"{info.field_name} must be a 2D array.")
        return mat.astype(np.float64, copy=False)

    @field_validator("beam_num", mode="before")
    @classmethod
    def validate_beam_num(cls, v: Any, info: ValidationInfo) -> np.ndarray:
        """
        Validate the beam numbering of the bixels.

        Raises
        ------
            ValueError: inconsistent numbering array.
        """
        if isinstance(v, int):
            v = np.array([v])
        v = np.asarray(v, dtype=np.int64)
        if v.ndim != 1:
            raise ValueError("beam_num must be 1-dimensional")

        mat = info.data.get("physical_dose")
        if mat is not None and v.size != mat.shape[1]:
            raise ValueError("beam_num shape inconsistent with number of bixels")

        num_of_beams = info.data.get("num_of_beams")
        if num_of_beams is not None and v.size > 0:
            if np.min(v) < 0 or np.max(v) >= num_of_beams:
                raise ValueError("beam_num contains indices outside [0, num_of_beams).")
            if len(np.unique(v)) != num_of_beams:
                raise ValueError(
                    "Number of unique indices in beam_num does not match number of beams."
                )
        return v

    @field_validator("gantry_angles")
    @classmethod
    def validate_gantry_angles(
        cls, v: Optional[list[float]], info: ValidationInfo
    ) -> Optional[list[float]]:
        """Check that there is one gantry angle per beam."""
        if v is None:
            return v
        num_of_beams = info.data.get("num_of_beams")
        if num_of_beams is not None and len(v) != num_of_beams:
            raise ValueError("Number of gantry angles does not match number of beams.")
        if len(set(v)) != len(v):
            raise ValueError("Gantry angles must be unique.")
        return v

    def compute_dose(self, intensities: Array) -> np.ndarray:
        """
        Compute the voxel dose of an intensity vector.

        Parameters
        ----------
        intensities : Array
            Bixel intensities.

        Returns
        -------
        np.ndarray
            Dose per voxel.
        """
        x = as_float_vector(intensities, self.total_num_of_bixels, "intensities")
        return np.asarray(self.physical_dose @ x).reshape(-1)

    def beam_bixels(self, beam: int) -> np.ndarray:
        """Bixel indices belonging to a beam."""
        return np.flatnonzero(self.beam_num == beam)

    def split_by_beam(self, intensities: Array) -> list[np.ndarray]:
        """
        Split an intensity vector into one block per beam.

        Parameters
        ----------
        intensities : Array
            Bixel intensities.

        Returns
        -------
        list[np.ndarray]
            Intensities of each beam, ordered by beam index.
        """
        x = as_float_vector(intensities, self.total_num_of_bixels, "intensities")
        return [x[self.beam_bixels(i)] for i in range(self.num_of_beams)]

    def select_beams(self, angles: Sequence[float]) -> "Dij":
        """
        Restrict the Dij to the beams at the given gantry angles.

        Parameters
        ----------
        angles : Sequence[float]
            Gantry angles to keep, in the order in which their bixels are stacked.

        Returns
        -------
        Dij
            A new Dij containing only the selected beams.

        Raises
        ------
            ValueError: if the Dij has no gantry angles or an angle is not available.
        """
        if self.gantry_angles is None:
            raise ValueError("Dij has no gantry angles to select beams from.")

        angles = list(angles)
        if len(angles) == 0:
            raise ValueError("At least one gantry angle must be selected.")

        missing = [a for a in angles if a not in self.gantry_angles]
        if missing:
            raise ValueError(f"Gantry angles {missing} not available in Dij.")

        beams = [self.gantry_angles.index(a) for a in angles]
        columns = np.concatenate([self.beam_bixels(b) for b in beams])
        beam_num = np.concatenate(
            [np.full(self.beam_bixels(b).size, i, dtype=np.int64) for i, b in enumerate(beams)]
        )

        logger.debug("Selected %d of %d beams from Dij", len(beams), self.num_of_beams)

        return Dij(
            physical_dose=self.physical_dose[:, columns],
            num_of_beams=len(beams),
            beam_num=beam_num,
            gantry_angles=[float(a) for a in angles],
        )


def create_dij(data: Union[dict[str, Any], Dij, Array, None] = None, **kwargs) -> Dij:
    """
    Create a Dij object from raw data or keyword arguments.

    Parameters
    ----------
    data : Union[dict[str, Any], Dij, Array, None]
        Dictionary with the Dij fields, an existing Dij, or a bare influence matrix.
    **kwargs
        Arbitrary keyword arguments.

    Returns
    -------
    Dij
        A Dij object.
    """

    if data is not None:
        if isinstance(data, Dij):
            return data
        if isinstance(data, dict):
            return Dij.model_validate(data)
        return Dij(physical_dose=data, **kwargs)

    return Dij(**kwargs)


def validate_dij(dij: Union[dict[str, Any], Dij, Array, None] = None, **kwargs) -> Dij:
    """
    Validate and create a Dij object.

    Synonym to create_dij but should be used in validation context.
    """
    return create_dij(dij, **kwargs)


def compose_beam_dijs(dijs: Sequence[Union[Dij, dict[str, Any]]]) -> Dij:
    """
    Concatenate single-beam (or multi-beam) Dijs along the bixel axis.

    Parameters
    ----------
    dijs : Sequence[Dij]
        Dijs over the same voxels, typically one per gantry angle.

    Returns
    -------
    Dij
        Combined Dij with renumbered beams.
    """

    dijs = [validate_dij(d) for d in dijs]
    if len(dijs) == 0:
        raise ValueError("No Dijs to compose.")

    num_voxels = dijs[0].num_of_voxels
    if any(d.num_of_voxels != num_voxels for d in dijs):
        raise ValueError("All Dijs must have the same number of voxels.")

    mats = [d.physical_dose for d in dijs]
    if any(sp.issparse(m) for m in mats):
        physical_dose = sp.hstack([sp.csr_array(m) for m in mats], format="csr")
    else:
        physical_dose = np.hstack(mats)

    beam_num = []
    offset = 0
    for d in dijs:
        beam_num.append(d.beam_num + offset)
        offset += d.num_of_beams

    if all(d.gantry_angles is not None for d in dijs):
        gantry_angles = [a for d in dijs for a in d.gantry_angles]
    else:
        gantry_angles = None

    return Dij(
        physical_dose=physical_dose,
        num_of_beams=offset,
        beam_num=np.concatenate(beam_num),
        gantry_angles=gantry_angles,
    )
