"""Body structures and the structure set of a fluence map optimization problem."""

from typing import Annotated, Any, Union
import logging

import numpy as np
from numpydantic import NDArray
from pydantic import Field, field_validator

from ..core import PyFluenceOptBaseModel
from ..optimization.objectives import TermSpec

logger = logging.getLogger(__name__)


class Structure(PyFluenceOptBaseModel):
    """
    A body structure (target volume or organ at risk) with its terms.

    Attributes
    ----------
    name : str
        Structure name, e.g. 'PTV_68' or 'Rectum'.
    voxels : NDArray
        Indices of the voxels of the structure (rows of the dose influence matrix).
    terms : list[Term]
        Ordered objective / constraint terms.
    """

    name: str
    voxels: NDArray
    terms: Annotated[list[TermSpec], Field(min_length=1)]

    @field_validator("voxels", mode="before")
    @classmethod
    def validate_voxels(cls, v: Any) -> np.ndarray:
        """
        Coerce voxel indices to a flat integer array.

        Raises
        ------
            ValueError: non-integer or negative indices.
        """
        v = np.asarray(v)
        if v.size == 0:
            return np.zeros(0, dtype=np.int64)
        if not np.issubdtype(v.dtype, np.integer):
            if not np.all(np.mod(v, 1) == 0):
                raise ValueError("Voxel indices must be integers.")
        v = v.astype(np.int64).reshape(-1)
        if np.min(v) < 0:
            raise ValueError("Voxel indices must be non-negative.")
        return v


class StructureSet(PyFluenceOptBaseModel):
    """
    Ordered collection of structures.

    The order matters when overlapping voxels are removed: earlier structures
    keep shared voxels.
    """

    structures: Annotated[list[Structure], Field(min_length=1)]

    @field_validator("structures")
    @classmethod
    def validate_unique_names(cls, v: list[Structure]) -> list[Structure]:
        names = [s.name for s in v]
        if len(set(names)) != len(names):
            raise ValueError("Structure names must be unique.")
        return v

    @property
    def names(self) -> list[str]:
        """Structure names in structure set order."""
        return [s.name for s in self.structures]

    def __len__(self) -> int:
        return len(self.structures)

    def __iter__(self):
        return iter(self.structures)

    def __getitem__(self, item: Union[int, str]) -> Structure:
        if isinstance(item, str):
            for s in self.structures:
                if s.name == item:
                    return s
            raise KeyError(item)
        return self.structures[item]

    def resolve_voxels(self, overlap_allowed: bool = False) -> list[np.ndarray]:
        """
        Voxel indices of every structure after resolving overlaps.

        Parameters
        ----------
        overlap_allowed : bool
            If False, each structure only keeps the voxels that no earlier
            structure claimed.

        Returns
        -------
        list[np.ndarray]
            Sorted, unique voxel indices per structure.
        """
        resolved = []
        claimed = np.zeros(0, dtype=np.int64)
        for s in self.structures:
            v = np.unique(s.voxels)
            if not overlap_allowed:
                v = np.setdiff1d(v, claimed, assume_unique=True)
                claimed = np.union1d(claimed, v)
                if v.size < np.unique(s.voxels).size:
                    logger.debug(
                        "Removed %d overlapping voxels from structure '%s'",
                        np.unique(s.voxels).size - v.size,
                        s.name,
                    )
            resolved.append(v)
        return resolved


def validate_cst(
    cst: Union[StructureSet, list[Union[Structure, dict[str, Any]]], dict[str, Any]],
) -> StructureSet:
    """
    Validate and create a StructureSet.

    Parameters
    ----------
    cst : StructureSet, list or dict
        A structure set, a list of structures / structure dictionaries, or a
        dictionary with a 'structures' entry.

    Returns
    -------
    StructureSet
        A validated structure set.
    """
    if isinstance(cst, StructureSet):
        return cst
    if isinstance(cst, dict):
        return StructureSet.model_validate(cst)
    return StructureSet(structures=list(cst))
