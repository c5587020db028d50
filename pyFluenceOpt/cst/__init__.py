"""Structure sets: body structures with their voxels and terms."""

from ._structure import Structure, StructureSet, validate_cst

__all__ = ["Structure", "StructureSet", "validate_cst"]
