"""Dose influence matrices."""

from ._dij import Dij, create_dij, validate_dij, compose_beam_dijs

__all__ = ["Dij", "create_dij", "validate_dij", "compose_beam_dijs"]
