"""Core data model and array backend utilities."""

from ._datamodel import PyFluenceOptBaseModel
from . import xp_utils

__all__ = ["PyFluenceOptBaseModel", "xp_utils"]
