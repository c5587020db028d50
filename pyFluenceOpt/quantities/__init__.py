"""Fluence dependent quantities."""

from ._base import RTQuantity, FluenceDependentQuantity, ureg
from ._dose import Dose

__all__ = ["RTQuantity", "FluenceDependentQuantity", "Dose", "ureg"]
