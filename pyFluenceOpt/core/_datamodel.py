"""Base class for the validated data models of pyFluenceOpt."""

from typing import Any

import numpy as np
import scipy.sparse as sp
import array_api_compat
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .xp_utils import to_numpy


def _values_equal(a: Any, b: Any) -> bool:
    """Compare two (possibly nested) values, treating arrays element-wise."""

    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(_values_equal(a[key], b[key]) for key in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(_values_equal(x, y) for x, y in zip(a, b))

    if isinstance(a, (sp.spmatrix, sp.sparray)) or isinstance(b, (sp.spmatrix, sp.sparray)):
        if not (sp.issparse(a) and sp.issparse(b)) or a.shape != b.shape:
            return False
        return (a != b).nnz == 0

    if isinstance(a, np.ndarray) and a.dtype == np.dtype(object):
        if not (isinstance(b, np.ndarray) and b.dtype == np.dtype(object)):
            return False
        if a.shape != b.shape:
            return False
        return all(_values_equal(x, y) for x, y in zip(a.flat, b.flat))

    if array_api_compat.is_array_api_obj(a) or array_api_compat.is_array_api_obj(b):
        if not (array_api_compat.is_array_api_obj(a) and array_api_compat.is_array_api_obj(b)):
            return False
        a_np, b_np = to_numpy(a), to_numpy(b)
        return a_np.shape == b_np.shape and bool(np.array_equal(a_np, b_np))

    return a == b


class PyFluenceOptBaseModel(BaseModel):
    """
    Base model for all pyFluenceOpt data structures.

    Fields are exposed in snake_case and additionally accept their camelCase alias.
    Equality compares array-valued fields element-wise.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        validate_assignment=True,
    )

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, BaseModel) or type(self) is not type(other):
            return NotImplemented
        fields = type(self).model_fields
        return all(
            _values_equal(getattr(self, name), getattr(other, name)) for name in fields
        )
