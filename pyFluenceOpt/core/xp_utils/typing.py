"""Array API type hints usable inside pydantic models."""

from __future__ import annotations
from typing import TYPE_CHECKING, Annotated, Any
import array_api_compat
from pydantic_core import core_schema, PydanticCustomError

if TYPE_CHECKING:
    from array_api._2024_12 import Array as ArrayType
    import array_api._2024_12 as array_api_types  # type: ignore[import]

    ArrayNamespace = array_api_types.ArrayNamespace  # type: ignore[no-redef]
else:

    class ArrayType:  # noqa: D401
        """Runtime placeholder for the Array protocol."""

    class ArrayNamespace:  # noqa: D401
        """Runtime placeholder for the ArrayNamespace protocol."""


class ArrayAPIArray:
    """Runtime marker validating that a value is an Array API compatible array."""

    @classmethod
    def __get_pydantic_core_schema__(cls, _source_type, _handler):
        def validate(value: Any):
            if array_api_compat.is_array_api_obj(value):
                return value
            raise PydanticCustomError("array_api", "Value is not an Array API compatible array")

        return core_schema.no_info_plain_validator_function(validate)

    @classmethod
    def __get_pydantic_json_schema__(cls, core_schema_, handler):
        js = handler(core_schema_)
        js.update({"title": "ArrayAPIArray", "type": "object"})
        return js


Array = Annotated[ArrayType, ArrayAPIArray]
