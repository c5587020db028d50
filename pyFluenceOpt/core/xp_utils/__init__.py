"""Array namespace helpers used at the boundaries of the optimization core."""

from .helpers import (
    synchronize,
    record_event,
    elapsed_time,
    to_numpy,
    from_numpy,
    as_float_vector,
)

from .typing import Array, ArrayNamespace

__all__ = [
    "synchronize",
    "record_event",
    "elapsed_time",
    "to_numpy",
    "from_numpy",
    "as_float_vector",
    "Array",
    "ArrayNamespace",
]
