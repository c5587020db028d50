"""Helper functions for converting arrays between namespaces and timing computations."""

from typing import Any, Optional
from datetime import timedelta
from timeit import default_timer as timer
import logging
import warnings

import array_api_compat
import numpy as np
from numpy.typing import NDArray

from .typing import Array, ArrayNamespace

logger = logging.getLogger(__name__)


def synchronize(xp: ArrayNamespace) -> None:
    """Wait for pending device work of the namespace to finish."""

    if array_api_compat.is_cupy_namespace(xp):
        xp.cuda.runtime.deviceSynchronize()
    elif array_api_compat.is_torch_namespace(xp):
        try:
            xp.accelerator.synchronize()
        except AttributeError:
            xp.cpu.synchronize()
    elif not (
        array_api_compat.is_numpy_namespace(xp)
        or array_api_compat.is_array_api_strict_namespace(xp)
    ):
        warnings.warn(f"Synchronization helper for namespace '{xp.__name__}' is not implemented.")


def record_event(xp: ArrayNamespace) -> float:
    """Record a timestamp after synchronizing the namespace."""
    synchronize(xp)
    return timer()


def elapsed_time(xp: ArrayNamespace, start: float, end: float) -> float:
    """Elapsed seconds between two events recorded with `record_event`."""
    return timedelta(seconds=(end - start)).total_seconds()


def to_numpy(arr: Array) -> NDArray:
    """Convert an array (of any supported namespace) to a NumPy array."""
    if array_api_compat.is_numpy_array(arr):
        return arr
    if array_api_compat.is_cupy_array(arr):
        return arr.get()
    if array_api_compat.is_torch_array(arr):
        return arr.detach().cpu().numpy()
    try:
        return np.from_dlpack(arr)
    except Exception as e:
        raise TypeError(
            "Conversion helper to NumPy not implemented for type '{}'.".format(type(arr))
        ) from e


def from_numpy(xp: ArrayNamespace, arr: NDArray) -> Array:
    """Convert a NumPy array to the given namespace."""
    if array_api_compat.is_torch_namespace(xp):
        return xp.from_numpy(arr)
    if (
        array_api_compat.is_numpy_namespace(xp)
        or array_api_compat.is_array_api_strict_namespace(xp)
        or array_api_compat.is_cupy_namespace(xp)
    ):
        return xp.asarray(arr)
    raise TypeError(
        "Conversion helper from NumPy not implemented for namespace '{}'.".format(xp.__name__)
    )


def as_float_vector(arr: Any, size: Optional[int] = None, name: str = "array") -> NDArray:
    """Flatten an array-like to a float64 NumPy vector, optionally checking its length."""
    if array_api_compat.is_array_api_obj(arr):
        arr = to_numpy(arr)
    vec = np.asarray(arr, dtype=np.float64).reshape(-1)
    if size is not None and vec.size != size:
        raise ValueError(f"{name} must have {size} entries, got {vec.size}.")
    return vec
