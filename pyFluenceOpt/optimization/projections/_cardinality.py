"""Projection onto vectors with a bounded number of positive entries."""

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ...core.xp_utils import as_float_vector


def project_cardinality(w: ArrayLike, k: int) -> NDArray[np.float64]:
    """
    Project `w` onto the set `{v : ||max(0, v)||_0 <= k}`.

    The projection is exact: the `k` largest positive entries are kept, all
    other positive entries are set to zero and non-positive entries are left
    unchanged. Among equal values, the one with the lower index is kept.

    Parameters
    ----------
    w : ArrayLike
        Vector to project.
    k : int
        Maximum number of positive entries.

    Returns
    -------
    NDArray[np.float64]
        The projected vector (always a new array).
    """
    if k < 0:
        raise ValueError(f"Number of positive entries must be non-negative, got {k}.")

    v = as_float_vector(w).copy()

    idx_pos = np.flatnonzero(v > 0)
    if idx_pos.size <= k:
        return v

    order = np.argsort(-v[idx_pos], kind="stable")
    v[idx_pos[order[k:]]] = 0.0
    return v
