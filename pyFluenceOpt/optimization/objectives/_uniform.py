"""Uniform dose target."""

from typing import Literal

from ._term import Term


class UniformTarget(Term):
    """Uniform target: every voxel of the structure should receive `dose` Gy."""

    name = "Uniform Target"

    type: Literal["unif"] = "unif"
