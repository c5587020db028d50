"""Projections used by the slack variable updates."""

from ._cardinality import project_cardinality

__all__ = ["project_cardinality"]
