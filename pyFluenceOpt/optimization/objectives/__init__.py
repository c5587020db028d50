"""Objective and constraint terms for fluence map optimization."""

from typing import Annotated, Any, Union

from pydantic import Field, TypeAdapter

from ._term import Term
from ._uniform import UniformTarget
from ._dvc import DoseVolumeConstraint, LowerDVC, UpperDVC

TermSpec = Annotated[Union[UniformTarget, LowerDVC, UpperDVC], Field(discriminator="type")]

TERMS: dict[str, type[Term]] = {
    "unif": UniformTarget,
    "ldvc": LowerDVC,
    "udvc": UpperDVC,
}

_term_adapter = TypeAdapter(TermSpec)


def get_term(kind: str) -> type[Term]:
    """
    Get a term class by its type tag.

    Parameters
    ----------
    kind : str
        One of 'unif', 'ldvc' or 'udvc'.

    Returns
    -------
    type[Term]
        The term class.
    """
    if kind not in TERMS:
        raise ValueError(f"Unknown term type '{kind}'. Available: {list(TERMS)}")
    return TERMS[kind]


def validate_term(term: Union[Term, dict[str, Any]]) -> Term:
    """
    Validate a term given as model or as dictionary with a 'type' tag.

    Raises
    ------
        ValueError: unknown type tag or invalid parameters.
    """
    if isinstance(term, Term):
        return term
    return _term_adapter.validate_python(term)


__all__ = [
    "Term",
    "TermSpec",
    "UniformTarget",
    "DoseVolumeConstraint",
    "LowerDVC",
    "UpperDVC",
    "get_term",
    "validate_term",
]
