"""Solvers for the bound-constrained beamlet intensity subproblem."""

from typing import Union

from ._base_solvers import SolverBase, QuadraticOptimizer, NumericalInfeasibilityError
from ._quadratic import quadratic_objective, least_squares_linear_term
from ._projected_newton import OptimizerProjectedNewton
from ._scipy_solver import OptimizerSciPy

SOLVERS: dict[str, type[QuadraticOptimizer]] = {
    OptimizerProjectedNewton.short_name: OptimizerProjectedNewton,
    OptimizerSciPy.short_name: OptimizerSciPy,
}


def get_available_solvers() -> list[str]:
    """Short names of all registered solvers."""
    return list(SOLVERS.keys())


def get_solver(solver: Union[str, QuadraticOptimizer]) -> QuadraticOptimizer:
    """
    Get a fresh solver instance by its short name.

    Parameters
    ----------
    solver : str or QuadraticOptimizer
        Short name of the solver, or an already configured solver instance.

    Returns
    -------
    QuadraticOptimizer
        The solver.
    """
    if isinstance(solver, QuadraticOptimizer):
        return solver
    if solver not in SOLVERS:
        raise ValueError(f"Unknown solver '{solver}'. Available: {get_available_solvers()}")
    return SOLVERS[solver]()


__all__ = [
    "SolverBase",
    "QuadraticOptimizer",
    "NumericalInfeasibilityError",
    "OptimizerProjectedNewton",
    "OptimizerSciPy",
    "quadratic_objective",
    "least_squares_linear_term",
    "get_solver",
    "get_available_solvers",
]
