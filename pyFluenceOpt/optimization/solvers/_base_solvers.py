"""Solver Base Classes for bound-constrained subproblems."""

from typing import ClassVar, Any, Optional
from abc import ABC, abstractmethod

import logging

import array_api_compat
import numpy as np
from numpy.typing import NDArray

from ...core import xp_utils
from ...core.xp_utils.typing import Array
from ._quadratic import quadratic_objective

logger = logging.getLogger(__name__)


class NumericalInfeasibilityError(RuntimeError):
    """Raised when a solver cannot produce a finite, feasible solution."""


class SolverBase(ABC):
    """
    Abstract Base Class for Solver Implementations / Interfaces.

    Attributes
    ----------
    name : ClassVar[str]
        Full name of the solver
    short_name : ClassVar[str]
        Short name of the solver
    max_time : float, default=3600
        Maximum time for the solver to run in seconds
    bounds : tuple, default=(0.0, np.inf)
        Lower and upper bounds for the variables (scalars or vectors)
    feasibility_tol : float, default=1e-8
        Bound violations up to this value are clipped, larger ones are an error
    """

    name: ClassVar[str]
    short_name: ClassVar[str]

    max_time: float
    bounds: tuple
    feasibility_tol: float

    def __init__(self):
        self.max_time = 3600
        self.bounds = (0.0, np.inf)
        self.feasibility_tol = 1e-8

    def __repr__(self) -> str:
        return f"Solver {self.name} ({self.short_name})"

    def solve(self, x0: Array) -> tuple[Array, dict[str, Any]]:
        """
        Interface method to solve the problem.

        The solution is returned in the array namespace of `x0`.

        Parameters
        ----------
        x0 : Array
            Initial guess for the solution

        Returns
        -------
        tuple[Array, dict]
            Solution vector and additional information as dictionary

        Raises
        ------
        NumericalInfeasibilityError
            If the solver result is not finite or violates the bounds.
        """

        if isinstance(x0, list):
            x0 = np.asarray(x0, dtype=np.float64)

        xp = array_api_compat.array_namespace(x0)
        x0_np = np.asarray(xp_utils.to_numpy(x0), dtype=np.float64).reshape(-1)

        logger.debug("Starting %s with %d variables", self.name, x0_np.size)
        x, info = self._solve_problem(x0_np)

        x = self._check_solution(x)

        return xp_utils.from_numpy(xp, x), info

    def _bound_vectors(self, n: int) -> tuple[NDArray, NDArray]:
        lb = np.broadcast_to(np.asarray(self.bounds[0], dtype=np.float64), (n,))
        ub = np.broadcast_to(np.asarray(self.bounds[1], dtype=np.float64), (n,))
        return lb, ub

    def _check_solution(self, x: NDArray) -> NDArray:
        """Verify the solution is finite and feasible, clipping round-off violations."""

        x = np.asarray(x, dtype=np.float64)
        if not np.all(np.isfinite(x)):
            raise NumericalInfeasibilityError(f"{self.name} returned a non-finite solution.")

        lb, ub = self._bound_vectors(x.size)
        violation = max(float(np.max(lb - x, initial=0.0)), float(np.max(x - ub, initial=0.0)))
        if violation > self.feasibility_tol:
            raise NumericalInfeasibilityError(
                f"{self.name} returned a solution violating the bounds by {violation:g}."
            )
        return np.clip(x, lb, ub)

    @abstractmethod
    def _solve_problem(self, x0: NDArray) -> tuple[NDArray, dict[str, Any]]:
        """
        Solve the problem.

        Parameters
        ----------
        x0 : NDArray
            Initial guess for the solution

        Returns
        -------
        tuple[NDArray, dict]
            Solution vector and additional information as dictionary
        """


class QuadraticOptimizer(SolverBase):
    """
    Base class for solvers of `min 0.5 x^T H x + f^T x` subject to bounds.

    Attributes
    ----------
    max_iter : int
        Maximum number of iterations
    abs_obj_tol : float
        Absolute objective tolerance
    hessian : NDArray
        Symmetric positive semi-definite matrix `H`
    linear_term : NDArray
        Linear coefficient vector `f`
    """

    max_iter: int
    abs_obj_tol: float

    hessian: Optional[NDArray]
    linear_term: Optional[NDArray]

    def __init__(self):
        super().__init__()
        self.max_iter = 500
        self.abs_obj_tol = 1e-12

        self.hessian = None
        self.linear_term = None

    def set_problem(self, hessian: NDArray, linear_term: NDArray):
        """
        Set the quadratic program to solve.

        Raises
        ------
        ValueError
            If the dimensions of `hessian` and `linear_term` do not match.
        """
        hessian = np.asarray(hessian, dtype=np.float64)
        linear_term = np.asarray(linear_term, dtype=np.float64).reshape(-1)
        if hessian.ndim != 2 or hessian.shape != (linear_term.size, linear_term.size):
            raise ValueError(
                f"Hessian of shape {hessian.shape} does not match linear term of size "
                f"{linear_term.size}."
            )
        self.hessian = hessian
        self.linear_term = linear_term

    def objective(self, x: NDArray) -> tuple[float, NDArray, NDArray]:
        """Objective value, gradient and Hessian at `x`."""
        if self.hessian is None or self.linear_term is None:
            raise ValueError("No quadratic program set. Call set_problem first.")
        return quadratic_objective(x, self.hessian, self.linear_term)

    def solve(self, x0: Array) -> tuple[Array, dict[str, Any]]:
        if self.hessian is None or self.linear_term is None:
            raise ValueError("No quadratic program set. Call set_problem first.")
        return super().solve(x0)
