"""Projected Newton solver for bound-constrained quadratic programs."""

from typing import Any
from timeit import default_timer as timer

import logging

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from ._base_solvers import QuadraticOptimizer

logger = logging.getLogger(__name__)


class OptimizerProjectedNewton(QuadraticOptimizer):
    """
    Two-metric projected Newton method.

    Variables at a bound whose gradient pushes them further out form the
    working set and are held fixed. On the remaining free variables a Newton
    step is computed from a Cholesky factorization of the reduced Hessian, and
    the step is projected back onto the bounds with an Armijo backtracking
    line search.

    Attributes
    ----------
    opt_tol : float
        Tolerance on the infinity norm of the projected gradient.
    suff_dec : float
        Sufficient decrease parameter of the Armijo condition.
    min_step : float
        Smallest line search step before the solver stops making progress.
    """

    name = "Projected Newton"
    short_name = "newton"

    opt_tol: float
    suff_dec: float
    min_step: float

    def __init__(self):
        super().__init__()
        self.opt_tol = 1e-9
        self.suff_dec = 1e-4
        self.min_step = 1e-12

    def _newton_direction(self, hessian: NDArray, grad: NDArray, free: NDArray) -> NDArray:
        """Newton direction on the free variables, zero on the working set."""

        direction = np.zeros_like(grad)
        if not np.any(free):
            return direction

        h_free = hessian[np.ix_(free, free)]
        g_free = grad[free]

        # Singular reduced Hessians (lambda = 0) get a growing diagonal shift
        shift = 0.0
        scale = max(float(np.max(np.abs(np.diag(h_free)))), 1.0)
        for _ in range(8):
            try:
                factor = cho_factor(h_free + shift * np.eye(h_free.shape[0]), check_finite=False)
                direction[free] = -cho_solve(factor, g_free, check_finite=False)
                if np.all(np.isfinite(direction)):
                    return direction
            except LinAlgError:
                pass
            shift = 1e-10 * scale if shift == 0.0 else 10.0 * shift

        logger.debug("Reduced Hessian not positive definite, using steepest descent")
        direction[free] = -g_free
        return direction

    def _solve_problem(self, x0: NDArray) -> tuple[NDArray, dict[str, Any]]:
        lb, ub = self._bound_vectors(x0.size)

        t_start = timer()

        x = np.clip(x0, lb, ub)
        f, g, h = self.objective(x)

        status = "max_iter"
        it = 0
        for it in range(1, self.max_iter + 1):
            proj_grad = np.clip(x - g, lb, ub) - x
            if np.max(np.abs(proj_grad), initial=0.0) <= self.opt_tol:
                status = "converged"
                it -= 1
                break

            active_tol = 2.0 * self.opt_tol
            working = ((x <= lb + active_tol) & (g > 0)) | ((x >= ub - active_tol) & (g < 0))
            direction = self._newton_direction(h, g, ~working)

            if g @ direction >= 0.0:
                direction = proj_grad

            step = 1.0
            while True:
                x_new = np.clip(x + step * direction, lb, ub)
                f_new, g_new, _ = self.objective(x_new)
                if f_new <= f + self.suff_dec * (g @ (x_new - x)):
                    break
                step *= 0.5
                if step < self.min_step:
                    x_new, f_new, g_new = x, f, g
                    break

            f_change = abs(f - f_new)
            x_change = np.max(np.abs(x_new - x), initial=0.0)
            x, f, g = x_new, f_new, g_new

            logger.debug("newton iter %d: f = %.8e, step = %g", it, f, step)

            if not np.isfinite(f):
                status = "diverged"
                break
            if f_change <= self.abs_obj_tol or x_change <= self.min_step:
                status = "no_progress"
                break
            if timer() - t_start > self.max_time:
                status = "max_time"
                break

        info = {
            "status": status,
            "iterations": it,
            "objective": f,
            "projected_gradient_norm": float(
                np.max(np.abs(np.clip(x - g, lb, ub) - x), initial=0.0)
            ),
        }
        return x, info
