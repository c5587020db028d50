"""SciPy solver Class."""

from typing import Any, Callable, Union

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize, Bounds

from ._base_solvers import QuadraticOptimizer


class OptimizerSciPy(QuadraticOptimizer):
    """
    SciPy solver configuration class.

    Attributes
    ----------
    options : dict
        Options for the solver
    method : Union[str, Callable]
        The solver method. The Hessian is passed on for 'trust-constr'.
    """

    name = "SciPy minimize"
    short_name = "scipy"

    options: dict[str, Any]
    method: Union[str, Callable]

    def __init__(self):
        self.options = {
            "ftol": 1e-15,
            "gtol": 1e-10,
        }

        self.method = "L-BFGS-B"

        super().__init__()

    def _solve_problem(self, x0: NDArray) -> tuple[NDArray, dict[str, Any]]:
        options = dict(self.options)
        options.update({"maxiter": self.max_iter})

        lb, ub = self._bound_vectors(x0.size)
        bounds = Bounds(lb=lb, ub=ub)

        def scipy_objective(x: NDArray) -> float:
            return self.objective(x)[0]

        def scipy_gradient(x: NDArray) -> NDArray:
            return self.objective(x)[1]

        kwargs = {}
        if self.method == "trust-constr":
            kwargs["hess"] = lambda x: self.hessian
            options = {k: v for k, v in options.items() if k not in ("ftol", "gtol")}

        result = minimize(
            x0=np.clip(x0, lb, ub),
            fun=scipy_objective,
            method=self.method,
            jac=scipy_gradient,
            tol=self.abs_obj_tol,
            bounds=bounds,
            options=options,
            **kwargs,
        )

        info = {
            "status": "converged" if result.success else "stopped",
            "iterations": int(result.get("nit", 0)),
            "objective": float(result.fun),
            "message": str(result.message),
        }
        return result.x, info
