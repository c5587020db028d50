"""Quadratic objective of the non-negative least-squares subproblem."""

import numpy as np
from numpy.typing import NDArray


def quadratic_objective(
    x: NDArray, hessian: NDArray, linear_term: NDArray
) -> tuple[float, NDArray, NDArray]:
    """
    Evaluate `f(x) = x^T (0.5 H x + f)` with its gradient and Hessian.

    Parameters
    ----------
    x : NDArray
        Point of evaluation.
    hessian : NDArray
        Matrix `H`.
    linear_term : NDArray
        Vector `f`, for least-squares problems `-A^T d`.

    Returns
    -------
    tuple[float, NDArray, NDArray]
        Objective value, gradient `H x + f` and Hessian `H`.
    """
    hx = hessian @ x
    f_val = float(x @ (0.5 * hx + linear_term))
    grad = hx + linear_term
    return f_val, grad, hessian


def least_squares_linear_term(a: NDArray, d: NDArray) -> NDArray:
    """Linear term `-A^T d` of `0.5 ||A x - d||^2` without the constant."""
    return -np.asarray(a.T @ d).reshape(-1)
