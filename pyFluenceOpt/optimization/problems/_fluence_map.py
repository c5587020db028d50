"""Fluence map optimization with dose-volume constraints."""

from typing import Any, Optional, Union
import logging

import array_api_compat
import numpy as np
from numpy.typing import NDArray

from ...core import xp_utils
from ...core.xp_utils.typing import Array
from ...cst import StructureSet, validate_cst
from ...dij import Dij, validate_dij
from ..projections import project_cardinality
from ..solvers import QuadraticOptimizer, get_solver, least_squares_linear_term
from ._assembly import (
    AssembledStructure,
    AssembledTerm,
    TermSubset,
    assemble_structures,
    normal_matrix,
    stack_dose_vector,
    stack_matrix,
)
from ._config import FluenceMapConfig, validate_config
from ._result import OptimizationResult

logger = logging.getLogger(__name__)


class FluenceMapProblem:
    """
    Fluence map optimization with dose-volume constraints.

    Solves

        min_(x,w)  sum_(i in U) weight_i / (2 n_i) ||A_i x - d_i||^2
                 + sum_(j in J) weight_j / (2 n_j) ||w_j - s_j (A_j x - d_j)||^2
                 + lambda / 2 ||x||^2
        s.t.       x >= 0,  ||max(0, w_j)||_0 <= k_j

    where U are the uniform targets, J the dose-volume constraints with
    orientation s_j (-1 for lower, +1 for upper constraints) and k_j the
    number of voxels allowed to violate the dose level. The problem is solved
    by alternating between a non-negative least-squares update of the beamlet
    intensities `x` and a projected gradient update of the slacks `w`.

    Parameters
    ----------
    dij : Dij or dict or Array
        Dose influence matrix.
    cst : StructureSet or list
        Structures with their terms, in priority order.
    config : FluenceMapConfig or dict, optional
        Problem options.
    **options
        Options overriding `config`.

    Attributes
    ----------
    structures : list[AssembledStructure]
        Structures restricted to their voxels, with derived term data.
    x0 : NDArray
        Initial beamlet intensities.
    x : NDArray
        Current (after `calc_beamlets`: final) beamlet intensities.
    obj : NDArray
        Objective value per iteration.
    w_diff : NDArray
        Convergence criterion (slack change) per iteration.
    n_iter : int
        Number of iterations used.
    time : float
        Time to compute the solution in seconds.
    tol : float
        Stopping tolerance.
    max_iter : int
        Maximum number of iterations.
    """

    name = "Fluence Map Optimization with Dose-Volume Constraints"
    short_name = "fmo_dvc"

    solver: QuadraticOptimizer

    def __init__(
        self,
        dij: Union[Dij, dict[str, Any], Array],
        cst: Union[StructureSet, list, dict[str, Any]],
        config: Union[FluenceMapConfig, dict[str, Any], None] = None,
        **options,
    ):
        self.config = validate_config(config, **options)

        dij = validate_dij(dij)
        if self.config.angles is not None:
            dij = dij.select_beams(self.config.angles)
        self._dij = dij

        self.cst = validate_cst(cst)
        self.lambda_ = self.config.lambda_
        self.overlap_allowed = self.config.overlap_allowed
        self.tol = self.config.tolerance
        self.max_iter = self.config.max_iterations

        self.structures = assemble_structures(dij, self.cst, self.overlap_allowed)

        self.solver = get_solver(self.config.solver)
        self.lb = np.zeros(self.num_bixels)
        self.ub = np.full(self.num_bixels, np.inf)
        self.solver.bounds = (self.lb, self.ub)

        self._a_full = stack_matrix(self.structures, "full", self.lambda_, self.num_bixels)
        self._h_full = normal_matrix(self._a_full)
        self._a_unif = stack_matrix(self.structures, "unif", self.lambda_, self.num_bixels)
        self._h_unif = normal_matrix(self._a_unif)
        self._d_unif = stack_dose_vector(self.structures, "unif", self.lambda_, self.num_bixels)

        self.x: Optional[NDArray] = None
        self.obj = np.zeros(0)
        self.w_diff = np.zeros(0)
        self.n_iter = 0
        self.time: Optional[float] = None
        self._solve_times: list[float] = []

        if self.config.initial_intensities is not None:
            self.x0 = xp_utils.as_float_vector(
                self.config.initial_intensities, self.num_bixels, "initial_intensities"
            )
        else:
            self.x0 = self.project_intensities("unif")

        logger.info(
            "Initialized %s: %d structures, %d beams, %d beamlets",
            self.short_name,
            self.num_structures,
            self._dij.num_of_beams,
            self.num_bixels,
        )

    @property
    def num_bixels(self) -> int:
        return self._dij.total_num_of_bixels

    @property
    def num_structures(self) -> int:
        return len(self.structures)

    @property
    def names(self) -> list[str]:
        """Structure names in structure set order."""
        return [s.name for s in self.structures]

    @property
    def angles(self) -> Optional[list[float]]:
        """Gantry angles of the beams in use."""
        return self._dij.gantry_angles

    @property
    def dij(self) -> Dij:
        return self._dij

    @property
    def converged(self) -> bool:
        """Whether the last run met the stopping tolerance."""
        return self.w_diff.size > 0 and bool(self.w_diff[-1] <= self.tol)

    def _dvc_terms(self):
        for s in self.structures:
            for t in s.terms:
                if t.is_dvc:
                    yield s, t

    def project_intensities(self, subset: TermSubset) -> NDArray:
        """
        Solve the non-negative least-squares problem for the beamlet intensities.

        Parameters
        ----------
        subset : {'unif', 'full'}
            'unif' solves the uniform target subproblem from zero, 'full' solves
            the full problem with the current slacks, warm-started from `x`.

        Returns
        -------
        NDArray
            Non-negative beamlet intensities.

        Raises
        ------
        NumericalInfeasibilityError
            If the solver does not return a finite, non-negative solution.
        """
        if subset == "unif":
            a, h, d = self._a_unif, self._h_unif, self._d_unif
            x_start = np.zeros(self.num_bixels)
        elif subset == "full":
            a, h = self._a_full, self._h_full
            d = stack_dose_vector(self.structures, "full", self.lambda_, self.num_bixels)
            x_start = self.x if self.x is not None else self.x0
        else:
            raise ValueError(f"Unknown term subset '{subset}', must be 'full' or 'unif'.")

        xp = array_api_compat.array_namespace(x_start)

        self.solver.set_problem(h, least_squares_linear_term(a, d))
        t1 = xp_utils.record_event(xp)
        x, info = self.solver.solve(x_start)
        t2 = xp_utils.record_event(xp)
        self._solve_times.append(xp_utils.elapsed_time(xp, t1, t2))

        logger.debug(
            "%s subproblem: %s after %d iterations",
            subset,
            info.get("status"),
            info.get("iterations", 0),
        )
        return x

    def calc_beamlets(self, print_progress: bool = True) -> NDArray:
        """
        Calculate beamlet intensities by alternating minimization.

        Parameters
        ----------
        print_progress : bool, default=True
            Log the objective and convergence criterion of every iteration at
            INFO level (DEBUG otherwise).

        Returns
        -------
        NDArray
            Final beamlet intensities.
        """
        log = logger.info if print_progress else logger.debug

        xp = array_api_compat.array_namespace(self.x0)
        self._solve_times = []
        t_start = xp_utils.record_event(xp)

        self._init_problem(log)
        for kk in range(1, self.max_iter + 1):
            self.x = self.project_intensities("full")
            w_diff_sum = 0.0
            for s, t in self._dvc_terms():
                w_diff_sum += self._update_slack(s, t)

            self.n_iter = kk
            self._calc_objective(kk)
            self.w_diff[kk - 1] = w_diff_sum
            log("iter: %d, obj: %7.4e, wDiff: %7.4e", kk, self.obj[kk], w_diff_sum)

            if w_diff_sum <= self.tol:
                break
        else:
            if self.max_iter > 0:
                logger.warning(
                    "Stopped after %d iterations without convergence (wDiff: %7.4e, tol: %g)",
                    self.max_iter,
                    self.w_diff[-1],
                    self.tol,
                )

        self.obj = self.obj[: self.n_iter + 1]
        self.w_diff = self.w_diff[: self.n_iter]
        for s in self.structures:
            for t in s.terms:
                t.truncate_traces(self.n_iter)

        t_end = xp_utils.record_event(xp)
        self.time = xp_utils.elapsed_time(xp, t_start, t_end)
        if self._solve_times:
            logger.info(
                "%d Subproblem solves, avg. time: %g +/- %g s",
                len(self._solve_times),
                np.mean(self._solve_times),
                np.std(self._solve_times),
            )
        logger.info("Iterations: %d, Time: %.2f s", self.n_iter, self.time)

        return self.x

    def _init_problem(self, log):
        """Initialize x, the slacks and the objective traces."""
        self.x = self.x0.copy()
        self.n_iter = 0
        self._init_slacks()
        self._init_traces()
        self._calc_objective(0)
        log("iter: %d, obj: %7.4e", 0, self.obj[0])

    def _init_slacks(self):
        """Initialize the slacks of all dose-volume constraints from `x0`."""
        for s, t in self._dvc_terms():
            res = t.term.signed_residual(s.dose(self.x0))
            t.slack = project_cardinality(res, t.allowed_violations)

    def _init_traces(self):
        self.obj = np.zeros(self.max_iter + 1)
        self.w_diff = np.zeros(self.max_iter)
        for s in self.structures:
            for t in s.terms:
                t.reset_traces(self.max_iter)

    def _calc_objective(self, iteration: int):
        """Evaluate and record the objective of the current iterate."""
        total = 0.0
        for s in self.structures:
            dose = s.dose(self.x)
            for t in s.terms:
                if t.is_dvc:
                    t.violation_trace[iteration] = t.term.violation_percent(dose)
                    t.slack_trace[iteration] = (
                        100.0 * np.count_nonzero(t.slack > 0) / s.num_voxels
                    )
                term_obj = t.term.compute_objective(dose, t.slack)
                t.objective_trace[iteration] = term_obj
                total += term_obj
        total += self.lambda_ * float(self.x @ self.x) / 2.0
        self.obj[iteration] = total

    def _update_slack(self, structure: AssembledStructure, term: AssembledTerm) -> float:
        """
        Projected gradient step on the slack of a dose-volume constraint.

        Returns
        -------
        float
            Scaled slack change `||w_new - w_prev|| / step_size`.
        """
        res = term.term.signed_residual(structure.dose(self.x))
        w_prev = term.slack
        w_step = w_prev + term.slack_step_coefficient * (res - w_prev)
        w_proj = project_cardinality(w_step, term.allowed_violations)
        w_diff = float(np.linalg.norm(w_proj - w_prev)) / term.step_size
        term.slack = w_proj
        return w_diff

    def structure_dose(self, name: str, x: Optional[Array] = None) -> NDArray:
        """
        Dose in the voxels of a structure.

        Parameters
        ----------
        name : str
            Structure name.
        x : Array, optional
            Beamlet intensities. Defaults to the current intensities.

        Returns
        -------
        NDArray
            Dose per voxel of the structure.
        """
        for s in self.structures:
            if s.name == name:
                break
        else:
            raise KeyError(f"Unknown structure '{name}'")

        if x is None:
            x = self.x if self.x is not None else self.x0
        return s.dose(x).copy()

    def beam_intensities(self, x: Optional[Array] = None) -> list[NDArray]:
        """Intensities of each beam (defaults to the current intensities)."""
        if x is None:
            x = self.x if self.x is not None else self.x0
        return self._dij.split_by_beam(x)

    def result(self) -> OptimizationResult:
        """
        Collect the public results of the last `calc_beamlets` run.

        Raises
        ------
        RuntimeError
            If `calc_beamlets` has not been run yet.
        """
        if self.time is None:
            raise RuntimeError("No results available, run calc_beamlets first.")

        return OptimizationResult(
            structure_names=self.names,
            angles=self.angles,
            lambda_=self.lambda_,
            overlap_allowed=self.overlap_allowed,
            x0=self.x0,
            x=self.x,
            obj=self.obj,
            w_diff=self.w_diff,
            n_iter=self.n_iter,
            time=self.time,
            tol=self.tol,
            max_iter=self.max_iter,
            converged=self.converged,
        )
