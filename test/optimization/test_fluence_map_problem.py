import pytest
import logging
import subprocess
import sys

import numpy as np
import scipy.sparse as sp
from pydantic import ValidationError

from pyFluenceOpt import fluence_optimization
from pyFluenceOpt.dij import create_dij
from pyFluenceOpt.optimization import (
    FluenceMapProblem,
    FluenceMapConfig,
    OptimizationResult,
)
from pyFluenceOpt.optimization.problems import validate_config


@pytest.fixture
def dij():
    rng = np.random.default_rng(11)
    return create_dij(
        physical_dose=rng.uniform(0.0, 1.0, size=(30, 6)),
        num_of_beams=2,
        beam_num=np.array([0, 0, 0, 1, 1, 1]),
        gantry_angles=[0.0, 52.0],
    )


@pytest.fixture
def cst():
    return [
        {
            "name": "PTV",
            "voxels": np.arange(15),
            "terms": [
                {"type": "unif", "dose": 1.0, "weight": 1.0},
                {"type": "ldvc", "dose": 0.95, "percent": 10.0, "weight": 1.0},
            ],
        },
        {
            "name": "OAR",
            "voxels": np.arange(10, 30),
            "terms": [{"type": "udvc", "dose": 0.5, "percent": 30.0, "weight": 1.0}],
        },
    ]


@pytest.fixture
def uniform_cst():
    return [{"name": "PTV", "voxels": [0, 1, 2], "terms": [{"type": "unif", "dose": 2.0}]}]


def _assert_monotone(obj):
    for k in range(obj.size - 1):
        assert obj[k + 1] <= obj[k] + 1e-9 * (1.0 + abs(obj[k]))


def test_uniform_only_converges_in_one_iteration(uniform_cst):
    prob = FluenceMapProblem(create_dij(np.eye(3)), uniform_cst, lambda_=0.0)
    assert np.allclose(prob.x0, 2.0, atol=1e-6)

    x = prob.calc_beamlets()

    assert prob.n_iter == 1
    assert prob.obj.shape == (2,)
    assert np.array_equal(prob.w_diff, [0.0])
    assert prob.converged
    assert np.allclose(x, 2.0, atol=1e-6)
    assert prob.obj[1] == pytest.approx(0.0, abs=1e-10)


def test_zero_iterations(dij, cst):
    prob = FluenceMapProblem(dij, cst, max_iterations=0)
    x = prob.calc_beamlets()

    assert prob.n_iter == 0
    assert prob.obj.shape == (1,)
    assert prob.w_diff.shape == (0,)
    assert not prob.converged
    assert np.array_equal(x, prob.x0)


def test_alternating_minimization(dij, cst):
    prob = FluenceMapProblem(dij, cst, max_iterations=50, tolerance=1e-6)
    x = prob.calc_beamlets(print_progress=False)

    assert x.shape == (6,)
    assert np.all(x >= 0.0)
    assert 1 <= prob.n_iter <= 50
    assert prob.obj.shape == (prob.n_iter + 1,)
    assert prob.w_diff.shape == (prob.n_iter,)
    assert np.all(prob.w_diff >= 0.0)
    _assert_monotone(prob.obj)

    for s in prob.structures:
        for t in s.terms:
            assert t.objective_trace.shape == (prob.n_iter + 1,)
            if t.is_dvc:
                assert t.violation_trace.shape == (prob.n_iter + 1,)
                assert t.slack_trace.shape == (prob.n_iter + 1,)
                assert t.slack.shape == (s.num_voxels,)
                assert np.count_nonzero(t.slack > 0) <= t.allowed_violations
                assert np.all(t.slack_trace <= 100.0 * t.allowed_violations / s.num_voxels)


def test_stops_at_tolerance(dij, cst):
    prob = FluenceMapProblem(dij, cst, max_iterations=500, tolerance=1e-3)
    prob.calc_beamlets(print_progress=False)

    assert prob.converged
    assert prob.n_iter == prob.w_diff.size
    assert prob.n_iter < 500
    assert prob.w_diff[-1] <= prob.tol
    assert np.all(prob.w_diff[:-1] > prob.tol)
    assert prob.result().converged


def test_stops_at_max_iterations(dij, cst, caplog):
    caplog.set_level(logging.WARNING, logger="pyFluenceOpt")

    prob = FluenceMapProblem(dij, cst, max_iterations=3, tolerance=0.0)
    prob.calc_beamlets(print_progress=False)

    assert prob.n_iter == 3
    assert prob.w_diff.shape == (3,)
    assert prob.obj.shape == (4,)
    assert not prob.converged
    assert prob.w_diff[-1] > prob.tol
    assert "without convergence" in caplog.text


def test_entry_point_in_fresh_interpreter():
    code = (
        "import numpy as np\n"
        "from pyFluenceOpt import fluence_optimization\n"
        "cst = [{'name': 'PTV', 'voxels': np.arange(20),"
        " 'terms': [{'type': 'unif', 'dose': 81.0, 'weight': 1.0}]}]\n"
        "dij = np.random.default_rng(0).uniform(0.0, 1.0, (20, 4))\n"
        "x, result = fluence_optimization(dij, cst)\n"
        "assert x.shape == (4,) and result.n_iter == 1\n"
    )
    proc = subprocess.run([sys.executable, "-c", code], capture_output=True, text=True)
    assert proc.returncode == 0, proc.stderr


def test_objective_trace_sums_to_objective(dij, cst):
    prob = FluenceMapProblem(dij, cst, max_iterations=5)
    prob.calc_beamlets()

    total = sum(t.objective_trace for s in prob.structures for t in s.terms)
    regularization = prob.lambda_ * (prob.x @ prob.x) / 2.0
    assert prob.obj[-1] == pytest.approx(total[-1] + regularization, rel=1e-10)


def test_structure_dose_and_beams(dij, cst):
    prob = FluenceMapProblem(dij, cst, max_iterations=5)
    x = prob.calc_beamlets()

    assert prob.names == ["PTV", "OAR"]
    assert np.allclose(prob.structure_dose("OAR"), dij.physical_dose[15:, :] @ x)
    assert np.allclose(prob.structure_dose("PTV", prob.x0), dij.physical_dose[:15, :] @ prob.x0)
    with pytest.raises(KeyError):
        prob.structure_dose("Femur")

    beams = prob.beam_intensities()
    assert len(beams) == 2
    assert np.array_equal(np.concatenate(beams), x)


def test_overlap_allowed(dij, cst):
    prob = FluenceMapProblem(dij, cst, overlap_allowed=True, max_iterations=1)
    assert prob.structures[1].num_voxels == 20

    prob = FluenceMapProblem(dij, cst, overlap=False, max_iterations=1)
    assert prob.structures[1].num_voxels == 15


def test_angle_selection(dij, cst):
    prob = FluenceMapProblem(dij, cst, angles=[52.0], max_iterations=3)
    assert prob.num_bixels == 3
    assert prob.angles == [52.0]

    prob.calc_beamlets()
    result = prob.result()
    assert result.angles == [52.0]
    assert result.x.shape == (3,)


def test_initial_intensities(dij, cst):
    x0 = np.full(6, 0.5)
    prob = FluenceMapProblem(dij, cst, x0=x0, max_iterations=2)
    assert np.array_equal(prob.x0, x0)

    with pytest.raises(ValueError):
        FluenceMapProblem(dij, cst, initial_intensities=np.ones(5))


def test_sparse_matches_dense(dij, cst):
    sparse_dij = create_dij(
        physical_dose=sp.csr_array(dij.physical_dose),
        num_of_beams=2,
        beam_num=dij.beam_num,
        gantry_angles=dij.gantry_angles,
    )
    dense = FluenceMapProblem(dij, cst, max_iterations=5)
    sparse = FluenceMapProblem(sparse_dij, cst, max_iterations=5)

    assert np.allclose(dense.calc_beamlets(), sparse.calc_beamlets(), atol=1e-6)


def test_scipy_solver(dij, cst):
    newton = FluenceMapProblem(dij, cst, max_iterations=1)
    lbfgs = FluenceMapProblem(dij, cst, max_iterations=1, solver="scipy")

    newton.calc_beamlets()
    lbfgs.calc_beamlets()

    assert lbfgs.obj[-1] == pytest.approx(newton.obj[-1], rel=1e-4)


def test_zero_weight_constraint(uniform_cst):
    uniform_cst[0]["terms"].append({"type": "udvc", "dose": 1.0, "percent": 0.0, "weight": 0.0})
    prob = FluenceMapProblem(create_dij(np.eye(3)), uniform_cst, lambda_=0.0)
    prob.calc_beamlets()

    assert prob.n_iter == 1
    assert prob.w_diff[0] == 0.0
    assert np.allclose(prob.x, 2.0, atol=1e-6)


def test_result(dij, cst):
    prob = FluenceMapProblem(dij, cst, max_iterations=4)
    with pytest.raises(RuntimeError):
        prob.result()

    prob.calc_beamlets()
    result = prob.result()

    assert isinstance(result, OptimizationResult)
    assert result.structure_names == ["PTV", "OAR"]
    assert result.n_iter == prob.n_iter
    assert result.max_iter == 4
    assert result.tol == pytest.approx(1e-3)
    assert result.lambda_ == pytest.approx(1e-8)
    assert not result.overlap_allowed
    assert result.converged == prob.converged
    assert result.time >= 0.0
    assert np.array_equal(result.obj, prob.obj)


def test_fluence_optimization(dij, cst):
    x, result = fluence_optimization(dij, cst, {"maxIter": 10}, print_progress=False)

    prob = FluenceMapProblem(dij, cst, max_iterations=10)
    assert np.allclose(x, prob.calc_beamlets())
    assert result.n_iter == prob.n_iter
    assert result.max_iter == 10


def test_progress_logging(dij, cst, caplog):
    caplog.set_level(logging.INFO, logger="pyFluenceOpt")

    FluenceMapProblem(dij, cst, max_iterations=2).calc_beamlets(print_progress=True)
    assert "iter: 0" in caplog.text
    assert "wDiff" in caplog.text

    caplog.clear()
    FluenceMapProblem(dij, cst, max_iterations=2).calc_beamlets(print_progress=False)
    assert "iter: 0" not in caplog.text


def test_config_aliases():
    config = validate_config({"tol": 1e-4, "maxIter": 20, "lambda": 1e-6, "overlap": True})
    assert config.tolerance == 1e-4
    assert config.max_iterations == 20
    assert config.lambda_ == 1e-6
    assert config.overlap_allowed

    config = validate_config(config, max_iterations=30)
    assert config.max_iterations == 30
    assert config.tolerance == 1e-4

    assert FluenceMapConfig().solver == "newton"


@pytest.mark.parametrize(
    "options",
    [
        {"tolerance": -1.0},
        {"max_iterations": -1},
        {"lambda_": -1e-3},
        {"solver": "ipopt"},
        {"initial_intensities": [1.0, -1.0]},
        {"initial_intensities": [1.0, np.nan]},
        {"unknown_option": 1},
    ],
)
def test_invalid_config(options):
    with pytest.raises(ValidationError):
        validate_config(**options)


def test_invalid_angles(dij, cst):
    with pytest.raises(ValueError):
        FluenceMapProblem(dij, cst, angles=[104.0])
