import pytest

import numpy as np
import scipy.sparse as sp

from pyFluenceOpt.cst import validate_cst
from pyFluenceOpt.dij import create_dij
from pyFluenceOpt.optimization.problems import (
    assemble_structures,
    normal_matrix,
    stack_dose_vector,
    stack_matrix,
)


@pytest.fixture
def influence_matrix():
    rng = np.random.default_rng(7)
    return rng.uniform(0.0, 1.0, size=(10, 4))


@pytest.fixture
def cst():
    return validate_cst(
        [
            {
                "name": "PTV",
                "voxels": [0, 1, 2, 3, 4],
                "terms": [
                    {"type": "unif", "dose": 1.0},
                    {"type": "ldvc", "dose": 0.95, "percent": 20.0, "weight": 2.0},
                ],
            },
            {
                "name": "OAR",
                "voxels": [4, 5, 6, 7, 8, 9],
                "terms": [{"type": "udvc", "dose": 0.3, "percent": 50.0}],
            },
        ]
    )


def test_assemble_structures(influence_matrix, cst):
    structures = assemble_structures(create_dij(influence_matrix), cst)

    assert [s.name for s in structures] == ["PTV", "OAR"]
    assert structures[0].num_voxels == 5
    assert structures[1].num_voxels == 5
    assert np.array_equal(structures[1].influence_matrix, influence_matrix[5:, :])

    unif, ldvc = structures[0].terms
    assert unif.allowed_violations is None
    assert ldvc.allowed_violations == 1
    assert ldvc.step_size == pytest.approx(2.5)
    assert ldvc.slack_step_coefficient == pytest.approx(1.0)
    assert ldvc.coefficient == pytest.approx(np.sqrt(2.0 / 5.0))
    assert structures[1].terms[0].allowed_violations == 2


def test_assemble_structures_with_overlap(influence_matrix, cst):
    structures = assemble_structures(create_dij(influence_matrix), cst, overlap_allowed=True)
    assert structures[1].num_voxels == 6


def test_assemble_empty_structure(influence_matrix):
    cst = validate_cst(
        [
            {"name": "PTV", "voxels": [0, 1, 2], "terms": [{"type": "unif", "dose": 1.0}]},
            {"name": "Ring", "voxels": [1, 2], "terms": [{"type": "unif", "dose": 0.5}]},
        ]
    )
    with pytest.raises(ValueError, match="Ring"):
        assemble_structures(create_dij(influence_matrix), cst)


def test_assemble_voxels_out_of_range(influence_matrix):
    cst = validate_cst(
        [{"name": "PTV", "voxels": [0, 10], "terms": [{"type": "unif", "dose": 1.0}]}]
    )
    with pytest.raises(ValueError):
        assemble_structures(create_dij(influence_matrix), cst)


@pytest.mark.parametrize(
    "subset, lambda_, num_rows",
    [("full", 1e-8, 19), ("full", 0.0, 15), ("unif", 1e-8, 9), ("unif", 0.0, 5)],
)
def test_stack_matrix_shapes(influence_matrix, cst, subset, lambda_, num_rows):
    structures = assemble_structures(create_dij(influence_matrix), cst)
    a = stack_matrix(structures, subset, lambda_, 4)
    d = stack_dose_vector(structures, subset, lambda_, 4)
    assert a.shape == (num_rows, 4)
    assert d.shape == (num_rows,)


def test_stack_matrix_regularization_block(influence_matrix, cst):
    structures = assemble_structures(create_dij(influence_matrix), cst)
    a = stack_matrix(structures, "full", 4.0, 4)
    d = stack_dose_vector(structures, "full", 4.0, 4)
    assert np.allclose(a[-4:, :], 2.0 * np.eye(4))
    assert np.all(d[-4:] == 0.0)


def test_stack_matrix_unknown_subset(influence_matrix, cst):
    structures = assemble_structures(create_dij(influence_matrix), cst)
    with pytest.raises(ValueError):
        stack_matrix(structures, "dvc", 0.0, 4)


def test_stack_matrix_sparse_matches_dense(influence_matrix, cst):
    dense = assemble_structures(create_dij(influence_matrix), cst)
    sparse = assemble_structures(create_dij(sp.csr_array(influence_matrix)), cst)

    a_dense = stack_matrix(dense, "full", 1e-4, 4)
    a_sparse = stack_matrix(sparse, "full", 1e-4, 4)

    assert sp.issparse(a_sparse)
    assert np.allclose(a_sparse.toarray(), a_dense)
    assert np.allclose(normal_matrix(a_sparse), normal_matrix(a_dense))


def test_normal_matrix(influence_matrix, cst):
    structures = assemble_structures(create_dij(influence_matrix), cst)
    a = stack_matrix(structures, "full", 1e-8, 4)
    h = normal_matrix(a)
    assert h.shape == (4, 4)
    assert np.allclose(h, a.T @ a)
    assert np.allclose(h, h.T)


def test_stacked_objective_matches_terms(influence_matrix, cst):
    rng = np.random.default_rng(3)
    lambda_ = 1e-2
    structures = assemble_structures(create_dij(influence_matrix), cst)

    for s in structures:
        for t in s.terms:
            if t.is_dvc:
                t.slack = rng.normal(size=s.num_voxels)

    x = rng.uniform(0.0, 2.0, size=4)
    a = stack_matrix(structures, "full", lambda_, 4)
    d = stack_dose_vector(structures, "full", lambda_, 4)
    stacked = 0.5 * np.sum((a @ x - d) ** 2)

    expected = lambda_ * (x @ x) / 2.0
    for s in structures:
        dose = s.dose(x)
        for t in s.terms:
            expected += t.term.compute_objective(dose, t.slack)

    assert stacked == pytest.approx(expected, rel=1e-10)
