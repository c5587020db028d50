import pytest

from typing import Any
import numpy as np
import scipy.sparse as sp
from numpydantic import NDArray
import array_api_strict as xp

from pyFluenceOpt.core import PyFluenceOptBaseModel


class DummyModel(PyFluenceOptBaseModel):
    num_of_beams: int
    intensities: NDArray
    xp_intensities: Any
    influence: Any
    metadata: dict
    beam_blocks: NDArray


def _dummy_data(**overrides):
    data = {
        "num_of_beams": 2,
        "intensities": np.array([1.0, 2.0, 3.0]),
        "xp_intensities": xp.asarray([1.0, 2.0, 3.0]),
        "influence": sp.csr_array(np.eye(3)),
        "metadata": {"beam": {"angles": np.array([0.0, 52.0])}, "label": "prostate"},
        "beam_blocks": np.array([None, np.array([3.0, 4.0])], dtype=object),
    }
    data.update(overrides)
    return data


@pytest.fixture
def dummy_instance():
    return DummyModel.model_validate(_dummy_data())


@pytest.fixture
def another_dummy_instance():
    return DummyModel.model_validate(_dummy_data())


@pytest.mark.parametrize(
    "overrides",
    [
        {"num_of_beams": 3},
        {"intensities": np.array([1.0, 2.0, 4.0])},
        {"xp_intensities": xp.asarray([1.0, 2.0, 3.0, 4.0])},
        {"influence": sp.csr_array(2.0 * np.eye(3))},
        {"influence": np.eye(3)},
        {"metadata": {"beam": {"angles": np.array([0.0, 104.0])}, "label": "prostate"}},
        {"metadata": {"beams": {"angles": np.array([0.0, 52.0])}, "label": "prostate"}},
        {"beam_blocks": np.array([np.array([3.0, 4.0]), None], dtype=object)},
    ],
)
def test_operator_inequality(dummy_instance, overrides):
    assert dummy_instance != DummyModel.model_validate(_dummy_data(**overrides))


def test_operator_equality(dummy_instance, another_dummy_instance):
    assert dummy_instance == another_dummy_instance


def test_camel_case_aliases():
    data = _dummy_data()
    data["numOfBeams"] = data.pop("num_of_beams")
    data["xpIntensities"] = data.pop("xp_intensities")
    model = DummyModel.model_validate(data)
    assert model.num_of_beams == 2
    assert DummyModel.model_fields["num_of_beams"].alias == "numOfBeams"


def test_validate_assignment(dummy_instance):
    with pytest.raises(ValueError):
        dummy_instance.num_of_beams = "two"
