"""
Tests for packaging and validation of the latent-class model inputs.
"""

import numpy as np
import pandas as pd
import pytest
from anndata import AnnData

from cytolca.core import (
    LatentClassData,
    build_model_data,
    compute_bin_boundaries,
    condition_design,
)
from cytolca.errors import InvalidConfigurationError, ShapeMismatchError
from cytolca.models.config import ModelConfig


def _data(**overrides):
    kwargs = dict(
        y=np.array([[1, 2], [3, 4], [2, 2]]),
        donor=np.array([1, 2, 2]),
        x=np.array([[1.0, 0.0], [1.0, 1.0], [1.0, 0.0]]),
        n_donors=2,
        n_bins=4,
    )
    kwargs.update(overrides)
    return LatentClassData(**kwargs)


# ------------------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------------------


def test_valid_data_passes():
    data = _data().validate(ModelConfig(n_classes=2, n_bins=4))
    assert data.n_cells == 3
    assert data.n_markers == 2
    assert data.n_covariates == 2


def test_single_bin_rejected():
    with pytest.raises(InvalidConfigurationError):
        _data(y=np.ones((3, 2), dtype=int), n_bins=1).validate()


def test_empty_table_rejected():
    with pytest.raises(InvalidConfigurationError):
        _data(
            y=np.empty((0, 2), dtype=int),
            donor=np.empty(0, dtype=int),
            x=np.empty((0, 2)),
        ).validate()


def test_donor_index_above_range_rejected():
    with pytest.raises(InvalidConfigurationError) as excinfo:
        _data(donor=np.array([1, 2, 3])).validate()
    assert isinstance(excinfo.value, ShapeMismatchError)


def test_donor_index_zero_rejected():
    with pytest.raises(ShapeMismatchError):
        _data(donor=np.array([0, 1, 2])).validate()


def test_code_outside_bins_rejected():
    with pytest.raises(ShapeMismatchError):
        _data(y=np.array([[1, 2], [3, 5], [2, 2]])).validate()


def test_mismatched_lengths_rejected():
    with pytest.raises(ShapeMismatchError):
        _data(donor=np.array([1, 2])).validate()
    with pytest.raises(ShapeMismatchError):
        _data(x=np.ones((2, 2))).validate()


def test_missing_intercept_rejected():
    with pytest.raises(InvalidConfigurationError):
        _data(x=np.array([[0.0, 0.0], [1.0, 1.0], [1.0, 0.0]])).validate()


def test_config_must_agree_with_data():
    with pytest.raises(InvalidConfigurationError):
        _data().validate(ModelConfig(n_classes=2, n_bins=5))
    with pytest.raises(InvalidConfigurationError):
        _data().validate(ModelConfig(n_classes=0, n_bins=4))
    with pytest.raises(ShapeMismatchError):
        _data().validate(ModelConfig(n_classes=2, n_bins=4, n_covariates=3))


def test_model_args_are_typed():
    args = _data().model_args()
    assert args["n_cells"] == 3
    assert args["n_markers"] == 2
    assert args["n_donors"] == 2
    assert args["y"].dtype == np.int32
    assert args["donor"].dtype == np.int32
    assert args["x"].dtype == np.float32


def test_design_rows_for_two_conditions():
    rows = _data(condition_levels=("ctrl", "stim")).design_rows()
    np.testing.assert_array_equal(rows, [[1.0, 0.0], [1.0, 1.0]])


# ------------------------------------------------------------------------------
# Builders
# ------------------------------------------------------------------------------


def test_condition_design_reference_first():
    x, levels = condition_design(["stim", "ctrl", "stim"], reference="stim")
    assert levels == ("stim", "ctrl")
    np.testing.assert_array_equal(x, [[1, 0], [1, 1], [1, 0]])


def test_condition_design_default_reference_is_sorted_first():
    x, levels = condition_design(["stim", "ctrl"])
    assert levels == ("ctrl", "stim")
    np.testing.assert_array_equal(x[:, 1], [1, 0])


def test_condition_design_unknown_reference():
    with pytest.raises(InvalidConfigurationError):
        condition_design(["a", "b"], reference="c")


def test_condition_design_single_level_keeps_two_columns():
    x, levels = condition_design(["ctrl", "ctrl"])
    assert x.shape == (2, 2)
    assert levels[0] == "ctrl"
    assert np.all(x[:, 1] == 0)


def test_build_model_data_from_anndata():
    obs = pd.DataFrame(
        {
            "patient": ["p2", "p1", "p2", "p1"],
            "condition": ["ctrl", "ctrl", "stim", "stim"],
        },
        index=[f"c{i}" for i in range(4)],
    )
    adata = AnnData(
        X=np.array(
            [[0.0, 1.0], [2.0, 3.0], [4.0, 5.0], [6.0, 8.0]], dtype=np.float32
        ),
        obs=obs,
        var=pd.DataFrame(index=["CD3", "CD19"]),
    )
    boundaries = compute_bin_boundaries(adata.X, 4)
    data = build_model_data(adata, boundaries)

    assert data.n_donors == 2
    assert data.donor_names == ("p1", "p2")
    np.testing.assert_array_equal(data.donor, [2, 1, 2, 1])
    assert data.marker_names == ("CD3", "CD19")
    assert data.condition_levels == ("ctrl", "stim")
    np.testing.assert_array_equal(data.x[:, 1], [0, 0, 1, 1])
    assert data.y.min() == 1
    assert data.y.max() == 4
    assert data.boundaries is boundaries


def test_build_model_data_missing_column():
    adata = AnnData(
        X=np.ones((2, 2), dtype=np.float32),
        obs=pd.DataFrame({"patient": ["a", "b"]}, index=["0", "1"]),
    )
    boundaries = compute_bin_boundaries(np.array([[0.0], [1.0]]), 2)
    with pytest.raises(InvalidConfigurationError):
        build_model_data(adata, boundaries)
