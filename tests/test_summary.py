"""
Tests for the posterior summaries.
"""

import numpy as np
import pandas as pd
import pytest

from cytolca.draws import DrawCollection
from cytolca.errors import (
    InvalidConfigurationError,
    NumericalInstabilityError,
    ShapeMismatchError,
)
from cytolca.summary import (
    normalized_class_probabilities,
    class_probability_intervals,
    class_labels,
    class_marker_distributions,
    canonical_class_order,
)

DESIGN_ROWS = np.array([[1.0, 0.0], [1.0, 1.0]])

# ------------------------------------------------------------------------------
# Class-membership probabilities
# ------------------------------------------------------------------------------


def test_normalized_probabilities_sum_to_one(fake_draws):
    probs = normalized_class_probabilities(
        fake_draws, DESIGN_ROWS, quantiles=(0.025, 0.5, 0.975)
    )
    assert probs.shape == (3, 2, 2)
    np.testing.assert_allclose(probs.sum(axis=-1), 1.0)


def test_normalized_probabilities_use_coefficient_quantiles():
    beta = np.zeros((5, 2, 2))
    beta[:, 1, 1] = np.array([0.0, 1.0, 2.0, 3.0, 4.0])
    draws = DrawCollection(
        {"beta": beta, "pi": np.full((5, 2, 1, 2), 0.5)}
    )
    probs = normalized_class_probabilities(draws, DESIGN_ROWS, (0.5,))
    # Reference row ignores the slope
    np.testing.assert_allclose(probs[0, 0], [0.5, 0.5])
    # Treated row: median slope 2 for class 2
    expected = np.exp([0.0, 2.0]) / np.exp([0.0, 2.0]).sum()
    np.testing.assert_allclose(probs[0, 1], expected)


def test_intervals_are_ordered(fake_draws):
    intervals = class_probability_intervals(fake_draws, DESIGN_ROWS)
    assert list(intervals.columns) == ["class", "condition", "low", "high"]
    assert len(intervals) == 4
    assert np.all(intervals["low"] <= intervals["high"])
    assert set(intervals["condition"]) == {"reference", "treated"}


def test_intervals_ordered_when_normalization_reverses_quantiles():
    """A class whose own coefficient is certain can have its probability
    interval reversed by the other class's uncertainty."""
    rng = np.random.default_rng(2)
    beta = np.zeros((500, 2, 2))
    beta[:, 1, 0] = rng.normal(0.0, 2.0, 500)
    draws = DrawCollection(
        {"beta": beta, "pi": np.full((500, 2, 1, 2), 0.5)}
    )
    intervals = class_probability_intervals(draws, DESIGN_ROWS)
    assert np.all(intervals["low"] <= intervals["high"])
    assert np.all(intervals["high"] - intervals["low"] > 0.1)


def test_treatment_effect_direction(fake_draws):
    intervals = class_probability_intervals(
        fake_draws, DESIGN_ROWS, condition_levels=("ctrl", "stim")
    ).set_index(["class", "condition"])
    # Class 2 has a positive slope, so it gains mass under treatment
    assert intervals.loc[(2, "stim"), "low"] > intervals.loc[(2, "ctrl"), "high"]
    assert intervals.loc[(1, "stim"), "high"] < intervals.loc[(1, "ctrl"), "low"]


def test_intervals_reject_bad_design_rows(fake_draws):
    with pytest.raises(ShapeMismatchError):
        class_probability_intervals(fake_draws, np.ones((2, 3)))
    with pytest.raises(ShapeMismatchError):
        class_probability_intervals(
            fake_draws, DESIGN_ROWS, condition_levels=("a",)
        )


def test_intervals_reject_bad_quantiles(fake_draws):
    with pytest.raises(InvalidConfigurationError):
        class_probability_intervals(fake_draws, DESIGN_ROWS, quantiles=(1.5,))


def test_malformed_draws_raise_shape_mismatch():
    draws = DrawCollection(
        {"beta": np.zeros((10, 2)), "pi": np.full((10, 2, 3, 4), 0.25)}
    )
    with pytest.raises(ShapeMismatchError):
        class_probability_intervals(draws, DESIGN_ROWS)
    with pytest.raises(ShapeMismatchError):
        class_marker_distributions(draws)


# ------------------------------------------------------------------------------
# Labels
# ------------------------------------------------------------------------------


def test_class_labels_format():
    intervals = pd.DataFrame(
        {
            "class": [1, 1, 2, 2],
            "condition": ["ctrl", "stim", "ctrl", "stim"],
            "low": [0.1, 0.2, 0.7, 0.6],
            "high": [0.3, 0.4, 0.9, 0.8],
        }
    )
    labels = class_labels(intervals)
    assert list(labels) == [1, 2]
    assert labels[1] == "ctrl [ 10.0%,  30.0%] | stim [ 20.0%,  40.0%]"
    assert labels[2] == "ctrl [ 70.0%,  90.0%] | stim [ 60.0%,  80.0%]"


def test_class_labels_fixed_width(fake_draws):
    labels = class_labels(class_probability_intervals(fake_draws, DESIGN_ROWS))
    lengths = {len(label) for label in labels.values()}
    assert len(lengths) == 1


def test_class_labels_need_interval_columns():
    with pytest.raises(ShapeMismatchError):
        class_labels(pd.DataFrame({"class": [1]}))


def test_canonical_class_order(fake_draws):
    order = canonical_class_order(fake_draws, DESIGN_ROWS)
    # Class 2 dominates under treatment
    np.testing.assert_array_equal(order, [1, 0])
    reordered = fake_draws.reorder_classes(order)
    intervals = class_probability_intervals(reordered, DESIGN_ROWS)
    treated = intervals[intervals["condition"] == "treated"].set_index("class")
    assert treated.loc[1, "low"] > treated.loc[2, "high"]


# ------------------------------------------------------------------------------
# Class-conditional marker distributions
# ------------------------------------------------------------------------------


def test_marker_distribution_table(fake_draws):
    table = class_marker_distributions(
        fake_draws, marker_names=["CD3", "CD19", "CD45"]
    )
    assert list(table.columns) == [
        "bin",
        "marker",
        "class",
        "percentiles",
        "value",
        "low",
        "high",
    ]
    # R * J * K rows, one per (class, marker, bin)
    assert len(table) == 2 * 3 * 4
    assert not table.duplicated(["bin", "marker", "class"]).any()
    assert set(table["bin"]) == {1, 2, 3, 4}
    assert set(table["class"]) == {1, 2}
    assert set(table["marker"]) == {"CD3", "CD19", "CD45"}
    assert np.all(table["low"] <= table["value"] + 1e-12)
    assert np.all(table["value"] <= table["high"] + 1e-12)
    assert set(table["percentiles"]) == {"50/2.5/97.5"}


def test_marker_distribution_values_match_quantiles(fake_draws):
    table = class_marker_distributions(fake_draws)
    row = table[
        (table["class"] == 2)
        & (table["marker"] == "marker 3")
        & (table["bin"] == 4)
    ].iloc[0]
    pi = fake_draws["pi"][:, 1, 2, 3]
    np.testing.assert_allclose(row["value"], np.quantile(pi, 0.5))
    np.testing.assert_allclose(row["low"], np.quantile(pi, 0.025))
    np.testing.assert_allclose(row["high"], np.quantile(pi, 0.975))


def test_marker_distribution_rejects_wrong_marker_count(fake_draws):
    with pytest.raises(ShapeMismatchError):
        class_marker_distributions(fake_draws, marker_names=["CD3"])


def test_marker_distribution_needs_three_quantiles(fake_draws):
    with pytest.raises(InvalidConfigurationError):
        class_marker_distributions(fake_draws, quantiles=(0.5, 0.025))


def test_marker_distribution_rejects_misordered_quantiles(fake_draws):
    with pytest.raises(InvalidConfigurationError):
        class_marker_distributions(fake_draws, quantiles=(0.025, 0.5, 0.975))


# ------------------------------------------------------------------------------
# Non-finite draws
# ------------------------------------------------------------------------------


@pytest.fixture
def nan_draws():
    return DrawCollection(
        {
            "beta": np.full((10, 2, 2), np.nan),
            "pi": np.full((10, 2, 3, 4), np.nan),
        }
    )


def test_intervals_reject_nan_draws(nan_draws):
    with pytest.raises(NumericalInstabilityError):
        class_probability_intervals(nan_draws, DESIGN_ROWS)


def test_marker_distribution_rejects_nan_draws(nan_draws):
    with pytest.raises(NumericalInstabilityError):
        class_marker_distributions(nan_draws)


def test_nan_pi_does_not_block_class_probabilities(fake_draws):
    pi = fake_draws["pi"].copy()
    pi[0] = np.nan
    draws = DrawCollection({"beta": fake_draws["beta"], "pi": pi})
    probs = normalized_class_probabilities(draws, DESIGN_ROWS)
    assert np.all(np.isfinite(probs))
    with pytest.raises(NumericalInstabilityError):
        class_marker_distributions(draws)
