"""
Posterior summaries of the latent-class model.

Two summaries are computed from a ``DrawCollection``:

1. Class-membership probability per condition. Quantiles of the
   coefficient matrix ``beta`` are taken elementwise across draws, multiplied
   by each design row, exponentiated and normalized across classes. This is a
   quantile-then-transform approximation of the credible interval of the
   normalized probability, not an exact interval.
2. Class-conditional marker-bin distributions. Elementwise quantiles of
   ``pi`` per class, in long form for faceted plotting.
"""

import logging
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .draws import DrawCollection
from .errors import InvalidConfigurationError, ShapeMismatchError

logger = logging.getLogger(__name__)

# Quantile levels of the credible intervals
INTERVAL_QUANTILES = (0.025, 0.975)
# Median, low and high quantile levels of the marker distributions
DISTRIBUTION_QUANTILES = (0.5, 0.025, 0.975)

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def _check_quantiles(quantiles: Sequence[float]) -> np.ndarray:
    q = np.asarray(quantiles, dtype=float)
    if q.ndim != 1 or q.size == 0:
        raise InvalidConfigurationError("At least one quantile level needed")
    if np.any((q < 0) | (q > 1)):
        raise InvalidConfigurationError(
            f"Quantile levels must lie in [0, 1], got {q.tolist()}"
        )
    return q


def _check_design_rows(design_rows, n_covariates: int) -> np.ndarray:
    rows = np.atleast_2d(np.asarray(design_rows, dtype=float))
    if rows.ndim != 2 or rows.shape[1] != n_covariates:
        raise ShapeMismatchError(
            f"Design rows must have {n_covariates} columns, got shape "
            f"{rows.shape}"
        )
    return rows


def _format_percent(value: float) -> str:
    return f"{value * 100:5.1f}%"


# ==============================================================================
# Class-membership probabilities
# ==============================================================================


def normalized_class_probabilities(
    draws: DrawCollection,
    design_rows,
    quantiles: Sequence[float] = INTERVAL_QUANTILES,
) -> np.ndarray:
    """
    Class probabilities evaluated at elementwise quantiles of ``beta``.

    Parameters
    ----------
    draws : DrawCollection
        Posterior draws holding ``beta`` of shape (n_draws, n_classes,
        n_covariates).
    design_rows : array-like
        Covariate rows of shape (n_conditions, n_covariates), e.g.
        ``[[1, 0], [1, 1]]``.
    quantiles : Sequence[float]
        Quantile levels.

    Returns
    -------
    np.ndarray
        Array of shape (n_quantiles, n_conditions, n_classes). Every vector
        along the last axis sums to one.
    """
    draws.validate()
    draws.check_finite(("beta",))
    q = _check_quantiles(quantiles)
    beta = draws["beta"]
    rows = _check_design_rows(design_rows, beta.shape[2])

    # (n_quantiles, n_classes, n_covariates)
    beta_q = np.quantile(beta, q, axis=0)
    logits = np.einsum("cp,qrp->qcr", rows, beta_q)
    # Shift by the max before exponentiating
    logits = logits - logits.max(axis=-1, keepdims=True)
    weights = np.exp(logits)
    return weights / weights.sum(axis=-1, keepdims=True)


# ------------------------------------------------------------------------------


def class_probability_intervals(
    draws: DrawCollection,
    design_rows,
    condition_levels: Optional[Sequence[str]] = None,
    quantiles: Sequence[float] = INTERVAL_QUANTILES,
) -> pd.DataFrame:
    """
    Credible interval of P(class | condition) for every class and condition.

    ``low`` and ``high`` are the smallest and largest normalized probability
    over the quantile evaluations, so ``low <= high`` holds even when the
    normalization reverses the order of the coefficient quantiles.

    Parameters
    ----------
    draws : DrawCollection
        Posterior draws.
    design_rows : array-like
        Covariate rows, reference condition first.
    condition_levels : Optional[Sequence[str]]
        Name of every design row. Defaults to ``"reference"`` and
        ``"treated"`` for two rows, ``"condition <i>"`` otherwise.
    quantiles : Sequence[float]
        Quantile levels.

    Returns
    -------
    pd.DataFrame
        One row per (class, condition) with columns ``class`` (1-based),
        ``condition``, ``low`` and ``high``.
    """
    probs = normalized_class_probabilities(draws, design_rows, quantiles)
    _, n_conditions, n_classes = probs.shape

    if condition_levels is None:
        if n_conditions == 2:
            condition_levels = ("reference", "treated")
        else:
            condition_levels = tuple(
                f"condition {i + 1}" for i in range(n_conditions)
            )
    if len(condition_levels) != n_conditions:
        raise ShapeMismatchError(
            f"{len(condition_levels)} condition names for {n_conditions} "
            "design rows"
        )

    low = probs.min(axis=0)
    high = probs.max(axis=0)
    records = [
        {
            "class": r + 1,
            "condition": str(condition_levels[c]),
            "low": float(low[c, r]),
            "high": float(high[c, r]),
        }
        for r in range(n_classes)
        for c in range(n_conditions)
    ]
    return pd.DataFrame.from_records(
        records, columns=["class", "condition", "low", "high"]
    )


# ------------------------------------------------------------------------------


def class_labels(intervals: pd.DataFrame) -> Dict[int, str]:
    """
    Descriptive label per class listing its probability interval under every
    condition, e.g. ``"reference [ 12.3%,  20.1%] | treated [ 40.2%,
    55.0%]"``.

    Classes keep their fitted order; nothing is renamed.
    """
    missing = {"class", "condition", "low", "high"} - set(intervals.columns)
    if missing:
        raise ShapeMismatchError(
            f"Interval table lacks columns {sorted(missing)}"
        )
    labels = {}
    for cls, group in intervals.groupby("class", sort=True):
        labels[int(cls)] = " | ".join(
            f"{row.condition} [{_format_percent(row.low)}, "
            f"{_format_percent(row.high)}]"
            for row in group.itertuples(index=False)
        )
    return labels


# ------------------------------------------------------------------------------


def canonical_class_order(
    draws: DrawCollection, design_rows, condition: int = -1
) -> np.ndarray:
    """
    Order of classes by decreasing median-coefficient probability under one
    design row (the treated condition by default).

    Returns
    -------
    np.ndarray
        0-based permutation for ``DrawCollection.reorder_classes``.
    """
    probs = normalized_class_probabilities(draws, design_rows, (0.5,))[0]
    # Stable sort keeps fitted order among ties
    return np.argsort(-probs[condition], kind="stable")


# ==============================================================================
# Class-conditional marker distributions
# ==============================================================================


def class_marker_distributions(
    draws: DrawCollection,
    marker_names: Optional[Sequence[str]] = None,
    quantiles: Sequence[float] = DISTRIBUTION_QUANTILES,
) -> pd.DataFrame:
    """
    Quantiles of every class-conditional bin distribution in long form.

    Parameters
    ----------
    draws : DrawCollection
        Posterior draws holding ``pi`` of shape (n_draws, n_classes,
        n_markers, n_bins).
    marker_names : Optional[Sequence[str]]
        Marker names. Defaults to ``"marker <j>"``.
    quantiles : Sequence[float]
        Central, low and high quantile levels, in that order.

    Returns
    -------
    pd.DataFrame
        Columns ``bin`` (1-based), ``marker``, ``class`` (1-based),
        ``percentiles``, ``value``, ``low`` and ``high``; one row per
        (class, marker, bin).
    """
    draws.validate()
    draws.check_finite(("pi",))
    q = _check_quantiles(quantiles)
    if q.size != 3:
        raise InvalidConfigurationError(
            "Three quantile levels needed: central, low and high"
        )
    if not q[1] <= q[0] <= q[2]:
        raise InvalidConfigurationError(
            f"Quantile levels {tuple(q)} are not ordered as central, low, high"
        )
    pi = draws["pi"]
    _, n_classes, n_markers, n_bins = pi.shape

    if marker_names is None:
        marker_names = [f"marker {j + 1}" for j in range(n_markers)]
    marker_names = [str(m) for m in marker_names]
    if len(marker_names) != n_markers:
        raise ShapeMismatchError(
            f"{len(marker_names)} marker names for {n_markers} markers"
        )
    percentiles = "/".join(f"{v * 100:g}" for v in q)

    frames = []
    for r in range(n_classes):
        # (3, n_markers, n_bins)
        pi_q = np.quantile(pi[:, r], q, axis=0)
        melted = []
        for name, values in zip(("value", "low", "high"), pi_q):
            frame = pd.DataFrame(values, index=marker_names)
            frame.columns = np.arange(1, n_bins + 1)
            frame = (
                frame.rename_axis("marker")
                .reset_index()
                .melt(id_vars="marker", var_name="bin", value_name=name)
            )
            melted.append(frame.set_index(["bin", "marker"]))
        merged = pd.concat(melted, axis=1).reset_index()
        merged["class"] = r + 1
        frames.append(merged)

    table = pd.concat(frames, ignore_index=True)
    table["bin"] = table["bin"].astype(int)
    table["percentiles"] = percentiles
    return table[
        ["bin", "marker", "class", "percentiles", "value", "low", "high"]
    ]
