"""
Equal-width discretization of transformed marker intensities.

One set of cut points is computed from the global range of the whole table
and shared by every marker, so that bin ``k`` means the same intensity range
for all markers. The outer cut points are replaced by -inf and +inf so that
every real value falls in exactly one of the K bins.
"""

import logging
from dataclasses import dataclass
from typing import Union

import numpy as np
import pandas as pd

from ..errors import InvalidConfigurationError

logger = logging.getLogger(__name__)

# ==============================================================================
# Bin boundaries
# ==============================================================================


@dataclass(frozen=True, eq=False)
class BinBoundaries:
    """
    Immutable cut points shared by all markers.

    Attributes
    ----------
    cut_points : np.ndarray
        Array of K+1 strictly increasing cut points. The first entry is -inf
        and the last is +inf.
    data_min : float
        Global minimum of the table the cut points were computed from.
    data_max : float
        Global maximum of the table the cut points were computed from.
    """

    cut_points: np.ndarray
    data_min: float
    data_max: float

    def __post_init__(self):
        cuts = np.asarray(self.cut_points, dtype=float)
        if cuts.ndim != 1 or cuts.size < 2:
            raise InvalidConfigurationError(
                "cut_points must be a 1D array with at least two entries"
            )
        if not (np.isneginf(cuts[0]) and np.isposinf(cuts[-1])):
            raise InvalidConfigurationError(
                "Outer cut points must be -inf and +inf"
            )
        if np.any(np.diff(cuts) <= 0):
            raise InvalidConfigurationError(
                f"Cut points must be strictly increasing, got {cuts}"
            )
        cuts.setflags(write=False)
        object.__setattr__(self, "cut_points", cuts)

    @property
    def n_bins(self) -> int:
        """Number of bins K."""
        return self.cut_points.size - 1

    @property
    def interior(self) -> np.ndarray:
        """The K-1 finite cut points."""
        return self.cut_points[1:-1]

    def __repr__(self) -> str:
        interior = ", ".join(f"{c:.4g}" for c in self.interior)
        return f"BinBoundaries(n_bins={self.n_bins}, interior=[{interior}])"


# ==============================================================================
# Discretization functions
# ==============================================================================


def _as_matrix(values: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
    """Convert the input table to a float matrix and reject empty input."""
    matrix = np.asarray(values, dtype=float)
    if matrix.ndim == 1:
        matrix = matrix[:, None]
    if matrix.ndim != 2 or matrix.size == 0:
        raise InvalidConfigurationError(
            f"Expected a non-empty 2D table, got shape {matrix.shape}"
        )
    if not np.all(np.isfinite(matrix)):
        raise InvalidConfigurationError(
            "Input table contains NaN or infinite values"
        )
    return matrix


# ------------------------------------------------------------------------------


def compute_bin_boundaries(
    values: Union[np.ndarray, pd.DataFrame], n_bins: int
) -> BinBoundaries:
    """
    Compute K+1 equal-width cut points over the global range of ``values``.

    Parameters
    ----------
    values : Union[np.ndarray, pd.DataFrame]
        Table of shape (n_cells, n_markers) with transformed intensities.
    n_bins : int
        Number of bins K.

    Returns
    -------
    BinBoundaries
        Cut points with the outer entries replaced by -inf and +inf.

    Raises
    ------
    InvalidConfigurationError
        If K < 1, the table is empty or non-finite, or K > 1 and all values
        are identical.
    """
    if int(n_bins) != n_bins or n_bins < 1:
        raise InvalidConfigurationError(
            f"Number of bins must be a positive integer, got {n_bins}"
        )
    n_bins = int(n_bins)
    matrix = _as_matrix(values)

    data_min = float(matrix.min())
    data_max = float(matrix.max())
    if n_bins > 1 and data_max <= data_min:
        raise InvalidConfigurationError(
            f"Cannot split a zero-width range [{data_min}, {data_max}] into "
            f"{n_bins} bins"
        )

    cut_points = np.linspace(data_min, data_max, n_bins + 1)
    cut_points[0] = -np.inf
    cut_points[-1] = np.inf
    boundaries = BinBoundaries(
        cut_points=cut_points, data_min=data_min, data_max=data_max
    )
    logger.info(
        "Bin boundaries over [%.4g, %.4g]: %s",
        data_min,
        data_max,
        np.array2string(boundaries.interior, precision=4),
    )
    return boundaries


# ------------------------------------------------------------------------------


def discretize(
    values: Union[np.ndarray, pd.DataFrame], boundaries: BinBoundaries
) -> Union[np.ndarray, pd.DataFrame]:
    """
    Map every value to its bin index in [1, K].

    Bins are right-closed: bin ``k`` holds values in ``(c[k-1], c[k]]``. A
    value equal to an interior cut point therefore lands in the lower bin.

    Parameters
    ----------
    values : Union[np.ndarray, pd.DataFrame]
        Table of shape (n_cells, n_markers).
    boundaries : BinBoundaries
        Cut points from ``compute_bin_boundaries``.

    Returns
    -------
    Union[np.ndarray, pd.DataFrame]
        Integer bin indices with the same shape as the input. DataFrames keep
        their index and columns.
    """
    matrix = _as_matrix(values)
    # searchsorted(side="left") returns k with c[k-1] < v <= c[k]
    bins = np.searchsorted(boundaries.cut_points, matrix, side="left")
    bins = bins.astype(np.int32).reshape(np.shape(values))
    if isinstance(values, pd.DataFrame):
        return pd.DataFrame(bins, index=values.index, columns=values.columns)
    return bins


# ------------------------------------------------------------------------------


def discretize_table(
    values: Union[np.ndarray, pd.DataFrame], n_bins: int
):
    """Compute boundaries and bin ``values`` in one call.

    Returns
    -------
    Tuple[BinBoundaries, Union[np.ndarray, pd.DataFrame]]
    """
    boundaries = compute_bin_boundaries(values, n_bins)
    return boundaries, discretize(values, boundaries)
