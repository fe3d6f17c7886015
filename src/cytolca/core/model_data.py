"""
Packaging of discretized observations into the inputs of the latent-class
model.

``LatentClassData`` is the fixed-size table the model consumes: integer bin
codes ``y`` (N x J), donor indices (N) and design rows ``x`` (N x P). Codes and
donor indices are 1-based, matching how bins and donors are reported to the
analyst; the model converts them to 0-based indices internally.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import jax.numpy as jnp
from anndata import AnnData

from ..errors import InvalidConfigurationError, ShapeMismatchError
from .discretize import BinBoundaries, discretize

logger = logging.getLogger(__name__)

# ==============================================================================
# LatentClassData class
# ==============================================================================


@dataclass(frozen=True, eq=False)
class LatentClassData:
    """
    Immutable model inputs.

    Attributes
    ----------
    y : np.ndarray
        Bin codes of shape (n_cells, n_markers) with values in [1, n_bins].
    donor : np.ndarray
        Donor index of every cell, values in [1, n_donors].
    x : np.ndarray
        Design matrix of shape (n_cells, n_covariates). The first column is
        the intercept.
    n_donors : int
        Number of donors D.
    n_bins : int
        Number of bins K.
    marker_names : Tuple[str, ...]
        Name of every marker column of ``y``.
    donor_names : Tuple[str, ...]
        Patient identifier of every donor index.
    condition_levels : Tuple[str, ...]
        Condition levels, reference first. Level ``i > 0`` is encoded by
        column ``i`` of ``x``.
    boundaries : Optional[BinBoundaries]
        Cut points used to build ``y``, if it came from the discretizer.
    """

    y: np.ndarray
    donor: np.ndarray
    x: np.ndarray
    n_donors: int
    n_bins: int
    marker_names: Tuple[str, ...] = ()
    donor_names: Tuple[str, ...] = ()
    condition_levels: Tuple[str, ...] = ()
    boundaries: Optional[BinBoundaries] = None

    # --------------------------------------------------------------------------
    # Dimensions
    # --------------------------------------------------------------------------

    @property
    def n_cells(self) -> int:
        return int(np.shape(self.y)[0])

    @property
    def n_markers(self) -> int:
        return int(np.shape(self.y)[1]) if np.ndim(self.y) == 2 else 0

    @property
    def n_covariates(self) -> int:
        return int(np.shape(self.x)[1]) if np.ndim(self.x) == 2 else 0

    # --------------------------------------------------------------------------
    # Validation
    # --------------------------------------------------------------------------

    def validate(self, model_config=None) -> "LatentClassData":
        """
        Check every shape and range rule before a solver is invoked.

        Parameters
        ----------
        model_config : ModelConfig, optional
            If given, also checks that the configuration agrees with the data.

        Returns
        -------
        LatentClassData
            ``self``, to allow chaining.

        Raises
        ------
        InvalidConfigurationError
            For empty input or degenerate dimensions.
        ShapeMismatchError
            For arrays of the wrong shape or values outside their range.
        """
        y = np.asarray(self.y)
        donor = np.asarray(self.donor)
        x = np.asarray(self.x)

        if y.ndim != 2:
            raise ShapeMismatchError(
                f"y must be a (n_cells, n_markers) table, got shape {y.shape}"
            )
        if y.shape[0] == 0 or y.shape[1] == 0:
            raise InvalidConfigurationError(
                f"Observation table is empty (shape {y.shape})"
            )
        n_cells, n_markers = y.shape

        if self.n_bins < 2:
            raise InvalidConfigurationError(
                f"At least two bins are needed to discriminate classes, got "
                f"n_bins={self.n_bins}"
            )
        if self.n_donors < 1:
            raise InvalidConfigurationError(
                f"n_donors must be positive, got {self.n_donors}"
            )
        if donor.shape != (n_cells,):
            raise ShapeMismatchError(
                f"donor must have shape ({n_cells},), got {donor.shape}"
            )
        if x.ndim != 2 or x.shape[0] != n_cells or x.shape[1] < 1:
            raise ShapeMismatchError(
                f"x must have shape ({n_cells}, n_covariates), got {x.shape}"
            )

        if not np.issubdtype(y.dtype, np.integer) and not np.all(
            np.mod(y, 1) == 0
        ):
            raise ShapeMismatchError("y must hold integer bin codes")
        if y.min() < 1 or y.max() > self.n_bins:
            raise ShapeMismatchError(
                f"Bin codes must lie in [1, {self.n_bins}], got "
                f"[{y.min()}, {y.max()}]"
            )
        if not np.issubdtype(donor.dtype, np.integer) and not np.all(
            np.mod(donor, 1) == 0
        ):
            raise ShapeMismatchError("donor must hold integer indices")
        if donor.min() < 1 or donor.max() > self.n_donors:
            raise ShapeMismatchError(
                f"Donor indices must lie in [1, {self.n_donors}], got "
                f"[{donor.min()}, {donor.max()}]"
            )
        if not np.all(np.isfinite(x)):
            raise InvalidConfigurationError("x contains non-finite values")
        if not np.all(x[:, 0] == 1):
            raise InvalidConfigurationError(
                "The first column of x must be the intercept (all ones)"
            )

        if self.marker_names and len(self.marker_names) != n_markers:
            raise ShapeMismatchError(
                f"{len(self.marker_names)} marker names for {n_markers} "
                "markers"
            )
        if self.donor_names and len(self.donor_names) != self.n_donors:
            raise ShapeMismatchError(
                f"{len(self.donor_names)} donor names for {self.n_donors} "
                "donors"
            )

        if model_config is not None:
            if model_config.n_classes < 1:
                raise InvalidConfigurationError(
                    f"n_classes must be positive, got {model_config.n_classes}"
                )
            if model_config.n_bins != self.n_bins:
                raise InvalidConfigurationError(
                    f"Model expects {model_config.n_bins} bins but the data "
                    f"were binned into {self.n_bins}"
                )
            if model_config.n_covariates != x.shape[1]:
                raise ShapeMismatchError(
                    f"Model expects {model_config.n_covariates} covariates "
                    f"but x has {x.shape[1]} columns"
                )
        return self

    # --------------------------------------------------------------------------
    # Model arguments
    # --------------------------------------------------------------------------

    def model_args(self) -> Dict[str, object]:
        """Keyword arguments for ``latent_class_model``."""
        return {
            "n_cells": self.n_cells,
            "n_markers": self.n_markers,
            "n_donors": self.n_donors,
            "donor": jnp.asarray(self.donor, dtype=jnp.int32),
            "x": jnp.asarray(self.x, dtype=jnp.float32),
            "y": jnp.asarray(self.y, dtype=jnp.int32),
        }

    # --------------------------------------------------------------------------

    def design_rows(self) -> np.ndarray:
        """
        One design row per condition level, reference first.

        With two levels these are ``[1, 0]`` (reference) and ``[1, 1]``
        (treated).
        """
        n_levels = max(len(self.condition_levels), self.n_covariates)
        rows = np.zeros((n_levels, self.n_covariates))
        rows[:, 0] = 1.0
        for level in range(1, n_levels):
            rows[level, level] = 1.0
        return rows


# ==============================================================================
# Builders
# ==============================================================================


def condition_design(
    conditions: Sequence[str], reference: Optional[str] = None
) -> Tuple[np.ndarray, Tuple[str, ...]]:
    """
    Build the design matrix (intercept plus one indicator per non-reference
    level) for a sequence of condition labels.

    Parameters
    ----------
    conditions : Sequence[str]
        Condition label of every cell.
    reference : Optional[str]
        Reference level. If None, the first level in sorted order.

    Returns
    -------
    Tuple[np.ndarray, Tuple[str, ...]]
        Design matrix of shape (n_cells, n_levels) and the levels, reference
        first.
    """
    labels = pd.Series(np.asarray(conditions), dtype=str)
    levels = sorted(labels.unique())
    if len(levels) == 0:
        raise InvalidConfigurationError("No condition labels given")
    if reference is None:
        reference = levels[0]
    if reference not in levels:
        raise InvalidConfigurationError(
            f"Reference condition {reference!r} not among {levels}"
        )
    levels = [reference] + [lvl for lvl in levels if lvl != reference]
    if len(levels) == 1:
        logger.warning(
            "Only one condition level (%r) present; the treatment "
            "coefficient is informed by the prior alone",
            reference,
        )
        levels.append(f"not {reference}")

    x = np.zeros((len(labels), len(levels)))
    x[:, 0] = 1.0
    for i, level in enumerate(levels[1:], start=1):
        x[:, i] = (labels == level).to_numpy(dtype=float)
    return x, tuple(levels)


# ------------------------------------------------------------------------------


def build_model_data(
    adata: AnnData,
    boundaries: BinBoundaries,
    patient_key: str = "patient",
    condition_key: str = "condition",
    reference_condition: Optional[str] = None,
) -> LatentClassData:
    """
    Discretize ``adata.X`` and package it with donor and design information.

    Parameters
    ----------
    adata : AnnData
        Transformed cells x markers table with patient and condition columns
        in ``adata.obs``.
    boundaries : BinBoundaries
        Cut points shared by every marker.
    patient_key : str, default="patient"
        Column of ``adata.obs`` holding the patient identifier.
    condition_key : str, default="condition"
        Column of ``adata.obs`` holding the condition label.
    reference_condition : Optional[str]
        Reference condition level.

    Returns
    -------
    LatentClassData
        Validated model inputs.
    """
    for key in (patient_key, condition_key):
        if key not in adata.obs.columns:
            raise InvalidConfigurationError(
                f"Column {key!r} not found in adata.obs"
            )
    if adata.n_obs == 0:
        raise InvalidConfigurationError("No cells to model")

    y = discretize(np.asarray(adata.X, dtype=float), boundaries)

    patients = pd.Categorical(adata.obs[patient_key].astype(str))
    donor = patients.codes.astype(np.int32) + 1

    x, levels = condition_design(
        adata.obs[condition_key].to_numpy(), reference=reference_condition
    )

    data = LatentClassData(
        y=y,
        donor=donor,
        x=x,
        n_donors=len(patients.categories),
        n_bins=boundaries.n_bins,
        marker_names=tuple(str(m) for m in adata.var_names),
        donor_names=tuple(str(p) for p in patients.categories),
        condition_levels=levels,
        boundaries=boundaries,
    )
    return data.validate()
