"""Variance-stabilizing transforms for mass cytometry intensities."""

import numpy as np
import pandas as pd
from anndata import AnnData
from typing import Optional, Union

# ==============================================================================
# Inverse hyperbolic sine
# ==============================================================================


def arcsinh_transform(
    values: Union[np.ndarray, pd.DataFrame], cofactor: float = 5.0
) -> Union[np.ndarray, pd.DataFrame]:
    """
    Compress raw intensities with ``arcsinh(x / cofactor)``.

    Parameters
    ----------
    values : Union[np.ndarray, pd.DataFrame]
        Raw channel intensities.
    cofactor : float, default=5.0
        Scale below which the transform is approximately linear. Five is the
        usual choice for CyTOF data.

    Returns
    -------
    Union[np.ndarray, pd.DataFrame]
        Transformed values with the same type and shape as the input.
    """
    if cofactor <= 0:
        raise ValueError(f"cofactor must be positive, got {cofactor}")
    if isinstance(values, pd.DataFrame):
        return np.arcsinh(values / cofactor)
    return np.arcsinh(np.asarray(values, dtype=float) / cofactor)


# ------------------------------------------------------------------------------


def transform_anndata(
    adata: AnnData, cofactor: float = 5.0, raw_layer: Optional[str] = "raw"
) -> AnnData:
    """
    Return a copy of ``adata`` whose ``X`` holds arcsinh-transformed values.

    The untransformed intensities are kept in ``adata.layers[raw_layer]``
    unless ``raw_layer`` is None.
    """
    adata = adata.copy()
    raw = np.asarray(adata.X, dtype=float)
    if raw_layer is not None:
        adata.layers[raw_layer] = raw
    adata.X = arcsinh_transform(raw, cofactor=cofactor)
    adata.uns["arcsinh_cofactor"] = cofactor
    return adata
