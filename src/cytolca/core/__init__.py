"""
Core data-preparation components for cytolca: the arcsinh transform, the
shared-boundary discretizer and the packaging of model inputs.
"""

from .transform import arcsinh_transform, transform_anndata
from .discretize import (
    BinBoundaries,
    compute_bin_boundaries,
    discretize,
    discretize_table,
)
from .model_data import LatentClassData, build_model_data, condition_design

__all__ = [
    "arcsinh_transform",
    "transform_anndata",
    "BinBoundaries",
    "compute_bin_boundaries",
    "discretize",
    "discretize_table",
    "LatentClassData",
    "build_model_data",
    "condition_design",
]
