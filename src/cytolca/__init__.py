"""
cytolca: Bayesian latent-class regression for mass cytometry

Discretizes CyTOF marker intensities and fits a latent-class model whose
mixture logits depend on experimental condition and patient random effects.
"""

import warnings

# Suppress FutureWarnings from scanpy/anndata about deprecated __version__ usage
warnings.filterwarnings(
    "ignore",
    message=".*__version__ is deprecated.*",
    category=FutureWarning,
)

from .errors import (
    InvalidConfigurationError,
    ShapeMismatchError,
    NumericalInstabilityError,
    NonConvergenceWarning,
)
from .core import (
    BinBoundaries,
    LatentClassData,
    arcsinh_transform,
    compute_bin_boundaries,
    discretize,
    build_model_data,
)
from .models.config import (
    ModelConfig,
    PriorConfig,
    SVIConfig,
    MCMCConfig,
    DataConfig,
    GuideFamily,
    InferenceMethod,
)
from .draws import DrawCollection
from .summary import (
    class_probability_intervals,
    class_labels,
    class_marker_distributions,
    canonical_class_order,
)
from .inference import (
    run_lca,
    LCAResults,
    PosteriorSolver,
    SVISolver,
    MCMCSolver,
    fit_posterior,
)

from . import viz
from . import data_loader
from . import simulate

__version__ = "0.1.0"

__all__ = [
    "InvalidConfigurationError",
    "ShapeMismatchError",
    "NumericalInstabilityError",
    "NonConvergenceWarning",
    "BinBoundaries",
    "LatentClassData",
    "arcsinh_transform",
    "compute_bin_boundaries",
    "discretize",
    "build_model_data",
    "ModelConfig",
    "PriorConfig",
    "SVIConfig",
    "MCMCConfig",
    "DataConfig",
    "GuideFamily",
    "InferenceMethod",
    "DrawCollection",
    "class_probability_intervals",
    "class_labels",
    "class_marker_distributions",
    "canonical_class_order",
    "run_lca",
    "LCAResults",
    "PosteriorSolver",
    "SVISolver",
    "MCMCSolver",
    "fit_posterior",
    "viz",
    "data_loader",
    "simulate",
]
