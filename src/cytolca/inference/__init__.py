"""
Unified entry point for latent-class analysis of CyTOF data.

``run_lca`` takes the assembled cells x markers table through the transform,
the discretizer, the posterior solver and the summarizer.
"""

import logging
from typing import Optional, Union

from anndata import AnnData

from ..core import (
    compute_bin_boundaries,
    transform_anndata,
    build_model_data,
)
from ..data_loader import subsample_cells
from ..models.config import (
    ModelConfig,
    DataConfig,
    SVIConfig,
    MCMCConfig,
)
from ..summary import (
    class_probability_intervals,
    class_labels,
    class_marker_distributions,
    canonical_class_order,
)
from .solvers import (
    PosteriorSolver,
    SVISolver,
    MCMCSolver,
    get_solver,
    fit_posterior,
)
from .results import LCAResults

logger = logging.getLogger(__name__)

__all__ = [
    "run_lca",
    "LCAResults",
    "PosteriorSolver",
    "SVISolver",
    "MCMCSolver",
    "get_solver",
    "fit_posterior",
]


# ==============================================================================
# Public API
# ==============================================================================


def run_lca(
    adata: AnnData,
    model_config: Optional[ModelConfig] = None,
    data_config: Optional[DataConfig] = None,
    inference_config: Optional[Union[SVIConfig, MCMCConfig]] = None,
    seed: int = 42,
    solver: Optional[PosteriorSolver] = None,
    canonicalize: bool = False,
    progress: bool = True,
) -> LCAResults:
    """
    Fit the latent-class regression model to raw CyTOF intensities and
    summarize the posterior.

    Parameters
    ----------
    adata : AnnData
        Raw cells x markers intensities with ``patient`` and ``condition``
        columns in ``obs`` (as produced by ``load_cytof_experiment``).
    model_config : Optional[ModelConfig]
        Number of classes and bins, guide family and priors. Defaults to
        ``ModelConfig()``.
    data_config : Optional[DataConfig]
        Subsample size, arcsinh cofactor and reference condition.
    inference_config : Optional[Union[SVIConfig, MCMCConfig]]
        Solver settings matching ``model_config.inference_method``.
    seed : int, default=42
        Seed for subsampling and inference.
    solver : Optional[PosteriorSolver]
        Backend to use instead of the one built from the configuration.
    canonicalize : bool, default=False
        Reorder classes by decreasing treated-condition probability before
        summarizing.
    progress : bool, default=True
        Show progress bars.

    Returns
    -------
    LCAResults
        Boundaries, model inputs, draws and summaries. ``provisional`` is
        set, and a ``NonConvergenceWarning`` emitted, when the solver did not
        converge.

    Raises
    ------
    InvalidConfigurationError
        If the inputs cannot define a model. Raised before any solver runs.
    NumericalInstabilityError
        If the solver diverged. No summary is computed.
    """
    model_config = model_config or ModelConfig()
    data_config = data_config or DataConfig()

    cells = subsample_cells(adata, data_config.n_cells, seed=seed)
    cells = transform_anndata(cells, cofactor=data_config.cofactor)

    boundaries = compute_bin_boundaries(cells.X, model_config.n_bins)
    data = build_model_data(
        cells,
        boundaries,
        reference_condition=data_config.reference_condition,
    )

    if solver is None:
        solver = get_solver(
            model_config, inference_config, seed=seed, progress=progress
        )
    draws = fit_posterior(solver, model_config, data)

    design_rows = data.design_rows()
    if canonicalize:
        order = canonical_class_order(draws, design_rows)
        logger.info("Reordering classes as %s", (order + 1).tolist())
        draws = draws.reorder_classes(order)

    intervals = class_probability_intervals(
        draws, design_rows, condition_levels=data.condition_levels or None
    )
    labels = class_labels(intervals)
    for cls, label in labels.items():
        logger.info("Class %d: %s", cls, label)
    marker_distributions = class_marker_distributions(
        draws, marker_names=data.marker_names
    )

    return LCAResults(
        boundaries=boundaries,
        data=data,
        draws=draws,
        intervals=intervals,
        labels=labels,
        marker_distributions=marker_distributions,
        provisional=draws.provisional,
        solver_results=getattr(solver, "results", None),
    )
