"""
Posterior solvers behind a narrow interface.

A solver takes a model configuration and validated model inputs and returns a
``DrawCollection``. The two backends wrap the SVI and NUTS engines; a registry
keyed by ``InferenceMethod`` picks the backend from the configuration.
"""

import logging
import warnings
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Union

from jax import random

from ..core import LatentClassData
from ..draws import DrawCollection
from ..errors import NonConvergenceWarning
from ..models.config import (
    ModelConfig,
    SVIConfig,
    MCMCConfig,
    InferenceMethod,
)

logger = logging.getLogger(__name__)

# ==============================================================================
# Solver interface
# ==============================================================================


class PosteriorSolver(ABC):
    """Produces posterior draws for the latent-class model."""

    method: str = "base"

    @abstractmethod
    def fit(
        self, model_config: ModelConfig, data: LatentClassData
    ) -> DrawCollection:
        """Fit the model to ``data`` and return posterior draws."""


# ------------------------------------------------------------------------------


class SVISolver(PosteriorSolver):
    """
    Variational solver: optimizes the ELBO with an autoguide, then draws
    from the fitted approximation.

    Parameters
    ----------
    svi_config : Optional[SVIConfig]
        Optimization settings. Defaults to ``SVIConfig()``.
    seed : int, default=42
        Seed for optimization; the draw seed is derived from it.
    progress : bool, default=True
        Show the progress bar.
    """

    method = "svi"

    def __init__(
        self,
        svi_config: Optional[SVIConfig] = None,
        seed: int = 42,
        progress: bool = True,
    ):
        self.svi_config = svi_config or SVIConfig()
        self.seed = seed
        self.progress = progress
        self.results = None

    def fit(
        self, model_config: ModelConfig, data: LatentClassData
    ) -> DrawCollection:
        from ..svi import SVIInferenceEngine, LatentClassSVIResults

        run = SVIInferenceEngine.run_inference(
            model_config,
            data,
            svi_config=self.svi_config,
            seed=self.seed,
            progress=self.progress,
        )
        self.results = LatentClassSVIResults.from_run(run, model_config, data)
        return self.results.get_draws(
            rng_key=random.PRNGKey(self.seed + 1),
            n_samples=self.svi_config.n_draws,
        )


# ------------------------------------------------------------------------------


class MCMCSolver(PosteriorSolver):
    """
    NUTS solver. Draws are provisional when the split r-hat of ``beta`` or
    ``pi`` exceeds ``MCMCConfig.max_r_hat``.
    """

    method = "mcmc"

    def __init__(
        self,
        mcmc_config: Optional[MCMCConfig] = None,
        seed: int = 42,
        progress: bool = True,
    ):
        self.mcmc_config = mcmc_config or MCMCConfig()
        self.seed = seed
        self.progress = progress
        self.results = None

    def fit(
        self, model_config: ModelConfig, data: LatentClassData
    ) -> DrawCollection:
        from ..mcmc import MCMCInferenceEngine, LatentClassMCMCResults

        mcmc = MCMCInferenceEngine.run_inference(
            model_config,
            data,
            mcmc_config=self.mcmc_config,
            seed=self.seed,
            progress=self.progress,
        )
        self.results = LatentClassMCMCResults.from_mcmc(
            mcmc,
            model_config,
            data,
            max_r_hat=self.mcmc_config.max_r_hat,
        )
        return self.results.get_draws()


# ==============================================================================
# Registry
# ==============================================================================

_SOLVERS: Dict[InferenceMethod, Callable[..., PosteriorSolver]] = {
    InferenceMethod.SVI: SVISolver,
    InferenceMethod.MCMC: MCMCSolver,
}


def get_solver(
    model_config: ModelConfig,
    config: Optional[Union[SVIConfig, MCMCConfig]] = None,
    seed: int = 42,
    progress: bool = True,
) -> PosteriorSolver:
    """
    Build the solver matching ``model_config.inference_method``.

    Raises
    ------
    ValueError
        If ``config`` does not match the inference method.
    """
    method = model_config.inference_method
    expected = SVIConfig if method == InferenceMethod.SVI else MCMCConfig
    if config is not None and not isinstance(config, expected):
        raise ValueError(
            f"Expected {expected.__name__} for {method.value}, "
            f"got {type(config).__name__}"
        )
    return _SOLVERS[method](config, seed=seed, progress=progress)


# ==============================================================================
# Driver
# ==============================================================================


def fit_posterior(
    solver: PosteriorSolver,
    model_config: ModelConfig,
    data: LatentClassData,
) -> DrawCollection:
    """
    Validate inputs, run ``solver`` and check the draws it returns.

    Parameters
    ----------
    solver : PosteriorSolver
        Backend producing the draws.
    model_config : ModelConfig
        Model structure (R, K, P) and priors.
    data : LatentClassData
        Model inputs.

    Returns
    -------
    DrawCollection
        Finite draws of consistent shape. ``provisional`` is set when the
        solver did not converge.

    Raises
    ------
    InvalidConfigurationError
        Before the solver runs, if the inputs cannot define a model.
    NumericalInstabilityError
        If the solver produced non-finite draws.
    ShapeMismatchError
        If the draws do not match the configured dimensions.

    Warns
    -----
    NonConvergenceWarning
        If the draws are provisional.
    """
    data.validate(model_config)

    logger.info(
        "Fitting latent-class model with %s: N=%d, D=%d, R=%d, J=%d, K=%d",
        solver.method,
        data.n_cells,
        data.n_donors,
        model_config.n_classes,
        data.n_markers,
        data.n_bins,
    )
    draws = solver.fit(model_config, data)

    draws.check_finite()
    draws.validate(
        n_classes=model_config.n_classes,
        n_markers=data.n_markers,
        n_bins=data.n_bins,
        n_covariates=data.n_covariates,
    )

    if draws.provisional:
        warnings.warn(
            f"The {draws.method} solver did not meet its convergence "
            "criterion; posterior draws are provisional.",
            NonConvergenceWarning,
            stacklevel=2,
        )
    return draws
