"""
Inference engine for MCMC.

This module handles the execution of MCMC inference using NUTS.
"""

import logging
from typing import Any, Dict, Optional

from jax import random
from numpyro.infer import MCMC, NUTS

from ..core import LatentClassData
from ..models import get_model_and_guide
from ..models.config import ModelConfig, MCMCConfig

logger = logging.getLogger(__name__)


class MCMCInferenceEngine:
    """Handles MCMC inference execution."""

    @staticmethod
    def run_inference(
        model_config: ModelConfig,
        data: LatentClassData,
        mcmc_config: Optional[MCMCConfig] = None,
        seed: int = 42,
        progress: bool = True,
    ) -> MCMC:
        """Execute MCMC inference using NUTS.

        Parameters
        ----------
        model_config : ModelConfig
            Model configuration object.
        data : LatentClassData
            Validated model inputs.
        mcmc_config : Optional[MCMCConfig], default=None
            Sampler settings. Defaults to ``MCMCConfig()``.
        seed : int, default=42
            Random seed for reproducibility.
        progress : bool, default=True
            Show NumPyro's progress bar.

        Returns
        -------
        numpyro.infer.MCMC
            Results from the MCMC run containing samples and diagnostics.
        """
        mcmc_config = mcmc_config or MCMCConfig()

        # Get model function (no guide needed for MCMC)
        model, _ = get_model_and_guide(model_config)

        # Create NUTS sampler
        nuts_kwargs: Dict[str, Any] = dict(mcmc_config.mcmc_kwargs or {})
        nuts_kernel = NUTS(model, **nuts_kwargs)

        # Create MCMC instance
        mcmc = MCMC(
            nuts_kernel,
            num_samples=mcmc_config.n_samples,
            num_warmup=mcmc_config.n_warmup,
            num_chains=mcmc_config.n_chains,
            progress_bar=progress,
        )

        # Create random number generator key
        rng_key = random.PRNGKey(seed)

        # Prepare model arguments
        model_args = data.model_args()
        model_args["model_config"] = model_config

        logger.info(
            "Running NUTS: %d chain(s), %d warmup, %d samples",
            mcmc_config.n_chains,
            mcmc_config.n_warmup,
            mcmc_config.n_samples,
        )
        # Run inference
        mcmc.run(rng_key, **model_args)

        return mcmc
