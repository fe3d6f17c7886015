"""
Results class for SVI fits of the latent-class model.
"""

from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass

import numpy as np
import jax.numpy as jnp
from jax import random

from ..core import LatentClassData
from ..draws import DrawCollection
from ..models.config import ModelConfig
from ..sampling import (
    sample_variational_posterior,
    generate_predictive_samples,
)
from .inference_engine import SVIRunResult

# ------------------------------------------------------------------------------
# SVI results
# ------------------------------------------------------------------------------


@dataclass
class LatentClassSVIResults:
    """
    Fitted variational approximation of the latent-class model.

    Attributes
    ----------
    params : Dict
        Optimized variational parameters.
    loss_history : jnp.ndarray
        Loss (negative ELBO) at every step.
    model_config : ModelConfig
        Configuration the model was fitted with.
    data : LatentClassData
        Inputs the model was fitted to.
    guide : Callable
        Fitted guide.
    model : Callable
        Model function.
    converged : bool
        Whether the convergence criterion was met.
    stopped_at_step : int
        Number of optimization steps run.
    posterior_samples : Optional[Dict]
        Cached posterior draws, if generated with ``store_samples=True``.
    """

    params: Dict
    loss_history: jnp.ndarray
    model_config: ModelConfig
    data: LatentClassData
    guide: Callable
    model: Callable
    converged: bool = False
    stopped_at_step: int = 0
    posterior_samples: Optional[Dict] = None

    # --------------------------------------------------------------------------

    @classmethod
    def from_run(
        cls,
        run: SVIRunResult,
        model_config: ModelConfig,
        data: LatentClassData,
    ) -> "LatentClassSVIResults":
        """Create results from an ``SVIRunResult``."""
        return cls(
            params=run.params,
            loss_history=run.losses,
            model_config=model_config,
            data=data,
            guide=run.guide,
            model=run.model,
            converged=run.converged,
            stopped_at_step=run.stopped_at_step,
        )

    # --------------------------------------------------------------------------

    def _model_args(self) -> Dict[str, Any]:
        model_args = self.data.model_args()
        model_args["model_config"] = self.model_config
        return model_args

    # --------------------------------------------------------------------------
    # Posterior sampling
    # --------------------------------------------------------------------------

    def get_posterior_samples(
        self,
        rng_key: random.PRNGKey = random.PRNGKey(42),
        n_samples: int = 1_000,
        include_local: bool = False,
        store_samples: bool = True,
    ) -> Dict[str, np.ndarray]:
        """
        Draw from the fitted variational distribution.

        Parameters
        ----------
        rng_key : random.PRNGKey
            JAX random key.
        n_samples : int, default=1_000
            Number of draws.
        include_local : bool, default=False
            Also return the cell-level ``eta`` and ``theta`` sites.
        store_samples : bool, default=True
            Cache the draws in ``posterior_samples``.

        Returns
        -------
        Dict[str, np.ndarray]
            Draws per site.
        """
        samples = sample_variational_posterior(
            self.guide,
            self.params,
            self.model,
            self._model_args(),
            rng_key=rng_key,
            n_samples=n_samples,
            include_local=include_local,
        )
        if store_samples:
            self.posterior_samples = samples
        return samples

    # --------------------------------------------------------------------------

    def get_draws(
        self,
        rng_key: random.PRNGKey = random.PRNGKey(42),
        n_samples: int = 1_000,
    ) -> DrawCollection:
        """
        Draw from the fitted approximation and wrap the draws in a
        ``DrawCollection`` flagged provisional when the fit did not converge.
        """
        samples = self.get_posterior_samples(
            rng_key=rng_key, n_samples=n_samples, store_samples=False
        )
        return DrawCollection(
            samples=samples,
            provisional=not self.converged,
            method="svi",
            diagnostics={
                "losses": np.asarray(self.loss_history),
                "converged": self.converged,
                "stopped_at_step": self.stopped_at_step,
                "guide_family": self.model_config.guide_family.value,
            },
        )

    # --------------------------------------------------------------------------

    def get_predictive_samples(
        self,
        rng_key: random.PRNGKey = random.PRNGKey(42),
        n_samples: int = 100,
    ) -> np.ndarray:
        """
        Posterior predictive bin codes, shape (n_samples, n_cells,
        n_markers).
        """
        key_post, key_pred = random.split(rng_key)
        samples = sample_variational_posterior(
            self.guide,
            self.params,
            self.model,
            self._model_args(),
            rng_key=key_post,
            n_samples=n_samples,
            include_local=True,
        )
        latent = {k: v for k, v in samples.items() if k not in ("theta", "beta")}
        return generate_predictive_samples(
            self.model, latent, self._model_args(), key_pred
        )

    # --------------------------------------------------------------------------

    def class_responsibilities(
        self,
        rng_key: random.PRNGKey = random.PRNGKey(42),
        n_samples: int = 100,
    ) -> np.ndarray:
        """
        Posterior mean of the class-membership probabilities ``theta``,
        shape (n_cells, n_classes). Rows sum to one.
        """
        samples = self.get_posterior_samples(
            rng_key=rng_key,
            n_samples=n_samples,
            include_local=True,
            store_samples=False,
        )
        return samples["theta"].mean(axis=0)
