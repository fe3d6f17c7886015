"""
Sampling utilities for cytolca.
"""

from jax import random
import numpy as np
from numpyro.infer import Predictive
from typing import Dict, Optional, Callable, List, Sequence

# Latent sites of the model returned by default (cell-level sites excluded)
GLOBAL_SITES = (
    "pi",
    "sigma_z",
    "z",
    "sigma_b",
    "beta_0",
    "beta_1",
    "sigma_e",
)

# ------------------------------------------------------------------------------
# Posterior samples
# ------------------------------------------------------------------------------


def sample_variational_posterior(
    guide: Callable,
    params: Dict,
    model: Callable,
    model_args: Dict,
    rng_key: random.PRNGKey = random.PRNGKey(42),
    n_samples: int = 1_000,
    include_local: bool = False,
) -> Dict[str, np.ndarray]:
    """
    Sample parameters from the variational posterior distribution.

    Parameters
    ----------
    guide : Callable
        Fitted guide.
    params : Dict
        Optimized variational parameters.
    model : Callable
        Model function, run afterwards to recover deterministic sites.
    model_args : Dict
        Keyword arguments shared by model and guide.
    rng_key : random.PRNGKey
        JAX random number generator key.
    n_samples : int, default=1_000
        Number of posterior draws.
    include_local : bool, default=False
        Also return the cell-level sites ``eta`` and ``theta``. These hold
        n_cells x n_classes values per draw.

    Returns
    -------
    Dict[str, np.ndarray]
        Draws per site, draws along the leading axis. Always contains the
        deterministic ``beta`` matrix.
    """
    key_guide, key_model = random.split(rng_key)

    # Sample latent sites from the guide
    predictive_param = Predictive(guide, params=params, num_samples=n_samples)
    posterior_samples = predictive_param(key_guide, **model_args)

    # Run the model on those draws to recover the deterministic sites
    return_sites: List[str] = ["beta"]
    if include_local:
        return_sites.append("theta")
    predictive_model = Predictive(
        model,
        posterior_samples=posterior_samples,
        return_sites=return_sites,
    )
    model_samples = predictive_model(
        key_model, **model_args, record_theta=include_local
    )

    keep = set(GLOBAL_SITES) | ({"eta"} if include_local else set())
    samples = {
        name: np.asarray(value)
        for name, value in posterior_samples.items()
        if name in keep
    }
    samples.update({name: np.asarray(v) for name, v in model_samples.items()})
    return samples


# ------------------------------------------------------------------------------
# Posterior predictive samples
# ------------------------------------------------------------------------------


def generate_predictive_samples(
    model: Callable,
    posterior_samples: Dict,
    model_args: Dict,
    rng_key: random.PRNGKey,
    sites: Optional[Sequence[str]] = None,
) -> np.ndarray:
    """
    Generate bin codes from the model given posterior draws.

    Parameters
    ----------
    model : Callable
        Model function.
    posterior_samples : Dict
        Draws of every latent site, including the cell-level ``eta``.
    model_args : Dict
        Model keyword arguments. ``y`` is dropped so that codes are sampled.
    rng_key : random.PRNGKey
        JAX random number generator key.
    sites : Optional[Sequence[str]]
        Latent sites to condition on. Defaults to every site in
        ``posterior_samples``.

    Returns
    -------
    np.ndarray
        Predicted 1-based bin codes of shape (n_draws, n_cells, n_markers).
    """
    if sites is not None:
        posterior_samples = {k: posterior_samples[k] for k in sites}
    model_args = {k: v for k, v in model_args.items() if k != "y"}
    predictive = Predictive(
        model, posterior_samples=posterior_samples, return_sites=["y"]
    )
    return np.asarray(predictive(rng_key, **model_args)["y"])
