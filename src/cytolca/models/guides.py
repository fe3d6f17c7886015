"""
Variational families for the latent-class model.

The guides are NumPyro autoguides; the choice between them is the only
modelling decision the inference driver makes about the approximation.
"""

from typing import Callable
from numpyro.infer.autoguide import (
    AutoNormal,
    AutoMultivariateNormal,
    AutoLowRankMultivariateNormal,
)
from numpyro.infer.initialization import init_to_uniform

from .config import ModelConfig, GuideFamily

# ==============================================================================
# Guide factory
# ==============================================================================


def build_guide(
    model: Callable, model_config: ModelConfig, init_scale: float = 0.1
):
    """
    Build the autoguide selected by ``model_config.guide_family``.

    Parameters
    ----------
    model : Callable
        NumPyro model function.
    model_config : ModelConfig
        Model configuration holding the guide family and rank.
    init_scale : float, default=0.1
        Initial scale of the approximating Gaussian in unconstrained space.

    Returns
    -------
    numpyro.infer.autoguide.AutoGuide
        The guide. Random uniform initialization in unconstrained space
        breaks the symmetry between classes.

    Notes
    -----
    The full-rank guide stores a dense covariance over every latent value,
    including the N x R cell-level logits, and is only practical for small
    subsamples.
    """
    family = model_config.guide_family
    if family == GuideFamily.MEAN_FIELD:
        return AutoNormal(
            model, init_loc_fn=init_to_uniform, init_scale=init_scale
        )
    if family == GuideFamily.FULL_RANK:
        return AutoMultivariateNormal(
            model, init_loc_fn=init_to_uniform, init_scale=init_scale
        )
    if family == GuideFamily.LOW_RANK:
        return AutoLowRankMultivariateNormal(
            model,
            init_loc_fn=init_to_uniform,
            init_scale=init_scale,
            rank=model_config.guide_rank,
        )
    raise ValueError(f"Unsupported guide family: {family}")
