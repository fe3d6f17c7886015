"""
Model definitions for cytolca.
"""

from typing import Callable, Optional, Tuple

from .config import ModelConfig, InferenceMethod
from .latent_class import latent_class_model, latent_class_log_likelihood
from .guides import build_guide

# ==============================================================================
# Model registry
# ==============================================================================


def get_model_and_guide(
    model_config: ModelConfig,
) -> Tuple[Callable, Optional[Callable]]:
    """
    Return the model function and the guide for ``model_config``.

    The guide is None for MCMC, which only needs the model.
    """
    if model_config.inference_method == InferenceMethod.MCMC:
        return latent_class_model, None
    return latent_class_model, build_guide(latent_class_model, model_config)


__all__ = [
    "ModelConfig",
    "latent_class_model",
    "latent_class_log_likelihood",
    "build_guide",
    "get_model_and_guide",
]
