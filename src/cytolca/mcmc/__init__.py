"""
MCMC (NUTS) inference for the latent-class model.
"""

from .inference_engine import MCMCInferenceEngine
from .results import LatentClassMCMCResults

__all__ = ["MCMCInferenceEngine", "LatentClassMCMCResults"]
