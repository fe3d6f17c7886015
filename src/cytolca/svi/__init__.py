"""
Stochastic Variational Inference (SVI) for the latent-class model.

Runs NumPyro's SVI with an autoguide, monitors convergence of the ELBO and
packages the fitted approximation.
"""

from .inference_engine import SVIInferenceEngine, SVIRunResult, run_svi_loop
from .results import LatentClassSVIResults

__all__ = [
    "SVIInferenceEngine",
    "SVIRunResult",
    "run_svi_loop",
    "LatentClassSVIResults",
]
