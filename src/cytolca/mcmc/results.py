"""
Results class for MCMC fits of the latent-class model.
"""

from typing import Dict, Optional, Sequence
from dataclasses import dataclass, field

import numpy as np
from numpyro.diagnostics import summary
from numpyro.infer import MCMC

from ..core import LatentClassData
from ..draws import DrawCollection, REQUIRED_SITES
from ..models.config import ModelConfig
from ..sampling import GLOBAL_SITES

# ------------------------------------------------------------------------------
# MCMC results
# ------------------------------------------------------------------------------


@dataclass
class LatentClassMCMCResults:
    """
    Posterior draws of the latent-class model obtained with NUTS.

    Attributes
    ----------
    samples : Dict[str, np.ndarray]
        Draws per site, chains flattened along the leading axis.
    r_hat : Dict[str, float]
        Maximum split r-hat per monitored site.
    model_config : ModelConfig
        Configuration the model was fitted with.
    data : LatentClassData
        Inputs the model was fitted to.
    max_r_hat : float
        Threshold above which the draws are flagged provisional.
    """

    samples: Dict[str, np.ndarray]
    r_hat: Dict[str, float]
    model_config: ModelConfig
    data: LatentClassData
    max_r_hat: float = 1.1
    extra_fields: Dict[str, np.ndarray] = field(default_factory=dict)

    # --------------------------------------------------------------------------

    @classmethod
    def from_mcmc(
        cls,
        mcmc: MCMC,
        model_config: ModelConfig,
        data: LatentClassData,
        max_r_hat: float = 1.1,
        monitored_sites: Sequence[str] = REQUIRED_SITES,
    ) -> "LatentClassMCMCResults":
        """Collect draws and convergence diagnostics from a finished run."""
        keep = tuple(GLOBAL_SITES) + ("beta",)
        by_chain = mcmc.get_samples(group_by_chain=True)
        monitored = {
            k: np.asarray(v)
            for k, v in by_chain.items()
            if k in monitored_sites
        }
        stats = summary(monitored, group_by_chain=True)
        r_hat = {
            name: float(np.nanmax(np.asarray(site_stats["r_hat"])))
            for name, site_stats in stats.items()
        }
        samples = {
            k: np.asarray(v)
            for k, v in mcmc.get_samples().items()
            if k in keep
        }
        return cls(
            samples=samples,
            r_hat=r_hat,
            model_config=model_config,
            data=data,
            max_r_hat=max_r_hat,
            extra_fields={
                k: np.asarray(v) for k, v in mcmc.get_extra_fields().items()
            },
        )

    # --------------------------------------------------------------------------

    @property
    def converged(self) -> bool:
        """True when every monitored site has r-hat below ``max_r_hat``."""
        return all(
            np.isfinite(v) and v <= self.max_r_hat for v in self.r_hat.values()
        )

    @property
    def n_divergences(self) -> Optional[int]:
        diverging = self.extra_fields.get("diverging")
        return None if diverging is None else int(np.sum(diverging))

    # --------------------------------------------------------------------------

    def get_draws(self) -> DrawCollection:
        """Wrap the draws in a ``DrawCollection``."""
        return DrawCollection(
            samples=dict(self.samples),
            provisional=not self.converged,
            method="mcmc",
            diagnostics={
                "r_hat": dict(self.r_hat),
                "max_r_hat": self.max_r_hat,
                "n_divergences": self.n_divergences,
            },
        )
