"""Model configuration for the latent-class regression model."""

from typing import Optional
import jax.numpy as jnp
from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    ConfigDict,
)
from .enums import GuideFamily, InferenceMethod
from .groups import PriorConfig

# ==============================================================================
# Model Configuration Class
# ==============================================================================


class ModelConfig(BaseModel):
    """
    Structural configuration of the latent-class regression model.

    Parameters
    ----------
    n_classes : int
        Number of latent classes R.
    n_bins : int
        Number of discretization bins K shared by every marker.
    n_covariates : int
        Length P of the design row (intercept first).
    inference_method : InferenceMethod
        Backend used to fit the model.
    guide_family : GuideFamily
        Variational family for SVI.
    guide_rank : int, optional
        Rank of the low-rank guide.
    priors : PriorConfig
        Prior hyperparameters.

    Notes
    -----
    Only basic typing is enforced here. Whether a configuration can define a
    model for a given dataset (for instance K >= 2) is checked against the
    data by ``LatentClassData.validate`` so that it surfaces as
    ``InvalidConfigurationError``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    n_classes: int = Field(3, description="Number of latent classes")
    n_bins: int = Field(4, description="Number of discretization bins")
    n_covariates: int = Field(2, description="Design row length")
    inference_method: InferenceMethod = Field(
        InferenceMethod.SVI, description="Inference method"
    )
    guide_family: GuideFamily = Field(
        GuideFamily.MEAN_FIELD, description="Variational family"
    )
    guide_rank: Optional[int] = Field(
        None, gt=0, description="Low-rank guide rank"
    )
    priors: PriorConfig = Field(default_factory=PriorConfig)

    # --------------------------------------------------------------------------
    # Validation Methods
    # --------------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_guide_rank(self) -> "ModelConfig":
        """Low-rank guides need a rank."""
        if self.guide_family == GuideFamily.LOW_RANK and self.guide_rank is None:
            raise ValueError("guide_rank is required for the low-rank guide")
        return self

    # --------------------------------------------------------------------------

    @field_validator("priors")
    @classmethod
    def validate_alpha_length(cls, v: PriorConfig, info) -> PriorConfig:
        """The Dirichlet concentration must have one entry per bin."""
        n_bins = info.data.get("n_bins")
        if (
            v.dirichlet_alpha is not None
            and n_bins is not None
            and len(v.dirichlet_alpha) != n_bins
        ):
            raise ValueError(
                f"dirichlet_alpha has {len(v.dirichlet_alpha)} entries but "
                f"n_bins is {n_bins}"
            )
        return v

    # --------------------------------------------------------------------------

    def dirichlet_concentration(self) -> jnp.ndarray:
        """Concentration vector alpha of length K."""
        if self.priors.dirichlet_alpha is not None:
            return jnp.asarray(self.priors.dirichlet_alpha)
        return jnp.full((self.n_bins,), 1.0 / self.n_bins)

    # --------------------------------------------------------------------------

    def with_updated_priors(self, **priors) -> "ModelConfig":
        """Create a new config with updated priors (immutable pattern)."""
        return self.model_copy(
            update={"priors": self.priors.model_copy(update=priors)}
        )
