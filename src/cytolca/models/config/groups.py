"""
Parameter groups for the cytolca configuration, built on Pydantic.

Each group gathers a set of related run parameters (priors, SVI settings,
convergence monitoring, MCMC settings, data preparation). Groups are frozen
and forbid unknown fields, so a typo in a configuration file fails loudly
instead of being silently ignored.
"""

from typing import Optional, Tuple, Dict, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict

# ==============================================================================
# Prior Configuration Group
# ==============================================================================


class PriorConfig(BaseModel):
    """Prior hyperparameters of the latent-class regression model."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    dirichlet_alpha: Optional[Tuple[float, ...]] = Field(
        None,
        description=(
            "Dirichlet concentration for every class-conditional bin "
            "distribution. If None, uses the uniform vector 1/K."
        ),
    )
    sigma_b_scale: float = Field(
        0.5, gt=0, description="Half-Cauchy scale of the slope shrinkage"
    )
    sigma_z_scale: float = Field(
        1.0, gt=0, description="Half-Cauchy scale of the donor effect SDs"
    )
    sigma_e_scale: float = Field(
        1.0, gt=0, description="Half-Cauchy scale of the logit noise SDs"
    )
    intercept_scale: Optional[float] = Field(
        None,
        gt=0,
        description=(
            "Normal scale for the intercepts. If None, the intercepts get an "
            "improper flat prior."
        ),
    )

    # --------------------------------------------------------------------------
    # Validation Methods
    # --------------------------------------------------------------------------

    @field_validator("dirichlet_alpha")
    @classmethod
    def validate_alpha(
        cls, v: Optional[Tuple[float, ...]]
    ) -> Optional[Tuple[float, ...]]:
        """Validate that concentration parameters are positive."""
        if v is not None:
            if len(v) == 0:
                raise ValueError("Dirichlet concentration cannot be empty")
            if any(x <= 0 for x in v):
                raise ValueError(
                    f"Dirichlet concentration must be positive, got {v}"
                )
        return v


# ==============================================================================
# Convergence Configuration Group
# ==============================================================================


class ConvergenceConfig(BaseModel):
    """
    Convergence monitoring for the SVI loop.

    Every ``check_every`` steps the loss is smoothed over the last
    ``smoothing_window`` steps and compared with the smoothed loss of the
    previous check. The run converges once the relative change stays below
    ``tolerance`` for ``patience`` consecutive checks after ``warmup`` steps.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(True, description="Stop when converged")
    tolerance: float = Field(
        1e-4, gt=0, description="Relative change of the smoothed loss"
    )
    smoothing_window: int = Field(
        100, gt=0, description="Steps averaged into the smoothed loss"
    )
    check_every: int = Field(
        100, gt=0, description="Steps between convergence checks"
    )
    patience: int = Field(
        3, gt=0, description="Consecutive checks below tolerance"
    )
    warmup: int = Field(
        500, ge=0, description="Steps before convergence may be declared"
    )


# ==============================================================================
# SVI Configuration Group
# ==============================================================================


class SVIConfig(BaseModel):
    """Configuration for Stochastic Variational Inference."""

    model_config = ConfigDict(
        frozen=True, arbitrary_types_allowed=True, extra="forbid"
    )

    optimizer: Optional[Any] = Field(
        None,
        description="NumPyro optimizer (defaults to Adam with step_size)",
    )
    loss: Optional[Any] = Field(
        None,
        description=(
            "ELBO estimator (defaults to TraceMeanField_ELBO for mean-field "
            "guides, Trace_ELBO otherwise)"
        ),
    )
    step_size: float = Field(
        0.01, gt=0, description="Adam step size when no optimizer is given"
    )
    n_steps: int = Field(
        20_000, gt=0, description="Maximum number of optimization steps"
    )
    n_draws: int = Field(
        1_000, gt=0, description="Draws taken from the fitted guide"
    )
    stable_update: bool = Field(
        True, description="Skip parameter updates with non-finite loss"
    )
    max_nonfinite_steps: int = Field(
        10,
        ge=0,
        description=(
            "Consecutive non-finite losses tolerated before aborting "
            "(only with stable_update)"
        ),
    )
    convergence: ConvergenceConfig = Field(default_factory=ConvergenceConfig)


# ==============================================================================
# MCMC Configuration Group
# ==============================================================================


class MCMCConfig(BaseModel):
    """Configuration for Markov Chain Monte Carlo inference."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    n_samples: int = Field(1_000, gt=0, description="Number of MCMC samples")
    n_warmup: int = Field(1_000, gt=0, description="Number of warmup samples")
    n_chains: int = Field(1, gt=0, description="Number of chains")
    max_r_hat: float = Field(
        1.1, gt=1, description="Split r-hat above which draws are provisional"
    )
    mcmc_kwargs: Optional[Dict[str, Any]] = Field(
        None, description="Additional keyword arguments for the NUTS kernel"
    )


# ==============================================================================
# Data Configuration Group
# ==============================================================================


class DataConfig(BaseModel):
    """Configuration for ingestion and data preparation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    n_cells: Optional[int] = Field(
        None, gt=0, description="Cells to subsample. If None, uses all cells"
    )
    cofactor: float = Field(
        5.0, gt=0, description="Cofactor of the arcsinh transform"
    )
    marker_pattern: str = Field(
        r"^\d+[A-Za-z]+_",
        description="Regular expression selecting marker channels",
    )
    channel_naming: str = Field(
        "$PnS", description="FCS keyword used to name channels"
    )
    file_column: str = Field("file_name", description="Metadata file column")
    patient_column: str = Field(
        "patient_id", description="Metadata patient column"
    )
    short_name_column: str = Field(
        "short_name", description="Metadata sample short-name column"
    )
    condition_column: str = Field(
        "condition", description="Metadata condition column"
    )
    reference_condition: Optional[str] = Field(
        None,
        description=(
            "Condition level used as reference. If None, the first level in "
            "sorted order"
        ),
    )

    @field_validator("channel_naming")
    @classmethod
    def validate_channel_naming(cls, v: str) -> str:
        """Validate the FCS naming keyword."""
        if v not in ("$PnS", "$PnN"):
            raise ValueError(
                f"channel_naming must be '$PnS' or '$PnN', got {v!r}"
            )
        return v
