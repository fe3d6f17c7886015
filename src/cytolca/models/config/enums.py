"""
Enums for model and inference configuration.

Restricting options to enumerations keeps invalid choices out of the
configuration files and gives readable names to the supported settings.
"""

from enum import Enum

# ==============================================================================
# Enums for model configuration
# ==============================================================================


class GuideFamily(str, Enum):
    """Variational families for the SVI guide."""

    MEAN_FIELD = "mean_field"
    FULL_RANK = "full_rank"
    LOW_RANK = "low_rank"


# ------------------------------------------------------------------------------


class InferenceMethod(str, Enum):
    """Supported inference methods."""

    SVI = "svi"
    MCMC = "mcmc"
