"""
Exception and warning types raised by cytolca.

All three failure classes are terminal for the current run: nothing in the
package retries with adjusted hyperparameters.
"""

from typing import Optional

# ==============================================================================
# Configuration errors
# ==============================================================================


class InvalidConfigurationError(ValueError):
    """Raised when run parameters or input tables cannot define a model."""


# ------------------------------------------------------------------------------


class ShapeMismatchError(InvalidConfigurationError):
    """Raised when an array (input table or posterior draw) has the wrong
    shape or holds values outside its declared range."""


# ==============================================================================
# Solver errors
# ==============================================================================


class NumericalInstabilityError(RuntimeError):
    """
    Raised when the objective, the fitted parameters or the posterior draws
    stop being finite.

    Parameters
    ----------
    message : str
        Human readable description.
    last_finite_loss : Optional[float]
        Last finite value of the loss before the failure, if any.
    step : Optional[int]
        Optimization step at which the failure was detected.
    """

    def __init__(
        self,
        message: str,
        last_finite_loss: Optional[float] = None,
        step: Optional[int] = None,
    ):
        super().__init__(message)
        self.last_finite_loss = last_finite_loss
        self.step = step


# ------------------------------------------------------------------------------


class NonConvergenceWarning(RuntimeWarning):
    """Emitted when draws come from a fit that did not meet its convergence
    criterion. The draws are returned but flagged as provisional."""
