"""
Inference engine for SVI.

This module sets up the NumPyro SVI instance for the latent-class model and
runs the optimization loop. The loop monitors the relative change of the
smoothed loss to decide convergence and aborts as soon as the objective stops
being finite.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any, List
import numpy as np
import jax.numpy as jnp
from jax import random, jit
import numpyro
from numpyro.infer import SVI, Trace_ELBO, TraceMeanField_ELBO
from rich.progress import (
    Progress,
    TextColumn,
    BarColumn,
    TaskProgressColumn,
    TimeRemainingColumn,
    MofNCompleteColumn,
)
from ..core import LatentClassData
from ..errors import NumericalInstabilityError
from ..models import get_model_and_guide
from ..models.config import ModelConfig, SVIConfig, GuideFamily

# ==============================================================================
# SVIRunResult class
# ==============================================================================


@dataclass
class SVIRunResult:
    """Result container for SVI inference.

    Attributes
    ----------
    params : Dict[str, Any]
        Optimized variational parameters.
    losses : jnp.ndarray
        Loss (negative ELBO) at each optimization step.
    guide : Any
        The fitted guide, needed to draw from the approximation.
    model : Any
        The model function.
    state : Any
        Final SVI state (contains optimizer state).
    converged : bool
        Whether the convergence criterion was met before the step cap.
    stopped_at_step : int
        Number of steps run (equals len(losses)).
    final_loss : float
        Smoothed loss at the last convergence check (or the last loss).
    """

    params: Dict[str, Any]
    losses: jnp.ndarray
    guide: Any = None
    model: Any = None
    state: Any = None
    converged: bool = False
    stopped_at_step: int = 0
    final_loss: float = float("inf")


# ------------------------------------------------------------------------------
# Helper functions
# ------------------------------------------------------------------------------


def _check_params_finite(params: Dict[str, Any], losses: List[float]):
    """Raise if any optimized variational parameter is not finite."""
    bad = [
        name
        for name, value in params.items()
        if not bool(jnp.all(jnp.isfinite(value)))
    ]
    if bad:
        finite = [l for l in losses if np.isfinite(l)]
        raise NumericalInstabilityError(
            f"Non-finite variational parameters: {bad}",
            last_finite_loss=finite[-1] if finite else None,
            step=len(losses),
        )


# ------------------------------------------------------------------------------


def run_svi_loop(
    svi: SVI,
    rng_key: random.PRNGKey,
    model_args: Dict[str, Any],
    svi_config: SVIConfig,
    progress: bool = True,
) -> SVIRunResult:
    """Run the SVI optimization loop with convergence monitoring.

    Parameters
    ----------
    svi : SVI
        NumPyro SVI instance.
    rng_key : random.PRNGKey
        JAX random key for reproducibility.
    model_args : Dict[str, Any]
        Arguments to pass to the model/guide.
    svi_config : SVIConfig
        Step cap, update mode and convergence settings.
    progress : bool, default=True
        Whether to show a progress bar.

    Returns
    -------
    SVIRunResult
        Optimized parameters, loss history and convergence flag.

    Raises
    ------
    NumericalInstabilityError
        If the loss is not finite for more than ``max_nonfinite_steps``
        consecutive steps (immediately without ``stable_update``), or if the
        final parameters are not finite.

    Notes
    -----
    Every ``check_every`` steps the mean loss over the last
    ``smoothing_window`` steps is compared with the one from the previous
    check. The run converges once the relative change stays below
    ``tolerance`` for ``patience`` consecutive checks past ``warmup``.
    """
    convergence = svi_config.convergence
    n_steps = svi_config.n_steps
    stable_update = svi_config.stable_update
    max_nonfinite = svi_config.max_nonfinite_steps if stable_update else 0

    try:
        svi_state = svi.init(rng_key, **model_args)
    except RuntimeError as e:
        # NumPyro raises RuntimeError when no finite initial point exists
        raise NumericalInstabilityError(
            f"Could not initialize the variational approximation: {e}"
        ) from e

    losses: List[float] = []
    last_finite_loss: Optional[float] = None
    nonfinite_run = 0
    previous_smoothed: Optional[float] = None
    smoothed = float("inf")
    checks_below_tol = 0
    converged = False
    eps = 1e-8

    progress_ctx = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        TextColumn("{task.fields[loss_info]}"),
        disable=not progress,
    )

    with progress_ctx as pbar:
        loss_display_interval = max(1, n_steps // 20)
        task = pbar.add_task(
            "SVI optimization", total=n_steps, loss_info="init loss: -"
        )

        # JIT compile the update function
        def body_fn(svi_state):
            if stable_update:
                return svi.stable_update(svi_state, **model_args)
            return svi.update(svi_state, **model_args)

        jit_body_fn = jit(body_fn)

        for step in range(n_steps):
            svi_state, loss = jit_body_fn(svi_state)
            loss_val = float(loss)
            losses.append(loss_val)

            if np.isfinite(loss_val):
                last_finite_loss = loss_val
                nonfinite_run = 0
            else:
                nonfinite_run += 1
                if nonfinite_run > max_nonfinite:
                    raise NumericalInstabilityError(
                        f"Non-finite loss ({loss_val}) at step {step + 1}",
                        last_finite_loss=last_finite_loss,
                        step=step + 1,
                    )

            if step % loss_display_interval == 0:
                batch_start = max(0, len(losses) - loss_display_interval)
                avg_loss = np.mean(losses[batch_start:])
                pbar.update(
                    task,
                    advance=1,
                    loss_info=(
                        f"init loss: {losses[0]:.4e}, "
                        f"avg. loss [{batch_start + 1}-{len(losses)}]: "
                        f"{avg_loss:.4e}"
                    ),
                )
            else:
                pbar.update(task, advance=1)

            should_check = (
                convergence.enabled
                and (step + 1) % convergence.check_every == 0
                and len(losses) >= convergence.smoothing_window
            )
            if not should_check:
                continue

            window = np.asarray(losses[-convergence.smoothing_window :])
            window = window[np.isfinite(window)]
            if window.size == 0:
                continue
            smoothed = float(window.mean())
            if previous_smoothed is not None:
                rel_change = abs(previous_smoothed - smoothed) / (
                    abs(previous_smoothed) + eps
                )
                if (
                    step + 1 >= convergence.warmup
                    and rel_change < convergence.tolerance
                ):
                    checks_below_tol += 1
                else:
                    checks_below_tol = 0
            previous_smoothed = smoothed

            if checks_below_tol >= convergence.patience:
                converged = True
                pbar.console.print(
                    f"[bold green]Converged at step {step + 1}[/bold green] "
                    f"(smoothed loss: {smoothed:.4e})"
                )
                break

    params = svi.get_params(svi_state)
    _check_params_finite(params, losses)

    return SVIRunResult(
        params=params,
        losses=jnp.array(losses),
        state=svi_state,
        converged=converged,
        stopped_at_step=len(losses),
        final_loss=(
            smoothed
            if np.isfinite(smoothed) or last_finite_loss is None
            else last_finite_loss
        ),
    )


# ==============================================================================
# SVIInferenceEngine class
# ==============================================================================


class SVIInferenceEngine:
    """Handles SVI inference execution for the latent-class model.

    Examples
    --------
    >>> from cytolca.svi import SVIInferenceEngine
    >>> from cytolca.models.config import ModelConfig, SVIConfig
    >>>
    >>> result = SVIInferenceEngine.run_inference(
    ...     model_config=ModelConfig(n_classes=3, n_bins=4),
    ...     data=data,
    ...     svi_config=SVIConfig(n_steps=5_000),
    ...     seed=42,
    ... )
    >>> if not result.converged:
    ...     print("Draws will be provisional")
    """

    @staticmethod
    def run_inference(
        model_config: ModelConfig,
        data: LatentClassData,
        svi_config: Optional[SVIConfig] = None,
        seed: int = 42,
        progress: bool = True,
    ) -> SVIRunResult:
        """
        Execute SVI inference.

        Parameters
        ----------
        model_config : ModelConfig
            Model configuration (classes, bins, priors, guide family).
        data : LatentClassData
            Validated model inputs.
        svi_config : Optional[SVIConfig]
            Optimizer, loss, step cap and convergence settings. Defaults to
            ``SVIConfig()``.
        seed : int, default=42
            Random seed for reproducibility.
        progress : bool, default=True
            Whether to show a progress bar during training.

        Returns
        -------
        SVIRunResult
            Optimized parameters, guide, loss history and convergence flag.
        """
        svi_config = svi_config or SVIConfig()
        model, guide = get_model_and_guide(model_config)

        optimizer = svi_config.optimizer
        if optimizer is None:
            optimizer = numpyro.optim.Adam(step_size=svi_config.step_size)
        loss = svi_config.loss
        if loss is None:
            loss = (
                TraceMeanField_ELBO()
                if model_config.guide_family == GuideFamily.MEAN_FIELD
                else Trace_ELBO()
            )

        svi = SVI(model, guide, optimizer, loss=loss)
        rng_key = random.PRNGKey(seed)

        model_args = data.model_args()
        model_args["model_config"] = model_config

        result = run_svi_loop(
            svi=svi,
            rng_key=rng_key,
            model_args=model_args,
            svi_config=svi_config,
            progress=progress,
        )
        result.guide = guide
        result.model = model
        return result
