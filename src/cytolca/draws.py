"""
Container for posterior draws.

A ``DrawCollection`` is produced once by a solver and read by the summarizer.
It maps site names to arrays whose leading axis indexes draws.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence

import numpy as np

from .errors import NumericalInstabilityError, ShapeMismatchError

# Sites every solver must return
REQUIRED_SITES = ("beta", "pi")

# ==============================================================================
# DrawCollection class
# ==============================================================================


@dataclass
class DrawCollection:
    """
    Posterior draws from a fitted latent-class model.

    Attributes
    ----------
    samples : Dict[str, np.ndarray]
        Draws per site. ``beta`` has shape (n_draws, n_classes,
        n_covariates) and ``pi`` has shape (n_draws, n_classes, n_markers,
        n_bins).
    provisional : bool
        True when the solver did not meet its convergence criterion.
    method : str
        Name of the backend that produced the draws.
    diagnostics : Dict[str, Any]
        Solver diagnostics (loss history, r-hat, steps run).
    """

    samples: Dict[str, np.ndarray]
    provisional: bool = False
    method: str = "svi"
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.samples = {k: np.asarray(v) for k, v in self.samples.items()}

    # --------------------------------------------------------------------------

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            return self.samples[name]
        except KeyError:
            raise ShapeMismatchError(
                f"Draw collection has no site {name!r}; available sites are "
                f"{sorted(self.samples)}"
            ) from None

    def __contains__(self, name: str) -> bool:
        return name in self.samples

    @property
    def n_draws(self) -> int:
        """Number of draws along the leading axis."""
        return int(self["beta"].shape[0])

    @property
    def n_classes(self) -> int:
        return int(self["beta"].shape[1])

    # --------------------------------------------------------------------------
    # Validation
    # --------------------------------------------------------------------------

    def check_finite(
        self, sites: Optional[Iterable[str]] = None
    ) -> "DrawCollection":
        """
        Raise ``NumericalInstabilityError`` if any draw is NaN or infinite.
        """
        sites = self.samples.keys() if sites is None else sites
        bad = [
            name
            for name in sites
            if name in self.samples
            and np.issubdtype(self.samples[name].dtype, np.number)
            and not np.all(np.isfinite(self.samples[name]))
        ]
        if bad:
            losses = np.asarray(self.diagnostics.get("losses", []), dtype=float)
            finite = losses[np.isfinite(losses)]
            raise NumericalInstabilityError(
                f"Non-finite posterior draws at sites {bad}",
                last_finite_loss=float(finite[-1]) if finite.size else None,
            )
        return self

    # --------------------------------------------------------------------------

    def validate(
        self,
        n_classes: Optional[int] = None,
        n_markers: Optional[int] = None,
        n_bins: Optional[int] = None,
        n_covariates: Optional[int] = None,
    ) -> "DrawCollection":
        """
        Check that ``beta`` and ``pi`` have consistent shapes.

        Raises
        ------
        ShapeMismatchError
            If a required site is missing or has the wrong shape.
        """
        for name in REQUIRED_SITES:
            if name not in self.samples:
                raise ShapeMismatchError(f"Missing required site {name!r}")
        beta = self.samples["beta"]
        pi = self.samples["pi"]
        if beta.ndim != 3:
            raise ShapeMismatchError(
                "beta draws must have shape (n_draws, n_classes, "
                f"n_covariates), got {beta.shape}"
            )
        if pi.ndim != 4:
            raise ShapeMismatchError(
                "pi draws must have shape (n_draws, n_classes, n_markers, "
                f"n_bins), got {pi.shape}"
            )
        if beta.shape[0] == 0:
            raise ShapeMismatchError("Draw collection holds no draws")
        if pi.shape[:2] != beta.shape[:2]:
            raise ShapeMismatchError(
                f"beta {beta.shape} and pi {pi.shape} disagree on the number "
                "of draws or classes"
            )
        expected = {
            "n_classes": (n_classes, beta.shape[1]),
            "n_covariates": (n_covariates, beta.shape[2]),
            "n_markers": (n_markers, pi.shape[2]),
            "n_bins": (n_bins, pi.shape[3]),
        }
        for label, (want, got) in expected.items():
            if want is not None and want != got:
                raise ShapeMismatchError(
                    f"Expected {label}={want} in the draws, got {got}"
                )
        return self

    # --------------------------------------------------------------------------
    # Class relabeling
    # --------------------------------------------------------------------------

    def reorder_classes(self, order: Sequence[int]) -> "DrawCollection":
        """
        Return a copy with classes permuted so that new class ``i`` is old
        class ``order[i]`` (0-based).

        Class-indexed sites are ``beta``, ``pi``, ``sigma_b``, ``sigma_e``,
        ``beta_0`` and ``beta_1`` (axis 1), ``z``, ``eta`` and ``theta``
        (axis 2 for ``z``, last axis for the cell-level sites).
        """
        order = np.asarray(order)
        if sorted(order.tolist()) != list(range(self.n_classes)):
            raise ShapeMismatchError(
                f"{order.tolist()} is not a permutation of "
                f"{self.n_classes} classes"
            )
        axis_by_site = {
            "beta": 1,
            "beta_0": 1,
            "beta_1": 1,
            "pi": 1,
            "sigma_b": 1,
            "sigma_e": 1,
            "z": 2,
            "eta": -1,
            "theta": -1,
        }
        samples = {}
        for name, value in self.samples.items():
            axis = axis_by_site.get(name)
            samples[name] = (
                value if axis is None else np.take(value, order, axis=axis)
            )
        diagnostics = dict(self.diagnostics)
        diagnostics["class_order"] = order.tolist()
        return DrawCollection(
            samples=samples,
            provisional=self.provisional,
            method=self.method,
            diagnostics=diagnostics,
        )
