"""
Synthetic data from the latent-class regression model with known
parameters.
"""

from typing import Dict, Optional, Tuple

import numpy as np

from .core import LatentClassData
from .errors import InvalidConfigurationError

# ------------------------------------------------------------------------------


def separated_class_distributions(
    n_classes: int, n_markers: int, n_bins: int, mass: float = 0.9
) -> np.ndarray:
    """
    Class-conditional bin distributions with each class concentrated on its
    own contiguous block of bins.

    With 2 classes and 4 bins, class 1 puts ``mass`` on bins 1-2 and class 2
    on bins 3-4, for every marker.

    Returns
    -------
    np.ndarray
        Array of shape (n_classes, n_markers, n_bins) whose last axis sums to
        one.
    """
    if n_bins < n_classes:
        raise InvalidConfigurationError(
            f"Cannot separate {n_classes} classes with {n_bins} bins"
        )
    blocks = np.array_split(np.arange(n_bins), n_classes)
    pi = np.zeros((n_classes, n_markers, n_bins))
    for r, block in enumerate(blocks):
        rest = n_bins - len(block)
        pi[r, :, :] = (1.0 - mass) / rest if rest else 0.0
        pi[r, :, block] = mass / len(block) if rest else 1.0 / len(block)
    return pi


# ------------------------------------------------------------------------------


def simulate_latent_class_data(
    n_cells: int = 1_000,
    n_donors: int = 5,
    n_classes: int = 2,
    n_markers: int = 3,
    n_bins: int = 4,
    pi: Optional[np.ndarray] = None,
    beta: Optional[np.ndarray] = None,
    sigma_z: float = 0.3,
    sigma_e: float = 0.3,
    seed: int = 42,
) -> Tuple[LatentClassData, Dict[str, np.ndarray]]:
    """
    Draw cells from the latent-class model with fixed parameters.

    Donors are assigned in turn so every donor appears; the treatment
    indicator alternates so both conditions are balanced.

    Parameters
    ----------
    n_cells, n_donors, n_classes, n_markers, n_bins : int
        Dimensions N, D, R, J and K.
    pi : Optional[np.ndarray]
        Class-conditional bin distributions (R, J, K). Defaults to
        ``separated_class_distributions``.
    beta : Optional[np.ndarray]
        Coefficients (R, 2). Defaults to zero intercepts and slopes spread
        over [-1, 1].
    sigma_z : float
        Scale of the donor random effects.
    sigma_e : float
        Scale of the cell-level logit noise.
    seed : int
        Seed of the numpy generator.

    Returns
    -------
    Tuple[LatentClassData, Dict[str, np.ndarray]]
        Validated model inputs and the true ``pi``, ``beta``, ``z``,
        ``theta`` and ``classes`` (1-based).
    """
    if min(n_cells, n_donors, n_classes, n_markers, n_bins) < 1:
        raise InvalidConfigurationError("All dimensions must be positive")
    rng = np.random.default_rng(seed)

    if pi is None:
        pi = separated_class_distributions(n_classes, n_markers, n_bins)
    pi = np.asarray(pi, dtype=float)
    if pi.shape != (n_classes, n_markers, n_bins):
        raise InvalidConfigurationError(
            f"pi must have shape {(n_classes, n_markers, n_bins)}, got "
            f"{pi.shape}"
        )
    if beta is None:
        beta = np.zeros((n_classes, 2))
        beta[:, 1] = np.linspace(-1.0, 1.0, n_classes)
    beta = np.asarray(beta, dtype=float)

    donor = np.arange(n_cells) % n_donors + 1
    treated = (np.arange(n_cells) // n_donors) % 2
    x = np.column_stack([np.ones(n_cells), treated]).astype(float)

    z = rng.normal(0.0, sigma_z, size=(n_donors, n_classes, 2))
    eta = x @ beta.T + np.einsum("np,nrp->nr", x, z[donor - 1])
    eta = eta + rng.normal(0.0, sigma_e, size=eta.shape)
    theta = np.exp(eta - eta.max(axis=1, keepdims=True))
    theta /= theta.sum(axis=1, keepdims=True)

    # Inverse-CDF draws of the class and of every marker bin
    classes = (rng.random((n_cells, 1)) > theta.cumsum(axis=1)).sum(axis=1)
    classes = np.minimum(classes, n_classes - 1)
    cdf = pi[classes].cumsum(axis=-1)
    y = (rng.random((n_cells, n_markers, 1)) > cdf).sum(axis=-1)
    y = np.minimum(y, n_bins - 1).astype(np.int32) + 1

    data = LatentClassData(
        y=y,
        donor=donor.astype(np.int32),
        x=x,
        n_donors=n_donors,
        n_bins=n_bins,
        marker_names=tuple(f"marker{j + 1}" for j in range(n_markers)),
        donor_names=tuple(f"donor{d + 1}" for d in range(n_donors)),
        condition_levels=("reference", "treated"),
    )
    truth = {
        "pi": pi,
        "beta": beta,
        "z": z,
        "theta": theta,
        "classes": classes + 1,
    }
    return data.validate(), truth
