"""
Latent-class regression model for discretized cytometry data.

Each cell belongs to one of R latent classes. Given its class, the J binned
markers of a cell are independent categorical draws from class-specific bin
distributions ``pi[r, j]``. Class membership log-odds are a linear function of
the cell's design row plus a donor-level random effect, with additional
cell-level Gaussian noise.
"""

import jax
import jax.numpy as jnp
import jax.scipy as jsp
import numpyro
import numpyro.distributions as dist
from numpyro.distributions import constraints

from .config import ModelConfig

# ==============================================================================
# Log-likelihood
# ==============================================================================


def latent_class_log_likelihood(
    y: jnp.ndarray, log_theta: jnp.ndarray, log_pi: jnp.ndarray
) -> jnp.ndarray:
    """
    Per-cell marginal log-likelihood of the latent-class model.

    Computes

        log p(y_n) = logsumexp_r( log theta[n, r] + sum_j log pi[r, j, y[n, j]] )

    entirely in log space. Products of J categorical probabilities underflow
    quickly, so the class terms must never be exponentiated before the final
    logsumexp.

    Parameters
    ----------
    y : jnp.ndarray
        Bin codes of shape (n_cells, n_markers), 1-based.
    log_theta : jnp.ndarray
        Log class-membership probabilities of shape (n_cells, n_classes).
    log_pi : jnp.ndarray
        Log bin probabilities of shape (n_classes, n_markers, n_bins).

    Returns
    -------
    jnp.ndarray
        Log-likelihood of every cell, shape (n_cells,).
    """
    codes = y - 1
    marker_idx = jnp.arange(codes.shape[-1])
    # (R, N, J): log pi[r, j, codes[n, j]]
    per_marker = log_pi[:, marker_idx, codes]
    class_log_lik = per_marker.sum(axis=-1).T
    return jsp.special.logsumexp(log_theta + class_log_lik, axis=-1)


# ==============================================================================
# Model
# ==============================================================================


def latent_class_model(
    n_cells: int,
    n_markers: int,
    n_donors: int,
    donor: jnp.ndarray,
    x: jnp.ndarray,
    model_config: ModelConfig,
    y=None,
    record_theta: bool = False,
):
    """
    NumPyro model for latent-class regression on binned markers.

    Parameters
    ----------
    n_cells : int
        Number of cells N.
    n_markers : int
        Number of markers J.
    n_donors : int
        Number of donors D.
    donor : jnp.ndarray
        Donor index of every cell, 1-based, shape (n_cells,).
    x : jnp.ndarray
        Design matrix of shape (n_cells, n_covariates), intercept first.
    model_config : ModelConfig
        Number of classes and bins, and prior hyperparameters.
    y : jnp.ndarray, optional
        Observed bin codes of shape (n_cells, n_markers), 1-based. If None,
        codes are sampled from the model.
    record_theta : bool, default=False
        Register the class-membership probabilities as a deterministic site.
        Off by default because the site holds n_cells x n_classes values per
        draw.

    Model Structure
    --------------
    Global Parameters:
        - pi[r, j] ~ Dirichlet(alpha)
        - sigma_z[p] ~ HalfCauchy(sigma_z_scale)
        - z[d, r, p] ~ Normal(0, sigma_z[p])
        - sigma_b[r] ~ HalfCauchy(sigma_b_scale)
        - beta[r, 0] ~ flat (or Normal(0, intercept_scale))
        - beta[r, p > 0] ~ Laplace(0, sigma_b[r])
        - sigma_e[r] ~ HalfCauchy(sigma_e_scale)

    Local Parameters:
        - eta[n] ~ Normal(beta x[n] + z[donor[n]] x[n], sigma_e)
        - theta[n] = softmax(eta[n])

    Likelihood:
        log p(y_n) = logsumexp_r(log theta[n, r] + sum_j log pi[r, j, y_nj])
    """
    n_classes = model_config.n_classes
    n_covariates = x.shape[-1]
    priors = model_config.priors
    alpha = model_config.dirichlet_concentration()

    # Class-conditional bin distributions, one simplex per class and marker
    with numpyro.plate("classes", n_classes, dim=-2):
        with numpyro.plate("markers", n_markers, dim=-1):
            pi = numpyro.sample("pi", dist.Dirichlet(alpha))

    # Donor random effects with one scale per covariate dimension
    sigma_z = numpyro.sample(
        "sigma_z",
        dist.HalfCauchy(priors.sigma_z_scale).expand([n_covariates]).to_event(1),
    )
    z = numpyro.sample(
        "z",
        dist.Normal(0.0, sigma_z)
        .expand([n_donors, n_classes, n_covariates])
        .to_event(3),
    )

    # Regression coefficients: free intercepts, Laplace-shrunk slopes
    sigma_b = numpyro.sample(
        "sigma_b",
        dist.HalfCauchy(priors.sigma_b_scale).expand([n_classes]).to_event(1),
    )
    if priors.intercept_scale is None:
        intercept_prior = dist.ImproperUniform(
            constraints.real, (), (n_classes,)
        )
    else:
        intercept_prior = (
            dist.Normal(0.0, priors.intercept_scale)
            .expand([n_classes])
            .to_event(1)
        )
    beta_0 = numpyro.sample("beta_0", intercept_prior)
    if n_covariates > 1:
        beta_1 = numpyro.sample(
            "beta_1",
            dist.Laplace(0.0, sigma_b[:, None])
            .expand([n_classes, n_covariates - 1])
            .to_event(2),
        )
        beta = jnp.concatenate([beta_0[:, None], beta_1], axis=-1)
    else:
        beta = beta_0[:, None]
    beta = numpyro.deterministic("beta", beta)

    sigma_e = numpyro.sample(
        "sigma_e",
        dist.HalfCauchy(priors.sigma_e_scale).expand([n_classes]).to_event(1),
    )

    # Mixture logits: fixed effects plus the donor's random effect
    z_cell = z[donor - 1]
    eta_loc = x @ beta.T + jnp.einsum("np,nrp->nr", x, z_cell)

    with numpyro.plate("cells", n_cells):
        eta = numpyro.sample("eta", dist.Normal(eta_loc, sigma_e).to_event(1))
        if record_theta:
            numpyro.deterministic("theta", jax.nn.softmax(eta, axis=-1))

        if y is not None:
            log_lik = latent_class_log_likelihood(
                y,
                jax.nn.log_softmax(eta, axis=-1),
                jnp.log(jnp.clip(pi, jnp.finfo(pi.dtype).tiny)),
            )
            numpyro.factor("y_loglik", log_lik)
        else:
            # Class first, then every marker's code from that class's simplex
            cell_class = numpyro.sample(
                "cell_class", dist.Categorical(logits=eta)
            )
            codes = numpyro.sample(
                "y_codes", dist.Categorical(probs=pi[cell_class]).to_event(1)
            )
            numpyro.deterministic("y", codes + 1)
