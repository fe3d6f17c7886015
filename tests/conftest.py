"""
Shared test fixtures and configuration for cytolca tests.
"""

import os

import numpy as np
import pandas as pd
import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--device",
        default="cpu",
        choices=["cpu", "gpu"],
        help="Device to run tests on: cpu or gpu",
    )
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Also run long end-to-end fits",
    )


def pytest_configure(config):
    """Configure JAX device before any imports happen."""
    device = config.getoption("--device")
    if device == "cpu":
        os.environ["JAX_PLATFORM_NAME"] = "cpu"
    else:
        # Remove the environment variable to allow JAX to use GPU
        if "JAX_PLATFORM_NAME" in os.environ:
            del os.environ["JAX_PLATFORM_NAME"]


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --run-slow")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture(scope="session")
def rng_key():
    """Provide a consistent random key for tests."""
    # Import JAX here to ensure environment is configured first
    from jax import random

    return random.PRNGKey(42)


@pytest.fixture(scope="session")
def small_data():
    """Small latent-class dataset: N=60, D=3, R=2, J=3, K=4."""
    from cytolca.simulate import simulate_latent_class_data

    data, _ = simulate_latent_class_data(
        n_cells=60, n_donors=3, n_classes=2, n_markers=3, n_bins=4, seed=0
    )
    return data


@pytest.fixture(scope="session")
def small_model_config():
    from cytolca.models.config import ModelConfig

    return ModelConfig(n_classes=2, n_bins=4)


@pytest.fixture
def fake_draws():
    """Hand-built draws for 2 classes, 3 markers and 4 bins."""
    from cytolca.draws import DrawCollection

    rng = np.random.default_rng(1)
    n_draws, n_classes, n_markers, n_bins = 200, 2, 3, 4
    beta = np.stack(
        [
            np.column_stack(
                [rng.normal(0.0, 0.1, n_draws), rng.normal(-1.0, 0.2, n_draws)]
            ),
            np.column_stack(
                [rng.normal(0.0, 0.1, n_draws), rng.normal(1.0, 0.2, n_draws)]
            ),
        ],
        axis=1,
    )
    pi = rng.dirichlet(
        np.ones(n_bins), size=(n_draws, n_classes, n_markers)
    )
    return DrawCollection(samples={"beta": beta, "pi": pi})


@pytest.fixture
def raw_adata():
    """Raw intensities for 2 patients x 2 conditions, 50 cells each."""
    from anndata import AnnData

    rng = np.random.default_rng(3)
    n_per_sample = 50
    samples = [
        ("p1", "ctrl"),
        ("p1", "stim"),
        ("p2", "ctrl"),
        ("p2", "stim"),
    ]
    obs = pd.DataFrame(
        [
            {"sample": f"{p}_{c}", "patient": p, "condition": c}
            for p, c in samples
            for _ in range(n_per_sample)
        ]
    )
    obs.index = obs.index.astype(str)
    X = rng.gamma(2.0, 20.0, size=(len(obs), 3)).astype(np.float32)
    return AnnData(
        X=X,
        obs=obs,
        var=pd.DataFrame(index=["141Pr_CD3", "142Nd_CD19", "143Nd_CD45"]),
    )
