"""
End-to-end tests of the inference driver and ``run_lca``.
"""

import os
import pickle
import warnings

import numpy as np
import pandas as pd
import pytest

import cytolca.inference as inference
from cytolca.core import LatentClassData
from cytolca.draws import DrawCollection
from cytolca.errors import (
    InvalidConfigurationError,
    NonConvergenceWarning,
    NumericalInstabilityError,
    ShapeMismatchError,
)
from cytolca.inference import (
    LCAResults,
    PosteriorSolver,
    SVISolver,
    MCMCSolver,
    fit_posterior,
    get_solver,
    run_lca,
)
from cytolca.models.config import (
    ModelConfig,
    DataConfig,
    SVIConfig,
    MCMCConfig,
    InferenceMethod,
)
from cytolca.simulate import simulate_latent_class_data

# ------------------------------------------------------------------------------
# Scripted solvers
# ------------------------------------------------------------------------------


class ScriptedSolver(PosteriorSolver):
    """Returns fixed draws and records every call."""

    method = "scripted"

    def __init__(self, fill=None, provisional=False, n_draws=50, seed=0):
        self.fill = fill
        self.provisional = provisional
        self.n_draws = n_draws
        self.seed = seed
        self.calls = 0

    def fit(self, model_config, data):
        self.calls += 1
        rng = np.random.default_rng(self.seed)
        n_classes = model_config.n_classes
        beta = rng.normal(size=(self.n_draws, n_classes, data.n_covariates))
        beta[:, -1, 1] += 3.0
        pi = rng.dirichlet(
            np.ones(data.n_bins),
            size=(self.n_draws, n_classes, data.n_markers),
        )
        if self.fill is not None:
            beta = np.full_like(beta, self.fill)
            pi = np.full_like(pi, self.fill)
        return DrawCollection(
            samples={"beta": beta, "pi": pi},
            provisional=self.provisional,
            method=self.method,
            diagnostics={"losses": np.array([12.0, 11.0, np.nan])},
        )


@pytest.fixture
def no_summaries(monkeypatch):
    """Fail the test if any summary is computed."""

    def _fail(*args, **kwargs):
        raise AssertionError("summarizer must not run")

    monkeypatch.setattr(inference, "class_probability_intervals", _fail)
    monkeypatch.setattr(inference, "class_marker_distributions", _fail)


def _model_config(**kwargs):
    kwargs.setdefault("n_classes", 2)
    kwargs.setdefault("n_bins", 4)
    return ModelConfig(**kwargs)


# ------------------------------------------------------------------------------
# Driver
# ------------------------------------------------------------------------------


def test_fit_posterior_returns_checked_draws(small_data):
    solver = ScriptedSolver()
    draws = fit_posterior(solver, _model_config(), small_data)
    assert solver.calls == 1
    assert draws.n_draws == 50
    assert not draws.provisional


def test_provisional_draws_warn(small_data):
    solver = ScriptedSolver(provisional=True)
    with pytest.warns(NonConvergenceWarning):
        draws = fit_posterior(solver, _model_config(), small_data)
    assert draws.provisional


class WrongBinsSolver(ScriptedSolver):
    """Drops the last bin of every class-conditional distribution."""

    def fit(self, model_config, data):
        draws = super().fit(model_config, data)
        draws.samples["pi"] = draws.samples["pi"][..., :-1]
        return draws


def test_wrong_draw_shape_rejected(small_data):
    with pytest.raises(ShapeMismatchError):
        fit_posterior(WrongBinsSolver(), _model_config(), small_data)


def test_get_solver():
    assert isinstance(get_solver(_model_config()), SVISolver)
    mcmc_model = _model_config(inference_method=InferenceMethod.MCMC)
    solver = get_solver(mcmc_model, MCMCConfig(n_samples=5), seed=3)
    assert isinstance(solver, MCMCSolver)
    assert solver.mcmc_config.n_samples == 5
    assert solver.seed == 3
    with pytest.raises(ValueError):
        get_solver(_model_config(), MCMCConfig())


# ------------------------------------------------------------------------------
# Scenario: well-separated classes are recovered
# ------------------------------------------------------------------------------


def test_recovers_well_separated_classes():
    data, truth = simulate_latent_class_data(
        n_cells=1_000, n_donors=5, n_classes=2, n_markers=3, n_bins=4, seed=7
    )
    solver = SVISolver(
        SVIConfig(n_steps=3_000, step_size=0.05, n_draws=200),
        seed=0,
        progress=False,
    )
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NonConvergenceWarning)
        draws = fit_posterior(solver, _model_config(), data)

    # Median mass of each class in the lower bins {1, 2}, averaged over
    # markers
    pi_median = np.median(draws["pi"], axis=0)
    low_mass = pi_median[..., :2].sum(axis=-1).mean(axis=-1)
    # Up to label permutation, one class sits low and the other high
    assert low_mass.max() > 0.7
    assert 1.0 - low_mass.min() > 0.7


# ------------------------------------------------------------------------------
# Scenario: degenerate or inconsistent inputs fail before the solver runs
# ------------------------------------------------------------------------------


def test_single_bin_rejected_before_solver(raw_adata, no_summaries):
    solver = ScriptedSolver()
    with pytest.raises(InvalidConfigurationError):
        run_lca(
            raw_adata,
            model_config=_model_config(n_bins=1),
            solver=solver,
            progress=False,
        )
    assert solver.calls == 0


def test_donor_out_of_range_rejected_before_solver(small_data):
    bad = LatentClassData(
        y=small_data.y,
        donor=np.where(
            np.arange(small_data.n_cells) == 0,
            small_data.n_donors + 1,
            small_data.donor,
        ),
        x=small_data.x,
        n_donors=small_data.n_donors,
        n_bins=small_data.n_bins,
    )
    solver = ScriptedSolver()
    with pytest.raises(InvalidConfigurationError):
        fit_posterior(solver, _model_config(), bad)
    assert solver.calls == 0


# ------------------------------------------------------------------------------
# Scenario: non-finite draws stop the run before summarization
# ------------------------------------------------------------------------------


def test_nan_draws_surface_before_summaries(raw_adata, no_summaries):
    solver = ScriptedSolver(fill=np.nan)
    with pytest.raises(NumericalInstabilityError) as excinfo:
        run_lca(
            raw_adata,
            model_config=_model_config(),
            solver=solver,
            progress=False,
        )
    assert solver.calls == 1
    assert excinfo.value.last_finite_loss == 11.0


# ------------------------------------------------------------------------------
# run_lca
# ------------------------------------------------------------------------------


def test_run_lca_with_scripted_solver(raw_adata):
    results = run_lca(
        raw_adata,
        model_config=_model_config(),
        data_config=DataConfig(n_cells=120),
        solver=ScriptedSolver(),
        seed=1,
        progress=False,
    )
    assert isinstance(results, LCAResults)
    assert results.data.n_cells == 120
    assert results.data.n_markers == 3
    assert results.data.condition_levels == ("ctrl", "stim")
    assert results.boundaries.n_bins == 4
    assert not results.provisional

    assert set(results.intervals["condition"]) == {"ctrl", "stim"}
    assert np.all(results.intervals["low"] <= results.intervals["high"])
    assert list(results.labels) == [1, 2]
    assert all("ctrl [" in label for label in results.labels.values())
    assert len(results.marker_distributions) == 2 * 3 * 4
    assert set(results.marker_distributions["marker"]) == set(
        raw_adata.var_names
    )


def test_run_lca_reference_condition(raw_adata):
    results = run_lca(
        raw_adata,
        model_config=_model_config(),
        data_config=DataConfig(reference_condition="stim"),
        solver=ScriptedSolver(),
        progress=False,
    )
    assert results.data.condition_levels == ("stim", "ctrl")
    assert results.labels[1].startswith("stim [")


def test_run_lca_provisional_flag(raw_adata):
    with pytest.warns(NonConvergenceWarning):
        results = run_lca(
            raw_adata,
            model_config=_model_config(),
            solver=ScriptedSolver(provisional=True),
            progress=False,
        )
    assert results.provisional
    assert results.draws.provisional


def test_run_lca_canonical_order(raw_adata):
    results = run_lca(
        raw_adata,
        model_config=_model_config(),
        solver=ScriptedSolver(),
        canonicalize=True,
        progress=False,
    )
    assert results.draws.diagnostics["class_order"] == [1, 0]
    treated = results.intervals[
        results.intervals["condition"] == "stim"
    ].set_index("class")
    assert treated.loc[1, "high"] >= treated.loc[2, "high"]


def test_results_save(raw_adata, tmp_path):
    results = run_lca(
        raw_adata,
        model_config=_model_config(),
        solver=ScriptedSolver(),
        progress=False,
    )
    paths = results.save(str(tmp_path))
    for path in paths.values():
        assert os.path.exists(path)
    labels = pd.read_csv(paths["labels"])
    assert list(labels["class"]) == [1, 2]
    table = pd.read_csv(paths["marker_distributions"])
    assert len(table) == 2 * 3 * 4


def test_results_save_single_draws_pickle(raw_adata, tmp_path):
    results = run_lca(
        raw_adata,
        model_config=_model_config(),
        solver=ScriptedSolver(),
        progress=False,
    )
    paths = results.save(str(tmp_path))
    pickles = sorted(p.name for p in tmp_path.glob("*.pkl"))
    assert pickles == ["lca_draws.pkl"]
    with open(paths["draws"], "rb") as f:
        saved = pickle.load(f)
    np.testing.assert_array_equal(
        saved["samples"]["beta"], results.draws["beta"]
    )
    np.testing.assert_array_equal(
        saved["cut_points"], results.boundaries.cut_points
    )
    assert saved["provisional"] == results.provisional
    assert tuple(saved["marker_names"]) == results.data.marker_names
