"""
run_hydra.py

Entry point for a latent-class analysis of a CyTOF experiment, driven by
Hydra configuration files under ``conf/``.

The script

1. reads the sample-metadata table and every FCS file it lists;
2. builds the model, data and inference configurations from ``cfg``;
3. runs ``cytolca.run_lca`` (subsample, arcsinh transform, discretize, fit,
   summarize);
4. writes the results (pickle plus CSV tables) and the diagnostic figures to
   the Hydra output directory.

Typical usage:

    $ python run_hydra.py data.metadata=samples.xlsx model.n_classes=4 \
        model.n_bins=5 inference=svi inference.n_steps=30000
"""

import logging
import os

import hydra
import matplotlib.pyplot as plt
from omegaconf import DictConfig, OmegaConf

import cytolca
from cytolca.data_loader import load_cytof_experiment
from cytolca.models.config import (
    ModelConfig,
    PriorConfig,
    DataConfig,
    SVIConfig,
    MCMCConfig,
    ConvergenceConfig,
    InferenceMethod,
)

logger = logging.getLogger(__name__)


def _build_configs(cfg: DictConfig):
    """Translate the Hydra tree into pydantic configuration objects."""
    model_kwargs = OmegaConf.to_container(cfg.model, resolve=True)
    priors = PriorConfig(**(model_kwargs.pop("priors", None) or {}))
    inference_kwargs = OmegaConf.to_container(cfg.inference, resolve=True)
    method = InferenceMethod(inference_kwargs.pop("method"))

    model_config = ModelConfig(
        inference_method=method, priors=priors, **model_kwargs
    )

    data_kwargs = OmegaConf.to_container(cfg.data, resolve=True)
    for key in ("name", "metadata", "data_dir"):
        data_kwargs.pop(key, None)
    data_config = DataConfig(**data_kwargs)

    if method == InferenceMethod.SVI:
        convergence = ConvergenceConfig(
            **(inference_kwargs.pop("convergence", None) or {})
        )
        inference_config = SVIConfig(convergence=convergence, **inference_kwargs)
    else:
        inference_config = MCMCConfig(**inference_kwargs)
    return model_config, data_config, inference_config


@hydra.main(version_base=None, config_path="conf", config_name="config")
def main(cfg: DictConfig) -> None:
    print("Running with config:\n", OmegaConf.to_yaml(cfg))
    print(f"Current working directory: {os.getcwd()}")

    model_config, data_config, inference_config = _build_configs(cfg)

    # Load data
    metadata_path = hydra.utils.to_absolute_path(cfg.data.metadata)
    data_dir = cfg.data.get("data_dir")
    if data_dir is not None:
        data_dir = hydra.utils.to_absolute_path(data_dir)
    adata = load_cytof_experiment(metadata_path, data_dir, data_config)

    # Run the inference
    results = cytolca.run_lca(
        adata,
        model_config=model_config,
        data_config=data_config,
        inference_config=inference_config,
        seed=cfg.seed,
        canonicalize=cfg.canonicalize,
    )
    if results.provisional:
        logger.warning("Posterior draws are provisional (no convergence)")
    print("Inference complete.")

    # Save the results in the Hydra output directory
    from hydra.core.hydra_config import HydraConfig

    output_dir = HydraConfig.get().runtime.output_dir
    for path in results.save(output_dir).values():
        print(f"Saved {path}")

    if not cfg.viz.enabled:
        return

    cytolca.viz.matplotlib_style()
    fmt = cfg.viz.format
    figures = {
        "class_probabilities": cytolca.viz.plot_class_probabilities(
            results.intervals, results.labels
        ),
        "class_marker_distributions": (
            cytolca.viz.plot_class_marker_distributions(
                results.marker_distributions, n_cols=cfg.viz.n_cols
            )
        ),
    }
    losses = results.draws.diagnostics.get("losses")
    if losses is not None:
        figures["loss"] = cytolca.viz.plot_loss(losses)
    for name, fig in figures.items():
        path = os.path.join(output_dir, f"{name}.{fmt}")
        fig.savefig(path)
        plt.close(fig)
        print(f"Saved {path}")


if __name__ == "__main__":
    main()
