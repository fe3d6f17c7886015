"""
Plotting functions for CyTOF latent-class analyses.
"""

from typing import Dict, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

# ------------------------------------------------------------------------------
# Style
# ------------------------------------------------------------------------------


def matplotlib_style():
    """
    Sets plotting defaults to personal style for matplotlib.
    """
    import matplotlib.font_manager as fm

    available_fonts = [f.name for f in fm.fontManager.ttflist]
    font_family = (
        ["Roboto", "sans-serif"]
        if "Roboto" in available_fonts
        else ["sans-serif"]
    )

    rc = {
        # Axes formatting
        "axes.facecolor": "#E6E6EF",
        "axes.edgecolor": "none",
        "axes.labelcolor": "#000000",
        "axes.spines.right": False,
        "axes.spines.top": False,
        "axes.spines.left": False,
        "axes.spines.bottom": False,
        "axes.axisbelow": True,
        "axes.grid": True,
        # Font sizes
        "axes.titlesize": 12,
        "axes.labelsize": 12,
        "xtick.labelsize": 10,
        "ytick.labelsize": 10,
        # Grid formatting
        "grid.linestyle": "-",
        "grid.linewidth": 1.0,
        "grid.color": "#FFFFFF",
        # Legend formatting
        "legend.fontsize": 10,
        "legend.title_fontsize": 10,
        "legend.frameon": True,
        "legend.facecolor": "#E6E6EF",
        # Tick formatting
        "xtick.bottom": False,
        "ytick.left": False,
        "font.family": font_family,
        "axes.titleweight": "bold",
        "figure.facecolor": "white",
        "savefig.bbox": "tight",
        "mathtext.default": "regular",
    }

    sns.set_style(rc)
    sns.set_palette("colorblind")


# ------------------------------------------------------------------------------
# Optimization diagnostics
# ------------------------------------------------------------------------------


def plot_loss(losses, ax=None, log_scale: bool = True):
    """
    Plot the loss history of an SVI run.

    Parameters
    ----------
    losses : array-like
        Loss (negative ELBO) per step.
    ax : matplotlib.axes.Axes, optional
        Axis to plot on. A new figure is created if None.
    log_scale : bool, default=True
        Use a symmetric-log y axis, which copes with negative losses.

    Returns
    -------
    matplotlib.figure.Figure
    """
    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=(4, 3))
    else:
        fig = ax.figure
    losses = np.asarray(losses)
    ax.plot(np.arange(1, len(losses) + 1), losses, lw=1)
    if log_scale:
        ax.set_yscale("symlog")
    ax.set_xlabel("step")
    ax.set_ylabel("ELBO loss")
    return fig


# ------------------------------------------------------------------------------
# Data plots
# ------------------------------------------------------------------------------


def plot_marker_densities(
    adata,
    markers: Optional[Sequence[str]] = None,
    hue: str = "condition",
    cut_points: Optional[Sequence[float]] = None,
    n_cols: int = 4,
):
    """
    Kernel density of every marker split by an ``obs`` column, with optional
    interior bin boundaries drawn as vertical lines.

    Parameters
    ----------
    adata : AnnData
        Cells x markers table.
    markers : Optional[Sequence[str]]
        Markers to plot. Defaults to all.
    hue : str, default="condition"
        Column of ``adata.obs`` used to split the densities.
    cut_points : Optional[Sequence[float]]
        Bin boundaries; infinite values are skipped.
    n_cols : int, default=4
        Number of facet columns.

    Returns
    -------
    matplotlib.figure.Figure
    """
    markers = list(adata.var_names if markers is None else markers)
    frame = pd.DataFrame(
        np.asarray(adata[:, markers].X), columns=markers
    )
    frame[hue] = adata.obs[hue].to_numpy()
    long = frame.melt(id_vars=hue, var_name="marker", value_name="intensity")

    grid = sns.FacetGrid(
        long,
        col="marker",
        hue=hue,
        col_wrap=min(n_cols, len(markers)),
        sharex=True,
        sharey=False,
        height=2.2,
    )
    grid.map(sns.kdeplot, "intensity", fill=True, alpha=0.3, warn_singular=False)
    if cut_points is not None:
        interior = [c for c in cut_points if np.isfinite(c)]
        for ax in grid.axes.flat:
            for c in interior:
                ax.axvline(c, color="k", ls="--", lw=0.8)
    grid.set_titles("{col_name}")
    grid.add_legend()
    return grid.figure


# ------------------------------------------------------------------------------
# Posterior summaries
# ------------------------------------------------------------------------------


def plot_class_probabilities(
    intervals: pd.DataFrame,
    labels: Optional[Dict[int, str]] = None,
    ax=None,
):
    """
    Credible intervals of the class-membership probability per condition.

    Parameters
    ----------
    intervals : pd.DataFrame
        Output of ``class_probability_intervals``.
    labels : Optional[Dict[int, str]]
        Class labels for the y axis. Defaults to ``"class <r>"``.
    ax : matplotlib.axes.Axes, optional
        Axis to plot on.

    Returns
    -------
    matplotlib.figure.Figure
    """
    classes = sorted(intervals["class"].unique())
    conditions = list(dict.fromkeys(intervals["condition"]))
    if ax is None:
        fig, ax = plt.subplots(
            1, 1, figsize=(6, 0.6 * len(classes) * len(conditions) + 1)
        )
    else:
        fig = ax.figure

    palette = sns.color_palette("colorblind", len(conditions))
    offsets = np.linspace(-0.2, 0.2, len(conditions))
    for k, condition in enumerate(conditions):
        sub = intervals[intervals["condition"] == condition].set_index("class")
        ypos = np.arange(len(classes)) + offsets[k]
        ax.hlines(
            ypos,
            sub.loc[classes, "low"],
            sub.loc[classes, "high"],
            color=palette[k],
            lw=4,
            label=condition,
        )

    if labels is None:
        labels = {c: f"class {c}" for c in classes}
    ax.set_yticks(np.arange(len(classes)))
    ax.set_yticklabels([f"{c}: {labels.get(c, '')}" for c in classes])
    ax.set_xlim(0, 1)
    ax.set_xlabel("P(class | condition)")
    ax.legend(loc="best")
    return fig


# ------------------------------------------------------------------------------


def plot_class_marker_distributions(
    distributions: pd.DataFrame, n_cols: int = 4
):
    """
    Grouped bars of the class-conditional bin distributions with credible
    interval error bars, one facet per marker.

    Parameters
    ----------
    distributions : pd.DataFrame
        Output of ``class_marker_distributions``.
    n_cols : int, default=4
        Number of facet columns.

    Returns
    -------
    matplotlib.figure.Figure
    """
    markers = list(dict.fromkeys(distributions["marker"]))
    classes = sorted(distributions["class"].unique())
    bins = sorted(distributions["bin"].unique())
    n_cols = min(n_cols, len(markers))
    n_rows = int(np.ceil(len(markers) / n_cols))

    fig, axes = plt.subplots(
        n_rows,
        n_cols,
        figsize=(3 * n_cols, 2.5 * n_rows),
        sharey=True,
        squeeze=False,
    )
    palette = sns.color_palette("colorblind", len(classes))
    width = 0.8 / len(classes)

    for ax, marker in zip(axes.flat, markers):
        sub = distributions[distributions["marker"] == marker]
        for k, cls in enumerate(classes):
            rows = sub[sub["class"] == cls].set_index("bin").loc[bins]
            xpos = np.arange(len(bins)) + (k - (len(classes) - 1) / 2) * width
            ax.bar(
                xpos,
                rows["value"],
                width=width,
                color=palette[k],
                label=f"class {cls}",
            )
            ax.errorbar(
                xpos,
                rows["value"],
                yerr=np.clip(
                    [
                        rows["value"] - rows["low"],
                        rows["high"] - rows["value"],
                    ],
                    0,
                    None,
                ),
                fmt="none",
                ecolor="k",
                lw=0.8,
            )
        ax.set_xticks(np.arange(len(bins)))
        ax.set_xticklabels(bins)
        ax.set_title(marker)
        ax.set_xlabel("bin")

    # Hide unused facets
    for ax in axes.flat[len(markers):]:
        ax.set_visible(False)
    for ax in axes[:, 0]:
        ax.set_ylabel("probability")
    axes.flat[0].legend(loc="best")
    fig.tight_layout()
    return fig
