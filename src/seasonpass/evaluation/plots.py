"""Thin plotting wrappers over ArviZ and matplotlib. Nothing is rendered on import."""

from typing import Optional

import arviz as az
import numpy as np
import pandas as pd


def plot_traces(
    trace: az.InferenceData,
    var_names: Optional[list[str]] = None,
) -> "matplotlib.figure.Figure":
    """Trace plot per coefficient, the visual mixing check."""
    from seasonpass.evaluation.summary import coefficient_vars

    var_names = var_names or coefficient_vars(trace.posterior)
    axes = az.plot_trace(trace, var_names=var_names, compact=True)
    fig = np.asarray(axes).ravel()[0].get_figure()
    fig.tight_layout()
    return fig


def plot_coefficient_forest(
    traces: dict[str, az.InferenceData],
    var_names: Optional[list[str]] = None,
    prob: float = 0.89,
    figsize: tuple[int, int] = (8, 6),
) -> "matplotlib.figure.Figure":
    """Side-by-side forest plot of several fitted models."""
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=figsize)
    az.plot_forest(
        list(traces.values()),
        model_names=list(traces.keys()),
        var_names=var_names,
        hdi_prob=prob,
        combined=True,
        ax=ax,
    )
    ax.axvline(0, color="grey", linestyle="--", linewidth=1)
    ax.set_title(f"Coefficients (log-odds), {prob:.0%} intervals")
    plt.tight_layout()
    return fig


def plot_cell_probabilities(
    predictions: pd.DataFrame,
    observed: Optional[pd.DataFrame] = None,
    figsize: tuple[int, int] = (10, 6),
    title: str = "Predicted purchase probability by cell",
) -> "matplotlib.figure.Figure":
    """
    Point-and-interval plot of predicted probabilities.

    ``predictions`` is the long table returned by
    ``ComparativeAnalysis.prediction_table`` (``model``, ``promotion``,
    ``channel``, ``median``, ``lower``, ``upper``). Observed cell proportions
    are overlaid when ``observed`` is given.
    """
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=figsize)

    cells = (
        predictions[["promotion", "channel"]]
        .drop_duplicates()
        .astype(str)
        .agg(":".join, axis=1)
        .tolist()
    )
    positions = {cell: i for i, cell in enumerate(cells)}
    models = predictions["model"].unique().tolist()
    offsets = np.linspace(-0.2, 0.2, num=len(models)) if len(models) > 1 else [0.0]

    for offset, model in zip(offsets, models):
        sub = predictions[predictions["model"] == model]
        x = [
            positions[f"{p}:{c}"] + offset
            for p, c in zip(sub["promotion"].astype(str), sub["channel"].astype(str))
        ]
        ax.errorbar(
            x,
            sub["median"],
            yerr=[sub["median"] - sub["lower"], sub["upper"] - sub["median"]],
            fmt="o",
            capsize=3,
            label=str(model),
        )

    if observed is not None:
        x = [
            positions.get(f"{p}:{c}")
            for p, c in zip(observed["promotion"].astype(str), observed["channel"].astype(str))
        ]
        keep = [i for i, v in enumerate(x) if v is not None]
        ax.scatter(
            [x[i] for i in keep],
            (observed["successes"] / observed["trials"]).to_numpy()[keep],
            marker="x",
            color="black",
            label="observed",
            zorder=3,
        )

    ax.set_xticks(range(len(cells)))
    ax.set_xticklabels(cells, rotation=30, ha="right")
    ax.set_ylabel("P(purchase)")
    ax.set_ylim(0, 1)
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig
