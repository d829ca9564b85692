from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from seasonpass.data.aggregate import check_cell_invariants
from seasonpass.data.schemas import CategoryEncoding
from seasonpass.errors import FitError


@dataclass(frozen=True)
class CellDesign:
    """Integer-indexed view of aggregated cells for a PyMC model."""

    promotion_idx: NDArray[np.int64]
    channel_idx: NDArray[np.int64]
    trials: NDArray[np.int64]
    successes: NDArray[np.int64]
    coords: dict[str, list[str]]


def cell_design(cells: pd.DataFrame, encoding: CategoryEncoding) -> CellDesign:
    """
    Map cell labels to level indices under the declared encoding.

    Index 0 is always the baseline level, so treatment-coded effects are
    built by prepending a zero to each effect vector.
    """
    if cells.empty:
        raise FitError("Cannot fit a model to zero cells")
    check_cell_invariants(cells)

    promotion_idx = np.array(
        [encoding.index_of("promotion", str(p)) for p in cells["promotion"]],
        dtype=np.int64,
    )
    channel_idx = np.array(
        [encoding.index_of("channel", str(c)) for c in cells["channel"]],
        dtype=np.int64,
    )

    coords = {
        "cell": [f"{p}:{c}" for p, c in zip(cells["promotion"], cells["channel"])],
        "promotion": list(encoding.promotion_levels),
        "channel": list(encoding.channel_levels),
        "promotion_effect": list(encoding.effect_levels("promotion")),
        "channel_effect": list(encoding.effect_levels("channel")),
    }

    return CellDesign(
        promotion_idx=promotion_idx,
        channel_idx=channel_idx,
        trials=cells["trials"].to_numpy(dtype=np.int64),
        successes=cells["successes"].to_numpy(dtype=np.int64),
        coords=coords,
    )


def treatment_design_matrix(
    cells: pd.DataFrame,
    encoding: CategoryEncoding,
    promotion: bool = True,
    channel: bool = True,
    interaction: bool = True,
) -> tuple[NDArray[np.float64], list[str]]:
    """
    Treatment-coded design matrix of the observed cells.

    Column names match the flattened coefficient names of the population
    models, e.g. ``beta_interaction[Bundle, Email]``.
    """
    promotion_effects = encoding.effect_levels("promotion")
    channel_effects = encoding.effect_levels("channel")

    names = ["intercept"]
    if promotion:
        names += [f"beta_promotion[{p}]" for p in promotion_effects]
    if channel:
        names += [f"beta_channel[{c}]" for c in channel_effects]
    if interaction:
        names += [
            f"beta_interaction[{p}, {c}]"
            for p in promotion_effects
            for c in channel_effects
        ]
    column = {name: j for j, name in enumerate(names)}

    X = np.zeros((len(cells), len(names)))
    for i, (p, c) in enumerate(zip(cells["promotion"], cells["channel"])):
        p, c = str(p), str(c)
        X[i, 0] = 1.0
        if promotion and p in promotion_effects:
            X[i, column[f"beta_promotion[{p}]"]] = 1.0
        if channel and c in channel_effects:
            X[i, column[f"beta_channel[{c}]"]] = 1.0
        if interaction and p in promotion_effects and c in channel_effects:
            X[i, column[f"beta_interaction[{p}, {c}]"]] = 1.0

    return X, names


def unidentified_terms(
    cells: pd.DataFrame,
    encoding: CategoryEncoding,
    promotion: bool = True,
    channel: bool = True,
    interaction: bool = True,
) -> list[str]:
    """
    Coefficient names whose posterior is driven by the prior alone.

    Coefficient ``j`` is pinned down by the likelihood only if the unit
    vector ``e_j`` lies in the row space of the observed design matrix.
    Otherwise some direction in parameter space changes ``j`` without
    changing any observed cell's log-odds. A missing cell in the baseline
    row or column therefore unidentifies main effects as well as the
    interaction terms that share it.
    """
    X, names = treatment_design_matrix(
        cells, encoding, promotion=promotion, channel=channel, interaction=interaction
    )
    rank = np.linalg.matrix_rank(X) if len(X) else 0

    out = []
    for j, name in enumerate(names):
        unit = np.zeros((1, len(names)))
        unit[0, j] = 1.0
        if np.linalg.matrix_rank(np.vstack([X, unit])) > rank:
            out.append(name)
    return out
