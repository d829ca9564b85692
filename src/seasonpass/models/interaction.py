"""
Promotion x channel interaction model.

    logit(p) = a + b_promo[promo] + b_channel[channel]
                 + b_interaction[promo, channel]

Every non-baseline promotion level gets its own adjustment in every
non-baseline channel. With all six season-pass cells observed this model
is saturated: each cell's log-odds is identified by its own data.

A combination with no contacts still gets an interaction coefficient,
but nothing in the likelihood touches it, so its posterior is the prior.
A gap in the baseline row or column also strands the main effects that
share it.
That is reported, not patched over; see
``seasonpass.models.design.unidentified_terms``.
"""

from typing import Optional

import pandas as pd
import pymc as pm

from seasonpass.config import PriorSpec
from seasonpass.data.schemas import CategoryEncoding
from seasonpass.models.baseline import build_population_model


def build_interaction_model(
    cells: pd.DataFrame,
    encoding: CategoryEncoding,
    prior: Optional[PriorSpec] = None,
) -> pm.Model:
    """
    Build the full-interaction binomial-logit model.

    Parameters
    ----------
    cells : pd.DataFrame
        Aggregated cells. Missing combinations are allowed.
    encoding : CategoryEncoding
        Declared levels; the first of each is the reference.
    prior : PriorSpec
        Priors for intercept and every slope, interaction terms included.

    Returns
    -------
    pm.Model
        PyMC model with ``intercept``, ``beta_promotion``, ``beta_channel``
        and ``beta_interaction``.
    """
    return build_population_model(
        cells,
        encoding,
        prior,
        promotion=True,
        channel=True,
        interaction=True,
    )
