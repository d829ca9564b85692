"""
Population-level logistic models on aggregated cells.

Philosophy: "one set of coefficients for everybody"

Every contact with the same covariates shares one purchase probability,
and effects are treatment-coded against the declared baseline levels:

    intercept only:  logit(p) = a
    baseline:        logit(p) = a + b_promo[promo]
    main effects:    logit(p) = a + b_promo[promo] + b_channel[channel]

The interaction variant lives in ``interaction.py``; it is the same
builder with the promotion x channel terms switched on.
"""

from typing import Optional

import numpy as np
import pandas as pd
import pymc as pm
import pytensor.tensor as pt
import xarray as xr
from numpy.typing import NDArray

from seasonpass.config import PriorSpec
from seasonpass.data.schemas import CategoryEncoding
from seasonpass.models.design import cell_design


def build_population_model(
    cells: pd.DataFrame,
    encoding: CategoryEncoding,
    prior: Optional[PriorSpec] = None,
    promotion: bool = True,
    channel: bool = False,
    interaction: bool = False,
) -> pm.Model:
    """
    Build a binomial-logit model with population-level terms only.

    Parameters
    ----------
    cells : pd.DataFrame
        Aggregated cells (``promotion``, ``channel``, ``trials``, ``successes``).
    encoding : CategoryEncoding
        Declared levels. The first level of each factor is the reference.
    prior : PriorSpec
        Priors for intercept and slopes.
    promotion, channel, interaction : bool
        Which terms to include. ``interaction`` needs both main effects.

    Returns
    -------
    pm.Model
        PyMC model ready for sampling.

    Examples
    --------
    >>> model = build_population_model(cells, CategoryEncoding())
    >>> with model:
    ...     trace = pm.sample(1000, chains=4)
    """
    if interaction and not (promotion and channel):
        raise ValueError("Interaction terms need both promotion and channel effects")

    prior = prior or PriorSpec()
    design = cell_design(cells, encoding)

    n_promo = len(encoding.promotion_levels)
    n_channel = len(encoding.channel_levels)

    with pm.Model(coords=design.coords) as model:
        promotion_idx = pm.Data("promotion_idx", design.promotion_idx, dims="cell")
        channel_idx = pm.Data("channel_idx", design.channel_idx, dims="cell")
        trials = pm.Data("trials", design.trials, dims="cell")

        intercept = pm.Normal(
            "intercept", mu=prior.intercept.mu, sigma=prior.intercept.sigma
        )
        eta = intercept

        if promotion:
            beta_promotion = pm.Normal(
                "beta_promotion",
                mu=prior.slope.mu,
                sigma=prior.slope.sigma,
                dims="promotion_effect",
            )
            # Baseline level gets an implicit zero
            beta_promotion_full = pt.concatenate([pt.zeros(1), beta_promotion])
            eta = eta + beta_promotion_full[promotion_idx]

        if channel:
            beta_channel = pm.Normal(
                "beta_channel",
                mu=prior.slope.mu,
                sigma=prior.slope.sigma,
                dims="channel_effect",
            )
            beta_channel_full = pt.concatenate([pt.zeros(1), beta_channel])
            eta = eta + beta_channel_full[channel_idx]

        if interaction:
            beta_interaction = pm.Normal(
                "beta_interaction",
                mu=prior.slope.mu,
                sigma=prior.slope.sigma,
                dims=("promotion_effect", "channel_effect"),
            )
            beta_interaction_full = pt.set_subtensor(
                pt.zeros((n_promo, n_channel))[1:, 1:], beta_interaction
            )
            eta = eta + beta_interaction_full[promotion_idx, channel_idx]

        # One value per cell, even for the intercept-only variant
        eta = eta * pt.ones(design.trials.shape[0])

        pm.Deterministic("p", pm.math.invlogit(eta), dims="cell")

        pm.Binomial(
            "purchases",
            n=trials,
            logit_p=eta,
            observed=design.successes,
            dims="cell",
        )

    return model


def build_intercept_only_model(
    cells: pd.DataFrame,
    encoding: CategoryEncoding,
    prior: Optional[PriorSpec] = None,
) -> pm.Model:
    return build_population_model(cells, encoding, prior, promotion=False)


def build_baseline_model(
    cells: pd.DataFrame,
    encoding: CategoryEncoding,
    prior: Optional[PriorSpec] = None,
) -> pm.Model:
    """Intercept plus a single promotion slope; channel is ignored."""
    return build_population_model(cells, encoding, prior, promotion=True)


def build_main_effects_model(
    cells: pd.DataFrame,
    encoding: CategoryEncoding,
    prior: Optional[PriorSpec] = None,
) -> pm.Model:
    return build_population_model(
        cells, encoding, prior, promotion=True, channel=True
    )


def _effect_samples(
    post: xr.Dataset,
    var: str,
    dims: tuple[str, ...],
) -> NDArray[np.floating]:
    return post[var].transpose(*dims, "sample").values


def population_linear_predictor(
    posterior: xr.Dataset,
    promotion_idx: NDArray[np.integer],
    channel_idx: NDArray[np.integer],
) -> NDArray[np.floating]:
    """
    Evaluate the log-odds for arbitrary cells from posterior draws.

    Terms that are absent from the posterior contribute nothing, so the
    same function serves every population-level variant.

    Returns
    -------
    NDArray
        Shape ``(n_cells, n_samples)``.
    """
    post = posterior.stack(sample=("chain", "draw"))
    promotion_idx = np.asarray(promotion_idx, dtype=np.int64)
    channel_idx = np.asarray(channel_idx, dtype=np.int64)

    intercept = post["intercept"].values
    n_samples = intercept.shape[0]
    eta = np.broadcast_to(intercept, (len(promotion_idx), n_samples)).copy()

    if "beta_promotion" in post:
        b = _effect_samples(post, "beta_promotion", ("promotion_effect",))
        full = np.vstack([np.zeros((1, n_samples)), b])
        eta += full[promotion_idx]

    if "beta_channel" in post:
        b = _effect_samples(post, "beta_channel", ("channel_effect",))
        full = np.vstack([np.zeros((1, n_samples)), b])
        eta += full[channel_idx]

    if "beta_interaction" in post:
        b = _effect_samples(
            post, "beta_interaction", ("promotion_effect", "channel_effect")
        )
        n_pe, n_ce = b.shape[:2]
        full = np.zeros((n_pe + 1, n_ce + 1, n_samples))
        full[1:, 1:] = b
        eta += full[promotion_idx, channel_idx]

    return eta
