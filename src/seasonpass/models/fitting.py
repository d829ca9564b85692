"""
Fitting service: model kind + cells + priors + sampler in, posterior out.

PyMC's NUTS sampler does all of the inference. This module only decides
which model to build, runs the sampler, attaches diagnostics and wraps
the result in an immutable ``FittedModel`` that knows how to summarize
itself and predict purchase probabilities for any declared cell.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

import arviz as az
import numpy as np
import pandas as pd
import pymc as pm
from loguru import logger
from numpy.typing import NDArray
from pymc.exceptions import SamplingError

from seasonpass.config import PriorSpec, SamplerConfig
from seasonpass.data.schemas import CategoryEncoding
from seasonpass.errors import ConvergenceError, FitError, PredictionDomainError
from seasonpass.evaluation.diagnostics import DiagnosticsReport, run_mcmc_diagnostics
from seasonpass.evaluation.summary import (
    flatten_samples,
    interval_bounds,
    odds_ratio_table,
    summarize_coefficients,
)
from seasonpass.models.baseline import (
    build_baseline_model,
    build_intercept_only_model,
    build_main_effects_model,
    population_linear_predictor,
)
from seasonpass.models.design import unidentified_terms
from seasonpass.models.interaction import build_interaction_model
from seasonpass.models.multilevel import (
    build_multilevel_model,
    multilevel_linear_predictor,
)
from seasonpass.transforms.link import sigmoid


class ModelKind(str, Enum):
    intercept_only = "intercept_only"
    baseline = "baseline"
    main_effects = "main_effects"
    interaction = "interaction"
    multilevel = "multilevel"


ModelBuilder = Callable[[pd.DataFrame, CategoryEncoding, PriorSpec], pm.Model]

MODEL_BUILDERS: dict[ModelKind, ModelBuilder] = {
    ModelKind.intercept_only: build_intercept_only_model,
    ModelKind.baseline: build_baseline_model,
    ModelKind.main_effects: build_main_effects_model,
    ModelKind.interaction: build_interaction_model,
    ModelKind.multilevel: build_multilevel_model,
}

LINEAR_PREDICTORS = {
    ModelKind.intercept_only: population_linear_predictor,
    ModelKind.baseline: population_linear_predictor,
    ModelKind.main_effects: population_linear_predictor,
    ModelKind.interaction: population_linear_predictor,
    ModelKind.multilevel: multilevel_linear_predictor,
}

ENCODING_ATTR = "seasonpass_encoding"

# (promotion, channel, interaction) terms of each population-level kind
POPULATION_TERMS = {
    ModelKind.intercept_only: (False, False, False),
    ModelKind.baseline: (True, False, False),
    ModelKind.main_effects: (True, True, False),
    ModelKind.interaction: (True, True, True),
}


@dataclass(frozen=True)
class Prediction:
    """Posterior of the purchase probability for one (promotion, channel) cell."""

    promotion: str
    channel: str
    samples: NDArray[np.floating]
    prob: float = 0.89
    counts: Optional[NDArray[np.integer]] = None

    @property
    def mean(self) -> float:
        return float(np.mean(self.samples))

    @property
    def median(self) -> float:
        return float(np.median(self.samples))

    @property
    def interval(self) -> tuple[float, float]:
        lo, hi = interval_bounds(self.prob)
        return float(np.quantile(self.samples, lo)), float(np.quantile(self.samples, hi))

    def to_dict(self) -> dict[str, Union[str, float]]:
        lower, upper = self.interval
        return {
            "promotion": self.promotion,
            "channel": self.channel,
            "mean": self.mean,
            "median": self.median,
            "lower": lower,
            "upper": upper,
        }


@dataclass(frozen=True)
class FittedModel:
    """
    Result of one fit. Never mutated after ``fit`` returns.

    Attributes
    ----------
    kind : ModelKind
        Which formula variant was fitted.
    model : pm.Model
        The PyMC model that was sampled.
    trace : az.InferenceData
        Posterior draws, sample stats and (optionally) pointwise log-likelihood.
    cells : pd.DataFrame
        The aggregated cells the model saw.
    encoding, prior, sampler
        Exactly what was used, for reporting and reproducibility.
    diagnostics : DiagnosticsReport
        Convergence report. Bad diagnostics do not raise; see
        ``raise_for_convergence``.
    """

    kind: ModelKind
    model: pm.Model
    trace: az.InferenceData
    cells: pd.DataFrame
    encoding: CategoryEncoding
    prior: PriorSpec
    sampler: SamplerConfig
    diagnostics: DiagnosticsReport

    def coefficient_samples(self) -> dict[str, NDArray[np.floating]]:
        return flatten_samples(self.trace.posterior)

    def summary(self, prob: float = 0.89) -> pd.DataFrame:
        """
        Coefficient medians and central intervals.

        ``identified`` is False for coefficients the observed cells cannot
        pin down: their posterior is the prior and should be read that way.
        """
        df = summarize_coefficients(self.trace, prob=prob)
        prior_only = set(self.unidentified_terms())
        df["identified"] = ~df["parameter"].isin(prior_only)
        return df

    def odds_ratios(self, prob: float = 0.89) -> pd.DataFrame:
        return odds_ratio_table(self.trace, prob=prob)

    def unidentified_terms(self) -> list[str]:
        if self.kind not in POPULATION_TERMS:
            return []
        promotion, channel, interaction = POPULATION_TERMS[self.kind]
        return unidentified_terms(
            self.cells,
            self.encoding,
            promotion=promotion,
            channel=channel,
            interaction=interaction,
        )

    def _indices(self, promotion: str, channel: str) -> tuple[int, int]:
        if promotion not in self.encoding.promotion_levels:
            raise PredictionDomainError(
                f"Unknown promotion level '{promotion}'; "
                f"declared levels are {self.encoding.promotion_levels}"
            )
        if channel not in self.encoding.channel_levels:
            raise PredictionDomainError(
                f"Unknown channel level '{channel}'; "
                f"declared levels are {self.encoding.channel_levels}"
            )
        return (
            self.encoding.promotion_levels.index(promotion),
            self.encoding.channel_levels.index(channel),
        )

    def linear_predictor(self, promotion: str, channel: str) -> NDArray[np.floating]:
        """Posterior draws of the log-odds for one cell."""
        p_idx, c_idx = self._indices(promotion, channel)
        eta = LINEAR_PREDICTORS[self.kind](
            self.trace.posterior, np.array([p_idx]), np.array([c_idx])
        )
        return eta[0]

    def predict(
        self,
        promotion: str,
        channel: str,
        prob: float = 0.89,
        trials: Optional[int] = None,
        random_seed: Optional[int] = None,
    ) -> Prediction:
        """
        Predicted purchase probability for a cell, observed or not.

        With ``trials`` given, also draws posterior predictive purchase
        counts for that many contacts.

        Raises
        ------
        PredictionDomainError
            If either level is not declared in the encoding.
        """
        p = sigmoid(self.linear_predictor(promotion, channel))

        counts = None
        if trials is not None:
            rng = np.random.default_rng(
                self.sampler.random_seed if random_seed is None else random_seed
            )
            counts = rng.binomial(int(trials), p)

        return Prediction(
            promotion=promotion,
            channel=channel,
            samples=p,
            prob=prob,
            counts=counts,
        )

    def predict_grid(self, prob: float = 0.89) -> pd.DataFrame:
        """Predictions for every declared (promotion, channel) combination."""
        rows = [
            self.predict(p, c, prob=prob).to_dict()
            for p in self.encoding.promotion_levels
            for c in self.encoding.channel_levels
        ]
        df = pd.DataFrame(rows)
        df.insert(0, "model", self.kind.value)
        return df

    def raise_for_convergence(self) -> None:
        """Raise ``ConvergenceError`` if the diagnostics say the fit is unusable."""
        if self.diagnostics.overall_status == "bad":
            raise ConvergenceError(
                f"{self.kind.value} model did not converge: "
                f"{self.diagnostics.divergences} divergences, "
                f"max R-hat {self.diagnostics.max_rhat:.3f}",
                report=self.diagnostics,
            )


def trace_encoding(trace: az.InferenceData) -> CategoryEncoding:
    """
    Encoding a trace was fitted under.

    Falls back to the default encoding for traces saved without one.
    """
    stored = trace.posterior.attrs.get(ENCODING_ATTR)
    if stored is None:
        return CategoryEncoding()
    return CategoryEncoding.model_validate_json(stored)


def sample_model(
    model: pm.Model,
    sampler: Optional[SamplerConfig] = None,
    **kwargs,
) -> az.InferenceData:
    sampler = sampler or SamplerConfig()
    idata_kwargs = {"log_likelihood": True} if sampler.log_likelihood else {}

    with model:
        trace = pm.sample(
            draws=sampler.draws,
            tune=sampler.tune,
            chains=sampler.chains,
            cores=sampler.cores,
            target_accept=sampler.target_accept,
            random_seed=sampler.random_seed,
            progressbar=sampler.progressbar,
            return_inferencedata=True,
            idata_kwargs=idata_kwargs,
            **kwargs,
        )
    return trace


def fit(
    kind: Union[ModelKind, str],
    cells: pd.DataFrame,
    encoding: Optional[CategoryEncoding] = None,
    prior: Optional[PriorSpec] = None,
    sampler: Optional[SamplerConfig] = None,
) -> FittedModel:
    """
    Build and sample one model variant.

    Parameters
    ----------
    kind : ModelKind or str
        ``intercept_only``, ``baseline``, ``main_effects``, ``interaction``
        or ``multilevel``.
    cells : pd.DataFrame
        Aggregated cells from ``aggregate_cells``.
    encoding : CategoryEncoding
        Declared levels; must be the one the cells were aggregated with.
    prior : PriorSpec
        Copied before use, so one spec can be shared between fits.
    sampler : SamplerConfig
        Draws, tuning, chains, seed.

    Returns
    -------
    FittedModel

    Raises
    ------
    FitError
        If the model cannot be built or the sampler fails outright. Poor
        convergence is reported in ``FittedModel.diagnostics`` instead.
    """
    kind = ModelKind(kind)
    encoding = encoding or CategoryEncoding()
    prior = (prior or PriorSpec()).model_copy(deep=True)
    sampler = sampler or SamplerConfig()

    model = MODEL_BUILDERS[kind](cells, encoding, prior)
    free_vars = [rv.name for rv in model.free_RVs]

    logger.info(
        f"Sampling {kind.value} model on {len(cells)} cells "
        f"({sampler.draws} draws x {sampler.chains} chains, seed={sampler.random_seed})"
    )
    try:
        trace = sample_model(model, sampler)
    except (SamplingError, FloatingPointError, ValueError, RuntimeError) as e:
        raise FitError(f"Sampling failed for {kind.value} model: {e}") from e

    # Saved traces carry the levels their coefficients were coded against
    trace.posterior.attrs[ENCODING_ATTR] = encoding.model_dump_json()

    report = run_mcmc_diagnostics(trace, var_names=free_vars)
    if report.overall_status == "bad":
        logger.warning(
            f"{kind.value}: {report.divergences} divergent transitions, "
            f"max R-hat {report.max_rhat:.3f}; estimates may be unreliable"
        )
    elif report.overall_status == "warning":
        logger.warning(f"{kind.value}: {'; '.join(report.problematic_params[:3])}")
    else:
        logger.info(f"{kind.value}: diagnostics OK (max R-hat {report.max_rhat:.3f})")

    fitted = FittedModel(
        kind=kind,
        model=model,
        trace=trace,
        cells=cells.copy(),
        encoding=encoding,
        prior=prior,
        sampler=sampler,
        diagnostics=report,
    )

    for term in fitted.unidentified_terms():
        logger.warning(
            f"{term} is not identified by the observed cells; its posterior is the prior"
        )

    return fitted
