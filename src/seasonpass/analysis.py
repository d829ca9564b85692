"""
Side-by-side comparison of the baseline, interaction and multilevel models.

All models see the same cells, the same encoding and the same prior
family. Each fit gets its own copy of the prior and owns its result, so
the fits are independent of each other and of the order they run in.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

import arviz as az
import numpy as np
import pandas as pd
from loguru import logger

from seasonpass.config import PriorSpec, SamplerConfig
from seasonpass.data.aggregate import proportion_table, unobserved_cells
from seasonpass.data.schemas import CategoryEncoding
from seasonpass.errors import FitError
from seasonpass.evaluation.diagnostics import compare_models_loo
from seasonpass.models.fitting import FittedModel, ModelKind, Prediction, fit


DEFAULT_KINDS = (ModelKind.baseline, ModelKind.interaction, ModelKind.multilevel)


@dataclass(frozen=True)
class ConsistencyCheck:
    promotion: str
    channel: str
    means: dict[str, float]
    tolerance: float

    @property
    def max_difference(self) -> float:
        values = list(self.means.values())
        return float(max(values) - min(values)) if values else 0.0

    @property
    def consistent(self) -> bool:
        return self.max_difference <= self.tolerance


class ComparativeAnalysis:
    """
    Fit several model variants on one dataset and compare their answers.

    Example
    -------
    >>> analysis = ComparativeAnalysis(cells, CategoryEncoding())
    >>> analysis.fit_all()
    >>> analysis.predict("Bundle", "Email")
    >>> analysis.consistency("Bundle", "Email").consistent
    True
    """

    def __init__(
        self,
        cells: pd.DataFrame,
        encoding: Optional[CategoryEncoding] = None,
        prior: Optional[PriorSpec] = None,
        sampler: Optional[SamplerConfig] = None,
    ):
        self.cells = cells
        self.encoding = encoding or CategoryEncoding()
        self.prior = prior or PriorSpec()
        self.sampler = sampler or SamplerConfig()
        self.models: dict[ModelKind, FittedModel] = {}

    def fit(self, kind: Union[ModelKind, str]) -> FittedModel:
        kind = ModelKind(kind)
        fitted = fit(
            kind,
            self.cells,
            encoding=self.encoding,
            prior=self.prior.model_copy(deep=True),
            sampler=self.sampler,
        )
        self.models[kind] = fitted
        return fitted

    def fit_all(
        self,
        kinds: Iterable[Union[ModelKind, str]] = DEFAULT_KINDS,
    ) -> dict[ModelKind, FittedModel]:
        """Fit each requested kind in turn; a failure stops the run."""
        for kind in kinds:
            self.fit(kind)
        return self.models

    def _require(self, kind: Union[ModelKind, str]) -> FittedModel:
        kind = ModelKind(kind)
        if kind not in self.models:
            raise FitError(f"{kind.value} model has not been fitted yet")
        return self.models[kind]

    def _fitted(
        self, kinds: Optional[Iterable[Union[ModelKind, str]]]
    ) -> list[FittedModel]:
        if kinds is None:
            return list(self.models.values())
        return [self._require(k) for k in kinds]

    def observed_table(self) -> pd.DataFrame:
        return proportion_table(self.cells)

    def unobserved_cells(self) -> list[tuple[str, str]]:
        return unobserved_cells(self.cells, self.encoding)

    def summaries(self, prob: float = 0.89) -> pd.DataFrame:
        """Coefficient summaries of every fitted model in one long table."""
        frames = []
        for fitted in self.models.values():
            df = fitted.summary(prob=prob)
            df.insert(0, "model", fitted.kind.value)
            frames.append(df)
        if not frames:
            raise FitError("No models fitted")
        return pd.concat(frames, ignore_index=True)

    def odds_ratios(self, kind: Union[ModelKind, str], prob: float = 0.89) -> pd.DataFrame:
        return self._require(kind).odds_ratios(prob=prob)

    def predict(
        self,
        promotion: str,
        channel: str,
        prob: float = 0.89,
        kinds: Optional[Iterable[Union[ModelKind, str]]] = None,
    ) -> pd.DataFrame:
        """One row per fitted model: predicted purchase probability for the cell."""
        rows = []
        for fitted in self._fitted(kinds):
            pred: Prediction = fitted.predict(promotion, channel, prob=prob)
            rows.append({"model": fitted.kind.value, **pred.to_dict()})
        return pd.DataFrame(rows)

    def prediction_table(self, prob: float = 0.89) -> pd.DataFrame:
        """Predictions for every declared cell from every fitted model."""
        frames = [fitted.predict_grid(prob=prob) for fitted in self.models.values()]
        if not frames:
            raise FitError("No models fitted")
        return pd.concat(frames, ignore_index=True)

    def consistency(
        self,
        promotion: str,
        channel: str,
        kinds: Iterable[Union[ModelKind, str]] = (
            ModelKind.interaction,
            ModelKind.multilevel,
        ),
        tolerance: float = 0.05,
    ) -> ConsistencyCheck:
        """
        Do the chosen models agree on a cell's purchase probability?

        Agreement is the spread of posterior mean probabilities, compared
        against ``tolerance`` on the probability scale.
        """
        means = {
            fitted.kind.value: fitted.predict(promotion, channel).mean
            for fitted in self._fitted(kinds)
        }
        check = ConsistencyCheck(
            promotion=promotion, channel=channel, means=means, tolerance=tolerance
        )
        if not check.consistent:
            logger.warning(
                f"Models disagree on {promotion}/{channel} by "
                f"{check.max_difference:.3f} (tolerance {tolerance})"
            )
        return check

    def diagnostics_table(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "model": fitted.kind.value,
                    "status": fitted.diagnostics.overall_status,
                    "divergences": fitted.diagnostics.divergences,
                    "max_rhat": fitted.diagnostics.max_rhat,
                    "min_ess_bulk": fitted.diagnostics.min_ess_bulk,
                }
                for fitted in self.models.values()
            ]
        )

    def compare(self, scale: str = "log") -> pd.DataFrame:
        """LOO comparison of all fitted models (needs pointwise log-likelihood)."""
        if len(self.models) < 2:
            raise FitError("Need at least 2 fitted models to compare")
        traces: dict[str, az.InferenceData] = {
            fitted.kind.value: fitted.trace for fitted in self.models.values()
        }
        return compare_models_loo(traces, scale=scale)

    def baseline_empirical_check(self, prob: float = 0.89) -> dict[str, float]:
        """
        Empirical baseline log-odds against the baseline model's intercept.

        The baseline model's intercept is the log-odds of purchase at the
        baseline promotion level pooled over channels, so it should sit
        close to ``log(successes / failures)`` of that level.
        """
        fitted = self._require(ModelKind.baseline)
        base = self.encoding.baseline("promotion")
        rows = self.cells[self.cells["promotion"].astype(str) == base]
        successes = int(rows["successes"].sum())
        failures = int(rows["trials"].sum()) - successes

        summary = fitted.summary(prob=prob).set_index("parameter").loc["intercept"]
        empirical = float(np.log(successes / failures))
        return {
            "empirical_log_odds": empirical,
            "median": float(summary["median"]),
            "lower": float(summary["lower"]),
            "upper": float(summary["upper"]),
            "covered": bool(summary["lower"] <= empirical <= summary["upper"]),
        }
