"""
End-to-end tests: the three models fitted to the season-pass data.

These run the NUTS sampler and are marked slow. Deselect with
``pytest -m "not slow"``.
"""

import numpy as np
import pandas as pd
import pytest

from seasonpass.analysis import ComparativeAnalysis
from seasonpass.config import SamplerConfig
from seasonpass.errors import FitError, PredictionDomainError
from seasonpass.models import ModelKind, fit, trace_encoding
from seasonpass.models.multilevel import shrinkage_by_channel
from seasonpass.transforms.link import empirical_log_odds

pytestmark = [pytest.mark.slow, pytest.mark.integration, pytest.mark.pymc]


# =============================================================================
# REFERENCE SCENARIO TESTS
# =============================================================================


class TestReferenceScenario:
    """Baseline, interaction and multilevel fits on the published counts."""

    def test_all_three_fitted(self, reference_analysis):
        assert set(reference_analysis.models) == {
            ModelKind.baseline,
            ModelKind.interaction,
            ModelKind.multilevel,
        }

    def test_baseline_intercept_covers_empirical_log_odds(self, reference_analysis):
        summary = (
            reference_analysis.models[ModelKind.baseline]
            .summary(prob=0.89)
            .set_index("parameter")
        )
        target = float(empirical_log_odds(670, 812))

        assert summary.loc["intercept", "lower"] <= target <= summary.loc["intercept", "upper"]

    def test_baseline_empirical_check(self, reference_analysis):
        check = reference_analysis.baseline_empirical_check()

        assert check["empirical_log_odds"] == pytest.approx(np.log(670 / 812))
        assert check["covered"]

    def test_bundle_raises_odds_overall(self, reference_analysis):
        odds = reference_analysis.odds_ratios(ModelKind.baseline).set_index("parameter")
        # (919 / 755) / (670 / 812) = 1.475
        assert odds.loc["beta_promotion[Bundle]", "median"] == pytest.approx(1.475, rel=0.1)

    def test_interaction_and_multilevel_agree_on_bundle_email(self, reference_analysis):
        check = reference_analysis.consistency("Bundle", "Email", tolerance=0.05)

        assert set(check.means) == {"interaction", "multilevel"}
        assert check.consistent, check.means

    def test_interaction_matches_observed_cells(self, reference_analysis):
        fitted = reference_analysis.models[ModelKind.interaction]
        for row in reference_analysis.cells.itertuples(index=False):
            pred = fitted.predict(str(row.promotion), str(row.channel))
            assert pred.mean == pytest.approx(row.successes / row.trials, abs=0.05)

    def test_bundle_hurts_in_mail_helps_in_email(self, reference_analysis):
        fitted = reference_analysis.models[ModelKind.multilevel]
        slopes = fitted.summary().set_index("parameter")["median"]

        assert slopes["beta_promotion_channel[Mail, Bundle]"] < 0
        assert slopes["beta_promotion_channel[Email, Bundle]"] > 0

    def test_side_by_side_prediction(self, reference_analysis):
        table = reference_analysis.predict("Bundle", "Email")

        assert table["model"].tolist() == ["baseline", "interaction", "multilevel"]
        assert ((table["lower"] > 0) & (table["upper"] < 1)).all()
        assert (table["lower"] <= table["median"]).all()

    def test_prediction_table(self, reference_analysis):
        table = reference_analysis.prediction_table()
        assert len(table) == 3 * 6

    def test_summaries_long_table(self, reference_analysis):
        table = reference_analysis.summaries()

        assert set(table["model"]) == {"baseline", "interaction", "multilevel"}
        assert table["identified"].all()
        assert {"parameter", "median", "lower", "upper"} <= set(table.columns)

    def test_unknown_level(self, reference_analysis):
        with pytest.raises(PredictionDomainError):
            reference_analysis.predict("Bundle", "Phone")

    def test_diagnostics_table(self, reference_analysis):
        table = reference_analysis.diagnostics_table()

        assert len(table) == 3
        assert set(table["status"]) <= {"good", "warning", "bad"}
        assert (table["max_rhat"] < 1.1).all()

    def test_loo_comparison(self, reference_analysis):
        comparison = reference_analysis.compare()

        assert len(comparison) == 3
        # The baseline model ignores channel entirely
        assert comparison.index[-1] == "baseline"

    def test_shrinkage_by_channel(self, reference_analysis):
        fitted = reference_analysis.models[ModelKind.multilevel]
        table = shrinkage_by_channel(fitted.trace, fitted.cells, fitted.encoding)

        assert table["channel"].tolist() == ["Mail", "Park", "Email"]
        assert table["shrinkage"].between(0, 1).all()


# =============================================================================
# MISSING CELL TESTS
# =============================================================================


class TestMissingCell:
    """Interaction model fitted with an unobserved combination."""

    def test_fit_succeeds(self, missing_cell_fit):
        assert missing_cell_fit.trace.posterior.sizes["draw"] == 500
        assert len(missing_cell_fit.cells) == 5

    def test_trace_remembers_encoding(self, missing_cell_fit):
        assert trace_encoding(missing_cell_fit.trace) == missing_cell_fit.encoding

    def test_prior_only_term_is_flagged(self, missing_cell_fit):
        summary = missing_cell_fit.summary().set_index("parameter")
        assert not summary.loc["beta_interaction[Bundle, Email]", "identified"]
        assert summary.loc["beta_interaction[Bundle, Park]", "identified"]

    def test_prior_only_interval_is_wider(self, missing_cell_fit):
        summary = missing_cell_fit.summary().set_index("parameter")

        unidentified = summary.loc["beta_interaction[Bundle, Email]", "width"]
        identified = summary.loc["beta_interaction[Bundle, Park]", "width"]
        assert unidentified > identified

    def test_prediction_still_available(self, missing_cell_fit):
        pred = missing_cell_fit.predict("Bundle", "Email")
        lower, upper = pred.interval

        assert 0 < lower < upper < 1


class TestMissingBaselineChannelCell:
    """Interaction model fitted without the Bundle/Mail cell."""

    def test_main_effect_is_flagged(self, missing_baseline_channel_fit):
        summary = missing_baseline_channel_fit.summary().set_index("parameter")

        assert not summary.loc["beta_promotion[Bundle]", "identified"]
        assert not summary.loc["beta_interaction[Bundle, Park]", "identified"]
        assert not summary.loc["beta_interaction[Bundle, Email]", "identified"]
        assert summary.loc["beta_channel[Park]", "identified"]
        assert summary.loc["beta_channel[Email]", "identified"]

    def test_flagged_terms_are_the_wide_ones(self, missing_baseline_channel_fit):
        summary = missing_baseline_channel_fit.summary().set_index("parameter")
        widest_identified = summary.loc[summary["identified"], "width"].max()

        assert (summary.loc[~summary["identified"], "width"] > 2 * widest_identified).all()

    def test_observed_cells_still_predicted(self, missing_baseline_channel_fit):
        pred = missing_baseline_channel_fit.predict("Bundle", "Park")
        # 639 / 862 observed
        assert pred.mean == pytest.approx(639 / 862, abs=0.05)


# =============================================================================
# REPRODUCIBILITY TESTS
# =============================================================================


class TestReproducibility:
    """Same seed, same cells, same sampler settings."""

    def test_same_seed_same_summary(self, season_pass_cells, encoding):
        sampler = SamplerConfig(draws=200, tune=200, chains=2, random_seed=123)

        first = fit("baseline", season_pass_cells, encoding=encoding, sampler=sampler)
        second = fit("baseline", season_pass_cells, encoding=encoding, sampler=sampler)

        a = first.summary().set_index("parameter")["median"]
        b = second.summary().set_index("parameter")["median"]
        pd.testing.assert_series_equal(a, b, check_exact=False, atol=1e-6)

    def test_different_seed_same_answer(self, season_pass_cells, encoding):
        first = fit(
            "baseline",
            season_pass_cells,
            encoding=encoding,
            sampler=SamplerConfig(draws=300, tune=300, chains=2, random_seed=1),
        )
        second = fit(
            "baseline",
            season_pass_cells,
            encoding=encoding,
            sampler=SamplerConfig(draws=300, tune=300, chains=2, random_seed=2),
        )

        a = first.summary().set_index("parameter")["median"]
        b = second.summary().set_index("parameter")["median"]
        # Posterior sd of each coefficient is about 0.05-0.07
        pd.testing.assert_series_equal(a, b, check_exact=False, atol=0.05)



# =============================================================================
# DRIVER BEHAVIOUR TESTS
# =============================================================================


class TestComparativeAnalysisUnfitted:
    """Driver behaviour that needs no sampling."""

    def test_requires_fit(self, season_pass_cells):
        analysis = ComparativeAnalysis(season_pass_cells)
        with pytest.raises(FitError):
            analysis.odds_ratios("baseline")

    def test_summaries_need_models(self, season_pass_cells):
        with pytest.raises(FitError):
            ComparativeAnalysis(season_pass_cells).summaries()

    def test_compare_needs_two_models(self, season_pass_cells):
        with pytest.raises(FitError):
            ComparativeAnalysis(season_pass_cells).compare()

    def test_unobserved_cells(self, missing_cell_cells):
        analysis = ComparativeAnalysis(missing_cell_cells)
        assert analysis.unobserved_cells() == [("Bundle", "Email")]

    def test_observed_table(self, season_pass_cells):
        table = ComparativeAnalysis(season_pass_cells).observed_table()
        assert isinstance(table, pd.DataFrame)
        assert "log_odds" in table.columns
