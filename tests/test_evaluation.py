"""
Tests for diagnostics, coefficient summaries and plots.

Traces are built from known draws so each check has an exact answer.
"""

import arviz as az
import numpy as np
import pandas as pd
import pytest

from seasonpass.evaluation.diagnostics import (
    format_diagnostics_report,
    run_mcmc_diagnostics,
)
from seasonpass.evaluation.summary import (
    flatten_samples,
    format_coefficient_report,
    interval_bounds,
    odds_ratio_table,
    summarize_coefficients,
    summarize_samples,
)


def _trace(
    rng: np.random.Generator,
    n_chains: int = 2,
    n_draws: int = 1000,
    shift_chain: float = 0.0,
    divergent: int = 0,
) -> az.InferenceData:
    intercept = rng.normal(-0.2, 0.05, size=(n_chains, n_draws))
    beta = rng.normal(0.4, 0.1, size=(n_chains, n_draws, 1))
    sd = np.abs(rng.normal(1.0, 0.2, size=(n_chains, n_draws, 2)))
    intercept[-1] += shift_chain

    diverging = np.zeros((n_chains, n_draws), dtype=bool)
    diverging[0, :divergent] = True

    return az.from_dict(
        posterior={"intercept": intercept, "beta_promotion": beta, "sd_channel": sd},
        sample_stats={"diverging": diverging},
        coords={"promotion_effect": ["Bundle"], "term": ["Intercept", "Bundle"]},
        dims={"beta_promotion": ["promotion_effect"], "sd_channel": ["term"]},
    )


# =============================================================================
# DIAGNOSTICS TESTS
# =============================================================================


class TestDiagnostics:
    """Tests for the convergence report."""

    def test_well_mixed_trace_is_good(self, rng):
        report = run_mcmc_diagnostics(_trace(rng))

        assert report.overall_status == "good"
        assert report.divergences == 0
        assert report.max_rhat < 1.01
        assert report.min_ess_bulk > 400

    def test_parameter_names_are_flat(self, rng):
        report = run_mcmc_diagnostics(_trace(rng))
        assert set(report.rhat_summary["parameter"]) == {
            "intercept",
            "beta_promotion[Bundle]",
            "sd_channel[Intercept]",
            "sd_channel[Bundle]",
        }

    def test_divergences_counted_per_chain(self, rng):
        report = run_mcmc_diagnostics(_trace(rng, divergent=3))

        assert report.divergences == 3
        assert report.divergences_per_chain == {0: 3, 1: 0}
        assert report.overall_status == "bad"

    def test_separated_chains_flagged(self, rng):
        report = run_mcmc_diagnostics(_trace(rng, shift_chain=1.0))

        assert report.overall_status == "bad"
        assert any(p.startswith("intercept") for p in report.problematic_params)

    def test_per_chain_mixing_indicator(self, rng):
        trace = _trace(rng)
        drift = np.linspace(0, 2, 1000)
        trace.posterior["intercept"].values[1] += drift

        report = run_mcmc_diagnostics(trace)

        assert set(report.chain_rhat) == {0, 1}
        assert report.chain_rhat[0] < 1.05
        assert report.chain_rhat[1] > 1.05

    def test_chain_that_jumps_is_flagged(self, rng):
        trace = _trace(rng)
        trace.posterior["intercept"].values[1, 500:] += 5.0

        report = run_mcmc_diagnostics(trace)

        assert all(np.isfinite(v) for v in report.chain_rhat.values())
        assert report.chain_rhat[1] > 1.5
        assert any(p.startswith("chain 1") for p in report.problematic_params)
        assert not any(p.startswith("chain 0") for p in report.problematic_params)

    def test_per_chain_mixing_needs_enough_draws(self, rng):
        report = run_mcmc_diagnostics(_trace(rng, n_draws=6))
        assert report.chain_rhat == {}

    def test_var_names_restrict_report(self, rng):
        report = run_mcmc_diagnostics(_trace(rng), var_names=["intercept"])
        assert report.rhat_summary["parameter"].tolist() == ["intercept"]

    def test_format_report(self, rng):
        text = format_diagnostics_report(run_mcmc_diagnostics(_trace(rng, divergent=2)))

        assert "MCMC DIAGNOSTICS REPORT" in text
        assert "Divergent Transitions: 2" in text
        assert "0: 2" in text


# =============================================================================
# SUMMARY TESTS
# =============================================================================


class TestIntervals:
    """Tests for central credible intervals."""

    def test_default_bounds(self):
        lo, hi = interval_bounds(0.89)
        assert lo == pytest.approx(0.055)
        assert hi == pytest.approx(0.945)

    @pytest.mark.parametrize("prob", [0.0, 1.0, 1.5, -0.2])
    def test_invalid_prob(self, prob):
        with pytest.raises(ValueError):
            interval_bounds(prob)

    def test_summarize_samples(self):
        draws = np.arange(1, 101, dtype=float)
        summary = summarize_samples({"x": draws}, prob=0.5).iloc[0]

        assert summary["median"] == pytest.approx(50.5)
        assert summary["lower"] == pytest.approx(np.quantile(draws, 0.25))
        assert summary["upper"] == pytest.approx(np.quantile(draws, 0.75))
        assert summary["width"] == pytest.approx(summary["upper"] - summary["lower"])


class TestCoefficientSummary:
    """Tests for coefficient tables."""

    def test_flatten_concatenates_chains(self, rng):
        samples = flatten_samples(_trace(rng, n_draws=50).posterior)
        assert samples["intercept"].shape == (100,)
        assert samples["sd_channel[Bundle]"].shape == (100,)

    def test_summary_recovers_location(self, rng):
        summary = summarize_coefficients(_trace(rng)).set_index("parameter")

        assert summary.loc["intercept", "median"] == pytest.approx(-0.2, abs=0.01)
        assert summary.loc["beta_promotion[Bundle]", "median"] == pytest.approx(0.4, abs=0.02)
        assert (summary["lower"] < summary["upper"]).all()

    def test_odds_ratio_table_skips_scales(self, rng):
        table = odds_ratio_table(_trace(rng)).set_index("parameter")

        assert "sd_channel[Bundle]" not in table.index
        assert table.loc["beta_promotion[Bundle]", "median"] == pytest.approx(
            np.exp(0.4), rel=0.03
        )

    def test_report_lists_prior_driven_terms(self):
        summary = pd.DataFrame(
            {
                "parameter": ["intercept", "beta_interaction[Bundle, Email]"],
                "median": [0.1, 0.0],
                "lower": [0.0, -4.0],
                "upper": [0.2, 4.0],
                "identified": [True, False],
            }
        )
        text = format_coefficient_report(summary, "interaction")

        assert "INTERACTION" in text
        assert "PRIOR-DRIVEN" in text
        assert "• beta_interaction[Bundle, Email]" in text


# =============================================================================
# PLOT TESTS
# =============================================================================


class TestPlots:
    """Smoke tests: figures are built without a display."""

    @pytest.fixture(autouse=True)
    def _agg_backend(self):
        import matplotlib

        matplotlib.use("Agg")
        yield
        import matplotlib.pyplot as plt

        plt.close("all")

    def test_trace_plot(self, rng):
        from seasonpass.evaluation.plots import plot_traces

        fig = plot_traces(_trace(rng, n_draws=100))
        assert fig.axes

    def test_forest_plot(self, rng):
        from seasonpass.evaluation.plots import plot_coefficient_forest

        traces = {"a": _trace(rng, n_draws=100), "b": _trace(rng, n_draws=100)}
        fig = plot_coefficient_forest(traces, var_names=["intercept", "beta_promotion"])
        assert fig.axes

    def test_probability_plot(self, season_pass_cells):
        from seasonpass.evaluation.plots import plot_cell_probabilities

        predictions = season_pass_cells[["promotion", "channel"]].copy()
        rate = season_pass_cells["successes"] / season_pass_cells["trials"]
        predictions["model"] = "interaction"
        predictions["median"] = rate
        predictions["lower"] = rate - 0.02
        predictions["upper"] = rate + 0.02

        fig = plot_cell_probabilities(predictions, observed=season_pass_cells)
        assert len(fig.axes[0].get_xticklabels()) == 6
