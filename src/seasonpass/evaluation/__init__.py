"""
Evaluation and diagnostics utilities for the season-pass models.

This module provides tools for:
- MCMC diagnostics (R-hat, per-chain mixing, divergences, ESS)
- Coefficient summaries with central credible intervals
- Odds-ratio tables
- Model comparison (LOO-CV)
- Trace, forest and cell-probability plots
"""

from seasonpass.evaluation.diagnostics import (
    DiagnosticsReport,
    run_mcmc_diagnostics,
    compare_models_loo,
    format_diagnostics_report,
)
from seasonpass.evaluation.summary import (
    flatten_samples,
    summarize_samples,
    summarize_coefficients,
    odds_ratio_table,
    format_coefficient_report,
)
from seasonpass.evaluation.plots import (
    plot_traces,
    plot_coefficient_forest,
    plot_cell_probabilities,
)

__all__ = [
    # Diagnostics
    "DiagnosticsReport",
    "run_mcmc_diagnostics",
    "compare_models_loo",
    "format_diagnostics_report",
    # Summaries
    "flatten_samples",
    "summarize_samples",
    "summarize_coefficients",
    "odds_ratio_table",
    "format_coefficient_report",
    # Plots
    "plot_traces",
    "plot_coefficient_forest",
    "plot_cell_probabilities",
]
