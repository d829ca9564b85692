from dataclasses import dataclass, field
from typing import Literal, Optional

import arviz as az
import numpy as np
import pandas as pd
import xarray as xr


@dataclass
class DiagnosticsReport:
    rhat_summary: pd.DataFrame
    ess_summary: pd.DataFrame
    divergences: int
    max_treedepth_warnings: int
    problematic_params: list[str]
    overall_status: Literal["good", "warning", "bad"]
    divergences_per_chain: dict[int, int] = field(default_factory=dict)
    chain_rhat: dict[int, float] = field(default_factory=dict)

    @property
    def max_rhat(self) -> float:
        return float(self.rhat_summary["rhat"].max()) if len(self.rhat_summary) else np.nan

    @property
    def min_ess_bulk(self) -> float:
        return float(self.ess_summary["ess_bulk"].min()) if len(self.ess_summary) else np.nan


def run_mcmc_diagnostics(
    trace: az.InferenceData,
    var_names: Optional[list[str]] = None,
    rhat_threshold: float = 1.01,
    ess_threshold: int = 400,
    chain_rhat_threshold: float = 1.05,
) -> DiagnosticsReport:
    """
    Convergence diagnostics for a fitted trace.

    Nothing here raises on a bad result: the report is meant to be shown
    to whoever reads the estimates. ``chain_rhat`` is the split R-hat of
    each chain on its own, a per-chain mixing indicator; values well above
    1 mean that chain drifted between its first and second half.
    """
    rhat = az.rhat(trace, var_names=var_names)
    rhat_df = _xarray_to_flat_df(rhat, "rhat")

    ess_bulk = az.ess(trace, var_names=var_names, method="bulk")
    ess_tail = az.ess(trace, var_names=var_names, method="tail")
    ess_bulk_df = _xarray_to_flat_df(ess_bulk, "ess_bulk")
    ess_tail_df = _xarray_to_flat_df(ess_tail, "ess_tail")
    ess_df = ess_bulk_df.merge(ess_tail_df, on="parameter")

    divergences = 0
    divergences_per_chain: dict[int, int] = {}
    if "sample_stats" in trace.groups():
        diverging = trace.sample_stats.get("diverging", None)
        if diverging is not None:
            divergences = int(diverging.sum().values)
            per_chain = diverging.sum(dim="draw")
            divergences_per_chain = {
                int(c): int(per_chain.sel(chain=c).values)
                for c in per_chain.coords["chain"].values
            }

    max_treedepth_warnings = 0
    if "sample_stats" in trace.groups():
        reached_max = trace.sample_stats.get("reached_max_treedepth", None)
        if reached_max is not None:
            max_treedepth_warnings = int(reached_max.sum().values)

    chain_rhat = _per_chain_rhat(trace, var_names)

    problematic = []

    high_rhat_mask = rhat_df["rhat"] > rhat_threshold
    high_rhat = rhat_df[high_rhat_mask]["parameter"].tolist()
    for p in high_rhat:
        rhat_val = rhat_df.loc[rhat_df["parameter"] == p, "rhat"].values[0]
        problematic.append(f"{p} (R-hat={rhat_val:.3f})")

    low_ess_mask = (ess_df["ess_bulk"] < ess_threshold) | (
        ess_df["ess_tail"] < ess_threshold
    )
    low_ess = ess_df[low_ess_mask]["parameter"].tolist()
    for p in low_ess:
        if p not in high_rhat:
            row = ess_df.loc[ess_df["parameter"] == p].iloc[0]
            problematic.append(
                f"{p} (ESS_bulk={row['ess_bulk']:.0f}, ESS_tail={row['ess_tail']:.0f})"
            )

    for chain, value in chain_rhat.items():
        if value > chain_rhat_threshold:
            problematic.append(f"chain {chain} (split R-hat={value:.3f})")

    if divergences > 0 or len(high_rhat) > 0:
        status = "bad"
    elif max_treedepth_warnings > 10 or len(low_ess) > 0:
        status = "warning"
    else:
        status = "good"

    return DiagnosticsReport(
        rhat_summary=rhat_df,
        ess_summary=ess_df,
        divergences=divergences,
        max_treedepth_warnings=max_treedepth_warnings,
        problematic_params=problematic,
        overall_status=status,
        divergences_per_chain=divergences_per_chain,
        chain_rhat=chain_rhat,
    )


def _per_chain_rhat(
    trace: az.InferenceData,
    var_names: Optional[list[str]] = None,
) -> dict[int, float]:
    """
    Split each chain into its first and second half and take the worst
    R-hat over those two pseudo-chains.
    """
    posterior = trace.posterior
    if var_names is not None:
        posterior = posterior[var_names]

    half = posterior.sizes.get("draw", 0) // 2
    if half < 4:
        return {}

    draw = np.arange(half)
    out = {}
    for chain in posterior.coords["chain"].values:
        single = posterior.sel(chain=chain, drop=True)
        halves = xr.concat(
            [
                single.isel(draw=slice(0, half)).assign_coords(draw=draw),
                single.isel(draw=slice(half, 2 * half)).assign_coords(draw=draw),
            ],
            dim="chain",
        )
        rhat = az.rhat(halves)
        values = _xarray_to_flat_df(rhat, "rhat")["rhat"].to_numpy()
        out[int(chain)] = float(np.nanmax(values)) if len(values) else np.nan
    return out


def _xarray_to_flat_df(ds: xr.Dataset, value_name: str) -> pd.DataFrame:
    records = []

    for var in ds.data_vars:
        data = ds[var]

        if data.dims:
            for idx in np.ndindex(*data.shape):
                coord_parts = []
                for dim, i in zip(data.dims, idx):
                    coord_parts.append(str(data.coords[dim].values[i]))
                param_name = f"{var}[{', '.join(coord_parts)}]"
                records.append(
                    {"parameter": param_name, value_name: float(data.values[idx])}
                )
        else:
            records.append({"parameter": var, value_name: float(data.values)})

    return pd.DataFrame(records, columns=["parameter", value_name])


def compare_models_loo(
    traces: dict[str, az.InferenceData],
    scale: str = "log",
) -> pd.DataFrame:
    return az.compare(traces, ic="loo", scale=scale)


def format_diagnostics_report(report: DiagnosticsReport) -> str:
    status_emoji = {"good": "✅", "warning": "⚠️", "bad": "❌"}
    status_meaning = {
        "good": "All checks passed — estimates are reliable",
        "warning": "Minor issues — interpret with caution",
        "bad": "Major issues — do not trust these estimates without refitting",
    }

    per_chain = ", ".join(
        f"{chain}: {count}" for chain, count in report.divergences_per_chain.items()
    )
    mixing = ", ".join(
        f"{chain}: {value:.3f}" for chain, value in report.chain_rhat.items()
    )

    lines = [
        "=" * 60,
        f"MCMC DIAGNOSTICS REPORT  {status_emoji[report.overall_status]}",
        "=" * 60,
        "",
        f"Overall Status: {report.overall_status.upper()}",
        f"  → {status_meaning[report.overall_status]}",
        "",
        f"Divergent Transitions: {report.divergences}",
        f"  per chain: {per_chain or 'n/a'}",
        f"Max Treedepth Warnings: {report.max_treedepth_warnings}",
        "",
        f"Max R-hat: {report.max_rhat:.4f}",
        f"Per-chain split R-hat: {mixing or 'n/a'}",
        f"Min Bulk ESS: {report.min_ess_bulk:.0f}",
        f"Min Tail ESS: {report.ess_summary['ess_tail'].min():.0f}",
    ]

    if report.problematic_params:
        lines.append("")
        lines.append("Problematic parameters:")
        for p in report.problematic_params[:10]:
            lines.append(f"  • {p}")

    if report.overall_status == "bad":
        lines.append("")
        lines.append("Try a higher --target-accept or more tuning steps and refit.")

    lines.append("=" * 60)
    return "\n".join(lines)
