from typing import Iterable, Optional

import arviz as az
import numpy as np
import pandas as pd
import xarray as xr

from seasonpass.transforms.link import odds_ratio


# Coefficients reported per model kind; everything else in the posterior
# (p, offsets, Cholesky factors) is bookkeeping.
COEFFICIENT_VARS = (
    "intercept",
    "beta_promotion",
    "beta_channel",
    "beta_interaction",
    "intercept_channel",
    "beta_promotion_channel",
    "sd_channel",
    "corr_channel",
)


def coefficient_vars(posterior: xr.Dataset) -> list[str]:
    return [v for v in COEFFICIENT_VARS if v in posterior.data_vars]


def flatten_samples(
    posterior: xr.Dataset,
    var_names: Optional[Iterable[str]] = None,
) -> dict[str, np.ndarray]:
    """
    Flat ``name -> draws`` mapping, one entry per scalar coefficient.

    Names follow ``var[coord, coord]``, e.g. ``beta_interaction[Bundle, Email]``.
    Draws from all chains are concatenated.
    """
    var_names = list(var_names) if var_names is not None else coefficient_vars(posterior)
    stacked = posterior[var_names].stack(sample=("chain", "draw"))

    out: dict[str, np.ndarray] = {}
    for var in var_names:
        data = stacked[var]
        dims = [d for d in data.dims if d != "sample"]
        data = data.transpose(*dims, "sample")

        if not dims:
            out[var] = data.values.copy()
            continue

        for idx in np.ndindex(*data.shape[:-1]):
            labels = [str(data.coords[d].values[i]) for d, i in zip(dims, idx)]
            out[f"{var}[{', '.join(labels)}]"] = data.values[idx].copy()

    return out


def interval_bounds(prob: float) -> tuple[float, float]:
    if not 0 < prob < 1:
        raise ValueError(f"prob must be in (0, 1), got {prob}")
    tail = (1.0 - prob) / 2.0
    return tail, 1.0 - tail


def summarize_samples(
    samples: dict[str, np.ndarray],
    prob: float = 0.89,
) -> pd.DataFrame:
    """Median, mean, sd and central ``prob`` interval per coefficient."""
    lo, hi = interval_bounds(prob)
    records = []
    for name, draws in samples.items():
        records.append(
            {
                "parameter": name,
                "median": float(np.median(draws)),
                "mean": float(np.mean(draws)),
                "sd": float(np.std(draws, ddof=1)) if draws.size > 1 else np.nan,
                "lower": float(np.quantile(draws, lo)),
                "upper": float(np.quantile(draws, hi)),
            }
        )
    df = pd.DataFrame(
        records, columns=["parameter", "median", "mean", "sd", "lower", "upper"]
    )
    df["width"] = df["upper"] - df["lower"]
    return df


def summarize_coefficients(
    trace: az.InferenceData,
    prob: float = 0.89,
    var_names: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """
    Posterior summary for every coefficient of a fitted model.

    Parameters
    ----------
    trace : az.InferenceData
        Fitted trace.
    prob : float
        Mass of the central credible interval (default 0.89).
    var_names : iterable of str, optional
        Restrict to these variables. Defaults to the model's coefficients.

    Returns
    -------
    pd.DataFrame
        ``parameter``, ``median``, ``mean``, ``sd``, ``lower``, ``upper``,
        ``width``.
    """
    return summarize_samples(flatten_samples(trace.posterior, var_names), prob)


def odds_ratio_table(
    trace: az.InferenceData,
    prob: float = 0.89,
    var_names: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """
    Exponentiated coefficient summaries.

    Quantiles commute with ``exp``, so the interval is computed on the
    draws after exponentiating and stays a valid central interval.
    Scale parameters (``sd_channel``, ``corr_channel``) are not log-odds and
    are left out.
    """
    samples = flatten_samples(trace.posterior, var_names)
    samples = {
        name: odds_ratio(draws)
        for name, draws in samples.items()
        if not name.startswith(("sd_channel", "corr_channel"))
    }
    return summarize_samples(samples, prob)


def format_coefficient_report(
    summary: pd.DataFrame,
    title: str,
    prob: float = 0.89,
    decimals: int = 3,
) -> str:
    lines = [
        "=" * 70,
        title.upper(),
        "=" * 70,
        f"(median and central {prob:.0%} interval)",
        "-" * 50,
        summary.set_index("parameter")[["median", "lower", "upper"]]
        .round(decimals)
        .to_string(),
    ]

    if "identified" in summary.columns and not summary["identified"].all():
        lines.extend(
            [
                "",
                "PRIOR-DRIVEN (no data for this combination):",
                *[f"  • {p}" for p in summary.loc[~summary["identified"], "parameter"]],
            ]
        )

    lines.append("=" * 70)
    return "\n".join(lines)
