from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from seasonpass.config import PipelineConfig, SamplerConfig
from seasonpass.data.loader import SEASON_PASS_URL
from seasonpass.errors import SeasonPassError

app = typer.Typer(
    name="seasonpass",
    help="🎢 Season pass: Bayesian logistic models for bundle promotions",
    add_completion=False,
)

console = Console()


class ModelType(str, Enum):
    intercept_only = "intercept_only"
    baseline = "baseline"
    main_effects = "main_effects"
    interaction = "interaction"
    multilevel = "multilevel"


def _load_contacts(config: PipelineConfig, reference: bool):
    from seasonpass.data import (
        expand_cells_to_contacts,
        load_contacts,
        normalize_records,
        season_pass_table,
    )

    if reference:
        console.print("📊 Using the built-in season-pass reference table")
        raw = expand_cells_to_contacts(
            season_pass_table(config.encoding), config.encoding, shuffle=False
        )
        return normalize_records(raw, config.encoding)

    console.print(f"📊 Loading contacts from [cyan]{config.source}[/cyan]")
    contacts = load_contacts(config.source, config.encoding)
    console.print(f"   ✅ {len(contacts)} contacts passed validation\n")
    return contacts


def _load_cells(config: PipelineConfig, reference: bool):
    from seasonpass.data import aggregate_cells, season_pass_table

    if reference:
        console.print("📊 Using the built-in season-pass reference table")
        return season_pass_table(config.encoding)

    return aggregate_cells(_load_contacts(config, reference), config.encoding)


def _pipeline_config(
    source: str,
    draws: int = 1000,
    tune: int = 1000,
    chains: int = 4,
    target_accept: float = 0.9,
    seed: int = 42,
    prob: float = 0.89,
    output_dir: Path = Path("results/"),
) -> PipelineConfig:
    return PipelineConfig(
        source=source,
        sampler=SamplerConfig(
            draws=draws,
            tune=tune,
            chains=chains,
            target_accept=target_accept,
            random_seed=seed,
            progressbar=True,
        ),
        interval_prob=prob,
        output_dir=output_dir,
    )


def _print_frame(df, title: str, decimals: int = 3) -> None:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for col in df.columns:
        table.add_column(str(col), justify="left" if df[col].dtype == object else "right")

    for _, row in df.iterrows():
        cells = []
        for value in row:
            if isinstance(value, float):
                cells.append(f"{value:.{decimals}f}")
            else:
                cells.append(str(value))
        table.add_row(*cells)

    console.print(table)
    console.print()


@app.command()
def generate(
    output_dir: Path = typer.Option(
        Path("data/"), "--output", "-o", help="Output directory for the CSV"
    ),
    simulate: bool = typer.Option(
        False,
        "--simulate/--reference",
        help="Draw synthetic contacts instead of expanding the reference table",
    ),
    seed: int = typer.Option(
        42, "--seed", "-s", help="Random seed for reproducibility"
    ),
) -> None:
    from seasonpass.data.synthetic import (
        expand_cells_to_contacts,
        save_contacts,
        season_pass_table,
        simulate_contacts,
    )

    console.print("\n🎢 [bold blue]Season Pass[/bold blue] — Data Generator\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Generating contacts...", total=None)

        if simulate:
            df = simulate_contacts(random_seed=seed)
        else:
            df = expand_cells_to_contacts(season_pass_table(), random_seed=seed)

        progress.update(task, description="Saving file...")
        path = save_contacts(df, output_dir=str(output_dir))

    console.print(f"\n✅ [green]{len(df)} contacts saved to {path}[/green]\n")


@app.command()
def summarize(
    source: str = typer.Argument(SEASON_PASS_URL, help="CSV path or URL"),
    reference: bool = typer.Option(
        False, "--reference", help="Use the built-in reference table"
    ),
) -> None:
    """Exploratory purchase rates by promotion, by channel and by cell."""
    from seasonpass.data import (
        aggregate_by,
        aggregate_cells,
        proportion_table,
        unobserved_cells,
    )

    console.print("\n🎢 [bold blue]Season Pass[/bold blue] — Exploratory Summary\n")

    config = _pipeline_config(source)
    try:
        contacts = _load_contacts(config, reference)
        cells = aggregate_cells(contacts, config.encoding)
    except SeasonPassError as e:
        console.print(f"   ❌ [red]{e}[/red]")
        raise typer.Exit(1)

    columns = ["trials", "successes", "proportion", "odds", "log_odds"]
    for factor in ("promotion", "channel"):
        coarse = proportion_table(aggregate_by(contacts, factor, config.encoding))
        _print_frame(coarse[[factor, *columns]], f"By {factor}")

    _print_frame(
        proportion_table(cells)[["promotion", "channel", *columns]],
        "By promotion × channel",
    )

    missing = unobserved_cells(cells, config.encoding)
    if missing:
        console.print(
            "[yellow]⚠️  No contacts for: "
            + ", ".join(f"{p}/{c}" for p, c in missing)
            + "[/yellow]\n"
        )


@app.command()
def fit(
    source: str = typer.Argument(SEASON_PASS_URL, help="CSV path or URL"),
    model_type: ModelType = typer.Option(
        ModelType.baseline, "--model", "-m", help="Model variant to fit"
    ),
    reference: bool = typer.Option(
        False, "--reference", help="Use the built-in reference table"
    ),
    draws: int = typer.Option(
        1000, "--draws", "-d", help="Number of posterior draws per chain"
    ),
    tune: int = typer.Option(1000, "--tune", "-t", help="Number of tuning steps"),
    chains: int = typer.Option(4, "--chains", "-c", help="Number of MCMC chains"),
    target_accept: float = typer.Option(
        0.9, "--target-accept", help="Target acceptance rate"
    ),
    prob: float = typer.Option(0.89, "--prob", help="Credible interval mass"),
    output_dir: Path = typer.Option(
        Path("results/"), "--output", "-o", help="Output directory for traces"
    ),
    seed: int = typer.Option(42, "--seed", "-s", help="Random seed"),
) -> None:
    from seasonpass.evaluation import format_diagnostics_report
    from seasonpass.models import fit as fit_model

    console.print("\n🎢 [bold blue]Season Pass[/bold blue] — Model Fitting\n")

    config = _pipeline_config(
        source, draws, tune, chains, target_accept, seed, prob, output_dir
    )
    try:
        cells = _load_cells(config, reference)
    except SeasonPassError as e:
        console.print(f"   ❌ [red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"🏗️  Fitting [bold]{model_type.value}[/bold] model...")
    console.print(
        f"🎲 Sampling ({draws} draws × {chains} chains, {tune} tuning steps)..."
    )
    console.print(f"   Target acceptance: {target_accept}\n")

    try:
        fitted = fit_model(
            model_type.value,
            cells,
            encoding=config.encoding,
            prior=config.prior,
            sampler=config.sampler,
        )
    except SeasonPassError as e:
        console.print(f"[red]Fit failed: {e}[/red]")
        raise typer.Exit(1)

    console.print("\n🔍 Running diagnostics...")
    console.print(format_diagnostics_report(fitted.diagnostics), markup=False)

    config.output_dir.mkdir(exist_ok=True, parents=True)
    trace_path = config.output_dir / f"{model_type.value}_trace.nc"
    fitted.trace.to_netcdf(trace_path)
    console.print(f"\n✅ [green]Trace saved to {trace_path}[/green]\n")

    _print_frame(
        fitted.summary(prob=prob)[["parameter", "median", "lower", "upper", "identified"]],
        f"Coefficients (log-odds, {prob:.0%} interval)",
    )
    _print_frame(
        fitted.odds_ratios(prob=prob)[["parameter", "median", "lower", "upper"]],
        "Odds ratios",
    )
    _print_frame(fitted.predict_grid(prob=prob), "Predicted purchase probability")


@app.command()
def compare(
    source: str = typer.Argument(SEASON_PASS_URL, help="CSV path or URL"),
    reference: bool = typer.Option(
        False, "--reference", help="Use the built-in reference table"
    ),
    promotion: str = typer.Option(
        "Bundle", "--promotion", "-p", help="Promotion level for the consistency check"
    ),
    channel: str = typer.Option(
        "Email", "--channel", help="Channel level for the consistency check"
    ),
    tolerance: float = typer.Option(
        0.05, "--tolerance", help="Allowed difference in predicted probability"
    ),
    draws: int = typer.Option(1000, "--draws", "-d"),
    tune: int = typer.Option(1000, "--tune", "-t"),
    chains: int = typer.Option(4, "--chains", "-c"),
    target_accept: float = typer.Option(0.9, "--target-accept"),
    prob: float = typer.Option(0.89, "--prob", help="Credible interval mass"),
    seed: int = typer.Option(42, "--seed", "-s"),
    plots: Optional[Path] = typer.Option(
        None, "--plots", help="Save trace/forest/probability plots to this directory"
    ),
) -> None:
    """Fit baseline, interaction and multilevel models and compare them."""
    from seasonpass.analysis import ComparativeAnalysis
    from seasonpass.evaluation import (
        format_coefficient_report,
        format_diagnostics_report,
    )

    console.print("\n🎢 [bold blue]Season Pass[/bold blue] — Model Comparison\n")

    config = _pipeline_config(source, draws, tune, chains, target_accept, seed, prob)
    try:
        cells = _load_cells(config, reference)
        analysis = ComparativeAnalysis(
            cells,
            config.encoding,
            prior=config.prior,
            sampler=config.sampler,
        )
        analysis.fit_all()
    except SeasonPassError as e:
        console.print(f"[red]Comparison failed: {e}[/red]")
        raise typer.Exit(1)

    for fitted in analysis.models.values():
        console.print(f"\n[bold]{fitted.kind.value}[/bold]")
        console.print(format_diagnostics_report(fitted.diagnostics), markup=False)
        console.print(
            format_coefficient_report(
                fitted.summary(prob=prob), f"{fitted.kind.value} coefficients", prob
            ),
            markup=False,
        )

    baseline = analysis.baseline_empirical_check(prob=prob)
    covered = "✅" if baseline["covered"] else "❌"
    console.print(
        f"\nEmpirical baseline log-odds {baseline['empirical_log_odds']:.3f} vs "
        f"intercept {baseline['median']:.3f} "
        f"[{baseline['lower']:.3f}, {baseline['upper']:.3f}] {covered}\n"
    )

    try:
        _print_frame(
            analysis.predict(promotion, channel, prob=prob),
            f"P(purchase | {promotion}, {channel})",
        )
        check = analysis.consistency(promotion, channel, tolerance=tolerance)
    except SeasonPassError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if check.consistent:
        console.print(
            f"🤝 [green]Interaction and multilevel agree within "
            f"{check.max_difference:.3f}[/green]"
        )
    else:
        console.print(
            f"⚠️  [yellow]Models differ by {check.max_difference:.3f} "
            f"(tolerance {tolerance})[/yellow]"
        )

    try:
        comparison = analysis.compare()
        console.print("\n📊 LOO comparison\n")
        console.print(comparison.to_string(), markup=False)
    except (ValueError, TypeError) as e:
        console.print(f"[yellow]LOO comparison unavailable: {e}[/yellow]")

    if plots is not None:
        from seasonpass.evaluation import (
            plot_cell_probabilities,
            plot_coefficient_forest,
            plot_traces,
        )

        plots.mkdir(exist_ok=True, parents=True)
        for fitted in analysis.models.values():
            plot_traces(fitted.trace).savefig(
                plots / f"{fitted.kind.value}_trace.png", dpi=150, bbox_inches="tight"
            )
        plot_coefficient_forest(
            {k.value: m.trace for k, m in analysis.models.items()}, prob=prob
        ).savefig(plots / "coefficients.png", dpi=150, bbox_inches="tight")
        plot_cell_probabilities(
            analysis.prediction_table(prob=prob), observed=cells
        ).savefig(plots / "probabilities.png", dpi=150, bbox_inches="tight")
        console.print(f"\n✅ Plots saved to {plots}")

    console.print()


@app.command()
def predict(
    trace_path: Path = typer.Argument(
        ..., help="Path to fitted trace (.nc file)", exists=True
    ),
    model_type: ModelType = typer.Option(
        ..., "--model", "-m", help="Model variant the trace came from"
    ),
    promotion: str = typer.Option(..., "--promotion", "-p"),
    channel: str = typer.Option(..., "--channel"),
    prob: float = typer.Option(0.89, "--prob", help="Credible interval mass"),
) -> None:
    """Predicted purchase probability for one cell from a saved trace."""
    import arviz as az
    import numpy as np

    from seasonpass.errors import PredictionDomainError
    from seasonpass.evaluation.summary import interval_bounds
    from seasonpass.models.fitting import LINEAR_PREDICTORS, ModelKind, trace_encoding
    from seasonpass.transforms import sigmoid

    try:
        trace = az.from_netcdf(trace_path)
    except (OSError, ValueError) as e:
        console.print(f"Cannot read trace {trace_path}: {e}", style="red", markup=False)
        raise typer.Exit(1)

    encoding = trace_encoding(trace)
    try:
        if promotion not in encoding.promotion_levels:
            raise PredictionDomainError(
                f"Unknown promotion level '{promotion}'; "
                f"declared levels are {encoding.promotion_levels}"
            )
        if channel not in encoding.channel_levels:
            raise PredictionDomainError(
                f"Unknown channel level '{channel}'; "
                f"declared levels are {encoding.channel_levels}"
            )
    except PredictionDomainError as e:
        console.print(str(e), style="red", markup=False)
        raise typer.Exit(1)

    eta = LINEAR_PREDICTORS[ModelKind(model_type.value)](
        trace.posterior,
        np.array([encoding.promotion_levels.index(promotion)]),
        np.array([encoding.channel_levels.index(channel)]),
    )[0]
    p = sigmoid(eta)
    lo, hi = interval_bounds(prob)

    console.print(
        f"\nP(purchase | {promotion}, {channel}) = {np.median(p):.3f} "
        f"[{np.quantile(p, lo):.3f}, {np.quantile(p, hi):.3f}] ({prob:.0%} interval)\n"
    )


@app.command()
def info() -> None:
    console.print(
        """
[bold blue]🎢 Season Pass[/bold blue]
[dim]Bayesian logistic models for theme-park season-pass promotions[/dim]

[bold]The Question[/bold]
Customers were offered a season pass by mail, at the park or by email,
either on its own or bundled with free parking. Does the bundle sell
more passes, and does the answer depend on the channel?

[bold]The Models[/bold]
  baseline      intercept + bundle effect, channel ignored
  interaction   bundle, channel and bundle × channel effects
  multilevel    per-channel intercept and bundle effect, partially pooled

[bold]Commands[/bold]
  seasonpass generate    Write the reference (or simulated) contacts CSV
  seasonpass summarize   Purchase rates by promotion, channel and cell
  seasonpass fit         Fit one model variant
  seasonpass compare     Fit all three and compare their predictions
  seasonpass predict     Predict one cell from a saved trace

[bold]Quick Start[/bold]
  $ seasonpass summarize --reference
  $ seasonpass fit --reference --model interaction
  $ seasonpass compare --reference --promotion Bundle --channel Email
"""
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
