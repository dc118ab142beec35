# file: src/equity_forecast/cli.py
from __future__ import annotations

import logging
import math
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from src.equity_forecast.config import load_config
from src.equity_forecast.exceptions import DataUnavailable, InvalidInput
from src.equity_forecast.pipeline import PipelineResult, run_full_pipeline

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
app = typer.Typer(add_completion=False)
console = Console()


def _fmt(value) -> str:
    if isinstance(value, float):
        return "NaN" if math.isnan(value) else f"{value:.4f}"
    return str(value)


def _frame_table(df, title: str) -> Table:
    table = Table(title=title)
    for i, column in enumerate(df.columns):
        table.add_column(str(column), style="cyan" if i == 0 else "green")
    for row in df.itertuples(index=False):
        table.add_row(*(_fmt(v) for v in row))
    return table


def _render(result: PipelineResult) -> None:
    console.print(_frame_table(result.accuracy_table(), "Accuracy comparison (test set)"))

    if result.evaluations:
        supplementary = Table(title="Supplementary metrics")
        for column in ("Model", "R_squared", "DA", "TheilU"):
            supplementary.add_column(column, style="cyan" if column == "Model" else "green")
        for family, ev in result.evaluations.items():
            supplementary.add_row(family, *(_fmt(ev.supplementary[k]) for k in ("R_squared", "DA", "TheilU")))
        console.print(supplementary)

    if result.cv is not None:
        console.print(_frame_table(result.cv.to_frame(), "Rolling-origin cross-validation"))

    summary = Table(title="Run summary")
    summary.add_column("Key", style="cyan")
    summary.add_column("Value", style="green")
    summary.add_row("symbol", result.config.symbol)
    summary.add_row("observations", str(len(result.series)))
    summary.add_row("train / test", f"{result.split.train_size} / {result.split.test_size}")
    if result.stationarity is not None:
        summary.add_row("stationarity", result.stationarity.conclusion)
    for family, ev in result.evaluations.items():
        summary.add_row(f"{family} model", ev.model.spec)
    for family, reason in result.failures.items():
        summary.add_row(f"{family} failed", reason)
    if result.cv is not None:
        summary.add_row("better model (CV MSE)", str(result.best_model))
    if result.outputs:
        summary.add_row("run summary", result.outputs.get("run_summary", ""))
    console.print(summary)


@app.command()
def run(
    symbol: Optional[str] = typer.Option(None, help="Ticker symbol (default ACU)"),
    start_date: Optional[str] = typer.Option(None, help="First date, YYYY-MM-DD"),
    end_date: Optional[str] = typer.Option(None, help="Last date, YYYY-MM-DD"),
    csv: Optional[str] = typer.Option(None, help="Read closes from a CSV instead of downloading"),
    train_ratio: float = 0.8,
    season_length: int = typer.Option(1, help="Seasonal period; > 24 uses STL + ETS"),
    arima_seasonal: bool = typer.Option(False, help="Let ARIMA search seasonal terms"),
    cv: bool = typer.Option(True, help="Run rolling-origin cross-validation"),
    cv_initial_window: Optional[int] = typer.Option(None, help="First CV origin"),
    cv_workers: Optional[int] = typer.Option(None, help="CV thread pool size"),
    cv_timeout: Optional[float] = typer.Option(None, help="Seconds per CV origin before skipping it"),
    plots: bool = typer.Option(True, help="Write PNG plots"),
    data_dir: str = "data",
    results_dir: str = "results",
    plots_dir: str = "plots",
    overwrite: bool = False,
):
    """Fit ARIMA and ETS to daily closes and compare them."""
    try:
        cfg = load_config(
            symbol=symbol,
            start_date=start_date,
            end_date=end_date,
            csv_path=csv,
            train_ratio=train_ratio,
            season_length=season_length,
            arima_seasonal=arima_seasonal,
            run_cv=cv,
            cv_initial_window=cv_initial_window,
            cv_max_workers=cv_workers,
            cv_fit_timeout=cv_timeout,
            make_plots=plots,
            data_dir=data_dir,
            results_dir=results_dir,
            plots_dir=plots_dir,
            overwrite=overwrite,
        )
        result = run_full_pipeline(cfg)
    except DataUnavailable as exc:
        console.print(f"[red]Market data unavailable:[/red] {exc}")
        raise typer.Exit(code=1)
    except InvalidInput as exc:
        console.print(f"[red]Invalid input:[/red] {exc}")
        raise typer.Exit(code=2)

    _render(result)
    # Every family failed
    if result.failures and not result.evaluations:
        raise typer.Exit(code=1)


@app.command()
def families():
    """List available model families."""
    from src.equity_forecast.models import FitterFactory

    for family in FitterFactory.list_families():
        console.print(family)


if __name__ == "__main__":
    app()
