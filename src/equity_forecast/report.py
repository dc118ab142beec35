# file: src/equity_forecast/report.py
"""
Report assembly: tables and plots for one pipeline run.

Consumes the structured values the core returns (AccuracyReport, CVResult,
ForecastResult, diagnostics) and renders them:
1. Tables  - accuracy comparison, CV MSE, per-origin CV errors, forecasts,
             supplementary metrics, residual diagnostics, summary statistics
2. Text    - one model summary per fitted family
3. Plots   - series, split, forecasts, residuals, comparison, ACF/PACF, STL
4. JSON    - run summary

Every file is written atomically; plots use the non-interactive Agg backend.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

from .config import AnalysisConfig  # noqa: E402
from .cross_validation import CVResult  # noqa: E402
from .diagnostics import ResidualDiagnostics, stl_decomposition  # noqa: E402
from .evaluation import accuracy_table  # noqa: E402
from .exceptions import InvalidInput  # noqa: E402
from .forecasting import ForecastResult  # noqa: E402
from .io_utils import atomic_write_csv, atomic_write_json, atomic_write_text, ensure_dir  # noqa: E402
from .models import FittedModel  # noqa: E402
from .series import Split, TimeSeries  # noqa: E402

if TYPE_CHECKING:
    from .pipeline import PipelineResult

logger = logging.getLogger(__name__)

plt.rcParams["figure.figsize"] = (12, 6)
plt.rcParams["figure.dpi"] = 100

# Shaded band alpha per confidence level, widest band lightest
_BAND_ALPHA = {80: 0.35, 95: 0.2}


def _save(fig, path: Path) -> Path:
    ensure_dir(path.parent)
    fig.tight_layout()
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return path


def plot_series(series: TimeSeries, path: Path) -> Path:
    fig, ax = plt.subplots()
    ax.plot(series.index, series.values, color="steelblue")
    ax.set_title(f"{series.name} daily closing price")
    ax.set_xlabel("Date")
    ax.set_ylabel("Price")
    return _save(fig, path)


def plot_split(split: Split, path: Path) -> Path:
    fig, ax = plt.subplots()
    ax.plot(split.train.index, split.train.values, label="Train", color="steelblue")
    ax.plot(split.test.index, split.test.values, label="Test", color="darkorange")
    ax.axvline(split.test.start, color="grey", linestyle="--")
    ax.set_title(f"Train/test split ({split.train_size} / {split.test_size})")
    ax.set_xlabel("Date")
    ax.set_ylabel("Price")
    ax.legend()
    return _save(fig, path)


def plot_forecast(result: ForecastResult, test: TimeSeries, path: Path) -> Path:
    """Training history, held-out actuals, point forecast and interval bands"""
    train = result.model.train
    fig, ax = plt.subplots()
    ax.plot(train.index, train.values, label="Train", color="steelblue")
    ax.plot(test.index, test.values, label="Actual", color="black")
    ax.plot(result.point.index, result.point.values, label="Forecast", color="crimson")

    for level in sorted(result.levels, reverse=True):
        lower, upper = result.interval(level)
        ax.fill_between(
            lower.index,
            lower.values,
            upper.values,
            alpha=_BAND_ALPHA.get(level, 0.25),
            color="crimson",
            label=f"{level}% interval",
        )

    ax.set_title(f"Forecasts from {result.model.spec}")
    ax.set_xlabel("Date")
    ax.set_ylabel("Price")
    ax.legend(loc="upper left")
    return _save(fig, path)


def plot_residuals(model: FittedModel, path: Path, lags: int = 30) -> Path:
    """Residual time plot, residual ACF and residual histogram"""
    from statsmodels.graphics.tsaplots import plot_acf

    resid = model.residuals().dropna()
    fig = plt.figure(figsize=(12, 8))
    grid = fig.add_gridspec(2, 2)

    ax_line = fig.add_subplot(grid[0, :])
    ax_line.plot(resid.index, resid.values, color="steelblue")
    ax_line.axhline(0, color="grey", linewidth=0.8)
    ax_line.set_title(f"Residuals from {model.spec}")

    ax_acf = fig.add_subplot(grid[1, 0])
    plot_acf(resid.values, ax=ax_acf, lags=min(lags, len(resid) - 1), zero=False)
    ax_acf.set_title("ACF")

    ax_hist = fig.add_subplot(grid[1, 1])
    ax_hist.hist(resid.values, bins=30, color="steelblue", edgecolor="white")
    ax_hist.set_title("Histogram")

    return _save(fig, path)


def plot_comparison(results: Dict[str, ForecastResult], test: TimeSeries, path: Path) -> Path:
    fig, ax = plt.subplots()
    ax.plot(test.index, test.values, label="Actual", color="black")
    for family, result in results.items():
        ax.plot(result.point.index, result.point.values, label=f"{family} ({result.model.spec})")
    ax.set_title("Forecast comparison on the test set")
    ax.set_xlabel("Date")
    ax.set_ylabel("Price")
    ax.legend()
    return _save(fig, path)


def plot_acf_pacf(series: TimeSeries, path: Path, lags: int = 40) -> Path:
    from statsmodels.graphics.tsaplots import plot_acf, plot_pacf

    nlags = max(1, min(lags, len(series) // 2 - 1))
    fig, axes = plt.subplots(1, 2, figsize=(14, 4))
    plot_acf(series.values, ax=axes[0], lags=nlags)
    axes[0].set_title(f"{series.name} - ACF")
    plot_pacf(series.values, ax=axes[1], lags=nlags, method="ywm")
    axes[1].set_title(f"{series.name} - PACF")
    return _save(fig, path)


def plot_decomposition(components: pd.DataFrame, period: int, path: Path) -> Path:
    columns = ["observed", "trend", "seasonal", "remainder"]
    fig, axes = plt.subplots(len(columns), 1, figsize=(12, 10), sharex=True)
    for ax, column in zip(axes, columns):
        ax.plot(components.index, components[column].values, color="steelblue")
        ax.set_ylabel(column)
    axes[0].set_title(f"STL decomposition (period={period})")
    return _save(fig, path)


class ReportAssembler:
    """Writes every table, text summary and plot for a run"""

    def __init__(self, config: AnalysisConfig):
        self.config = config
        self.outputs: Dict[str, str] = {}

    def _record(self, key: str, path: Path) -> None:
        self.outputs[key] = str(path)
        logger.info(f"[report] wrote {key}: {path}")

    # Tables

    def write_summary_statistics(self, stats: Dict[str, float]) -> Path:
        path = self.config.summary_statistics_path()
        atomic_write_csv(pd.DataFrame([stats]), path)
        self._record("summary_statistics", path)
        return path

    def write_accuracy(self, result: "PipelineResult") -> Path:
        path = self.config.accuracy_path()
        atomic_write_csv(accuracy_table(result.reports()), path)
        self._record("accuracy", path)
        return path

    def write_supplementary(self, result: "PipelineResult") -> Path:
        rows = [
            {"Model": family, **evaluation.supplementary}
            for family, evaluation in result.evaluations.items()
        ]
        path = self.config.supplementary_metrics_path()
        atomic_write_csv(pd.DataFrame(rows, columns=["Model", "R_squared", "DA", "TheilU"]), path)
        self._record("supplementary_metrics", path)
        return path

    def write_residual_diagnostics(self, diagnostics: List[ResidualDiagnostics]) -> Path:
        path = self.config.residual_diagnostics_path()
        atomic_write_csv(pd.DataFrame([d.to_dict() for d in diagnostics]), path)
        self._record("residual_diagnostics", path)
        return path

    def write_forecasts(self, results: Dict[str, ForecastResult], test: TimeSeries) -> Path:
        frames = []
        for result in results.values():
            frame = result.to_frame()
            frame.insert(2, "actual", test.values)
            frames.append(frame)
        path = self.config.forecasts_path()
        atomic_write_csv(pd.concat(frames, ignore_index=True), path)
        self._record("forecasts", path)
        return path

    def write_cross_validation(self, cv: CVResult) -> Path:
        path = self.config.cv_results_path()
        atomic_write_csv(cv.to_frame(), path)
        self._record("cross_validation", path)

        steps = [run.steps.assign(model=family) for family, run in cv.runs.items()]
        if steps:
            errors_path = self.config.cv_errors_path()
            atomic_write_csv(pd.concat(steps, ignore_index=True), errors_path)
            self._record("cross_validation_errors", errors_path)
        return path

    def write_model_summary(self, model: FittedModel, diagnostics: Optional[ResidualDiagnostics]) -> Path:
        summary = model.summary()
        lines = [
            f"Model: {summary['spec']}",
            f"Family: {summary['family']} (method={summary['method']})",
            f"Training window: {summary['train_start']} to {summary['train_end']} ({summary['n_obs']} obs)",
            f"AICc: {summary['aicc']:.4f}" if summary["aicc"] is not None else "AICc: n/a",
            "",
            "Selected hyperparameters:",
        ]
        lines.extend(f"  {key}: {value}" for key, value in summary["params"].items())

        if diagnostics is not None:
            lines.extend([
                "",
                "Ljung-Box test on residuals:",
                f"  Q* = {diagnostics.statistic:.4f}, df = {diagnostics.df}, "
                f"p-value = {diagnostics.p_value:.4f} (lag {diagnostics.lag})",
                f"  Residuals {'look like' if diagnostics.white_noise else 'are not'} white noise",
                f"  Residual mean = {diagnostics.residual_mean:.4f}, sd = {diagnostics.residual_sd:.4f}",
            ])

        path = self.config.model_summary_path(model.name)
        atomic_write_text("\n".join(lines) + "\n", path)
        self._record(f"{model.name.lower()}_model_summary", path)
        return path

    def write_run_summary(self, payload: Dict) -> Path:
        path = self.config.run_summary_path()
        atomic_write_json(payload, path)
        self._record("run_summary", path)
        return path

    # Plots

    def write_plots(self, result: "PipelineResult") -> Dict[str, str]:
        plots_dir = self.config.plots_path()
        ensure_dir(plots_dir)
        symbol = self.config.symbol.lower()

        self._record("plot_series", plot_series(result.series, plots_dir / f"{symbol}_series.png"))
        self._record("plot_split", plot_split(result.split, plots_dir / "train_test_split.png"))
        self._record("plot_acf_pacf", plot_acf_pacf(result.series, plots_dir / "acf_pacf.png"))

        period = self.config.decomposition_period
        try:
            components = stl_decomposition(result.series, period)
        except InvalidInput as exc:
            logger.warning(f"[report] STL plot skipped: {exc}")
        else:
            self._record(
                "plot_stl",
                plot_decomposition(components, period, plots_dir / "stl_decomposition.png"),
            )

        forecasts = {family: ev.forecast for family, ev in result.evaluations.items()}
        for family, evaluation in result.evaluations.items():
            key = family.lower()
            self._record(
                f"plot_{key}_forecast",
                plot_forecast(evaluation.forecast, result.split.test, plots_dir / f"{key}_forecast.png"),
            )
            self._record(
                f"plot_{key}_residuals",
                plot_residuals(evaluation.model, plots_dir / f"{key}_residuals.png"),
            )

        if forecasts:
            self._record(
                "plot_comparison",
                plot_comparison(forecasts, result.split.test, plots_dir / "forecast_comparison.png"),
            )
        return {k: v for k, v in self.outputs.items() if k.startswith("plot_")}

    def assemble(self, result: "PipelineResult") -> Dict[str, str]:
        """Write every output for `result`; returns output name -> path"""
        self.write_summary_statistics(result.summary_stats)
        self.write_accuracy(result)

        if result.evaluations:
            self.write_supplementary(result)
            self.write_forecasts(
                {family: ev.forecast for family, ev in result.evaluations.items()},
                result.split.test,
            )
            for evaluation in result.evaluations.values():
                self.write_model_summary(evaluation.model, evaluation.residuals)

        diagnostics = [ev.residuals for ev in result.evaluations.values() if ev.residuals is not None]
        if diagnostics:
            self.write_residual_diagnostics(diagnostics)

        if result.cv is not None:
            self.write_cross_validation(result.cv)

        if self.config.make_plots:
            self.write_plots(result)

        # Run summary last so it can list every other output
        self.outputs["run_summary"] = str(self.config.run_summary_path())
        self.write_run_summary(result.summary(outputs=self.outputs))
        return dict(self.outputs)

