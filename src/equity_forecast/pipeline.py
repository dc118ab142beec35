# file: src/equity_forecast/pipeline.py
"""
End-to-end evaluation run.

    fetch -> TimeSeries -> diagnostics -> split
          -> {fit -> forecast -> evaluate} per family
          -> rolling-origin CV on train per family
          -> report

Model families are evaluated independently: InvalidInput / FitError for one
family is recorded in `failures` and the other family still runs.
DataUnavailable from the fetch stage propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .config import AnalysisConfig
from .cross_validation import CVResult, cross_validate
from .diagnostics import (
    ResidualDiagnostics,
    StationarityResult,
    check_residuals,
    check_stationarity,
    summary_statistics,
)
from .evaluation import AccuracyEvaluator, AccuracyReport, accuracy_table
from .exceptions import FitError, InvalidInput
from .forecasting import ForecastResult, Forecaster
from .market_data import fetch_daily_closes, load_closes_csv, save_closes_csv
from .models import FitterFactory, FittedModel, ModelFamily, ModelFitter
from .series import Split, TimeSeries, from_pandas, split

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class FamilyEvaluation:
    """Everything produced for one model family on the test set"""
    family: str
    model: FittedModel
    forecast: ForecastResult
    report: AccuracyReport
    supplementary: Dict[str, float]
    residuals: Optional[ResidualDiagnostics] = None


@dataclass(eq=False)
class PipelineResult:
    config: AnalysisConfig
    run_id: str
    series: TimeSeries
    split: Split
    summary_stats: Dict[str, float]
    stationarity: Optional[StationarityResult] = None
    evaluations: Dict[str, FamilyEvaluation] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    cv: Optional[CVResult] = None
    outputs: Dict[str, str] = field(default_factory=dict)

    def reports(self) -> List[AccuracyReport]:
        return [evaluation.report for evaluation in self.evaluations.values()]

    def accuracy_table(self) -> pd.DataFrame:
        return accuracy_table(self.reports())

    @property
    def best_model(self) -> Optional[str]:
        return self.cv.best_model() if self.cv is not None else None

    def summary(self, outputs: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """JSON-safe run summary (non-finite numbers become null)"""
        cfg = self.config
        payload: Dict[str, Any] = {
            "run_id": self.run_id,
            "symbol": cfg.symbol,
            "start_date": cfg.start_date,
            "end_date": cfg.end_date,
            "n_obs": len(self.series),
            "split": self.split.info,
            "train_ratio": cfg.train_ratio,
            "season_length": cfg.season_length,
            "levels": list(cfg.levels),
            "summary_statistics": _json_safe(self.summary_stats),
            "stationarity": _json_safe(self.stationarity.to_dict()) if self.stationarity else None,
            "models": {
                family: {
                    "spec": ev.model.spec,
                    "method": ev.model.method,
                    "aicc": _json_safe(ev.model.aicc),
                    "params": ev.model.params,
                    "accuracy": _json_safe(ev.report.as_dict()),
                    "supplementary": _json_safe(ev.supplementary),
                    "residual_diagnostics": _json_safe(ev.residuals.to_dict()) if ev.residuals else None,
                }
                for family, ev in self.evaluations.items()
            },
            "failures": dict(self.failures),
        }

        if self.cv is not None:
            payload["cross_validation"] = {
                "mse": {family: _json_safe(mse) for family, mse in self.cv.items()},
                "origins": {family: run.n_origins for family, run in self.cv.runs.items()},
                "skipped": {family: len(run.skipped) for family, run in self.cv.runs.items()},
                "failures": dict(self.cv.failures),
                "best_model": self.best_model,
            }

        payload["outputs"] = dict(outputs if outputs is not None else self.outputs)
        return payload


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (float, np.floating)):
        return float(value) if np.isfinite(value) else None
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    return value


def ingest_closes(config: AnalysisConfig) -> pd.Series:
    """
    Stage 1: daily closes from CSV, the local cache, or the provider.

    Raises:
        DataUnavailable: no source produced any data
    """
    if config.csv_path:
        logger.info(f"[fetch] reading closes from {config.csv_path}")
        return load_closes_csv(config.csv_path, symbol=config.symbol)

    raw_path = config.raw_path()
    if raw_path.exists() and not config.overwrite:
        logger.info(f"[fetch] raw exists, skipping download: {raw_path}")
        return load_closes_csv(raw_path, symbol=config.symbol)

    closes = fetch_daily_closes(config.symbol, config.start_date, config.end_date)
    save_closes_csv(closes, raw_path)
    logger.info(f"[fetch] wrote raw: {raw_path} ({len(closes)} rows)")
    return closes


def build_fitters(config: AnalysisConfig) -> Dict[str, ModelFitter]:
    """One fitter per family, ARIMA first (CV ties go to the first listed)"""
    return {
        ModelFamily.ARIMA.value: FitterFactory.create(
            ModelFamily.ARIMA.value, season_length=config.arima_season_length
        ),
        ModelFamily.ETS.value: FitterFactory.create(
            ModelFamily.ETS.value, season_length=config.season_length
        ),
    }


def evaluate_family(
    fitter: ModelFitter,
    data: Split,
    levels=(80, 95),
) -> FamilyEvaluation:
    """
    Stage 3: fit on train, forecast len(test) steps, score against test.

    Raises:
        FitError / InvalidInput: this family cannot be evaluated
    """
    family = fitter.family.value
    logger.info(f"[fit] {family}: fitting on {data.train_size} obs")
    model = fitter.fit(data.train)
    logger.info(f"[fit] {family}: selected {model.spec} (AICc={model.aicc})")

    # Label forecasts with the held-out dates, not an extrapolated calendar
    result = Forecaster().forecast(
        model, horizon=data.test_size, levels=levels, index=data.test.index
    )

    evaluator = AccuracyEvaluator()
    report = evaluator.evaluate(result, data.test)
    supplementary = evaluator.supplementary(result, data.test)

    try:
        residuals = check_residuals(model)
    except InvalidInput as exc:
        logger.warning(f"[fit] {family}: residual check skipped: {exc}")
        residuals = None

    return FamilyEvaluation(
        family=family,
        model=model,
        forecast=result,
        report=report,
        supplementary=supplementary,
        residuals=residuals,
    )


def run_full_pipeline(config: AnalysisConfig, report: bool = True) -> PipelineResult:
    """
    Runs every stage in order and returns the structured result.

    With report=True the ReportAssembler writes tables, plots and the run
    summary, and `result.outputs` lists the files written.
    """
    run_id = config.run_id()
    logger.info("=" * 60)
    logger.info(f"START ANALYSIS {config.symbol} (run_id={run_id})")
    logger.info("=" * 60)

    series = from_pandas(ingest_closes(config), name=config.symbol)
    logger.info(f"[fetch] {series.name}: {len(series)} obs ({series.start} to {series.end})")

    stats = summary_statistics(series)
    logger.info(f"[diagnostics] summary: {stats}")
    try:
        stationarity = check_stationarity(series)
    except InvalidInput as exc:
        logger.warning(f"[diagnostics] stationarity tests skipped: {exc}")
        stationarity = None

    data = split(series, config.train_ratio)
    result = PipelineResult(
        config=config,
        run_id=run_id,
        series=series,
        split=data,
        summary_stats=stats,
        stationarity=stationarity,
    )

    fitters = build_fitters(config)
    for family, fitter in fitters.items():
        try:
            result.evaluations[family] = evaluate_family(fitter, data, levels=config.levels)
        except (InvalidInput, FitError) as exc:
            logger.error(f"[fit] {family} failed: {exc}")
            result.failures[family] = str(exc)

    if config.run_cv:
        result.cv = cross_validate(
            data.train,
            fitters,
            initial_window=config.cv_initial_window,
            max_workers=config.cv_max_workers,
            fit_timeout=config.cv_fit_timeout,
        )
        best = result.cv.best_model()
        if best is not None:
            logger.info(f"[cv] {best} has the lowest one-step MSE ({result.cv[best]:.4f})")
        else:
            logger.warning("[cv] no family produced a finite MSE")
    else:
        logger.info("[cv] skipped (run_cv=False)")

    if report:
        from .report import ReportAssembler

        result.outputs = ReportAssembler(config).assemble(result)

    logger.info("=" * 60)
    logger.info(f"ANALYSIS COMPLETE at {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 60)
    return result
