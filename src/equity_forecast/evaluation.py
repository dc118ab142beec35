# file: src/equity_forecast/evaluation.py
"""
Forecast accuracy metrics with explicit NaN handling (fail-loud principle).

Errors are `actual - forecast`. Positions where either side is non-finite
are masked out (skipped, never zero-filled); percentage metrics additionally
mask zero actuals. MASE scales by the mean absolute first difference of the
held-out actuals themselves.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Tuple

import numpy as np
import pandas as pd

from .exceptions import InvalidInput
from .forecasting import ForecastResult
from .series import TimeSeries

logger = logging.getLogger(__name__)

METRIC_NAMES: Tuple[str, ...] = ("ME", "RMSE", "MAE", "MPE", "MAPE", "MASE", "ACF1")


class ForecastMetrics:
    """Point-accuracy metrics on aligned actual/forecast arrays"""

    @staticmethod
    def valid_mask(actual: np.ndarray, forecast: np.ndarray) -> np.ndarray:
        return np.isfinite(actual) & np.isfinite(forecast)

    @staticmethod
    def errors(actual: np.ndarray, forecast: np.ndarray) -> np.ndarray:
        """Signed errors on valid positions, in original order"""
        mask = ForecastMetrics.valid_mask(actual, forecast)
        return actual[mask] - forecast[mask]

    @staticmethod
    def me(actual: np.ndarray, forecast: np.ndarray) -> float:
        """Mean Error"""
        e = ForecastMetrics.errors(actual, forecast)
        if e.size == 0:
            return np.nan
        return float(np.mean(e))

    @staticmethod
    def rmse(actual: np.ndarray, forecast: np.ndarray) -> float:
        """Root Mean Squared Error"""
        e = ForecastMetrics.errors(actual, forecast)
        if e.size == 0:
            return np.nan
        return float(np.sqrt(np.mean(e ** 2)))

    @staticmethod
    def mae(actual: np.ndarray, forecast: np.ndarray) -> float:
        """Mean Absolute Error"""
        e = ForecastMetrics.errors(actual, forecast)
        if e.size == 0:
            return np.nan
        return float(np.mean(np.abs(e)))

    @staticmethod
    def _percentage_errors(actual: np.ndarray, forecast: np.ndarray) -> np.ndarray:
        mask = ForecastMetrics.valid_mask(actual, forecast) & (actual != 0)
        return (actual[mask] - forecast[mask]) / actual[mask]

    @staticmethod
    def mpe(actual: np.ndarray, forecast: np.ndarray) -> float:
        """Mean Percentage Error (%), zero actuals masked"""
        pe = ForecastMetrics._percentage_errors(actual, forecast)
        if pe.size == 0:
            return np.nan
        return float(np.mean(pe) * 100)

    @staticmethod
    def mape(actual: np.ndarray, forecast: np.ndarray) -> float:
        """Mean Absolute Percentage Error (%), zero actuals masked"""
        pe = ForecastMetrics._percentage_errors(actual, forecast)
        if pe.size == 0:
            return np.nan
        return float(np.mean(np.abs(pe)) * 100)

    @staticmethod
    def mase(actual: np.ndarray, forecast: np.ndarray) -> float:
        """
        Mean Absolute Scaled Error

        Scale = mean(|diff(actual)|) over the finite held-out actuals.
        Returns NaN when fewer than two actuals remain or the scale is zero.
        """
        finite_actual = actual[np.isfinite(actual)]
        if finite_actual.size < 2:
            return np.nan

        scale = np.mean(np.abs(np.diff(finite_actual)))
        if scale == 0:
            return np.nan

        mae = ForecastMetrics.mae(actual, forecast)
        if np.isnan(mae):
            return np.nan
        return float(mae / scale)

    @staticmethod
    def acf1(actual: np.ndarray, forecast: np.ndarray) -> float:
        """Lag-1 autocorrelation of the errors"""
        e = ForecastMetrics.errors(actual, forecast)
        if e.size < 2:
            return np.nan

        dev = e - np.mean(e)
        denom = np.sum(dev ** 2)
        if denom == 0:
            return np.nan
        return float(np.sum(dev[:-1] * dev[1:]) / denom)

    @staticmethod
    def compute_all(actual: np.ndarray, forecast: np.ndarray) -> Dict[str, float]:
        """All AccuracyReport metrics at once, in METRIC_NAMES order"""
        return {
            "ME": ForecastMetrics.me(actual, forecast),
            "RMSE": ForecastMetrics.rmse(actual, forecast),
            "MAE": ForecastMetrics.mae(actual, forecast),
            "MPE": ForecastMetrics.mpe(actual, forecast),
            "MAPE": ForecastMetrics.mape(actual, forecast),
            "MASE": ForecastMetrics.mase(actual, forecast),
            "ACF1": ForecastMetrics.acf1(actual, forecast),
        }

    @staticmethod
    def r_squared(actual: np.ndarray, forecast: np.ndarray) -> float:
        mask = ForecastMetrics.valid_mask(actual, forecast)
        a, f = actual[mask], forecast[mask]
        if a.size == 0:
            return np.nan
        total = np.sum((a - np.mean(a)) ** 2)
        if total == 0:
            return np.nan
        return float(1 - np.sum((a - f) ** 2) / total)

    @staticmethod
    def directional_accuracy(actual: np.ndarray, forecast: np.ndarray) -> float:
        """Share of steps where forecast and actual move in the same direction"""
        mask = ForecastMetrics.valid_mask(actual, forecast)
        a, f = actual[mask], forecast[mask]
        if a.size < 2:
            return np.nan
        return float(np.mean(np.sign(np.diff(f)) == np.sign(np.diff(a))))

    @staticmethod
    def theils_u(actual: np.ndarray, forecast: np.ndarray) -> float:
        """Theil's U2: relative one-step errors vs a no-change forecast"""
        mask = ForecastMetrics.valid_mask(actual, forecast)
        a, f = actual[mask], forecast[mask]
        if a.size < 2 or np.any(a[:-1] == 0):
            return np.nan
        fpe = (f[1:] - a[1:]) / a[:-1]
        ape = (a[1:] - a[:-1]) / a[:-1]
        denom = np.sum(ape ** 2)
        if denom == 0:
            return np.nan
        return float(np.sqrt(np.sum(fpe ** 2) / denom))


@dataclass(frozen=True)
class AccuracyReport(Mapping):
    """Metric name -> value for one (model, evaluation set) pair"""
    model: str
    evaluation_set: str
    metrics: Dict[str, float] = field(default_factory=dict)

    def __getitem__(self, key: str) -> float:
        return self.metrics[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.metrics)

    def __len__(self) -> int:
        return len(self.metrics)

    def as_dict(self) -> Dict[str, float]:
        return dict(self.metrics)

    def to_row(self) -> Dict:
        return {"Model": self.model, **self.metrics}


def _aligned_arrays(forecast: ForecastResult, actual: TimeSeries) -> Tuple[np.ndarray, np.ndarray]:
    point = np.asarray(forecast.point_forecasts, dtype=float)
    values = np.asarray(actual.values, dtype=float)
    if len(values) != len(point):
        raise InvalidInput(
            f"Length mismatch: {len(values)} actuals vs {len(point)} forecasts",
            family=forecast.model.name,
            window=actual.window,
        )
    return values, point


class AccuracyEvaluator:
    """Scores forecasts against held-out actuals"""

    def evaluate(
        self,
        forecast: ForecastResult,
        actual: TimeSeries,
        evaluation_set: str = "test",
    ) -> AccuracyReport:
        """
        Compute ME, RMSE, MAE, MPE, MAPE, MASE and ACF1.

        Raises:
            InvalidInput: if len(actual) != forecast horizon
        """
        values, point = _aligned_arrays(forecast, actual)
        n_valid = int(ForecastMetrics.valid_mask(values, point).sum())
        if n_valid < len(values):
            logger.warning(
                f"{forecast.model.name}: {len(values) - n_valid} of {len(values)} "
                f"positions masked (non-finite)"
            )

        report = AccuracyReport(
            model=forecast.model.name,
            evaluation_set=evaluation_set,
            metrics=ForecastMetrics.compute_all(values, point),
        )
        logger.info(
            f"{forecast.model.name} {evaluation_set}: "
            f"RMSE={report['RMSE']:.4f} MAE={report['MAE']:.4f} MASE={report['MASE']:.4f}"
        )
        return report

    def supplementary(self, forecast: ForecastResult, actual: TimeSeries) -> Dict[str, float]:
        """R-squared, directional accuracy and Theil's U"""
        values, point = _aligned_arrays(forecast, actual)
        return {
            "R_squared": ForecastMetrics.r_squared(values, point),
            "DA": ForecastMetrics.directional_accuracy(values, point),
            "TheilU": ForecastMetrics.theils_u(values, point),
        }


def evaluate(forecast: ForecastResult, actual: TimeSeries) -> AccuracyReport:
    """Module-level shortcut for AccuracyEvaluator().evaluate"""
    return AccuracyEvaluator().evaluate(forecast, actual)


def accuracy_table(reports: Iterable[AccuracyReport]) -> pd.DataFrame:
    """Accuracy comparison table keyed by model name"""
    rows = [report.to_row() for report in reports]
    if not rows:
        return pd.DataFrame(columns=["Model", *METRIC_NAMES])
    return pd.DataFrame(rows, columns=["Model", *METRIC_NAMES])
