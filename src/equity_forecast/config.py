# file: src/equity_forecast/config.py
"""
Analysis configuration.

Defaults reproduce the reference study (ACU daily closes, 2020-10-21 to
2024-10-20, 80/20 split). Symbol, date range and CV workers can be set in the
environment or a local .env file; explicit overrides win.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from .exceptions import InvalidInput

ENV_PREFIX = "EQUITY_FORECAST_"


@dataclass(frozen=True)
class AnalysisConfig:
    # Data parameters
    symbol: str = "ACU"
    start_date: str = "2020-10-21"
    end_date: str = "2024-10-20"
    csv_path: Optional[str] = None

    # IO
    data_dir: str = "data"
    results_dir: str = "results"
    plots_dir: str = "plots"
    overwrite: bool = False
    make_plots: bool = True

    # Modelling
    train_ratio: float = 0.8
    levels: Tuple[int, ...] = (80, 95)
    season_length: int = 1
    arima_seasonal: bool = False
    decomposition_period: int = 252

    # Rolling-origin CV
    run_cv: bool = True
    cv_initial_window: Optional[int] = None
    cv_max_workers: int = 1
    cv_fit_timeout: Optional[float] = None

    def __post_init__(self):
        if not 0 < self.train_ratio < 1:
            raise InvalidInput(f"train_ratio must be in (0, 1), got {self.train_ratio}")
        if self.season_length < 1:
            raise InvalidInput(f"season_length must be >= 1, got {self.season_length}")
        if self.cv_max_workers < 1:
            raise InvalidInput(f"cv_max_workers must be >= 1, got {self.cv_max_workers}")
        if any(not float(level).is_integer() or not 0 < level < 100 for level in self.levels):
            raise InvalidInput(f"levels must be whole numbers in (0, 100), got {self.levels}")

    def run_id(self) -> str:
        return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    @property
    def arima_season_length(self) -> int:
        return self.season_length if self.arima_seasonal else 1

    def data_path(self) -> Path:
        return Path(self.data_dir)

    def results_path(self) -> Path:
        return Path(self.results_dir)

    def plots_path(self) -> Path:
        return Path(self.plots_dir)

    def raw_path(self) -> Path:
        return self.data_path() / f"{self.symbol.lower()}_closes.csv"

    def summary_statistics_path(self) -> Path:
        return self.data_path() / "summary_statistics.csv"

    def accuracy_path(self) -> Path:
        return self.results_path() / "accuracy_comparison.csv"

    def cv_results_path(self) -> Path:
        return self.results_path() / "cross_validation_results.csv"

    def cv_errors_path(self) -> Path:
        return self.results_path() / "cross_validation_errors.csv"

    def forecasts_path(self) -> Path:
        return self.results_path() / "forecasts.csv"

    def supplementary_metrics_path(self) -> Path:
        return self.results_path() / "supplementary_metrics.csv"

    def residual_diagnostics_path(self) -> Path:
        return self.results_path() / "residual_diagnostics.csv"

    def model_summary_path(self, family: str) -> Path:
        return self.results_path() / f"{family.lower()}_model_summary.txt"

    def run_summary_path(self) -> Path:
        return self.results_path() / "run_summary.json"


def load_config(**overrides) -> AnalysisConfig:
    """
    Build an AnalysisConfig from environment + overrides.

    Reads EQUITY_FORECAST_SYMBOL, EQUITY_FORECAST_START, EQUITY_FORECAST_END
    and EQUITY_FORECAST_CV_WORKERS from the environment or .env file.
    """
    load_dotenv()

    values = {}
    env_map = {
        "symbol": "SYMBOL",
        "start_date": "START",
        "end_date": "END",
        "cv_max_workers": "CV_WORKERS",
    }
    for key, suffix in env_map.items():
        raw = os.getenv(ENV_PREFIX + suffix)
        if raw:
            values[key] = raw.strip()

    if "cv_max_workers" in values:
        try:
            values["cv_max_workers"] = int(values["cv_max_workers"])
        except ValueError as exc:
            raise InvalidInput(
                f"{ENV_PREFIX}CV_WORKERS must be an integer, got {values['cv_max_workers']!r}"
            ) from exc

    known = {f.name for f in fields(AnalysisConfig)}
    unknown = set(overrides) - known
    if unknown:
        raise InvalidInput(f"Unknown config keys: {sorted(unknown)}")

    values.update({k: v for k, v in overrides.items() if v is not None})
    return AnalysisConfig(**values)
