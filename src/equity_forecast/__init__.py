"""
Equity Forecast Evaluation

Fits ARIMA and ETS to a daily closing-price series and compares them:
- Series store (immutable TimeSeries, chronological train/test split)
- Model fitters (AutoARIMA, AutoETS / STL + ETS via statsforecast)
- Forecaster (point forecasts + prediction intervals)
- Accuracy evaluation (ME, RMSE, MAE, MPE, MAPE, MASE, ACF1)
- Rolling-origin cross-validation (one-step MSE, optional thread pool)
- Diagnostics, reporting and the end-to-end pipeline
"""

from .config import AnalysisConfig, load_config
from .cross_validation import (CrossValidationRun, CVResult, CVState,
                               RollingCrossValidator, aggregate,
                               cross_validate)
from .evaluation import (AccuracyEvaluator, AccuracyReport, ForecastMetrics,
                         accuracy_table, evaluate)
from .exceptions import (DataUnavailable, FitError, ForecastPipelineError,
                         InvalidInput, SkipStep)
from .forecasting import Forecaster, ForecastResult, forecast
from .models import (ArimaFitter, EtsFitter, FitterFactory, FittedModel,
                     ModelFamily, ModelFitter)
from .series import Split, TimeSeries, from_pandas, load, split

__all__ = [
    # Config
    "AnalysisConfig",
    "load_config",
    # Errors
    "ForecastPipelineError",
    "InvalidInput",
    "FitError",
    "DataUnavailable",
    "SkipStep",
    # Series
    "TimeSeries",
    "Split",
    "load",
    "from_pandas",
    "split",
    # Models
    "ModelFamily",
    "ModelFitter",
    "ArimaFitter",
    "EtsFitter",
    "FitterFactory",
    "FittedModel",
    # Forecasting
    "Forecaster",
    "ForecastResult",
    "forecast",
    # Evaluation
    "ForecastMetrics",
    "AccuracyEvaluator",
    "AccuracyReport",
    "accuracy_table",
    "evaluate",
    # Cross-validation
    "CVState",
    "CVResult",
    "CrossValidationRun",
    "RollingCrossValidator",
    "aggregate",
    "cross_validate",
]
