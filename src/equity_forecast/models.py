# file: src/equity_forecast/models.py
"""
Model fitters: one capability interface over pluggable statsforecast backends.

1. ARIMA - AutoARIMA order search (AICc)
2. ETS   - AutoETS type search (AICc), STL + ETS for long seasonal periods

Fitters are stateless configuration objects; every call to `fit` returns a
new, immutable FittedModel handle. No I/O happens here.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import FitError, InvalidInput
from .series import TimeSeries

logger = logging.getLogger(__name__)

# Shortest series any family is allowed to fit on
MIN_FIT_LENGTH = 10

# ETS state space cannot carry seasonal periods longer than this
ETS_MAX_SEASON_LENGTH = 24


class ModelFamily(str, Enum):
    ARIMA = "ARIMA"
    ETS = "ETS"


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Opaque handle to a trained model"""
    family: ModelFamily
    spec: str
    params: Dict[str, Any]
    train: TimeSeries
    estimator: Any = field(repr=False)
    aicc: Optional[float] = None
    method: str = "auto"

    @property
    def name(self) -> str:
        return self.family.value

    @property
    def n_params(self) -> int:
        """Number of estimated dynamics parameters (Ljung-Box df adjustment)"""
        if self.family is ModelFamily.ARIMA:
            return int(sum(self.params.get(k, 0) for k in ("p", "q", "P", "Q")))
        count = 1  # alpha
        if self.params.get("trend", "N") != "N":
            count += 1
        if self.params.get("season", "N") != "N":
            count += 1
        if self.params.get("damped"):
            count += 1
        return count

    def fitted_values(self) -> pd.Series:
        """One-step in-sample fitted values aligned to the training index"""
        fitted = self.estimator.predict_in_sample()["fitted"]
        return pd.Series(np.asarray(fitted, dtype=float), index=self.train.index, name="fitted")

    def residuals(self) -> pd.Series:
        return (self.train.data - self.fitted_values()).rename("residual")

    def summary(self) -> Dict[str, Any]:
        return {
            "family": self.name,
            "spec": self.spec,
            "method": self.method,
            "aicc": self.aicc,
            "params": dict(self.params),
            "train_start": str(self.train.start),
            "train_end": str(self.train.end),
            "n_obs": len(self.train),
        }


class ModelFitter(ABC):
    """Base class for model fitters"""

    family: ModelFamily

    @property
    def min_length(self) -> int:
        """Minimum number of observations `fit` accepts"""
        return MIN_FIT_LENGTH

    def fit(self, series: TimeSeries) -> FittedModel:
        """
        Fit the model family to `series`.

        Raises:
            FitError: series too short, non-finite, or backend failure
        """
        if len(series) < self.min_length:
            raise FitError(
                f"Series too short: {len(series)} < {self.min_length}",
                family=self.family.value,
                window=series.window,
            )
        y = np.array(series.values, dtype=np.float64)
        if not np.isfinite(y).all():
            raise FitError(
                "Series contains non-finite values",
                family=self.family.value,
                window=series.window,
            )

        try:
            model = self._fit(series, y)
        except FitError:
            raise
        except Exception as exc:
            raise FitError(
                f"{self.family.value} fitting failed: {exc}",
                family=self.family.value,
                window=series.window,
            ) from exc

        logger.debug(f"{model.spec} fitted on {len(series)} obs")
        return model

    @abstractmethod
    def _fit(self, series: TimeSeries, y: np.ndarray) -> FittedModel:
        """Backend-specific fit on a validated float array"""
        pass


class ArimaFitter(ModelFitter):
    """AutoARIMA wrapper (AICc order selection, bounded search)"""

    family = ModelFamily.ARIMA

    def __init__(
        self,
        season_length: int = 1,
        max_p: int = 5,
        max_q: int = 5,
        max_d: int = 2,
        max_P: int = 2,
        max_Q: int = 2,
        max_D: int = 1,
        stepwise: bool = True,
    ):
        self.season_length = season_length
        self.max_p = max_p
        self.max_q = max_q
        self.max_d = max_d
        self.max_P = max_P
        self.max_Q = max_Q
        self.max_D = max_D
        self.stepwise = stepwise

    def _fit(self, series: TimeSeries, y: np.ndarray) -> FittedModel:
        from statsforecast.models import AutoARIMA

        # Seasonal terms need at least two full cycles
        seasonal = self.season_length > 1 and len(y) >= 2 * self.season_length

        estimator = AutoARIMA(
            max_p=self.max_p,
            max_q=self.max_q,
            max_d=self.max_d,
            max_P=self.max_P,
            max_Q=self.max_Q,
            max_D=self.max_D,
            seasonal=seasonal,
            season_length=self.season_length if seasonal else 1,
            ic="aicc",
            stepwise=self.stepwise,
        )
        estimator.fit(y)

        p, q, P, Q, _, d, D = (int(v) for v in estimator.model_["arma"])
        period = self.season_length if seasonal else 1
        params = {"p": p, "d": d, "q": q, "P": P, "D": D, "Q": Q, "period": period}

        spec = f"ARIMA({p},{d},{q})"
        if seasonal and (P or D or Q):
            spec += f"({P},{D},{Q})[{period}]"

        return FittedModel(
            family=self.family,
            spec=spec,
            params=params,
            train=series,
            estimator=estimator,
            aicc=_as_float(estimator.model_.get("aicc")),
        )


class EtsFitter(ModelFitter):
    """
    AutoETS wrapper (AICc type selection).

    Seasonality policy:
    - season_length <= 1: non-seasonal AutoETS
    - 1 < season_length <= 24: seasonal AutoETS
    - season_length > 24: STL decomposition, non-seasonal AutoETS on the
      seasonally adjusted series, seasonal component re-added on forecast
    Seasonal variants need two full cycles, so `min_length` grows with the
    period.
    """

    family = ModelFamily.ETS

    def __init__(
        self,
        season_length: int = 1,
        model: str = "ZZZ",
        damped: Optional[bool] = None,
    ):
        self.season_length = season_length
        self.model = model
        self.damped = damped

    @property
    def min_length(self) -> int:
        if self.season_length > 1:
            return max(MIN_FIT_LENGTH, 2 * self.season_length)
        return MIN_FIT_LENGTH

    def _fit(self, series: TimeSeries, y: np.ndarray) -> FittedModel:
        from statsforecast.models import MSTL, AutoETS

        nonseasonal = self.model[:2] + "N"

        if self.season_length > ETS_MAX_SEASON_LENGTH:
            estimator = MSTL(
                season_length=self.season_length,
                trend_forecaster=AutoETS(model=nonseasonal, damped=self.damped),
            )
            estimator.fit(y)
            ets_state = estimator.trend_forecaster.model_
            method = "stl"
        elif self.season_length > 1:
            estimator = AutoETS(
                season_length=self.season_length,
                model=self.model,
                damped=self.damped,
            )
            estimator.fit(y)
            ets_state = estimator.model_
            method = "auto"
        else:
            estimator = AutoETS(model=nonseasonal, damped=self.damped)
            estimator.fit(y)
            ets_state = estimator.model_
            method = "auto"

        error, trend, season, damped = _ets_components(ets_state)
        params = {
            "error": error,
            "trend": trend,
            "season": season,
            "damped": damped,
            "period": self.season_length,
        }

        spec = f"ETS({error},{trend}{'d' if damped else ''},{season})"
        if method == "stl":
            spec = f"STL[{self.season_length}] + {spec}"

        return FittedModel(
            family=self.family,
            spec=spec,
            params=params,
            train=series,
            estimator=estimator,
            aicc=_as_float(ets_state.get("aicc")),
            method=method,
        )


def _ets_components(state: Dict[str, Any]) -> Tuple[str, str, str, bool]:
    """Extract (error, trend, season, damped) from a fitted AutoETS state"""
    match = re.match(r"ETS\((\w),(\w+),(\w)\)", str(state.get("method", "")))
    if match:
        error, trend, season = match.groups()
        damped = trend.endswith("d")
        return error, trend.rstrip("d"), season, damped

    components = [str(c) for c in state["components"]]
    return components[0], components[1], components[2], components[3] == "True"


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if np.isfinite(out) else None


class FitterFactory:
    """Factory for creating fitter instances"""

    _fitters = {
        ModelFamily.ARIMA.value: ArimaFitter,
        ModelFamily.ETS.value: EtsFitter,
    }

    @classmethod
    def create(cls, family: str, **kwargs) -> ModelFitter:
        """Create fitter by family name"""
        key = family.upper()
        if key not in cls._fitters:
            raise InvalidInput(f"Unknown model family: {family}")

        return cls._fitters[key](**kwargs)

    @classmethod
    def list_families(cls) -> List[str]:
        """List available model families"""
        return list(cls._fitters.keys())
