# file: src/equity_forecast/forecasting.py
"""
Forecaster: point forecasts and prediction intervals from a FittedModel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import FitError, InvalidInput
from .models import FittedModel

logger = logging.getLogger(__name__)

DEFAULT_LEVELS: Tuple[int, ...] = (80, 95)


@dataclass(frozen=True, eq=False)
class ForecastResult:
    """Point forecasts plus lower/upper bounds per confidence level"""
    model: FittedModel
    point: pd.Series
    lower: Dict[int, pd.Series]
    upper: Dict[int, pd.Series]

    @property
    def horizon(self) -> int:
        return len(self.point)

    @property
    def levels(self) -> List[int]:
        return sorted(self.lower)

    @property
    def point_forecasts(self) -> np.ndarray:
        arr = self.point.to_numpy(dtype=float, copy=True)
        arr.setflags(write=False)
        return arr

    def interval(self, level: int) -> Tuple[pd.Series, pd.Series]:
        if level not in self.lower:
            raise InvalidInput(
                f"Level {level} not available (have {self.levels})",
                family=self.model.name,
            )
        return self.lower[level], self.upper[level]

    def to_frame(self) -> pd.DataFrame:
        """
        Standard forecast table:
        - ds, model, yhat
        - yhat_lo_<level>, yhat_hi_<level> for each level
        """
        frame = pd.DataFrame({
            "ds": self.point.index,
            "model": self.model.name,
            "yhat": self.point.to_numpy(),
        })
        for level in self.levels:
            frame[f"yhat_lo_{level}"] = self.lower[level].to_numpy()
            frame[f"yhat_hi_{level}"] = self.upper[level].to_numpy()
        return frame


def _is_whole_percent(level) -> bool:
    if isinstance(level, bool) or not isinstance(level, (int, float, np.integer, np.floating)):
        return False
    return float(level).is_integer() and 0 < level < 100


class Forecaster:
    """Produces ForecastResults from fitted models"""

    def forecast(
        self,
        model: FittedModel,
        horizon: int,
        levels: Iterable[int] = DEFAULT_LEVELS,
        index: Optional[pd.DatetimeIndex] = None,
    ) -> ForecastResult:
        """
        Forecast `horizon` steps past the end of the model's training window.

        Args:
            model: FittedModel from a ModelFitter
            horizon: Number of steps (>= 1)
            levels: Whole-number confidence levels in percent, e.g. (80, 95)
            index: Timestamps for the forecast steps, e.g. the held-out
                test dates. Defaults to the training calendar extended
                past its last observation.

        Returns:
            ForecastResult with len(point) == horizon

        Raises:
            InvalidInput: horizon < 1, a level that is not a whole number in
                (0, 100), or an index whose length differs from horizon
            FitError: the backend could not produce a forecast
        """
        if isinstance(horizon, bool) or not isinstance(horizon, (int, np.integer)) or horizon < 1:
            raise InvalidInput(
                f"horizon must be an integer >= 1, got {horizon!r}",
                family=model.name,
                window=model.train.window,
            )

        levels = list(levels)
        bad = [level for level in levels if not _is_whole_percent(level)]
        if bad:
            raise InvalidInput(
                f"Confidence levels must be whole numbers in (0, 100), got {bad}",
                family=model.name,
                window=model.train.window,
            )

        level_list = sorted({int(level) for level in levels})

        if index is not None and len(index) != horizon:
            raise InvalidInput(
                f"Forecast index has {len(index)} timestamps, expected {horizon}",
                family=model.name,
                window=model.train.window,
            )

        try:
            if level_list:
                raw = model.estimator.predict(h=int(horizon), level=level_list)
            else:
                raw = model.estimator.predict(h=int(horizon))
        except Exception as exc:
            raise FitError(
                f"{model.spec} forecast failed: {exc}",
                family=model.name,
                window=model.train.window,
            ) from exc

        mean = np.asarray(raw["mean"], dtype=float)
        if len(mean) != horizon:
            raise FitError(
                f"{model.spec} returned {len(mean)} steps, expected {horizon}",
                family=model.name,
                window=model.train.window,
            )

        if index is None:
            index = model.train.future_index(int(horizon))
        else:
            index = pd.DatetimeIndex(index)
        lower = {
            level: pd.Series(np.asarray(raw[f"lo-{level}"], dtype=float), index=index, name=f"lo_{level}")
            for level in level_list
        }
        upper = {
            level: pd.Series(np.asarray(raw[f"hi-{level}"], dtype=float), index=index, name=f"hi_{level}")
            for level in level_list
        }

        logger.debug(f"{model.spec}: forecast h={horizon} levels={level_list}")
        return ForecastResult(
            model=model,
            point=pd.Series(mean, index=index, name="yhat"),
            lower=lower,
            upper=upper,
        )


def forecast(
    model: FittedModel,
    horizon: int,
    levels: Iterable[int] = DEFAULT_LEVELS,
    index: Optional[pd.DatetimeIndex] = None,
) -> ForecastResult:
    """Module-level shortcut for Forecaster().forecast"""
    return Forecaster().forecast(model, horizon, levels, index=index)
