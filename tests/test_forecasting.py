"""
Forecaster tests

Horizon contract, interval nesting and backend failure handling.
"""

import numpy as np
import pandas as pd
import pytest

from src.equity_forecast.exceptions import FitError, InvalidInput
from src.equity_forecast.forecasting import Forecaster, forecast
from src.equity_forecast.series import load
from tests.fakes import BrokenEstimator, ShortEstimator, make_model


@pytest.fixture
def model():
    series = load(100 + np.cumsum(np.ones(20)), "2024-01-01", step="D")
    return make_model(series)


@pytest.mark.fail_loud
class TestHorizonContract:

    @pytest.mark.parametrize("horizon", [0, -1, 1.5, True, "3"])
    def test_invalid_horizon_raises(self, model, horizon):
        with pytest.raises(InvalidInput):
            Forecaster().forecast(model, horizon=horizon)

    @pytest.mark.parametrize("levels", [(0,), (100,), (80, 120), (97.5,), (True,), ("95",)])
    def test_invalid_levels_raise(self, model, levels):
        with pytest.raises(InvalidInput):
            Forecaster().forecast(model, horizon=3, levels=levels)

    @pytest.mark.parametrize("horizon", [1, 5, 30])
    def test_length_matches_horizon(self, model, horizon):
        result = forecast(model, horizon)

        assert result.horizon == horizon
        assert len(result.point_forecasts) == horizon
        for level in result.levels:
            lower, upper = result.interval(level)
            assert len(lower) == len(upper) == horizon

    def test_index_follows_training_window(self, model):
        result = forecast(model, 3)

        assert result.point.index[0] == model.train.end + pd.Timedelta(days=1)
        assert result.point.index.is_monotonic_increasing

    def test_explicit_index_labels_steps(self, model):
        dates = pd.DatetimeIndex(["2024-02-01", "2024-02-05", "2024-02-06"])
        result = forecast(model, 3, index=dates)

        assert result.point.index.equals(dates)
        assert result.interval(80)[0].index.equals(dates)

    def test_index_length_mismatch_raises(self, model):
        dates = pd.DatetimeIndex(["2024-02-01", "2024-02-05"])
        with pytest.raises(InvalidInput):
            Forecaster().forecast(model, horizon=3, index=dates)

    def test_whole_float_level_accepted(self, model):
        assert forecast(model, 2, levels=(95.0,)).levels == [95]

    def test_backend_failure_is_fit_error(self, model):
        broken = make_model(model.train, BrokenEstimator(model.train.values))
        with pytest.raises(FitError) as exc:
            forecast(broken, 2)

        assert isinstance(exc.value.__cause__, RuntimeError)
        assert exc.value.family == "ARIMA"

    def test_wrong_length_is_fit_error(self, model):
        short = make_model(model.train, ShortEstimator(model.train.values))
        with pytest.raises(FitError):
            forecast(short, 4)


class TestIntervals:

    def test_95_contains_80(self, model):
        result = forecast(model, 10, levels=(80, 95))
        lo80, hi80 = result.interval(80)
        lo95, hi95 = result.interval(95)
        point = result.point

        assert (lo95 <= lo80).all() and (lo80 <= point).all()
        assert (point <= hi80).all() and (hi80 <= hi95).all()

    def test_no_levels_point_only(self, model):
        result = forecast(model, 2, levels=())

        assert result.levels == []
        assert list(result.to_frame().columns) == ["ds", "model", "yhat"]

    def test_unrequested_level_raises(self, model):
        result = forecast(model, 2, levels=(80,))
        with pytest.raises(InvalidInput):
            result.interval(95)

    def test_to_frame_layout(self, model):
        frame = forecast(model, 2).to_frame()

        assert list(frame.columns) == [
            "ds", "model", "yhat", "yhat_lo_80", "yhat_hi_80", "yhat_lo_95", "yhat_hi_95",
        ]

    def test_point_forecasts_read_only(self, model):
        result = forecast(model, 2)
        with pytest.raises(ValueError):
            result.point_forecasts[0] = 0.0
