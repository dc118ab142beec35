"""
Rolling-origin cross-validation tests

Validates origin bookkeeping, SkipStep exclusion, the state machine and
that pooled evaluation matches sequential evaluation.
"""

import numpy as np
import pytest

from src.equity_forecast.cross_validation import (CVState,
                                                  RollingCrossValidator,
                                                  aggregate, cross_validate)
from src.equity_forecast.exceptions import InvalidInput, SkipStep
from src.equity_forecast.models import ModelFamily
from src.equity_forecast.series import load
from tests.fakes import NaiveFitter

SCENARIO = [100, 102, 101, 105, 107, 110, 108, 112, 115, 117]


@pytest.fixture
def series():
    return load(SCENARIO, "2024-01-01")


class TestAggregate:

    def test_mean_of_squares(self):
        assert aggregate([1.0, -3.0]) == pytest.approx(5.0)

    def test_skipped_entries_ignored_not_zeroed(self):
        assert aggregate([1.0, np.nan, 3.0]) == pytest.approx(5.0)

    def test_nothing_scored_is_nan(self):
        assert np.isnan(aggregate([]))
        assert np.isnan(aggregate([np.nan, np.nan]))


class TestRollingOrigins:
    """One refit per origin, one-step forecasts, no look-ahead"""

    def test_origin_count(self, series):
        run = RollingCrossValidator(NaiveFitter(), initial_window=5).run(series)

        assert run.n_origins == len(series) - 5
        assert list(run.steps["origin"]) == [5, 6, 7, 8, 9]

    def test_never_forecasts_past_last_observation(self, series):
        run = RollingCrossValidator(NaiveFitter(), initial_window=3).run(series)

        assert run.steps["origin"].max() == len(series) - 1

    def test_naive_errors_are_first_differences(self, series):
        """Last-value forecast at origin t is series[t-1]"""
        run = RollingCrossValidator(NaiveFitter(), initial_window=5).run(series)
        expected = np.diff(SCENARIO)[4:]

        np.testing.assert_allclose(run.errors.to_numpy(), expected)
        assert run.mse == pytest.approx(np.mean(expected ** 2))

    def test_state_machine(self, series):
        validator = RollingCrossValidator(NaiveFitter(), initial_window=5)
        assert validator.state is CVState.ORIGIN_INIT

        validator.run(series)

        assert validator.state is CVState.DONE

    def test_default_initial_window_is_min_length(self, series):
        run = RollingCrossValidator(NaiveFitter(min_length=4)).run(series)

        assert run.initial_window == 4
        assert run.n_origins == len(series) - 4


@pytest.mark.fail_loud
class TestSkipStep:
    """Unevaluable origins are recorded and excluded from the MSE"""

    def test_failed_fit_is_skipped(self, series):
        run = RollingCrossValidator(NaiveFitter(fail_on={6}), initial_window=5).run(series)

        assert list(run.skipped) == [6]
        assert run.n_scored == 4
        scored = run.steps.loc[run.steps["origin"] != 6, "error"].to_numpy()
        assert run.mse == pytest.approx(np.mean(scored ** 2))

    def test_prefix_shorter_than_minimum_is_skipped(self, series):
        run = RollingCrossValidator(NaiveFitter(min_length=4), initial_window=2).run(series)

        assert sorted(run.skipped) == [2, 3]
        assert "shorter than minimum" in run.skipped[2]

    def test_step_raises_skip_step(self, series):
        validator = RollingCrossValidator(NaiveFitter(min_length=4))
        with pytest.raises(SkipStep) as exc:
            validator.step(series, 3)

        assert exc.value.origin == 3
        assert exc.value.family == "ARIMA"

    @pytest.mark.parametrize("initial", [0, 10, 11])
    def test_no_origins_raises(self, series, initial):
        with pytest.raises(InvalidInput):
            RollingCrossValidator(NaiveFitter(), initial_window=initial).run(series)


class TestConcurrency:
    """Origins are independent; the pool changes nothing but wall time"""

    def test_pool_matches_sequential(self):
        values = 100 + np.cumsum(np.random.default_rng(3).normal(0, 1, 40))
        series = load(values, "2024-01-01")

        sequential = RollingCrossValidator(NaiveFitter(), initial_window=10).run(series)
        pooled = RollingCrossValidator(NaiveFitter(), initial_window=10, max_workers=4).run(series)

        np.testing.assert_allclose(pooled.errors.to_numpy(), sequential.errors.to_numpy())
        assert pooled.mse == pytest.approx(sequential.mse)

    def test_timeout_skips_origin(self, series):
        fitter = NaiveFitter(slow_on={7}, delay=2.0)
        run = RollingCrossValidator(fitter, initial_window=5, max_workers=4, fit_timeout=0.2).run(series)

        assert 7 in run.skipped
        assert "timeout" in run.skipped[7]
        assert np.isnan(run.steps.set_index("origin").loc[7, "error"])

    def test_timeout_counts_from_fit_start_not_queue(self, series):
        """Origins queued behind a slow one on a single worker still get scored"""
        fitter = NaiveFitter(slow_on={6}, delay=2.0)
        run = RollingCrossValidator(fitter, initial_window=5, max_workers=1, fit_timeout=0.3).run(series)

        assert list(run.skipped) == [6]
        assert run.n_scored == 4


class TestCrossValidate:

    def test_families_run_independently(self, series):
        fitters = {
            "ARIMA": NaiveFitter(ModelFamily.ARIMA),
            "ETS": NaiveFitter(ModelFamily.ETS, always_fail=True),
        }
        result = cross_validate(series, fitters, initial_window=5)

        assert set(result) == {"ARIMA", "ETS"}
        assert np.isfinite(result["ARIMA"])
        assert np.isnan(result["ETS"])
        assert result.best_model() == "ARIMA"

    def test_tie_goes_to_first_listed(self, series):
        fitters = {
            "ETS": NaiveFitter(ModelFamily.ETS),
            "ARIMA": NaiveFitter(ModelFamily.ARIMA),
        }
        result = cross_validate(series, fitters, initial_window=5)

        assert result["ETS"] == result["ARIMA"]
        assert result.best_model() == "ETS"

    def test_unstartable_family_recorded(self, series):
        result = cross_validate(series, {"ARIMA": NaiveFitter()}, initial_window=50)

        assert len(result) == 0
        assert "ARIMA" in result.failures
        assert result.best_model() is None

    def test_to_frame_layout(self, series):
        frame = cross_validate(series, {"ARIMA": NaiveFitter()}, initial_window=5).to_frame()

        assert list(frame.columns) == ["Model", "MSE"]
        assert frame.loc[0, "Model"] == "ARIMA"
