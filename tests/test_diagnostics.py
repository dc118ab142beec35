"""
Diagnostics tests: summary statistics, stationarity, residual checks, STL.
"""

import numpy as np
import pytest

from src.equity_forecast.diagnostics import (check_residuals,
                                             check_stationarity,
                                             stl_decomposition,
                                             summary_statistics)
from src.equity_forecast.exceptions import InvalidInput
from src.equity_forecast.series import load
from tests.fakes import make_model


class TestSummaryStatistics:

    def test_values(self):
        stats = summary_statistics(load([1.0, 2.0, 3.0, 4.0, 5.0], "2024-01-01"))

        assert stats["Min"] == 1.0
        assert stats["Max"] == 5.0
        assert stats["Mean"] == pytest.approx(3.0)
        assert stats["Median"] == pytest.approx(3.0)
        assert stats["SD"] == pytest.approx(np.sqrt(2.5))

    def test_single_value_sd_is_nan(self):
        assert np.isnan(summary_statistics(load([4.0], "2024-01-01"))["SD"])


class TestStationarity:

    def test_trending_series_not_stationary(self):
        rng = np.random.default_rng(0)
        t = np.arange(300, dtype=float)
        result = check_stationarity(load(t + rng.normal(0, 1, 300), "2024-01-01"))

        assert result.kpss_stationary is False
        assert result.is_stationary is False
        assert result.conclusion == "Series may not be stationary"

    def test_result_fields(self):
        rng = np.random.default_rng(1)
        result = check_stationarity(load(rng.normal(0, 1, 200), "2024-01-01"))
        out = result.to_dict()

        assert 0 <= out["adf_p_value"] <= 1
        assert 0 <= out["kpss_p_value"] <= 1
        assert out["conclusion"] == result.conclusion
        assert result.is_stationary == (result.adf_stationary and result.kpss_stationary)

    @pytest.mark.fail_loud
    def test_too_short_raises(self):
        with pytest.raises(InvalidInput):
            check_stationarity(load(np.arange(5.0), "2024-01-01"))


class TestResidualChecks:

    def test_ljung_box_on_naive_model(self):
        rng = np.random.default_rng(2)
        series = load(100 + np.cumsum(rng.normal(0, 1, 120)), "2024-01-01")
        diag = check_residuals(make_model(series))

        # No fitted dynamics params: lag = min(10, n / 5) = 10 with full df
        assert diag.lag == 10
        assert diag.df == 10
        assert 0 <= diag.p_value <= 1
        assert diag.to_dict()["white_noise"] == diag.white_noise

    @pytest.mark.fail_loud
    def test_too_few_residuals_raise(self):
        series = load([1.0, 2.0], "2024-01-01")
        with pytest.raises(InvalidInput):
            check_residuals(make_model(series))


class TestStlDecomposition:

    def test_components_add_up(self):
        t = np.arange(70, dtype=float)
        series = load(50 + 0.2 * t + 3 * np.sin(2 * np.pi * t / 7), "2024-01-01")
        components = stl_decomposition(series, period=7)

        assert list(components.columns) == ["observed", "trend", "seasonal", "remainder"]
        assert len(components) == len(series)
        np.testing.assert_allclose(
            components["trend"] + components["seasonal"] + components["remainder"],
            components["observed"],
            atol=1e-8,
        )

    @pytest.mark.fail_loud
    @pytest.mark.parametrize("period,n", [(1, 30), (7, 10)])
    def test_invalid_period_raises(self, period, n):
        with pytest.raises(InvalidInput):
            stl_decomposition(load(np.arange(float(n)), "2024-01-01"), period=period)
