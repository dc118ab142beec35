"""
Configuration tests: defaults, validation and environment overrides.
"""

from pathlib import Path

import pytest

from src.equity_forecast.config import AnalysisConfig, load_config
from src.equity_forecast.exceptions import InvalidInput

ENV_VARS = [
    "EQUITY_FORECAST_SYMBOL",
    "EQUITY_FORECAST_START",
    "EQUITY_FORECAST_END",
    "EQUITY_FORECAST_CV_WORKERS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestAnalysisConfig:

    def test_defaults_reproduce_reference_study(self):
        cfg = AnalysisConfig()

        assert cfg.symbol == "ACU"
        assert (cfg.start_date, cfg.end_date) == ("2020-10-21", "2024-10-20")
        assert cfg.train_ratio == 0.8
        assert cfg.levels == (80, 95)

    def test_paths(self):
        cfg = AnalysisConfig(data_dir="d", results_dir="r")

        assert cfg.raw_path() == Path("d") / "acu_closes.csv"
        assert cfg.accuracy_path() == Path("r") / "accuracy_comparison.csv"
        assert cfg.cv_results_path() == Path("r") / "cross_validation_results.csv"
        assert cfg.model_summary_path("ETS") == Path("r") / "ets_model_summary.txt"

    def test_arima_season_length_follows_switch(self):
        assert AnalysisConfig(season_length=5).arima_season_length == 1
        assert AnalysisConfig(season_length=5, arima_seasonal=True).arima_season_length == 5

    @pytest.mark.fail_loud
    @pytest.mark.parametrize("kwargs", [
        {"train_ratio": 1.0},
        {"train_ratio": 0.0},
        {"season_length": 0},
        {"cv_max_workers": 0},
        {"levels": (80, 100)},
        {"levels": (80, 97.5)},
    ])
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(InvalidInput):
            AnalysisConfig(**kwargs)


class TestLoadConfig:

    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("EQUITY_FORECAST_SYMBOL", "MSFT")
        monkeypatch.setenv("EQUITY_FORECAST_CV_WORKERS", "4")

        cfg = load_config()

        assert cfg.symbol == "MSFT"
        assert cfg.cv_max_workers == 4

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("EQUITY_FORECAST_SYMBOL", "MSFT")

        assert load_config(symbol="ACU").symbol == "ACU"

    def test_none_overrides_ignored(self):
        assert load_config(symbol=None).symbol == "ACU"

    @pytest.mark.fail_loud
    def test_bad_worker_count_raises(self, monkeypatch):
        monkeypatch.setenv("EQUITY_FORECAST_CV_WORKERS", "many")
        with pytest.raises(InvalidInput):
            load_config()

    @pytest.mark.fail_loud
    def test_unknown_key_raises(self):
        with pytest.raises(InvalidInput):
            load_config(horizon=5)
