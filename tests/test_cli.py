"""
CLI tests (Typer runner, offline).
"""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from src.equity_forecast.cli import app
from src.equity_forecast.exceptions import DataUnavailable
from src.equity_forecast.market_data import save_closes_csv
from src.equity_forecast.models import ModelFamily
from tests.fakes import NaiveFitter, random_walk_closes

runner = CliRunner()


@pytest.fixture
def csv_args(tmp_path):
    csv_path = tmp_path / "input.csv"
    save_closes_csv(random_walk_closes(60), csv_path)
    return [
        "--csv", str(csv_path),
        "--data-dir", str(tmp_path / "data"),
        "--results-dir", str(tmp_path / "results"),
        "--plots-dir", str(tmp_path / "plots"),
    ]


@pytest.mark.smoke
class TestRunCommand:

    @patch("src.equity_forecast.pipeline.build_fitters")
    def test_run_renders_tables(self, mock_fitters, csv_args):
        mock_fitters.return_value = {
            "ARIMA": NaiveFitter(ModelFamily.ARIMA),
            "ETS": NaiveFitter(ModelFamily.ETS),
        }

        result = runner.invoke(app, ["run", *csv_args, "--no-plots", "--cv-initial-window", "40"])

        assert result.exit_code == 0, result.output
        assert "Accuracy comparison" in result.output
        assert "Rolling-origin cross-validation" in result.output

    @patch("src.equity_forecast.pipeline.build_fitters")
    def test_all_families_failing_exits_non_zero(self, mock_fitters, csv_args):
        mock_fitters.return_value = {"ARIMA": NaiveFitter(always_fail=True)}

        result = runner.invoke(app, ["run", *csv_args, "--no-plots", "--no-cv"])

        assert result.exit_code == 1

    @patch("src.equity_forecast.cli.run_full_pipeline")
    def test_data_unavailable_exits_1(self, mock_run):
        mock_run.side_effect = DataUnavailable("No price data returned for ZZZZ")

        result = runner.invoke(app, ["run", "--symbol", "ZZZZ"])

        assert result.exit_code == 1
        assert "Market data unavailable" in result.output

    def test_invalid_ratio_exits_2(self):
        result = runner.invoke(app, ["run", "--train-ratio", "1.5"])

        assert result.exit_code == 2


def test_families_command():
    result = runner.invoke(app, ["families"])

    assert result.exit_code == 0
    assert "ARIMA" in result.output and "ETS" in result.output
