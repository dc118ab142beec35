"""
Market-data collaborator tests (provider mocked, no network).
"""

from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest

from src.equity_forecast.exceptions import DataUnavailable
from src.equity_forecast.market_data import (fetch_daily_closes,
                                             load_closes_csv,
                                             save_closes_csv)


def _download_frame(multi_index=True):
    index = pd.DatetimeIndex(["2024-01-03", "2024-01-02", "2024-01-04"], name="Date")
    close = [11.0, 10.0, 12.0]
    if multi_index:
        columns = pd.MultiIndex.from_tuples([("Close", "ACU"), ("Open", "ACU")], names=["Price", "Ticker"])
        return pd.DataFrame(np.column_stack([close, close]), index=index, columns=columns)
    return pd.DataFrame({"Close": close, "Open": close}, index=index)


class TestFetchDailyCloses:

    @pytest.mark.parametrize("multi_index", [True, False])
    @patch("src.equity_forecast.market_data.yf.download")
    def test_returns_sorted_closes(self, mock_download, multi_index):
        mock_download.return_value = _download_frame(multi_index)

        closes = fetch_daily_closes("ACU", "2024-01-01", "2024-01-05")

        assert list(closes.values) == [10.0, 11.0, 12.0]
        assert closes.index.is_monotonic_increasing
        assert closes.name == "ACU"
        _, kwargs = mock_download.call_args
        assert kwargs["start"] == "2024-01-01"
        assert kwargs["end"] == "2024-01-05"

    @pytest.mark.fail_loud
    @patch("src.equity_forecast.market_data.yf.download")
    def test_empty_download_raises(self, mock_download):
        mock_download.return_value = pd.DataFrame()

        with pytest.raises(DataUnavailable) as exc:
            fetch_daily_closes("ACU", "2024-01-01", "2024-01-05")

        assert exc.value.window == ("2024-01-01", "2024-01-05")

    @pytest.mark.fail_loud
    @patch("src.equity_forecast.market_data.yf.download")
    def test_provider_error_wrapped(self, mock_download):
        mock_download.side_effect = ConnectionError("no route to host")

        with pytest.raises(DataUnavailable) as exc:
            fetch_daily_closes("ACU", "2024-01-01", "2024-01-05")

        assert isinstance(exc.value.__cause__, ConnectionError)


class TestClosesCsv:

    def test_save_then_load(self, tmp_path):
        closes = pd.Series(
            [10.0, 11.0],
            index=pd.DatetimeIndex(["2024-01-02", "2024-01-03"]),
            name="ACU",
        )
        path = tmp_path / "closes.csv"
        save_closes_csv(closes, path)

        loaded = load_closes_csv(path, symbol="ACU")

        assert list(loaded.values) == [10.0, 11.0]
        assert loaded.index[0] == pd.Timestamp("2024-01-02")
        assert not (tmp_path / "closes.csv.tmp").exists()

    def test_alternative_column_names(self, tmp_path):
        path = tmp_path / "prices.csv"
        pd.DataFrame({"ds": ["2024-01-02", "2024-01-03"], "y": [1.0, 2.0]}).to_csv(path, index=False)

        assert len(load_closes_csv(path)) == 2

    @pytest.mark.fail_loud
    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(DataUnavailable):
            load_closes_csv(tmp_path / "nope.csv")

    @pytest.mark.fail_loud
    def test_missing_columns_raise(self, tmp_path):
        path = tmp_path / "bad.csv"
        pd.DataFrame({"when": ["2024-01-02"], "price": [1.0]}).to_csv(path, index=False)

        with pytest.raises(DataUnavailable):
            load_closes_csv(path)
