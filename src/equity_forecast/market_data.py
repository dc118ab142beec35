# file: src/equity_forecast/market_data.py
"""
Market-data collaborator: daily closing prices for one symbol.

Contract: returns an ordered, deduplicated pd.Series of closes indexed by
trading date, or raises DataUnavailable. Nothing else in the package talks
to the provider.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import pandas as pd
import yfinance as yf

from .exceptions import DataUnavailable
from .io_utils import atomic_write_csv

logger = logging.getLogger(__name__)

DATE_COLUMNS = ("Date", "date", "ds")
CLOSE_COLUMNS = ("Close", "close", "y")


def _tidy_closes(close: pd.Series, symbol: str) -> pd.Series:
    close = close.copy()
    close.index = pd.to_datetime(close.index, errors="raise")
    if close.index.tz is not None:
        close.index = close.index.tz_localize(None)
    close = close.sort_index()
    close = close[~close.index.duplicated(keep="last")]
    close.index.name = "Date"
    close.name = symbol
    return close


def fetch_daily_closes(symbol: str, start_date: str, end_date: str) -> pd.Series:
    """
    Download daily closes from Yahoo Finance.

    Args:
        symbol: Ticker, e.g. "ACU"
        start_date: First date (inclusive), YYYY-MM-DD
        end_date: Last date (exclusive), YYYY-MM-DD

    Raises:
        DataUnavailable: provider error or no rows returned
    """
    logger.info(f"[fetch] {symbol}: {start_date} to {end_date}")
    window = (start_date, end_date)

    try:
        raw = yf.download(
            symbol,
            start=start_date,
            end=end_date,
            auto_adjust=False,
            actions=False,
            progress=False,
        )
    except Exception as exc:
        raise DataUnavailable(f"Download failed for {symbol}: {exc}", window=window) from exc

    if raw is None or raw.empty or "Close" not in raw.columns.get_level_values(0):
        raise DataUnavailable(f"No price data returned for {symbol}", window=window)

    close = raw["Close"]
    # Recent yfinance releases return ticker-level columns even for one symbol
    if isinstance(close, pd.DataFrame):
        close = close[symbol] if symbol in close.columns else close.iloc[:, 0]

    close = _tidy_closes(close.dropna(), symbol)
    if close.empty:
        raise DataUnavailable(f"Only missing closes returned for {symbol}", window=window)

    logger.info(f"[fetch] {symbol}: {len(close)} closes ({close.index.min().date()} to {close.index.max().date()})")
    return close


def load_closes_csv(path: Union[str, Path], symbol: str = "y") -> pd.Series:
    """
    Read closes from a CSV with a date column and a close column.

    Raises:
        DataUnavailable: file missing, unreadable, or without the expected columns
    """
    path = Path(path)
    if not path.exists():
        raise DataUnavailable(f"Price file not found: {path}")

    try:
        df = pd.read_csv(path)
    except (OSError, ValueError) as exc:
        raise DataUnavailable(f"Could not read {path}: {exc}") from exc

    date_col = next((c for c in DATE_COLUMNS if c in df.columns), None)
    close_col = next((c for c in CLOSE_COLUMNS if c in df.columns), None)
    if date_col is None or close_col is None:
        raise DataUnavailable(
            f"{path} needs one of {DATE_COLUMNS} and one of {CLOSE_COLUMNS}, "
            f"got {df.columns.tolist()}"
        )

    close = pd.Series(
        pd.to_numeric(df[close_col], errors="coerce").to_numpy(),
        index=df[date_col],
    )
    close = _tidy_closes(close, symbol)
    if close.dropna().empty:
        raise DataUnavailable(f"No usable closes in {path}")

    logger.info(f"[fetch] loaded {len(close)} closes from {path}")
    return close


def save_closes_csv(close: pd.Series, path: Union[str, Path]) -> None:
    frame = pd.DataFrame({"Date": close.index, "Close": close.to_numpy()})
    atomic_write_csv(frame, Path(path))
