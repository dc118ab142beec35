# file: src/equity_forecast/series.py
"""
Series store: immutable price series and train/test windows.

The canonical in-memory form is a pd.Series with a DatetimeIndex (the ts
object); `TimeSeries.to_frame()` produces the tidy [unique_id, ds, y] table
used for persistence and plotting.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

import numpy as np
import pandas as pd
from pandas.tseries.frequencies import to_offset

from .exceptions import InvalidInput

logger = logging.getLogger(__name__)


def _infer_freq(index: pd.DatetimeIndex) -> str:
    """Best-effort frequency string for an observed index."""
    if index.freq is not None:
        return index.freqstr
    if len(index) >= 3:
        inferred = pd.infer_freq(index)
        if inferred:
            return inferred
    if len(index) >= 2:
        spacing = pd.Series(index).diff().dropna().median()
        # Trading calendars skip weekends and holidays
        if (index.dayofweek < 5).all() and pd.Timedelta(days=1) <= spacing <= pd.Timedelta(days=3):
            return "B"
        return to_offset(spacing).freqstr
    return "D"


@dataclass(frozen=True, eq=False)
class TimeSeries:
    """Ordered, finite, strictly increasing observations"""
    data: pd.Series
    name: str = "y"
    freq: Optional[str] = None

    def __post_init__(self):
        data = self.data
        if not isinstance(data.index, pd.DatetimeIndex):
            raise InvalidInput("TimeSeries requires a DatetimeIndex")
        if data.index.has_duplicates:
            raise InvalidInput(
                f"Duplicate timestamps: {int(data.index.duplicated().sum())}"
            )
        if not data.index.is_monotonic_increasing:
            raise InvalidInput("Timestamps must be strictly increasing")

        values = data.to_numpy(dtype=float, copy=True)
        if not np.isfinite(values).all():
            raise InvalidInput(
                f"Non-finite values present: {int((~np.isfinite(values)).sum())}"
            )

        frozen = pd.Series(values, index=data.index.copy(), name=self.name)
        object.__setattr__(self, "data", frozen)
        if self.freq is None:
            object.__setattr__(self, "freq", _infer_freq(frozen.index))

    def __len__(self) -> int:
        return len(self.data)

    def __getitem__(self, key: slice) -> "TimeSeries":
        if not isinstance(key, slice):
            raise TypeError("TimeSeries supports slice indexing only")
        return TimeSeries(self.data.iloc[key], name=self.name, freq=self.freq)

    def head(self, n: int) -> "TimeSeries":
        return self[0:n]

    @property
    def values(self) -> np.ndarray:
        """Read-only copy of the observation values"""
        arr = self.data.to_numpy(dtype=float, copy=True)
        arr.setflags(write=False)
        return arr

    @property
    def index(self) -> pd.DatetimeIndex:
        return self.data.index

    @property
    def start(self) -> Optional[pd.Timestamp]:
        return self.data.index[0] if len(self) else None

    @property
    def end(self) -> Optional[pd.Timestamp]:
        return self.data.index[-1] if len(self) else None

    @property
    def window(self) -> Tuple[Optional[pd.Timestamp], Optional[pd.Timestamp]]:
        return (self.start, self.end)

    def future_index(self, horizon: int) -> pd.DatetimeIndex:
        """Timestamps for the `horizon` steps after the last observation"""
        offset = to_offset(self.freq)
        return pd.date_range(start=self.end + offset, periods=horizon, freq=offset)

    def to_pandas(self) -> pd.Series:
        return self.data.copy()

    def to_frame(self, unique_id: Optional[str] = None) -> pd.DataFrame:
        """Tidy [unique_id, ds, y] table"""
        return pd.DataFrame({
            "unique_id": unique_id or self.name,
            "ds": self.data.index,
            "y": self.data.to_numpy(),
        })


@dataclass(frozen=True, eq=False)
class Split:
    """Train/test partition; train strictly precedes test"""
    train: TimeSeries
    test: TimeSeries

    def __post_init__(self):
        if len(self.train) and len(self.test) and self.train.end >= self.test.start:
            raise InvalidInput(
                f"Train/test leakage: train_end ({self.train.end}) >= "
                f"test_start ({self.test.start})"
            )

    @property
    def train_size(self) -> int:
        return len(self.train)

    @property
    def test_size(self) -> int:
        return len(self.test)

    @property
    def info(self) -> dict:
        """Serialize split info"""
        return {
            "train_start": str(self.train.start),
            "train_end": str(self.train.end),
            "test_start": str(self.test.start),
            "test_end": str(self.test.end),
            "train_size": self.train_size,
            "test_size": self.test_size,
        }


def load(
    values: Iterable[float],
    start_time: Union[str, pd.Timestamp],
    step: str = "D",
    name: str = "y",
) -> TimeSeries:
    """
    Build a TimeSeries from raw values on a regular grid.

    Timestamps are assigned positionally before non-finite values are
    dropped, so surviving observations keep their original timestamps.

    Raises:
        InvalidInput: if `values` is empty or has no finite entries
    """
    try:
        arr = np.asarray(list(values), dtype=float)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"Values are not numeric: {exc}") from exc

    if arr.size == 0:
        raise InvalidInput("Cannot load an empty series")

    index = pd.date_range(start=pd.Timestamp(start_time), periods=arr.size, freq=step)
    finite = np.isfinite(arr)
    if not finite.any():
        raise InvalidInput(
            "Series contains only non-finite values",
            window=(index[0], index[-1]),
        )

    dropped = int((~finite).sum())
    if dropped:
        logger.warning(f"Dropped {dropped} non-finite observations from {name}")

    return TimeSeries(pd.Series(arr[finite], index=index[finite]), name=name, freq=step)


def from_pandas(series: pd.Series, name: Optional[str] = None) -> TimeSeries:
    """
    Build a TimeSeries from provider data (index = dates, values = closes).

    Sorts by time, keeps the last duplicate timestamp and drops non-finite
    values, logging each correction.
    """
    label = name or (str(series.name) if series.name is not None else "y")
    if series.empty:
        raise InvalidInput(f"Cannot load an empty series: {label}")

    work = pd.Series(
        pd.to_numeric(series.to_numpy(), errors="coerce"),
        index=pd.to_datetime(series.index, errors="raise"),
    )
    if work.index.tz is not None:
        work.index = work.index.tz_convert("UTC").tz_localize(None)

    work = work.sort_index()
    duplicated = work.index.duplicated(keep="last")
    if duplicated.any():
        logger.warning(f"Dropped {int(duplicated.sum())} duplicate timestamps from {label}")
        work = work[~duplicated]

    finite = np.isfinite(work.to_numpy(dtype=float))
    if not finite.any():
        raise InvalidInput(
            f"Series contains only non-finite values: {label}",
            window=(work.index[0], work.index[-1]),
        )
    if not finite.all():
        logger.warning(f"Dropped {int((~finite).sum())} non-finite observations from {label}")
        work = work[finite]

    return TimeSeries(work, name=label)


def split(series: TimeSeries, ratio: float) -> Split:
    """
    Split into leading train and trailing test windows.

    len(train) == floor(ratio * len(series)); the rest is test.

    Raises:
        InvalidInput: if ratio is not in (0, 1) or either side is empty
    """
    if not 0 < ratio < 1:
        raise InvalidInput(f"ratio must be in (0, 1), got {ratio}", window=series.window)

    n = len(series)
    n_train = int(math.floor(ratio * n))
    if n_train == 0 or n_train == n:
        raise InvalidInput(
            f"Split of {n} observations at ratio {ratio} leaves an empty side "
            f"(train={n_train}, test={n - n_train})",
            window=series.window,
        )

    result = Split(train=series[:n_train], test=series[n_train:])
    logger.info(
        f"Split {series.name}: train={result.train_size} "
        f"({result.train.start} to {result.train.end}), "
        f"test={result.test_size} ({result.test.start} to {result.test.end})"
    )
    return result
