# file: src/equity_forecast/cross_validation.py
"""
Rolling-origin cross-validation (one-step-ahead, expanding window).

For each origin in [initial_window, n - 1] the model is refit from scratch on
series[0:origin] and scored on series[origin]. Origins that cannot be
evaluated are recorded as SkipStep and excluded from the MSE, never counted
as zero error.

Every origin depends only on a read-only prefix of an immutable series, so
origins may run concurrently on a thread pool.
"""

import logging
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional

import numpy as np
import pandas as pd

from .exceptions import FitError, InvalidInput, SkipStep
from .forecasting import Forecaster
from .models import ModelFitter
from .series import TimeSeries

logger = logging.getLogger(__name__)

_QUEUE_POLL_SECONDS = 0.05


class CVState(str, Enum):
    ORIGIN_INIT = "ORIGIN_INIT"
    STEP = "STEP"
    DONE = "DONE"


def aggregate(errors: Iterable[float]) -> float:
    """Mean squared error over recorded errors; NaN (skipped) entries ignored"""
    arr = np.asarray(list(errors), dtype=float)
    scored = arr[np.isfinite(arr)]
    if scored.size == 0:
        return np.nan
    return float(np.mean(scored ** 2))


@dataclass(frozen=True, eq=False)
class CrossValidationRun:
    """Per-origin outcomes for one model family"""
    family: str
    initial_window: int
    steps: pd.DataFrame

    @property
    def errors(self) -> pd.Series:
        """Signed errors indexed by origin (NaN where skipped)"""
        return self.steps.set_index("origin")["error"]

    @property
    def skipped(self) -> Dict[int, str]:
        rows = self.steps[self.steps["skip_reason"].notna()]
        return dict(zip(rows["origin"].astype(int), rows["skip_reason"]))

    @property
    def n_origins(self) -> int:
        return len(self.steps)

    @property
    def n_scored(self) -> int:
        return int(self.steps["error"].notna().sum())

    @property
    def mse(self) -> float:
        return aggregate(self.steps["error"])


@dataclass(frozen=True, eq=False)
class CVResult(Mapping):
    """Model family -> aggregate MSE"""
    runs: Dict[str, CrossValidationRun] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    def __getitem__(self, family: str) -> float:
        return self.runs[family].mse

    def __iter__(self) -> Iterator[str]:
        return iter(self.runs)

    def __len__(self) -> int:
        return len(self.runs)

    def best_model(self) -> Optional[str]:
        """Family with the lowest finite MSE (first listed wins ties)"""
        best, best_mse = None, np.inf
        for family, run in self.runs.items():
            mse = run.mse
            if np.isfinite(mse) and mse < best_mse:
                best, best_mse = family, mse
        return best

    def to_frame(self) -> pd.DataFrame:
        """Cross-validation table keyed by model name"""
        return pd.DataFrame(
            [{"Model": family, "MSE": run.mse} for family, run in self.runs.items()],
            columns=["Model", "MSE"],
        )


class RollingCrossValidator:
    """One-step rolling-origin evaluation for a single model family"""

    def __init__(
        self,
        fitter: ModelFitter,
        forecaster: Optional[Forecaster] = None,
        initial_window: Optional[int] = None,
        max_workers: int = 1,
        fit_timeout: Optional[float] = None,
    ):
        """
        Args:
            fitter: ModelFitter refit at every origin
            forecaster: Forecaster for the one-step forecast
            initial_window: First origin (defaults to the fitter's minimum length)
            max_workers: Thread pool size; 1 runs sequentially
            fit_timeout: Seconds to wait for one origin before skipping it
        """
        self.fitter = fitter
        self.forecaster = forecaster or Forecaster()
        self.initial_window = initial_window
        self.max_workers = max_workers
        self.fit_timeout = fit_timeout
        self._state = CVState.ORIGIN_INIT

    @property
    def family(self) -> str:
        return self.fitter.family.value

    @property
    def state(self) -> CVState:
        return self._state

    def step(self, series: TimeSeries, origin: int) -> float:
        """
        Refit on series[0:origin] and return the one-step forecast of
        series[origin].

        Raises:
            SkipStep: prefix too short for the family, or fit/forecast failed
        """
        prefix = series[:origin]
        if origin < self.fitter.min_length:
            raise SkipStep(
                f"Prefix of {origin} obs shorter than minimum {self.fitter.min_length}",
                origin=origin,
                family=self.family,
                window=prefix.window,
            )

        try:
            model = self.fitter.fit(prefix)
            result = self.forecaster.forecast(model, horizon=1, levels=())
        except (FitError, InvalidInput) as exc:
            raise SkipStep(
                f"Origin {origin} not evaluable: {exc.message}",
                origin=origin,
                family=self.family,
                window=prefix.window,
            ) from exc

        return float(result.point_forecasts[0])

    def run(self, series: TimeSeries) -> CrossValidationRun:
        """
        Evaluate every origin in [initial_window, len(series) - 1].

        Raises:
            InvalidInput: initial_window leaves no origin to evaluate
        """
        self._state = CVState.ORIGIN_INIT
        n = len(series)
        initial = self.initial_window if self.initial_window is not None else self.fitter.min_length
        if initial < 1 or initial >= n:
            raise InvalidInput(
                f"initial_window={initial} leaves no origins for {n} observations",
                family=self.family,
                window=series.window,
            )

        origins = list(range(initial, n))
        logger.info(
            f"[cv] {self.family}: {len(origins)} origins "
            f"({initial}..{n - 1}), workers={self.max_workers}"
        )

        self._state = CVState.STEP
        if self.max_workers > 1 or self.fit_timeout is not None:
            outcomes = self._run_pool(series, origins)
        else:
            outcomes = {origin: self._attempt(series, origin) for origin in origins}
        self._state = CVState.DONE

        steps = self._build_steps(series, origins, outcomes)
        run = CrossValidationRun(family=self.family, initial_window=initial, steps=steps)

        if run.skipped:
            logger.warning(f"[cv] {self.family}: skipped {len(run.skipped)} of {run.n_origins} origins")
        logger.info(f"[cv] {self.family}: MSE={run.mse:.4f} over {run.n_scored} origins")
        return run

    def _attempt(self, series: TimeSeries, origin: int):
        try:
            return self.step(series, origin)
        except SkipStep as skip:
            logger.debug(f"[cv] {skip}")
            return skip

    def _run_pool(self, series: TimeSeries, origins: List[int]) -> Dict[int, object]:
        outcomes: Dict[int, object] = {}
        started: Dict[int, float] = {}

        def _timed_attempt(origin: int):
            started[origin] = time.monotonic()
            return self._attempt(series, origin)

        executor = ThreadPoolExecutor(max_workers=max(1, self.max_workers))
        try:
            futures = {origin: executor.submit(_timed_attempt, origin) for origin in origins}
            for origin, future in futures.items():
                outcomes[origin] = self._await(series, origin, future, started)
        finally:
            # Abandoned evaluations drop any origins not yet started
            executor.shutdown(wait=False, cancel_futures=True)
        return outcomes

    def _await(self, series: TimeSeries, origin: int, future, started: Dict[int, float]):
        """
        Result of one origin; the timeout clock starts when its fit starts,
        not while it waits in the queue.
        """
        if self.fit_timeout is None:
            return future.result()

        while origin not in started:
            wait([future], timeout=_QUEUE_POLL_SECONDS)
            if future.done():
                return future.result()

        remaining = started[origin] + self.fit_timeout - time.monotonic()
        try:
            return future.result(timeout=max(remaining, 0.0))
        except FutureTimeoutError:
            return SkipStep(
                f"Origin {origin} exceeded fit timeout of {self.fit_timeout}s",
                origin=origin,
                family=self.family,
                window=(series.start, series.index[origin - 1]),
            )

    def _build_steps(
        self,
        series: TimeSeries,
        origins: List[int],
        outcomes: Dict[int, object],
    ) -> pd.DataFrame:
        values = series.values
        rows = []
        for origin in origins:
            outcome = outcomes[origin]
            actual = float(values[origin])
            if isinstance(outcome, SkipStep):
                forecast, error, reason = np.nan, np.nan, outcome.message
            else:
                forecast, error, reason = outcome, actual - outcome, None
            rows.append({
                "origin": origin,
                "ds": series.index[origin],
                "actual": actual,
                "forecast": forecast,
                "error": error,
                "skip_reason": reason,
            })
        return pd.DataFrame(
            rows,
            columns=["origin", "ds", "actual", "forecast", "error", "skip_reason"],
        )


def cross_validate(
    series: TimeSeries,
    fitters: Dict[str, ModelFitter],
    initial_window: Optional[int] = None,
    max_workers: int = 1,
    fit_timeout: Optional[float] = None,
) -> CVResult:
    """
    Run rolling-origin CV for each family independently.

    A family whose evaluation cannot start is recorded in `failures`; the
    remaining families still run.
    """
    runs: Dict[str, CrossValidationRun] = {}
    failures: Dict[str, str] = {}

    for family, fitter in fitters.items():
        validator = RollingCrossValidator(
            fitter,
            initial_window=initial_window,
            max_workers=max_workers,
            fit_timeout=fit_timeout,
        )
        try:
            runs[family] = validator.run(series)
        except InvalidInput as exc:
            logger.error(f"[cv] {family} failed: {exc}")
            failures[family] = str(exc)

    return CVResult(runs=runs, failures=failures)
