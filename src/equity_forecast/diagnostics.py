# file: src/equity_forecast/diagnostics.py
"""
Series and residual diagnostics.

1. Summary statistics - min / max / mean / median / sd
2. Stationarity - ADF (H0: unit root) + KPSS (H0: level stationary)
3. Residual checks - Ljung-Box white-noise test on model residuals
4. STL decomposition - trend / seasonal / remainder for inspection

All test statistics come from statsmodels; nothing here feeds back into
model selection.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import asdict, dataclass
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .exceptions import InvalidInput
from .models import FittedModel
from .series import TimeSeries

logger = logging.getLogger(__name__)

SIGNIFICANCE = 0.05


def summary_statistics(series: TimeSeries) -> Dict[str, float]:
    """Min, Max, Mean, Median, SD (sample) of the observations"""
    values = series.values
    return {
        "Min": float(np.min(values)),
        "Max": float(np.max(values)),
        "Mean": float(np.mean(values)),
        "Median": float(np.median(values)),
        "SD": float(np.std(values, ddof=1)) if len(values) > 1 else np.nan,
    }


@dataclass(frozen=True)
class StationarityResult:
    """ADF + KPSS verdicts for one series"""
    adf_statistic: float
    adf_p_value: float
    adf_stationary: bool
    kpss_statistic: float
    kpss_p_value: float
    kpss_stationary: bool

    @property
    def is_stationary(self) -> bool:
        return self.adf_stationary and self.kpss_stationary

    @property
    def conclusion(self) -> str:
        return "Series is stationary" if self.is_stationary else "Series may not be stationary"

    def to_dict(self) -> Dict:
        out = asdict(self)
        out["conclusion"] = self.conclusion
        return out


def check_stationarity(series: TimeSeries) -> StationarityResult:
    """
    Augmented Dickey-Fuller (constant + trend, fixed lag trunc((n-1)^(1/3)))
    and KPSS (level, short lag truncation trunc(4 * (n/100)^(1/4))).
    """
    from statsmodels.tsa.stattools import adfuller, kpss

    y = np.asarray(series.values, dtype=float)
    n = len(y)
    if n < 10:
        raise InvalidInput(f"Stationarity tests need >= 10 observations, got {n}", window=series.window)

    adf_lag = int(np.trunc((n - 1) ** (1 / 3)))
    adf_stat, adf_p, *_ = adfuller(y, maxlag=adf_lag, regression="ct", autolag=None)

    kpss_lag = max(1, int(np.trunc(4 * (n / 100) ** 0.25)))
    with warnings.catch_warnings():
        # p-values outside the lookup table are clipped to its bounds
        warnings.simplefilter("ignore")
        kpss_stat, kpss_p, *_ = kpss(y, regression="c", nlags=kpss_lag)

    result = StationarityResult(
        adf_statistic=float(adf_stat),
        adf_p_value=float(adf_p),
        adf_stationary=bool(adf_p < SIGNIFICANCE),
        kpss_statistic=float(kpss_stat),
        kpss_p_value=float(kpss_p),
        kpss_stationary=bool(kpss_p >= SIGNIFICANCE),
    )
    logger.info(f"Stationarity {series.name}: {result.conclusion} (ADF p={adf_p:.3f}, KPSS p={kpss_p:.3f})")
    return result


@dataclass(frozen=True)
class ResidualDiagnostics:
    """Ljung-Box test on one model's residuals"""
    model: str
    lag: int
    df: int
    statistic: float
    p_value: float
    residual_mean: float
    residual_sd: float

    @property
    def white_noise(self) -> bool:
        return bool(self.p_value > SIGNIFICANCE)

    def to_dict(self) -> Dict:
        out = asdict(self)
        out["white_noise"] = self.white_noise
        return out


def check_residuals(model: FittedModel, residuals: Optional[pd.Series] = None) -> ResidualDiagnostics:
    """
    Ljung-Box test with lag min(10, n/5) (min(2m, n/5) when seasonal),
    degrees of freedom reduced by the number of fitted parameters.
    """
    from statsmodels.stats.diagnostic import acorr_ljungbox

    resid = model.residuals() if residuals is None else residuals
    resid = resid[np.isfinite(resid.to_numpy(dtype=float))]
    n = len(resid)
    if n < 3:
        raise InvalidInput(
            f"Ljung-Box needs >= 3 residuals, got {n}",
            family=model.name,
            window=model.train.window,
        )

    period = int(model.params.get("period", 1) or 1)
    base = 2 * period if period > 1 else 10
    fitdf = model.n_params
    lag = max(fitdf + 3, min(base, n // 5))
    lag = min(lag, n - 1)

    table = acorr_ljungbox(resid.to_numpy(dtype=float), lags=[lag], model_df=min(fitdf, lag - 1), return_df=True)
    stat = float(table["lb_stat"].iloc[0])
    p_value = float(table["lb_pvalue"].iloc[0])

    diag = ResidualDiagnostics(
        model=model.name,
        lag=int(lag),
        df=int(lag - min(fitdf, lag - 1)),
        statistic=stat,
        p_value=p_value,
        residual_mean=float(resid.mean()),
        residual_sd=float(resid.std(ddof=1)),
    )
    logger.info(
        f"Ljung-Box {model.spec}: Q*={stat:.3f}, df={diag.df}, p={p_value:.3f} "
        f"({'white noise' if diag.white_noise else 'autocorrelated'})"
    )
    return diag


def stl_decomposition(series: TimeSeries, period: int) -> pd.DataFrame:
    """
    STL with a periodic seasonal window.

    Returns:
        DataFrame indexed like the series with [observed, trend, seasonal, remainder]
    """
    from statsmodels.tsa.seasonal import STL

    if period < 2 or len(series) < 2 * period:
        raise InvalidInput(
            f"STL needs period >= 2 and two full cycles (period={period}, n={len(series)})",
            window=series.window,
        )

    # A seasonal smoother spanning the whole series approximates s.window="periodic"
    seasonal_window = len(series) if len(series) % 2 else len(series) + 1
    fit = STL(series.to_pandas(), period=period, seasonal=max(7, seasonal_window)).fit()
    return pd.DataFrame({
        "observed": series.data,
        "trend": np.asarray(fit.trend),
        "seasonal": np.asarray(fit.seasonal),
        "remainder": np.asarray(fit.resid),
    }, index=series.index)
