# file: src/equity_forecast/exceptions.py
"""
Error taxonomy for the forecast evaluation pipeline.

Every error carries the model family (when one is involved) and the series
window it was raised for, so a failure in the logs can be traced back to the
exact slice of data that produced it.
"""

from __future__ import annotations

from typing import Optional, Tuple

Window = Tuple[object, object]


class ForecastPipelineError(Exception):
    """Base class for pipeline errors"""

    def __init__(
        self,
        message: str,
        family: Optional[str] = None,
        window: Optional[Window] = None,
    ):
        self.message = message
        self.family = family
        self.window = window
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [self.message]
        if self.family:
            parts.append(f"family={self.family}")
        if self.window is not None:
            start, end = self.window
            parts.append(f"window=[{start}, {end}]")
        return " | ".join(parts)


class InvalidInput(ForecastPipelineError, ValueError):
    """Caller contract violation (bad ratio, length mismatch, horizon < 1)"""


class FitError(ForecastPipelineError):
    """Model family could not be fitted (too short, degenerate, no convergence)"""


class DataUnavailable(ForecastPipelineError):
    """Market-data source returned nothing or failed"""


class SkipStep(ForecastPipelineError):
    """Non-fatal: one cross-validation origin could not be evaluated"""

    def __init__(
        self,
        message: str,
        origin: int,
        family: Optional[str] = None,
        window: Optional[Window] = None,
    ):
        self.origin = origin
        super().__init__(message, family=family, window=window)
