"""
Engine settings.

Pydantic model holding the valuation date, the fixed 365.25-day curve year,
the NSS starting point and the optimizer budget. Every calibration and pricing
call receives the valuation date from here (or explicitly), never from a global.
"""
from __future__ import annotations

import math
from datetime import date
from typing import Optional, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator


# beta0, beta1, beta2, beta3, ln(tau1), ln(tau2): upward-sloping shape, tau1 ~ 1y, tau2 ~ 3y.
# Fixed starting point, not estimated from data; Nelder-Mead is a local search so
# results are reproducible only for the same guess.
DEFAULT_INITIAL_GUESS: Tuple[float, float, float, float, float, float] = (
    0.04,
    -0.02,
    0.02,
    0.01,
    math.log(1.0),
    math.log(3.0),
)


class EngineSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    valuation_date: date = Field(date(2025, 11, 19), description="Curve / valuation date")
    face_value: float = Field(100.0, gt=0.0)
    days_in_year: float = Field(365.25, gt=0.0, description="Year length for the curve time axis")
    date_floor: date = Field(date(1970, 1, 1), description="Lower bound for backward schedule walks")

    initial_guess: Tuple[float, float, float, float, float, float] = DEFAULT_INITIAL_GUESS
    initial_step: float = Field(0.05, gt=0.0, description="Relative simplex step for non-zero coordinates")
    zero_step: float = Field(0.1, gt=0.0, description="Absolute simplex step for zero coordinates")

    max_iter: int = Field(5000, gt=0)
    max_fev: int = Field(10000, gt=0)
    xatol: float = Field(1e-8, gt=0.0)
    fatol: float = Field(1e-10, gt=0.0)
    max_seconds: Optional[float] = Field(30.0, description="Wall-clock budget for one calibration")

    quote_is_dirty: bool = Field(
        True,
        description="Treat the end-of-day quote as the dirty price when calibrating",
    )

    @field_validator("max_seconds")
    @classmethod
    def _positive_budget(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("max_seconds must be positive or None")
        return v

    @field_validator("initial_guess")
    @classmethod
    def _finite_guess(cls, v):
        if not all(math.isfinite(x) for x in v):
            raise ValueError("initial_guess must be finite")
        return v

    @property
    def valuation_ts(self) -> pd.Timestamp:
        return pd.Timestamp(self.valuation_date)

    @property
    def floor_ts(self) -> pd.Timestamp:
        return pd.Timestamp(self.date_floor)


DEFAULT_SETTINGS = EngineSettings()
