from __future__ import annotations

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Dict, Sequence, Union

ArrayLike = Union[float, Sequence[float], np.ndarray]

DEFAULT_REPORT_TENORS = (0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 7.0, 10.0, 20.0, 30.0)


@dataclass(frozen=True)
class NSSParameters:
    """
    Nelson-Siegel-Svensson parameters.

    r(t) = b0 + b1*L(t/tau1) + b2*(L(t/tau1) - e^(-t/tau1)) + b3*(L(t/tau2) - e^(-t/tau2)),
    L(x) = (1 - e^(-x)) / x. tau1 and tau2 are decay times in years and must be > 0.
    """
    beta0: float
    beta1: float
    beta2: float
    beta3: float
    tau1: float
    tau2: float

    def __post_init__(self):
        if not (self.tau1 > 0.0 and self.tau2 > 0.0):
            raise ValueError(f"NSS decay times must be positive: tau1={self.tau1}, tau2={self.tau2}")

    @classmethod
    def from_theta(cls, theta: Sequence[float]) -> "NSSParameters":
        """Map the unconstrained vector (b0, b1, b2, b3, ln tau1, ln tau2) to parameters."""
        b0, b1, b2, b3, ln_tau1, ln_tau2 = (float(x) for x in theta)
        return cls(b0, b1, b2, b3, float(np.exp(ln_tau1)), float(np.exp(ln_tau2)))

    def as_array(self) -> np.ndarray:
        return np.array([self.beta0, self.beta1, self.beta2, self.beta3, self.tau1, self.tau2], dtype=float)

    def to_dict(self) -> Dict[str, float]:
        return {
            "beta0": self.beta0,
            "beta1": self.beta1,
            "beta2": self.beta2,
            "beta3": self.beta3,
            "tau1": self.tau1,
            "tau2": self.tau2,
        }


def nss_spot_rate_raw(t: np.ndarray, b0: float, b1: float, b2: float, b3: float, tau1: float, tau2: float) -> np.ndarray:
    """
    Vectorised NSS spot rate without parameter validation (loss-function hot path).

    t <= 0 returns b0, the limit of the functional form at the valuation date.
    """
    t = np.asarray(t, dtype=float)
    pos = t > 0.0
    ts = np.where(pos, t, 1.0)

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        x1 = ts / tau1
        x2 = ts / tau2
        e1 = np.exp(-x1)
        e2 = np.exp(-x2)
        l1 = (1.0 - e1) / x1
        l2 = (1.0 - e2) / x2
        rate = b0 + b1 * l1 + b2 * (l1 - e1) + b3 * (l2 - e2)

    return np.where(pos, rate, b0)


def nss_spot_rate(t: ArrayLike, params: NSSParameters) -> Union[float, np.ndarray]:
    """Annualised continuously-compounded spot rate at t years."""
    out = nss_spot_rate_raw(np.asarray(t, dtype=float), *params.as_array())
    if np.ndim(t) == 0:
        return float(out)
    return out


def nss_discount_factor(t: ArrayLike, params: NSSParameters) -> Union[float, np.ndarray]:
    """Continuous-compounding discount factor exp(-r(t) * t)."""
    t_arr = np.asarray(t, dtype=float)
    r = nss_spot_rate_raw(t_arr, *params.as_array())
    out = np.exp(-r * t_arr)
    if np.ndim(t) == 0:
        return float(out)
    return out


def curve_report(params: NSSParameters, tenors: Sequence[float] = DEFAULT_REPORT_TENORS) -> pd.DataFrame:
    """Spot rate and discount factor at standard tenors, with basic sanity flags."""
    taus = np.asarray(tenors, dtype=float)
    zeros = np.asarray(nss_spot_rate(taus, params), dtype=float)
    dfs = np.exp(-zeros * taus)

    return pd.DataFrame(
        {
            "tenor": taus,
            "spot_cc": zeros,
            "df": dfs,
            "df_positive": dfs > 0,
            "df_monotone": np.r_[True, np.diff(dfs) <= 1e-10],
        }
    )
