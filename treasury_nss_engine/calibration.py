from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .bonds import (
    Cashflow,
    PriceQuote,
    SecurityMaster,
    bond_analytics,
    build_cashflows,
    security_frequency,
)
from .config import DEFAULT_SETTINGS, EngineSettings
from .curves import NSSParameters, nss_spot_rate_raw
from .errors import EmptyUniverseError
from .optimizer import minimize_simplex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponBond:
    cusip: str
    dirty_price: float
    cashflows: Tuple[Cashflow, ...]


@dataclass
class BondUniverse:
    valuation_date: pd.Timestamp
    bonds: List[CouponBond] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.bonds)


def market_dirty_price(
    security: SecurityMaster,
    quote: PriceQuote,
    valuation_date: pd.Timestamp,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> float:
    """Dirty price paired with a security for calibration."""
    if settings.quote_is_dirty:
        return float(quote.end_of_day)
    return bond_analytics(security, quote.end_of_day, valuation_date, settings.face_value, settings.floor_ts).dirty_price


def build_bond_universe(
    records: Iterable[Tuple[SecurityMaster, PriceQuote]],
    valuation_date: Optional[pd.Timestamp] = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> BondUniverse:
    """
    Coupon-bearing bonds with a non-empty future schedule as of valuation_date.

    Bills, zero/missing coupons and matured names are left out. A record whose
    schedule cannot be built is skipped and reported rather than failing the batch.
    """
    val_date = settings.valuation_ts if valuation_date is None else pd.Timestamp(valuation_date).normalize()
    universe = BondUniverse(valuation_date=val_date)

    for security, quote in records:
        try:
            if security.interest_rate is None or not security.interest_rate > 0:
                continue
            freq = security_frequency(security)
            if freq.is_bill or freq.periods_per_year == 0:
                continue

            cfs = build_cashflows(
                val_date,
                security.maturity_date,
                float(security.interest_rate),
                freq.periods_per_year,
                dated_date=security.dated_date,
                first_coupon=security.first_interest_payment_date,
                days_in_year=settings.days_in_year,
                face=settings.face_value,
                floor=settings.floor_ts,
            )
            if not cfs:
                continue

            dirty = market_dirty_price(security, quote, val_date, settings)
            if not np.isfinite(dirty):
                raise ValueError(f"non-finite price {dirty!r}")
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping {security.cusip} from curve universe: {e}")
            universe.skipped.append({"cusip": security.cusip, "reason": str(e)})
            continue

        universe.bonds.append(CouponBond(security.cusip, dirty, tuple(cfs)))

    return universe


class NSSLoss:
    """
    Sum of squared dirty-price errors over a bond universe.

    Takes the unconstrained vector (b0, b1, b2, b3, ln tau1, ln tau2); exponentiating
    the last two keeps both decay times strictly positive.
    """

    def __init__(self, bonds: List[CouponBond]):
        if not bonds:
            raise ValueError("NSSLoss needs at least one bond.")
        self.n_bonds = len(bonds)
        self.t = np.array([cf.t_years for b in bonds for cf in b.cashflows], dtype=float)
        self.amounts = np.array([cf.amount for b in bonds for cf in b.cashflows], dtype=float)
        self.bond_idx = np.array([i for i, b in enumerate(bonds) for _ in b.cashflows], dtype=np.int64)
        self.dirty = np.array([b.dirty_price for b in bonds], dtype=float)

    def model_prices(self, theta: np.ndarray) -> np.ndarray:
        b0, b1, b2, b3, ln_tau1, ln_tau2 = np.asarray(theta, dtype=float)
        with np.errstate(over="ignore"):
            tau1, tau2 = np.exp(ln_tau1), np.exp(ln_tau2)
            r = nss_spot_rate_raw(self.t, b0, b1, b2, b3, tau1, tau2)
            pv = self.amounts * np.exp(-r * self.t)
        return np.bincount(self.bond_idx, weights=pv, minlength=self.n_bonds)

    def __call__(self, theta: np.ndarray) -> float:
        err = self.dirty - self.model_prices(theta)
        sse = float(np.dot(err, err))
        return sse if np.isfinite(sse) else np.inf


@dataclass(frozen=True)
class CalibrationResult:
    valuation_date: pd.Timestamp
    parameters: NSSParameters
    sse: float
    bonds_used: int
    iterations: int
    function_evaluations: int
    converged: bool
    message: str
    skipped: Tuple[Dict[str, str], ...] = ()

    def to_record(self) -> Dict[str, Any]:
        return {
            "curve_date": self.valuation_date.strftime("%Y-%m-%d"),
            "parameters": self.parameters.to_dict(),
            "sse": self.sse,
            "iterations": self.iterations,
            "function_evaluations": self.function_evaluations,
            "converged": self.converged,
            "message": self.message,
            "bonds_used": self.bonds_used,
            "skipped": list(self.skipped),
        }


def calibrate_nss(
    universe: BondUniverse,
    settings: EngineSettings = DEFAULT_SETTINGS,
    should_stop: Optional[Callable[[], bool]] = None,
) -> CalibrationResult:
    """
    Fit NSS parameters to the universe by Nelder-Mead from the configured starting point.

    Raises EmptyUniverseError when no bond qualifies.
    """
    if len(universe) == 0:
        raise EmptyUniverseError("No bonds with usable coupon schedules were found for NSS fit.")

    loss = NSSLoss(universe.bonds)
    theta0 = np.array(settings.initial_guess, dtype=float)

    opt = minimize_simplex(
        loss,
        theta0,
        max_iter=settings.max_iter,
        max_fev=settings.max_fev,
        xatol=settings.xatol,
        fatol=settings.fatol,
        max_seconds=settings.max_seconds,
        should_stop=should_stop,
        rel_step=settings.initial_step,
        zero_step=settings.zero_step,
    )

    params = NSSParameters.from_theta(opt.x)
    logger.info(
        f"NSS fit on {len(universe)} bonds as of {universe.valuation_date.date()}: "
        f"sse={opt.fun:.6g}, iterations={opt.iterations}, {opt.message}"
    )

    return CalibrationResult(
        valuation_date=universe.valuation_date,
        parameters=params,
        sse=opt.fun,
        bonds_used=len(universe),
        iterations=opt.iterations,
        function_evaluations=opt.function_evaluations,
        converged=opt.converged,
        message=opt.message,
        skipped=tuple(universe.skipped),
    )
