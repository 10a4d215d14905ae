from __future__ import annotations

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .curves import NSSParameters, nss_discount_factor, nss_spot_rate
from .utils import (
    DATE_FLOOR,
    DAYS_IN_YEAR,
    add_months_eom,
    coupon_bracket,
    days_between,
    iso_date,
    months_per_period,
    year_fraction,
)

FACE_VALUE = 100.0


@dataclass(frozen=True)
class SecurityMaster:
    cusip: str
    security_type: str
    security_term: str
    issue_date: Optional[pd.Timestamp]
    maturity_date: pd.Timestamp
    interest_rate: Optional[float]  # percent, e.g. 4.25
    dated_date: Optional[pd.Timestamp] = None
    first_interest_payment_date: Optional[pd.Timestamp] = None
    interest_payment_frequency: Optional[str] = None


@dataclass(frozen=True)
class PriceQuote:
    cusip: str
    end_of_day: float  # per 100 face
    buy: Optional[float] = None
    sell: Optional[float] = None
    rate: Optional[float] = None
    maturity_date: Optional[pd.Timestamp] = None


@dataclass(frozen=True)
class Frequency:
    periods_per_year: int
    is_bill: bool


@dataclass(frozen=True)
class Cashflow:
    date: pd.Timestamp
    t_years: float
    amount: float  # per 100 face


# ---------- Frequency classification ----------

@dataclass(frozen=True)
class FrequencyRule:
    name: str
    matches: Callable[[str, str, float], bool]
    frequency: Frequency


BILL = Frequency(periods_per_year=0, is_bill=True)
SEMI_ANNUAL = Frequency(periods_per_year=2, is_bill=False)
QUARTERLY = Frequency(periods_per_year=4, is_bill=False)
ANNUAL = Frequency(periods_per_year=1, is_bill=False)

# Ordered: first match wins. Arguments are (type_lower, frequency_text_lower, rate).
FREQUENCY_RULES: Tuple[FrequencyRule, ...] = (
    FrequencyRule("bill", lambda t, f, r: "bill" in t or "none" in f or r == 0, BILL),
    FrequencyRule("semi", lambda t, f, r: "semi" in f, SEMI_ANNUAL),
    FrequencyRule("quarter", lambda t, f, r: "quarter" in f, QUARTERLY),
    FrequencyRule("annual", lambda t, f, r: "annual" in f or "year" in f, ANNUAL),
    FrequencyRule("note_or_bond", lambda t, f, r: "note" in t or "bond" in t, SEMI_ANNUAL),
)
FALLBACK_FREQUENCY = SEMI_ANNUAL


def classify_frequency(
    security_type: Optional[str],
    frequency_text: Optional[str],
    interest_rate: Optional[float],
    rules: Tuple[FrequencyRule, ...] = FREQUENCY_RULES,
) -> Frequency:
    """Case-insensitive substring classification; a missing rate counts as zero."""
    t = (security_type or "").lower()
    f = (frequency_text or "").lower()
    r = 0.0 if interest_rate is None else float(interest_rate)

    for rule in rules:
        if rule.matches(t, f, r):
            return rule.frequency
    return FALLBACK_FREQUENCY


def security_frequency(security: SecurityMaster) -> Frequency:
    return classify_frequency(
        security.security_type,
        security.interest_payment_frequency,
        security.interest_rate,
    )


# ---------- Cashflow schedule ----------

def coupon_dates(
    valuation_date: pd.Timestamp,
    maturity_date: pd.Timestamp,
    periods_per_year: int,
    dated_date: Optional[pd.Timestamp] = None,
    first_coupon: Optional[pd.Timestamp] = None,
    floor: pd.Timestamp = DATE_FLOOR,
) -> List[pd.Timestamp]:
    """
    Coupon dates strictly after valuation_date and strictly before maturity.

    Anchor priority: explicit first coupon, then dated date + one period, then
    maturity walked back in whole periods (stopping at the valuation date or the
    date floor). Every date is a whole number of periods away from its anchor.
    """
    valuation_date = pd.Timestamp(valuation_date).normalize()
    maturity_date = pd.Timestamp(maturity_date).normalize()
    months = months_per_period(periods_per_year)

    if first_coupon is None and dated_date is None:
        implied: List[pd.Timestamp] = []
        k = 1
        d = add_months_eom(maturity_date, -months)
        while d > valuation_date and d > floor:
            implied.append(d)
            k += 1
            d = add_months_eom(maturity_date, -k * months)
        return implied[::-1]

    if first_coupon is not None:
        anchor, k = pd.Timestamp(first_coupon).normalize(), 0
    else:
        anchor, k = pd.Timestamp(dated_date).normalize(), 1

    out: List[pd.Timestamp] = []
    d = add_months_eom(anchor, k * months)
    while d < maturity_date:
        if d > valuation_date:
            out.append(d)
        k += 1
        d = add_months_eom(anchor, k * months)
    return out


def build_cashflows(
    valuation_date: pd.Timestamp,
    maturity_date: pd.Timestamp,
    interest_rate_percent: float,
    periods_per_year: int,
    dated_date: Optional[pd.Timestamp] = None,
    first_coupon: Optional[pd.Timestamp] = None,
    days_in_year: float = DAYS_IN_YEAR,
    face: float = FACE_VALUE,
    floor: pd.Timestamp = DATE_FLOOR,
) -> List[Cashflow]:
    """
    Future coupon + principal cashflows strictly after valuation_date, ending at maturity.

    Returns an empty list when maturity is on/before the valuation date.
    """
    valuation_date = pd.Timestamp(valuation_date).normalize()
    maturity_date = pd.Timestamp(maturity_date).normalize()

    dates = coupon_dates(valuation_date, maturity_date, periods_per_year, dated_date, first_coupon, floor)
    if maturity_date <= valuation_date:
        return []

    coupon = face * (float(interest_rate_percent) / 100.0) / periods_per_year

    out = [Cashflow(d, year_fraction(valuation_date, d, days_in_year), coupon) for d in dates]

    out.append(Cashflow(maturity_date, year_fraction(valuation_date, maturity_date, days_in_year), coupon + face))
    return out


def security_cashflows(
    security: SecurityMaster,
    valuation_date: pd.Timestamp,
    days_in_year: float = DAYS_IN_YEAR,
    face: float = FACE_VALUE,
    floor: pd.Timestamp = DATE_FLOOR,
) -> List[Cashflow]:
    """
    Cashflows for any security; bills are a single face-value payment at maturity.
    """
    freq = security_frequency(security)
    valuation_date = pd.Timestamp(valuation_date).normalize()
    maturity = pd.Timestamp(security.maturity_date).normalize()

    if freq.is_bill:
        return [Cashflow(maturity, year_fraction(valuation_date, maturity, days_in_year), face)]

    return build_cashflows(
        valuation_date,
        maturity,
        float(security.interest_rate),
        freq.periods_per_year,
        dated_date=security.dated_date,
        first_coupon=security.first_interest_payment_date,
        days_in_year=days_in_year,
        face=face,
        floor=floor,
    )


# ---------- Accrual / clean-dirty ----------

@dataclass(frozen=True)
class BondAnalytics:
    cusip: str
    settlement_date: pd.Timestamp
    clean_price: float
    accrued_interest: float
    dirty_price: float
    f: float
    is_bill: bool
    coupon_per_period: float = 0.0
    last_coupon_date: Optional[pd.Timestamp] = None
    next_coupon_date: Optional[pd.Timestamp] = None
    days_in_period: float = 0.0
    days_into_period: float = 0.0

    @property
    def convention(self) -> str:
        if self.is_bill:
            return "Actual/Actual"
        return "Actual/Actual with end-of-month adjustment"

    def day_count_details(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {
            "convention": self.convention,
            "is_bill": self.is_bill,
            "days_in_period": self.days_in_period,
            "days_into_period": self.days_into_period,
        }
        if not self.is_bill:
            details["last_coupon_date"] = iso_date(self.last_coupon_date)
            details["next_coupon_date"] = iso_date(self.next_coupon_date)
        return details


def bond_analytics(
    security: SecurityMaster,
    clean_price: float,
    settlement_date: pd.Timestamp,
    face: float = FACE_VALUE,
    floor: pd.Timestamp = DATE_FLOOR,
) -> BondAnalytics:
    """
    Accrued interest, dirty price and day-count fraction f at settlement.

    Bills: no accrual, dirty == clean, f == 0.
    """
    settle = pd.Timestamp(settlement_date).normalize()
    clean = float(clean_price)
    freq = security_frequency(security)

    if freq.is_bill:
        return BondAnalytics(
            cusip=security.cusip,
            settlement_date=settle,
            clean_price=clean,
            accrued_interest=0.0,
            dirty_price=clean,
            f=0.0,
            is_bill=True,
        )

    coupon_per_period = face * (float(security.interest_rate) / 100.0) / freq.periods_per_year
    last, nxt = coupon_bracket(settle, security.maturity_date, freq.periods_per_year, floor)

    days_in_period = days_between(last, nxt)
    days_into_period = days_between(last, settle)
    f = 0.0 if days_in_period == 0 else days_into_period / days_in_period

    accrued = coupon_per_period * f
    return BondAnalytics(
        cusip=security.cusip,
        settlement_date=settle,
        clean_price=clean,
        accrued_interest=accrued,
        dirty_price=clean + accrued,
        f=f,
        is_bill=False,
        coupon_per_period=coupon_per_period,
        last_coupon_date=last,
        next_coupon_date=nxt,
        days_in_period=days_in_period,
        days_into_period=days_into_period,
    )


# ---------- NSS theoretical pricing ----------

def theoretical_price(cashflows: List[Cashflow], params: NSSParameters) -> float:
    """Sum of cashflows discounted at the NSS spot rate (continuous compounding)."""
    if not cashflows:
        return 0.0
    t = np.array([cf.t_years for cf in cashflows], dtype=float)
    amounts = np.array([cf.amount for cf in cashflows], dtype=float)
    return float(np.sum(amounts * nss_discount_factor(t, params)))


def cashflow_table(cashflows: List[Cashflow], params: NSSParameters) -> pd.DataFrame:
    t = np.array([cf.t_years for cf in cashflows], dtype=float)
    amounts = np.array([cf.amount for cf in cashflows], dtype=float)
    spot = np.asarray(nss_spot_rate(t, params), dtype=float)
    dfs = np.exp(-spot * t)

    return pd.DataFrame(
        {
            "date": [cf.date for cf in cashflows],
            "t_years": t,
            "amount": amounts,
            "spot_rate": spot,
            "discount_factor": dfs,
            "present_value": amounts * dfs,
        }
    )


class NSSBondPricer:
    def __init__(self, params: NSSParameters, val_date: pd.Timestamp, days_in_year: float = DAYS_IN_YEAR):
        self.params = params
        self.val_date = pd.Timestamp(val_date).normalize()
        self.days_in_year = days_in_year

    def cashflows(self, security: SecurityMaster) -> List[Cashflow]:
        return security_cashflows(security, self.val_date, self.days_in_year)

    def price(self, security: SecurityMaster) -> Tuple[float, pd.DataFrame]:
        """(theoretical_price, per-cashflow table) for one security."""
        cfs = self.cashflows(security)
        table = cashflow_table(cfs, self.params)
        return float(table["present_value"].sum()), table
