from __future__ import annotations

import pandas as pd
from typing import Optional, Tuple

DAYS_IN_YEAR = 365.25
DATE_FLOOR = pd.Timestamp("1970-01-01")


def days_between(a: pd.Timestamp, b: pd.Timestamp) -> float:
    """Signed calendar-day difference b - a."""
    delta = pd.Timestamp(b).normalize() - pd.Timestamp(a).normalize()
    return float(delta.days)


def year_fraction(start: pd.Timestamp, end: pd.Timestamp, days_in_year: float = DAYS_IN_YEAR) -> float:
    """
    Year fraction on the curve time axis: day difference over a fixed 365.25-day year.

    Not Actual/365 or Actual/360; the coupon schedule and the NSS curve share this axis.
    """
    return days_between(start, end) / days_in_year


def is_end_of_month(d: pd.Timestamp) -> bool:
    return bool(pd.Timestamp(d).is_month_end)


def add_months_eom(d: pd.Timestamp, months: int) -> pd.Timestamp:
    """
    Add whole months (may be negative). Day is clipped to the target month length;
    a source date on the last day of its month lands on the last day of the target month.
    """
    d = pd.Timestamp(d).normalize()
    out = d + pd.DateOffset(months=int(months))
    if is_end_of_month(d):
        out = out + pd.offsets.MonthEnd(0)
    return out


def next_business_day(d: pd.Timestamp) -> pd.Timestamp:
    """
    Next weekday strictly after d.

    Weekends only: no holiday calendar is consulted.
    """
    out = pd.Timestamp(d).normalize() + pd.Timedelta(days=1)
    while out.weekday() >= 5:
        out = out + pd.Timedelta(days=1)
    return out


def months_per_period(periods_per_year: int) -> int:
    if periods_per_year not in (1, 2, 4):
        raise ValueError(f"Supported coupon frequencies: 1, 2, 4 (got {periods_per_year}).")
    return 12 // periods_per_year


def coupon_bracket(
    settle: pd.Timestamp,
    maturity: pd.Timestamp,
    periods_per_year: int,
    floor: pd.Timestamp = DATE_FLOOR,
) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """
    (last_coupon, next_coupon) around settlement, schedule anchored at maturity.

    Walks back from maturity in whole periods until the next step back would land
    on/before settlement (or the date floor). Each date is maturity minus k periods,
    so a clipped month-end (Aug 30 -> Feb 28) does not drift to Aug 31.
    """
    settle = pd.Timestamp(settle).normalize()
    maturity = pd.Timestamp(maturity).normalize()
    months = months_per_period(periods_per_year)

    k = 1
    previous = add_months_eom(maturity, -months)
    while previous > settle and previous > floor:
        k += 1
        previous = add_months_eom(maturity, -k * months)

    last_k = k if previous <= settle else k - 1
    last = add_months_eom(maturity, -last_k * months)
    return last, add_months_eom(maturity, -(last_k - 1) * months)


def iso_date(d: Optional[pd.Timestamp]) -> Optional[str]:
    return None if d is None else pd.Timestamp(d).strftime("%Y-%m-%d")
