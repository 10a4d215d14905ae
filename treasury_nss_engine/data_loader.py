"""
Read-only access to Treasury price rows and security-master rows.

Both tables are held as pandas DataFrames using the column names of the
upstream store; rows are converted to SecurityMaster / PriceQuote on lookup.
"""
from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Tuple

from .bonds import PriceQuote, SecurityMaster

logger = logging.getLogger(__name__)

PRICE_COLUMNS = ["CUSIP", "END OF DAY", "BUY", "SELL", "RATE", "MATURITY DATE"]
SECURITY_COLUMNS = [
    "CUSIP",
    "IssueDate",
    "SecurityType",
    "SecurityTerm",
    "MaturityDate",
    "InterestRate",
    "DatedDate",
    "FirstInterestPaymentDate",
    "InterestPaymentFrequency",
]
OPTIONAL_PRICE_COLUMNS = {"BUY", "SELL", "RATE", "MATURITY DATE"}
OPTIONAL_SECURITY_COLUMNS = {"IssueDate", "SecurityTerm", "DatedDate", "FirstInterestPaymentDate", "InterestPaymentFrequency"}


def _missing(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return v.strip() == ""
    try:
        return bool(pd.isna(v))
    except (TypeError, ValueError):
        return False


def _to_ts(v: Any) -> Optional[pd.Timestamp]:
    if _missing(v):
        return None
    ts = pd.Timestamp(v)
    if ts is pd.NaT:
        raise ValueError(f"unparseable date {v!r}")
    return ts.normalize()


def _to_float(v: Any) -> Optional[float]:
    if _missing(v):
        return None
    return float(v)


def _to_str(v: Any) -> Optional[str]:
    if _missing(v):
        return None
    return str(v)


def _with_columns(df: pd.DataFrame, required: List[str], optional: set, table: str) -> pd.DataFrame:
    missing = [c for c in required if c not in df.columns and c not in optional]
    if missing:
        raise ValueError(f"{table} table is missing columns: {missing}")
    out = df.copy()
    for c in required:
        if c not in out.columns:
            out[c] = np.nan
    out["CUSIP"] = out["CUSIP"].astype(str).str.strip()
    return out


def security_from_row(row: Dict[str, Any]) -> SecurityMaster:
    maturity = _to_ts(row.get("MaturityDate"))
    if maturity is None:
        raise ValueError(f"{row.get('CUSIP')}: missing maturity date")

    return SecurityMaster(
        cusip=str(row["CUSIP"]),
        security_type=_to_str(row.get("SecurityType")) or "",
        security_term=_to_str(row.get("SecurityTerm")) or "",
        issue_date=_to_ts(row.get("IssueDate")),
        maturity_date=maturity,
        interest_rate=_to_float(row.get("InterestRate")),
        dated_date=_to_ts(row.get("DatedDate")),
        first_interest_payment_date=_to_ts(row.get("FirstInterestPaymentDate")),
        interest_payment_frequency=_to_str(row.get("InterestPaymentFrequency")),
    )


def quote_from_row(row: Dict[str, Any]) -> PriceQuote:
    price = _to_float(row.get("END OF DAY"))
    if price is None:
        raise ValueError(f"{row.get('CUSIP')}: missing end-of-day price")

    return PriceQuote(
        cusip=str(row["CUSIP"]),
        end_of_day=price,
        buy=_to_float(row.get("BUY")),
        sell=_to_float(row.get("SELL")),
        rate=_to_float(row.get("RATE")),
        maturity_date=_to_ts(row.get("MATURITY DATE")),
    )


class TreasuryDataStore:
    def __init__(self, prices: pd.DataFrame, securities: pd.DataFrame):
        self.prices = _with_columns(prices, PRICE_COLUMNS, OPTIONAL_PRICE_COLUMNS, "price")
        self.securities = _with_columns(securities, SECURITY_COLUMNS, OPTIONAL_SECURITY_COLUMNS, "security")

    @classmethod
    def from_csv(cls, prices_path: str, securities_path: str) -> "TreasuryDataStore":
        prices = pd.read_csv(prices_path, dtype={"CUSIP": str})
        securities = pd.read_csv(securities_path, dtype={"CUSIP": str})
        logger.info(f"Loaded {len(prices)} price rows from {prices_path} and {len(securities)} security rows from {securities_path}")
        return cls(prices, securities)

    def _first_row(self, df: pd.DataFrame, cusip: str) -> Optional[Dict[str, Any]]:
        hit = df[df["CUSIP"] == str(cusip).strip()]
        if hit.empty:
            return None
        return hit.iloc[0].to_dict()

    def price_quote(self, cusip: str) -> Optional[PriceQuote]:
        row = self._first_row(self.prices, cusip)
        return None if row is None else quote_from_row(row)

    def security(self, cusip: str) -> Optional[SecurityMaster]:
        row = self._first_row(self.securities, cusip)
        return None if row is None else security_from_row(row)

    def coupon_bearing_records(self) -> Tuple[List[Tuple[SecurityMaster, PriceQuote]], List[Dict[str, str]]]:
        """
        Price rows joined to security rows with a non-null, positive interest rate.

        Returns (records, skipped); rows that fail to convert are reported, not raised.
        """
        sec = self.securities.drop_duplicates("CUSIP", keep="first")
        rate = pd.to_numeric(sec["InterestRate"], errors="coerce")
        sec = sec[rate.notna() & (rate > 0)]

        px = self.prices.drop_duplicates("CUSIP", keep="first")
        joined = px.merge(sec, on="CUSIP", how="inner", suffixes=("", "_sec"))

        records: List[Tuple[SecurityMaster, PriceQuote]] = []
        skipped: List[Dict[str, str]] = []
        for row in joined.to_dict("records"):
            try:
                records.append((security_from_row(row), quote_from_row(row)))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed record {row.get('CUSIP')}: {e}")
                skipped.append({"cusip": str(row.get("CUSIP")), "reason": str(e)})

        return records, skipped
