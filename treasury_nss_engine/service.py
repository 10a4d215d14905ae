"""
Per-request entry points.

Every public method returns a plain dict record. Expected failures (unknown CUSIP,
empty calibration universe) come back as ``{"error": ..., "error_kind": ...}``;
anything unexpected is logged and returned as a generic internal-error record.
"""
from __future__ import annotations

import functools
import logging
import pandas as pd
from typing import Any, Callable, Dict, Optional, Tuple

from .bonds import NSSBondPricer, PriceQuote, SecurityMaster, bond_analytics, security_frequency
from .calibration import BondUniverse, CalibrationResult, build_bond_universe, calibrate_nss, market_dirty_price
from .config import DEFAULT_SETTINGS, EngineSettings
from .curves import NSSParameters, curve_report
from .data_loader import TreasuryDataStore
from .errors import INTERNAL_ERROR_MESSAGE, AnalyticsError, ErrorKind, NotFoundError, error_record
from .portfolio import portfolio_summary, price_universe_nss
from .utils import iso_date, next_business_day

logger = logging.getLogger(__name__)


def tagged_errors(method: Callable[..., Dict[str, Any]]) -> Callable[..., Dict[str, Any]]:
    @functools.wraps(method)
    def wrapper(*args, **kwargs) -> Dict[str, Any]:
        try:
            return method(*args, **kwargs)
        except AnalyticsError as e:
            logger.info(f"{method.__name__}: {e.kind.value}: {e}")
            return e.to_record()
        except Exception:
            logger.exception(f"Error in {method.__name__}")
            return error_record(ErrorKind.INTERNAL, INTERNAL_ERROR_MESSAGE)

    return wrapper


class TreasuryAnalytics:
    def __init__(self, store: TreasuryDataStore, settings: EngineSettings = DEFAULT_SETTINGS):
        self.store = store
        self.settings = settings

    @property
    def curve_date(self) -> pd.Timestamp:
        return self.settings.valuation_ts

    def _lookup(self, cusip: str) -> Tuple[SecurityMaster, PriceQuote]:
        quote = self.store.price_quote(cusip)
        if quote is None:
            raise NotFoundError(f"No price record found for CUSIP {cusip}.")
        security = self.store.security(cusip)
        if security is None:
            raise NotFoundError(f"No security record found for CUSIP {cusip}.")
        return security, quote

    def _calibrate(self, should_stop: Optional[Callable[[], bool]] = None) -> Tuple[CalibrationResult, BondUniverse]:
        records, skipped = self.store.coupon_bearing_records()
        universe = build_bond_universe(records, self.curve_date, self.settings)
        universe.skipped = skipped + universe.skipped
        return calibrate_nss(universe, self.settings, should_stop), universe

    @tagged_errors
    def calculate_analytics(
        self,
        cusip: str,
        settlement_date: Optional[pd.Timestamp] = None,
        today: Optional[pd.Timestamp] = None,
    ) -> Dict[str, Any]:
        """
        Clean price, accrued interest, dirty price and f for one CUSIP.

        Settlement defaults to the next business day after ``today`` (default: now).
        """
        logger.info(f"Running calculate_analytics for CUSIP {cusip}")
        security, quote = self._lookup(cusip)

        if settlement_date is None:
            settlement_date = next_business_day(pd.Timestamp.now() if today is None else today)

        a = bond_analytics(security, quote.end_of_day, settlement_date, self.settings.face_value, self.settings.floor_ts)

        record: Dict[str, Any] = {
            "cusip": security.cusip,
            "security_type": security.security_type,
            "security_term": security.security_term,
            "settlement_date": iso_date(a.settlement_date),
            "issue_date": iso_date(security.issue_date),
            "maturity_date": iso_date(security.maturity_date),
            "coupon_rate_annual_percent": security.interest_rate,
            "clean_price": a.clean_price,
            "accrued_interest": a.accrued_interest,
            "dirty_price": a.dirty_price,
            "f": a.f,
            "day_count": a.day_count_details(),
        }
        if not a.is_bill:
            record["coupon_per_period"] = a.coupon_per_period
        return record

    @tagged_errors
    def fit_curve(self, should_stop: Optional[Callable[[], bool]] = None) -> Dict[str, Any]:
        logger.info("Running fit_curve over all coupon-bearing securities")
        result, _ = self._calibrate(should_stop)
        return result.to_record()

    @tagged_errors
    def analyze_portfolio(self) -> Dict[str, Any]:
        """Fit the curve, then reprice every bond of the calibration universe on it."""
        logger.info("Running analyze_portfolio (fit NSS + compare prices)")
        result, universe = self._calibrate()

        priced = price_universe_nss(universe, result.parameters)
        summary = portfolio_summary(priced)
        summary.update(
            {
                "bonds_used": result.bonds_used,
                "calibration_sse": result.sse,
                "iterations": result.iterations,
            }
        )

        return {
            "curve_date": iso_date(result.valuation_date),
            "curve_parameters": result.parameters.to_dict(),
            "curve": curve_report(result.parameters).to_dict("records"),
            "per_security": priced.to_dict("records"),
            "summary": summary,
            "skipped": list(result.skipped),
        }

    @tagged_errors
    def analyze_security(self, cusip: str, params: Optional[NSSParameters] = None) -> Dict[str, Any]:
        """
        Theoretical NSS price vs market dirty price for one CUSIP.

        Calibrates unless ``params`` is given. Bills are priced as a single
        face-value cashflow at maturity.
        """
        logger.info(f"Running analyze_security for CUSIP {cusip}")
        security, quote = self._lookup(cusip)

        fit_sse = None
        if params is None:
            result, _ = self._calibrate()
            params, fit_sse = result.parameters, result.sse

        is_bill = security_frequency(security).is_bill
        if is_bill:
            dirty = float(quote.end_of_day)
        else:
            dirty = market_dirty_price(security, quote, self.curve_date, self.settings)

        pricer = NSSBondPricer(params, self.curve_date, self.settings.days_in_year)
        theoretical, table = pricer.price(security)

        table["date"] = table["date"].map(iso_date)
        return {
            "cusip": security.cusip,
            "security_type": security.security_type,
            "security_term": security.security_term,
            "is_bill": is_bill,
            "curve_date": iso_date(self.curve_date),
            "nss_parameters": params.to_dict(),
            "nss_fit_sse": fit_sse,
            "dirty_price": dirty,
            "theoretical_price": theoretical,
            "pricing_error": theoretical - dirty,
            "cashflows": table.to_dict("records"),
        }
