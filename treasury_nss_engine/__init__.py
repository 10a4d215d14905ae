"""
Treasury NSS Engine

Modules:
- utils: day counts, end-of-month month stepping, business days, coupon brackets
- bonds: security/price records, frequency rules, cashflow schedules, accrual + NSS pricing
- curves: Nelson-Siegel-Svensson spot curve
- optimizer: Nelder-Mead minimisation with iteration/time budget
- calibration: bond universe + NSS loss + curve fit
- portfolio: universe repricing on a fitted curve
- data_loader: price / security-master tables
- service: per-request entry points returning plain records
- config: engine settings
"""
from .config import DEFAULT_SETTINGS, EngineSettings
from .data_loader import TreasuryDataStore
from .service import TreasuryAnalytics

__all__ = ["DEFAULT_SETTINGS", "EngineSettings", "TreasuryAnalytics", "TreasuryDataStore"]
