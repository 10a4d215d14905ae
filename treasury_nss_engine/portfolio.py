from __future__ import annotations

import numpy as np
import pandas as pd
from typing import Any, Dict

from .calibration import BondUniverse
from .curves import NSSParameters, nss_spot_rate


def build_cashflow_table(universe: BondUniverse) -> pd.DataFrame:
    rows = []
    for bond in universe.bonds:
        for cf in bond.cashflows:
            rows.append((bond.cusip, bond.dirty_price, pd.Timestamp(cf.date), cf.t_years, cf.amount))

    return pd.DataFrame(
        rows,
        columns=["cusip", "dirty_price", "pay_date", "t_years", "cashflow"],
    )


def price_universe_nss(universe: BondUniverse, params: NSSParameters) -> pd.DataFrame:
    """
    Reprice every bond of the universe on the NSS curve.

    One row per bond: dirty_price, nss_price, error (dirty - nss), error_squared.
    """
    cf = build_cashflow_table(universe)
    if cf.empty:
        raise ValueError("Cashflow table is empty. Check the universe or valuation/maturity logic.")

    t = cf["t_years"].to_numpy(dtype=float)
    cf["spot_rate"] = np.asarray(nss_spot_rate(t, params), dtype=float)
    cf["df"] = np.exp(-cf["spot_rate"] * cf["t_years"])
    cf["pv_cf"] = cf["cashflow"] * cf["df"]

    out = (
        cf.groupby("cusip", as_index=False, sort=False)
        .agg(dirty_price=("dirty_price", "first"), nss_price=("pv_cf", "sum"), n_cashflows=("pv_cf", "size"))
    )
    out["error"] = out["dirty_price"] - out["nss_price"]
    out["error_squared"] = out["error"] ** 2
    return out


def portfolio_summary(priced: pd.DataFrame) -> Dict[str, Any]:
    n = len(priced)
    sse = float(priced["error_squared"].sum())
    rmse = float(np.sqrt(sse / max(n, 1)))
    return {"bonds_analyzed": n, "sse": sse, "rmse": rmse}
