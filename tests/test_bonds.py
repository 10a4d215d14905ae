import numpy as np
import pandas as pd
import pytest

from treasury_nss_engine.bonds import (
    NSSBondPricer,
    SecurityMaster,
    bond_analytics,
    build_cashflows,
    cashflow_table,
    classify_frequency,
    security_cashflows,
    theoretical_price,
)
from treasury_nss_engine.curves import NSSParameters


@pytest.fixture(scope="module")
def val_date():
    return pd.Timestamp("2025-11-19")


@pytest.fixture(scope="module")
def note():
    return SecurityMaster(
        cusip="91282CJT9",
        security_type="Note",
        security_term="10-Year",
        issue_date=pd.Timestamp("2024-01-15"),
        maturity_date=pd.Timestamp("2034-01-15"),
        interest_rate=4.0,
        dated_date=pd.Timestamp("2024-01-15"),
        interest_payment_frequency="Semi-Annual",
    )


@pytest.fixture(scope="module")
def bill():
    return SecurityMaster(
        cusip="912797QX2",
        security_type="Bill",
        security_term="17-Week",
        issue_date=pd.Timestamp("2025-11-18"),
        maturity_date=pd.Timestamp("2026-03-19"),
        interest_rate=None,
    )


@pytest.fixture(scope="module")
def flat_5():
    return NSSParameters(0.05, 0.0, 0.0, 0.0, 1.0, 3.0)


@pytest.mark.parametrize(
    "security_type, freq_text, rate, expected",
    [
        ("Bill", None, None, (0, True)),
        ("Bill", "Semi-Annual", 4.0, (0, True)),
        ("Note", "None", 4.0, (0, True)),
        ("Note", "Semi-Annual", 0.0, (0, True)),
        ("Note", "Semi-Annual", None, (0, True)),
        ("NOTE", "SEMI-ANNUAL", 4.0, (2, False)),
        ("Bond", "Quarterly", 3.0, (4, False)),
        ("Note", "Annual", 2.0, (1, False)),
        ("Bond", "once a year", 2.0, (1, False)),
        ("Note", None, 4.0, (2, False)),
        ("Bond", "", 4.0, (2, False)),
        ("TIPS", "monthly", 1.0, (2, False)),
    ],
)
def test_frequency_rule_table(security_type, freq_text, rate, expected):
    freq = classify_frequency(security_type, freq_text, rate)
    assert (freq.periods_per_year, freq.is_bill) == expected


def test_cashflows_from_dated_date(val_date):
    cfs = build_cashflows(val_date, pd.Timestamp("2034-01-15"), 4.0, 2, dated_date=pd.Timestamp("2024-01-15"))

    assert len(cfs) == 17
    assert cfs[0].date == pd.Timestamp("2026-01-15")
    assert abs(cfs[0].t_years - 57 / 365.25) < 1e-15
    assert all(cf.amount == 2.0 for cf in cfs[:-1])
    assert cfs[-1].date == pd.Timestamp("2034-01-15")
    assert cfs[-1].amount == 102.0


def test_cashflows_explicit_first_coupon_wins(val_date):
    cfs = build_cashflows(
        val_date,
        pd.Timestamp("2027-02-15"),
        3.0,
        4,
        dated_date=pd.Timestamp("2025-01-01"),
        first_coupon=pd.Timestamp("2025-05-15"),
    )
    dates = [cf.date for cf in cfs]
    assert dates == [
        pd.Timestamp("2026-02-15"),
        pd.Timestamp("2026-05-15"),
        pd.Timestamp("2026-08-15"),
        pd.Timestamp("2026-11-15"),
        pd.Timestamp("2027-02-15"),
    ]
    assert abs(cfs[0].amount - 0.75) < 1e-15


def test_cashflows_implied_schedule_keeps_end_of_month(val_date):
    cfs = build_cashflows(val_date, pd.Timestamp("2030-05-31"), 4.5, 2)
    dates = [cf.date for cf in cfs]

    assert dates[0] == pd.Timestamp("2025-11-30")
    assert dates[-1] == pd.Timestamp("2030-05-31")
    assert len(dates) == 10
    assert all(d.is_month_end for d in dates), "End-of-month schedule must stay on month end"


def test_cashflows_thirtieth_maturity_does_not_drift(val_date):
    expected = [
        pd.Timestamp("2026-02-28"),
        pd.Timestamp("2026-08-30"),
        pd.Timestamp("2027-02-28"),
        pd.Timestamp("2027-08-30"),
    ]
    implied = build_cashflows(val_date, pd.Timestamp("2027-08-30"), 4.0, 2)
    from_dated = build_cashflows(val_date, pd.Timestamp("2027-08-30"), 4.0, 2, dated_date=pd.Timestamp("2025-08-30"))

    assert [cf.date for cf in implied] == expected
    assert [cf.date for cf in from_dated] == expected


def test_cashflows_reject_unsupported_frequency(val_date):
    with pytest.raises(ValueError):
        build_cashflows(val_date, pd.Timestamp("2024-05-15"), 4.0, 3)


def test_cashflows_off_cycle_maturity_still_redeems(val_date):
    cfs = build_cashflows(val_date, pd.Timestamp("2026-02-15"), 5.0, 2, dated_date=pd.Timestamp("2024-01-31"))
    assert [cf.date for cf in cfs] == [pd.Timestamp("2026-01-31"), pd.Timestamp("2026-02-15")]
    assert cfs[-1].amount == 102.5


def test_cashflows_empty_after_maturity(val_date):
    assert build_cashflows(val_date, pd.Timestamp("2025-11-19"), 4.0, 2) == []
    assert build_cashflows(val_date, pd.Timestamp("2024-05-15"), 4.0, 2) == []


@pytest.mark.parametrize(
    "valuation, maturity, rate, ppy, dated",
    [
        ("2025-11-19", "2034-01-15", 4.0, 2, "2024-01-15"),
        ("2025-11-19", "2030-05-31", 4.5, 2, None),
        ("2024-02-29", "2029-02-28", 2.25, 2, "2019-02-28"),
        ("2025-06-30", "2027-12-31", 3.0, 4, None),
        ("2025-11-19", "2045-08-15", 4.75, 1, "2015-08-15"),
        ("2026-01-15", "2034-01-15", 4.0, 2, "2024-01-15"),
    ],
)
def test_cashflow_schedule_properties(valuation, maturity, rate, ppy, dated):
    valuation, maturity = pd.Timestamp(valuation), pd.Timestamp(maturity)
    cfs = build_cashflows(valuation, maturity, rate, ppy, dated_date=pd.Timestamp(dated) if dated else None)

    assert cfs, "Live bond must have cashflows"
    dates = [cf.date for cf in cfs]
    assert all(valuation < d <= maturity for d in dates)
    assert all(a < b for a, b in zip(dates, dates[1:])), "Dates must be strictly increasing"
    assert all(cf.amount > 0 for cf in cfs)
    assert all(cf.t_years > 0 for cf in cfs)
    assert cfs[-1].date == maturity
    assert cfs[-1].amount >= 100.0, "Final cashflow must include face value"


def test_end_to_end_accrued_interest_golden(note):
    a = bond_analytics(note, 98.50, pd.Timestamp("2025-11-20"))

    assert a.last_coupon_date == pd.Timestamp("2025-07-15")
    assert a.next_coupon_date == pd.Timestamp("2026-01-15")
    assert a.days_in_period == 184.0
    assert a.days_into_period == 128.0
    assert a.coupon_per_period == 2.0
    assert a.f == pytest.approx(0.6956521739130435, rel=1e-14)
    assert a.accrued_interest == pytest.approx(1.391304347826087, rel=1e-14)
    assert a.dirty_price == pytest.approx(99.8913043478261, rel=1e-14)
    assert a.dirty_price == a.clean_price + a.accrued_interest


def test_accrued_zero_on_coupon_date(note):
    a = bond_analytics(note, 98.50, pd.Timestamp("2026-01-15"))
    assert a.f == 0.0
    assert a.accrued_interest == 0.0
    assert a.dirty_price == a.clean_price


def test_day_count_fraction_bounded(note):
    settles = pd.date_range(note.dated_date, note.maturity_date - pd.Timedelta(days=1), freq="17D")
    for s in settles:
        a = bond_analytics(note, 100.0, s)
        assert 0.0 <= a.f <= 1.0, f"f out of range at {s.date()}: {a.f}"
        assert a.dirty_price == a.clean_price + a.accrued_interest


def test_bill_has_no_accrual(bill):
    for s in ["2025-11-20", "2026-01-02", "2026-03-18"]:
        a = bond_analytics(bill, 99.10, pd.Timestamp(s))
        assert a.is_bill
        assert a.accrued_interest == 0.0
        assert a.f == 0.0
        assert a.dirty_price == a.clean_price == 99.10
        assert a.day_count_details()["is_bill"] is True


def test_theoretical_price_flat_curve(val_date, note, flat_5):
    cfs = security_cashflows(note, val_date)
    expected = sum(cf.amount * np.exp(-0.05 * cf.t_years) for cf in cfs)
    assert abs(theoretical_price(cfs, flat_5) - expected) < 1e-10


def test_bill_priced_as_single_face_cashflow(val_date, bill, flat_5):
    cfs = security_cashflows(bill, val_date)
    assert len(cfs) == 1
    assert cfs[0].amount == 100.0
    assert cfs[0].date == pd.Timestamp("2026-03-19")

    t = 120 / 365.25
    assert abs(theoretical_price(cfs, flat_5) - 100.0 * np.exp(-0.05 * t)) < 1e-10


def test_pricer_table_matches_theoretical_price(val_date, note, flat_5):
    pricer = NSSBondPricer(flat_5, val_date)
    px, table = pricer.price(note)

    assert {"date", "t_years", "amount", "spot_rate", "discount_factor", "present_value"}.issubset(table.columns)
    assert abs(px - theoretical_price(pricer.cashflows(note), flat_5)) < 1e-10
    assert np.allclose(table["spot_rate"], 0.05)


def test_cashflow_table_discount_factors_decrease(val_date, note):
    params = NSSParameters(0.045, -0.01, 0.01, 0.005, 1.5, 4.0)
    table = cashflow_table(security_cashflows(note, val_date), params)
    assert (np.diff(table["discount_factor"]) < 0).all()
