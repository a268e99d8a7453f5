from __future__ import annotations

import math

import pandas as pd
import pytest

from salesperf.data import (
    filter_options,
    format_change,
    format_large_number,
    normalize_month,
    normalize_records,
    parse_date,
    pct_change,
    round_half_up,
)


@pytest.mark.parametrize(
    "raw",
    ["2024-03-15", "15-03-2024", "15/03/24", "15/03/2024"],
)
def test_parse_date_day_first_and_iso(raw):
    assert parse_date(raw) == pd.Timestamp("2024-03-15")


def test_parse_date_excel_serial():
    assert parse_date("45992") == pd.Timestamp("2025-12-01")
    assert parse_date(45992) == pd.Timestamp("2025-12-01")


@pytest.mark.parametrize("raw", ["", "   ", None, float("nan"), "nan", "2024-13-45", "15-03", "not a date"])
def test_parse_date_returns_none_for_garbage(raw):
    assert parse_date(raw) is None


def test_parse_date_strips_time_and_timezone():
    ts = pd.Timestamp("2024-03-15 17:45", tz="Asia/Kolkata")
    assert parse_date(ts) == pd.Timestamp("2024-03-15")


def test_normalize_month_prefers_month_then_date():
    assert normalize_month("2024-03") == "2024-03"
    assert normalize_month(None, "15/03/24") == "2024-03"
    assert normalize_month(pd.Timestamp("2024-07-09")) == "2024-07"
    assert normalize_month("", "") == ""


def test_normalize_records_resolves_synonyms_case_insensitively():
    df = normalize_records(
        [
            {
                "Enquiry_Count": "5",
                "convertedShipments": 2,
                "vol": "1.5",
                "wt": None,
                "Customer_Name": " Acme ",
                "service_type": "AIR",
                "Shipment_Date": "2024-03-15",
            }
        ]
    )
    row = df.iloc[0]
    assert row["enquiries"] == 5.0
    assert row["converted_shipments"] == 2.0
    assert row["volume"] == 1.5
    assert row["weight"] == 0.0
    assert row["customer"] == "Acme"
    assert row["service"] == "AIR"
    assert row["month"] == "2024-03"
    assert row["shipment_ts"] == pd.Timestamp("2024-03-15")


def test_normalize_records_priority_and_first_non_null():
    df = normalize_records(
        [
            {"enquiries": 3, "enquiry_count": 9},
            {"enquiries": None, "enquiry_count": 9},
        ]
    )
    assert df["enquiries"].tolist() == [3.0, 9.0]


def test_normalize_records_coerces_bad_numbers_to_zero():
    df = normalize_records([{"month": "2024-01", "volume": float("inf"), "weight": "heavy", "enquiries": "nan"}])
    assert df.loc[0, "volume"] == 0.0
    assert df.loc[0, "weight"] == 0.0
    assert df.loc[0, "enquiries"] == 0.0


def test_normalize_records_keeps_undated_rows_and_skips_non_mappings():
    df = normalize_records([{"month": "2024-01", "shipment_date": "someday"}, "junk", 42])
    assert len(df) == 1
    assert df.loc[0, "month"] == "2024-01"
    assert pd.isna(df.loc[0, "shipment_ts"])


def test_normalize_records_empty_input_has_canonical_columns():
    df = normalize_records([])
    assert df.empty
    assert {"month", "enquiries", "customer", "shipment_ts"} <= set(df.columns)


def test_pct_change_null_when_no_baseline():
    assert pct_change(10.0, 0.0) is None
    assert pct_change(0.0, 0.0) is None
    assert pct_change(15.0, 10.0) == pytest.approx(50.0)
    assert pct_change(5.0, 10.0) == pytest.approx(-50.0)


def test_round_half_up():
    assert round_half_up(2.25, 1) == 2.3
    assert round_half_up(2.35, 1) == 2.4
    assert round_half_up(None, 1) is None
    assert round_half_up(math.nan, 1) is None


def test_number_formatting():
    assert format_large_number(999) == "999"
    assert format_large_number(1500) == "1.5K"
    assert format_large_number(2_500_000) == "2.5M"
    assert format_large_number(1_000_000_000) == "1B"
    assert format_large_number(None) == "0"
    assert format_change(12.345) == "+12.3%"
    assert format_change(-5) == "-5.0%"
    assert format_change(None) == "N/A"


def test_filter_options_sorted_distinct_non_empty():
    df = normalize_records(
        [
            {"month": "2024-01", "customer": "Zeta"},
            {"month": "2024-01", "customer": "Acme"},
            {"month": "2024-02", "customer": "Acme"},
            {"month": "2024-02", "customer": ""},
        ]
    )
    options = filter_options(df)
    assert options["customer"] == ["Acme", "Zeta"]
    assert options["salesman"] == []
