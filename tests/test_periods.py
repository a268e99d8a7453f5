from __future__ import annotations

import pandas as pd
import pytest

from salesperf.periods import (
    assign_week_bucket,
    comparison_windows,
    month_label,
    resolve_period,
    shift_month,
    week_start,
    weekly_buckets,
)


@pytest.mark.parametrize(
    "period, comparison, granularity, sparkline",
    [
        ("last-4-weeks", "wow", "weekly", "weekly"),
        ("last-2-months", "mom", "monthly", "weekly"),
        ("last-6-months", "qoq", "monthly", "monthly"),
        ("custom", "mom", "monthly", "monthly"),
    ],
)
def test_resolve_period_table(period, comparison, granularity, sparkline):
    info = resolve_period(period)
    assert info.comparison_type == comparison
    assert info.chart_granularity == granularity
    assert info.sparkline_type == sparkline


def test_unknown_period_falls_back_to_six_months():
    assert resolve_period("last-decade") == resolve_period("last-6-months")
    assert resolve_period(None).comparison_label == "QoQ %"


def test_period_payload_uses_camel_case():
    payload = resolve_period("custom").as_payload()
    assert payload == {
        "type": "monthly",
        "comparisonType": "mom",
        "comparisonLabel": "vs prev period",
        "chartGranularity": "monthly",
        "sparklineType": "monthly",
    }


def test_shift_month_wraps_years():
    assert shift_month("2024-01", -1) == "2023-12"
    assert shift_month("2023-12", 1) == "2024-01"
    assert shift_month("2024-06", -5) == "2024-01"
    assert shift_month("bad", 1) is None


def test_month_label():
    assert month_label("2024-06") == "Jun '24"


def test_week_start_is_sunday():
    assert week_start(pd.Timestamp("2024-06-12")) == pd.Timestamp("2024-06-09")
    assert week_start(pd.Timestamp("2024-06-09")) == pd.Timestamp("2024-06-09")
    assert week_start(pd.Timestamp("2024-06-15")) == pd.Timestamp("2024-06-09")


def test_weekly_buckets_last_bucket_ends_at_latest_date():
    buckets = weekly_buckets(pd.Timestamp("2024-06-12"))
    assert len(buckets) == 4
    assert buckets[0] == (pd.Timestamp("2024-05-19"), pd.Timestamp("2024-05-25"))
    assert buckets[-1] == (pd.Timestamp("2024-06-09"), pd.Timestamp("2024-06-12"))


def test_assign_week_bucket():
    buckets = weekly_buckets(pd.Timestamp("2024-06-12"))
    dates = pd.Series(pd.to_datetime(["2024-05-18", "2024-05-19", "2024-06-01", "2024-06-12", None]))
    idx = assign_week_bucket(dates, buckets)
    assert pd.isna(idx.iloc[0])
    assert idx.iloc[1] == 0
    assert idx.iloc[2] == 1
    assert idx.iloc[3] == 3
    assert pd.isna(idx.iloc[4])


def test_comparison_windows():
    months = [f"2024-0{m}" for m in range(1, 7)]
    assert comparison_windows(months, "qoq") == (["2024-04", "2024-05", "2024-06"], ["2024-01", "2024-02", "2024-03"])
    assert comparison_windows(months, "mom") == (["2024-06"], ["2024-05"])
    assert comparison_windows(months, "wow") == (["2024-06"], ["2024-05"])
    assert comparison_windows(["2024-05", "2024-06"], "qoq") == (["2024-06"], ["2024-03"])
    assert comparison_windows([], "mom") == ([], [])
