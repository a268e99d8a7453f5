from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pandas as pd

from salesperf.data import available_months, pct_change, record_dates
from salesperf.metrics_kpi import conversion_rate, records_in_months, resilient_sum
from salesperf.periods import (
    WEEKS_IN_WINDOW,
    PeriodInfo,
    assign_week_bucket,
    comparison_windows,
    month_label,
    weekly_buckets,
)


MODES = {"air": "AIR", "lcl": "LCL", "fcl": "FCL"}


def _pad_left(values: List[float], size: int) -> List[float]:
    tail = values[-size:]
    return [0.0] * (size - len(tail)) + tail


def monthly_converted(df: pd.DataFrame, months: List[str]) -> List[float]:
    if df.empty:
        return [0.0 for _ in months]
    converted = pd.to_numeric(df["converted_shipments"], errors="coerce").fillna(0.0)
    grouped = converted.groupby(df["month"].astype(str)).sum()
    return [float(grouped.get(m, 0.0)) for m in months]


def compute_mode_data(
    current_records: pd.DataFrame,
    comparison_records: pd.DataFrame,
    period_info: PeriodInfo,
) -> Dict[str, Dict[str, Any]]:
    """AIR/LCL/FCL cards. Shipments are converted shipments, never total shipments."""
    months = available_months(current_records)
    current_window, previous_window = comparison_windows(months, period_info.comparison_type)

    out: Dict[str, Dict[str, Any]] = {}
    for key, service in MODES.items():
        cur = current_records[current_records["service"].astype(str).eq(service)] if not current_records.empty else current_records
        base = (
            comparison_records[comparison_records["service"].astype(str).eq(service)]
            if not comparison_records.empty
            else comparison_records
        )

        window_shipments = resilient_sum(records_in_months(cur, current_window), "converted_shipments")
        prior_shipments = resilient_sum(records_in_months(base, previous_window), "converted_shipments")

        sparkline = monthly_converted(cur, months)
        if period_info.sparkline_type == "weekly":
            # Coarse proxy: last four monthly points rather than true weekly buckets.
            sparkline = _pad_left(sparkline, WEEKS_IN_WINDOW)

        out[key] = {
            "shipments": resilient_sum(cur, "converted_shipments"),
            "volume": resilient_sum(cur, "volume"),
            "weight": resilient_sum(cur, "weight"),
            "change": pct_change(window_shipments, prior_shipments),
            "sparklineData": sparkline,
        }
    return out


def _monthly_sparkline(df: pd.DataFrame, months: List[str]) -> Tuple[Dict[str, List[float]], List[str]]:
    data: Dict[str, List[float]] = {"enquiries": [], "convertedShipments": [], "conversionRate": []}
    for month in months:
        subset = records_in_months(df, [month])
        enquiries = resilient_sum(subset, "enquiries")
        converted = resilient_sum(subset, "converted_shipments")
        data["enquiries"].append(enquiries)
        data["convertedShipments"].append(converted)
        data["conversionRate"].append(conversion_rate(converted, enquiries))
    return data, [month_label(m) for m in months]


def compute_kpi_sparklines(
    current_records: pd.DataFrame,
    comparison_records: pd.DataFrame,
    period_info: PeriodInfo,
) -> Tuple[Dict[str, List[float]], List[str]]:
    """Sparkline arrays and their labels at the period's sparkline granularity."""
    months = available_months(current_records)
    if period_info.sparkline_type != "weekly":
        return _monthly_sparkline(current_records, months)

    dates = record_dates(current_records)
    if not dates.notna().any():
        data, labels = _monthly_sparkline(current_records, months[-WEEKS_IN_WINDOW:])
        return data, labels

    buckets = weekly_buckets(dates.max())
    base_dates = record_dates(comparison_records)
    bucket_idx = assign_week_bucket(base_dates, buckets)

    data: Dict[str, List[float]] = {"enquiries": [], "convertedShipments": [], "conversionRate": []}
    labels: List[str] = []
    for idx, (start, _end) in enumerate(buckets):
        subset = comparison_records[bucket_idx.eq(idx)]
        enquiries = resilient_sum(subset, "enquiries")
        converted = resilient_sum(subset, "converted_shipments")
        data["enquiries"].append(enquiries)
        data["convertedShipments"].append(converted)
        data["conversionRate"].append(conversion_rate(converted, enquiries))
        labels.append(start.strftime("%d %b"))
    return data, labels
