from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from salesperf.data import available_months, pct_change, record_dates
from salesperf.metrics_kpi import conversion_rate, records_in_months, resilient_sum
from salesperf.periods import (
    TARGET_DATA_POINTS,
    PeriodInfo,
    assign_week_bucket,
    comparison_windows,
    month_label,
    weekly_buckets,
)


TOP_BREAKDOWN = 8
OTHERS = "Others"
WEEKLY_TOP_N = 5
MONTHLY_TOP_N = 10


def _numeric(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        return pd.Series(0.0, index=df.index)
    return pd.to_numeric(df[col], errors="coerce").replace([np.inf, -np.inf], np.nan).fillna(0.0)


def _names(df: pd.DataFrame, dimension: str) -> pd.Series:
    if dimension not in df.columns:
        return pd.Series("", index=df.index)
    return df[dimension].fillna("").astype(str).str.strip()


def _series_item(label: str, subset: pd.DataFrame, **extra: Any) -> Dict[str, Any]:
    enquiries = resilient_sum(subset, "enquiries")
    converted = resilient_sum(subset, "converted_shipments")
    item: Dict[str, Any] = {"label": label}
    item.update(extra)
    item.update(
        {
            "enquiries": enquiries,
            "converted": converted,
            "shipments": converted,
            "rate": conversion_rate(converted, enquiries),
        }
    )
    return item


# ---------------- Breakdowns ----------------
def top_contributors(df: pd.DataFrame, dimension: str, limit: int = TOP_BREAKDOWN) -> List[str]:
    """Named contributors with the most converted shipments, ties kept in first-seen order."""
    if df.empty:
        return []
    names = _names(df, dimension)
    named = names.ne("")
    totals = _numeric(df, "converted_shipments")[named].groupby(names[named], sort=False).sum()
    totals = totals.sort_values(ascending=False, kind="mergesort")
    return [str(n) for n in totals.head(limit).index]


def breakdown_values(subset: pd.DataFrame, dimension: str, keys: List[str]) -> Dict[str, float]:
    """Converted shipments per key with everything else (unnamed included) folded into Others."""
    names = _names(subset, dimension)
    converted = _numeric(subset, "converted_shipments")
    values = {key: math.fsum(converted[names.eq(key)].tolist()) for key in keys}
    values[OTHERS] = math.fsum(converted[~names.isin(keys)].tolist())
    return values


# ---------------- Rankings ----------------
def _grouped(df: pd.DataFrame, dimension: str) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=["name", "enquiries", "converted", "volume", "weight"])
    names = _names(df, dimension)
    frame = pd.DataFrame(
        {
            "name": names,
            "enquiries": _numeric(df, "enquiries"),
            "converted": _numeric(df, "converted_shipments"),
            "volume": _numeric(df, "volume"),
            "weight": _numeric(df, "weight"),
        }
    )
    frame = frame[frame["name"].ne("")]
    return frame.groupby("name", sort=False).sum().reset_index()


def rank_entities(df: pd.DataFrame, dimension: str, top_n: int, sort_by: str = "converted") -> pd.DataFrame:
    grouped = _grouped(df, dimension)
    if grouped.empty:
        return grouped
    return grouped.sort_values(sort_by, ascending=False, kind="mergesort").head(top_n)


def entity_changes(
    current_records: pd.DataFrame,
    comparison_records: pd.DataFrame,
    dimension: str,
    comparison_type: str,
) -> Dict[str, Optional[float]]:
    """Period-over-period change in converted shipments per entity."""
    current_window, previous_window = comparison_windows(available_months(current_records), comparison_type)
    cur = _grouped(records_in_months(current_records, current_window), dimension)
    prev = _grouped(records_in_months(comparison_records, previous_window), dimension)
    cur_map = dict(zip(cur["name"], cur["converted"]))
    prev_map = dict(zip(prev["name"], prev["converted"]))
    return {name: pct_change(float(cur_map.get(name, 0.0)), float(prev_map.get(name, 0.0))) for name in set(cur_map) | set(prev_map)}


def build_rankings(
    current_records: pd.DataFrame,
    comparison_records: pd.DataFrame,
    period_info: PeriodInfo,
    top_n: int,
) -> Dict[str, List[Dict[str, Any]]]:
    salesmen = rank_entities(current_records, "salesman", top_n)
    agents = rank_entities(current_records, "agent", top_n)
    customers = rank_entities(current_records, "customer", top_n)
    lanes = rank_entities(current_records, "tradelane", top_n, sort_by="volume")

    agent_changes = entity_changes(current_records, comparison_records, "agent", period_info.comparison_type)
    customer_changes = entity_changes(current_records, comparison_records, "customer", period_info.comparison_type)

    return {
        "topSalesmen": [
            {
                "name": r.name,
                "shipments": float(r.converted),
                "enquiries": float(r.enquiries),
                "conversion": conversion_rate(float(r.converted), float(r.enquiries)),
            }
            for r in salesmen.itertuples(index=False)
        ],
        "topAgents": [
            {"name": r.name, "shipments": float(r.converted), "change": agent_changes.get(r.name)}
            for r in agents.itertuples(index=False)
        ],
        "topCustomers": [
            {
                "name": r.name,
                "shipments": float(r.converted),
                "volume": float(r.volume),
                "change": customer_changes.get(r.name),
            }
            for r in customers.itertuples(index=False)
        ],
        "topTradelanes": [
            {"lane": r.name, "volume": float(r.volume), "weight": float(r.weight), "shipments": float(r.converted)}
            for r in lanes.itertuples(index=False)
        ],
    }


# ---------------- Series ----------------
def _weekly_trends(
    current_records: pd.DataFrame,
    comparison_records: pd.DataFrame,
    dates: pd.Series,
    period_info: PeriodInfo,
) -> Dict[str, Any]:
    buckets = weekly_buckets(dates.max())
    bucket_idx = assign_week_bucket(dates, buckets)
    in_window = current_records[bucket_idx.notna()]
    customer_keys = top_contributors(in_window, "customer")
    product_keys = top_contributors(in_window, "product")

    series: List[Dict[str, Any]] = []
    customer_series: List[Dict[str, Any]] = []
    product_series: List[Dict[str, Any]] = []
    last = len(buckets) - 1
    for idx, (start, end) in enumerate(buckets):
        subset = current_records[bucket_idx.eq(idx)]
        label = f"Week {idx + 1}"
        series.append(
            _series_item(
                label,
                subset,
                rawMonth=None,
                start=start.strftime("%Y-%m-%d"),
                end=end.strftime("%Y-%m-%d"),
                isCurrent=idx == last,
                isPartial=idx == last and end < start + pd.Timedelta(days=6),
            )
        )
        customer_series.append({"label": label, "rawMonth": None, "values": breakdown_values(subset, "customer", customer_keys)})
        product_series.append({"label": label, "rawMonth": None, "values": breakdown_values(subset, "product", product_keys)})

    payload: Dict[str, Any] = {
        "granularity": "weekly",
        "conversionSeries": series,
        "shipmentSeries": [dict(item) for item in series],
        "customerSeries": customer_series,
        "productSeries": product_series,
    }
    payload.update(build_rankings(current_records, comparison_records, period_info, WEEKLY_TOP_N))
    return payload


def _monthly_trends(
    current_records: pd.DataFrame,
    comparison_records: pd.DataFrame,
    period: str,
    period_info: PeriodInfo,
) -> Dict[str, Any]:
    months = available_months(current_records)
    target = TARGET_DATA_POINTS.get(period, len(months))
    display = months[-target:] if target else []
    customer_keys = top_contributors(current_records, "customer")
    product_keys = top_contributors(current_records, "product")

    series: List[Dict[str, Any]] = []
    customer_series: List[Dict[str, Any]] = []
    product_series: List[Dict[str, Any]] = []
    for idx, month in enumerate(display):
        subset = records_in_months(current_records, [month])
        label = month_label(month)
        series.append(_series_item(label, subset, rawMonth=month, isCurrent=idx == len(display) - 1))
        customer_series.append({"label": label, "rawMonth": month, "values": breakdown_values(subset, "customer", customer_keys)})
        product_series.append({"label": label, "rawMonth": month, "values": breakdown_values(subset, "product", product_keys)})

    payload: Dict[str, Any] = {
        "granularity": "monthly",
        "conversionSeries": series,
        "shipmentSeries": [dict(item) for item in series],
        "customerSeries": customer_series,
        "productSeries": product_series,
    }
    payload.update(build_rankings(current_records, comparison_records, period_info, MONTHLY_TOP_N))
    return payload


def build_trends(
    current_records: pd.DataFrame,
    comparison_records: pd.DataFrame,
    period: str,
    period_info: PeriodInfo,
) -> Dict[str, Any]:
    """Trend series, top-8 breakdowns and rankings for the chart panel.

    Weekly periods bucket by shipment date into four Sunday-Saturday weeks ending at the latest
    dated record; every other period uses month keys. Undated data under a weekly period falls
    back to the monthly layout.
    """
    if period_info.chart_granularity == "weekly":
        dates = record_dates(current_records)
        if dates.notna().any():
            return _weekly_trends(current_records, comparison_records, dates, period_info)
    return _monthly_trends(current_records, comparison_records, period, period_info)
