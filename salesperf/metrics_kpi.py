from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from salesperf.data import available_months, pct_change, round_half_up
from salesperf.periods import comparison_windows


KPI_PAYLOAD_KEYS = {
    "total_enquiries": "totalEnquiries",
    "converted_shipments": "convertedShipments",
    "total_shipments": "totalShipments",
    "conversion_rate": "conversionRate",
    "active_customers": "activeCustomers",
    "total_volume": "totalVolume",
    "total_weight": "totalWeight",
}


@dataclass(frozen=True)
class KPIData:
    total_enquiries: float = 0.0
    converted_shipments: float = 0.0
    total_shipments: float = 0.0
    conversion_rate: float = 0.0
    active_customers: int = 0
    total_volume: float = 0.0
    total_weight: float = 0.0

    def as_payload(self) -> Dict[str, Any]:
        return {KPI_PAYLOAD_KEYS[k]: v for k, v in asdict(self).items()}


@dataclass(frozen=True)
class Comparison:
    current: KPIData
    previous: KPIData
    changes: Dict[str, Optional[float]]
    current_months: List[str]
    previous_months: List[str]

    def as_payload(self) -> Dict[str, Any]:
        return {
            "current": self.current.as_payload(),
            "previous": self.previous.as_payload(),
            "changes": {KPI_PAYLOAD_KEYS[k]: v for k, v in self.changes.items()},
            "currentMonths": list(self.current_months),
            "previousMonths": list(self.previous_months),
        }


def resilient_sum(df: pd.DataFrame, col: str) -> float:
    """Sum of a column where missing/non-numeric/non-finite values count as 0.

    Uses exactly-rounded summation so the total does not depend on row order.
    """
    if df.empty or col not in df.columns:
        return 0.0
    values = pd.to_numeric(df[col], errors="coerce").replace([np.inf, -np.inf], np.nan).fillna(0.0)
    return math.fsum(values.tolist())


def conversion_rate(converted: float, enquiries: float) -> float:
    if enquiries > 0:
        return round_half_up(converted / enquiries * 100, 1)
    return 0.0


def _raw_rate(converted: float, enquiries: float) -> float:
    return converted / enquiries * 100 if enquiries > 0 else 0.0


def count_active_customers(df: pd.DataFrame) -> int:
    if df.empty or "customer" not in df.columns:
        return 0
    names = df["customer"].dropna().astype(str).str.strip()
    return int(names[names.ne("")].nunique())


def compute_kpis(df: pd.DataFrame) -> KPIData:
    enquiries = resilient_sum(df, "enquiries")
    converted = resilient_sum(df, "converted_shipments")
    return KPIData(
        total_enquiries=enquiries,
        converted_shipments=converted,
        total_shipments=resilient_sum(df, "total_shipments"),
        conversion_rate=conversion_rate(converted, enquiries),
        active_customers=count_active_customers(df),
        total_volume=resilient_sum(df, "volume"),
        total_weight=resilient_sum(df, "weight"),
    )


def records_in_months(df: pd.DataFrame, months: List[str]) -> pd.DataFrame:
    if df.empty or not months or "month" not in df.columns:
        return df.iloc[0:0]
    return df[df["month"].astype(str).isin(set(months))]


def kpi_changes(current: KPIData, previous: KPIData) -> Dict[str, Optional[float]]:
    cur, prev = asdict(current), asdict(previous)
    changes = {k: pct_change(cur[k], prev[k]) for k in KPI_PAYLOAD_KEYS if k != "conversion_rate"}
    # Rates come from each window's own totals, not from the rounded tile values.
    prev_rate = _raw_rate(previous.converted_shipments, previous.total_enquiries)
    cur_rate = _raw_rate(current.converted_shipments, current.total_enquiries)
    changes["conversion_rate"] = pct_change(cur_rate, prev_rate)
    return {k: changes[k] for k in KPI_PAYLOAD_KEYS}


def compare_with_previous(
    current: KPIData,
    current_records: pd.DataFrame,
    comparison_records: pd.DataFrame,
    comparison_type: str,
) -> Comparison:
    months = available_months(current_records)
    current_window, previous_window = comparison_windows(months, comparison_type)

    if current_window and len(current_window) < len(months):
        current = compute_kpis(records_in_months(current_records, current_window))
    previous = compute_kpis(records_in_months(comparison_records, previous_window))
    return Comparison(
        current=current,
        previous=previous,
        changes=kpi_changes(current, previous),
        current_months=current_window,
        previous_months=previous_window,
    )
