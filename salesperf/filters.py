from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional, Tuple

import pandas as pd

from salesperf.data import DIMENSION_COLUMNS, available_months, record_dates
from salesperf.periods import (
    CUSTOM_PERIOD,
    DEFAULT_PERIOD,
    PERIOD_MONTH_SPAN,
    WEEKLY_PERIOD,
    WEEKS_IN_WINDOW,
    boundary_period,
    month_key,
    parse_month,
    shift_month,
    week_start,
)


CHART_FILTER_KEYS = ("month", "customer", "salesman", "agent", "tradelane", "product")

# Alternate request keys accepted for dimensions (backend payload naming).
DIMENSION_ALIASES = {"service_type": "service", "customer_name": "customer"}


@dataclass(frozen=True)
class FilterState:
    period: str = DEFAULT_PERIOD
    country: Tuple[str, ...] = ()
    branch: Tuple[str, ...] = ()
    service: Tuple[str, ...] = ()
    trade: Tuple[str, ...] = ()
    customer: Tuple[str, ...] = ()
    salesman: Tuple[str, ...] = ()
    agent: Tuple[str, ...] = ()
    carrier: Tuple[str, ...] = ()
    tradelane: Tuple[str, ...] = ()
    product: Tuple[str, ...] = ()
    tos: Tuple[str, ...] = ()
    chart_filters: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    custom_start_month: Optional[str] = None
    custom_end_month: Optional[str] = None

    def dimension_values(self, dimension: str) -> Tuple[str, ...]:
        return getattr(self, dimension)

    @property
    def chart_filter_map(self) -> Dict[str, str]:
        return dict(self.chart_filters)

    def apply(self, **changes: Any) -> "FilterState":
        """New state with the given fields replaced (partial update)."""
        raw = self.to_dict()
        if "chart_filters" in changes:
            raw.pop("chartFilters")
        raw.update(changes)
        return normalize_filters(raw)

    def with_chart_filter(self, key: str, value: Optional[str]) -> "FilterState":
        if key not in CHART_FILTER_KEYS:
            raise KeyError(f"unknown chart filter: {key}")
        current = self.chart_filter_map
        if value:
            current[key] = str(value)
        else:
            current.pop(key, None)
        return replace(self, chart_filters=_chart_tuple(current))

    def without_chart_filters(self) -> "FilterState":
        return replace(self, chart_filters=())

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"period": self.period}
        for dim in DIMENSION_COLUMNS:
            out[dim] = list(self.dimension_values(dim))
        out["chartFilters"] = self.chart_filter_map
        out["custom_start_month"] = self.custom_start_month
        out["custom_end_month"] = self.custom_end_month
        return out


def _chart_tuple(values: Dict[str, str]) -> Tuple[Tuple[str, str], ...]:
    return tuple((k, values[k]) for k in CHART_FILTER_KEYS if values.get(k))


def _as_str_tuple(values: Optional[Iterable[object]]) -> Tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        values = [values]
    out = []
    for v in values:
        if v is None:
            continue
        s = str(v).strip()
        if s and s not in out:
            out.append(s)
    return tuple(out)


def _as_month(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()[:7]
    return s if parse_month(s) is not None else None


def normalize_filters(raw: Optional[dict]) -> FilterState:
    raw = dict(raw or {})
    for alias, dim in DIMENSION_ALIASES.items():
        if alias in raw and not raw.get(dim):
            raw[dim] = raw[alias]

    period = str(raw.get("period") or DEFAULT_PERIOD).strip() or DEFAULT_PERIOD
    dims = {dim: _as_str_tuple(raw.get(dim)) for dim in DIMENSION_COLUMNS}

    chart_raw = raw.get("chartFilters", raw.get("chart_filters")) or {}
    if not isinstance(chart_raw, dict):
        chart_raw = dict(chart_raw)
    chart = {k: str(v).strip() for k, v in chart_raw.items() if k in CHART_FILTER_KEYS and v not in (None, "")}

    return FilterState(
        period=period,
        chart_filters=_chart_tuple(chart),
        custom_start_month=_as_month(raw.get("custom_start_month")),
        custom_end_month=_as_month(raw.get("custom_end_month")),
        **dims,
    )


# ---------------- Filter engine ----------------
def apply_period_boundary(df: pd.DataFrame, filters: FilterState) -> pd.DataFrame:
    if df.empty:
        return df
    period = boundary_period(filters.period)
    months = df["month"].fillna("").astype(str) if "month" in df.columns else pd.Series("", index=df.index)

    if period == WEEKLY_PERIOD:
        dates = record_dates(df)
        if dates.notna().any():
            latest = dates.max()
            start = week_start(latest) - pd.Timedelta(weeks=WEEKS_IN_WINDOW - 1)
            # Undated rows cannot be placed in a week once any record carries a date.
            return df[dates.notna() & (dates >= start) & (dates <= latest)]
        latest_month = (available_months(df) or [None])[-1]
        if latest_month is None:
            return df
        first_of_month = pd.Timestamp(f"{latest_month}-01")
        start_month = month_key(first_of_month - pd.Timedelta(weeks=WEEKS_IN_WINDOW))
        return df[months >= start_month]

    if period == CUSTOM_PERIOD:
        mask = pd.Series(True, index=df.index)
        if filters.custom_start_month:
            mask &= months >= filters.custom_start_month
        if filters.custom_end_month:
            mask &= months <= filters.custom_end_month
        return df[mask]

    latest_month = (available_months(df) or [None])[-1]
    if latest_month is None:
        return df
    start_month = shift_month(latest_month, -PERIOD_MONTH_SPAN[period])
    # YYYY-MM keys order lexicographically
    return df[months >= start_month]


def apply_dimension_filters(df: pd.DataFrame, filters: FilterState) -> pd.DataFrame:
    if df.empty:
        return df
    mask = pd.Series(True, index=df.index)
    for dim in DIMENSION_COLUMNS:
        selected = filters.dimension_values(dim)
        if selected and dim in df.columns:
            mask &= df[dim].astype(str).isin(set(selected))
    return df[mask]


def apply_chart_filters(df: pd.DataFrame, filters: FilterState, *, skip: Iterable[str] = ()) -> pd.DataFrame:
    if df.empty:
        return df
    skip = set(skip)
    mask = pd.Series(True, index=df.index)
    for key, value in filters.chart_filters:
        if key in skip or key not in df.columns:
            continue
        mask &= df[key].astype(str).eq(value)
    return df[mask]


def filter_records(df: pd.DataFrame, filters: FilterState) -> pd.DataFrame:
    """Current-period subset: period boundary, then dimension filters, then chart cross-filters."""
    out = apply_period_boundary(df, filters)
    out = apply_dimension_filters(out, filters)
    return apply_chart_filters(out, filters)


def comparison_base(df: pd.DataFrame, filters: FilterState) -> pd.DataFrame:
    """Raw records restricted by dimensions and non-month cross-filters, without a period boundary."""
    out = apply_dimension_filters(df, filters)
    return apply_chart_filters(out, filters, skip=("month",))
