from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List, Union

import pandas as pd

from salesperf.charts import build_dashboard_charts
from salesperf.data import Dataset, filter_options
from salesperf.filters import FilterState, comparison_base, filter_records, normalize_filters
from salesperf.metrics_kpi import compare_with_previous, compute_kpis
from salesperf.metrics_modes import compute_kpi_sparklines, compute_mode_data
from salesperf.metrics_trends import OTHERS, build_trends
from salesperf.periods import resolve_period


logger = logging.getLogger(__name__)


def prepare_context(filters: Union[dict, FilterState], dataset: Dataset) -> Dict[str, Any]:
    filt = filters if isinstance(filters, FilterState) else normalize_filters(filters)
    records: pd.DataFrame = dataset.records
    return {
        "filters": filt,
        "period_info": resolve_period(filt.period),
        "records": records,
        "filtered_records": filter_records(records, filt),
        "comparison_records": comparison_base(records, filt),
    }


def compute_dashboard(filters: FilterState, ctx: Dict[str, Any], *, include_charts: bool = True) -> Dict[str, Any]:
    period_info = ctx["period_info"]
    records: pd.DataFrame = ctx["records"]
    current: pd.DataFrame = ctx["filtered_records"]
    base: pd.DataFrame = ctx["comparison_records"]

    comparison = compare_with_previous(compute_kpis(current), current, base, period_info.comparison_type)
    sparkline_data, sparkline_labels = compute_kpi_sparklines(current, base, period_info)
    chart_data = build_trends(current, base, filters.period, period_info)

    payload: Dict[str, Any] = {
        "filters": filters.to_dict(),
        "periodInfo": period_info.as_payload(),
        "kpiData": comparison.as_payload(),
        "modeData": compute_mode_data(current, base, period_info),
        "kpiSparklineData": sparkline_data,
        "kpiSparklineLabels": sparkline_labels,
        "chartData": chart_data,
        "filterOptions": filter_options(records),
        "recordCount": int(len(current)),
    }
    if include_charts:
        payload["charts"] = build_dashboard_charts(chart_data)
    logger.debug("dashboard computed for %s: %d of %d records", filters.period, len(current), len(records))
    return payload


@lru_cache(maxsize=32)
def cached_dashboard(dataset: Dataset, filters: FilterState, include_charts: bool = True) -> Dict[str, Any]:
    """Memoized dashboard payload keyed on (dataset identity, filter state)."""
    ctx = prepare_context(filters, dataset)
    return compute_dashboard(filters, ctx, include_charts=include_charts)


def chart_filter_options(chart_data: Dict[str, Any]) -> Dict[str, List[str]]:
    """Values each chart cross-filter can focus on, in first-seen order."""
    conversions = chart_data.get("conversionSeries", [])
    products = [key for item in chart_data.get("productSeries", []) for key in item["values"] if key != OTHERS]
    options = {
        "month": [item["rawMonth"] for item in conversions if item.get("rawMonth")],
        "customer": [r["name"] for r in chart_data.get("topCustomers", [])],
        "salesman": [r["name"] for r in chart_data.get("topSalesmen", [])],
        "agent": [r["name"] for r in chart_data.get("topAgents", [])],
        "tradelane": [r["lane"] for r in chart_data.get("topTradelanes", [])],
        "product": products,
    }
    return {key: list(dict.fromkeys(values)) for key, values in options.items()}
