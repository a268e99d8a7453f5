from __future__ import annotations

from conftest import make_records
from salesperf.dashboard import cached_dashboard, chart_filter_options, compute_dashboard, prepare_context
from salesperf.data import Dataset
from salesperf.filters import CHART_FILTER_KEYS, FilterState


def test_full_payload_shape(two_month_records):
    filters = FilterState(period="last-6-months")
    payload = compute_dashboard(filters, prepare_context(filters, Dataset(two_month_records)))

    assert set(payload) >= {
        "filters",
        "periodInfo",
        "kpiData",
        "modeData",
        "kpiSparklineData",
        "kpiSparklineLabels",
        "chartData",
        "filterOptions",
        "recordCount",
        "charts",
    }
    assert set(payload["modeData"]) == {"air", "lcl", "fcl"}
    assert payload["filterOptions"]["customer"] == ["Acme", "Globex"]
    assert payload["filters"]["period"] == "last-6-months"


def test_charts_are_vega_lite_dicts(two_month_records):
    filters = FilterState()
    charts = compute_dashboard(filters, prepare_context(filters, Dataset(two_month_records)))["charts"]
    assert set(charts) == {
        "conversion",
        "shipmentTrend",
        "customerTrend",
        "productTrend",
        "topSalesmen",
        "topAgents",
        "topCustomers",
        "topTradelanes",
    }
    for spec in charts.values():
        assert "$schema" in spec


def test_prepare_context_accepts_raw_filter_dicts(two_month_records):
    ctx = prepare_context({"period": "last-2-months", "customer": ["Acme"]}, Dataset(two_month_records))
    assert ctx["filters"].customer == ("Acme",)
    assert set(ctx["filtered_records"]["customer"]) == {"Acme"}
    assert len(ctx["comparison_records"]) == 2


def test_cached_dashboard_memoizes_on_dataset_and_filters(two_month_records):
    dataset = Dataset(two_month_records)
    first = cached_dashboard(dataset, FilterState(), False)
    assert cached_dashboard(dataset, FilterState(), False) is first
    assert cached_dashboard(dataset, FilterState(period="last-2-months"), False) is not first
    assert cached_dashboard(Dataset(two_month_records), FilterState(), False) is not first


def test_chart_filter_options_cover_every_cross_filter():
    df = make_records(
        [
            {"month": "2024-05", "customer": "Acme", "product": "Electronics", "salesman": "Ravi", "converted_shipments": 4},
            {"month": "2024-06", "customer": "Globex", "product": "Textiles", "tradelane": "BOM-DXB", "converted_shipments": 2},
            {"month": "2024-06", "customer": "Acme", "product": "Electronics", "agent": "Blue", "converted_shipments": 1},
        ]
    )
    filters = FilterState()
    payload = compute_dashboard(filters, prepare_context(filters, Dataset(df)), include_charts=False)
    options = chart_filter_options(payload["chartData"])

    assert tuple(options) == CHART_FILTER_KEYS
    assert options["product"] == ["Electronics", "Textiles"]
    assert options["month"] == ["2024-05", "2024-06"]
    assert options["customer"] == ["Acme", "Globex"]
    assert "Others" not in options["product"]
