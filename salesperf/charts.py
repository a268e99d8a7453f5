from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _order(series: List[Dict[str, Any]]) -> List[str]:
    return [item["label"] for item in series]


def conversion_chart(series: List[Dict[str, Any]]) -> alt.LayerChart:
    df = pd.DataFrame(series, columns=["label", "enquiries", "converted", "rate"])
    long = df.melt(id_vars=["label", "rate"], value_vars=["enquiries", "converted"], var_name="measure", value_name="count")
    order = _order(series)
    bars = (
        alt.Chart(long)
        .mark_bar()
        .encode(
            x=alt.X("label:N", sort=order, title=None, axis=alt.Axis(grid=False)),
            xOffset="measure:N",
            y=alt.Y("count:Q", title="Count", axis=alt.Axis(format="~s", gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("measure:N", title=None),
            tooltip=[alt.Tooltip("label", title="Period"), alt.Tooltip("measure"), alt.Tooltip("count", format=",.0f")],
        )
    )
    rate = (
        alt.Chart(df)
        .mark_line(point=True, color="#00D458")
        .encode(
            x=alt.X("label:N", sort=order),
            y=alt.Y("rate:Q", title="Conversion %"),
            tooltip=[alt.Tooltip("label", title="Period"), alt.Tooltip("rate", title="Rate %", format=".1f")],
        )
    )
    return alt.layer(bars, rate).resolve_scale(y="independent")


def shipment_trend_chart(series: List[Dict[str, Any]]) -> alt.Chart:
    df = pd.DataFrame(series, columns=["label", "shipments"])
    return (
        alt.Chart(df)
        .mark_line(point={"filled": True, "size": 60})
        .encode(
            x=alt.X("label:N", sort=_order(series), title=None, axis=alt.Axis(grid=False)),
            y=alt.Y("shipments:Q", title="Converted Shipments", axis=alt.Axis(format="~s", gridDash=[4, 4])),
            tooltip=[alt.Tooltip("label", title="Period"), alt.Tooltip("shipments", format=",.0f")],
        )
    )


def breakdown_chart(series: List[Dict[str, Any]], title: str) -> alt.Chart:
    rows = [
        {"label": item["label"], "name": name, "shipments": value}
        for item in series
        for name, value in item.get("values", {}).items()
    ]
    df = pd.DataFrame(rows, columns=["label", "name", "shipments"])
    hover = alt.selection_point(fields=["name"], on="mouseover", empty="all")
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("label:N", sort=_order(series), title=None, axis=alt.Axis(grid=False)),
            y=alt.Y("shipments:Q", stack="zero", title="Converted Shipments"),
            color=alt.Color("name:N", title=title),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.4)),
            tooltip=[alt.Tooltip("label", title="Period"), alt.Tooltip("name", title=title), alt.Tooltip("shipments", format=",.0f")],
        )
        .add_params(hover)
    )


def ranking_chart(rows: List[Dict[str, Any]], name_field: str, value_field: str, title: str) -> alt.Chart:
    df = pd.DataFrame(rows, columns=[name_field, value_field])
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            y=alt.Y(f"{name_field}:N", sort="-x", title=None),
            x=alt.X(f"{value_field}:Q", title=title, axis=alt.Axis(format="~s")),
            tooltip=[alt.Tooltip(name_field), alt.Tooltip(value_field, format=",.0f")],
        )
    )


def build_dashboard_charts(chart_data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    charts = {
        "conversion": conversion_chart(chart_data.get("conversionSeries", [])),
        "shipmentTrend": shipment_trend_chart(chart_data.get("shipmentSeries", [])),
        "customerTrend": breakdown_chart(chart_data.get("customerSeries", []), "Customer"),
        "productTrend": breakdown_chart(chart_data.get("productSeries", []), "Product"),
        "topSalesmen": ranking_chart(chart_data.get("topSalesmen", []), "name", "shipments", "Converted Shipments"),
        "topAgents": ranking_chart(chart_data.get("topAgents", []), "name", "shipments", "Converted Shipments"),
        "topCustomers": ranking_chart(chart_data.get("topCustomers", []), "name", "shipments", "Converted Shipments"),
        "topTradelanes": ranking_chart(chart_data.get("topTradelanes", []), "lane", "volume", "Volume (CBM)"),
    }
    return {name: to_vega_spec(chart) for name, chart in charts.items()}
