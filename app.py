import pandas as pd
import streamlit as st
from contextlib import contextmanager
from typing import Dict, List, Optional

from salesperf import ingest
from salesperf.dashboard import chart_filter_options
from salesperf.data import DIMENSION_COLUMNS, format_change, format_large_number
from salesperf.filters import FilterState, normalize_filters
from salesperf.metrics_kpi import KPI_PAYLOAD_KEYS
from salesperf.periods import PERIOD_CHOICES
from salesperf.saved_filters import SavedFilterStore
from salesperf.session import DashboardSession

PERIOD_LABELS = {
    "last-4-weeks": "Last 4 Weeks",
    "last-2-months": "Last 2 Months",
    "last-6-months": "Last 6 Months",
    "custom": "Custom Range",
}
KPI_TILES = [
    ("total_enquiries", "Total Enquiries", False),
    ("converted_shipments", "Converted Shipments", False),
    ("conversion_rate", "Conversion Rate", True),
    ("total_shipments", "Total Shipments", False),
    ("total_volume", "Volume (CBM)", False),
    ("total_weight", "Weight (KG)", False),
    ("active_customers", "Active Customers", False),
]


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(filters: FilterState) -> str:
    chips = [f"Period: {PERIOD_LABELS.get(filters.period, filters.period)}"]
    for dim in DIMENSION_COLUMNS:
        values = filters.dimension_values(dim)
        if values:
            chips.append(f"{dim.title()}: {', '.join(values)}")
    for key, value in filters.chart_filters:
        chips.append(f"Chart {key}: {value}")
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def get_session() -> DashboardSession:
    if "dashboard_session" not in st.session_state:
        session = DashboardSession(ingest.load_dashboard_data())
        default = SavedFilterStore().get_default()
        if default is not None:
            session.set_filters(default.state)
        st.session_state["dashboard_session"] = session
    return st.session_state["dashboard_session"]


# ---------- Sections ----------
def render_kpi_tiles(kpi: Dict[str, Dict], sparklines: Dict[str, List[float]], comparison_label: str):
    current, changes = kpi["current"], kpi["changes"]
    cols = st.columns(len(KPI_TILES))
    for col, (field, label, is_rate) in zip(cols, KPI_TILES):
        value = current[KPI_PAYLOAD_KEYS[field]]
        change = changes.get(KPI_PAYLOAD_KEYS[field])
        col.metric(
            label,
            f"{value:.1f}%" if is_rate else format_large_number(value),
            delta=f"{format_change(change)} {comparison_label}" if change is not None else "N/A",
            delta_color="normal" if change is not None else "off",
        )
    spark_cols = st.columns(3)
    for col, key in zip(spark_cols, ["enquiries", "convertedShipments", "conversionRate"]):
        col.line_chart(pd.DataFrame({key: sparklines.get(key, [])}), height=80)


def render_mode_cards(mode_data: Dict[str, Dict]):
    cols = st.columns(3)
    for col, (key, mode) in zip(cols, mode_data.items()):
        with col:
            with card(key.upper()):
                st.metric(
                    "Converted Shipments",
                    format_large_number(mode["shipments"]),
                    delta=format_change(mode["change"]) if mode["change"] is not None else "N/A",
                    delta_color="normal" if mode["change"] is not None else "off",
                )
                st.caption(f"Volume {format_large_number(mode['volume'])} CBM | Weight {format_large_number(mode['weight'])} KG")
                st.line_chart(pd.DataFrame({"shipments": mode["sparklineData"]}), height=80)


def render_charts(charts: Dict[str, Dict], chart_data: Dict[str, List]):
    left, right = st.columns(2)
    with left:
        with card("Enquiries vs Conversions"):
            st.vega_lite_chart(charts["conversion"], use_container_width=True)
        with card("Customer Trend"):
            st.vega_lite_chart(charts["customerTrend"], use_container_width=True)
    with right:
        with card("Shipment Trend"):
            st.vega_lite_chart(charts["shipmentTrend"], use_container_width=True)
        with card("Product Trend"):
            st.vega_lite_chart(charts["productTrend"], use_container_width=True)

    rank_cols = st.columns(2)
    for idx, (key, title) in enumerate(
        [("topSalesmen", "Top Salesmen"), ("topAgents", "Top Agents"), ("topCustomers", "Top Customers"), ("topTradelanes", "Top Tradelanes")]
    ):
        with rank_cols[idx % 2]:
            with card(title):
                st.vega_lite_chart(charts[key], use_container_width=True)
                st.dataframe(pd.DataFrame(chart_data.get(key, [])), hide_index=True, use_container_width=True)


def render_chart_filter_controls(session: DashboardSession, chart_data: Dict[str, List]):
    options = chart_filter_options(chart_data)
    active = session.filters.chart_filter_map
    cols = st.columns(len(options) + 1)
    for col, (key, values) in zip(cols, options.items()):
        current = active.get(key, "")
        choices = [""] + sorted(set(values) | ({current} if current else set()))
        picked = col.selectbox(f"Focus {key}", choices, index=choices.index(current), key=f"chart_{key}")
        if picked != current:
            session.set_chart_filter(key, picked or None)
            st.rerun()
    if active and cols[-1].button("Clear chart filters"):
        session.clear_chart_filters()
        st.rerun()


# ---------- UI setup ----------
st.set_page_config(page_title="Sales Performance Dashboard", layout="wide")
inject_base_styles()
st.title("Sales Performance Dashboard")
st.caption("Enquiries, conversions and shipments across modes, customers and tradelanes.")

session = get_session()
store = SavedFilterStore()

with st.sidebar:
    st.markdown("### Data")
    uploaded = st.file_uploader("Upload data (CSV, XLSX, JSON)", type=["csv", "xlsx", "json"])
    if uploaded is not None and st.session_state.get("_last_upload") != uploaded.name:
        try:
            session.load_records(ingest.parse_upload(uploaded.getvalue(), uploaded.name), files=[uploaded.name])
            st.session_state["_last_upload"] = uploaded.name
            st.success(f"Loaded {len(session.dataset):,} records from {uploaded.name}")
        except ingest.TemplateError as exc:
            st.error(str(exc))
    for fmt in ("xlsx", "csv", "json"):
        content, mime, filename = ingest.template_file(fmt)
        st.download_button(f"{fmt.upper()} template", data=content, file_name=filename, mime=mime, key=f"tpl_{fmt}")

    st.markdown("---")
    st.markdown("### Filters")
    options = session.dashboard(include_charts=False)["filterOptions"]
    current = session.filters
    period = st.selectbox(
        "Period",
        PERIOD_CHOICES,
        index=PERIOD_CHOICES.index(current.period) if current.period in PERIOD_CHOICES else 2,
        format_func=lambda p: PERIOD_LABELS.get(p, p),
    )
    changes: Dict[str, object] = {"period": period}
    if period == "custom":
        months = session.dataset.months
        if months:
            start, end = st.select_slider("Months", options=months, value=(months[0], months[-1]))
            changes.update({"custom_start_month": start, "custom_end_month": end})
    for dim in DIMENSION_COLUMNS:
        selected = [v for v in current.dimension_values(dim) if v in options.get(dim, [])]
        changes[dim] = st.multiselect(dim.title(), options=options.get(dim, []), default=selected)
    updated = current.apply(**changes)
    if updated != current:
        session.set_filters(updated)
    if st.button("Reset filters"):
        session.reset_filters()
        st.rerun()

    st.markdown("---")
    st.markdown("### Saved filters")
    presets = store.list()
    if presets:
        labels = {p.id: f"{p.name}{' (default)' if p.isDefault else ''}" for p in presets}
        chosen = st.selectbox("Preset", list(labels), format_func=lambda pid: labels[pid])
        c1, c2, c3 = st.columns(3)
        if c1.button("Apply"):
            session.set_filters(next(p for p in presets if p.id == chosen).state)
            st.rerun()
        if c2.button("Default"):
            store.set_as_default(chosen)
            st.rerun()
        if c3.button("Delete"):
            store.delete(chosen)
            st.rerun()
    preset_name = st.text_input("Save current filters as", "")
    if st.button("Save preset") and preset_name.strip():
        store.save_current(preset_name.strip(), session.filters)
        st.rerun()

payload = session.dashboard()
if payload["error"]:
    st.warning(f"Showing last loaded data: {payload['error']}")
if not len(session.dataset):
    st.info("No records loaded. Upload a file or place sales_performance* files in the data directory.")
    st.stop()

period_info = payload["periodInfo"]
st.markdown(
    f"<div class='app-top-bar'><div class='page-title'>{PERIOD_LABELS.get(session.filters.period, session.filters.period)}"
    f" ({period_info['comparisonLabel']})</div></div><div class='chip-row'>{format_filter_summary(session.filters)}</div>",
    unsafe_allow_html=True,
)
export_cols = st.columns(6)
for col, fmt in zip(export_cols, ("csv", "xlsx", "json")):
    content, mime, filename = ingest.export_records(session.dataset.records, fmt)
    col.download_button(f"Export {fmt.upper()}", data=content, file_name=filename, mime=mime, key=f"export_{fmt}")

render_kpi_tiles(payload["kpiData"], payload["kpiSparklineData"], period_info["comparisonLabel"])
render_mode_cards(payload["modeData"])
render_chart_filter_controls(session, payload["chartData"])
render_charts(payload["charts"], payload["chartData"])
