import io
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from endorsements.data import (
    WorkbookValidationError,
    format_net_flow,
    format_number,
    format_percent,
    get_options,
    growth_indicator,
    load_workbook,
    net_flow_indicator,
    prepare_context,
)
from endorsements.filters import normalize_filters
from endorsements.metrics_debug import compute_debug
from endorsements.metrics_field import compute_field_campaign, compute_field_tracker
from endorsements.metrics_monthly import compute_monthly_comparison
from endorsements.metrics_portfolio import compute_client, compute_overall
from endorsements.sheets import SheetPoller, SheetSourceConfig, fetch_google_sheet

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

DATE_FILTER_KEYS = ["start_date", "end_date", "field_start_date", "field_end_date"]


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;text-transform: uppercase;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .kpi-label {font-size: 0.85rem;font-weight: 600;color: #4b5563;}
        .kpi-value {font-size: 1.6rem;font-weight: 700;color: #111827;}
        .kpi-note {font-size: 0.75rem;color: #6b7280;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


INDICATOR_COLORS = {"green": "#16a34a", "red": "#dc2626", "gray": "#9ca3af"}


def kpi_tile(col, label: str, value: str, *, indicator: Optional[tuple] = None, note: Optional[str] = None, help: Optional[str] = None):
    icon_html = ""
    if indicator is not None:
        icon, color = indicator
        icon_html = f" <span style='color:{INDICATOR_COLORS.get(color, '#9ca3af')}'>{icon}</span>"
    col.markdown(f"<div class='kpi-label'>{label}</div>", unsafe_allow_html=True, help=help)
    col.markdown(f"<div class='kpi-value'>{value}{icon_html}</div>", unsafe_allow_html=True)
    if note:
        col.markdown(f"<div class='kpi-note'>{note}</div>", unsafe_allow_html=True)


def format_filter_summary(filters) -> str:
    chips = [f"Month: {filters.month or 'N/A'}"]
    if filters.view in {"overall", "field"}:
        chips.append(f"Product: {filters.product_type or 'N/A'}")
    if filters.view in {"client", "field_campaign"}:
        chips.append(f"Client: {filters.client or 'N/A'}")
    if filters.view in {"overall", "client"}:
        start, end = filters.start_date, filters.end_date
    else:
        start, end = filters.field_start_date, filters.field_end_date
    if filters.view != "monthly" and (start or end):
        chips.append(f"Dates: {start or '…'} – {end or '…'}")
    chips.append("View: Outstanding Balance" if filters.view_mode == "ob" else "View: Count")
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def render_page_header(title: str, breadcrumb: str, filter_summary_html: str, export_df: Optional[pd.DataFrame] = None, export_name: str = "export.csv"):
    inject_base_styles()
    top = st.container()
    c1, c2 = top.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if export_df is not None and not export_df.empty:
            st.download_button(
                "Export CSV",
                data=export_df.to_csv(index=False).encode("utf-8"),
                file_name=export_name,
                mime="text/csv",
            )
    st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


def show_chart(spec: Optional[Dict[str, Any]], empty_message: str = "No data available for the selected filters."):
    if not spec:
        st.info(empty_message)
        return
    st.vega_lite_chart(spec, width="stretch")


def reset_date_filters():
    for key in DATE_FILTER_KEYS:
        st.session_state[key] = None


# ---------- Data sources ----------
@st.cache_data(show_spinner=False)
def load_uploaded_workbook(data: bytes, name: str) -> Dict[str, Any]:
    return load_workbook(io.BytesIO(data), source=name)


@st.cache_resource(show_spinner=False)
def get_sheet_poller() -> SheetPoller:
    config = SheetSourceConfig.from_env()
    poller = SheetPoller(lambda: fetch_google_sheet(config), refresh_seconds=config.refresh_seconds)
    poller.start()
    return poller


def watch_for_new_data(poller: SheetPoller, seen):
    """Rerun the whole app once a background refresh lands new data or a new error."""

    @st.fragment(run_every=poller.refresh_seconds)
    def _watch():
        if poller.state != seen:
            st.rerun()

    _watch()


# ---------- UI setup ----------
st.set_page_config(page_title="MC03 Endorsement Flow Monitor", layout="wide")
inject_base_styles()
st.title("MC03 Endorsement Flow Monitor")
st.caption("Endorsements, pullouts and field visits across the monitored portfolio.")

with st.sidebar:
    st.markdown("### Data source")
    source_choice = st.radio("Data source", ["Google Sheet", "Upload Excel"], index=0, label_visibility="collapsed")

data_ctx: Optional[Dict[str, Any]] = None
if source_choice == "Upload Excel":
    with st.sidebar:
        uploaded = st.file_uploader("Upload Excel File", type=["xlsx"])
    if uploaded is None:
        st.info("Upload your Excel file to start analyzing endorsement data. Required sheets: DAILY, BOM, CAMPAIGN, CAMPAIGN_BOM.")
        st.stop()
    try:
        with st.spinner("Reading workbook..."):
            data_ctx = load_uploaded_workbook(uploaded.getvalue(), uploaded.name)
    except WorkbookValidationError as exc:
        for line in str(exc).splitlines():
            st.error(line)
        st.stop()
else:
    poller = get_sheet_poller()
    with st.sidebar:
        if st.button("Refresh Now", width="stretch"):
            with st.spinner("Refreshing..."):
                poller.refresh()
        if poller.last_refreshed:
            st.caption(f"Last updated: {poller.last_refreshed.strftime('%H:%M:%S')}")
        st.caption(f"Auto-refresh: {poller.refresh_seconds:.0f}s")
        watch_for_new_data(poller, poller.state)
    if not poller.has_data:
        with st.spinner("Loading data from Google Sheets..."):
            poller.poll()
    if not poller.has_data:
        st.error(poller.last_error or "No data loaded yet.")
        if st.button("Retry"):
            poller.refresh()
            st.rerun()
        st.stop()
    if poller.last_error:
        st.warning(f"Latest refresh failed, showing previous data: {poller.last_error}")
    data_ctx = poller.data_ctx

if data_ctx is None or data_ctx.get("daily", pd.DataFrame()).empty:
    st.info("No data available. The DAILY sheet is empty.")
    st.stop()

options = get_options(data_ctx)

# ----- Sidebar: navigation + filters -----
with st.sidebar:
    st.markdown("---")
    st.markdown("### Navigate")
    nav_choice = st.radio(
        "Navigate",
        ["Overall", "Client", "Monthly Comparison", "Field Result Tracker", "Field Result Per Campaign", "Data Quality"],
        index=0,
        label_visibility="collapsed",
    )
    st.markdown("---")
    st.markdown("### Filters")
    view_mode_label = st.radio("View mode", ["Count", "Outstanding Balance"], horizontal=True)
    month = st.selectbox("Month", options["months"]) if options["months"] else None
    product_type = st.selectbox("Product Type", options["product_types"]) if options["product_types"] else None
    client = st.selectbox("Client", options["clients"]) if options["clients"] else None
    st.markdown("**Portfolio dates**")
    d1, d2 = st.columns(2)
    start_date = d1.date_input("Start Date", value=None, key="start_date")
    end_date = d2.date_input("End Date", value=None, key="end_date")
    st.markdown("**Field dates**")
    f1, f2 = st.columns(2)
    field_start_date = f1.date_input("Start Date", value=None, key="field_start_date")
    field_end_date = f2.date_input("End Date", value=None, key="field_end_date")
    st.button("Reset Filters", on_click=reset_date_filters, width="stretch")

NAV_VIEWS = {
    "Overall": "overall",
    "Client": "client",
    "Monthly Comparison": "monthly",
    "Field Result Tracker": "field",
    "Field Result Per Campaign": "field_campaign",
    "Data Quality": "overall",
}

raw_filters = {
    "view": NAV_VIEWS[nav_choice],
    "month": month,
    "product_type": product_type,
    "client": client,
    "start_date": start_date,
    "end_date": end_date,
    "field_start_date": field_start_date,
    "field_end_date": field_end_date,
    "view_mode": "ob" if view_mode_label == "Outstanding Balance" else "count",
    "selected_months": st.session_state.get("selected_months") or [],
    "comparison_product_type": st.session_state.get("comparison_product_type"),
    "client_ranking": st.session_state.get("client_ranking", "all"),
}
filters = normalize_filters(raw_filters, options=options)
ctx = prepare_context(filters, data_ctx)


# ----- Page renderers -----
def render_summary(summary: Optional[Dict[str, Any]], title: Optional[str]):
    with card(f"{title or 'N/A'} - Summary"):
        if summary is None:
            st.info("No rows match the selected filters.")
            return
        cols = st.columns(4)
        kpi_tile(cols[0], "BOM", format_number(summary["bom"]), help="Beginning of Month - Starting portfolio value")
        kpi_tile(cols[1], "ACTIVE", format_number(summary["active"]), help="Current active portfolio value")
        kpi_tile(
            cols[2],
            "NET GROWTH",
            format_percent(summary["portfolio_growth"]),
            indicator=growth_indicator(summary["portfolio_growth"]),
            help="Percentage growth from BOM to Active",
        )
        kpi_tile(
            cols[3],
            "NET FLOW",
            format_net_flow(summary["net_flow"]),
            indicator=net_flow_indicator(summary["net_flow"]),
            help="Ratio of endorsements to pullouts (higher is better)",
        )


def render_portfolio_charts(payload: Dict[str, Any]):
    charts = payload["charts"]
    with card("Net Flow Daily"):
        show_chart(charts.get("net_flow_daily"))
    left, right = st.columns(2)
    with left:
        with card("Daily Movement"):
            st.markdown("**Daily Endorsements vs Pullouts**")
            show_chart(charts.get("daily_endorsements_pullouts"))
            st.markdown("**Daily Net Growth**")
            show_chart(charts.get("daily_net_growth"))
    with right:
        with card("MTD Trends"):
            st.markdown("**Cumulative Endorsements vs Pullouts**")
            show_chart(charts.get("mtd_endorsements_pullouts"))
            st.markdown("**MTD Net Flow Ratio**")
            show_chart(charts.get("mtd_net_flow"))
            st.markdown("**MTD Net Growth**")
            show_chart(charts.get("mtd_net_growth"))


def render_overall_page():
    render_page_header("Overall", "Home / Overall", format_filter_summary(filters), export_df=ctx["overall_rows"], export_name="overall.csv")
    payload = compute_overall(filters, ctx)
    render_summary(payload["summary"], payload["title"])
    if payload["summary"] is not None:
        render_portfolio_charts(payload)


def render_client_page():
    render_page_header("Client", "Home / Client", format_filter_summary(filters), export_df=ctx["client_rows"], export_name="client.csv")
    payload = compute_client(filters, ctx)
    render_summary(payload["summary"], payload["title"])
    if payload["summary"] is not None:
        render_portfolio_charts(payload)


def render_monthly_page():
    render_page_header("Monthly Comparison", "Home / Monthly Comparison", format_filter_summary(filters))
    with card("MTD Comparison Filters"):
        cols = st.columns(3)
        default_months = options["months"][:1]
        cols[0].multiselect("Select Months", options["months"], default=default_months, key="selected_months")
        if options["product_types"]:
            cols[1].selectbox("Product Type", options["product_types"], key="comparison_product_type")
        cols[2].radio(
            "Client ranking",
            ["all", "top5", "bottom5"],
            format_func={"all": "All", "top5": "Top 5", "bottom5": "Bottom 5"}.get,
            horizontal=True,
            key="client_ranking",
        )
    # Widgets above write session state after `filters` was built; rebuild from it.
    monthly_filters = normalize_filters(
        {
            **raw_filters,
            "selected_months": st.session_state.get("selected_months") or [],
            "comparison_product_type": st.session_state.get("comparison_product_type"),
            "client_ranking": st.session_state.get("client_ranking", "all"),
        },
        options=options,
    )
    if not st.session_state.get("selected_months"):
        st.info("Select at least one month to compare.")
        return
    payload = compute_monthly_comparison(monthly_filters, ctx)
    st.markdown(f"<span class='chip'>Day {payload['max_day']} MTD</span>", unsafe_allow_html=True)

    with card("MTD Performance Overview"):
        metrics = payload["monthly_metrics"]
        cols = st.columns(max(1, len(metrics)))
        for col, m in zip(cols, metrics):
            col.markdown(f"**{m['month']}**")
            col.markdown(f"BOM: **{format_number(m['bom'])}**")
            col.markdown(f"Active: **{format_number(m['active'])}**")
            g_icon, _ = growth_indicator(m["portfolio_growth"])
            col.markdown(f"Net Growth: **{format_percent(m['portfolio_growth'])}** {g_icon}")
            nf_icon, _ = net_flow_indicator(m["net_flow"])
            col.markdown(f"Net Flow: **{format_net_flow(m['net_flow'])}** {nf_icon}")

    with card("MTD Endorsements vs Pullouts"):
        show_chart(payload["charts"].get("mtd_endorsements_pullouts"))

    with card("Client-Level MTD Comparison"):
        clients: List[Dict[str, Any]] = payload["client_comparison"]
        if not clients:
            st.info("No client rows for the selected months.")
            return
        table = pd.DataFrame(
            [
                {
                    "Client": c["name"],
                    "BOM": format_number(c["bom"]),
                    "Active": format_number(c["active"]),
                    "Net Growth %": f"{format_percent(c['portfolio_growth'])} {growth_indicator(c['portfolio_growth'])[0]}",
                    "Net Flow": f"{format_net_flow(c['net_flow'])} {net_flow_indicator(c['net_flow'])[0]}",
                }
                for c in clients
            ]
        )
        st.dataframe(table, hide_index=True, width="stretch")


def render_field_tiles(metrics: Optional[Dict[str, float]]):
    if metrics is None:
        st.info("No field visits for the selected filters.")
        return
    cols = st.columns(4)
    kpi_tile(
        cols[0],
        "Total Portfolio",
        format_number(metrics["total_portfolio"]),
        note=f"BOM + New Endo: {format_number(metrics['total_new_endo'])}",
    )
    kpi_tile(cols[1], "Endorse to Field", format_number(metrics["endorse_to_field"]), note="ENDORSED TO FIELD (FIELD_ENDO)")
    kpi_tile(cols[2], "VISITED", format_number(metrics["total_visited"]), note="Total accounts visited (MTD)")
    kpi_tile(
        cols[3],
        "PENDING",
        format_number(metrics["total_pending"]),
        note=f"ETF: {format_number(metrics['endorse_to_field'])} - Visited: {format_number(metrics['total_visited'])}",
    )


def render_field_page():
    render_page_header("Field Result Tracker", "Home / Field Result Tracker", format_filter_summary(filters), export_df=ctx["field_rows"], export_name="field.csv")
    payload = compute_field_tracker(filters, ctx)
    render_field_tiles(payload["metrics"])
    with card("Daily Visitation"):
        show_chart(payload["charts"].get("daily_visitation"))
    with card("Per Client"):
        show_chart(payload["charts"].get("per_client"))
    with card("Per Area"):
        show_chart(payload["charts"].get("per_area"), "No area data available for the selected filters.")


def render_field_campaign_page():
    render_page_header(
        "Field Result Per Campaign",
        "Home / Field Result Per Campaign",
        format_filter_summary(filters),
        export_df=ctx["field_client_rows"],
        export_name="field_campaign.csv",
    )
    payload = compute_field_campaign(filters, ctx)
    render_field_tiles(payload["metrics"])
    with card(f"{filters.client or ''} - Daily Visitation"):
        show_chart(payload["charts"].get("daily_visitation"))
    with card(f"{filters.client or ''} - Per Area"):
        show_chart(payload["charts"].get("per_area"), "No area data available for this client.")


def render_debug_page():
    render_page_header("Data Quality", "Home / Data Quality", format_filter_summary(filters))
    payload = compute_debug(filters, ctx)
    with card("Data Quality"):
        st.markdown(f"**Source:** {payload['source']}")
        st.markdown("**Row counts**")
        st.write(payload["row_counts"])
        st.markdown("**Rows with unparseable dates**")
        st.write(payload["undated_rows"])
        if payload["sheets_missing"]:
            st.markdown("**Optional sheets not present**")
            st.write(payload["sheets_missing"])
        if payload["month_coverage"]:
            st.markdown("**Month coverage**")
            st.dataframe(pd.DataFrame(payload["month_coverage"]), hide_index=True, width="stretch")


if nav_choice == "Overall":
    render_overall_page()
elif nav_choice == "Client":
    render_client_page()
elif nav_choice == "Monthly Comparison":
    render_monthly_page()
elif nav_choice == "Field Result Tracker":
    render_field_page()
elif nav_choice == "Field Result Per Campaign":
    render_field_campaign_page()
else:
    render_debug_page()
