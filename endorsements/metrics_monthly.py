from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

from endorsements.charts import to_vega_spec
from endorsements.data import (
    compute_net_flow,
    filter_rows,
    growth_pct,
    lookup_bom,
    measure,
    portfolio_summary,
    sort_by_date,
    up_to_day,
)
from endorsements.filters import DashboardFilters


def comparable_day(daily: pd.DataFrame, months: List[str], product_type: Optional[str]) -> Optional[int]:
    """Latest day-of-month every selected month has reached; a month with no rows counts as 31."""
    if not months:
        return None
    last_days = []
    for month in months:
        rows = filter_rows(daily, month=month, product_type=product_type)
        days = rows["date"].dropna().dt.day if not rows.empty else pd.Series(dtype=float)
        last_days.append(int(days.max()) if not days.empty else 31)
    return min(last_days)


def rank_clients(records: List[Dict[str, Any]], ranking: str) -> List[Dict[str, Any]]:
    if ranking == "top5":
        return records[:5]
    if ranking == "bottom5":
        return list(reversed(records[-5:]))
    return records


def compute_monthly_comparison(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    daily: pd.DataFrame = ctx.get("daily", pd.DataFrame())
    campaign: pd.DataFrame = ctx.get("campaign", pd.DataFrame())
    bom_df: pd.DataFrame = ctx.get("bom", pd.DataFrame())
    campaign_bom: pd.DataFrame = ctx.get("campaign_bom", pd.DataFrame())
    months = list(filters.selected_months)
    product_type = filters.comparison_product_type
    view_mode = filters.view_mode

    max_day = comparable_day(daily, months, product_type)
    if max_day is None:
        return {"filters": asdict(filters), "max_day": None, "monthly_metrics": [], "client_comparison": [], "charts": {}}

    monthly_metrics = []
    for month in months:
        rows = up_to_day(filter_rows(daily, month=month, product_type=product_type), max_day)
        bom = lookup_bom(bom_df, month, view_mode, product_type=product_type)
        summary = portfolio_summary(rows, bom, view_mode, allow_empty=True)
        monthly_metrics.append({"month": month, **summary})

    current_month = months[0]
    client_comparison: List[Dict[str, Any]] = []
    if not campaign.empty:
        pool = up_to_day(campaign[campaign["month"].isin(months).fillna(False).astype(bool)], max_day)
        pool = pool.dropna(subset=["client"])
        endo_col, pull_col = measure("endorsements", view_mode), measure("pullouts", view_mode)
        totals = pool.groupby("client", sort=False)[[endo_col, pull_col]].sum()
        for client, row in totals.iterrows():
            client = str(client)
            bom = lookup_bom(campaign_bom, current_month, view_mode, client=client)
            current_rows = sort_by_date(up_to_day(filter_rows(campaign, month=current_month, client=client), max_day))
            active = float(current_rows[measure("portfolio", view_mode)].iloc[-1]) if not current_rows.empty else 0.0
            total_endorsements = float(row[endo_col])
            total_pullouts = float(row[pull_col])
            client_comparison.append(
                {
                    "name": client,
                    "bom": bom,
                    "active": active,
                    "portfolio_growth": growth_pct(active, bom),
                    "net_flow": asdict(compute_net_flow(total_endorsements, total_pullouts)),
                    "total_endorsements": total_endorsements,
                    "total_pullouts": total_pullouts,
                }
            )
        client_comparison.sort(key=lambda c: c["portfolio_growth"], reverse=True)

    charts: Dict[str, Any] = {}
    if monthly_metrics:
        bars = pd.DataFrame(monthly_metrics)[["month", "total_endorsements", "total_pullouts"]].melt(
            id_vars="month", var_name="metric", value_name="value"
        )
        bars["metric"] = bars["metric"].map({"total_endorsements": "Endorsements", "total_pullouts": "Pullouts"})
        bar = (
            alt.Chart(bars)
            .mark_bar()
            .encode(
                x=alt.X("month:N", title="Month", sort=months),
                xOffset=alt.XOffset("metric:N"),
                y=alt.Y("value:Q", title=f"MTD (Day {max_day})", axis=alt.Axis(format=",.0f")),
                color=alt.Color(
                    "metric:N",
                    title=None,
                    scale=alt.Scale(domain=["Endorsements", "Pullouts"], range=["#10b981", "#ef4444"]),
                ),
                tooltip=["month", "metric", alt.Tooltip("value:Q", format=",.2f")],
            )
            .properties(height=300)
        )
        charts["mtd_endorsements_pullouts"] = to_vega_spec(bar)

    return {
        "filters": asdict(filters),
        "max_day": max_day,
        "monthly_metrics": monthly_metrics,
        "client_comparison": rank_clients(client_comparison, filters.client_ranking),
        "charts": charts,
    }
