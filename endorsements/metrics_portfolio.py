from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

import pandas as pd

from endorsements.charts import metric_line_chart, to_vega_spec
from endorsements.data import daily_movement, mtd_trend, portfolio_summary
from endorsements.filters import DashboardFilters


def _portfolio_payload(
    filters: DashboardFilters,
    rows: pd.DataFrame,
    bom: float,
    *,
    title: Optional[str],
) -> Dict[str, Any]:
    summary = portfolio_summary(rows, bom, filters.view_mode)
    daily = daily_movement(rows, bom, filters.view_mode)
    mtd = mtd_trend(daily)

    charts: Dict[str, Any] = {}
    if not daily.empty:
        charts["net_flow_daily"] = to_vega_spec(
            metric_line_chart(daily, [("net_flow_ratio", "Net Flow", "#f97316")], y_title="Net Flow Ratio")
        )
        charts["daily_endorsements_pullouts"] = to_vega_spec(
            metric_line_chart(
                daily,
                [("endorsements", "Endorsements", "#10b981"), ("pullouts", "Pullouts", "#ef4444")],
                y_title="Daily Movement",
            )
        )
        charts["daily_net_growth"] = to_vega_spec(
            metric_line_chart(daily, [("portfolio_growth", "Net Growth %", "#8b5cf6")], y_title="Net Growth %")
        )
        charts["mtd_endorsements_pullouts"] = to_vega_spec(
            metric_line_chart(
                mtd,
                [
                    ("cumulative_endorsements", "Cumulative Endorsements", "#10b981"),
                    ("cumulative_pullouts", "Cumulative Pullouts", "#ef4444"),
                ],
                y_title="MTD Movement",
            )
        )
        charts["mtd_net_flow"] = to_vega_spec(
            metric_line_chart(mtd, [("mtd_net_flow_ratio", "MTD Net Flow", "#3b82f6")], y_title="MTD Net Flow Ratio")
        )
        charts["mtd_net_growth"] = to_vega_spec(
            metric_line_chart(mtd, [("mtd_portfolio_growth", "MTD Net Growth %", "#8b5cf6")], y_title="MTD Net Growth %")
        )

    return {
        "filters": asdict(filters),
        "title": title,
        "summary": summary,
        "daily": daily.to_dict(orient="records"),
        "mtd": mtd.to_dict(orient="records"),
        "charts": charts,
    }


def compute_overall(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("overall_rows", pd.DataFrame())
    bom = float(ctx.get("overall_bom", 0.0) or 0.0)
    return _portfolio_payload(filters, rows, bom, title=filters.product_type)


def compute_client(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("client_rows", pd.DataFrame())
    bom = float(ctx.get("client_bom", 0.0) or 0.0)
    return _portfolio_payload(filters, rows, bom, title=filters.client)
