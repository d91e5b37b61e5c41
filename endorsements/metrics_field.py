from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from endorsements.charts import labelled_visits_chart, to_vega_spec, visits_chart
from endorsements.data import daily_visits, field_summary, visits_by
from endorsements.filters import DashboardFilters


def _visit_charts(daily: pd.DataFrame, **wide_tables: pd.DataFrame) -> Dict[str, Any]:
    charts: Dict[str, Any] = {}
    if not daily.empty:
        charts["daily_visitation"] = to_vega_spec(labelled_visits_chart(daily))
    for key, (wide, series_title) in wide_tables.items():
        if not wide.empty and len(wide.columns) > 1:
            charts[key] = to_vega_spec(visits_chart(wide, series_title=series_title))
    return charts


def compute_field_tracker(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("field_rows", pd.DataFrame())
    metrics = field_summary(
        rows,
        ctx.get("field_endo_rows", pd.DataFrame()),
        ctx.get("field_mtd_rows", pd.DataFrame()),
        float(ctx.get("overall_bom", 0.0) or 0.0),
        filters.view_mode,
    )
    daily = daily_visits(rows)
    per_client = visits_by(ctx.get("field_campaign_rows", pd.DataFrame()), "client")
    per_area = visits_by(ctx.get("per_area_rows", pd.DataFrame()), "area")

    return {
        "filters": asdict(filters),
        "title": filters.product_type,
        "metrics": metrics,
        "daily_visitation": daily.to_dict(orient="records"),
        "per_client": per_client.to_dict(orient="records"),
        "per_area": per_area.to_dict(orient="records"),
        "charts": _visit_charts(daily, per_client=(per_client, "client"), per_area=(per_area, "area")),
    }


def compute_field_campaign(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    rows: pd.DataFrame = ctx.get("field_client_rows", pd.DataFrame())
    metrics = field_summary(
        rows,
        ctx.get("field_client_endo_rows", pd.DataFrame()),
        ctx.get("field_client_mtd_rows", pd.DataFrame()),
        float(ctx.get("client_bom", 0.0) or 0.0),
        filters.view_mode,
    )
    daily = daily_visits(rows)
    per_area = visits_by(ctx.get("per_area_client_rows", pd.DataFrame()), "area")

    return {
        "filters": asdict(filters),
        "title": filters.client,
        "metrics": metrics,
        "daily_visitation": daily.to_dict(orient="records"),
        "per_area": per_area.to_dict(orient="records"),
        "charts": _visit_charts(daily, per_area=(per_area, "area")),
    }
