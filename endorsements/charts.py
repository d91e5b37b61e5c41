from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

SERIES_PALETTE = [
    "#3b82f6",
    "#ef4444",
    "#10b981",
    "#f59e0b",
    "#8b5cf6",
    "#ec4899",
    "#14b8a6",
    "#f97316",
    "#6366f1",
    "#84cc16",
]

# (column, legend label, color)
Series = Tuple[str, str, str]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def metric_line_chart(
    df: pd.DataFrame,
    series: Sequence[Series],
    *,
    y_title: str,
    y_format: str = ",.2f",
    height: int = 260,
) -> alt.Chart:
    """Line chart over ``date`` for one or more metric columns of ``df``."""
    cols = [c for c, _, _ in series]
    labels = {c: label for c, label, _ in series}
    long_df = df[["date"] + cols].melt(id_vars="date", var_name="metric", value_name="value")
    long_df["metric"] = long_df["metric"].map(labels)
    hover = alt.selection_point(fields=["metric"], on="mouseover", empty="all")
    return (
        alt.Chart(long_df)
        .mark_line(point={"filled": True, "size": 50})
        .encode(
            x=alt.X("date:T", title="Date", axis=alt.Axis(format="%b %d", labelAngle=-45, grid=False)),
            y=alt.Y("value:Q", title=y_title, axis=alt.Axis(format=y_format, gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color(
                "metric:N",
                title=None,
                scale=alt.Scale(domain=[label for _, label, _ in series], range=[color for _, _, color in series]),
                legend=alt.Legend(orient="bottom") if len(series) > 1 else None,
            ),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.2)),
            tooltip=[
                alt.Tooltip("date:T", title="Date", format="%Y-%m-%d"),
                alt.Tooltip("metric:N", title="Metric"),
                alt.Tooltip("value:Q", title="Value", format=",.2f"),
            ],
        )
        .add_params(hover)
        .properties(height=height)
    )


def visits_chart(wide: pd.DataFrame, *, series_title: str, height: int = 300) -> alt.Chart:
    """Visits per date with one line per column of a wide date x series table."""
    names: List[str] = [c for c in wide.columns if c != "date"]
    long_df = wide.melt(id_vars="date", value_vars=names, var_name=series_title, value_name="visited")
    palette = [SERIES_PALETTE[i % len(SERIES_PALETTE)] for i in range(len(names))]
    hover = alt.selection_point(fields=[series_title], on="mouseover", empty="all")
    return (
        alt.Chart(long_df)
        .mark_line(point={"filled": True, "size": 50})
        .encode(
            x=alt.X("date:T", title="Date", axis=alt.Axis(format="%b %d", labelAngle=-45, grid=False)),
            y=alt.Y("visited:Q", title="Visited", axis=alt.Axis(format=",.0f", gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color(f"{series_title}:N", scale=alt.Scale(domain=names, range=palette)),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.2)),
            tooltip=[
                alt.Tooltip("date:T", title="Date", format="%Y-%m-%d"),
                alt.Tooltip(f"{series_title}:N"),
                alt.Tooltip("visited:Q", title="Visited", format=",.0f"),
            ],
        )
        .add_params(hover)
        .properties(height=height)
    )


def labelled_visits_chart(daily: pd.DataFrame, *, color: str = "#10b981", height: int = 300) -> alt.Chart:
    base = alt.Chart(daily).encode(
        x=alt.X("date:T", title="Date", axis=alt.Axis(format="%b %d", labelAngle=-45, grid=False)),
        y=alt.Y("visited:Q", title="Visited", axis=alt.Axis(format=",.0f", gridDash=[4, 4], domain=False, ticks=False)),
    )
    line = base.mark_line(point={"filled": True, "size": 60}, color=color).encode(
        tooltip=[alt.Tooltip("date:T", title="Date", format="%Y-%m-%d"), alt.Tooltip("visited:Q", title="Visited", format=",.0f")]
    )
    labels = base.mark_text(dy=-10, fontSize=11, fontWeight="bold", color=color).encode(text=alt.Text("visited:Q", format=",.0f"))
    return (line + labels).properties(height=height)
