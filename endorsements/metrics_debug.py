from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from endorsements.data import ALL_SHEETS, REQUIRED_SHEETS, SHEET_KEYS
from endorsements.filters import DashboardFilters


def compute_debug(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    sheets_present = list(ctx.get("sheets", []) or [])
    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "source": ctx.get("source"),
        "sheets_present": sheets_present,
        "sheets_missing": [s for s in ALL_SHEETS if s not in sheets_present],
        "required_missing": [s for s in REQUIRED_SHEETS if s not in sheets_present],
        "row_counts": {},
        "undated_rows": {},
        "month_coverage": [],
    }

    coverage = []
    for sheet in ALL_SHEETS:
        df: pd.DataFrame = ctx.get(SHEET_KEYS[sheet], pd.DataFrame())
        payload["row_counts"][sheet] = int(len(df))
        if "date" not in df.columns:
            continue
        payload["undated_rows"][sheet] = int(df["date"].isna().sum())
        dated = df.dropna(subset=["date", "month"])
        if dated.empty:
            continue
        cov = (
            dated.groupby("month", sort=False)["date"]
            .agg(["min", "max", "nunique"])
            .reset_index()
            .rename(columns={"min": "first_date", "max": "last_date", "nunique": "days_present"})
            .sort_values("first_date")
        )
        cov.insert(0, "sheet", sheet)
        coverage.append(cov)
    if coverage:
        payload["month_coverage"] = pd.concat(coverage, ignore_index=True).to_dict(orient="records")
    return payload
