from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

import pandas as pd

VIEWS = ("overall", "client", "monthly", "field", "field_campaign")
VIEW_MODES = ("count", "ob")
CLIENT_RANKINGS = ("all", "top5", "bottom5")


@dataclass(frozen=True)
class DashboardFilters:
    view: str = "overall"
    month: Optional[str] = None
    product_type: Optional[str] = None
    client: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    field_start_date: Optional[date] = None
    field_end_date: Optional[date] = None
    view_mode: str = "count"
    selected_months: List[str] = field(default_factory=list)
    comparison_product_type: Optional[str] = None
    client_ranking: str = "all"


def _as_date(value: object) -> Optional[date]:
    if value is None or value is pd.NaT or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        ts = pd.to_datetime(str(value))
    except (ValueError, TypeError):
        return None
    if pd.isna(ts):
        return None
    return ts.date()


def _as_text(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    out: List[str] = []
    for v in values:
        s = _as_text(v)
        if s is not None and s not in out:
            out.append(s)
    return out


def _choice(value: object, allowed: Iterable[str], default: str) -> str:
    s = (_as_text(value) or "").lower()
    return s if s in allowed else default


def normalize_filters(raw: dict, *, options: Optional[Dict[str, List[str]]] = None) -> DashboardFilters:
    options = options or {}
    months = list(options.get("months") or [])
    product_types = list(options.get("product_types") or [])
    clients = list(options.get("clients") or [])

    month = _as_text(raw.get("month"))
    if month is None and months:
        month = months[0]
    month = month.upper() if month else None

    product_type = _as_text(raw.get("product_type"))
    if product_type is None and product_types:
        product_type = product_types[0]

    client = _as_text(raw.get("client"))
    if client is None and clients:
        client = clients[0]

    selected_months = _as_str_list([m.upper() for m in _as_str_list(raw.get("selected_months"))])
    if not selected_months and months:
        selected_months = [months[0]]

    comparison_product_type = _as_text(raw.get("comparison_product_type"))
    if comparison_product_type is None and product_types:
        comparison_product_type = product_types[0]

    return DashboardFilters(
        view=_choice(raw.get("view"), VIEWS, "overall"),
        month=month,
        product_type=product_type,
        client=client,
        start_date=_as_date(raw.get("start_date")),
        end_date=_as_date(raw.get("end_date")),
        field_start_date=_as_date(raw.get("field_start_date")),
        field_end_date=_as_date(raw.get("field_end_date")),
        view_mode=_choice(raw.get("view_mode"), VIEW_MODES, "count"),
        selected_months=selected_months,
        comparison_product_type=comparison_product_type,
        client_ranking=_choice(raw.get("client_ranking"), CLIENT_RANKINGS, "all"),
    )
