from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class DashboardFiltersModel(BaseModel):
    view: Literal["overall", "client", "monthly", "field", "field_campaign"] = "overall"
    month: Optional[str] = None
    product_type: Optional[str] = None
    client: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    field_start_date: Optional[date] = None
    field_end_date: Optional[date] = None
    view_mode: Literal["count", "ob"] = "count"
    selected_months: List[str] = Field(default_factory=list)
    comparison_product_type: Optional[str] = None
    client_ranking: Literal["all", "top5", "bottom5"] = "all"
