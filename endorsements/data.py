from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, IO, Iterable, List, Optional, Tuple, Union

import pandas as pd

from endorsements.filters import DashboardFilters, normalize_filters

logger = logging.getLogger(__name__)

REQUIRED_SHEETS = ["DAILY", "BOM", "CAMPAIGN", "CAMPAIGN_BOM"]
OPTIONAL_SHEETS = ["FIELD_DAILY", "FIELD_BOM", "FIELD_CAMPAIGN", "FIELD_ENDO", "PER_AREA"]
ALL_SHEETS = REQUIRED_SHEETS + OPTIONAL_SHEETS

SHEET_KEYS = {
    "DAILY": "daily",
    "BOM": "bom",
    "CAMPAIGN": "campaign",
    "CAMPAIGN_BOM": "campaign_bom",
    "FIELD_DAILY": "field_daily",
    "FIELD_BOM": "field_bom",
    "FIELD_CAMPAIGN": "field_campaign",
    "FIELD_ENDO": "field_endo",
    "PER_AREA": "per_area",
}

SHEET_COLUMNS: Dict[str, Dict[str, str]] = {
    "DAILY": {
        "DATE": "date",
        "PRODUCT TYPE": "product_type",
        "ENDORSEMENTS": "endorsements",
        "ENDORSEMENTS OB": "endorsements_ob",
        "PULLOUT": "pullouts",
        "PULLOUT OB": "pullouts_ob",
        "Total Portfolio": "portfolio",
        "Total Portfolio OB": "portfolio_ob",
    },
    "BOM": {"MONTH": "month", "PRODUCT TYPE": "product_type", "TNA": "bom", "OB": "bom_ob"},
    "CAMPAIGN": {
        "DATE": "date",
        "CAMPAIGN": "client",
        "PRODUCT TYPE": "product_type",
        "NEW ENDO": "endorsements",
        "NEW ENDO OB": "endorsements_ob",
        "PULLOUT": "pullouts",
        "PULLOUT OB": "pullouts_ob",
        "Total Portfolio": "portfolio",
        "Total Portfolio OB": "portfolio_ob",
    },
    "CAMPAIGN_BOM": {"MONTH": "month", "CAMPAIGN": "client", "TNA": "bom", "OB": "bom_ob"},
    "FIELD_DAILY": {"DATE": "date", "PRODUCT TYPE": "product_type", "TNA": "visited"},
    "FIELD_BOM": {"MONTH": "month", "PRODUCT TYPE": "product_type", "TNA": "bom", "OB": "bom_ob"},
    "FIELD_CAMPAIGN": {"DATE": "date", "CAMPAIGN": "client", "PRODUCT TYPE": "product_type", "TNA": "visited"},
    "FIELD_ENDO": {
        "MONTH": "month",
        "PRODUCT TYPE": "product_type",
        "CAMPAIGN": "client",
        "ENDORSED TO FIELD": "endorsed_to_field",
        "OB": "endorsed_to_field_ob",
    },
    "PER_AREA": {"DATE": "date", "AREA": "area", "CAMPAIGN": "client", "PRODUCT TYPE": "product_type", "TNA": "visited"},
}

KEY_COLUMNS = ["month", "product_type", "client", "area"]
MEASURE_COLUMNS = [
    "endorsements",
    "endorsements_ob",
    "pullouts",
    "pullouts_ob",
    "portfolio",
    "portfolio_ob",
    "bom",
    "bom_ob",
    "visited",
    "endorsed_to_field",
    "endorsed_to_field_ob",
]

MONTH_NAMES = [
    "JANUARY",
    "FEBRUARY",
    "MARCH",
    "APRIL",
    "MAY",
    "JUNE",
    "JULY",
    "AUGUST",
    "SEPTEMBER",
    "OCTOBER",
    "NOVEMBER",
    "DECEMBER",
]

FileSource = Union[str, Path, IO[bytes]]


class WorkbookValidationError(ValueError):
    """Raised when an uploaded workbook cannot be used."""


@dataclass(frozen=True)
class NetFlow:
    value: float
    is_special: bool


# ---------------- Cleaning helpers ----------------
def drop_duplicate_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[:, ~df.columns.duplicated()]


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            cleaned = df[col].astype(str).str.replace(",", "", regex=False).str.strip()
            df[col] = pd.to_numeric(cleaned, errors="coerce").fillna(0.0).astype(float)
    return df


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col]
            if isinstance(series, pd.DataFrame):
                series = series.iloc[:, 0]
            series = series.astype("string").str.strip()
            series = series.replace({"nan": pd.NA, "None": pd.NA, "NaT": pd.NA, "": pd.NA})
            df[col] = series
    return df


def parse_dates(series: pd.Series) -> pd.Series:
    parsed = pd.to_datetime(series, errors="coerce", format="mixed")
    return parsed.dt.normalize()


def month_name(dates: pd.Series) -> pd.Series:
    months = dates.dt.month
    return months.map(lambda m: MONTH_NAMES[int(m) - 1] if pd.notna(m) else None).astype("string")


def normalize_sheet(sheet: str, raw: pd.DataFrame) -> pd.DataFrame:
    columns = SHEET_COLUMNS[sheet]
    df = raw.copy()
    df.columns = [str(c).strip() for c in df.columns]
    df = df.rename(columns=columns)
    df = drop_duplicate_columns(df)
    df = df[[c for c in columns.values() if c in df.columns]].copy()
    df = df.dropna(how="all")
    for col in columns.values():
        if col not in df.columns:
            df[col] = 0.0 if col in MEASURE_COLUMNS else pd.NA

    df = numericize(df, [c for c in columns.values() if c in MEASURE_COLUMNS])
    df = coerce_str_safe(df, [c for c in columns.values() if c in KEY_COLUMNS])
    if "date" in df.columns:
        df["date"] = parse_dates(df["date"])
        df["month"] = month_name(df["date"])
    elif "month" in df.columns:
        df["month"] = df["month"].str.upper()
    return df.reset_index(drop=True)


def empty_sheet(sheet: str) -> pd.DataFrame:
    return normalize_sheet(sheet, pd.DataFrame(columns=list(SHEET_COLUMNS[sheet].keys())))


def validate_sheet_names(sheet_names: Iterable[str]) -> List[str]:
    present = set(sheet_names)
    return [f'Missing required sheet: "{name}"' for name in REQUIRED_SHEETS if name not in present]


def build_data_context(raw_sheets: Dict[str, pd.DataFrame], *, source: str) -> Dict[str, Any]:
    """Normalize every known sheet; unknown sheets are ignored, absent ones come back empty."""
    data_ctx: Dict[str, Any] = {"source": source, "sheets": [s for s in ALL_SHEETS if s in raw_sheets]}
    for sheet in ALL_SHEETS:
        raw = raw_sheets.get(sheet)
        data_ctx[SHEET_KEYS[sheet]] = normalize_sheet(sheet, raw) if raw is not None else empty_sheet(sheet)
    logger.info(
        "Loaded %s: %s",
        source,
        ", ".join(f"{s}={len(data_ctx[SHEET_KEYS[s]])}" for s in data_ctx["sheets"]),
    )
    return data_ctx


# ---------------- Loaders ----------------
def load_workbook(file_source: FileSource, *, source: Optional[str] = None) -> Dict[str, Any]:
    try:
        xls = pd.ExcelFile(file_source)
    except Exception as exc:
        raise WorkbookValidationError(f"Invalid Excel file: {exc}") from exc

    errors = validate_sheet_names(xls.sheet_names)
    if errors:
        raise WorkbookValidationError("\n".join(errors))

    raw_sheets = {name: pd.read_excel(xls, name) for name in ALL_SHEETS if name in xls.sheet_names}
    label = source or getattr(file_source, "name", None) or str(file_source)
    return build_data_context(raw_sheets, source=str(label))


@lru_cache(maxsize=4)
def _load_workbook_cached(path: str, mtime: float) -> Dict[str, Any]:
    return load_workbook(path, source=Path(path).name)


def load_workbook_path(path: Union[str, Path]) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise WorkbookValidationError(f"Workbook not found: {p}")
    return _load_workbook_cached(str(p.resolve()), p.stat().st_mtime)


# ---------------- Shared computations ----------------
def measure(base: str, view_mode: str) -> str:
    return f"{base}_ob" if view_mode == "ob" else base


def _match(series: pd.Series, value: str) -> pd.Series:
    return series.astype("string").eq(value).fillna(False).astype(bool)


def filter_rows(
    df: pd.DataFrame,
    *,
    month: Optional[str] = None,
    product_type: Optional[str] = None,
    client: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> pd.DataFrame:
    if df is None or df.empty:
        return df if df is not None else pd.DataFrame()
    mask = pd.Series(True, index=df.index)
    for col, value in (("month", month), ("product_type", product_type), ("client", client)):
        if value is not None and col in df.columns:
            mask &= _match(df[col], value)
    if "date" in df.columns:
        dates = df["date"]
        if start is not None:
            mask &= dates.isna() | (dates >= pd.Timestamp(start))
        if end is not None:
            mask &= dates.isna() | (dates <= pd.Timestamp(end))
    return df[mask]


def up_to_day(df: pd.DataFrame, max_day: int) -> pd.DataFrame:
    if df.empty or "date" not in df.columns:
        return df
    return df[df["date"].isna() | (df["date"].dt.day <= max_day)]


def sort_by_date(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty or "date" not in df.columns:
        return df
    return df.sort_values("date", kind="stable")


def lookup_bom(
    bom_df: pd.DataFrame,
    month: Optional[str],
    view_mode: str,
    *,
    product_type: Optional[str] = None,
    client: Optional[str] = None,
) -> float:
    if bom_df is None or bom_df.empty:
        return 0.0
    rows = filter_rows(bom_df, month=month, product_type=product_type, client=client)
    if rows.empty:
        return 0.0
    return float(rows.iloc[0][measure("bom", view_mode)])


def compute_net_flow(endorsements: float, pullouts: float) -> NetFlow:
    if pullouts == 0 and endorsements > 0:
        return NetFlow(value=-1.0, is_special=True)
    if pullouts == 0:
        return NetFlow(value=0.0, is_special=True)
    return NetFlow(value=endorsements / pullouts, is_special=False)


def growth_pct(active: float, bom: float) -> float:
    return ((active - bom) / bom) * 100 if bom != 0 else 0.0


def portfolio_summary(
    rows: pd.DataFrame, bom: float, view_mode: str, *, allow_empty: bool = False
) -> Optional[Dict[str, Any]]:
    if rows.empty and not allow_empty:
        return None
    if rows.empty:
        active = total_endorsements = total_pullouts = 0.0
    else:
        ordered = sort_by_date(rows)
        active = float(ordered[measure("portfolio", view_mode)].iloc[-1])
        total_endorsements = float(rows[measure("endorsements", view_mode)].sum())
        total_pullouts = float(rows[measure("pullouts", view_mode)].sum())
    return {
        "bom": float(bom),
        "active": active,
        "portfolio_growth": growth_pct(active, bom),
        "net_flow": asdict(compute_net_flow(total_endorsements, total_pullouts)),
        "total_endorsements": total_endorsements,
        "total_pullouts": total_pullouts,
    }


DAILY_MOVEMENT_COLUMNS = ["date", "endorsements", "pullouts", "net_flow_ratio", "portfolio_growth", "portfolio"]
MTD_COLUMNS = ["date", "cumulative_endorsements", "cumulative_pullouts", "mtd_net_flow_ratio", "mtd_portfolio_growth"]


def _safe_ratio(num: pd.Series, den: pd.Series) -> pd.Series:
    return (num / den.where(den != 0)).fillna(0.0)


def daily_movement(rows: pd.DataFrame, bom: float, view_mode: str) -> pd.DataFrame:
    if rows.empty:
        return pd.DataFrame(columns=DAILY_MOVEMENT_COLUMNS)
    ordered = sort_by_date(rows)
    daily = pd.DataFrame(
        {
            "date": ordered["date"].to_numpy(),
            "endorsements": ordered[measure("endorsements", view_mode)].to_numpy(dtype=float),
            "pullouts": ordered[measure("pullouts", view_mode)].to_numpy(dtype=float),
            "portfolio": ordered[measure("portfolio", view_mode)].to_numpy(dtype=float),
        }
    )
    daily["net_flow_ratio"] = _safe_ratio(daily["endorsements"], daily["pullouts"])
    daily["portfolio_growth"] = ((daily["portfolio"] - bom) / bom) * 100 if bom != 0 else 0.0
    return daily[DAILY_MOVEMENT_COLUMNS]


def mtd_trend(daily: pd.DataFrame) -> pd.DataFrame:
    if daily.empty:
        return pd.DataFrame(columns=MTD_COLUMNS)
    trend = pd.DataFrame({"date": daily["date"]})
    trend["cumulative_endorsements"] = daily["endorsements"].cumsum()
    trend["cumulative_pullouts"] = daily["pullouts"].cumsum()
    trend["mtd_net_flow_ratio"] = _safe_ratio(trend["cumulative_endorsements"], trend["cumulative_pullouts"])
    trend["mtd_portfolio_growth"] = daily["portfolio_growth"]
    return trend[MTD_COLUMNS]


def field_summary(
    visit_rows: pd.DataFrame,
    endo_rows: pd.DataFrame,
    mtd_rows: pd.DataFrame,
    bom: float,
    view_mode: str,
) -> Optional[Dict[str, float]]:
    """Field KPIs; PENDING is measured against what was endorsed to the field, not the portfolio."""
    if visit_rows.empty:
        return None
    endorse_to_field = float(endo_rows[measure("endorsed_to_field", view_mode)].sum()) if not endo_rows.empty else 0.0
    total_new_endo = float(mtd_rows[measure("endorsements", view_mode)].sum()) if not mtd_rows.empty else 0.0
    total_pullouts = float(mtd_rows[measure("pullouts", view_mode)].sum()) if not mtd_rows.empty else 0.0
    total_visited = float(visit_rows["visited"].sum())
    return {
        "total_portfolio": float(bom) + total_new_endo,
        "endorse_to_field": endorse_to_field,
        "total_visited": total_visited,
        "total_pending": endorse_to_field - total_visited,
        "total_new_endo": total_new_endo,
        "total_pullouts": total_pullouts,
    }


def daily_visits(rows: pd.DataFrame) -> pd.DataFrame:
    if rows.empty:
        return pd.DataFrame(columns=["date", "visited"])
    return sort_by_date(rows)[["date", "visited"]].reset_index(drop=True)


def visits_by(rows: pd.DataFrame, series_col: str) -> pd.DataFrame:
    """Wide date x ``series_col`` table of summed visits; absent cells are 0."""
    if rows.empty or series_col not in rows.columns:
        return pd.DataFrame(columns=["date"])
    base = rows.dropna(subset=["date", series_col])
    if base.empty:
        return pd.DataFrame(columns=["date"])
    wide = base.pivot_table(index="date", columns=series_col, values="visited", aggfunc="sum", fill_value=0.0)
    wide = wide.sort_index().reset_index()
    wide.columns.name = None
    wide.columns = [str(c) if c != "date" else c for c in wide.columns]
    return wide


# ---------------- Options ----------------
def get_options(data_ctx: Dict[str, Any]) -> Dict[str, List[str]]:
    def frame(key: str) -> pd.DataFrame:
        return data_ctx.get(key, pd.DataFrame())

    dated = [frame(k)[["date", "month"]] for k in ("daily", "campaign", "field_daily") if {"date", "month"}.issubset(frame(k).columns)]
    months: List[str] = []
    if dated:
        month_df = pd.concat(dated, ignore_index=True).dropna(subset=["month"])
        if not month_df.empty:
            first_seen = month_df.groupby("month", sort=False)["date"].min().sort_values(kind="stable")
            months = [str(m) for m in first_seen.index]

    def distinct(keys: Iterable[str], col: str) -> List[str]:
        values = set()
        for k in keys:
            df = frame(k)
            if col in df.columns:
                values.update(str(v) for v in df[col].dropna().unique())
        return sorted(values)

    return {
        "months": months,
        "product_types": distinct(["daily", "campaign", "field_daily"], "product_type"),
        "clients": distinct(["campaign", "field_campaign"], "client"),
        "areas": distinct(["per_area"], "area"),
    }


# ---------------- Formatting ----------------
def format_number(value: object) -> str:
    if value is None or pd.isna(value):
        return "N/A"
    return f"{float(value):,.2f}"


def format_percent(value: object) -> str:
    if value is None or pd.isna(value):
        return "N/A"
    return f"{abs(float(value)):,.2f}%"


def format_net_flow(net_flow: Dict[str, Any]) -> str:
    return "−" if net_flow.get("is_special") else format_number(net_flow.get("value"))


def growth_indicator(value: float) -> Tuple[str, str]:
    if value > 0:
        return "↑", "green"
    if value < 0:
        return "↓", "red"
    return "−", "gray"


def net_flow_indicator(net_flow: Dict[str, Any]) -> Tuple[str, str]:
    if net_flow.get("is_special"):
        return "−", "gray"
    if float(net_flow.get("value") or 0) > 1:
        return "↑", "green"
    return "↓", "red"


# ---------------- Public API (Streamlit parity + FastAPI use) ----------------
def prepare_context(filters: dict | DashboardFilters, data_ctx: Dict[str, Any]) -> Dict[str, Any]:
    options = get_options(data_ctx)
    filt = filters if isinstance(filters, DashboardFilters) else normalize_filters(filters, options=options)

    def table(key: str) -> pd.DataFrame:
        df = data_ctx.get(key)
        return df.copy() if isinstance(df, pd.DataFrame) else pd.DataFrame()

    daily = table("daily")
    bom = table("bom")
    campaign = table("campaign")
    campaign_bom = table("campaign_bom")
    field_daily = table("field_daily")
    field_campaign = table("field_campaign")
    field_endo = table("field_endo")
    per_area = table("per_area")

    dates = {"start": filt.start_date, "end": filt.end_date}
    field_dates = {"start": filt.field_start_date, "end": filt.field_end_date}

    overall_rows = filter_rows(daily, month=filt.month, product_type=filt.product_type, **dates)
    client_rows = filter_rows(campaign, month=filt.month, client=filt.client, **dates)
    overall_bom = lookup_bom(bom, filt.month, filt.view_mode, product_type=filt.product_type)
    client_bom = lookup_bom(campaign_bom, filt.month, filt.view_mode, client=filt.client)

    # Field Result Tracker (per product type)
    field_rows = filter_rows(field_daily, month=filt.month, product_type=filt.product_type, **field_dates)
    field_mtd_rows = filter_rows(daily, month=filt.month, product_type=filt.product_type, **field_dates)
    field_endo_rows = filter_rows(field_endo, month=filt.month, product_type=filt.product_type)
    field_campaign_rows = filter_rows(field_campaign, month=filt.month, product_type=filt.product_type, **field_dates)
    per_area_rows = filter_rows(per_area, month=filt.month, product_type=filt.product_type, **field_dates)

    # Field Result Per Campaign
    field_client_rows = filter_rows(field_campaign, month=filt.month, client=filt.client, **field_dates)
    field_client_mtd_rows = filter_rows(campaign, month=filt.month, client=filt.client, **field_dates)
    field_client_endo_rows = filter_rows(field_endo, month=filt.month, client=filt.client)
    per_area_client_rows = filter_rows(per_area, month=filt.month, client=filt.client, **field_dates)

    return {
        "filters": filt,
        "options": options,
        "source": data_ctx.get("source"),
        "sheets": data_ctx.get("sheets", []),
        "daily": daily,
        "bom": bom,
        "campaign": campaign,
        "campaign_bom": campaign_bom,
        "field_daily": field_daily,
        "field_bom": table("field_bom"),
        "field_campaign": field_campaign,
        "field_endo": field_endo,
        "per_area": per_area,
        "overall_rows": overall_rows,
        "overall_bom": overall_bom,
        "client_rows": client_rows,
        "client_bom": client_bom,
        "field_rows": field_rows,
        "field_mtd_rows": field_mtd_rows,
        "field_endo_rows": field_endo_rows,
        "field_campaign_rows": field_campaign_rows,
        "per_area_rows": per_area_rows,
        "field_client_rows": field_client_rows,
        "field_client_mtd_rows": field_client_mtd_rows,
        "field_client_endo_rows": field_client_endo_rows,
        "per_area_client_rows": per_area_client_rows,
    }
