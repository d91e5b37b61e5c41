from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
import logging
import math
import os
from typing import Any, Dict, Literal

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from api.schemas import DashboardFiltersModel
from endorsements.data import get_options, load_workbook_path, prepare_context
from endorsements.filters import DashboardFilters, normalize_filters
from endorsements.metrics_debug import compute_debug
from endorsements.metrics_field import compute_field_campaign, compute_field_tracker
from endorsements.metrics_monthly import compute_monthly_comparison
from endorsements.metrics_portfolio import compute_client, compute_overall
from endorsements.sheets import SheetPoller, SheetSourceConfig, fetch_google_sheet

logger = logging.getLogger(__name__)

WORKBOOK_PATH_ENV = "ENDORSEMENT_WORKBOOK_PATH"


class DataUnavailableError(RuntimeError):
    pass


@lru_cache(maxsize=1)
def get_poller() -> SheetPoller:
    config = SheetSourceConfig.from_env()
    workbook_path = (os.environ.get(WORKBOOK_PATH_ENV) or "").strip()
    if workbook_path:
        logger.info("Serving workbook %s", workbook_path)
        return SheetPoller(lambda: load_workbook_path(workbook_path), refresh_seconds=config.refresh_seconds)
    logger.info("Serving Google Sheet %s (refresh every %ss)", config.sheet_id or "<unset>", config.refresh_seconds)
    return SheetPoller(lambda: fetch_google_sheet(config), refresh_seconds=config.refresh_seconds)


@asynccontextmanager
async def lifespan(_: FastAPI):
    poller = get_poller()
    poller.start()
    try:
        yield
    finally:
        poller.stop(timeout=5)


app = FastAPI(title="Endorsement Flow Monitor API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                type(pd.NaT): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.date().isoformat(),
            },
        )
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _load_data() -> Dict[str, Any]:
    poller = get_poller()
    poller.poll()
    if not poller.has_data:
        raise DataUnavailableError(poller.last_error or "No data loaded yet")
    return poller.data_ctx  # type: ignore[return-value]


def _context(filters: DashboardFiltersModel) -> tuple[DashboardFilters, Dict[str, Any]]:
    data_ctx = _load_data()
    f = normalize_filters(filters.model_dump(), options=get_options(data_ctx))
    return f, prepare_context(f, data_ctx)


def _run(name: str, filters: DashboardFiltersModel, compute) -> JSONResponse:
    try:
        f, ctx = _context(filters)
        return _json(compute(f, ctx))
    except DataUnavailableError as exc:
        logger.warning("%s unavailable: %s", name, exc)
        return _error(exc, status_code=503)
    except Exception as exc:
        logger.exception("%s failed", name)
        return _error(exc)


@app.get("/meta/options")
def meta_options():
    try:
        return _json(get_options(_load_data()))
    except DataUnavailableError as exc:
        return _error(exc, status_code=503)
    except Exception as exc:
        logger.exception("meta_options failed")
        return _error(exc)


@app.get("/meta/status")
def meta_status():
    poller = get_poller()
    return _json(
        {
            "has_data": poller.has_data,
            "source": (poller.data_ctx or {}).get("source"),
            "last_refreshed": poller.last_refreshed.isoformat() if poller.last_refreshed else None,
            "last_error": poller.last_error,
            "refresh_seconds": poller.refresh_seconds,
        }
    )


@app.post("/refresh")
def refresh():
    poller = get_poller()
    ok = poller.refresh()
    return _json(
        {
            "ok": ok,
            "source": (poller.data_ctx or {}).get("source"),
            "last_refreshed": poller.last_refreshed.isoformat() if poller.last_refreshed else None,
            "last_error": poller.last_error,
        }
    )


@app.post("/overall")
def overall(filters: DashboardFiltersModel):
    return _run("overall", filters, compute_overall)


@app.post("/client")
def client(filters: DashboardFiltersModel):
    return _run("client", filters, compute_client)


@app.post("/monthly")
def monthly(filters: DashboardFiltersModel):
    return _run("monthly", filters, compute_monthly_comparison)


@app.post("/field")
def field(filters: DashboardFiltersModel):
    return _run("field", filters, compute_field_tracker)


@app.post("/field-campaign")
def field_campaign(filters: DashboardFiltersModel):
    return _run("field_campaign", filters, compute_field_campaign)


@app.post("/debug")
def debug(filters: DashboardFiltersModel):
    return _run("debug", filters, compute_debug)


EXPORT_TABLES: Dict[str, str] = {
    "overall": "overall_rows",
    "client": "client_rows",
    "field": "field_rows",
    "field-campaign": "field_client_rows",
    "per-area": "per_area_rows",
}


@app.post("/export/{view}")
def export_view(view: Literal["overall", "client", "field", "field-campaign", "per-area"], filters: DashboardFiltersModel):
    try:
        _, ctx = _context(filters)
        export_df = ctx.get(EXPORT_TABLES[view])
        if export_df is None or not hasattr(export_df, "to_csv"):
            export_df = pd.DataFrame()
        csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    except DataUnavailableError as exc:
        return _error(exc, status_code=503)
    except Exception as exc:
        logger.exception("export %s failed", view)
        return _error(exc)

    filename = f"{view}.csv"
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
