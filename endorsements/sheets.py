"""Google Sheets source and the fixed-interval poll-and-replace store."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import pandas as pd
import requests

from endorsements.data import ALL_SHEETS, REQUIRED_SHEETS, build_data_context

logger = logging.getLogger(__name__)

SHEETS_VALUES_URL = "https://sheets.googleapis.com/v4/spreadsheets/{sheet_id}/values/{sheet}"
DEFAULT_REFRESH_SECONDS = 30.0
DEFAULT_TIMEOUT_SECONDS = 15.0


class SheetFetchError(RuntimeError):
    """Raised when the remote spreadsheet cannot provide the required sheets."""


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r; using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class SheetSourceConfig:
    sheet_id: str = ""
    api_key: str = ""
    refresh_seconds: float = DEFAULT_REFRESH_SECONDS
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SheetSourceConfig":
        env = os.environ if environ is None else environ
        return cls(
            sheet_id=(env.get("ENDORSEMENT_SHEET_ID") or "").strip(),
            api_key=(env.get("ENDORSEMENT_API_KEY") or "").strip(),
            refresh_seconds=_env_float(env, "ENDORSEMENT_REFRESH_SECONDS", DEFAULT_REFRESH_SECONDS),
            timeout=_env_float(env, "ENDORSEMENT_HTTP_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        )

    @property
    def configured(self) -> bool:
        return bool(self.sheet_id and self.api_key)


def values_to_frame(values: List[List[Any]]) -> pd.DataFrame:
    """Turn a Sheets ``values`` payload (header row first) into a DataFrame."""
    if not values:
        return pd.DataFrame()
    header = [str(h).strip() for h in values[0]]
    width = len(header)
    rows = [list(r[:width]) + [None] * (width - len(r)) for r in values[1:]]
    return pd.DataFrame(rows, columns=header, dtype=object)


def fetch_sheet_values(config: SheetSourceConfig, sheet: str) -> Optional[List[List[Any]]]:
    url = SHEETS_VALUES_URL.format(sheet_id=config.sheet_id, sheet=sheet)
    try:
        response = requests.get(url, params={"key": config.api_key}, timeout=config.timeout)
    except requests.Timeout:
        logger.warning("Sheet %s timed out after %ss", sheet, config.timeout)
        return None
    except requests.RequestException as exc:
        logger.warning("Sheet %s not reachable: %s", sheet, exc)
        return None
    if not response.ok:
        logger.info("Sheet %s not found or not accessible (HTTP %s)", sheet, response.status_code)
        return None
    try:
        payload = response.json()
    except ValueError:
        logger.warning("Sheet %s returned a non-JSON body", sheet)
        return None
    return payload.get("values") or []


def fetch_google_sheet(config: SheetSourceConfig) -> Dict[str, Any]:
    if not config.configured:
        raise SheetFetchError("Google Sheet is not configured. Set ENDORSEMENT_SHEET_ID and ENDORSEMENT_API_KEY.")

    raw_sheets: Dict[str, pd.DataFrame] = {}
    for sheet in ALL_SHEETS:
        values = fetch_sheet_values(config, sheet)
        if values:
            raw_sheets[sheet] = values_to_frame(values)

    missing = [s for s in REQUIRED_SHEETS if s not in raw_sheets]
    if missing:
        raise SheetFetchError(f"Missing required sheets: {', '.join(missing)}")
    return build_data_context(raw_sheets, source=f"google-sheet:{config.sheet_id}")


class SheetPoller:
    """Keeps the latest data context; every successful refresh replaces it wholesale."""

    def __init__(
        self,
        loader: Callable[[], Dict[str, Any]],
        *,
        refresh_seconds: float = DEFAULT_REFRESH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.refresh_seconds = max(1.0, float(refresh_seconds))
        self._clock = clock
        self._last_attempt: Optional[float] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.data_ctx: Optional[Dict[str, Any]] = None
        self.last_refreshed: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return self.data_ctx is not None

    @property
    def state(self) -> Tuple[Optional[datetime], Optional[str]]:
        """Changes after every refresh attempt that lands new data or a new error."""
        return self.last_refreshed, self.last_error

    def refresh(self) -> bool:
        self._last_attempt = self._clock()
        try:
            data_ctx = self._loader()
        except Exception as exc:
            logger.exception("Data refresh failed")
            self.last_error = str(exc) or type(exc).__name__
            return False
        self.data_ctx = data_ctx
        self.last_refreshed = datetime.now()
        self.last_error = None
        return True

    def due(self) -> bool:
        return self._last_attempt is None or (self._clock() - self._last_attempt) >= self.refresh_seconds

    def poll(self) -> bool:
        if not self.due():
            return False
        return self.refresh()

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poll()
            self._stop.wait(self.refresh_seconds)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="sheet-poller", daemon=True)
        self._thread.start()
        logger.info("Sheet poller started (every %ss)", self.refresh_seconds)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Sheet poller stopped")
