import threading

import pytest
import requests

from endorsements import sheets
from endorsements.sheets import (
    SheetFetchError,
    SheetPoller,
    SheetSourceConfig,
    fetch_google_sheet,
    fetch_sheet_values,
    values_to_frame,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _values(df):
    return [list(df.columns)] + df.astype(str).values.tolist()


@pytest.fixture
def config():
    return SheetSourceConfig(sheet_id="sheet-123", api_key="key", refresh_seconds=30, timeout=5)


@pytest.fixture
def fake_get(monkeypatch, raw_sheets):
    calls = []

    def _get(url, params=None, timeout=None):
        calls.append({"url": url, "params": params, "timeout": timeout})
        name = url.rsplit("/", 1)[-1]
        if name not in raw_sheets:
            return FakeResponse(status_code=400)
        return FakeResponse(payload={"values": _values(raw_sheets[name])})

    monkeypatch.setattr(sheets.requests, "get", _get)
    return calls


def test_config_from_env():
    cfg = SheetSourceConfig.from_env(
        {
            "ENDORSEMENT_SHEET_ID": " abc ",
            "ENDORSEMENT_API_KEY": "k",
            "ENDORSEMENT_REFRESH_SECONDS": "60",
            "ENDORSEMENT_HTTP_TIMEOUT": "oops",
        }
    )
    assert cfg.sheet_id == "abc"
    assert cfg.refresh_seconds == 60.0
    assert cfg.timeout == sheets.DEFAULT_TIMEOUT_SECONDS
    assert cfg.configured
    assert not SheetSourceConfig.from_env({}).configured


def test_values_to_frame_pads_short_rows():
    df = values_to_frame([["DATE", "TNA", "AREA"], ["2024-01-01", "5"], ["2024-01-02", "6", "NORTH", "extra"]])
    assert list(df.columns) == ["DATE", "TNA", "AREA"]
    assert df["AREA"].isna().tolist() == [True, False]
    assert values_to_frame([]).empty


def test_fetch_google_sheet(config, fake_get):
    ctx = fetch_google_sheet(config)

    assert ctx["source"] == "google-sheet:sheet-123"
    assert "FIELD_BOM" not in ctx["sheets"]
    assert ctx["daily"]["endorsements"].sum() == 30.0
    assert ctx["daily"]["month"].iloc[0] == "JANUARY"
    assert all(c["params"] == {"key": "key"} and c["timeout"] == 5 for c in fake_get)
    assert len(fake_get) == 9


def test_fetch_google_sheet_lists_missing_required(config, monkeypatch, raw_sheets):
    def _get(url, params=None, timeout=None):
        name = url.rsplit("/", 1)[-1]
        if name in ("BOM", "CAMPAIGN_BOM"):
            return FakeResponse(status_code=404)
        return FakeResponse(payload={"values": _values(raw_sheets[name])} if name in raw_sheets else None, status_code=200)

    monkeypatch.setattr(sheets.requests, "get", _get)
    with pytest.raises(SheetFetchError, match="Missing required sheets: BOM, CAMPAIGN_BOM"):
        fetch_google_sheet(config)


def test_fetch_google_sheet_requires_configuration():
    with pytest.raises(SheetFetchError, match="not configured"):
        fetch_google_sheet(SheetSourceConfig())


def test_fetch_sheet_values_swallows_network_errors(config, monkeypatch):
    def _boom(url, params=None, timeout=None):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(sheets.requests, "get", _boom)
    assert fetch_sheet_values(config, "DAILY") is None


def test_poller_refreshes_on_interval():
    now = [0.0]
    results = iter([{"n": 1}, RuntimeError("sheet down"), {"n": 3}])

    def loader():
        item = next(results)
        if isinstance(item, Exception):
            raise item
        return item

    poller = SheetPoller(loader, refresh_seconds=30, clock=lambda: now[0])
    assert not poller.has_data

    assert poller.poll()
    assert poller.data_ctx == {"n": 1}
    assert poller.last_refreshed is not None

    now[0] = 10.0
    assert not poller.poll()

    # a failed refresh keeps the previous data
    now[0] = 30.0
    assert not poller.poll()
    assert poller.data_ctx == {"n": 1}
    assert poller.last_error == "sheet down"

    now[0] = 60.0
    assert poller.poll()
    assert poller.data_ctx == {"n": 3}
    assert poller.last_error is None


def test_poller_interval_has_a_floor():
    assert SheetPoller(dict, refresh_seconds=0).refresh_seconds == 1.0


def test_poller_background_thread_starts_and_stops():
    loaded = threading.Event()

    def loader():
        loaded.set()
        return {"ok": True}

    poller = SheetPoller(loader, refresh_seconds=60)
    poller.start()
    try:
        assert loaded.wait(timeout=5)
    finally:
        poller.stop(timeout=5)
    assert poller.has_data
    assert poller._thread is None


def test_poller_state_changes_when_a_refresh_fails():
    now = [0.0]
    results = iter([{"n": 1}, RuntimeError("sheet down")])

    def loader():
        item = next(results)
        if isinstance(item, Exception):
            raise item
        return item

    poller = SheetPoller(loader, refresh_seconds=30, clock=lambda: now[0])
    poller.poll()
    seen = poller.state

    now[0] = 30.0
    poller.poll()
    assert poller.last_refreshed == seen[0]
    assert poller.state != seen
