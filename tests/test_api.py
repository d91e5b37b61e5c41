import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from endorsements.sheets import SheetPoller


@pytest.fixture
def client(monkeypatch, data_ctx):
    poller = SheetPoller(lambda: data_ctx, refresh_seconds=300)
    monkeypatch.setattr(api_main, "get_poller", lambda: poller)
    return TestClient(api_main.app)


@pytest.fixture
def failing_client(monkeypatch):
    def loader():
        raise RuntimeError("Missing required sheets: BOM")

    poller = SheetPoller(loader, refresh_seconds=300)
    monkeypatch.setattr(api_main, "get_poller", lambda: poller)
    return TestClient(api_main.app)


def test_meta_options(client):
    res = client.get("/meta/options")
    assert res.status_code == 200
    assert res.json()["months"] == ["JANUARY", "FEBRUARY"]


def test_overall_endpoint(client):
    res = client.post("/overall", json={"view_mode": "count"})
    assert res.status_code == 200
    body = res.json()
    assert body["summary"]["bom"] == 100.0
    assert body["summary"]["active"] == 107.0
    assert body["daily"][0]["date"] == "2024-01-01"
    assert body["filters"]["month"] == "JANUARY"


def test_client_endpoint_with_date_range(client):
    res = client.post("/client", json={"client": "BETA", "start_date": "2024-01-01", "end_date": "2024-01-31"})
    assert res.status_code == 200
    assert res.json()["summary"]["net_flow"]["value"] == pytest.approx(4 / 3)


def test_monthly_endpoint(client):
    res = client.post("/monthly", json={"selected_months": ["JANUARY", "FEBRUARY"], "client_ranking": "top5"})
    assert res.status_code == 200
    body = res.json()
    assert body["max_day"] == 2
    assert [c["name"] for c in body["client_comparison"]] == ["ACME", "BETA"]


def test_field_endpoints(client):
    field = client.post("/field", json={}).json()
    assert field["metrics"]["total_pending"] == 5.0
    campaign = client.post("/field-campaign", json={"client": "ACME"}).json()
    assert campaign["metrics"]["total_visited"] == 6.0


def test_invalid_view_mode_is_rejected(client):
    res = client.post("/overall", json={"view_mode": "weekly"})
    assert res.status_code == 422


def test_export_csv(client):
    res = client.post("/export/overall", json={})
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    lines = res.text.strip().splitlines()
    assert lines[0].startswith("date,product_type")
    assert len(lines) == 4


def test_status_and_refresh(client):
    assert client.get("/meta/status").json()["has_data"] is False
    refreshed = client.post("/refresh").json()
    assert refreshed["ok"] is True
    assert refreshed["source"] == "test-workbook"
    assert client.get("/meta/status").json()["last_error"] is None


def test_unavailable_data_returns_503(failing_client):
    res = failing_client.post("/overall", json={})
    assert res.status_code == 503
    assert res.json() == {"error": "Missing required sheets: BOM", "type": "DataUnavailableError"}
    assert failing_client.get("/meta/status").json()["last_error"] == "Missing required sheets: BOM"


def test_export_failure_returns_error_body(client, monkeypatch):
    def _broken(filters, data_ctx):
        raise KeyError("daily")

    monkeypatch.setattr(api_main, "prepare_context", _broken)
    res = client.post("/export/overall", json={})
    assert res.status_code == 500
    assert res.json()["type"] == "KeyError"
