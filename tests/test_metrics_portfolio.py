import pytest

from endorsements.data import prepare_context
from endorsements.metrics_portfolio import compute_client, compute_overall


def test_overall_count_view(make_filters, data_ctx):
    f = make_filters()
    payload = compute_overall(f, prepare_context(f, data_ctx))

    assert payload["title"] == "CARD"
    summary = payload["summary"]
    assert summary["bom"] == 100.0
    assert summary["active"] == 107.0
    assert summary["portfolio_growth"] == pytest.approx(7.0)
    assert summary["net_flow"]["value"] == pytest.approx(20 / 13)
    assert [r["net_flow_ratio"] for r in payload["daily"]] == [2.0, 0.0, 0.75]
    assert [r["cumulative_endorsements"] for r in payload["mtd"]] == [10.0, 14.0, 20.0]
    assert set(payload["charts"]) == {
        "net_flow_daily",
        "daily_endorsements_pullouts",
        "daily_net_growth",
        "mtd_endorsements_pullouts",
        "mtd_net_flow",
        "mtd_net_growth",
    }
    assert "$schema" in payload["charts"]["net_flow_daily"]


def test_overall_ob_view_uses_ob_columns(make_filters, data_ctx):
    f = make_filters(view_mode="ob")
    summary = compute_overall(f, prepare_context(f, data_ctx))["summary"]
    assert summary["bom"] == 10000.0
    assert summary["active"] == 10700.0
    assert summary["total_endorsements"] == 2000.0
    assert summary["portfolio_growth"] == pytest.approx(7.0)


def test_overall_date_range(make_filters, data_ctx):
    f = make_filters(start_date="2024-01-02", end_date="2024-01-02")
    summary = compute_overall(f, prepare_context(f, data_ctx))["summary"]
    assert summary["active"] == 109.0
    assert summary["net_flow"] == {"value": -1.0, "is_special": True}


def test_overall_without_rows_has_no_summary(make_filters, data_ctx):
    f = make_filters(month="MARCH")
    payload = compute_overall(f, prepare_context(f, data_ctx))
    assert payload["summary"] is None
    assert payload["daily"] == []
    assert payload["charts"] == {}


def test_client_view(make_filters, data_ctx):
    f = make_filters(view="client", client="ACME")
    payload = compute_client(f, prepare_context(f, data_ctx))
    summary = payload["summary"]
    assert payload["title"] == "ACME"
    assert summary["bom"] == 50.0
    assert summary["active"] == 56.0
    assert summary["portfolio_growth"] == pytest.approx(12.0)
    assert summary["net_flow"]["value"] == pytest.approx(4.0)
