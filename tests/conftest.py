"""Test configuration and shared fixtures."""

import pandas as pd
import pytest

from endorsements.data import build_data_context, get_options
from endorsements.filters import normalize_filters


def _frame(columns, rows):
    return pd.DataFrame(rows, columns=columns)


@pytest.fixture
def raw_sheets():
    """A small two-month workbook; FIELD_BOM is deliberately absent."""
    return {
        "DAILY": _frame(
            ["DATE", "PRODUCT TYPE", "ENDORSEMENTS", "ENDORSEMENTS OB", "PULLOUT", "PULLOUT OB", "Total Portfolio", "Total Portfolio OB"],
            [
                ["2024-01-01", "CARD", 10, 1000, 5, 500, 105, 10500],
                ["2024-01-02", "CARD", 4, 400, 0, 0, 109, 10900],
                ["2024-01-03", "CARD", 6, 600, 8, 800, 107, 10700],
                ["2024-01-01", "LOAN", 3, 300, 3, 300, 50, 5000],
                ["2024-02-01", "CARD", 2, 200, 1, 100, 108, 10800],
                ["2024-02-02", "CARD", 5, 500, 2, 200, 111, 11100],
            ],
        ),
        "BOM": _frame(
            ["MONTH", "PRODUCT TYPE", "TNA", "OB"],
            [
                ["JANUARY", "CARD", 100, 10000],
                ["JANUARY", "LOAN", 50, 5000],
                ["FEBRUARY", "CARD", 107, 10700],
            ],
        ),
        "CAMPAIGN": _frame(
            ["DATE", "CAMPAIGN", "PRODUCT TYPE", "NEW ENDO", "NEW ENDO OB", "PULLOUT", "PULLOUT OB", "Total Portfolio", "Total Portfolio OB"],
            [
                ["2024-01-01", "ACME", "CARD", 6, 600, 2, 200, 54, 5400],
                ["2024-01-02", "ACME", "CARD", 2, 200, 0, 0, 56, 5600],
                ["2024-01-01", "BETA", "CARD", 4, 400, 3, 300, 51, 5100],
                ["2024-02-01", "ACME", "CARD", 1, 100, 1, 100, 56, 5600],
            ],
        ),
        "CAMPAIGN_BOM": _frame(
            ["MONTH", "CAMPAIGN", "TNA", "OB"],
            [
                ["JANUARY", "ACME", 50, 5000],
                ["JANUARY", "BETA", 50, 5000],
                ["FEBRUARY", "ACME", 56, 5600],
            ],
        ),
        "FIELD_DAILY": _frame(
            ["DATE", "PRODUCT TYPE", "TNA"],
            [
                ["2024-01-01", "CARD", 3],
                ["2024-01-02", "CARD", 4],
            ],
        ),
        "FIELD_CAMPAIGN": _frame(
            ["DATE", "CAMPAIGN", "PRODUCT TYPE", "TNA"],
            [
                ["2024-01-01", "ACME", "CARD", 2],
                ["2024-01-01", "BETA", "CARD", 1],
                ["2024-01-02", "ACME", "CARD", 4],
            ],
        ),
        "FIELD_ENDO": _frame(
            ["MONTH", "PRODUCT TYPE", "CAMPAIGN", "ENDORSED TO FIELD", "OB"],
            [
                ["JANUARY", "CARD", "ACME", 8, 800],
                ["JANUARY", "CARD", "BETA", 4, 400],
            ],
        ),
        "PER_AREA": _frame(
            ["DATE", "AREA", "CAMPAIGN", "PRODUCT TYPE", "TNA"],
            [
                ["2024-01-01", "NORTH", "ACME", "CARD", 2],
                ["2024-01-01", "SOUTH", "BETA", "CARD", 1],
                ["2024-01-02", "NORTH", "ACME", "CARD", 3],
                ["2024-01-02", "NORTH", "ACME", "CARD", 1],
            ],
        ),
    }


@pytest.fixture
def data_ctx(raw_sheets):
    return build_data_context(raw_sheets, source="test-workbook")


@pytest.fixture
def options(data_ctx):
    return get_options(data_ctx)


@pytest.fixture
def make_filters(options):
    def _make(**raw):
        return normalize_filters(raw, options=options)

    return _make


@pytest.fixture
def workbook_path(tmp_path, raw_sheets):
    path = tmp_path / "endorsements.xlsx"
    with pd.ExcelWriter(path) as writer:
        for name, df in raw_sheets.items():
            df.to_excel(writer, sheet_name=name, index=False)
    return path
