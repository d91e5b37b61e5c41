"""Endorsement flow monitor logic, independent of Streamlit and FastAPI.

- data: workbook sheets, cleaning, net flow / growth maths, filtered tables
- sheets: Google Sheets fetch and the background ``SheetPoller``
- metrics_portfolio / metrics_monthly / metrics_field: per-view payloads
- metrics_debug: data-quality counts and month coverage
"""
