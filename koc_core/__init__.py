"""Core (UI-agnostic) KOC dashboard logic.

This package contains:
- date normalization (sheet / ISO / Excel import values)
- record mapping between sheet rows and `KOCRecord`
- the spreadsheet gateway (HTTP action API)
- grouping, filtering, sorting and pagination of collaborations
- dashboard metrics and chart helpers (Altair -> Vega-Lite spec dict)
- Excel import/export and form validation
"""
