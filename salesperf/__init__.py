"""Sales performance analytics engine (UI-agnostic).

This package contains:
- record ingestion (CSV/XLSX/JSON -> pandas) and tolerant date parsing
- period resolution and the filter engine
- KPI, mode, trend and ranking compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
- dashboard session state and saved filter presets
"""
