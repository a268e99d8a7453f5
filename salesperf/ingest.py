from __future__ import annotations

import json
import logging
import os
from datetime import date, datetime
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from openpyxl.utils import get_column_letter

from salesperf.data import DATE_COLUMN, RECORD_COLUMNS, Dataset, empty_records, normalize_records
from salesperf.periods import MONTH_RE


logger = logging.getLogger(__name__)


DATA_DIR = Path(os.getenv("SALESPERF_DATA_DIR", Path(__file__).resolve().parents[1] / "data"))
FILE_GLOB = "sales_performance*"
SUPPORTED_SUFFIXES = (".csv", ".xlsx", ".json")

TEMPLATE_NAME = "Newage_Sales_Performance_Template"
TEMPLATE_SHEET = "Sales_Performance_Data"
TEMPLATE_COLUMN_WIDTH = 18
TEMPLATE_PLACEHOLDER_MONTH = "YYYY-MM"

# Upload header -> canonical record column.
TEMPLATE_COLUMNS = {
    "Month": "month",
    "Enquiry_Count": "enquiries",
    "Converted_Shipments": "converted_shipments",
    "Total_Shipments": "total_shipments",
    "Volume": "volume",
    "Weight": "weight",
    "Customer": "customer",
    "Salesman": "salesman",
    "Agent": "agent",
    "Country": "country",
    "Branch": "branch",
    "Service": "service",
    "Trade": "trade",
    "Tradelane": "tradelane",
    "Carrier": "carrier",
    "Product": "product",
    "TOS": "tos",
    "Shipment_Date": "shipment_date",
}
TEMPLATE_HEADERS = list(TEMPLATE_COLUMNS)

EMPTY_FILE = "File is empty or has only headers."
NO_ROWS = "No valid data rows found."
UNSUPPORTED_TYPE = "Unsupported file type. Please use CSV, XLSX, or JSON."
MISSING_RECORDS = "Invalid JSON structure. Missing 'records' array."
INVALID_TEMPLATE = "Invalid template. Please upload using the provided format."

EXPORT_MEDIA_TYPES = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "json": "application/json",
}


class TemplateError(ValueError):
    """Upload rejected; the message is safe to show to the user."""


# ---------------- Upload parsing ----------------
def _suffix(filename: str) -> str:
    return Path(filename or "").suffix.lower().lstrip(".")


def _month_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return f"{value:%Y-%m}"
    if isinstance(value, float):
        if np.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _drop_blank_rows(df: pd.DataFrame) -> pd.DataFrame:
    df = df.replace(r"^\s*$", np.nan, regex=True)
    return df.dropna(how="all")


def _validate_table(df: pd.DataFrame) -> pd.DataFrame:
    """Header and month checks shared by CSV and XLSX uploads.

    Row numbers in errors are spreadsheet rows (header is row 1).
    """
    df = _drop_blank_rows(df)
    if df.empty:
        raise TemplateError(EMPTY_FILE)

    by_lower = {str(c).strip().lower(): c for c in df.columns}
    missing = [h for h in TEMPLATE_HEADERS if h.lower() not in by_lower]
    if missing:
        raise TemplateError(f"Missing required columns: {', '.join(missing)}")

    df = df.rename(columns={by_lower[h.lower()]: h for h in TEMPLATE_HEADERS})
    months = df["Month"].map(_month_text)
    for idx, month in months.items():
        if month and not MONTH_RE.match(month):
            raise TemplateError(f"Invalid month format at row {int(idx) + 2}. Expected YYYY-MM.")
    df["Month"] = months
    return df[TEMPLATE_HEADERS]


def _read_table(content: bytes, suffix: str) -> pd.DataFrame:
    if not content.strip():
        raise TemplateError(EMPTY_FILE)
    try:
        if suffix == "csv":
            return pd.read_csv(BytesIO(content), dtype=str, keep_default_na=False, skipinitialspace=True)
        return pd.read_excel(BytesIO(content), sheet_name=0, dtype=object, engine="openpyxl")
    except pd.errors.EmptyDataError as exc:
        raise TemplateError(EMPTY_FILE) from exc
    except Exception as exc:
        logger.warning("unreadable %s upload: %s", suffix, exc)
        raise TemplateError(INVALID_TEMPLATE) from exc


def _parse_json(content: bytes) -> pd.DataFrame:
    try:
        payload = json.loads(content.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("unreadable json upload: %s", exc)
        raise TemplateError(INVALID_TEMPLATE) from exc
    rows = payload.get("records") if isinstance(payload, dict) else None
    if not isinstance(rows, list):
        raise TemplateError(MISSING_RECORDS)

    df = normalize_records(rows)
    if df.empty:
        return df
    placeholder = df["month"].eq("") | df["month"].eq(TEMPLATE_PLACEHOLDER_MONTH)
    no_activity = df["enquiries"].le(0) & df["total_shipments"].le(0)
    return df[~(placeholder | no_activity)].reset_index(drop=True)


def parse_upload(content: bytes, filename: str) -> pd.DataFrame:
    """Validate an uploaded CSV/XLSX/JSON file and return canonical records.

    Raises TemplateError with a user-facing message when the file does not follow the template.
    """
    suffix = _suffix(filename)
    if suffix not in {s.lstrip(".") for s in SUPPORTED_SUFFIXES}:
        raise TemplateError(UNSUPPORTED_TYPE)

    if suffix == "json":
        records = _parse_json(content)
    else:
        table = _validate_table(_read_table(content, suffix))
        records = normalize_records(table.to_dict(orient="records"))

    if records.empty:
        raise TemplateError(NO_ROWS)
    logger.info("parsed %d records from %s", len(records), filename)
    return records


# ---------------- Templates ----------------
def csv_template() -> str:
    return ",".join(TEMPLATE_HEADERS) + "\n"


def json_template() -> Dict[str, Any]:
    record: Dict[str, Any] = {}
    for column in TEMPLATE_COLUMNS.values():
        if column == "month":
            record[column] = TEMPLATE_PLACEHOLDER_MONTH
        elif column == "shipment_date":
            record[column] = "YYYY-MM-DD"
        elif column in ("enquiries", "converted_shipments", "total_shipments", "volume", "weight"):
            record[column] = 0
        else:
            record[column] = ""
    return {
        "metadata": {"period": "Last 6 Months", "uploaded_by": "", "uploaded_on": "YYYY-MM-DD"},
        "records": [record],
    }


def _write_workbook(df: pd.DataFrame) -> bytes:
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=TEMPLATE_SHEET, index=False)
        sheet = writer.sheets[TEMPLATE_SHEET]
        for idx in range(1, len(df.columns) + 1):
            sheet.column_dimensions[get_column_letter(idx)].width = TEMPLATE_COLUMN_WIDTH
    return buf.getvalue()


def excel_template() -> bytes:
    return _write_workbook(pd.DataFrame(columns=TEMPLATE_HEADERS))


def template_file(fmt: str) -> Tuple[bytes, str, str]:
    """(content, media type, filename) for a downloadable template."""
    fmt = (fmt or "").lower()
    if fmt == "csv":
        content = csv_template().encode("utf-8")
    elif fmt == "xlsx":
        content = excel_template()
    elif fmt == "json":
        content = json.dumps(json_template(), indent=2).encode("utf-8")
    else:
        raise ValueError(f"unsupported template format: {fmt}")
    return content, EXPORT_MEDIA_TYPES[fmt], f"{TEMPLATE_NAME}.{fmt}"


# ---------------- Export ----------------
def _as_template_table(records: pd.DataFrame) -> pd.DataFrame:
    df = records.reindex(columns=RECORD_COLUMNS)
    return df.rename(columns={v: k for k, v in TEMPLATE_COLUMNS.items()})[TEMPLATE_HEADERS]


def export_records(records: pd.DataFrame, fmt: str) -> Tuple[bytes, str, str]:
    """Serialize raw records in a re-uploadable layout: (content, media type, filename)."""
    fmt = (fmt or "").lower()
    filename = f"sales_performance_export.{fmt}"
    if fmt == "csv":
        content = _as_template_table(records).to_csv(index=False).encode("utf-8")
    elif fmt == "xlsx":
        content = _write_workbook(_as_template_table(records))
    elif fmt == "json":
        rows = records.drop(columns=[DATE_COLUMN], errors="ignore").reindex(columns=RECORD_COLUMNS)
        payload = {
            "metadata": {"exported_on": pd.Timestamp.now().strftime("%Y-%m-%d"), "count": int(len(rows))},
            "records": json.loads(rows.to_json(orient="records")),
        }
        content = json.dumps(payload, indent=2).encode("utf-8")
    else:
        raise ValueError(f"unsupported export format: {fmt}")
    return content, EXPORT_MEDIA_TYPES[fmt], filename


# ---------------- Data directory ----------------
def get_source_files(data_dir: Optional[Path] = None) -> List[Path]:
    folder = Path(data_dir or DATA_DIR)
    return sorted(p for p in folder.glob(FILE_GLOB) if p.suffix.lower() in SUPPORTED_SUFFIXES)


def file_signature(files: List[Path]) -> Tuple[Tuple[str, float], ...]:
    return tuple((str(f), f.stat().st_mtime) for f in files)


@lru_cache(maxsize=4)
def _load_dataset_cached(files_sig: Tuple[Tuple[str, float], ...]) -> Dataset:
    frames: List[pd.DataFrame] = []
    names: List[str] = []
    for name, _ in files_sig:
        path = Path(name)
        try:
            frames.append(parse_upload(path.read_bytes(), path.name))
        except TemplateError as exc:
            logger.warning("skipping %s: %s", path.name, exc)
            continue
        names.append(path.name)
    if not frames:
        return Dataset(empty_records())
    return Dataset(pd.concat(frames, ignore_index=True), tuple(names))


def load_dashboard_data(data_dir: Optional[Path] = None) -> Dataset:
    files = get_source_files(data_dir)
    if not files:
        return Dataset(empty_records())
    return _load_dataset_cached(file_signature(files))
