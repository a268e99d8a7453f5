from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from salesperf.periods import month_key, parse_month


logger = logging.getLogger(__name__)


NUMERIC_COLUMNS = ["enquiries", "converted_shipments", "total_shipments", "volume", "weight"]
DIMENSION_COLUMNS = [
    "country",
    "branch",
    "service",
    "trade",
    "customer",
    "salesman",
    "agent",
    "carrier",
    "tradelane",
    "product",
    "tos",
]
RECORD_COLUMNS = ["month", *NUMERIC_COLUMNS, *DIMENSION_COLUMNS, "shipment_date"]
DATE_COLUMN = "shipment_ts"

# Priority-ordered source names per canonical field; matched case-insensitively, first non-null wins.
FIELD_SYNONYMS: Dict[str, List[str]] = {
    "month": ["month", "period_raw", "rawMonth", "month_key"],
    "enquiries": ["enquiries", "enquiries_count", "enquiry_count", "enquiry", "total_enquiries", "totalEnquiries"],
    "converted_shipments": [
        "converted_shipments",
        "convertedShipments",
        "converted",
        "converted_count",
        "bookings",
    ],
    "total_shipments": ["total_shipments", "totalShipments", "shipments", "shipment_count"],
    "volume": ["volume", "vol", "volume_cbm", "cbm", "totalVolume"],
    "weight": ["weight", "wt", "weight_kg", "kg", "totalWeight"],
    "customer": ["customer", "customer_name", "customerName", "client"],
    "salesman": ["salesman", "salesperson", "sales_person", "sales_rep"],
    "agent": ["agent", "agent_name", "agentName", "overseas_agent"],
    "country": ["country", "country_name", "origin_country"],
    "branch": ["branch", "branch_name", "office"],
    "service": ["service", "service_type", "serviceType", "mode"],
    "trade": ["trade", "trade_type", "tradeType"],
    "tradelane": ["tradelane", "trade_lane", "tradeLane", "lane"],
    "carrier": ["carrier", "carrier_name", "line"],
    "product": ["product", "product_name", "commodity"],
    "tos": ["tos", "terms_of_shipment", "incoterm", "terms"],
    "shipment_date": ["shipment_date", "shipmentDate", "date", "booking_date", "etd"],
}

EXCEL_SERIAL_EPOCH = 25569  # 1970-01-01 expressed as an Excel (1900 system) serial
UNIX_EPOCH = pd.Timestamp("1970-01-01")
_SERIAL_RE = re.compile(r"^-?\d+(\.\d+)?$")
_LEADING_DIGITS_RE = re.compile(r"^\s*(\d+)")
_NA_TOKENS = {"nan", "none", "null", "nat", "<na>"}


@dataclass(frozen=True, eq=False)
class Dataset:
    """Immutable record collection; hashes by identity so it can key memoized derivations."""

    records: pd.DataFrame
    files: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def months(self) -> List[str]:
        return available_months(self.records)

    def __len__(self) -> int:
        return len(self.records)


def empty_records() -> pd.DataFrame:
    df = pd.DataFrame({c: pd.Series(dtype=float if c in NUMERIC_COLUMNS else object) for c in RECORD_COLUMNS})
    df[DATE_COLUMN] = pd.Series(dtype="datetime64[ns]")
    return df


# ---------------- Dates ----------------
def _build_date(year: str, month: str, day: str) -> Optional[pd.Timestamp]:
    parts = []
    for token in (year, month, day):
        match = _LEADING_DIGITS_RE.match(token or "")
        if not match:
            return None
        parts.append(int(match.group(1)))
    y, m, d = parts
    if y < 100:
        y += 2000
    try:
        return pd.Timestamp(year=y, month=m, day=d)
    except (ValueError, OverflowError):
        return None


def parse_date(raw: object) -> Optional[pd.Timestamp]:
    """Tolerant date parser; returns a midnight timestamp or None, never raises."""
    if raw is None:
        return None
    if isinstance(raw, pd.Timestamp):
        if raw.tzinfo is not None:
            raw = raw.tz_localize(None)
        return raw.normalize()
    if isinstance(raw, float) and math.isnan(raw):
        return None
    s = str(raw).strip()
    if not s or s.lower() in _NA_TOKENS:
        return None

    if _SERIAL_RE.match(s):
        serial = float(s)
        if not math.isfinite(serial):
            return None
        try:
            ts = UNIX_EPOCH + pd.Timedelta(days=serial - EXCEL_SERIAL_EPOCH)
        except (OverflowError, ValueError):
            return None
        return ts.normalize()

    if "-" in s:
        parts = s.split("-")
        if len(parts) < 3:
            return None
        if len(parts[0]) == 4:
            return _build_date(parts[0], parts[1], parts[2])
        return _build_date(parts[2], parts[1], parts[0])

    if "/" in s:
        parts = s.split("/")
        if len(parts) < 3:
            return None
        return _build_date(parts[2], parts[1], parts[0])

    try:
        ts = pd.to_datetime(s, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts.normalize()


def record_dates(df: pd.DataFrame) -> pd.Series:
    """Parsed shipment dates for a record frame (NaT where unparseable)."""
    if df.empty:
        return pd.Series(pd.NaT, index=df.index, dtype="datetime64[ns]")
    if DATE_COLUMN in df.columns:
        return pd.to_datetime(df[DATE_COLUMN], errors="coerce")
    if "shipment_date" not in df.columns:
        return pd.Series(pd.NaT, index=df.index, dtype="datetime64[ns]")
    parsed = df["shipment_date"].map(parse_date)
    return pd.to_datetime(parsed, errors="coerce")


# ---------------- Normalization ----------------
def _is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _pick(row: Mapping[str, object], lowered: Dict[str, str], names: List[str]) -> object:
    for name in names:
        key = lowered.get(name.lower())
        if key is None:
            continue
        value = row[key]
        if not _is_missing(value):
            return value
    return None


def normalize_month(value: object, shipment_date: object = None) -> str:
    """YYYY-MM key from a month cell, falling back to the shipment date."""
    if not _is_missing(value):
        if isinstance(value, pd.Timestamp):
            return month_key(value)
        s = str(value).strip()
        if parse_month(s[:7]) is not None and (len(s) == 7 or not s[7:8].isdigit()):
            return s[:7]
        if s and s.lower() not in _NA_TOKENS:
            ts = parse_date(s) if any(ch.isdigit() for ch in s) else None
            if ts is not None:
                return month_key(ts)
            return s
    ts = parse_date(shipment_date)
    return month_key(ts) if ts is not None else ""


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            values = pd.to_numeric(df[col], errors="coerce")
            df[col] = values.replace([np.inf, -np.inf], np.nan).fillna(0.0).astype(float)
    return df


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col].astype("string").fillna("").str.strip()
            series = series.mask(series.str.lower().isin(_NA_TOKENS), "")
            df[col] = series.astype(object)
    return df


def normalize_records(rows: Iterable[Mapping[str, object]]) -> pd.DataFrame:
    """Map loosely-typed rows onto the canonical record frame.

    Field names are resolved through FIELD_SYNONYMS, numbers coerce to 0 when missing or
    non-finite, strings are stripped with "" for unknown, and `month` is derived from
    `shipment_date` when absent. Runs once at ingestion.
    """
    out: List[Dict[str, object]] = []
    skipped = 0
    for row in rows:
        if not isinstance(row, Mapping):
            skipped += 1
            continue
        lowered = {str(k).strip().lower(): k for k in row.keys()}
        rec = {target: _pick(row, lowered, names) for target, names in FIELD_SYNONYMS.items()}
        rec["month"] = normalize_month(rec["month"], rec["shipment_date"])
        out.append(rec)

    if skipped:
        logger.debug("skipped %d non-mapping rows during normalization", skipped)
    if not out:
        return empty_records()

    df = pd.DataFrame(out, columns=RECORD_COLUMNS)
    df = numericize(df, NUMERIC_COLUMNS)
    df["shipment_date"] = df["shipment_date"].map(lambda v: "" if _is_missing(v) else _date_text(v))
    df = coerce_str_safe(df, ["month", *DIMENSION_COLUMNS, "shipment_date"])
    df[DATE_COLUMN] = pd.to_datetime(df["shipment_date"].map(parse_date), errors="coerce")
    return df.reset_index(drop=True)


def _date_text(value: object) -> str:
    if isinstance(value, pd.Timestamp):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return empty_records()
    return normalize_records(df.to_dict(orient="records"))


# ---------------- Helpers ----------------
def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def pct_change(current: float, previous: float) -> Optional[float]:
    """Percentage change; None when there is no baseline."""
    if previous is None or pd.isna(previous) or previous == 0:
        return None
    return (current - previous) / previous * 100


def available_months(df: pd.DataFrame) -> List[str]:
    if df.empty or "month" not in df.columns:
        return []
    months = df["month"].dropna().astype(str)
    return sorted({m for m in months if parse_month(m) is not None})


def filter_options(df: pd.DataFrame) -> Dict[str, List[str]]:
    options: Dict[str, List[str]] = {}
    for col in DIMENSION_COLUMNS:
        if col not in df.columns:
            options[col] = []
            continue
        values = df[col].dropna().astype(str).str.strip()
        options[col] = sorted(values[values.ne("")].unique().tolist())
    return options


def format_large_number(value: object, decimals: int = 2) -> str:
    if value is None or pd.isna(value):
        return "0"
    v = float(value)
    sign = "-" if v < 0 else ""
    av = abs(v)
    if av < 1_000:
        return f"{sign}{av:.0f}"
    for limit, suffix in ((1_000_000, "K"), (1_000_000_000, "M")):
        if av < limit:
            return f"{sign}{float(f'{av / (limit / 1000):.{decimals}f}'):g}{suffix}"
    return f"{sign}{float(f'{av / 1_000_000_000:.{decimals}f}'):g}B"


def format_change(change: Optional[float]) -> str:
    if change is None or pd.isna(change):
        return "N/A"
    return f"{round_half_up(change, 1):+.1f}%"
