from __future__ import annotations

from typing import Dict, List

import pandas as pd
import pytest

from salesperf.data import normalize_records
from salesperf.ingest import TEMPLATE_HEADERS


def make_records(rows: List[Dict[str, object]]) -> pd.DataFrame:
    return normalize_records(rows)


def csv_text(rows: List[Dict[str, object]]) -> str:
    lines = [",".join(TEMPLATE_HEADERS)]
    for row in rows:
        lines.append(",".join(str(row.get(h, "")) for h in TEMPLATE_HEADERS))
    return "\n".join(lines) + "\n"


@pytest.fixture
def two_month_records() -> pd.DataFrame:
    return make_records(
        [
            {"month": "2024-06", "enquiries": 60, "converted_shipments": 12, "customer": "Acme", "service": "AIR"},
            {"month": "2024-06", "enquiries": 40, "converted_shipments": 8, "customer": "Globex", "service": "FCL"},
            {"month": "2024-05", "enquiries": 50, "converted_shipments": 10, "customer": "Acme", "service": "AIR"},
        ]
    )


@pytest.fixture
def weekly_records() -> pd.DataFrame:
    return make_records(
        [
            {"shipment_date": "2024-04-01", "enquiries": 9, "converted_shipments": 9, "customer": "Old"},
            {"shipment_date": "2024-05-20", "enquiries": 10, "converted_shipments": 4, "customer": "Acme"},
            {"shipment_date": "2024-06-03", "enquiries": 10, "converted_shipments": 5, "customer": "Globex"},
            {"shipment_date": "2024-06-12", "enquiries": 10, "converted_shipments": 6, "customer": "Acme"},
        ]
    )


@pytest.fixture
def sample_csv() -> bytes:
    rows = [
        {
            "Month": "2024-06",
            "Enquiry_Count": 20,
            "Converted_Shipments": 5,
            "Total_Shipments": 7,
            "Volume": 12.5,
            "Weight": 800,
            "Customer": "Acme",
            "Salesman": "Ravi",
            "Agent": "Blue Line",
            "Country": "India",
            "Branch": "Mumbai",
            "Service": "AIR",
            "Trade": "Export",
            "Tradelane": "BOM-DXB",
            "Carrier": "EK",
            "Product": "Electronics",
            "TOS": "FOB",
            "Shipment_Date": "2024-06-12",
        },
        {
            "Month": "2024-05",
            "Enquiry_Count": 10,
            "Converted_Shipments": 2,
            "Total_Shipments": 3,
            "Customer": "Globex",
            "Service": "LCL",
            "Shipment_Date": "15/05/24",
        },
    ]
    return csv_text(rows).encode("utf-8")
