from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from api.main import app
from salesperf import ingest, saved_filters


@pytest.fixture
def client(tmp_path, monkeypatch, sample_csv):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "sales_performance_2024.csv").write_bytes(sample_csv)
    monkeypatch.setattr(ingest, "DATA_DIR", data_dir)
    monkeypatch.setattr(saved_filters, "SAVED_FILTERS_PATH", tmp_path / "presets.json")
    return TestClient(app)


def test_dashboard_serves_raw_records(client):
    res = client.get("/analytics/dashboard")
    assert res.status_code == 200
    body = res.json()
    assert body["count"] == 2
    assert body["months"] == ["2024-05", "2024-06"]
    assert body["files"] == ["sales_performance_2024.csv"]
    assert "shipment_ts" not in body["records"][0]
    assert body["records"][0]["customer"] == "Acme"
    assert "kpiData" not in body


def test_filter_options(client):
    body = client.get("/analytics/filter-options").json()
    assert body["customer"] == ["Acme", "Globex"]
    assert body["service"] == ["AIR", "LCL"]


def test_upload_rejects_bad_templates(client):
    res = client.post("/analytics/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert res.status_code == 400
    assert res.json() == {"valid": False, "error": "Unsupported file type. Please use CSV, XLSX, or JSON."}

    res = client.post("/analytics/upload", files={"file": ("data.csv", b"Month\n2024-06\n", "text/csv")})
    assert res.status_code == 400
    assert res.json()["error"].startswith("Missing required columns:")


def test_upload_without_persisting(client, sample_csv):
    res = client.post("/analytics/upload", params={"persist": "false"}, files={"file": ("data.csv", sample_csv, "text/csv")})
    assert res.status_code == 200
    body = res.json()
    assert body["valid"] is True
    assert body["count"] == 2
    assert body["file"] is None
    assert client.get("/analytics/dashboard").json()["count"] == 2


def test_upload_persists_into_data_dir(client, sample_csv):
    res = client.post("/analytics/upload", files={"file": ("data.csv", sample_csv, "text/csv")})
    assert res.status_code == 200
    stored = res.json()["file"]
    assert stored.startswith("sales_performance_upload_")
    assert (ingest.DATA_DIR / stored).exists()
    assert client.get("/analytics/dashboard").json()["count"] == 4


def test_export_json(client):
    res = client.get("/analytics/export", params={"format": "json"})
    assert res.status_code == 200
    assert "attachment" in res.headers["content-disposition"]
    payload = json.loads(res.content)
    assert payload["metadata"]["count"] == 2
    assert [r["month"] for r in payload["records"]] == ["2024-06", "2024-05"]


def test_export_rejects_unknown_format(client):
    assert client.get("/analytics/export", params={"format": "pdf"}).status_code == 422


def test_templates(client):
    res = client.get("/templates/csv")
    assert res.status_code == 200
    assert res.text.startswith("Month,Enquiry_Count,Converted_Shipments")
    assert client.get("/templates/xlsx").status_code == 200
    assert client.get("/templates/json").json()["records"][0]["month"] == "YYYY-MM"
    assert client.get("/templates/pdf").status_code == 400


def test_saved_filter_lifecycle(client):
    first = client.post(
        "/filters/saved",
        json={"name": "Acme June", "filters": {"period": "last-2-months", "customer": ["Acme"], "chartFilters": {"month": "2024-06"}}},
    )
    assert first.status_code == 201
    first = first.json()
    assert first["isDefault"] is True
    assert first["filters"]["customer"] == ["Acme"]
    assert first["filters"]["chartFilters"] == {"month": "2024-06"}

    second = client.post("/filters/saved", json={"name": "Everything"}).json()
    assert second["isDefault"] is False

    assert client.post(f"/filters/saved/{second['id']}/default").status_code == 200
    assert client.get("/filters/saved/default").json()["savedFilter"]["id"] == second["id"]

    assert client.patch(f"/filters/saved/{first['id']}", json={"name": "Acme"}).status_code == 200
    names = [p["name"] for p in client.get("/filters/saved").json()["savedFilters"]]
    assert names == ["Acme", "Everything"]

    assert client.delete(f"/filters/saved/{second['id']}").status_code == 200
    remaining = client.get("/filters/saved").json()["savedFilters"]
    assert [p["id"] for p in remaining] == [first["id"]]
    assert remaining[0]["isDefault"] is True

    assert client.delete("/filters/saved/filter_0").status_code == 404
    assert client.post("/filters/saved", json={"name": ""}).status_code == 422


def test_saved_filter_names_are_trimmed_and_blank_names_rejected(client):
    created = client.post("/filters/saved", json={"name": "  Weekly AIR  "})
    assert created.status_code == 201
    preset_id = created.json()["id"]
    assert created.json()["name"] == "Weekly AIR"

    assert client.post("/filters/saved", json={"name": "   "}).status_code == 422
    assert client.patch(f"/filters/saved/{preset_id}", json={"name": "\t "}).status_code == 422

    renamed = client.patch(f"/filters/saved/{preset_id}", json={"name": " Renamed "})
    assert renamed.json()["name"] == "Renamed"
    assert [p["name"] for p in client.get("/filters/saved").json()["savedFilters"]] == ["Renamed"]
