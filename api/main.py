from __future__ import annotations

from dataclasses import asdict
import logging
import math
from typing import Literal

import numpy as np
import pandas as pd
from fastapi import FastAPI, File, Query, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import SavedFilterCreate, SavedFilterRename
from salesperf import ingest
from salesperf.data import DATE_COLUMN, filter_options
from salesperf.filters import normalize_filters
from salesperf.saved_filters import SavedFilterStore


app = FastAPI(title="Sales Performance Data API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8501"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _not_found(preset_id: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": f"saved filter not found: {preset_id}"})


def _records(df: pd.DataFrame) -> list:
    return df.drop(columns=[DATE_COLUMN], errors="ignore").to_dict(orient="records")


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(content=content, media_type=media_type, headers={"Content-Disposition": f"attachment; filename={filename}"})


# ---------------- Records ----------------
@app.get("/analytics/dashboard")
def dashboard_records():
    """Raw records for the in-process engine; all aggregation happens client-side."""
    try:
        dataset = ingest.load_dashboard_data()
        return _json(
            {
                "records": _records(dataset.records),
                "count": len(dataset),
                "months": dataset.months,
                "files": list(dataset.files),
            }
        )
    except Exception as exc:
        logger.exception("dashboard_records failed")
        return _error(exc)


@app.get("/analytics/filter-options")
def analytics_filter_options():
    try:
        dataset = ingest.load_dashboard_data()
        return _json(filter_options(dataset.records))
    except Exception as exc:
        logger.exception("filter_options failed")
        return _error(exc)


@app.post("/analytics/upload")
async def upload_records(file: UploadFile = File(...), persist: bool = Query(default=True)):
    try:
        content = await file.read()
        filename = file.filename or ""
        records = ingest.parse_upload(content, filename)
        stored = None
        if persist:
            suffix = filename.rsplit(".", 1)[-1].lower()
            target = ingest.DATA_DIR / f"sales_performance_upload_{pd.Timestamp.now():%Y%m%d%H%M%S%f}.{suffix}"
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            stored = target.name
        return _json({"valid": True, "count": len(records), "file": stored, "records": _records(records)})
    except ingest.TemplateError as exc:
        return JSONResponse(status_code=400, content={"valid": False, "error": str(exc)})
    except Exception as exc:
        logger.exception("upload_records failed")
        return _error(exc)


@app.get("/analytics/export")
def export_records(format: Literal["csv", "xlsx", "json"] = Query(default="csv")):
    try:
        dataset = ingest.load_dashboard_data()
        return _attachment(*ingest.export_records(dataset.records, format))
    except Exception as exc:
        logger.exception("export_records failed")
        return _error(exc)


@app.get("/templates/{fmt}")
def download_template(fmt: str):
    try:
        return _attachment(*ingest.template_file(fmt))
    except ValueError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except Exception as exc:
        logger.exception("download_template failed")
        return _error(exc)


# ---------------- Saved filters ----------------
@app.get("/filters/saved")
def list_saved_filters():
    try:
        return _json({"savedFilters": [asdict(p) for p in SavedFilterStore().list()]})
    except Exception as exc:
        logger.exception("list_saved_filters failed")
        return _error(exc)


@app.get("/filters/saved/default")
def default_saved_filter():
    try:
        preset = SavedFilterStore().get_default()
        return _json({"savedFilter": asdict(preset) if preset else None})
    except Exception as exc:
        logger.exception("default_saved_filter failed")
        return _error(exc)


@app.post("/filters/saved")
def create_saved_filter(body: SavedFilterCreate):
    try:
        state = normalize_filters(body.filters.model_dump(by_alias=True))
        preset = SavedFilterStore().save_current(body.name, state)
        return _json(asdict(preset), status_code=201)
    except Exception as exc:
        logger.exception("create_saved_filter failed")
        return _error(exc)


@app.patch("/filters/saved/{preset_id}")
def rename_saved_filter(preset_id: str, body: SavedFilterRename):
    try:
        if not SavedFilterStore().rename(preset_id, body.name):
            return _not_found(preset_id)
        return _json({"id": preset_id, "name": body.name})
    except Exception as exc:
        logger.exception("rename_saved_filter failed")
        return _error(exc)


@app.post("/filters/saved/{preset_id}/default")
def set_default_saved_filter(preset_id: str):
    try:
        if not SavedFilterStore().set_as_default(preset_id):
            return _not_found(preset_id)
        return _json({"id": preset_id, "isDefault": True})
    except Exception as exc:
        logger.exception("set_default_saved_filter failed")
        return _error(exc)


@app.delete("/filters/saved/{preset_id}")
def delete_saved_filter(preset_id: str):
    try:
        if not SavedFilterStore().delete(preset_id):
            return _not_found(preset_id)
        return _json({"id": preset_id, "deleted": True})
    except Exception as exc:
        logger.exception("delete_saved_filter failed")
        return _error(exc)
