from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import List

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, File, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from koc_api.schemas import DeleteRequestModel, GroupsQueryModel, OverviewQueryModel, RecordModel
from koc_core.config import load_settings
from koc_core.data import group_as_dict, prepare_context
from koc_core.excel_io import ImportFileError, export_records, import_records
from koc_core.filters import available_koc_types
from koc_core.gateway import SheetApplicationError, SheetConfigError, SheetGateway, SheetNetworkError, SheetTransportError
from koc_core.metrics_overview import compute_overview
from koc_core.records import BRANDS, GENDERS, KOC_TYPES, MAIN_FIELDS, PROVINCES, record_as_dict
from koc_core.validation import validate_record


app = FastAPI(title="KOC Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:8501"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

EXPORT_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@lru_cache(maxsize=1)
def get_gateway() -> SheetGateway:
    settings = load_settings()
    return SheetGateway(settings.sheet_url, timeout=settings.request_timeout)


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
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


def _error(exc: Exception, where: str) -> JSONResponse:
    if isinstance(exc, SheetConfigError):
        status = 503
    elif isinstance(exc, (SheetTransportError, SheetNetworkError, SheetApplicationError)):
        status = 502
    elif isinstance(exc, ImportFileError):
        status = 400
    else:
        status = 500
    logger.exception("%s failed", where)
    content = {"error": str(exc), "type": type(exc).__name__}
    if isinstance(exc, SheetTransportError):
        content["status_code"] = exc.status_code
    return JSONResponse(status_code=status, content=content)


def _invalid(errors: dict) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": "Validation failed", "errors": errors})


@app.get("/meta/options")
def meta_options(gateway: SheetGateway = Depends(get_gateway)):
    try:
        records = gateway.fetch_all()
        return _json(
            {
                "brands": BRANDS,
                "genders": GENDERS,
                "koc_types": KOC_TYPES,
                "koc_types_in_use": available_koc_types(records),
                "provinces": PROVINCES,
                "main_fields": MAIN_FIELDS,
            }
        )
    except Exception as exc:
        return _error(exc, "meta_options")


@app.get("/records")
def list_records(gateway: SheetGateway = Depends(get_gateway)):
    try:
        return _json({"records": [record_as_dict(r) for r in gateway.fetch_all()]})
    except Exception as exc:
        return _error(exc, "list_records")


@app.post("/records")
def create_record(payload: RecordModel, gateway: SheetGateway = Depends(get_gateway)):
    record = payload.to_record()
    errors = validate_record(record)
    if errors:
        return _invalid(errors)
    try:
        return _json(record_as_dict(gateway.create(record)), status_code=201)
    except Exception as exc:
        return _error(exc, "create_record")


@app.put("/records/{row_id}")
def update_record(row_id: int, payload: RecordModel, gateway: SheetGateway = Depends(get_gateway)):
    record = payload.model_copy(update={"row_id": row_id}).to_record()
    errors = validate_record(record)
    if errors:
        return _invalid(errors)
    try:
        return _json(record_as_dict(gateway.update(record)))
    except Exception as exc:
        return _error(exc, "update_record")


@app.post("/records/delete")
def delete_records(payload: DeleteRequestModel, gateway: SheetGateway = Depends(get_gateway)):
    try:
        return _json({"deleted": gateway.delete(payload.row_ids)})
    except Exception as exc:
        return _error(exc, "delete_records")


@app.post("/records/import")
async def import_file(file: UploadFile = File(...), gateway: SheetGateway = Depends(get_gateway)):
    try:
        content = await file.read()
        parsed = import_records(content, file.filename or "upload.xlsx")
        created = gateway.batch_create(parsed)
        return _json({"imported": len(created), "records": [record_as_dict(r) for r in created]})
    except Exception as exc:
        return _error(exc, "import_file")


@app.get("/records/export")
def export_file(gateway: SheetGateway = Depends(get_gateway)):
    try:
        content = export_records(gateway.fetch_all())
    except Exception as exc:
        return _error(exc, "export_file")
    filename = "danh_sach_koc_chi_tiet.xlsx"
    return Response(content=content, media_type=EXPORT_MEDIA_TYPE, headers={"Content-Disposition": f"attachment; filename={filename}"})


@app.post("/groups")
def groups(query: GroupsQueryModel, gateway: SheetGateway = Depends(get_gateway)):
    try:
        records = gateway.fetch_all()
        ctx = prepare_context(
            records,
            query.filters.to_filters(),
            query.sort.to_sort() if query.sort else None,
            page=query.page,
            page_size=load_settings().page_size,
        )
        page_groups: List[dict] = [group_as_dict(g) for g in ctx["page_groups"]]
        return _json(
            {
                "total": len(ctx["filtered_groups"]),
                "page": ctx["page"],
                "total_pages": ctx["total_pages"],
                "groups": page_groups,
            }
        )
    except Exception as exc:
        return _error(exc, "groups")


@app.post("/overview")
def overview(query: OverviewQueryModel, gateway: SheetGateway = Depends(get_gateway)):
    try:
        records = gateway.fetch_all()
        return _json(
            compute_overview(
                records,
                start=query.start_date,
                end=query.end_date,
                top10_brand=query.top10_brand,
                top5_brand=query.top5_brand,
                include_charts=query.include_charts,
            )
        )
    except Exception as exc:
        return _error(exc, "overview")
