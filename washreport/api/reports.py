"""API endpoints for the report builder: column catalog, preview and export."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from .. import config as settings
from ..models import COLUMN_REGISTRY, FilterOperator, ReportShape, ReportType, SortDirection
from ..models.report_config import DATE_RANGE_PRESETS
from ..services import EmptyReportError, FetchError, PreviewSession, ReportEngine
from ..services.export_formatter import CSV_MEDIA_TYPE, XLSX_MEDIA_TYPE
from .deps import get_engine
from .schemas import ReportConfigPayload, ReportExportRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])
sessions_router = APIRouter(prefix="/api/preview-sessions", tags=["preview"])

# session id -> live preview state
preview_sessions: Dict[str, PreviewSession] = {}

MEDIA_TYPES = {"xlsx": XLSX_MEDIA_TYPE, "csv": CSV_MEDIA_TYPE}


def download_response(data: bytes, filename: str, media_type: str,
                      headers: Optional[Dict[str, str]] = None) -> Response:
    all_headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    all_headers.update(headers or {})
    return Response(content=data, media_type=media_type, headers=all_headers)


def _label(value: str) -> str:
    return value.replace("_", " ").title()


@router.get("/columns")
async def get_columns(include_advanced: bool = Query(True)) -> JSONResponse:
    """Column catalog, flat and grouped by category."""
    categories = COLUMN_REGISTRY.categories(include_advanced=include_advanced)
    return JSONResponse({
        "columns": [c.to_dict() for cols in categories.values() for c in cols],
        "categories": [
            {"name": name, "columns": [c.id for c in cols]}
            for name, cols in categories.items()
        ],
    })


@router.get("/types")
async def get_report_types() -> JSONResponse:
    """Report types, filter operators and date presets."""
    return JSONResponse({
        "report_types": [{"value": t.value, "label": _label(t.value)} for t in ReportType],
        "shapes": [s.value for s in ReportShape],
        "filter_operators": [o.value for o in FilterOperator],
        "sort_directions": [d.value for d in SortDirection],
        "date_presets": [{"value": p, "label": _label(p)} for p in DATE_RANGE_PRESETS],
    })


@router.post("/preview")
async def preview_report(
    payload: ReportConfigPayload,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    engine: ReportEngine = Depends(get_engine),
) -> JSONResponse:
    try:
        config = payload.to_config()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await asyncio.to_thread(engine.preview, config, limit or settings.PREVIEW_ROW_LIMIT)
    return JSONResponse(result.to_dict())


@router.post("/export")
async def export_report(
    request: ReportExportRequest,
    engine: ReportEngine = Depends(get_engine),
) -> Response:
    """Full report as an XLSX or CSV download."""
    try:
        config = request.config.to_config()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        data, filename, result = await asyncio.to_thread(
            engine.export,
            config,
            request.format,
            request.template_name,
            request.sum_columns,
            request.add_totals,
        )
    except EmptyReportError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except FetchError:
        logger.error("Report export failed", exc_info=True)
        raise HTTPException(status_code=502, detail="Report data could not be loaded")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return download_response(data, filename, MEDIA_TYPES[request.format], {
        "X-Report-Rows": str(len(result.rows)),
        "X-Report-Shape": result.shape.value,
    })


# ===================== Live preview sessions =====================

def cleanup_stale_sessions(now: Optional[float] = None, keep: Optional[int] = None) -> int:
    """Drop idle sessions, then the least recently used ones beyond ``keep``."""
    now = time.monotonic() if now is None else now
    keep = settings.MAX_PREVIEW_SESSIONS if keep is None else keep
    cutoff = now - settings.PREVIEW_SESSION_TTL_SECONDS
    removable = [sid for sid, s in preview_sessions.items() if s.touched_at < cutoff]
    overflow = len(preview_sessions) - len(removable) - keep
    if overflow > 0:
        live = sorted(
            (sid for sid in preview_sessions if sid not in removable),
            key=lambda sid: preview_sessions[sid].touched_at,
        )
        removable.extend(live[:overflow])
    for sid in removable:
        preview_sessions.pop(sid, None)
    if removable:
        logger.debug("Dropped %d preview session(s)", len(removable))
    return len(removable)


def _session(session_id: str, engine: ReportEngine) -> PreviewSession:
    session = preview_sessions.get(session_id)
    if session is None:
        cleanup_stale_sessions(keep=max(settings.MAX_PREVIEW_SESSIONS - 1, 0))
        session = PreviewSession(
            engine,
            limit=settings.PREVIEW_ROW_LIMIT,
            debounce_seconds=settings.PREVIEW_DEBOUNCE_SECONDS,
        )
        preview_sessions[session_id] = session
    session.engine = engine
    return session


@sessions_router.post("/{session_id}")
async def refresh_preview(
    session_id: str,
    payload: ReportConfigPayload,
    engine: ReportEngine = Depends(get_engine),
) -> JSONResponse:
    """Debounced preview; superseded requests answer with ``applied: false``."""
    try:
        config = payload.to_config()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    outcome = await _session(session_id, engine).refresh(config)
    return JSONResponse({
        "token": outcome.token,
        "applied": outcome.applied,
        "preview": outcome.result.to_dict() if outcome.applied and outcome.result else None,
    })


@sessions_router.get("/{session_id}/rows")
async def preview_rows(
    session_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
) -> JSONResponse:
    session = preview_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Preview session not found")
    return JSONResponse(session.page(page, page_size))


@sessions_router.delete("/{session_id}")
async def close_preview(session_id: str) -> JSONResponse:
    if preview_sessions.pop(session_id, None) is None:
        raise HTTPException(status_code=404, detail="Preview session not found")
    return JSONResponse({"status": "deleted"})
