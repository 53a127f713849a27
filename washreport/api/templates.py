"""API endpoints for saved report templates."""

from __future__ import annotations

import asyncio
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from ..services import EmptyReportError, FetchError, ReportEngine, TemplateStore
from .deps import get_engine, get_template_store
from .reports import MEDIA_TYPES, download_response
from .schemas import TemplateCreate, TemplateDuplicate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/templates", tags=["templates"])


def _get_or_404(store: TemplateStore, template_id: str):
    template = store.get(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.get("")
async def list_templates(
    user: Optional[str] = Query(None, description="Only shared templates and this user's own"),
    include_system: bool = Query(True),
    store: TemplateStore = Depends(get_template_store),
) -> JSONResponse:
    templates = store.list(user=user, include_system=include_system)
    return JSONResponse({"templates": [t.to_record() for t in templates]})


@router.post("", status_code=201)
async def create_template(
    payload: TemplateCreate,
    store: TemplateStore = Depends(get_template_store),
) -> JSONResponse:
    try:
        template = store.save(
            payload.template_name,
            payload.config.to_config(),
            description=payload.description,
            created_by=payload.created_by,
            is_shared=payload.is_shared,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse(template.to_record(), status_code=201)


@router.get("/{template_id}")
async def get_template(template_id: str, store: TemplateStore = Depends(get_template_store)) -> JSONResponse:
    return JSONResponse(_get_or_404(store, template_id).to_record())


@router.delete("/{template_id}")
async def delete_template(template_id: str, store: TemplateStore = Depends(get_template_store)) -> JSONResponse:
    _get_or_404(store, template_id)
    try:
        store.delete(template_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return JSONResponse({"status": "deleted"})


@router.post("/{template_id}/duplicate", status_code=201)
async def duplicate_template(
    template_id: str,
    payload: Optional[TemplateDuplicate] = None,
    store: TemplateStore = Depends(get_template_store),
) -> JSONResponse:
    _get_or_404(store, template_id)
    copy = store.duplicate(template_id, created_by=payload.created_by if payload else None)
    return JSONResponse(copy.to_record(), status_code=201)


@router.post("/{template_id}/run")
async def run_template(
    template_id: str,
    format: Literal["preview", "xlsx", "csv"] = Query("preview"),
    engine: ReportEngine = Depends(get_engine),
    store: TemplateStore = Depends(get_template_store),
) -> Response:
    """Load a template into the builder: preview it or export it directly.

    Columns the catalog no longer knows are dropped by the engine. The use
    counter is bumped afterwards on a best-effort basis.
    """
    template = _get_or_404(store, template_id)
    if template.is_export_layout:
        raise HTTPException(status_code=400, detail="Export layouts are used with /api/invoices/export")

    if format == "preview":
        result = await asyncio.to_thread(engine.preview, template.config)
        await asyncio.to_thread(store.record_use, template)
        body = result.to_dict()
        body["template"] = template.to_record()
        return JSONResponse(body)

    try:
        data, filename, _ = await asyncio.to_thread(
            engine.export, template.config, format, template.template_name,
        )
    except EmptyReportError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except FetchError:
        logger.error("Template export failed for %s", template_id, exc_info=True)
        raise HTTPException(status_code=502, detail="Report data could not be loaded")
    await asyncio.to_thread(store.record_use, template)
    return download_response(data, filename, MEDIA_TYPES[format])
