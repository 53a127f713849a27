"""API endpoints for the QuickBooks invoice export."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from ..models import DEFAULT_EXPORT_COLUMNS, INVOICE_FIELDS, PREVIEW_EXPORT_COLUMNS, ExportColumn, ReportTemplate
from ..services import EmptyReportError, FetchError, ReportEngine, TemplateStore
from ..services.export_formatter import CSV_MEDIA_TYPE
from .deps import get_engine, get_template_store
from .reports import download_response
from .schemas import InvoiceExportRequest, LayoutCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


def _export_settings(
    request: InvoiceExportRequest,
    store: TemplateStore,
    default_columns: Sequence[ExportColumn],
) -> Tuple[Sequence[ExportColumn], Optional[str], Optional[str], Optional[ReportTemplate]]:
    """Columns, default terms and default class, with a saved layout filling the gaps."""
    columns = request.export_columns() if request.columns else None
    terms, client_class = request.default_terms, request.default_class
    layout_template = None
    if request.layout_id:
        layout_template = store.get_layout(request.layout_id)
        if layout_template is None:
            raise HTTPException(status_code=404, detail="Export layout not found")
        layout = layout_template.config
        columns = columns or tuple(layout.columns)
        terms = terms or layout.default_terms
        client_class = layout.default_class if client_class is None else client_class
    return columns or default_columns, terms, client_class, layout_template


@router.get("/columns")
async def get_invoice_columns() -> JSONResponse:
    """Invoice field vocabulary and the default QuickBooks column layout."""
    return JSONResponse({
        "fields": [
            {
                "key": f.key,
                "label": f.label,
                "description": f.description,
                "defaultHeader": f.default_header,
                "suggestFirstRowOnly": f.suggest_first_row_only,
            }
            for f in INVOICE_FIELDS
        ],
        "defaultColumns": [c.to_dict() for c in DEFAULT_EXPORT_COLUMNS],
    })


# ===================== Saved export layouts =====================

@router.get("/layouts")
async def list_layouts(
    user: Optional[str] = Query(None, description="Only shared layouts and this user's own"),
    store: TemplateStore = Depends(get_template_store),
) -> JSONResponse:
    return JSONResponse({"layouts": [t.to_record() for t in store.list_layouts(user=user)]})


@router.post("/layouts", status_code=201)
async def create_layout(
    payload: LayoutCreate,
    store: TemplateStore = Depends(get_template_store),
) -> JSONResponse:
    try:
        template = store.save_layout(
            payload.template_name,
            payload.layout.to_layout(),
            description=payload.description,
            created_by=payload.created_by,
            is_shared=payload.is_shared,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse(template.to_record(), status_code=201)


@router.get("/layouts/{layout_id}")
async def get_layout(layout_id: str, store: TemplateStore = Depends(get_template_store)) -> JSONResponse:
    template = store.get_layout(layout_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Export layout not found")
    return JSONResponse(template.to_record())


@router.delete("/layouts/{layout_id}")
async def delete_layout(layout_id: str, store: TemplateStore = Depends(get_template_store)) -> JSONResponse:
    if store.get_layout(layout_id) is None:
        raise HTTPException(status_code=404, detail="Export layout not found")
    store.delete(layout_id)
    return JSONResponse({"status": "deleted"})


# ===================== Preview and export =====================

@router.post("/preview")
async def preview_invoices(
    request: InvoiceExportRequest,
    engine: ReportEngine = Depends(get_engine),
    store: TemplateStore = Depends(get_template_store),
) -> JSONResponse:
    try:
        columns, terms, client_class, _ = _export_settings(request, store, PREVIEW_EXPORT_COLUMNS)
        export = await asyncio.to_thread(
            engine.preview_invoices,
            request.start_date,
            request.end_date,
            request.client_ids,
            request.location_ids,
            columns,
            start_number=request.start_number,
            legacy_order=request.legacy_order,
            default_terms=terms,
            default_class=client_class,
        )
    except FetchError:
        logger.error("Invoice preview failed", exc_info=True)
        raise HTTPException(status_code=502, detail="Invoice data could not be loaded")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return JSONResponse({
        "headers": export.headers,
        "rows": export.rows,
        "invoiceCount": export.invoice_count,
        "lineCount": export.row_count,
        "missingRateCount": export.missing_rate_count,
        "totalQuantity": export.total_quantity,
        "totalAmount": export.total_amount,
    })


@router.post("/export")
async def export_invoices(
    request: InvoiceExportRequest,
    engine: ReportEngine = Depends(get_engine),
    store: TemplateStore = Depends(get_template_store),
) -> Response:
    """QuickBooks line-item CSV for the requested period."""
    try:
        columns, terms, client_class, layout_template = _export_settings(request, store, DEFAULT_EXPORT_COLUMNS)
        data, filename, export = await asyncio.to_thread(
            engine.export_invoices,
            request.start_date,
            request.end_date,
            request.client_ids,
            request.location_ids,
            request.start_number,
            columns,
            request.legacy_order,
            terms,
            client_class,
        )
    except EmptyReportError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except FetchError:
        logger.error("Invoice export failed", exc_info=True)
        raise HTTPException(status_code=502, detail="Invoice data could not be loaded")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if layout_template is not None:
        await asyncio.to_thread(store.record_use, layout_template)
    return download_response(data, filename, CSV_MEDIA_TYPE, {
        "X-Invoice-Count": str(export.invoice_count),
        "X-Line-Count": str(export.row_count),
        "X-Missing-Rates": str(export.missing_rate_count),
    })
