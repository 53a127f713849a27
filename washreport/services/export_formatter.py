# -*- coding: utf-8 -*-
"""Spreadsheet and CSV rendering for reports and invoice exports.

All writers are deterministic: identical rows and configuration produce
identical bytes, which the regression tests rely on.
"""

from __future__ import annotations

import io
import re
from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Sequence, Tuple
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.writer.excel import ExcelWriter

from ..models import DEFAULT_EXPORT_COLUMNS, ExportColumn, InvoiceLine
from .aggregation import SECTION_KEY, RowSection, ShapedReport
from .invoice_engine import InvoiceExport, InvoiceGroupingEngine

TOTAL_LABEL = "TOTAL"
DEFAULT_REPORT_NAME = "custom-report"

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv"

# Pinned document/zip timestamps keep workbook bytes reproducible
_FIXED_TIMESTAMP = datetime(2000, 1, 1)
_ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)

_HEADER_FONT = Font(bold=True)
_HEADER_FILL = PatternFill(start_color="CCCCCC", end_color="CCCCCC", fill_type="solid")
_SECTION_FILL = PatternFill(start_color="D6E4F0", end_color="D6E4F0", fill_type="solid")
_THIN = Side(style="thin", color="DDDDDD")
_BORDER = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)
_TOTAL_BORDER = Border(top=Side(style="thin"), bottom=Side(style="double"))


class EmptyReportError(ValueError):
    """Raised instead of writing an export without data rows."""


# ===================== Table building =====================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def totals_row(report: ShapedReport, sum_columns: Iterable[str]) -> List[Any]:
    """``TOTAL`` row summing the selected columns over data rows only."""
    wanted = set(sum_columns)
    data_rows = report.data_rows
    row: List[Any] = []
    for column in report.columns:
        if column.id in wanted:
            row.append(round(sum(r[column.id] for r in data_rows if _is_number(r.get(column.id))), 2))
        else:
            row.append(None)
    if row:
        row[0] = TOTAL_LABEL
    return row


def report_table(
    report: ShapedReport,
    sum_columns: Optional[Iterable[str]] = None,
) -> Tuple[List[str], List[List[Any]]]:
    """Header labels and row values in selection order, plus an optional totals row."""
    headers = [column.label for column in report.columns]
    rows = [[row.get(column.id) for column in report.columns] for row in report.rows]
    if sum_columns:
        rows.append(totals_row(report, sum_columns))
    return headers, rows


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _cell_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return value


# ===================== Writers =====================

def render_csv(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> bytes:
    """Comma-separated text with standard quoting and ``\\n`` line endings."""
    frame = pd.DataFrame([[_cell_text(v) for v in row] for row in rows], columns=list(headers), dtype=str)
    return frame.to_csv(index=False, lineterminator="\n").encode("utf-8")


def _auto_width(ws) -> None:
    """Fit column widths to their content, capped at 50 characters."""
    for col_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(col_idx)
        longest = 0
        for (cell,) in ws.iter_rows(min_col=col_idx, max_col=col_idx):
            if cell.value is not None:
                longest = max(longest, len(str(cell.value)))
        ws.column_dimensions[letter].width = min(longest + 2, 50)


def _normalize_archive(data: bytes) -> bytes:
    """Rewrite a zip archive with fixed entry timestamps."""
    out = io.BytesIO()
    with ZipFile(io.BytesIO(data)) as src, ZipFile(out, "w", ZIP_DEFLATED) as dst:
        for info in src.infolist():
            entry = ZipInfo(info.filename, date_time=_ZIP_DATE_TIME)
            entry.compress_type = ZIP_DEFLATED
            dst.writestr(entry, src.read(info.filename))
    return out.getvalue()


def workbook_bytes(wb: Workbook) -> bytes:
    wb.properties.created = _FIXED_TIMESTAMP
    wb.properties.modified = _FIXED_TIMESTAMP
    buf = io.BytesIO()
    # ExcelWriter directly: save_workbook() would stamp the current time
    ExcelWriter(wb, ZipFile(buf, "w", ZIP_DEFLATED, allowZip64=True)).save()
    return _normalize_archive(buf.getvalue())


def render_xlsx(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    sections: Sequence[str] = (),
    sheet_name: str = "Report",
    has_totals: bool = False,
) -> bytes:
    """Single-sheet workbook: styled header, data rows, optional totals row."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name[:31]

    ws.append(list(headers))
    for cell in ws[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.border = _BORDER

    for idx, row in enumerate(rows):
        ws.append([_cell_value(v) for v in row])
        current = ws.max_row
        is_totals = has_totals and idx == len(rows) - 1
        section = sections[idx] if idx < len(sections) else RowSection.DATA.value
        for cell in ws[current]:
            cell.border = _TOTAL_BORDER if is_totals else _BORDER
            if is_totals or section == RowSection.SENTINEL.value:
                cell.font = _HEADER_FONT
            if section == RowSection.SENTINEL.value:
                cell.fill = _SECTION_FILL
            if _is_number(cell.value):
                cell.number_format = "0.00"

    ws.freeze_panes = "A2"
    _auto_width(ws)
    return workbook_bytes(wb)


# ===================== Filenames =====================

def _slug(name: str) -> str:
    slug = re.sub(r"[^\w\-]+", "-", name.strip()).strip("-")
    return slug[:80] or DEFAULT_REPORT_NAME


def report_filename(template_name: Optional[str], export_date: date, extension: str = "xlsx") -> str:
    return f"{_slug(template_name or DEFAULT_REPORT_NAME)}_{export_date.isoformat()}.{extension}"


def invoice_filename(end_date: date) -> str:
    return f"invoice-export-{end_date.isoformat()}.csv"


# ===================== Formatter =====================

class ExportFormatter:
    """Renders shaped reports and invoice groups to downloadable files.

    The invoice column mapping is an explicit, immutable value handed in by the
    caller; the QuickBooks default layout is only a default argument.
    """

    def __init__(self, export_columns: Sequence[ExportColumn] = DEFAULT_EXPORT_COLUMNS):
        self.export_columns: Tuple[ExportColumn, ...] = tuple(export_columns)

    def report(
        self,
        report: ShapedReport,
        fmt: str = "xlsx",
        sum_columns: Optional[Iterable[str]] = None,
        sheet_name: str = "Report",
    ) -> bytes:
        if not report.rows:
            raise EmptyReportError("No data matches the selected filters; nothing to export")
        sum_columns = list(sum_columns or [])
        headers, rows = report_table(report, sum_columns)
        if fmt == "csv":
            return render_csv(headers, rows)
        if fmt != "xlsx":
            raise ValueError(f"unsupported export format {fmt!r}")
        sections = [r[SECTION_KEY] for r in report.rows]
        return render_xlsx(headers, rows, sections=sections, sheet_name=sheet_name,
                           has_totals=bool(sum_columns))

    def invoices(self, engine: InvoiceGroupingEngine, lines: Iterable[InvoiceLine]) -> Tuple[bytes, InvoiceExport]:
        export = engine.render(lines, self.export_columns)
        if not export.rows:
            raise EmptyReportError("No billable work found for the selected period; nothing to export")
        return render_csv(export.headers, export.rows), export
