"""Tests for spreadsheet/CSV rendering and the invoice export pipeline."""

from __future__ import annotations

import io
from datetime import date

import pandas as pd
import pytest
from openpyxl import load_workbook


def _shaped_mixed():
    from washreport.models import COLUMN_REGISTRY, ReportShape
    from washreport.services import ShapedReport
    from washreport.services.aggregation import SECTION_KEY

    columns = COLUMN_REGISTRY.known(["client_name", "quantity", "line_total", "total_revenue"])
    rows = [
        {SECTION_KEY: "data", "client_name": "A", "quantity": 2.0, "line_total": 50.0, "total_revenue": None},
        {SECTION_KEY: "data", "client_name": "A", "quantity": 1.0, "line_total": None, "total_revenue": None},
        {SECTION_KEY: "data", "client_name": "B", "quantity": 3.0, "line_total": 12.5, "total_revenue": None},
        {SECTION_KEY: "sentinel", "client_name": "--- Summary ---", "quantity": None, "line_total": None,
         "total_revenue": None},
        {SECTION_KEY: "summary", "client_name": "A", "quantity": None, "line_total": None, "total_revenue": 50.0},
        {SECTION_KEY: "summary", "client_name": "B", "quantity": None, "line_total": None, "total_revenue": 12.5},
    ]
    return ShapedReport(ReportShape.MIXED, columns, rows)


def _config(columns, filters=()):
    from washreport.models import ReportConfig, ReportFilter

    return ReportConfig(columns=list(columns), filters=[ReportFilter(*f) for f in filters])


# ── Totals row ────────────────────────────────────────────────────────────────

def test_totals_row_sums_data_rows_only():
    from washreport.services.export_formatter import totals_row

    row = totals_row(_shaped_mixed(), ["quantity", "line_total", "total_revenue"])
    # Summary rows are excluded, so total_revenue has no data values to sum
    assert row == ["TOTAL", 6.0, 62.5, 0]


def test_totals_row_leaves_unsummed_columns_empty():
    from washreport.services.export_formatter import totals_row

    assert totals_row(_shaped_mixed(), ["line_total"]) == ["TOTAL", None, 62.5, None]


# ── Generic report export ─────────────────────────────────────────────────────

def test_xlsx_export_layout(engine):
    data, filename, result = engine.export(_config(["client_name", "quantity", "line_total"]), "xlsx")

    assert filename == "custom-report_2024-01-15.xlsx"
    ws = load_workbook(io.BytesIO(data)).active
    assert [c.value for c in ws[1]] == ["Client Name", "Quantity", "Line Total ($)"]
    assert ws["A1"].font.bold
    assert ws.max_row == 1 + 7 + 1
    assert [c.value for c in ws[ws.max_row]] == ["TOTAL", 13, 315]


def test_xlsx_export_is_byte_identical(engine):
    config = _config(["employee_name", "work_date", "total_quantity"])
    first, _, _ = engine.export(config, "xlsx", template_name="Weekly Summary")
    second, _, _ = engine.export(config, "xlsx", template_name="Weekly Summary")
    assert first == second


def test_csv_export(engine):
    data, filename, _ = engine.export(_config(["client_name", "line_total"]), "csv", template_name="Fleet Totals")

    assert filename == "Fleet-Totals_2024-01-15.csv"
    parsed = pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False)
    assert list(parsed.columns) == ["Client Name", "Line Total ($)"]
    assert len(parsed) == 8
    assert parsed.iloc[-1].tolist() == ["TOTAL", "315.0"]
    # Missing rate renders as an empty cell
    assert "" in parsed["Line Total ($)"].tolist()[:-1]


def test_export_without_totals(engine):
    data, _, _ = engine.export(_config(["client_name", "line_total"]), "csv", add_totals=False)
    parsed = pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False)
    assert "TOTAL" not in parsed["Client Name"].tolist()


def test_empty_export_is_refused(engine):
    from washreport.services import EmptyReportError

    with pytest.raises(EmptyReportError):
        engine.export(_config(["client_name"], [("client_id", "equals", "nobody")]), "xlsx")


def test_unknown_format_is_rejected(engine):
    with pytest.raises(ValueError, match="format"):
        engine.export(_config(["client_name"]), "pdf")


def test_report_filename_slug():
    from washreport.services.export_formatter import invoice_filename, report_filename

    assert report_filename("Weekly Fleet / Summary", date(2024, 1, 15)) == "Weekly-Fleet-Summary_2024-01-15.xlsx"
    assert report_filename(None, date(2024, 1, 15), "csv") == "custom-report_2024-01-15.csv"
    assert report_filename("  ", date(2024, 1, 15)) == "custom-report_2024-01-15.xlsx"
    assert invoice_filename(date(2024, 1, 31)) == "invoice-export-2024-01-31.csv"


# ── Invoice export ────────────────────────────────────────────────────────────

def _parse(data: bytes) -> pd.DataFrame:
    return pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False)


def test_invoice_export_end_to_end(engine):
    data, filename, export = engine.export_invoices(date(2024, 1, 1), date(2024, 1, 31))
    parsed = _parse(data)

    assert filename == "invoice-export-2024-01-31.csv"
    assert export.invoice_count == 4
    assert export.row_count == 7
    assert export.missing_rate_count == 1
    assert parsed["*InvoiceNo"].tolist() == ["1001", "", "", "1002", "1003", "1004", ""]
    assert parsed["Item(Product/Service)"].tolist() == [
        "Acme Trailer Washs 2 X /Wk",
        "Acme Truck Wash 1 X / Wk",
        "Acme Trailer Washs 2 X /Wk",
        "Acme Trailer Washs 2 X /Wk",
        "Acme-Jani",
        "Beta Transport, Inc. Truck Wash",
        "EPA Charges",
    ]
    assert parsed["*DueDate"].tolist()[0] == "01/20/2024"
    assert parsed["*DueDate"].tolist()[5] == "02/04/2024"
    assert parsed["*InvoiceDate"].tolist()[3] == "01/12/2024"
    assert parsed["*ItemAmount"].tolist() == ["50.00", "30.00", "75.00", "25.00", "120.00", "", "15.00"]
    assert parsed["Taxable"].tolist() == ["Y", "Y", "Y", "Y", "Y", "N", "N"]


def test_invoice_export_is_byte_identical(engine):
    first, _, _ = engine.export_invoices(date(2024, 1, 1), date(2024, 1, 31))
    second, _, _ = engine.export_invoices(date(2024, 1, 1), date(2024, 1, 31))
    assert first == second


def test_invoice_start_number_from_environment(engine, monkeypatch):
    monkeypatch.setenv("INVOICE_START_NUMBER", "5000")
    data, _, _ = engine.export_invoices(date(2024, 1, 1), date(2024, 1, 31))
    assert _parse(data)["*InvoiceNo"].tolist()[0] == "5000"

    monkeypatch.setenv("INVOICE_START_NUMBER", "not-a-number")
    data, _, _ = engine.export_invoices(date(2024, 1, 1), date(2024, 1, 31))
    assert _parse(data)["*InvoiceNo"].tolist()[0] == "1001"


def test_custom_column_mapping(engine):
    from washreport.models import ExportColumn

    columns = (
        ExportColumn("a", "invoice_number", "Invoice", True),
        ExportColumn("b", "identifier", "Vehicle"),
        ExportColumn("c", "work_date", "Date"),
    )
    data, _, _ = engine.export_invoices(date(2024, 1, 1), date(2024, 1, 7), client_ids=["c2"],
                                        start_number="77", columns=columns)
    assert data.decode("utf-8") == "Invoice,Vehicle,Date\n77,BT-1,01/05/2024\n,,01/06/2024\n"


def test_invoice_export_for_empty_period_is_refused(engine):
    from washreport.services import EmptyReportError

    with pytest.raises(EmptyReportError):
        engine.export_invoices(date(2023, 1, 1), date(2023, 1, 31))


def test_inverted_period_is_rejected(engine):
    with pytest.raises(ValueError):
        engine.export_invoices(date(2024, 2, 1), date(2024, 1, 1))
